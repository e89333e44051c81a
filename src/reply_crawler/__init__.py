"""
Reply Crawler

Recursive fetching of ActivityPub reply trees.
"""

__version__ = "0.1.0"
