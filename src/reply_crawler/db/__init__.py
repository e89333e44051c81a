"""
Database package initialization
"""

from reply_crawler.db.statuses import Status, StatusStore

__all__ = ["Status", "StatusStore"]
