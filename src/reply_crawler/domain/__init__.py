"""Pure crawl data structures (no I/O)"""
