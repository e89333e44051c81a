"""
Models package initialization
"""

from reply_crawler.models.statuses import (
    FetchRepliesRequest,
    FetchRepliesResponse,
    StatusCreateRequest,
    StatusResponse,
)
from reply_crawler.models.jobs import JobStatusResponse, QueueStatsResponse

__all__ = [
    "FetchRepliesRequest",
    "FetchRepliesResponse",
    "StatusCreateRequest",
    "StatusResponse",
    "JobStatusResponse",
    "QueueStatsResponse",
]
