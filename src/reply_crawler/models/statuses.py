"""
Status Request/Response Models

Pydantic models for status and reply-crawl endpoints.
"""

from typing import Any

from pydantic import BaseModel, Field, HttpUrl


class StatusCreateRequest(BaseModel):
    """Register a remote status so its replies can be crawled"""

    uri: HttpUrl = Field(
        ...,
        description="ActivityPub id of the status",
        examples=["https://mastodon.example/users/alice/statuses/1"],
    )


class StatusResponse(BaseModel):
    id: int
    uri: str
    in_reply_to_uri: str | None = None
    fetched_replies_at: int | None = Field(
        default=None, description="Epoch seconds of the last replies crawl"
    )
    body: dict[str, Any] | None = None


class FetchRepliesRequest(BaseModel):
    """Options forwarded to every collection fetch of the crawl"""

    options: dict[str, Any] = Field(default_factory=dict)


class FetchRepliesResponse(BaseModel):
    status: str = Field(default="queued")
    job_id: str
    created: bool = Field(
        default=True, description="False if the same crawl was already queued in this debounce window"
    )
