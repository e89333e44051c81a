"""
Replies Pointers

The `replies` field of an ActivityPub object is either a bare collection
URI or an embedded collection. Both are wrapped in a tagged variant here so
the collection fetcher can dispatch on the type instead of inspecting raw
JSON.
"""

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class RepliesRef:
    """Collection referenced by URI."""

    uri: str


@dataclass(frozen=True)
class InlineReplies:
    """Collection embedded in the status representation."""

    collection: dict[str, Any]


@dataclass(frozen=True)
class UnresolvableReplies:
    """A `replies` value of a shape no collection can be read from."""

    value: Any


RepliesPointer = Union[RepliesRef, InlineReplies, UnresolvableReplies]


def pointer_from_value(value: Any) -> RepliesPointer:
    if isinstance(value, str) and value:
        return RepliesRef(value)
    if isinstance(value, dict):
        return InlineReplies(value)
    return UnresolvableReplies(value)
