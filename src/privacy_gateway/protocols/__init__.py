"""Protocol definitions for core interfaces maintained in this package."""

from .content_store_protocol import (
    ContentStoreProtocol,
    PullRequestInfo,
    StoredFile,
)

__all__ = [
    "ContentStoreProtocol",
    "PullRequestInfo",
    "StoredFile",
]
