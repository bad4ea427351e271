"""Mock client modules for development and testing."""

from .mock_content_store import MockContentStore

__all__ = [
    "MockContentStore",
]
