"""
Storage module for persisting conversations and reviews.

This module provides:
- Conversation store abstraction and its SQLite backend
- S3 archive for completed reviews
"""

from review_assistant.storage.repository import (
    ConversationStore,
    SQLiteConversationStore,
    StorageError,
    StorageReadFailure,
    StorageWriteFailure,
)
from review_assistant.storage.s3 import ReviewArchive

__all__ = [
    "ConversationStore",
    "ReviewArchive",
    "SQLiteConversationStore",
    "StorageError",
    "StorageReadFailure",
    "StorageWriteFailure",
]
