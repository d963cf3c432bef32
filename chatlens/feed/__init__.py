"""Message feed boundary: record types and snapshot loading."""

from .loader import FeedError, FeedSnapshot, SnapshotLoader, load_snapshot
from .records import MemberRecord, MessageRecord, MessageType, NameHistoryRecord, TimeFilter

__all__ = [
    "FeedError",
    "FeedSnapshot",
    "SnapshotLoader",
    "load_snapshot",
    "MemberRecord",
    "MessageRecord",
    "MessageType",
    "NameHistoryRecord",
    "TimeFilter",
]
