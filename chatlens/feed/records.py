"""Plain record types consumed by the analytics engine.

Rows are converted into these records once, at the feed boundary; the
engine never deals with raw dictionaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


# Display names used by chat exporters for the synthetic system sender
SYSTEM_SENDER_NAMES = frozenset({"系统消息", "System", "system"})


class MessageType(IntEnum):
    """Message type codes as stored by the chat database."""
    TEXT = 0
    IMAGE = 1
    VOICE = 2
    VIDEO = 3
    FILE = 4
    EMOJI = 5       # Stickers / custom emoji
    LINK = 6
    LOCATION = 7
    RED_PACKET = 20
    TRANSFER = 21
    POKE = 22
    CALL = 30
    SHARE = 31
    REPLY = 32
    FORWARD = 33
    CONTACT = 34
    SYSTEM = 80
    RECALL = 81
    OTHER = 99

    @classmethod
    def from_code(cls, code: int | str) -> MessageType:
        """Map a numeric code or a type name onto a MessageType.

        Unknown codes collapse to OTHER.
        """
        if isinstance(code, str) and not code.strip().lstrip("-").isdigit():
            try:
                return cls[code.strip().upper()]
            except KeyError:
                return cls.OTHER
        try:
            return cls(int(code))
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class MemberRecord:
    """A chat member as known to the session."""
    id: int
    platform_id: str
    display_name: str
    message_count: int = 0


@dataclass(frozen=True)
class MessageRecord:
    """A single message in the chronologically ordered log."""
    sender_id: int
    timestamp: int  # Unix seconds
    content: str | None = None
    type: MessageType = MessageType.TEXT
    id: int = 0

    @property
    def text(self) -> str:
        """Trimmed content, or an empty string for content-less messages."""
        return (self.content or "").strip()


@dataclass(frozen=True)
class NameHistoryRecord:
    """A name a member was previously known by."""
    member_id: int
    name: str


@dataclass(frozen=True)
class TimeFilter:
    """Inclusive time range and optional single-sender restriction."""
    start_ts: int | None = None
    end_ts: int | None = None
    member_id: int | None = None

    @property
    def restricts_member(self) -> bool:
        return self.member_id is not None

    def time_range_only(self) -> TimeFilter:
        """Return this filter without the member restriction."""
        return TimeFilter(start_ts=self.start_ts, end_ts=self.end_ts)

    def matches(self, message: MessageRecord) -> bool:
        if self.start_ts is not None and message.timestamp < self.start_ts:
            return False
        if self.end_ts is not None and message.timestamp > self.end_ts:
            return False
        if self.member_id is not None and message.sender_id != self.member_id:
            return False
        return True

    def apply(self, messages: list[MessageRecord]) -> list[MessageRecord]:
        """Return the messages inside the filter, preserving order."""
        if self.start_ts is None and self.end_ts is None and self.member_id is None:
            return list(messages)
        return [m for m in messages if self.matches(m)]


def member_directory(members: list[MemberRecord]) -> dict[int, MemberRecord]:
    """Index members by id."""
    return {m.id: m for m in members}


def member_identity(
    directory: dict[int, MemberRecord],
    member_id: int
) -> tuple[str, str]:
    """Resolve (platform_id, display_name) for a member id.

    Senders missing from the snapshot fall back to their numeric id.
    """
    member = directory.get(member_id)
    if member is None:
        return "", str(member_id)
    return member.platform_id, member.display_name
