"""Chat snapshot loader.

Converts a plain JSON snapshot (members + ordered messages) into feed
records. This is the only place raw rows are validated.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .records import (
    SYSTEM_SENDER_NAMES,
    MemberRecord,
    MessageRecord,
    MessageType,
    NameHistoryRecord,
    TimeFilter,
)

logger = logging.getLogger(__name__)

# Accepted aliases for each message field, first match wins
_TIMESTAMP_KEYS = ("ts", "timestampSeconds", "timestamp")
_NAME_KEYS = ("displayName", "name", "groupNickname", "accountName")


class FeedError(ValueError):
    """Raised when a snapshot row cannot be converted into a record."""


@dataclass
class FeedSnapshot:
    """Members and chronologically ordered messages of one chat session.

    ``range_messages`` holds the messages inside the time range when a
    member restriction narrowed ``messages``; None means ``messages`` is
    already the whole time range.
    """
    members: list[MemberRecord] = field(default_factory=list)
    messages: list[MessageRecord] = field(default_factory=list)
    name_history: list[NameHistoryRecord] = field(default_factory=list)
    range_messages: list[MessageRecord] | None = None

    def filtered(self, time_filter: TimeFilter | None) -> FeedSnapshot:
        """Return a snapshot restricted to the given time filter."""
        if time_filter is None:
            return self
        range_messages = None
        if time_filter.restricts_member:
            range_messages = time_filter.time_range_only().apply(self.messages)
        return FeedSnapshot(
            members=list(self.members),
            messages=time_filter.apply(self.messages),
            name_history=list(self.name_history),
            range_messages=range_messages,
        )

    def time_range_messages(self) -> list[MessageRecord]:
        """Messages inside the time range, ignoring any member restriction."""
        return self.messages if self.range_messages is None else self.range_messages


class SnapshotLoader:
    """Loader for JSON chat snapshots."""

    def parse(self, content: str) -> FeedSnapshot:
        """Parse snapshot JSON text.

        Args:
            content: JSON document with ``members`` and ``messages`` arrays

        Returns:
            FeedSnapshot with system senders removed and messages ordered

        Raises:
            FeedError: If the document or any row is malformed
        """
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise FeedError(f"Snapshot is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise FeedError("Snapshot must be a JSON object with 'members' and 'messages'")

        return self.parse_data(data)

    def parse_data(self, data: dict[str, Any]) -> FeedSnapshot:
        """Convert already-decoded snapshot rows into records."""
        raw_members = data.get("members", [])
        raw_messages = data.get("messages", [])
        if not isinstance(raw_members, list) or not isinstance(raw_messages, list):
            raise FeedError("'members' and 'messages' must be arrays")

        members: list[MemberRecord] = []
        system_ids: set[int] = set()
        for index, row in enumerate(raw_members):
            member = self._parse_member(row, index)
            if member.display_name in SYSTEM_SENDER_NAMES:
                system_ids.add(member.id)
                continue
            members.append(member)

        messages: list[MessageRecord] = []
        for index, row in enumerate(raw_messages):
            message = self._parse_message(row, index)
            if message.sender_id in system_ids or message.type == MessageType.SYSTEM:
                continue
            messages.append(message)

        if system_ids:
            logger.debug("Dropped %d system sender(s) from snapshot", len(system_ids))

        if not _is_ordered(messages):
            logger.warning("Snapshot messages are not ordered by (timestamp, id); sorting")
            messages.sort(key=lambda m: (m.timestamp, m.id))

        raw_history = data.get("nameHistory", [])
        if not isinstance(raw_history, list):
            raise FeedError("'nameHistory' must be an array")
        name_history = [
            self._parse_name_history(row, index)
            for index, row in enumerate(raw_history)
        ]

        return FeedSnapshot(members=members, messages=messages, name_history=name_history)

    def parse_file(self, path: str | Path) -> FeedSnapshot:
        """Parse a snapshot from a file.

        Args:
            path: Path to the snapshot JSON file

        Returns:
            FeedSnapshot

        Raises:
            ValueError: If file exceeds 200MB size limit
        """
        path = Path(path)
        max_size = 200 * 1024 * 1024  # 200 MB
        file_size = path.stat().st_size
        if file_size > max_size:
            raise ValueError(f"File exceeds {max_size // (1024 * 1024)}MB limit ({file_size // (1024 * 1024)}MB)")

        for encoding in ['utf-8', 'utf-8-sig', 'utf-16']:
            try:
                return self.parse(path.read_text(encoding=encoding))
            except UnicodeDecodeError:
                continue

        return self.parse(path.read_bytes().decode('utf-8', errors='replace'))

    def _parse_member(self, row: Any, index: int) -> MemberRecord:
        if not isinstance(row, dict):
            raise FeedError(f"members[{index}] is not an object")
        if "id" not in row:
            raise FeedError(f"members[{index}] is missing 'id'")

        member_id = _as_int(row["id"], f"members[{index}].id")
        platform_id = str(row.get("platformId") or row.get("platform_id") or member_id)
        name = next((str(row[k]) for k in _NAME_KEYS if row.get(k)), platform_id)

        return MemberRecord(
            id=member_id,
            platform_id=platform_id,
            display_name=name,
            message_count=_as_int(row.get("messageCount", 0), f"members[{index}].messageCount"),
        )

    def _parse_name_history(self, row: Any, index: int) -> NameHistoryRecord:
        if not isinstance(row, dict):
            raise FeedError(f"nameHistory[{index}] is not an object")
        if "memberId" not in row or not row.get("name"):
            raise FeedError(f"nameHistory[{index}] needs 'memberId' and 'name'")
        return NameHistoryRecord(
            member_id=_as_int(row["memberId"], f"nameHistory[{index}].memberId"),
            name=str(row["name"]),
        )

    def _parse_message(self, row: Any, index: int) -> MessageRecord:
        if not isinstance(row, dict):
            raise FeedError(f"messages[{index}] is not an object")
        if "senderId" not in row:
            raise FeedError(f"messages[{index}] is missing 'senderId'")

        ts_key = next((k for k in _TIMESTAMP_KEYS if k in row), None)
        if ts_key is None:
            raise FeedError(f"messages[{index}] is missing a timestamp ('ts')")

        content = row.get("content")
        if content is not None and not isinstance(content, str):
            content = str(content)

        msg_type = MessageType.from_code(row.get("type", 0))
        if msg_type == MessageType.OTHER and row.get("type") not in (99, "99", "other", "OTHER"):
            logger.warning("messages[%d] has unknown type %r, treating as OTHER", index, row.get("type"))

        return MessageRecord(
            sender_id=_as_int(row["senderId"], f"messages[{index}].senderId"),
            timestamp=_as_int(row[ts_key], f"messages[{index}].{ts_key}"),
            content=content,
            type=msg_type,
            id=_as_int(row.get("id", index), f"messages[{index}].id"),
        )


def _as_int(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise FeedError(f"{where} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise FeedError(f"{where} must be an integer, got {value!r}") from e


def _is_ordered(messages: list[MessageRecord]) -> bool:
    return all(
        (a.timestamp, a.id) <= (b.timestamp, b.id)
        for a, b in zip(messages, messages[1:])
    )


def load_snapshot(
    source: str | Path,
    time_filter: TimeFilter | None = None
) -> FeedSnapshot:
    """Convenience function to load and filter a snapshot file.

    Args:
        source: Snapshot path, or '-' to read from stdin
        time_filter: Optional filter applied after loading

    Returns:
        FeedSnapshot
    """
    loader = SnapshotLoader()
    if str(source) == '-':
        snapshot = loader.parse(sys.stdin.read())
    else:
        snapshot = loader.parse_file(source)
    return snapshot.filtered(time_filter)
