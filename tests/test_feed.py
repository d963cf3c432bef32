"""Tests for the snapshot loader and feed records."""

import json
from pathlib import Path

import pytest

from chatlens.feed import (
    FeedError,
    MessageRecord,
    MessageType,
    NameHistoryRecord,
    SnapshotLoader,
    TimeFilter,
    load_snapshot,
)


_SAMPLE = Path(__file__).parent / "sample_data" / "sample_chat.json"


def _doc(members=None, messages=None) -> str:
    return json.dumps({"members": members or [], "messages": messages or []})


class TestSnapshotLoader:
    """Tests for row validation and conversion."""

    def test_parses_sample_file(self):
        snapshot = SnapshotLoader().parse_file(_SAMPLE)

        assert [m.display_name for m in snapshot.members] == ["Alice", "Bob", "Carol", "Dave"]
        assert len(snapshot.messages) == 14
        assert snapshot.members[0].platform_id == "wxid_alice1001"

    def test_system_sender_is_dropped(self):
        snapshot = SnapshotLoader().parse_file(_SAMPLE)
        assert all(m.sender_id != 99 for m in snapshot.messages)
        assert all(m.id != 99 for m in snapshot.members)

    def test_system_type_messages_are_dropped(self):
        snapshot = SnapshotLoader().parse(_doc(
            members=[{"id": 1, "displayName": "Alice"}],
            messages=[
                {"senderId": 1, "ts": 10, "type": 80, "content": "recalled"},
                {"senderId": 1, "ts": 11, "content": "hi"},
            ],
        ))
        assert [m.content for m in snapshot.messages] == ["hi"]

    def test_unordered_messages_are_sorted(self):
        snapshot = SnapshotLoader().parse(_doc(
            members=[{"id": 1, "displayName": "Alice"}],
            messages=[
                {"id": 2, "senderId": 1, "ts": 20},
                {"id": 3, "senderId": 1, "ts": 10},
                {"id": 1, "senderId": 1, "ts": 10},
            ],
        ))
        assert [(m.timestamp, m.id) for m in snapshot.messages] == [(10, 1), (10, 3), (20, 2)]

    def test_field_aliases(self):
        snapshot = SnapshotLoader().parse(_doc(
            members=[{"id": "7", "platform_id": "abc", "groupNickname": "Nick"}],
            messages=[{"senderId": 7, "timestampSeconds": 100, "type": "image"}],
        ))
        member = snapshot.members[0]
        assert (member.id, member.platform_id, member.display_name) == (7, "abc", "Nick")
        assert snapshot.messages[0].type == MessageType.IMAGE
        assert snapshot.messages[0].id == 0

    def test_member_name_falls_back_to_platform_id(self):
        snapshot = SnapshotLoader().parse(_doc(members=[{"id": 3, "platformId": "wxid_3"}]))
        assert snapshot.members[0].display_name == "wxid_3"

    def test_invalid_json(self):
        with pytest.raises(FeedError, match="not valid JSON"):
            SnapshotLoader().parse("{not json")

    def test_top_level_must_be_object(self):
        with pytest.raises(FeedError):
            SnapshotLoader().parse("[]")

    def test_arrays_required(self):
        with pytest.raises(FeedError, match="arrays"):
            SnapshotLoader().parse(json.dumps({"members": {}, "messages": []}))

    def test_missing_sender(self):
        with pytest.raises(FeedError, match=r"messages\[0\].*senderId"):
            SnapshotLoader().parse(_doc(messages=[{"ts": 1}]))

    def test_missing_timestamp(self):
        with pytest.raises(FeedError, match="timestamp"):
            SnapshotLoader().parse(_doc(messages=[{"senderId": 1}]))

    def test_boolean_is_not_an_integer(self):
        with pytest.raises(FeedError, match="integer"):
            SnapshotLoader().parse(_doc(messages=[{"senderId": True, "ts": 1}]))

    def test_missing_member_id(self):
        with pytest.raises(FeedError, match="missing 'id'"):
            SnapshotLoader().parse(_doc(members=[{"displayName": "Ghost"}]))

    def test_name_history(self):
        doc = json.dumps({
            "members": [{"id": 1, "displayName": "Alice"}],
            "messages": [],
            "nameHistory": [{"memberId": 1, "name": "Ally"}],
        })
        snapshot = SnapshotLoader().parse(doc)

        assert snapshot.name_history == [NameHistoryRecord(member_id=1, name="Ally")]

    def test_name_history_defaults_to_empty(self):
        assert SnapshotLoader().parse(_doc()).name_history == []

    def test_name_history_row_needs_name(self):
        doc = json.dumps({"members": [], "messages": [], "nameHistory": [{"memberId": 1}]})
        with pytest.raises(FeedError, match=r"nameHistory\[0\]"):
            SnapshotLoader().parse(doc)


class TestMessageType:
    @pytest.mark.parametrize("code,expected", [
        (0, MessageType.TEXT),
        ("1", MessageType.IMAGE),
        (5, MessageType.EMOJI),
        ("link", MessageType.LINK),
        (12345, MessageType.OTHER),
        ("nonsense", MessageType.OTHER),
    ])
    def test_from_code(self, code, expected):
        assert MessageType.from_code(code) == expected

    def test_text_property_trims(self):
        assert MessageRecord(sender_id=1, timestamp=0, content="  hi \n").text == "hi"
        assert MessageRecord(sender_id=1, timestamp=0).text == ""


class TestTimeFilter:
    """Tests for range and member filtering."""

    def _messages(self) -> list[MessageRecord]:
        return [
            MessageRecord(sender_id=sender, timestamp=ts, id=i)
            for i, (sender, ts) in enumerate([(1, 10), (2, 20), (1, 30), (2, 40)])
        ]

    def test_inclusive_range(self):
        kept = TimeFilter(start_ts=20, end_ts=30).apply(self._messages())
        assert [m.timestamp for m in kept] == [20, 30]

    def test_member_filter(self):
        kept = TimeFilter(member_id=2).apply(self._messages())
        assert [m.timestamp for m in kept] == [20, 40]

    def test_empty_filter_keeps_everything(self):
        assert len(TimeFilter().apply(self._messages())) == 4

    def test_load_snapshot_applies_filter(self):
        snapshot = load_snapshot(_SAMPLE, TimeFilter(end_ts=1704103400))
        assert len(snapshot.messages) == 8
        assert len(snapshot.members) == 4

    def test_member_filter_keeps_time_range_messages(self):
        snapshot = load_snapshot(_SAMPLE, TimeFilter(end_ts=1704103400, member_id=3))

        assert [m.sender_id for m in snapshot.messages] == [3, 3]
        assert len(snapshot.time_range_messages()) == 8

    def test_without_member_filter_range_is_messages(self):
        snapshot = load_snapshot(_SAMPLE, TimeFilter(end_ts=1704103400))

        assert snapshot.range_messages is None
        assert snapshot.time_range_messages() is snapshot.messages
