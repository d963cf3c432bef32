"""Tests for analysis orchestration."""

import json
import logging
from datetime import timezone
from pathlib import Path

import pytest

from chatlens.engine.analyzer import (
    EMPTY_RESULTS,
    AnalysisKind,
    AnalysisReport,
    Analyzer,
    AnalyzerConfig,
    parse_kinds,
)
from chatlens.engine.graph import CoOccurrenceGraphBuilder, GraphResult
from chatlens.engine.mention import MentionGraph
from chatlens.engine.repeat import RepeatAnalysis
from chatlens.feed.loader import FeedSnapshot, load_snapshot
from chatlens.feed.records import MemberRecord, MessageRecord, NameHistoryRecord, TimeFilter
from chatlens.output.json_out import JSONOutput


_SAMPLE = Path(__file__).parent / "sample_data" / "sample_chat.json"
_NOW = 1704272460 + 86400


@pytest.fixture
def snapshot() -> FeedSnapshot:
    return load_snapshot(_SAMPLE)


@pytest.fixture
def analyzer() -> Analyzer:
    return Analyzer(AnalyzerConfig(tz=timezone.utc, now=_NOW))


class TestAnalyzerRun:
    """Tests for running analyses on a snapshot."""

    def test_runs_all_by_default(self, analyzer, snapshot):
        report = analyzer.run(snapshot)

        assert report.requested() == list(AnalysisKind)
        assert report.failed == []

    def test_runs_only_requested(self, analyzer, snapshot):
        report = analyzer.run(snapshot, [AnalysisKind.GRAPH, AnalysisKind.DIVING])

        assert report.requested() == [AnalysisKind.GRAPH, AnalysisKind.DIVING]
        assert report.repeat is None

    def test_sample_results(self, analyzer, snapshot):
        report = analyzer.run(snapshot)

        assert report.repeat.total_repeat_chains == 1
        assert report.repeat.originators[0].name == "Alice"
        assert report.repeat.breakers[0].name == "Dave"
        assert report.meme_battle.total_battles == 1
        assert report.meme_battle.top_battles[0].total_images == 3
        assert report.night_owl.night_owl_rank[0].name == "Carol"
        assert report.graph.stats.total_members == 4
        assert report.graph.links

    def test_failure_is_replaced_by_empty_result(self, analyzer, snapshot, monkeypatch, caplog):
        def explode(self, members, messages):
            raise RuntimeError("boom")

        monkeypatch.setattr(CoOccurrenceGraphBuilder, "build", explode)
        with caplog.at_level(logging.ERROR, logger="chatlens.engine.analyzer"):
            report = analyzer.run(snapshot, [AnalysisKind.GRAPH, AnalysisKind.REPEAT])

        assert report.failed == [AnalysisKind.GRAPH]
        assert report.graph == GraphResult.empty()
        assert report.repeat.total_repeat_chains == 1
        assert "graph failed" in caplog.text

    def test_memory_error_propagates(self, analyzer, snapshot, monkeypatch):
        def exhaust(self, members, messages):
            raise MemoryError

        monkeypatch.setattr(CoOccurrenceGraphBuilder, "build", exhaust)
        with pytest.raises(MemoryError):
            analyzer.run(snapshot, [AnalysisKind.GRAPH])

    def test_worker_pool_matches_sequential(self, analyzer, snapshot):
        kinds = [AnalysisKind.GRAPH, AnalysisKind.REPEAT, AnalysisKind.CHECK_IN]
        sequential = analyzer.run(snapshot, kinds)
        pooled = analyzer.run(snapshot, kinds, workers=2)

        assert pooled.graph == sequential.graph
        assert pooled.repeat == sequential.repeat
        assert pooled.check_in == sequential.check_in


class TestMemberFilter:
    """Tests for how a single-member restriction reaches each analysis."""

    def test_graph_ignores_member_filter(self, analyzer, snapshot):
        restricted = load_snapshot(_SAMPLE, TimeFilter(member_id=3))
        report = analyzer.run(restricted, [AnalysisKind.GRAPH, AnalysisKind.DIVING])
        full = analyzer.run(snapshot, [AnalysisKind.GRAPH])

        assert report.graph.links
        assert report.graph == full.graph
        assert [r.member_id for r in report.diving.rank] == [3]

    def test_graph_keeps_time_range(self, analyzer):
        restricted = load_snapshot(_SAMPLE, TimeFilter(end_ts=1704103400, member_id=3))
        ranged = load_snapshot(_SAMPLE, TimeFilter(end_ts=1704103400))

        report = analyzer.run(restricted, [AnalysisKind.GRAPH])

        assert report.graph.stats.total_messages == 8
        assert report.graph == analyzer.run(ranged, [AnalysisKind.GRAPH]).graph


class TestMentionAnalysis:
    def test_uses_snapshot_name_history(self, analyzer):
        snapshot = FeedSnapshot(
            members=[
                MemberRecord(id=1, platform_id="p1", display_name="Alice", message_count=2),
                MemberRecord(id=2, platform_id="p2", display_name="Bob", message_count=1),
            ],
            messages=[
                MessageRecord(sender_id=1, timestamp=10, content="@Bobby lunch?", id=1),
                MessageRecord(sender_id=2, timestamp=20, content="sure", id=2),
            ],
            name_history=[NameHistoryRecord(member_id=2, name="Bobby")],
        )
        report = analyzer.run(snapshot, [AnalysisKind.MENTION])

        assert [(link.source, link.target, link.value) for link in report.mention.links] == [
            ("Alice", "Bob", 1),
        ]

    def test_sample_has_no_mentions(self, analyzer, snapshot):
        report = analyzer.run(snapshot, [AnalysisKind.MENTION])
        assert report.mention == MentionGraph.empty()


class TestDeterminism:
    """Repeated runs over the same snapshot give identical output."""

    KINDS = [
        AnalysisKind.GRAPH,
        AnalysisKind.REPEAT,
        AnalysisKind.MEME_BATTLE,
        AnalysisKind.DRAGON_KING,
        AnalysisKind.CHECK_IN,
    ]

    def _serialized(self) -> str:
        analyzer = Analyzer(AnalyzerConfig(tz=timezone.utc, now=_NOW))
        report = analyzer.run(load_snapshot(_SAMPLE), self.KINDS)
        data = JSONOutput().generate(report)
        del data["metadata"]["generatedAt"]
        return json.dumps(data, ensure_ascii=False, sort_keys=True)

    def test_repeated_runs_are_identical(self):
        assert self._serialized() == self._serialized()

    def test_worker_pool_output_is_identical(self):
        analyzer = Analyzer(AnalyzerConfig(tz=timezone.utc, now=_NOW))
        report = analyzer.run(load_snapshot(_SAMPLE), self.KINDS, workers=2)
        data = JSONOutput().generate(report)
        del data["metadata"]["generatedAt"]

        assert json.dumps(data, ensure_ascii=False, sort_keys=True) == self._serialized()


class TestRunFrom:
    """Tests for feed failures at the analytics boundary."""

    def test_feed_failure_yields_empty_results(self, analyzer, caplog):
        def broken_feed():
            raise OSError("database locked")

        with caplog.at_level(logging.ERROR, logger="chatlens.engine.analyzer"):
            report = analyzer.run_from(broken_feed, [AnalysisKind.REPEAT, AnalysisKind.DIVING])

        assert report.repeat == RepeatAnalysis.empty()
        assert report.diving.rank == []
        assert report.failed == [AnalysisKind.REPEAT, AnalysisKind.DIVING]
        assert "Failed to obtain chat snapshot" in caplog.text

    def test_feed_success_runs_analyses(self, analyzer, snapshot):
        report = analyzer.run_from(lambda: snapshot, [AnalysisKind.MEME_BATTLE])
        assert report.meme_battle.total_battles == 1
        assert report.failed == []

    def test_empty_snapshot(self, analyzer):
        report = analyzer.run(FeedSnapshot())
        for kind in AnalysisKind:
            assert report.get(kind) == EMPTY_RESULTS[kind]()


class TestParseKinds:
    def test_parse(self):
        assert parse_kinds("graph, night-owl,meme_battle") == [
            AnalysisKind.GRAPH, AnalysisKind.NIGHT_OWL, AnalysisKind.MEME_BATTLE,
        ]

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid analysis 'bogus'"):
            parse_kinds("graph,bogus")


class TestAnalysisReport:
    def test_requested_skips_missing(self):
        report = AnalysisReport(repeat=RepeatAnalysis.empty())
        assert report.requested() == [AnalysisKind.REPEAT]
        assert report.get(AnalysisKind.GRAPH) is None
