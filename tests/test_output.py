"""Tests for output modules (terminal, markdown, json)."""

import io
import json
from datetime import timedelta, timezone
from pathlib import Path

import pytest
from rich.console import Console

from chatlens.engine.analyzer import AnalysisKind, AnalysisReport, Analyzer, AnalyzerConfig
from chatlens.engine.graph import GraphResult
from chatlens.engine.mention import MentionGraph, MentionLink
from chatlens.feed.loader import load_snapshot
from chatlens.output.json_out import JSONOutput, export_json, to_plain
from chatlens.output.markdown import MarkdownOutput, _escape_md
from chatlens.output.terminal import TerminalOutput


_SAMPLE = Path(__file__).parent / "sample_data" / "sample_chat.json"
_SOURCE_INFO = {"source": "sample_chat.json", "members": 4, "messages": 14}


def _make_report(kinds=None) -> AnalysisReport:
    """Run the analyzer on the bundled sample snapshot."""
    analyzer = Analyzer(AnalyzerConfig(tz=timezone.utc, now=1704358860))
    return analyzer.run(load_snapshot(_SAMPLE), kinds)


def _recording_console() -> Console:
    return Console(file=io.StringIO(), width=140)


class TestTerminalOutput:
    """Tests for Rich terminal output."""

    def test_create_default(self):
        """Test default initialization."""
        output = TerminalOutput()
        assert output.console is not None

    def test_create_no_color(self):
        """Test no-color initialization."""
        output = TerminalOutput(no_color=True)
        assert output.console.no_color

    def test_create_custom_console(self):
        """Test custom console initialization."""
        console = Console(file=None, force_terminal=True)
        output = TerminalOutput(console=console)
        assert output.console is console

    def test_print_header(self):
        """Header shows the banner and snapshot details."""
        console = _recording_console()
        output = TerminalOutput(console=console)
        output.print_header(_SOURCE_INFO, _make_report([AnalysisKind.GRAPH]))

        text = console.file.getvalue()
        assert "CHATLENS" in text
        assert "sample_chat.json" in text
        assert "graph" in text

    def test_print_header_no_info(self):
        """Test header prints without source info."""
        output = TerminalOutput(console=_recording_console())
        output.print_header()

    def test_print_full_report(self):
        """Every analysis section renders."""
        console = _recording_console()
        output = TerminalOutput(console=console)
        output.print_report(_make_report())

        text = console.file.getvalue()
        for title in ("SOCIAL GRAPH", "MENTIONS", "REPEAT CHAINS", "CATCHPHRASES", "DRAGON KING",
                      "NIGHT OWLS", "CHECK-IN STREAKS", "DIVING", "MEME BATTLES"):
            assert title in text
        assert "Alice" in text
        assert "早安" in text

    def test_print_empty_results(self):
        """Empty results render without crashing."""
        console = _recording_console()
        output = TerminalOutput(console=console)
        def broken_feed():
            raise OSError("gone")

        report = Analyzer().run_from(broken_feed)
        output.print_report(report)

        assert "Not enough interaction" in console.file.getvalue()

    def test_print_summary_mentions_failures(self):
        console = _recording_console()
        output = TerminalOutput(console=console)
        output.print_summary(AnalysisReport(graph=GraphResult.empty(), failed=[AnalysisKind.GRAPH]))

        assert "1 failed" in console.file.getvalue()

    def test_timestamps_use_analysis_timezone(self):
        """Battle start times print in the zone the analysis bucketed days in."""
        console = _recording_console()
        output = TerminalOutput(console=console, tz=timezone(timedelta(hours=-11)))
        output.print_meme_battle(_make_report([AnalysisKind.MEME_BATTLE]).meme_battle)

        text = console.file.getvalue()
        assert "2023-12-31 23:01" in text
        assert "2024-01-01 10:01" not in text

    def test_print_mentions(self):
        console = _recording_console()
        output = TerminalOutput(console=console)
        output.print_mentions(MentionGraph(
            links=[MentionLink(source_id=1, target_id=2, source="Alice", target="Bob", value=3)],
            max_link_value=3,
        ))

        text = console.file.getvalue()
        assert "Who Mentions Whom" in text
        assert "Alice" in text
        assert "Bob" in text


class TestMarkdownOutput:
    """Tests for markdown report generation."""

    def test_generate_sections(self):
        content = MarkdownOutput().generate(_make_report(), source_info=_SOURCE_INFO)

        assert content.startswith("# Chat Relationship & Behavior Report")
        assert "## Table of Contents" in content
        assert "## Social Graph" in content
        assert "## Mentions" in content
        assert "_No @mentions between members._" in content
        assert "## Meme Battles" in content
        assert "| # | Member | Chains | Share % |" in content

    def test_only_requested_sections(self):
        content = MarkdownOutput().generate(_make_report([AnalysisKind.DIVING]))

        assert "## Diving" in content
        assert "## Social Graph" not in content

    def test_without_toc(self):
        content = MarkdownOutput().generate(_make_report([AnalysisKind.REPEAT]), include_toc=False)
        assert "Table of Contents" not in content

    def test_top_n_limits_rows(self):
        content = MarkdownOutput(top_n=1).generate(_make_report([AnalysisKind.CHECK_IN]))
        loyalty = content.split("### Loyalty")[1]
        rows = [line for line in loyalty.splitlines() if line.startswith("| 1 ") or line.startswith("| 2 ")]
        assert len(rows) == 1

    def test_failed_analyses_noted(self):
        report = AnalysisReport(graph=GraphResult.empty(), failed=[AnalysisKind.GRAPH])
        content = MarkdownOutput().generate(report)
        assert "failed" in content
        assert "_Not enough interaction to build a graph._" in content

    def test_escape(self):
        assert _escape_md("a|b*c") == r"a\|b\*c"
        assert _escape_md("line\nbreak") == "line break"

    def test_save(self, tmp_path):
        target = tmp_path / "report.md"
        MarkdownOutput().save(_make_report([AnalysisKind.DRAGON_KING]), target)
        assert "## Dragon King" in target.read_text(encoding="utf-8")

    def test_timestamps_use_analysis_timezone(self):
        report = _make_report([AnalysisKind.MEME_BATTLE])

        assert "2024-01-01 10:01 UTC" in MarkdownOutput(tz=timezone.utc).generate(report)
        shifted = MarkdownOutput(tz=timezone(timedelta(hours=-11))).generate(report)
        assert "2023-12-31 23:01 UTC-11:00" in shifted

    def test_mention_table(self):
        report = AnalysisReport(mention=MentionGraph(
            links=[MentionLink(source_id=1, target_id=2, source="Alice", target="Bob", value=3)],
            max_link_value=3,
        ))
        content = MarkdownOutput().generate(report)

        assert "### Who Mentions Whom" in content
        assert "| 1 | Alice | Bob | 3 |" in content


class TestJSONOutput:
    """Tests for JSON output."""

    def test_metadata(self):
        data = JSONOutput().generate(_make_report(), source_info=_SOURCE_INFO)

        assert data["metadata"]["tool"] == "Chatlens"
        assert data["metadata"]["analyses"] == [k.value for k in AnalysisKind]
        assert data["metadata"]["failed"] == []
        assert data["source"] == _SOURCE_INFO

    def test_camel_case_keys(self):
        data = JSONOutput().generate(_make_report([AnalysisKind.GRAPH, AnalysisKind.MEME_BATTLE]))

        graph = data["graph"]
        assert set(graph) == {"nodes", "links", "maxLinkValue", "stats"}
        assert "hybridScore" in graph["links"][0]
        assert "coOccurrenceCount" in graph["links"][0]
        assert data["memeBattle"]["totalBattles"] == 1

    def test_night_owl_title_label(self):
        data = JSONOutput().generate(_make_report([AnalysisKind.NIGHT_OWL]))
        assert data["nightOwl"]["nightOwlRank"][0]["title"] == "Occasional Insomniac"

    def test_to_json_keeps_unicode(self):
        content = JSONOutput().to_json(_make_report([AnalysisKind.REPEAT]))
        parsed = json.loads(content)
        assert parsed["repeat"]["hotContents"][0]["content"] == "早安"
        assert "早安" in content

    def test_export_json(self, tmp_path):
        report = _make_report([AnalysisKind.DIVING])
        assert json.loads(export_json(report))["diving"]["rank"]

        target = tmp_path / "report.json"
        assert export_json(report, target) is None
        assert json.loads(target.read_text(encoding="utf-8"))["metadata"]["analyses"] == ["diving"]

    @pytest.mark.parametrize("value,expected", [
        ([1, (2, 3)], [1, [2, 3]]),
        ({1: "a"}, {"1": "a"}),
        ("text", "text"),
    ])
    def test_to_plain(self, value, expected):
        assert to_plain(value) == expected
