"""Integration tests for the CLI main() function."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from chatlens import __version__
from chatlens.cli import build_source_info, main
from chatlens.feed.loader import load_snapshot


# Resolve sample data paths relative to this file so tests work regardless of cwd
_TESTS_DIR = Path(__file__).parent
_SAMPLE_DIR = _TESTS_DIR / "sample_data"
_SAMPLE = str(_SAMPLE_DIR / "sample_chat.json")


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def _run_main(args: list[str], capsys) -> tuple[int, str, str]:
    """Run main() and return (exit_code, stdout, stderr)."""
    code = main(args)
    captured = capsys.readouterr()
    return code, captured.out, captured.err


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------

class TestMainFormats:

    def test_terminal_output(self, capsys) -> None:
        """Default terminal output exits 0 and renders sections."""
        code, out, err = _run_main([_SAMPLE, "--no-color"], capsys)
        assert code == 0
        assert "SOCIAL GRAPH" in out

    def test_json_output(self, capsys) -> None:
        """--format json prints a parseable report."""
        code, out, err = _run_main([_SAMPLE, "--format", "json"], capsys)
        assert code == 0
        data = json.loads(out)
        assert data["source"]["members"] == 4
        assert data["source"]["messages"] == 14
        assert data["repeat"]["totalRepeatChains"] == 1

    def test_markdown_output(self, capsys) -> None:
        code, out, err = _run_main([_SAMPLE, "-f", "markdown"], capsys)
        assert code == 0
        assert out.startswith("# Chat Relationship & Behavior Report")

    def test_output_file(self, tmp_path, capsys) -> None:
        """-o writes the report and notes it on stderr."""
        target = tmp_path / "report.json"
        code, out, err = _run_main([_SAMPLE, "-f", "json", "-o", str(target)], capsys)
        assert code == 0
        assert out == ""
        assert "Report saved to" in err
        assert json.loads(target.read_text(encoding="utf-8"))["metadata"]["tool"] == "Chatlens"

    def test_terminal_output_file(self, tmp_path, capsys) -> None:
        target = tmp_path / "report.txt"
        code, out, err = _run_main([_SAMPLE, "-o", str(target)], capsys)
        assert code == 0
        assert "CHATLENS" in target.read_text(encoding="utf-8")

    def test_stdin_input(self, monkeypatch, capsys) -> None:
        """'-' reads the snapshot from stdin."""
        content = Path(_SAMPLE).read_text(encoding="utf-8")
        monkeypatch.setattr("sys.stdin", io.StringIO(content))
        code, out, err = _run_main(["-", "-f", "json", "--analyses", "diving"], capsys)
        assert code == 0
        assert json.loads(out)["source"]["source"] == "stdin"


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

class TestMainOptions:

    def test_analyses_selection(self, capsys) -> None:
        code, out, err = _run_main([_SAMPLE, "-f", "json", "--analyses", "graph,meme-battle"], capsys)
        assert code == 0
        data = json.loads(out)
        assert data["metadata"]["analyses"] == ["graph", "meme_battle"]
        assert "repeat" not in data

    def test_time_filter(self, capsys) -> None:
        code, out, err = _run_main(
            [_SAMPLE, "-f", "json", "--end-ts", "1704103400", "--analyses", "repeat"], capsys
        )
        assert code == 0
        assert json.loads(out)["source"]["messages"] == 8

    def test_member_filter(self, capsys) -> None:
        """--member narrows the analyses but the social graph keeps every sender."""
        code, out, err = _run_main([_SAMPLE, "-f", "json", "--member", "3", "--analyses", "graph"], capsys)
        assert code == 0
        restricted = json.loads(out)
        assert restricted["source"]["messages"] == 4

        code, out, err = _run_main([_SAMPLE, "-f", "json", "--analyses", "graph"], capsys)
        full = json.loads(out)
        assert restricted["graph"]["stats"]["edgeCount"] > 0
        assert restricted["graph"] == full["graph"]

    def test_mentions(self, tmp_path, capsys) -> None:
        snapshot = tmp_path / "mentions.json"
        snapshot.write_text(json.dumps({
            "members": [
                {"id": 1, "displayName": "Alice", "messageCount": 2},
                {"id": 2, "displayName": "Bob", "messageCount": 1},
            ],
            "messages": [
                {"id": 1, "senderId": 1, "ts": 100, "content": "@Bobby ping"},
                {"id": 2, "senderId": 2, "ts": 110, "content": "pong @Alice"},
                {"id": 3, "senderId": 1, "ts": 120, "content": "@Bob @Bob"},
            ],
            "nameHistory": [{"memberId": 2, "name": "Bobby"}],
        }), encoding="utf-8")

        code, out, err = _run_main([str(snapshot), "-f", "json", "--analyses", "mention"], capsys)
        assert code == 0
        mention = json.loads(out)["mention"]
        assert [(link["source"], link["target"], link["value"]) for link in mention["links"]] == [
            ("Alice", "Bob", 2), ("Bob", "Alice", 1),
        ]
        assert mention["maxLinkValue"] == 2

    def test_graph_options(self, capsys) -> None:
        code, out, err = _run_main(
            [_SAMPLE, "-f", "json", "--analyses", "graph", "--top-edges", "1", "--look-ahead", "2"], capsys
        )
        assert code == 0
        assert len(json.loads(out)["graph"]["links"]) == 1

    def test_workers(self, capsys) -> None:
        code, out, err = _run_main(
            [_SAMPLE, "-f", "json", "--analyses", "graph,repeat", "--workers", "2"], capsys
        )
        assert code == 0
        assert json.loads(out)["metadata"]["failed"] == []

    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestMainErrors:

    def test_missing_file(self, capsys) -> None:
        code, out, err = _run_main(["does_not_exist.json"], capsys)
        assert code == 1
        assert "Input file not found" in err

    def test_directory_input(self, tmp_path, capsys) -> None:
        code, out, err = _run_main([str(tmp_path)], capsys)
        assert code == 1
        assert "not a file" in err

    def test_invalid_snapshot(self, tmp_path, capsys) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text('{"members": [], "messages": [{"ts": 1}]}', encoding="utf-8")
        code, out, err = _run_main([str(bad)], capsys)
        assert code == 1
        assert "Invalid snapshot" in err

    def test_invalid_analysis(self, capsys) -> None:
        code, out, err = _run_main([_SAMPLE, "--analyses", "graph,nope"], capsys)
        assert code == 1
        assert "Invalid analysis 'nope'" in err

    def test_unknown_timezone(self, capsys) -> None:
        code, out, err = _run_main([_SAMPLE, "--timezone", "Mars/Olympus_Mons"], capsys)
        assert code == 1
        assert "Unknown timezone" in err

    def test_invalid_workers(self, capsys) -> None:
        code, out, err = _run_main([_SAMPLE, "--workers", "0"], capsys)
        assert code == 1

    def test_render_failure_closes_output_file(self, tmp_path, monkeypatch, capsys) -> None:
        """A terminal report that fails mid-render still closes its file."""
        opened = []

        def fail(self, report, top_n=10):
            opened.append(self.console.file)
            raise RuntimeError("render failed")

        monkeypatch.setattr("chatlens.output.terminal.TerminalOutput.print_report", fail)
        code, out, err = _run_main([_SAMPLE, "-o", str(tmp_path / "report.txt")], capsys)

        assert code == 1
        assert "render failed" in err
        assert opened and opened[0].closed

    def test_keyboard_interrupt(self, monkeypatch, capsys) -> None:
        def interrupt(*args, **kwargs):
            raise KeyboardInterrupt

        monkeypatch.setattr("chatlens.cli.load_snapshot", interrupt)
        code, out, err = _run_main([_SAMPLE], capsys)
        assert code == 130
        assert "Interrupted" in err


class TestSourceInfo:
    def test_build_source_info(self) -> None:
        snapshot = load_snapshot(_SAMPLE)
        info = build_source_info(_SAMPLE, snapshot)
        assert info["members"] == 4
        assert info["first_ts"] == 1704103200
        assert info["last_ts"] == 1704272460
