"""Chatlens CLI - Chat Relationship & Behavior Analytics.

Main command-line interface for analyzing chat snapshots.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import __version__
from .engine.analyzer import AnalysisKind, Analyzer, AnalyzerConfig, parse_kinds
from .engine.graph import DEFAULT_GRAPH_OPTIONS
from .feed.loader import FeedError, FeedSnapshot, load_snapshot
from .feed.records import TimeFilter

# Valid analysis names for --analyses help text
_ANALYSIS_NAMES = ", ".join(k.value for k in AnalysisKind)


def build_source_info(input_arg: str, snapshot: FeedSnapshot) -> dict:
    """Summarize the loaded snapshot for report headers.

    Args:
        input_arg: File path string or '-' for stdin
        snapshot: Loaded (and filtered) snapshot

    Returns:
        Dictionary of snapshot details
    """
    info: dict = {
        "source": 'stdin' if input_arg == '-' else input_arg,
        "members": len(snapshot.members),
        "messages": len(snapshot.messages),
    }
    if snapshot.messages:
        info["first_ts"] = snapshot.messages[0].timestamp
        info["last_ts"] = snapshot.messages[-1].timestamp
    return info


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _emit(content: str, output: Path | None) -> None:
    if output:
        output.write_text(content, encoding='utf-8')
        print(f"Report saved to: {output}", file=sys.stderr)
    else:
        print(content)


def main(args: list[str] | None = None) -> int:
    """Main CLI entry point.

    Args:
        args: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        prog='chatlens',
        description='Chat Relationship & Behavior Analytics - social graph, mentions, repeat chains, night owls, streaks and meme battles',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  chatlens snapshot.json
  chatlens -                                       # read from stdin
  chatlens snapshot.json --format markdown --output report.md
  chatlens snapshot.json --analyses graph,repeat --format json
  chatlens snapshot.json --timezone Asia/Shanghai --workers 4
  chatlens snapshot.json --start-ts 1704067200 --member 42
        """
    )

    parser.add_argument(
        'input',
        help='Snapshot JSON file path, or "-" to read from stdin'
    )

    parser.add_argument(
        '-f', '--format',
        choices=['terminal', 'markdown', 'json'],
        default='terminal',
        help='Output format (default: terminal)'
    )

    parser.add_argument(
        '-o', '--output',
        type=Path,
        help='Output file (default: stdout)'
    )

    parser.add_argument(
        '--analyses',
        metavar='NAME[,NAME...]',
        help=f'Analyses to run (comma-separated, default: all). Valid values: {_ANALYSIS_NAMES}'
    )

    filters = parser.add_argument_group('time filter')
    filters.add_argument('--start-ts', type=int, metavar='SECONDS', help='Ignore messages before this Unix time')
    filters.add_argument('--end-ts', type=int, metavar='SECONDS', help='Ignore messages after this Unix time')
    filters.add_argument('--member', type=int, metavar='ID', help='Only analyze messages from this member id (the social graph keeps every sender)')

    graph = parser.add_argument_group('social graph')
    graph.add_argument(
        '--look-ahead', type=int, metavar='N',
        help=f'Distinct partners scanned per message (default: {DEFAULT_GRAPH_OPTIONS.look_ahead})'
    )
    graph.add_argument(
        '--decay-seconds', type=float, metavar='S',
        help=f'Time-decay constant in seconds (default: {DEFAULT_GRAPH_OPTIONS.decay_seconds:g})'
    )
    graph.add_argument(
        '--top-edges', type=int, metavar='N',
        help=f'Edges kept after ranking (default: {DEFAULT_GRAPH_OPTIONS.top_edges})'
    )

    parser.add_argument(
        '--timezone',
        metavar='TZ',
        help='IANA timezone for calendar-day analyses (default: local time)'
    )

    parser.add_argument(
        '--workers',
        type=int,
        metavar='N',
        help='Run analyses on N worker processes'
    )

    parser.add_argument(
        '--top',
        type=int,
        default=10,
        metavar='N',
        help='Rows shown per ranking (default: 10, terminal and markdown only)'
    )

    parser.add_argument(
        '--no-color',
        action='store_true',
        help='Disable colored output (terminal only)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Verbose output'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parsed_args = parser.parse_args(args)
    _configure_logging(parsed_args.verbose)

    input_arg = parsed_args.input

    # Validate file path when not reading from stdin
    if input_arg != '-':
        input_path = Path(input_arg)
        if not input_path.exists():
            print(f"Error: Input file not found: {input_arg}", file=sys.stderr)
            return 1
        if not input_path.is_file():
            print(f"Error: Input is not a file: {input_arg}", file=sys.stderr)
            return 1

    kinds = None
    if parsed_args.analyses:
        try:
            kinds = parse_kinds(parsed_args.analyses)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    tz = None
    if parsed_args.timezone:
        try:
            tz = ZoneInfo(parsed_args.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            print(f"Error: Unknown timezone: {parsed_args.timezone}", file=sys.stderr)
            return 1

    if parsed_args.workers is not None and parsed_args.workers < 1:
        print("Error: --workers must be at least 1", file=sys.stderr)
        return 1

    try:
        time_filter = TimeFilter(
            start_ts=parsed_args.start_ts,
            end_ts=parsed_args.end_ts,
            member_id=parsed_args.member,
        )

        if parsed_args.verbose:
            source = 'stdin' if input_arg == '-' else input_arg
            print(f"Loading snapshot: {source}", file=sys.stderr)

        snapshot = load_snapshot(input_arg, time_filter)

        if parsed_args.verbose:
            print(
                f"Loaded {len(snapshot.members)} members, {len(snapshot.messages)} messages",
                file=sys.stderr
            )

        config = AnalyzerConfig(
            graph_options=DEFAULT_GRAPH_OPTIONS.merged(
                look_ahead=parsed_args.look_ahead,
                decay_seconds=parsed_args.decay_seconds,
                top_edges=parsed_args.top_edges,
            ),
            tz=tz,
        )
        report = Analyzer(config).run(snapshot, kinds, workers=parsed_args.workers)

        if parsed_args.verbose and report.failed:
            print(
                f"{len(report.failed)} analyses failed: "
                + ", ".join(k.value for k in report.failed),
                file=sys.stderr
            )

        source_info = build_source_info(input_arg, snapshot)

        # Generate output
        if parsed_args.format == 'terminal':
            from rich.console import Console

            from .output.terminal import TerminalOutput

            def render(console: Console | None) -> None:
                output = TerminalOutput(console=console, no_color=parsed_args.no_color, tz=tz)
                output.print_header(source_info, report)
                output.print_report(report, top_n=parsed_args.top)
                output.print_summary(report)

            if parsed_args.output:
                with parsed_args.output.open('w', encoding='utf-8') as fh:
                    render(Console(file=fh, no_color=True, width=120))
                print(f"Report saved to: {parsed_args.output}", file=sys.stderr)
            else:
                render(None)

        elif parsed_args.format == 'markdown':
            from .output.markdown import MarkdownOutput

            md_output = MarkdownOutput(top_n=parsed_args.top, tz=tz)
            _emit(md_output.generate(report, source_info=source_info), parsed_args.output)

        elif parsed_args.format == 'json':
            from .output.json_out import JSONOutput

            json_output = JSONOutput()
            _emit(json_output.to_json(report, source_info=source_info), parsed_args.output)

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except FeedError as e:
        print(f"Error: Invalid snapshot: {e}", file=sys.stderr)
        return 1
    except (MemoryError, RecursionError):
        raise
    except Exception as e:
        print(f"Error ({type(e).__name__}): {e}", file=sys.stderr)
        if parsed_args.verbose:
            import traceback
            traceback.print_exc()
        else:
            print("Use --verbose for full traceback", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
