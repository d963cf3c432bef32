"""Rich terminal output for analysis reports.

Provides formatted, color-coded terminal output using the Rich library.
Theme: Catppuccin Mocha (https://catppuccin.com/palette/)

Each analysis gets its own bordered panel holding compact ranking tables.
"""

from __future__ import annotations

from datetime import tzinfo

from rich.align import Align
from rich.box import ROUNDED
from rich.columns import Columns
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from .. import __version__
from ..engine.analyzer import AnalysisKind, AnalysisReport
from ..engine.battle import MemeBattleAnalysis
from ..engine.graph import GraphResult
from ..engine.mention import MentionGraph
from ..engine.ranking import RankItem
from ..engine.repeat import CatchphraseAnalysis, RepeatAnalysis
from ..engine.temporal import (
    CheckInAnalysis,
    DivingAnalysis,
    DragonKingAnalysis,
    NightOwlAnalysis,
    NightOwlTitle,
    local_time,
)

# Catppuccin Mocha palette
MOCHA = {
    "rosewater": "#f5e0dc",
    "flamingo": "#f2cdcd",
    "pink": "#f5c2e7",
    "mauve": "#cba6f7",
    "red": "#f38ba8",
    "maroon": "#eba0ac",
    "peach": "#fab387",
    "yellow": "#f9e2af",
    "green": "#a6e3a1",
    "teal": "#94e2d5",
    "sky": "#89dceb",
    "sapphire": "#74c7ec",
    "blue": "#89b4fa",
    "lavender": "#b4befe",
    "text": "#cdd6f4",
    "subtext1": "#bac2de",
    "subtext0": "#a6adc8",
    "overlay2": "#9399b2",
    "overlay1": "#7f849c",
    "overlay0": "#6c7086",
    "surface2": "#585b70",
    "surface1": "#45475a",
    "surface0": "#313244",
    "base": "#1e1e2e",
    "mantle": "#181825",
    "crust": "#11111b",
}

MOCHA_THEME = Theme({
    "info": MOCHA["sapphire"],
    "warning": MOCHA["peach"],
    "danger": MOCHA["red"],
    "success": MOCHA["green"],
})

# Border color per analysis panel
SECTION_COLORS = {
    AnalysisKind.GRAPH: MOCHA["blue"],
    AnalysisKind.MENTION: MOCHA["teal"],
    AnalysisKind.REPEAT: MOCHA["mauve"],
    AnalysisKind.CATCHPHRASE: MOCHA["pink"],
    AnalysisKind.DRAGON_KING: MOCHA["yellow"],
    AnalysisKind.NIGHT_OWL: MOCHA["lavender"],
    AnalysisKind.CHECK_IN: MOCHA["green"],
    AnalysisKind.DIVING: MOCHA["sapphire"],
    AnalysisKind.MEME_BATTLE: MOCHA["peach"],
}

SECTION_TITLES = {
    AnalysisKind.GRAPH: "SOCIAL GRAPH",
    AnalysisKind.MENTION: "MENTIONS",
    AnalysisKind.REPEAT: "REPEAT CHAINS",
    AnalysisKind.CATCHPHRASE: "CATCHPHRASES",
    AnalysisKind.DRAGON_KING: "DRAGON KING",
    AnalysisKind.NIGHT_OWL: "NIGHT OWLS",
    AnalysisKind.CHECK_IN: "CHECK-IN STREAKS",
    AnalysisKind.DIVING: "DIVING",
    AnalysisKind.MEME_BATTLE: "MEME BATTLES",
}

TITLE_COLORS = {
    NightOwlTitle.WELL_RESTED: MOCHA["green"],
    NightOwlTitle.OCCASIONAL_INSOMNIAC: MOCHA["teal"],
    NightOwlTitle.FREQUENT_INSOMNIAC: MOCHA["sky"],
    NightOwlTitle.NIGHT_OWL: MOCHA["yellow"],
    NightOwlTitle.BALDING_RESERVE: MOCHA["peach"],
    NightOwlTitle.NIGHT_CULTIVATOR: MOCHA["maroon"],
    NightOwlTitle.NIGHT_WATCH_CHAMPION: MOCHA["red"],
}


# ── Badge / display helpers ──────────────────────────────────────────────


def _strength_badge(hybrid: float) -> Text:
    """Render a hybrid score (0-1) as a compact colored pill."""
    if hybrid >= 0.8:
        color = MOCHA["green"]
    elif hybrid >= 0.6:
        color = MOCHA["yellow"]
    elif hybrid >= 0.4:
        color = MOCHA["peach"]
    else:
        color = MOCHA["red"]

    badge = Text()
    badge.append(f" {hybrid:.2f} ", style=f"bold {MOCHA['crust']} on {color}")
    return badge


def _share_bar(percentage: float, width: int = 16) -> Text:
    """Build a bar for a 0-100 share, e.g. ``██████░░░░ 37.5%``."""
    filled = int(round(min(percentage, 100.0) / 100 * width))
    bar = Text()
    bar.append("█" * filled, style=MOCHA["sapphire"])
    bar.append("░" * (width - filled), style=MOCHA["surface2"])
    bar.append(f" {percentage:.1f}%", style=f"bold {MOCHA['text']}")
    return bar


def _title_badge(title: NightOwlTitle) -> Text:
    color = TITLE_COLORS.get(title, MOCHA["subtext1"])
    badge = Text()
    badge.append(f" {title.label} ", style=f"bold {color}")
    return badge


def _format_ts(ts: int, tz: tzinfo | None = None) -> str:
    return local_time(ts, tz).strftime("%Y-%m-%d %H:%M %Z")


def _table(title: str, *columns: str) -> Table:
    """Create a ranking table in the house style; first column is the rank."""
    table = Table(
        title=f"[bold {MOCHA['sapphire']}]{title}[/bold {MOCHA['sapphire']}]",
        title_justify="left",
        box=ROUNDED,
        border_style=MOCHA["surface2"],
        header_style=f"bold {MOCHA['subtext1']}",
        padding=(0, 1),
    )
    table.add_column("#", style=MOCHA["overlay1"], justify="right")
    for column in columns:
        table.add_column(column)
    return table


def _rank_table(title: str, items: list[RankItem], top_n: int, count_label: str) -> Table:
    table = _table(title, "Member", count_label, "Share")
    for i, item in enumerate(items[:top_n], 1):
        table.add_row(
            str(i),
            Text(item.name, style=f"bold {MOCHA['text']}"),
            str(item.count),
            _share_bar(item.percentage),
        )
    return table


def _muted(message: str) -> Text:
    return Text(message, style=MOCHA["overlay1"])


# ── Main output class ────────────────────────────────────────────────────


class TerminalOutput:
    """Rich terminal output formatter.

    One bordered panel per analysis, with a banner header and a
    summary footer.
    """

    def __init__(
        self,
        console: Console | None = None,
        no_color: bool = False,
        tz: tzinfo | None = None,
    ):
        """Initialize terminal output.

        Args:
            console: Optional Rich console instance
            no_color: If True, disable colored output
            tz: Zone the analyses used for calendar days (None = local time)
        """
        self.tz = tz
        if console:
            self.console = console
        elif no_color:
            self.console = Console(no_color=True, highlight=False)
        else:
            self.console = Console(theme=MOCHA_THEME)

    # ── Public API ────────────────────────────────────────────────────

    def print_header(
        self,
        source_info: dict | None = None,
        report: AnalysisReport | None = None,
    ) -> None:
        """Print the branded banner and snapshot information panel.

        Args:
            source_info: Optional dictionary with snapshot details
            report: Optional report for the analyses summary line
        """
        self.console.print()
        self.console.print(
            Panel(
                Align.center(
                    Text(
                        "CHATLENS - Chat Relationship & Behavior Analysis",
                        style=f"bold {MOCHA['mauve']}",
                    )
                ),
                box=ROUNDED,
                border_style=MOCHA["mauve"],
                padding=(0, 1),
            )
        )
        self.console.print()

        if source_info:
            info_table = Table(
                show_header=False,
                box=None,
                padding=(0, 2),
                show_edge=False,
            )
            info_table.add_column("Key", style=MOCHA["subtext0"], min_width=12)
            info_table.add_column("Value", style=f"bold {MOCHA['text']}")
            for key, value in source_info.items():
                info_table.add_row(f"{key.replace('_', ' ').title()}:", str(value))

            self.console.print(
                Panel(
                    info_table,
                    title=f"[{MOCHA['overlay0']}]SNAPSHOT[/{MOCHA['overlay0']}]",
                    title_align="left",
                    box=ROUNDED,
                    border_style=MOCHA["surface1"],
                    padding=(0, 1),
                )
            )
            self.console.print()

        if report:
            status = Text()
            status.append("Analyses: ", style=MOCHA["subtext0"])
            status.append(
                ", ".join(kind.value for kind in report.requested()),
                style=f"bold {MOCHA['lavender']}",
            )
            if report.failed:
                status.append(" | ", style=MOCHA["surface2"])
                status.append(
                    f"{len(report.failed)} failed: "
                    + ", ".join(kind.value for kind in report.failed),
                    style=f"bold {MOCHA['red']}",
                )
            self.console.print(status)
            self.console.print()

    def print_report(self, report: AnalysisReport, top_n: int = 10) -> None:
        """Print every analysis present in the report.

        Args:
            report: Analysis report
            top_n: Rows shown per ranking table
        """
        printers = {
            AnalysisKind.GRAPH: self.print_graph,
            AnalysisKind.MENTION: self.print_mentions,
            AnalysisKind.REPEAT: self.print_repeat,
            AnalysisKind.CATCHPHRASE: self.print_catchphrases,
            AnalysisKind.DRAGON_KING: self.print_dragon_king,
            AnalysisKind.NIGHT_OWL: self.print_night_owl,
            AnalysisKind.CHECK_IN: self.print_check_in,
            AnalysisKind.DIVING: self.print_diving,
            AnalysisKind.MEME_BATTLE: self.print_meme_battle,
        }
        for kind in report.requested():
            printers[kind](report.get(kind), top_n=top_n)

    def print_graph(self, graph: GraphResult, top_n: int = 10) -> None:
        """Print strongest links and most central members."""
        stats = graph.stats
        parts: list[RenderableType] = [
            _muted(
                f"{stats.involved_members}/{stats.total_members} members, "
                f"{stats.edge_count} edges, {stats.total_messages} messages"
            )
        ]
        if not graph.links:
            parts.append(Text("Not enough interaction to build a graph", style=MOCHA["yellow"]))
            self._print_section(AnalysisKind.GRAPH, parts)
            return

        links = _table("Strongest Links", "Pair", "Strength", "Raw", "Norm", "Hits")
        for i, edge in enumerate(graph.links[:top_n], 1):
            pair = Text()
            pair.append(edge.source, style=f"bold {MOCHA['text']}")
            pair.append(" ↔ ", style=MOCHA["overlay1"])
            pair.append(edge.target, style=f"bold {MOCHA['text']}")
            links.add_row(
                str(i), pair, _strength_badge(edge.hybrid_score),
                f"{edge.raw_score:.2f}", f"{edge.normalized_score:.2f}",
                str(edge.co_occurrence_count),
            )

        nodes = _table("Central Members", "Member", "Degree", "Msgs")
        for i, node in enumerate(graph.nodes[:top_n], 1):
            nodes.add_row(str(i), node.name, f"{node.degree:.2f}", str(node.message_count))

        parts.append(links)
        parts.append(nodes)
        self._print_section(AnalysisKind.GRAPH, parts)

    def print_mentions(self, graph: MentionGraph, top_n: int = 10) -> None:
        """Print who @-mentions whom most often."""
        if not graph.links:
            self._print_section(AnalysisKind.MENTION, [_muted("No @mentions between members")])
            return

        table = _table("Who Mentions Whom", "From", "To", "Mentions")
        for i, link in enumerate(graph.links[:top_n], 1):
            pair_from = Text(link.source, style=f"bold {MOCHA['text']}")
            table.add_row(str(i), pair_from, link.target, str(link.value))
        self._print_section(AnalysisKind.MENTION, [table])

    def print_repeat(self, analysis: RepeatAnalysis, top_n: int = 10) -> None:
        """Print repeat-chain roles, fastest repeaters and hot content."""
        parts: list[RenderableType] = [
            _muted(
                f"{analysis.total_repeat_chains} chains, "
                f"average length {analysis.avg_chain_length}"
            )
        ]
        if not analysis.total_repeat_chains:
            self._print_section(AnalysisKind.REPEAT, parts)
            return

        parts.append(Columns(
            [
                _rank_table("Originators", analysis.originators, top_n, "Chains"),
                _rank_table("Initiators", analysis.initiators, top_n, "Chains"),
                _rank_table("Breakers", analysis.breakers, top_n, "Chains"),
            ],
            padding=(0, 2),
        ))

        if analysis.fastest_repeaters:
            fast = _table("Fastest Repeaters", "Member", "Responses", "Avg")
            for i, item in enumerate(analysis.fastest_repeaters[:top_n], 1):
                fast.add_row(str(i), item.name, str(item.count), f"{item.avg_time_diff / 1000:.1f}s")
            parts.append(fast)

        hot = _table("Hot Content", "Content", "Chains", "Longest", "Started by")
        for i, item in enumerate(analysis.hot_contents[:top_n], 1):
            hot.add_row(
                str(i),
                Text(item.content[:40], style=MOCHA["green"]),
                str(item.count),
                str(item.max_chain_length),
                item.originator_name,
            )
        parts.append(hot)
        self._print_section(AnalysisKind.REPEAT, parts)

    def print_catchphrases(self, analysis: CatchphraseAnalysis, top_n: int = 10) -> None:
        """Print each member's most repeated phrases."""
        if not analysis.members:
            self._print_section(AnalysisKind.CATCHPHRASE, [_muted("No catchphrases found")])
            return

        table = _table("Top Phrases", "Member", "Phrases")
        for i, member in enumerate(analysis.members[:top_n], 1):
            phrases = Text()
            for j, phrase in enumerate(member.catchphrases[:3]):
                if j:
                    phrases.append("  ")
                phrases.append(phrase.content[:24], style=MOCHA["green"])
                phrases.append(f" x{phrase.count}", style=MOCHA["overlay1"])
            table.add_row(str(i), member.name, phrases)
        self._print_section(AnalysisKind.CATCHPHRASE, [table])

    def print_dragon_king(self, analysis: DragonKingAnalysis, top_n: int = 10) -> None:
        """Print members ranked by days as top talker."""
        parts: list[RenderableType] = [_muted(f"{analysis.total_days} active days")]
        if analysis.rank:
            parts.append(_rank_table("Dragon Days", analysis.rank, top_n, "Days"))
        self._print_section(AnalysisKind.DRAGON_KING, parts)

    def print_night_owl(self, analysis: NightOwlAnalysis, top_n: int = 10) -> None:
        """Print night activity, last/first speakers and champions."""
        parts: list[RenderableType] = [_muted(f"{analysis.total_days} days")]
        if not analysis.night_owl_rank:
            parts.append(_muted("No night activity"))
            self._print_section(AnalysisKind.NIGHT_OWL, parts)
            return

        owls = _table("Night Activity", "Member", "Msgs", "Title", "Share")
        for i, item in enumerate(analysis.night_owl_rank[:top_n], 1):
            owls.add_row(
                str(i), item.name, str(item.total_night_messages),
                _title_badge(item.title), _share_bar(item.percentage),
            )
        parts.append(owls)

        speakers = []
        for title, items, extreme in (
            ("Last Speaker", analysis.last_speaker_rank, "Latest"),
            ("First Speaker", analysis.first_speaker_rank, "Earliest"),
        ):
            table = _table(title, "Member", "Days", "Avg", extreme)
            for i, item in enumerate(items[:top_n], 1):
                table.add_row(str(i), item.name, str(item.count), item.avg_time, item.extreme_time)
            speakers.append(table)
        parts.append(Columns(speakers, padding=(0, 2)))

        if analysis.champions:
            champions = _table("Champions", "Member", "Score", "Night", "Last", "Streak")
            for i, champ in enumerate(analysis.champions[:top_n], 1):
                champions.add_row(
                    str(i),
                    Text(champ.name, style=f"bold {MOCHA['yellow']}" if i == 1 else MOCHA["text"]),
                    str(champ.score), str(champ.night_messages),
                    str(champ.last_speaker_count), str(champ.consecutive_days),
                )
            parts.append(champions)

        self._print_section(AnalysisKind.NIGHT_OWL, parts)

    def print_check_in(self, analysis: CheckInAnalysis, top_n: int = 10) -> None:
        """Print longest streaks and loyalty ranking."""
        parts: list[RenderableType] = [_muted(f"{analysis.total_days} active days")]

        streaks = _table("Longest Streaks", "Member", "Days", "From", "To", "Current")
        for i, record in enumerate(analysis.streak_rank[:top_n], 1):
            current = Text(str(record.current_streak))
            if record.current_streak:
                current.stylize(f"bold {MOCHA['green']}")
            streaks.add_row(
                str(i), record.name, str(record.max_streak),
                record.max_streak_start, record.max_streak_end, current,
            )

        loyalty = _table("Loyalty", "Member", "Days", "Relative")
        for i, item in enumerate(analysis.loyalty_rank[:top_n], 1):
            loyalty.add_row(str(i), item.name, str(item.total_days), _share_bar(item.percentage))

        parts.append(Columns([streaks, loyalty], padding=(0, 2)))
        self._print_section(AnalysisKind.CHECK_IN, parts)

    def print_diving(self, analysis: DivingAnalysis, top_n: int = 10) -> None:
        """Print members who have been silent the longest."""
        table = _table("Longest Silence", "Member", "Last Message", "Days")
        for i, item in enumerate(analysis.ordered()[:top_n], 1):
            days = item.days_since_last_message
            color = MOCHA["red"] if days >= 30 else MOCHA["yellow"] if days >= 7 else MOCHA["green"]
            table.add_row(
                str(i), item.name, _format_ts(item.last_message_ts, self.tz),
                Text(str(days), style=f"bold {color}"),
            )
        self._print_section(AnalysisKind.DIVING, [table])

    def print_meme_battle(self, analysis: MemeBattleAnalysis, top_n: int = 10) -> None:
        """Print the biggest battles and battle rankings."""
        parts: list[RenderableType] = [_muted(f"{analysis.total_battles} battles")]
        if not analysis.total_battles:
            self._print_section(AnalysisKind.MEME_BATTLE, parts)
            return

        battles = _table("Epic Battles", "Started", "Images", "Members", "Top Sender")
        for i, battle in enumerate(analysis.top_battles[:top_n], 1):
            leader = battle.participants[0] if battle.participants else None
            battles.add_row(
                str(i), _format_ts(battle.start_ts, self.tz), str(battle.total_images),
                str(battle.participant_count),
                f"{leader.name} ({leader.image_count})" if leader else "-",
            )
        parts.append(battles)
        parts.append(Columns(
            [
                _rank_table("Most Battles", analysis.rank_by_count, top_n, "Battles"),
                _rank_table("Most Images", analysis.rank_by_image_count, top_n, "Images"),
            ],
            padding=(0, 2),
        ))
        self._print_section(AnalysisKind.MEME_BATTLE, parts)

    def print_summary(self, report: AnalysisReport) -> None:
        """Print the footer line.

        Args:
            report: Analysis report
        """
        footer_parts = [f"chatlens v{__version__}"]
        footer_parts.append(f"{len(report.requested())} analyses")
        if report.failed:
            footer_parts.append(f"{len(report.failed)} failed")
        footer_text = f"[{MOCHA['overlay1']}]{' | '.join(footer_parts)}[/{MOCHA['overlay1']}]"

        self.console.print()
        self.console.print(Rule(style=MOCHA["surface2"]))
        self.console.print(Align.center(Text.from_markup(footer_text)))
        self.console.print()

    # ── Internal rendering methods ──────────────────────────────────────

    def _print_section(self, kind: AnalysisKind, parts: list[RenderableType]) -> None:
        color = SECTION_COLORS[kind]
        self.console.print(
            Panel(
                Group(*parts),
                title=f"[bold {color}]{SECTION_TITLES[kind]}[/bold {color}]",
                title_align="left",
                box=ROUNDED,
                border_style=color,
                padding=(0, 1),
            )
        )
        self.console.print()
