"""Markdown output formatter for analysis reports.

Generates a readable report with one section per analysis.
"""

from __future__ import annotations

import re
from datetime import datetime, tzinfo
from pathlib import Path

from ..engine.analyzer import AnalysisKind, AnalysisReport
from ..engine.battle import MemeBattleAnalysis
from ..engine.graph import GraphResult
from ..engine.mention import MentionGraph
from ..engine.repeat import CatchphraseAnalysis, RepeatAnalysis
from ..engine.temporal import (
    CheckInAnalysis,
    DivingAnalysis,
    DragonKingAnalysis,
    NightOwlAnalysis,
    local_time,
)

_MD_SPECIAL = re.compile(r'([\\`*_\{\}\[\]()#+\-.!|])')

SECTION_TITLES: dict[AnalysisKind, str] = {
    AnalysisKind.GRAPH: "Social Graph",
    AnalysisKind.MENTION: "Mentions",
    AnalysisKind.REPEAT: "Repeat Chains",
    AnalysisKind.CATCHPHRASE: "Catchphrases",
    AnalysisKind.DRAGON_KING: "Dragon King",
    AnalysisKind.NIGHT_OWL: "Night Owls",
    AnalysisKind.CHECK_IN: "Check-in Streaks",
    AnalysisKind.DIVING: "Diving",
    AnalysisKind.MEME_BATTLE: "Meme Battles",
}


def _escape_md(text: str) -> str:
    """Escape markdown special characters in user-derived text."""
    return _MD_SPECIAL.sub(r'\\\1', text.replace('\n', ' '))


def _anchor(title: str) -> str:
    return title.lower().replace(' ', '-')


def _table(headers: list[str], rows: list[list[object]]) -> list[str]:
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join("---" for _ in headers) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(str(cell) for cell in row) + " |")
    return lines


def _format_ts(ts: int, tz: tzinfo | None = None) -> str:
    return local_time(ts, tz).strftime('%Y-%m-%d %H:%M %Z')


class MarkdownOutput:
    """Markdown output formatter."""

    def __init__(self, top_n: int = 10, tz: tzinfo | None = None):
        """Initialize formatter.

        Args:
            top_n: Rows shown per ranking table
            tz: Zone the analyses used for calendar days (None = local time)
        """
        self.top_n = top_n
        self.tz = tz

    def generate(
        self,
        report: AnalysisReport,
        source_info: dict | None = None,
        include_toc: bool = True
    ) -> str:
        """Generate full markdown report.

        Args:
            report: Analysis report
            source_info: Optional snapshot details
            include_toc: Whether to include table of contents

        Returns:
            Markdown formatted string
        """
        requested = report.requested()
        sections = [self._generate_header(report, source_info)]

        if include_toc and requested:
            sections.append(self._generate_toc(requested))

        renderers = {
            AnalysisKind.GRAPH: self._generate_graph,
            AnalysisKind.MENTION: self._generate_mention,
            AnalysisKind.REPEAT: self._generate_repeat,
            AnalysisKind.CATCHPHRASE: self._generate_catchphrases,
            AnalysisKind.DRAGON_KING: self._generate_dragon_king,
            AnalysisKind.NIGHT_OWL: self._generate_night_owl,
            AnalysisKind.CHECK_IN: self._generate_check_in,
            AnalysisKind.DIVING: self._generate_diving,
            AnalysisKind.MEME_BATTLE: self._generate_meme_battle,
        }
        for kind in requested:
            body = renderers[kind](report.get(kind))
            sections.append(f"## {SECTION_TITLES[kind]}\n\n{body}")

        return "\n\n".join(sections)

    def save(
        self,
        report: AnalysisReport,
        output_path: str | Path,
        **kwargs
    ) -> None:
        """Save markdown report to file."""
        content = self.generate(report, **kwargs)
        Path(output_path).write_text(content, encoding='utf-8')

    def _generate_header(self, report: AnalysisReport, source_info: dict | None) -> str:
        lines = [
            "# Chat Relationship & Behavior Report",
            "",
            f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "**Tool:** Chatlens",
        ]

        if source_info:
            lines.append("")
            for key, value in source_info.items():
                lines.append(f"- **{key.replace('_', ' ').title()}:** {_escape_md(str(value))}")

        if report.failed:
            lines.append("")
            lines.append(
                "> Some analyses failed and show empty results: "
                + ", ".join(kind.value for kind in report.failed)
            )

        return "\n".join(lines)

    def _generate_toc(self, requested: list[AnalysisKind]) -> str:
        lines = ["## Table of Contents", ""]
        for i, kind in enumerate(requested, 1):
            title = SECTION_TITLES[kind]
            lines.append(f"{i}. [{title}](#{_anchor(title)})")
        return "\n".join(lines)

    def _generate_graph(self, graph: GraphResult) -> str:
        stats = graph.stats
        lines = [
            f"{stats.involved_members} of {stats.total_members} members connected by "
            f"{stats.edge_count} edges ({stats.total_messages} messages analyzed).",
            "",
        ]
        if not graph.links:
            lines.append("_Not enough interaction to build a graph._")
            return "\n".join(lines)

        lines.append("### Strongest Links")
        lines.append("")
        lines.extend(_table(
            ["#", "Pair", "Hybrid", "Raw", "Expected", "Co-occurrences"],
            [
                [i, f"{_escape_md(e.source)} ↔ {_escape_md(e.target)}", e.hybrid_score,
                 e.raw_score, e.expected_score, e.co_occurrence_count]
                for i, e in enumerate(graph.links[:self.top_n], 1)
            ],
        ))
        lines.append("")
        lines.append("### Central Members")
        lines.append("")
        lines.extend(_table(
            ["#", "Member", "Degree", "Messages"],
            [
                [i, _escape_md(n.name), n.degree, n.message_count]
                for i, n in enumerate(graph.nodes[:self.top_n], 1)
            ],
        ))
        return "\n".join(lines)

    def _generate_mention(self, graph: MentionGraph) -> str:
        if not graph.links:
            return "_No @mentions between members._"

        lines = ["### Who Mentions Whom", ""]
        lines.extend(_table(
            ["#", "From", "To", "Mentions"],
            [
                [i, _escape_md(link.source), _escape_md(link.target), link.value]
                for i, link in enumerate(graph.links[:self.top_n], 1)
            ],
        ))
        return "\n".join(lines)

    def _generate_repeat(self, analysis: RepeatAnalysis) -> str:
        lines = [
            f"**{analysis.total_repeat_chains}** repeat chains, "
            f"average length **{analysis.avg_chain_length}**.",
        ]
        if analysis.total_repeat_chains == 0:
            return "\n".join(lines)

        for title, items in (
            ("Originators", analysis.originators),
            ("Initiators", analysis.initiators),
            ("Breakers", analysis.breakers),
        ):
            lines.extend(["", f"### {title}", ""])
            lines.extend(_table(
                ["#", "Member", "Chains", "Share %"],
                [[i, _escape_md(r.name), r.count, r.percentage]
                 for i, r in enumerate(items[:self.top_n], 1)],
            ))

        if analysis.fastest_repeaters:
            lines.extend(["", "### Fastest Repeaters", ""])
            lines.extend(_table(
                ["#", "Member", "Responses", "Avg (ms)"],
                [[i, _escape_md(r.name), r.count, r.avg_time_diff]
                 for i, r in enumerate(analysis.fastest_repeaters[:self.top_n], 1)],
            ))

        lines.extend(["", "### Hot Content", ""])
        lines.extend(_table(
            ["#", "Content", "Chains", "Longest", "Started by"],
            [[i, _escape_md(h.content[:60]), h.count, h.max_chain_length, _escape_md(h.originator_name)]
             for i, h in enumerate(analysis.hot_contents[:self.top_n], 1)],
        ))
        return "\n".join(lines)

    def _generate_catchphrases(self, analysis: CatchphraseAnalysis) -> str:
        if not analysis.members:
            return "_No catchphrases found._"
        lines = []
        for member in analysis.members[:self.top_n]:
            phrases = ", ".join(
                f"{_escape_md(c.content[:30])} ({c.count})" for c in member.catchphrases[:5]
            )
            lines.append(f"- **{_escape_md(member.name)}:** {phrases}")
        return "\n".join(lines)

    def _generate_dragon_king(self, analysis: DragonKingAnalysis) -> str:
        lines = [f"Across **{analysis.total_days}** active days.", ""]
        lines.extend(_table(
            ["#", "Member", "Dragon days", "Share %"],
            [[i, _escape_md(r.name), r.count, r.percentage]
             for i, r in enumerate(analysis.rank[:self.top_n], 1)],
        ))
        return "\n".join(lines)

    def _generate_night_owl(self, analysis: NightOwlAnalysis) -> str:
        lines = [f"Across **{analysis.total_days}** days.", ""]
        lines.extend(_table(
            ["#", "Member", "Night msgs", "Title", "Share %"],
            [[i, _escape_md(r.name), r.total_night_messages, r.title.label, r.percentage]
             for i, r in enumerate(analysis.night_owl_rank[:self.top_n], 1)],
        ))
        lines.extend(["", "### Last Speaker", ""])
        lines.extend(_table(
            ["#", "Member", "Days", "Avg time", "Latest", "Share %"],
            [[i, _escape_md(r.name), r.count, r.avg_time, r.extreme_time, r.percentage]
             for i, r in enumerate(analysis.last_speaker_rank[:self.top_n], 1)],
        ))
        lines.extend(["", "### First Speaker", ""])
        lines.extend(_table(
            ["#", "Member", "Days", "Avg time", "Earliest", "Share %"],
            [[i, _escape_md(r.name), r.count, r.avg_time, r.extreme_time, r.percentage]
             for i, r in enumerate(analysis.first_speaker_rank[:self.top_n], 1)],
        ))
        lines.extend(["", "### Champions", ""])
        lines.extend(_table(
            ["#", "Member", "Score", "Night msgs", "Last speaker", "Consecutive nights"],
            [[i, _escape_md(c.name), c.score, c.night_messages, c.last_speaker_count, c.consecutive_days]
             for i, c in enumerate(analysis.champions[:self.top_n], 1)],
        ))
        return "\n".join(lines)

    def _generate_check_in(self, analysis: CheckInAnalysis) -> str:
        lines = [f"Across **{analysis.total_days}** active days.", "", "### Longest Streaks", ""]
        lines.extend(_table(
            ["#", "Member", "Streak", "From", "To", "Current"],
            [[i, _escape_md(s.name), s.max_streak, s.max_streak_start, s.max_streak_end, s.current_streak]
             for i, s in enumerate(analysis.streak_rank[:self.top_n], 1)],
        ))
        lines.extend(["", "### Loyalty", ""])
        lines.extend(_table(
            ["#", "Member", "Active days", "Relative %"],
            [[i, _escape_md(r.name), r.total_days, r.percentage]
             for i, r in enumerate(analysis.loyalty_rank[:self.top_n], 1)],
        ))
        return "\n".join(lines)

    def _generate_diving(self, analysis: DivingAnalysis) -> str:
        return "\n".join(_table(
            ["#", "Member", "Last message", "Days silent"],
            [[i, _escape_md(r.name), _format_ts(r.last_message_ts, self.tz), r.days_since_last_message]
             for i, r in enumerate(analysis.ordered(recent_first=False)[:self.top_n], 1)],
        ))

    def _generate_meme_battle(self, analysis: MemeBattleAnalysis) -> str:
        lines = [f"**{analysis.total_battles}** battles detected."]
        if not analysis.total_battles:
            return "\n".join(lines)

        lines.extend(["", "### Epic Battles", ""])
        lines.extend(_table(
            ["#", "Started", "Images", "Participants", "Top sender"],
            [[i, _format_ts(b.start_ts, self.tz), b.total_images, b.participant_count,
              _escape_md(b.participants[0].name) if b.participants else "-"]
             for i, b in enumerate(analysis.top_battles[:self.top_n], 1)],
        ))
        lines.extend(["", "### Most Battles", ""])
        lines.extend(_table(
            ["#", "Member", "Battles", "Share %"],
            [[i, _escape_md(r.name), r.count, r.percentage]
             for i, r in enumerate(analysis.rank_by_count[:self.top_n], 1)],
        ))
        lines.extend(["", "### Most Images", ""])
        lines.extend(_table(
            ["#", "Member", "Images", "Share %"],
            [[i, _escape_md(r.name), r.count, r.percentage]
             for i, r in enumerate(analysis.rank_by_image_count[:self.top_n], 1)],
        ))
        return "\n".join(lines)
