"""Analysis orchestration.

Runs the requested analyses over one feed snapshot. Every analysis is an
independent pure function, so they can run sequentially or on a process
pool. Failures never escape: the failing analysis is logged and replaced
by its empty result.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import tzinfo
from enum import Enum
from typing import Any, Callable

from ..feed.loader import FeedSnapshot
from .battle import BattleSettings, MemeBattleAnalysis, MemeBattleChainDetector
from .graph import CoOccurrenceGraphBuilder, GraphOptions, GraphResult
from .mention import MentionGraph, MentionGraphBuilder
from .repeat import (
    CatchphraseAnalysis,
    RepeatAnalysis,
    RepeatChainDetector,
    RepeatSettings,
    analyze_catchphrases,
)
from .temporal import (
    CheckInAnalysis,
    DivingAnalysis,
    DragonKingAnalysis,
    NightOwlAnalysis,
    TemporalAggregator,
)

logger = logging.getLogger(__name__)


class AnalysisKind(Enum):
    """Analyses available on a snapshot."""
    GRAPH = "graph"
    MENTION = "mention"
    REPEAT = "repeat"
    CATCHPHRASE = "catchphrase"
    DRAGON_KING = "dragon_king"
    NIGHT_OWL = "night_owl"
    CHECK_IN = "check_in"
    DIVING = "diving"
    MEME_BATTLE = "meme_battle"


EMPTY_RESULTS: dict[AnalysisKind, Callable[[], Any]] = {
    AnalysisKind.GRAPH: GraphResult.empty,
    AnalysisKind.MENTION: MentionGraph.empty,
    AnalysisKind.REPEAT: RepeatAnalysis.empty,
    AnalysisKind.CATCHPHRASE: CatchphraseAnalysis.empty,
    AnalysisKind.DRAGON_KING: DragonKingAnalysis.empty,
    AnalysisKind.NIGHT_OWL: NightOwlAnalysis.empty,
    AnalysisKind.CHECK_IN: CheckInAnalysis.empty,
    AnalysisKind.DIVING: DivingAnalysis.empty,
    AnalysisKind.MEME_BATTLE: MemeBattleAnalysis.empty,
}


@dataclass(frozen=True)
class AnalyzerConfig:
    """Settings shared by every analysis of one run."""
    graph_options: GraphOptions = field(default_factory=GraphOptions)
    repeat_settings: RepeatSettings = field(default_factory=RepeatSettings)
    battle_settings: BattleSettings = field(default_factory=BattleSettings)
    tz: tzinfo | None = None
    now: float | None = None


@dataclass
class AnalysisReport:
    """Results of one run; analyses that were not requested stay None."""
    graph: GraphResult | None = None
    mention: MentionGraph | None = None
    repeat: RepeatAnalysis | None = None
    catchphrase: CatchphraseAnalysis | None = None
    dragon_king: DragonKingAnalysis | None = None
    night_owl: NightOwlAnalysis | None = None
    check_in: CheckInAnalysis | None = None
    diving: DivingAnalysis | None = None
    meme_battle: MemeBattleAnalysis | None = None
    failed: list[AnalysisKind] = field(default_factory=list)

    def get(self, kind: AnalysisKind) -> Any:
        return getattr(self, kind.value)

    def requested(self) -> list[AnalysisKind]:
        return [kind for kind in AnalysisKind if self.get(kind) is not None]


def run_analysis(
    kind: AnalysisKind,
    snapshot: FeedSnapshot,
    config: AnalyzerConfig
) -> Any:
    """Run a single analysis. Module-level so worker processes can import it."""
    members, messages = snapshot.members, snapshot.messages
    if kind == AnalysisKind.GRAPH:
        # A single sender has no partners, so the graph ignores the member filter
        return CoOccurrenceGraphBuilder(config.graph_options).build(
            members, snapshot.time_range_messages()
        )
    if kind == AnalysisKind.MENTION:
        return MentionGraphBuilder(snapshot.name_history).build(members, messages)
    if kind == AnalysisKind.REPEAT:
        return RepeatChainDetector(config.repeat_settings).detect(members, messages)
    if kind == AnalysisKind.CATCHPHRASE:
        return analyze_catchphrases(members, messages)
    if kind == AnalysisKind.MEME_BATTLE:
        return MemeBattleChainDetector(config.battle_settings).detect(members, messages)

    aggregator = TemporalAggregator(tz=config.tz, now=config.now)
    if kind == AnalysisKind.DRAGON_KING:
        return aggregator.dragon_king(members, messages)
    if kind == AnalysisKind.NIGHT_OWL:
        return aggregator.night_owl(members, messages)
    if kind == AnalysisKind.CHECK_IN:
        return aggregator.check_in(members, messages)
    if kind == AnalysisKind.DIVING:
        return aggregator.diving(members, messages)

    raise ValueError(f"Unknown analysis kind: {kind!r}")


class Analyzer:
    """Runs analyses against feed snapshots."""

    def __init__(self, config: AnalyzerConfig | None = None):
        """Initialize analyzer.

        Args:
            config: Analysis settings (defaults for everything if omitted)
        """
        self.config = config or AnalyzerConfig()

    def run(
        self,
        snapshot: FeedSnapshot,
        kinds: list[AnalysisKind] | None = None,
        workers: int | None = None
    ) -> AnalysisReport:
        """Run the requested analyses on a snapshot.

        Args:
            snapshot: Members and ordered messages
            kinds: Analyses to run (default: all)
            workers: Worker processes to use; None or 1 runs in-process

        Returns:
            AnalysisReport with one result per requested analysis
        """
        kinds = list(kinds) if kinds else list(AnalysisKind)

        # Pin wall-clock "now" so every analysis of this run agrees on it
        config = self.config
        if config.now is None:
            config = replace(config, now=time.time())

        report = AnalysisReport()
        if workers is not None and workers > 1 and len(kinds) > 1:
            self._run_pool(report, snapshot, kinds, config, workers)
        else:
            for kind in kinds:
                try:
                    result = run_analysis(kind, snapshot, config)
                except (MemoryError, RecursionError):
                    raise
                except Exception:
                    result = self._fallback(report, kind)
                setattr(report, kind.value, result)

        return report

    def run_from(
        self,
        feed: Callable[[], FeedSnapshot],
        kinds: list[AnalysisKind] | None = None,
        workers: int | None = None
    ) -> AnalysisReport:
        """Fetch a snapshot from a feed callable, then run analyses.

        A feed failure yields the empty result for every requested analysis.
        """
        kinds = list(kinds) if kinds else list(AnalysisKind)
        try:
            snapshot = feed()
        except (MemoryError, RecursionError):
            raise
        except Exception:
            logger.error("Failed to obtain chat snapshot; returning empty results", exc_info=True)
            report = AnalysisReport(failed=list(kinds))
            for kind in kinds:
                setattr(report, kind.value, EMPTY_RESULTS[kind]())
            return report

        return self.run(snapshot, kinds, workers)

    def _run_pool(
        self,
        report: AnalysisReport,
        snapshot: FeedSnapshot,
        kinds: list[AnalysisKind],
        config: AnalyzerConfig,
        workers: int
    ) -> None:
        logger.debug("Running %d analyses on %d worker processes", len(kinds), workers)
        with ProcessPoolExecutor(max_workers=min(workers, len(kinds))) as pool:
            futures = {
                kind: pool.submit(run_analysis, kind, snapshot, config)
                for kind in kinds
            }
            for kind, future in futures.items():
                try:
                    result = future.result()
                except (MemoryError, RecursionError):
                    raise
                except Exception:
                    result = self._fallback(report, kind)
                setattr(report, kind.value, result)

    def _fallback(self, report: AnalysisReport, kind: AnalysisKind) -> Any:
        logger.error("Analysis %s failed; substituting empty result", kind.value, exc_info=True)
        report.failed.append(kind)
        return EMPTY_RESULTS[kind]()


def parse_kinds(kinds_str: str) -> list[AnalysisKind]:
    """Parse a comma-separated list of analysis names.

    Raises:
        ValueError: If any name is not a known analysis
    """
    valid = {k.value: k for k in AnalysisKind}
    result = []
    for name in kinds_str.split(','):
        name = name.strip().lower().replace('-', '_')
        if not name:
            continue
        if name not in valid:
            raise ValueError(
                f"Invalid analysis '{name}'. Valid analyses: {', '.join(valid)}"
            )
        result.append(valid[name])
    return result
