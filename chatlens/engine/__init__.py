"""Core analytics engine."""

from .analyzer import AnalysisKind, AnalysisReport, Analyzer, AnalyzerConfig
from .battle import MemeBattleChainDetector
from .graph import CoOccurrenceGraphBuilder, GraphOptions
from .mention import MentionGraphBuilder
from .ranking import RankingAssembler
from .repeat import RepeatChainDetector
from .temporal import TemporalAggregator

__all__ = [
    "AnalysisKind",
    "AnalysisReport",
    "Analyzer",
    "AnalyzerConfig",
    "CoOccurrenceGraphBuilder",
    "GraphOptions",
    "MemeBattleChainDetector",
    "MentionGraphBuilder",
    "RankingAssembler",
    "RepeatChainDetector",
    "TemporalAggregator",
]
