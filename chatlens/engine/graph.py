"""Social co-occurrence graph.

Scores how often two members speak near each other in the ordered message
stream, normalizes against a uniform-interleaving null model, and keeps the
strongest edges.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace

from ..feed.records import MemberRecord, MessageRecord, member_directory
from .ranking import rank_desc, round2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphOptions:
    """Tunable parameters of the co-occurrence model."""
    look_ahead: int = 3               # Distinct partners scanned per anchor
    decay_seconds: float = 120.0      # Time-decay constant
    top_edges: int = 150              # Edges kept after ranking
    position_decrement: float = 0.2   # Weight lost per later-discovered partner
    look_ahead_factor: float = 0.8    # Window scale of the chance baseline

    def merged(self, **overrides) -> GraphOptions:
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


DEFAULT_GRAPH_OPTIONS = GraphOptions()


@dataclass(frozen=True, order=True)
class PairKey:
    """Canonical undirected member pair, smaller id first."""
    low: int
    high: int

    @classmethod
    def of(cls, a: int, b: int) -> PairKey:
        return cls(a, b) if a < b else cls(b, a)


@dataclass(frozen=True)
class Edge:
    """A kept, undirected relationship between two members."""
    source_id: int
    target_id: int
    source: str
    target: str
    raw_score: float
    expected_score: float
    normalized_score: float
    hybrid_score: float
    co_occurrence_count: int


@dataclass(frozen=True)
class Node:
    """A member touched by at least one kept edge."""
    id: int
    name: str
    message_count: int
    degree: float
    normalized_degree: float
    visual_size: int


@dataclass(frozen=True)
class GraphStats:
    total_members: int = 0
    total_messages: int = 0
    involved_members: int = 0
    edge_count: int = 0


@dataclass(frozen=True)
class GraphResult:
    """Scored, pruned co-occurrence graph."""
    nodes: list[Node] = field(default_factory=list)
    links: list[Edge] = field(default_factory=list)
    max_link_value: float = 0.0
    stats: GraphStats = field(default_factory=GraphStats)

    @classmethod
    def empty(cls, total_members: int = 0, total_messages: int = 0) -> GraphResult:
        return cls(stats=GraphStats(total_members=total_members, total_messages=total_messages))


@dataclass
class _PairScore:
    raw: float = 0.0
    count: int = 0


class CoOccurrenceGraphBuilder:
    """Builds the weighted social graph from an ordered message stream."""

    def __init__(self, options: GraphOptions | None = None):
        """Initialize builder.

        Args:
            options: Model parameters (defaults: look_ahead=3,
                     decay_seconds=120, top_edges=150)
        """
        self.options = options or DEFAULT_GRAPH_OPTIONS

    def build(
        self,
        members: list[MemberRecord],
        messages: list[MessageRecord]
    ) -> GraphResult:
        """Build the co-occurrence graph.

        Args:
            members: Member snapshot (system sender excluded)
            messages: Messages ordered by (timestamp, id)

        Returns:
            GraphResult; the empty result for degenerate input
        """
        if len(members) < 2 or len(messages) < 2:
            logger.debug(
                "Graph input too small (%d members, %d messages)",
                len(members), len(messages)
            )
            return GraphResult.empty(len(members), len(messages))

        # Pass 1: per-sender counts within the analyzed window
        msg_counts: dict[int, int] = {}
        for msg in messages:
            msg_counts[msg.sender_id] = msg_counts.get(msg.sender_id, 0) + 1
        total_messages = len(messages)

        # Pass 2: time-decayed pairwise scores
        pair_scores = self._score_pairs(messages)

        # Normalization against the chance baseline, then hybrid blend
        edges = self._rank_edges(pair_scores, msg_counts, total_messages)
        if not edges:
            return GraphResult.empty(len(members), total_messages)

        return self._assemble(members, msg_counts, edges)

    def _score_pairs(self, messages: list[MessageRecord]) -> dict[PairKey, _PairScore]:
        """Accumulate decay- and position-weighted scores for each pair."""
        look_ahead = self.options.look_ahead
        decay = self.options.decay_seconds
        scores: dict[PairKey, _PairScore] = {}

        for i, anchor in enumerate(messages[:-1]):
            seen: set[int] = set()
            for j in range(i + 1, len(messages)):
                if len(seen) >= look_ahead:
                    break
                candidate = messages[j]
                if candidate.sender_id == anchor.sender_id or candidate.sender_id in seen:
                    continue

                seen.add(candidate.sender_id)
                k = len(seen)

                delta = candidate.timestamp - anchor.timestamp
                decay_weight = math.exp(-delta / decay) if decay > 0 else 0.0
                position_weight = max(0.0, 1 - self.options.position_decrement * (k - 1))

                pair = scores.setdefault(
                    PairKey.of(anchor.sender_id, candidate.sender_id), _PairScore()
                )
                pair.raw += decay_weight * position_weight
                pair.count += 1

        return scores

    def _rank_edges(
        self,
        pair_scores: dict[PairKey, _PairScore],
        msg_counts: dict[int, int],
        total_messages: int
    ) -> list[tuple[PairKey, float, float, float, float, int]]:
        """Compute expected/normalized/hybrid scores and keep the top edges.

        Returns:
            (pair, raw, expected, normalized, hybrid, count) tuples, strongest first
        """
        window_scale = self.options.look_ahead * self.options.look_ahead_factor

        scored = []
        for pair, score in pair_scores.items():
            expected = (
                msg_counts.get(pair.low, 0) * msg_counts.get(pair.high, 0) / total_messages
            ) * window_scale
            normalized = score.raw / expected if expected > 0 else 0.0
            scored.append((pair, score.raw, expected, normalized, score.count))

        if not scored:
            return []

        max_raw = max(s[1] for s in scored)
        max_normalized = max(s[3] for s in scored)

        edges = []
        for pair, raw, expected, normalized, count in scored:
            raw_part = raw / max_raw if max_raw > 0 else 0.0
            norm_part = normalized / max_normalized if max_normalized > 0 else 0.0
            hybrid = round2(0.5 * raw_part + 0.5 * norm_part)
            edges.append((pair, raw, expected, normalized, hybrid, count))

        # Equal hybrid scores fall back to the canonical pair order
        edges.sort(key=lambda e: (-e[4], e[0]))
        return edges[:max(self.options.top_edges, 0)]

    def _assemble(
        self,
        members: list[MemberRecord],
        msg_counts: dict[int, int],
        edges: list[tuple[PairKey, float, float, float, float, int]]
    ) -> GraphResult:
        """Build nodes and links from the kept edges."""
        directory = member_directory(members)

        involved: dict[int, float] = {}
        for pair, _raw, _exp, _norm, hybrid, _count in edges:
            involved[pair.low] = involved.get(pair.low, 0.0) + hybrid
            involved[pair.high] = involved.get(pair.high, 0.0) + hybrid

        names = _display_names(directory, list(involved))

        def message_count(member_id: int) -> int:
            member = directory.get(member_id)
            return member.message_count if member else msg_counts.get(member_id, 0)

        max_degree = max(involved.values())
        max_msg_count = max([message_count(mid) for mid in involved] + [1])

        nodes = []
        for member_id, degree in involved.items():
            normalized_degree = degree / max_degree if max_degree > 0 else 0.0
            msg_norm = message_count(member_id) / max_msg_count
            size = 20 + (0.7 * normalized_degree + 0.3 * msg_norm) * 35
            nodes.append(Node(
                id=member_id,
                name=names[member_id],
                message_count=message_count(member_id),
                degree=round2(degree),
                normalized_degree=round2(normalized_degree),
                visual_size=int(math.floor(size + 0.5)),
            ))
        nodes = rank_desc(nodes, key=lambda n: n.degree)

        links = [
            Edge(
                source_id=pair.low,
                target_id=pair.high,
                source=names[pair.low],
                target=names[pair.high],
                raw_score=round2(raw),
                expected_score=round2(expected),
                normalized_score=round2(normalized),
                hybrid_score=hybrid,
                co_occurrence_count=count,
            )
            for pair, raw, expected, normalized, hybrid, count in edges
        ]

        return GraphResult(
            nodes=nodes,
            links=links,
            max_link_value=round2(max(link.hybrid_score for link in links)),
            stats=GraphStats(
                total_members=len(members),
                total_messages=sum(msg_counts.values()),
                involved_members=len(nodes),
                edge_count=len(links),
            ),
        )


def _display_names(
    directory: dict[int, MemberRecord],
    member_ids: list[int]
) -> dict[int, str]:
    """Disambiguate colliding display names with the platform id suffix."""
    base_names: dict[int, str] = {}
    name_count: dict[str, int] = {}
    for member_id in member_ids:
        member = directory.get(member_id)
        base = member.display_name if member else str(member_id)
        base_names[member_id] = base
        name_count[base] = name_count.get(base, 0) + 1

    names = {}
    for member_id, base in base_names.items():
        if name_count[base] > 1:
            member = directory.get(member_id)
            platform_id = member.platform_id if member and member.platform_id else str(member_id)
            names[member_id] = f"{base}#{platform_id[-4:]}"
        else:
            names[member_id] = base
    return names


def build_graph(
    members: list[MemberRecord],
    messages: list[MessageRecord],
    options: GraphOptions | None = None
) -> GraphResult:
    """Convenience function to build a graph with the given options.

    Args:
        members: Member snapshot
        messages: Ordered messages
        options: Optional model parameters

    Returns:
        GraphResult
    """
    return CoOccurrenceGraphBuilder(options).build(members, messages)
