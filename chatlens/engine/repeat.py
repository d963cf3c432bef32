"""Repeat ("echo") chain detection.

Finds runs of identical consecutive text messages passed along by
different senders and credits the members who start, join and break them.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from ..feed.records import MemberRecord, MessageRecord, MessageType
from .ranking import RankingAssembler, RankItem, RateItem, rank_desc, round2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepeatSettings:
    """Thresholds for repeat chain analysis."""
    min_chain_length: int = 3
    fast_window_ms: int = 20_000       # Max gap for a "fast" repeat
    min_fast_responses: int = 5        # Responses needed to rank as fastest
    hot_content_limit: int = 100


@dataclass(frozen=True)
class FastestRepeaterItem:
    member_id: int
    platform_id: str
    name: str
    count: int
    avg_time_diff: int  # Milliseconds


@dataclass(frozen=True)
class ChainLengthBucket:
    length: int
    count: int


@dataclass(frozen=True)
class HotContent:
    """A repeated content string and its longest chain."""
    content: str
    count: int
    max_chain_length: int
    originator_id: int
    originator_name: str
    last_ts: int
    representative_message_id: int


@dataclass(frozen=True)
class RepeatAnalysis:
    originators: list[RankItem] = field(default_factory=list)
    initiators: list[RankItem] = field(default_factory=list)
    breakers: list[RankItem] = field(default_factory=list)
    fastest_repeaters: list[FastestRepeaterItem] = field(default_factory=list)
    originator_rates: list[RateItem] = field(default_factory=list)
    initiator_rates: list[RateItem] = field(default_factory=list)
    breaker_rates: list[RateItem] = field(default_factory=list)
    chain_length_distribution: list[ChainLengthBucket] = field(default_factory=list)
    hot_contents: list[HotContent] = field(default_factory=list)
    avg_chain_length: float = 0.0
    total_repeat_chains: int = 0

    @classmethod
    def empty(cls) -> RepeatAnalysis:
        return cls()


@dataclass
class _HotContentStats:
    count: int
    max_chain_length: int
    originator_id: int
    last_ts: int
    first_message_id: int


@dataclass
class _RepeatTally:
    """Mutable counters for a single detection pass."""
    originators: dict[int, int] = field(default_factory=dict)
    initiators: dict[int, int] = field(default_factory=dict)
    breakers: dict[int, int] = field(default_factory=dict)
    text_counts: dict[int, int] = field(default_factory=dict)
    lengths: dict[int, int] = field(default_factory=dict)
    contents: dict[str, _HotContentStats] = field(default_factory=dict)
    fast: dict[int, list[int]] = field(default_factory=dict)  # id -> [total_ms, count]
    total_chains: int = 0
    total_length: int = 0


def _bump(counter: dict[int, int], key: int, amount: int = 1) -> None:
    counter[key] = counter.get(key, 0) + amount


def is_repeatable(message: MessageRecord) -> bool:
    """Text messages with non-blank content take part in repeat chains."""
    return message.type == MessageType.TEXT and bool(message.text)


class RepeatChainDetector:
    """Detects repeat chains in an ordered text message stream."""

    def __init__(self, settings: RepeatSettings | None = None):
        self.settings = settings or RepeatSettings()

    def detect(
        self,
        members: list[MemberRecord],
        messages: list[MessageRecord]
    ) -> RepeatAnalysis:
        """Run the repeat chain state machine over the message stream.

        Non-text and blank messages are skipped, so callers may pass the
        full ordered feed.

        Args:
            members: Member snapshot for name resolution
            messages: Messages ordered by (timestamp, id)

        Returns:
            RepeatAnalysis
        """
        tally = _RepeatTally()
        current_content: str | None = None
        chain: list[MessageRecord] = []

        for msg in messages:
            if not is_repeatable(msg):
                continue
            _bump(tally.text_counts, msg.sender_id)

            content = msg.text
            if content == current_content:
                # Same sender echoing themselves never extends the chain
                if chain and chain[-1].sender_id != msg.sender_id:
                    chain.append(msg)
            else:
                self._close_chain(tally, chain, breaker_id=msg.sender_id)
                current_content = content
                chain = [msg]

        self._close_chain(tally, chain, breaker_id=None)

        if not tally.text_counts:
            logger.debug("No text messages to analyze for repeats")
            return RepeatAnalysis.empty()

        return self._build_analysis(members, tally)

    def _close_chain(
        self,
        tally: _RepeatTally,
        chain: list[MessageRecord],
        breaker_id: int | None
    ) -> None:
        """Credit roles for a finished chain if it is long enough."""
        if len(chain) < self.settings.min_chain_length:
            return

        length = len(chain)
        tally.total_chains += 1
        tally.total_length += length

        first = chain[0]
        _bump(tally.originators, first.sender_id)
        _bump(tally.initiators, chain[1].sender_id)
        if breaker_id is not None:
            _bump(tally.breakers, breaker_id)
        _bump(tally.lengths, length)

        content = first.text
        stats = tally.contents.get(content)
        if stats is None:
            tally.contents[content] = _HotContentStats(
                count=1,
                max_chain_length=length,
                originator_id=first.sender_id,
                last_ts=first.timestamp,
                first_message_id=first.id,
            )
        else:
            stats.count += 1
            stats.last_ts = max(stats.last_ts, first.timestamp)
            if length > stats.max_chain_length:
                stats.max_chain_length = length
                stats.originator_id = first.sender_id
                stats.first_message_id = first.id

        # Response speed is credited to the later sender of each pair
        for prev, curr in zip(chain, chain[1:]):
            diff_ms = (curr.timestamp - prev.timestamp) * 1000
            if diff_ms <= self.settings.fast_window_ms:
                entry = tally.fast.setdefault(curr.sender_id, [0, 0])
                entry[0] += diff_ms
                entry[1] += 1

    def _build_analysis(
        self,
        members: list[MemberRecord],
        tally: _RepeatTally
    ) -> RepeatAnalysis:
        assembler = RankingAssembler(members)
        total = tally.total_chains

        fastest = []
        for member_id, (total_ms, count) in tally.fast.items():
            if count < self.settings.min_fast_responses:
                continue
            platform_id, name = assembler.identity(member_id)
            fastest.append(FastestRepeaterItem(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                count=count,
                avg_time_diff=int(math.floor(total_ms / count + 0.5)),
            ))
        fastest.sort(key=lambda item: item.avg_time_diff)

        distribution = [
            ChainLengthBucket(length=length, count=count)
            for length, count in sorted(tally.lengths.items())
        ]

        hot = [
            HotContent(
                content=content,
                count=stats.count,
                max_chain_length=stats.max_chain_length,
                originator_id=stats.originator_id,
                originator_name=assembler.name_of(stats.originator_id),
                last_ts=stats.last_ts,
                representative_message_id=stats.first_message_id,
            )
            for content, stats in tally.contents.items()
        ]

        return RepeatAnalysis(
            originators=assembler.rank_counts(tally.originators, total),
            initiators=assembler.rank_counts(tally.initiators, total),
            breakers=assembler.rank_counts(tally.breakers, total),
            fastest_repeaters=fastest,
            originator_rates=assembler.rank_rates(tally.originators, tally.text_counts),
            initiator_rates=assembler.rank_rates(tally.initiators, tally.text_counts),
            breaker_rates=assembler.rank_rates(tally.breakers, tally.text_counts),
            chain_length_distribution=distribution,
            hot_contents=rank_desc(
                hot,
                key=lambda h: h.max_chain_length,
                top_n=self.settings.hot_content_limit,
            ),
            avg_chain_length=round2(tally.total_length / total) if total > 0 else 0.0,
            total_repeat_chains=total,
        )


# ==================== Catchphrases ====================

CATCHPHRASE_MIN_LENGTH = 2
CATCHPHRASES_PER_MEMBER = 10


@dataclass(frozen=True)
class Catchphrase:
    content: str
    count: int


@dataclass(frozen=True)
class MemberCatchphrases:
    member_id: int
    platform_id: str
    name: str
    catchphrases: list[Catchphrase] = field(default_factory=list)


@dataclass(frozen=True)
class CatchphraseAnalysis:
    members: list[MemberCatchphrases] = field(default_factory=list)

    @classmethod
    def empty(cls) -> CatchphraseAnalysis:
        return cls()


def analyze_catchphrases(
    members: list[MemberRecord],
    messages: list[MessageRecord],
    per_member: int = CATCHPHRASES_PER_MEMBER
) -> CatchphraseAnalysis:
    """Find each member's most frequent phrases.

    Args:
        members: Member snapshot
        messages: Ordered messages (non-text messages are ignored)
        per_member: Phrases kept per member

    Returns:
        CatchphraseAnalysis with members ordered by their listed phrase total
    """
    phrase_counts: dict[int, dict[str, int]] = {}
    for msg in messages:
        if msg.type != MessageType.TEXT:
            continue
        content = msg.text
        if len(content) < CATCHPHRASE_MIN_LENGTH:
            continue
        counts = phrase_counts.setdefault(msg.sender_id, {})
        counts[content] = counts.get(content, 0) + 1

    assembler = RankingAssembler(members)
    result = []
    for member_id, counts in phrase_counts.items():
        top = rank_desc(counts.items(), key=lambda kv: kv[1], top_n=per_member)
        platform_id, name = assembler.identity(member_id)
        result.append(MemberCatchphrases(
            member_id=member_id,
            platform_id=platform_id,
            name=name,
            catchphrases=[Catchphrase(content=c, count=n) for c, n in top],
        ))

    return CatchphraseAnalysis(
        members=rank_desc(result, key=lambda m: sum(c.count for c in m.catchphrases))
    )


def detect_repeats(
    members: list[MemberRecord],
    messages: list[MessageRecord],
    settings: RepeatSettings | None = None
) -> RepeatAnalysis:
    """Convenience function to run repeat detection."""
    return RepeatChainDetector(settings).detect(members, messages)
