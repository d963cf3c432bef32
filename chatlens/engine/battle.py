"""Meme battle detection.

A battle is an uninterrupted run of image/sticker messages with enough
images and enough distinct senders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..feed.records import MemberRecord, MessageRecord, MessageType
from .ranking import RankingAssembler, RankItem, rank_desc

logger = logging.getLogger(__name__)

# Message types that make up a battle
BATTLE_TYPES = frozenset({MessageType.IMAGE, MessageType.EMOJI})

# Message types dropped from the stream before run detection
IGNORED_TYPES = frozenset({MessageType.LINK})


@dataclass(frozen=True)
class BattleSettings:
    """Thresholds for battle detection."""
    min_images: int = 3
    min_participants: int = 2
    top_battles: int = 30


@dataclass(frozen=True)
class BattleParticipant:
    member_id: int
    name: str
    image_count: int


@dataclass(frozen=True)
class Battle:
    """A qualifying run of image messages."""
    start_ts: int
    end_ts: int
    total_images: int
    participant_count: int
    participants: list[BattleParticipant] = field(default_factory=list)


@dataclass(frozen=True)
class MemeBattleAnalysis:
    top_battles: list[Battle] = field(default_factory=list)
    rank_by_count: list[RankItem] = field(default_factory=list)
    rank_by_image_count: list[RankItem] = field(default_factory=list)
    total_battles: int = 0

    @classmethod
    def empty(cls) -> MemeBattleAnalysis:
        return cls()


class MemeBattleChainDetector:
    """Detects image bursts with multiple senders."""

    def __init__(self, settings: BattleSettings | None = None):
        self.settings = settings or BattleSettings()

    def find_runs(self, messages: list[MessageRecord]) -> list[list[MessageRecord]]:
        """Split the stream into maximal runs of image/sticker messages.

        Link messages are skipped; any other type ends the current run.

        Args:
            messages: Messages ordered by (timestamp, id)

        Returns:
            List of runs, each a list of consecutive image messages
        """
        runs: list[list[MessageRecord]] = []
        current: list[MessageRecord] = []

        for msg in messages:
            if msg.type in IGNORED_TYPES:
                continue
            if msg.type in BATTLE_TYPES:
                current.append(msg)
            elif current:
                runs.append(current)
                current = []

        if current:
            runs.append(current)
        return runs

    def is_battle(self, run: list[MessageRecord]) -> bool:
        return (
            len(run) >= self.settings.min_images
            and len({m.sender_id for m in run}) >= self.settings.min_participants
        )

    def detect(
        self,
        members: list[MemberRecord],
        messages: list[MessageRecord]
    ) -> MemeBattleAnalysis:
        """Detect battles and rank participants.

        Args:
            members: Member snapshot for name resolution
            messages: Messages ordered by (timestamp, id)

        Returns:
            MemeBattleAnalysis
        """
        runs = [run for run in self.find_runs(messages) if self.is_battle(run)]
        if not runs:
            logger.debug("No meme battles found in %d messages", len(messages))
            return MemeBattleAnalysis.empty()

        assembler = RankingAssembler(members)
        battles = [self._to_battle(assembler, run) for run in runs]

        battle_counts: dict[int, int] = {}
        image_counts: dict[int, int] = {}
        for battle in battles:
            for p in battle.participants:
                battle_counts[p.member_id] = battle_counts.get(p.member_id, 0) + 1
                image_counts[p.member_id] = image_counts.get(p.member_id, 0) + p.image_count

        total_images = sum(b.total_images for b in battles)

        return MemeBattleAnalysis(
            top_battles=rank_desc(
                battles,
                key=lambda b: b.total_images,
                top_n=self.settings.top_battles,
            ),
            rank_by_count=assembler.rank_counts(battle_counts, len(battles)),
            rank_by_image_count=assembler.rank_counts(image_counts, total_images),
            total_battles=len(battles),
        )

    def _to_battle(self, assembler: RankingAssembler, run: list[MessageRecord]) -> Battle:
        per_sender: dict[int, int] = {}
        for msg in run:
            per_sender[msg.sender_id] = per_sender.get(msg.sender_id, 0) + 1

        participants = [
            BattleParticipant(member_id=sender_id, name=assembler.name_of(sender_id), image_count=count)
            for sender_id, count in per_sender.items()
        ]

        return Battle(
            start_ts=run[0].timestamp,
            end_ts=run[-1].timestamp,
            total_images=len(run),
            participant_count=len(per_sender),
            participants=rank_desc(participants, key=lambda p: p.image_count),
        )


def detect_battles(
    members: list[MemberRecord],
    messages: list[MessageRecord],
    settings: BattleSettings | None = None
) -> MemeBattleAnalysis:
    """Convenience function to run battle detection."""
    return MemeBattleChainDetector(settings).detect(members, messages)
