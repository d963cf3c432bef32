"""Shared ranking helpers.

Percentage rounding, Top-N truncation and stable descending sorts used by
every analysis.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, TypeVar

from ..feed.records import MemberRecord, member_directory, member_identity

T = TypeVar("T")


def round2(value: float) -> float:
    """Round half-up to 2 decimal places."""
    if value < 0:
        return -round2(-value)
    return math.floor(value * 100 + 0.5) / 100


def percentage(count: float, total: float) -> float:
    """Return count/total as a percentage rounded to 2 decimals (0 if total is 0)."""
    if total <= 0:
        return 0.0
    return round2(count / total * 100)


def rank_desc(
    items: Iterable[T],
    key: Callable[[T], float],
    top_n: int | None = None
) -> list[T]:
    """Stable sort by key descending, optionally truncated to top_n.

    Items with equal keys keep their input order.
    """
    ranked = sorted(items, key=key, reverse=True)
    if top_n is not None:
        ranked = ranked[:max(top_n, 0)]
    return ranked


@dataclass(frozen=True)
class RankItem:
    """A member with a count and its share of some total."""
    member_id: int
    platform_id: str
    name: str
    count: int
    percentage: float


@dataclass(frozen=True)
class RateItem:
    """A member with a count relative to their own message total."""
    member_id: int
    platform_id: str
    name: str
    count: int
    total_messages: int
    rate: float


class RankingAssembler:
    """Builds ranked member lists against one member snapshot."""

    def __init__(self, members: list[MemberRecord]):
        """Initialize with the member snapshot used for name resolution.

        Args:
            members: Members of the analyzed session
        """
        self._directory = member_directory(members)

    def identity(self, member_id: int) -> tuple[str, str]:
        """Return (platform_id, name) for a member id."""
        return member_identity(self._directory, member_id)

    def name_of(self, member_id: int) -> str:
        return self.identity(member_id)[1]

    def rank_counts(
        self,
        counts: dict[int, int],
        total: float,
        top_n: int | None = None
    ) -> list[RankItem]:
        """Rank members by raw count.

        Args:
            counts: Count per member id, in discovery order
            total: Denominator for the percentage column
            top_n: Optional truncation

        Returns:
            RankItems sorted by count (highest first)
        """
        items = []
        for member_id, count in counts.items():
            platform_id, name = self.identity(member_id)
            items.append(RankItem(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                count=count,
                percentage=percentage(count, total),
            ))
        return rank_desc(items, key=lambda item: item.count, top_n=top_n)

    def rank_rates(
        self,
        counts: dict[int, int],
        totals: dict[int, int],
        top_n: int | None = None
    ) -> list[RateItem]:
        """Rank members by count relative to their own totals.

        Members with no messages in ``totals`` are left out.
        """
        items = []
        for member_id, count in counts.items():
            total_messages = totals.get(member_id, 0)
            if total_messages <= 0:
                continue
            platform_id, name = self.identity(member_id)
            items.append(RateItem(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                count=count,
                total_messages=total_messages,
                rate=percentage(count, total_messages),
            ))
        return rank_desc(items, key=lambda item: item.rate, top_n=top_n)
