"""Calendar-based activity rankings.

Dragon-king (most active speaker per day), night-owl activity, check-in
streaks and diving (time since last message). All four are computed from
one local-time pass over the ordered message stream.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum

from ..feed.records import MemberRecord, MessageRecord
from .ranking import RankingAssembler, RankItem, percentage, rank_desc

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

# Night window is [23:00, 05:00); messages before 05:00 belong to the previous night
NIGHT_START_HOUR = 23
NIGHT_END_HOUR = 5


class NightOwlTitle(Enum):
    """Night activity tiers, ordered by total night messages."""
    WELL_RESTED = 0
    OCCASIONAL_INSOMNIAC = 1
    FREQUENT_INSOMNIAC = 2
    NIGHT_OWL = 3
    BALDING_RESERVE = 4
    NIGHT_CULTIVATOR = 5
    NIGHT_WATCH_CHAMPION = 6

    @property
    def label(self) -> str:
        return NIGHT_OWL_TITLE_LABELS[self]


NIGHT_OWL_TITLE_LABELS: dict[NightOwlTitle, str] = {
    NightOwlTitle.WELL_RESTED: "Well Rested",
    NightOwlTitle.OCCASIONAL_INSOMNIAC: "Occasional Insomniac",
    NightOwlTitle.FREQUENT_INSOMNIAC: "Frequent Insomniac",
    NightOwlTitle.NIGHT_OWL: "Night Owl",
    NightOwlTitle.BALDING_RESERVE: "Balding Reserve",
    NightOwlTitle.NIGHT_CULTIVATOR: "Night Cultivator",
    NightOwlTitle.NIGHT_WATCH_CHAMPION: "Night Watch Champion",
}

# Upper bounds (inclusive) of tiers 1-5; anything above is tier 6
_TITLE_THRESHOLDS: list[tuple[int, NightOwlTitle]] = [
    (20, NightOwlTitle.OCCASIONAL_INSOMNIAC),
    (50, NightOwlTitle.FREQUENT_INSOMNIAC),
    (100, NightOwlTitle.NIGHT_OWL),
    (200, NightOwlTitle.BALDING_RESERVE),
    (500, NightOwlTitle.NIGHT_CULTIVATOR),
]


@dataclass(frozen=True)
class ChampionWeights:
    """Weights of the night-owl champion composite score."""
    night_messages: int = 1
    last_speaker: int = 10
    consecutive_days: int = 20


def night_owl_title(night_messages: int) -> NightOwlTitle:
    """Map a total night message count onto its title tier."""
    if night_messages <= 0:
        return NightOwlTitle.WELL_RESTED
    for upper, title in _TITLE_THRESHOLDS:
        if night_messages <= upper:
            return title
    return NightOwlTitle.NIGHT_WATCH_CHAMPION


def local_time(ts: float, tz: tzinfo | None = None) -> datetime:
    """Aware local datetime for a Unix timestamp (host zone when tz is None)."""
    if tz is None:
        return datetime.fromtimestamp(ts).astimezone()
    return datetime.fromtimestamp(ts, tz)


def night_day(moment: datetime) -> date:
    """Calendar date of the overnight session a local moment belongs to."""
    if moment.hour < NIGHT_END_HOUR:
        return moment.date() - timedelta(days=1)
    return moment.date()


def is_night_hour(hour: int) -> bool:
    return hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR


def format_minutes(minutes: float) -> str:
    """Format minutes since midnight as HH:MM."""
    total = int(math.floor(minutes + 0.5))
    hours, mins = divmod(total, 60)
    return f"{hours:02d}:{mins:02d}"


def longest_run(days: list[date]) -> tuple[int, date, date]:
    """Longest run of consecutive dates in a sorted, distinct date list.

    Returns:
        (length, start, end); the earliest run wins ties
    """
    best_len, best_start, best_end = 1, days[0], days[0]
    run_len, run_start = 1, days[0]

    for prev, curr in zip(days, days[1:]):
        if (curr - prev).days == 1:
            run_len += 1
        else:
            run_len, run_start = 1, curr
        if run_len > best_len:
            best_len, best_start, best_end = run_len, run_start, curr

    return best_len, best_start, best_end


def trailing_run(days: list[date]) -> int:
    """Length of the consecutive run ending at the last date."""
    run = 1
    for i in range(len(days) - 1, 0, -1):
        if (days[i] - days[i - 1]).days != 1:
            break
        run += 1
    return run


# ==================== Result records ====================

@dataclass(frozen=True)
class DragonKingAnalysis:
    rank: list[RankItem] = field(default_factory=list)
    total_days: int = 0

    @classmethod
    def empty(cls) -> DragonKingAnalysis:
        return cls()


@dataclass(frozen=True)
class HourlyBreakdown:
    h23: int = 0
    h0: int = 0
    h1: int = 0
    h2: int = 0
    h3to4: int = 0

    @property
    def total(self) -> int:
        return self.h23 + self.h0 + self.h1 + self.h2 + self.h3to4


@dataclass(frozen=True)
class NightOwlRankItem:
    member_id: int
    platform_id: str
    name: str
    total_night_messages: int
    title: NightOwlTitle
    hourly_breakdown: HourlyBreakdown
    percentage: float


@dataclass(frozen=True)
class TimeRankItem:
    """Last/first speaker credit with average and extreme time of day."""
    member_id: int
    platform_id: str
    name: str
    count: int
    avg_time: str
    extreme_time: str
    percentage: float


@dataclass(frozen=True)
class ConsecutiveNightRecord:
    member_id: int
    platform_id: str
    name: str
    max_consecutive_days: int
    current_streak: int


@dataclass(frozen=True)
class NightOwlChampion:
    member_id: int
    platform_id: str
    name: str
    score: int
    night_messages: int
    last_speaker_count: int
    consecutive_days: int


@dataclass(frozen=True)
class NightOwlAnalysis:
    night_owl_rank: list[NightOwlRankItem] = field(default_factory=list)
    last_speaker_rank: list[TimeRankItem] = field(default_factory=list)
    first_speaker_rank: list[TimeRankItem] = field(default_factory=list)
    consecutive_records: list[ConsecutiveNightRecord] = field(default_factory=list)
    champions: list[NightOwlChampion] = field(default_factory=list)
    total_days: int = 0

    @classmethod
    def empty(cls) -> NightOwlAnalysis:
        return cls()


@dataclass(frozen=True)
class StreakRecord:
    member_id: int
    platform_id: str
    name: str
    max_streak: int
    max_streak_start: str  # ISO date
    max_streak_end: str
    current_streak: int


@dataclass(frozen=True)
class LoyaltyRankItem:
    member_id: int
    platform_id: str
    name: str
    total_days: int
    percentage: float


@dataclass(frozen=True)
class CheckInAnalysis:
    streak_rank: list[StreakRecord] = field(default_factory=list)
    loyalty_rank: list[LoyaltyRankItem] = field(default_factory=list)
    total_days: int = 0

    @classmethod
    def empty(cls) -> CheckInAnalysis:
        return cls()


@dataclass(frozen=True)
class DivingRankItem:
    member_id: int
    platform_id: str
    name: str
    last_message_ts: int
    days_since_last_message: int


@dataclass(frozen=True)
class DivingAnalysis:
    """Members by last message time, longest silent first."""
    rank: list[DivingRankItem] = field(default_factory=list)

    @classmethod
    def empty(cls) -> DivingAnalysis:
        return cls()

    def ordered(self, recent_first: bool = False) -> list[DivingRankItem]:
        """Return the rank in the requested presentation order."""
        return sorted(self.rank, key=lambda item: item.last_message_ts, reverse=recent_first)


@dataclass(frozen=True)
class TemporalAnalysis:
    """All calendar-based rankings from one pass."""
    dragon_king: DragonKingAnalysis = field(default_factory=DragonKingAnalysis)
    night_owl: NightOwlAnalysis = field(default_factory=NightOwlAnalysis)
    check_in: CheckInAnalysis = field(default_factory=CheckInAnalysis)
    diving: DivingAnalysis = field(default_factory=DivingAnalysis)


# ==================== Aggregator ====================

@dataclass(frozen=True)
class _Moment:
    sender_id: int
    timestamp: int
    local: datetime


class TemporalAggregator:
    """Computes day-based rankings in a fixed local timezone."""

    def __init__(
        self,
        tz: tzinfo | None = None,
        now: float | None = None,
        champion_weights: ChampionWeights | None = None
    ):
        """Initialize aggregator.

        Args:
            tz: Timezone for calendar dates (None = host local time)
            now: Wall-clock reference in Unix seconds (None = time of each call)
            champion_weights: Night-owl champion score weights
        """
        self.tz = tz
        self.now = now
        self.champion_weights = champion_weights or ChampionWeights()

    def aggregate(
        self,
        members: list[MemberRecord],
        messages: list[MessageRecord]
    ) -> TemporalAnalysis:
        """Compute all four rankings from a single pass.

        Args:
            members: Member snapshot
            messages: Messages ordered by (timestamp, id)

        Returns:
            TemporalAnalysis
        """
        moments = self._scan(messages)
        assembler = RankingAssembler(members)
        now = self._now()
        return TemporalAnalysis(
            dragon_king=self._dragon_king(assembler, moments),
            night_owl=self._night_owl(assembler, moments, now),
            check_in=self._check_in(assembler, moments),
            diving=self._diving(assembler, moments, now),
        )

    def dragon_king(self, members: list[MemberRecord], messages: list[MessageRecord]) -> DragonKingAnalysis:
        return self._dragon_king(RankingAssembler(members), self._scan(messages))

    def night_owl(self, members: list[MemberRecord], messages: list[MessageRecord]) -> NightOwlAnalysis:
        return self._night_owl(RankingAssembler(members), self._scan(messages), self._now())

    def check_in(self, members: list[MemberRecord], messages: list[MessageRecord]) -> CheckInAnalysis:
        return self._check_in(RankingAssembler(members), self._scan(messages))

    def diving(self, members: list[MemberRecord], messages: list[MessageRecord]) -> DivingAnalysis:
        return self._diving(RankingAssembler(members), self._scan(messages), self._now())

    def _now(self) -> float:
        return self.now if self.now is not None else time.time()

    def _scan(self, messages: list[MessageRecord]) -> list[_Moment]:
        return [
            _Moment(msg.sender_id, msg.timestamp, datetime.fromtimestamp(msg.timestamp, self.tz))
            for msg in messages
        ]

    def _dragon_king(self, assembler: RankingAssembler, moments: list[_Moment]) -> DragonKingAnalysis:
        if not moments:
            return DragonKingAnalysis.empty()

        daily: dict[date, dict[int, int]] = {}
        for m in moments:
            counts = daily.setdefault(m.local.date(), {})
            counts[m.sender_id] = counts.get(m.sender_id, 0) + 1

        # Every sender tied for the day's maximum is credited
        dragon_days: dict[int, int] = {}
        for counts in daily.values():
            top = max(counts.values())
            for sender_id, count in counts.items():
                if count == top:
                    dragon_days[sender_id] = dragon_days.get(sender_id, 0) + 1

        total_days = len(daily)
        return DragonKingAnalysis(
            rank=assembler.rank_counts(dragon_days, total_days),
            total_days=total_days,
        )

    def _night_owl(
        self,
        assembler: RankingAssembler,
        moments: list[_Moment],
        now: float
    ) -> NightOwlAnalysis:
        if not moments:
            return NightOwlAnalysis.empty()

        hourly: dict[int, dict[str, int]] = {}
        totals: dict[int, int] = {}
        night_days: dict[int, set[date]] = {}
        sessions: dict[date, list[_Moment]] = {}

        for m in moments:
            totals[m.sender_id] = totals.get(m.sender_id, 0) + 1
            buckets = hourly.setdefault(m.sender_id, {"h23": 0, "h0": 0, "h1": 0, "h2": 0, "h3to4": 0})
            hour = m.local.hour
            session_day = night_day(m.local)

            if hour == 23:
                buckets["h23"] += 1
            elif hour in (0, 1, 2):
                buckets[f"h{hour}"] += 1
            elif 3 <= hour < NIGHT_END_HOUR:
                buckets["h3to4"] += 1

            if is_night_hour(hour):
                night_days.setdefault(m.sender_id, set()).add(session_day)

            sessions.setdefault(session_day, []).append(m)

        total_days = len(sessions)

        night_rank = []
        for member_id, buckets in hourly.items():
            breakdown = HourlyBreakdown(**buckets)
            if breakdown.total == 0:
                continue
            platform_id, name = assembler.identity(member_id)
            night_rank.append(NightOwlRankItem(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                total_night_messages=breakdown.total,
                title=night_owl_title(breakdown.total),
                hourly_breakdown=breakdown,
                percentage=percentage(breakdown.total, totals[member_id]),
            ))
        night_rank = rank_desc(night_rank, key=lambda item: item.total_night_messages)

        last_times: dict[int, list[int]] = {}
        first_times: dict[int, list[int]] = {}
        for day_moments in sessions.values():
            last, first = day_moments[-1], day_moments[0]
            last_times.setdefault(last.sender_id, []).append(last.local.hour * 60 + last.local.minute)
            first_times.setdefault(first.sender_id, []).append(first.local.hour * 60 + first.local.minute)

        last_rank = self._time_rank(assembler, last_times, total_days, latest=True)
        first_rank = self._time_rank(assembler, first_times, total_days, latest=False)

        today = datetime.fromtimestamp(now, self.tz).date()
        recent = {today, today - timedelta(days=1)}

        records = []
        for member_id, days_set in night_days.items():
            days = sorted(days_set)
            max_streak, _start, _end = longest_run(days)
            platform_id, name = assembler.identity(member_id)
            records.append(ConsecutiveNightRecord(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                max_consecutive_days=max_streak,
                current_streak=trailing_run(days) if days[-1] in recent else 0,
            ))
        records = rank_desc(records, key=lambda r: r.max_consecutive_days)

        return NightOwlAnalysis(
            night_owl_rank=night_rank,
            last_speaker_rank=last_rank,
            first_speaker_rank=first_rank,
            consecutive_records=records,
            champions=self._champions(assembler, night_rank, last_rank, records),
            total_days=total_days,
        )

    def _time_rank(
        self,
        assembler: RankingAssembler,
        times: dict[int, list[int]],
        total_days: int,
        latest: bool
    ) -> list[TimeRankItem]:
        items = []
        for member_id, minutes in times.items():
            platform_id, name = assembler.identity(member_id)
            extreme = max(minutes) if latest else min(minutes)
            items.append(TimeRankItem(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                count=len(minutes),
                avg_time=format_minutes(sum(minutes) / len(minutes)),
                extreme_time=format_minutes(extreme),
                percentage=percentage(len(minutes), total_days),
            ))
        return rank_desc(items, key=lambda item: item.count)

    def _champions(
        self,
        assembler: RankingAssembler,
        night_rank: list[NightOwlRankItem],
        last_rank: list[TimeRankItem],
        records: list[ConsecutiveNightRecord]
    ) -> list[NightOwlChampion]:
        weights = self.champion_weights
        parts: dict[int, list[int]] = {}  # id -> [night, last, consecutive]
        for item in night_rank:
            parts.setdefault(item.member_id, [0, 0, 0])[0] = item.total_night_messages
        for item in last_rank:
            parts.setdefault(item.member_id, [0, 0, 0])[1] = item.count
        for record in records:
            parts.setdefault(record.member_id, [0, 0, 0])[2] = record.max_consecutive_days

        champions = []
        for member_id, (night, last, consecutive) in parts.items():
            score = (
                night * weights.night_messages
                + last * weights.last_speaker
                + consecutive * weights.consecutive_days
            )
            if score <= 0:
                continue
            platform_id, name = assembler.identity(member_id)
            champions.append(NightOwlChampion(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                score=score,
                night_messages=night,
                last_speaker_count=last,
                consecutive_days=consecutive,
            ))
        return rank_desc(champions, key=lambda c: c.score)

    def _check_in(self, assembler: RankingAssembler, moments: list[_Moment]) -> CheckInAnalysis:
        if not moments:
            return CheckInAnalysis.empty()

        member_days: dict[int, set[date]] = {}
        for m in moments:
            member_days.setdefault(m.sender_id, set()).add(m.local.date())

        all_days = set().union(*member_days.values())
        last_day = max(all_days)

        streaks = []
        loyalty: list[tuple[int, int]] = []
        for member_id, days_set in member_days.items():
            days = sorted(days_set)
            max_streak, start, end = longest_run(days)
            platform_id, name = assembler.identity(member_id)
            streaks.append(StreakRecord(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                max_streak=max_streak,
                max_streak_start=start.isoformat(),
                max_streak_end=end.isoformat(),
                current_streak=trailing_run(days) if days[-1] == last_day else 0,
            ))
            loyalty.append((member_id, len(days)))

        loyalty = rank_desc(loyalty, key=lambda entry: entry[1])
        max_days = loyalty[0][1]
        loyalty_rank = []
        for member_id, active_days in loyalty:
            platform_id, name = assembler.identity(member_id)
            loyalty_rank.append(LoyaltyRankItem(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                total_days=active_days,
                percentage=percentage(active_days, max_days),
            ))

        return CheckInAnalysis(
            streak_rank=rank_desc(streaks, key=lambda s: s.max_streak),
            loyalty_rank=loyalty_rank,
            total_days=len(all_days),
        )

    def _diving(
        self,
        assembler: RankingAssembler,
        moments: list[_Moment],
        now: float
    ) -> DivingAnalysis:
        last_seen: dict[int, int] = {}
        for m in moments:
            last_seen[m.sender_id] = max(m.timestamp, last_seen.get(m.sender_id, m.timestamp))

        rank = []
        for member_id, last_ts in sorted(last_seen.items(), key=lambda kv: kv[1]):
            platform_id, name = assembler.identity(member_id)
            rank.append(DivingRankItem(
                member_id=member_id,
                platform_id=platform_id,
                name=name,
                last_message_ts=last_ts,
                days_since_last_message=int((now - last_ts) // SECONDS_PER_DAY),
            ))
        return DivingAnalysis(rank=rank)


def aggregate_temporal(
    members: list[MemberRecord],
    messages: list[MessageRecord],
    tz: tzinfo | None = None,
    now: float | None = None
) -> TemporalAnalysis:
    """Convenience function to compute all calendar-based rankings."""
    return TemporalAggregator(tz=tz, now=now).aggregate(members, messages)
