"""
Spread planning for rain day redistribution

Pure functions: no database access and no side effects. The running per-date
load is carried in an explicit SpreadState so each placement sees the
placements made before it.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

MIN_SPREAD_DAYS = 7
MAX_SPREAD_DAYS = 30
DEFAULT_SPREAD_DAYS = 14


def clamp_spread_days(spread_days: Optional[int]) -> int:
    """Missing or zero means the default; otherwise bounded to [7, 30]"""
    return min(max(spread_days or DEFAULT_SPREAD_DAYS, MIN_SPREAD_DAYS), MAX_SPREAD_DAYS)


def next_workday(day: date) -> date:
    """The following day, skipping Sunday"""
    following = day + timedelta(days=1)
    if following.weekday() == 6:
        following += timedelta(days=1)
    return following


def candidate_dates(after: date, count: int) -> list[date]:
    """The count days following after, Sundays skipped"""
    dates = []
    offset = 1
    while len(dates) < count:
        day = after + timedelta(days=offset)
        if day.weekday() != 6:
            dates.append(day)
        offset += 1
    return dates


def choose_least_loaded(counts: dict[date, int], candidates: Sequence[date]) -> date:
    """First candidate holding the minimum count; ties go to the earliest in list order"""
    if not candidates:
        raise ValueError("No candidate dates to choose from")
    best = candidates[0]
    for day in candidates[1:]:
        if counts.get(day, 0) < counts.get(best, 0):
            best = day
    return best


@dataclass
class SpreadState:
    counts: dict[date, int]
    placements: list[tuple[object, date]] = field(default_factory=list)

    def choose(self, candidates: Sequence[date]) -> date:
        return choose_least_loaded(self.counts, candidates)

    def record(self, item, day: date) -> "SpreadState":
        """Count a placement that actually happened"""
        counts = dict(self.counts)
        counts[day] = counts.get(day, 0) + 1
        return SpreadState(counts=counts, placements=self.placements + [(item, day)])


def plan_spread(
    items: Iterable, candidates: Sequence[date], counts: dict[date, int]
) -> list[tuple[object, date]]:
    """
    Assign every item to the least-loaded candidate, assuming each placement
    succeeds. The redistributor runs the same fold one item at a time and
    records only placements that were persisted.
    """
    state = SpreadState(counts=dict(counts))
    for item in items:
        state = state.record(item, state.choose(candidates))
    return state.placements
