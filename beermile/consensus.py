"""Consensus calculation over availability snapshots."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Hashable, Iterable, Protocol

from . import utils


class AvailabilityRecord(Protocol):
    user_id: Hashable
    calendar_date: date
    is_available: bool


@dataclass(frozen=True)
class DaySummary:
    """Availability roll-up for a single calendar date."""

    date: date
    all_available: bool
    available_count: int
    unavailable_users: list[str] = field(default_factory=list)

    @property
    def unavailable_count(self) -> int:
        return len(self.unavailable_users)

    def as_dict(self) -> dict[str, object]:
        return {
            "date": utils.to_iso_date(self.date),
            "all_available": self.all_available,
            "available_count": self.available_count,
            "unavailable_count": self.unavailable_count,
            "unavailable_users": list(self.unavailable_users),
        }


def compute_consensus(all_user_ids: Iterable[Hashable], records: Iterable[AvailabilityRecord]) -> bool:
    """Return True when every known user explicitly marked the date available.

    Users without a record do not count as available.
    """

    users = set(all_user_ids)
    if not users:
        return False
    available = {record.user_id for record in records if record.is_available}
    return users <= available


def unavailable_users(records: Iterable[AvailabilityRecord]) -> list[Hashable]:
    """Return users with an explicit ``False``; unmarked users are not included."""

    return [record.user_id for record in records if not record.is_available]


def summarize_month(
    year: int,
    month: int,
    user_ids: Iterable[Hashable],
    records: Iterable[AvailabilityRecord],
    usernames: dict[Hashable, str] | None = None,
) -> list[DaySummary]:
    """Build one :class:`DaySummary` per day of the month."""

    users = list(user_ids)
    usernames = usernames or {}
    by_date: dict[date, list[AvailabilityRecord]] = defaultdict(list)
    for record in records:
        by_date[record.calendar_date].append(record)

    summaries: list[DaySummary] = []
    for day in range(1, utils.days_in_month(year, month) + 1):
        current = date(year, month, day)
        day_records = by_date.get(current, [])
        summaries.append(
            DaySummary(
                date=current,
                all_available=compute_consensus(users, day_records),
                available_count=sum(1 for record in day_records if record.is_available),
                unavailable_users=[
                    usernames.get(user_id, str(user_id)) for user_id in unavailable_users(day_records)
                ],
            )
        )
    return summaries


def consensus_dates(summaries: Iterable[DaySummary], today: date | None = None) -> list[date]:
    """Return consensus dates that are today or later."""

    return [
        summary.date
        for summary in summaries
        if summary.all_available and not utils.is_past_date(summary.date, today)
    ]
