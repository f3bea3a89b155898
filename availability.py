"""
Availability aggregation and matching.

A stay window is split into the calendar months the reservation service
answers for, the per-month site/day records are merged into one index of
available dates per site, and each site is checked against the window.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, NamedTuple

from adapters.base import Campground

AVAILABLE = "Available"

LOGGER = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Raised when a stay window can't be searched."""


class MonthKey(NamedTuple):
    year: int
    month: int

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def __str__(self) -> str:
        return f"{self.year}-{self.month:02d}"


@dataclass(frozen=True)
class StayWindow:
    """Nights wanted, both ends inclusive."""

    start: date
    end: date

    @classmethod
    def from_stay(cls, check_in: date, check_out: date) -> "StayWindow":
        # the check-out day itself does not need to be available
        return cls(start=check_in, end=check_out - timedelta(days=1))

    def validate(self):
        if self.start > self.end:
            raise ValidationError(
                f"Check out needs to be after check in (nights {self.start} to {self.end})"
            )

    @property
    def total_days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self):
        d = self.start
        while d <= self.end:
            yield d
            d += timedelta(days=1)


@dataclass(frozen=True)
class MatchedAvailability:
    campground_id: str
    campground_name: str
    site: str
    matched_dates: tuple


class WindowMatch(NamedTuple):
    matched_dates: list
    total_days: int
    qualifies: bool


def months_to_query(window: StayWindow) -> list:
    """Returns one MonthKey per calendar month touched by the window, in order."""
    months = []
    key = MonthKey(window.start.year, window.start.month)
    last = MonthKey(window.end.year, window.end.month)
    while key <= last:
        months.append(key)
        # advance to the next month
        if key.month == 12:
            key = MonthKey(key.year + 1, 1)
        else:
            key = MonthKey(key.year, key.month + 1)
    return months


def build_availability_index(
    fetch: Callable[[str, MonthKey], dict],
    campground_id: str,
    months: list,
) -> dict:
    """
    Merges per-month site/day records into {site: set of available dates}.

    Any error raised by ``fetch`` propagates: a campground is either fully
    indexed or not at all.
    """
    index = {}
    for month in months:
        record = fetch(campground_id, month)
        LOGGER.debug("Found %d campsites for %s in %s", len(record), campground_id, month)
        for site, days in record.items():
            for day, status in days.items():
                if status == AVAILABLE:
                    index.setdefault(site, set()).add(day)
    return index


def match_window(available: set, window: StayWindow, allow_partial: bool) -> WindowMatch:
    matched = [d for d in window.dates() if d in available]
    total = window.total_days
    if not matched:
        qualifies = False
    elif allow_partial:
        qualifies = True
    else:
        qualifies = len(matched) == total
    return WindowMatch(matched_dates=matched, total_days=total, qualifies=qualifies)


def find_matches(
    index: dict,
    campground: Campground,
    window: StayWindow,
    allow_partial: bool,
) -> list:
    """Returns a MatchedAvailability for every qualifying site, ordered by site."""
    matches = []
    for site in sorted(index):
        result = match_window(index[site], window, allow_partial)
        LOGGER.debug(
            "%s site %s: %d/%d nights available",
            campground.name, site, len(result.matched_dates), result.total_days,
        )
        if not result.qualifies:
            continue
        matches.append(
            MatchedAvailability(
                campground_id=campground.entity_id,
                campground_name=campground.name,
                site=site,
                matched_dates=tuple(result.matched_dates),
            )
        )
    return matches
