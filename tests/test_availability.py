from datetime import date

import pytest

from adapters.base import Campground, FetchError
from availability import (
    MonthKey,
    StayWindow,
    ValidationError,
    build_availability_index,
    find_matches,
    match_window,
    months_to_query,
)

CAMPGROUND = Campground(entity_id="232447", name="Upper Pines")


def june(*days):
    return {date(2024, 6, d) for d in days}


# ── Stay window ────────────────────────────────────────────────────────────────

def test_from_stay_excludes_check_out_night():
    window = StayWindow.from_stay(date(2024, 6, 1), date(2024, 6, 4))
    assert window == StayWindow(date(2024, 6, 1), date(2024, 6, 3))
    assert window.total_days == 3


def test_validate_rejects_check_out_on_check_in():
    window = StayWindow.from_stay(date(2024, 6, 1), date(2024, 6, 1))
    with pytest.raises(ValidationError):
        window.validate()


def test_single_night_window_is_valid():
    window = StayWindow.from_stay(date(2024, 6, 1), date(2024, 6, 2))
    window.validate()
    assert list(window.dates()) == [date(2024, 6, 1)]


# ── Month bucketing ────────────────────────────────────────────────────────────

def test_months_within_one_month():
    assert months_to_query(StayWindow(date(2024, 6, 1), date(2024, 6, 30))) == [MonthKey(2024, 6)]


def test_months_spanning_partial_months():
    months = months_to_query(StayWindow(date(2024, 6, 28), date(2024, 8, 2)))
    assert months == [MonthKey(2024, 6), MonthKey(2024, 7), MonthKey(2024, 8)]


def test_months_across_year_boundary():
    months = months_to_query(StayWindow(date(2024, 12, 30), date(2025, 1, 2)))
    assert [str(m) for m in months] == ["2024-12", "2025-01"]


def test_month_key_first_day():
    assert MonthKey(2024, 7).first_day == date(2024, 7, 1)


# ── Availability index ─────────────────────────────────────────────────────────

def test_index_is_union_of_available_dates_across_months():
    records = {
        "2024-06": {"A12": {date(2024, 6, 30): "Available", date(2024, 6, 29): "Reserved"}},
        "2024-07": {
            "A12": {date(2024, 7, 1): "Available"},
            "B3": {date(2024, 7, 1): "Not Reservable"},
        },
    }
    fetch = lambda cgid, month: records[str(month)]

    index = build_availability_index(fetch, "232447", [MonthKey(2024, 6), MonthKey(2024, 7)])

    assert index == {"A12": {date(2024, 6, 30), date(2024, 7, 1)}}


def test_index_fetches_each_month_for_the_campground(mocker):
    fetch = mocker.Mock(return_value={})
    build_availability_index(fetch, "232447", [MonthKey(2024, 6), MonthKey(2024, 7)])
    assert fetch.call_args_list == [
        mocker.call("232447", MonthKey(2024, 6)),
        mocker.call("232447", MonthKey(2024, 7)),
    ]


def test_index_fails_fast_on_fetch_error(mocker):
    fetch = mocker.Mock(side_effect=[{"A12": {date(2024, 6, 1): "Available"}}, FetchError("boom"), {}])
    with pytest.raises(FetchError):
        build_availability_index(fetch, "232447", [MonthKey(2024, 6), MonthKey(2024, 7), MonthKey(2024, 8)])
    assert fetch.call_count == 2


# ── Window matching ────────────────────────────────────────────────────────────

WINDOW = StayWindow.from_stay(date(2024, 6, 1), date(2024, 6, 4))


def test_full_range_available_qualifies():
    result = match_window(june(1, 2, 3), WINDOW, allow_partial=False)
    assert result.qualifies is True
    assert result.matched_dates == [date(2024, 6, 1), date(2024, 6, 2), date(2024, 6, 3)]
    assert result.total_days == 3


def test_gap_does_not_qualify_without_partial():
    result = match_window(june(1, 3), WINDOW, allow_partial=False)
    assert result.qualifies is False


def test_gap_qualifies_with_partial():
    result = match_window(june(1, 3), WINDOW, allow_partial=True)
    assert result.qualifies is True
    assert result.matched_dates == [date(2024, 6, 1), date(2024, 6, 3)]


def test_dates_outside_window_are_ignored():
    result = match_window(june(4, 5, 6), WINDOW, allow_partial=True)
    assert result.qualifies is False
    assert result.matched_dates == []


def test_superset_of_window_qualifies():
    result = match_window(june(*range(1, 31)), WINDOW, allow_partial=False)
    assert result.qualifies is True
    assert len(result.matched_dates) == 3


@pytest.mark.parametrize("allow_partial", [True, False])
def test_no_matched_dates_never_qualifies(allow_partial):
    assert match_window(set(), WINDOW, allow_partial).qualifies is False


def test_find_matches_builds_matched_availability_per_site():
    index = {"B7": june(1), "A12": june(1, 2, 3)}

    matches = find_matches(index, CAMPGROUND, WINDOW, allow_partial=True)

    assert [m.site for m in matches] == ["A12", "B7"]
    assert matches[0].campground_id == "232447"
    assert matches[0].campground_name == "Upper Pines"
    assert matches[0].matched_dates == (date(2024, 6, 1), date(2024, 6, 2), date(2024, 6, 3))


def test_find_matches_full_range_only():
    index = {"B7": june(1), "A12": june(1, 2, 3)}
    matches = find_matches(index, CAMPGROUND, WINDOW, allow_partial=False)
    assert [m.site for m in matches] == ["A12"]
