"""
Unit tests for forecast.py: profile building, time-of-week prediction and
window search.

Naive datetimes are treated as tunnel-local time, which keeps bins easy to
reason about: 2024-03-18 is a Monday and 10:00 falls in bin 40.
"""

import numpy as np
import pytest
from datetime import date, datetime, timedelta, timezone

import forecast
from forecast import (
    ALL_DAYS,
    BINS_PER_DAY,
    WaitObservation,
    bin_label,
    build_profiles,
    confidence_for,
    day_series,
    find_min_in_window,
    plan_departure,
    predict_wait,
    profile_key,
    parse_timestamp,
    time_to_bin,
    to_bin_index,
    to_weekday,
    window_bins,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

MONDAY = date(2024, 3, 18)
TUESDAY = date(2024, 3, 19)


def _at(day=MONDAY, bin_idx=40, minute_offset=0):
    """Naive local datetime inside `bin_idx` of `day`."""
    return datetime(day.year, day.month, day.day) + timedelta(minutes=bin_idx * 15 + minute_offset)


def _obs(minutes, day=MONDAY, bin_idx=40, tunnel="gotthard", direction="S", weeks_back=0):
    return WaitObservation(
        tunnel=tunnel,
        direction=direction,
        minutes=minutes,
        noted_at=_at(day, bin_idx) - timedelta(weeks=weeks_back),
        source="manual",
    )


def _many(values, **kwargs):
    return [_obs(v, weeks_back=i, **kwargs) for i, v in enumerate(values)]


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------

class TestTimeHelpers:
    def test_weekday_sunday_is_zero(self):
        assert to_weekday(datetime(2024, 3, 17, 12, 0)) == 0
        assert to_weekday(datetime(2024, 3, 18, 12, 0)) == 1
        assert to_weekday(datetime(2024, 3, 23, 12, 0)) == 6

    def test_bin_index(self):
        assert to_bin_index(datetime(2024, 3, 18, 0, 0)) == 0
        assert to_bin_index(datetime(2024, 3, 18, 0, 14)) == 0
        assert to_bin_index(datetime(2024, 3, 18, 10, 5)) == 40
        assert to_bin_index(datetime(2024, 3, 18, 23, 59)) == 95

    def test_aware_timestamps_converted_to_local(self):
        # 08:00 UTC is 09:00 in Zurich before the March DST switch
        at = datetime(2024, 3, 18, 8, 0, tzinfo=timezone.utc)
        assert to_bin_index(at) == 36

    def test_local_day_used_for_weekday(self):
        # Sunday 23:30 UTC is already Monday in Zurich
        at = datetime(2024, 3, 17, 23, 30, tzinfo=timezone.utc)
        assert to_weekday(at) == 1

    def test_bin_label(self):
        assert bin_label(0) == "00:00"
        assert bin_label(41) == "10:15"
        assert bin_label(95) == "23:45"

    @pytest.mark.parametrize("text,expected", [
        ("08:07", 32),
        ("00:00", 0),
        ("23:59", 95),
        ("25:00", 95),
        ("bad", 0),
        ("", 0),
    ])
    def test_time_to_bin(self, text, expected):
        assert time_to_bin(text) == expected


# ---------------------------------------------------------------------------
# build_profiles
# ---------------------------------------------------------------------------

class TestBuildProfiles:
    def test_median_and_count_for_monday_bin(self):
        profiles = build_profiles(_many([10, 20, 30]))
        monday = profiles[profile_key("gotthard", "S", 1)]
        assert monday.median[40] == 20
        assert monday.count[40] == 3

    def test_even_count_median_is_mean_of_middle(self):
        profiles = build_profiles(_many([10, 20, 30, 50]))
        assert profiles["gotthard|S|1"].median[40] == 25

    def test_all_days_profile_collects_every_weekday(self):
        obs = _many([10, 20], day=MONDAY) + _many([40], day=TUESDAY)
        profiles = build_profiles(obs)
        assert profiles["gotthard|S|all"].count[40] == 3
        assert profiles["gotthard|S|all"].median[40] == 20
        assert profiles["gotthard|S|2"].count[40] == 1

    def test_empty_bins_have_no_data(self):
        profiles = build_profiles(_many([10]))
        prof = profiles["gotthard|S|1"]
        assert prof.count[41] == 0
        assert np.isnan(prof.median[41])
        assert len(prof.median) == BINS_PER_DAY
        assert len(prof.count) == BINS_PER_DAY

    def test_empty_input(self):
        assert build_profiles([]) == {}

    def test_invalid_observations_ignored(self):
        obs = _many([10, 20, 30]) + [_obs(-5), _obs(float("nan"))]
        profiles = build_profiles(obs)
        assert profiles["gotthard|S|1"].count[40] == 3

    def test_direction_labels_normalised(self):
        profiles = build_profiles([_obs(10, direction="N2S"), _obs(20, direction="southbound")])
        assert profiles["gotthard|S|1"].count[40] == 2

    def test_accepts_dict_records(self):
        records = [{
            "tunnel": "gottardo",
            "direction": "S",
            "minutes": 12,
            "notedAt": "2024-03-18T09:00:00Z",  # 10:00 Zurich
            "source": "TCS",
        }]
        profiles = build_profiles(records)
        assert profiles["gotthard|S|1"].median[40] == 12

    def test_unreadable_timestamp_skipped(self):
        records = [
            {"tunnel": "gotthard", "direction": "S", "minutes": m, "notedAt": "2024-03-18T09:00:00Z"}
            for m in (10, 20, 30)
        ]
        records.append({"tunnel": "gotthard", "direction": "S", "minutes": 99, "notedAt": "n/a"})
        profiles = build_profiles(records)
        assert profiles["gotthard|S|1"].count[40] == 3
        assert profiles["gotthard|S|1"].median[40] == 20

    def test_store_rendered_timestamp(self):
        records = [{"tunnel": "gotthard", "direction": "S", "minutes": 8,
                    "notedAt": "2024-03-18 09:00:00.12+00"}]
        profiles = build_profiles(records)
        assert profiles["gotthard|S|1"].count[40] == 1

    def test_rebuild_is_identical(self):
        obs = _many([10, 20, 30]) + _many([5, 7], day=TUESDAY, bin_idx=70) + [_obs(9, direction="N")]
        first = build_profiles(obs)
        second = build_profiles(obs)

        assert list(first) == list(second)
        for key in first:
            assert np.array_equal(first[key].median, second[key].median, equal_nan=True)
            assert np.array_equal(first[key].count, second[key].count)
            assert first[key].median.dtype == second[key].median.dtype


# ---------------------------------------------------------------------------
# predict_wait
# ---------------------------------------------------------------------------

class TestPredictWait:
    def test_same_bin_used_when_enough_samples(self):
        obs = _many([10, 12, 14, 16, 18]) + _many([1, 1, 1, 1], bin_idx=41)
        result = predict_wait(build_profiles(obs), "gotthard", "S", _at())

        assert result.bin_used == 40
        assert result.minutes == 14
        assert result.count == 5
        assert result.confidence == "low"

    def test_radius_fallback_to_bin_plus_two(self):
        obs = _many([20, 22, 24, 26], bin_idx=42)
        result = predict_wait(build_profiles(obs), "gotthard", "S", _at(bin_idx=40))

        assert result.bin_used == 42
        assert result.minutes == 23
        assert result.count == 4

    def test_radius_prefers_lower_bin_on_equal_distance(self):
        obs = _many([5, 5, 5], bin_idx=38) + _many([50, 50, 50], bin_idx=42)
        result = predict_wait(build_profiles(obs), "gotthard", "S", _at(bin_idx=40))
        assert result.bin_used == 38

    def test_radius_wraps_around_midnight(self):
        obs = _many([8, 8, 8], day=MONDAY, bin_idx=94)
        result = predict_wait(build_profiles(obs), "gotthard", "S", _at(day=MONDAY, bin_idx=0))
        assert result.bin_used == 94

    def test_sparse_bins_skipped_by_radius_search(self):
        # bin 41 has only 2 samples, bin 43 has 3
        obs = _many([1, 1], bin_idx=41) + _many([9, 9, 9], bin_idx=43)
        result = predict_wait(build_profiles(obs), "gotthard", "S", _at(bin_idx=40))
        assert result.bin_used == 43

    def test_best_populated_bin_beyond_radius(self):
        obs = _many([30, 40], bin_idx=10) + _many([90], bin_idx=70)
        result = predict_wait(build_profiles(obs), "gotthard", "S", _at(bin_idx=40))

        assert result.bin_used == 10
        assert result.count == 2
        assert result.minutes == 35

    def test_all_days_fallback(self):
        obs = _many([6, 6, 6], day=TUESDAY, bin_idx=40)
        result = predict_wait(build_profiles(obs), "gotthard", "S", _at(day=MONDAY))
        assert result.bin_used == 40
        assert result.minutes == 6

    def test_no_history_returns_none(self):
        assert predict_wait(build_profiles([]), "gotthard", "S", _at()) is None

    def test_other_direction_has_no_history(self):
        profiles = build_profiles(_many([10, 20, 30]))
        assert predict_wait(profiles, "gotthard", "N", _at()) is None

    def test_median_rounds_half_up(self):
        obs = _many([10, 11, 20, 21])  # median 15.5
        assert predict_wait(build_profiles(obs), "gotthard", "S", _at()).minutes == 16

    def test_direction_label_accepted_at_query(self):
        profiles = build_profiles(_many([10, 20, 30]))
        assert predict_wait(profiles, "gottardo", "southbound", _at()).minutes == 20


class TestConfidence:
    @pytest.mark.parametrize("count,expected", [
        (12, "high"),
        (30, "high"),
        (11, "medium"),
        (6, "medium"),
        (5, "low"),
        (1, "low"),
    ])
    def test_boundaries(self, count, expected):
        assert confidence_for(count) == expected

    def test_prediction_carries_confidence(self):
        profiles = build_profiles(_many([10] * 12))
        assert predict_wait(profiles, "gotthard", "S", _at()).confidence == "high"


# ---------------------------------------------------------------------------
# find_min_in_window / planning
# ---------------------------------------------------------------------------

class TestWindowBins:
    def test_wraparound_window(self):
        assert window_bins(92, 3) == [92, 93, 94, 95, 0, 1, 2, 3]

    def test_plain_window(self):
        assert window_bins(40, 43) == [40, 41, 42, 43]

    def test_single_bin(self):
        assert window_bins(7, 7) == [7]


class TestFindMinInWindow:
    def test_wraparound_evaluates_eight_bins(self, monkeypatch):
        seen = []

        def fake_predict(profiles, tunnel, direction, at):
            seen.append((at.date(), to_bin_index(at)))
            return None

        monkeypatch.setattr(forecast, "predict_wait", fake_predict)
        assert find_min_in_window({}, "gotthard", "S", MONDAY, 92, 3) is None

        assert [b for _, b in seen] == [92, 93, 94, 95, 0, 1, 2, 3]
        assert all(d == MONDAY for d, _ in seen)

    def test_picks_lowest_prediction(self):
        obs = []
        for b in range(40, 49):
            obs += _many([10 if b == 44 else 30] * 3, bin_idx=b)
        best = find_min_in_window(build_profiles(obs), "gotthard", "S", MONDAY, 40, 48)

        assert best.best_bin == 44
        assert best.result.minutes == 10

    def test_ties_keep_earliest_bin(self, monkeypatch):
        def fake_predict(profiles, tunnel, direction, at):
            return forecast.PredictionResult(minutes=5, bin_used=to_bin_index(at), count=3, confidence="low")

        monkeypatch.setattr(forecast, "predict_wait", fake_predict)
        best = find_min_in_window({}, "gotthard", "S", MONDAY, 20, 25)
        assert best.best_bin == 20

    def test_bins_without_prediction_are_skipped(self, monkeypatch):
        def fake_predict(profiles, tunnel, direction, at):
            b = to_bin_index(at)
            if b != 22:
                return None
            return forecast.PredictionResult(minutes=40, bin_used=b, count=3, confidence="low")

        monkeypatch.setattr(forecast, "predict_wait", fake_predict)
        best = find_min_in_window({}, "gotthard", "S", MONDAY, 20, 25)
        assert best.best_bin == 22
        assert best.result.minutes == 40

    def test_no_history_returns_none(self):
        assert find_min_in_window({}, "gotthard", "S", MONDAY, 0, 95) is None


class TestPlanning:
    def test_departure_subtracts_travel_time(self):
        obs = _many([5, 5, 5], bin_idx=40)
        for b in range(36, 40):
            obs += _many([30, 30, 30], bin_idx=b)
        plan = plan_departure(build_profiles(obs), "gotthard", "S", MONDAY, "09:00", "10:00", 90)

        assert plan.arrive_bin == 40
        assert plan.arrive_time == "10:00"
        assert plan.depart_bin == 34
        assert plan.depart_time == "08:30"
        assert plan.expected.minutes == 5

    def test_departure_floored_at_midnight(self):
        plan = plan_departure(build_profiles(_many([5, 5, 5], bin_idx=2)),
                              "gotthard", "S", MONDAY, "00:00", "01:00", 120)
        assert plan.depart_bin == 0
        assert plan.depart_time == "00:00"

    def test_no_history_no_plan(self):
        assert plan_departure({}, "gotthard", "S", MONDAY, "08:00", "18:00", 60) is None

    def test_day_series(self):
        series = day_series(build_profiles(_many([12, 12, 12])), "gotthard", "S", MONDAY)
        assert len(series) == BINS_PER_DAY
        assert series[0][0] == "00:00"
        assert series[40] == ("10:00", 12)
        assert day_series({}, "gotthard", "S", MONDAY)[40] == ("10:00", None)


class TestParseTimestamp:
    def test_utc_suffix(self):
        assert parse_timestamp("2024-03-18T09:00:00Z") == datetime(2024, 3, 18, 9, 0, tzinfo=timezone.utc)

    def test_short_offset_with_fraction(self):
        dt = parse_timestamp("2024-03-18 09:00:00.12+00")
        assert dt == datetime(2024, 3, 18, 9, 0, 0, 120000, tzinfo=timezone.utc)

    def test_naive_stays_naive(self):
        assert parse_timestamp("2024-03-18T10:00:00").tzinfo is None

    @pytest.mark.parametrize("text", ["n/a", "", "yesterday", "2024-13-40"])
    def test_unreadable(self, text):
        assert parse_timestamp(text) is None
