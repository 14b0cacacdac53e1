"""Test suite for period_calendar.py.

Covers: workday counting, period label parsing and generation, type
detection precedence, quarter ordering, quarter sampling and the sprint
calendar (bye weeks, year-end tail, settings changes).
"""

from datetime import date, datetime, timedelta

import pytest

from period_calendar import (
    PERIOD_PARSERS,
    compare_quarters,
    count_working_days,
    detect_period_type,
    format_date_range,
    generate_months,
    generate_periods,
    generate_quarters,
    generate_sprints,
    generate_weeks,
    generate_years,
    get_current_sprint,
    get_holidays_in_quarter,
    get_next_quarter,
    get_previous_quarter,
    get_quarters_between,
    get_upcoming_sprints,
    get_week_label,
    holidays_by_country,
    is_holiday,
    is_quarter_in_range,
    is_weekend,
    is_working_day,
    norm_date,
    parse_month,
    parse_period,
    parse_quarter,
    parse_sprint,
    parse_week,
    parse_year,
    period_to_quarters,
    quarter_to_index,
    sprint_config,
    sprint_for_date,
    sprint_to_quarters,
    sprint_year_start,
    sprints_for_quarter,
    sprints_for_year,
    workdays_in,
    workdays_in_sprint,
)


SPRINT_SETTINGS = {
    "sprint_duration_weeks": 3,
    "sprint_start_date": "2026-01-05",
    "sprints_per_year": 16,
    "bye_weeks_after": [8, 12],
    "holiday_weeks_at_end": 2,
}

NL_HOLIDAYS = [
    {"date": datetime(2026, 1, 1), "name": "New Year's Day", "country_id": "country-nl"},
    {"date": "2026-04-03", "name": "Good Friday", "country_id": "country-nl"},
    {"date": datetime(2026, 1, 1), "name": "New Year's Day", "country_id": "country-uk"},
]


# ── Workdays ────────────────────────────────────────────────────────────────


class TestNormDate:
    def test_datetime_to_midnight(self):
        assert norm_date(datetime(2026, 3, 2, 15, 30)) == datetime(2026, 3, 2)

    def test_date_to_datetime(self):
        assert norm_date(date(2026, 3, 2)) == datetime(2026, 3, 2)

    def test_invalid_type_raises(self):
        with pytest.raises(TypeError):
            norm_date("2026-03-02")


class TestIsWeekend:
    def test_saturday(self):
        assert is_weekend(datetime(2026, 3, 7)) is True

    def test_sunday(self):
        assert is_weekend(datetime(2026, 3, 8)) is True

    def test_monday(self):
        assert is_weekend(datetime(2026, 3, 2)) is False


class TestIsHoliday:
    def test_exact_match(self):
        assert is_holiday(datetime(2026, 1, 1), {datetime(2026, 1, 1)}) is True

    def test_time_of_day_ignored(self):
        assert is_holiday(datetime(2026, 1, 1, 9, 0), {datetime(2026, 1, 1)}) is True

    def test_other_date(self):
        assert is_holiday(datetime(2026, 1, 2), {datetime(2026, 1, 1)}) is False

    def test_no_holidays(self):
        assert is_holiday(datetime(2026, 1, 1), None) is False
        assert is_holiday(datetime(2026, 1, 1), set()) is False


class TestCountWorkingDays:
    def test_single_week(self):
        assert count_working_days(datetime(2026, 3, 2), datetime(2026, 3, 6)) == 5

    def test_full_calendar_week(self):
        assert count_working_days(datetime(2026, 3, 2), datetime(2026, 3, 8)) == 5

    def test_with_holiday(self):
        holidays = {datetime(2026, 3, 4)}
        assert count_working_days(datetime(2026, 3, 2), datetime(2026, 3, 6), holidays) == 4

    def test_weekend_holiday_no_effect(self):
        holidays = {datetime(2026, 3, 7)}
        assert count_working_days(datetime(2026, 3, 2), datetime(2026, 3, 8), holidays) == 5

    def test_same_day(self):
        assert count_working_days(datetime(2026, 3, 2), datetime(2026, 3, 2)) == 1

    def test_end_before_start_returns_zero(self):
        assert count_working_days(datetime(2026, 3, 6), datetime(2026, 3, 2)) == 0

    def test_is_working_day_combines_both(self):
        assert is_working_day(datetime(2026, 3, 2)) is True
        assert is_working_day(datetime(2026, 3, 7)) is False
        assert is_working_day(datetime(2026, 3, 2), {datetime(2026, 3, 2)}) is False


class TestWorkdaysIn:
    def test_q1_2026_weekdays(self):
        # 22 (Jan) + 20 (Feb) + 22 (Mar)
        assert workdays_in(parse_quarter("Q1 2026")) == 64

    def test_q1_2026_netherlands(self):
        holidays = holidays_by_country("country-nl", NL_HOLIDAYS)
        assert workdays_in(parse_quarter("Q1 2026"), holidays) == 63

    def test_year_2026(self):
        assert workdays_in(parse_year("2026")) == 261

    def test_unparseable_period_is_zero(self):
        assert workdays_in(parse_quarter("Q9 2026")) == 0
        assert workdays_in(None) == 0

    @pytest.mark.parametrize("label", ["W10 2026", "Feb 2024", "Q3 2025", "2024"])
    def test_empty_holidays_is_calendar_days_minus_weekends(self, label):
        period = parse_period(label)
        calendar_days = (period["end"] - period["start"]).days + 1
        weekend_days = sum(1 for i in range(calendar_days)
                           if (period["start"] + timedelta(days=i)).weekday() >= 5)
        assert workdays_in(period, set()) == calendar_days - weekend_days
        assert workdays_in(period, set()) <= calendar_days


class TestHolidaysByCountry:
    def test_filters_by_country(self):
        assert holidays_by_country("country-nl", NL_HOLIDAYS) == {
            datetime(2026, 1, 1), datetime(2026, 4, 3)}

    def test_unknown_country_is_empty(self):
        assert holidays_by_country("country-xx", NL_HOLIDAYS) == set()

    def test_holidays_in_quarter(self):
        found = get_holidays_in_quarter("Q2 2026", "country-nl", NL_HOLIDAYS)
        assert [h["name"] for h in found] == ["Good Friday"]

    def test_holidays_in_bad_quarter(self):
        assert get_holidays_in_quarter("Q2", "country-nl", NL_HOLIDAYS) == []


# ── Period Parsing ──────────────────────────────────────────────────────────


class TestParseWeek:
    def test_week_one_starts_in_previous_year(self):
        # 1 Jan 2026 is a Thursday, so W1 starts Monday 29 Dec 2025
        week = parse_week("W1 2026")
        assert week["start"] == datetime(2025, 12, 29)
        assert week["end"] == datetime(2026, 1, 4)
        assert week["week"] == 1 and week["year"] == 2026

    def test_week_53_exists_in_2026(self):
        assert parse_week("W53 2026")["start"] == datetime(2026, 12, 28)

    def test_week_53_missing_in_2025(self):
        assert parse_week("W53 2025") is None

    def test_week_zero_rejected(self):
        assert parse_week("W0 2026") is None

    def test_case_sensitive(self):
        assert parse_week("w1 2026") is None

    def test_two_digit_year_rejected(self):
        assert parse_week("W1 26") is None

    def test_label_round_trip(self):
        assert get_week_label(parse_week("W14 2026")["start"]) == "W14 2026"


class TestParseMonth:
    def test_leap_february(self):
        month = parse_month("Feb 2024")
        assert month["start"] == datetime(2024, 2, 1)
        assert month["end"] == datetime(2024, 2, 29)

    def test_common_february(self):
        assert parse_month("Feb 2026")["end"] == datetime(2026, 2, 28)

    def test_lowercase_rejected(self):
        assert parse_month("feb 2026") is None

    def test_unknown_abbreviation(self):
        assert parse_month("Foo 2026") is None

    def test_full_name_rejected(self):
        assert parse_month("February 2026") is None


class TestParseQuarter:
    @pytest.mark.parametrize("q, start, end", [
        (1, datetime(2026, 1, 1), datetime(2026, 3, 31)),
        (2, datetime(2026, 4, 1), datetime(2026, 6, 30)),
        (3, datetime(2026, 7, 1), datetime(2026, 9, 30)),
        (4, datetime(2026, 10, 1), datetime(2026, 12, 31)),
    ])
    def test_boundaries(self, q, start, end):
        quarter = parse_quarter(f"Q{q} 2026")
        assert quarter["start"] == start
        assert quarter["end"] == end
        assert quarter["quarter"] == q

    def test_quarter_five_rejected(self):
        assert parse_quarter("Q5 2026") is None

    def test_missing_year_rejected(self):
        assert parse_quarter("Q1") is None

    def test_non_string(self):
        assert parse_quarter(None) is None


class TestParseYear:
    def test_full_year(self):
        year = parse_year("2026")
        assert year["start"] == datetime(2026, 1, 1)
        assert year["end"] == datetime(2026, 12, 31)

    def test_two_digit_rejected(self):
        assert parse_year("26") is None


class TestParsePeriod:
    @pytest.mark.parametrize("label, kind", [
        ("26-09", "sprint"),
        ("W5 2026", "week"),
        ("Q2 2026", "quarter"),
        ("2026", "year"),
        ("Mar 2026", "month"),
    ])
    def test_detects_type(self, label, kind):
        assert detect_period_type(label) == kind
        assert parse_period(label, SPRINT_SETTINGS)["type"] == kind

    def test_garbage_is_none(self):
        assert parse_period("next tuesday") is None
        assert detect_period_type("next tuesday") is None

    def test_precedence_order(self):
        assert [kind for kind, _, _ in PERIOD_PARSERS] == [
            "sprint", "week", "quarter", "year", "month"]

    def test_matched_but_invalid_sprint_does_not_fall_through(self):
        assert detect_period_type("26-17") == "sprint"
        assert parse_period("26-17", SPRINT_SETTINGS) is None

    def test_surrounding_whitespace_ignored(self):
        assert parse_period("  Q1 2026 ")["label"] == "Q1 2026"


class TestGeneratePeriods:
    def test_weeks(self):
        assert generate_weeks(3, datetime(2026, 1, 1)) == ["W1 2026", "W2 2026", "W3 2026"]

    def test_weeks_anchor_in_previous_year(self):
        assert generate_weeks(2, datetime(2025, 12, 29)) == ["W1 2026", "W2 2026"]

    def test_months_wrap_year(self):
        assert generate_months(3, datetime(2026, 11, 15)) == ["Nov 2026", "Dec 2026", "Jan 2027"]

    def test_quarters(self):
        assert generate_quarters(5, datetime(2026, 10, 19)) == [
            "Q4 2026", "Q1 2027", "Q2 2027", "Q3 2027", "Q4 2027"]

    def test_years(self):
        assert generate_years(2, datetime(2026, 5, 1)) == ["2026", "2027"]

    def test_unknown_view(self):
        with pytest.raises(ValueError):
            generate_periods("fortnight", 2, datetime(2026, 1, 1))


# ── Quarter Ordering ────────────────────────────────────────────────────────


class TestQuarterOrdering:
    QUARTERS = ["Q1 2026", "Q2 2026", "Q3 2026", "Q4 2026"]

    def test_index(self):
        assert quarter_to_index("Q3 2026", self.QUARTERS) == 2

    def test_unknown_index(self):
        assert quarter_to_index("Q1 2027", self.QUARTERS) == -1

    def test_in_range(self):
        assert is_quarter_in_range("Q2 2026", "Q1 2026", "Q3 2026", self.QUARTERS) is True

    def test_range_inclusive(self):
        assert is_quarter_in_range("Q3 2026", "Q1 2026", "Q3 2026", self.QUARTERS) is True

    def test_out_of_range(self):
        assert is_quarter_in_range("Q4 2026", "Q1 2026", "Q3 2026", self.QUARTERS) is False

    def test_unknown_quarter_never_in_range(self):
        assert is_quarter_in_range("Q1 2027", "Q1 2026", "Q4 2026", self.QUARTERS) is False

    def test_unknown_bounds_never_in_range(self):
        assert is_quarter_in_range("Q2 2026", "Q1 2025", "Q4 2026", self.QUARTERS) is False
        assert is_quarter_in_range("Q2 2026", "Q1 2026", "Q4 2027", self.QUARTERS) is False

    def test_position_not_date_decides(self):
        shuffled = ["Q3 2026", "Q1 2026", "Q2 2026"]
        assert is_quarter_in_range("Q1 2026", "Q3 2026", "Q2 2026", shuffled) is True

    def test_compare(self):
        assert compare_quarters("Q1 2026", "Q4 2025") > 0
        assert compare_quarters("Q2 2026", "Q3 2026") < 0
        assert compare_quarters("Q2 2026", "Q2 2026") == 0
        assert compare_quarters("bad", "Q2 2026") == 0

    def test_between(self):
        assert get_quarters_between("Q3 2026", "Q2 2027") == [
            "Q3 2026", "Q4 2026", "Q1 2027", "Q2 2027"]
        assert get_quarters_between("Q3 2026", "Q2 2026") == []
        assert get_quarters_between("Q3 2026", "later") == []

    def test_next_and_previous(self):
        assert get_next_quarter("Q4 2026") == "Q1 2027"
        assert get_previous_quarter("Q1 2026") == "Q4 2025"
        assert get_next_quarter("bad") == "bad"


class TestPeriodToQuarters:
    def test_month(self):
        assert period_to_quarters(parse_month("Mar 2026")) == ["Q1 2026"]

    def test_year(self):
        assert period_to_quarters(parse_year("2026")) == [
            "Q1 2026", "Q2 2026", "Q3 2026", "Q4 2026"]

    def test_week_straddling_quarters_only_samples_start(self):
        # W14 2026 runs 30 Mar - 5 Apr; the monthly walk only samples 30 Mar
        week = parse_week("W14 2026")
        assert week["start"] == datetime(2026, 3, 30)
        assert period_to_quarters(week) == ["Q1 2026"]

    def test_sprint_weekly_walk_reaches_next_quarter(self):
        sprint = parse_sprint("26-05", SPRINT_SETTINGS)
        assert sprint["start"] == datetime(2026, 3, 30)
        assert sprint_to_quarters(sprint) == ["Q1 2026", "Q2 2026"]

    def test_none(self):
        assert period_to_quarters(None) == []
        assert sprint_to_quarters(None) == []


# ── Sprint Calendar ─────────────────────────────────────────────────────────


class TestSprintConfig:
    def test_defaults(self):
        config = sprint_config({})
        assert config["duration_weeks"] == 3
        assert config["start_date"] == datetime(2026, 1, 5)
        assert config["sprints_per_year"] == 16
        assert config["bye_weeks_after"] == {8, 12}
        assert config["holiday_weeks_at_end"] == 2

    def test_none_values_fall_back(self):
        assert sprint_config({"sprint_duration_weeks": None})["duration_weeks"] == 3

    def test_year_start_shifts_by_calendar_year(self):
        assert sprint_year_start(2027, SPRINT_SETTINGS) == datetime(2027, 1, 5)

    def test_no_start_date_uses_first_monday(self):
        # 1 Jan 2027 is a Friday
        assert sprint_year_start(2027, {"sprint_start_date": None}) == datetime(2027, 1, 4)


class TestParseSprint:
    def test_first_sprint(self):
        sprint = parse_sprint("26-01", SPRINT_SETTINGS)
        assert sprint["start"] == datetime(2026, 1, 5)
        assert sprint["end"] == datetime(2026, 1, 25)
        assert sprint["number"] == 1 and sprint["year"] == 2026

    def test_sprint_after_bye_week(self):
        # 8 sprints (24 weeks) + 1 bye week = 25 weeks after 5 Jan
        sprint = parse_sprint("26-09", SPRINT_SETTINGS)
        assert sprint["start"] == datetime(2026, 6, 29)
        assert sprint["end"] == datetime(2026, 7, 19)

    def test_consecutive_sprints_without_bye(self):
        s2 = parse_sprint("26-02", SPRINT_SETTINGS)
        s3 = parse_sprint("26-03", SPRINT_SETTINGS)
        assert s3["start"] - s2["start"] == timedelta(days=21)

    def test_two_bye_weeks(self):
        assert parse_sprint("26-13", SPRINT_SETTINGS)["start"] == datetime(2026, 9, 28)

    def test_last_sprint(self):
        sprint = parse_sprint("26-16", SPRINT_SETTINGS)
        assert sprint["start"] == datetime(2026, 11, 30)
        assert sprint["end"] == datetime(2026, 12, 20)

    def test_next_year(self):
        assert parse_sprint("27-01", SPRINT_SETTINGS)["start"] == datetime(2027, 1, 5)

    def test_out_of_range_numbers(self):
        assert parse_sprint("26-00", SPRINT_SETTINGS) is None
        assert parse_sprint("26-17", SPRINT_SETTINGS) is None

    def test_bad_label(self):
        assert parse_sprint("Sprint 1", SPRINT_SETTINGS) is None

    def test_settings_reread_on_each_call(self):
        before = parse_sprint("26-02", SPRINT_SETTINGS)
        after = parse_sprint("26-02", {**SPRINT_SETTINGS, "sprint_duration_weeks": 2})
        assert before["start"] == datetime(2026, 1, 26)
        assert after["start"] == datetime(2026, 1, 19)

    def test_quarter_of_start(self):
        assert parse_sprint("26-09", SPRINT_SETTINGS)["quarter"] == "Q2 2026"


class TestSprintForDate:
    def test_first_day(self):
        position = sprint_for_date(datetime(2026, 1, 5), SPRINT_SETTINGS)
        assert position["label"] == "26-01"
        assert position["is_bye_week"] is False
        assert position["is_holiday_period"] is False

    def test_sprint_boundary(self):
        assert sprint_for_date(datetime(2026, 1, 25), SPRINT_SETTINGS)["number"] == 1
        assert sprint_for_date(datetime(2026, 1, 26), SPRINT_SETTINGS)["number"] == 2

    def test_bye_week_belongs_to_preceding_sprint(self):
        position = sprint_for_date(datetime(2026, 6, 24), SPRINT_SETTINGS)
        assert position["number"] == 8
        assert position["is_bye_week"] is True

    def test_after_bye_week(self):
        assert sprint_for_date(datetime(2026, 6, 29), SPRINT_SETTINGS)["label"] == "26-09"

    def test_year_end_tail(self):
        position = sprint_for_date(datetime(2026, 12, 21), SPRINT_SETTINGS)
        assert position["number"] == 16
        assert position["is_holiday_period"] is True

    def test_early_january_belongs_to_previous_year_tail(self):
        position = sprint_for_date(datetime(2027, 1, 2), SPRINT_SETTINGS)
        assert position["label"] == "26-16"
        assert position["is_holiday_period"] is True

    def test_consistent_with_parse_sprint(self):
        for number in range(1, 17):
            sprint = parse_sprint(f"26-{number:02d}", SPRINT_SETTINGS)
            d = sprint["start"]
            while d <= sprint["end"]:
                position = sprint_for_date(d, SPRINT_SETTINGS)
                assert position["number"] == number, d
                assert not position["is_bye_week"]
                d += timedelta(days=1)


class TestSprintLists:
    def test_generate_wraps_year(self):
        assert generate_sprints(4, 2026, 15, SPRINT_SETTINGS) == [
            "26-15", "26-16", "27-01", "27-02"]

    def test_year_with_bye_weeks(self):
        sprints = sprints_for_year(2026, SPRINT_SETTINGS, include_bye_weeks=True)
        assert len(sprints) == 18
        bye = sprints[8]
        assert bye["is_bye_week"] is True
        assert bye["number"] == 8
        assert bye["start"] == datetime(2026, 6, 22)
        assert bye["end"] == datetime(2026, 6, 28)

    def test_year_without_bye_weeks(self):
        assert len(sprints_for_year(2026, SPRINT_SETTINGS)) == 16

    def test_sprints_for_quarter(self):
        numbers = [s["number"] for s in sprints_for_quarter("Q3 2026", SPRINT_SETTINGS)]
        assert numbers == [10, 11, 12, 13]

    def test_current_sprint(self):
        assert get_current_sprint(SPRINT_SETTINGS, datetime(2026, 10, 19))["label"] == "26-14"

    def test_no_current_sprint_in_bye_week(self):
        assert get_current_sprint(SPRINT_SETTINGS, datetime(2026, 6, 24)) is None

    def test_upcoming_sprints_cross_year(self):
        upcoming = get_upcoming_sprints(SPRINT_SETTINGS, 3, datetime(2026, 12, 1))
        assert [s["label"] for s in upcoming] == ["27-01", "27-02", "27-03"]

    def test_workdays_in_sprint(self):
        assert workdays_in_sprint(parse_sprint("26-01", SPRINT_SETTINGS)) == 15

    def test_bye_week_has_no_workdays(self):
        bye = sprints_for_year(2026, SPRINT_SETTINGS, include_bye_weeks=True)[8]
        assert workdays_in_sprint(bye) == 0

    def test_generate_periods_skips_bye_week(self):
        assert generate_periods("sprint", 2, datetime(2026, 6, 24), SPRINT_SETTINGS) == [
            "26-09", "26-10"]

    def test_generate_periods_skips_year_end_tail(self):
        assert generate_periods("sprint", 2, datetime(2026, 12, 24), SPRINT_SETTINGS) == [
            "27-01", "27-02"]

    def test_format_date_range(self):
        assert format_date_range(datetime(2026, 1, 5), datetime(2026, 1, 25)) == "5 Jan - 25 Jan"
