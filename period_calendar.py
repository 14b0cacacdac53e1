"""
Period and sprint calendar algebra for the capacity planner.

Resolves period labels into concrete date ranges and counts working days
against a country's public holidays:
  - Weeks      "W7 2026"   (ISO weeks, Monday start)
  - Months     "Feb 2026"
  - Quarters   "Q1 2026"
  - Years      "2026"
  - Sprints    "26-09"     (custom multi-week cadence with bye weeks)

Malformed labels resolve to None rather than raising. Sprint labels are not
self-describing, so every sprint function takes the settings dict explicitly
and re-reads it on each call.
"""

import re
from calendar import monthrange
from datetime import date, datetime, timedelta


# ── Constants ────────────────────────────────────────────────────────────────

MONTH_ABBREVIATIONS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                       "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

SPRINT_RE = re.compile(r"^(\d{2})-(\d{2})$")
WEEK_RE = re.compile(r"^W(\d{1,2})\s+(\d{4})$")
QUARTER_RE = re.compile(r"^Q([1-4])\s+(\d{4})$")
YEAR_RE = re.compile(r"^(\d{4})$")
MONTH_RE = re.compile(r"^([A-Z][a-z]{2})\s+(\d{4})$")

DEFAULT_SPRINT_DURATION_WEEKS = 3
DEFAULT_SPRINT_START_DATE = "2026-01-05"
DEFAULT_SPRINTS_PER_YEAR = 16
DEFAULT_BYE_WEEKS_AFTER = (8, 12)
DEFAULT_HOLIDAY_WEEKS_AT_END = 2


# ── Date Helpers ─────────────────────────────────────────────────────────────

def norm_date(d):
    """Normalise to midnight datetime for safe set membership checks."""
    if isinstance(d, datetime):
        return datetime(d.year, d.month, d.day)
    if isinstance(d, date):
        return datetime(d.year, d.month, d.day)
    raise TypeError(f"norm_date expected date or datetime, got {type(d).__name__}: {d!r}")


def parse_iso_date(val):
    """Parse 'YYYY-MM-DD' (or pass through a date). Returns None if unparseable."""
    if val is None:
        return None
    if isinstance(val, (datetime, date)):
        return norm_date(val)
    try:
        return datetime.strptime(str(val).strip()[:10], "%Y-%m-%d")
    except ValueError:
        return None


def get_week_start(d):
    """Get the Monday of the week containing the given date."""
    d = norm_date(d)
    return d - timedelta(days=d.weekday())


def first_monday_of_year(year):
    d = datetime(year, 1, 1)
    return d + timedelta(days=(7 - d.weekday()) % 7)


def _add_months(d, months):
    """Shift by whole calendar months, clamping the day to the target month's length."""
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    day = min(d.day, monthrange(year, month + 1)[1])
    return datetime(year, month + 1, day)


def format_date(d):
    return norm_date(d).strftime("%Y-%m-%d")


def format_date_range(start, end):
    """'5 Jan - 25 Jan' style range for headers."""
    return f"{start.day} {start.strftime('%b')} - {end.day} {end.strftime('%b')}"


# ── Workdays & Holidays ──────────────────────────────────────────────────────

def is_weekend(d):
    """Saturday or Sunday."""
    return d.weekday() >= 5


def is_holiday(d, public_holidays=None):
    """Exact calendar-date match against a set of holiday dates."""
    if not public_holidays:
        return False
    return norm_date(d) in public_holidays


def is_working_day(d, public_holidays=None):
    """Check if a date is a working day (not weekend, not public holiday)."""
    return not is_weekend(d) and not is_holiday(d, public_holidays)


def count_working_days(start, end, public_holidays=None):
    """Count working days between start and end (inclusive)."""
    d, end_d = norm_date(start), norm_date(end)
    count = 0
    while d <= end_d:
        if is_working_day(d, public_holidays):
            count += 1
        d += timedelta(days=1)
    return count


def workdays_in(period, public_holidays=None):
    """Working days inside a resolved period. An unparseable period counts as 0."""
    if not period:
        return 0
    return count_working_days(period["start"], period["end"], public_holidays)


def holidays_by_country(country_id, public_holidays):
    """Holiday dates for one country as a set[datetime].

    public_holidays is a list of {"date", "name", "country_id"} records.
    """
    dates = set()
    for holiday in public_holidays or []:
        if holiday.get("country_id") != country_id:
            continue
        d = parse_iso_date(holiday.get("date"))
        if d is not None:
            dates.add(d)
    return dates


# ── Period Parsing ───────────────────────────────────────────────────────────

def _match(pattern, label):
    if not isinstance(label, str):
        return None
    return pattern.match(label.strip())


def parse_week(label):
    """'W<n> <yyyy>' -> ISO week period (Monday to Sunday), or None."""
    m = _match(WEEK_RE, label)
    if not m:
        return None
    week, year = int(m.group(1)), int(m.group(2))
    try:
        start = datetime.fromisocalendar(year, week, 1)
    except ValueError:
        return None
    return {
        "type": "week",
        "label": f"W{week} {year}",
        "start": start,
        "end": start + timedelta(days=6),
        "week": week,
        "year": year,
    }


def parse_month(label):
    """'<Mon> <yyyy>' -> month period, or None."""
    m = _match(MONTH_RE, label)
    if not m or m.group(1) not in MONTH_ABBREVIATIONS:
        return None
    month = MONTH_ABBREVIATIONS.index(m.group(1)) + 1
    year = int(m.group(2))
    if year < 1:
        return None
    return {
        "type": "month",
        "label": f"{m.group(1)} {year}",
        "start": datetime(year, month, 1),
        "end": datetime(year, month, monthrange(year, month)[1]),
        "month": month,
        "year": year,
    }


def parse_quarter(label):
    """'Q<1-4> <yyyy>' -> quarter period, or None."""
    m = _match(QUARTER_RE, label)
    if not m:
        return None
    quarter, year = int(m.group(1)), int(m.group(2))
    if year < 1:
        return None
    start_month = (quarter - 1) * 3 + 1
    end_month = start_month + 2
    return {
        "type": "quarter",
        "label": f"Q{quarter} {year}",
        "start": datetime(year, start_month, 1),
        "end": datetime(year, end_month, monthrange(year, end_month)[1]),
        "quarter": quarter,
        "year": year,
    }


def parse_year(label):
    """'<yyyy>' -> calendar year period, or None."""
    m = _match(YEAR_RE, label)
    if not m:
        return None
    year = int(m.group(1))
    if year < 1:
        return None
    return {
        "type": "year",
        "label": str(year),
        "start": datetime(year, 1, 1),
        "end": datetime(year, 12, 31),
        "year": year,
    }


# ── Period Labels ────────────────────────────────────────────────────────────

def get_week_label(d):
    iso = d.isocalendar()
    return f"W{iso[1]} {iso[0]}"


def get_month_label(d):
    return f"{MONTH_ABBREVIATIONS[d.month - 1]} {d.year}"


def get_quarter_label(d):
    """Return 'Q1 2026' style label for a date."""
    quarter = (d.month - 1) // 3 + 1
    return f"Q{quarter} {d.year}"


def get_current_quarter(today=None):
    return get_quarter_label(today or datetime.now())


def generate_weeks(count, anchor=None):
    """ISO week labels starting with the week containing anchor (default: today)."""
    start = get_week_start(anchor or datetime.now())
    return [get_week_label(start + timedelta(weeks=i)) for i in range(count)]


def generate_months(count, anchor=None):
    anchor = norm_date(anchor or datetime.now())
    first = datetime(anchor.year, anchor.month, 1)
    return [get_month_label(_add_months(first, i)) for i in range(count)]


def generate_quarters(count=8, anchor=None):
    """Quarter labels starting with the quarter containing anchor (default: today)."""
    label = get_current_quarter(anchor)
    quarters = []
    for _ in range(count):
        quarters.append(label)
        label = get_next_quarter(label)
    return quarters


def generate_years(count, anchor=None):
    year = (anchor or datetime.now()).year
    return [str(year + i) for i in range(count)]


# ── Quarter Ordering ─────────────────────────────────────────────────────────
#
# Phase ranges are matched by position in an explicit ordered quarter list.
# A quarter missing from the list has index -1 and is never in range.

def quarter_to_index(quarter, quarters):
    try:
        return quarters.index(quarter)
    except ValueError:
        return -1


def is_quarter_in_range(quarter, start_quarter, end_quarter, quarters):
    """Inclusive range check by list position."""
    idx = quarter_to_index(quarter, quarters)
    start_idx = quarter_to_index(start_quarter, quarters)
    end_idx = quarter_to_index(end_quarter, quarters)
    if idx == -1 or start_idx == -1 or end_idx == -1:
        return False
    return start_idx <= idx <= end_idx


def compare_quarters(a, b):
    """Negative if a < b, 0 if equal (or either unparseable), positive if a > b."""
    qa, qb = parse_quarter(a), parse_quarter(b)
    if not qa or not qb:
        return 0
    if qa["year"] != qb["year"]:
        return qa["year"] - qb["year"]
    return qa["quarter"] - qb["quarter"]


def get_next_quarter(quarter):
    q = parse_quarter(quarter)
    if not q:
        return quarter
    if q["quarter"] == 4:
        return f"Q1 {q['year'] + 1}"
    return f"Q{q['quarter'] + 1} {q['year']}"


def get_previous_quarter(quarter):
    q = parse_quarter(quarter)
    if not q:
        return quarter
    if q["quarter"] == 1:
        return f"Q4 {q['year'] - 1}"
    return f"Q{q['quarter'] - 1} {q['year']}"


def get_quarters_between(start_quarter, end_quarter):
    """All quarter labels from start to end inclusive ([] if either is unparseable)."""
    if not parse_quarter(start_quarter) or not parse_quarter(end_quarter):
        return []
    quarters = []
    label = parse_quarter(start_quarter)["label"]
    while compare_quarters(label, end_quarter) <= 0:
        quarters.append(label)
        label = get_next_quarter(label)
    return quarters


def get_work_weeks_in_quarter(quarter, public_holidays=None):
    return workdays_in(parse_quarter(quarter), public_holidays) / 5


def get_holidays_in_quarter(quarter, country_id, public_holidays):
    """Holiday records of one country that fall inside the quarter."""
    q = parse_quarter(quarter)
    if not q:
        return []
    found = []
    for holiday in public_holidays or []:
        if holiday.get("country_id") != country_id:
            continue
        d = parse_iso_date(holiday.get("date"))
        if d is not None and q["start"] <= d <= q["end"]:
            found.append(holiday)
    return found


def _sampled_quarters(start, end, step):
    quarters = []
    d = start
    while d <= end:
        label = get_quarter_label(d)
        if label not in quarters:
            quarters.append(label)
        d = step(d)
    return quarters


def period_to_quarters(period):
    """Quarter labels touched by the period, sampled at monthly steps from its start.

    Sampling can miss a quarter that only the tail of a short period reaches
    (e.g. a week starting 30 Mar only reports Q1).
    """
    if not period:
        return []
    return _sampled_quarters(period["start"], period["end"], lambda d: _add_months(d, 1))


def sprint_to_quarters(sprint):
    """Quarter labels touched by the sprint, sampled at weekly steps from its start."""
    if not sprint:
        return []
    return _sampled_quarters(sprint["start"], sprint["end"], lambda d: d + timedelta(weeks=1))


# ── Sprint Calendar ──────────────────────────────────────────────────────────

def sprint_config(settings=None):
    """Build the sprint configuration from settings, falling back to defaults.

    Rebuilt on every call; sprint settings can change between calls.
    """
    settings = settings or {}

    def pick(key, default):
        value = settings.get(key)
        return default if value is None else value

    start = settings.get("sprint_start_date", DEFAULT_SPRINT_START_DATE)
    return {
        "duration_weeks": int(pick("sprint_duration_weeks", DEFAULT_SPRINT_DURATION_WEEKS)),
        "start_date": parse_iso_date(start) if start else None,
        "sprints_per_year": int(pick("sprints_per_year", DEFAULT_SPRINTS_PER_YEAR)),
        "bye_weeks_after": {int(n) for n in pick("bye_weeks_after", DEFAULT_BYE_WEEKS_AFTER)},
        # Descriptive only: the gap between the last sprint and next year's first
        # sprint falls out of the start date, it is not added here.
        "holiday_weeks_at_end": int(pick("holiday_weeks_at_end", DEFAULT_HOLIDAY_WEEKS_AT_END)),
    }


def _year_start(year, config):
    base = config["start_date"]
    if base is None:
        return first_monday_of_year(year)
    day = min(base.day, monthrange(year, base.month)[1])
    return datetime(year, base.month, day)


def _sprint_start(year, number, config):
    weeks = 0
    for s in range(1, number):
        weeks += config["duration_weeks"]
        if s in config["bye_weeks_after"]:
            weeks += 1
    return _year_start(year, config) + timedelta(weeks=weeks)


def sprint_year_start(year, settings=None):
    """Start date of sprint 1 in the given year."""
    return _year_start(year, sprint_config(settings))


def format_sprint_label(year, number):
    return f"{year % 100:02d}-{number:02d}"


def _sprint_period(year, number, config):
    start = _sprint_start(year, number, config)
    return {
        "type": "sprint",
        "label": format_sprint_label(year, number),
        "start": start,
        "end": start + timedelta(days=config["duration_weeks"] * 7 - 1),
        "number": number,
        "year": year,
        "quarter": get_quarter_label(start),
        "is_bye_week": False,
    }


def parse_sprint(label, settings=None):
    """'YY-NN' -> sprint period under the current settings, or None.

    Sprint numbers outside 1..sprints_per_year are rejected.
    """
    m = _match(SPRINT_RE, label)
    if not m:
        return None
    config = sprint_config(settings)
    year, number = 2000 + int(m.group(1)), int(m.group(2))
    if number < 1 or number > config["sprints_per_year"] or config["duration_weeks"] < 1:
        return None
    return _sprint_period(year, number, config)


def sprint_for_date(d, settings=None):
    """Locate the sprint containing a date.

    A date inside a bye week belongs to the preceding sprint (is_bye_week);
    a date after the last sprint of its year belongs to the final sprint
    (is_holiday_period). Dates before a year's first sprint fall into the
    previous year's tail.
    """
    config = sprint_config(settings)
    d = norm_date(d)
    year = d.year
    if d < _year_start(year, config):
        year -= 1

    sprint_length = timedelta(weeks=config["duration_weeks"])
    last = config["sprints_per_year"]
    cursor = _year_start(year, config)
    for number in range(1, last + 1):
        cursor += sprint_length
        if d < cursor:
            return _sprint_position(year, number)
        if number in config["bye_weeks_after"]:
            cursor += timedelta(weeks=1)
            if d < cursor:
                return _sprint_position(year, number, is_bye_week=True)
    return _sprint_position(year, last, is_holiday_period=True)


def _sprint_position(year, number, is_bye_week=False, is_holiday_period=False):
    return {
        "label": format_sprint_label(year, number),
        "year": year,
        "number": number,
        "is_bye_week": is_bye_week,
        "is_holiday_period": is_holiday_period,
    }


def generate_sprints(count, start_year, start_sprint, settings=None):
    """Sprint labels rolling forward from (start_year, start_sprint).

    Wraps from sprints_per_year back to 1 in the next year.
    """
    config = sprint_config(settings)
    year, number = start_year, start_sprint
    labels = []
    for _ in range(count):
        labels.append(format_sprint_label(year, number))
        number += 1
        if number > config["sprints_per_year"]:
            number = 1
            year += 1
    return labels


def sprints_for_year(year, settings=None, include_bye_weeks=False):
    """All sprints of a year in date order, optionally with bye-week entries.

    A bye-week entry carries the number of the sprint it follows.
    """
    config = sprint_config(settings)
    sprints = []
    for number in range(1, config["sprints_per_year"] + 1):
        sprint = _sprint_period(year, number, config)
        sprints.append(sprint)
        if include_bye_weeks and number in config["bye_weeks_after"]:
            bye_start = sprint["end"] + timedelta(days=1)
            sprints.append({
                **sprint,
                "start": bye_start,
                "end": bye_start + timedelta(days=6),
                "quarter": get_quarter_label(bye_start),
                "is_bye_week": True,
            })
    return sprints


def sprints_for_quarter(quarter, settings=None):
    """Sprints whose start date falls inside the quarter."""
    q = parse_quarter(quarter)
    if not q:
        return []
    found = []
    for year in (q["year"] - 1, q["year"]):
        found.extend(s for s in sprints_for_year(year, settings) if s["quarter"] == q["label"])
    return found


def get_current_sprint(settings=None, today=None):
    """The sprint running today, or None during a bye week or the year-end tail."""
    position = sprint_for_date(today or datetime.now(), settings)
    if position["is_bye_week"] or position["is_holiday_period"]:
        return None
    return parse_sprint(position["label"], settings)


def get_upcoming_sprints(settings=None, count=6, today=None):
    today = norm_date(today or datetime.now())
    upcoming = []
    year = today.year - 1
    while len(upcoming) < count and year <= today.year + 2:
        upcoming.extend(s for s in sprints_for_year(year, settings) if s["start"] >= today)
        year += 1
    return upcoming[:count]


def workdays_in_sprint(sprint, public_holidays=None):
    if not sprint or sprint.get("is_bye_week"):
        return 0
    return workdays_in(sprint, public_holidays)


# ── Period Detection ─────────────────────────────────────────────────────────
#
# Ordered: the first pattern that matches decides the period type, even if
# its parser then rejects the label. Sprint must stay ahead of the others.

PERIOD_PARSERS = [
    ("sprint", SPRINT_RE, parse_sprint),
    ("week", WEEK_RE, lambda label, settings: parse_week(label)),
    ("quarter", QUARTER_RE, lambda label, settings: parse_quarter(label)),
    ("year", YEAR_RE, lambda label, settings: parse_year(label)),
    ("month", MONTH_RE, lambda label, settings: parse_month(label)),
]


def detect_period_type(label):
    if not isinstance(label, str):
        return None
    text = label.strip()
    for kind, pattern, _ in PERIOD_PARSERS:
        if pattern.match(text):
            return kind
    return None


def parse_period(label, settings=None):
    """Parse any period label, auto-detecting its type. None if unparseable."""
    if not isinstance(label, str):
        return None
    text = label.strip()
    for _, pattern, parser in PERIOD_PARSERS:
        if pattern.match(text):
            return parser(text, settings)
    return None


def generate_periods(view, count, anchor=None, settings=None):
    """Labels for `count` consecutive periods of one type starting at anchor."""
    anchor = norm_date(anchor or datetime.now())
    if view == "week":
        return generate_weeks(count, anchor)
    if view == "month":
        return generate_months(count, anchor)
    if view == "quarter":
        return generate_quarters(count, anchor)
    if view == "year":
        return generate_years(count, anchor)
    if view == "sprint":
        position = sprint_for_date(anchor, settings)
        year, number = position["year"], position["number"]
        if position["is_bye_week"] or position["is_holiday_period"]:
            number += 1
            if number > sprint_config(settings)["sprints_per_year"]:
                year, number = year + 1, 1
        return generate_sprints(count, year, number, settings)
    raise ValueError(f"Unknown period view: {view!r}")
