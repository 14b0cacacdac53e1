"""
Team Capacity Planner
Reads team members, projects, phases, time off and public holidays from Excel,
calculates per-quarter capacity for every member, projects quarterly
assignments onto weeks, months, sprints and years, and reports warnings.

Features:
  - Country-specific holiday calendars and exact workday counts
  - Flat BAU reserve per quarter, time off and project assignments
  - Proportional allocation for periods finer than a quarter
  - Custom sprint cadence with bye weeks
  - Overallocation, high utilisation, concurrent-project, skill, dependency
    and unassigned-phase warnings
  - Excel template with dropdowns, utilisation and heatmap charts as PNGs
"""

import argparse
import io
import math
import os
import re
import sys
from datetime import datetime

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from openpyxl import Workbook
from openpyxl.formatting.rule import CellIsRule
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.worksheet.datavalidation import DataValidation

from period_calendar import (
    DEFAULT_BYE_WEEKS_AFTER,
    DEFAULT_HOLIDAY_WEEKS_AT_END,
    DEFAULT_SPRINT_DURATION_WEEKS,
    DEFAULT_SPRINT_START_DATE,
    DEFAULT_SPRINTS_PER_YEAR,
    count_working_days,
    generate_periods,
    get_current_quarter,
    get_quarters_between,
    holidays_by_country,
    is_quarter_in_range,
    norm_date,
    parse_iso_date,
    parse_period,
    parse_quarter,
    period_to_quarters,
    quarter_to_index,
    sprint_config,
    sprint_to_quarters,
    workdays_in,
    workdays_in_sprint,
)


# ── Constants ────────────────────────────────────────────────────────────────

_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_INPUT = os.path.join(_DIR, "capacity_data.xlsx")

DEFAULT_SETTINGS = {
    "bau_reserve_days": 5,
    "hours_per_day": 8,
    "quarters_to_show": 4,
    "default_country_id": "country-nl",
    "sprint_duration_weeks": DEFAULT_SPRINT_DURATION_WEEKS,
    "sprint_start_date": DEFAULT_SPRINT_START_DATE,
    "sprints_to_show": 6,
    "sprints_per_year": DEFAULT_SPRINTS_PER_YEAR,
    "bye_weeks_after": list(DEFAULT_BYE_WEEKS_AFTER),
    "holiday_weeks_at_end": DEFAULT_HOLIDAY_WEEKS_AT_END,
}

PROJECT_STATUS_VALUES = ["Planning", "Active", "On Hold", "Completed", "Cancelled"]
PRIORITY_VALUES = ["High", "Medium", "Low"]
DEFAULT_MAX_CONCURRENT_PROJECTS = 2
HIGH_UTILISATION_PERCENT = 90

WARNING_KINDS = [
    "overallocated",
    "high_utilization",
    "too_many_projects",
    "skill_mismatch",
    "dependency_violation",
    "unassigned_phase",
]

WARNING_TITLES = {
    "overallocated": "Over-allocated",
    "high_utilization": "High utilisation",
    "too_many_projects": "Too many projects",
    "skill_mismatch": "Skill mismatch",
    "dependency_violation": "Dependency violation",
    "unassigned_phase": "Unassigned phase",
}

PERIOD_VIEWS = ["week", "month", "quarter", "sprint", "year"]

STYLE = {
    "font_family": "DejaVu Sans",
    "title_size": 18,
    "subtitle_size": 13,
    "label_size": 9.5,
    "tick_size": 8.5,
    "small_size": 7.5,
    "bg_color": "#FAFAFA",
    "panel_bg": "#FFFFFF",
    "text_primary": "#1A1A2E",
    "text_secondary": "#555555",
    "text_muted": "#999999",
    "grid_color": "#E0E0E0",
    "over_capacity_color": "#E53935",
    "warning_color": "#FF8F00",
    "under_capacity_colors": ["#43A047", "#1E88E5", "#8E24AA", "#FB8C00"],
    "capacity_line_color": "#1A1A2E",
    "dpi": 180,
}


# ── Style Helpers ────────────────────────────────────────────────────────────

def apply_style():
    """Configure matplotlib rcParams for consistent styling."""
    plt.rcParams.update({
        "font.family": STYLE["font_family"],
        "font.size": STYLE["label_size"],
        "axes.facecolor": STYLE["panel_bg"],
        "figure.facecolor": STYLE["bg_color"],
        "axes.edgecolor": STYLE["grid_color"],
        "axes.linewidth": 0.8,
        "axes.grid": False,
        "xtick.color": STYLE["text_secondary"],
        "ytick.color": STYLE["text_secondary"],
        "text.color": STYLE["text_primary"],
    })


def style_axes(ax, title="", ylabel="", show_grid_y=False):
    """Apply consistent axis styling to any subplot."""
    if title:
        ax.set_title(title, fontsize=STYLE["subtitle_size"], fontweight="bold",
                     color=STYLE["text_primary"], pad=12, loc="left")
    if ylabel:
        ax.set_ylabel(ylabel, fontsize=STYLE["label_size"], color=STYLE["text_secondary"])
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.spines["left"].set_linewidth(0.6)
    ax.spines["bottom"].set_linewidth(0.6)
    if show_grid_y:
        ax.grid(axis="y", alpha=0.15, linewidth=0.5, color=STYLE["grid_color"])
    ax.set_axisbelow(True)


def add_header_footer(fig, title, subtitle=""):
    """Add a title block and generation timestamp footer."""
    fig.suptitle(title, fontsize=STYLE["title_size"], fontweight="bold",
                 color=STYLE["text_primary"], y=0.98, x=0.04, ha="left")
    if subtitle:
        fig.text(0.04, 0.948, subtitle, fontsize=STYLE["small_size"] + 1,
                 color=STYLE["text_muted"], ha="left")
    fig.text(0.98, 0.008, f"Generated {datetime.now().strftime('%d %b %Y %H:%M')}",
             ha="right", fontsize=STYLE["small_size"], color=STYLE["text_muted"])
    fig.text(0.04, 0.008, "Team Capacity Planner",
             ha="left", fontsize=STYLE["small_size"], color=STYLE["text_muted"])


# ── Small Helpers ────────────────────────────────────────────────────────────

def clean_str(val):
    """Return stripped string or empty string for NaN/None."""
    if val is None or (isinstance(val, float) and math.isnan(val)):
        return ""
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val).strip()


def split_list(val):
    """Comma-separated cell -> list of stripped, non-empty strings."""
    text = clean_str(val)
    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


def round_half_up(value, ndigits=0):
    """Round halves away from zero for positive values (1.25 -> 1.3, 23.5 -> 24)."""
    factor = 10 ** ndigits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if ndigits == 0 else rounded


class _TeeWriter:
    """Write to two streams simultaneously (for summary.txt capture)."""
    def __init__(self, a, b):
        self.a, self.b = a, b
    def write(self, data):
        self.a.write(data)
        self.b.write(data)
    def flush(self):
        self.a.flush()
        self.b.flush()


def parse_date(val, context=""):
    """Parse date from Excel cell - handles datetime, Timestamp, and string."""
    if val is None or (not isinstance(val, str) and pd.isna(val)):
        raise ValueError(f"Date is blank{f' ({context})' if context else ''}")
    if isinstance(val, datetime):
        return norm_date(val)
    if isinstance(val, str):
        val = val.strip()
        if not val:
            raise ValueError(f"Date is blank{f' ({context})' if context else ''}")
        for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y"):
            try:
                return norm_date(datetime.strptime(val, fmt))
            except ValueError:
                pass
        ctx = f" ({context})" if context else ""
        raise ValueError(f"Cannot parse date{ctx}: {val!r}. Expected YYYY-MM-DD or DD/MM/YYYY")
    raise ValueError(f"Cannot parse date{f' ({context})' if context else ''}: {val!r}")


# ── Settings ─────────────────────────────────────────────────────────────────

def resolve_settings(settings=None):
    """Overlay user settings on DEFAULT_SETTINGS. None falls back; 0 is kept."""
    resolved = dict(DEFAULT_SETTINGS)
    for key, value in (settings or {}).items():
        if value is not None:
            resolved[key] = value
    return resolved


def _settings(state):
    return resolve_settings(state.get("settings"))


def validate_settings(settings):
    """Validate settings. Returns (errors, warnings) lists."""
    errors = []
    warnings = []
    settings = resolve_settings(settings)

    for key in ("sprint_duration_weeks", "sprints_per_year"):
        try:
            if int(settings[key]) < 1:
                errors.append(f"Setting '{key}' must be at least 1 (got {settings[key]}).")
        except (TypeError, ValueError):
            errors.append(f"Setting '{key}' is not a whole number: {settings[key]!r}.")

    start = settings.get("sprint_start_date")
    if start and parse_iso_date(start) is None:
        errors.append(f"Setting 'sprint_start_date' is not a valid date: {start!r}. Use YYYY-MM-DD.")

    try:
        if float(settings["bau_reserve_days"]) < 0:
            warnings.append(f"BAU reserve is negative ({settings['bau_reserve_days']} days).")
    except (TypeError, ValueError):
        errors.append(f"Setting 'bau_reserve_days' is not a number: {settings['bau_reserve_days']!r}.")

    if not errors:
        config = sprint_config(settings)
        for n in sorted(config["bye_weeks_after"]):
            if not 1 <= n <= config["sprints_per_year"]:
                warnings.append(f"Bye week after sprint {n} is outside 1..{config['sprints_per_year']} "
                                f"(has no effect).")
    return errors, warnings


# ── Snapshot Lookups ─────────────────────────────────────────────────────────

def find_member(member_id, state):
    for member in state.get("team_members", []):
        if member.get("id") == member_id:
            return member
    return None


def find_project(project_id, state):
    for project in state.get("projects", []):
        if project.get("id") == project_id:
            return project
    return None


def find_time_off(member_id, quarter, state):
    for entry in state.get("time_off", []):
        if entry.get("member_id") == member_id and entry.get("quarter") == quarter:
            return entry
    return None


def is_project_active(project):
    return project.get("status") != "Completed"


def member_holidays(member, state):
    """Holiday dates for the member's country (default country if unset or no member)."""
    settings = _settings(state)
    country_id = (member or {}).get("country_id") or settings["default_country_id"]
    return holidays_by_country(country_id, state.get("public_holidays", []))


def canonical_quarters(state):
    """The ordered quarter list phase ranges are matched against.

    Uses state["quarters"] when present, otherwise spans every quarter the
    snapshot references, earliest to latest.
    """
    if state.get("quarters") is not None:
        return list(state["quarters"])
    referenced = set()
    for project in state.get("projects", []):
        for phase in project.get("phases", []):
            referenced.add(phase.get("start_quarter"))
            referenced.add(phase.get("end_quarter"))
            referenced.update(a.get("quarter") for a in phase.get("assignments", []))
    referenced.update(t.get("quarter") for t in state.get("time_off", []))
    parsed = sorted((q for q in map(parse_quarter, referenced) if q), key=lambda q: q["start"])
    if not parsed:
        return []
    return get_quarters_between(parsed[0]["label"], parsed[-1]["label"])


# ── Capacity Calculation ─────────────────────────────────────────────────────

def _empty_capacity():
    return {
        "total_workdays": 0,
        "used_days": 0,
        "available_days": 0,
        "available_days_raw": 0,
        "used_percent": 0,
        "status": "normal",
        "breakdown": [],
    }


def calculate_capacity(member_id, quarter, state):
    """Usage breakdown for one member in one quarter.

    used_days = BAU reserve + time off + project assignments whose phase spans
    the quarter. available_days_raw may go negative; that is the
    over-allocation signal.
    """
    member = find_member(member_id, state)
    if member is None:
        return _empty_capacity()

    settings = _settings(state)
    quarters = canonical_quarters(state)
    total_workdays = workdays_in(parse_quarter(quarter), member_holidays(member, state))

    breakdown = []
    bau_days = settings["bau_reserve_days"]
    breakdown.append({"kind": "bau", "days": bau_days})

    # One time-off entry per member and quarter; later duplicates are ignored
    entry = find_time_off(member_id, quarter, state)
    if entry is not None:
        breakdown.append({"kind": "time_off", "days": entry.get("days") or 0,
                          "reason": entry.get("reason", "")})

    for project in state.get("projects", []):
        if not is_project_active(project):
            continue
        for phase in project.get("phases", []):
            if not is_quarter_in_range(quarter, phase.get("start_quarter"),
                                       phase.get("end_quarter"), quarters):
                continue
            matching = [a for a in phase.get("assignments", [])
                        if a.get("member_id") == member_id and a.get("quarter") == quarter]
            if not matching:
                continue
            breakdown.append({
                "kind": "project",
                "days": sum(a.get("days") or 0 for a in matching),
                "project_id": project.get("id"),
                "project_name": project.get("name", ""),
                "phase_id": phase.get("id"),
                "phase_name": phase.get("name", ""),
            })

    used_days = sum(item["days"] for item in breakdown)
    available_days_raw = total_workdays - used_days
    used_percent = round_half_up(used_days / total_workdays * 100) if total_workdays > 0 else 0

    if used_days > total_workdays:
        status = "overallocated"
    elif used_percent > HIGH_UTILISATION_PERCENT:
        status = "warning"
    else:
        status = "normal"

    return {
        "total_workdays": total_workdays,
        "used_days": used_days,
        "available_days": max(0, available_days_raw),
        "available_days_raw": available_days_raw,
        "used_percent": used_percent,
        "status": status,
        "breakdown": breakdown,
    }


def get_member_capacity_summary(member_id, quarters, state):
    """Capacity for one member across several quarters."""
    member = find_member(member_id, state) or {}
    countries = {c.get("id"): c for c in state.get("countries", [])}
    country = countries.get(member.get("country_id") or _settings(state)["default_country_id"], {})
    return {
        "member_id": member_id,
        "member_name": member.get("name", ""),
        "role": member.get("role", ""),
        "country_code": country.get("code", ""),
        "quarters": {q: calculate_capacity(member_id, q, state) for q in quarters},
    }


def get_member_project_count(member_id, quarter, state):
    """Distinct active projects with an assignment for the member in the quarter."""
    quarters = canonical_quarters(state)
    projects = set()
    for project in state.get("projects", []):
        if not is_project_active(project):
            continue
        for phase in project.get("phases", []):
            if not is_quarter_in_range(quarter, phase.get("start_quarter"),
                                       phase.get("end_quarter"), quarters):
                continue
            if any(a.get("member_id") == member_id and a.get("quarter") == quarter
                   for a in phase.get("assignments", [])):
                projects.add(project.get("id"))
    return len(projects)


def check_skill_match(member_id, required_skill_ids, state):
    """Returns {"matched", "missing_skills"}; missing skills are reported by name."""
    member = find_member(member_id, state)
    held = set(member.get("skill_ids", [])) if member else set()
    skill_names = {s.get("id"): s.get("name") for s in state.get("skills", [])}
    missing = [skill_names.get(skill_id) or skill_id
               for skill_id in required_skill_ids if skill_id not in held]
    return {"matched": member is not None and not missing, "missing_skills": missing}


SUGGESTION_WEIGHTS = {"capacity": 0.40, "skills": 0.35, "history": 0.25}
MAX_SUGGESTIONS = 5


def suggest_assignees(project_id, phase_id, quarter, required_skill_ids, state):
    """Rank team members for a phase in a quarter, best first.

    Score (0-100) weighs free capacity 40%, fraction of required skills held
    35% and prior assignments on other phases of the project 25% (33 points
    each, capped at 100). Members with no available days are dropped; at most
    MAX_SUGGESTIONS are returned.
    """
    project = find_project(project_id, state)
    required_skill_ids = list(required_skill_ids or [])
    suggestions = []

    for member in state.get("team_members", []):
        cap = calculate_capacity(member["id"], quarter, state)
        available_days = cap["available_days"]
        if available_days <= 0:
            continue
        capacity_score = min(100, round_half_up(available_days / max(cap["total_workdays"], 1) * 100))

        skill_score = 100
        if required_skill_ids:
            held = set(member.get("skill_ids", []))
            matched = sum(1 for skill_id in required_skill_ids if skill_id in held)
            skill_score = round_half_up(matched / len(required_skill_ids) * 100)

        history_score = 0
        if project is not None:
            past = sum(1 for phase in project.get("phases", []) if phase.get("id") != phase_id
                       for a in phase.get("assignments", []) if a.get("member_id") == member["id"])
            history_score = min(100, past * 33)

        score = round_half_up(capacity_score * SUGGESTION_WEIGHTS["capacity"]
                              + skill_score * SUGGESTION_WEIGHTS["skills"]
                              + history_score * SUGGESTION_WEIGHTS["history"])

        reasons = [f"{available_days:g}d free"]
        if required_skill_ids:
            if skill_score == 100:
                reasons.append("All skills match")
            elif skill_score > 0:
                reasons.append(f"{skill_score}% skills")
        if history_score > 0:
            reasons.append("Worked on this project")

        suggestions.append({
            "member": member,
            "score": score,
            "capacity_score": capacity_score,
            "skill_score": skill_score,
            "history_score": history_score,
            "available_days": available_days,
            "reasons": reasons,
        })

    suggestions.sort(key=lambda s: s["score"], reverse=True)
    return suggestions[:MAX_SUGGESTIONS]


def get_team_utilization_summary(quarter, state):
    counts = {"overallocated": 0, "warning": 0, "normal": 0}
    total_percent = 0
    members = state.get("team_members", [])
    for member in members:
        cap = calculate_capacity(member["id"], quarter, state)
        counts[cap["status"]] += 1
        total_percent += cap["used_percent"]
    return {
        "total_members": len(members),
        "overallocated": counts["overallocated"],
        "high_utilization": counts["warning"],
        "normal": counts["normal"],
        "average_utilization": round_half_up(total_percent / len(members)) if members else 0,
    }


def get_project_allocation_summary(project_id, state):
    project = find_project(project_id, state)
    summary = {"total_days": 0, "by_quarter": {}, "by_member": {}}
    if project is None:
        return summary
    for phase in project.get("phases", []):
        for a in phase.get("assignments", []):
            days = a.get("days") or 0
            summary["total_days"] += days
            summary["by_quarter"][a["quarter"]] = summary["by_quarter"].get(a["quarter"], 0) + days
            summary["by_member"][a["member_id"]] = summary["by_member"].get(a["member_id"], 0) + days
    return summary


def weekly_to_quarterly(days_per_week, work_weeks):
    return round_half_up(days_per_week * work_weeks, 1)


def quarterly_to_weekly(total_days, work_weeks):
    if work_weeks == 0:
        return 0
    return round_half_up(total_days / work_weeks, 1)


# ── Allocation Projection ────────────────────────────────────────────────────

def resolve_period(period, state):
    """Accept a period label or an already-resolved period dict."""
    if isinstance(period, dict):
        return period
    return parse_period(period, _settings(state))


def year_quarters(year):
    return [f"Q{q} {year}" for q in range(1, 5)]


def period_quarters(period):
    """Quarter labels a period draws its allocation from."""
    if period["type"] == "quarter":
        return [period["label"]]
    if period["type"] == "year":
        return year_quarters(period["year"])
    if period["type"] == "sprint":
        return sprint_to_quarters(period)
    return period_to_quarters(period)


def quarterly_assigned_days(project, member_id, quarter, quarters):
    """Assigned days in a quarter, counting only phases whose range spans it."""
    return sum(a.get("days") or 0
               for phase in project.get("phases", [])
               if is_quarter_in_range(quarter, phase.get("start_quarter"),
                                      phase.get("end_quarter"), quarters)
               for a in phase.get("assignments", [])
               if a.get("member_id") == member_id and a.get("quarter") == quarter)


def project_allocation(project, member_id, period, state):
    """Displayed days for (project, member, period).

    Quarters and years are exact sums. Finer periods take each overlapping
    quarter's assigned days weighted by the share of that quarter's workdays
    the period covers, rounded to one decimal. Assignments outside their
    phase's quarter range are ignored, as in calculate_capacity.
    """
    period = resolve_period(period, state)
    if period is None:
        return {"days": 0, "is_proportional": False}
    quarters = canonical_quarters(state)

    if period["type"] in ("quarter", "year"):
        days = sum(quarterly_assigned_days(project, member_id, q, quarters) for q in period_quarters(period))
        return {"days": days, "is_proportional": False}

    holidays = member_holidays(find_member(member_id, state), state)
    total = 0.0
    for quarter in period_quarters(period):
        assigned = quarterly_assigned_days(project, member_id, quarter, quarters)
        if not assigned:
            continue
        q = parse_quarter(quarter)
        quarter_workdays = workdays_in(q, holidays)
        if quarter_workdays == 0:
            continue
        overlap_start = max(period["start"], q["start"])
        overlap_end = min(period["end"], q["end"])
        overlap_workdays = count_working_days(overlap_start, overlap_end, holidays)
        total += assigned * overlap_workdays / quarter_workdays
    return {"days": round_half_up(total, 1), "is_proportional": True}


def member_period_allocation(member_id, period, state):
    """Projected days across all active projects for a member in a period."""
    period = resolve_period(period, state)
    if period is None:
        return {"days": 0, "is_proportional": False}
    days = 0
    for project in state.get("projects", []):
        if is_project_active(project):
            days += project_allocation(project, member_id, period, state)["days"]
    is_proportional = period["type"] not in ("quarter", "year")
    return {"days": round_half_up(days, 1) if is_proportional else days,
            "is_proportional": is_proportional}


def member_period_overallocated(member_id, period, state):
    """True if any quarter the period draws from is over-allocated for the member.

    Assignments only exist per quarter, so this is a quarter-level signal.
    """
    period = resolve_period(period, state)
    if period is None:
        return False
    return any(calculate_capacity(member_id, q, state)["status"] == "overallocated"
               for q in period_quarters(period))


def period_workdays_for_member(member_id, period, state):
    period = resolve_period(period, state)
    holidays = member_holidays(find_member(member_id, state), state)
    if period is not None and period["type"] == "sprint":
        return workdays_in_sprint(period, holidays)
    return workdays_in(period, holidays)


def period_allocation_table(state, periods):
    """DataFrame of projected days (rows: members, columns: period labels).

    Proportional cells are estimates; over-allocated cells are flagged in a
    parallel boolean frame, returned second.
    """
    resolved = [p for p in (resolve_period(label, state) for label in periods) if p]
    labels = [p["label"] for p in resolved]
    members = state.get("team_members", [])
    rows = member_labels(members)
    days = pd.DataFrame(0.0, index=rows, columns=labels)
    over = pd.DataFrame(False, index=rows, columns=labels)
    for r, member in enumerate(members):
        for c, period in enumerate(resolved):
            days.iloc[r, c] = member_period_allocation(member["id"], period, state)["days"]
            over.iloc[r, c] = member_period_overallocated(member["id"], period, state)
    return days, over


def member_labels(members):
    """Display names for members; a name shared by several members gets its id appended."""
    names = [m.get("name") or m["id"] for m in members]
    return [f"{name} ({m['id']})" if names.count(name) > 1 else name
            for name, m in zip(names, members)]


# ── Warning Analysis ─────────────────────────────────────────────────────────

def get_planning_quarter(state, today=None):
    """First configured quarter that has not ended yet, else today's calendar quarter."""
    today = norm_date(today or datetime.now())
    for quarter in canonical_quarters(state):
        q = parse_quarter(quarter)
        if q and q["end"] >= today:
            return quarter
    return get_current_quarter(today)


def get_warnings(state, today=None):
    """Scan the snapshot and return warnings grouped by kind (ordered as WARNING_KINDS)."""
    quarter = get_planning_quarter(state, today)
    quarters = canonical_quarters(state)
    now_idx = quarter_to_index(quarter, quarters)
    warnings = {kind: [] for kind in WARNING_KINDS}

    for member in state.get("team_members", []):
        name = member.get("name", member["id"])
        cap = calculate_capacity(member["id"], quarter, state)
        if cap["status"] == "overallocated":
            warnings["overallocated"].append({
                "kind": "overallocated",
                "member": member,
                "quarter": quarter,
                "used_days": cap["used_days"],
                "total_days": cap["total_workdays"],
                "message": f"{name} is over-allocated in {quarter}: "
                           f"{cap['used_days']:g} of {cap['total_workdays']} days used",
            })
        elif cap["status"] == "warning":
            warnings["high_utilization"].append({
                "kind": "high_utilization",
                "member": member,
                "quarter": quarter,
                "used_days": cap["used_days"],
                "total_days": cap["total_workdays"],
                "used_percent": cap["used_percent"],
                "message": f"{name} is at {cap['used_percent']}% utilisation in {quarter}",
            })

        count = get_member_project_count(member["id"], quarter, state)
        max_projects = member.get("max_concurrent_projects", DEFAULT_MAX_CONCURRENT_PROJECTS)
        if count > max_projects:
            warnings["too_many_projects"].append({
                "kind": "too_many_projects",
                "member": member,
                "quarter": quarter,
                "count": count,
                "max": max_projects,
                "message": f"{name} is on {count} projects in {quarter} (max {max_projects})",
            })

    for project in state.get("projects", []):
        if not is_project_active(project):
            continue
        phases_by_id = {phase.get("id"): phase for phase in project.get("phases", [])}
        for phase in project.get("phases", []):
            label = f"{project.get('name', project.get('id'))} / {phase.get('name', phase.get('id'))}"

            required = phase.get("required_skill_ids") or []
            if required:
                for a in phase.get("assignments", []):
                    member = find_member(a.get("member_id"), state)
                    if member is None:
                        continue
                    match = check_skill_match(member["id"], required, state)
                    if not match["matched"]:
                        warnings["skill_mismatch"].append({
                            "kind": "skill_mismatch",
                            "member": member,
                            "project": project,
                            "phase": phase,
                            "quarter": a.get("quarter"),
                            "missing_skills": match["missing_skills"],
                            "message": f"{member.get('name', member['id'])} lacks "
                                       f"{', '.join(match['missing_skills'])} for {label}",
                        })

            start_idx = quarter_to_index(phase.get("start_quarter"), quarters)
            if (now_idx != -1 and start_idx != -1 and 0 <= start_idx - now_idx <= 1
                    and not phase.get("assignments")):
                warnings["unassigned_phase"].append({
                    "kind": "unassigned_phase",
                    "project": project,
                    "phase": phase,
                    "start_quarter": phase.get("start_quarter"),
                    "message": f"{label} starts {phase.get('start_quarter')} with nobody assigned",
                })

            predecessor = phases_by_id.get(phase.get("predecessor_phase_id"))
            if predecessor is not None:
                pred_end_idx = quarter_to_index(predecessor.get("end_quarter"), quarters)
                if start_idx != -1 and pred_end_idx != -1 and start_idx <= pred_end_idx:
                    warnings["dependency_violation"].append({
                        "kind": "dependency_violation",
                        "project": project,
                        "phase": phase,
                        "predecessor": predecessor,
                        "message": f"{label} starts {phase.get('start_quarter')} but depends on "
                                   f"{predecessor.get('name', predecessor.get('id'))} ending "
                                   f"{predecessor.get('end_quarter')}",
                    })

    return warnings


def flatten_warnings(warnings):
    """Grouped warnings -> one ordered list."""
    return [w for kind in WARNING_KINDS for w in warnings.get(kind, [])]


# ── State Validation ─────────────────────────────────────────────────────────

def validate_state(state):
    """Validate a loaded snapshot. Returns (errors, warnings) lists."""
    errors, warnings = validate_settings(state.get("settings"))

    members = state.get("team_members", [])
    if not members:
        errors.append("Team sheet is empty. Add at least one team member.")
    member_ids = {m["id"] for m in members}
    country_ids = {c.get("id") for c in state.get("countries", [])}
    quarters = canonical_quarters(state)

    if country_ids:
        for member in members:
            if member.get("country_id") and member["country_id"] not in country_ids:
                warnings.append(f"Team member '{member.get('name', member['id'])}': country "
                                f"'{member['country_id']}' not found in Countries sheet.")

    for project in state.get("projects", []):
        if project.get("status") and project["status"] not in PROJECT_STATUS_VALUES:
            warnings.append(f"Project '{project.get('name')}': status '{project['status']}' not recognised. "
                            f"Valid: {', '.join(PROJECT_STATUS_VALUES)}")
        phase_ids = {p.get("id") for p in project.get("phases", [])}
        for phase in project.get("phases", []):
            where = f"Project '{project.get('name')}', phase '{phase.get('name')}'"
            for key in ("start_quarter", "end_quarter"):
                if quarter_to_index(phase.get(key), quarters) == -1:
                    warnings.append(f"{where}: {key.replace('_', ' ')} '{phase.get(key)}' "
                                    f"is not a known quarter (phase will never match).")
            pred = phase.get("predecessor_phase_id")
            if pred and pred not in phase_ids:
                warnings.append(f"{where}: predecessor '{pred}' not found in this project.")
            for a in phase.get("assignments", []):
                if a.get("member_id") not in member_ids:
                    warnings.append(f"{where}: assignment for unknown member '{a.get('member_id')}'.")
                if (a.get("days") or 0) < 0:
                    warnings.append(f"{where}: negative days ({a['days']}) for '{a.get('member_id')}'.")

    seen_time_off = set()
    for entry in state.get("time_off", []):
        if entry.get("member_id") not in member_ids:
            warnings.append(f"Time off: '{entry.get('member_id')}' not found in Team sheet.")
        key = (entry.get("member_id"), entry.get("quarter"))
        if key in seen_time_off:
            warnings.append(f"Time off: duplicate entry for '{key[0]}' in {key[1]}; "
                            f"only the first is counted.")
        seen_time_off.add(key)

    return errors, warnings


# ── Data Loading ─────────────────────────────────────────────────────────────

SHEET_COLUMNS = {
    "Settings": (["Key", "Value"], []),
    "Countries": (["Id", "Name"], ["Code"]),
    "Holidays": (["Date", "Country"], ["Name"]),
    "Skills": (["Id", "Name"], ["Category"]),
    "Team": (["Id", "Name"], ["Role", "Country", "Skills", "Max Concurrent Projects"]),
    "Projects": (["Id", "Name"], ["Status", "Priority"]),
    "Phases": (["Project", "Id", "Name", "Start Quarter", "End Quarter"],
               ["Required Skills", "Predecessor"]),
    "Assignments": (["Project", "Phase", "Member", "Quarter", "Days"], []),
    "Time Off": (["Member", "Quarter", "Days"], ["Reason"]),
}

SETTING_TYPES = {
    "bau_reserve_days": float,
    "hours_per_day": float,
    "quarters_to_show": int,
    "default_country_id": str,
    "sprint_duration_weeks": int,
    "sprint_start_date": "date",
    "sprints_to_show": int,
    "sprints_per_year": int,
    "bye_weeks_after": "int_list",
    "holiday_weeks_at_end": int,
}


def normalize_columns(df, expected):
    """Rename columns to their canonical spelling, matching case-insensitively."""
    lookup = {name.lower(): name for name in expected}
    df.columns = [lookup.get(str(c).strip().lower(), str(c).strip()) for c in df.columns]
    return df


def read_sheet(filepath, sheet_name, optional=False):
    """Read one sheet with canonical column names. Returns None if unusable."""
    required, extra = SHEET_COLUMNS[sheet_name]
    try:
        df = pd.read_excel(filepath, sheet_name=sheet_name)
    except Exception as e:
        if not optional:
            print(f"  WARNING: Could not read {sheet_name} sheet: {e}")
        return None
    if df.empty:
        return None
    df = normalize_columns(df, required + extra)
    missing = set(required) - set(df.columns)
    if missing:
        print(f"  ERROR: {sheet_name} sheet is missing column(s): {', '.join(sorted(missing))}. "
              f"Found: {', '.join(df.columns)}")
        return None
    return df


def setting_key(raw):
    """'BAU Reserve Days' / 'bauReserveDays' / 'bau_reserve_days' -> 'bau_reserve_days'."""
    text = clean_str(raw)
    if " " in text:
        return "_".join(text.lower().split())
    return re.sub(r"(?<!^)(?=[A-Z])", "_", text).lower()


def _to_number(val, kind):
    return kind(float(val)) if kind is int else kind(val)


def load_settings(filepath):
    """Load settings from the optional 'Settings' sheet (Key / Value rows)."""
    df = read_sheet(filepath, "Settings", optional=True)
    if df is None:
        return {}
    settings = {}
    for idx, row in df.iterrows():
        key = setting_key(row["Key"])
        if not key:
            continue
        kind = SETTING_TYPES.get(key)
        if kind is None:
            print(f"  WARNING: Settings row {idx + 2}: unknown setting '{row['Key']}', skipping.")
            continue
        value = row["Value"]
        try:
            if kind == "date":
                settings[key] = parse_date(value, context=f"Settings row {idx + 2}")
            elif kind == "int_list":
                settings[key] = [int(float(n)) for n in split_list(value)]
            elif kind is str:
                settings[key] = clean_str(value)
            elif clean_str(value):
                settings[key] = _to_number(value, kind)
        except (ValueError, TypeError) as e:
            print(f"  WARNING: Settings row {idx + 2}: invalid value for '{key}': {e}")
    return settings


def load_countries(filepath):
    df = read_sheet(filepath, "Countries", optional=True)
    if df is None:
        return []
    countries = []
    for _, row in df.iterrows():
        country_id = clean_str(row["Id"])
        if country_id:
            countries.append({"id": country_id, "code": clean_str(row.get("Code", "")),
                              "name": clean_str(row["Name"])})
    return countries


def load_holidays(filepath):
    """Load public holidays as {"date", "name", "country_id"} records."""
    df = read_sheet(filepath, "Holidays", optional=True)
    if df is None:
        return []
    holidays = []
    for idx, row in df.iterrows():
        if pd.isna(row["Date"]):
            continue
        try:
            holidays.append({
                "date": parse_date(row["Date"], context=f"Holidays row {idx + 2}, 'Date'"),
                "name": clean_str(row.get("Name", "")),
                "country_id": clean_str(row["Country"]),
            })
        except ValueError as e:
            print(f"  WARNING: Could not parse holiday row {idx + 2}: {e}")
    return holidays


def load_skills(filepath):
    df = read_sheet(filepath, "Skills", optional=True)
    if df is None:
        return []
    return [{"id": clean_str(row["Id"]), "name": clean_str(row["Name"]),
             "category": clean_str(row.get("Category", ""))}
            for _, row in df.iterrows() if clean_str(row["Id"])]


def load_team(filepath):
    """Load team members from the 'Team' sheet."""
    df = read_sheet(filepath, "Team")
    if df is None:
        return []
    team = []
    seen = set()
    for idx, row in df.iterrows():
        member_id = clean_str(row["Id"])
        if not member_id:
            continue  # skip blank rows
        if member_id in seen:
            print(f"  WARNING: Team row {idx + 2}: duplicate id '{member_id}', keeping the first.")
            continue
        seen.add(member_id)
        max_projects = DEFAULT_MAX_CONCURRENT_PROJECTS
        if clean_str(row.get("Max Concurrent Projects", "")):
            try:
                max_projects = int(float(row["Max Concurrent Projects"]))
            except (ValueError, TypeError):
                print(f"  WARNING: Team row {idx + 2}: invalid Max Concurrent Projects for "
                      f"'{member_id}', using {DEFAULT_MAX_CONCURRENT_PROJECTS}.")
        team.append({
            "id": member_id,
            "name": clean_str(row["Name"]) or member_id,
            "role": clean_str(row.get("Role", "")),
            "country_id": clean_str(row.get("Country", "")),
            "skill_ids": split_list(row.get("Skills", "")),
            "max_concurrent_projects": max_projects,
        })
    return team


def load_projects(filepath):
    """Load projects with their phases and quarterly assignments."""
    df = read_sheet(filepath, "Projects")
    if df is None:
        return []
    projects = {}
    for idx, row in df.iterrows():
        project_id = clean_str(row["Id"])
        if not project_id:
            continue
        status = clean_str(row.get("Status", "")) or "Planning"
        priority = clean_str(row.get("Priority", "")) or "Medium"
        if priority not in PRIORITY_VALUES:
            priority = "Medium"
        projects[project_id] = {"id": project_id, "name": clean_str(row["Name"]),
                                "status": status, "priority": priority, "phases": []}

    phases = {}
    phase_df = read_sheet(filepath, "Phases", optional=True)
    if phase_df is not None:
        for idx, row in phase_df.iterrows():
            project_id = clean_str(row["Project"])
            phase_id = clean_str(row["Id"])
            if not phase_id:
                continue
            if project_id not in projects:
                print(f"  WARNING: Phases row {idx + 2}: project '{project_id}' not found, skipping.")
                continue
            phase = {
                "id": phase_id,
                "name": clean_str(row["Name"]),
                "start_quarter": clean_str(row["Start Quarter"]),
                "end_quarter": clean_str(row["End Quarter"]),
                "required_skill_ids": split_list(row.get("Required Skills", "")),
                "predecessor_phase_id": clean_str(row.get("Predecessor", "")) or None,
                "assignments": [],
            }
            projects[project_id]["phases"].append(phase)
            phases[(project_id, phase_id)] = phase

    assign_df = read_sheet(filepath, "Assignments", optional=True)
    if assign_df is not None:
        for idx, row in assign_df.iterrows():
            key = (clean_str(row["Project"]), clean_str(row["Phase"]))
            if not key[0]:
                continue
            if key not in phases:
                print(f"  WARNING: Assignments row {idx + 2}: phase '{key[1]}' of project "
                      f"'{key[0]}' not found, skipping.")
                continue
            try:
                days = float(row["Days"])
            except (ValueError, TypeError):
                print(f"  WARNING: Assignments row {idx + 2}: invalid Days, skipping.")
                continue
            if math.isnan(days):
                print(f"  WARNING: Assignments row {idx + 2}: Days is blank, skipping.")
                continue
            phases[key]["assignments"].append({
                "member_id": clean_str(row["Member"]),
                "quarter": clean_str(row["Quarter"]),
                "days": days,
            })
    return list(projects.values())


def load_time_off(filepath):
    df = read_sheet(filepath, "Time Off", optional=True)
    if df is None:
        return []
    entries = []
    for idx, row in df.iterrows():
        member_id = clean_str(row["Member"])
        if not member_id:
            continue
        try:
            days = float(row["Days"])
        except (ValueError, TypeError):
            print(f"  WARNING: Time Off row {idx + 2}: invalid Days for '{member_id}', skipping.")
            continue
        entries.append({"member_id": member_id, "quarter": clean_str(row["Quarter"]),
                        "days": 0.0 if math.isnan(days) else days,
                        "reason": clean_str(row.get("Reason", ""))})
    return entries


def load_state(filepath):
    """Load a full planning snapshot from the Excel file."""
    state = {
        "settings": load_settings(filepath),
        "countries": load_countries(filepath),
        "public_holidays": load_holidays(filepath),
        "skills": load_skills(filepath),
        "team_members": load_team(filepath),
        "projects": load_projects(filepath),
        "time_off": load_time_off(filepath),
    }
    state["quarters"] = canonical_quarters(state)

    if state["public_holidays"]:
        print(f"  Public holidays: {len(state['public_holidays'])}")
    if state["time_off"]:
        total = sum(e["days"] for e in state["time_off"])
        print(f"  Time off: {total:g} day(s) across {len(state['time_off'])} entr"
              f"{'y' if len(state['time_off']) == 1 else 'ies'}")
    return state


def extend_quarters(state, quarters):
    """Append display quarters to the snapshot's quarter list, keeping it contiguous."""
    known = [q for q in list(state.get("quarters") or []) + list(quarters) if parse_quarter(q)]
    if not known:
        return state
    ordered = sorted(known, key=lambda q: parse_quarter(q)["start"])
    state["quarters"] = get_quarters_between(ordered[0], ordered[-1])
    return state


# ── Template Generation ──────────────────────────────────────────────────────

def generate_template(output_path):
    """Create an Excel template with every sheet, example data and dropdowns."""
    wb = Workbook()

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="2E3B4E", end_color="2E3B4E", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def add_sheet(title, header, rows, widths, first=False):
        ws = wb.active if first else wb.create_sheet(title)
        ws.title = title
        ws.append(header)
        for row in rows:
            ws.append(row)
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = header_alignment
            cell.border = thin_border
        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
        for col, width in zip("ABCDEFGH", widths):
            ws.column_dimensions[col].width = width
        ws.freeze_panes = "A2"
        return ws

    add_sheet("Settings", ["Key", "Value"], [
        ["BAU Reserve Days", 5],
        ["Hours Per Day", 8],
        ["Quarters To Show", 4],
        ["Default Country Id", "country-nl"],
        ["Sprint Duration Weeks", 3],
        ["Sprint Start Date", "2026-01-05"],
        ["Sprints To Show", 6],
        ["Sprints Per Year", 16],
        ["Bye Weeks After", "8, 12"],
        ["Holiday Weeks At End", 2],
    ], [26, 18], first=True)

    add_sheet("Countries", ["Id", "Code", "Name"], [
        ["country-nl", "NL", "Netherlands"],
        ["country-uk", "UK", "United Kingdom"],
    ], [16, 8, 20])

    add_sheet("Holidays", ["Date", "Name", "Country"], [
        ["2026-01-01", "New Year's Day", "country-nl"],
        ["2026-04-03", "Good Friday", "country-nl"],
        ["2026-04-06", "Easter Monday", "country-nl"],
        ["2026-04-27", "King's Day", "country-nl"],
        ["2026-01-01", "New Year's Day", "country-uk"],
        ["2026-04-03", "Good Friday", "country-uk"],
    ], [14, 24, 16])

    add_sheet("Skills", ["Id", "Name", "Category"], [
        ["skill-python", "Python", "Technical"],
        ["skill-sap", "SAP", "System"],
        ["skill-o2c", "Order to Cash", "Process"],
    ], [16, 20, 14])

    add_sheet("Team", ["Id", "Name", "Role", "Country", "Skills", "Max Concurrent Projects"], [
        ["m-anna", "Anna", "Developer", "country-nl", "skill-python, skill-sap", 2],
        ["m-ben", "Ben", "Analyst", "country-uk", "skill-o2c", 3],
    ], [12, 16, 14, 14, 28, 24])

    ws_projects = add_sheet("Projects", ["Id", "Name", "Status", "Priority"], [
        ["p-erp", "ERP Upgrade", "Active", "High"],
        ["p-crm", "CRM Rollout", "Planning", "Medium"],
    ], [12, 24, 14, 12])

    dv_status = DataValidation(type="list", formula1=f'"{",".join(PROJECT_STATUS_VALUES)}"',
                               allow_blank=True)
    dv_status.error = f"Please select one of: {', '.join(PROJECT_STATUS_VALUES)}"
    dv_status.errorTitle = "Invalid Status"
    ws_projects.add_data_validation(dv_status)
    dv_status.add("C2:C200")

    dv_priority = DataValidation(type="list", formula1=f'"{",".join(PRIORITY_VALUES)}"',
                                 allow_blank=True)
    dv_priority.error = f"Please select one of: {', '.join(PRIORITY_VALUES)}"
    dv_priority.errorTitle = "Invalid Priority"
    ws_projects.add_data_validation(dv_priority)
    dv_priority.add("D2:D200")

    ws_projects.conditional_formatting.add(
        "C2:C200",
        CellIsRule(operator="equal", formula=['"Completed"'],
                   font=Font(color="9E9E9E"), fill=PatternFill(bgColor="F5F5F5")))

    add_sheet("Phases", ["Project", "Id", "Name", "Start Quarter", "End Quarter",
                         "Required Skills", "Predecessor"], [
        ["p-erp", "ph-design", "Design", "Q1 2026", "Q1 2026", "skill-sap", ""],
        ["p-erp", "ph-build", "Build", "Q2 2026", "Q3 2026", "skill-python", "ph-design"],
        ["p-crm", "ph-discovery", "Discovery", "Q2 2026", "Q2 2026", "skill-o2c", ""],
    ], [12, 16, 16, 14, 14, 24, 14])

    add_sheet("Assignments", ["Project", "Phase", "Member", "Quarter", "Days"], [
        ["p-erp", "ph-design", "m-anna", "Q1 2026", 20],
        ["p-erp", "ph-build", "m-anna", "Q2 2026", 30],
        ["p-erp", "ph-build", "m-anna", "Q3 2026", 25],
        ["p-crm", "ph-discovery", "m-ben", "Q2 2026", 15],
    ], [12, 16, 12, 12, 8])

    add_sheet("Time Off", ["Member", "Quarter", "Days", "Reason"], [
        ["m-anna", "Q3 2026", 10, "Summer holiday"],
    ], [12, 12, 8, 24])

    dirname = os.path.dirname(output_path)
    if dirname:
        os.makedirs(dirname, exist_ok=True)
    wb.save(output_path)
    print(f"Template created: {output_path}")
    print("  - Sheets: Settings, Countries, Holidays, Skills, Team, Projects, Phases, Assignments, Time Off")
    print("  - Quarters use 'Q1 2026' labels; multi-value cells are comma-separated")
    print(f"\nEdit the file, then run again without --template to generate the report.")


# ── Chart: Period Utilisation ────────────────────────────────────────────────

def render_utilisation(state, periods, output_path):
    """Render projected allocation vs. available workdays per member per period."""
    apply_style()

    members = state.get("team_members", [])
    resolved = [p for p in (resolve_period(label, state) for label in periods) if p]
    if not members or not resolved:
        print("  No utilisation data. Check: team members exist and period labels are valid.")
        return

    n_members = len(members)
    n_periods = len(resolved)
    fig, ax = plt.subplots(figsize=(max(14, n_periods * 2.2), 8), facecolor=STYLE["bg_color"])

    x = np.arange(n_periods)
    bar_width = 0.7 / n_members
    available_totals = np.zeros(n_periods)

    for midx, member in enumerate(members):
        offset = (midx - (n_members - 1) / 2) * bar_width
        allocated = []
        colors = []
        for i, period in enumerate(resolved):
            days = member_period_allocation(member["id"], period, state)["days"]
            available = period_workdays_for_member(member["id"], period, state)
            available_totals[i] += available
            allocated.append(days)
            if member_period_overallocated(member["id"], period, state) or days > available:
                colors.append(STYLE["over_capacity_color"])
            else:
                colors.append(STYLE["under_capacity_colors"][midx % len(STYLE["under_capacity_colors"])])
        ax.bar(x + offset, allocated, bar_width * 0.88, color=colors, alpha=0.85,
               edgecolor="white", linewidth=0.5, label=member.get("name", member["id"]))

    ax.plot(x, available_totals / n_members, color=STYLE["capacity_line_color"],
            linewidth=2, linestyle="--", marker="o", markersize=5,
            label="Avg workdays per member", zorder=5)

    ax.set_xticks(x)
    ax.set_xticklabels([p["label"] for p in resolved], fontsize=STYLE["tick_size"])
    ax.legend(loc="upper right", fontsize=STYLE["small_size"], framealpha=0.9,
              edgecolor=STYLE["grid_color"], fancybox=True)
    if any(p["type"] not in ("quarter", "year") for p in resolved):
        ax.text(0, -0.1, "Sub-quarter values are estimated from quarterly assignments.",
                transform=ax.transAxes, fontsize=STYLE["small_size"],
                color=STYLE["text_muted"], fontstyle="italic")

    style_axes(ax, title="Projected Allocation by Period", ylabel="Days", show_grid_y=True)
    add_header_footer(fig, "Team Utilisation", f"{resolved[0]['label']} - {resolved[-1]['label']}")

    dirname = os.path.dirname(output_path)
    if dirname:
        os.makedirs(dirname, exist_ok=True)
    fig.savefig(output_path, dpi=STYLE["dpi"], bbox_inches="tight", facecolor=STYLE["bg_color"])
    plt.close(fig)
    print(f"  Utilisation chart saved: {output_path}")


# ── Chart: Capacity Heatmap ──────────────────────────────────────────────────

def render_capacity_heatmap(state, quarters, output_path):
    """Render a members x quarters used-percent heatmap."""
    apply_style()

    members = state.get("team_members", [])
    if not members or not quarters:
        print("  No capacity data. Check: team members exist and quarters are configured.")
        return

    percent = np.zeros((len(members), len(quarters)))
    statuses = {}
    for r, member in enumerate(members):
        for c, quarter in enumerate(quarters):
            cap = calculate_capacity(member["id"], quarter, state)
            percent[r, c] = cap["used_percent"]
            statuses[(r, c)] = cap["status"]

    fig, ax = plt.subplots(figsize=(max(10, len(quarters) * 1.8), max(4, len(members) * 0.6 + 2)),
                           facecolor=STYLE["bg_color"])
    im = ax.imshow(percent, cmap="RdYlGn_r", vmin=0, vmax=120, aspect="auto")

    for (r, c), status in statuses.items():
        weight = "bold" if status != "normal" else "normal"
        ax.text(c, r, f"{percent[r, c]:.0f}%", ha="center", va="center",
                fontsize=STYLE["label_size"], fontweight=weight, color=STYLE["text_primary"])

    ax.set_xticks(np.arange(len(quarters)))
    ax.set_xticklabels(quarters, fontsize=STYLE["tick_size"])
    ax.set_yticks(np.arange(len(members)))
    ax.set_yticklabels([m.get("name", m["id"]) for m in members], fontsize=STYLE["tick_size"])
    fig.colorbar(im, ax=ax, label="Used %")
    style_axes(ax, title="Quarterly Capacity Used")
    add_header_footer(fig, "Capacity Heatmap", f"{quarters[0]} - {quarters[-1]}")

    dirname = os.path.dirname(output_path)
    if dirname:
        os.makedirs(dirname, exist_ok=True)
    fig.savefig(output_path, dpi=STYLE["dpi"], bbox_inches="tight", facecolor=STYLE["bg_color"])
    plt.close(fig)
    print(f"  Heatmap saved: {output_path}")


# ── Console Output ───────────────────────────────────────────────────────────

def print_summary(state, quarter):
    """Print executive capacity summary for one quarter."""
    settings = _settings(state)
    summary = get_team_utilization_summary(quarter, state)
    hours_per_day = float(settings["hours_per_day"])

    print()
    print("=" * 60)
    print(f"  CAPACITY SUMMARY - {quarter}")
    print("=" * 60)
    print(f"  Team:          {summary['total_members']} member{'s' if summary['total_members'] != 1 else ''}")
    print(f"  Utilisation:   {summary['average_utilization']}% average")
    print(f"  Status:        {summary['overallocated']} over-allocated, "
          f"{summary['high_utilization']} high, {summary['normal']} normal")
    print(f"  BAU reserve:   {settings['bau_reserve_days']:g} days per member")

    for member in state.get("team_members", []):
        cap = calculate_capacity(member["id"], quarter, state)
        flag = {"overallocated": "  OVER", "warning": "  HIGH"}.get(cap["status"], "")
        print(f"    {member.get('name', member['id'])}: {cap['used_days']:g} / "
              f"{cap['total_workdays']} days ({cap['used_percent']}%), "
              f"{cap['available_days_raw']:g} free "
              f"({cap['available_days_raw'] * hours_per_day:g}h){flag}")
        for item in cap["breakdown"]:
            if item["kind"] == "project":
                print(f"      - {item['project_name']} / {item['phase_name']}: {item['days']:g}d")
            elif item["kind"] == "time_off":
                reason = f" ({item['reason']})" if item.get("reason") else ""
                print(f"      - Time off{reason}: {item['days']:g}d")
    print("=" * 60)
    print()


def print_period_table(state, periods):
    """Print projected days per member per period; '~' marks estimates, '!' over-allocation."""
    days, over = period_allocation_table(state, periods)
    if days.empty:
        return
    estimated = any(p["type"] not in ("quarter", "year")
                    for p in (resolve_period(label, state) for label in periods) if p)
    cells = days.apply(lambda col: col.map(lambda v: f"{'~' if estimated else ''}{v:g}"))
    cells = cells.where(~over, cells + "!")
    print("  Projected allocation (days):")
    for line in cells.to_string().splitlines():
        print(f"    {line}")
    print()


def print_warnings(warnings):
    """Print warnings grouped by kind."""
    total = sum(len(v) for v in warnings.values())
    if not total:
        print("  No warnings.")
        return
    print(f"  Warnings: {total}")
    for kind in WARNING_KINDS:
        entries = warnings.get(kind, [])
        if not entries:
            continue
        print(f"    {WARNING_TITLES[kind]} ({len(entries)}):")
        for w in entries:
            print(f"      WARNING: {w['message']}")


# ── Main ─────────────────────────────────────────────────────────────────────

def default_period_count(view, settings):
    if view == "sprint":
        return int(settings["sprints_to_show"])
    if view == "quarter":
        return int(settings["quarters_to_show"])
    if view == "year":
        return 2
    return 8 if view == "month" else 12


def main():
    parser = argparse.ArgumentParser(
        description="Team Capacity Planner - quarterly capacity, projected allocation and warnings from Excel data"
    )
    parser.add_argument(
        "--template", action="store_true",
        help="Generate an Excel template with example data"
    )
    parser.add_argument(
        "--input", default=DEFAULT_INPUT,
        help="Path to Excel input file (default: capacity_data.xlsx)"
    )
    parser.add_argument(
        "--outdir", default=None,
        help="Output directory for charts and summary.txt (default: output/)"
    )
    parser.add_argument(
        "--view", default="quarter", choices=PERIOD_VIEWS,
        help="Period granularity for the allocation table and chart (default: quarter)"
    )
    parser.add_argument(
        "--periods", type=int, default=None,
        help="Number of periods to show (default depends on --view and settings)"
    )
    parser.add_argument(
        "--start", default=None,
        help="First period label to show, e.g. 'Mar 2026' or '26-05' (default: the period containing --today)"
    )
    parser.add_argument(
        "--today", default=None,
        help="Reference date for the current quarter/sprint (YYYY-MM-DD, default: today)"
    )
    parser.add_argument(
        "--charts", default=["all"], nargs="+",
        choices=["all", "none", "utilisation", "heatmap"],
        help="Which charts to generate (default: all)"
    )
    args = parser.parse_args()

    if args.template:
        generate_template(args.input)
        return

    if not os.path.exists(args.input):
        print(f"Error: Input file not found: {args.input}")
        print("Run with --template first to create a template.")
        sys.exit(1)

    today = datetime.now()
    if args.today:
        today = parse_iso_date(args.today)
        if today is None:
            print(f"  ERROR: Invalid --today date '{args.today}'. Use YYYY-MM-DD format.")
            sys.exit(1)

    out_dir = args.outdir or os.path.join(_DIR, "output")

    print(f"Loading data from: {args.input}")
    state = load_state(args.input)
    print(f"  Team: {', '.join(m['name'] for m in state['team_members'])}")
    print(f"  Projects: {len(state['projects'])}")

    errors, warnings = validate_state(state)
    for w in warnings:
        print(f"  WARNING: {w}")
    if errors:
        for e in errors:
            print(f"  ERROR: {e}")
        sys.exit(1)

    settings = _settings(state)
    anchor = today
    if args.start:
        start_period = parse_period(args.start, settings)
        if start_period is None:
            print(f"  ERROR: Invalid --start period '{args.start}'. "
                  f"Use e.g. 'W7 2026', 'Feb 2026', 'Q1 2026', '2026' or '26-09'.")
            sys.exit(1)
        anchor = start_period["start"]
    count = args.periods or default_period_count(args.view, settings)
    periods = generate_periods(args.view, count, anchor, settings)
    display_quarters = generate_periods("quarter", int(settings["quarters_to_show"]), today, settings)
    extend_quarters(state, display_quarters)
    quarter = get_planning_quarter(state, today)

    summary_capture = io.StringIO()
    _orig_stdout = sys.stdout
    sys.stdout = _TeeWriter(_orig_stdout, summary_capture)
    try:
        print_summary(state, quarter)
        print_period_table(state, periods)
        print_warnings(get_warnings(state, today))
    finally:
        sys.stdout = _orig_stdout
    summary_text = summary_capture.getvalue()

    charts = args.charts
    gen_all = "all" in charts and "none" not in charts
    output_files = []

    if gen_all or "utilisation" in charts:
        path = os.path.join(out_dir, f"utilisation_{args.view}.png")
        render_utilisation(state, periods, path)
        output_files.append(path)

    if gen_all or "heatmap" in charts:
        path = os.path.join(out_dir, "capacity_heatmap.png")
        render_capacity_heatmap(state, display_quarters, path)
        output_files.append(path)

    os.makedirs(out_dir, exist_ok=True)
    summary_path = os.path.join(out_dir, "summary.txt")
    with open(summary_path, "w", encoding="utf-8") as sf:
        sf.write(summary_text)
    output_files.append(summary_path)

    print()
    print("  Output:")
    for f in output_files:
        print(f"    {os.path.abspath(f)}")
    print("\nDone.")


if __name__ == "__main__":
    main()
