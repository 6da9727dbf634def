"""Report Generation - Pure functions for generating reports.

All functions are pure: same input always produces same output, no side effects.
"""

from datetime import date, timedelta
from typing import Optional

from .models import DaySummary, HydrationEntry, MealEntry, WeeklyReport, WeightLog
from .macros import calculate_daily_totals, entries_for_date


def generate_day_summary(
    log_date: str,
    entries: list[MealEntry],
    hydration: Optional[HydrationEntry] = None,
) -> DaySummary:
    """Generate a summary for a single day.

    Args:
        log_date: Day being summarised (YYYY-MM-DD)
        entries: Meal entries for that day
        hydration: Hydration entry for that day, if any

    Returns:
        DaySummary with totals for the day
    """
    total_cal, total_pro, _, _ = calculate_daily_totals(entries)

    return DaySummary(
        log_date=log_date,
        total_calories=round(total_cal, 1),
        total_protein=round(total_pro, 1),
        water_intake=hydration.intake if hydration else 0,
        meal_count=len(entries),
    )


def calculate_weight_change(logs: list[WeightLog]) -> tuple[Optional[float], Optional[float], Optional[float]]:
    """Calculate the weight trend over a set of logs.

    Args:
        logs: Weight logs in any order

    Returns:
        Tuple of (first weight, last weight, change); all None without logs
    """
    if not logs:
        return None, None, None
    ordered = sorted(logs, key=lambda log: log.date)
    start = ordered[0].weight
    end = ordered[-1].weight
    return start, end, round(end - start, 1)


def generate_weekly_report(
    meal_entries: list[MealEntry],
    hydration_entries: list[HydrationEntry],
    weight_logs: list[WeightLog],
    calorie_goal: int,
    week_start: date | None = None,
) -> WeeklyReport:
    """Generate a weekly report from a patient's time series.

    Args:
        meal_entries: Meal entries (may span more than the week)
        hydration_entries: Hydration entries (may span more than the week)
        weight_logs: Weight logs (may span more than the week)
        calorie_goal: Daily calorie goal in force
        week_start: Start date of the week (defaults to 6 days ago)

    Returns:
        WeeklyReport with daily summaries and aggregate metrics
    """
    if week_start is None:
        week_start = date.today() - timedelta(days=6)

    week_end = week_start + timedelta(days=6)
    start_str, end_str = week_start.isoformat(), week_end.isoformat()

    def in_week(day: str) -> bool:
        return start_str <= day <= end_str

    hydration_by_day = {h.date: h for h in hydration_entries if in_week(h.date)}
    meal_days = {e.date for e in meal_entries if in_week(e.date)}

    # A day counts as logged if it has meals or water
    logged_days = sorted(meal_days | set(hydration_by_day))
    daily_summaries = [
        generate_day_summary(day, entries_for_date(meal_entries, day), hydration_by_day.get(day))
        for day in logged_days
    ]

    days_logged = len(daily_summaries)
    if days_logged:
        avg_calories = sum(s.total_calories for s in daily_summaries) / days_logged
        avg_protein = sum(s.total_protein for s in daily_summaries) / days_logged
        avg_water = sum(s.water_intake for s in daily_summaries) / days_logged
    else:
        avg_calories = avg_protein = avg_water = 0

    within_goal = sum(
        1 for s in daily_summaries if s.meal_count and s.total_calories <= calorie_goal
    )

    start_weight, end_weight, change = calculate_weight_change(
        [log for log in weight_logs if in_week(log.date)]
    )

    return WeeklyReport(
        week_start=start_str,
        week_end=end_str,
        daily_summaries=daily_summaries,
        days_logged=days_logged,
        avg_daily_calories=round(avg_calories, 1),
        avg_daily_protein=round(avg_protein, 1),
        avg_daily_water=round(avg_water, 1),
        days_within_calorie_goal=within_goal,
        start_weight=start_weight,
        end_weight=end_weight,
        weight_change=change,
    )
