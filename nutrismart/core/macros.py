"""Macro Calculations - Pure functions for nutrition math.

All functions are pure: same input always produces same output, no side effects.
"""

from typing import Optional

from .models import DailySummary, HydrationEntry, MealEntry


def calculate_daily_totals(entries: list[MealEntry]) -> tuple[float, float, float, float]:
    """Calculate total macros from a list of meal entries.

    Args:
        entries: Meal entries for a day

    Returns:
        Tuple of (calories, protein, carbs, fat)
    """
    total_calories = sum(e.meal_data.totals.calories for e in entries)
    total_protein = sum(e.meal_data.totals.protein for e in entries)
    total_carbs = sum(e.meal_data.totals.carbs for e in entries)
    total_fat = sum(e.meal_data.totals.fat for e in entries)

    return total_calories, total_protein, total_carbs, total_fat


def entries_for_date(entries: list[MealEntry], log_date: str) -> list[MealEntry]:
    """Keep only the entries logged on a given YYYY-MM-DD date."""
    return [e for e in entries if e.date == log_date]


def calculate_daily_summary(
    entries: list[MealEntry],
    goals: tuple[int, int, int],
    hydration: Optional[HydrationEntry] = None,
) -> DailySummary:
    """Calculate daily summary with totals and remaining goals.

    Args:
        entries: Meal entries for the day
        goals: Tuple of (calorie goal, protein goal, hydration goal)
        hydration: The day's hydration entry, if any

    Returns:
        DailySummary with totals and remaining amounts
    """
    calorie_goal, protein_goal, water_goal = goals
    total_cal, total_pro, total_carb, total_fat = calculate_daily_totals(entries)
    water_intake = hydration.intake if hydration else 0

    return DailySummary(
        total_calories=round(total_cal, 1),
        total_protein=round(total_pro, 1),
        total_carbs=round(total_carb, 1),
        total_fat=round(total_fat, 1),
        water_intake=water_intake,
        calories_remaining=round(calorie_goal - total_cal, 1),
        protein_remaining=round(protein_goal - total_pro, 1),
        water_remaining=water_goal - water_intake,
    )
