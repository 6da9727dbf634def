"""MCP Server - Tool definitions for assistant integration.

Lets a patient's assistant read their day, log water and weight, review the
week and ask the virtual chef. Requests are authenticated by AuthMiddleware
in main.py, which sets current_user_id from a Firebase ID token.
"""

import logging
from contextvars import ContextVar
from datetime import date, timedelta
from typing import Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from ..core.macros import calculate_daily_summary
from ..core.models import Room, UserProfile
from ..core.reports import generate_weekly_report
from ..core.rooms import effective_goals
from .context import get_context
from .errors import NutriSmartError
from .session import load_profile


logger = logging.getLogger(__name__)

# Context variable to store current user_id per request
current_user_id: ContextVar[str | None] = ContextVar("current_user_id", default=None)

transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=[
        "localhost:*",
        "127.0.0.1:*",
        "*.run.app:*",
        "*.run.app",
    ],
)

mcp = FastMCP(
    "nutrismart",
    instructions="""NutriSmart - nutrition diary assistant for patients.

Use these tools to show the patient's day against their goals, log water and
weight, summarise the week, show the meal plan from their nutritionist, and
suggest recipes.

After logging water or weight, show the updated daily summary.""",
    stateless_http=True,
    transport_security=transport_security,
)


def get_user_id() -> str:
    """Get current authenticated user ID.

    Raises:
        RuntimeError: If no user is authenticated
    """
    user_id = current_user_id.get()
    if user_id is None:
        raise RuntimeError("No authenticated user. Ensure an ID token is provided.")
    return user_id


def _profile_and_room(user_id: str) -> tuple[Optional[UserProfile], Optional[Room]]:
    ctx = get_context()
    profile = load_profile(ctx.store, user_id)
    if profile is None or not profile.patient_room_id:
        return profile, None
    return profile, ctx.rooms.get_room(profile.patient_room_id)


def _today_summary(user_id: str, profile: UserProfile, room: Optional[Room]) -> dict:
    ctx = get_context()
    today = date.today().isoformat()
    entries = ctx.tracking.list_meal_entries(user_id, today)
    hydration = ctx.tracking.get_hydration(user_id, today)
    goals = effective_goals(profile, room)
    summary = calculate_daily_summary(entries, goals, hydration)
    return {
        "date": today,
        "meals": [
            {
                "id": e.id,
                "meal_type": e.meal_type,
                "foods": [f.name for f in e.meal_data.foods],
                "calories": e.meal_data.totals.calories,
                "protein": e.meal_data.totals.protein,
            }
            for e in entries
        ],
        "goals": {"calories": goals[0], "protein": goals[1], "water_ml": goals[2]},
        "summary": summary.model_dump(),
    }


# ==================== Query Tools ====================


@mcp.tool()
def get_today() -> dict:
    """Get today's meals, water intake and remaining goals.

    Goals come from the nutritionist's plan when the patient has one,
    otherwise from the patient's own settings.

    Returns:
        Dictionary with date, meals, goals, and summary
    """
    user_id = get_user_id()
    profile, room = _profile_and_room(user_id)
    if profile is None:
        return {"error": "Profile not found. Finish registration in the app first."}
    return _today_summary(user_id, profile, room)


@mcp.tool()
def get_active_plan() -> dict:
    """Get the meal plan currently in force.

    Returns:
        The plan's goals and scheduled meals, and whether it comes from a nutritionist
    """
    user_id = get_user_id()
    profile, room = _profile_and_room(user_id)
    if profile is None:
        return {"error": "Profile not found."}

    plan = room.active_plan if room is not None else profile.active_plan
    if plan is None:
        return {"source": "none", "message": "No meal plan yet."}
    return {
        "source": "nutritionist" if room is not None else "personal",
        "calorie_goal": plan.calorie_goal,
        "protein_goal": plan.protein_goal,
        "hydration_goal": plan.hydration_goal,
        "meals": [{"name": m.name, "time": m.time, "items": m.items} for m in plan.meals],
    }


@mcp.tool()
def get_weekly_report() -> dict:
    """Summarise the last 7 days: intake, hydration, goal adherence and weight trend.

    Returns:
        Dictionary with daily summaries, averages and weight change
    """
    user_id = get_user_id()
    profile, room = _profile_and_room(user_id)
    if profile is None:
        return {"error": "Profile not found."}

    ctx = get_context()
    start_date = date.today() - timedelta(days=6)
    calorie_goal, _, _ = effective_goals(profile, room)
    report = generate_weekly_report(
        ctx.tracking.list_meal_entries(user_id),
        ctx.tracking.list_hydration_entries(user_id),
        ctx.tracking.list_weight_logs(user_id),
        calorie_goal,
        start_date,
    )
    result = report.model_dump()
    if report.weight_change is not None:
        direction = "lost" if report.weight_change < 0 else "gained"
        result["interpretation"] = f"{direction} {abs(report.weight_change):.1f} kg this week"
    return result


# ==================== Logging Tools ====================


@mcp.tool()
def log_water(amount_ml: int) -> dict:
    """Add water to today's intake.

    Args:
        amount_ml: Water drunk, in millilitres (e.g., 250)

    Returns:
        New total for today and updated daily summary
    """
    if amount_ml <= 0:
        return {"error": "Amount must be positive."}
    user_id = get_user_id()
    profile, room = _profile_and_room(user_id)
    if profile is None:
        return {"error": "Profile not found."}

    ctx = get_context()
    today = date.today().isoformat()
    current = ctx.tracking.get_hydration(user_id, today)
    intake = (current.intake if current else 0) + amount_ml
    _, _, water_goal = effective_goals(profile, room)
    ctx.tracking.set_hydration(user_id, today, intake, water_goal)
    return {"water_intake": intake, "daily_summary": _today_summary(user_id, profile, room)["summary"]}


@mcp.tool()
def log_weight(weight_kg: float) -> dict:
    """Record today's weight.

    Args:
        weight_kg: Body weight in kilograms

    Returns:
        Confirmation with the logged weight
    """
    if weight_kg <= 0:
        return {"error": "Weight must be positive."}
    user_id = get_user_id()
    log_id = get_context().tracking.add_weight_log(user_id, weight_kg)
    return {"id": log_id, "weight": weight_kg, "date": date.today().isoformat()}


# ==================== Chef ====================


@mcp.tool()
def ask_chef(prompt: str) -> dict:
    """Ask the virtual chef for a recipe or cooking idea.

    Args:
        prompt: What to cook, e.g. ingredients at hand or a dietary need

    Returns:
        The chef's answer, with a structured recipe when one was produced
    """
    user_id = get_user_id()
    try:
        reply = get_context().webhook.ask_chef(user_id, prompt)
    except NutriSmartError as e:
        return {"error": e.user_message}
    return reply.model_dump(exclude_none=True)
