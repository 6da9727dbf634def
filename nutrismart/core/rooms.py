"""Room Rules - unread tracking, plan history and room seeding.

All functions are pure: same input always produces same output, no side effects.
"""

from datetime import datetime
from typing import Any, Optional

from .models import ActivePlan, PatientInfo, Room, UserProfile


DEFAULT_CALORIE_GOAL = 2000
DEFAULT_PROTEIN_GOAL = 140
DEFAULT_WATER_GOAL = 2000

SHARE_CODE_LENGTH = 8
MIN_ROOM_NAME_LENGTH = 3


def has_unread(room: Room, user_id: str) -> bool:
    """Check whether a room has messages the user has not read.

    A room is unread for a user when the newest message came from someone
    else and the user's read marker is missing or older than it.

    Args:
        room: The room to inspect
        user_id: The reader

    Returns:
        True if the unread badge should be shown
    """
    last_message = room.last_message
    if last_message is None or last_message.sender_id == user_id:
        return False

    last_read = room.last_read.get(user_id)
    if last_read is None:
        return True
    if last_message.created_at is None:
        # Preview written without a resolved timestamp counts as new.
        return True
    return last_message.created_at > last_read


def calculated_protein_goal(calorie_goal: int) -> int:
    """Protein target covering 35% of calories at 4 kcal/g."""
    return round((calorie_goal * 0.35) / 4)


def patient_info_from(profile: UserProfile) -> PatientInfo:
    """Snapshot the patient fields a professional sees on the room card."""
    return PatientInfo(
        name=profile.full_name,
        email=profile.email,
        age=profile.age or None,
        weight=profile.weight or None,
        target_weight=profile.target_weight or None,
    )


def plan_from_goals(
    profile: UserProfile, created_at: Optional[datetime] = None
) -> ActivePlan:
    """An empty plan seeded from the patient's personal goals."""
    calorie_goal = profile.calorie_goal or DEFAULT_CALORIE_GOAL
    return ActivePlan(
        meals=[],
        calorie_goal=calorie_goal,
        protein_goal=profile.protein_goal or DEFAULT_PROTEIN_GOAL,
        hydration_goal=profile.water_goal or DEFAULT_WATER_GOAL,
        created_at=created_at,
    )


def supersede_plan(
    active_plan: Optional[dict[str, Any]],
    plan_history: Optional[list[dict[str, Any]]],
    new_plan: dict[str, Any],
) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """Install a new plan, appending the superseded one to the history.

    Args:
        active_plan: Current active plan document (None if the room has none)
        plan_history: Current history, oldest first
        new_plan: Plan document to install

    Returns:
        Tuple of (new active plan, new history). The history is a new list.
    """
    history = list(plan_history or [])
    if active_plan:
        history.append(active_plan)
    return new_plan, history


def effective_goals(
    profile: UserProfile, room: Optional[Room] = None
) -> tuple[int, int, int]:
    """Goals in force for a patient: room plan, then personal plan, then profile.

    Returns:
        Tuple of (calorie goal, protein goal, hydration goal)
    """
    plan = room.active_plan if room is not None else profile.active_plan
    if plan is not None:
        protein = plan.protein_goal or calculated_protein_goal(plan.calorie_goal)
        return plan.calorie_goal, protein, plan.hydration_goal

    calories = profile.calorie_goal or DEFAULT_CALORIE_GOAL
    protein = profile.protein_goal or calculated_protein_goal(calories)
    water = profile.water_goal or DEFAULT_WATER_GOAL
    return calories, protein, water
