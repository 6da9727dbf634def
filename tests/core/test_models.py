"""Unit tests for Pydantic models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from nutrismart.core.models import (
    ActivePlan,
    FoodItem,
    MealEntry,
    MealPlanItem,
    ProfileType,
    Role,
    Room,
    UserProfile,
)


class TestDocumentAliases:
    """Stored documents use camelCase field names."""

    def test_profile_reads_camel_case(self):
        """Profile fields are populated from stored names."""
        profile = UserProfile.model_validate(
            {
                "id": "u1",
                "tenantId": "clinic-x",
                "fullName": "Ana",
                "email": "ana@example.com",
                "profileType": "patient",
                "dashboardShareCode": "ABCD2345",
            }
        )

        assert profile.tenant_id == "clinic-x"
        assert profile.profile_type == ProfileType.PATIENT
        assert profile.professional_room_ids == []

    def test_to_document_drops_unset_optionals(self):
        """to_document uses aliases and omits None fields."""
        profile = UserProfile(
            id="u1", tenant_id="t", full_name="Ana", email="a@example.com", profile_type=ProfileType.PATIENT
        )
        document = profile.to_document()

        assert document["fullName"] == "Ana"
        assert "patientRoomId" not in document
        assert "full_name" not in document

    def test_super_admin_flag(self):
        """Only the super-admin role is flagged."""
        base = {"id": "u", "tenantId": "t", "fullName": "X", "email": "x@example.com", "profileType": "professional"}
        assert UserProfile.model_validate({**base, "role": "super-admin"}).is_super_admin
        assert not UserProfile.model_validate({**base, "role": Role.ADMIN.value}).is_super_admin


class TestMealModels:
    """Tests for meal entry and food models."""

    def test_meal_entry_uses_portuguese_nutrient_names(self):
        """Webhook documents carry alimentos/totais with Portuguese keys."""
        entry = MealEntry.model_validate(
            {
                "id": "m1",
                "userId": "u1",
                "date": "2024-12-28",
                "mealType": "Almoço",
                "mealData": {
                    "alimentos": [
                        {"name": "arroz", "portion": 100, "unit": "g", "calorias": 130, "proteinas": 2.7}
                    ],
                    "totais": {"calorias": 130, "proteinas": 2.7, "carboidratos": 28, "gorduras": 0.3},
                },
            }
        )

        assert entry.meal_data.foods[0].calories == 130
        assert entry.meal_data.totals.carbs == 28

    def test_food_item_rejects_zero_portion(self):
        """A described food needs a positive portion."""
        with pytest.raises(ValidationError):
            FoodItem(name="arroz", portion=0, unit="g")


class TestPlanModels:
    """Tests for plan validation."""

    def test_meal_time_must_be_hh_mm(self):
        """Times outside HH:MM are rejected."""
        MealPlanItem(name="Café", time="07:30", items="Pão e café")
        with pytest.raises(ValidationError):
            MealPlanItem(name="Café", time="25:00", items="Pão e café")

    def test_plan_requires_positive_goals(self):
        """Calorie and hydration goals must be positive."""
        with pytest.raises(ValidationError):
            ActivePlan(calorie_goal=0, hydration_goal=2000)


class TestRoom:
    """Tests for the Room model."""

    def test_pending_read_markers_are_dropped(self):
        """A lastRead entry still waiting for its server timestamp is ignored."""
        room = Room.model_validate(
            {
                "id": "r1",
                "tenantId": "t",
                "roomName": "Ana",
                "professionalId": "prof-1",
                "patientId": "patient-1",
                "patientInfo": {"name": "Ana", "email": "ana@example.com"},
                "activePlan": {"calorieGoal": 2000, "hydrationGoal": 2000},
                "lastRead": {
                    "prof-1": datetime(2024, 1, 1, tzinfo=timezone.utc),
                    "patient-1": None,
                },
            }
        )

        assert list(room.last_read) == ["prof-1"]
