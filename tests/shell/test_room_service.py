"""Tests for room linkage and plan management."""

from datetime import datetime

import pytest

from nutrismart.core.models import ActivePlan, MealPlanItem
from nutrismart.shell.errors import RoomLinkError, StoreError
from nutrismart.shell.rooms import RoomService

from conftest import make_profile


PROFESSIONAL = "users/prof-1"
PATIENT = "users/patient-1"

NEW_PLAN = ActivePlan(
    calorie_goal=1800,
    protein_goal=120,
    hydration_goal=2500,
    meals=[
        MealPlanItem(name="Café da Manhã", time="07:30", items="Ovos e mamão"),
        MealPlanItem(name="Almoço", time="12:30", items="Arroz, feijão e frango"),
    ],
)


@pytest.fixture
def service(store):
    store.docs[PROFESSIONAL] = {
        "id": "prof-1",
        "tenantId": "clinic-x",
        "fullName": "Dra. Carla",
        "email": "carla@example.com",
        "profileType": "professional",
        "role": "professional",
        "professionalRoomIds": [],
    }
    store.docs[PATIENT] = make_profile(weight=72.0, targetWeight=65.0)
    return RoomService(store)


@pytest.fixture
def room_id(service):
    return service.create_room("prof-1", "Ana Souza", "ABCD2345")


def without_timestamp(plan: dict) -> dict:
    return {k: v for k, v in plan.items() if k != "createdAt"}


class TestCreateRoom:
    """Tests for RoomService.create_room."""

    def test_links_all_three_documents(self, store, room_id):
        """Room, professional and patient are linked together."""
        room = store.docs[f"rooms/{room_id}"]

        assert room["professionalId"] == "prof-1"
        assert room["patientId"] == "patient-1"
        assert room["tenantId"] == "clinic-x"
        assert room["roomName"] == "Ana Souza"
        assert room["patientInfo"] == {
            "name": "Ana Souza",
            "email": "patient-1@example.com",
            "weight": 72.0,
            "targetWeight": 65.0,
        }
        assert without_timestamp(room["activePlan"]) == {
            "meals": [],
            "calorieGoal": 2000,
            "proteinGoal": 140,
            "hydrationGoal": 2000,
        }
        assert isinstance(room["activePlan"]["createdAt"], datetime)
        assert room["planHistory"] == []
        assert store.docs[PROFESSIONAL]["professionalRoomIds"] == [room_id]
        assert store.docs[PATIENT]["patientRoomId"] == room_id

    def test_patient_update_failure_leaves_nothing(self, store, service):
        """If the patient update fails, no room and no room-list change persist."""
        store.fail("update", PATIENT)

        with pytest.raises(StoreError):
            service.create_room("prof-1", "Ana Souza", "ABCD2345")

        assert not [path for path in store.docs if path.startswith("rooms/")]
        assert store.docs[PROFESSIONAL]["professionalRoomIds"] == []
        assert "patientRoomId" not in store.docs[PATIENT]
        assert store.writes == []

    def test_unknown_share_code(self, service):
        """An unknown code is rejected."""
        with pytest.raises(RoomLinkError, match="inválido ou não encontrado"):
            service.create_room("prof-1", "Ana Souza", "ZZZZ9999")

    def test_patient_already_linked(self, store, service, room_id):
        """A patient can be followed by one professional only."""
        with pytest.raises(RoomLinkError):
            service.create_room("prof-1", "Ana de novo", "ABCD2345")
        assert store.docs[PROFESSIONAL]["professionalRoomIds"] == [room_id]

    def test_input_validation(self, service):
        """Short names and malformed codes are rejected before any read."""
        with pytest.raises(ValueError):
            service.create_room("prof-1", " A ", "ABCD2345")
        with pytest.raises(ValueError):
            service.create_room("prof-1", "Ana Souza", "ABC")

    def test_get_and_list(self, store, service, room_id):
        """Rooms are readable by id and listed per professional."""
        store.docs["rooms/broken"] = {"professionalId": "prof-1"}

        assert service.get_room(room_id).patient_info.name == "Ana Souza"
        assert service.get_room("missing") is None
        assert [r.id for r in service.list_professional_rooms("prof-1")] == [room_id]


class TestDeleteRoom:
    """Tests for RoomService.delete_room."""

    def test_unlinks_both_sides(self, store, service, room_id):
        """Deleting removes the room and both links."""
        service.delete_room(room_id, "prof-1")

        assert f"rooms/{room_id}" not in store.docs
        assert store.docs[PROFESSIONAL]["professionalRoomIds"] == []
        assert store.docs[PATIENT]["patientRoomId"] is None

    def test_only_owner_may_delete(self, store, service, room_id):
        """Another professional cannot delete the room."""
        with pytest.raises(RoomLinkError):
            service.delete_room(room_id, "prof-2")
        assert f"rooms/{room_id}" in store.docs


class TestPlans:
    """Tests for plan installation and history."""

    def test_update_appends_prior_plan(self, store, service, room_id):
        """The superseded plan is appended to history; the new one is installed as given."""
        before = store.docs[f"rooms/{room_id}"]["activePlan"]

        service.update_active_plan(room_id, "prof-1", NEW_PLAN)
        room = store.docs[f"rooms/{room_id}"]

        assert room["planHistory"] == [before]
        assert without_timestamp(room["activePlan"]) == NEW_PLAN.to_document(exclude={"created_at"})

    def test_history_grows_in_order(self, store, service, room_id):
        """Each update appends, never overwrites."""
        service.update_active_plan(room_id, "prof-1", NEW_PLAN)
        second = NEW_PLAN.model_copy(update={"calorie_goal": 1600})
        service.update_active_plan(room_id, "prof-1", second)
        history = store.docs[f"rooms/{room_id}"]["planHistory"]

        assert [plan["calorieGoal"] for plan in history] == [2000, 1800]
        assert store.docs[f"rooms/{room_id}"]["activePlan"]["calorieGoal"] == 1600

    def test_update_requires_ownership(self, service, room_id):
        """Only the room's professional may change its plan."""
        with pytest.raises(RoomLinkError, match="permissão"):
            service.update_active_plan(room_id, "prof-2", NEW_PLAN)
        with pytest.raises(RoomLinkError, match="Sala não encontrada"):
            service.update_active_plan("missing", "prof-1", NEW_PLAN)

    def test_clear_plan_uses_patient_goals(self, store, service, room_id):
        """Clearing installs an empty plan from the patient's goals."""
        store.docs[PATIENT]["calorieGoal"] = 2100
        service.update_active_plan(room_id, "prof-1", NEW_PLAN)
        service.clear_plan(room_id, "prof-1")
        room = store.docs[f"rooms/{room_id}"]

        assert room["activePlan"]["meals"] == []
        assert room["activePlan"]["calorieGoal"] == 2100
        assert len(room["planHistory"]) == 2

    def test_remove_meal_from_room_plan(self, store, service, room_id):
        """Removing a meal rewrites the plan's meal list."""
        service.update_active_plan(room_id, "prof-1", NEW_PLAN)
        remaining = service.remove_meal(NEW_PLAN.meals, 0, room_id=room_id)

        assert [m.name for m in remaining] == ["Almoço"]
        assert [m["name"] for m in store.docs[f"rooms/{room_id}"]["activePlan"]["meals"]] == ["Almoço"]

    def test_remove_meal_from_personal_plan(self, store, service):
        """Patients edit the plan on their own profile."""
        service.update_personal_plan("patient-1", NEW_PLAN)
        service.remove_meal(NEW_PLAN.meals, 1, user_id="patient-1")

        plan = store.docs[PATIENT]["activePlan"]
        assert plan["calorieGoal"] == 1800
        assert [m["name"] for m in plan["meals"]] == ["Café da Manhã"]

    def test_remove_meal_validation(self, service):
        """Out-of-range positions and missing targets are rejected."""
        with pytest.raises(IndexError):
            service.remove_meal(NEW_PLAN.meals, 5, room_id="r1")
        with pytest.raises(ValueError):
            service.remove_meal(NEW_PLAN.meals, 0)
