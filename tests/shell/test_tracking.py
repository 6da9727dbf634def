"""Tests for the tracking repository: meals, hydration and weight."""

from datetime import date

import pytest

from nutrismart.core.models import MealData, MealEntry
from nutrismart.shell.tracking import TrackingRepository

from conftest import make_profile


def entry(entry_id: str, log_date: str = "2024-12-28", calories: float = 500) -> MealEntry:
    return MealEntry.model_validate(
        {
            "id": entry_id,
            "userId": "patient-1",
            "date": log_date,
            "mealType": "Almoço",
            "mealData": {"totais": {"calorias": calories, "proteinas": 30}},
        }
    )


@pytest.fixture
def tracking(store):
    return TrackingRepository(store)


class TestMealEntries:
    """Tests for meal entry storage."""

    def test_add_and_list(self, store, tracking):
        """Entries are stored under their id and listed per user and day."""
        tracking.add_meal_entry(entry("m1", "2024-12-27"))
        tracking.add_meal_entry(entry("m2", "2024-12-28"))
        store.docs["meal_entries/other"] = {**store.docs["meal_entries/m1"], "userId": "patient-2"}

        assert store.docs["meal_entries/m1"]["mealData"]["totais"]["calorias"] == 500
        assert store.docs["meal_entries/m1"]["createdAt"] is not None
        assert {e.id for e in tracking.list_meal_entries("patient-1")} == {"m1", "m2"}
        assert [e.id for e in tracking.list_meal_entries("patient-1", "2024-12-28")] == ["m2"]

    def test_invalid_documents_skipped(self, store, tracking):
        """Malformed entries do not break the list."""
        tracking.add_meal_entry(entry("m1"))
        store.docs["meal_entries/bad"] = {"userId": "patient-1", "date": "2024-12-28"}

        assert [e.id for e in tracking.list_meal_entries("patient-1")] == ["m1"]

    def test_update_and_delete(self, store, tracking):
        """Analysed data can be replaced and entries removed."""
        tracking.add_meal_entry(entry("m1"))
        tracking.update_meal_data(
            "m1", MealData.model_validate({"totais": {"calorias": 320, "proteinas": 12}})
        )
        assert store.docs["meal_entries/m1"]["mealData"]["totais"]["calorias"] == 320

        tracking.delete_meal_entry("m1")
        assert tracking.list_meal_entries("patient-1") == []

    def test_watch_meal_entries(self, tracking):
        """The live list follows new entries."""
        seen = []
        unsubscribe = tracking.watch_meal_entries("patient-1", seen.append, lambda error: None)
        tracking.add_meal_entry(entry("m1"))
        unsubscribe()
        tracking.add_meal_entry(entry("m2"))

        assert [[e.id for e in entries] for entries in seen] == [[], ["m1"]]


class TestHydration:
    """Tests for daily hydration documents."""

    def test_one_document_per_day(self, store, tracking):
        """Setting twice on the same day overwrites the total."""
        tracking.set_hydration("patient-1", "2024-12-28", 500, 2000)
        tracking.set_hydration("patient-1", "2024-12-28", 1250, 2000)

        assert store.docs["hydration_entries/patient-1_2024-12-28"]["intake"] == 1250
        assert tracking.get_hydration("patient-1", "2024-12-28").intake == 1250
        assert len(tracking.list_hydration_entries("patient-1")) == 1

    def test_missing_day(self, tracking):
        """A day without water has no entry."""
        assert tracking.get_hydration("patient-1", "2024-12-28") is None


class TestWeight:
    """Tests for weight logs."""

    def test_log_updates_profile(self, store, tracking):
        """A weigh-in becomes the profile's current weight."""
        store.docs["users/patient-1"] = make_profile(weight=72.0)
        log_id = tracking.add_weight_log("patient-1", 71.4, "2024-12-28")

        assert store.docs[f"weight_logs/{log_id}"]["weight"] == 71.4
        assert store.docs["users/patient-1"]["weight"] == 71.4

    def test_log_updates_linked_room(self, store, tracking):
        """A linked patient's room card follows the new weight."""
        store.docs["users/patient-1"] = make_profile(patientRoomId="r1")
        store.docs["rooms/r1"] = {"patientInfo": {"name": "Ana", "weight": 72.0}}
        tracking.add_weight_log("patient-1", 70.9)

        assert store.docs["rooms/r1"]["patientInfo"] == {"name": "Ana", "weight": 70.9}

    def test_logs_sorted_by_date(self, store, tracking):
        """Logs come back oldest first, today by default."""
        store.docs["users/patient-1"] = make_profile()
        tracking.add_weight_log("patient-1", 70.0)
        tracking.add_weight_log("patient-1", 72.0, "2024-01-01")

        logs = tracking.list_weight_logs("patient-1")
        assert [log.date for log in logs] == ["2024-01-01", date.today().isoformat()]
