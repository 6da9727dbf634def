"""Tracking Repository - meals, hydration and weight over time.

Time-series documents are flat collections queried by userId. Hydration
uses a deterministic {userId}_{date} id so each day has one document.
"""

import logging
from datetime import date
from typing import Callable, Optional, TypeVar

from google.cloud.firestore import SERVER_TIMESTAMP
from pydantic import ValidationError

from ..core.models import DocumentModel, HydrationEntry, MealData, MealEntry, WeightLog
from . import paths
from .store import DocumentStore, ErrorCallback, Snapshot, Transaction, Unsubscribe


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=DocumentModel)


def _parse_all(model: type[M], snapshots: list[Snapshot]) -> list[M]:
    parsed = []
    for snapshot in snapshots:
        try:
            parsed.append(model.model_validate(snapshot.to_dict()))
        except ValidationError as e:
            logger.warning(
                "Skipping invalid %s %s: %d errors", model.__name__, snapshot.id, e.error_count()
            )
    return parsed


class TrackingRepository:
    """Read and write a patient's daily logs."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # ==================== Meals ====================

    def add_meal_entry(self, entry: MealEntry) -> str:
        """Save a meal entry under its own id.

        Returns:
            The entry id
        """
        document = entry.to_document(exclude={"id", "created_at"})
        document["createdAt"] = SERVER_TIMESTAMP
        self._store.set(f"{paths.MEAL_ENTRIES}/{entry.id}", document)
        logger.info("Logged %s for %s on %s", entry.meal_type, entry.user_id[:8], entry.date)
        return entry.id

    def update_meal_data(self, entry_id: str, meal_data: MealData) -> None:
        """Replace the analysed foods and totals of a logged meal."""
        self._store.update(f"{paths.MEAL_ENTRIES}/{entry_id}", {"mealData": meal_data.to_document()})

    def delete_meal_entry(self, entry_id: str) -> None:
        self._store.delete(f"{paths.MEAL_ENTRIES}/{entry_id}")
        logger.info("Deleted meal entry %s", entry_id)

    def list_meal_entries(self, user_id: str, log_date: Optional[str] = None) -> list[MealEntry]:
        """Meal entries of a user, optionally restricted to one YYYY-MM-DD date."""
        filters = [("userId", "==", user_id)]
        if log_date:
            filters.append(("date", "==", log_date))
        return _parse_all(MealEntry, self._store.query(paths.MEAL_ENTRIES, filters))

    def watch_meal_entries(
        self,
        user_id: str,
        on_change: Callable[[list[MealEntry]], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Follow every meal entry of a user."""
        return self._store.watch_query(
            paths.MEAL_ENTRIES,
            lambda snapshots: on_change(_parse_all(MealEntry, snapshots)),
            on_error,
            filters=[("userId", "==", user_id)],
        )

    # ==================== Hydration ====================

    def set_hydration(self, user_id: str, log_date: str, intake: int, goal: int) -> HydrationEntry:
        """Record the day's total water intake.

        Args:
            user_id: Patient
            log_date: YYYY-MM-DD
            intake: Total ml drunk so far that day
            goal: Hydration goal in force, stored alongside for history views
        """
        entry = HydrationEntry(user_id=user_id, date=log_date, intake=intake, goal=goal)
        self._store.set(
            paths.hydration_entry(user_id, log_date), entry.to_document(exclude={"id"}), merge=True
        )
        logger.info("Hydration for %s on %s: %dml", user_id[:8], log_date, intake)
        return entry

    def get_hydration(self, user_id: str, log_date: str) -> Optional[HydrationEntry]:
        snapshot = self._store.get(paths.hydration_entry(user_id, log_date))
        if not snapshot.exists:
            return None
        return HydrationEntry.model_validate(snapshot.to_dict())

    def list_hydration_entries(self, user_id: str) -> list[HydrationEntry]:
        snapshots = self._store.query(paths.HYDRATION_ENTRIES, [("userId", "==", user_id)])
        return _parse_all(HydrationEntry, snapshots)

    # ==================== Weight ====================

    def add_weight_log(self, user_id: str, weight: float, log_date: Optional[str] = None) -> str:
        """Log a weigh-in and make it the profile's current weight.

        The profile, the new log and (when the patient is linked) the room's
        patient snapshot are written in one transaction.

        Returns:
            The new weight log id
        """
        log = WeightLog(user_id=user_id, weight=weight, date=log_date or date.today().isoformat())
        log_id = self._store.new_id(paths.WEIGHT_LOGS)

        def record(transaction: Transaction) -> None:
            profile = transaction.get(paths.user(user_id))
            room_id = profile.data.get("patientRoomId") if profile.exists else None

            transaction.update(paths.user(user_id), {"weight": weight})
            document = log.to_document(exclude={"id", "created_at"})
            document["createdAt"] = SERVER_TIMESTAMP
            transaction.set(f"{paths.WEIGHT_LOGS}/{log_id}", document)
            if room_id:
                transaction.update(paths.room(room_id), {"patientInfo.weight": weight})

        self._store.run_transaction(record)
        logger.info("Logged weight %.1fkg for %s", weight, user_id[:8])
        return log_id

    def list_weight_logs(self, user_id: str) -> list[WeightLog]:
        """Weight logs of a user, oldest first."""
        snapshots = self._store.query(paths.WEIGHT_LOGS, [("userId", "==", user_id)])
        return sorted(_parse_all(WeightLog, snapshots), key=lambda log: log.date)
