"""Room Service - linking professionals to patients and managing their plans.

Every change that touches more than one document runs in a single store
transaction that reads and verifies before it writes, so a failure leaves
no partial linkage behind.
"""

import logging
from typing import Any, Optional

from google.cloud.firestore import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion
from pydantic import ValidationError

from ..core.models import ActivePlan, MealPlanItem, Room, UserProfile
from ..core.rooms import (
    MIN_ROOM_NAME_LENGTH,
    SHARE_CODE_LENGTH,
    patient_info_from,
    plan_from_goals,
    supersede_plan,
)
from . import paths
from .errors import RoomLinkError
from .store import DocumentStore, Transaction


logger = logging.getLogger(__name__)


def _plan_document(plan: ActivePlan) -> dict[str, Any]:
    document = plan.to_document(exclude={"created_at"})
    document["createdAt"] = SERVER_TIMESTAMP
    return document


class RoomService:
    """Room linkage and plan operations over the document store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # ==================== Linkage ====================

    def create_room(self, professional_id: str, room_name: str, share_code: str) -> str:
        """Link a professional to the patient owning share_code.

        Args:
            professional_id: The professional creating the room
            room_name: Display name, at least 3 characters
            share_code: The patient's 8-character dashboard share code

        Returns:
            The new room id

        Raises:
            ValueError: If room_name or share_code are malformed
            RoomLinkError: If the code is unknown or the patient already has a room
        """
        room_name = room_name.strip()
        if len(room_name) < MIN_ROOM_NAME_LENGTH:
            raise ValueError("O nome da sala deve ter pelo menos 3 caracteres.")
        if len(share_code) != SHARE_CODE_LENGTH:
            raise ValueError("O código de compartilhamento deve ter 8 caracteres.")

        room_id = self._store.new_id(paths.ROOMS)

        def link(transaction: Transaction) -> str:
            matches = transaction.query(
                paths.USERS, [("dashboardShareCode", "==", share_code)], limit=1
            )
            if not matches:
                raise RoomLinkError("Código de compartilhamento inválido ou não encontrado.")

            patient_snapshot = matches[0]
            if patient_snapshot.data.get("patientRoomId"):
                raise RoomLinkError("Este paciente já está sendo acompanhado por um profissional.")

            try:
                patient = UserProfile.model_validate(patient_snapshot.to_dict())
            except ValidationError as e:
                raise RoomLinkError("Perfil do paciente inválido.") from e

            room = {
                "tenantId": patient.tenant_id,
                "roomName": room_name,
                "professionalId": professional_id,
                "patientId": patient.id,
                "patientInfo": patient_info_from(patient).to_document(),
                "activePlan": _plan_document(plan_from_goals(patient)),
                "planHistory": [],
                "createdAt": SERVER_TIMESTAMP,
            }
            transaction.set(paths.room(room_id), room)
            transaction.update(
                paths.user(professional_id), {"professionalRoomIds": ArrayUnion([room_id])}
            )
            transaction.update(paths.user(patient.id), {"patientRoomId": room_id})
            return patient.id

        patient_id = self._store.run_transaction(link)
        logger.info(
            "Created room %s linking %s to patient %s", room_id, professional_id[:8], patient_id[:8]
        )
        return room_id

    def delete_room(self, room_id: str, professional_id: str) -> None:
        """Delete a room and unlink both sides.

        Raises:
            RoomLinkError: If the room is missing or not owned by professional_id
        """

        def unlink(transaction: Transaction) -> None:
            snapshot = transaction.get(paths.room(room_id))
            if not snapshot.exists or snapshot.data.get("professionalId") != professional_id:
                raise RoomLinkError("Sala não encontrada ou você não tem permissão para removê-la.")

            transaction.delete(paths.room(room_id))
            transaction.update(
                paths.user(professional_id), {"professionalRoomIds": ArrayRemove([room_id])}
            )
            transaction.update(paths.user(snapshot.data["patientId"]), {"patientRoomId": None})

        self._store.run_transaction(unlink)
        logger.info("Deleted room %s", room_id)

    def get_room(self, room_id: str) -> Optional[Room]:
        snapshot = self._store.get(paths.room(room_id))
        if not snapshot.exists:
            return None
        return Room.model_validate(snapshot.to_dict())

    def list_professional_rooms(self, professional_id: str) -> list[Room]:
        snapshots = self._store.query(paths.ROOMS, [("professionalId", "==", professional_id)])
        rooms = []
        for snapshot in snapshots:
            try:
                rooms.append(Room.model_validate(snapshot.to_dict()))
            except ValidationError as e:
                logger.error("Skipping invalid room %s: %d errors", snapshot.id, e.error_count())
        return rooms

    # ==================== Plans ====================

    def _owned_room(
        self, transaction: Transaction, room_id: str, professional_id: str
    ) -> dict[str, Any]:
        snapshot = transaction.get(paths.room(room_id))
        if not snapshot.exists:
            raise RoomLinkError("Sala não encontrada.")
        if snapshot.data.get("professionalId") != professional_id:
            raise RoomLinkError("Você não tem permissão para atualizar esta sala.")
        return snapshot.data

    def update_active_plan(self, room_id: str, professional_id: str, plan: ActivePlan) -> None:
        """Install a new plan, appending the superseded one to planHistory.

        Raises:
            RoomLinkError: If the room is missing or not owned by professional_id
        """

        def install(transaction: Transaction) -> None:
            room = self._owned_room(transaction, room_id, professional_id)
            active_plan, history = supersede_plan(
                room.get("activePlan"), room.get("planHistory"), _plan_document(plan)
            )
            transaction.update(
                paths.room(room_id), {"activePlan": active_plan, "planHistory": history}
            )

        self._store.run_transaction(install)
        logger.info("Updated active plan of room %s", room_id)

    def clear_plan(self, room_id: str, professional_id: str) -> None:
        """Replace the plan with an empty one built from the patient's own goals."""

        def clear(transaction: Transaction) -> None:
            room = self._owned_room(transaction, room_id, professional_id)
            patient_snapshot = transaction.get(paths.user(room["patientId"]))
            if not patient_snapshot.exists:
                raise RoomLinkError("Paciente não encontrado.")

            patient = UserProfile.model_validate(patient_snapshot.to_dict())
            active_plan, history = supersede_plan(
                room.get("activePlan"),
                room.get("planHistory"),
                _plan_document(plan_from_goals(patient)),
            )
            transaction.update(
                paths.room(room_id), {"activePlan": active_plan, "planHistory": history}
            )

        self._store.run_transaction(clear)
        logger.info("Cleared plan of room %s", room_id)

    def update_personal_plan(self, user_id: str, plan: ActivePlan) -> None:
        """Save a patient's own plan on their profile."""
        self._store.update(paths.user(user_id), {"activePlan": _plan_document(plan)})
        logger.info("Updated personal plan of %s", user_id[:8])

    def remove_meal(
        self,
        meals: list[MealPlanItem],
        index: int,
        room_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[MealPlanItem]:
        """Drop one scheduled meal from a room plan or a personal plan.

        Args:
            meals: The plan's meals as currently shown
            index: Position of the meal to drop
            room_id: Room whose plan to change
            user_id: Patient whose personal plan to change (when no room_id)

        Returns:
            The remaining meals

        Raises:
            IndexError: If index is out of range
            ValueError: If neither room_id nor user_id is given
        """
        if not 0 <= index < len(meals):
            raise IndexError(f"No meal at position {index}")
        remaining = [meal for i, meal in enumerate(meals) if i != index]
        documents = [meal.to_document() for meal in remaining]

        if room_id:
            self._store.update(paths.room(room_id), {"activePlan.meals": documents})
        elif user_id:
            self._store.update(paths.user(user_id), {"activePlan.meals": documents})
        else:
            raise ValueError("room_id or user_id is required")
        return remaining
