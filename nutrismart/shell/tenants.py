"""Tenant Admin - privileged tenant and account lifecycle operations.

Cascading deletes run through write batches. Deleting an account spans the
document store and the auth provider, which cannot share a transaction: the
store side records an account_deletions/{uid} tombstone in the same batch
that removes the user's documents, and the tombstone is cleared only after
the auth account is gone. reconcile_account_deletions() finishes any
deletion whose auth step failed.
"""

import logging
from typing import Any, Mapping, Optional

import httpx
from google.auth import exceptions as google_auth_exceptions
from google.cloud.firestore import SERVER_TIMESTAMP, ArrayRemove, ArrayUnion
from pydantic import ValidationError

from ..core.models import ProfileType, Role, Tenant
from ..core.site_config import SiteSettings
from . import paths
from .auth import AuthAdminClient, AuthUser
from .errors import AccountDeletionError
from .store import DocumentStore


logger = logging.getLogger(__name__)


class TenantAdmin:
    """Super-admin operations on tenants and user accounts."""

    def __init__(self, store: DocumentStore, auth_admin: Optional[AuthAdminClient] = None) -> None:
        """Initialize tenant admin.

        Args:
            store: Document store with privileged access
            auth_admin: Auth account admin client (None if no service account is configured)
        """
        self._store = store
        self._auth_admin = auth_admin

    # ==================== Tenants ====================

    def create_tenant(self, name: str, owner_id: str) -> str:
        """Create a tenant and make owner_id its admin."""
        if not name.strip():
            raise ValueError("Tenant name is required")
        tenant_id = self._store.new_id(paths.TENANTS)

        batch = self._store.batch()
        batch.set(
            paths.tenant(tenant_id),
            {
                "name": name.strip(),
                "ownerId": owner_id,
                "professionalIds": [owner_id],
                "createdAt": SERVER_TIMESTAMP,
            },
        )
        batch.update(paths.user(owner_id), {"tenantId": tenant_id, "role": Role.ADMIN.value})
        batch.commit()
        logger.info("Created tenant %s owned by %s", tenant_id, owner_id[:8])
        return tenant_id

    def list_tenants(self) -> list[Tenant]:
        tenants = []
        for snapshot in self._store.query(paths.TENANTS, order_by="name"):
            try:
                tenants.append(Tenant.model_validate(snapshot.to_dict()))
            except ValidationError as e:
                logger.error("Skipping invalid tenant %s: %d errors", snapshot.id, e.error_count())
        return tenants

    def save_site_settings(self, tenant_id: str, settings: Mapping[str, Any]) -> SiteSettings:
        """Validate and store a tenant's site settings.

        Raises:
            pydantic.ValidationError: If the settings are incomplete or malformed
        """
        validated = SiteSettings.model_validate(settings)
        document = validated.model_dump(by_alias=True, exclude_none=True, mode="json")
        self._store.set(paths.site_config(tenant_id), document, merge=True)
        logger.info("Saved site settings for tenant %s", tenant_id)
        return validated

    def add_professional(self, tenant_id: str, user: AuthUser, full_name: str) -> None:
        """Create a professional's profile and list them on the tenant."""
        batch = self._store.batch()
        batch.set(
            paths.user(user.uid),
            {
                "id": user.uid,
                "tenantId": tenant_id,
                "fullName": full_name,
                "email": user.email or "",
                "profileType": ProfileType.PROFESSIONAL.value,
                "role": Role.PROFESSIONAL.value,
                "createdAt": SERVER_TIMESTAMP,
                "professionalRoomIds": [],
            },
        )
        batch.update(paths.tenant(tenant_id), {"professionalIds": ArrayUnion([user.uid])})
        batch.commit()
        logger.info("Added professional %s to tenant %s", user.uid[:8], tenant_id)

    def delete_tenant(self, tenant_id: str) -> None:
        """Delete a tenant with its config, library, billing catalog, users and rooms.

        Auth accounts of the tenant's users are not touched.
        """
        batch = self._store.batch()
        batch.delete(paths.tenant(tenant_id))
        batch.delete(paths.site_config(tenant_id))

        for name in (paths.PLAN_TEMPLATES, paths.GUIDELINES):
            for snapshot in self._store.query(paths.tenant_collection(tenant_id, name)):
                batch.delete(snapshot.path)

        products = paths.tenant_collection(tenant_id, paths.PRODUCTS)
        for product in self._store.query(products):
            for price in self._store.query(f"{product.path}/{paths.PRICES}"):
                batch.delete(price.path)
            batch.delete(product.path)

        users = self._store.query(paths.USERS, [("tenantId", "==", tenant_id)])
        for snapshot in users:
            batch.delete(snapshot.path)

        rooms = self._store.query(paths.ROOMS, [("tenantId", "==", tenant_id)])
        for snapshot in rooms:
            batch.delete(snapshot.path)

        batch.commit()
        logger.info(
            "Deleted tenant %s with %d users and %d rooms", tenant_id, len(users), len(rooms)
        )

    # ==================== Accounts ====================

    def delete_user_account(self, uid: str) -> None:
        """Delete a user's documents and auth account.

        Raises:
            AccountDeletionError: If the auth account could not be deleted. The
                documents are already gone and the tombstone is kept for
                reconcile_account_deletions().
        """
        batch = self._store.batch()
        batch.delete(paths.user(uid))
        for collection in (paths.MEAL_ENTRIES, paths.HYDRATION_ENTRIES, paths.WEIGHT_LOGS):
            for snapshot in self._store.query(collection, [("userId", "==", uid)]):
                batch.delete(snapshot.path)

        # Rooms go with either side; the other side is unlinked so it can pair again.
        for room in self._store.query(paths.ROOMS, [("patientId", "==", uid)]):
            batch.delete(room.path)
            professional_id = room.data.get("professionalId")
            if self._exists(professional_id):
                batch.update(
                    paths.user(professional_id), {"professionalRoomIds": ArrayRemove([room.id])}
                )
        for room in self._store.query(paths.ROOMS, [("professionalId", "==", uid)]):
            batch.delete(room.path)
            patient_id = room.data.get("patientId")
            if patient_id != uid and self._exists(patient_id):
                batch.update(paths.user(patient_id), {"patientRoomId": None})

        batch.set(paths.account_deletion(uid), {"uid": uid, "requestedAt": SERVER_TIMESTAMP})
        batch.commit()
        logger.info("Deleted documents of %s, removing auth account", uid[:8])

        if not self._delete_auth_account(uid):
            raise AccountDeletionError(
                "Os dados foram removidos, mas a conta de acesso não pôde ser excluída. "
                "A exclusão será concluída automaticamente."
            )

    def reconcile_account_deletions(self) -> list[str]:
        """Retry the auth step of every unfinished account deletion.

        Returns:
            Uids whose deletion completed on this pass
        """
        completed = []
        for tombstone in self._store.query(paths.ACCOUNT_DELETIONS):
            if self._delete_auth_account(tombstone.id):
                completed.append(tombstone.id)
        if completed:
            logger.info("Reconciled %d account deletions", len(completed))
        return completed

    def _exists(self, uid: Optional[str]) -> bool:
        return bool(uid) and self._store.get(paths.user(uid)).exists

    def _delete_auth_account(self, uid: str) -> bool:
        if self._auth_admin is None:
            logger.error("Cannot delete auth account %s: no service account configured", uid[:8])
            return False
        try:
            self._auth_admin.delete_user(uid)
        except (httpx.HTTPError, google_auth_exceptions.GoogleAuthError) as e:
            logger.error("Auth deletion failed for %s: %s", uid[:8], str(e))
            return False
        self._store.delete(paths.account_deletion(uid))
        return True
