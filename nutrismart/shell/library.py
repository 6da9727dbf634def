"""Library Repository - a clinic's plan templates and guidelines."""

import logging
from datetime import datetime
from typing import Optional

from google.cloud.firestore import SERVER_TIMESTAMP
from pydantic import ValidationError

from ..core.models import ActivePlan, Guideline, PlanTemplate
from . import paths
from .store import DocumentStore


logger = logging.getLogger(__name__)


def apply_template(template: PlanTemplate, created_at: Optional[datetime] = None) -> ActivePlan:
    """Turn a library template into a plan ready to install on a room."""
    return ActivePlan(
        meals=[meal.model_copy() for meal in template.meals],
        calorie_goal=template.calorie_goal,
        protein_goal=template.protein_goal,
        hydration_goal=template.hydration_goal,
        created_at=created_at,
    )


class LibraryRepository:
    """Reusable content shared by the professionals of one tenant."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def create_plan_template(self, template: PlanTemplate) -> str:
        collection = paths.tenant_collection(template.tenant_id, paths.PLAN_TEMPLATES)
        document = template.to_document(exclude={"id"})
        document["createdAt"] = SERVER_TIMESTAMP
        template_id = self._store.add(collection, document)
        logger.info("Created plan template '%s' in tenant %s", template.name, template.tenant_id)
        return template_id

    def list_plan_templates(self, tenant_id: str) -> list[PlanTemplate]:
        """Templates of a tenant, sorted by name."""
        snapshots = self._store.query(
            paths.tenant_collection(tenant_id, paths.PLAN_TEMPLATES), order_by="name"
        )
        templates = []
        for snapshot in snapshots:
            try:
                templates.append(PlanTemplate.model_validate(snapshot.to_dict()))
            except ValidationError as e:
                logger.warning("Skipping invalid template %s: %d errors", snapshot.id, e.error_count())
        return templates

    def delete_plan_template(self, tenant_id: str, template_id: str) -> None:
        self._store.delete(
            f"{paths.tenant_collection(tenant_id, paths.PLAN_TEMPLATES)}/{template_id}"
        )

    def create_guideline(self, guideline: Guideline) -> str:
        collection = paths.tenant_collection(guideline.tenant_id, paths.GUIDELINES)
        document = guideline.to_document(exclude={"id"})
        document["createdAt"] = SERVER_TIMESTAMP
        guideline_id = self._store.add(collection, document)
        logger.info("Created guideline '%s' in tenant %s", guideline.title, guideline.tenant_id)
        return guideline_id

    def list_guidelines(self, tenant_id: str) -> list[Guideline]:
        snapshots = self._store.query(
            paths.tenant_collection(tenant_id, paths.GUIDELINES), order_by="title"
        )
        guidelines = []
        for snapshot in snapshots:
            try:
                guidelines.append(Guideline.model_validate(snapshot.to_dict()))
            except ValidationError as e:
                logger.warning("Skipping invalid guideline %s: %d errors", snapshot.id, e.error_count())
        return guidelines

    def delete_guideline(self, tenant_id: str, guideline_id: str) -> None:
        self._store.delete(f"{paths.tenant_collection(tenant_id, paths.GUIDELINES)}/{guideline_id}")
