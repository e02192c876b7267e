from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from .budget import count_words
from .errors import InvalidTransition, NotFound
from .models import MaterialStatus, SourceMaterial
from .repository import MaterialRepository

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[MaterialStatus, FrozenSet[MaterialStatus]] = {
    MaterialStatus.PENDING: frozenset({MaterialStatus.PROCESSING}),
    MaterialStatus.PROCESSING: frozenset({MaterialStatus.COMPLETED, MaterialStatus.FAILED}),
    # Leaving FAILED is only ever caller-initiated (an explicit re-trigger).
    MaterialStatus.FAILED: frozenset({MaterialStatus.PENDING}),
    MaterialStatus.COMPLETED: frozenset(),
}


class MaterialLedger:
    """
    Authoritative record of source materials and their lifecycle.

    `transition` is the only code path that writes status or extraction
    results. It checks the transition table, validates the payload so that
    `extracted_text` is set exactly when the material is completed, and
    applies the change as a compare-and-set on the current status. Two racing
    transitions from the same state cannot both succeed; the loser gets
    InvalidTransition.
    """

    def __init__(self, repository: MaterialRepository):
        self.repo = repository

    def create(self, material: SourceMaterial) -> SourceMaterial:
        if material.status != MaterialStatus.PENDING or material.extracted_text is not None:
            raise InvalidTransition("New source materials must start pending without extracted text")
        self.repo.insert(material)
        logger.info("Created source material %s for project %s", material.id, material.project_id)
        return material

    def find(self, material_id: str) -> Optional[SourceMaterial]:
        return self.repo.get(material_id)

    def get(self, material_id: str) -> SourceMaterial:
        material = self.repo.get(material_id)
        if material is None:
            raise NotFound(f"Source material not found: {material_id}")
        return material

    def list_by_project(self, project_id: str) -> List[SourceMaterial]:
        return self.repo.list_by_project(project_id)

    def transition(
        self,
        material_id: str,
        new_status: MaterialStatus,
        *,
        text: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        page_count: Optional[int] = None,
        author_name: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> SourceMaterial:
        current = self.get(material_id)
        if new_status not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransition(
                f"Source material {material_id} cannot move from {current.status.value} to {new_status.value}"
            )

        now = datetime.utcnow()
        values: Dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status == MaterialStatus.COMPLETED:
            if text is None:
                raise InvalidTransition("A completed source material requires extracted text")
            values.update(
                extracted_text=text,
                word_count=count_words(text),
                page_count=page_count,
                author_name=author_name,
                metadata=metadata or {},
                error_message=None,
                processed_at=now,
            )
        elif new_status == MaterialStatus.FAILED:
            if not error_message:
                raise InvalidTransition("A failed source material requires an error message")
            values.update(extracted_text=None, error_message=error_message)
        else:
            values.update(extracted_text=None, error_message=None)

        if not self.repo.compare_and_set_status(material_id, current.status, values):
            latest = self.get(material_id)
            raise InvalidTransition(
                f"Source material {material_id} changed to {latest.status.value} "
                f"before {current.status.value} -> {new_status.value} could apply"
            )
        logger.info("Source material %s: %s -> %s", material_id, current.status.value, new_status.value)
        return replace(current, **values)

    def set_activation(self, material_id: str, is_active: bool) -> None:
        if not self.repo.set_activation(material_id, is_active):
            raise NotFound(f"Source material not found: {material_id}")

    def delete(self, material_id: str) -> None:
        if not self.repo.delete(material_id):
            raise NotFound(f"Source material not found: {material_id}")
        logger.info("Deleted source material %s", material_id)
