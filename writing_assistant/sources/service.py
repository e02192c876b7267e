from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional

from sqlalchemy.engine import Engine

from .config import SourcesConfig
from .context import ContextAssembler
from .db import create_db_engine
from .dispatch import ExtractionDispatcher, build_dispatcher
from .errors import InvalidUpload, NotFound, PermissionDenied
from .extractors import ExtractorRegistry
from .ledger import MaterialLedger
from .models import (
    ContextBudgetReport,
    ContextBundle,
    MaterialStatus,
    SearchResult,
    SourceMaterial,
    UploadSlot,
)
from .projects import ProjectGateway, SqlAlchemyProjectGateway
from .repository import SqlAlchemyMaterialRepository
from .search import GrepSearch
from .storage import LocalObjectStorage, ObjectStorage, StoragePaths
from .worker import ExtractionWorker

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/plain": "txt",
    "application/epub+zip": "epub",
}


def _split_filename(filename: str):
    if "." in filename.strip(".") and not filename.startswith("."):
        stem, ext = filename.rsplit(".", 1)
        return stem, ext.lower()
    return filename, ""


class SourceMaterialService:
    """
    Operations exposed to the rest of the application. Every call names the
    acting user; ownership is checked before anything is read or changed.
    """

    def __init__(
        self,
        ledger: MaterialLedger,
        storage: ObjectStorage,
        projects: ProjectGateway,
        dispatcher: ExtractionDispatcher,
        assembler: ContextAssembler,
        search_engine: GrepSearch,
        max_upload_bytes: int = 10 * 1024 * 1024,
    ):
        self.ledger = ledger
        self.storage = storage
        self.projects = projects
        self.dispatcher = dispatcher
        self.assembler = assembler
        self.search_engine = search_engine
        self.max_upload_bytes = max_upload_bytes

    # region ownership
    def _require_project(self, user_id: str, project_id: str) -> None:
        owner = self.projects.get_project_owner(project_id)
        if owner is None:
            raise NotFound(f"Project not found: {project_id}")
        if owner != user_id:
            raise PermissionDenied(f"Project {project_id} is not owned by user {user_id}")

    def _owned_material(self, user_id: str, material_id: str) -> SourceMaterial:
        material = self.ledger.get(material_id)
        if material.user_id != user_id:
            raise PermissionDenied(f"Source material {material_id} is not owned by user {user_id}")
        return material

    # endregion

    def request_upload_slot(
        self,
        user_id: str,
        project_id: str,
        filename: str,
        mime_type: str,
        size_bytes: int,
    ) -> UploadSlot:
        if mime_type not in ALLOWED_MIME_TYPES:
            raise InvalidUpload("Invalid file type. Only PDF, DOCX, TXT, and EPUB files are allowed.")
        if size_bytes <= 0:
            raise InvalidUpload("Uploaded file is empty.")
        if size_bytes > self.max_upload_bytes:
            raise InvalidUpload(f"File size exceeds {self.max_upload_bytes} byte limit.")
        self._require_project(user_id, project_id)

        stem, ext = _split_filename(filename)
        material_id = uuid.uuid4().hex
        reference = self.storage.issue_write_location(user_id, material_id, filename)
        self.ledger.create(
            SourceMaterial(
                id=material_id,
                project_id=project_id,
                user_id=user_id,
                title=stem,
                filename=filename,
                file_type=ext or ALLOWED_MIME_TYPES[mime_type],
                file_size=size_bytes,
                storage_path=reference,
            )
        )
        return UploadSlot(material_id=material_id, write_reference=reference)

    def upload_content(self, user_id: str, material_id: str, data: bytes) -> None:
        material = self._owned_material(user_id, material_id)
        if not data:
            raise InvalidUpload("Uploaded file is empty.")
        if len(data) > self.max_upload_bytes:
            raise InvalidUpload(f"File size exceeds {self.max_upload_bytes} byte limit.")
        if material.status not in (MaterialStatus.PENDING, MaterialStatus.FAILED):
            raise InvalidUpload(f"Source material {material_id} is {material.status.value}; content is fixed")
        self.storage.write(material.storage_path, data)

    def start_processing(self, user_id: str, material_id: str) -> None:
        material = self._owned_material(user_id, material_id)
        if material.status in (MaterialStatus.PROCESSING, MaterialStatus.COMPLETED):
            logger.info("Not dispatching source material %s: already %s", material_id, material.status.value)
            return
        if material.status == MaterialStatus.FAILED:
            logger.info("Retrying failed source material %s", material_id)
            self.ledger.transition(material_id, MaterialStatus.PENDING)
        self.dispatcher.dispatch(material_id)

    def list_materials(self, user_id: str, project_id: str) -> List[SourceMaterial]:
        """Newest first, with extracted text left out to keep payloads small."""
        self._require_project(user_id, project_id)
        materials = [m for m in self.ledger.list_by_project(project_id) if m.user_id == user_id]
        materials.reverse()
        return [replace(m, extracted_text=None) for m in materials]

    def get_material(self, user_id: str, material_id: str) -> SourceMaterial:
        return replace(self._owned_material(user_id, material_id), extracted_text=None)

    def toggle_activation(self, user_id: str, material_id: str) -> bool:
        material = self._owned_material(user_id, material_id)
        is_active = not material.is_active
        self.ledger.set_activation(material_id, is_active)
        return is_active

    def delete_material(self, user_id: str, material_id: str) -> None:
        material = self._owned_material(user_id, material_id)
        if material.storage_path:
            try:
                self.storage.delete(material.storage_path)
            except OSError:
                logger.exception("Failed to delete stored object for source material %s", material_id)
        self.ledger.delete(material_id)

    def get_context_budget(self, user_id: str, project_id: str) -> ContextBudgetReport:
        self._require_project(user_id, project_id)
        return self.assembler.budget_report(project_id)

    def assemble_context(self, user_id: str, project_id: str, session_id: Optional[str] = None) -> ContextBundle:
        self._require_project(user_id, project_id)
        return self.assembler.assemble(project_id, session_id)

    def search(self, user_id: str, project_id: str, query: str) -> List[SearchResult]:
        self._require_project(user_id, project_id)
        return self.search_engine.search(project_id, query)

    def close(self) -> None:
        self.dispatcher.shutdown(wait=True)


@dataclass
class ServiceComponents:
    engine: Engine
    service: SourceMaterialService


def build_service(config: SourcesConfig) -> ServiceComponents:
    """
    Wire every component once. The engine is created here and passed by
    reference into each SQL-backed collaborator.
    """
    engine = create_db_engine(config.database_url)
    ledger = MaterialLedger(SqlAlchemyMaterialRepository(engine))
    storage = LocalObjectStorage(StoragePaths(Path(config.storage_root)))
    projects = SqlAlchemyProjectGateway(engine)
    worker = ExtractionWorker(ledger=ledger, storage=storage, extractors=ExtractorRegistry.default())
    dispatcher = build_dispatcher(config, worker)
    service = SourceMaterialService(
        ledger=ledger,
        storage=storage,
        projects=projects,
        dispatcher=dispatcher,
        assembler=ContextAssembler(ledger, projects, starred_limit=config.starred_message_limit),
        search_engine=GrepSearch(ledger, max_matches=config.search_max_matches),
        max_upload_bytes=config.max_upload_bytes,
    )
    logger.info("Source material service ready (dispatch=%s)", dispatcher.name)
    return ServiceComponents(engine=engine, service=service)
