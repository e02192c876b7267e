from __future__ import annotations

import logging

from .errors import ExtractionFailed, InvalidTransition, SourceMaterialError
from .extractors import ExtractorRegistry
from .ledger import MaterialLedger
from .models import MaterialStatus, SourceMaterial
from .storage import ObjectStorage

logger = logging.getLogger(__name__)


class ExtractionWorker:
    """
    Runs one extraction attempt for a material: pending -> processing ->
    completed|failed. The worker is stateless and relies on the ledger for
    material state and on the storage adapter for the uploaded bytes.
    """

    def __init__(
        self,
        ledger: MaterialLedger,
        storage: ObjectStorage,
        extractors: ExtractorRegistry,
    ):
        self.ledger = ledger
        self.storage = storage
        self.extractors = extractors

    def run(self, material_id: str, requeued: bool = False) -> SourceMaterial:
        """
        `requeued` is set only by the queue when it retries a job whose
        previous attempt failed; that is the one case where a failed
        material goes back to pending here. Everywhere else a failed
        material stays failed until the owner starts processing again.
        """
        material = self.ledger.get(material_id)
        skip = (MaterialStatus.PROCESSING, MaterialStatus.COMPLETED)
        if material.status in skip or (material.status == MaterialStatus.FAILED and not requeued):
            logger.info("Source material %s is already %s; skipping", material_id, material.status.value)
            return material
        if material.status == MaterialStatus.FAILED:
            logger.info("Re-attempting extraction for source material %s", material_id)
            self.ledger.transition(material_id, MaterialStatus.PENDING)
        try:
            self.ledger.transition(material_id, MaterialStatus.PROCESSING)
        except InvalidTransition:
            logger.info("Source material %s was picked up by another attempt", material_id)
            return self.ledger.get(material_id)

        try:
            data = self.storage.read(material.storage_path)
            result = self.extractors.extract(data, material.file_type)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or exc.__class__.__name__
            self.ledger.transition(material_id, MaterialStatus.FAILED, error_message=message)
            logger.warning("Extraction failed for source material %s: %s", material_id, message)
            if isinstance(exc, SourceMaterialError):
                raise
            raise ExtractionFailed(message) from exc

        completed = self.ledger.transition(
            material_id,
            MaterialStatus.COMPLETED,
            text=result.text,
            metadata=result.metadata,
            page_count=result.metadata.get("page_count"),
            author_name=result.metadata.get("author"),
        )
        logger.info(
            "Extracted %s words from source material %s (%s)",
            completed.word_count,
            material_id,
            material.file_type,
        )
        return completed
