"""
Source material subsystem exports.
"""

from .budget import PROMPT_OVERHEAD_WORDS, TOTAL_CONTEXT_WORDS, calculate_context_budget, count_words
from .config import SourcesConfig
from .context import ContextAssembler, build_context_prompt, select_within_budget
from .db import create_db_engine
from .dispatch import (
    ExtractionDispatcher,
    InlineExtractionDispatcher,
    QueueExtractionDispatcher,
    build_dispatcher,
)
from .errors import (
    ExtractionFailed,
    InvalidTransition,
    InvalidUpload,
    NotFound,
    PermissionDenied,
    SourceMaterialError,
    UnsupportedFormat,
)
from .extractors import (
    DocxExtractor,
    EpubExtractor,
    ExtractorRegistry,
    PdfExtractor,
    PlainTextExtractor,
    TextExtractor,
)
from .job_queue import RQJobQueue, WorkerConfig, run_extraction_job
from .ledger import ALLOWED_TRANSITIONS, MaterialLedger
from .models import (
    BudgetSnapshot,
    ContextBudgetReport,
    ContextBundle,
    ExtractionResult,
    IncludedSource,
    MaterialStatus,
    SearchMatch,
    SearchResult,
    SourceMaterial,
    StarredMessage,
    UploadSlot,
)
from .projects import InMemoryProjectGateway, ProjectGateway, SqlAlchemyProjectGateway
from .repository import InMemoryMaterialRepository, MaterialRepository, SqlAlchemyMaterialRepository
from .search import GrepSearch, grep_materials, grep_text
from .service import SourceMaterialService, build_service
from .storage import LocalObjectStorage, ObjectStorage, StoragePaths
from .worker import ExtractionWorker

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BudgetSnapshot",
    "ContextAssembler",
    "ContextBudgetReport",
    "ContextBundle",
    "DocxExtractor",
    "EpubExtractor",
    "ExtractionDispatcher",
    "ExtractionFailed",
    "ExtractionResult",
    "ExtractionWorker",
    "ExtractorRegistry",
    "GrepSearch",
    "IncludedSource",
    "InMemoryMaterialRepository",
    "InMemoryProjectGateway",
    "InlineExtractionDispatcher",
    "InvalidTransition",
    "InvalidUpload",
    "LocalObjectStorage",
    "MaterialLedger",
    "MaterialRepository",
    "MaterialStatus",
    "NotFound",
    "ObjectStorage",
    "PROMPT_OVERHEAD_WORDS",
    "PdfExtractor",
    "PermissionDenied",
    "PlainTextExtractor",
    "ProjectGateway",
    "QueueExtractionDispatcher",
    "RQJobQueue",
    "SearchMatch",
    "SearchResult",
    "SourceMaterial",
    "SourceMaterialError",
    "SourceMaterialService",
    "SourcesConfig",
    "SqlAlchemyMaterialRepository",
    "SqlAlchemyProjectGateway",
    "StarredMessage",
    "StoragePaths",
    "TOTAL_CONTEXT_WORDS",
    "TextExtractor",
    "UnsupportedFormat",
    "UploadSlot",
    "WorkerConfig",
    "build_context_prompt",
    "build_dispatcher",
    "build_service",
    "calculate_context_budget",
    "count_words",
    "create_db_engine",
    "grep_materials",
    "grep_text",
    "run_extraction_job",
    "select_within_budget",
]
