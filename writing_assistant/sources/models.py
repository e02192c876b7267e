from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class MaterialStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ExtractionResult:
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SourceMaterial:
    id: str
    project_id: str
    user_id: str
    title: str
    filename: str
    file_type: str
    file_size: int
    storage_path: str
    status: MaterialStatus = MaterialStatus.PENDING
    error_message: Optional[str] = None
    extracted_text: Optional[str] = None
    word_count: Optional[int] = None
    page_count: Optional[int] = None
    author_name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    processed_at: Optional[datetime] = None


@dataclass
class UploadSlot:
    material_id: str
    write_reference: str


@dataclass
class StarredMessage:
    role: str
    content: str
    created_at: datetime


@dataclass
class BudgetSnapshot:
    total_budget: int
    used: int
    available_for_sources: int
    source_words_used: int = 0


@dataclass
class IncludedSource:
    material_id: str
    title: str
    author_name: Optional[str]
    word_count: int
    content: str


@dataclass
class ContextBundle:
    sources: List[IncludedSource]
    starred_messages: List[StarredMessage]
    budget: BudgetSnapshot


@dataclass
class ContextBudgetReport:
    total_budget: int
    manuscript_words: int
    outline_words: int
    overhead: int
    available_for_sources: int
    active_source_words: int
    total_source_words: int
    budget_used_percent: int


@dataclass
class SearchMatch:
    line_number: int
    line_content: str
    context: str


@dataclass
class SearchResult:
    source_title: str
    material_id: str
    matches: List[SearchMatch] = field(default_factory=list)
