"""
Pydantic schemas for documents, chunks, cached contexts and overflow reports.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentCategory(str, Enum):
    SOLICITATIONS = "solicitations"
    REQUIREMENTS = "requirements"
    REFERENCES = "references"
    PAST_PERFORMANCE = "past-performance"
    PROPOSALS = "proposals"
    COMPLIANCE = "compliance"
    MEDIA = "media"
    UNKNOWN = "unknown"


class SectionType(str, Enum):
    EXECUTIVE_SUMMARY = "executive_summary"
    TECHNICAL = "technical"
    MANAGEMENT = "management"
    REQUIREMENTS = "requirements"
    EXPERIENCE = "experience"
    GENERAL = "general"


class BuildStatus(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    BUILDING = "building"
    COMPLETE = "complete"
    FAILED = "failed"


class Document(BaseModel):
    """A document reference owned by the external document store."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: DocumentCategory = DocumentCategory.UNKNOWN
    project: str
    size: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    description: str = ""
    filename: Optional[str] = None
    status: str = "active"

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> Any:
        if isinstance(value, DocumentCategory):
            return value
        try:
            return DocumentCategory(str(value or "").lower())
        except ValueError:
            return DocumentCategory.UNKNOWN

    @property
    def stored_filename(self) -> str:
        return self.filename or self.name


class ContextChunk(BaseModel):
    """A paragraph of extracted document text, rebuilt on every build."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: str
    document_name: str
    content: str
    chunk_index: int
    word_count: int
    character_count: int
    section_type: SectionType = SectionType.GENERAL
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FailedDocument(BaseModel):
    """A document excluded from a build because extraction failed."""

    document_id: str
    filename: str
    error: str


class CachedContext(BaseModel):
    """Latest successfully built context for a (project, document_type) key."""

    model_config = ConfigDict(frozen=True)

    project: str
    document_type: str
    token_count: int
    word_count: int
    character_count: int
    document_count: int
    chunk_count: int
    checksum: str
    chunks: Tuple[ContextChunk, ...] = ()
    failed_documents: Tuple[FailedDocument, ...] = ()
    build_timestamp: datetime


class ContextStatus(BaseModel):
    """Returned instead of a context while it is building or after a failure."""

    status: BuildStatus
    build_timestamp: Optional[datetime] = None
    error_message: Optional[str] = None


class ContextSummary(BaseModel):
    """Context size summary for UI rendering."""

    status: str
    token_count: Optional[int] = None
    word_count: Optional[int] = None
    document_count: Optional[int] = None
    last_built: Optional[datetime] = None
    error: Optional[str] = None


class SectionUsage(BaseModel):
    type: SectionType
    token_count: int = 0


class DocumentTokenUsage(BaseModel):
    """Per-document token breakdown used by the selection interface."""

    id: str
    name: str
    category: DocumentCategory
    category_priority: int
    priority_score: int
    relevance_score: int
    token_count: int = 0
    chunk_count: int = 0
    sections: List[SectionUsage] = Field(default_factory=list)
    is_recommended: bool = False


class RemovedDocument(BaseModel):
    id: str
    name: str
    token_count: int
    reason: str


class Recommendations(BaseModel):
    suggested_documents: List[str] = Field(default_factory=list)
    removed_documents: List[RemovedDocument] = Field(default_factory=list)
    oversized_documents: List[str] = Field(default_factory=list)
    priority_message: str = ""
    tokens_saved: int = 0


class OverflowReport(BaseModel):
    """Result of checking assembled chunks against a model's token budget."""

    will_overflow: bool
    current_tokens: int
    max_context_tokens: int
    token_limit: int
    overflow_amount: int
    context_percentage: float
    usage_percent: float
    near_limit: bool = False
    document_breakdown: List[DocumentTokenUsage] = Field(default_factory=list)
    recommendations: Recommendations = Field(default_factory=Recommendations)


class DocumentSelection(BaseModel):
    """Outcome of applying a manual document selection."""

    selected_document_ids: List[str]
    chunks: List[ContextChunk]
    token_count: int
    original_token_count: int
    max_context_tokens: int
    within_limit: bool
