"""Shared data models."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List
from uuid import UUID, uuid4
from pydantic import BaseModel, Field, PositiveInt, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(str, Enum):
    """Document categories; declaration order breaks scoring ties."""
    FINANCIAL = "Financial"
    LEGAL = "Legal"
    MEDICAL = "Medical"
    ACADEMIC = "Academic"
    BUSINESS = "Business"
    PERSONAL = "Personal"
    OTHER = "Other"


class ViolationType(str, Enum):
    """Kinds of recorded policy breaches."""
    FILE_SIZE = "file_size"
    FILE_TYPE = "file_type"
    RATE_LIMIT = "rate_limit"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    UNAUTHORIZED_ACCESS = "unauthorized_access"


class Severity(str, Enum):
    """Violation severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SortField(str, Enum):
    """Sortable document fields."""
    CREATED_AT = "created_at"
    NAME = "name"
    SIZE = "size"
    CONFIDENCE = "confidence"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# ============== Documents ==============

class FileDescriptor(BaseModel):
    """An incoming file as seen by the security validator."""
    name: str
    media_type: str
    size_bytes: int = Field(..., ge=0)
    content: bytes = b""


class UploadRequest(FileDescriptor):
    """Upload entrypoint input."""
    owner_id: str


class Document(BaseModel):
    """A stored, classified document."""
    id: UUID = Field(default_factory=uuid4)
    name: str
    media_type: str
    size_bytes: int
    owner_id: str
    category: Category = Category.OTHER
    confidence: float = 0.0
    keywords: List[str] = Field(default_factory=list)
    language: str = "en"
    document_type: str = "Unknown Document"
    extracted_text: str = ""
    blob_path: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value):
        return max(0.0, min(1.0, float(value)))

    @field_validator("keywords", mode="before")
    @classmethod
    def dedupe_keywords(cls, value):
        if value is None:
            return []
        return list(dict.fromkeys(value))


class ClassificationResult(BaseModel):
    """Blended classifier output."""
    category: Category
    confidence: float
    keywords: List[str]
    document_type: str
    language: str = "en"

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value):
        return max(0.0, min(1.0, float(value)))


class ValidationResult(BaseModel):
    """Security screening outcome."""
    accepted: bool
    violations: List[str] = Field(default_factory=list)


class UploadOutcome(BaseModel):
    """Response model for file upload."""
    accepted: bool
    violations: List[str] = Field(default_factory=list)
    document: Optional[Document] = None


class DocumentDeleteResponse(BaseModel):
    """Response for document deletion."""
    document_id: UUID
    deleted: bool
    message: str


# ============== Policy layer ==============

class RateLimitEntry(BaseModel):
    """Counter state for one (actor, action) window."""
    count: int
    window_reset_at: int
    blocked: bool = False


class RateLimitDecision(BaseModel):
    allowed: bool
    reset_at: Optional[int] = None


class LoginAttemptRecord(BaseModel):
    """Consecutive failure state for one login identifier."""
    count: int = 0
    lockout_until: Optional[int] = None


class LoginDecision(BaseModel):
    allowed: bool
    lockout_until: Optional[int] = None


class Violation(BaseModel):
    """A recorded policy breach."""
    type: ViolationType
    severity: Severity
    actor_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int


class SecurityMetrics(BaseModel):
    """Aggregate view over recent violations and lockouts."""
    total_violations: int
    violations_by_type: Dict[str, int]
    violations_by_severity: Dict[str, int]
    suspicious_ips: int
    blocked_identifiers: int


class PolicyUpdate(BaseModel):
    """Administrative policy change; absent fields keep their value."""
    max_file_size_bytes: Optional[int] = Field(None, gt=0)
    allowed_media_types: Optional[List[str]] = None
    rate_limits: Optional[Dict[str, PositiveInt]] = None
    default_rate_limit: Optional[int] = Field(None, gt=0)
    max_login_attempts: Optional[int] = Field(None, gt=0)
    lockout_duration_ms: Optional[int] = Field(None, gt=0)


class LoginRequest(BaseModel):
    identifier: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    owner_id: str
    name: str


# ============== Search ==============

class SearchFilters(BaseModel):
    """Structured search constraints; absent filters impose nothing."""
    category: Optional[Category] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    media_type: Optional[str] = None
    min_size: Optional[int] = Field(None, ge=0)
    max_size: Optional[int] = Field(None, ge=0)
    language: Optional[str] = None


class SearchQuery(BaseModel):
    """Search request model."""
    free_text: str = Field(default="", max_length=1000)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class SearchResult(BaseModel):
    """Search response model."""
    documents: List[Document]
    total_count: int
    elapsed_ms: float


# ============== Translation ==============

class TranslateRequest(BaseModel):
    target_language: str = Field(..., min_length=2, max_length=8)
    source_language: Optional[str] = None


class TranslationResult(BaseModel):
    translated_text: str
    source_language: str
    target_language: str
    confidence: float


class BulkUploadResponse(BaseModel):
    """Response model for bulk upload."""
    total_files: int
    successful: int
    failed: int
    outcomes: List[UploadOutcome]
