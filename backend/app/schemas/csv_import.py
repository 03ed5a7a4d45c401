"""
CSV Import schemas for the lead import pipeline and its API.
"""
from enum import Enum
from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field


class Column(BaseModel):
    """A column detected in the uploaded file's header row."""
    model_config = ConfigDict(frozen=True)

    index: int
    header: str
    sample_values: List[str] = Field(default_factory=list)


class CSVPreview(BaseModel):
    """Result of parsing the header and sample window of a file."""
    columns: List[Column] = Field(default_factory=list)
    row_count: int = 0


class CanonicalField(BaseModel):
    """A target lead attribute that imported columns map onto."""
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    description: str
    required: bool = False


class FieldMappingEntry(BaseModel):
    """Source column assigned to a canonical field ("" when unmapped)."""
    source_column: str = ""
    required: bool = False

    @property
    def is_mapped(self) -> bool:
        return bool(self.source_column)


# canonical field key -> entry
FieldMapping = Dict[str, FieldMappingEntry]


class ValidationError(BaseModel):
    """
    A validation finding.

    row_ref 0 means the problem is with the mapping itself and blocks the
    commit; row_ref > 0 points at a data row.
    """
    row_ref: int = 0
    field_label: str
    value: str = ""
    message: str


class ValidationWarning(BaseModel):
    """Advisory finding that never blocks the commit."""
    field_label: str
    message: str
    affected_count: int


class ValidationReport(BaseModel):
    """Preview estimate of the import outcome plus diagnostics."""
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    duplicate_rows: int = 0
    errors: List[ValidationError] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)

    @property
    def blocking_errors(self) -> List[ValidationError]:
        return [e for e in self.errors if e.row_ref == 0]

    @property
    def has_blocking_errors(self) -> bool:
        return any(e.row_ref == 0 for e in self.errors)


class UploadStatus(str, Enum):
    """Server-side stages of a lead upload."""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class UploadProgress(BaseModel):
    """Progress of the commit step, pushed by the committer."""
    file_name: str
    status: UploadStatus = UploadStatus.UPLOADING
    progress: int = Field(0, ge=0, le=100)
    total_leads: int = 0
    valid_leads: int = 0
    errors: List[str] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status in (UploadStatus.UPLOADING, UploadStatus.PROCESSING)


class CommitResult(BaseModel):
    """Outcome of committing a file."""
    success: bool
    leads_added: int = 0
    total_leads: int = 0
    duplicates_skipped: int = 0
    errors: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# API shapes
# ---------------------------------------------------------------------------

class CanonicalFieldResponse(BaseModel):
    """Canonical field as listed by the API."""
    key: str
    label: str
    description: str
    required: bool


class CSVPreviewResponse(BaseModel):
    """Response for the one-shot preview endpoint."""
    file_name: str
    row_count: int
    columns: List[Column]
    column_mapping: Dict[str, str]
    report: ValidationReport


class ImportSessionCreate(BaseModel):
    """Request to open an import workflow."""
    campaign_id: Optional[str] = None


class MappingUpdateRequest(BaseModel):
    """Reassign a canonical field; column None unmaps it."""
    field_key: str
    column: Optional[str] = None


class BackRequest(BaseModel):
    """Navigate back; stage None means the previous stage."""
    stage: Optional[str] = None


class ImportSessionResponse(BaseModel):
    """Read-only session state for rendering."""
    session_id: str
    stage: str
    file_name: Optional[str] = None
    file_error: Optional[str] = None
    columns: List[Column] = Field(default_factory=list)
    row_count: int = 0
    mapping: Dict[str, FieldMappingEntry] = Field(default_factory=dict)
    report: Optional[ValidationReport] = None
    progress: Optional[UploadProgress] = None
    can_advance: bool = False
    can_commit: bool = False
    can_close: bool = True
