"""
Lead import workflow.

Sequences the preview parser, auto-mapper and validator into the four-stage
flow used by the upload dialog:

    upload -> mapping -> validation -> progress

All state lives in one ImportSession owned by the workflow instance. The
commit itself is delegated to a committer callable supplied by the host,
which receives the raw file and pushes UploadProgress updates back.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ..config import get_settings
from ..schemas.csv_import import (
    Column,
    CommitResult,
    FieldMapping,
    FieldMappingEntry,
    UploadProgress,
    UploadStatus,
    ValidationReport,
)
from .csv_preview_service import parse_preview
from .field_mapping_service import (
    FIELDS_BY_KEY,
    auto_map,
    available_columns,
    column_owner,
    find_column,
    missing_required_fields,
)
from .mapping_validation_service import validate_mapping

logger = logging.getLogger(__name__)
settings = get_settings()


class ImportStage(str, Enum):
    """Workflow stages, in forward order."""
    UPLOAD = "upload"
    MAPPING = "mapping"
    VALIDATION = "validation"
    PROGRESS = "progress"


STAGE_ORDER: List[ImportStage] = [
    ImportStage.UPLOAD,
    ImportStage.MAPPING,
    ImportStage.VALIDATION,
    ImportStage.PROGRESS,
]

# Allowed forward moves of a pushed progress status
PROGRESS_TRANSITIONS = {
    UploadStatus.UPLOADING: {UploadStatus.UPLOADING, UploadStatus.PROCESSING,
                             UploadStatus.COMPLETED, UploadStatus.ERROR},
    UploadStatus.PROCESSING: {UploadStatus.PROCESSING, UploadStatus.COMPLETED,
                              UploadStatus.ERROR},
    UploadStatus.COMPLETED: set(),
    UploadStatus.ERROR: set(),
}


class ImportWorkflowError(ValueError):
    """Raised when an operation is not allowed in the current state."""


@dataclass
class UploadedFile:
    """A file selected by the user."""
    name: str
    content: bytes

    @property
    def extension(self) -> str:
        name = self.name.lower()
        return name[name.rfind("."):] if "." in name else ""

    @property
    def is_csv(self) -> bool:
        return self.extension == ".csv"

    def read_text(self) -> str:
        return self.content.decode("utf-8-sig")


ProgressCallback = Callable[[UploadProgress], None]
Committer = Callable[[UploadedFile, ProgressCallback], CommitResult]


@dataclass
class ImportSession:
    """State of one import, from file selection to commit."""
    stage: ImportStage = ImportStage.UPLOAD
    file: Optional[UploadedFile] = None
    file_error: Optional[str] = None
    columns: List[Column] = field(default_factory=list)
    row_count: int = 0
    mapping: FieldMapping = field(default_factory=dict)
    report: Optional[ValidationReport] = None
    progress: Optional[UploadProgress] = None
    commit_result: Optional[CommitResult] = None


def is_allowed_file(file_name: str, allowed_extensions: Optional[Sequence[str]] = None) -> bool:
    """Client-side gate on the file extension (not a content check)."""
    if allowed_extensions is None:
        allowed_extensions = settings.allowed_import_extensions
    return file_name.lower().endswith(tuple(ext.lower() for ext in allowed_extensions))


class ImportWorkflow:
    """
    State machine for a single lead import.

    Illegal operations raise ImportWorkflowError. A wrong file type is not
    raised; it is recorded on session.file_error and the stage stays at
    upload.
    """

    def __init__(
        self,
        committer: Committer,
        allowed_extensions: Optional[Sequence[str]] = None,
    ):
        self.committer = committer
        self.allowed_extensions = list(allowed_extensions or settings.allowed_import_extensions)
        self.session = ImportSession()

    # ===== READ-ONLY STATE =====

    @property
    def stage(self) -> ImportStage:
        return self.session.stage

    @property
    def can_advance(self) -> bool:
        s = self.session
        if s.stage == ImportStage.UPLOAD:
            return s.file is not None
        if s.stage == ImportStage.MAPPING:
            return not missing_required_fields(s.mapping)
        if s.stage == ImportStage.VALIDATION:
            return s.report is not None and not s.report.has_blocking_errors
        return False

    @property
    def can_commit(self) -> bool:
        s = self.session
        if s.stage == ImportStage.VALIDATION:
            return self.can_advance
        if s.stage == ImportStage.UPLOAD:
            return s.file is not None and not s.file.is_csv
        return False

    @property
    def can_close(self) -> bool:
        progress = self.session.progress
        return not (progress and progress.is_active)

    def selectable_columns(self, field_key: str) -> List[str]:
        """Headers the UI may offer for a field."""
        return available_columns(self.session.columns, self.session.mapping, field_key)

    # ===== UPLOAD =====

    def select_file(self, file: UploadedFile) -> ImportSession:
        """Select (or replace) the file to import."""
        self._require_stage(ImportStage.UPLOAD, "select a file")

        if not is_allowed_file(file.name, self.allowed_extensions):
            logger.warning(f"Rejected import file with unsupported type: {file.name}")
            self.session.file = None
            self.session.file_error = (
                f"Unsupported file type. Please upload a "
                f"{' or '.join(self.allowed_extensions)} file."
            )
            return self.session

        self.session.file = file
        self.session.file_error = None
        logger.info(f"Selected import file {file.name} ({len(file.content)} bytes)")
        return self.session

    # ===== MAPPING =====

    def update_mapping(self, field_key: str, column: Optional[str]) -> ImportSession:
        """Assign a column to a field, or unmap it with column=None."""
        self._require_stage(ImportStage.MAPPING, "change the column mapping")

        canonical = FIELDS_BY_KEY.get(field_key)
        if canonical is None:
            raise ImportWorkflowError(f"Unknown field '{field_key}'")

        if column:
            if find_column(self.session.columns, column) is None:
                raise ImportWorkflowError(f"Column '{column}' does not exist in the file")
            owner = column_owner(self.session.mapping, column)
            if owner is not None and owner != field_key:
                raise ImportWorkflowError(
                    f"Column '{column}' is already mapped to "
                    f"'{FIELDS_BY_KEY[owner].label}'"
                )

        self.session.mapping[field_key] = FieldMappingEntry(
            source_column=column or "",
            required=canonical.required,
        )
        return self.session

    # ===== NAVIGATION =====

    def advance(self) -> ImportSession:
        """Move to the next stage."""
        stage = self.session.stage

        if stage == ImportStage.UPLOAD:
            if self.session.file is None:
                raise ImportWorkflowError("Select a .csv or .xls file first")
            if self.session.file.is_csv:
                return self._enter_mapping()
            # Mapping and validation are only defined for text input
            return self._run_commit()

        if stage == ImportStage.MAPPING:
            missing = missing_required_fields(self.session.mapping)
            if missing:
                labels = ", ".join(f.label for f in missing)
                raise ImportWorkflowError(f"Map the required fields first: {labels}")
            return self._enter_validation()

        if stage == ImportStage.VALIDATION:
            return self.commit_now()

        raise ImportWorkflowError("The import is already in progress")

    def back(self, to_stage: Optional[ImportStage] = None) -> ImportSession:
        """Return to an earlier stage (the previous one by default)."""
        current = self.session.stage
        if current == ImportStage.PROGRESS:
            raise ImportWorkflowError("Cannot go back once the import has started")

        current_index = STAGE_ORDER.index(current)
        if to_stage is None:
            if current_index == 0:
                raise ImportWorkflowError("Already at the first step")
            to_stage = STAGE_ORDER[current_index - 1]
        else:
            to_stage = ImportStage(to_stage)
            if STAGE_ORDER.index(to_stage) >= current_index:
                raise ImportWorkflowError(f"Cannot go back to '{to_stage.value}' from '{current.value}'")

        # The report is recomputed when validation is entered again
        self.session.report = None
        self.session.stage = to_stage
        logger.info(f"Import workflow moved back to {to_stage.value}")
        return self.session

    # ===== COMMIT =====

    def commit_now(self) -> ImportSession:
        """Start the commit if the current state allows it."""
        s = self.session
        if s.stage == ImportStage.PROGRESS:
            raise ImportWorkflowError("The import is already in progress")
        if s.stage == ImportStage.VALIDATION and s.report and s.report.has_blocking_errors:
            labels = ", ".join(e.field_label for e in s.report.blocking_errors)
            raise ImportWorkflowError(f"Fix the column mapping before importing: {labels}")
        if not self.can_commit:
            raise ImportWorkflowError(f"Cannot import from the '{s.stage.value}' step")
        return self._run_commit()

    def report_progress(self, progress: UploadProgress) -> bool:
        """
        Record a progress update pushed by the committer.

        Updates that would move the status backwards, or arrive after a
        terminal status, are ignored. Returns whether it was applied.
        """
        current = self.session.progress
        if self.session.stage != ImportStage.PROGRESS or current is None:
            logger.warning(f"Ignoring progress update outside of the progress step: {progress.status.value}")
            return False
        if progress.status not in PROGRESS_TRANSITIONS[current.status]:
            logger.warning(
                f"Ignoring progress update {current.status.value} -> {progress.status.value}"
            )
            return False

        self.session.progress = progress
        return True

    # ===== CLOSE =====

    def close(self) -> ImportSession:
        """Reset the workflow; not allowed while the upload is running."""
        if not self.can_close:
            raise ImportWorkflowError("Cannot close while the import is running")
        self.session = ImportSession()
        logger.info("Import workflow closed")
        return self.session

    # ===== INTERNALS =====

    def _require_stage(self, stage: ImportStage, action: str):
        if self.session.stage != stage:
            raise ImportWorkflowError(
                f"Cannot {action} during the '{self.session.stage.value}' step"
            )

    def _enter_mapping(self) -> ImportSession:
        file = self.session.file
        try:
            text = file.read_text()
        except Exception as e:
            # Unreadable CSV still gets a raw import attempt
            logger.warning(f"Could not read {file.name} as text, importing without mapping: {e}")
            return self._run_commit()

        preview = parse_preview(text)
        self.session.columns = preview.columns
        self.session.row_count = preview.row_count
        self.session.mapping = auto_map(preview.columns)
        self.session.report = None
        self.session.stage = ImportStage.MAPPING
        logger.info(
            f"Import workflow entered mapping: {len(preview.columns)} columns, "
            f"{preview.row_count} rows"
        )
        return self.session

    def _enter_validation(self) -> ImportSession:
        s = self.session
        s.report = validate_mapping(s.columns, s.mapping, s.row_count)
        s.stage = ImportStage.VALIDATION
        logger.info(
            f"Import workflow entered validation: {len(s.report.errors)} error(s), "
            f"{len(s.report.warnings)} warning(s)"
        )
        return s

    def _run_commit(self) -> ImportSession:
        s = self.session
        s.stage = ImportStage.PROGRESS
        s.commit_result = None
        s.progress = UploadProgress(file_name=s.file.name, status=UploadStatus.UPLOADING, progress=0)
        logger.info(f"Committing import of {s.file.name}")

        try:
            result = self.committer(s.file, self.report_progress)
        except Exception as e:
            logger.error(f"Import of {s.file.name} failed: {e}")
            s.progress = s.progress.model_copy(update={
                "status": UploadStatus.ERROR,
                "errors": [str(e)],
            })
            return s

        s.commit_result = result
        if result.success:
            s.progress = UploadProgress(
                file_name=s.file.name,
                status=UploadStatus.COMPLETED,
                progress=100,
                total_leads=result.total_leads,
                valid_leads=result.leads_added,
                errors=list(result.errors),
            )
            logger.info(f"Import of {s.file.name} completed: {result.leads_added} leads added")
        else:
            s.progress = s.progress.model_copy(update={
                "status": UploadStatus.ERROR,
                "total_leads": result.total_leads,
                "valid_leads": result.leads_added,
                "errors": list(result.errors) or ["Import failed"],
            })
            logger.error(f"Import of {s.file.name} failed: {result.errors}")
        return s
