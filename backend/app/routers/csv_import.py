"""
CSV Import router for previewing, mapping and importing lead files.
Supports CSV (.csv) with column mapping; Excel (.xls) is imported directly.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File

from ..dependencies import (
    CommitterFactory,
    get_committer_factory,
    get_session_store,
    get_stored_workflow,
)
from ..schemas.csv_import import (
    BackRequest,
    CanonicalFieldResponse,
    CSVPreviewResponse,
    ImportSessionCreate,
    ImportSessionResponse,
    MappingUpdateRequest,
)
from ..services.csv_preview_service import parse_preview
from ..services.field_mapping_service import CANONICAL_FIELDS, auto_map
from ..services.import_session_store import ImportSessionStore, StoredWorkflow
from ..services.import_workflow_service import (
    ImportStage,
    ImportWorkflow,
    ImportWorkflowError,
    UploadedFile,
    is_allowed_file,
)
from ..services.mapping_validation_service import validate_mapping

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/import", tags=["csv-import"])


def _session_response(session_id: str, workflow: ImportWorkflow) -> ImportSessionResponse:
    s = workflow.session
    return ImportSessionResponse(
        session_id=session_id,
        stage=s.stage.value,
        file_name=s.file.name if s.file else None,
        file_error=s.file_error,
        columns=s.columns,
        row_count=s.row_count,
        mapping=s.mapping,
        report=s.report,
        progress=s.progress,
        can_advance=workflow.can_advance,
        can_commit=workflow.can_commit,
        can_close=workflow.can_close,
    )


def _conflict(e: ImportWorkflowError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


@router.get("/fields", response_model=List[CanonicalFieldResponse])
def list_canonical_fields():
    """Get the lead fields a file can be mapped onto."""
    return [CanonicalFieldResponse(**f.model_dump()) for f in CANONICAL_FIELDS]


@router.post("/preview", response_model=CSVPreviewResponse)
async def preview_csv_import(file: UploadFile = File(...)):
    """
    Upload a CSV file and preview the import without opening a session.
    Returns detected columns, the suggested mapping and the validation report.
    """
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="File must be a CSV file (.csv)")

    content = await file.read()
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(
            status_code=400,
            detail="File encoding not supported. Please use UTF-8.",
        )

    preview = parse_preview(text)
    mapping = auto_map(preview.columns)
    report = validate_mapping(preview.columns, mapping, preview.row_count)

    return CSVPreviewResponse(
        file_name=file.filename,
        row_count=preview.row_count,
        columns=preview.columns,
        column_mapping={key: entry.source_column for key, entry in mapping.items()},
        report=report,
    )


@router.post("/sessions", response_model=ImportSessionResponse, status_code=201)
def create_import_session(
    request: Optional[ImportSessionCreate] = None,
    store: ImportSessionStore = Depends(get_session_store),
    committer_factory: CommitterFactory = Depends(get_committer_factory),
):
    """Open a new import workflow."""
    campaign_id = request.campaign_id if request else None
    workflow = ImportWorkflow(committer=committer_factory(campaign_id))
    session_id = store.create(workflow, campaign_id=campaign_id)
    return _session_response(session_id, workflow)


@router.get("/sessions/{session_id}", response_model=ImportSessionResponse)
def get_import_session(session_id: str, entry: StoredWorkflow = Depends(get_stored_workflow)):
    """Get the current state of an import workflow."""
    return _session_response(session_id, entry.workflow)


@router.post("/sessions/{session_id}/file", response_model=ImportSessionResponse)
async def select_import_file(
    session_id: str,
    file: UploadFile = File(...),
    entry: StoredWorkflow = Depends(get_stored_workflow),
):
    """
    Select the file to import.
    A wrong file type is reported in file_error rather than as an HTTP error.
    """
    content = await file.read() if is_allowed_file(file.filename or "") else b""
    try:
        entry.workflow.select_file(UploadedFile(
            name=file.filename or "",
            content=content,
        ))
    except ImportWorkflowError as e:
        raise _conflict(e)
    return _session_response(session_id, entry.workflow)


@router.put("/sessions/{session_id}/mapping", response_model=ImportSessionResponse)
def update_import_mapping(
    session_id: str,
    request: MappingUpdateRequest,
    entry: StoredWorkflow = Depends(get_stored_workflow),
):
    """Assign a column to a lead field, or unmap it."""
    try:
        entry.workflow.update_mapping(request.field_key, request.column)
    except ImportWorkflowError as e:
        raise _conflict(e)
    return _session_response(session_id, entry.workflow)


@router.post("/sessions/{session_id}/advance", response_model=ImportSessionResponse)
def advance_import_session(session_id: str, entry: StoredWorkflow = Depends(get_stored_workflow)):
    """Move the workflow to its next step (this may start the import)."""
    try:
        entry.workflow.advance()
    except ImportWorkflowError as e:
        raise _conflict(e)
    return _session_response(session_id, entry.workflow)


@router.post("/sessions/{session_id}/back", response_model=ImportSessionResponse)
def back_import_session(
    session_id: str,
    request: Optional[BackRequest] = None,
    entry: StoredWorkflow = Depends(get_stored_workflow),
):
    """Return to an earlier step."""
    try:
        stage = ImportStage(request.stage) if request and request.stage else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown stage '{request.stage}'")

    try:
        entry.workflow.back(stage)
    except ImportWorkflowError as e:
        raise _conflict(e)
    return _session_response(session_id, entry.workflow)


@router.post("/sessions/{session_id}/commit", response_model=ImportSessionResponse)
def commit_import_session(session_id: str, entry: StoredWorkflow = Depends(get_stored_workflow)):
    """Start the import of the selected file."""
    try:
        entry.workflow.commit_now()
    except ImportWorkflowError as e:
        raise _conflict(e)
    return _session_response(session_id, entry.workflow)


@router.delete("/sessions/{session_id}")
def close_import_session(
    session_id: str,
    entry: StoredWorkflow = Depends(get_stored_workflow),
    store: ImportSessionStore = Depends(get_session_store),
):
    """Close the workflow; refused while the import is running."""
    try:
        entry.workflow.close()
    except ImportWorkflowError as e:
        raise _conflict(e)
    store.remove(session_id)
    return {"message": "Import session closed"}
