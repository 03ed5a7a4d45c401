"""
FastAPI dependencies for the import workflow endpoints.
"""
import logging
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status

from .database import SessionLocal
from .services.import_session_store import ImportSessionStore, StoredWorkflow, get_import_session_store
from .services.import_workflow_service import Committer, ProgressCallback, UploadedFile
from .services.lead_commit_service import LeadCommitService

logger = logging.getLogger(__name__)

CommitterFactory = Callable[[Optional[str]], Committer]


def make_lead_committer(campaign_id: Optional[str] = None) -> Committer:
    """
    Build the committer handed to a workflow.

    The workflow outlives any single request, so the committer opens its
    own database session for the duration of the commit.
    """
    def commit(file: UploadedFile, report_progress: ProgressCallback):
        db = SessionLocal()
        try:
            return LeadCommitService(db, campaign_id).commit(file, report_progress)
        finally:
            db.close()

    return commit


def get_session_store() -> ImportSessionStore:
    """Dependency to get the import session store."""
    return get_import_session_store()


def get_committer_factory() -> CommitterFactory:
    """Dependency to get the committer factory (overridable in tests)."""
    return make_lead_committer


def get_stored_workflow(
    session_id: str,
    store: ImportSessionStore = Depends(get_session_store),
) -> StoredWorkflow:
    """
    Dependency to resolve an import session from the path.

    Raises:
        HTTPException 404: If the session does not exist
    """
    entry = store.get(session_id)
    if entry is None:
        logger.warning(f"Unknown import session requested: {session_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Import session not found",
        )
    return entry
