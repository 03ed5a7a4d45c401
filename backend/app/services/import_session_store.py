"""
In-memory registry of open import workflows.

Each upload dialog owns exactly one workflow; nothing is persisted and all
sessions are lost on restart.
"""
import uuid
import logging
from datetime import datetime, timedelta
from dataclasses import dataclass, field
from typing import Dict, Optional

from .import_workflow_service import ImportWorkflow

logger = logging.getLogger(__name__)


@dataclass
class StoredWorkflow:
    """A workflow with its bookkeeping."""
    workflow: ImportWorkflow
    campaign_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_access: datetime = field(default_factory=datetime.utcnow)


class ImportSessionStore:
    """Holds one ImportWorkflow per session id."""

    # Idle sessions older than this are dropped on the next create()
    SESSION_TTL_HOURS = 12

    def __init__(self):
        self._sessions: Dict[str, StoredWorkflow] = {}

    def create(self, workflow: ImportWorkflow, campaign_id: Optional[str] = None) -> str:
        """Register a workflow and return its session id."""
        self._evict_expired()
        session_id = str(uuid.uuid4())
        self._sessions[session_id] = StoredWorkflow(workflow=workflow, campaign_id=campaign_id)
        logger.info(f"Opened import session {session_id}")
        return session_id

    def get(self, session_id: str) -> Optional[StoredWorkflow]:
        entry = self._sessions.get(session_id)
        if entry is not None:
            entry.last_access = datetime.utcnow()
        return entry

    def remove(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info(f"Closed import session {session_id}")
        return removed

    def clear(self):
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict_expired(self):
        cutoff = datetime.utcnow() - timedelta(hours=self.SESSION_TTL_HOURS)
        expired = [
            sid for sid, entry in self._sessions.items()
            if entry.last_access < cutoff and entry.workflow.can_close
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Evicted {len(expired)} idle import session(s)")


# Global store instance
_session_store: Optional[ImportSessionStore] = None


def get_import_session_store() -> ImportSessionStore:
    """Get the global import session store."""
    global _session_store
    if _session_store is None:
        _session_store = ImportSessionStore()
    return _session_store
