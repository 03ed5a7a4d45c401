"""
Pytest configuration and fixtures for the lead import tests.

Points the application at a throwaway SQLite database before anything
from the app package is imported.
"""
import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="lead-import-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ.setdefault("DEBUG", "false")

import pytest

from app.database import Base, SessionLocal, engine, init_db
from app.schemas.csv_import import CommitResult, UploadProgress, UploadStatus
from app.services.import_session_store import get_import_session_store
from app.services.import_workflow_service import ImportWorkflow, UploadedFile


@pytest.fixture(scope="session", autouse=True)
def initialize_test_database():
    """Create all tables once for the test session."""
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Database session with every table emptied afterwards."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


@pytest.fixture(autouse=True)
def reset_session_store():
    yield
    get_import_session_store().clear()


class RecordingCommitter:
    """Committer double that records calls and pushes progress."""

    def __init__(self, result=None, error=None):
        self.result = result or CommitResult(success=True, leads_added=2, total_leads=2)
        self.error = error
        self.calls = []
        self.applied = []

    def __call__(self, file, report_progress):
        self.calls.append(file)
        self.applied.append(report_progress(UploadProgress(
            file_name=file.name, status=UploadStatus.PROCESSING, progress=50,
        )))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def committer():
    return RecordingCommitter()


@pytest.fixture
def workflow(committer):
    return ImportWorkflow(committer=committer, allowed_extensions=[".csv", ".xls"])


def _make_file(name: str, text: str = "") -> UploadedFile:
    return UploadedFile(name=name, content=text.encode("utf-8"))


@pytest.fixture
def make_file():
    """Factory for in-memory uploaded files."""
    return _make_file
