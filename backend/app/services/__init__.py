"""
Business logic services.
"""
from .csv_preview_service import parse_preview
from .field_mapping_service import CANONICAL_FIELDS, auto_map
from .mapping_validation_service import validate_mapping
from .import_workflow_service import ImportWorkflow, ImportWorkflowError, ImportStage, UploadedFile
from .lead_commit_service import LeadCommitService, LeadImportError

__all__ = [
    "parse_preview", "CANONICAL_FIELDS", "auto_map", "validate_mapping",
    "ImportWorkflow", "ImportWorkflowError", "ImportStage", "UploadedFile",
    "LeadCommitService", "LeadImportError",
]
