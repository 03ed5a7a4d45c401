"""
Pydantic schemas for request/response validation.
"""
from .csv_import import (
    Column,
    CSVPreview,
    CanonicalField,
    FieldMappingEntry,
    FieldMapping,
    ValidationError,
    ValidationWarning,
    ValidationReport,
    UploadStatus,
    UploadProgress,
    CommitResult,
)

__all__ = [
    "Column", "CSVPreview", "CanonicalField", "FieldMappingEntry", "FieldMapping",
    "ValidationError", "ValidationWarning", "ValidationReport",
    "UploadStatus", "UploadProgress", "CommitResult",
]
