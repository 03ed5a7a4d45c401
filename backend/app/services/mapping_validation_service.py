"""
Validation of a column mapping against the sampled data.

Produces a ValidationReport with blocking mapping-level errors, advisory
format warnings and a rough preview of the import outcome. The row counts
are estimates only; the commit step decides the real numbers.
"""
import logging
import re
from typing import List, Sequence

from ..schemas.csv_import import (
    Column,
    FieldMapping,
    ValidationError,
    ValidationReport,
    ValidationWarning,
)
from .field_mapping_service import (
    FIELDS_BY_KEY,
    find_column,
    mapped_column,
    missing_required_fields,
)

logger = logging.getLogger(__name__)

PHONE_STRIP_RE = re.compile(r"[\s\-()]")
PHONE_RE = re.compile(r"\+?[0-9]+")  # ASCII digits only
EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
MIN_PHONE_LENGTH = 7

# Preview estimate rates, in percent of total rows
INVALID_ROWS_PERCENT = 5
DUPLICATE_ROWS_PERCENT = 2


def is_valid_phone(value: str) -> bool:
    """Digits with an optional leading '+', ignoring spaces, hyphens and parentheses."""
    cleaned = PHONE_STRIP_RE.sub("", value)
    if len(cleaned) < MIN_PHONE_LENGTH:
        return False
    return PHONE_RE.fullmatch(cleaned) is not None


def is_valid_email(value: str) -> bool:
    return EMAIL_RE.fullmatch(value.strip()) is not None


def _sample_values(columns: Sequence[Column], mapping: FieldMapping, field_key: str) -> List[str]:
    column = find_column(columns, mapped_column(mapping, field_key))
    return list(column.sample_values) if column else []


def _check_phone(columns, mapping) -> List[ValidationWarning]:
    if not mapped_column(mapping, "phone"):
        return []
    flagged = [v for v in _sample_values(columns, mapping, "phone") if not is_valid_phone(v)]
    if not flagged:
        return []
    return [ValidationWarning(
        field_label=FIELDS_BY_KEY["phone"].label,
        message=f"{len(flagged)} sample value(s) may have an invalid phone format",
        affected_count=len(flagged),
    )]


def _check_email(columns, mapping) -> List[ValidationWarning]:
    if not mapped_column(mapping, "email"):
        return []
    flagged = [
        v for v in _sample_values(columns, mapping, "email")
        if v.strip() and not is_valid_email(v)
    ]
    if not flagged:
        return []
    return [ValidationWarning(
        field_label=FIELDS_BY_KEY["email"].label,
        message=f"{len(flagged)} sample value(s) may have an invalid email format",
        affected_count=len(flagged),
    )]


def _check_name(columns, mapping) -> List[ValidationWarning]:
    if not mapped_column(mapping, "name"):
        return []
    flagged = [v for v in _sample_values(columns, mapping, "name") if not v.strip()]
    if not flagged:
        return []
    return [ValidationWarning(
        field_label=FIELDS_BY_KEY["name"].label,
        message=f"{len(flagged)} sample row(s) have an empty name",
        affected_count=len(flagged),
    )]


def estimate_row_counts(row_count: int, error_count: int, has_blocking: bool):
    """
    Rough (valid, invalid, duplicate) preview counts.

    Integer arithmetic keeps the percentages exact; the three counts never
    add up to more than row_count.
    """
    row_count = max(0, row_count)
    duplicate_rows = row_count * DUPLICATE_ROWS_PERCENT // 100
    invalid_rows = -(-row_count * INVALID_ROWS_PERCENT // 100) if has_blocking else 0
    valid_rows = max(0, max(0, row_count - error_count) - duplicate_rows - invalid_rows)
    return valid_rows, invalid_rows, duplicate_rows


def validate_mapping(
    columns: Sequence[Column],
    mapping: FieldMapping,
    row_count: int,
) -> ValidationReport:
    """
    Validate a mapping and the sampled values it points at.

    Errors come first (missing required fields, in field order), then
    phone, email and name warnings. Never raises.
    """
    errors: List[ValidationError] = []
    warnings: List[ValidationWarning] = []

    # Required-field coverage
    for field in missing_required_fields(mapping):
        errors.append(ValidationError(
            row_ref=0,
            field_label=field.label,
            value="",
            message=f"Required field '{field.label}' is not mapped to any column",
        ))

    # Format checks on the sample window
    warnings.extend(_check_phone(columns, mapping))
    warnings.extend(_check_email(columns, mapping))
    warnings.extend(_check_name(columns, mapping))

    has_blocking = any(e.row_ref == 0 for e in errors)
    valid_rows, invalid_rows, duplicate_rows = estimate_row_counts(
        row_count, len(errors), has_blocking
    )

    if errors or warnings:
        logger.info(
            f"Validation found {len(errors)} error(s) and {len(warnings)} warning(s)"
        )

    return ValidationReport(
        total_rows=max(0, row_count),
        valid_rows=valid_rows,
        invalid_rows=invalid_rows,
        duplicate_rows=duplicate_rows,
        errors=errors,
        warnings=warnings,
    )
