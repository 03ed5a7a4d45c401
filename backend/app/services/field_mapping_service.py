"""
Field auto-mapping for lead imports.

Matches file headers to the canonical lead fields using an explicit synonym
table. Headers are compared case-insensitively as whole strings.
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..schemas.csv_import import CanonicalField, Column, FieldMapping, FieldMappingEntry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Canonical fields, in definition order
# ---------------------------------------------------------------------------
CANONICAL_FIELDS: Tuple[CanonicalField, ...] = (
    CanonicalField(
        key="name",
        label="Full Name",
        description="Contact's full name",
        required=True,
    ),
    CanonicalField(
        key="phone",
        label="Phone Number",
        description="Primary phone number to call",
        required=True,
    ),
    CanonicalField(
        key="email",
        label="Email",
        description="Contact's email address",
    ),
    CanonicalField(
        key="company",
        label="Company",
        description="Company or organization name",
    ),
    CanonicalField(
        key="notes",
        label="Notes",
        description="Additional context for the call",
    ),
)

FIELDS_BY_KEY: Dict[str, CanonicalField] = {f.key: f for f in CANONICAL_FIELDS}

# ---------------------------------------------------------------------------
# Synonym table, evaluated in field order (first field wins on overlap)
# ---------------------------------------------------------------------------
FIELD_SYNONYMS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("name", (
        "full name", "name", "contact name", "first name", "lead name",
    )),
    ("phone", (
        "phone", "phone number", "mobile", "cell", "tel", "telephone",
        "contact number",
    )),
    ("email", (
        "email", "e-mail", "email address", "mail",
    )),
    ("company", (
        "company", "organization", "org", "business", "company name",
        "employer",
    )),
    ("notes", (
        "notes", "note", "comments", "comment", "description", "details",
        "remarks",
    )),
)


def normalize_header(header: str) -> str:
    return header.strip().casefold()


def match_field(header: str) -> Optional[str]:
    """Return the first canonical field whose synonyms match the header."""
    normalized = normalize_header(header)
    for field_key, synonyms in FIELD_SYNONYMS:
        if normalized in synonyms:
            return field_key
    return None


def auto_map(columns: Sequence[Column]) -> FieldMapping:
    """
    Suggest a mapping from canonical fields to columns.

    Columns are scanned in order and the first matching column wins for
    each field; a field that is already assigned is never overwritten.
    Unmatched fields are absent from the result.
    """
    mapping: FieldMapping = {}

    for column in columns:
        field_key = match_field(column.header)
        if field_key and field_key not in mapping:
            mapping[field_key] = FieldMappingEntry(
                source_column=column.header,
                required=FIELDS_BY_KEY[field_key].required,
            )

    logger.info(
        f"Auto-mapped {len(mapping)}/{len(CANONICAL_FIELDS)} fields "
        f"from {len(columns)} columns"
    )
    return mapping


def empty_mapping() -> FieldMapping:
    """Mapping with every canonical field present and unmapped."""
    return {
        f.key: FieldMappingEntry(source_column="", required=f.required)
        for f in CANONICAL_FIELDS
    }


def mapped_column(mapping: FieldMapping, field_key: str) -> Optional[str]:
    """Source column header for a field, or None if unmapped."""
    entry = mapping.get(field_key)
    if entry and entry.is_mapped:
        return entry.source_column
    return None


def find_column(columns: Sequence[Column], header: Optional[str]) -> Optional[Column]:
    if not header:
        return None
    for column in columns:
        if column.header == header:
            return column
    return None


def missing_required_fields(mapping: FieldMapping) -> List[CanonicalField]:
    """Required fields without a source column, in definition order."""
    return [
        f for f in CANONICAL_FIELDS
        if f.required and not mapped_column(mapping, f.key)
    ]


def column_owner(mapping: FieldMapping, header: str) -> Optional[str]:
    """Field key currently using a column, if any."""
    for field_key, entry in mapping.items():
        if entry.is_mapped and entry.source_column == header:
            return field_key
    return None


def available_columns(
    columns: Sequence[Column],
    mapping: FieldMapping,
    field_key: str,
) -> List[str]:
    """Headers selectable for a field: unused ones plus its own."""
    available = []
    for column in columns:
        owner = column_owner(mapping, column.header)
        if owner is None or owner == field_key:
            available.append(column.header)
    return available
