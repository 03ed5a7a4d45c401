"""
Lead commit service - parses the raw uploaded file and stores its leads.

This is the server-side half of the import: it always works from the
original file, detects the column mapping on the full header row and
decides the real counts (the preview validator only estimates them).
"""
import csv
import io
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.campaign import Campaign
from ..models.lead import Lead, LeadStatus
from ..schemas.csv_import import Column, CommitResult, FieldMapping, UploadProgress, UploadStatus
from .field_mapping_service import auto_map, mapped_column, missing_required_fields
from .import_workflow_service import ProgressCallback, UploadedFile

logger = logging.getLogger(__name__)

EMPTY_VALUES = ("", "none", "null")


class LeadImportError(Exception):
    """Raised when an uploaded file cannot be parsed into rows."""


# ---------------------------------------------------------------------------
# File parsing
# ---------------------------------------------------------------------------

def parse_file_to_rows(filename: str, content: bytes) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Parse CSV or Excel file content into (columns, rows)."""
    lower = filename.lower()

    if lower.endswith(".csv"):
        try:
            text = content.decode("utf-8-sig")  # Handle BOM
            reader = csv.DictReader(io.StringIO(text))
            columns = [c.strip() for c in (reader.fieldnames or [])]
            rows = []
            for raw_row in reader:
                row = {
                    (k or "").strip(): (v or "").strip() if isinstance(v, str) else ""
                    for k, v in raw_row.items()
                }
                if any(row.values()):
                    rows.append(row)
        except UnicodeDecodeError:
            raise LeadImportError("File encoding not supported. Please use UTF-8.")
        except csv.Error as e:
            raise LeadImportError(f"Invalid CSV format: {str(e)}")
        return columns, rows

    elif lower.endswith((".xlsx", ".xls")):
        import openpyxl

        try:
            wb = openpyxl.load_workbook(
                io.BytesIO(content), read_only=True, data_only=True
            )
        except Exception as e:
            raise LeadImportError(f"Could not open Excel file: {str(e)}")

        ws = wb.active
        if not ws:
            wb.close()
            raise LeadImportError("Excel file has no active worksheet")

        all_rows = list(ws.iter_rows(values_only=True))
        wb.close()

        if not all_rows:
            raise LeadImportError("Excel file is empty")

        # First row = headers
        columns = [
            str(c).strip() if c is not None else f"Column_{i}"
            for i, c in enumerate(all_rows[0])
        ]

        # Remaining rows = data
        rows: List[Dict[str, Any]] = []
        for data_row in all_rows[1:]:
            row_dict: Dict[str, Any] = {}
            for i, col_name in enumerate(columns):
                val = data_row[i] if i < len(data_row) else None
                row_dict[col_name] = str(val).strip() if val is not None else ""
            # Skip completely empty rows
            if any(v for v in row_dict.values()):
                rows.append(row_dict)

        return columns, rows

    else:
        raise LeadImportError("Unsupported file format")


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    if value.lower() in EMPTY_VALUES:
        return None
    return value


def map_row_to_lead_data(row: Dict[str, Any], column_mapping: FieldMapping) -> Dict[str, Optional[str]]:
    """Map a file row to lead field data using the column mapping."""
    lead_data: Dict[str, Optional[str]] = {}
    for field_key in column_mapping:
        column = mapped_column(column_mapping, field_key)
        if column:
            lead_data[field_key] = _clean(row.get(column))
    return lead_data


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------

class LeadCommitService:
    """Committer used by the import workflow to persist leads."""

    # Progress checkpoints
    PARSED_PROGRESS = 40
    PROCESSING_START = 50
    PROCESSING_END = 95

    def __init__(self, db: Session, campaign_id: Optional[str] = None):
        self.db = db
        self.campaign_id = campaign_id

    def __call__(self, file: UploadedFile, report_progress: ProgressCallback) -> CommitResult:
        return self.commit(file, report_progress)

    def commit(self, file: UploadedFile, report_progress: ProgressCallback) -> CommitResult:
        """
        Parse the raw file and create lead records.

        Raises:
            LeadImportError: if the file cannot be parsed
            SQLAlchemyError: if the database commit fails (after rollback)
        """
        campaign = None
        if self.campaign_id:
            campaign = self.db.query(Campaign).filter(Campaign.id == self.campaign_id).first()
            if campaign is None:
                raise LeadImportError(f"Campaign {self.campaign_id} not found")

        columns, rows = parse_file_to_rows(file.name, file.content)
        report_progress(UploadProgress(
            file_name=file.name,
            status=UploadStatus.UPLOADING,
            progress=self.PARSED_PROGRESS,
            total_leads=len(rows),
        ))

        column_mapping = auto_map([Column(index=i, header=h) for i, h in enumerate(columns)])
        missing = missing_required_fields(column_mapping)
        if missing:
            labels = ", ".join(f.label for f in missing)
            return CommitResult(
                success=False,
                total_leads=len(rows),
                errors=[
                    f"Missing required columns: {labels}. "
                    f"None of the file headers were recognised for these fields; "
                    f"rename the columns (e.g. \"Name\", \"Phone\") and upload again."
                ],
            )

        report_progress(UploadProgress(
            file_name=file.name,
            status=UploadStatus.PROCESSING,
            progress=self.PROCESSING_START,
            total_leads=len(rows),
        ))

        imported = 0
        duplicates = 0
        errors: List[str] = []
        seen_phones = set()
        seen_emails = set()
        step = max(1, len(rows) // 10)

        for row_number, row in enumerate(rows, start=2):  # Row 1 is the header
            lead_data = map_row_to_lead_data(row, column_mapping)
            name = lead_data.get("name")
            phone = lead_data.get("phone")
            email = lead_data.get("email")

            if not name or not phone:
                errors.append(f"Row {row_number}: name and phone are required")
            elif (
                phone in seen_phones
                or (email and email.lower() in seen_emails)
                or self._is_duplicate(phone, email)
            ):
                duplicates += 1
            else:
                seen_phones.add(phone)
                if email:
                    seen_emails.add(email.lower())
                self.db.add(Lead(
                    id=str(uuid.uuid4()),
                    campaign_id=campaign.id if campaign else None,
                    name=name,
                    phone=phone,
                    email=email,
                    company=lead_data.get("company"),
                    notes=lead_data.get("notes"),
                    status=LeadStatus.PENDING.value,
                    source_file=file.name,
                ))
                imported += 1

            if row_number % step == 0:
                done = (row_number - 1) / len(rows)
                span = self.PROCESSING_END - self.PROCESSING_START
                report_progress(UploadProgress(
                    file_name=file.name,
                    status=UploadStatus.PROCESSING,
                    progress=self.PROCESSING_START + int(span * done),
                    total_leads=len(rows),
                    valid_leads=imported,
                ))

        if campaign is not None:
            campaign.total_leads = (campaign.total_leads or 0) + imported

        try:
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error committing import: {e}")
            raise

        logger.info(
            f"Imported {imported}/{len(rows)} leads from {file.name} "
            f"({duplicates} duplicates, {len(errors)} errors)"
        )

        return CommitResult(
            success=True,
            leads_added=imported,
            total_leads=len(rows),
            duplicates_skipped=duplicates,
            errors=errors,
        )

    def _is_duplicate(self, phone: str, email: Optional[str]) -> bool:
        """Check stored leads (in the campaign, or globally) for the same phone or email."""
        query = self.db.query(Lead)
        if self.campaign_id:
            query = query.filter(Lead.campaign_id == self.campaign_id)

        if query.filter(Lead.phone == phone).first():
            return True
        if email and query.filter(func.lower(Lead.email) == email.lower()).first():
            return True
        return False
