"""
Preview parser for uploaded lead files.

Reads the header row and a small sample window of data rows so the column
mapping step can show real values. The split is a plain comma split:
quoted commas, multi-line fields and other delimiters are not supported
here. The full file is parsed server-side at commit time.
"""
import logging
from typing import List, Optional

from ..config import get_settings
from ..schemas.csv_import import Column, CSVPreview

logger = logging.getLogger(__name__)
settings = get_settings()

QUOTE_CHARS = ("'", '"')


def clean_cell(value: str) -> str:
    """Trim a cell and strip one leading and one trailing quote."""
    value = value.strip()
    if value[:1] in QUOTE_CHARS:
        value = value[1:]
    if value[-1:] in QUOTE_CHARS:
        value = value[:-1]
    return value


def split_line(line: str) -> List[str]:
    """Split a line on commas and clean every cell."""
    return [clean_cell(cell) for cell in line.split(",")]


def parse_preview(raw_text: str, sample_size: Optional[int] = None) -> CSVPreview:
    """
    Parse the header row and sample window of raw CSV text.

    Args:
        raw_text: Decoded file contents
        sample_size: Number of data rows to sample (defaults to settings)

    Returns:
        CSVPreview with one Column per header and the number of data rows.
        Malformed rows never raise; missing cells just yield fewer samples.
    """
    if sample_size is None:
        sample_size = settings.sample_window_size

    # Ignore a UTF-8 BOM left over from decoding
    raw_text = raw_text.lstrip("\ufeff")

    # Only \n (with an optional \r) ends a line
    lines = [line.rstrip("\r") for line in raw_text.split("\n")]
    lines = [line for line in lines if line.strip()]
    if not lines:
        return CSVPreview(columns=[], row_count=0)

    headers = split_line(lines[0])
    sample_rows = [split_line(line) for line in lines[1:sample_size + 1]]

    columns = []
    for index, header in enumerate(headers):
        sample_values = [
            row[index] for row in sample_rows
            if index < len(row) and row[index]
        ]
        columns.append(Column(index=index, header=header, sample_values=sample_values))

    row_count = len(lines) - 1
    logger.debug(f"Parsed preview: {len(columns)} columns, {row_count} rows")

    return CSVPreview(columns=columns, row_count=row_count)
