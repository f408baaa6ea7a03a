"""
Upload validation and spreadsheet conversion.

Converts uploaded usage sheets into the CSV text read by the usage parser.
"""

import csv
import io
import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

import pandas as pd

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

# Extension -> pandas read_excel engine (None for plain CSV)
SPREADSHEET_ENGINES = {
    ".csv": None,
    ".ods": "odf",
    ".xlsx": "openpyxl",
}

ALLOWED_CONTENT_TYPES = {
    "text/csv",
    "application/vnd.oasis.opendocument.spreadsheet",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


class UnsupportedFileError(ValueError):
    """Raised when an upload cannot be converted to usage CSV."""


@dataclass(frozen=True)
class FileValidation:
    """Outcome of checking an upload before processing."""
    is_valid: bool
    error: Optional[str] = None


def _extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def validate_file(
    filename: str,
    size: int,
    content_type: Optional[str] = None,
    max_bytes: int = MAX_UPLOAD_BYTES
) -> FileValidation:
    """Check upload size and format.

    A file is accepted when either its extension or its content type is a
    supported spreadsheet format.
    """
    if size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        return FileValidation(False, f"File size too large (max {limit_mb}MB)")

    has_valid_extension = _extension(filename) in SPREADSHEET_ENGINES
    has_valid_type = content_type in ALLOWED_CONTENT_TYPES
    if not has_valid_extension and not has_valid_type:
        return FileValidation(
            False,
            "Invalid file format. Please upload ODS, CSV or XLSX files."
        )

    return FileValidation(True)


def convert_file_to_csv(filename: str, content: bytes) -> str:
    """Convert an uploaded usage file to CSV text.

    Spreadsheets are read from their first sheet. Rows whose cells are all
    empty become blank lines so that the parser's blank-line separator
    still applies to spreadsheet uploads.

    Args:
        filename: Original upload name, used to pick the format
        content: Raw file bytes

    Returns:
        CSV text with one sheet row per line

    Raises:
        UnsupportedFileError: If the format is unsupported or unreadable
    """
    extension = _extension(filename)
    if extension not in SPREADSHEET_ENGINES:
        raise UnsupportedFileError(f"Unsupported file format: {filename}")

    if extension == ".csv":
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise UnsupportedFileError(f"CSV file is not valid UTF-8: {e}")

    engine = SPREADSHEET_ENGINES[extension]
    try:
        frame = pd.read_excel(
            io.BytesIO(content),
            sheet_name=0,
            header=None,
            dtype=str,
            engine=engine
        )
    except Exception as e:
        raise UnsupportedFileError(f"Failed to read spreadsheet {filename}: {e}")

    logger.debug("Read %d rows from %s", len(frame.index), filename)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in frame.fillna("").values.tolist():
        cells = [str(cell).strip() for cell in row]
        if any(cells):
            writer.writerow(cells)
        else:
            buffer.write("\n")
    return buffer.getvalue()
