"""
Tabular Reader
Parses uploaded CSV or .xlsx bytes into a header list and row records.
"""

from __future__ import annotations

import io
import os
import zipfile
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from . import po_config as cfg
from .exceptions import ParseError
from .models import Table
from .po_logger import get_logger

CSV_FORMAT = "csv"
XLSX_FORMAT = "xlsx"

_EXTENSION_FORMATS = {
    ".csv": CSV_FORMAT,
    ".xlsx": XLSX_FORMAT,
    ".xlsm": XLSX_FORMAT,
}


def detect_format(format_hint: str) -> str:
    """Resolve a format name or a filename to ``csv`` / ``xlsx``."""
    hint = (format_hint or "").strip().lower()
    if hint in (CSV_FORMAT, XLSX_FORMAT):
        return hint
    ext = os.path.splitext(hint)[1]
    if ext in _EXTENSION_FORMATS:
        return _EXTENSION_FORMATS[ext]
    raise ParseError(f"Unsupported file type: {format_hint!r}")


def stringify(value: Any) -> str:
    """Text form of a cell value, trimmed."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value).strip()


class TabularReader:
    """Read delimited text or the first sheet of a workbook into a Table."""

    def __init__(self, preview_rows: Optional[int] = None) -> None:
        self.preview_rows = preview_rows or cfg.PREVIEW_ROWS
        self.logger = get_logger()

    def read(self, data: bytes, format_hint: str, preview: bool = False) -> Table:
        """Parse *data*.

        Args:
            data: Raw file bytes.
            format_hint: ``csv``, ``xlsx`` or the uploaded filename.
            preview: Cap spreadsheet data rows at ``preview_rows``.

        Raises:
            ParseError: The bytes are not valid for the format.
        """
        fmt = detect_format(format_hint)
        if fmt == CSV_FORMAT:
            table = self._read_csv(data, preview)
        else:
            table = self._read_xlsx(data, preview)
        self.logger.debug(
            f"Read {len(table.rows)} row(s) x {len(table.headers)} column(s) from {fmt}",
            component="Reader",
        )
        return table

    # ------------------------------------------------------------------
    # Delimited text
    # ------------------------------------------------------------------

    def _read_csv(self, data: bytes, preview: bool) -> Table:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(f"CSV file is not valid UTF-8: {exc}") from exc

        lines = [line.rstrip("\r") for line in text.split("\n") if line.strip()]
        if not lines:
            raise ParseError("CSV file is empty")

        headers = [h.strip() for h in lines[0].split(",")]
        body = lines[1:]
        if preview:
            body = body[: self.preview_rows]

        rows: List[Dict[str, str]] = []
        for line in body:
            values = [v.strip() for v in line.split(",")]
            row = {
                header: values[idx] if idx < len(values) else ""
                for idx, header in enumerate(headers)
            }
            if any(v != "" for v in row.values()):
                rows.append(row)

        return Table(headers=headers, rows=rows)

    # ------------------------------------------------------------------
    # Spreadsheet
    # ------------------------------------------------------------------

    def _read_xlsx(self, data: bytes, preview: bool) -> Table:
        try:
            workbook = openpyxl.load_workbook(
                io.BytesIO(data), read_only=True, data_only=True
            )
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, TypeError, OSError) as exc:
            raise ParseError(f"Cannot read spreadsheet: {exc}") from exc

        try:
            if not workbook.worksheets:
                raise ParseError("Workbook has no worksheets")
            sheet = workbook.worksheets[0]

            row_iter = sheet.iter_rows(values_only=True)
            header_cells = next(row_iter, None)
            if header_cells is None:
                return Table()

            header_values = [stringify(value) for value in header_cells]
            body = [[stringify(value) for value in cells] for cells in row_iter]
        finally:
            workbook.close()

        # A column exists up to the last one with a header or any value,
        # so data under a blank trailing header is kept
        width = _filled_width(header_values)
        for values in body:
            width = max(width, _filled_width(values))

        headers = [
            (header_values[idx] if idx < len(header_values) else "") or f"column{idx + 1}"
            for idx in range(width)
        ]

        if preview:
            body = body[: self.preview_rows]

        rows: List[Dict[str, str]] = []
        for values in body:
            row = {
                header: values[idx] if idx < len(values) else ""
                for idx, header in enumerate(headers)
            }
            if any(v != "" for v in row.values()):
                rows.append(row)

        return Table(headers=headers, rows=rows)


def _filled_width(values: List[str]) -> int:
    """Position just past the last non-empty value."""
    for idx in range(len(values), 0, -1):
        if values[idx - 1] != "":
            return idx
    return 0
