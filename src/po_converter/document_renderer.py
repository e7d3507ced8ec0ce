"""
Document Renderer
Writes transformed order rows into a standard purchase-order workbook.

A supplied template is reused when it loads and writes cleanly; otherwise the
same rows are rendered into a freshly built workbook. Rendering moves through
three states:

    TRY_TEMPLATE -> USE_TEMPLATE -> (done)
    TRY_TEMPLATE -> FRESH_DOCUMENT
    USE_TEMPLATE -> FRESH_DOCUMENT   (header write, formula sweep or save failed)

Totals are written as computed numbers, never as formulas.
"""

from __future__ import annotations

import io
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from . import target_schema as schema
from .coercion import parse_number, parse_whole, tidy
from .exceptions import RenderError, RowWriteError
from .models import PurchaseOrderLine, RenderResult, RowError
from .po_logger import get_logger

TemplateRef = Union[str, os.PathLike, bytes, None]

_THIN = Side(style="thin")
THIN_BORDER = Border(top=_THIN, left=_THIN, bottom=_THIN, right=_THIN)
HEADER_FILL = PatternFill(fill_type="solid", fgColor=schema.HEADER_FILL_COLOR)
TOTAL_FILL = PatternFill(fill_type="solid", fgColor=schema.TOTAL_FILL_COLOR)

QUANTITY_COL = schema.TARGET_COLUMNS.index(schema.QUANTITY) + 1
AMOUNT_COL = schema.TARGET_COLUMNS.index(schema.AMOUNT) + 1
TOTAL_LABEL_COL = schema.TARGET_COLUMNS.index(schema.PRODUCT_NAME) + 1


class RenderState(str, Enum):
    TRY_TEMPLATE = "try_template"
    USE_TEMPLATE = "template"
    FRESH_DOCUMENT = "fresh"


def output_file_name(moment: datetime) -> str:
    """purchase_order_2024-05-01T09-30-00.xlsx"""
    return f"purchase_order_{moment.strftime('%Y-%m-%dT%H-%M-%S')}.xlsx"


def find_data_start_row(sheet: Worksheet) -> int:
    """Row after the first NO / 번호 / 순번 marker in the top-left 10x10 block."""
    for row in sheet.iter_rows(
        min_row=1,
        max_row=schema.MARKER_SCAN_ROWS,
        min_col=1,
        max_col=schema.MARKER_SCAN_COLS,
    ):
        for cell in row:
            if cell.value is None:
                continue
            if str(cell.value).strip().upper() in schema.SEQUENCE_MARKERS:
                return cell.row + 1
    return schema.DEFAULT_DATA_START_ROW


def totals(records: List[Dict[str, Any]]) -> Tuple[Union[int, float], Union[int, float]]:
    """(quantity sum, amount sum); unparsable values count as 0."""
    quantity = sum(parse_whole(r.get(schema.QUANTITY)) or 0 for r in records)
    amount = sum(parse_number(r.get(schema.AMOUNT)) or 0.0 for r in records)
    return quantity, tidy(amount)


class DocumentRenderer:
    """Render purchase-order workbooks from transformed rows."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render(self, rows: List[Dict[str, Any]], template: TemplateRef = None) -> RenderResult:
        """Render *rows*, reusing *template* (path or bytes) when possible.

        Raises:
            RenderError: Only when the fresh workbook itself cannot be saved.
        """
        file_name = output_file_name(self.clock())
        state = RenderState.TRY_TEMPLATE if template is not None else RenderState.FRESH_DOCUMENT
        result: Optional[RenderResult] = None
        loaded: Optional[Tuple[Workbook, Workbook]] = None

        if state is RenderState.TRY_TEMPLATE:
            loaded = self._load_template(template)
            state = RenderState.USE_TEMPLATE if loaded else RenderState.FRESH_DOCUMENT

        if state is RenderState.USE_TEMPLATE:
            result = self.render_template(loaded[0], loaded[1], rows, file_name)
            if result is None:
                state = RenderState.FRESH_DOCUMENT

        if state is RenderState.FRESH_DOCUMENT:
            result = self.render_fresh(rows, file_name)

        self.logger.info(
            f"{file_name}: {result.processed_rows}/{result.total_rows} row(s), "
            f"{len(result.errors)} row error(s), {result.state} document",
            component="Renderer",
        )
        return result

    def render_template(
        self,
        workbook: Workbook,
        cached: Optional[Workbook],
        rows: List[Dict[str, Any]],
        file_name: str,
    ) -> Optional[RenderResult]:
        """Fill the first sheet of a loaded template.

        Returns None when the template cannot be used safely, so the caller
        falls back to a fresh document with the same rows.
        """
        try:
            sheet = workbook.worksheets[0]
            data_start = find_data_start_row(sheet)
            self._write_header(sheet, data_start - 1, styled=False)
            processed, errors = self._write_rows(sheet, rows, data_start, styled=False)
            self._write_totals(sheet, data_start + len(rows), processed, styled=False)
            cached_sheet = cached.worksheets[0] if cached is not None else None
            self._flatten_formulas(sheet, cached_sheet)
            content = self._save(workbook)
        except Exception as exc:
            self.logger.warning(
                f"Template unusable, rebuilding from scratch: {exc}",
                component="Renderer",
            )
            return None

        return RenderResult(
            file_name=file_name,
            content=content,
            processed_rows=len(processed),
            total_rows=len(rows),
            errors=errors,
            state=RenderState.USE_TEMPLATE.value,
        )

    def render_fresh(self, rows: List[Dict[str, Any]], file_name: str) -> RenderResult:
        """Build a clean single-sheet purchase order."""
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        sheet.title = schema.SHEET_TITLE

        last_col = get_column_letter(len(schema.TARGET_COLUMNS))
        title = sheet["A1"]
        title.value = schema.SHEET_TITLE
        title.font = Font(size=16, bold=True)
        title.alignment = Alignment(horizontal="center")
        sheet.merge_cells(f"A1:{last_col}1")

        data_start = schema.DEFAULT_DATA_START_ROW
        self._write_header(sheet, data_start - 1, styled=True)
        processed, errors = self._write_rows(sheet, rows, data_start, styled=True)
        self._write_totals(sheet, data_start + len(rows), processed, styled=True)

        for idx, width in enumerate(schema.COLUMN_WIDTHS, start=1):
            sheet.column_dimensions[get_column_letter(idx)].width = width

        try:
            content = self._save(workbook)
        except Exception as exc:
            raise RenderError(f"Failed to save purchase order {file_name}: {exc}") from exc

        return RenderResult(
            file_name=file_name,
            content=content,
            processed_rows=len(processed),
            total_rows=len(rows),
            errors=errors,
            state=RenderState.FRESH_DOCUMENT.value,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _load_template(self, template: TemplateRef) -> Optional[Tuple[Workbook, Workbook]]:
        """Open the template twice: editable, and with cached formula results."""
        try:
            if isinstance(template, (bytes, bytearray)):
                workbook = openpyxl.load_workbook(io.BytesIO(template), keep_links=False)
                cached = openpyxl.load_workbook(
                    io.BytesIO(template), data_only=True, keep_links=False
                )
            else:
                path = os.fspath(template)
                if not os.path.exists(path):
                    self.logger.info(f"No template at {path}", component="Renderer")
                    return None
                workbook = openpyxl.load_workbook(path, keep_links=False)
                cached = openpyxl.load_workbook(path, data_only=True, keep_links=False)
        except Exception as exc:
            self.logger.warning(f"Template failed to load: {exc}", component="Renderer")
            return None

        if not workbook.worksheets:
            self.logger.warning("Template has no worksheets", component="Renderer")
            return None
        return workbook, cached

    @staticmethod
    def _write_header(sheet: Worksheet, row: int, styled: bool) -> None:
        for col, label in enumerate(schema.TARGET_COLUMNS, start=1):
            cell = sheet.cell(row=row, column=col)
            cell.value = label
            cell.font = Font(bold=True)
            if styled:
                cell.fill = HEADER_FILL
                cell.border = THIN_BORDER

    def _write_rows(
        self,
        sheet: Worksheet,
        rows: List[Dict[str, Any]],
        start_row: int,
        styled: bool,
    ) -> Tuple[List[Dict[str, Any]], List[RowError]]:
        """Write each row in isolation; a failing row never stops the rest."""
        processed: List[Dict[str, Any]] = []
        errors: List[RowError] = []

        for idx, record in enumerate(rows):
            try:
                self._write_row(sheet, record, idx + 1, start_row + idx, styled)
            except RowWriteError as exc:
                self.logger.warning(f"Row {exc.row} not written: {exc}", component="Renderer")
                errors.append(RowError(row=exc.row, error=str(exc), data=exc.data))
                continue
            processed.append(record)

        return processed, errors

    @staticmethod
    def _write_row(
        sheet: Worksheet,
        record: Dict[str, Any],
        number: int,
        sheet_row: int,
        styled: bool,
    ) -> None:
        try:
            line = PurchaseOrderLine.from_record(record)
            for col, value in enumerate(line.cell_values(number), start=1):
                cell = sheet.cell(row=sheet_row, column=col)
                cell.value = value
                # order text such as "=SUM(...)" stays text
                if isinstance(value, str) and cell.data_type == "f":
                    cell.data_type = "s"
                if styled:
                    cell.border = THIN_BORDER
        except Exception as exc:
            data = dict(record) if isinstance(record, dict) else {}
            raise RowWriteError(number, str(exc), data) from exc

    @staticmethod
    def _write_totals(
        sheet: Worksheet,
        row: int,
        processed: List[Dict[str, Any]],
        styled: bool,
    ) -> None:
        if not processed:
            return
        quantity, amount = totals(processed)
        sheet.cell(row=row, column=TOTAL_LABEL_COL).value = schema.TOTAL_LABEL
        sheet.cell(row=row, column=QUANTITY_COL).value = quantity
        sheet.cell(row=row, column=AMOUNT_COL).value = amount
        for col in range(1, len(schema.TARGET_COLUMNS) + 1):
            cell = sheet.cell(row=row, column=col)
            cell.font = Font(bold=True)
            if styled:
                cell.fill = TOTAL_FILL
                cell.border = THIN_BORDER

    @staticmethod
    def _flatten_formulas(sheet: Worksheet, cached_sheet: Optional[Worksheet]) -> None:
        """Replace every formula with its last computed number (0 if none)."""
        for row in sheet.iter_rows():
            for cell in row:
                if cell.data_type != "f":
                    continue
                value = None
                if cached_sheet is not None:
                    value = cached_sheet[cell.coordinate].value
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    value = 0
                cell.value = value

    @staticmethod
    def _save(workbook: Workbook) -> bytes:
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()
