"""
Row Validator
Checks parsed order rows against the purchase-order schema and business
heuristics. Never raises: every problem becomes a report entry.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Tuple

from . import target_schema as schema
from .coercion import is_whole_number, parse_number, parse_whole
from .models import ValidationReport
from .po_logger import get_logger

_PHONE_RE = re.compile(schema.PHONE_PATTERN)


def _present(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


class RowValidator:
    """Validate order rows and produce a ValidationReport."""

    def __init__(self) -> None:
        self.logger = get_logger()

    def validate(self, rows: List[Dict[str, Any]], headers: List[str]) -> ValidationReport:
        report = ValidationReport(total_rows=len(rows))

        missing = [c for c in schema.REQUIRED_COLUMNS if c not in headers]
        if missing:
            report.add_error(
                "missing_columns",
                f"필수 컬럼이 누락되었습니다: {', '.join(missing)}",
            )

        # (product, customer) -> row number of the first accepted row
        accepted: Dict[Tuple[str, str], int] = {}

        for idx, row in enumerate(rows):
            row_number = idx + 2  # spreadsheet row, header is row 1
            row_errors = self._schema_errors(row)

            qty = parse_whole(row.get(schema.QUANTITY))
            if _present(row.get(schema.QUANTITY)) and qty is not None and qty <= 0:
                row_errors.append(f"수량이 0 이하입니다 ({row.get(schema.QUANTITY)})")

            price = parse_number(row.get(schema.UNIT_PRICE))
            if price is not None and price < schema.LOW_PRICE_THRESHOLD:
                report.add_warning(
                    "low_price",
                    f"{row_number}행: 단가가 너무 낮습니다 ({row.get(schema.UNIT_PRICE)}원)",
                    row=row_number,
                )

            key = (
                str(row.get(schema.PRODUCT_NAME, "")),
                str(row.get(schema.CUSTOMER_NAME, "")),
            )
            if key in accepted:
                report.add_warning(
                    "duplicate",
                    f"{row_number}행: 중복된 주문입니다 ({accepted[key]}행과 동일)",
                    row=row_number,
                )

            if row_errors:
                report.add_error(
                    "row_error",
                    f"{row_number}행: {', '.join(row_errors)}",
                    row=row_number,
                    details=row_errors,
                )
                continue

            report.valid_rows += 1
            accepted.setdefault(key, row_number)

        self.logger.debug(
            f"Validated {report.total_rows} row(s): {report.valid_rows} valid, "
            f"{len(report.errors)} error(s), {len(report.warnings)} warning(s)",
            component="Validator",
        )
        return report

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _schema_errors(row: Dict[str, Any]) -> List[str]:
        """All schema violations for one row."""
        errors: List[str] = []

        if not _present(row.get(schema.PRODUCT_NAME)):
            errors.append("상품명은 필수입니다")

        qty_raw = row.get(schema.QUANTITY)
        if _present(qty_raw):
            qty = parse_number(qty_raw)
            if qty is None:
                errors.append("수량은 숫자여야 합니다")
            else:
                if qty <= 0:
                    errors.append("수량은 0보다 커야 합니다")
                if not is_whole_number(qty_raw):
                    errors.append("수량은 정수여야 합니다")

        price_raw = row.get(schema.UNIT_PRICE)
        if _present(price_raw):
            price = parse_number(price_raw)
            if price is None:
                errors.append("단가는 숫자여야 합니다")
            elif price <= 0:
                errors.append("단가는 0보다 커야 합니다")

        contact = row.get(schema.CONTACT)
        if _present(contact) and not _PHONE_RE.match(str(contact).strip()):
            errors.append("올바른 전화번호 형식이 아닙니다")

        return errors

    # ------------------------------------------------------------------
    # Helpers for the upload preview
    # ------------------------------------------------------------------

    @staticmethod
    def sanitize(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Trim values, strip thousands separators and clean phone numbers."""
        cleaned: List[Dict[str, Any]] = []
        for row in rows:
            clean_row: Dict[str, Any] = {}
            for key, value in row.items():
                if isinstance(value, str):
                    value = value.strip()
                if key in schema.NUMERIC_FIELDS and value is not None:
                    text = str(value).replace(",", "")
                    number = parse_number(text)
                    value = number if number is not None else text
                if key == schema.CONTACT and value is not None:
                    value = re.sub(r"[^\d-]", "", str(value))
                clean_row[key] = value
            cleaned.append(clean_row)
        return cleaned

    @staticmethod
    def summarize(report: ValidationReport) -> Dict[str, Any]:
        """Short status message for the upload screen."""
        if report.is_valid:
            message = (
                f"모든 데이터가 유효합니다! "
                f"({report.valid_rows}/{report.total_rows}행 처리 가능)"
            )
        else:
            message = (
                f"{report.error_rows}개 행에서 오류가 발견되었습니다. "
                "수정 후 다시 시도해주세요."
            )
        return {
            "status": "success" if report.is_valid else "error",
            "message": message,
            "details": {
                "total": report.total_rows,
                "valid": report.valid_rows,
                "errors": report.error_rows,
                "warnings": report.warning_rows,
                "successRate": report.success_rate,
            },
        }
