"""
Purchase Order Converter Data Models
Dataclasses for structured data passing between converter components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from . import target_schema as schema
from .coercion import parse_number, parse_whole, tidy


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Parsed input
# ---------------------------------------------------------------------------

@dataclass
class Table:
    """Headers plus row records read from an uploaded file."""
    headers: List[str] = field(default_factory=list)
    rows: List[Dict[str, str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def to_dict(self) -> Dict[str, Any]:
        return {"headers": list(self.headers), "rows": [dict(r) for r in self.rows]}


# ---------------------------------------------------------------------------
# Validation models
# ---------------------------------------------------------------------------

@dataclass
class ValidationIssue:
    """A single validation error or warning."""
    type: str = ""
    message: str = ""
    row: Optional[int] = None  # 1-based, header row included (first data row = 2)
    severity: str = "error"  # error or warning
    details: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.type,
            "message": self.message,
            "row": self.row,
            "severity": self.severity,
        }
        if self.details:
            d["errors"] = list(self.details)
        return d


@dataclass
class ValidationReport:
    """Aggregated, non-blocking validation result for an uploaded table."""
    total_rows: int = 0
    valid_rows: int = 0
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    def add_error(
        self,
        issue_type: str,
        message: str,
        row: Optional[int] = None,
        details: Optional[List[str]] = None,
    ) -> None:
        self.errors.append(
            ValidationIssue(
                type=issue_type,
                message=message,
                row=row,
                severity="error",
                details=list(details or []),
            )
        )

    def add_warning(self, issue_type: str, message: str, row: Optional[int] = None) -> None:
        self.warnings.append(
            ValidationIssue(type=issue_type, message=message, row=row, severity="warning")
        )

    @property
    def is_valid(self) -> bool:
        return not any(e.severity == "error" for e in self.errors)

    @property
    def error_rows(self) -> int:
        return sum(1 for e in self.errors if e.severity == "error")

    @property
    def warning_rows(self) -> int:
        return len(self.warnings)

    @property
    def success_rate(self) -> int:
        if self.total_rows == 0:
            return 0
        # round half up
        return int(100 * self.valid_rows / self.total_rows + 0.5)

    @property
    def total_issues(self) -> int:
        return len(self.errors) + len(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "errorRows": self.error_rows,
            "warningRows": self.warning_rows,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "summary": {
                "successRate": self.success_rate,
                "totalIssues": self.total_issues,
            },
        }


# ---------------------------------------------------------------------------
# Rendering models
# ---------------------------------------------------------------------------

@dataclass
class PurchaseOrderLine:
    """A transformed record narrowed to the eight standard columns."""
    product_name: Any = ""
    quantity: Any = None
    unit_price: Any = None
    amount: Any = None
    customer_name: Any = ""
    contact: Any = ""
    address: Any = ""

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "PurchaseOrderLine":
        return cls(
            product_name=record.get(schema.PRODUCT_NAME, ""),
            quantity=record.get(schema.QUANTITY),
            unit_price=record.get(schema.UNIT_PRICE),
            amount=record.get(schema.AMOUNT),
            customer_name=record.get(schema.CUSTOMER_NAME, ""),
            contact=record.get(schema.CONTACT, ""),
            address=record.get(schema.ADDRESS, ""),
        )

    def cell_values(self, sequence: int) -> List[Any]:
        """Values in TARGET_COLUMNS order; unusable numbers become ''."""
        qty = parse_whole(self.quantity) if self.quantity else None
        price = parse_number(self.unit_price) if self.unit_price else None
        amount = parse_number(self.amount) if self.amount else None
        return [
            sequence,
            _text(self.product_name),
            qty if qty is not None else "",
            tidy(price) if price is not None else "",
            tidy(amount) if amount is not None else "",
            _text(self.customer_name),
            _text(self.contact),
            _text(self.address),
        ]


def _text(value: Any) -> Any:
    return value if value else ""


@dataclass
class RowError:
    """A data row that could not be written."""
    row: int = 0  # 1-based position in the transformed data
    error: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "error": self.error, "data": dict(self.data)}


@dataclass
class RenderResult:
    """Rendered workbook bytes plus per-row outcome."""
    file_name: str = ""
    content: bytes = b""
    processed_rows: int = 0
    total_rows: int = 0
    errors: List[RowError] = field(default_factory=list)
    state: str = ""  # "template" or "fresh"


@dataclass
class ConversionResult:
    """Outcome of one conversion run."""
    file_name: str = ""
    file_path: str = ""
    processed_rows: int = 0
    total_rows: int = 0
    errors: List[RowError] = field(default_factory=list)
    state: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            "filePath": self.file_path,
            "processedRows": self.processed_rows,
            "totalRows": self.total_rows,
            "errors": [e.to_dict() for e in self.errors],
            "state": self.state,
        }


# ---------------------------------------------------------------------------
# Storage models
# ---------------------------------------------------------------------------

@dataclass
class BlobResult:
    """Result of a blob store call."""
    success: bool = False
    data: Optional[bytes] = None
    error: str = ""


@dataclass
class MappingDefinition:
    """A named, persisted target-field -> source-field mapping."""
    name: str = ""
    rules: Dict[str, str] = field(default_factory=dict)
    source_fields: List[str] = field(default_factory=list)
    target_fields: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "createdAt": self.created_at,
            "sourceFields": list(self.source_fields),
            "targetFields": list(self.target_fields),
            "rules": dict(self.rules),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MappingDefinition":
        return cls(
            name=data.get("name", ""),
            rules=dict(data.get("rules") or {}),
            source_fields=list(data.get("sourceFields") or []),
            target_fields=list(data.get("targetFields") or []),
            created_at=data.get("createdAt", ""),
        )


# ---------------------------------------------------------------------------
# Email models
# ---------------------------------------------------------------------------

@dataclass
class OutgoingEmail:
    """A purchase order email with one attachment."""
    to: str = ""
    subject: str = ""
    body: str = ""
    attachment: bytes = b""
    attachment_name: str = ""
    schedule_time: Optional[datetime] = None


@dataclass
class SendResult:
    """Outcome of an email send attempt."""
    success: bool = False
    message_id: str = ""
    error: str = ""
    simulation: bool = False
    scheduled: bool = False
    schedule_time: str = ""
    sent_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"success": self.success}
        if self.scheduled:
            d["scheduled"] = True
            d["scheduleTime"] = self.schedule_time
            return d
        if self.message_id:
            d["messageId"] = self.message_id
        if self.sent_at:
            d["sentAt"] = self.sent_at
        if self.simulation:
            d["simulation"] = True
        if self.error:
            d["error"] = self.error
        return d


@dataclass
class EmailTemplate:
    """Saved subject/body pair that overrides a send request."""
    name: str = ""
    subject: str = ""
    body: str = ""
    recipients: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "subject": self.subject,
            "body": self.body,
            "recipients": list(self.recipients),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmailTemplate":
        return cls(
            name=data.get("name", ""),
            subject=data.get("subject", ""),
            body=data.get("body", ""),
            recipients=list(data.get("recipients") or []),
            created_at=data.get("createdAt", ""),
        )


@dataclass
class EmailHistoryEntry:
    """One email send attempt in the history log."""
    to: str = ""
    subject: str = ""
    attachment_name: str = ""
    sent_at: str = field(default_factory=_utc_now_iso)
    message_id: str = ""
    status: str = "success"  # success, "success (simulation)", failed
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "to": self.to,
            "subject": self.subject,
            "attachmentName": self.attachment_name,
            "sentAt": self.sent_at,
            "messageId": self.message_id,
            "status": self.status,
        }
        if self.error:
            d["error"] = self.error
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmailHistoryEntry":
        return cls(
            to=data.get("to", ""),
            subject=data.get("subject", ""),
            attachment_name=data.get("attachmentName", ""),
            sent_at=data.get("sentAt", ""),
            message_id=data.get("messageId", ""),
            status=data.get("status", ""),
            error=data.get("error", ""),
        )

    @property
    def sent_at_dt(self) -> datetime:
        """Parsed send time; unparsable values sort as oldest."""
        try:
            parsed = datetime.fromisoformat(self.sent_at.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            return datetime.min.replace(tzinfo=timezone.utc)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
