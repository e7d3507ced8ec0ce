"""Purchase order converter exception hierarchy."""

from __future__ import annotations

from typing import Any, Dict, Optional


class PurchaseOrderError(Exception):
    """Base exception for all converter errors."""


class ParseError(PurchaseOrderError):
    """Uploaded bytes are not valid for the declared format."""


class MappingGapError(PurchaseOrderError):
    """A mapping rule references a source column the row does not have."""

    def __init__(self, row: int, target_field: str, source_field: str) -> None:
        self.row = row
        self.target_field = target_field
        self.source_field = source_field
        super().__init__(
            f"Row {row}: source column '{source_field}' for '{target_field}' is missing"
        )


class RenderError(PurchaseOrderError):
    """The purchase order document could not be written."""


class RowWriteError(RenderError):
    """Writing one data row failed; collected, never raised past the renderer."""

    def __init__(self, row: int, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.row = row
        self.data = data or {}
        super().__init__(message)


class ConversionError(PurchaseOrderError):
    """A conversion run failed; wraps the lower-layer cause."""


class StorageError(PurchaseOrderError):
    """Blob store operation failed."""


class EmailError(PurchaseOrderError):
    """Email delivery failed."""
