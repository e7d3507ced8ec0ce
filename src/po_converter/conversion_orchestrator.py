"""
Conversion Orchestrator
Runs Reader -> Mapping Engine -> Document Renderer for one uploaded file and
stores the generated purchase order.
"""

from __future__ import annotations

from typing import Optional

from . import po_config as cfg
from .blob_store import BlobStore, LocalBlobStore
from .document_renderer import DocumentRenderer, TemplateRef
from .exceptions import ConversionError, PurchaseOrderError
from .mapping_engine import MappingEngine, MappingLike, mapping_rules
from .models import ConversionResult
from .po_logger import get_logger
from .tabular_reader import TabularReader


class ConversionOrchestrator:
    """Convert an order file into a standard purchase-order workbook."""

    def __init__(
        self,
        reader: Optional[TabularReader] = None,
        mapping_engine: Optional[MappingEngine] = None,
        renderer: Optional[DocumentRenderer] = None,
        blob_store: Optional[BlobStore] = None,
        output_bucket: Optional[str] = None,
    ) -> None:
        self.reader = reader or TabularReader()
        self.mapping_engine = mapping_engine or MappingEngine()
        self.renderer = renderer or DocumentRenderer()
        self.blob_store = blob_store or LocalBlobStore()
        self.output_bucket = output_bucket or cfg.GENERATED_BUCKET
        self.logger = get_logger()

    def convert(
        self,
        source_bytes: bytes,
        format_hint: str,
        template_ref: TemplateRef = None,
        mapping: MappingLike = None,
        output_key: Optional[str] = None,
    ) -> ConversionResult:
        """Convert *source_bytes* and store the result.

        Args:
            source_bytes: Uploaded file content.
            format_hint: ``csv``, ``xlsx`` or the original filename.
            template_ref: Template workbook path or bytes (optional).
            mapping: Target -> source rules; empty or None uses the heuristic.
            output_key: Blob key for the document (defaults to its file name).

        Raises:
            ConversionError: Any failure, with the cause chained.
        """
        try:
            table = self.reader.read(source_bytes, format_hint)
            mode = "explicit" if mapping_rules(mapping) else "heuristic"
            self.logger.log_conversion_start(format_hint, len(table.rows), mode)

            transformed = self.mapping_engine.apply(table, mapping)
            rendered = self.renderer.render(transformed, template_ref)

            key = output_key or rendered.file_name
            stored = self.blob_store.put(self.output_bucket, key, rendered.content)
            if not stored.success:
                raise ConversionError(f"저장 실패 ({key}): {stored.error}")
        except ConversionError:
            raise
        except Exception as exc:
            self.logger.error(
                f"Conversion failed: {exc}",
                component="Converter",
                exc_info=not isinstance(exc, PurchaseOrderError),
            )
            raise ConversionError(f"파일 변환 중 오류가 발생했습니다: {exc}") from exc

        self.logger.log_conversion_complete(
            rendered.file_name, rendered.processed_rows, rendered.total_rows, rendered.state
        )
        return ConversionResult(
            file_name=rendered.file_name,
            file_path=f"{self.output_bucket}/{key}",
            processed_rows=rendered.processed_rows,
            total_rows=rendered.total_rows,
            errors=list(rendered.errors),
            state=rendered.state,
        )
