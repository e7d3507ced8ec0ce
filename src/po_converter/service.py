"""
Purchase Order Service
Entry points called by the web layer: upload, mapping, generation, download
and email delivery.

Every method returns a JSON-ready dict with ``success``; failures carry an
``error`` message and an ``error_code``.
"""

from __future__ import annotations

import os
import random
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from . import po_config as cfg
from .blob_store import BlobStore, LocalBlobStore
from .conversion_orchestrator import ConversionOrchestrator
from .document_renderer import TemplateRef
from .email_history import EmailHistoryLog
from .email_sender import EmailSender, EmailTemplateStore, apply_template
from .exceptions import ConversionError, EmailError, ParseError, StorageError
from .mapping_session import MappingSession
from .mapping_store import MappingStore
from .models import EmailTemplate, MappingDefinition, OutgoingEmail
from .po_logger import get_logger
from .row_validator import RowValidator
from .tabular_reader import TabularReader


# ======================================================================
# Helpers
# ======================================================================

def _failure(error: str, error_code: str, **extra: Any) -> Dict[str, Any]:
    result: Dict[str, Any] = {"success": False, "error": error, "error_code": error_code}
    result.update(extra)
    return result


def new_file_id(original_name: str) -> str:
    """``orderFile-<ms timestamp>-<random><ext>``; the extension is kept."""
    ext = os.path.splitext(original_name or "")[1].lower()
    return f"orderFile-{int(time.time() * 1000)}-{random.randint(0, 10**9 - 1)}{ext}"


def parse_schedule_time(value: Union[str, datetime, None]) -> Optional[datetime]:
    """ISO timestamp (``Z`` accepted) or datetime; None when absent or unparsable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class PurchaseOrderService:
    """Wires storage, conversion and email together for the web layer."""

    def __init__(
        self,
        blob_store: Optional[BlobStore] = None,
        reader: Optional[TabularReader] = None,
        validator: Optional[RowValidator] = None,
        orchestrator: Optional[ConversionOrchestrator] = None,
        mapping_store: Optional[MappingStore] = None,
        sender: Optional[EmailSender] = None,
        history: Optional[EmailHistoryLog] = None,
        templates: Optional[EmailTemplateStore] = None,
        template_ref: TemplateRef = None,
    ) -> None:
        self.blob_store = blob_store or LocalBlobStore()
        self.reader = reader or TabularReader()
        self.validator = validator or RowValidator()
        self.orchestrator = orchestrator or ConversionOrchestrator(blob_store=self.blob_store)
        self.mapping_store = mapping_store or MappingStore(self.blob_store)
        self.history = history or EmailHistoryLog()
        self.sender = sender or EmailSender(history=self.history)
        self.templates = templates or EmailTemplateStore()
        self.template_ref = template_ref if template_ref is not None else cfg.TEMPLATE_PATH
        self.logger = get_logger()

    # ==================================================================
    # Orders
    # ==================================================================

    def upload_order_file(self, data: Optional[bytes], filename: str) -> Dict[str, Any]:
        """Store an order file and return its preview and validation report.

        Args:
            data: Uploaded bytes.
            filename: Original filename; its extension picks the parser.

        Returns:
            ``fileId, originalName, headers, previewData, totalRows,
            validation, summary`` on success.
        """
        if not data:
            return _failure("파일이 업로드되지 않았습니다.", "FILE_MISSING")
        if len(data) > cfg.MAX_FILE_SIZE_BYTES:
            return _failure(
                f"파일 크기가 {cfg.MAX_FILE_SIZE_MB}MB를 초과합니다.", "FILE_TOO_LARGE"
            )
        ext = os.path.splitext(filename or "")[1].lower()
        if ext not in cfg.ALLOWED_EXTENSIONS:
            return _failure(
                "CSV 또는 Excel 파일(.csv, .xlsx)만 업로드할 수 있습니다.", "PARSE_ERROR"
            )

        try:
            table = self.reader.read(data, filename, preview=True)
        except ParseError as exc:
            self.logger.warning(f"Upload '{filename}' unreadable: {exc}", component="Upload")
            return _failure(f"파일을 읽을 수 없습니다: {exc}", "PARSE_ERROR")

        file_id = new_file_id(filename)
        stored = self.blob_store.put(cfg.UPLOADS_BUCKET, file_id, data)
        if not stored.success:
            return _failure(f"파일 저장 실패: {stored.error}", "STORAGE_FAILED")

        report = self.validator.validate(table.rows, table.headers)
        self.logger.info(
            f"Uploaded '{filename}' as {file_id}: {len(table.rows)} preview row(s), "
            f"{len(report.errors)} error(s), {len(report.warnings)} warning(s)",
            component="Upload",
        )
        return {
            "success": True,
            "fileId": file_id,
            "originalName": filename,
            "headers": list(table.headers),
            "previewData": list(table.rows),
            "totalRows": len(table.rows),
            "validation": report.to_dict(),
            "summary": RowValidator.summarize(report),
        }

    def save_mapping(
        self,
        mapping_name: str,
        rules: Dict[str, str],
        source_fields: Optional[List[str]] = None,
        target_fields: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Persist a named mapping; returns ``mappingId``."""
        if not mapping_name:
            return _failure("매핑 이름이 필요합니다.", "MISSING_FIELDS")
        definition = MappingDefinition(
            name=mapping_name,
            rules=dict(rules or {}),
            source_fields=list(source_fields or []),
            target_fields=list(target_fields or []),
        )
        return self._store_mapping(definition)

    def save_session_mapping(self, session: MappingSession, mapping_name: str) -> Dict[str, Any]:
        """Persist the rules chosen on the mapping screen and mark the session saved."""
        if not mapping_name:
            return _failure("매핑 이름이 필요합니다.", "MISSING_FIELDS")
        if not session.file_id:
            return _failure("업로드된 파일 ID가 필요합니다.", "MISSING_FIELDS")
        result = self._store_mapping(session.to_mapping(mapping_name))
        if result["success"]:
            session.mark_saved(result["mappingId"])
        return result

    def generate_purchase_order(
        self,
        file_id: str,
        mapping_id: Optional[str] = None,
        template_type: str = "standard",
    ) -> Dict[str, Any]:
        """Convert a stored upload into a purchase order workbook.

        A missing or unknown mapping id falls back to the heuristic mapping.
        """
        try:
            definition = self.mapping_store.load(mapping_id) if mapping_id else None
        except StorageError as exc:
            self.logger.warning(f"Ignoring mapping '{mapping_id}': {exc}", component="Mapping")
            definition = None
        if mapping_id and definition is None:
            self.logger.info(
                f"Mapping '{mapping_id}' unavailable, using heuristic mapping",
                component="Mapping",
            )
        return self._convert(file_id, definition, template_type)

    def generate_session_purchase_order(
        self, session: MappingSession, template_type: str = "standard"
    ) -> Dict[str, Any]:
        """Convert the session's upload with its current rules, saved or not.

        A session without rules uses the heuristic mapping.
        """
        definition = None
        if session.rules:
            definition = session.to_mapping(session.mapping_id or session.session_id)
        payload = self._convert(session.file_id, definition, template_type)
        if payload["success"]:
            session.mark_generated(payload["generatedFile"])
        return payload

    def _store_mapping(self, definition: MappingDefinition) -> Dict[str, Any]:
        try:
            mapping_id = self.mapping_store.save(definition)
        except StorageError as exc:
            return _failure(f"매핑 저장 중 오류가 발생했습니다: {exc}", "STORAGE_FAILED")
        return {"success": True, "mappingId": mapping_id}

    def _convert(
        self,
        file_id: Optional[str],
        definition: Optional[MappingDefinition],
        template_type: str,
    ) -> Dict[str, Any]:
        if template_type not in cfg.SUPPORTED_SCHEMAS:
            return _failure(
                f"지원하지 않는 발주서 형식입니다: {template_type}", "UNSUPPORTED_SCHEMA"
            )
        if not file_id:
            return _failure("업로드된 파일 ID가 필요합니다.", "MISSING_FIELDS")

        source = self.blob_store.get(cfg.UPLOADS_BUCKET, file_id)
        if not source.success:
            return _failure("업로드된 파일을 찾을 수 없습니다.", "FILE_NOT_FOUND")

        try:
            result = self.orchestrator.convert(
                source.data, file_id, template_ref=self.template_ref, mapping=definition
            )
        except ConversionError as exc:
            return _failure(f"발주서 생성 중 오류가 발생했습니다: {exc}", "CONVERSION_FAILED")

        payload = result.to_dict()
        payload.update(
            {
                "success": True,
                "generatedFile": result.file_name,
                "downloadUrl": f"/api/orders/download/{result.file_name}",
            }
        )
        return payload

    def download_document(self, file_name: str) -> Dict[str, Any]:
        """Generated workbook bytes (``content``) for *file_name*."""
        result = self.blob_store.get(cfg.GENERATED_BUCKET, file_name)
        if not result.success:
            return _failure("파일을 찾을 수 없습니다.", "FILE_NOT_FOUND")
        return {"success": True, "fileName": file_name, "content": result.data}

    # ==================================================================
    # Email
    # ==================================================================

    def send_purchase_order_email(
        self,
        to: str,
        subject: str,
        attachment_name: str,
        body: Optional[str] = None,
        template_id: Optional[str] = None,
        schedule_time: Union[str, datetime, None] = None,
    ) -> Dict[str, Any]:
        """Email a generated purchase order, now or acknowledged for later."""
        if not to or not subject or not attachment_name:
            return _failure(
                "필수 필드가 누락되었습니다. (받는 사람, 제목, 첨부파일)", "MISSING_FIELDS"
            )

        attachment = self.blob_store.get(cfg.GENERATED_BUCKET, attachment_name)
        if not attachment.success:
            return _failure("첨부파일을 찾을 수 없습니다.", "ATTACHMENT_NOT_FOUND")

        message = OutgoingEmail(
            to=to,
            subject=subject,
            body=body or cfg.DEFAULT_EMAIL_BODY,
            attachment=attachment.data,
            attachment_name=attachment_name,
            schedule_time=parse_schedule_time(schedule_time),
        )
        if template_id:
            apply_template(message, self.templates.load(template_id))

        try:
            sent = self.sender.send(message)
        except EmailError as exc:
            return _failure(str(exc), "EMAIL_FAILED")
        return sent.to_dict()

    def save_email_template(
        self,
        template_name: str,
        subject: str = "",
        body: str = "",
        recipients: Optional[Iterable[str]] = None,
    ) -> Dict[str, Any]:
        if not template_name:
            return _failure("템플릿 이름이 필요합니다.", "MISSING_FIELDS")
        template = EmailTemplate(
            name=template_name, subject=subject, body=body, recipients=list(recipients or [])
        )
        try:
            template_id = self.templates.save(template)
        except StorageError as exc:
            return _failure(f"템플릿 저장 중 오류가 발생했습니다: {exc}", "STORAGE_FAILED")
        return {"success": True, "templateId": template_id}

    def get_email_history(self) -> Dict[str, Any]:
        try:
            entries = self.history.list()
        except StorageError as exc:
            return _failure(f"이력 조회 중 오류가 발생했습니다: {exc}", "STORAGE_FAILED")
        return {"success": True, "history": [e.to_dict() for e in entries]}

    def delete_email_history(self, indices: Optional[Iterable[int]]) -> Dict[str, Any]:
        """Delete entries by position in the newest-first history listing."""
        try:
            deleted = self.history.delete_by_indices(list(indices or []))
        except (TypeError, ValueError) as exc:
            return _failure(f"유효하지 않은 인덱스입니다: {exc}", "INVALID_INDEX")
        except StorageError as exc:
            return _failure(f"이력 삭제 중 오류가 발생했습니다: {exc}", "STORAGE_FAILED")
        return {"success": True, "deletedCount": deleted}

    def clear_email_history(self) -> Dict[str, Any]:
        try:
            self.history.clear()
        except StorageError as exc:
            return _failure(f"전체 이력 삭제 중 오류가 발생했습니다: {exc}", "STORAGE_FAILED")
        return {"success": True}
