"""
End-to-end tests: the conversion orchestrator and the service entry points
used by the web layer (upload, mapping, generate, download, email, history).
"""

import io
import os
import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))
os.environ.setdefault("PO_LOG_DIR", tempfile.mkdtemp(prefix="po_logs_"))

import openpyxl

from po_converter import po_config as cfg
from po_converter.blob_store import MemoryBlobStore
from po_converter.conversion_orchestrator import ConversionOrchestrator
from po_converter.document_renderer import DocumentRenderer
from po_converter.email_history import EmailHistoryLog
from po_converter.email_sender import EmailSender, EmailTemplateStore
from po_converter.exceptions import ConversionError, EmailError, MappingGapError, ParseError
from po_converter.mapping_engine import MappingEngine
from po_converter.mapping_session import MappingSession, SessionStatus
from po_converter.service import PurchaseOrderService, new_file_id, parse_schedule_time

FIXED_NOW = datetime(2024, 5, 1, 9, 30, 0, tzinfo=timezone.utc)
FILE_NAME = "purchase_order_2024-05-01T09-30-00.xlsx"

ORDER_CSV = (
    "상품명,수량,단가,고객명,연락처,주소\n"
    "사과,10,1500,홍길동,010-1234-5678,서울\n"
    "배,5,1000,김철수,02-123-4567,부산\n"
).encode("utf-8")


def load_sheet(content):
    return openpyxl.load_workbook(io.BytesIO(content)).active


# ======================================================================
# Test: Conversion Orchestrator
# ======================================================================


class TestConversionOrchestrator(unittest.TestCase):

    def setUp(self):
        self.blobs = MemoryBlobStore()
        self.orchestrator = ConversionOrchestrator(
            mapping_engine=MappingEngine(strict=False),
            renderer=DocumentRenderer(clock=lambda: FIXED_NOW),
            blob_store=self.blobs,
            output_bucket="generated",
        )

    def test_csv_end_to_end(self):
        result = self.orchestrator.convert(ORDER_CSV, "orders.csv")
        self.assertEqual(result.file_name, FILE_NAME)
        self.assertEqual(result.file_path, f"generated/{FILE_NAME}")
        self.assertEqual(result.processed_rows, 2)
        self.assertEqual(result.total_rows, 2)
        self.assertEqual(result.state, "fresh")

        ws = load_sheet(self.blobs.get("generated", FILE_NAME).data)
        self.assertEqual(ws["E3"].value, 15000)
        self.assertEqual(ws["E4"].value, 5000)
        self.assertEqual(ws["B5"].value, "합계")
        self.assertEqual(ws["C5"].value, 15)
        self.assertEqual(ws["E5"].value, 20000)

    def test_explicit_mapping_and_output_key(self):
        data = "품목,개수,가격\n사과,2,300\n".encode("utf-8")
        result = self.orchestrator.convert(
            data,
            "csv",
            mapping={"상품명": "품목", "수량": "개수", "단가": "가격"},
            output_key="custom.xlsx",
        )
        self.assertEqual(result.file_path, "generated/custom.xlsx")
        ws = load_sheet(self.blobs.get("generated", "custom.xlsx").data)
        self.assertEqual([c.value for c in ws[3]][:5], [1, "사과", 2, 300, 600])

    def test_to_dict(self):
        d = self.orchestrator.convert(ORDER_CSV, "csv").to_dict()
        self.assertEqual(d["fileName"], FILE_NAME)
        self.assertEqual(d["processedRows"], 2)
        self.assertEqual(d["errors"], [])

    def test_parse_failure_wrapped(self):
        with self.assertRaises(ConversionError) as ctx:
            self.orchestrator.convert(b"", "csv")
        self.assertIsInstance(ctx.exception.__cause__, ParseError)

    def test_strict_mapping_gap_wrapped(self):
        orchestrator = ConversionOrchestrator(
            mapping_engine=MappingEngine(strict=True), blob_store=self.blobs
        )
        with self.assertRaises(ConversionError) as ctx:
            orchestrator.convert(ORDER_CSV, "csv", mapping={"상품명": "없는컬럼"})
        self.assertIsInstance(ctx.exception.__cause__, MappingGapError)

    def test_storage_failure_raises(self):
        with patch.object(self.blobs, "put") as put:
            put.return_value.success = False
            put.return_value.error = "disk full"
            with self.assertRaises(ConversionError):
                self.orchestrator.convert(ORDER_CSV, "csv")


# ======================================================================
# Test: Service
# ======================================================================


class TestPurchaseOrderService(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.blobs = MemoryBlobStore()
        self.history = EmailHistoryLog(str(Path(self.tmp.name) / "history.json"))
        self.templates = EmailTemplateStore(str(Path(self.tmp.name) / "templates"))
        orchestrator = ConversionOrchestrator(
            mapping_engine=MappingEngine(strict=False),
            renderer=DocumentRenderer(clock=lambda: FIXED_NOW),
            blob_store=self.blobs,
        )
        self.service = PurchaseOrderService(
            blob_store=self.blobs,
            orchestrator=orchestrator,
            sender=EmailSender(history=self.history, user="", password=""),
            history=self.history,
            templates=self.templates,
            template_ref=str(Path(self.tmp.name) / "no_template.xlsx"),
        )

    def tearDown(self):
        self.tmp.cleanup()

    def upload(self, data=ORDER_CSV, name="orders.csv"):
        return self.service.upload_order_file(data, name)

    # -- upload ---------------------------------------------------------

    def test_upload(self):
        result = self.upload()
        self.assertTrue(result["success"])
        self.assertTrue(result["fileId"].startswith("orderFile-"))
        self.assertTrue(result["fileId"].endswith(".csv"))
        self.assertEqual(result["headers"][:3], ["상품명", "수량", "단가"])
        self.assertEqual(result["totalRows"], 2)
        self.assertTrue(result["validation"]["isValid"])
        self.assertEqual(result["summary"]["status"], "success")
        self.assertIn(result["fileId"], self.blobs.keys(cfg.UPLOADS_BUCKET))

    def test_upload_reports_validation_problems(self):
        data = "상품명,수량\n,abc\n".encode("utf-8")
        result = self.upload(data)
        self.assertTrue(result["success"])
        self.assertFalse(result["validation"]["isValid"])
        self.assertEqual(result["validation"]["errorRows"], 1)

    def test_upload_missing_file(self):
        self.assertEqual(self.upload(b"")["error_code"], "FILE_MISSING")

    def test_upload_too_large(self):
        with patch.object(cfg, "MAX_FILE_SIZE_BYTES", 10):
            result = self.upload()
        self.assertFalse(result["success"])
        self.assertEqual(result["error_code"], "FILE_TOO_LARGE")

    def test_upload_unsupported_extension(self):
        self.assertEqual(self.upload(name="orders.pdf")["error_code"], "PARSE_ERROR")

    def test_upload_unreadable(self):
        result = self.upload(b"not a workbook", "orders.xlsx")
        self.assertEqual(result["error_code"], "PARSE_ERROR")
        self.assertEqual(self.blobs.keys(cfg.UPLOADS_BUCKET), [])

    # -- mapping + generate --------------------------------------------

    def test_generate_with_heuristic_mapping(self):
        file_id = self.upload()["fileId"]
        result = self.service.generate_purchase_order(file_id)
        self.assertTrue(result["success"])
        self.assertEqual(result["generatedFile"], FILE_NAME)
        self.assertEqual(result["processedRows"], 2)
        self.assertEqual(result["downloadUrl"], f"/api/orders/download/{FILE_NAME}")

        download = self.service.download_document(FILE_NAME)
        self.assertTrue(download["success"])
        self.assertEqual(load_sheet(download["content"])["E5"].value, 20000)

    def test_generate_with_saved_mapping(self):
        data = "품목,개수,가격\n사과,3,100\n".encode("utf-8")
        file_id = self.upload(data)["fileId"]
        saved = self.service.save_mapping(
            "거래처A", {"상품명": "품목", "수량": "개수", "단가": "가격"}, ["품목", "개수", "가격"]
        )
        self.assertEqual(saved, {"success": True, "mappingId": "거래처A"})

        result = self.service.generate_purchase_order(file_id, "거래처A")
        ws = load_sheet(self.service.download_document(result["generatedFile"])["content"])
        self.assertEqual([c.value for c in ws[3]][:5], [1, "사과", 3, 100, 300])

    def test_generate_unknown_mapping_uses_heuristic(self):
        file_id = self.upload()["fileId"]
        result = self.service.generate_purchase_order(file_id, "없는매핑")
        self.assertTrue(result["success"])
        self.assertEqual(result["processedRows"], 2)

    def test_generate_errors(self):
        self.assertEqual(
            self.service.generate_purchase_order("missing.csv")["error_code"], "FILE_NOT_FOUND"
        )
        self.assertEqual(
            self.service.generate_purchase_order("x.csv", template_type="custom")["error_code"],
            "UNSUPPORTED_SCHEMA",
        )
        self.blobs.put(cfg.UPLOADS_BUCKET, "broken.csv", b"   ")
        self.assertEqual(
            self.service.generate_purchase_order("broken.csv")["error_code"], "CONVERSION_FAILED"
        )

    def test_save_mapping_requires_name(self):
        self.assertEqual(self.service.save_mapping("", {})["error_code"], "MISSING_FIELDS")

    def test_session_mapping_saved_and_generated(self):
        data = "품목,개수,가격\n사과,3,100\n".encode("utf-8")
        upload = self.upload(data)
        session = MappingSession("user-1")
        session.attach_upload(upload["fileId"], upload["originalName"], upload["headers"])
        session.map_field("상품명", "품목")
        session.map_field("수량", "개수")
        session.map_field("단가", "가격")

        saved = self.service.save_session_mapping(session, "거래처B")
        self.assertEqual(saved, {"success": True, "mappingId": "거래처B"})
        self.assertEqual(session.status, SessionStatus.SAVED)
        self.assertEqual(session.mapping_id, "거래처B")

        result = self.service.generate_session_purchase_order(session)
        self.assertTrue(result["success"])
        self.assertEqual(session.status, SessionStatus.GENERATED)
        self.assertEqual(session.generated_file, result["generatedFile"])
        ws = load_sheet(self.service.download_document(result["generatedFile"])["content"])
        self.assertEqual([c.value for c in ws[3]][:5], [1, "사과", 3, 100, 300])

        stored = self.service.generate_purchase_order(upload["fileId"], "거래처B")
        self.assertEqual(stored["processedRows"], 1)

    def test_session_generate_uses_unsaved_rules(self):
        data = "품목,개수,가격\n배,2,50\n".encode("utf-8")
        upload = self.upload(data)
        session = MappingSession()
        session.attach_upload(upload["fileId"], upload["originalName"], upload["headers"])
        session.map_field("상품명", "품목")
        session.map_field("수량", "개수")
        session.map_field("단가", "가격")

        result = self.service.generate_session_purchase_order(session)
        ws = load_sheet(self.service.download_document(result["generatedFile"])["content"])
        self.assertEqual([c.value for c in ws[3]][:5], [1, "배", 2, 50, 100])
        self.assertIsNone(session.mapping_id)

    def test_session_errors(self):
        session = MappingSession()
        self.assertEqual(
            self.service.save_session_mapping(session, "이름")["error_code"], "MISSING_FIELDS"
        )
        self.assertEqual(
            self.service.generate_session_purchase_order(session)["error_code"], "MISSING_FIELDS"
        )
        session.attach_upload(self.upload()["fileId"], "orders.csv", ["상품명"])
        self.assertEqual(
            self.service.save_session_mapping(session, "")["error_code"], "MISSING_FIELDS"
        )
        self.assertEqual(session.status, SessionStatus.UPLOADED)

    def test_download_missing(self):
        self.assertEqual(self.service.download_document("nope.xlsx")["error_code"], "FILE_NOT_FOUND")

    # -- email ----------------------------------------------------------

    def generated_file(self):
        file_id = self.upload()["fileId"]
        return self.service.generate_purchase_order(file_id)["generatedFile"]

    def test_send_simulated_email(self):
        attachment = self.generated_file()
        result = self.service.send_purchase_order_email("buyer@example.com", "발주서", attachment)
        self.assertTrue(result["success"])
        self.assertTrue(result["simulation"])

        history = self.service.get_email_history()["history"]
        self.assertEqual(history[0]["attachmentName"], attachment)
        self.assertEqual(history[0]["status"], "success (simulation)")

    def test_send_with_template(self):
        attachment = self.generated_file()
        self.assertEqual(
            self.service.save_email_template("weekly", subject="주간 발주서", body="본문"),
            {"success": True, "templateId": "weekly"},
        )
        self.service.send_purchase_order_email(
            "buyer@example.com", "원래 제목", attachment, template_id="weekly"
        )
        self.assertEqual(self.service.get_email_history()["history"][0]["subject"], "주간 발주서")

    def test_send_scheduled(self):
        attachment = self.generated_file()
        when = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat().replace("+00:00", "Z")
        result = self.service.send_purchase_order_email(
            "buyer@example.com", "발주서", attachment, schedule_time=when
        )
        self.assertTrue(result["scheduled"])
        self.assertEqual(self.service.get_email_history()["history"], [])

    def test_send_errors(self):
        self.assertEqual(
            self.service.send_purchase_order_email("", "s", "a.xlsx")["error_code"], "MISSING_FIELDS"
        )
        self.assertEqual(
            self.service.send_purchase_order_email("a@x.com", "s", "none.xlsx")["error_code"],
            "ATTACHMENT_NOT_FOUND",
        )

    def test_send_failure(self):
        attachment = self.generated_file()
        with patch.object(self.service.sender, "send", side_effect=EmailError("smtp down")):
            result = self.service.send_purchase_order_email("a@x.com", "s", attachment)
        self.assertEqual(result["error_code"], "EMAIL_FAILED")

    def test_send_with_corrupt_history_file(self):
        attachment = self.generated_file()
        self.history.path.write_text("{broken", encoding="utf-8")
        result = self.service.send_purchase_order_email("a@x.com", "발주서", attachment)
        self.assertTrue(result["success"])
        self.assertTrue(result["simulation"])
        self.assertEqual(self.service.get_email_history()["error_code"], "STORAGE_FAILED")

    # -- history --------------------------------------------------------

    def test_history_delete_and_clear(self):
        attachment = self.generated_file()
        for i in range(3):
            self.service.send_purchase_order_email(f"user{i}@x.com", "발주서", attachment)

        self.assertEqual(
            self.service.delete_email_history([5])["error_code"], "INVALID_INDEX"
        )
        self.assertEqual(self.service.delete_email_history([])["error_code"], "INVALID_INDEX")
        self.assertEqual(self.service.delete_email_history([0]), {"success": True, "deletedCount": 1})
        self.assertEqual(len(self.service.get_email_history()["history"]), 2)

        self.assertEqual(self.service.clear_email_history(), {"success": True})
        self.assertEqual(self.service.get_email_history()["history"], [])


class TestServiceHelpers(unittest.TestCase):

    def test_new_file_id(self):
        file_id = new_file_id("Orders.XLSX")
        self.assertTrue(file_id.startswith("orderFile-"))
        self.assertTrue(file_id.endswith(".xlsx"))

    def test_parse_schedule_time(self):
        self.assertIsNone(parse_schedule_time(None))
        self.assertIsNone(parse_schedule_time("tomorrow"))
        parsed = parse_schedule_time("2024-05-01T10:00:00Z")
        self.assertEqual(parsed, datetime(2024, 5, 1, 10, tzinfo=timezone.utc))
        naive = parse_schedule_time(datetime(2024, 5, 1, 10))
        self.assertEqual(naive.tzinfo, timezone.utc)


if __name__ == "__main__":
    unittest.main()
