"""
Tests for blob storage, the mapping repository and the click-to-map session.
"""

import json
import os
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))
os.environ.setdefault("PO_LOG_DIR", tempfile.mkdtemp(prefix="po_logs_"))

from po_converter.blob_store import LocalBlobStore, MemoryBlobStore
from po_converter.exceptions import StorageError
from po_converter.mapping_session import MappingSession, SessionStatus
from po_converter.mapping_store import MappingStore
from po_converter.models import MappingDefinition


# ======================================================================
# Test: Blob stores
# ======================================================================


class TestLocalBlobStore(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = LocalBlobStore(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_put_get_delete(self):
        self.assertTrue(self.store.put("uploads", "a.csv", b"data").success)
        path = Path(self.tmp.name) / "uploads" / "files" / "a.csv"
        self.assertEqual(path.read_bytes(), b"data")

        got = self.store.get("uploads", "a.csv")
        self.assertTrue(got.success)
        self.assertEqual(got.data, b"data")

        self.assertTrue(self.store.delete("uploads", "a.csv").success)
        self.assertFalse(self.store.get("uploads", "a.csv").success)

    def test_overwrite(self):
        self.store.put("generated", "x.xlsx", b"one")
        self.store.put("generated", "x.xlsx", b"two")
        self.assertEqual(self.store.get("generated", "x.xlsx").data, b"two")

    def test_missing_blob(self):
        result = self.store.get("uploads", "nope.csv")
        self.assertFalse(result.success)
        self.assertIn("not found", result.error)
        self.assertFalse(self.store.delete("uploads", "nope.csv").success)

    def test_path_traversal_rejected(self):
        result = self.store.put("uploads", "../escape.csv", b"x")
        self.assertFalse(result.success)
        self.assertFalse((Path(self.tmp.name) / "uploads" / "escape.csv").exists())
        self.assertFalse(self.store.get("uploads", "../../etc/passwd").success)


class TestMemoryBlobStore(unittest.TestCase):

    def test_roundtrip_and_keys(self):
        store = MemoryBlobStore()
        store.put("uploads", "b.csv", b"2")
        store.put("uploads", "a.csv", b"1")
        store.put("generated", "c.xlsx", b"3")
        self.assertEqual(store.keys("uploads"), ["a.csv", "b.csv"])
        self.assertEqual(store.get("uploads", "a.csv").data, b"1")
        self.assertTrue(store.delete("uploads", "a.csv").success)
        self.assertFalse(store.delete("uploads", "a.csv").success)


# ======================================================================
# Test: Mapping repository
# ======================================================================


class TestMappingStore(unittest.TestCase):

    def setUp(self):
        self.blobs = MemoryBlobStore()
        self.store = MappingStore(self.blobs, bucket="mappings")

    def test_save_and_load(self):
        definition = MappingDefinition(
            name="거래처A",
            rules={"상품명": "품목", "수량": "개수"},
            source_fields=["품목", "개수"],
            target_fields=["상품명", "수량"],
        )
        self.assertEqual(self.store.save(definition), "거래처A")

        raw = json.loads(self.blobs.get("mappings", "거래처A.json").data.decode("utf-8"))
        self.assertEqual(raw["rules"], {"상품명": "품목", "수량": "개수"})
        self.assertEqual(raw["sourceFields"], ["품목", "개수"])
        self.assertIn("createdAt", raw)

        loaded = self.store.load("거래처A")
        self.assertEqual(loaded.rules, definition.rules)
        self.assertEqual(loaded.target_fields, ["상품명", "수량"])

    def test_load_missing_returns_none(self):
        self.assertIsNone(self.store.load("unknown"))
        self.assertIsNone(self.store.load(""))

    def test_invalid_json_raises(self):
        self.blobs.put("mappings", "bad.json", b"{not json")
        with self.assertRaises(StorageError):
            self.store.load("bad")

    def test_save_requires_name(self):
        with self.assertRaises(StorageError):
            self.store.save(MappingDefinition(name=""))


# ======================================================================
# Test: Mapping session
# ======================================================================


class TestMappingSession(unittest.TestCase):

    def setUp(self):
        self.session = MappingSession("MAP_TEST")
        self.session.attach_upload("orderFile-1.csv", "orders.csv", ["품목", "개수", "가격"])

    def test_attach_resets_state(self):
        self.session.map_field("상품명", "품목")
        self.session.attach_upload("orderFile-2.csv", "next.csv", ["a"])
        self.assertEqual(self.session.rules, {})
        self.assertEqual(self.session.status, SessionStatus.UPLOADED)
        self.assertEqual(self.session.source_headers, ["a"])

    def test_map_and_move_source(self):
        self.session.map_field("상품명", "품목")
        self.session.map_field("고객명", "품목")
        self.assertEqual(self.session.rules, {"고객명": "품목"})
        self.assertEqual(self.session.status, SessionStatus.MAPPING)

    def test_unknown_fields_rejected(self):
        with self.assertRaises(ValueError):
            self.session.map_field("금액", "가격")
        with self.assertRaises(ValueError):
            self.session.map_field("단가", "없음")

    def test_unmap_and_clear(self):
        self.session.map_field("상품명", "품목")
        self.session.map_field("수량", "개수")
        self.assertTrue(self.session.unmap_field("수량"))
        self.assertFalse(self.session.unmap_field("수량"))
        self.assertEqual(self.session.unmapped_sources(), ["개수", "가격"])
        self.session.clear()
        self.assertEqual(self.session.rules, {})
        self.assertEqual(self.session.status, SessionStatus.UPLOADED)

    def test_to_mapping_and_lifecycle(self):
        self.session.map_field("단가", "가격")
        definition = self.session.to_mapping("거래처B")
        self.assertEqual(definition.name, "거래처B")
        self.assertEqual(definition.rules, {"단가": "가격"})
        self.assertEqual(definition.source_fields, ["품목", "개수", "가격"])

        self.session.mark_saved("거래처B")
        self.session.mark_generated("purchase_order_x.xlsx")
        d = self.session.to_dict()
        self.assertEqual(d["status"], "generated")
        self.assertEqual(d["mapping_id"], "거래처B")
        self.assertEqual(d["generated_file"], "purchase_order_x.xlsx")


if __name__ == "__main__":
    unittest.main()
