"""
Blob storage for uploads, generated documents and mapping definitions.

``LocalBlobStore`` keeps one directory per bucket on disk;
``MemoryBlobStore`` is the dict-backed stand-in used by tests.
Both return ``BlobResult`` objects instead of raising.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from . import po_config as cfg
from .models import BlobResult
from .po_logger import get_logger


class BlobStore(Protocol):
    def put(self, bucket: str, key: str, data: bytes) -> BlobResult: ...

    def get(self, bucket: str, key: str) -> BlobResult: ...

    def delete(self, bucket: str, key: str) -> BlobResult: ...


def _safe_key(key: str) -> str:
    """Blob keys are flat file names; reject anything that walks directories."""
    name = os.path.basename(key or "")
    if not name or name in (".", "..") or name != key:
        raise ValueError(f"Invalid blob key: {key!r}")
    return name


class LocalBlobStore:
    """Filesystem blob store: <root>/<bucket>/files/<key>."""

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = Path(root or cfg.STORAGE_DIR)
        self.logger = get_logger()

    def path_for(self, bucket: str, key: str) -> Path:
        return self.root / bucket / cfg.BLOB_KEY_PREFIX / _safe_key(key)

    def put(self, bucket: str, key: str, data: bytes) -> BlobResult:
        try:
            path = self.path_for(bucket, key)
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, path)
        except (OSError, ValueError) as exc:
            self.logger.error(f"Upload {bucket}/{key} failed: {exc}", component="Storage")
            return BlobResult(success=False, error=str(exc))
        self.logger.debug(f"Stored {bucket}/{key} ({len(data)} bytes)", component="Storage")
        return BlobResult(success=True)

    def get(self, bucket: str, key: str) -> BlobResult:
        try:
            data = self.path_for(bucket, key).read_bytes()
        except FileNotFoundError:
            return BlobResult(success=False, error=f"{bucket}/{key} not found")
        except (OSError, ValueError) as exc:
            self.logger.error(f"Download {bucket}/{key} failed: {exc}", component="Storage")
            return BlobResult(success=False, error=str(exc))
        return BlobResult(success=True, data=data)

    def delete(self, bucket: str, key: str) -> BlobResult:
        try:
            self.path_for(bucket, key).unlink()
        except FileNotFoundError:
            return BlobResult(success=False, error=f"{bucket}/{key} not found")
        except (OSError, ValueError) as exc:
            self.logger.error(f"Delete {bucket}/{key} failed: {exc}", component="Storage")
            return BlobResult(success=False, error=str(exc))
        return BlobResult(success=True)


class MemoryBlobStore:
    """Dict-backed BlobStore for unit tests."""

    def __init__(self) -> None:
        self._blobs: Dict[Tuple[str, str], bytes] = {}

    def put(self, bucket: str, key: str, data: bytes) -> BlobResult:
        self._blobs[(bucket, key)] = bytes(data)
        return BlobResult(success=True)

    def get(self, bucket: str, key: str) -> BlobResult:
        if (bucket, key) not in self._blobs:
            return BlobResult(success=False, error=f"{bucket}/{key} not found")
        return BlobResult(success=True, data=self._blobs[(bucket, key)])

    def delete(self, bucket: str, key: str) -> BlobResult:
        if self._blobs.pop((bucket, key), None) is None:
            return BlobResult(success=False, error=f"{bucket}/{key} not found")
        return BlobResult(success=True)

    def keys(self, bucket: str) -> List[str]:
        return sorted(k for b, k in self._blobs if b == bucket)
