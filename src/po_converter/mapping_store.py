"""
Mapping repository: named mapping definitions stored as JSON blobs.
"""

from __future__ import annotations

import json
from typing import Optional

from . import po_config as cfg
from .blob_store import BlobStore
from .exceptions import StorageError
from .models import MappingDefinition
from .po_logger import get_logger


class MappingStore:
    """Save and load MappingDefinitions in the mappings bucket."""

    def __init__(self, blob_store: BlobStore, bucket: Optional[str] = None) -> None:
        self.blob_store = blob_store
        self.bucket = bucket or cfg.MAPPINGS_BUCKET
        self.logger = get_logger()

    @staticmethod
    def key_for(name: str) -> str:
        return f"{name}.json"

    def save(self, definition: MappingDefinition) -> str:
        """Persist *definition*; returns its name (the mapping id)."""
        if not definition.name:
            raise StorageError("Mapping name is required")
        payload = json.dumps(definition.to_dict(), ensure_ascii=False, indent=2)
        result = self.blob_store.put(
            self.bucket, self.key_for(definition.name), payload.encode("utf-8")
        )
        if not result.success:
            raise StorageError(f"Saving mapping '{definition.name}' failed: {result.error}")
        self.logger.info(
            f"Saved mapping '{definition.name}' ({len(definition.rules)} rule(s))",
            component="Mapping",
        )
        return definition.name

    def load(self, name: str) -> Optional[MappingDefinition]:
        """The stored definition, or None if there is none."""
        if not name:
            return None
        result = self.blob_store.get(self.bucket, self.key_for(name))
        if not result.success:
            self.logger.info(f"Mapping '{name}' not found: {result.error}", component="Mapping")
            return None
        try:
            data = json.loads(result.data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StorageError(f"Mapping '{name}' is not valid JSON: {exc}") from exc
        return MappingDefinition.from_dict(data)
