"""
Mapping Session
Per-user state for the click-to-map screen: which upload is being mapped,
its source headers, and the target -> source rules chosen so far.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from . import target_schema as schema
from .models import MappingDefinition


class SessionStatus(Enum):
    """Mapping session status"""
    CREATED = 'created'
    UPLOADED = 'uploaded'
    MAPPING = 'mapping'
    SAVED = 'saved'
    GENERATED = 'generated'


class MappingSession:
    """Holds the current file and mapping for one user"""

    def __init__(self, session_id: str = None):
        """
        Initialize a new mapping session

        Args:
            session_id: Caller-supplied id (generated from the clock if omitted)
        """
        self.session_id = session_id or datetime.now().strftime('MAP_%Y%m%d_%H%M%S')
        self.status = SessionStatus.CREATED
        self.file_id: Optional[str] = None
        self.original_name: Optional[str] = None
        self.source_headers: List[str] = []
        self.rules: Dict[str, str] = {}
        self.mapping_id: Optional[str] = None
        self.generated_file: Optional[str] = None

    def attach_upload(self, file_id: str, original_name: str, headers: List[str]):
        """
        Start mapping a new upload; previous rules are discarded

        Args:
            file_id: Stored upload key
            original_name: Filename as uploaded
            headers: Source column headers
        """
        self.file_id = file_id
        self.original_name = original_name
        self.source_headers = list(headers)
        self.rules = {}
        self.mapping_id = None
        self.generated_file = None
        self.status = SessionStatus.UPLOADED

    def map_field(self, target_field: str, source_field: str):
        """
        Map a target field to a source column

        A source column can feed only one target; mapping it again moves it.

        Raises:
            ValueError: Unknown target field or source column
        """
        if target_field not in schema.MAPPABLE_FIELDS:
            raise ValueError(f"Unknown target field: {target_field}")
        if source_field not in self.source_headers:
            raise ValueError(f"Unknown source column: {source_field}")

        for target, source in list(self.rules.items()):
            if source == source_field:
                del self.rules[target]
        self.rules[target_field] = source_field
        self.status = SessionStatus.MAPPING

    def unmap_field(self, target_field: str) -> bool:
        """Remove the rule for a target field; False if it was not mapped"""
        removed = self.rules.pop(target_field, None) is not None
        if not self.rules and self.status == SessionStatus.MAPPING:
            self.status = SessionStatus.UPLOADED
        return removed

    def clear(self):
        """Drop every rule (generation then uses the heuristic mapping)"""
        self.rules = {}
        if self.status == SessionStatus.MAPPING:
            self.status = SessionStatus.UPLOADED

    def unmapped_sources(self) -> List[str]:
        """Source columns not yet used by any rule"""
        used = set(self.rules.values())
        return [h for h in self.source_headers if h not in used]

    def to_mapping(self, name: str) -> MappingDefinition:
        """Snapshot the rules as a named mapping definition"""
        return MappingDefinition(
            name=name,
            rules=dict(self.rules),
            source_fields=list(self.source_headers),
            target_fields=list(schema.MAPPABLE_FIELDS),
        )

    def mark_saved(self, mapping_id: str):
        self.mapping_id = mapping_id
        self.status = SessionStatus.SAVED

    def mark_generated(self, file_name: str):
        self.generated_file = file_name
        self.status = SessionStatus.GENERATED

    def to_dict(self) -> Dict:
        """Convert session to dictionary"""
        return {
            'session_id': self.session_id,
            'status': self.status.value,
            'file_id': self.file_id,
            'original_name': self.original_name,
            'source_headers': self.source_headers,
            'rules': dict(self.rules),
            'mapping_id': self.mapping_id,
            'generated_file': self.generated_file,
        }
