"""
Mapping Engine
Transforms free-form source rows into purchase-order rows using either an
explicit target -> source mapping or the built-in candidate-name heuristic,
then attaches the derived amount.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from . import po_config as cfg
from . import target_schema as schema
from .coercion import compute_amount
from .exceptions import MappingGapError
from .models import MappingDefinition, Table
from .po_logger import get_logger

Record = Dict[str, Any]
MappingLike = Union[Mapping[str, str], MappingDefinition, None]


def mapping_rules(mapping: MappingLike) -> Dict[str, str]:
    """Plain target -> source dict from a mapping, a definition, or None."""
    if mapping is None:
        return {}
    if isinstance(mapping, MappingDefinition):
        return dict(mapping.rules)
    return dict(mapping)


class MappingEngine:
    """Apply mapping rules to every source row."""

    def __init__(
        self,
        candidates: Optional[Dict[str, List[str]]] = None,
        strict: Optional[bool] = None,
    ) -> None:
        self.candidates = candidates or schema.DEFAULT_CANDIDATES
        self.strict = cfg.STRICT_MAPPING if strict is None else strict
        self.logger = get_logger()

    def apply(
        self,
        source: Union[Table, List[Record]],
        mapping: MappingLike = None,
    ) -> List[Record]:
        """Transform rows; output has the same length and order as the input.

        Raises:
            MappingGapError: In strict mode, when a rule's source column is
                absent from a row.
        """
        rows = source.rows if isinstance(source, Table) else list(source)
        rules = mapping_rules(mapping)

        if not rules:
            return [self._with_amount(self._map_by_candidates(row)) for row in rows]

        return [
            self._with_amount(self._map_by_rules(row, rules, idx))
            for idx, row in enumerate(rows, start=1)
        ]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _map_by_rules(self, row: Record, rules: Dict[str, str], position: int) -> Record:
        out: Record = {}
        for target_field, source_field in rules.items():
            if not source_field:
                continue
            if source_field in row:
                out[target_field] = row[source_field]
            elif self.strict:
                raise MappingGapError(position, target_field, source_field)
            else:
                self.logger.debug(
                    f"Row {position}: '{source_field}' missing, '{target_field}' left empty",
                    component="Mapping",
                )
        return out

    def _map_by_candidates(self, row: Record) -> Record:
        out: Record = {}
        for target_field, names in self.candidates.items():
            for name in names:
                if name in row:
                    out[target_field] = row[name]
                    break
        return out

    @staticmethod
    def _with_amount(out: Record) -> Record:
        qty = out.get(schema.QUANTITY)
        price = out.get(schema.UNIT_PRICE)
        if qty and price:
            amount = compute_amount(qty, price)
            if amount is not None:
                out[schema.AMOUNT] = amount
        return out
