"""Canonical Record Models.

This module defines the canonical tree model every registry snapshot is
loaded into before comparison. Loaders translate their on-disk formats into
these models; the diff engine only ever sees `Record` and `RecordSet`.

Security Impact:
    - Field values may contain patient data; models never log their contents
    - Records are frozen after construction so a loaded snapshot cannot be
      mutated by the diff engine

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Validated at construction time via Pydantic V2
    - Follows Hexagonal Architecture: Domain Core is isolated from Adapters
"""

import math
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Primitive values a record field may hold. Multi-valued "range" values are
# canonicalized by loaders into a sorted tuple of strings.
FieldValue = Union[bool, int, float, str, None, Tuple[str, ...]]


class RecordKind(str, Enum):
    """Entity type of a registry record."""
    FORM = "form"
    SECTION = "section"
    CLINICAL_DATUM = "clinical_datum"
    VARIANT = "variant"
    OTHER = "other"


class Record(BaseModel):
    """One registry entity and the entities it owns.

    A record tree is a strict forest: every child is owned by exactly one
    parent and there are no cycles.

    Parameters:
        kind: Entity type
        id: RecordId, unique within one snapshot
        fields: Ordered scalar fields (name -> primitive value)
        children: Ordered owned child records
        variant_key: Secondary matching key for variants, scoped to the parent
    """

    kind: RecordKind = Field(..., description="Entity type")
    id: str = Field(..., min_length=1, description="RecordId")
    fields: Dict[str, FieldValue] = Field(default_factory=dict, description="Scalar fields")
    children: Tuple["Record", ...] = Field(default_factory=tuple, description="Owned child records")
    variant_key: Optional[str] = Field(None, description="Parent-scoped variant key")

    model_config = ConfigDict(frozen=True)

    @property
    def is_variant(self) -> bool:
        return self.kind == RecordKind.VARIANT

    def child(self, record_id: str) -> Optional["Record"]:
        """Return the direct child with the given id, if any."""
        for child in self.children:
            if child.id == record_id:
                return child
        return None

    def walk(self) -> Iterator["Record"]:
        """Yield this record and every descendant in pre-order."""
        stack: List[Record] = [self]
        while stack:
            record = stack.pop()
            yield record
            stack.extend(reversed(record.children))


Record.model_rebuild()


class RecordSet:
    """Immutable mapping from RecordId to top-level Record.

    Iteration order is the order records were supplied in, which the matcher
    relies on for deterministic report ordering.

    Example:
        ```python
        records = RecordSet.from_records([c1, c2])
        records.get("patient:1")
        ```
    """

    __slots__ = ("_records",)

    def __init__(self, records: Optional[Mapping[str, Record]] = None):
        """Initialize a record set.

        Parameters:
            records: Mapping of RecordId to Record

        Raises:
            ValueError: If an identifier is empty or does not match its record
        """
        items: Dict[str, Record] = {}
        for record_id, record in (records or {}).items():
            if not record_id:
                raise ValueError("RecordSet identifiers must be non-empty")
            if record.id != record_id:
                raise ValueError(
                    f"RecordSet key '{record_id}' does not match record id '{record.id}'"
                )
            items[record_id] = record
        self._records = items

    @classmethod
    def from_records(cls, records: List[Record]) -> "RecordSet":
        """Build a record set from records, keyed by their own ids.

        Raises:
            ValueError: If two records share an id
        """
        mapping: Dict[str, Record] = {}
        for record in records:
            if record.id in mapping:
                raise ValueError(f"Duplicate RecordId in snapshot: {record.id}")
            mapping[record.id] = record
        return cls(mapping)

    def get(self, record_id: str) -> Optional[Record]:
        return self._records.get(record_id)

    def ids(self) -> List[str]:
        return list(self._records)

    def records(self) -> List[Record]:
        return list(self._records.values())

    def items(self):
        return self._records.items()

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecordSet):
            return NotImplemented
        return list(self._records.items()) == list(other._records.items())

    def __repr__(self) -> str:
        return f"RecordSet({len(self._records)} records)"


def values_equal(old: Any, new: Any) -> bool:
    """Compare two field values strictly.

    No coercion happens across types: ``"5"`` differs from ``5``, ``True``
    differs from ``1`` and ``5`` differs from ``5.0``. Numbers must match
    exactly; two NaN floats are considered equal.

    Parameters:
        old: Old value (may be the MISSING sentinel)
        new: New value (may be the MISSING sentinel)

    Returns:
        True if values are equal, False otherwise
    """
    if type(old) is not type(new):
        return False

    if isinstance(old, float):
        if math.isnan(old) and math.isnan(new):
            return True
        return old == new

    if isinstance(old, tuple):
        if len(old) != len(new):
            return False
        return all(values_equal(a, b) for a, b in zip(old, new))

    return old == new
