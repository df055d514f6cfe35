"""Difference Models.

This module defines the models produced by the diff engine: matched pairs
from the matcher, the delta taxonomy emitted by the structural differ, and
the report built by the report assembler.

Security Impact:
    - Deltas carry old/new field values which may contain patient data
    - Reports are immutable once assembled

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Models are validated before use
    - Follows Hexagonal Architecture: Domain Core is isolated from Adapters
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from diffmig.domain.records import Record, RecordKind


class _Missing:
    """Marker for a field absent on one side of a comparison."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<missing>"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_Missing, ())


MISSING = _Missing()

# Sort key locating a delta in report order. One (segment, index) step per
# level of the record tree: segment 0 orders records by their old-side
# position, segment 1 orders new-only records by their new-side position,
# and segment -1 orders field changes (by field position) before children.
Position = Tuple[Tuple[int, int], ...]


class RecordRef(BaseModel):
    """Reference to one node of a record tree (used in delta attribution)."""

    kind: RecordKind
    id: str
    variant_key: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, record: Record) -> "RecordRef":
        return cls(kind=record.kind, id=record.id, variant_key=record.variant_key)

    def label(self) -> str:
        """Human-readable label, including the composite key for variants."""
        if self.kind == RecordKind.VARIANT and self.variant_key is not None:
            return f"{self.kind.value}[{self.variant_key}]:{self.id}"
        return f"{self.kind.value}:{self.id}"


class MatchedPair(BaseModel):
    """Old and new records sharing one identifier.

    Parameters:
        record_id: Identifier both sides are matched on
        old: Record from the old snapshot (None if absent)
        new: Record from the new snapshot (None if absent)
        index: Position in matcher order
        old_position: Position of the old record in its snapshot
        new_position: Position of the new record in its snapshot
    """

    record_id: str
    old: Optional[Record] = None
    new: Optional[Record] = None
    index: int = 0
    old_position: Optional[int] = None
    new_position: Optional[int] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_one_side_present(self) -> "MatchedPair":
        if self.old is None and self.new is None:
            raise ValueError(f"MatchedPair '{self.record_id}' has neither old nor new record")
        return self

    @property
    def is_added(self) -> bool:
        return self.old is None

    @property
    def is_removed(self) -> bool:
        return self.new is None

    @property
    def is_matched(self) -> bool:
        return self.old is not None and self.new is not None

    def position(self) -> Position:
        """Report position of the pair: old records first, then new-only records."""
        if self.old is not None:
            return ((0, self.old_position or 0),)
        return ((1, self.new_position or 0),)


class DeltaKind(str, Enum):
    """Classification of one atomic difference."""
    ADDED = "added"
    REMOVED = "removed"
    FIELD_CHANGED = "field_changed"
    CHILD_ADDED = "child_added"
    CHILD_REMOVED = "child_removed"


class Delta(BaseModel):
    """One atomic difference between corresponding records.

    Every delta is attributed to the top-level RecordId it is grouped under
    and carries the full path down to the record it describes, so the owning
    clinical datum of a variant is always recoverable.

    Parameters:
        kind: Delta classification
        record_id: Top-level RecordId the delta is grouped under
        path: References from the top-level record to the described record
        field_name: Changed field (field_changed only)
        old_value: Previous value, or MISSING (field_changed only)
        new_value: New value, or MISSING (field_changed only)
        old_record: Removed record, or the old side of a kind change
        new_record: Added record, or the new side of a kind change
        position: Report order key (not part of the delta's identity)
        new_index: New-side position of the described record among its
                   siblings (kind changes only)
    """

    kind: DeltaKind
    record_id: str
    path: Tuple[RecordRef, ...]
    field_name: Optional[str] = None
    old_value: Any = None
    new_value: Any = None
    old_record: Optional[Record] = None
    new_record: Optional[Record] = None
    position: Position = ()
    new_index: Optional[int] = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def target(self) -> RecordRef:
        """Reference to the record this delta describes."""
        return self.path[-1]

    @property
    def is_kind_change(self) -> bool:
        return self.kind == DeltaKind.FIELD_CHANGED and self.field_name == "kind"

    def identity(self) -> Tuple:
        """Hashable key identifying this delta, used for de-duplication."""
        return (
            self.kind.value,
            self.record_id,
            tuple((ref.kind.value, ref.id, ref.variant_key) for ref in self.path),
            self.field_name,
            repr(self.old_value),
            repr(self.new_value),
        )

    def reversed(self) -> "Delta":
        """Return the delta describing the same difference in the opposite direction."""
        flipped = {
            DeltaKind.ADDED: DeltaKind.REMOVED,
            DeltaKind.REMOVED: DeltaKind.ADDED,
            DeltaKind.CHILD_ADDED: DeltaKind.CHILD_REMOVED,
            DeltaKind.CHILD_REMOVED: DeltaKind.CHILD_ADDED,
            DeltaKind.FIELD_CHANGED: DeltaKind.FIELD_CHANGED,
        }[self.kind]
        return self.model_copy(update={
            "kind": flipped,
            "old_value": self.new_value,
            "new_value": self.old_value,
            "old_record": self.new_record,
            "new_record": self.old_record,
        })

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary.

        Missing field values are omitted rather than written as null, since
        null is a legitimate field value.
        """
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "record_id": self.record_id,
            "path": [ref.model_dump(mode="json") for ref in self.path],
        }
        if self.kind == DeltaKind.FIELD_CHANGED:
            data["field_name"] = self.field_name
            if self.old_value is not MISSING:
                data["old_value"] = _jsonable(self.old_value)
            if self.new_value is not MISSING:
                data["new_value"] = _jsonable(self.new_value)
        if self.old_record is not None and not self.is_kind_change:
            data["old_record"] = self.old_record.model_dump(mode="json")
        if self.new_record is not None and not self.is_kind_change:
            data["new_record"] = self.new_record.model_dump(mode="json")
        return data


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return list(value)
    return value


class AmbiguousMatch(BaseModel):
    """Non-fatal warning: a variant could not be matched by its key.

    Raised never; recorded on the report and surfaced in debug output.

    Parameters:
        parent_id: RecordId of the owning record
        variant_key: The missing (None) or duplicated key
        side: Which snapshot(s) the ambiguity was found in
        record_ids: Variant ids treated as unmatched
        parent_path: References from the top-level record to the owning record
    """

    parent_id: str
    variant_key: Optional[str]
    side: str
    record_ids: Tuple[str, ...]
    parent_path: Tuple[RecordRef, ...] = ()

    model_config = ConfigDict(frozen=True)

    def message(self) -> str:
        if self.variant_key is None:
            reason = "missing variant_key"
        else:
            reason = f"duplicate variant_key '{self.variant_key}'"
        return (
            f"Ambiguous variant match under '{self.parent_id}' ({self.side}): {reason}; "
            f"treating {', '.join(self.record_ids)} as unmatched"
        )


class ReportSummary(BaseModel):
    """Summary counts for a diff report.

    Parameters:
        added: Top-level records only present in the new snapshot
        removed: Top-level records only present in the old snapshot
        fields_changed: Field-level changes
        children_added: Child records only present in the new snapshot
        children_removed: Child records only present in the old snapshot
        total_compared: Matched top-level pairs that were compared
    """

    added: int = Field(0, description="Added records")
    removed: int = Field(0, description="Removed records")
    fields_changed: int = Field(0, description="Changed fields")
    children_added: int = Field(0, description="Added child records")
    children_removed: int = Field(0, description="Removed child records")
    total_compared: int = Field(0, description="Matched pairs compared")

    model_config = ConfigDict(frozen=True)

    @property
    def total_differences(self) -> int:
        return (
            self.added
            + self.removed
            + self.fields_changed
            + self.children_added
            + self.children_removed
        )

    @classmethod
    def from_deltas(cls, deltas: List[Delta], total_compared: int = 0) -> "ReportSummary":
        counts = {kind: 0 for kind in DeltaKind}
        for delta in deltas:
            counts[delta.kind] += 1
        return cls(
            added=counts[DeltaKind.ADDED],
            removed=counts[DeltaKind.REMOVED],
            fields_changed=counts[DeltaKind.FIELD_CHANGED],
            children_added=counts[DeltaKind.CHILD_ADDED],
            children_removed=counts[DeltaKind.CHILD_REMOVED],
            total_compared=total_compared,
        )


class DiffReport(BaseModel):
    """Complete, ordered result of one diff run.

    Parameters:
        deltas: All deltas, grouped by RecordId in matcher order
        summary: Summary counts
        warnings: Non-fatal ambiguous-match warnings
    """

    deltas: Tuple[Delta, ...] = Field(default_factory=tuple)
    summary: ReportSummary = Field(default_factory=ReportSummary)
    warnings: Tuple[AmbiguousMatch, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)

    @property
    def is_empty(self) -> bool:
        return not self.deltas

    def record_ids(self) -> List[str]:
        """RecordIds with at least one delta, in report order."""
        seen: Dict[str, None] = {}
        for delta in self.deltas:
            seen.setdefault(delta.record_id, None)
        return list(seen)

    def grouped(self) -> List[Tuple[str, List[Delta]]]:
        """Deltas grouped by RecordId, in report order."""
        groups: Dict[str, List[Delta]] = {}
        for delta in self.deltas:
            groups.setdefault(delta.record_id, []).append(delta)
        return list(groups.items())

    def to_dict(self) -> Dict[str, Any]:
        summary = self.summary.model_dump()
        summary["total_differences"] = self.summary.total_differences
        return {
            "summary": summary,
            "records": [
                {"record_id": record_id, "deltas": [d.to_dict() for d in deltas]}
                for record_id, deltas in self.grouped()
            ],
            "warnings": [w.message() for w in self.warnings],
        }
