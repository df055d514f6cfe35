"""Structural Differ Service.

This service compares the record trees of one matched pair and produces the
field-level deltas between them.

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Trees are walked with an explicit work stack, so deeply nested
      registries cannot exhaust the interpreter's recursion limit
    - Output order is the pre-order a recursive walk would produce; every
      delta also carries that order as its position
    - Read-only over its inputs; safe to run concurrently on distinct pairs
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Hashable, List, Optional, Sequence, Tuple, Union

from diffmig.domain.diff_models import (
    AmbiguousMatch,
    Delta,
    DeltaKind,
    MatchedPair,
    MISSING,
    Position,
    RecordRef,
)
from diffmig.domain.records import Record, values_equal
from diffmig.domain.services.matcher import match_keys

logger = logging.getLogger(__name__)

Path = Tuple[RecordRef, ...]
Entry = Tuple[int, Record]


@dataclass(frozen=True)
class PairDiff:
    """Deltas and warnings produced for one matched pair."""

    index: int
    deltas: List[Delta] = field(default_factory=list)
    warnings: List[AmbiguousMatch] = field(default_factory=list)


@dataclass(frozen=True)
class _Compare:
    old: Record
    new: Record
    path: Path
    position: Position
    new_index: Optional[int]


@dataclass(frozen=True)
class _Emit:
    delta: Delta


class StructuralDiffer:
    """Service for computing field-level deltas between two record trees.

    Children are matched by id, except variants which are matched by their
    parent-scoped variant_key. A variant whose key is missing or duplicated
    within its parent is never guessed: it is reported as added/removed and
    an AmbiguousMatch warning is recorded.
    """

    def __init__(self, trace: bool = False):
        """Initialize structural differ.

        Parameters:
            trace: Log every delta at DEBUG level as it is produced
        """
        self.trace = trace

    def diff_pair(self, pair: MatchedPair) -> PairDiff:
        """Compare both sides of a matched pair.

        Parameters:
            pair: Matched pair with both old and new records present

        Returns:
            PairDiff with the ordered deltas and any ambiguity warnings

        Raises:
            ValueError: If either side of the pair is absent
        """
        if not pair.is_matched:
            raise ValueError(f"Cannot structurally diff unmatched record '{pair.record_id}'")

        deltas: List[Delta] = []
        warnings: List[AmbiguousMatch] = []
        stack: List[Union[_Compare, _Emit]] = [
            _Compare(pair.old, pair.new, (RecordRef.of(pair.old),), pair.position(), pair.new_position)
        ]

        while stack:
            item = stack.pop()
            if isinstance(item, _Emit):
                deltas.append(item.delta)
                continue

            old, new, path = item.old, item.new, item.path

            if old.kind != new.kind:
                # Subtrees of different kinds are not comparable
                deltas.append(Delta(
                    kind=DeltaKind.FIELD_CHANGED,
                    record_id=pair.record_id,
                    path=path,
                    field_name="kind",
                    old_value=old.kind.value,
                    new_value=new.kind.value,
                    old_record=old,
                    new_record=new,
                    position=item.position,
                    new_index=item.new_index,
                ))
                continue

            deltas.extend(self._diff_fields(pair.record_id, old, new, path, item.position))

            pending: List[Union[_Compare, _Emit]] = []
            for _, old_entry, new_entry in self._match_children(old, new, path, warnings):
                if old_entry is None:
                    new_index, new_child = new_entry
                    pending.append(_Emit(Delta(
                        kind=DeltaKind.CHILD_ADDED,
                        record_id=pair.record_id,
                        path=path + (RecordRef.of(new_child),),
                        new_record=new_child,
                        position=item.position + ((1, new_index),),
                    )))
                elif new_entry is None:
                    old_index, old_child = old_entry
                    pending.append(_Emit(Delta(
                        kind=DeltaKind.CHILD_REMOVED,
                        record_id=pair.record_id,
                        path=path + (RecordRef.of(old_child),),
                        old_record=old_child,
                        position=item.position + ((0, old_index),),
                    )))
                else:
                    (old_index, old_child), (new_index, new_child) = old_entry, new_entry
                    pending.append(_Compare(
                        old_child,
                        new_child,
                        path + (RecordRef.of(old_child),),
                        item.position + ((0, old_index),),
                        new_index,
                    ))
            stack.extend(reversed(pending))

        if self.trace:
            for delta in deltas:
                logger.debug(f"{pair.record_id}: {delta.kind.value} at {' / '.join(r.label() for r in delta.path)}")

        return PairDiff(index=pair.index, deltas=deltas, warnings=warnings)

    def _diff_fields(
        self,
        record_id: str,
        old: Record,
        new: Record,
        path: Path,
        position: Position
    ) -> List[Delta]:
        """Compare scalar fields; a field absent on one side is MISSING, not None."""
        names = list(old.fields) + [name for name in new.fields if name not in old.fields]
        changes = []
        for field_index, name in enumerate(names):
            old_value = old.fields.get(name, MISSING)
            new_value = new.fields.get(name, MISSING)
            if not values_equal(old_value, new_value):
                changes.append(Delta(
                    kind=DeltaKind.FIELD_CHANGED,
                    record_id=record_id,
                    path=path,
                    field_name=name,
                    old_value=old_value,
                    new_value=new_value,
                    position=position + ((-1, field_index),),
                ))
        return changes

    def _match_children(
        self,
        old: Record,
        new: Record,
        path: Path,
        warnings: List[AmbiguousMatch]
    ) -> List[Tuple[Hashable, Optional[Entry], Optional[Entry]]]:
        """Pair children of two matched records using the matcher's ordering policy.

        Each side of a pair is (position among siblings, child).
        """
        old_keys = Counter(c.variant_key for c in old.children if c.is_variant and c.variant_key)
        new_keys = Counter(c.variant_key for c in new.children if c.is_variant and c.variant_key)
        ambiguous = {k for k, n in old_keys.items() if n > 1} | {k for k, n in new_keys.items() if n > 1}

        for key in sorted(ambiguous):
            old_ids = [c.id for c in old.children if c.is_variant and c.variant_key == key]
            new_ids = [c.id for c in new.children if c.is_variant and c.variant_key == key]
            sides = [s for s, n in (("old", old_keys[key]), ("new", new_keys[key])) if n > 1]
            warnings.append(self._warn(old.id, path, key, " and ".join(sides), old_ids + new_ids))

        old_entries = self._child_entries(old, path, "old", ambiguous, warnings)
        new_entries = self._child_entries(new, path, "new", ambiguous, warnings)
        return match_keys(old_entries, new_entries)

    def _child_entries(
        self,
        parent: Record,
        path: Path,
        side: str,
        ambiguous: set,
        warnings: List[AmbiguousMatch]
    ) -> List[Tuple[Hashable, Entry]]:
        entries: List[Tuple[Hashable, Entry]] = []
        seen_ids = set()
        missing_key: List[str] = []

        for position, child in enumerate(parent.children):
            if child.is_variant:
                if not child.variant_key:
                    missing_key.append(child.id)
                    key = ("unmatched", side, position)
                elif child.variant_key in ambiguous:
                    key = ("unmatched", side, position)
                else:
                    key = ("variant", child.variant_key)
            elif child.id in seen_ids:
                logger.warning(f"Duplicate child id '{child.id}' under '{parent.id}' ({side}); treating as unmatched")
                key = ("unmatched", side, position)
            else:
                seen_ids.add(child.id)
                key = ("id", child.id)
            entries.append((key, (position, child)))

        if missing_key:
            warnings.append(self._warn(parent.id, path, None, side, missing_key))
        return entries

    def _warn(
        self,
        parent_id: str,
        path: Path,
        key: Optional[str],
        side: str,
        record_ids: Sequence[str]
    ) -> AmbiguousMatch:
        warning = AmbiguousMatch(
            parent_id=parent_id,
            variant_key=key,
            side=side,
            record_ids=tuple(record_ids),
            parent_path=path,
        )
        logger.debug(warning.message())
        return warning
