"""Scope Filter Service.

Restricts a comparison to a subset of the registry. The same scope predicate
is applied either to record sets before matching or to a finished report;
both routes report the same deltas.

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Scope is decided from the kinds along a record's path from its
      top-level record: clinical_datum records pass through, a variant admits
      its whole subtree, anything else leaves the scope
"""

import logging
from enum import Enum
from typing import List, Optional, Sequence

from diffmig.domain.diff_models import Delta, DeltaKind, DiffReport, RecordRef, ReportSummary
from diffmig.domain.ports import ScopeError
from diffmig.domain.records import Record, RecordKind, RecordSet

logger = logging.getLogger(__name__)


class Scope(str, Enum):
    """Comparison scope selector."""
    ALL = "all"
    CLINICAL_DATUM_VARIANTS_ONLY = "clinical_datum_variants_only"


def parse_scope(value) -> Scope:
    """Parse a scope selector.

    Parameters:
        value: Scope instance or selector string

    Returns:
        Scope: The parsed scope

    Raises:
        ScopeError: If the selector is not recognized
    """
    if isinstance(value, Scope):
        return value
    try:
        return Scope(str(value).strip().lower())
    except ValueError:
        supported = ", ".join(s.value for s in Scope)
        raise ScopeError(f"Unrecognized scope selector: '{value}'. Supported: {supported}", scope=str(value))


def kinds_in_scope(kinds: Sequence[RecordKind], scope: Scope) -> bool:
    """Check whether a record reached through ``kinds`` (top-level first) is in scope."""
    if scope == Scope.ALL:
        return True
    for kind in kinds:
        if kind == RecordKind.VARIANT:
            return True
        if kind != RecordKind.CLINICAL_DATUM:
            return False
    return True


def _admits_subtree(kinds: Sequence[RecordKind]) -> bool:
    return RecordKind.VARIANT in kinds


def prune_record(record: Record, ancestor_kinds: Sequence[RecordKind], scope: Scope) -> Optional[Record]:
    """Return the in-scope part of a record subtree.

    Parameters:
        record: Record to prune
        ancestor_kinds: Kinds of the record's ancestors, top-level first
        scope: Active scope

    Returns:
        The record with out-of-scope descendants removed, or None if the
        record itself is out of scope
    """
    kinds = list(ancestor_kinds) + [record.kind]
    if not kinds_in_scope(kinds, scope):
        return None
    if scope == Scope.ALL or _admits_subtree(kinds):
        return record

    children = []
    for child in record.children:
        pruned = prune_record(child, kinds, scope)
        if pruned is not None:
            children.append(pruned)
    if len(children) == len(record.children):
        return record
    return record.model_copy(update={"children": tuple(children)})


def filter_record_set(records: RecordSet, scope: Scope) -> RecordSet:
    """Restrict a record set to the given scope before matching."""
    if scope == Scope.ALL:
        return records

    kept = {}
    for record_id, record in records.items():
        pruned = prune_record(record, [], scope)
        if pruned is not None:
            kept[record_id] = pruned

    logger.debug(f"Scope '{scope.value}' kept {len(kept)} of {len(records)} top-level records")
    return RecordSet(kept)


def filter_report(report: DiffReport, scope: Scope) -> DiffReport:
    """Restrict a finished report to the given scope.

    Records carried by added/removed deltas are pruned the same way
    load-time filtering prunes them. A kind change that crosses the scope
    boundary becomes the removal or addition load-time filtering would have
    reported, and an addition moves to where the matcher places new-only
    records. Deltas are then put back in report order by position, and
    ambiguity warnings under out-of-scope parents are dropped.

    Parameters:
        report: Report computed without scope restriction
        scope: Active scope

    Returns:
        DiffReport with only in-scope deltas and recomputed counts
    """
    if scope == Scope.ALL:
        return report

    kept: List[Delta] = []
    for delta in report.deltas:
        filtered = _filter_delta(delta, scope)
        if filtered is not None:
            kept.append(filtered)
    kept.sort(key=lambda d: d.position)

    warnings = tuple(
        w for w in report.warnings
        if kinds_in_scope([ref.kind for ref in w.parent_path], scope)
    )

    return DiffReport(
        deltas=tuple(kept),
        summary=ReportSummary.from_deltas(kept, total_compared=report.summary.total_compared),
        warnings=warnings,
    )


def _filter_delta(delta: Delta, scope: Scope) -> Optional[Delta]:
    kinds = [ref.kind for ref in delta.path]
    ancestors = kinds[:-1]
    top_level = len(delta.path) == 1

    if delta.is_kind_change:
        old_in = kinds_in_scope(ancestors + [RecordKind(delta.old_value)], scope)
        new_in = kinds_in_scope(ancestors + [RecordKind(delta.new_value)], scope)
        if old_in and new_in:
            return delta
        if old_in:
            return Delta(
                kind=DeltaKind.REMOVED if top_level else DeltaKind.CHILD_REMOVED,
                record_id=delta.record_id,
                path=delta.path,
                old_record=prune_record(delta.old_record, ancestors, scope),
                position=delta.position,
            )
        if new_in:
            return Delta(
                kind=DeltaKind.ADDED if top_level else DeltaKind.CHILD_ADDED,
                record_id=delta.record_id,
                path=delta.path[:-1] + (RecordRef.of(delta.new_record),),
                new_record=prune_record(delta.new_record, ancestors, scope),
                position=delta.position[:-1] + ((1, delta.new_index or 0),),
            )
        return None

    if not kinds_in_scope(kinds, scope):
        return None

    update = {}
    if delta.old_record is not None:
        update["old_record"] = prune_record(delta.old_record, ancestors, scope)
    if delta.new_record is not None:
        update["new_record"] = prune_record(delta.new_record, ancestors, scope)
    return delta.model_copy(update=update) if update else delta
