"""Report Assembler Service.

This service aggregates matcher pairs and differ output into a single,
ordered, de-duplicated DiffReport, and renders that report as text.

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Report order is always matcher order, whatever order pair diffs
      arrive in (parallel workers complete out of order)
"""

import json
import logging
from typing import Any, Dict, Iterable, List

from diffmig.domain.diff_models import (
    AmbiguousMatch,
    Delta,
    DeltaKind,
    DiffReport,
    MatchedPair,
    MISSING,
    RecordRef,
    ReportSummary,
)
from diffmig.domain.services.structural_differ import PairDiff

logger = logging.getLogger(__name__)


class ReportAssembler:
    """Service building DiffReports from matched pairs and their deltas."""

    def assemble(self, pairs: List[MatchedPair], pair_diffs: Iterable[PairDiff]) -> DiffReport:
        """Assemble a diff report.

        Parameters:
            pairs: Matched pairs from the RecordMatcher
            pair_diffs: Differ output for every pair with both sides present,
                        in any order

        Returns:
            DiffReport grouped by RecordId in matcher order

        Raises:
            ValueError: If a matched pair has no differ output
        """
        diffs_by_index: Dict[int, PairDiff] = {d.index: d for d in pair_diffs}

        deltas: List[Delta] = []
        warnings: List[AmbiguousMatch] = []
        seen = set()

        def add(delta: Delta) -> None:
            key = delta.identity()
            if key in seen:
                logger.debug(f"Dropping duplicate delta for '{delta.record_id}'")
                return
            seen.add(key)
            deltas.append(delta)

        for pair in sorted(pairs, key=lambda p: p.index):
            if pair.is_removed:
                add(Delta(
                    kind=DeltaKind.REMOVED,
                    record_id=pair.record_id,
                    path=(RecordRef.of(pair.old),),
                    old_record=pair.old,
                    position=pair.position(),
                ))
            elif pair.is_added:
                add(Delta(
                    kind=DeltaKind.ADDED,
                    record_id=pair.record_id,
                    path=(RecordRef.of(pair.new),),
                    new_record=pair.new,
                    position=pair.position(),
                ))
            else:
                pair_diff = diffs_by_index.get(pair.index)
                if pair_diff is None:
                    raise ValueError(f"No structural diff for matched record '{pair.record_id}'")
                for delta in pair_diff.deltas:
                    add(delta)
                for warning in pair_diff.warnings:
                    if warning not in warnings:
                        warnings.append(warning)

        total_compared = sum(1 for p in pairs if p.is_matched)
        summary = ReportSummary.from_deltas(deltas, total_compared=total_compared)

        logger.debug(
            f"Assembled report: {summary.total_differences} differences across "
            f"{len({d.record_id for d in deltas})} records ({total_compared} compared)"
        )
        return DiffReport(deltas=tuple(deltas), summary=summary, warnings=tuple(warnings))


def format_value(value: Any) -> str:
    """Render a field value unambiguously (strings quoted, MISSING marked)."""
    if value is MISSING:
        return "<missing>"
    if isinstance(value, tuple):
        value = list(value)
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(value)


def _location(delta: Delta) -> str:
    return " / ".join(ref.label() for ref in delta.path[1:])


def render_delta_line(delta: Delta) -> str:
    """Render one delta of a changed record as an indented line."""
    location = _location(delta)
    if delta.kind == DeltaKind.FIELD_CHANGED:
        where = f"{location} " if location else ""
        return (
            f"    ~ {where}field '{delta.field_name}': "
            f"{format_value(delta.old_value)} -> {format_value(delta.new_value)}"
        )
    if delta.kind == DeltaKind.CHILD_ADDED:
        return f"    + {location}"
    if delta.kind == DeltaKind.CHILD_REMOVED:
        return f"    - {location}"
    return f"    ? {delta.kind.value} {location}"


def render_summary_line(summary: ReportSummary) -> str:
    return (
        f"Found {summary.total_differences} differences "
        f"(added={summary.added}, removed={summary.removed}, "
        f"fields_changed={summary.fields_changed}, "
        f"children_added={summary.children_added}, "
        f"children_removed={summary.children_removed}, "
        f"total_compared={summary.total_compared})"
    )


def render_report_text(report: DiffReport) -> str:
    """Render a report as deterministic text.

    One block per RecordId with deltas: ``+`` for an added record, ``-`` for
    a removed record, ``~`` for a changed record followed by one indented
    line per delta. The last line is the summary.

    Parameters:
        report: Report to render

    Returns:
        Rendered text, newline-terminated
    """
    lines: List[str] = []
    for record_id, deltas in report.grouped():
        first = deltas[0]
        if first.kind == DeltaKind.ADDED:
            lines.append(f"+ {record_id} ({first.target.kind.value})")
        elif first.kind == DeltaKind.REMOVED:
            lines.append(f"- {record_id} ({first.target.kind.value})")
        else:
            lines.append(f"~ {record_id}")
            lines.extend(render_delta_line(d) for d in deltas)

    if lines:
        lines.append("")
    lines.append(render_summary_line(report.summary))
    return "\n".join(lines) + "\n"
