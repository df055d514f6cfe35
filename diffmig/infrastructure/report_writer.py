"""Diff Report Writer.

This module saves a DiffReport in machine-readable form: the full report
structure as JSON, or a flat one-row-per-delta table as CSV.

Security Impact:
    - Exports contain old/new field values and may contain patient data;
      output files should be handled like the snapshots themselves
"""

import json
import logging
from pathlib import Path
from typing import List

import pandas as pd

from diffmig.domain.diff_models import DeltaKind, DiffReport
from diffmig.domain.ports import Result
from diffmig.domain.services.report_assembler import format_value

logger = logging.getLogger(__name__)

DELTA_COLUMNS = [
    'record_id', 'delta_kind', 'path', 'target_kind', 'target_id',
    'variant_key', 'field_name', 'old_value', 'new_value',
]


def report_to_dataframe(report: DiffReport) -> pd.DataFrame:
    """Flatten a report into one row per delta.

    Field values are rendered with the same unambiguous formatting as the
    text report, so ``"5"`` and ``5`` stay distinguishable in the table.

    Parameters:
        report: Report to flatten

    Returns:
        DataFrame with DELTA_COLUMNS, in report order
    """
    if report.is_empty:
        return pd.DataFrame(columns=DELTA_COLUMNS)

    rows: List[dict] = []
    for delta in report.deltas:
        target = delta.target
        is_field_change = delta.kind == DeltaKind.FIELD_CHANGED
        rows.append({
            'record_id': delta.record_id,
            'delta_kind': delta.kind.value,
            'path': " / ".join(ref.label() for ref in delta.path),
            'target_kind': target.kind.value,
            'target_id': target.id,
            'variant_key': target.variant_key,
            'field_name': delta.field_name if is_field_change else None,
            'old_value': format_value(delta.old_value) if is_field_change else None,
            'new_value': format_value(delta.new_value) if is_field_change else None,
        })
    return pd.DataFrame(rows, columns=DELTA_COLUMNS)


def save_report(report: DiffReport, output_path: str) -> Result[str]:
    """Save a report to a file; the format follows the file extension.

    Parameters:
        report: Report to save
        output_path: Destination path (.json or .csv)

    Returns:
        Result[str]: Saved path, or error information
    """
    output_file = Path(output_path)
    suffix = output_file.suffix.lower()
    if suffix not in (".json", ".csv"):
        return Result.failure_result(
            ValueError(f"Unsupported report format '{suffix}'. Use .json or .csv"),
            error_type="ValueError"
        )

    try:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        if suffix == ".json":
            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump(report.to_dict(), f, indent=2, default=str)
        else:
            report_to_dataframe(report).to_csv(output_file, index=False)
    except OSError as e:
        return Result.failure_result(
            ValueError(f"Failed to save report to {output_path}: {str(e)}"),
            error_type="ValueError"
        )

    logger.info(f"Report saved to {output_file}")
    return Result.success_result(str(output_file))
