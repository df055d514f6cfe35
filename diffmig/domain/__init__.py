"""Domain layer for diffmig.

This module contains the canonical record models, the difference models and
the diff engine services. Domain models depend on nothing beyond Pydantic.
"""

from .records import (
    Record,
    RecordKind,
    RecordSet,
)
from .diff_models import (
    AmbiguousMatch,
    Delta,
    DeltaKind,
    DiffReport,
    MatchedPair,
    MISSING,
    RecordRef,
    ReportSummary,
)

__all__ = [
    "Record",
    "RecordKind",
    "RecordSet",
    "AmbiguousMatch",
    "Delta",
    "DeltaKind",
    "DiffReport",
    "MatchedPair",
    "MISSING",
    "RecordRef",
    "ReportSummary",
]
