"""Domain Services.

This package contains the diff engine: matcher, structural differ, scope
filter and report assembler. None of them depend on infrastructure.
"""

from diffmig.domain.services.matcher import RecordMatcher, match_keys
from diffmig.domain.services.structural_differ import PairDiff, StructuralDiffer
from diffmig.domain.services.scope_filter import (
    Scope,
    filter_record_set,
    filter_report,
    parse_scope,
)
from diffmig.domain.services.report_assembler import ReportAssembler, render_report_text

__all__ = [
    'RecordMatcher',
    'match_keys',
    'PairDiff',
    'StructuralDiffer',
    'Scope',
    'filter_record_set',
    'filter_report',
    'parse_scope',
    'ReportAssembler',
    'render_report_text',
]
