"""Unit tests for ReportAssembler service and report rendering."""

import pytest

from diffmig.domain.diff_models import (
    MISSING,
    AmbiguousMatch,
    Delta,
    DeltaKind,
    DiffReport,
    RecordRef,
)
from diffmig.domain.records import Record, RecordKind, RecordSet
from diffmig.domain.services.matcher import RecordMatcher
from diffmig.domain.services.report_assembler import (
    ReportAssembler,
    format_value,
    render_report_text,
)
from diffmig.domain.services.structural_differ import PairDiff, StructuralDiffer


def _datum(record_id, children=(), **fields):
    return Record(kind=RecordKind.CLINICAL_DATUM, id=record_id, fields=fields, children=tuple(children))


def _report(old_records, new_records):
    pairs = RecordMatcher().match(RecordSet.from_records(old_records), RecordSet.from_records(new_records))
    differ = StructuralDiffer()
    return ReportAssembler().assemble(pairs, [differ.diff_pair(p) for p in pairs if p.is_matched])


class TestReportAssembler:
    """Test suite for ReportAssembler."""

    def test_removed_record(self):
        """Test that a record missing from new is one Removed delta."""
        report = _report([_datum("R1"), _datum("R2")], [_datum("R2")])

        assert len(report.deltas) == 1
        assert report.deltas[0].kind == DeltaKind.REMOVED
        assert report.deltas[0].record_id == "R1"
        assert report.deltas[0].old_record.id == "R1"
        assert report.summary.removed == 1
        assert report.summary.total_differences == 1
        assert report.summary.total_compared == 1

    def test_added_record(self):
        """Test that a record missing from old is one Added delta."""
        report = _report([], [_datum("R1")])

        assert [d.kind for d in report.deltas] == [DeltaKind.ADDED]
        assert report.summary.added == 1
        assert report.summary.total_compared == 0

    def test_both_empty(self):
        """Test that two empty snapshots give an empty report."""
        report = _report([], [])

        assert report.is_empty
        assert report.summary.total_differences == 0
        assert report.record_ids() == []

    def test_grouped_in_matcher_order(self):
        """Test that deltas are grouped by RecordId in matcher order."""
        report = _report(
            [_datum("A", x=1), _datum("B", x=1), _datum("C", x=1)],
            [_datum("D"), _datum("C", x=2), _datum("A", x=2, y=1)],
        )

        assert report.record_ids() == ["A", "B", "C", "D"]
        grouped = dict(report.grouped())
        assert [d.field_name for d in grouped["A"]] == ["x", "y"]
        assert grouped["B"][0].kind == DeltaKind.REMOVED
        assert grouped["D"][0].kind == DeltaKind.ADDED

    def test_out_of_order_pair_diffs(self):
        """Test that differ output order does not affect report order."""
        old = [_datum(f"P{i}", x=i) for i in range(10)]
        new = [_datum(f"P{i}", x=i + 1) for i in range(10)]
        pairs = RecordMatcher().match(RecordSet.from_records(old), RecordSet.from_records(new))
        diffs = [StructuralDiffer().diff_pair(p) for p in pairs]

        forward = ReportAssembler().assemble(pairs, diffs)
        backward = ReportAssembler().assemble(pairs, list(reversed(diffs)))

        assert forward == backward
        assert forward.record_ids() == [f"P{i}" for i in range(10)]

    def test_duplicate_deltas_dropped(self):
        """Test that identical deltas are reported once."""
        record = _datum("A")
        pairs = RecordMatcher().match(RecordSet.from_records([record]), RecordSet.from_records([record]))
        delta = Delta(
            kind=DeltaKind.FIELD_CHANGED,
            record_id="A",
            path=(RecordRef.of(record),),
            field_name="x",
            old_value=1,
            new_value=2,
        )

        report = ReportAssembler().assemble(pairs, [PairDiff(index=0, deltas=[delta, delta])])

        assert len(report.deltas) == 1
        assert report.summary.fields_changed == 1

    def test_missing_pair_diff(self):
        """Test that a matched pair without differ output is an error."""
        record = _datum("A")
        pairs = RecordMatcher().match(RecordSet.from_records([record]), RecordSet.from_records([record]))

        with pytest.raises(ValueError):
            ReportAssembler().assemble(pairs, [])

    def test_warnings_collected(self):
        """Test that ambiguity warnings are carried onto the report once each."""
        warning = AmbiguousMatch(parent_id="A", variant_key="k", side="old", record_ids=("v1", "v2"))
        record = _datum("A")
        pairs = RecordMatcher().match(RecordSet.from_records([record]), RecordSet.from_records([record]))

        report = ReportAssembler().assemble(pairs, [PairDiff(index=0, warnings=[warning, warning])])

        assert report.warnings == (warning,)
        assert report.is_empty


class TestRendering:
    """Test suite for the textual report."""

    @pytest.mark.parametrize("value,expected", [
        ("5", '"5"'),
        (5, "5"),
        (5.0, "5.0"),
        (True, "true"),
        (None, "null"),
        (("a", "b"), '["a", "b"]'),
        (MISSING, "<missing>"),
    ])
    def test_format_value(self, value, expected):
        """Test that values render unambiguously."""
        assert format_value(value) == expected

    def test_render_blocks(self):
        """Test the block layout and summary line."""
        variant = Record(kind=RecordKind.VARIANT, id="V2", variant_key="options")
        report = _report(
            [_datum("C1", value="5"), _datum("R1")],
            [_datum("C1", [variant], value=5), _datum("N1")],
        )

        assert render_report_text(report) == (
            "~ C1\n"
            "    ~ field 'value': \"5\" -> 5\n"
            "    + variant[options]:V2\n"
            "- R1 (clinical_datum)\n"
            "+ N1 (clinical_datum)\n"
            "\n"
            "Found 4 differences (added=1, removed=1, fields_changed=1, "
            "children_added=1, children_removed=0, total_compared=1)\n"
        )

    def test_render_empty(self):
        """Test that an empty report renders only the summary."""
        assert render_report_text(DiffReport()) == (
            "Found 0 differences (added=0, removed=0, fields_changed=0, "
            "children_added=0, children_removed=0, total_compared=0)\n"
        )

    def test_to_dict(self):
        """Test the machine-readable report structure."""
        report = _report([_datum("C1", a=1)], [_datum("C1", b=None)])

        data = report.to_dict()

        assert data["summary"]["fields_changed"] == 2
        assert data["summary"]["total_differences"] == 2
        deltas = data["records"][0]["deltas"]
        assert deltas[0] == {
            "kind": "field_changed",
            "record_id": "C1",
            "path": [{"kind": "clinical_datum", "id": "C1", "variant_key": None}],
            "field_name": "a",
            "old_value": 1,
        }
        assert deltas[1]["new_value"] is None
        assert "old_value" not in deltas[1]
