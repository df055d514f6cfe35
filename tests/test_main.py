"""Integration tests for the diff pipeline over real archives."""

import json
import zipfile

import pytest

from diffmig.domain.diff_models import DeltaKind
from diffmig.domain.ports import LoadError
from diffmig.domain.services.scope_filter import Scope
from diffmig.infrastructure.config_manager import DiffConfig
from diffmig.main import load_snapshots, run_diff

MEMBER = "reg/registry_data/clinical_data/rdrf_clinicaldata.json"


def _entry(pk, django_id, cdes, collection="cdes", form="F"):
    forms = [{"name": form, "sections": [{"code": "S", "allow_multiple": False, "cdes": cdes}]}]
    data = {"forms": forms} if collection == "cdes" else {"record": {"forms": forms}}
    return {
        "pk": pk,
        "fields": {"django_id": django_id, "django_model": "Patient", "collection": collection, "data": data},
    }


def _archive(path, entries, member=MEMBER):
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr(member, json.dumps(entries))
    return str(path)


class TestLoadSnapshots:
    """Test loading the old and new snapshots together."""

    def test_loads_both(self, tmp_path):
        """Test that both snapshots are loaded and reported."""
        old = _archive(tmp_path / "old.zip", [_entry(1, 1, [])])
        new = _archive(tmp_path / "new.zip", [_entry(1, 1, []), _entry(2, 2, [])])
        loaded = []

        old_snapshot, new_snapshot = load_snapshots(old, new, DiffConfig(), on_loaded=loaded.append)

        assert len(old_snapshot.records) == 1
        assert len(new_snapshot.records) == 2
        assert [s.source for s in loaded] == [old, new]

    def test_registry_mismatch(self, tmp_path):
        """Test that archives for different registries are rejected."""
        old = _archive(tmp_path / "old.zip", [])
        new = _archive(tmp_path / "new.zip", [], member="other/registry_data/clinical_data/rdrf_clinicaldata.json")

        with pytest.raises(LoadError, match="paths don't match"):
            load_snapshots(old, new, DiffConfig())

    def test_fail_fast(self, tmp_path):
        """Test that a failing old archive stops before the new one is read."""
        new = _archive(tmp_path / "new.zip", [])
        loaded = []

        with pytest.raises(LoadError):
            load_snapshots(str(tmp_path / "missing.zip"), new, DiffConfig(), on_loaded=loaded.append)

        assert loaded == []


class TestRunDiff:
    """Test the complete pipeline."""

    def test_value_change_in_variant(self, tmp_path):
        """Test a cde value change reported under its patient."""
        old = _archive(tmp_path / "old.zip", [_entry(1, 1, [{"code": "Age", "value": "5"}])])
        new = _archive(tmp_path / "new.zip", [_entry(10, 1, [{"code": "Age", "value": 5}])])

        report = run_diff(old, new, DiffConfig())

        assert len(report.deltas) == 1
        delta = report.deltas[0]
        assert delta.record_id == "patient:1"
        assert delta.field_name == "Age"
        assert (delta.old_value, delta.new_value) == ("5", 5)

    def test_cdes_scope_ignores_history(self, tmp_path):
        """Test that history changes are ignored under the variants-only scope."""
        old = _archive(tmp_path / "old.zip", [
            _entry(1, 1, [{"code": "Age", "value": 1}]),
            _entry(2, 1, [{"code": "Age", "value": 1}], collection="history"),
        ])
        new = _archive(tmp_path / "new.zip", [
            _entry(1, 1, [{"code": "Age", "value": 1}]),
            _entry(2, 1, [{"code": "Age", "value": 2}], collection="history"),
        ])

        assert not run_diff(old, new, DiffConfig()).is_empty
        assert run_diff(old, new, DiffConfig(scope=Scope.CLINICAL_DATUM_VARIANTS_ONLY)).is_empty

    def test_removed_patient(self, tmp_path):
        """Test a patient missing from the new snapshot."""
        old = _archive(tmp_path / "old.zip", [_entry(1, 1, []), _entry(2, 2, [])])
        new = _archive(tmp_path / "new.zip", [_entry(1, 1, [])])

        report = run_diff(old, new, DiffConfig(workers=2))

        assert [(d.kind, d.record_id) for d in report.deltas] == [(DeltaKind.REMOVED, "patient:2")]
