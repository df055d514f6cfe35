"""Registry Archive Loader Adapter.

This adapter implements the RecordLoaderPort contract for zip archives
produced by a registry migration run. The archive holds the registry's
clinical data as a Django fixture (a JSON array of model entries) at
``<registry>/registry_data/clinical_data/rdrf_clinicaldata.json``.

Record mapping:
    - One top-level ``clinical_datum`` record per owner (django_model,
      django_id), i.e. per patient
    - Each "cdes" entry becomes a ``variant`` child keyed by its form set
    - Each "history" entry becomes an ``other`` child identified by its form set
    - Forms and sections become ``form`` / ``section`` records; cde values
      are section fields; repeated sections (allow_multiple) hold one
      ``other`` child per repetition

Security Impact:
    - Malformed entries abort the load with LoadError; nothing is partially
      compared
    - Errors name the archive, member and entry index, never cde values

Architecture:
    - Implements RecordLoaderPort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - Whole-file parsing: snapshots are fully materialized before comparison
"""

import json
import logging
import zipfile
import zlib
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from diffmig.domain.ports import LoadError, RecordLoaderPort, Snapshot
from diffmig.domain.records import FieldValue, Record, RecordKind, RecordSet

logger = logging.getLogger(__name__)

CLINICAL_DATA_PATH = ("registry_data", "clinical_data", "rdrf_clinicaldata.json")

CDES_COLLECTION = "cdes"
HISTORY_COLLECTION = "history"


@dataclass(frozen=True)
class _Entry:
    pk: int
    owner_id: str
    django_model: str
    django_id: int
    collection: str
    forms: List[Any]
    form_set: str


class RegistryArchiveLoader(RecordLoaderPort):
    """Loader for zipped registry migration exports.

    Example:
        ```python
        loader = RegistryArchiveLoader()
        snapshot = loader.load_snapshot("old.zip")
        snapshot.records.get("patient:42")
        ```
    """

    def __init__(self, trace: bool = False):
        """Initialize registry archive loader.

        Parameters:
            trace: Log each parsed entry at DEBUG level
        """
        self.trace = trace
        self.adapter_name = "registry_archive_loader"

    def can_load(self, source: str) -> bool:
        if not source:
            return False
        return Path(source).suffix.lower() == ".zip"

    def load_snapshot(self, source: str) -> Snapshot:
        """Open an archive, locate its clinical data and parse it.

        Parameters:
            source: Path to the zip archive

        Returns:
            Snapshot with the member path and the parsed RecordSet

        Raises:
            LoadError: If the archive is missing, unreadable or malformed
        """
        source_path = Path(source)
        if not source_path.exists():
            raise LoadError(f"Archive not found: {source}", source=source)

        try:
            with zipfile.ZipFile(source_path) as archive:
                member = self.find_clinical_data_member(archive, source)
                with archive.open(member) as f:
                    raw_data = json.load(f)
        except zipfile.BadZipFile as e:
            raise LoadError(f"Not a valid zip archive: {source}: {e}", source=source)
        except json.JSONDecodeError as e:
            raise LoadError(f"Invalid JSON in clinical data of {source}: {e}", source=source)
        except UnicodeDecodeError as e:
            raise LoadError(f"Clinical data of {source} is not valid UTF-8: {e}", source=source)
        except (RuntimeError, NotImplementedError) as e:
            # Encrypted members or unsupported compression methods
            raise LoadError(f"Cannot extract clinical data from {source}: {e}", source=source)
        except (zlib.error, EOFError) as e:
            raise LoadError(f"Clinical data of {source} is truncated or corrupt: {e}", source=source)
        except OSError as e:
            raise LoadError(f"Cannot read archive {source}: {e}", source=source)

        records = self.parse_clinical_data(raw_data, source=source, member=member)
        logger.info(f"Loaded {len(records)} clinical data owners from {source}")
        return Snapshot(source=source, member=member, records=records)

    @staticmethod
    def find_clinical_data_member(archive: zipfile.ZipFile, source: str) -> str:
        """Return the archive member holding the registry's clinical data.

        Raises:
            LoadError: If no member matches ``<registry>/registry_data/clinical_data/rdrf_clinicaldata.json``
        """
        for name in archive.namelist():
            parts = name.split("/")
            if len(parts) == 4 and tuple(parts[1:]) == CLINICAL_DATA_PATH:
                return name
        raise LoadError("rdrf_clinicaldata.json file not found in zip", source=source)

    def parse_clinical_data(self, raw_data: Any, source: str = "<memory>", member: str = "") -> RecordSet:
        """Parse a clinical data fixture into a RecordSet.

        Parameters:
            raw_data: Decoded JSON (must be a list of fixture entries)
            source: Archive path, for error messages
            member: Archive member, for error messages

        Returns:
            RecordSet with one clinical_datum record per owner, in first-seen order

        Raises:
            LoadError: If the fixture or any entry is malformed
        """
        if not isinstance(raw_data, list):
            raise LoadError("Clinical data is not a JSON array", source=source, details={"member": member})

        entries: List[_Entry] = []
        owners: Dict[str, Tuple[str, int]] = {}
        for index, value in enumerate(raw_data):
            try:
                entry = self._parse_entry(value)
            except LoadError as e:
                raise LoadError(
                    f"Error parsing clinical datum #{index}: {e}",
                    source=source,
                    details={"member": member, "index": index},
                )
            if entry is None:
                continue
            owners.setdefault(entry.owner_id, (entry.django_model, entry.django_id))
            entries.append(entry)

        records = []
        for owner_id, (django_model, django_id) in owners.items():
            owned = [e for e in entries if e.owner_id == owner_id]
            try:
                children = self._build_owner_children(owner_id, owned)
            except LoadError as e:
                raise LoadError(f"{e} (owner {owner_id})", source=source, details={"member": member})
            records.append(Record(
                kind=RecordKind.CLINICAL_DATUM,
                id=owner_id,
                fields={"django_model": django_model, "django_id": django_id},
                children=tuple(children),
            ))

        return RecordSet.from_records(records)

    def _parse_entry(self, value: Any) -> Optional[_Entry]:
        entry = _require(value, dict, "Not an object")
        fields = _require(entry.get("fields"), dict, "Missing fields")
        pk = _require_int(entry.get("pk"), "PK")
        django_id = _require_int(fields.get("django_id"), "patient")
        django_model = fields.get("django_model") or "patient"
        if not isinstance(django_model, str):
            raise LoadError("Invalid django_model")
        collection = _require(fields.get("collection"), str, "Missing collection")
        data = _require(fields.get("data"), dict, "Missing data")

        if collection == CDES_COLLECTION:
            forms = data.get("forms")
        elif collection == HISTORY_COLLECTION:
            record = _require(data.get("record"), dict, "Missing record")
            forms = record.get("forms")
        else:
            logger.debug(f"Skipping clinical datum {pk} with collection '{collection}'")
            return None

        forms = _require(forms, list, "Missing forms")
        names = sorted(_require(_require(f, dict, "Invalid form").get("name"), str, "Missing form name") for f in forms)

        if self.trace:
            logger.debug(f"Parsed clinical datum {pk}: {collection} for {django_model}:{django_id} ({len(forms)} forms)")

        return _Entry(
            pk=pk,
            owner_id=f"{django_model.lower()}:{django_id}",
            django_model=django_model,
            django_id=django_id,
            collection=collection,
            forms=forms,
            form_set=",".join(names),
        )

    def _build_owner_children(self, owner_id: str, entries: List[_Entry]) -> List[Record]:
        key_counts = Counter((e.collection, e.form_set) for e in entries)
        children = []
        for entry in entries:
            key = f"{entry.collection}:{entry.form_set}"
            base_id = f"{owner_id}/{key}"
            if key_counts[(entry.collection, entry.form_set)] > 1:
                # Keep RecordIds unique; the differ reports these as ambiguous
                base_id = f"{base_id}#{entry.pk}"

            forms = self._build_forms(base_id, entry.forms)
            if entry.collection == CDES_COLLECTION:
                children.append(Record(
                    kind=RecordKind.VARIANT,
                    id=f"clinical_datum:{entry.pk}",
                    variant_key=key,
                    fields={"collection": entry.collection},
                    children=tuple(forms),
                ))
            else:
                children.append(Record(
                    kind=RecordKind.OTHER,
                    id=base_id,
                    fields={"collection": entry.collection},
                    children=tuple(forms),
                ))
        return children

    def _build_forms(self, base_id: str, forms: List[Any]) -> List[Record]:
        records = []
        seen = set()
        for form in forms:
            name = form["name"]
            if name in seen:
                raise LoadError("List of forms contains duplicates")
            seen.add(name)
            form_id = f"{base_id}/{name}"
            sections = _require(form.get("sections"), list, "Missing form sections")
            records.append(Record(
                kind=RecordKind.FORM,
                id=form_id,
                children=tuple(self._build_sections(form_id, sections)),
            ))
        return records

    def _build_sections(self, form_id: str, sections: List[Any]) -> List[Record]:
        records = []
        seen = set()
        for value in sections:
            section = _require(value, dict, "Invalid section")
            code = _require(section.get("code"), str, "Missing section code")
            if code in seen:
                raise LoadError("List of sections contains duplicates")
            seen.add(code)
            allow_multiple = _require(section.get("allow_multiple"), bool, "Missing section allow_multiple")
            cdes = _require(section.get("cdes"), list, "Missing section cdes")
            section_id = f"{form_id}/{code}"

            fields: Dict[str, FieldValue] = {"allow_multiple": allow_multiple}
            children: List[Record] = []
            if allow_multiple:
                for position, item in enumerate(cdes):
                    item = _require(item, list, "Invalid section cdes list")
                    children.append(Record(
                        kind=RecordKind.OTHER,
                        id=f"{section_id}[{position}]",
                        fields=self._parse_cdes(item),
                    ))
            else:
                cde_fields = self._parse_cdes(cdes)
                if "allow_multiple" in cde_fields:
                    raise LoadError(f"Section {code} has a cde named 'allow_multiple'")
                fields.update(cde_fields)

            records.append(Record(
                kind=RecordKind.SECTION,
                id=section_id,
                fields=fields,
                children=tuple(children),
            ))
        return records

    def _parse_cdes(self, cdes: List[Any]) -> Dict[str, FieldValue]:
        fields: Dict[str, FieldValue] = {}
        seen = set()
        for value in cdes:
            cde = _require(value, dict, "Invalid cde")
            code = _require(cde.get("code"), str, "Missing cde code")
            if code in seen:
                raise LoadError("List of CDEs contains duplicates")
            seen.add(code)
            if "value" not in cde:
                raise LoadError(f"Missing cde value for {code}")
            for name, field_value in cde_value_fields(code, cde["value"]).items():
                if name in fields:
                    raise LoadError(f"CDE field {name} is defined twice")
                fields[name] = field_value
        return fields


def cde_value_fields(code: str, value: Any) -> Dict[str, FieldValue]:
    """Translate one cde value into record fields.

    Scalars map to a single field. Ranges (lists of strings) are canonicalized
    to a sorted tuple so that option order is not reported. File values are
    flattened into ``<code>.file_name`` and ``<code>.django_file_id``; files
    stored in GridFS carry django file id 0.

    Raises:
        LoadError: If the value is not a recognized cde value
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return {code: value}

    if isinstance(value, list):
        if not all(isinstance(v, str) for v in value):
            raise LoadError(f"Invalid range cde value for {code}")
        return {code: tuple(sorted(value))}

    if isinstance(value, dict):
        file_name = value.get("file_name")
        django_file_id = value.get("django_file_id")
        gridfs_file_id = value.get("gridfs_file_id")
        if isinstance(file_name, str) and isinstance(django_file_id, int) and not isinstance(django_file_id, bool):
            return {f"{code}.file_name": file_name, f"{code}.django_file_id": django_file_id}
        if isinstance(file_name, str) and isinstance(gridfs_file_id, str):
            return {f"{code}.file_name": file_name, f"{code}.django_file_id": 0}

    raise LoadError(f"Invalid cde value for {code}")


def _require(value: Any, expected: type, message: str) -> Any:
    if not isinstance(value, expected):
        raise LoadError(message)
    return value


def _require_int(value: Any, name: str) -> int:
    if value is None:
        raise LoadError(f"Missing {name}")
    if isinstance(value, bool) or not isinstance(value, int):
        raise LoadError(f"Invalid {name}")
    return value
