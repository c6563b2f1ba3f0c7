"""
Snapshot codec: read and write snapshots as JSON.

File layout:

    {
      "ExportMetadata": {"ExportDate", "SourceServer", "ToolVersion",
                         "IncludesUsageData", "ExcludedSystemCategories"},
      "Statistics":     {"TotalCategories", "TotalTags", "ExcludedCategories"},
      "TagCategories":  [{"Name", "Description", "Cardinality", "EntityType", "Id"}],
      "Tags":           [{"Name", "Description", "CategoryName", "Id",
                          "AssignmentCount"?, "AssignedEntityTypes"?}]
    }

Files written by the older PowerShell tooling are accepted as well: they may
start with a BOM, and ConvertTo-Json collapses one-element arrays to a bare
value.
"""

import json
import re
from datetime import datetime, timezone
from pathlib import Path

from .model import Cardinality, ExportMetadata, Snapshot, Statistics, Tag, TagCategory

REQUIRED_SECTIONS = ['TagCategories', 'Tags']


class MalformedSnapshot(ValueError):
    """The snapshot file cannot be used for an import."""


# =============================================================================
# ENCODE
# =============================================================================

def encode_snapshot(snapshot: Snapshot) -> str:
    """Serialize a snapshot to JSON text."""
    meta = snapshot.metadata
    stats = snapshot.statistics
    doc = {
        "ExportMetadata": {
            "ExportDate": meta.export_date.isoformat(),
            "SourceServer": meta.source_server,
            "ToolVersion": meta.tool_version,
            "IncludesUsageData": meta.includes_usage_data,
            "ExcludedSystemCategories": meta.excluded_system_categories
        },
        "Statistics": {
            "TotalCategories": stats.total_categories,
            "TotalTags": stats.total_tags,
            "ExcludedCategories": stats.excluded_categories
        },
        "TagCategories": [_encode_category(c) for c in snapshot.categories],
        "Tags": [_encode_tag(t) for t in snapshot.tags]
    }
    return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"


def _encode_category(category: TagCategory) -> dict:
    return {
        "Name": category.name,
        "Description": category.description or "",
        "Cardinality": str(category.cardinality),
        "EntityType": list(category.entity_types),
        "Id": category.remote_id
    }


def _encode_tag(tag: Tag) -> dict:
    entry = {
        "Name": tag.name,
        "Description": tag.description or "",
        "CategoryName": tag.category_name,
        "Id": tag.remote_id
    }
    if tag.assignment_count is not None:
        entry["AssignmentCount"] = tag.assignment_count
        entry["AssignedEntityTypes"] = list(tag.assigned_entity_types or ())
    return entry


def write_snapshot(snapshot: Snapshot, path) -> Path:
    """Write a snapshot file, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(encode_snapshot(snapshot))
    return path


def default_snapshot_name(server: str, when: datetime = None) -> str:
    """vCenterTags_<server>_<yyyyMMdd_HHmmss>.json"""
    when = when or datetime.now()
    safe_server = re.sub(r'[^A-Za-z0-9._-]', '_', server)
    return f"vCenterTags_{safe_server}_{when.strftime('%Y%m%d_%H%M%S')}.json"


# =============================================================================
# DECODE
# =============================================================================

def decode_snapshot(text: str) -> Snapshot:
    """
    Parse snapshot JSON.

    Only the shape is validated. Whether every tag's category exists is left
    to the import, where a bad reference fails that tag alone.
    """
    try:
        doc = json.loads(text.lstrip('\ufeff'))
    except json.JSONDecodeError as e:
        raise MalformedSnapshot(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(doc, dict):
        raise MalformedSnapshot("Snapshot must be a JSON object")

    missing = [s for s in REQUIRED_SECTIONS if s not in doc]
    if missing:
        raise MalformedSnapshot(f"Missing required snapshot sections: {missing}")

    categories = tuple(_decode_category(c, i) for i, c in enumerate(_as_list(doc['TagCategories'])))
    tags = tuple(_decode_tag(t, i) for i, t in enumerate(_as_list(doc['Tags'])))

    return Snapshot(
        metadata=_decode_metadata(_as_dict(doc.get('ExportMetadata'))),
        statistics=_decode_statistics(_as_dict(doc.get('Statistics')), categories, tags),
        categories=categories,
        tags=tags
    )


def read_snapshot(path) -> Snapshot:
    try:
        with open(path, 'r', encoding='utf-8-sig') as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise MalformedSnapshot(f"Snapshot is not valid UTF-8: {e}") from e
    return decode_snapshot(text)


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _require(entry, key: str, section: str, index: int):
    if not isinstance(entry, dict):
        raise MalformedSnapshot(f"{section}[{index}] is not an object")
    value = entry.get(key)
    if not value:
        raise MalformedSnapshot(f"{section}[{index}] has no {key}")
    return str(value)


def _decode_category(entry, index: int) -> TagCategory:
    name = _require(entry, 'Name', 'TagCategories', index)
    try:
        cardinality = Cardinality.parse(entry.get('Cardinality') or 'Single')
    except ValueError as e:
        raise MalformedSnapshot(f"TagCategories[{index}] ({name}): {e}") from e

    return TagCategory(
        name=name,
        description=entry.get('Description') or "",
        cardinality=cardinality,
        entity_types=tuple(str(t) for t in _as_list(entry.get('EntityType'))),
        remote_id=entry.get('Id')
    )


def _decode_tag(entry, index: int) -> Tag:
    name = _require(entry, 'Name', 'Tags', index)
    # An unresolvable category fails this tag during the import, not the load
    category_name = str(entry.get('CategoryName') or "")
    count = _int_or_none(entry.get('AssignmentCount'))
    kinds = entry.get('AssignedEntityTypes')

    return Tag(
        name=name,
        category_name=category_name,
        description=entry.get('Description') or "",
        remote_id=entry.get('Id'),
        assignment_count=count,
        assigned_entity_types=tuple(_as_list(kinds)) if count is not None else None
    )


def _decode_metadata(meta: dict) -> ExportMetadata:
    return ExportMetadata(
        export_date=_parse_date(meta.get('ExportDate')),
        source_server=meta.get('SourceServer') or "",
        tool_version=str(meta.get('ToolVersion') or ""),
        includes_usage_data=bool(meta.get('IncludesUsageData', False)),
        excluded_system_categories=bool(meta.get('ExcludedSystemCategories', False))
    )


def _decode_statistics(stats: dict, categories: tuple, tags: tuple) -> Statistics:
    return Statistics(
        total_categories=_int_or(stats.get('TotalCategories'), len(categories)),
        total_tags=_int_or(stats.get('TotalTags'), len(tags)),
        excluded_categories=_int_or(stats.get('ExcludedCategories'), 0)
    )


def _parse_date(value) -> datetime:
    if not value:
        return datetime.fromtimestamp(0, timezone.utc)
    text = str(value)
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    # PowerShell writes 7 fractional digits, datetime takes at most 6
    text = re.sub(r'(\.\d{6})\d+', r'\1', text)
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise MalformedSnapshot(f"Invalid ExportDate: {value!r}") from e


def _int_or_none(value):
    """Informational counts: anything that is not a number is dropped."""
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _int_or(value, default: int) -> int:
    number = _int_or_none(value)
    return default if number is None else number
