"""
Snapshot exporter: capture the live taxonomy of a vCenter as a Snapshot.
"""

from dataclasses import replace
from datetime import datetime, timezone

from . import __version__
from .model import ExportMetadata, Snapshot, Statistics

# Categories created by vCenter itself and its solutions
SYSTEM_CATEGORY_PREFIX = "vSphere"


def is_system_category(name: str, prefix: str = SYSTEM_CATEGORY_PREFIX) -> bool:
    return bool(prefix) and name.startswith(prefix)


def export_snapshot(gateway, source_server: str, exclude_system_categories: bool = False,
                    include_usage: bool = False,
                    system_prefix: str = SYSTEM_CATEGORY_PREFIX) -> Snapshot:
    """
    Read all categories and tags through the gateway into a Snapshot.

    Read-only. Any gateway error propagates; there is no partial export.

    Args:
        gateway: Connected TaxonomyGateway
        source_server: Server name recorded in the snapshot metadata
        exclude_system_categories: Drop categories named with system_prefix,
            together with their tags
        include_usage: Query assignment counts per tag (one call per tag)
        system_prefix: Name prefix that marks a system category
    """
    categories = gateway.list_categories()
    excluded = 0
    if exclude_system_categories:
        kept = [c for c in categories if not is_system_category(c.name, system_prefix)]
        excluded = len(categories) - len(kept)
        categories = kept

    tags = gateway.list_tags()
    if exclude_system_categories:
        # Never export a tag whose category is not exported
        kept_names = {c.name for c in categories}
        tags = [t for t in tags if t.category_name in kept_names]

    if include_usage:
        with_usage = []
        for tag in tags:
            count, kinds = gateway.list_assignments(tag)
            with_usage.append(replace(tag, assignment_count=count,
                                      assigned_entity_types=tuple(kinds)))
        tags = with_usage

    return Snapshot(
        metadata=ExportMetadata(
            export_date=datetime.now(timezone.utc),
            source_server=source_server,
            tool_version=__version__,
            includes_usage_data=include_usage,
            excluded_system_categories=exclude_system_categories
        ),
        statistics=Statistics(
            total_categories=len(categories),
            total_tags=len(tags),
            excluded_categories=excluded
        ),
        categories=tuple(categories),
        tags=tuple(tags)
    )
