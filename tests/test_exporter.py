"""Tests for the snapshot exporter."""

import pytest

from vcenter_tags import __version__
from vcenter_tags.exporter import export_snapshot, is_system_category
from vcenter_tags.gateway import GatewayError


def test_exports_everything_by_default(populated_gateway):
    snapshot = export_snapshot(populated_gateway, "vc01.example.com")

    assert [c.name for c in snapshot.categories] == ["App", "Backup", "vSphereHA"]
    assert len(snapshot.tags) == 4
    assert snapshot.statistics.total_categories == 3
    assert snapshot.statistics.total_tags == 4
    assert snapshot.statistics.excluded_categories == 0
    assert snapshot.metadata.source_server == "vc01.example.com"
    assert snapshot.metadata.tool_version == __version__
    assert snapshot.metadata.includes_usage_data is False


def test_exclude_system_categories_drops_their_tags(populated_gateway):
    snapshot = export_snapshot(populated_gateway, "vc01", exclude_system_categories=True)

    names = {c.name for c in snapshot.categories}
    assert names == {"App", "Backup"}
    assert snapshot.statistics.excluded_categories == 1
    assert snapshot.metadata.excluded_system_categories is True
    # No orphan tags
    assert all(t.category_name in names for t in snapshot.tags)
    assert len(snapshot.tags) == 3


def test_custom_system_prefix(populated_gateway):
    snapshot = export_snapshot(populated_gateway, "vc01", exclude_system_categories=True,
                               system_prefix="Back")

    assert {c.name for c in snapshot.categories} == {"App", "vSphereHA"}


def test_usage_is_opt_in(populated_gateway):
    export_snapshot(populated_gateway, "vc01")

    assert not [c for c in populated_gateway.calls if c[0] == "list_assignments"]


def test_usage_counts(populated_gateway):
    populated_gateway.assignments = {("HR", "App"): ["VirtualMachine", "Datastore"]}

    snapshot = export_snapshot(populated_gateway, "vc01", include_usage=True)

    by_name = {t.name: t for t in snapshot.tags}
    assert by_name["HR"].assignment_count == 2
    assert by_name["HR"].assigned_entity_types == ("Datastore", "VirtualMachine")
    assert by_name["Finance"].assignment_count == 0
    assert by_name["Finance"].assigned_entity_types == ()
    assert snapshot.metadata.includes_usage_data is True


def test_gateway_error_aborts_export(populated_gateway):
    populated_gateway.fail_items[("list_assignments", "Daily")] = "timeout"

    with pytest.raises(GatewayError):
        export_snapshot(populated_gateway, "vc01", include_usage=True)


def test_export_is_read_only(populated_gateway):
    export_snapshot(populated_gateway, "vc01", exclude_system_categories=True, include_usage=True)

    assert populated_gateway.mutations == []


def test_is_system_category():
    assert is_system_category("vSphereHA")
    assert not is_system_category("App")
    assert not is_system_category("vSphereHA", prefix="")
