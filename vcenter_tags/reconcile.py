"""
Reconciliation engine: converge a live taxonomy toward a snapshot.

Categories are processed first, then tags, since a tag can only be created
under a category that already exists. Each item is decided by a per-item
function that returns an ItemOutcome; one failing item never stops the run.
Only a lost connection aborts, and even then the partial report is kept.

IDEMPOTENCY:
  Nothing is ever deleted. Existing entities are skipped, or updated when
  update_existing is set, so running the same import twice is safe.
"""

from .gateway import GatewayConnectionError
from .model import Tag, TagCategory
from .report import EntityKind, ItemOutcome, ReconciliationReport

CATEGORY_NOT_FOUND = "category not found"


class ReconciliationAborted(Exception):
    """The run stopped early. `report` holds what was done before that."""

    def __init__(self, message: str, report: ReconciliationReport):
        super().__init__(message)
        self.report = report


# =============================================================================
# PER-ITEM DECISIONS
# =============================================================================

def category_delta(desired: TagCategory, live: TagCategory) -> dict:
    """Fields of a live category that differ from the desired one."""
    fields = {}
    if (desired.description or "") != (live.description or ""):
        fields['description'] = desired.description or ""
    if str(desired.cardinality) != str(live.cardinality):
        fields['cardinality'] = desired.cardinality
    return fields


def tag_delta(desired: Tag, live: Tag) -> dict:
    fields = {}
    if (desired.description or "") != (live.description or ""):
        fields['description'] = desired.description or ""
    return fields


def reconcile_category(desired: TagCategory, live_by_name: dict, gateway,
                       update_existing: bool, dry_run: bool) -> ItemOutcome:
    """
    Create, update or skip one category.

    GatewayConnectionError is re-raised; every other error becomes a Failed
    outcome for this category.
    """
    kind = EntityKind.CATEGORY
    try:
        live = live_by_name.get(desired.name)

        if live is None:
            if not dry_run:
                gateway.create_category(desired)
            return ItemOutcome.created(kind, desired.name)

        if not update_existing or dry_run:
            return ItemOutcome.skipped_exists(kind, desired.name)

        fields = category_delta(desired, live)
        if not fields:
            return ItemOutcome.skipped_unchanged(kind, desired.name)

        gateway.update_category(desired.name, fields)
        return ItemOutcome.updated(kind, desired.name, reason=', '.join(fields))

    except GatewayConnectionError:
        raise
    except Exception as e:
        return ItemOutcome.failed(kind, desired.name, str(e) or type(e).__name__)


def reconcile_tag(desired: Tag, live_tags: dict, live_categories: dict, gateway,
                  update_existing: bool, dry_run: bool) -> ItemOutcome:
    """
    Create, update or skip one tag.

    live_tags is keyed by (tag name, category name), live_categories by name.
    A tag whose category is not live fails with "category not found".
    """
    kind = EntityKind.TAG
    try:
        live = live_tags.get(desired.key)

        if live is not None:
            if not update_existing or dry_run:
                return ItemOutcome.skipped_exists(kind, desired.name, desired.category_name)

            fields = tag_delta(desired, live)
            if not fields:
                return ItemOutcome.skipped_unchanged(kind, desired.name, desired.category_name)

            gateway.update_tag(desired.name, desired.category_name, fields)
            return ItemOutcome.updated(kind, desired.name, desired.category_name,
                                       reason=', '.join(fields))

        if desired.category_name not in live_categories:
            return ItemOutcome.failed(kind, desired.name, CATEGORY_NOT_FOUND,
                                      desired.category_name)

        if not dry_run:
            gateway.create_tag(desired)
        return ItemOutcome.created(kind, desired.name, desired.category_name)

    except GatewayConnectionError:
        raise
    except Exception as e:
        return ItemOutcome.failed(kind, desired.name, str(e) or type(e).__name__,
                                  desired.category_name)


# =============================================================================
# RUN
# =============================================================================

def reconcile(snapshot, gateway, update_existing: bool = False, dry_run: bool = False,
              simulate_dependencies: bool = False, progress=None) -> ReconciliationReport:
    """
    Apply a snapshot to the live taxonomy behind `gateway`.

    Args:
        snapshot: Desired state. Never modified.
        gateway: Connected TaxonomyGateway
        update_existing: Update description/cardinality of existing entities
            instead of skipping them
        dry_run: Decide and report only, no remote mutations
        simulate_dependencies: In a dry run, treat categories that would be
            created as live, so their tags report Created instead of failing
            with "category not found"
        progress: Optional callable receiving each ItemOutcome as it is decided

    Raises:
        ReconciliationAborted: the connection was lost, or live state could
            not be read. The exception carries the partial report.
    """
    report = ReconciliationReport(dry_run=dry_run, update_existing=update_existing)

    def emit(outcome):
        report.record(outcome)
        if progress is not None:
            progress(outcome)

    def abort(message, cause):
        report.aborted = message
        raise ReconciliationAborted(message, report) from cause

    try:
        live_categories = {c.name: c for c in gateway.list_categories()}
        live_tags = {t.key: t for t in gateway.list_tags()}
    except Exception as e:
        abort(f"Cannot read live taxonomy: {e}", e)

    # Phase 1: categories
    for desired in snapshot.categories:
        try:
            outcome = reconcile_category(desired, live_categories, gateway,
                                         update_existing, dry_run)
        except GatewayConnectionError as e:
            abort(f"Connection lost while processing category '{desired.name}': {e}", e)
        emit(outcome)

    if not dry_run:
        try:
            live_categories = {c.name: c for c in gateway.list_categories()}
        except Exception as e:
            abort(f"Cannot refresh live categories: {e}", e)
    elif simulate_dependencies:
        for desired in snapshot.categories:
            live_categories.setdefault(desired.name, desired)

    # Phase 2: tags
    for desired in snapshot.tags:
        try:
            outcome = reconcile_tag(desired, live_tags, live_categories, gateway,
                                    update_existing, dry_run)
        except GatewayConnectionError as e:
            abort(f"Connection lost while processing tag '{desired.category_name}/{desired.name}': {e}", e)
        emit(outcome)

    return report
