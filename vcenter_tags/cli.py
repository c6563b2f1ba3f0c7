"""
===============================================================================
vCenter Tag Taxonomy Backup & Restore
===============================================================================

COMMANDS:
  --list            Show the live tag categories and tags (read-only)
  --export          Write the live taxonomy to a JSON snapshot (read-only)
  --import FILE     Reconcile a snapshot against the live taxonomy
                    (requires --dry-run or --execute)

EXAMPLES:
  # Back up a vCenter
  vcenter-tags --config config.yaml --export
  vcenter-tags --config config.yaml --export --include-usage --output tags.json

  # Preview a restore (always recommended), then apply it
  vcenter-tags --config config.yaml --import tags.json --dry-run
  vcenter-tags --config config.yaml --import tags.json --execute

  # Restore to another vCenter and update descriptions that drifted
  vcenter-tags --config config.yaml --server vc02.example.com \\
      --import tags.json --execute --update-existing

EXIT STATUS:
  0 when every item succeeded or was skipped, 1 when any item failed, the
  snapshot was malformed, or vCenter could not be reached.

===============================================================================
"""

import argparse
import json
import sys
from pathlib import Path

from . import __version__
from .codec import MalformedSnapshot, default_snapshot_name, read_snapshot, write_snapshot
from .config import load_config, resolve_password
from .exporter import SYSTEM_CATEGORY_PREFIX, export_snapshot
from .gateway import GatewayConnectionError, GatewayError, VcenterTagClient
from .reconcile import ReconciliationAborted, reconcile
from .report import EntityKind, OutcomeKind


# =============================================================================
# OUTPUT
# =============================================================================

def print_banner(title: str):
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


def format_outcome(outcome, dry_run: bool) -> str:
    label = outcome.label
    kind = outcome.kind
    if kind is OutcomeKind.CREATED:
        return f"  Would CREATE '{label}'" if dry_run else f"  ✓ Created '{label}'"
    if kind is OutcomeKind.UPDATED:
        return f"  ✓ Updated '{label}' ({outcome.reason})"
    if kind is OutcomeKind.SKIPPED_UNCHANGED:
        return f"  · '{label}' already up to date (no change)"
    if kind is OutcomeKind.SKIPPED_EXISTS:
        return f"  · '{label}' already exists (skipped)"
    return f"  ✗ Failed '{label}': {outcome.reason}"


def print_report_summary(report):
    print("\n" + "=" * 70)
    if report.dry_run:
        print("DRY RUN COMPLETE - No changes made")
    if report.aborted:
        print(f"ABORTED: {report.aborted}")
    for entity, title in [(EntityKind.CATEGORY, "Categories"), (EntityKind.TAG, "Tags")]:
        c = report.counts_for(entity)
        print(f"SUMMARY {title}: Created={c.created}, Updated={c.updated}, "
              f"Skipped={c.skipped} (unchanged={c.skipped_unchanged}, exists={c.skipped_exists}), "
              f"Failed={c.failed}")

    if report.failures:
        print("\nFailures:")
        for f in report.failures:
            print(f"  ✗ {f.entity.value} '{f.label}': {f.reason}")


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def cmd_list(client, config: dict):
    """List live tag categories with their tags."""
    print_banner("CURRENT TAG TAXONOMY")

    categories = client.list_categories()
    tags = client.list_tags()
    if not categories:
        print("  No tag categories found")
        return 0

    by_category = {}
    for t in tags:
        by_category.setdefault(t.category_name, []).append(t)

    print(f"\nFound {len(categories)} categories and {len(tags)} tags:\n")
    for c in sorted(categories, key=lambda x: x.name):
        types = ', '.join(c.entity_types) if c.entity_types else "(all types)"
        print(f"  {c.name} [{c.cardinality}] {types}")
        if c.description:
            print(f"    {c.description}")
        for t in sorted(by_category.get(c.name, []), key=lambda x: x.name):
            print(f"    - {t.name}" + (f": {t.description}" if t.description else ""))
    return 0


def cmd_export(client, config: dict, server: str, output: str = None,
               exclude_system: bool = None, include_usage: bool = None):
    """Export the live taxonomy to a snapshot file."""
    export_config = config.get('export', {})
    if exclude_system is None:
        exclude_system = export_config.get('exclude_system_categories', False)
    if include_usage is None:
        include_usage = export_config.get('include_usage', False)
    prefix = export_config.get('system_category_prefix', SYSTEM_CATEGORY_PREFIX)

    print_banner("TAG TAXONOMY EXPORT")
    print(f"Exclude system categories: {'YES' if exclude_system else 'NO'}")
    print(f"Include usage data: {'YES' if include_usage else 'NO'}")

    print("\n[1/2] Reading categories and tags...")
    if include_usage:
        print("  (usage data requested - one extra call per tag)")
    try:
        snapshot = export_snapshot(
            client,
            source_server=server,
            exclude_system_categories=exclude_system,
            include_usage=include_usage,
            system_prefix=prefix
        )
    except GatewayError as e:
        print(f"  ✗ Export failed: {e}")
        return 1

    stats = snapshot.statistics
    print(f"  ✓ {stats.total_categories} categories, {stats.total_tags} tags")
    if exclude_system:
        print(f"  ✓ Excluded {stats.excluded_categories} system categories ('{prefix}*')")

    if output:
        path = Path(output)
    else:
        output_dir = Path(export_config.get('output_dir', '.'))
        path = output_dir / default_snapshot_name(server, snapshot.metadata.export_date)

    print("\n[2/2] Writing snapshot...")
    try:
        write_snapshot(snapshot, path)
    except OSError as e:
        print(f"  ✗ Cannot write {path}: {e}")
        return 1
    print(f"  ✓ {path}")

    print("\nDONE")
    return 0


def load_import_snapshot(snapshot_path: str):
    """Read the snapshot to import. Returns None when it is unusable."""
    print(f"\nLoading snapshot {snapshot_path}...")
    try:
        snapshot = read_snapshot(snapshot_path)
    except (OSError, MalformedSnapshot) as e:
        print(f"  ✗ {e}")
        return None

    meta = snapshot.metadata
    print(f"  ✓ {len(snapshot.categories)} categories, {len(snapshot.tags)} tags")
    print(f"    Exported from {meta.source_server or 'unknown'} on {meta.export_date.isoformat()}"
          f" (tool {meta.tool_version or 'unknown'})")
    return snapshot


def cmd_import(client, config: dict, snapshot, dry_run: bool,
               update_existing: bool = None, simulate_dependencies: bool = False,
               report_json: str = None):
    """Reconcile a loaded snapshot against the live taxonomy."""
    if update_existing is None:
        update_existing = config.get('import', {}).get('update_existing', False)

    print_banner("TAG TAXONOMY IMPORT")
    print(f"Mode: {'DRY RUN' if dry_run else 'EXECUTE'}")
    print(f"Update existing: {'YES' if update_existing else 'NO'}")
    print("\n[1/3] Reading live taxonomy...")

    current = {'entity': None}

    def progress(outcome):
        if outcome.entity is not current['entity']:
            current['entity'] = outcome.entity
            step = "[2/3] Categories" if outcome.entity is EntityKind.CATEGORY else "[3/3] Tags"
            print(f"\n{step}...")
        print(format_outcome(outcome, dry_run))

    try:
        report = reconcile(
            snapshot,
            client,
            update_existing=update_existing,
            dry_run=dry_run,
            simulate_dependencies=simulate_dependencies,
            progress=progress
        )
    except ReconciliationAborted as e:
        report = e.report

    print_report_summary(report)

    if report_json:
        try:
            with open(report_json, 'w', encoding='utf-8') as f:
                json.dump(report.to_dict(), f, indent=2)
        except OSError as e:
            print(f"  ⚠ Cannot write report {report_json}: {e}")
        else:
            print(f"\nReport written to {report_json}")

    print("\nDONE")
    return report.exit_code


# =============================================================================
# MAIN
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='vcenter-tags',
        description='vCenter Tag Taxonomy Backup & Restore',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument('--config', required=True, help='YAML configuration file')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--server', help='vCenter host (overrides config)')
    parser.add_argument('--user', help='vCenter username (overrides config)')

    command_group = parser.add_mutually_exclusive_group(required=True)
    command_group.add_argument('--list', action='store_true',
                               help='List live tag categories and tags')
    command_group.add_argument('--export', action='store_true',
                               help='Export the live taxonomy to a snapshot file')
    command_group.add_argument('--import', dest='import_file', metavar='SNAPSHOT',
                               help='Reconcile a snapshot file against the live taxonomy')

    export_group = parser.add_argument_group('Export Options')
    export_group.add_argument('--output', help='Snapshot file to write')
    export_group.add_argument('--include-usage', action='store_true', default=None,
                              help='Record assignment counts per tag (slow on large inventories)')
    system = export_group.add_mutually_exclusive_group()
    system.add_argument('--exclude-system', dest='exclude_system', action='store_true',
                        default=None, help='Skip system categories and their tags')
    system.add_argument('--include-system', dest='exclude_system', action='store_false',
                        help='Export system categories too')

    import_group = parser.add_argument_group('Import Options')
    mode_group = import_group.add_mutually_exclusive_group()
    mode_group.add_argument('--dry-run', action='store_true',
                            help='Preview changes without executing')
    mode_group.add_argument('--execute', action='store_true',
                            help='Execute changes')
    import_group.add_argument('--update-existing', action='store_true', default=None,
                              help='Update description/cardinality of existing entities')
    import_group.add_argument('--simulate-dependencies', action='store_true',
                              help='In a dry run, treat categories to be created as existing '
                                   'when checking their tags')
    import_group.add_argument('--report-json', metavar='PATH',
                              help='Write the reconciliation report as JSON')

    # Debug mode
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Show detailed API requests and responses')
    return parser


def main(argv=None, client_factory=VcenterTagClient):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.import_file and not args.dry_run and not args.execute:
        parser.error("Specify --dry-run or --execute with --import")

    config = load_config(args.config)

    vcenter_config = dict(config.get('vcenter', {}))
    if args.server:
        vcenter_config['host'] = args.server
    if args.user:
        vcenter_config['username'] = args.user
    server = vcenter_config['host']

    # A bad snapshot is rejected before anything touches vCenter
    snapshot = None
    if args.import_file:
        snapshot = load_import_snapshot(args.import_file)
        if snapshot is None:
            return 1

    client = client_factory(
        host=server,
        username=vcenter_config['username'],
        password=resolve_password(vcenter_config),
        verify_ssl=vcenter_config.get('verify_ssl', False),
        verbose=args.verbose
    )

    print("=" * 70)
    print(f"VCENTER TAG TOOL v{__version__}")
    print("=" * 70)
    print(f"\nConnecting to: {server}")
    print("Authenticating...", end=" ")

    try:
        client.connect()
    except GatewayConnectionError as e:
        print("FAILED")
        print(f"  {e}")
        return 1
    print("OK")

    try:
        if args.list:
            return cmd_list(client, config)

        if args.export:
            return cmd_export(
                client, config, server,
                output=args.output,
                exclude_system=args.exclude_system,
                include_usage=args.include_usage
            )

        return cmd_import(
            client, config, snapshot,
            dry_run=args.dry_run,
            update_existing=args.update_existing,
            simulate_dependencies=args.simulate_dependencies,
            report_json=args.report_json
        )
    except GatewayError as e:
        print(f"\n✗ {e}")
        return 1
    finally:
        client.disconnect()


if __name__ == '__main__':
    sys.exit(main())
