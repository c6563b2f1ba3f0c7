"""In-memory gateway fake for testing.

Implements the TaxonomyGateway protocol against two dicts, records every
mutating call, and can be told to fail specific items or drop the connection.
"""

from dataclasses import replace
from datetime import datetime, timezone

from vcenter_tags.gateway import GatewayConnectionError, GatewayError
from vcenter_tags.model import Cardinality, ExportMetadata, Snapshot, Statistics, Tag, TagCategory


class InMemoryGateway:
    def __init__(self, categories=(), tags=(), assignments=None, **_client_kwargs):
        self.categories = {}
        self.tags = {}
        self.assignments = dict(assignments or {})
        self.calls = []
        self.fail_items = {}
        self.lose_connection_on = set()
        self.refuse_connection = False
        self.connected = False
        self._next_id = 1
        for c in categories:
            self.add_category(c)
        for t in tags:
            self.add_tag(t)

    # Seeding helpers

    def _new_id(self, prefix):
        value = f"urn:vmomi:{prefix}:{self._next_id}:GLOBAL"
        self._next_id += 1
        return value

    def add_category(self, category):
        stored = replace(category, remote_id=category.remote_id or self._new_id("InventoryServiceCategory"))
        self.categories[stored.name] = stored
        return stored

    def add_tag(self, tag):
        stored = replace(tag, remote_id=tag.remote_id or self._new_id("InventoryServiceTag"),
                         assignment_count=None, assigned_entity_types=None)
        self.tags[stored.key] = stored
        return stored

    def _check(self, operation, name):
        if (operation, name) in self.lose_connection_on:
            raise GatewayConnectionError("session expired")
        if (operation, name) in self.fail_items:
            raise GatewayError(self.fail_items[(operation, name)])

    # Session

    def connect(self):
        if self.refuse_connection:
            raise GatewayConnectionError("Authentication failed: invalid credentials")
        self.connected = True

    def disconnect(self):
        self.connected = False

    # TaxonomyGateway

    def list_categories(self):
        self.calls.append(("list_categories",))
        self._check("list_categories", None)
        return list(self.categories.values())

    def list_tags(self):
        self.calls.append(("list_tags",))
        self._check("list_tags", None)
        return list(self.tags.values())

    def create_category(self, category):
        self.calls.append(("create_category", category.name))
        self._check("create_category", category.name)
        if category.name in self.categories:
            raise GatewayError(f"Category {category.name} already exists")
        return self.add_category(replace(category, remote_id=None))

    def update_category(self, name, fields):
        self.calls.append(("update_category", name, dict(fields)))
        self._check("update_category", name)
        current = self.categories[name]
        changes = {}
        if 'description' in fields:
            changes['description'] = fields['description']
        if 'cardinality' in fields:
            changes['cardinality'] = Cardinality.parse(fields['cardinality'])
        updated = replace(current, **changes)
        self.categories[name] = updated
        return updated

    def create_tag(self, tag):
        self.calls.append(("create_tag", tag.name, tag.category_name))
        self._check("create_tag", tag.name)
        if tag.category_name not in self.categories:
            raise GatewayError(f"Category {tag.category_name} does not exist")
        if tag.key in self.tags:
            raise GatewayError(f"Tag {tag.name} already exists")
        return self.add_tag(replace(tag, remote_id=None))

    def update_tag(self, name, category_name, fields):
        self.calls.append(("update_tag", name, category_name, dict(fields)))
        self._check("update_tag", name)
        key = (name, category_name)
        updated = replace(self.tags[key], description=fields.get('description', ''))
        self.tags[key] = updated
        return updated

    def list_assignments(self, tag):
        self.calls.append(("list_assignments", tag.name))
        self._check("list_assignments", tag.name)
        attached = self.assignments.get(tag.key, [])
        return len(attached), sorted(set(attached))

    @property
    def mutations(self):
        return [c for c in self.calls if c[0] in (
            "create_category", "update_category", "create_tag", "update_tag")]


def category(name, description="", cardinality=Cardinality.SINGLE, entity_types=()):
    return TagCategory(name=name, description=description, cardinality=cardinality,
                       entity_types=tuple(entity_types))


def tag(name, category_name, description=""):
    return Tag(name=name, category_name=category_name, description=description)


def make_snapshot(categories=(), tags=(), **metadata):
    """Build a snapshot the way a file load would."""
    return Snapshot(
        metadata=ExportMetadata(
            export_date=metadata.pop('export_date', datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)),
            source_server=metadata.pop('source_server', 'vc01.example.com'),
            tool_version=metadata.pop('tool_version', '1.0.0'),
            **metadata
        ),
        statistics=Statistics(total_categories=len(categories), total_tags=len(tags)),
        categories=tuple(categories),
        tags=tuple(tags)
    )
