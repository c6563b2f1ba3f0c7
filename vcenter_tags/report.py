"""
Reconciliation report: one outcome per category/tag plus per-kind counters.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class EntityKind(Enum):
    CATEGORY = "category"
    TAG = "tag"


class OutcomeKind(Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_UNCHANGED = "skipped_unchanged"
    SKIPPED_EXISTS = "skipped_exists"
    FAILED = "failed"


@dataclass(frozen=True)
class ItemOutcome:
    """What happened to a single category or tag."""
    entity: EntityKind
    name: str
    kind: OutcomeKind
    category_name: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def created(cls, entity, name, category_name=None):
        return cls(entity, name, OutcomeKind.CREATED, category_name)

    @classmethod
    def updated(cls, entity, name, category_name=None, reason=None):
        return cls(entity, name, OutcomeKind.UPDATED, category_name, reason)

    @classmethod
    def skipped_unchanged(cls, entity, name, category_name=None):
        return cls(entity, name, OutcomeKind.SKIPPED_UNCHANGED, category_name)

    @classmethod
    def skipped_exists(cls, entity, name, category_name=None):
        return cls(entity, name, OutcomeKind.SKIPPED_EXISTS, category_name)

    @classmethod
    def failed(cls, entity, name, reason: str, category_name=None):
        return cls(entity, name, OutcomeKind.FAILED, category_name, reason)

    @property
    def label(self) -> str:
        """Display name: 'Category/Tag' for tags, plain name for categories."""
        if self.entity is EntityKind.TAG and self.category_name:
            return f"{self.category_name}/{self.name}"
        return self.name


@dataclass
class OutcomeCounts:
    created: int = 0
    updated: int = 0
    skipped_unchanged: int = 0
    skipped_exists: int = 0
    failed: int = 0

    def add(self, kind: OutcomeKind) -> None:
        setattr(self, kind.value, getattr(self, kind.value) + 1)

    @property
    def skipped(self) -> int:
        return self.skipped_unchanged + self.skipped_exists

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped + self.failed

    def to_dict(self) -> dict:
        return {k.value: getattr(self, k.value) for k in OutcomeKind}


@dataclass
class ReconciliationReport:
    """
    Aggregated result of one reconciliation run.

    Dry runs and live runs produce the same structure, so the report of a
    dry run can be compared with the report of the live run that follows it.
    """
    dry_run: bool = False
    update_existing: bool = False
    categories: OutcomeCounts = field(default_factory=OutcomeCounts)
    tags: OutcomeCounts = field(default_factory=OutcomeCounts)
    outcomes: list = field(default_factory=list)
    aborted: Optional[str] = None

    def record(self, outcome: ItemOutcome) -> ItemOutcome:
        """Add an outcome and bump the matching counter."""
        self.outcomes.append(outcome)
        counts = self.categories if outcome.entity is EntityKind.CATEGORY else self.tags
        counts.add(outcome.kind)
        return outcome

    def counts_for(self, entity: EntityKind) -> OutcomeCounts:
        return self.categories if entity is EntityKind.CATEGORY else self.tags

    @property
    def failures(self) -> list:
        return [o for o in self.outcomes if o.kind is OutcomeKind.FAILED]

    @property
    def has_failures(self) -> bool:
        return self.categories.failed > 0 or self.tags.failed > 0

    @property
    def exit_code(self) -> int:
        """0 when nothing failed and the run completed, 1 otherwise."""
        if self.aborted or self.has_failures:
            return 1
        return 0

    def to_dict(self) -> dict:
        return {
            "mode": "dry_run" if self.dry_run else "execute",
            "update_existing": self.update_existing,
            "aborted": self.aborted,
            "summary": {
                "categories": self.categories.to_dict(),
                "tags": self.tags.to_dict(),
            },
            "results": [
                {
                    "entity": o.entity.value,
                    "name": o.name,
                    "category_name": o.category_name,
                    "outcome": o.kind.value,
                    "reason": o.reason,
                }
                for o in self.outcomes
            ],
        }
