"""
Snapshot model: tag categories, tags and the snapshot that holds them.

All types are frozen so a loaded snapshot cannot be changed by the code that
reconciles it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Cardinality(Enum):
    """How many tags of one category a single object may carry."""
    SINGLE = "Single"
    MULTIPLE = "Multiple"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "Cardinality":
        """Parse 'Single', 'SINGLE', 'multiple', ... into a Cardinality."""
        if isinstance(value, Cardinality):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown cardinality: {value!r}")


@dataclass(frozen=True)
class TagCategory:
    name: str
    description: str = ""
    cardinality: Cardinality = Cardinality.SINGLE
    entity_types: tuple = ()
    remote_id: Optional[str] = None


@dataclass(frozen=True)
class Tag:
    name: str
    category_name: str
    description: str = ""
    remote_id: Optional[str] = None
    # Only populated by a usage export
    assignment_count: Optional[int] = None
    assigned_entity_types: Optional[tuple] = None

    @property
    def key(self) -> tuple:
        """Identity of a tag within a taxonomy: (name, category name)."""
        return (self.name, self.category_name)


@dataclass(frozen=True)
class ExportMetadata:
    export_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source_server: str = ""
    tool_version: str = ""
    includes_usage_data: bool = False
    excluded_system_categories: bool = False


@dataclass(frozen=True)
class Statistics:
    """Counts captured at export time. Informational only."""
    total_categories: int = 0
    total_tags: int = 0
    excluded_categories: int = 0


@dataclass(frozen=True)
class Snapshot:
    metadata: ExportMetadata = field(default_factory=ExportMetadata)
    statistics: Statistics = field(default_factory=Statistics)
    categories: tuple = ()
    tags: tuple = ()
