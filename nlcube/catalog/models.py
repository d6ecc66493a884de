# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Immutable schema catalog data model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional

UNKNOWN_TYPE = "UNKNOWN"

# TableEntry.source values
SOURCE_DISCOVERED = "discovered"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class ColumnDescriptor:
    """Metadata for a single column.

    declared_type is the engine's reported type string. UNKNOWN means no
    probe could determine it.
    """
    name: str
    declared_type: str = UNKNOWN_TYPE
    nullable: bool = True

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.declared_type, "nullable": self.nullable}


@dataclass(frozen=True)
class TableEntry:
    """A table and its columns in ordinal position order."""
    name: str
    columns: tuple[ColumnDescriptor, ...] = ()
    # "discovered" for probe results, "fallback" for configured stand-in schemas
    source: str = SOURCE_DISCOVERED

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def is_fallback(self) -> bool:
        return self.source == SOURCE_FALLBACK

    def column(self, name: str) -> Optional[ColumnDescriptor]:
        """Case-insensitive column lookup."""
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    def to_dict(self) -> dict:
        return {
            "table": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "source": self.source,
        }


@dataclass(frozen=True)
class SchemaSnapshot:
    """subject -> {table name -> TableEntry}, swapped as a unit on refresh.

    Nothing inside a snapshot is mutated after construction. A refresh
    builds a new snapshot and replaces the old one.
    """
    subjects: Mapping[str, Mapping[str, TableEntry]] = field(default_factory=dict)
    last_refreshed: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "SchemaSnapshot":
        return cls(subjects={}, last_refreshed=None)

    def with_subject(self, subject: str, tables: Mapping[str, TableEntry]) -> "SchemaSnapshot":
        """New snapshot with one subject replaced (or added)."""
        subjects = dict(self.subjects)
        subjects[subject] = dict(tables)
        return SchemaSnapshot(subjects=subjects, last_refreshed=datetime.now(timezone.utc))

    def without_subject(self, subject: str) -> "SchemaSnapshot":
        subjects = {k: v for k, v in self.subjects.items() if k != subject}
        return SchemaSnapshot(subjects=subjects, last_refreshed=self.last_refreshed)

    def has_subject(self, subject: str) -> bool:
        return subject in self.subjects

    def tables_of(self, subject: str) -> list[str]:
        tables = self.subjects.get(subject)
        if not tables:
            return []
        return list(tables.keys())

    def table(self, subject: str, table: str) -> Optional[TableEntry]:
        """Case-insensitive table lookup."""
        tables = self.subjects.get(subject)
        if not tables:
            return None
        entry = tables.get(table)
        if entry is not None:
            return entry
        lowered = table.lower()
        for name, candidate in tables.items():
            if name.lower() == lowered:
                return candidate
        return None

    def columns_of(self, subject: str, table: str) -> Optional[list[ColumnDescriptor]]:
        entry = self.table(subject, table)
        if entry is None:
            return None
        return list(entry.columns)

    def column_names(self, subject: str) -> list[str]:
        """All distinct column names of a subject, in table then ordinal order."""
        seen: dict[str, None] = {}
        for entry in (self.subjects.get(subject) or {}).values():
            for col in entry.columns:
                seen.setdefault(col.name, None)
        return list(seen)


@dataclass(frozen=True)
class QualifiedStatement:
    """SQL before and after qualification for one subject."""
    original_sql: str
    rewritten_sql: str
    target_subject: str

    @property
    def changed(self) -> bool:
        return self.original_sql != self.rewritten_sql


@dataclass(frozen=True)
class GeneratedSqlCandidate:
    """A question, the raw model text and the SQL extracted from it."""
    question: str
    raw_model_text: str
    extracted_sql: str
