# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Schema catalog: per-subject table/column cache over DuckDB subject databases.

The catalog owns one SchemaSnapshot at a time. Readers take the read lock
only long enough to grab the current snapshot; refresh does all discovery
outside the lock and takes the write lock for the final swap.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional

import duckdb

from nlcube.catalog.models import (
    SOURCE_FALLBACK,
    ColumnDescriptor,
    SchemaSnapshot,
    TableEntry,
)
from nlcube.catalog.probes import ColumnDiscoveryProbe, TableDiscoveryProbe
from nlcube.catalog.rwlock import ReadWriteLock
from nlcube.catalog.sql_qualifier import qualify, quote_identifier
from nlcube.core.config import CatalogConfig
from nlcube.core.errors import CatalogError, NlCubeError, UnknownSubjectError
from nlcube.storage.duckdb_pool import SubjectConnections, run_blocking
from nlcube.storage.subjects import SubjectDirectory

logger = logging.getLogger(__name__)

NO_SAMPLE = "No sample available"

# Per-subject failures that must not abort a whole refresh
_SUBJECT_FAILURES = (duckdb.Error, OSError, RuntimeError, NlCubeError)


class SchemaCatalog:
    """Concurrently readable cache of subject -> {table -> [column]}."""

    def __init__(
        self,
        directory: SubjectDirectory,
        connections: SubjectConnections,
        config: Optional[CatalogConfig] = None,
    ):
        self.directory = directory
        self.connections = connections
        self.config = config or CatalogConfig()

        self.table_probe = TableDiscoveryProbe(
            probe_table_names=self.config.probe_table_names,
            excluded_prefixes=self.config.excluded_table_prefixes,
        )
        self.column_probe = ColumnDiscoveryProbe()

        self._snapshot = SchemaSnapshot.empty()
        self._lock = ReadWriteLock()
        # Serializes refreshers against each other; readers never wait on it
        self._refresh_lock = threading.Lock()

        self._fallback_schemas = {
            name.lower(): tuple(
                ColumnDescriptor(name=c.name, declared_type=c.type, nullable=c.nullable)
                for c in columns
            )
            for name, columns in self.config.fallback_schemas.items()
        }

    # -------------------------------------------------------------------------
    # Snapshot access
    # -------------------------------------------------------------------------

    def snapshot(self) -> SchemaSnapshot:
        """The current snapshot. Never mutated; safe to hold across calls."""
        with self._lock.read():
            return self._snapshot

    def _swap(self, snapshot: SchemaSnapshot) -> None:
        with self._lock.write():
            self._snapshot = snapshot

    @property
    def last_refreshed(self) -> Optional[datetime]:
        return self.snapshot().last_refreshed

    def subjects(self) -> list[str]:
        return sorted(self.snapshot().subjects)

    def has_subject(self, subject: str) -> bool:
        return self.snapshot().has_subject(subject)

    def tables_of(self, subject: str) -> list[str]:
        return self.snapshot().tables_of(subject)

    def columns_of(self, subject: str, table: str) -> Optional[list[ColumnDescriptor]]:
        return self.snapshot().columns_of(subject, table)

    def has_table(self, subject: str, table: str) -> bool:
        return self.snapshot().table(subject, table) is not None

    def qualify(self, sql: str, subject: str) -> str:
        return qualify(sql, subject, self.snapshot())

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    def refresh(self) -> None:
        """Rediscover every active subject and swap in a new snapshot.

        A subject whose database cannot be opened or probed keeps its entry
        from the previous snapshot (or stays absent if it never had one).

        Raises:
            CatalogError: If the data directory itself cannot be listed
        """
        with self._refresh_lock:
            try:
                subjects = self.directory.list_subjects()
            except OSError as e:
                raise CatalogError(f"Cannot list subjects in {self.directory.data_dir}: {e}") from e

            previous = self.snapshot()
            discovered: dict[str, dict[str, TableEntry]] = {}
            for subject in subjects:
                try:
                    discovered[subject] = self._discover_subject(subject)
                except _SUBJECT_FAILURES as e:
                    logger.warning(f"Schema refresh failed for subject {subject}: {e}")
                    if previous.has_subject(subject):
                        discovered[subject] = dict(previous.subjects[subject])

            self._swap(SchemaSnapshot(subjects=discovered, last_refreshed=datetime.now(timezone.utc)))

        total = sum(len(t) for t in discovered.values())
        logger.info(f"Schema catalog refreshed: {len(discovered)} subjects, {total} tables")

    def refresh_subject(self, subject: str) -> None:
        """Rediscover one subject; other subjects keep their current entries.

        Raises:
            UnknownSubjectError: If the subject is not active on disk
        """
        if not self.directory.is_active(subject):
            raise UnknownSubjectError(subject)

        with self._refresh_lock:
            try:
                tables = self._discover_subject(subject)
            except _SUBJECT_FAILURES as e:
                logger.warning(f"Schema refresh failed for subject {subject}: {e}")
                return
            # Read the pointer again under the refresh lock so no other swap is lost
            self._swap(self.snapshot().with_subject(subject, tables))
        logger.info(f"Refreshed subject {subject}: {len(tables)} tables")

    def forget(self, subject: str) -> None:
        """Drop a subject from the snapshot (e.g. after deletion)."""
        with self._refresh_lock:
            current = self.snapshot()
            if current.has_subject(subject):
                self._swap(current.without_subject(subject))
                logger.debug(f"Forgot subject {subject}")

    async def arefresh(self, executor: Optional[ThreadPoolExecutor] = None) -> None:
        await run_blocking(self.refresh, executor=executor)

    async def arefresh_subject(self, subject: str, executor: Optional[ThreadPoolExecutor] = None) -> None:
        await run_blocking(self.refresh_subject, subject, executor=executor)

    def _discover_subject(self, subject: str) -> dict[str, TableEntry]:
        tables: dict[str, TableEntry] = {}
        with self.connections.connection(subject) as conn:
            for name in self.table_probe.discover(conn):
                columns = self.column_probe.discover(conn, name)
                entry = TableEntry(name=name, columns=tuple(columns))
                if not columns:
                    entry = self._fallback_entry(subject, name) or entry
                tables[name] = entry
        return tables

    def _fallback_entry(self, subject: str, table: str) -> Optional[TableEntry]:
        columns = self._fallback_schemas.get(table.lower())
        if not columns:
            return None
        logger.warning(
            f"No columns discovered for {subject}.{table}; using configured fallback schema"
        )
        return TableEntry(name=table, columns=columns, source=SOURCE_FALLBACK)

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def to_context_document(self, subject: str) -> str:
        """Markdown schema description of one subject for SQL generation.

        Sample rows are read live; a failed sample renders as NO_SAMPLE.

        Raises:
            UnknownSubjectError: If the subject is not in the snapshot
        """
        snapshot = self.snapshot()
        if not snapshot.has_subject(subject):
            raise UnknownSubjectError(subject)

        lines = [
            "# DATABASE SCHEMA",
            "",
            f"## Subject: {subject}",
            "",
            f"Always reference tables as {quote_identifier(subject)}.<table>.",
        ]

        tables = snapshot.subjects[subject]
        if not tables:
            lines.extend(["", "_No tables._"])

        for name, entry in tables.items():
            qualified = f"{quote_identifier(subject)}.{quote_identifier(name)}"
            lines.extend(["", f"### Table: {qualified}"])
            if entry.is_fallback:
                lines.append("_(assumed schema: columns could not be discovered)_")
            lines.extend([
                "",
                "| Column Name | Data Type | Nullable |",
                "|-------------|-----------|----------|",
            ])
            for col in entry.columns:
                nullable = "YES" if col.nullable else "NO"
                lines.append(f"| {_cell(col.name)} | {_cell(col.declared_type)} | {nullable} |")

            if self.config.sample_rows > 0:
                lines.extend(["", "#### Sample Data:", ""])
                lines.extend(self._sample_lines(subject, qualified))

        return "\n".join(lines) + "\n"

    def _sample_lines(self, subject: str, qualified_table: str) -> list[str]:
        try:
            with self.connections.connection(subject) as conn:
                result = conn.execute(
                    f"SELECT * FROM {qualified_table} LIMIT {int(self.config.sample_rows)}"
                )
                columns = [d[0] for d in result.description or []]
                rows = result.fetchall()
        except _SUBJECT_FAILURES as e:
            logger.debug(f"Sampling {qualified_table} failed: {e}")
            return [NO_SAMPLE]

        if not columns or not rows:
            return [NO_SAMPLE]
        lines = [
            "| " + " | ".join(_cell(c) for c in columns) + " |",
            "|" + "|".join("---" for _ in columns) + "|",
        ]
        for row in rows:
            lines.append("| " + " | ".join(_cell(v) for v in row) + " |")
        return lines

    def to_ddl(self, subject: Optional[str] = None) -> str:
        """CREATE TABLE statements for one subject, or every subject.

        Raises:
            UnknownSubjectError: If a named subject is not in the snapshot
        """
        snapshot = self.snapshot()
        if subject is not None and not snapshot.has_subject(subject):
            raise UnknownSubjectError(subject)
        subjects = [subject] if subject is not None else sorted(snapshot.subjects)

        statements = []
        for name in subjects:
            for entry in snapshot.subjects[name].values():
                statements.append(_create_table(name, entry))
        return "\n\n".join(statements)


def _create_table(subject: str, entry: TableEntry) -> str:
    column_defs = []
    for col in entry.columns:
        definition = f"    {quote_identifier(col.name)} {col.declared_type}"
        if not col.nullable:
            definition += " NOT NULL"
        column_defs.append(definition)
    header = f"CREATE TABLE {quote_identifier(subject)}.{quote_identifier(entry.name)}"
    if not column_defs:
        return f"{header} ();"
    return f"{header} (\n" + ",\n".join(column_defs) + "\n);"


def _cell(value) -> str:
    if value is None:
        return "NULL"
    return str(value).replace("|", "\\|").replace("\n", " ")
