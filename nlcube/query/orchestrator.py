# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Natural-language query orchestration.

Question -> schema context -> model -> extracted SQL -> qualified SQL ->
execution, with one COUNT(*) fallback when an NL-originated statement
fails to execute. Direct SQL goes through the same qualification and
execution but never falls back.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional, TYPE_CHECKING

import duckdb

from nlcube.catalog.models import SchemaSnapshot
from nlcube.catalog.schema_catalog import SchemaCatalog
from nlcube.catalog.sql_qualifier import qualify, quote_identifier
from nlcube.core.config import QueryConfig
from nlcube.core.errors import (
    CatalogError,
    ExecutionError,
    ExtractionError,
    GenerationError,
    NoDataError,
    UnknownSubjectError,
)
from nlcube.query.extraction import extract_candidate, is_degenerate_sql
from nlcube.storage.duckdb_pool import SubjectConnections, run_blocking

if TYPE_CHECKING:
    import pandas as pd
    from nlcube.providers.base import BaseSqlGenerator

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Outcome of one executed statement."""
    sql_used: str
    columns: list[str] = field(default_factory=list)
    rows: list[tuple] = field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0.0
    # Set when the COUNT(*) fallback replaced a failed statement
    fallback_used: bool = False
    original_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sql_used": self.sql_used,
            "columns": list(self.columns),
            "rows": [list(row) for row in self.rows],
            "row_count": self.row_count,
            "execution_time_ms": round(self.execution_time_ms, 3),
            "fallback_used": self.fallback_used,
            "original_error": self.original_error,
        }

    def to_dataframe(self) -> "pd.DataFrame":
        import pandas as pd
        return pd.DataFrame(self.rows, columns=self.columns)


class NLQueryOrchestrator:
    """Drives generation, qualification and execution for one catalog."""

    def __init__(
        self,
        catalog: SchemaCatalog,
        connections: SubjectConnections,
        generator: Optional["BaseSqlGenerator"] = None,
        config: Optional[QueryConfig] = None,
    ):
        self.catalog = catalog
        self.connections = connections
        self.generator = generator
        self.config = config or QueryConfig()
        # The generator is not assumed to be thread-safe
        self._generation_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="nlquery-worker",
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def run_nl_query(self, question: str, subject: str) -> QueryResult:
        """Answer a natural-language question against one subject.

        Raises:
            UnknownSubjectError: Subject neither cataloged nor on disk
            NoDataError: Subject has no tables (the model is not called)
            GenerationError: Backend failure or no usable SQL in its output
            ExtractionError: The model returned something other than one read query
            ExecutionError: Statement failed and the fallback did too
                (carries the original statement's error)
        """
        snapshot = self._snapshot_for(subject)
        if not snapshot.tables_of(subject):
            raise NoDataError(subject)

        context = self.catalog.to_context_document(subject)
        raw_text = self._generate(question, context)
        candidate = extract_candidate(question, raw_text)

        sql = qualify(candidate.extracted_sql, subject, snapshot)
        logger.info(f"[{subject}] Generated SQL: {sql}")

        try:
            return self._execute(subject, sql, read_only=True)
        except ExecutionError as e:
            logger.error(f"[{subject}] Query failed: {e}")
            if not self.config.fallback_enabled:
                raise
            return self._fallback(subject, snapshot, e)

    def run_sql(self, sql: str, subject: str) -> QueryResult:
        """Qualify and run caller-supplied SQL. Engine errors are not recovered.

        Raises:
            UnknownSubjectError: Subject neither cataloged nor on disk
            ExecutionError: The engine's error, unchanged
        """
        snapshot = self._snapshot_for(subject)
        if is_degenerate_sql(sql):
            raise ExecutionError("No SQL statement to execute", sql=sql)
        qualified = qualify(sql, subject, snapshot)
        try:
            return self._execute(subject, qualified)
        except ExecutionError as e:
            logger.error(f"[{subject}] Query failed: {e}")
            raise

    async def arun_nl_query(self, question: str, subject: str) -> QueryResult:
        return await run_blocking(self.run_nl_query, question, subject, executor=self._executor)

    async def arun_sql(self, sql: str, subject: str) -> QueryResult:
        return await run_blocking(self.run_sql, sql, subject, executor=self._executor)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _snapshot_for(self, subject: str) -> SchemaSnapshot:
        snapshot = self.catalog.snapshot()
        if snapshot.has_subject(subject):
            return snapshot

        # Created since the last refresh: discover it now
        if not self.catalog.directory.is_active(subject):
            raise UnknownSubjectError(subject)
        self.catalog.refresh_subject(subject)
        snapshot = self.catalog.snapshot()
        if not snapshot.has_subject(subject):
            raise CatalogError(f"Schema for subject {subject} could not be discovered")
        return snapshot

    def _generate(self, question: str, context: str) -> str:
        if self.generator is None:
            raise GenerationError("No SQL generator configured")
        with self._generation_lock:
            try:
                return self.generator.generate_sql(question, context)
            except GenerationError:
                raise
            except Exception as e:
                raise GenerationError(str(e)) from e

    def _execute(self, subject: str, sql: str, read_only: bool = False) -> QueryResult:
        start = time.perf_counter()
        try:
            with self.connections.connection(subject) as conn:
                if read_only:
                    _require_single_select(conn, sql)
                result = conn.execute(sql)
                description = result.description
                columns = [d[0] for d in description] if description else []
                rows = result.fetchall() if description else []
        except duckdb.Error as e:
            raise ExecutionError(str(e), sql=sql) from e
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.debug(f"[{subject}] {len(rows)} rows in {elapsed_ms:.1f}ms")
        return QueryResult(
            sql_used=sql,
            columns=columns,
            rows=rows,
            row_count=len(rows),
            execution_time_ms=elapsed_ms,
        )

    def _fallback_table(self, snapshot: SchemaSnapshot, subject: str) -> Optional[str]:
        for preferred in self.config.fallback_tables:
            entry = snapshot.table(subject, preferred)
            if entry is not None:
                return entry.name
        tables = snapshot.tables_of(subject)
        return tables[0] if tables else None

    def _fallback(self, subject: str, snapshot: SchemaSnapshot, error: ExecutionError) -> QueryResult:
        table = self._fallback_table(snapshot, subject)
        if table is None:
            raise error

        sql = f"SELECT COUNT(*) FROM {quote_identifier(subject)}.{quote_identifier(table)};"
        logger.info(f"[{subject}] Falling back to: {sql}")
        try:
            result = self._execute(subject, sql)
        except ExecutionError as fallback_error:
            logger.error(f"[{subject}] Fallback query failed: {fallback_error}")
            raise error

        result.fallback_used = True
        result.original_error = str(error)
        return result


def _require_single_select(conn: duckdb.DuckDBPyConnection, sql: str) -> None:
    """Reject anything but one read query. Parse errors surface as duckdb.Error."""
    statements = conn.extract_statements(sql)
    if len(statements) != 1 or statements[0].type != duckdb.StatementType.SELECT:
        kinds = ", ".join(s.type.name for s in statements) or "none"
        raise ExtractionError(f"Model returned a statement that is not a single query ({kinds})", raw_text=sql)
