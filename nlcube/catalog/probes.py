# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Table and column discovery through ordered fallback strategies.

DuckDB's introspection surface differs across versions and configurations,
so each probe is an ordered list of strategies. A strategy is a plain
function of the open connection that returns a list or raises
DiscoveryError. first_success() runs them in order and returns the first
non-empty result. Discovery never raises to its caller.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

import duckdb

from nlcube.catalog.models import ColumnDescriptor, UNKNOWN_TYPE
from nlcube.catalog.sql_qualifier import quote_identifier
from nlcube.core.errors import DiscoveryError

logger = logging.getLogger(__name__)

Strategy = Callable[..., list]


@dataclass(frozen=True)
class NamedStrategy:
    name: str
    run: Strategy


def first_success(strategies: Sequence[NamedStrategy], *args) -> tuple[Optional[str], list]:
    """Run strategies in order, returning (strategy name, result) of the first non-empty one.

    Failures are logged at DEBUG and the chain proceeds. Returns (None, [])
    if every strategy failed or came back empty.
    """
    for strategy in strategies:
        try:
            result = strategy.run(*args)
        except (DiscoveryError, duckdb.Error, ValueError, TypeError, IndexError) as e:
            logger.debug(f"Discovery strategy '{strategy.name}' failed: {e}")
            continue
        if result:
            return strategy.name, result
        logger.debug(f"Discovery strategy '{strategy.name}' returned nothing")
    return None, []


def _query(conn: duckdb.DuckDBPyConnection, sql: str, params: Optional[list] = None) -> list[tuple]:
    try:
        if params:
            return conn.execute(sql, params).fetchall()
        return conn.execute(sql).fetchall()
    except duckdb.Error as e:
        raise DiscoveryError(str(e)) from e


def _as_bool(value) -> bool:
    """Interpret a notnull/nullable flag reported as bool, 0/1 or YES/NO."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().upper() in ("YES", "TRUE", "1", "T", "Y")
    raise DiscoveryError(f"Unrecognized boolean flag: {value!r}")


# =============================================================================
# Table strategies
# =============================================================================

def tables_from_information_schema(conn: duckdb.DuckDBPyConnection) -> list[str]:
    rows = _query(conn, """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_catalog = current_database()
          AND table_schema = current_schema()
          AND table_type IN ('BASE TABLE', 'VIEW')
        ORDER BY table_name
    """)
    return [r[0] for r in rows]


def tables_from_show_tables(conn: duckdb.DuckDBPyConnection) -> list[str]:
    rows = _query(conn, "SHOW TABLES")
    return sorted(r[0] for r in rows)


def tables_from_sqlite_master(conn: duckdb.DuckDBPyConnection) -> list[str]:
    rows = _query(conn, "SELECT name FROM sqlite_master WHERE type IN ('table', 'view') ORDER BY name")
    return [r[0] for r in rows]


def probe_named_tables(names: Iterable[str]) -> Strategy:
    """Build a strategy that keeps the names a zero-row SELECT accepts."""
    candidates = list(names)

    def _probe(conn: duckdb.DuckDBPyConnection) -> list[str]:
        found = []
        for name in candidates:
            try:
                conn.execute(f"SELECT * FROM {quote_identifier(name)} LIMIT 0").fetchall()
            except duckdb.Error:
                continue
            found.append(name)
        return found

    return _probe


class TableDiscoveryProbe:
    """Enumerates user tables of one open database."""

    def __init__(
        self,
        probe_table_names: Optional[Sequence[str]] = None,
        excluded_prefixes: Sequence[str] = ("sqlite_", "duckdb_", "pg_", "information_schema"),
    ):
        self.excluded_prefixes = tuple(p.lower() for p in excluded_prefixes)
        self.strategies: list[NamedStrategy] = [
            NamedStrategy("information_schema", tables_from_information_schema),
            NamedStrategy("show_tables", tables_from_show_tables),
            NamedStrategy("sqlite_master", tables_from_sqlite_master),
        ]
        if probe_table_names:
            self.strategies.append(
                NamedStrategy("conventional_names", probe_named_tables(probe_table_names))
            )

    def _is_user_table(self, name: str) -> bool:
        return not name.lower().startswith(self.excluded_prefixes)

    def _filtered(self, strategy: NamedStrategy) -> NamedStrategy:
        def _run(conn):
            return [n for n in strategy.run(conn) if self._is_user_table(n)]
        return NamedStrategy(strategy.name, _run)

    def discover(self, conn: duckdb.DuckDBPyConnection) -> list[str]:
        """Ordered, de-duplicated table names; empty list if nothing was found."""
        name, tables = first_success([self._filtered(s) for s in self.strategies], conn)
        if name is None:
            logger.info("No tables discovered by any strategy")
            return []
        logger.debug(f"Discovered {len(tables)} tables via {name}")
        return list(dict.fromkeys(tables))


# =============================================================================
# Column strategies
# =============================================================================

def columns_from_information_schema(conn: duckdb.DuckDBPyConnection, table: str) -> list[ColumnDescriptor]:
    rows = _query(conn, """
        SELECT column_name, data_type, is_nullable
        FROM information_schema.columns
        WHERE table_catalog = current_database()
          AND table_schema = current_schema()
          AND table_name = ?
        ORDER BY ordinal_position
    """, [table])
    return [
        ColumnDescriptor(name=name, declared_type=str(data_type), nullable=_as_bool(is_nullable))
        for name, data_type, is_nullable in rows
    ]


def columns_from_table_info(conn: duckdb.DuckDBPyConnection, table: str) -> list[ColumnDescriptor]:
    # cid, name, type, notnull, dflt_value, pk; notnull is bool or 0/1 depending on version
    escaped = table.replace("'", "''")
    rows = _query(conn, f"PRAGMA table_info('{escaped}')")
    rows = sorted(rows, key=lambda r: r[0])
    return [
        ColumnDescriptor(name=row[1], declared_type=str(row[2]), nullable=not _as_bool(row[3]))
        for row in rows
    ]


def columns_from_empty_select(conn: duckdb.DuckDBPyConnection, table: str) -> list[ColumnDescriptor]:
    try:
        result = conn.execute(f"SELECT * FROM {quote_identifier(table)} LIMIT 0")
        description = result.description or []
        result.fetchall()
    except duckdb.Error as e:
        raise DiscoveryError(str(e)) from e
    return [ColumnDescriptor(name=d[0], declared_type=UNKNOWN_TYPE, nullable=True) for d in description]


class ColumnDiscoveryProbe:
    """Lists the columns of one table in ordinal order."""

    def __init__(self):
        self.strategies: list[NamedStrategy] = [
            NamedStrategy("information_schema", columns_from_information_schema),
            NamedStrategy("table_info", columns_from_table_info),
            NamedStrategy("empty_select", columns_from_empty_select),
        ]

    def discover(self, conn: duckdb.DuckDBPyConnection, table: str) -> list[ColumnDescriptor]:
        name, columns = first_success(self.strategies, conn, table)
        if name is None:
            logger.info(f"No columns discovered for table {table}")
            return []
        logger.debug(f"Discovered {len(columns)} columns for {table} via {name}")
        return columns


def discover_tables(conn: duckdb.DuckDBPyConnection, probe_table_names: Optional[Sequence[str]] = None) -> list[str]:
    """Convenience wrapper using default exclusions."""
    return TableDiscoveryProbe(probe_table_names=probe_table_names).discover(conn)


def discover_columns(conn: duckdb.DuckDBPyConnection, table: str) -> list[ColumnDescriptor]:
    return ColumnDiscoveryProbe().discover(conn, table)
