# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Pytest configuration and shared fixtures.

Subjects live in DuckDB files under tmp_path; SQL generation uses stub
generators so no test needs a model server or API key.
"""

from pathlib import Path
from typing import Generator

import pytest

from nlcube.catalog.models import ColumnDescriptor, SchemaSnapshot, TableEntry
from nlcube.catalog.schema_catalog import SchemaCatalog
from nlcube.core.config import CatalogConfig, QueryConfig
from nlcube.providers.base import BaseSqlGenerator
from nlcube.query.orchestrator import NLQueryOrchestrator
from nlcube.storage.duckdb_pool import SubjectConnections
from nlcube.storage.subjects import SubjectDirectory


class StubGenerator(BaseSqlGenerator):
    """Returns canned model output and records every prompt it receives."""

    name = "stub"

    def __init__(self, response: str = "SELECT 1;"):
        super().__init__(model="stub")
        self.response = response
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def directory(data_dir) -> SubjectDirectory:
    return SubjectDirectory(data_dir)


@pytest.fixture
def connections(directory) -> Generator[SubjectConnections, None, None]:
    conns = SubjectConnections(directory)
    yield conns
    conns.close_all()


@pytest.fixture
def sales_subject(directory, connections) -> str:
    """Subject 'sales' with orders(order_id INTEGER NOT NULL, total_amount DOUBLE)."""
    directory.create("sales")
    with connections.connection("sales") as conn:
        conn.execute("CREATE TABLE orders (order_id INTEGER NOT NULL, total_amount DOUBLE)")
        conn.execute("INSERT INTO orders VALUES (1, 10.5), (2, 20.0), (3, 7.25)")
    return "sales"


@pytest.fixture
def catalog(directory, connections) -> SchemaCatalog:
    return SchemaCatalog(directory, connections, CatalogConfig())


@pytest.fixture
def refreshed_catalog(catalog, sales_subject) -> SchemaCatalog:
    catalog.refresh()
    return catalog


@pytest.fixture
def stub_generator() -> StubGenerator:
    return StubGenerator()


@pytest.fixture
def orchestrator(refreshed_catalog, connections, stub_generator) -> Generator[NLQueryOrchestrator, None, None]:
    orch = NLQueryOrchestrator(refreshed_catalog, connections, stub_generator, QueryConfig())
    yield orch
    orch.close()


def build_snapshot(subject: str, tables: dict[str, list[tuple[str, str]]]) -> SchemaSnapshot:
    """Build a snapshot from {table: [(column, type), ...]}."""
    entries = {
        name: TableEntry(
            name=name,
            columns=tuple(ColumnDescriptor(name=c, declared_type=t) for c, t in columns),
        )
        for name, columns in tables.items()
    }
    return SchemaSnapshot(subjects={subject: entries})


@pytest.fixture
def make_snapshot():
    return build_snapshot


@pytest.fixture
def sales_snapshot() -> SchemaSnapshot:
    return build_snapshot("sales", {
        "orders": [("order_id", "INTEGER"), ("customer_id", "INTEGER"), ("OrderDate", "DATE"),
                   ("total_amount", "DOUBLE")],
        "customers": [("customer_id", "INTEGER"), ("name", "VARCHAR")],
    })
