# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for the subject directory and per-subject DuckDB handles."""

import duckdb
import pytest

from nlcube.core.errors import SubjectError, UnknownSubjectError
from nlcube.storage.duckdb_pool import DuckDBConnectionPool, SubjectConnections
from nlcube.storage.subjects import SubjectDirectory


class TestSubjectNames:
    """Name validation."""

    @pytest.mark.parametrize("name", ["sales", "Sales_2024", "a", "_x"])
    def test_valid(self, name):
        assert SubjectDirectory.validate_name(name) == name

    @pytest.mark.parametrize("name", ["", "has space", "dash-name", "dot.name", "../escape", "naïve"])
    def test_invalid(self, name):
        with pytest.raises(SubjectError):
            SubjectDirectory.validate_name(name)

    @pytest.mark.parametrize("name", ["main", "TEMP", "information_schema"])
    def test_reserved(self, name):
        with pytest.raises(SubjectError, match="reserved"):
            SubjectDirectory.validate_name(name)


class TestSubjectDirectory:
    """Create, list and delete subjects."""

    def test_layout(self, directory, data_dir):
        subject = directory.create("sales")
        assert subject.directory == data_dir / "sales"
        assert subject.database_path == data_dir / "sales" / "sales.duckdb"
        assert subject.database_path.is_file()
        assert subject.is_active

    def test_create_existing(self, directory):
        directory.create("sales")
        with pytest.raises(SubjectError, match="already exists"):
            directory.create("sales")

    def test_list_only_active_subjects(self, directory, data_dir):
        directory.create("sales")
        directory.create("hr")
        (data_dir / "no_db_file").mkdir()
        (data_dir / "bad name").mkdir()
        (data_dir / "stray.txt").write_text("x")
        assert directory.list_subjects() == ["hr", "sales"]

    def test_list_missing_data_dir(self, tmp_path):
        assert SubjectDirectory(tmp_path / "missing").list_subjects() == []

    def test_custom_extension(self, data_dir):
        directory = SubjectDirectory(data_dir, database_extension=".db")
        assert directory.create("x").database_path.name == "x.db"
        assert directory.list_subjects() == ["x"]

    def test_exists_and_is_active(self, directory, data_dir):
        assert not directory.exists("sales")
        (data_dir / "sales").mkdir()
        assert directory.exists("sales")
        assert not directory.is_active("sales")
        assert not directory.is_active("not valid")

    def test_delete(self, directory, connections, data_dir):
        directory.create("sales")
        with connections.connection("sales") as conn:
            conn.execute("CREATE TABLE t (x INTEGER)")
        directory.delete("sales", connections=connections)
        assert not (data_dir / "sales").exists()
        assert connections.open_subjects() == []

    def test_delete_unknown(self, directory):
        with pytest.raises(UnknownSubjectError):
            directory.delete("nowhere")

    def test_file_count(self, directory, data_dir):
        directory.create("sales")
        (data_dir / "sales" / "orders.csv").write_text("a\n1\n")
        assert directory.file_count("sales") == 2


class TestConnections:
    """Lazily opened, serialized handles."""

    def test_subject_is_the_catalog_name(self, directory, connections):
        directory.create("sales")
        with connections.connection("sales") as conn:
            conn.execute("CREATE TABLE orders (x INTEGER)")
            conn.execute('INSERT INTO "sales"."orders" VALUES (1)')
            assert conn.execute('SELECT COUNT(*) FROM "sales"."orders"').fetchone() == (1,)

    def test_handle_reused(self, directory, connections):
        directory.create("sales")
        assert connections.pool("sales") is connections.pool("sales")
        assert connections.open_subjects() == ["sales"]

    def test_unknown_subject(self, connections):
        with pytest.raises(UnknownSubjectError):
            connections.pool("nowhere")

    def test_close_reopens_on_next_use(self, directory, connections):
        directory.create("sales")
        first = connections.pool("sales")
        connections.close("sales")
        assert first.closed
        assert connections.pool("sales") is not first

    def test_closed_pool_rejects_use(self, tmp_path):
        pool = DuckDBConnectionPool(tmp_path / "x.duckdb")
        pool.close()
        with pytest.raises(RuntimeError):
            with pool.connection():
                pass

    def test_pool_context_manager(self, tmp_path):
        with DuckDBConnectionPool(tmp_path / "x.duckdb") as pool:
            with pool.connection() as conn:
                assert conn.execute("SELECT 42").fetchone() == (42,)
        assert pool.closed

    def test_read_only(self, directory):
        directory.create("sales")
        connections = SubjectConnections(directory, read_only=True)
        try:
            with connections.connection("sales") as conn:
                with pytest.raises(duckdb.Error):
                    conn.execute("CREATE TABLE t (x INTEGER)")
        finally:
            connections.close_all()
