# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Bulk file ingestion into a subject database.

Loading only writes the table. The caller refreshes the schema catalog
afterwards so the new table becomes visible to qualification.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import Optional

import duckdb

from nlcube.core.errors import IngestError, UnknownSubjectError
from nlcube.storage.duckdb_pool import SubjectConnections
from nlcube.storage.subjects import SubjectDirectory

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {
    ".csv": "read_csv_auto('{path}', HEADER=true)",
    ".tsv": "read_csv_auto('{path}', HEADER=true, delim='\\t')",
    ".parquet": "read_parquet('{path}', BINARY_AS_STRING=true)",
}


def sanitize_table_name(name: str) -> str:
    """Replace anything outside [A-Za-z0-9_] with underscores.

    Raises:
        IngestError: If nothing usable remains
    """
    cleaned = re.sub(r"[^A-Za-z0-9_]", "_", name.strip())
    if not cleaned.strip("_"):
        raise IngestError(f"Invalid table name: {name!r}")
    if cleaned[0].isdigit():
        cleaned = f"t_{cleaned}"
    return cleaned


class FileIngestor:
    """Loads CSV/Parquet files as tables of a subject database."""

    def __init__(self, directory: SubjectDirectory, connections: SubjectConnections):
        self.directory = directory
        self.connections = connections

    def load_file_as_table(
        self,
        path: str | Path,
        table_name: Optional[str],
        subject: str,
        copy_to_subject: bool = True,
    ) -> int:
        """Create (or replace) a table from a file. Returns the loaded row count.

        Args:
            path: CSV, TSV or Parquet file
            table_name: Target table; defaults to the file stem
            subject: Target subject
            copy_to_subject: Keep a copy of the file in the subject directory

        Raises:
            UnknownSubjectError: If the subject is not active
            IngestError: If the file is missing, unsupported or unreadable
        """
        if not self.directory.is_active(subject):
            raise UnknownSubjectError(subject)

        source = Path(path)
        if not source.is_file():
            raise IngestError(f"File not found: {source}")
        reader = SUPPORTED_EXTENSIONS.get(source.suffix.lower())
        if reader is None:
            raise IngestError(f"Unsupported file type: {source.suffix or source.name}")

        table = sanitize_table_name(table_name or source.stem)

        if copy_to_subject:
            target_dir = self.directory.path_for(subject)
            if source.resolve().parent != target_dir.resolve():
                shutil.copy2(source, target_dir / source.name)
                source = target_dir / source.name

        escaped = str(source.resolve()).replace("'", "''")
        from_clause = reader.format(path=escaped)
        try:
            with self.connections.connection(subject) as conn:
                conn.execute(f'CREATE OR REPLACE TABLE "{table}" AS SELECT * FROM {from_clause}')
                row_count = conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]
        except duckdb.Error as e:
            raise IngestError(f"Failed to load {source.name} into {subject}.{table}: {e}") from e

        logger.info(f"Loaded {row_count} rows from {source.name} into {subject}.{table}")
        return int(row_count)
