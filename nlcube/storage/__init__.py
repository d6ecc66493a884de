# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Subject storage: directories, DuckDB handles and file ingestion."""

from .duckdb_pool import DuckDBConnectionPool, SubjectConnections, close_all_pools, run_blocking
from .ingest import FileIngestor, sanitize_table_name
from .subjects import Subject, SubjectDirectory

__all__ = [
    "DuckDBConnectionPool",
    "SubjectConnections",
    "close_all_pools",
    "run_blocking",
    "FileIngestor",
    "sanitize_table_name",
    "Subject",
    "SubjectDirectory",
]
