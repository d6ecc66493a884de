# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""nlcube - natural-language SQL over per-subject DuckDB databases.

Each subject (tenant) owns one DuckDB file. A schema catalog discovers the
subjects' tables and columns, a qualifier routes loosely written SQL to the
right subject's tables, and an orchestrator turns questions into SQL through
a pluggable generation backend.

Submodules:
- core: Configuration and error types
- storage: Subject directory, DuckDB handles, file ingestion
- catalog: Discovery probes, schema catalog, SQL qualification
- query: SQL extraction and the NL query orchestrator
- providers: SQL generation backends (Ollama, OpenAI-compatible, Anthropic)
"""

# Catalog
from nlcube.catalog.models import ColumnDescriptor, SchemaSnapshot, TableEntry
from nlcube.catalog.schema_catalog import SchemaCatalog
from nlcube.catalog.sql_qualifier import qualify, qualify_statement
# Core configuration and errors
from nlcube.core.config import Config
from nlcube.core.errors import (
    ExecutionError,
    GenerationError,
    NlCubeError,
    NoDataError,
    UnknownSubjectError,
)
# Query
from nlcube.query.orchestrator import NLQueryOrchestrator, QueryResult
# Storage
from nlcube.storage.duckdb_pool import SubjectConnections
from nlcube.storage.ingest import FileIngestor
from nlcube.storage.subjects import SubjectDirectory

__version__ = "0.1.0"

__all__ = [
    "ColumnDescriptor",
    "SchemaSnapshot",
    "TableEntry",
    "SchemaCatalog",
    "qualify",
    "qualify_statement",
    "Config",
    "ExecutionError",
    "GenerationError",
    "NlCubeError",
    "NoDataError",
    "UnknownSubjectError",
    "NLQueryOrchestrator",
    "QueryResult",
    "SubjectConnections",
    "FileIngestor",
    "SubjectDirectory",
]
