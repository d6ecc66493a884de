# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Schema catalog, discovery probes and SQL qualification."""

from .models import (
    ColumnDescriptor,
    GeneratedSqlCandidate,
    QualifiedStatement,
    SchemaSnapshot,
    TableEntry,
)
from .probes import (
    ColumnDiscoveryProbe,
    TableDiscoveryProbe,
    discover_columns,
    discover_tables,
)
from .rwlock import ReadWriteLock
from .schema_catalog import SchemaCatalog
from .sql_qualifier import qualify, qualify_statement

__all__ = [
    # Models
    "ColumnDescriptor",
    "GeneratedSqlCandidate",
    "QualifiedStatement",
    "SchemaSnapshot",
    "TableEntry",
    # Probes
    "ColumnDiscoveryProbe",
    "TableDiscoveryProbe",
    "discover_columns",
    "discover_tables",
    # Catalog
    "ReadWriteLock",
    "SchemaCatalog",
    "qualify",
    "qualify_statement",
]
