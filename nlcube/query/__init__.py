# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Natural-language and direct SQL query execution."""

from .extraction import extract_candidate, extract_sql, is_degenerate_sql
from .orchestrator import NLQueryOrchestrator, QueryResult

__all__ = [
    "extract_candidate",
    "extract_sql",
    "is_degenerate_sql",
    "NLQueryOrchestrator",
    "QueryResult",
]
