# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Configuration and shared error types."""

from .config import (
    CatalogConfig,
    Config,
    FallbackColumn,
    LLMConfig,
    QueryConfig,
    StorageConfig,
)
from .errors import (
    CatalogError,
    DiscoveryError,
    ExecutionError,
    ExtractionError,
    GenerationError,
    IngestError,
    NlCubeError,
    NoDataError,
    SubjectError,
    UnknownSubjectError,
)

__all__ = [
    "CatalogConfig",
    "Config",
    "FallbackColumn",
    "LLMConfig",
    "QueryConfig",
    "StorageConfig",
    "CatalogError",
    "DiscoveryError",
    "ExecutionError",
    "ExtractionError",
    "GenerationError",
    "IngestError",
    "NlCubeError",
    "NoDataError",
    "SubjectError",
    "UnknownSubjectError",
]
