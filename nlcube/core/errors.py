# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Exception types shared across the catalog, storage and query layers."""

from typing import Optional


class NlCubeError(Exception):
    """Base class for all nlcube errors."""


class SubjectError(NlCubeError):
    """Invalid subject name, or a subject that already exists / is missing."""


class UnknownSubjectError(SubjectError):
    """The subject is neither in the catalog nor on disk."""

    def __init__(self, subject: str):
        self.subject = subject
        super().__init__(f"Unknown subject: {subject}")


class CatalogError(NlCubeError):
    """The catalog could not enumerate subjects at all."""


class DiscoveryError(NlCubeError):
    """A single discovery strategy failed.

    Raised only inside probe strategies; the probe chain always recovers.
    """


class GenerationError(NlCubeError):
    """The SQL generation backend failed or returned nothing usable."""


class ExtractionError(GenerationError):
    """No executable SQL could be extracted from the model output."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class ExecutionError(NlCubeError):
    """The engine rejected or failed to run a statement.

    The message is the engine's own message, unchanged.
    """

    def __init__(self, message: str, sql: Optional[str] = None):
        self.sql = sql
        super().__init__(message)


class NoDataError(NlCubeError):
    """The subject exists but has no discovered tables."""

    def __init__(self, subject: str):
        self.subject = subject
        super().__init__(
            f"No data available for subject '{subject}' - upload some data first"
        )


class IngestError(NlCubeError):
    """A file could not be loaded as a table."""
