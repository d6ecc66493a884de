# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Subject directory: one folder and one DuckDB file per tenant."""

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, TYPE_CHECKING

import duckdb

from nlcube.core.errors import SubjectError, UnknownSubjectError

if TYPE_CHECKING:
    from nlcube.storage.duckdb_pool import SubjectConnections

logger = logging.getLogger(__name__)

SUBJECT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

# Names DuckDB already uses for built-in catalogs/schemas
RESERVED_SUBJECT_NAMES = frozenset({
    "main", "temp", "system", "memory", "information_schema", "pg_catalog",
})


@dataclass(frozen=True)
class Subject:
    """A tenant and its storage locations."""
    name: str
    directory: Path
    database_path: Path

    @property
    def is_active(self) -> bool:
        return self.directory.is_dir() and self.database_path.is_file()


class SubjectDirectory:
    """Maps subject names to directories and database files under data_dir.

    Layout:
        <data_dir>/<subject>/<subject><extension>
        <data_dir>/<subject>/<uploaded files>
    """

    def __init__(self, data_dir: str | Path, database_extension: str = ".duckdb"):
        self.data_dir = Path(data_dir)
        self.database_extension = database_extension

    @staticmethod
    def validate_name(name: str) -> str:
        """Return the name if valid, else raise SubjectError."""
        if not name or not SUBJECT_NAME_PATTERN.match(name):
            raise SubjectError("Subject name must be alphanumeric with underscores")
        if name.lower() in RESERVED_SUBJECT_NAMES:
            raise SubjectError(f"Subject name '{name}' is reserved")
        return name

    def path_for(self, subject: str) -> Path:
        return self.data_dir / self.validate_name(subject)

    def database_path(self, subject: str) -> Path:
        return self.path_for(subject) / f"{subject}{self.database_extension}"

    def get(self, subject: str) -> Subject:
        return Subject(
            name=subject,
            directory=self.path_for(subject),
            database_path=self.database_path(subject),
        )

    def exists(self, subject: str) -> bool:
        try:
            return self.path_for(subject).exists()
        except SubjectError:
            return False

    def is_active(self, subject: str) -> bool:
        """A subject is active iff both its directory and database file exist."""
        try:
            return self.get(subject).is_active
        except SubjectError:
            return False

    def list_subjects(self) -> list[str]:
        """Active subjects, sorted by name."""
        if not self.data_dir.is_dir():
            return []
        subjects = []
        for entry in self.data_dir.iterdir():
            if not entry.is_dir():
                continue
            if not SUBJECT_NAME_PATTERN.match(entry.name) or entry.name.lower() in RESERVED_SUBJECT_NAMES:
                logger.debug(f"Ignoring non-subject directory {entry}")
                continue
            if self.is_active(entry.name):
                subjects.append(entry.name)
        return sorted(subjects)

    def create(self, subject: str) -> Subject:
        """Create the subject directory and an empty database file.

        Raises:
            SubjectError: If the name is invalid or the subject already exists
        """
        info = self.get(subject)
        if info.directory.exists():
            raise SubjectError(f"Subject already exists: {subject}")

        info.directory.mkdir(parents=True)
        # Let DuckDB write a valid empty database rather than a zero-byte file
        conn = duckdb.connect(str(info.database_path))
        conn.close()
        logger.info(f"Created subject {subject} at {info.directory}")
        return info

    def delete(self, subject: str, connections: Optional["SubjectConnections"] = None) -> None:
        """Remove the subject directory recursively.

        Closes the subject's open handle first when a connection registry is given.

        Raises:
            UnknownSubjectError: If the subject directory does not exist
        """
        directory = self.path_for(subject)
        if not directory.exists():
            raise UnknownSubjectError(subject)
        if connections is not None:
            connections.close(subject)
        shutil.rmtree(directory)
        logger.info(f"Deleted subject {subject}")

    def file_count(self, subject: str) -> int:
        """Number of entries in the subject directory (database file included)."""
        directory = self.path_for(subject)
        if not directory.is_dir():
            raise UnknownSubjectError(subject)
        return sum(1 for _ in directory.iterdir())
