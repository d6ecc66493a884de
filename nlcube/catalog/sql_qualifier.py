# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tenant qualification and identifier repair for loosely written SQL.

Rewrites bare table references after FROM / JOIN / UPDATE / INSERT INTO /
DELETE FROM to "subject"."table", fixes the casing of column names and
replaces likely column typos with the closest known column. Works on a
regex token stream (no parser): string literals, quoted identifiers and
comments are single tokens and are never rewritten, and all edits are
collected first and applied in reverse source order so offsets stay valid.

Applying qualify() to its own output changes nothing.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from nlcube.catalog.models import QualifiedStatement

if TYPE_CHECKING:
    from nlcube.catalog.models import SchemaSnapshot

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(
    r"""
      (?P<comment>--[^\n]*|/\*.*?(?:\*/|\Z))
    | (?P<string>'(?:[^']|'')*'?)
    | (?P<quoted>"(?:[^"]|"")*"?)
    | (?P<number>\d+(?:\.\d*)?(?:[eE][+-]?\d+)?)
    | (?P<word>[A-Za-z_][A-Za-z0-9_$]*)
    | (?P<space>\s+)
    | (?P<punct>.)
    """,
    re.VERBOSE | re.DOTALL,
)

# Words never treated as typos of a column name
SQL_KEYWORDS = frozenset("""
    ABORT ALL ALTER ANALYZE AND ANTI ANY ARRAY AS ASC ASOF AT ATTACH BEGIN BETWEEN BOTH BY
    CASCADE CASE CAST CHECK COLLATE COLUMN COLUMNS COMMIT CONSTRAINT COPY CREATE CROSS CUBE
    CURRENT CURRENT_DATE CURRENT_TIME CURRENT_TIMESTAMP DATABASE DEFAULT DELETE DESC DESCRIBE
    DETACH DISTINCT DO DROP ELSE END ESCAPE EXCEPT EXCLUDE EXISTS EXPLAIN EXPORT EXTRACT FALSE
    FETCH FILTER FIRST FOLLOWING FOR FOREIGN FROM FULL FUNCTION GLOB GRANT GROUP GROUPING HAVING
    IF ILIKE IN INDEX INNER INSERT INSTALL INTERSECT INTERVAL INTO IS ISNULL JOIN KEY LAST
    LATERAL LEADING LEFT LIKE LIMIT LOAD MACRO MATERIALIZED NATURAL NEXT NO NOT NOTHING NOTNULL
    NULL NULLS OF OFFSET ON ONLY OR ORDER OTHERS OUTER OVER OVERLAY PARTITION PIVOT PLACING
    POSITION POSITIONAL PRAGMA PRECEDING PRIMARY QUALIFY RANGE RECURSIVE REFERENCES REPLACE
    RESPECT RETURNING RIGHT ROLLBACK ROLLUP ROW ROWS SAMPLE SCHEMA SELECT SEMI SEQUENCE SET
    SETS SHOW SIMILAR SOME STRUCT SUMMARIZE TABLE TABLESAMPLE THEN TIES TO TRAILING TRANSACTION
    TRIM TRUE TRUNCATE TRY_CAST UNBOUNDED UNION UNIQUE UNPIVOT UPDATE USE USING VACUUM VALUES
    VIEW WHEN WHERE WINDOW WITH WITHIN WITHOUT
    ABS AVG COALESCE CONCAT COUNT DATE_PART DATE_TRUNC FLOOR CEIL CEILING GREATEST LEAST LENGTH
    LOWER MAX MEDIAN MIN MODE NULLIF ROUND STDDEV STRFTIME STRPTIME SUBSTRING SUM UPPER
    BIGINT BIT BLOB BOOL BOOLEAN CHAR DATE DATETIME DECIMAL DOUBLE ENUM FLOAT HUGEINT INT INT2
    INT4 INT8 INTEGER JSON LIST LONG MAP NUMERIC REAL SHORT SMALLINT STRING TEXT TIME TIMESTAMP
    TIMESTAMPTZ TINYINT UBIGINT UINTEGER USMALLINT UTINYINT UUID VARCHAR
    CENTURY DAY DAYS DECADE DOW DOY EPOCH HOUR HOURS MICROSECOND MILLENNIUM MILLISECOND MINUTE
    MINUTES MONTH MONTHS QUARTER SECOND SECONDS WEEK WEEKS YEAR YEARS
""".split())

# Keywords after which the next identifier names a table
_TABLE_TRIGGERS = frozenset({"FROM", "JOIN", "UPDATE", "INTO"})

# FROM inside these calls separates arguments, not a table
_FROM_ARGUMENT_FUNCTIONS = frozenset({"EXTRACT", "SUBSTRING", "TRIM", "OVERLAY", "POSITION"})


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    start: int
    end: int

    @property
    def upper(self) -> str:
        return self.text.upper()

    @property
    def is_identifier(self) -> bool:
        return self.kind in ("word", "quoted")


def tokenize(sql: str) -> list[Token]:
    return [
        Token(m.lastgroup, m.group(), m.start(), m.end())
        for m in _TOKEN_RE.finditer(sql)
    ]


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def identifier_value(token: Token) -> str:
    """Identifier text without quotes."""
    if token.kind == "quoted":
        inner = token.text[1:-1] if token.text.endswith('"') and len(token.text) > 1 else token.text[1:]
        return inner.replace('""', '"')
    return token.text


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def typo_threshold(token: str) -> int:
    return 3 if len(token) > 6 else 2


class _Rewriter:
    """One qualification pass over a token stream."""

    MIN_TYPO_LENGTH = 3

    def __init__(self, sql: str, subject: str, tables: dict[str, str], columns: list[str]):
        self.sql = sql
        self.subject = subject
        self.tables = tables  # lower -> canonical
        self.columns = columns
        self.columns_lower = {c.lower(): c for c in reversed(columns)}
        self.tokens = tokenize(sql)
        self.sig = [i for i, t in enumerate(self.tokens) if t.kind not in ("space", "comment")]
        self.edits: dict[int, str] = {}  # token index -> replacement text
        self.protected: set[int] = set()
        self.aliases: set[str] = set()
        self.cte_names: set[str] = set()

    # -- token navigation ---------------------------------------------------

    def _tok(self, pos: int) -> Optional[Token]:
        if 0 <= pos < len(self.sig):
            return self.tokens[self.sig[pos]]
        return None

    def _is_punct(self, pos: int, char: str) -> bool:
        tok = self._tok(pos)
        return tok is not None and tok.kind == "punct" and tok.text == char

    def _is_word(self, pos: int, *words: str) -> bool:
        tok = self._tok(pos)
        return tok is not None and tok.kind == "word" and tok.upper in words

    # -- pass 1: structure -------------------------------------------------

    def _collect_ctes(self) -> None:
        for pos in range(len(self.sig)):
            tok = self._tok(pos)
            if not tok.is_identifier or not self._is_word(pos + 1, "AS"):
                continue
            if not (self._is_punct(pos + 2, "(") or self._is_word(pos + 2, "MATERIALIZED", "NOT")):
                continue
            if self._is_word(pos - 1, "WITH", "RECURSIVE") or self._is_punct(pos - 1, ","):
                self.cte_names.add(identifier_value(tok).lower())
                self.protected.add(self.sig[pos])

    def _scan_structure(self) -> None:
        paren_owner: list[str] = []
        for pos in range(len(self.sig)):
            tok = self._tok(pos)
            if tok.kind == "punct":
                if tok.text == "(":
                    prev = self._tok(pos - 1)
                    paren_owner.append(prev.upper if prev is not None and prev.kind == "word" else "")
                    if prev is not None and prev.kind == "word":
                        self.protected.add(self.sig[pos - 1])
                elif tok.text == ")" and paren_owner:
                    paren_owner.pop()
                elif tok.text == ".":
                    prev = self._tok(pos - 1)
                    if prev is not None and prev.is_identifier:
                        self.protected.add(self.sig[pos - 1])
                continue
            if tok.kind != "word":
                continue

            keyword = tok.upper
            if keyword == "AS":
                nxt = self._tok(pos + 1)
                if nxt is not None and nxt.is_identifier and not self._is_punct(pos + 2, "("):
                    self._add_alias(pos + 1)
                continue
            if keyword not in SQL_KEYWORDS and self._is_implicit_alias(pos):
                self.protected.add(self.sig[pos])
                if tok.text.lower() not in self.columns_lower:
                    self.aliases.add(tok.text.lower())
                continue
            if keyword not in _TABLE_TRIGGERS:
                continue
            if keyword == "FROM":
                if paren_owner and paren_owner[-1] in _FROM_ARGUMENT_FUNCTIONS:
                    continue
                if self._is_word(pos - 1, "DISTINCT"):
                    continue
            if keyword == "INTO" and not self._is_word(pos - 1, "INSERT", "OR", "REPLACE", "IGNORE"):
                continue
            self._table_list(pos + 1, allow_list=(keyword == "FROM"), allow_function=(keyword in ("FROM", "JOIN")))

    def _is_implicit_alias(self, pos: int) -> bool:
        """`expr name,` / `expr name FROM`: a bare word closing a select expression."""
        prev = self._tok(pos - 1)
        if prev is None:
            return False
        if prev.kind == "word":
            if prev.upper in SQL_KEYWORDS:
                return False
        elif prev.kind not in ("quoted", "number", "string") and not self._is_punct(pos - 1, ")"):
            return False
        return (
            self._tok(pos + 1) is None
            or self._is_punct(pos + 1, ",")
            or self._is_punct(pos + 1, ";")
            or self._is_word(pos + 1, "FROM")
        )

    def _add_alias(self, pos: int) -> None:
        tok = self._tok(pos)
        self.aliases.add(identifier_value(tok).lower())
        self.protected.add(self.sig[pos])

    def _table_list(self, pos: int, allow_list: bool, allow_function: bool) -> None:
        while True:
            end = self._table_reference(pos, allow_function)
            if end is None:
                return
            pos = end
            # optional alias
            if self._is_word(pos, "AS"):
                pos += 1
            tok = self._tok(pos)
            if tok is not None and tok.is_identifier and (tok.kind == "quoted" or tok.upper not in SQL_KEYWORDS):
                self._add_alias(pos)
                pos += 1
            if allow_list and self._is_punct(pos, ","):
                pos += 1
                continue
            return

    def _table_reference(self, pos: int, allow_function: bool = True) -> Optional[int]:
        """Parse ident(.ident)* at pos, qualify it if it names a known table.

        Returns the position after the reference, or None if pos does not start one.
        """
        first = self._tok(pos)
        if first is None or not first.is_identifier:
            return None
        if first.kind == "word" and first.upper in SQL_KEYWORDS and first.text.lower() not in self.tables:
            return None
        parts = [pos]
        while self._is_punct(parts[-1] + 1, ".") and self._tok(parts[-1] + 2) is not None \
                and self._tok(parts[-1] + 2).is_identifier:
            parts.append(parts[-1] + 2)
        end = parts[-1] + 1
        if allow_function and self._is_punct(end, "("):
            # table function, e.g. read_csv_auto(...)
            return end
        for p in parts:
            self.protected.add(self.sig[p])

        if len(parts) > 2:
            return end
        name = identifier_value(self._tok(parts[-1]))
        canonical = self.tables.get(name.lower())
        if canonical is None:
            return end
        if len(parts) == 1 and name.lower() in self.cte_names:
            return end

        replacement = f"{quote_identifier(self.subject)}.{quote_identifier(canonical)}"
        start_index = self.sig[parts[0]]
        end_index = self.sig[parts[-1]]
        original = "".join(t.text for t in self.tokens[start_index:end_index + 1])
        if original != replacement:
            self.edits[start_index] = replacement
            for index in range(start_index + 1, end_index + 1):
                self.edits[index] = ""
        return end

    # -- pass 2: column casing and typos -----------------------------------

    def _closest_column(self, word: str) -> Optional[str]:
        lowered = word.lower()
        best, best_distance = None, None
        for col in self.columns:
            distance = edit_distance(lowered, col.lower())
            if best_distance is None or distance < best_distance:
                best, best_distance = col, distance
        if best is None or best_distance == 0 or best_distance > typo_threshold(word):
            return None
        return best

    def _repair_columns(self) -> None:
        if not self.columns:
            return
        subject_lower = self.subject.lower()
        for index in self.sig:
            tok = self.tokens[index]
            if tok.kind != "word" or index in self.protected or index in self.edits:
                continue
            lowered = tok.text.lower()
            if lowered in self.aliases or lowered in self.cte_names or lowered == subject_lower:
                continue
            canonical = self.columns_lower.get(lowered)
            if canonical is not None:
                if canonical != tok.text:
                    self.edits[index] = canonical
                continue
            if tok.upper in SQL_KEYWORDS or lowered in self.tables:
                continue
            if len(tok.text) < self.MIN_TYPO_LENGTH:
                continue
            closest = self._closest_column(tok.text)
            if closest is not None:
                logger.debug(f"Correcting likely typo '{tok.text}' -> '{closest}'")
                self.edits[index] = closest

    # -- output ------------------------------------------------------------

    def rewrite(self) -> str:
        self._collect_ctes()
        self._scan_structure()
        self._repair_columns()
        if not self.edits:
            return self.sql
        result = self.sql
        for index in sorted(self.edits, reverse=True):
            tok = self.tokens[index]
            result = result[:tok.start] + self.edits[index] + result[tok.end:]
        return result


def terminate_statement(sql: str) -> str:
    """Ensure exactly one trailing semicolon."""
    stripped = sql.rstrip()
    while stripped.endswith(";"):
        stripped = stripped[:-1].rstrip()
    if not stripped:
        return sql
    tokens = tokenize(stripped)
    if tokens and tokens[-1].kind == "comment" and tokens[-1].text.startswith("--"):
        return stripped + "\n;"
    return stripped + ";"


def qualify(sql: str, subject: str, snapshot: "SchemaSnapshot") -> str:
    """Qualify table references for subject and repair column identifiers.

    Unknown subjects return sql unchanged. Never raises: on an internal
    failure the best rewrite produced so far is returned, and the engine
    reports any remaining problem at execution time.
    """
    subject_tables = snapshot.subjects.get(subject)
    if subject_tables is None:
        return sql

    result = sql
    try:
        tables = {name.lower(): name for name in subject_tables}
        rewriter = _Rewriter(sql, subject, tables, snapshot.column_names(subject))
        result = rewriter.rewrite()
        result = terminate_statement(result)
    except Exception as e:
        logger.warning(f"SQL qualification for {subject} stopped early: {e}")
    return result


def qualify_statement(sql: str, subject: str, snapshot: "SchemaSnapshot") -> QualifiedStatement:
    return QualifiedStatement(
        original_sql=sql,
        rewritten_sql=qualify(sql, subject, snapshot),
        target_subject=subject,
    )
