# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Extract an executable SQL statement from free-form model output."""

import logging
import re

import duckdb

from nlcube.catalog.models import GeneratedSqlCandidate
from nlcube.core.errors import ExtractionError

logger = logging.getLogger(__name__)

STATEMENT_KEYWORDS = ("SELECT", "WITH", "INSERT", "UPDATE", "DELETE", "CREATE", "ALTER", "DROP")

FENCE = "```"

# ```sql ... ```  (tag line optional newline so ```sql SELECT 1``` also matches)
_SQL_FENCE_RE = re.compile(r"```[^\S\n]*sql\b[^\S\n]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
# Any fence; a language tag is only consumed when it sits alone on the fence line
_ANY_FENCE_RE = re.compile(r"```(?:[^\S\n]*[\w+-]*[^\S\n]*\n)?(.*?)```", re.DOTALL)
_STATEMENT_START_RE = re.compile(
    r"^\s*(?:%s)\b" % "|".join(STATEMENT_KEYWORDS), re.IGNORECASE
)
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)


def _starts_statement(line: str) -> bool:
    return bool(_STATEMENT_START_RE.match(line))


def _scan_lines(text: str) -> str | None:
    """Collect lines from the first statement keyword up to ';' or a fence."""
    collected: list[str] = []
    for line in text.splitlines():
        if not collected:
            if _starts_statement(line):
                collected.append(line)
                if ";" in line:
                    break
            continue
        if line.lstrip().startswith(FENCE):
            break
        collected.append(line)
        if ";" in line:
            break

    if not collected:
        return None
    statement = "\n".join(collected)
    if ";" in statement:
        statement = statement[: statement.index(";") + 1]
    return statement.strip()


def _parses(sql: str) -> bool:
    """True when DuckDB's parser accepts sql (no catalog lookups happen)."""
    conn = duckdb.connect()
    try:
        return bool(conn.extract_statements(sql))
    except duckdb.Error:
        return False
    finally:
        conn.close()


def _leads_with_statement(text: str) -> bool:
    """Reply to a prompt ending in an opening fence: bare SQL, then a closing fence.

    Prose that merely opens with a keyword ("With the data below:") does not count.
    """
    lead = text.strip()
    if not _starts_statement(lead) or lead.endswith(":"):
        return False
    scanned = _scan_lines(lead)
    return bool(scanned) and _parses(scanned)


def extract_sql(raw_text: str) -> str:
    """Best-effort SQL extraction.

    Tried in order: a sql-tagged fenced block, any fenced block, a line scan
    starting at a statement keyword, and finally the raw text itself.
    """
    text = raw_text or ""

    match = _SQL_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()

    # A prompt that ends with an opening fence gets back "SELECT ...\n```":
    # the first fence then closes the statement rather than opening a block
    first_fence = text.find(FENCE)
    if first_fence != -1 and not _leads_with_statement(text[:first_fence]):
        for block in _ANY_FENCE_RE.finditer(text):
            interior = block.group(1).strip()
            if interior:
                return interior

    scanned = _scan_lines(text)
    if scanned:
        return scanned

    return text.strip()


def is_degenerate_sql(sql: str) -> bool:
    """True for empty, whitespace-only or comment-only text."""
    if not sql or not sql.strip():
        return True
    without_blocks = _BLOCK_COMMENT_RE.sub("", sql)
    for line in without_blocks.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("--") and stripped.strip(";"):
            return False
    return True


def extract_candidate(question: str, raw_text: str) -> GeneratedSqlCandidate:
    """Extract SQL from model output, rejecting degenerate results.

    Raises:
        ExtractionError: If nothing executable remains
    """
    sql = extract_sql(raw_text)
    if is_degenerate_sql(sql):
        logger.warning(f"Model output contained no usable SQL: {(raw_text or '')[:200]!r}")
        raise ExtractionError("Model returned no usable SQL", raw_text=raw_text)
    return GeneratedSqlCandidate(question=question, raw_model_text=raw_text, extracted_sql=sql)
