# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Base SQL generator interface."""

import asyncio
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from nlcube.core.errors import GenerationError
from nlcube.prompts import load_prompt

logger = logging.getLogger(__name__)

# Shared thread pool for running sync generation in async context
_DEFAULT_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="llm-worker")

SQL_GENERATION_PROMPT = load_prompt("sql_generation.md")


class BaseSqlGenerator(ABC):
    """Abstract base class for SQL generation backends.

    Subclasses implement complete(): send one prompt, return the raw model
    text. generate_sql() builds the prompt and normalizes failures to
    GenerationError. SQL extraction is left to the caller.
    """

    name = "llm"

    def __init__(
        self,
        model: str,
        temperature: float = 0.1,
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Send a prompt and return the raw completion text."""
        pass

    def build_prompt(self, question: str, schema_context: str) -> str:
        return SQL_GENERATION_PROMPT.format(question=question, schema=schema_context)

    def generate_sql(self, question: str, schema_context: str) -> str:
        """
        Ask the model for SQL answering question.

        Args:
            question: Natural-language question
            schema_context: Schema description of the target subject

        Returns:
            Raw model text (may include fences or prose)

        Raises:
            GenerationError: Transport failure, error status or empty response
        """
        prompt = self.build_prompt(question, schema_context)
        logger.debug(f"[{self.name.upper()}] Prompt ({len(prompt)} chars) for model {self.model}")
        try:
            text = self.complete(prompt)
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"{self.name} request failed: {e}") from e

        if not text or not text.strip():
            raise GenerationError(f"{self.name} returned an empty response")
        logger.debug(f"[{self.name.upper()}] Response: {text[:500]}")
        return text

    async def agenerate_sql(
        self,
        question: str,
        schema_context: str,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> str:
        """Async version of generate_sql(), run in a thread pool executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            executor or _DEFAULT_EXECUTOR,
            lambda: self.generate_sql(question, schema_context),
        )
