# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""OpenAI-compatible chat completions provider."""

import logging
from typing import Optional

from nlcube.core.errors import GenerationError
from .base import BaseSqlGenerator

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseSqlGenerator):
    """OpenAI, or any server speaking the OpenAI chat completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o",
        base_url: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key (or uses OPENAI_API_KEY env var)
            model: Model to use
            base_url: Optional custom base URL for OpenAI-compatible APIs
        """
        super().__init__(model=model, temperature=temperature, max_tokens=max_tokens, timeout=timeout)
        try:
            from openai import OpenAI
        except ImportError:
            raise ImportError(
                "OpenAI provider requires the openai package. "
                "Install with: pip install openai"
            )

        kwargs = {"timeout": timeout}
        if api_key:
            kwargs["api_key"] = api_key
        if base_url:
            kwargs["base_url"] = base_url

        self.client = OpenAI(**kwargs)

    def complete(self, prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        if not response.choices:
            raise GenerationError("No choices in response")

        choice = response.choices[0]
        if choice.finish_reason == "length":
            logger.warning(f"[OPENAI] Response truncated at max_tokens={self.max_tokens}")
        return choice.message.content or ""
