# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Anthropic Claude provider."""

import logging
from typing import Optional

import anthropic

from .base import BaseSqlGenerator

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseSqlGenerator):
    """Anthropic messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        base_url: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ):
        super().__init__(model=model, temperature=temperature, max_tokens=max_tokens, timeout=timeout)
        self.client = anthropic.Anthropic(api_key=api_key, base_url=base_url, timeout=timeout)

    def complete(self, prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )

        if response.stop_reason == "max_tokens":
            logger.warning(f"[ANTHROPIC] Response truncated at max_tokens={self.max_tokens}")

        return "".join(block.text for block in response.content if block.type == "text")
