# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Ollama provider using the native /api/generate endpoint."""

import logging
from typing import Optional

import httpx

from nlcube.core.errors import GenerationError
from .base import BaseSqlGenerator

logger = logging.getLogger(__name__)


class OllamaProvider(BaseSqlGenerator):
    """Ollama server running a SQL model (sqlcoder by default)."""

    name = "ollama"
    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(
        self,
        model: str = "sqlcoder",
        base_url: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ):
        super().__init__(model=model, temperature=temperature, max_tokens=max_tokens, timeout=timeout)
        url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        # Accept either the server root or the full endpoint URL
        self.api_url = url if url.endswith("/api/generate") else f"{url}/api/generate"

    def complete(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        try:
            response = httpx.post(self.api_url, json=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise GenerationError(f"Ollama connection error: {e}") from e

        if response.status_code != 200:
            raise GenerationError(
                f"Ollama API responded with status code: {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationError(f"Ollama returned invalid JSON: {e}") from e
        if "response" not in data:
            raise GenerationError("Ollama response has no 'response' field")
        return data["response"]
