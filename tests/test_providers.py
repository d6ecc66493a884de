# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for SQL generation providers.

No test talks to a real backend: Ollama is exercised through a patched
httpx.post, the OpenAI and Anthropic clients are replaced with mocks.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import Mock, patch

import httpx
import pytest

from nlcube.core.config import LLMConfig
from nlcube.core.errors import GenerationError
from nlcube.providers import ProviderFactory, create_generator
from nlcube.providers.anthropic import AnthropicProvider
from nlcube.providers.ollama import OllamaProvider
from nlcube.providers.openai import OpenAIProvider


def _http_response(status_code: int = 200, payload=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class TestPromptBuilding:
    """The SQL generation prompt."""

    def test_question_and_schema_embedded(self):
        provider = OllamaProvider()
        prompt = provider.build_prompt("How many orders?", "## Subject: sales")
        assert "How many orders?" in prompt
        assert "## Subject: sales" in prompt

    def test_prompt_primes_sql_answer(self):
        prompt = OllamaProvider().build_prompt("q", "s")
        assert prompt.rstrip().endswith("\x60\x60\x60sql")


class TestOllamaProvider:
    """OllamaProvider against a patched httpx.post."""

    def test_default_endpoint(self):
        assert OllamaProvider().api_url == "http://localhost:11434/api/generate"

    def test_full_endpoint_kept(self):
        provider = OllamaProvider(base_url="http://gpu-box:11434/api/generate")
        assert provider.api_url == "http://gpu-box:11434/api/generate"

    def test_trailing_slash(self):
        provider = OllamaProvider(base_url="http://gpu-box:11434/")
        assert provider.api_url == "http://gpu-box:11434/api/generate"

    @patch("nlcube.providers.ollama.httpx.post")
    def test_generate_sql(self, mock_post):
        mock_post.return_value = _http_response(payload={"response": "SELECT COUNT(*) FROM orders;"})
        provider = OllamaProvider(model="sqlcoder", temperature=0.0, max_tokens=256, timeout=5.0)

        text = provider.generate_sql("How many orders?", "schema")

        assert text == "SELECT COUNT(*) FROM orders;"
        args, kwargs = mock_post.call_args
        assert args[0] == "http://localhost:11434/api/generate"
        assert kwargs["timeout"] == 5.0
        body = kwargs["json"]
        assert body["model"] == "sqlcoder"
        assert body["stream"] is False
        assert body["options"] == {"temperature": 0.0, "num_predict": 256}
        assert "How many orders?" in body["prompt"]

    @patch("nlcube.providers.ollama.httpx.post")
    def test_error_status(self, mock_post):
        mock_post.return_value = _http_response(status_code=500)
        with pytest.raises(GenerationError, match="status code: 500"):
            OllamaProvider().generate_sql("q", "s")

    @patch("nlcube.providers.ollama.httpx.post")
    def test_connection_error(self, mock_post):
        mock_post.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(GenerationError, match="connection error"):
            OllamaProvider().generate_sql("q", "s")

    @patch("nlcube.providers.ollama.httpx.post")
    def test_timeout(self, mock_post):
        mock_post.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(GenerationError):
            OllamaProvider().generate_sql("q", "s")

    @patch("nlcube.providers.ollama.httpx.post")
    def test_invalid_json(self, mock_post):
        mock_post.return_value = _http_response(payload=ValueError("Expecting value"))
        with pytest.raises(GenerationError, match="invalid JSON"):
            OllamaProvider().generate_sql("q", "s")

    @patch("nlcube.providers.ollama.httpx.post")
    def test_missing_response_field(self, mock_post):
        mock_post.return_value = _http_response(payload={"done": True})
        with pytest.raises(GenerationError, match="'response'"):
            OllamaProvider().generate_sql("q", "s")

    @patch("nlcube.providers.ollama.httpx.post")
    def test_empty_response(self, mock_post):
        mock_post.return_value = _http_response(payload={"response": "   "})
        with pytest.raises(GenerationError, match="empty"):
            OllamaProvider().generate_sql("q", "s")

    @patch("nlcube.providers.ollama.httpx.post")
    def test_async(self, mock_post):
        mock_post.return_value = _http_response(payload={"response": "SELECT 1;"})
        assert asyncio.run(OllamaProvider().agenerate_sql("q", "s")) == "SELECT 1;"


class TestOpenAIProvider:
    """OpenAIProvider with a mocked client."""

    @staticmethod
    def _completion(content, finish_reason="stop"):
        choice = SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)
        return SimpleNamespace(choices=[choice])

    def test_generate_sql(self):
        provider = OpenAIProvider(api_key="test-key", model="gpt-4o-mini", max_tokens=300)
        with patch.object(provider, "client") as client:
            client.chat.completions.create.return_value = self._completion("SELECT 1;")
            assert provider.generate_sql("q", "s") == "SELECT 1;"

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 300
        assert kwargs["messages"][0]["role"] == "user"

    def test_no_choices(self):
        provider = OpenAIProvider(api_key="test-key")
        with patch.object(provider, "client") as client:
            client.chat.completions.create.return_value = SimpleNamespace(choices=[])
            with pytest.raises(GenerationError, match="No choices"):
                provider.generate_sql("q", "s")

    def test_null_content_is_empty(self):
        provider = OpenAIProvider(api_key="test-key")
        with patch.object(provider, "client") as client:
            client.chat.completions.create.return_value = self._completion(None)
            with pytest.raises(GenerationError, match="empty"):
                provider.generate_sql("q", "s")

    def test_client_error_wrapped(self):
        provider = OpenAIProvider(api_key="test-key")
        with patch.object(provider, "client") as client:
            client.chat.completions.create.side_effect = RuntimeError("rate limited")
            with pytest.raises(GenerationError, match="openai request failed: rate limited"):
                provider.generate_sql("q", "s")


class TestAnthropicProvider:
    """AnthropicProvider with a mocked client."""

    def test_joins_text_blocks(self):
        provider = AnthropicProvider(api_key="test-key")
        response = SimpleNamespace(
            stop_reason="end_turn",
            content=[
                SimpleNamespace(type="text", text="SELECT "),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text="1;"),
            ],
        )
        with patch.object(provider, "client") as client:
            client.messages.create.return_value = response
            assert provider.generate_sql("q", "s") == "SELECT 1;"

    def test_client_error_wrapped(self):
        provider = AnthropicProvider(api_key="test-key")
        with patch.object(provider, "client") as client:
            client.messages.create.side_effect = RuntimeError("overloaded")
            with pytest.raises(GenerationError, match="overloaded"):
                provider.generate_sql("q", "s")


class TestProviderFactory:
    """Provider selection from LLMConfig."""

    def test_ollama(self):
        config = LLMConfig(provider="ollama", model="sqlcoder:7b", base_url="http://gpu-box:11434",
                           api_key="ignored", timeout_seconds=12)
        generator = create_generator(config)
        assert isinstance(generator, OllamaProvider)
        assert generator.model == "sqlcoder:7b"
        assert generator.timeout == 12
        assert generator.api_url == "http://gpu-box:11434/api/generate"

    @pytest.mark.parametrize("name", ["openai", "remote", "OpenAI"])
    def test_openai_compatible(self, name):
        config = LLMConfig(provider=name, model="gpt-4o", api_key="test-key")
        assert isinstance(create_generator(config), OpenAIProvider)

    def test_anthropic(self):
        config = LLMConfig(provider="anthropic", model="claude-sonnet-4-20250514", api_key="test-key")
        assert isinstance(create_generator(config), AnthropicProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            create_generator(LLMConfig(provider="llamafile"))

    def test_default_provider_cached(self):
        factory = ProviderFactory(LLMConfig())
        first = factory.get_default_provider()
        assert factory.get_default_provider() is first
        factory.clear_cache()
        assert factory.get_default_provider() is not first
