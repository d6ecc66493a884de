"""Provider factory for instantiating SQL generators by name."""

import importlib

from nlcube.core.config import LLMConfig
from .base import BaseSqlGenerator


class ProviderFactory:
    """Factory for creating and caching SQL generator instances.

    Usage:
        factory = ProviderFactory(llm_config)
        generator = factory.get_default_provider()
        raw_text = generator.generate_sql(question, schema_context)
    """

    # Map of provider names to their classes; imported on first use
    PROVIDER_CLASSES = {
        "ollama": "nlcube.providers.ollama.OllamaProvider",
        "openai": "nlcube.providers.openai.OpenAIProvider",
        "remote": "nlcube.providers.openai.OpenAIProvider",
        "anthropic": "nlcube.providers.anthropic.AnthropicProvider",
    }

    # Providers that never take an API key
    KEYLESS_PROVIDERS = ("ollama",)

    def __init__(self, llm_config: LLMConfig):
        self.llm_config = llm_config
        self._provider_cache: dict[str, BaseSqlGenerator] = {}

    def _get_provider_class(self, provider_name: str) -> type:
        """Get the provider class by name."""
        class_path = self.PROVIDER_CLASSES.get(provider_name.lower())
        if not class_path:
            raise ValueError(
                f"Unknown provider: {provider_name}. "
                f"Available providers: {list(self.PROVIDER_CLASSES.keys())}"
            )

        module_path, class_name = class_path.rsplit(".", 1)
        module = importlib.import_module(module_path)
        return getattr(module, class_name)

    def _create_provider(self, provider_name: str) -> BaseSqlGenerator:
        provider_class = self._get_provider_class(provider_name)
        config = self.llm_config

        kwargs = {
            "model": config.model,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "timeout": config.timeout_seconds,
        }
        if config.api_key and provider_name.lower() not in self.KEYLESS_PROVIDERS:
            kwargs["api_key"] = config.api_key
        if config.base_url:
            kwargs["base_url"] = config.base_url

        return provider_class(**kwargs)

    def get_default_provider(self) -> BaseSqlGenerator:
        """The generator configured in llm_config, created once."""
        cache_key = self.llm_config.provider.lower()
        if self.llm_config.base_url:
            cache_key += f":{self.llm_config.base_url}"

        if cache_key not in self._provider_cache:
            self._provider_cache[cache_key] = self._create_provider(self.llm_config.provider)
        return self._provider_cache[cache_key]

    def clear_cache(self) -> None:
        self._provider_cache.clear()


def create_generator(llm_config: LLMConfig) -> BaseSqlGenerator:
    """Build the SQL generator named by llm_config.provider."""
    return ProviderFactory(llm_config).get_default_provider()
