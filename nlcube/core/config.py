"""Configuration loading with Pydantic validation and env var substitution."""

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

CONVENTIONAL_TABLE_NAMES = ["orders", "customers", "products", "sales"]


class StorageConfig(BaseModel):
    """Where subject databases live on disk."""
    data_dir: str = "data"
    database_extension: str = ".duckdb"
    read_only: bool = False

    @field_validator("database_extension")
    @classmethod
    def _leading_dot(cls, value: str) -> str:
        return value if value.startswith(".") else f".{value}"

    def resolve_data_dir(self, base_dir: Optional[Path] = None) -> Path:
        """Resolve data_dir, relative paths against base_dir (config file location)."""
        path = Path(self.data_dir).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        return path


class LLMConfig(BaseModel):
    """SQL generation backend configuration."""
    provider: str = "ollama"
    model: str = "sqlcoder"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 2000
    timeout_seconds: float = 60.0


class FallbackColumn(BaseModel):
    """Column of a configured fallback schema."""
    name: str
    type: str = "VARCHAR"
    nullable: bool = True


class CatalogConfig(BaseModel):
    """Schema discovery and context rendering settings."""
    # Tried by the last-resort table probe; empty disables that probe
    probe_table_names: list[str] = Field(default_factory=lambda: list(CONVENTIONAL_TABLE_NAMES))
    # Opt-in stand-in schemas for conventional tables whose columns cannot be discovered
    fallback_schemas: dict[str, list[FallbackColumn]] = Field(default_factory=dict)
    sample_rows: int = 3
    excluded_table_prefixes: list[str] = Field(
        default_factory=lambda: ["sqlite_", "duckdb_", "pg_", "information_schema"]
    )


class QueryConfig(BaseModel):
    """Natural-language query execution settings."""
    fallback_enabled: bool = True
    fallback_tables: list[str] = Field(default_factory=lambda: list(CONVENTIONAL_TABLE_NAMES))
    max_workers: int = 4


class Config(BaseModel):
    """Root configuration model."""
    model_config = {"extra": "ignore"}

    storage: StorageConfig = Field(default_factory=StorageConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    log_level: str = "INFO"

    # Directory of the loaded config file, used to resolve relative paths
    config_dir: Optional[str] = Field(default=None, exclude=True)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """
        Load config from YAML file with env var substitution.

        Args:
            path: Path to the config YAML file

        Returns:
            Validated Config object
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            raw_content = f.read()

        # Substitute environment variables: ${VAR_NAME}
        substituted = _substitute_env_vars(raw_content)

        data = yaml.safe_load(substituted) or {}
        config = cls.model_validate(data)
        config.config_dir = str(path.resolve().parent)
        return config

    @property
    def data_dir(self) -> Path:
        base = Path(self.config_dir) if self.config_dir else None
        return self.storage.resolve_data_dir(base)


def _substitute_env_vars(content: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""
    pattern = re.compile(r'\$\{([^}]+)\}')

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(f"Environment variable not set: {var_name}")
        return value

    return pattern.sub(replacer, content)
