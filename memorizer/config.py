"""
Configuration for Memorizer.

Settings come from (highest priority first) explicit arguments, MEMORIZER_*
environment variables, a .env file and finally the YAML file written by
`memorizer init` (~/.memorizer/config.yaml by default).
"""

from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings

CONFIG_FILENAME = "config.yaml"


def get_default_storage_path() -> Path:
    """Directory holding the database, logs and config file."""
    return Path.home() / ".memorizer"


class EmbeddingProvider(str, Enum):
    """Where embeddings come from."""
    LOCAL = "local"  # sentence-transformers, no API key
    OPENAI = "openai"
    HASH = "hash"    # deterministic, offline, no semantics


class TitleProvider(str, Enum):
    """How titles are produced for memories stored without one."""
    TRUNCATE = "truncate"
    OPENAI = "openai"


class Config(BaseSettings):
    """Memorizer configuration settings."""

    storage_path: Path = Field(default_factory=get_default_storage_path)

    # Embeddings
    embedding_provider: EmbeddingProvider = Field(default=EmbeddingProvider.LOCAL)
    local_embedding_model: str = Field(default="all-MiniLM-L6-v2")
    openai_embedding_model: str = Field(default="text-embedding-3-small")
    hash_embedding_dimension: int = Field(default=384, ge=1)

    # Shared by the OpenAI embedding and title providers
    openai_api_key: str = Field(default="")

    # Titles
    title_provider: TitleProvider = Field(default=TitleProvider.TRUNCATE)
    openai_title_model: str = Field(default="gpt-4o-mini")

    # Search defaults
    search_limit: int = Field(default=10, ge=1, le=100)
    min_similarity: float = Field(default=0.7, ge=-1.0, le=1.0)

    log_level: str = Field(default="INFO")

    class Config:
        env_prefix = "MEMORIZER_"
        env_file = ".env"

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Build settings from a YAML file; a missing file means defaults.

        Init kwargs outrank the environment in pydantic-settings, so file
        values the environment (or .env) already supplies are dropped.
        """
        path = config_path or get_default_storage_path() / CONFIG_FILENAME
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        from_environment = cls().model_fields_set
        return cls(**{key: value for key, value in data.items() if key not in from_environment})

    def save(self, config_path: Optional[Path] = None) -> None:
        """Write every setting to YAML (storage_path/config.yaml by default)."""
        path = config_path or self.storage_path / CONFIG_FILENAME
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)

    @property
    def sqlite_path(self) -> Path:
        return self.storage_path / "data" / "memorizer.db"

    @property
    def logs_path(self) -> Path:
        return self.storage_path / "logs"

    def ensure_directories(self) -> None:
        """Create the storage, data and logs directories."""
        for directory in (self.storage_path, self.sqlite_path.parent, self.logs_path):
            directory.mkdir(parents=True, exist_ok=True)
