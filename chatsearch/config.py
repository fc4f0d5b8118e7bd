"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables once at startup.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ProviderKind(str, Enum):
    """Embedding provider strategies, in no particular order."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    LOCAL = "local"
    HASHING = "hashing"


class StoreBackend(str, Enum):
    """Message store implementations."""

    MONGODB = "mongodb"
    MEMORY = "memory"


class EmbeddingSettings(BaseSettings):
    """Embedding provider chain configuration."""

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    provider_order: list[ProviderKind] = Field(
        default_factory=lambda: [
            ProviderKind.ANTHROPIC,
            ProviderKind.OPENAI,
            ProviderKind.LOCAL,
            ProviderKind.HASHING,
        ],
        description="Providers tried in order until one returns a usable vector",
    )
    dimensions: int = Field(
        default=1536,
        gt=0,
        description="Vector dimension D shared by every provider and the index",
    )
    timeout: float = Field(
        default=12.0,
        gt=0,
        description="Per-provider request timeout in seconds",
    )
    batch_size: int = Field(
        default=32,
        gt=0,
        description="Texts embedded per batch",
    )

    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI-compatible API key; provider skipped when unset",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible API base URL",
    )
    openai_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model",
    )

    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key; provider skipped when unset",
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com/v1",
        description="Anthropic API base URL",
    )
    anthropic_model: str = Field(
        default="claude-3-haiku-20240307",
        description="Model used for semantic rating",
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        description="anthropic-version header value",
    )

    local_enabled: bool = Field(
        default=False,
        description="Include the local sentence-transformers model in the chain",
    )
    local_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Local sentence-transformers model name",
    )


class QdrantSettings(BaseSettings):
    """Qdrant vector database configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    enabled: bool = Field(
        default=True,
        description="Use the remote vector index for semantic search",
    )
    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    collection_name: str = Field(
        default="messages",
        description="Collection holding message vectors",
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Per-call timeout in seconds",
    )
    retry_interval: float = Field(
        default=60.0,
        ge=0,
        description="Seconds to wait before retrying a disabled index",
    )


class MongoSettings(BaseSettings):
    """MongoDB message store configuration."""

    model_config = SettingsConfigDict(env_prefix="MONGODB_")

    uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection string",
    )
    database: str = Field(
        default="chatapp",
        description="Database name",
    )
    collection: str = Field(
        default="messages",
        description="Message collection name",
    )
    timeout_ms: int = Field(
        default=5000,
        gt=0,
        description="Server selection timeout in milliseconds",
    )


class SearchSettings(BaseSettings):
    """Search and ranking defaults."""

    model_config = SettingsConfigDict(env_prefix="SEARCH_")

    word_weight: float = Field(
        default=0.4,
        ge=0.0,
        description="Weight applied to lexical relevance scores",
    )
    semantic_weight: float = Field(
        default=0.6,
        ge=0.0,
        description="Weight applied to semantic similarity",
    )
    min_similarity: float = Field(
        default=0.1,
        ge=-1.0,
        le=1.0,
        description="Minimum cosine similarity for semantic hits",
    )
    lexical_boost: float = Field(
        default=0.25,
        ge=0.0,
        description="Additive boost for results with a lexical match",
    )
    default_limit: int = Field(
        default=10,
        gt=0,
        description="Results returned when no limit is given",
    )
    max_limit: int = Field(
        default=100,
        gt=0,
        description="Upper bound on requested results",
    )
    fallback_candidates: int = Field(
        default=100,
        gt=0,
        description="Recent messages scanned by the in-process fallback",
    )
    semantic_deadline: float = Field(
        default=5.0,
        gt=0,
        description="Seconds the semantic branch may take before it is dropped",
    )
    score_precision: int = Field(
        default=4,
        ge=0,
        description="Decimal places kept on combined scores",
    )


class BackfillSettings(BaseSettings):
    """Backfill job configuration."""

    model_config = SettingsConfigDict(env_prefix="BACKFILL_")

    batch_size: int = Field(
        default=100,
        gt=0,
        description="Messages processed per batch",
    )
    max_batches: int | None = Field(
        default=None,
        description="Stop after this many batches (unbounded when unset)",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    store_backend: StoreBackend = Field(
        default=StoreBackend.MONGODB,
        description="Message store implementation",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    mongodb: MongoSettings = Field(default_factory=MongoSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    backfill: BackfillSettings = Field(default_factory=BackfillSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
