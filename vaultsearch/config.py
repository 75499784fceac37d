# @TASK P0-T0.3 - pydantic-settings application settings

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """vaultsearch application settings.

    All values are loaded from environment variables.
    A .env file in the working directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Database ---
    DATABASE_URL: str = "postgresql+asyncpg://vault:vault@db:5432/vault"

    # --- AI Providers (optional) ---
    OPENAI_API_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""

    # --- Embeddings ---
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSION: int = 1536
    EMBEDDING_MAX_TOKENS: int = 8191
    EMBEDDING_SERVICE_URL: str = ""  # Local embedding server; overrides OpenAI when set

    # --- Query enhancement ---
    ENHANCER_MODEL: str = ""  # Empty = first available provider model
    QUERY_CACHE_SIZE: int = 256  # Max cached enhanced queries; LRU eviction
    QUERY_CACHE_TTL_SECONDS: int = 900  # Relative dates ("today") go stale
    DEFAULT_TIMEZONE: str = "UTC"

    # --- Search tuning ---
    SEARCH_PARAMS: dict = {}  # Overrides merged over DEFAULT_SEARCH_PARAMS

    @property
    def async_database_url(self) -> str:
        """Ensure the database URL uses the asyncpg driver."""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings singleton."""
    return Settings()
