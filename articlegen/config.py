"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # articlegen/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM provider: openai (any OpenAI-compatible endpoint, OpenRouter by default) | anthropic
    articlegen_llm_provider: str = "openai"

    # OpenRouter / OpenAI-compatible endpoint
    openrouter_api_key: str | None = None
    openai_api_key: str | None = None
    articlegen_base_url: str | None = "https://openrouter.ai/api/v1"

    # Anthropic
    anthropic_api_key: str | None = None

    # Overrides the per-stage model from prompts/stages.yaml when set
    articlegen_model: str | None = None

    # Seconds before the transport gives up on a single model call
    articlegen_request_timeout: float = 120.0

    # Data directory for the file-based stores and the event outbox
    articlegen_data_dir: str = "./data"

    # Postgres job store (file store is used when unset)
    articlegen_database_url: str | None = None

    # Domain passed to prompts for internal links / canonical URLs
    articlegen_site_domain: str | None = None

    # Final quality score under which a job is flagged for manual review.
    # Advisory only, never blocks completion.
    articlegen_quality_review_threshold: int = Field(default=60, ge=0, le=100)

    # CORS origins (comma-separated) for the backend
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Jobs a single client may start per minute through the API
    articlegen_jobs_per_minute: int = Field(default=30, ge=1)

    # Server port
    port: int = 8000

    @property
    def data_dir(self) -> Path:
        """Data directory as an absolute Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.articlegen_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def events_dir(self) -> Path:
        return self.data_dir / "events"

    @property
    def articles_dir(self) -> Path:
        return self.data_dir / "articles"

    @property
    def notifications_dir(self) -> Path:
        return self.data_dir / "notifications"

    @property
    def llm_api_key(self) -> str | None:
        """API key for the configured provider."""
        if self.articlegen_llm_provider.lower() == "anthropic":
            return self.anthropic_api_key
        return self.openrouter_api_key or self.openai_api_key

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.events_dir.mkdir(parents=True, exist_ok=True)
        self.articles_dir.mkdir(parents=True, exist_ok=True)
        self.notifications_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
