"""Application settings loaded from environment variables via pydantic-settings.

Values come from (highest priority first) environment variables, then the
``.env`` file in the working directory, then the defaults below.  Field
``zhipu_api_key`` maps to env var ``ZHIPU_API_KEY`` and so on.

An empty API key means "not configured": the provider chain built in
``bookmind.main`` skips providers without credentials.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """bookmind application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Generation providers ===
    zhipu_api_key: str = ""
    zhipu_base_url: str = "https://open.bigmodel.cn/api/paas/v4/"
    zhipu_model: str = "glm-4-flash"
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.0-flash"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    # Comma-separated failover order; unknown or unconfigured names are skipped.
    provider_order: str = "zhipu,gemini,anthropic"
    generation_temperature: float = 0.3
    generation_max_tokens: int = 8000

    # === Embeddings ===
    # "gemini" uses the Gemini embedding endpoint; "openai" any
    # OpenAI-compatible /embeddings endpoint (set openai_base_url).
    embedding_provider: str = "gemini"
    gemini_embedding_model: str = "text-embedding-004"
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = "text-embedding-3-small"

    # === Chunk store ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "bookmind_chunks"
    chunk_size: int = 800
    chunk_overlap: int = 100

    # === Persistence ===
    database_path: str = "data/bookmind.db"
    job_db_path: str = "data/jobs.db"

    # === Job queue ===
    queue_enabled: bool = True
    queue_concurrency: int = 3
    queue_rate_limit_max: int = 10
    queue_rate_limit_period_seconds: float = 60.0
    job_max_attempts: int = 3
    job_backoff_base_seconds: float = 5.0
    job_retry_parse_errors: bool = False
    job_completed_keep_count: int = 100
    job_completed_keep_seconds: int = 24 * 3600
    job_failed_keep_count: int = 500
    job_failed_keep_seconds: int = 7 * 24 * 3600

    # === Extraction ===
    fetch_timeout_seconds: float = 60.0
    proxy_base_url: str = "http://localhost:3000"
    proxied_hosts: str = "drive.google.com"

    # === Artifacts ===
    summary_target_words: int = 200
    summary_input_chars: int = 8000
    question_count: int = 20
    question_input_chars: int = 12000

    # === Context assembly ===
    full_content_max_chars: int = 50000
    max_context_chunks: int = 10
    chat_min_similarity: float = 0.25
    default_min_similarity: float = 0.3

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: str = "*"

    def get_provider_order(self) -> list[str]:
        """Return the configured failover order, lower-cased, blanks removed."""
        return [p.strip().lower() for p in self.provider_order.split(",") if p.strip()]

    def get_available_llm_providers(self) -> list[str]:
        """Return provider names in failover order that have credentials configured."""
        keys = {
            "zhipu": self.zhipu_api_key,
            "gemini": self.gemini_api_key,
            "anthropic": self.anthropic_api_key,
        }
        return [name for name in self.get_provider_order() if keys.get(name)]

    def get_proxied_hosts(self) -> list[str]:
        return [h.strip().lower() for h in self.proxied_hosts.split(",") if h.strip()]

    def get_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
