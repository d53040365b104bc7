from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    RESOURCE_ROOT: str = "assets"         # folder on disk
    RESOURCE_BASE_URL: str = "/video"     # URL prefix to serve files from
    DEFAULT_CONTENT_TYPE: str = "application/octet-stream"
    CACHE_CONTROL: str = "public, max-age=31536000"

    MAX_CONCURRENT_STREAMS: int = 64
    REJECT_STATUS_CODE: int = 503         # 503 or 429
    RETRY_AFTER_SECONDS: int = 5

    CHUNK_SIZE: int = 64 * 1024
    IDLE_TIMEOUT_SECONDS: float = 30.0

    SESSION_SWEEP_INTERVAL_SECONDS: float = 60.0
    STALE_SESSION_SECONDS: float = 120.0
    CLIENT_SESSION_TTL_SECONDS: float = 300.0

    CORS_ALLOW_ORIGINS: list[str] = ["*"]


settings = Settings()
