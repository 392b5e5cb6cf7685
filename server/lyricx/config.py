from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root (one level above server/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Lyrics provider endpoints
    lrclib_api_url: str = "https://lrclib.net/api/get"
    lrclib_search_api_url: str = "https://lrclib.net/api/search"
    textyl_api_url: str = "https://api.textyl.co/api/lyrics"
    lyrics_ovh_api_url: str = "https://api.lyrics.ovh/v1"
    lyrist_api_url: str = "https://lyrist.vercel.app/api"
    chartlyrics_api_url: str = "https://api.chartlyrics.com/apiv1"
    netease_api_url: str = "https://music.163.com/api"

    # Timeouts (seconds)
    connect_timeout_seconds: float = 8.0
    receive_timeout_seconds: float = 12.0
    provider_call_timeout_seconds: float = 10.0
    resolve_timeout_seconds: float = 20.0
    manual_search_timeout_seconds: float = 20.0

    # Fan-out
    provider_priority: str = "lrclib,textyl,chartlyrics,lyrics.ovh,lyrist,netease"
    slow_providers_for_latin: bool = False
    lrclib_search_limit: int = 4
    user_agent: str = "lyricx-server/0.1.0"

    # Storage
    cache_path: str = "./data/lyrics_cache.json"
    cache_key: str = "lyrics_cache"

    # Media observer
    media_poll_interval_seconds: float = 0.3

    # App settings
    cors_origins: str = "http://localhost:5173"
    log_level: str = "INFO"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def provider_priority_list(self) -> list[str]:
        return [p.strip().lower() for p in self.provider_priority.split(",") if p.strip()]

    @property
    def cache_file(self) -> Path:
        path = Path(self.cache_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


settings = Settings()
