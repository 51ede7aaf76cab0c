from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # YouTube
    YOUTUBE_API_KEY: str = ""
    YOUTUBE_PLAYLIST_ID: str = ""
    YOUTUBE_PLAYLIST_ITEMS_URL: str = "https://www.googleapis.com/youtube/v3/playlistItems"
    YOUTUBE_VIDEOS_URL: str = "https://www.googleapis.com/youtube/v3/videos"
    YOUTUBE_OEMBED_URL: str = "https://www.youtube.com/oembed"
    YOUTUBE_WATCH_URL: str = "https://www.youtube.com/watch"
    YOUTUBE_MAX_RESULTS: int = 50

    # Other collections
    ANNOUNCEMENTS_URL: str = "https://hudson1740.github.io/RiverRougeCOGOP-Apple/announcements.json"
    BIBLE_API_BASE_URL: str = "https://bible-api.com"

    # Fetch policy
    FETCH_MAX_RETRIES: int = 3
    FETCH_RETRY_DELAY_SECONDS: float = 5.0
    DENY_TITLE_MARKERS: List[str] = ["deleted", "private", "unavailable"]

    # Probing
    PROBE_MODE: str = "status"  # status, embed
    PROBE_TIMEOUT_SECONDS: float = 3.0
    PROBE_CONCURRENCY: int = 1
    PROBE_INTERVAL_SECONDS: int = 86400  # 24h

    # Persistence
    STATE_PATH: str = "/data/state.json"
    PERSIST_ENABLED: bool = True

    # Service loop
    REFRESH_INTERVAL_SECONDS: int = 3600

    # System
    LOG_LEVEL: str = "INFO"
    HTTP_SERVER_ENABLED: bool = True
    HTTP_SERVER_PORT: int = 8080
    HTTP_SERVER_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT_SECONDS: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
