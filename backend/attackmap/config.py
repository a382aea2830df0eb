# backend/attackmap/config.py
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Feed upstream (ws:// o wss://)
    FEED_URL: str = "ws://localhost:3001"

    # Riconnessione
    RECONNECT_INTERVAL_MS: int = 3000
    MAX_RECONNECT_ATTEMPTS: int = 10

    # Buffer eventi in memoria (nessuna persistenza)
    BUFFER_CAPACITY: int = 1000
    RECENT_LIMIT: int = 50

    # Animazione (ms)
    DRAW_MS: int = 2000
    FADE_MS: int = 3000
    FRAME_INTERVAL_MS: int = 100

    # Proiezione / viewport
    PROJECTION_SCALE: float = 0.15
    VIEWPORT_FALLBACK_WIDTH: int = 1200
    VIEWPORT_FALLBACK_HEIGHT: int = 800

    # Mock feed (solo sviluppo)
    MOCK_BATCH_MAX: int = 5
    MOCK_INTERVAL_SEC: float = 1.0
    MOCK_STATS_EVERY: int = 10

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="ATTACKMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator(
        "RECONNECT_INTERVAL_MS", "MAX_RECONNECT_ATTEMPTS", "BUFFER_CAPACITY",
        "RECENT_LIMIT", "DRAW_MS", "FADE_MS", "FRAME_INTERVAL_MS",
        "VIEWPORT_FALLBACK_WIDTH", "VIEWPORT_FALLBACK_HEIGHT", "MOCK_BATCH_MAX",
    )
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("deve essere > 0")
        return v

settings = Settings()
