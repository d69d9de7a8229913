from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List, Literal

from models.game import POINTS_DECREMENT_INTERVAL


class Settings(BaseSettings):
    google_cloud_project: str = ""
    google_application_credentials: str = ""
    firestore_emulator_host: Optional[str] = None
    # "memory" keeps games in-process (local dev, tests); "firestore" is the hosted store
    store_backend: Literal["firestore", "memory"] = "firestore"
    games_collection: str = "games"
    max_transaction_attempts: int = 5
    game_code_attempts: int = 10
    # How often a player session refreshes its decaying points
    points_decrement_interval_ms: int = POINTS_DECREMENT_INTERVAL
    # CORS origins: set ALLOWED_ORIGINS as a JSON list in production
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    # Extra production origin (e.g. Cloud Run URL); appended to allowed_origins
    extra_origin: str = ""
    debug: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
