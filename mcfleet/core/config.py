from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent

    # -------------------------------
    # Persistence
    # -------------------------------
    DATABASE_URL: str = "sqlite+aiosqlite:///./mcfleet.db"
    SYNC_DATABASE_URL: str = Field(
        default="sqlite:///./mcfleet.db",
        description="Synchronous URL used only to create tables on import",
    )

    # -------------------------------
    # Provisioning
    # -------------------------------
    GAME_BASE_PORT: int = 25565
    CONSOLE_BASE_PORT: int = 25575
    QUERY_BASE_PORT: int = 25585

    SERVER_IMAGE: str = Field(
        default="itzg/minecraft-server:latest",
        description="Image used for every game server container",
    )
    HELPER_IMAGE: str = Field(
        default="alpine",
        description="Small image used for short-lived volume mutations",
    )
    CONTAINER_PREFIX: str = "mc-server-"
    VOLUME_PREFIX: str = "mc-data-"
    LABEL_PREFIX: str = "mcfleet"
    DEFAULT_MEMORY: str = "2G"

    STOP_GRACE_SECONDS: int = 30
    DELETE_STOP_GRACE_SECONDS: int = 10
    STATUS_POLL_INTERVAL_SECONDS: float = 1.0
    STATUS_POLL_TIMEOUT_SECONDS: float = 15.0
    RECONCILE_INTERVAL_SECONDS: float = 10.0

    # -------------------------------
    # Remote console
    # -------------------------------
    CONSOLE_HOST: str = "localhost"
    CONSOLE_TIMEOUT_SECONDS: float = 5.0

    # -------------------------------
    # Monitoring
    # -------------------------------
    METRICS_INTERVAL_SECONDS: float = 30.0
    STATS_TIMEOUT_SECONDS: float = 5.0
    LOG_TAIL_LINES: int = 100
    METRICS_RETENTION_DAYS: int = 7
    ALERT_EVAL_INTERVAL_SECONDS: float = 60.0

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env"
    )
