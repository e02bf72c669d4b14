from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
    )

    APP_NAME: str = "RiskBridge"
    APP_VERSION: str = "0.3.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # ── Risk-control mapping ──
    MAPPING_CONFIDENCE_THRESHOLD: float = 0.6
    MAPPING_TOP_N: int = 5
    BULK_MAP_MAX_RISKS: int = 500
    MAPPING_PATTERNS_FILE: str | None = None

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


settings = Settings()
