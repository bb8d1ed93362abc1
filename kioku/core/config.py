from typing import Annotated, List, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Local database
    DATABASE_URL: str = "sqlite+aiosqlite:///./kioku.db"

    # Remote server (sync is disabled when unset)
    REMOTE_API_URL: Optional[str] = None
    REMOTE_REQUEST_TIMEOUT: float = 30.0
    REMOTE_CONNECT_TIMEOUT: float = 5.0

    # Local profiles
    PASSWORD_SCHEMES: List[str] = ["pbkdf2_sha256"]
    MIN_PASSWORD_LENGTH: int = 6
    DEFAULT_AVATAR: str = "avatar-smile"

    # Command surface
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["tauri://localhost", "http://localhost:1420"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        return v


# Global settings instance
settings = Settings()
