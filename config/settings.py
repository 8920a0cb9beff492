"""Application settings and configuration management."""
from __future__ import annotations

from typing import Dict, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    CONFIG_PATH: str = "app_config.json"
    DB_PATH: str = Field(default="data/interviews.db")

    TRANSCRIPT_STORE: Literal["mock", "sqlite", "bridge"] = "mock"
    BRIDGE_ENDPOINT: str = "http://localhost:3001/api/save"
    BRIDGE_TIMEOUT_S: float = 10.0

    # MySQL target the relay writes into; sent with every save
    BRIDGE_MYSQL_HOST: str = "localhost"
    BRIDGE_MYSQL_USER: str = "root"
    BRIDGE_MYSQL_PASSWORD: str = ""
    BRIDGE_MYSQL_DATABASE: str = "research_db"
    BRIDGE_MYSQL_TABLE: str = "interview_responses"

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True)

    def bridge_target(self) -> Dict[str, str]:  # Relay ``config`` block
        return {
            "HOST": self.BRIDGE_MYSQL_HOST,
            "USER": self.BRIDGE_MYSQL_USER,
            "PASSWORD": self.BRIDGE_MYSQL_PASSWORD,
            "DATABASE": self.BRIDGE_MYSQL_DATABASE,
            "TABLE": self.BRIDGE_MYSQL_TABLE,
        }


settings = Settings()
