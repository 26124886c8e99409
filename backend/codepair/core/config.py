import sys
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

Language = Literal["javascript", "python"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CODEPAIR_", env_file=".env", extra="ignore")

    app_name: str = "CodePair API"
    environment: str = "development"
    api_prefix: str = "/api"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001

    cors_origins: list[str] = ["http://localhost:5173"]

    room_reclaim_delay_seconds: float = Field(default=5 * 60, gt=0)
    default_language: Language = "javascript"
    outbound_queue_size: int = Field(default=256, ge=1)

    execution_timeout_seconds: float = Field(default=5.0, gt=0)
    execution_max_output_lines: int = Field(default=500, ge=1)
    execution_max_output_bytes: int = Field(default=1_000_000, ge=1024)
    python_executable: str = sys.executable
    node_executable: str = "node"


@lru_cache
def get_settings() -> Settings:
    return Settings()
