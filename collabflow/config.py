from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from collabflow.constants import DEFAULT_HOST, DEFAULT_PORT, MAX_ROUTING_HOPS
from collabflow.workflow.models import PipelineMode

COLLABFLOW_DIR = Path.home() / ".collabflow"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COLLABFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
    )

    # Where sessions.db lives; defaults to ~/.collabflow
    data_dir: Path | None = None

    log_level: str = "INFO"

    # Pipeline for sessions created without an explicit one
    pipeline: PipelineMode = PipelineMode.PHASE_BATCHED

    max_routing_hops: int = MAX_ROUTING_HOPS

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        v = str(v).upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")
        return v

    @field_validator("max_routing_hops")
    @classmethod
    def _validate_max_routing_hops(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError(f"max_routing_hops must be 1-100, got {v}")
        return v

    @property
    def db_dir(self) -> Path:
        return self.data_dir or COLLABFLOW_DIR

    @property
    def sessions_db_path(self) -> Path:
        return self.db_dir / "sessions.db"


def get_config() -> Config:
    return Config()
