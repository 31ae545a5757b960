"""Configuration management for Ralph Commander."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RalphSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    root: Path = Field(default=Path("."), validation_alias="RALPH_ROOT")
    status_file: Path = Field(
        default=Path(".gemini/ralph-loop.local.md"), validation_alias="RALPH_STATUS_FILE"
    )
    plan_file: Path = Field(default=Path("@fix_plan.md"), validation_alias="RALPH_PLAN_FILE")
    log_file: Path = Field(default=Path("ralph-runner.log"), validation_alias="RALPH_LOG_FILE")
    stats_file: Path = Field(
        default=Path(".gemini/ralph-stats.json"), validation_alias="RALPH_STATS_FILE"
    )
    pid_file: Path = Field(default=Path(".gemini/ralph-loop.pid"), validation_alias="RALPH_PID_FILE")
    runner_script: Path = Field(
        default=Path("scripts/run-loop.sh"), validation_alias="RALPH_RUNNER_SCRIPT"
    )
    models_command: str = Field(
        default="{agent} models list --output-format json",
        validation_alias="RALPH_MODELS_COMMAND",
    )
    watch_interval: float = Field(default=0.5, validation_alias="RALPH_WATCH_INTERVAL")
    host: str = Field(default="127.0.0.1", validation_alias="RALPH_HOST")
    port: int = Field(default=3000, validation_alias="RALPH_PORT")
    log_level: str = Field(default="INFO", validation_alias="RALPH_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "RALPH_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("watch_interval")
    @classmethod
    def _validate_watch_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("RALPH_WATCH_INTERVAL must be > 0")
        return value

    @field_validator("models_command")
    @classmethod
    def _validate_models_command(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("RALPH_MODELS_COMMAND must not be empty")
        return value.strip()

    def resolve(self, path: Path) -> Path:
        """Return ``path`` anchored at the working root unless already absolute."""

        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.root / candidate

    @property
    def status_path(self) -> Path:
        return self.resolve(self.status_file)

    @property
    def plan_path(self) -> Path:
        return self.resolve(self.plan_file)

    @property
    def log_path(self) -> Path:
        return self.resolve(self.log_file)

    @property
    def stats_path(self) -> Path:
        return self.resolve(self.stats_file)

    @property
    def pid_path(self) -> Path:
        return self.resolve(self.pid_file)

    @property
    def runner_path(self) -> Path:
        return self.resolve(self.runner_script)


@lru_cache(maxsize=1)
def get_settings() -> RalphSettings:
    """Return cached settings instance."""

    settings = RalphSettings()
    settings.root = settings.root.expanduser().resolve()
    return settings


__all__ = ["RalphSettings", "get_settings"]
