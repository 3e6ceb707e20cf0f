"""Runtime settings read from the environment."""

import os
from dataclasses import dataclass
from pathlib import Path

from . import utils  # noqa: F401  (loads .env)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass(frozen=True)
class Settings:
    """Engine settings.

    Every field maps to an environment variable of the same name in upper case.
    """

    openai_api_key: str | None = None
    openai_api_base_url: str | None = None
    llm_model: str = "gpt-4o"
    schema_generation_model: str = "gpt-4o"
    llm_timeout_seconds: float = 60.0
    http_timeout_seconds: float = 30.0
    max_repair_retries: int = 3
    temperature_step: float = 0.3
    temperature_cap: float = 1.0
    datastore_type: str = "memory"  # "memory" or "file"
    data_dir: Path | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        data_dir = os.getenv("DATA_DIR")
        llm_model = os.getenv("LLM_MODEL", "gpt-4o")
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_api_base_url=os.getenv("OPENAI_API_BASE_URL"),
            llm_model=llm_model,
            schema_generation_model=os.getenv("SCHEMA_GENERATION_MODEL", llm_model),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 60.0),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 30.0),
            max_repair_retries=_env_int("MAX_REPAIR_RETRIES", 3),
            temperature_step=_env_float("TEMPERATURE_STEP", 0.3),
            temperature_cap=_env_float("TEMPERATURE_CAP", 1.0),
            datastore_type=os.getenv("DATASTORE_TYPE", "memory").lower(),
            data_dir=Path(data_dir) if data_dir else None,
        )
