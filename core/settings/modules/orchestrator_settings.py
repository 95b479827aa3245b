from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, field_validator

from core.settings.base import OrchestratorBaseSettings


class OrchestratorSettings(OrchestratorBaseSettings):
    """
    Settings for the workflow orchestration engine.
    Loaded from the environment (or .env) with exact variable name matching.
    """

    log_level: str = Field("INFO", alias="ORCHESTRATOR_LOG_LEVEL")
    max_concurrent_tasks: int = Field(50, ge=1, alias="ORCHESTRATOR_MAX_CONCURRENT_TASKS")
    default_task_timeout: float | None = Field(
        None, gt=0, alias="ORCHESTRATOR_DEFAULT_TASK_TIMEOUT"
    )
    default_global_timeout: float | None = Field(
        None, gt=0, alias="ORCHESTRATOR_DEFAULT_GLOBAL_TIMEOUT"
    )
    max_retry_delay: float = Field(60.0, ge=0, alias="ORCHESTRATOR_MAX_RETRY_DELAY")
    event_handler_timeout: float | None = Field(
        5.0, gt=0, alias="ORCHESTRATOR_EVENT_HANDLER_TIMEOUT"
    )

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"unknown log level: {value}")
        return value


@lru_cache()
def get_orchestrator_settings() -> OrchestratorSettings:
    return OrchestratorSettings()
