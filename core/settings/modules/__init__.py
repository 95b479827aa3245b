# Settings modules
from .orchestrator_settings import OrchestratorSettings, get_orchestrator_settings

__all__ = [
    "OrchestratorSettings",
    "get_orchestrator_settings",
]
