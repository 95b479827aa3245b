# Settings package
from core.settings.modules import OrchestratorSettings, get_orchestrator_settings

__all__ = ["get_orchestrator_settings", "OrchestratorSettings"]
