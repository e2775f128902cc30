from .logging_setup import configure_logging
from .settings import ENV_PREFIX, PlannerSettings, load_settings

__all__ = [
    "ENV_PREFIX",
    "PlannerSettings",
    "configure_logging",
    "load_settings",
]
