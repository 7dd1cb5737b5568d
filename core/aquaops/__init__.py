"""AquaOps fleet monitoring engine."""

# Define public API
__all__ = [
    "Dashboard",
    "EngineSettings",
    "FleetStore",
    "ModeController",
    "AdvisoryPipeline",
    "classify",
    "average",
]

# Import settings
from .settings import EngineSettings

# Import engine components
from .store import FleetStore
from .mode import ModeController
from .advisory import AdvisoryPipeline
from .classifier import classify
from .aggregation import average

# Import facade
from .dashboard import Dashboard
