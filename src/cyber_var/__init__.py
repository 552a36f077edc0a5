from .data_structures import (
    Asset,
    AssetType,
    Threat,
    Control,
    SimulationConfig,
    SimulationResult,
    HorizonResult,
    AssetBreakdown,
    Driver,
    DriverKind,
    BreachStatus,
)
from .models import StressScenario, apply_controls
from .engine import simulate, SimulationCancelled
