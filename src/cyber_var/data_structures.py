from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Any, List, Tuple

import numpy as np

from .models.scenarios import StressScenario


# ----------------------------------------------------------------------
# Portfolio inputs
# ----------------------------------------------------------------------


class AssetType(Enum):
    PAYMENT_SYSTEM = "Payment System"
    DATABASE = "Database"
    TRADING_ALGO = "Trading Algorithm"
    CLOUD_INFRA = "Cloud Infrastructure"
    IDENTITY_PROVIDER = "IAM Provider"


@dataclass(frozen=True)
class Asset:
    """
    A monitored system in the portfolio.

    `dependencies` lists the ids of upstream assets this one relies on.
    The graph they form may contain cycles; ids that do not resolve to an
    asset in the same run are ignored.
    """

    id: str
    name: str
    type: AssetType
    hourly_loss_value: float  # currency / hour of outage
    base_probability: float  # annualized single-event probability
    vulnerability_score: float = 0.5  # [0, 1]
    maturity_score: float = 0.5  # [0, 1]
    technologies: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Threat:
    """
    Structured intelligence signal. Only `target_technology` and
    `impact_modifier` feed the simulation; `title` is surfaced as a driver.
    """

    target_technology: str
    impact_modifier: float  # >= 1.0
    id: str = ""
    title: str = ""
    description: str = ""
    severity: str = "Medium"  # Low | Medium | High | Critical
    timestamp: str = ""


@dataclass(frozen=True)
class Control:
    id: str
    name: str
    cost: float
    var_reduction: float  # fraction in [0, 1]
    mapping: str = "NIST"  # NIST | ISO27001 | DORA
    implemented: bool = False


@dataclass(frozen=True)
class SimulationConfig:
    iterations: int = 15_000
    horizon_days: int = 365
    stress_scenario: StressScenario = StressScenario.NONE
    risk_appetite_limit: float = 8_500_000.0
    insurance_coverage: float = 5_000_000.0
    insurance_deductible: float = 500_000.0
    contagion_factor: float = 0.4
    use_neural_adjustments: bool = True
    currency_symbol: str = "€"


# ----------------------------------------------------------------------
# Simulation output
# ----------------------------------------------------------------------


class BreachStatus(Enum):
    SAFE = "SAFE"
    WARNING = "WARNING"
    BREACH = "BREACH"


class DriverKind(Enum):
    ASSET = "ASSET"
    THREAT = "THREAT"
    TECH = "TECH"
    CONTROL = "CONTROL"


@dataclass
class HorizonResult:
    days: int
    var_value: float
    cvar_value: float
    classic_var_value: float


@dataclass
class AssetBreakdown:
    asset_id: str
    asset_name: str
    contribution: float  # expected per-trial loss attributable to the asset
    allocated_capital: float
    raroc: float


@dataclass
class Driver:
    name: str
    impact: float
    kind: DriverKind


@dataclass
class SimulationResult:
    """
    Output of one `simulate()` call.

    `total_losses` is the sorted loss sample of the primary horizon
    (length == config.iterations). Everything else is derived from it
    and from the per-asset accumulators of that same horizon.
    """

    var95: float
    var99: float
    cvar95: float
    expected_loss: float
    max_loss: float
    total_losses: np.ndarray  # [iterations], ascending
    asset_breaks: List[AssetBreakdown]
    horizons: List[HorizonResult]
    drivers: List[Driver]
    breach_status: BreachStatus
    narrative: str
    economic_capital: float

    # Sorted classic-model sample of the primary horizon, for comparison
    classic_losses: Optional[np.ndarray] = None

    # General-purpose metadata
    metadata: Dict[str, Any] = field(default_factory=dict)

    def horizon(self, days: int) -> HorizonResult:
        """Convenience: result.horizon(30) instead of scanning result.horizons."""
        for h in self.horizons:
            if h.days == days:
                return h
        raise KeyError(days)
