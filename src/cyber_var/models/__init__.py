from .scenarios import (
    StressScenario,
    ScenarioMultipliers,
    SCENARIO_MULTIPLIERS,
    scenario_multipliers,
)
from .components import (
    InsuranceLayer,
    DurationModel,
    apply_controls,
    control_maturity,
    control_budget,
)
