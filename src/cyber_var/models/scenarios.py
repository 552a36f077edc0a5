# cyber_var/models/scenarios.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class StressScenario(Enum):
    NONE = "NONE"
    RANSOMWARE_WAVE = "RANSOMWARE_WAVE"
    ZERO_DAY_MASSIVE = "ZERO_DAY_MASSIVE"
    SUPPLY_CHAIN_COLLAPSE = "SUPPLY_CHAIN_COLLAPSE"

    @classmethod
    def parse(cls, value: Optional[Union[str, "StressScenario"]]) -> "StressScenario":
        """
        Lenient parse for config/CLI input: unknown or missing names fall
        back to NONE.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.NONE
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return cls.NONE


@dataclass(frozen=True)
class ScenarioMultipliers:
    frequency: float = 1.0
    severity: float = 1.0


SCENARIO_MULTIPLIERS = {
    StressScenario.NONE: ScenarioMultipliers(1.0, 1.0),
    StressScenario.RANSOMWARE_WAVE: ScenarioMultipliers(3.0, 1.8),
    StressScenario.ZERO_DAY_MASSIVE: ScenarioMultipliers(2.2, 4.0),
    StressScenario.SUPPLY_CHAIN_COLLAPSE: ScenarioMultipliers(1.6, 7.0),
}


def scenario_multipliers(scenario) -> ScenarioMultipliers:
    return SCENARIO_MULTIPLIERS[StressScenario.parse(scenario)]
