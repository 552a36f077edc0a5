# cyber_var/models/components.py
from dataclasses import dataclass, replace

import numpy as np


# ---------- Insurance ----------


@dataclass
class InsuranceLayer:
    """
    Single excess-of-loss layer: reimburses the part of a loss above the
    deductible, capped at `coverage`.
    """

    coverage: float = 0.0
    deductible: float = 0.0

    def apply(self, loss):
        """
        Retained loss after recovery. Works on scalars and numpy arrays.
        """
        loss = np.asarray(loss, dtype=np.float64)
        insured = np.maximum(0.0, loss - self.deductible)
        retained = np.maximum(0.0, loss - np.minimum(insured, self.coverage))
        return retained if retained.ndim else float(retained)


# ---------- Incident duration ----------


@dataclass
class DurationModel:
    """
    Outage duration parameters, in hours. The trial kernel draws
    (mean_hours + half_width * U) * severity with U ~ U[-1, 1], floored at
    `min_hours`.
    """

    mean_hours: float = 4.0
    half_width: float = 2.0
    min_hours: float = 0.5


# ---------- Security controls ----------

BASE_MATURITY = 0.5
MAX_MATURITY = 0.99
CONTROL_MATURITY_WEIGHT = 0.1


def control_maturity(controls) -> float:
    """
    Portfolio-wide maturity implied by the implemented controls.
    """
    reduction = sum(
        c.var_reduction * CONTROL_MATURITY_WEIGHT for c in controls if c.implemented
    )
    return min(MAX_MATURITY, BASE_MATURITY + reduction)


def apply_controls(assets, controls) -> list:
    """
    Return copies of `assets` with maturity set from the implemented controls.
    """
    maturity = control_maturity(controls)
    return [replace(a, maturity_score=maturity) for a in assets]


def control_budget(controls) -> float:
    return float(sum(c.cost for c in controls if c.implemented))
