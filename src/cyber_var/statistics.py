# ============================================================
#  statistics.py — Tail statistics and capital allocation
# ============================================================

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .data_structures import AssetBreakdown, HorizonResult

CAPITAL_BUFFER_MULTIPLIER = 1.25
HOURS_PER_YEAR = 24 * 365
NOTIONAL_RETURN_RATE = 0.1


@dataclass
class TailStatistics:
    sorted_losses: np.ndarray
    var95: float
    var99: float
    cvar95: float

    @property
    def expected_loss(self) -> float:
        n = self.sorted_losses.size
        return float(np.sum(self.sorted_losses) / n) if n > 0 else 0.0

    @property
    def max_loss(self) -> float:
        return float(self.sorted_losses[-1]) if self.sorted_losses.size > 0 else 0.0


def var_index(n: int, level: float) -> int:
    """Order-statistic index of the `level` VaR in a sample of size n."""
    return int(np.floor(level * n))


def tail_statistics(losses) -> TailStatistics:
    """
    Historical-simulation VaR / CVaR on a loss sample.

    VaR_p is sorted[floor(p * n)] with no interpolation; CVaR95 is the mean
    of sorted[floor(0.95 * n):]. An empty sample yields zeros.
    """
    sorted_losses = np.sort(np.asarray(losses, dtype=np.float64))
    n = sorted_losses.size
    if n == 0:
        return TailStatistics(sorted_losses, 0.0, 0.0, 0.0)

    idx95 = var_index(n, 0.95)
    idx99 = var_index(n, 0.99)

    var95 = float(sorted_losses[idx95])
    var99 = float(sorted_losses[idx99])
    tail = sorted_losses[idx95:]
    cvar95 = float(np.mean(tail)) if tail.size > 0 else var95

    return TailStatistics(sorted_losses, var95, var99, cvar95)


def horizon_record(days: int, neural: TailStatistics, classic: TailStatistics) -> HorizonResult:
    return HorizonResult(
        days=days,
        var_value=neural.var95,
        cvar_value=neural.cvar95,
        classic_var_value=classic.var95,
    )


def economic_capital(var95: float) -> float:
    return var95 * CAPITAL_BUFFER_MULTIPLIER


def allocate_capital(
    assets: Sequence,
    accumulated_loss: np.ndarray,
    iterations: int,
    capital: float,
) -> List[AssetBreakdown]:
    """
    Split `capital` across assets in proportion to their accumulated loss.

    contribution = accumulated / iterations
    allocated    = capital * accumulated / total  (total of 0 treated as 1)
    raroc        = notional return / allocated, for assets with a contribution
    The result is sorted by contribution, largest first.
    """
    accumulated_loss = np.asarray(accumulated_loss, dtype=np.float64)
    total = float(np.sum(accumulated_loss))
    if total == 0.0:
        total = 1.0

    breaks = []
    for asset, acc in zip(assets, accumulated_loss):
        acc = float(acc)
        contribution = acc / iterations if iterations > 0 else 0.0
        allocated = capital * (acc / total)
        if contribution > 0 and allocated > 0:
            raroc = (asset.hourly_loss_value * HOURS_PER_YEAR * NOTIONAL_RETURN_RATE) / allocated
        else:
            raroc = 0.0
        breaks.append(
            AssetBreakdown(
                asset_id=asset.id,
                asset_name=asset.name,
                contribution=contribution,
                allocated_capital=allocated,
                raroc=raroc,
            )
        )

    return sorted(breaks, key=lambda b: b.contribution, reverse=True)
