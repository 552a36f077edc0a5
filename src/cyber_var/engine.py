# ============================================================
#  engine.py — High-level orchestrator for cyber-var
# ============================================================

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .data_structures import Asset, SimulationConfig, SimulationResult, Threat
from .graph import DependencyGraph, build_dependency_graph
from .mc_generator import TrialRandomStream
from .models import DurationModel, InsuranceLayer, StressScenario, scenario_multipliers
from .statistics import (
    allocate_capital,
    economic_capital,
    horizon_record,
    tail_statistics,
)
from .synthesis import breach_status, narrative, rank_drivers

# Columnar trial kernel
from .engine_numba_columnar import _run_trial_loop_numba_columnar

MAX_PROBABILITY = 0.99
STANDARD_HORIZONS = (1, 10, 30)
DEFAULT_CHUNK_SIZE = 5_000
MAX_TRIAL_CELLS = 200_000_000  # iterations * horizons * assets
CHUNK_CELL_BUDGET = 1_000_000  # trials * assets per kernel call


class SimulationCancelled(RuntimeError):
    pass


# ============================================================
#  Input validation
# ============================================================


def _check_unit_interval(value: float, what: str):
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"{what} must be in [0, 1], got {value}")


def _check_non_negative(value: float, what: str):
    if not (np.isfinite(value) and value >= 0.0):
        raise ValueError(f"{what} must be a finite number >= 0, got {value}")


def validate_inputs(assets: Sequence[Asset], threats: Sequence[Threat], config: SimulationConfig):
    """
    Reject structurally invalid input before any sampling happens.
    """
    if isinstance(config.iterations, bool) or not isinstance(config.iterations, (int, np.integer)):
        raise ValueError(f"iterations must be an integer, got {config.iterations!r}")
    if config.iterations < 0:
        raise ValueError(f"iterations must be >= 0, got {config.iterations}")
    if not np.isfinite(config.horizon_days) or int(config.horizon_days) != config.horizon_days:
        raise ValueError(f"horizon_days must be a whole number of days, got {config.horizon_days}")
    if config.horizon_days < 1:
        raise ValueError(f"horizon_days must be >= 1, got {config.horizon_days}")
    _check_unit_interval(config.contagion_factor, "contagion_factor")
    _check_non_negative(config.insurance_coverage, "insurance_coverage")
    _check_non_negative(config.insurance_deductible, "insurance_deductible")
    _check_non_negative(config.risk_appetite_limit, "risk_appetite_limit")

    for a in assets:
        _check_unit_interval(a.base_probability, f"Asset {a.id}: base_probability")
        _check_unit_interval(a.vulnerability_score, f"Asset {a.id}: vulnerability_score")
        _check_unit_interval(a.maturity_score, f"Asset {a.id}: maturity_score")
        _check_non_negative(a.hourly_loss_value, f"Asset {a.id}: hourly_loss_value")

    for t in threats:
        if not (np.isfinite(t.impact_modifier) and t.impact_modifier >= 1.0):
            raise ValueError(
                f"Threat {t.id or t.target_technology}: impact_modifier must be >= 1.0, "
                f"got {t.impact_modifier}"
            )


def chunk_trials(chunk_size: int, num_assets: int) -> int:
    """Trials per kernel call: at most `chunk_size`, and at most CHUNK_CELL_BUDGET cells."""
    return max(1, min(chunk_size, CHUNK_CELL_BUDGET // max(num_assets, 1)))


def analysis_horizons(horizon_days: int) -> List[int]:
    """Standard horizons plus the primary one, deduplicated, in order."""
    horizons = []
    for h in (*STANDARD_HORIZONS, int(horizon_days)):
        if h not in horizons:
            horizons.append(h)
    return horizons


# ============================================================
#  Trigger probabilities
# ============================================================


def classic_probabilities(assets: Sequence[Asset], horizon_scale: float) -> np.ndarray:
    base = np.array([a.base_probability for a in assets], dtype=np.float64)
    return np.clip(base * horizon_scale, 0.0, MAX_PROBABILITY)


def threat_amplification(asset: Asset, threats: Sequence[Threat]) -> float:
    factor = 1.0
    techs = set(asset.technologies)
    for t in threats:
        if t.target_technology in techs:
            factor *= t.impact_modifier
    return factor


def neural_probabilities(
    assets: Sequence[Asset],
    threats: Sequence[Threat],
    horizon_scale: float,
    frequency_multiplier: float,
) -> np.ndarray:
    """
    p = base * scale * frequency * (1 + vulnerability - maturity) * prod(threat modifiers)
    clamped to [0, 0.99].
    """
    probs = np.empty(len(assets), dtype=np.float64)
    for i, a in enumerate(assets):
        p = a.base_probability * horizon_scale * frequency_multiplier
        p *= 1.0 + a.vulnerability_score - a.maturity_score
        p *= threat_amplification(a, threats)
        probs[i] = p
    return np.clip(probs, 0.0, MAX_PROBABILITY)


# ============================================================
#  One horizon
# ============================================================


@dataclass
class HorizonAccumulator:
    """
    Everything one horizon's trial loop produces. Built per horizon and
    handed back to `simulate`, never shared between horizons.
    """

    days: int
    recorded_losses: np.ndarray  # [iterations]
    classic_losses: np.ndarray  # [iterations]
    asset_loss: np.ndarray  # [A] summed neural loss per asset
    initial_triggers: int = 0
    contagion_triggers: int = 0


def run_horizon(
    days: int,
    assets: Sequence[Asset],
    threats: Sequence[Threat],
    config: SimulationConfig,
    graph: DependencyGraph,
    stream: TrialRandomStream,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cancel=None,
) -> HorizonAccumulator:
    multipliers = scenario_multipliers(config.stress_scenario)
    insurance = InsuranceLayer(
        coverage=config.insurance_coverage,
        deductible=config.insurance_deductible,
    )
    duration = DurationModel()

    horizon_scale = days / 365.0
    classic_prob = classic_probabilities(assets, horizon_scale)
    neural_prob = neural_probabilities(assets, threats, horizon_scale, multipliers.frequency)
    hourly_loss = np.array([a.hourly_loss_value for a in assets], dtype=np.float64)

    n_total = config.iterations
    A = len(assets)
    with_contagion = config.contagion_factor > 0.0

    recorded = np.zeros(n_total, dtype=np.float64)
    classic = np.zeros(n_total, dtype=np.float64)
    asset_loss = np.zeros(A, dtype=np.float64)
    initial_triggers = 0
    contagion_triggers = 0
    step = chunk_trials(chunk_size, A)

    for start in range(0, n_total, step):
        if cancel is not None and cancel.is_set():
            raise SimulationCancelled(f"Cancelled at horizon {days}d, trial {start}")

        n = min(step, n_total - start)
        draws = stream.draw(n, A, with_contagion=with_contagion)

        (
            classic_loss,
            neural_asset_loss,
            triggered_initial,
            triggered_contagion,
        ) = _run_trial_loop_numba_columnar(
            classic_prob,
            neural_prob,
            hourly_loss,
            graph.dep_ptr,
            graph.dep_idx,
            float(config.contagion_factor),
            float(multipliers.severity),
            duration.mean_hours,
            duration.half_width,
            duration.min_hours,
            draws.classic_trigger,
            draws.neural_trigger,
            draws.contagion,
            draws.classic_duration,
            draws.neural_duration,
        )

        neural_total = neural_asset_loss.sum(axis=1)
        if config.use_neural_adjustments:
            recorded[start : start + n] = insurance.apply(neural_total)
        else:
            recorded[start : start + n] = classic_loss
        classic[start : start + n] = classic_loss

        asset_loss += neural_asset_loss.sum(axis=0)
        initial_triggers += int(triggered_initial.sum())
        contagion_triggers += int(triggered_contagion.sum())

    return HorizonAccumulator(
        days=days,
        recorded_losses=recorded,
        classic_losses=classic,
        asset_loss=asset_loss,
        initial_triggers=initial_triggers,
        contagion_triggers=contagion_triggers,
    )


# ============================================================
#  MAIN ENTRY: simulate()
# ============================================================


def simulate(
    assets: Sequence[Asset],
    threats: Sequence[Threat],
    config: SimulationConfig,
    *,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    cancel=None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> SimulationResult:
    """
    Run the multi-horizon Monte Carlo and derive tail risk, capital and drivers.

    `seed` / `rng` make the run reproducible; without them every call draws
    fresh entropy. `cancel` is anything with an `is_set()` method and is
    polled between chunks of `chunk_size` trials.
    """
    assets = list(assets)
    threats = list(threats)

    # ------------------------------------------------------------
    # Step 1 — Validate and parameterize
    # ------------------------------------------------------------
    validate_inputs(assets, threats, config)
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")

    horizons = analysis_horizons(config.horizon_days)
    primary_days = int(config.horizon_days)
    cells = config.iterations * len(horizons) * len(assets)
    if cells > MAX_TRIAL_CELLS:
        raise ValueError(
            f"iterations x horizons x assets = {cells:,} exceeds the limit of {MAX_TRIAL_CELLS:,}"
        )

    graph = build_dependency_graph(assets)
    stream = TrialRandomStream(seed=seed, rng=rng)
    multipliers = scenario_multipliers(config.stress_scenario)

    # ------------------------------------------------------------
    # Step 2 — Per-horizon trial loop + tail statistics
    # ------------------------------------------------------------
    records = []
    primary = None
    primary_stats = None
    primary_classic = None

    for days in horizons:
        acc = run_horizon(
            days, assets, threats, config, graph, stream, chunk_size=chunk_size, cancel=cancel
        )
        stats = tail_statistics(acc.recorded_losses)
        classic_stats = tail_statistics(acc.classic_losses)
        records.append(horizon_record(days, stats, classic_stats))

        if days == primary_days:
            primary, primary_stats, primary_classic = acc, stats, classic_stats

    # ------------------------------------------------------------
    # Step 3 — Capital allocation (primary horizon)
    # ------------------------------------------------------------
    capital = economic_capital(primary_stats.var95)
    asset_breaks = allocate_capital(assets, primary.asset_loss, config.iterations, capital)

    # ------------------------------------------------------------
    # Step 4 — Synthesis
    # ------------------------------------------------------------
    status = breach_status(primary_stats.var95, config.risk_appetite_limit)

    return SimulationResult(
        var95=primary_stats.var95,
        var99=primary_stats.var99,
        cvar95=primary_stats.cvar95,
        expected_loss=primary_stats.expected_loss,
        max_loss=primary_stats.max_loss,
        total_losses=primary_stats.sorted_losses,
        asset_breaks=asset_breaks,
        horizons=records,
        drivers=rank_drivers(asset_breaks, threats),
        breach_status=status,
        narrative=narrative(
            primary_stats.var99, capital, status, currency=config.currency_symbol
        ),
        economic_capital=capital,
        classic_losses=primary_classic.sorted_losses,
        metadata={
            "seed": seed,
            "horizons": horizons,
            "stress_scenario": StressScenario.parse(config.stress_scenario).value,
            "frequency_multiplier": multipliers.frequency,
            "severity_multiplier": multipliers.severity,
            "initial_triggers": primary.initial_triggers,
            "contagion_triggers": primary.contagion_triggers,
            "unresolved_dependencies": list(graph.unresolved),
        },
    )
