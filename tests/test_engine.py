import threading

import pytest
import numpy as np
from dataclasses import replace

from cyber_var.data_structures import Asset, AssetType, BreachStatus, SimulationConfig, Threat
from cyber_var.engine import (
    simulate,
    analysis_horizons,
    neural_probabilities,
    classic_probabilities,
    SimulationCancelled,
    MAX_TRIAL_CELLS,
    CHUNK_CELL_BUDGET,
    chunk_trials,
    run_horizon,
)
from cyber_var.graph import build_dependency_graph
from cyber_var.mc_generator import TrialRandomStream
from cyber_var.models import DurationModel, StressScenario
from cyber_var.synthesis import breach_status
# Note: importing directly from the numba module to test the kernel
from cyber_var.engine_numba_columnar import (
    _incident_loss,
    _propagate_contagion,
    _run_trial_loop_numba_columnar,
)


def _chain_graph(num_assets):
    # asset i depends on asset i + 1
    dep_ptr = np.zeros(num_assets + 1, dtype=np.int64)
    edges = []
    for i in range(num_assets):
        if i + 1 < num_assets:
            edges.append(i + 1)
        dep_ptr[i + 1] = len(edges)
    return dep_ptr, np.array(edges, dtype=np.int64)


# ----------------------------------------------------------------------
# Kernel
# ----------------------------------------------------------------------


def test_contagion_probability_depends_on_failed_dependencies():
    # Asset 2 depends on assets 0 and 1, both failed: chance = 1.0 * (1 - 0.25) = 0.75
    dep_ptr = np.array([0, 0, 0, 2], dtype=np.int64)
    dep_idx = np.array([0, 1], dtype=np.int64)

    triggered = np.array([[True, True, False], [True, True, False]])
    u = np.full((5, 2, 3), 0.9)
    u[0, 0, 2] = 0.7  # below 0.75 -> fails
    u[:, 1, 2] = 0.8  # never below 0.75

    new = _propagate_contagion(triggered, dep_ptr, dep_idx, 1.0, u)

    assert triggered[0, 2]
    assert not triggered[1, 2]
    np.testing.assert_array_equal(new, [1, 0])


def test_contagion_round_cap_bounds_cascade():
    dep_ptr, dep_idx = _chain_graph(8)
    triggered = np.zeros((1, 8), dtype=np.bool_)
    triggered[0, 7] = True
    u = np.zeros((5, 1, 8))

    new = _propagate_contagion(triggered, dep_ptr, dep_idx, 1.0, u)

    # One hop per round against the visiting order, five rounds
    assert new[0] == 5
    np.testing.assert_array_equal(
        triggered[0], [False, False, True, True, True, True, True, True]
    )


def test_contagion_on_cycle_terminates():
    dep_ptr = np.array([0, 1, 2], dtype=np.int64)
    dep_idx = np.array([1, 0], dtype=np.int64)
    triggered = np.zeros((3, 2), dtype=np.bool_)
    triggered[0, 0] = True
    u = np.zeros((5, 3, 2))

    new = _propagate_contagion(triggered, dep_ptr, dep_idx, 0.5, u)

    assert triggered[0].all()
    assert not triggered[1:].any()
    np.testing.assert_array_equal(new, [1, 0, 0])


def test_zero_contagion_factor_leaves_trigger_set_unchanged():
    dep_ptr, dep_idx = _chain_graph(4)
    triggered = np.array([[False, False, False, True]])
    before = triggered.copy()

    new = _propagate_contagion(triggered, dep_ptr, dep_idx, 0.0, np.zeros((5, 1, 4)))

    np.testing.assert_array_equal(triggered, before)
    assert new[0] == 0


def test_trial_kernel_losses():
    # 1 trial, 2 assets; asset 0 fails in both models, asset 1 in neither
    classic_prob = np.array([0.5, 0.5])
    neural_prob = np.array([0.5, 0.5])
    hourly = np.array([100.0, 1000.0])
    dep_ptr = np.zeros(3, dtype=np.int64)
    dep_idx = np.zeros(0, dtype=np.int64)

    u_trig = np.array([[0.1, 0.9]])
    u_dur = np.array([[0.5, 0.5]])  # base duration 4h

    classic_loss, neural_asset_loss, initial, contagion = _run_trial_loop_numba_columnar(
        classic_prob, neural_prob, hourly, dep_ptr, dep_idx,
        0.0, 3.0, 4.0, 2.0, 0.5,
        u_trig, u_trig, np.zeros((0, 1, 2)), u_dur, u_dur,
    )

    # Classic ignores severity; neural is scaled by it
    assert classic_loss[0] == pytest.approx(400.0)
    assert neural_asset_loss[0, 0] == pytest.approx(1200.0)
    assert neural_asset_loss[0, 1] == 0.0
    assert initial[0] == 1
    assert contagion[0] == 0


def test_incident_loss_duration_range_and_floor():
    d = DurationModel()

    def loss(u, severity=1.0, hourly=1.0):
        return _incident_loss(u, severity, hourly, d.mean_hours, d.half_width, d.min_hours)

    assert loss(0.0) == pytest.approx(2.0)
    assert loss(0.5) == pytest.approx(4.0)
    assert loss(0.5, severity=7.0) == pytest.approx(28.0)
    # Floor only binds for tiny severities
    assert loss(0.0, severity=0.1) == pytest.approx(0.5)
    assert loss(0.5, hourly=250.0) == pytest.approx(1_000.0)


# ----------------------------------------------------------------------
# Probabilities and horizons
# ----------------------------------------------------------------------


def test_analysis_horizons_deduplicated():
    assert analysis_horizons(365) == [1, 10, 30, 365]
    assert analysis_horizons(30) == [1, 10, 30]
    assert analysis_horizons(5) == [1, 10, 30, 5]


def test_neural_probability_formula_and_threat_compounding():
    asset = Asset(
        "a", "A", AssetType.DATABASE, 1.0, 0.1,
        vulnerability_score=0.6, maturity_score=0.2, technologies=("Azure", "Linux"),
    )
    threats = [
        Threat(target_technology="Azure", impact_modifier=2.0),
        Threat(target_technology="Linux", impact_modifier=1.5),
        Threat(target_technology="Oracle", impact_modifier=10.0),
    ]
    p = neural_probabilities([asset], threats, horizon_scale=0.5, frequency_multiplier=3.0)
    # 0.1 * 0.5 * 3.0 * 1.4 * 2.0 * 1.5
    assert p[0] == pytest.approx(0.63)

    reversed_p = neural_probabilities([asset], threats[::-1], 0.5, 3.0)
    assert reversed_p[0] == pytest.approx(p[0])


def test_probabilities_are_clamped():
    asset = Asset("a", "A", AssetType.DATABASE, 1.0, 1.0, vulnerability_score=1.0, maturity_score=0.0)
    assert neural_probabilities([asset], [], 1.0, 7.0)[0] == 0.99
    assert classic_probabilities([asset], 10.0)[0] == 0.99


# ----------------------------------------------------------------------
# simulate()
# ----------------------------------------------------------------------


def test_result_invariants(bank_assets, azure_threat, base_config):
    res = simulate(bank_assets, [azure_threat], base_config, seed=11)

    losses = res.total_losses
    assert losses.shape == (base_config.iterations,)
    assert np.all(np.diff(losses) >= 0)
    assert np.all(losses >= 0)

    assert 0.0 <= res.var95 <= res.var99
    assert res.cvar95 >= res.var95
    assert res.max_loss == losses[-1]
    assert res.expected_loss == pytest.approx(losses.mean())
    assert res.economic_capital == pytest.approx(1.25 * res.var95)

    for h in res.horizons:
        assert h.cvar_value >= h.var_value >= 0.0
    assert [h.days for h in res.horizons] == [1, 10, 30, 365]
    assert res.horizon(365).var_value == res.var95


def test_allocated_capital_sums_to_economic_capital(bank_assets, azure_threat, base_config):
    res = simulate(bank_assets, [azure_threat], base_config, seed=3)

    assert res.economic_capital > 0
    total = sum(b.allocated_capital for b in res.asset_breaks)
    assert total == pytest.approx(res.economic_capital)

    contributions = [b.contribution for b in res.asset_breaks]
    assert contributions == sorted(contributions, reverse=True)
    assert all(c >= 0 for c in contributions)
    for b in res.asset_breaks:
        if b.contribution == 0:
            assert b.raroc == 0.0
        else:
            assert b.raroc > 0.0


def test_breach_status_matches_var(bank_assets, base_config):
    res = simulate(bank_assets, [], base_config, seed=5)
    assert res.breach_status == breach_status(res.var95, base_config.risk_appetite_limit)
    assert res.breach_status.value in res.narrative


def test_zero_contagion_adds_no_triggers(bank_assets, base_config):
    config = replace(base_config, contagion_factor=0.0)
    res = simulate(bank_assets, [], config, seed=8)
    assert res.metadata["contagion_triggers"] == 0

    res_on = simulate(bank_assets, [], replace(base_config, contagion_factor=1.0), seed=8)
    assert res_on.metadata["contagion_triggers"] > 0


def test_classic_model_bypasses_insurance(bank_assets, base_config):
    config = replace(
        base_config,
        use_neural_adjustments=False,
        insurance_coverage=1e12,
        insurance_deductible=0.0,
    )
    res = simulate(bank_assets, [], config, seed=21)

    np.testing.assert_array_equal(res.total_losses, res.classic_losses)
    assert res.var95 == res.horizon(365).classic_var_value
    assert res.max_loss > 0


def test_single_certain_asset_end_to_end():
    assets = [
        Asset("A", "Always", AssetType.DATABASE, hourly_loss_value=100.0, base_probability=1.0),
        Asset("B", "Never", AssetType.DATABASE, hourly_loss_value=100.0, base_probability=0.0),
    ]
    config = SimulationConfig(
        iterations=1000,
        horizon_days=365,
        stress_scenario=StressScenario.NONE,
        risk_appetite_limit=1e9,
        insurance_coverage=0.0,
        insurance_deductible=0.0,
        contagion_factor=0.0,
        use_neural_adjustments=True,
    )

    res = simulate(assets, [], config, seed=2024)

    # Trigger probability is clamped at 0.99, loss ~ U(2, 6) * 100 otherwise
    assert 380.0 < res.expected_loss < 415.0
    assert 580.0 < res.max_loss <= 600.0
    assert res.total_losses[50] >= 200.0

    top = res.asset_breaks[0]
    assert top.asset_id == "A"
    assert top.allocated_capital == pytest.approx(res.economic_capital)
    assert res.asset_breaks[1].contribution == 0.0
    assert res.asset_breaks[1].raroc == 0.0
    assert res.breach_status == BreachStatus.SAFE
    assert res.drivers[0].name == "Always"


def test_same_seed_reproducible(bank_assets, azure_threat, base_config):
    a = simulate(bank_assets, [azure_threat], base_config, seed=77)
    b = simulate(bank_assets, [azure_threat], base_config, seed=77)

    np.testing.assert_array_equal(a.total_losses, b.total_losses)
    assert a.var95 == b.var95
    assert a.cvar95 == b.cvar95
    assert a.asset_breaks == b.asset_breaks
    assert a.horizons == b.horizons
    assert a.narrative == b.narrative


def test_explicit_generator(bank_assets, base_config):
    a = simulate(bank_assets, [], base_config, rng=np.random.default_rng(4))
    b = simulate(bank_assets, [], base_config, rng=np.random.default_rng(4))
    np.testing.assert_array_equal(a.total_losses, b.total_losses)


def test_stress_scenario_raises_expected_loss(bank_assets, base_config):
    base = simulate(bank_assets, [], base_config, seed=1)
    stressed = simulate(
        bank_assets, [], replace(base_config, stress_scenario=StressScenario.RANSOMWARE_WAVE), seed=1
    )
    assert stressed.expected_loss > base.expected_loss
    assert stressed.metadata["severity_multiplier"] == 1.8


def test_zero_iterations_is_degenerate_not_an_error(bank_assets, base_config):
    res = simulate(bank_assets, [], replace(base_config, iterations=0), seed=1)

    assert res.total_losses.size == 0
    assert res.var95 == res.var99 == res.cvar95 == 0.0
    assert res.expected_loss == 0.0
    assert res.max_loss == 0.0
    assert all(b.contribution == 0.0 and b.allocated_capital == 0.0 for b in res.asset_breaks)
    assert res.breach_status == BreachStatus.SAFE


def test_empty_portfolio(base_config):
    res = simulate([], [], base_config, seed=1)

    assert res.total_losses.shape == (base_config.iterations,)
    assert not res.total_losses.any()
    assert res.asset_breaks == []
    assert res.drivers[0].name == "Asset Loss"
    assert res.drivers[1].name == "Threat Feed"


def test_unknown_dependency_is_ignored(base_config):
    assets = [Asset("a", "A", AssetType.DATABASE, 10.0, 0.5, dependencies=("missing",))]
    res = simulate(assets, [], base_config, seed=1)
    assert res.metadata["unresolved_dependencies"] == [("a", "missing")]


@pytest.mark.parametrize(
    "overrides, match",
    [
        ({"iterations": -1}, "iterations"),
        ({"iterations": 10.5}, "iterations"),
        ({"horizon_days": 0}, "horizon_days"),
        ({"contagion_factor": 1.5}, "contagion_factor"),
        ({"insurance_deductible": -1.0}, "insurance"),
        ({"insurance_coverage": float("nan")}, "insurance_coverage"),
        ({"insurance_coverage": float("inf")}, "insurance_coverage"),
        ({"risk_appetite_limit": float("nan")}, "risk_appetite_limit"),
        ({"risk_appetite_limit": -1.0}, "risk_appetite_limit"),
        ({"horizon_days": float("nan")}, "horizon_days"),
    ],
)
def test_invalid_config_rejected(bank_assets, base_config, overrides, match):
    with pytest.raises(ValueError, match=match):
        simulate(bank_assets, [], replace(base_config, **overrides), seed=1)


def test_invalid_asset_and_threat_rejected(bank_assets, base_config):
    bad_asset = replace(bank_assets[0], base_probability=1.2)
    with pytest.raises(ValueError, match="base_probability"):
        simulate([bad_asset], [], base_config)

    with pytest.raises(ValueError, match="impact_modifier"):
        simulate(bank_assets, [Threat(target_technology="Azure", impact_modifier=0.5)], base_config)

    nan_loss = replace(bank_assets[0], hourly_loss_value=float("nan"))
    with pytest.raises(ValueError, match="hourly_loss_value"):
        simulate([nan_loss], [], base_config)

    nan_threat = Threat(target_technology="Azure", impact_modifier=float("nan"))
    with pytest.raises(ValueError, match="impact_modifier"):
        simulate(bank_assets, [nan_threat], base_config)


def test_work_ceiling(bank_assets, base_config):
    too_many = MAX_TRIAL_CELLS // (4 * len(bank_assets)) + 1
    with pytest.raises(ValueError, match="exceeds the limit"):
        simulate(bank_assets, [], replace(base_config, iterations=too_many))


def test_cancellation(bank_assets, base_config):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(SimulationCancelled):
        simulate(bank_assets, [], base_config, seed=1, cancel=cancel)


# ----------------------------------------------------------------------
# Chunking
# ----------------------------------------------------------------------


class _RecordingStream(TrialRandomStream):
    def __init__(self, seed):
        super().__init__(seed=seed)
        self.shapes = []

    def draw(self, num_trials, num_assets, with_contagion=True):
        self.shapes.append((num_trials, num_assets))
        return super().draw(num_trials, num_assets, with_contagion=with_contagion)


def test_chunk_trials_respects_cell_budget():
    assert chunk_trials(5_000, 4) == 5_000
    assert chunk_trials(5_000, 0) == 5_000
    assert chunk_trials(5_000, 1_000) == CHUNK_CELL_BUDGET // 1_000
    # Wide portfolios still advance one trial at a time
    assert chunk_trials(5_000, CHUNK_CELL_BUDGET * 2) == 1


def test_run_horizon_chunks_wide_portfolio(monkeypatch, base_config):
    monkeypatch.setattr("cyber_var.engine.CHUNK_CELL_BUDGET", 100)
    assets = [
        Asset(str(i), f"Node {i}", AssetType.DATABASE, 1_000.0, 0.2) for i in range(20)
    ]
    config = replace(base_config, iterations=23)
    stream = _RecordingStream(seed=3)

    acc = run_horizon(365, assets, [], config, build_dependency_graph(assets), stream)

    assert stream.shapes == [(5, 20), (5, 20), (5, 20), (5, 20), (3, 20)]
    assert acc.recorded_losses.shape == (23,)
    assert acc.classic_losses.shape == (23,)
