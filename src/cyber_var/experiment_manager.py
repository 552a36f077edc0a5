import os
from datetime import datetime
from typing import Optional

import yaml

from .data_structures import Asset, AssetType, Control, SimulationConfig, Threat
from .engine import simulate
from .models import StressScenario, apply_controls, control_budget
from .summary import generate_summary


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------


def now_id() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def _require(cfg: dict, key: str, what: str):
    if key not in cfg:
        raise ValueError(f"{what} is missing required key '{key}'")
    return cfg[key]


def _as_tuple(value) -> tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _as_int(value, key: str) -> int:
    number = float(value)
    if number != int(number):
        raise ValueError(f"{key} must be a whole number, got {value}")
    return int(number)


# ------------------------------------------------------------
# Component Builders
# ------------------------------------------------------------


def build_asset_type(value) -> AssetType:
    """Accept either the enum name (CLOUD_INFRA) or its label (Cloud Infrastructure)."""
    for member in AssetType:
        if value == member.name or value == member.value:
            return member
    raise ValueError(f"Unknown asset type: {value}")


def build_asset(cfg: dict) -> Asset:
    aid = str(_require(cfg, "id", "Asset"))
    return Asset(
        id=aid,
        name=str(cfg.get("name", aid)),
        type=build_asset_type(cfg.get("type", "DATABASE")),
        hourly_loss_value=float(_require(cfg, "hourly_loss_value", f"Asset {aid}")),
        base_probability=float(_require(cfg, "base_probability", f"Asset {aid}")),
        vulnerability_score=float(cfg.get("vulnerability_score", 0.5)),
        maturity_score=float(cfg.get("maturity_score", 0.5)),
        technologies=_as_tuple(cfg.get("technologies")),
        dependencies=_as_tuple(cfg.get("dependencies")),
    )


def build_threat(cfg: dict) -> Threat:
    return Threat(
        target_technology=str(_require(cfg, "target_technology", "Threat")),
        impact_modifier=float(cfg.get("impact_modifier", 1.0)),
        id=str(cfg.get("id", "")),
        title=str(cfg.get("title", "")),
        description=str(cfg.get("description", "")),
        severity=str(cfg.get("severity", "Medium")),
        timestamp=str(cfg.get("timestamp", "")),
    )


def build_control(cfg: dict) -> Control:
    mapping = cfg.get("mapping", "NIST")
    if mapping not in ("NIST", "ISO27001", "DORA"):
        raise ValueError(f"Unknown control mapping: {mapping}")
    cid = str(_require(cfg, "id", "Control"))
    return Control(
        id=cid,
        name=str(cfg.get("name", cid)),
        cost=float(cfg.get("cost", 0.0)),
        var_reduction=float(cfg.get("var_reduction", 0.0)),
        mapping=mapping,
        implemented=bool(cfg.get("implemented", False)),
    )


def build_config(cfg: dict) -> SimulationConfig:
    defaults = SimulationConfig()

    scenario = cfg.get("stress_scenario", "NONE")
    parsed = StressScenario.parse(scenario)
    if scenario is not None and parsed.value != str(scenario).strip().upper():
        print(f"[WARN] Unknown stress scenario '{scenario}'. Falling back to NONE.")

    return SimulationConfig(
        iterations=_as_int(cfg.get("iterations", defaults.iterations), "iterations"),
        horizon_days=_as_int(cfg.get("horizon_days", defaults.horizon_days), "horizon_days"),
        stress_scenario=parsed,
        risk_appetite_limit=float(cfg.get("risk_appetite_limit", defaults.risk_appetite_limit)),
        insurance_coverage=float(cfg.get("insurance_coverage", defaults.insurance_coverage)),
        insurance_deductible=float(cfg.get("insurance_deductible", defaults.insurance_deductible)),
        contagion_factor=float(cfg.get("contagion_factor", defaults.contagion_factor)),
        use_neural_adjustments=bool(
            cfg.get("use_neural_adjustments", defaults.use_neural_adjustments)
        ),
        currency_symbol=str(cfg.get("currency_symbol", defaults.currency_symbol)),
    )


# ------------------------------------------------------------
# Portfolio (YAML) loading
# ------------------------------------------------------------


def load_experiment(config_file: str) -> dict:
    """
    Parse an experiment YAML file into built objects:
      name, seed, config, assets, threats, controls
    """
    with open(config_file, "r") as f:
        cfg = yaml.safe_load(f) or {}

    assets = [build_asset(a) for a in cfg.get("assets", [])]
    if not assets:
        print(f"[WARN] {config_file} defines no assets. Results will be all zero.")

    return {
        "name": cfg.get("name", os.path.splitext(os.path.basename(config_file))[0]),
        "seed": cfg.get("seed"),
        "config": build_config(cfg.get("simulation", {})),
        "assets": assets,
        "threats": [build_threat(t) for t in cfg.get("threats", [])],
        "controls": [build_control(c) for c in cfg.get("controls", [])],
    }


# ------------------------------------------------------------
# Run experiment defined by YAML config
# ------------------------------------------------------------


def run_experiment_from_config(
    config_file: str,
    seed: Optional[int] = None,
    overrides: Optional[dict] = None,
):
    exp = load_experiment(config_file)

    config = exp["config"]
    if overrides:
        config = build_config({**_config_to_dict(config), **overrides})

    if seed is None:
        seed = exp["seed"]

    assets = exp["assets"]
    controls = exp["controls"]
    if any(c.implemented for c in controls):
        assets = apply_controls(assets, controls)

    rid = f"{now_id()}_{exp['name']}"

    print("\n=== Running Experiment ===")
    print(f"Config: {config_file}")
    print(f"Run ID: {rid}")
    print(f"Assets: {[a.name for a in assets]}")
    print(f"Threats: {len(exp['threats'])}")
    print(f"Iterations: {config.iterations}")
    print(f"Stress scenario: {StressScenario.parse(config.stress_scenario).value}")
    if controls:
        print(
            f"Controls: {sum(c.implemented for c in controls)}/{len(controls)} implemented, "
            f"budget {control_budget(controls):,.0f}"
        )
    print()

    result = simulate(assets, exp["threats"], config, seed=seed)

    print(generate_summary(result, config, title=rid))
    print("Done.")
    return result


def _config_to_dict(config: SimulationConfig) -> dict:
    return {
        "iterations": config.iterations,
        "horizon_days": config.horizon_days,
        "stress_scenario": StressScenario.parse(config.stress_scenario).value,
        "risk_appetite_limit": config.risk_appetite_limit,
        "insurance_coverage": config.insurance_coverage,
        "insurance_deductible": config.insurance_deductible,
        "contagion_factor": config.contagion_factor,
        "use_neural_adjustments": config.use_neural_adjustments,
        "currency_symbol": config.currency_symbol,
    }
