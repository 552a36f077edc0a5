from typing import Sequence

import numpy as np
import pandas as pd

from .data_structures import Asset, SimulationConfig, SimulationResult
from .models import StressScenario


# ------------------------------------------------------------
# Formatting helpers
# ------------------------------------------------------------


def _format_currency(val: float, symbol: str = "€") -> str:
    return f"{symbol}{val:,.2f}"


def _format_pct(val: float) -> str:
    return f"{val * 100:.2f}%"


def _markdown_table(df: pd.DataFrame) -> list:
    lines = ["| " + " | ".join(str(c) for c in df.columns) + " |"]
    lines.append("| " + " | ".join([":---"] * len(df.columns)) + " |")
    for row in df.itertuples(index=False):
        lines.append("| " + " | ".join(str(v) for v in row) + " |")
    return lines


# ------------------------------------------------------------
# Tables
# ------------------------------------------------------------


def horizon_frame(result: SimulationResult) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "days": h.days,
                "var95": h.var_value,
                "cvar95": h.cvar_value,
                "classic_var95": h.classic_var_value,
            }
            for h in result.horizons
        ],
        columns=["days", "var95", "cvar95", "classic_var95"],
    )


def asset_breakdown_frame(result: SimulationResult) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "asset_id": b.asset_id,
                "asset": b.asset_name,
                "contribution": b.contribution,
                "allocated_capital": b.allocated_capital,
                "raroc": b.raroc,
            }
            for b in result.asset_breaks
        ],
        columns=["asset_id", "asset", "contribution", "allocated_capital", "raroc"],
    )


def asset_inventory_frame(assets: Sequence[Asset]) -> pd.DataFrame:
    """
    Flat inventory of the portfolio, one row per asset.
    """
    return pd.DataFrame(
        [
            {
                "id": a.id,
                "name": a.name,
                "type": a.type.value,
                "hourlyLossValue": a.hourly_loss_value,
                "baseProbability": a.base_probability,
                "technologies": "|".join(a.technologies),
                "maturityScore": a.maturity_score,
            }
            for a in assets
        ],
        columns=[
            "id",
            "name",
            "type",
            "hourlyLossValue",
            "baseProbability",
            "technologies",
            "maturityScore",
        ],
    )


# ------------------------------------------------------------
# Main summary generation
# ------------------------------------------------------------


def generate_summary(result: SimulationResult, config: SimulationConfig, title: str = "") -> str:
    """
    Markdown report of one simulation run.
    """
    cur = config.currency_symbol
    lines = []

    # --- Header ---
    lines.append(f"# Cyber VaR Report{': ' + title if title else ''}\n")
    lines.append(f"**Timestamp:** {pd.Timestamp.now()}\n")
    lines.append(f"**Status:** {result.breach_status.value}\n")

    # --- 1. Simulation Parameters ---
    lines.append("## 1. Simulation Parameters\n")
    lines.append("| Parameter | Value |")
    lines.append("| :--- | :--- |")
    lines.append(f"| Iterations | {config.iterations:,} |")
    lines.append(f"| Horizon | {config.horizon_days} days |")
    lines.append(f"| Stress Scenario | {StressScenario.parse(config.stress_scenario).value} |")
    lines.append(f"| Contagion Factor | {config.contagion_factor} |")
    lines.append(f"| Neural Adjustments | {config.use_neural_adjustments} |")
    lines.append(f"| Insurance | {_format_currency(config.insurance_coverage, cur)} "
                 f"xs {_format_currency(config.insurance_deductible, cur)} |")
    lines.append(f"| Risk Appetite Limit | {_format_currency(config.risk_appetite_limit, cur)} |")
    lines.append(f"| Seed | {result.metadata.get('seed', 'N/A')} |")
    lines.append("\n")

    # --- 2. Headline Risk Metrics ---
    lines.append("## 2. Headline Risk Metrics\n")
    losses = result.total_losses
    zero_share = float(np.count_nonzero(losses == 0) / losses.size) if losses.size else 0.0
    utilisation = (
        result.var95 / config.risk_appetite_limit if config.risk_appetite_limit > 0 else 0.0
    )
    lines.append("| Metric | Value |")
    lines.append("| :--- | :--- |")
    lines.append(f"| Expected Loss | {_format_currency(result.expected_loss, cur)} |")
    lines.append(f"| VaR 95% | {_format_currency(result.var95, cur)} |")
    lines.append(f"| VaR 99% | {_format_currency(result.var99, cur)} |")
    lines.append(f"| CVaR 95% | {_format_currency(result.cvar95, cur)} |")
    lines.append(f"| Max Loss | {_format_currency(result.max_loss, cur)} |")
    lines.append(f"| Economic Capital | {_format_currency(result.economic_capital, cur)} |")
    lines.append(f"| Limit Utilisation (VaR 95%) | {_format_pct(utilisation)} |")
    lines.append(f"| Zero-Loss Trials | {_format_pct(zero_share)} |")
    lines.append("\n")

    # --- 3. Horizons ---
    lines.append("## 3. Horizon Term Structure\n")
    hf = horizon_frame(result)
    for col in ("var95", "cvar95", "classic_var95"):
        hf[col] = hf[col].map(lambda v: _format_currency(v, cur))
    lines.extend(_markdown_table(hf))
    lines.append("\n")

    # --- 4. Attribution ---
    lines.append("## 4. Capital Attribution\n")
    af = asset_breakdown_frame(result).drop(columns=["asset_id"])
    if af.empty:
        lines.append("(no assets)")
    else:
        af["contribution"] = af["contribution"].map(lambda v: _format_currency(v, cur))
        af["allocated_capital"] = af["allocated_capital"].map(lambda v: _format_currency(v, cur))
        af["raroc"] = af["raroc"].map(_format_pct)
        lines.extend(_markdown_table(af))
    lines.append("\n")

    # --- 5. Drivers ---
    lines.append("## 5. Risk Drivers\n")
    for d in result.drivers:
        lines.append(f"- **{d.name}** ({d.kind.value}): {d.impact:.2f}")
    lines.append("\n")

    lines.append(f"> {result.narrative}\n")

    return "\n".join(lines)
