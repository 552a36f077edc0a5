from typing import List, Sequence

from .data_structures import AssetBreakdown, BreachStatus, Driver, DriverKind

WARNING_THRESHOLD = 0.8


def breach_status(var95: float, risk_appetite_limit: float) -> BreachStatus:
    if var95 > risk_appetite_limit:
        return BreachStatus.BREACH
    if var95 > WARNING_THRESHOLD * risk_appetite_limit:
        return BreachStatus.WARNING
    return BreachStatus.SAFE


def rank_drivers(asset_breaks: Sequence[AssetBreakdown], threats: Sequence) -> List[Driver]:
    """
    Coarse ranked explanation: top asset, lead threat, capital sensitivity.
    """
    top_asset = asset_breaks[0].asset_name if asset_breaks else "Asset Loss"
    lead_threat = next((t.title for t in threats if t.title), "Threat Feed")
    return [
        Driver(name=top_asset, impact=0.75, kind=DriverKind.ASSET),
        Driver(name=lead_threat, impact=0.55, kind=DriverKind.THREAT),
        Driver(name="Capital Sensitivity", impact=0.4, kind=DriverKind.CONTROL),
    ]


def _millions(value: float, currency: str) -> str:
    return f"{currency}{value / 1_000_000:.2f}M"


def narrative(var99: float, capital: float, status: BreachStatus, currency: str = "€") -> str:
    return (
        f"Simulation complete. Critical VaR (99%) {_millions(var99, currency)} "
        f"requires an Economic Capital buffer of {_millions(capital, currency)}. "
        f"Status: {status.value}."
    )
