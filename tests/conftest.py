import pytest

from cyber_var.data_structures import Asset, AssetType, SimulationConfig, Threat
from cyber_var.models import StressScenario


@pytest.fixture
def bank_assets():
    return [
        Asset(
            id="1",
            name="SWIFT Gateway",
            type=AssetType.PAYMENT_SYSTEM,
            hourly_loss_value=1_200_000.0,
            base_probability=0.3,
            vulnerability_score=0.4,
            maturity_score=0.7,
            technologies=("Swift", "Oracle", "Linux"),
            dependencies=("2",),
        ),
        Asset(
            id="2",
            name="Customer PII Vault",
            type=AssetType.DATABASE,
            hourly_loss_value=450_000.0,
            base_probability=0.4,
            vulnerability_score=0.6,
            maturity_score=0.5,
            technologies=("SQL Server", "Azure"),
            dependencies=("4",),
        ),
        Asset(
            id="3",
            name="HFT Trading Engine",
            type=AssetType.TRADING_ALGO,
            hourly_loss_value=3_000_000.0,
            base_probability=0.1,
            vulnerability_score=0.2,
            maturity_score=0.9,
            technologies=("C++", "FPGA"),
        ),
        Asset(
            id="4",
            name="Azure Cloud Stack",
            type=AssetType.CLOUD_INFRA,
            hourly_loss_value=800_000.0,
            base_probability=0.35,
            vulnerability_score=0.3,
            maturity_score=0.8,
            technologies=("Azure", "Terraform"),
        ),
    ]


@pytest.fixture
def azure_threat():
    return Threat(
        id="t1",
        title="Azure storage ransomware",
        severity="High",
        target_technology="Azure",
        impact_modifier=2.0,
    )


@pytest.fixture
def base_config():
    return SimulationConfig(
        iterations=2_000,
        horizon_days=365,
        stress_scenario=StressScenario.NONE,
        risk_appetite_limit=8_500_000.0,
        insurance_coverage=5_000_000.0,
        insurance_deductible=500_000.0,
        contagion_factor=0.4,
        use_neural_adjustments=True,
    )
