from decimal import Decimal

from liquidator.config import Settings


def test_rpc_url_legacy_alias(monkeypatch):
    """RPC endpoint should load from the legacy variable name when present."""

    monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
    monkeypatch.setenv("RPC_ENDPOINT_1", "https://rpc.alias.test")

    settings = Settings()

    assert settings.resolved_rpc_url == "https://rpc.alias.test"


def test_rpc_url_falls_back_to_public_mainnet(monkeypatch):
    monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
    monkeypatch.delenv("RPC_ENDPOINT_1", raising=False)

    settings = Settings(_env_file=None)

    assert settings.resolved_rpc_url == "https://api.mainnet-beta.solana.com"


def test_retry_defaults():
    settings = Settings(_env_file=None)

    assert settings.liquidation_max_retries == 2
    assert settings.liquidation_retry_base_delay_seconds == 1.0
    assert settings.solana_send_max_retries == 3
    assert settings.priority_fee_max_lamports == 1_000_000
    assert settings.priority_level == "veryHigh"


def test_orchestrator_config_from_env(monkeypatch):
    monkeypatch.setenv("LIQUIDATION_MAX_RETRIES", "4")
    monkeypatch.setenv("DUST_MIN_VALUE_USD", "0.5")

    config = Settings(_env_file=None).orchestrator_config()

    assert config.max_retries == 4
    assert config.dust_min_value_usd == Decimal("0.5")
