from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="auto", description="Log renderer: auto, json or console")

    # Jupiter aggregator (quote + swap build)
    jupiter_api_base_url: str = Field(
        default="https://lite-api.jup.ag/swap/v1",
        description="Base URL for the Jupiter quote and swap endpoints",
    )
    jupiter_timeout_seconds: float = Field(default=15.0, description="Request timeout for Jupiter calls")
    quote_max_age_seconds: float = Field(
        default=30.0,
        description="Quotes older than this are refused at build time",
    )

    # Solana RPC
    solana_rpc_url: str = Field(
        default="",
        description="Solana JSON-RPC endpoint",
        validation_alias=AliasChoices("solana_rpc_url", "rpc_endpoint_1", "SOLANA_RPC_URL"),
    )
    solana_commitment: str = Field(default="confirmed", description="Commitment level for anchors and confirmation")
    solana_rpc_timeout_seconds: float = Field(default=20.0, description="Request timeout for RPC calls")
    solana_send_max_retries: int = Field(
        default=3,
        ge=0,
        description="Low-level rebroadcast retries requested from the RPC node on sendTransaction",
    )
    confirmation_timeout_seconds: float = Field(default=90.0, description="Max wait for a signature to confirm")
    confirmation_poll_interval_seconds: float = Field(default=1.0, description="Initial poll interval for confirmation")

    # Holdings collaborator
    solana_helius_api_key: str = Field(
        default="",
        description="Helius API key used for Solana portfolio balances",
    )
    solana_balances_base_url: str = Field(
        default="https://api.helius.xyz",
        description="Base URL for Solana balances API",
    )

    # Liquidation run
    liquidation_max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries per asset after the first attempt (2 means 3 attempts total)",
    )
    liquidation_retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Linear backoff unit between attempts of the same asset",
    )
    default_slippage_bps: int = Field(default=100, ge=1, le=10_000, description="Default slippage tolerance")
    priority_fee_max_lamports: int = Field(default=1_000_000, description="Priority fee cap per transaction")
    priority_level: str = Field(default="veryHigh", description="Priority fee urgency tier")
    dynamic_compute_unit_limit: bool = Field(default=True, description="Ask Jupiter to size the compute budget")
    dynamic_slippage: bool = Field(default=True, description="Ask Jupiter to apply dynamic slippage")
    dust_min_quantity: Decimal = Field(
        default=Decimal("0.000001"),
        description="Plan items at or below this token quantity are skipped",
    )
    dust_min_value_usd: Decimal = Field(
        default=Decimal("0.01"),
        description="Plan items at or below this USD value are skipped",
    )
    hardware_signer_timeout_seconds: float = Field(
        default=300.0,
        description="How long a hardware device may wait for physical confirmation",
    )

    @property
    def has_helius_key(self) -> bool:
        return bool(self.solana_helius_api_key)

    @property
    def resolved_rpc_url(self) -> str:
        return self.solana_rpc_url or "https://api.mainnet-beta.solana.com"

    def orchestrator_config(self) -> Any:
        """Build the run configuration handed to the orchestrator."""
        from .core.liquidation.orchestrator import OrchestratorConfig

        return OrchestratorConfig(
            max_retries=self.liquidation_max_retries,
            base_delay_seconds=self.liquidation_retry_base_delay_seconds,
            dust_min_quantity=self.dust_min_quantity,
            dust_min_value_usd=self.dust_min_value_usd,
        )


# Global settings instance
settings = Settings()
