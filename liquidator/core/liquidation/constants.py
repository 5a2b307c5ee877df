"""Well-known mints and output-token metadata for liquidation runs."""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Tuple

NATIVE_SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"

SPL_TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

# Targets a liquidation may settle into: mint -> (symbol, decimals)
OUTPUT_TOKENS: Dict[str, Tuple[str, int]] = {
    NATIVE_SOL_MINT: ("SOL", 9),
    USDC_MINT: ("USDC", 6),
    USDT_MINT: ("USDT", 6),
}

DEFAULT_OUTPUT_MINT = USDC_MINT

SWAP_MODE_EXACT_IN = "ExactIn"

PRIORITY_LEVELS: Tuple[str, ...] = ("low", "medium", "high", "veryHigh")

DUST_MIN_QUANTITY = Decimal("0.000001")
DUST_MIN_VALUE_USD = Decimal("0.01")

SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"
