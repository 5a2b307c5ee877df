"""
Pro-rata Allocator

Turns a liquidation intent into one swap plan item per candidate asset. Pure
functions only: no I/O, no caching, identical inputs give identical plans.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Sequence

from .constants import DUST_MIN_QUANTITY, DUST_MIN_VALUE_USD
from .errors import IntentError
from .models import AssetHolding, LiquidationIntent, SwapPlanItem

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def plan(holdings: Sequence[AssetHolding], intent: LiquidationIntent) -> List[SwapPlanItem]:
    """
    Allocate `intent.percentage` of the holdings' combined value pro rata.

    The output asset is excluded. Assets without a usable price are still
    listed with a zero quantity; the caller decides what is eligible.
    """
    candidates = [h for h in holdings if h.mint != intent.output.mint]
    total_value = sum((h.value for h in candidates), _ZERO)
    fraction = intent.percentage / _HUNDRED

    items: List[SwapPlanItem] = []
    for holding in candidates:
        value = holding.value
        weight = value / total_value if total_value > 0 else _ZERO
        target_value = total_value * fraction * weight

        if holding.has_price:
            swap_quantity = target_value / holding.price_usd
        else:
            swap_quantity = _ZERO

        # Never sell more than is on hand
        swap_quantity = min(swap_quantity, holding.quantity)
        if swap_quantity < 0:
            swap_quantity = _ZERO

        items.append(
            SwapPlanItem(
                holding=holding,
                swap_quantity=swap_quantity,
                weight_pct=weight * _HUNDRED,
                liquidation_value_usd=target_value,
                original_quantity=holding.quantity,
            )
        )
    return items


def plan_for_intent(intent: LiquidationIntent) -> List[SwapPlanItem]:
    return plan(intent.holdings, intent)


def validate_intent(intent: LiquidationIntent) -> None:
    """Reject intents that could never produce a swap. Raises IntentError."""
    if intent.percentage <= 0:
        raise IntentError("liquidation percentage must be greater than 0%")
    if intent.percentage > _HUNDRED:
        raise IntentError("liquidation percentage cannot exceed 100%")
    if intent.slippage_bps <= 0:
        raise IntentError("slippage tolerance must be positive")
    if not intent.candidates:
        raise IntentError(f"no selected assets other than the output token {intent.output.symbol}")


def eligible_items(
    items: Sequence[SwapPlanItem],
    min_quantity: Decimal = DUST_MIN_QUANTITY,
    min_value_usd: Decimal = DUST_MIN_VALUE_USD,
) -> List[SwapPlanItem]:
    """Drop dust and anything that rounds to zero in the token's smallest unit."""
    return [
        item
        for item in items
        if item.swap_quantity > min_quantity
        and item.liquidation_value_usd > min_value_usd
        and item.raw_amount > 0
    ]
