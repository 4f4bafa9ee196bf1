"""Lots per trade from a risk percentage and stop distance."""

from __future__ import annotations

import math
from typing import Optional

from loguru import logger

from fxengine.settings import get_backtest_settings, get_market_settings


def pips(delta: float, pip_size: Optional[float] = None) -> float:
    """Express a price delta in pips."""
    return float(delta) / (pip_size or get_market_settings().pip_size)


def lot_size(
    balance: float,
    risk_percent: float,
    stop_distance: float,
    *,
    price: Optional[float] = None,
    leverage: Optional[float] = None,
    contract_size: Optional[float] = None,
    min_lot: Optional[float] = None,
    max_lot: Optional[float] = None,
    lot_step: Optional[float] = None,
) -> float:
    """
    Computes the lot size that loses ``risk_percent`` of ``balance`` at the stop.

    Args:
        balance (float): Account balance in account currency.
        risk_percent (float): Percent of balance risked (1.0 == 1%).
        stop_distance (float): Entry-to-stop distance in price units.
        price (Optional[float]): Entry price, used with ``leverage`` for the
            margin cap.
        leverage (Optional[float]): Account leverage; caps notional at
            ``balance * leverage``.
        contract_size (Optional[float]): Units per lot.
        min_lot, max_lot, lot_step (Optional[float]): Broker lot constraints.

    Returns:
        float: Lots rounded down to ``lot_step`` and raised to ``min_lot``;
        0.0 when the inputs cannot size a trade or the margin cap is below
        ``min_lot``.
    """
    bt = get_backtest_settings()
    contract = contract_size or get_market_settings().contract_size
    lo = bt.min_lot if min_lot is None else min_lot
    hi = bt.max_lot if max_lot is None else max_lot
    step = bt.lot_step if lot_step is None else lot_step

    if balance <= 0 or risk_percent <= 0 or not stop_distance > 0:
        logger.debug(
            "[sizing] inputs below threshold: balance={} risk={} stop={}",
            balance,
            risk_percent,
            stop_distance,
        )
        return 0.0

    risk_amount = balance * risk_percent / 100.0
    lots = min(max(risk_amount / (stop_distance * contract), lo), hi)

    if leverage and price:
        margin_cap = balance * leverage / (contract * price)
        if margin_cap < lo:
            logger.debug("[sizing] margin cap {:.4f} below min lot", margin_cap)
            return 0.0
        lots = min(lots, margin_cap)

    lots = math.floor(lots / step + 1e-9) * step
    return round(max(lots, lo), 8)


__all__ = ["pips", "lot_size"]
