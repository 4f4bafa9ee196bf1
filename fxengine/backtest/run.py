from __future__ import annotations

import argparse
import json
import math
import sys
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from loguru import logger

from fxengine.backtest.engine import run_backtest
from fxengine.backtest.types import BacktestConfig, BacktestResult
from fxengine.dal.helpers import load_candles_csv
from fxengine.logging_utils import logging_context, setup_logging
from fxengine.strats.params import PREDEFINED_STRATEGIES, get_strategy

# ------------------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------------------


def _setup_cli_logging(level: Optional[str] = None) -> None:
    setup_logging(force=True, level=level)


def _roundish(x, ndigits=4):
    if isinstance(x, (float, np.floating)):
        if math.isfinite(float(x)):
            return round(float(x), ndigits)
        return str(x)
    if isinstance(x, (int, np.integer)):
        return int(x)
    if isinstance(x, dict):
        return {k: _roundish(v, ndigits) for k, v in x.items()}
    if hasattr(x, "isoformat"):
        return x.isoformat()
    return x


def _parse_ts(value: Optional[str]):
    if value is None:
        return None
    return pd.Timestamp(value).to_pydatetime()


def run(
    csv: Path,
    strategy: str,
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
    balance: float = 10_000.0,
    leverage: float = 100.0,
    spread: Optional[float] = None,
    commission: float = 0.0,
    slippage: float = 0.0,
    export_csv: Optional[Path] = None,
) -> BacktestResult:
    """Load ``csv``, run the named predefined strategy and optionally export the ledger."""
    candles = load_candles_csv(csv)
    kwargs: Dict[str, Any] = {
        "strategy": get_strategy(strategy),
        "start": _parse_ts(start),
        "end": _parse_ts(end),
        "initial_balance": balance,
        "leverage": leverage,
        "commission": commission,
        "slippage": slippage,
    }
    if spread is not None:
        kwargs["spread"] = spread
    with logging_context(run_id=f"cli-{strategy}", strategy=strategy):
        result = run_backtest(candles, BacktestConfig(**kwargs))

    if export_csv is not None:
        out_dir = Path(export_csv)
        out_dir.mkdir(parents=True, exist_ok=True)
        result.equity_frame().to_csv(out_dir / f"{strategy}_equity.csv")
        result.trades_frame().to_csv(out_dir / f"{strategy}_trades.csv", index=False)
        logger.info("[backtest] exported equity and trades to {}", out_dir)
    return result


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Run a forex strategy backtest over a CSV of candles")
    ap.add_argument("--csv", required=True, type=Path, help="OHLCV CSV with a timestamp column")
    ap.add_argument(
        "--strategy",
        required=True,
        choices=sorted(PREDEFINED_STRATEGIES.keys()),
        help="Predefined strategy id",
    )
    ap.add_argument("--start", default=None, help="Inclusive window start (ISO date)")
    ap.add_argument("--end", default=None, help="Inclusive window end (ISO date)")
    ap.add_argument("--balance", type=float, default=10_000.0)
    ap.add_argument("--leverage", type=float, default=100.0)
    ap.add_argument("--spread", type=float, default=None, help="Price units; FX_DEFAULT_SPREAD when omitted")
    ap.add_argument("--commission", type=float, default=0.0, help="Per lot, charged on open and close")
    ap.add_argument("--slippage", type=float, default=0.0)
    ap.add_argument(
        "--export-csv",
        dest="export_csv",
        type=Path,
        default=None,
        help="Directory to write <strategy>_equity.csv and <strategy>_trades.csv",
    )
    ap.add_argument(
        "--json",
        dest="print_json",
        action="store_true",
        default=False,
        help="Print the run summary as a single JSON line",
    )
    ap.add_argument("--log-level", dest="log_level", default=None)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    _setup_cli_logging(args.log_level)
    try:
        result = run(
            args.csv,
            args.strategy,
            start=args.start,
            end=args.end,
            balance=args.balance,
            leverage=args.leverage,
            spread=args.spread,
            commission=args.commission,
            slippage=args.slippage,
            export_csv=args.export_csv,
        )
    except Exception as e:
        logger.error("Backtest run failed: {}", e)
        logger.debug("Traceback:\n{}", traceback.format_exc())
        return 1

    summary = _roundish(result.summary())
    if args.print_json:
        print(json.dumps(summary))
    else:
        m = summary["metrics"]
        print(
            f"{args.strategy}: trades={m['total_trades']} win_rate={m['win_rate']}% "
            f"pf={m['profit_factor']} sharpe={m['sharpe_ratio']} "
            f"maxDD={m['max_drawdown']}% return={summary['total_return_percent']}%"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
