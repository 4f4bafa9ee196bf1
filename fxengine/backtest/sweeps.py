from __future__ import annotations

import argparse
import itertools
import json
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
import yaml
from loguru import logger

from fxengine.backtest.engine import run_backtest
from fxengine.backtest.types import BacktestConfig, BacktestResult
from fxengine.core.exceptions import ConfigurationError
from fxengine.dal.helpers import load_candles_csv
from fxengine.dal.schemas import CandleInput, ensure_candle_frame
from fxengine.logging_utils import logging_context, setup_logging
from fxengine.settings import get_backtest_settings
from fxengine.strats.params import get_strategy

PROFIT_FACTOR_CAP = 10.0

_GRID_KEYS = {
    "stop_loss": "stop_loss_value",
    "take_profit": "take_profit_value",
    "risk": "risk_per_trade",
}


@dataclass(frozen=True)
class SweepResult:
    job_id: int
    params: Dict[str, Any]
    score: float
    result: BacktestResult

    def as_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "params": self.params,
            "score": self.score,
            "summary": self.result.summary(),
        }


def _load_config(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        raise ConfigurationError("Sweep config must be a mapping")
    return data


def _expand_param_grid(grid: Dict[str, Iterable[Any]]) -> List[Dict[str, Any]]:
    if not grid:
        return [{}]
    keys = list(grid.keys())
    combos = []
    for values in itertools.product(*(grid[k] for k in keys)):
        combos.append(dict(zip(keys, values, strict=True)))
    return combos


def score_result(result: BacktestResult) -> float:
    """Blend of capped profit factor, Sharpe and win rate; higher is better."""
    m = result.metrics
    return (
        min(m.profit_factor, PROFIT_FACTOR_CAP) * 0.4
        + m.sharpe_ratio * 0.3
        + (m.win_rate / 100.0) * 0.3
    )


def _execute_job(
    job_idx: int, frame: pd.DataFrame, base_config: BacktestConfig, params: Dict[str, Any]
) -> SweepResult:
    strategy = base_config.strategy.with_params(
        **{_GRID_KEYS[k]: v for k, v in params.items()}
    )
    config = BacktestConfig(
        strategy=strategy,
        start=base_config.start,
        end=base_config.end,
        initial_balance=base_config.initial_balance,
        leverage=base_config.leverage,
        commission=base_config.commission,
        spread=base_config.spread,
        slippage=base_config.slippage,
        pip_size=base_config.pip_size,
        contract_size=base_config.contract_size,
        pair=base_config.pair,
    )
    with logging_context(run_id=f"sweep-{job_idx}", strategy=strategy.id):
        result = run_backtest(frame, config)
    score = score_result(result)
    logger.info(
        "[sweep] job={} strategy={} params={} score={:.4f} trades={}",
        job_idx,
        strategy.id,
        params,
        score,
        result.metrics.total_trades,
    )
    return SweepResult(job_id=job_idx, params=params, score=score, result=result)


def optimize_strategy(
    candles: CandleInput,
    base_config: BacktestConfig,
    stop_loss_values: Sequence[float] = (),
    take_profit_values: Sequence[float] = (),
    risk_values: Sequence[float] = (),
    *,
    max_workers: Optional[int] = None,
) -> List[SweepResult]:
    """
    Grid-search stop, target and risk values for ``base_config.strategy``.

    Each combination runs as an independent backtest on the same validated
    candle frame. An empty value list keeps the strategy's own value for that
    parameter. Combinations the strategy rejects are logged and skipped.

    Returns:
        List[SweepResult]: Best score first; ties keep grid order.
    """
    frame = ensure_candle_frame(candles)
    grid: Dict[str, Iterable[Any]] = {}
    if stop_loss_values:
        grid["stop_loss"] = list(stop_loss_values)
    if take_profit_values:
        grid["take_profit"] = list(take_profit_values)
    if risk_values:
        grid["risk"] = list(risk_values)
    combos = _expand_param_grid(grid)

    workers = max_workers or get_backtest_settings().sweep_max_workers
    workers = max(1, min(int(workers), len(combos)))
    logger.info(
        "[sweep] starting strategy={} jobs={} workers={}",
        base_config.strategy.id,
        len(combos),
        workers,
    )
    started = perf_counter()
    results: List[SweepResult] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_map = {
            executor.submit(_execute_job, idx, frame, base_config, params): (idx, params)
            for idx, params in enumerate(combos, start=1)
        }
        for future in as_completed(future_map):
            job_idx, params = future_map[future]
            try:
                results.append(future.result())
            except ConfigurationError as exc:
                logger.warning("[sweep] job={} skipped params={}: {}", job_idx, params, exc)
            except Exception as exc:
                logger.exception("[sweep] job={} failed: {}", job_idx, exc)

    results.sort(key=lambda r: (-r.score, r.job_id))
    logger.info(
        "[sweep] completed strategy={} succeeded={}/{} duration_ms={:.1f}",
        base_config.strategy.id,
        len(results),
        len(combos),
        (perf_counter() - started) * 1000.0,
    )
    return results


def load_sweep_config(path: Path) -> Dict[str, Any]:
    """
    Read a YAML sweep definition.

    Recognised keys: ``strategy`` (required), ``csv``, ``start``, ``end``,
    ``initial_balance``, ``leverage``, ``commission``, ``spread``,
    ``slippage``, ``max_workers``, ``output_dir`` and ``params`` with
    optional ``stop_loss``, ``take_profit`` and ``risk`` lists.
    """
    cfg = _load_config(Path(path))
    if "strategy" not in cfg:
        raise ConfigurationError("Sweep config requires a 'strategy' key")
    params = cfg.get("params") or {}
    if not isinstance(params, dict):
        raise ConfigurationError("Sweep 'params' must be a mapping")
    unknown = set(params) - set(_GRID_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown sweep params: {sorted(unknown)}")
    return cfg


def _base_config(cfg: Dict[str, Any]) -> BacktestConfig:
    kwargs: Dict[str, Any] = {"strategy": get_strategy(str(cfg["strategy"]))}
    for key in ("start", "end"):
        if cfg.get(key) is not None:
            kwargs[key] = pd.Timestamp(cfg[key]).to_pydatetime()
    for key in ("initial_balance", "leverage", "commission", "spread", "slippage"):
        if cfg.get(key) is not None:
            kwargs[key] = float(cfg[key])
    return BacktestConfig(**kwargs)


def run_sweep(config_path: Path, *, candles: Optional[CandleInput] = None) -> Dict[str, Any]:
    """Run the sweep described by ``config_path``; ``candles`` overrides its ``csv``."""
    cfg = load_sweep_config(config_path)
    if candles is None:
        if not cfg.get("csv"):
            raise ConfigurationError("Sweep config requires 'csv' when no candles are given")
        candles = load_candles_csv(Path(cfg["csv"]))
    params = cfg.get("params") or {}
    results = optimize_strategy(
        candles,
        _base_config(cfg),
        params.get("stop_loss") or (),
        params.get("take_profit") or (),
        params.get("risk") or (),
        max_workers=cfg.get("max_workers"),
    )
    payload: Dict[str, Any] = {
        "strategy": cfg["strategy"],
        "results": [r.as_dict() for r in results],
    }
    if cfg.get("output_dir"):
        out_dir = Path(cfg["output_dir"])
        out_dir.mkdir(parents=True, exist_ok=True)
        summary_path = out_dir / "summary.jsonl"
        with summary_path.open("w") as handle:
            for record in payload["results"]:
                handle.write(json.dumps(record, default=str) + "\n")
        payload["summary_path"] = str(summary_path)
        logger.info("[sweep] wrote {} records to {}", len(results), summary_path)
    return payload


def main() -> None:
    parser = argparse.ArgumentParser(description="Run parameter sweeps for backtests")
    parser.add_argument("--config", required=True, help="Path to YAML sweep definition")
    parser.add_argument("--log-level", default=None, help="Override log level")
    args = parser.parse_args()
    setup_logging(force=True, level=args.log_level)
    payload = run_sweep(Path(args.config))
    for record in payload["results"][:5]:
        print(json.dumps({k: record[k] for k in ("job_id", "params", "score")}))


if __name__ == "__main__":
    main()
