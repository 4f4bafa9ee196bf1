from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from fxengine.backtest import sweeps
from fxengine.backtest.types import BacktestConfig
from fxengine.core.exceptions import ConfigurationError
from fxengine.dal.helpers import write_candles_csv
from fxengine.strats.params import get_strategy


def _base(strategy_id: str = "macd_crossover") -> BacktestConfig:
    return BacktestConfig(strategy=get_strategy(strategy_id), spread=0.0)


def test_expand_param_grid():
    grid = {"a": [1, 2], "b": ["x"]}
    combos = sweeps._expand_param_grid(grid)
    assert combos == [{"a": 1, "b": "x"}, {"a": 2, "b": "x"}]
    assert sweeps._expand_param_grid({}) == [{}]


def test_optimize_strategy_ranks_every_combo(h1_candles):
    results = sweeps.optimize_strategy(
        h1_candles, _base(), [1.5, 2.0], [2.0, 3.0], max_workers=2
    )

    assert len(results) == 4
    assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)
    assert {(r.params["stop_loss"], r.params["take_profit"]) for r in results} == {
        (1.5, 2.0),
        (1.5, 3.0),
        (2.0, 2.0),
        (2.0, 3.0),
    }
    for r in results:
        assert r.result.config.strategy.stop_loss_value == r.params["stop_loss"]
        assert r.score == pytest.approx(sweeps.score_result(r.result))


def test_rejected_combo_is_skipped(h1_candles):
    results = sweeps.optimize_strategy(h1_candles, _base(), stop_loss_values=[0.0, 2.0])

    assert len(results) == 1
    assert results[0].params == {"stop_loss": 2.0}


def test_empty_grid_runs_strategy_as_is(h1_candles):
    results = sweeps.optimize_strategy(h1_candles, _base("rsi_reversal"))

    assert len(results) == 1
    assert results[0].params == {}
    assert results[0].result.config.strategy == get_strategy("rsi_reversal")


def test_run_sweep_writes_summary(tmp_path: Path, h1_candles):
    csv_path = write_candles_csv(h1_candles, tmp_path / "eurusd_h1.csv")
    cfg = {
        "strategy": "macd_crossover",
        "csv": str(csv_path),
        "spread": 0.0001,
        "initial_balance": 5000,
        "output_dir": str(tmp_path / "sweeps"),
        "params": {"stop_loss": [1.5, 2.5]},
        "max_workers": 2,
    }
    cfg_path = tmp_path / "sweep.yml"
    cfg_path.write_text(yaml.safe_dump(cfg))

    result = sweeps.run_sweep(cfg_path)

    assert result["strategy"] == "macd_crossover"
    assert len(result["results"]) == 2
    summary_path = Path(result["summary_path"])
    assert summary_path.exists()
    saved = [json.loads(line) for line in summary_path.read_text().strip().splitlines()]
    assert {rec["params"]["stop_loss"] for rec in saved} == {1.5, 2.5}
    assert all(rec["summary"]["strategy"] == "macd_crossover" for rec in saved)
    assert saved[0]["score"] >= saved[1]["score"]


def test_run_sweep_accepts_in_memory_candles(tmp_path: Path, h1_candles):
    cfg_path = tmp_path / "sweep.yml"
    cfg_path.write_text(yaml.safe_dump({"strategy": "trend_following"}))

    result = sweeps.run_sweep(cfg_path, candles=h1_candles)

    assert len(result["results"]) == 1
    assert "summary_path" not in result


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "csv: data.csv\n",
        "strategy: macd_crossover\nparams: [1, 2]\n",
        "strategy: macd_crossover\nparams:\n  ema_fast: [3, 5]\n",
    ],
)
def test_load_sweep_config_rejects_bad_files(tmp_path: Path, content):
    path = tmp_path / "bad.yml"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        sweeps.load_sweep_config(path)


def test_run_sweep_requires_candles_source(tmp_path: Path):
    path = tmp_path / "nocsv.yml"
    path.write_text("strategy: macd_crossover\n")
    with pytest.raises(ConfigurationError):
        sweeps.run_sweep(path)
