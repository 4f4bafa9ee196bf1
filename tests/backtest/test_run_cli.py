from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from fxengine.backtest import run as run_cli
from fxengine.dal.helpers import write_candles_csv


@pytest.fixture
def candles_csv(tmp_path: Path, h1_candles) -> Path:
    return write_candles_csv(h1_candles, tmp_path / "eurusd_h1.csv")


@pytest.fixture(autouse=True)
def _keep_test_logging(monkeypatch):
    monkeypatch.setattr(run_cli, "_setup_cli_logging", lambda level=None: None)


def test_main_prints_json_summary(candles_csv: Path, capsys):
    code = run_cli.main(
        ["--csv", str(candles_csv), "--strategy", "macd_crossover", "--json", "--log-level", "WARNING"]
    )

    assert code == 0
    last = capsys.readouterr().out.strip().splitlines()[-1]
    summary = json.loads(last)
    assert summary["strategy"] == "macd_crossover"
    assert summary["status"] == "completed"
    assert summary["bars"] == 600
    assert "profit_factor" in summary["metrics"]


def test_main_exports_ledger(candles_csv: Path, tmp_path: Path, capsys):
    out_dir = tmp_path / "exports"
    code = run_cli.main(
        [
            "--csv",
            str(candles_csv),
            "--strategy",
            "rsi_reversal",
            "--spread",
            "0",
            "--export-csv",
            str(out_dir),
        ]
    )

    assert code == 0
    equity = pd.read_csv(out_dir / "rsi_reversal_equity.csv")
    assert len(equity) == 600
    assert (out_dir / "rsi_reversal_trades.csv").exists()
    last = capsys.readouterr().out.strip().splitlines()[-1]
    assert last.startswith("rsi_reversal: trades=")


def test_main_reports_failure(tmp_path: Path):
    code = run_cli.main(["--csv", str(tmp_path / "missing.csv"), "--strategy", "macd_crossover"])
    assert code == 1


def test_window_arguments(candles_csv: Path, h1_candles):
    start = h1_candles.index[50].isoformat()
    end = h1_candles.index[149].isoformat()

    result = run_cli.run(candles_csv, "trend_following", start=start, end=end, spread=0.0)

    assert result.bars_processed == 100
