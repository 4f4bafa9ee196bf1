from __future__ import annotations

import pytest
from pydantic import ValidationError

from fxengine import __version__
from fxengine import settings as settings_module

_ENV_KEYS = (
    "LOG_LEVEL",
    "APP_VERSION",
    "FX_PIP_SIZE",
    "FX_DEFAULT_SPREAD",
    "FX_RATIO_SENTINEL",
    "FX_SWEEP_MAX_WORKERS",
    "FX_MIN_CONFIDENCE",
    "FX_BOT_INTERVAL_SECONDS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    s = settings_module.reload_settings()

    assert s.market.pip_size == 0.0001
    assert s.market.contract_size == 100_000.0
    assert s.market.default_spread == 0.00015
    assert s.backtest.trading_days == 252
    assert s.backtest.ratio_sentinel == 1e6
    assert s.backtest.sweep_max_workers == 4
    assert s.decision.min_confidence == 70.0
    assert s.runtime.version == __version__


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FX_PIP_SIZE", "0.01")
    monkeypatch.setenv("FX_SWEEP_MAX_WORKERS", "8")
    monkeypatch.setenv("FX_MIN_CONFIDENCE", "55")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    assert settings_module.get_market_settings().pip_size == 0.01
    assert settings_module.get_backtest_settings().sweep_max_workers == 8
    assert settings_module.get_decision_settings().min_confidence == 55.0
    assert settings_module.get_runtime_settings().log_level == "DEBUG"


def test_reload_settings_returns_fresh_instance(monkeypatch):
    s1 = settings_module.get_settings()
    monkeypatch.setenv("FX_DEFAULT_SPREAD", "0.0003")
    s2 = settings_module.reload_settings()

    assert s1 is not s2
    assert s1.market.default_spread == 0.00015
    assert s2.market.default_spread == 0.0003


@pytest.mark.parametrize(
    "key, value",
    [
        ("FX_PIP_SIZE", "0"),
        ("FX_RATIO_SENTINEL", "-1"),
        ("FX_MIN_CONFIDENCE", "150"),
        ("FX_SWEEP_MAX_WORKERS", "zero"),
    ],
)
def test_invalid_values_raise(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValidationError):
        settings_module.reload_settings()


def test_settings_are_frozen():
    s = settings_module.get_settings()
    with pytest.raises(ValidationError):
        s.market.pip_size = 1.0
