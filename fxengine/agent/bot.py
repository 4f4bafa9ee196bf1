"""Stateful trading bot: guardrail counters, decision loop and performance tally."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from loguru import logger

from fxengine.agent.decision import Decision, DecisionConfig, DecisionInputs, decide
from fxengine.agent.policy import RiskLimits, TradingState
from fxengine.core.exceptions import ConfigurationError
from fxengine.core.models import TimeFrame, TradingSignal
from fxengine.core.numeric import safe_ratio
from fxengine.orchestration.scheduler import Clock, PeriodicTask
from fxengine.settings import get_backtest_settings, get_decision_settings

LOG_CAPACITY = 100
_LOGURU_LEVELS = {"info": "INFO", "trade": "INFO", "warning": "WARNING", "error": "ERROR"}

InputsProvider = Callable[[], DecisionInputs]
SignalCallback = Callable[[TradingSignal], None]


@dataclass(frozen=True)
class BotConfig:
    name: str = "Trading Bot"
    strategy: str = "moderate"
    pair: str = "EUR/USD"
    timeframe: TimeFrame = TimeFrame.H1
    max_positions: int = 2
    max_daily_loss: float = 3.0
    max_daily_trades: int = 5
    risk_per_trade: float = 2.0
    min_confidence: float = 70.0
    use_multi_timeframe: bool = True
    use_pattern_recognition: bool = True
    use_ml_prediction: bool = True
    trading_hours: Tuple[int, int] = (8, 20)
    interval_seconds: float = field(
        default_factory=lambda: get_decision_settings().bot_interval_seconds
    )

    def __post_init__(self) -> None:
        if self.risk_per_trade <= 0:
            raise ConfigurationError("risk_per_trade must be > 0")
        if not 0 <= self.min_confidence <= 100:
            raise ConfigurationError("min_confidence must be within [0, 100]")
        if self.interval_seconds <= 0:
            raise ConfigurationError("interval_seconds must be > 0")
        # Remaining limits are validated by RiskLimits.
        self.limits()

    @classmethod
    def from_preset(cls, strategy: str, **overrides: Any) -> "BotConfig":
        try:
            preset = BOT_PRESETS[strategy]
        except KeyError as exc:
            raise ConfigurationError(f"unknown bot preset '{strategy}'") from exc
        return cls(strategy=strategy, **{**preset, **overrides})

    def limits(self) -> RiskLimits:
        return RiskLimits(
            max_open_positions=self.max_positions,
            max_daily_trades=self.max_daily_trades,
            max_daily_loss=self.max_daily_loss,
            trading_hours=self.trading_hours,
        )

    def decision_config(self) -> DecisionConfig:
        return DecisionConfig(
            min_confidence=self.min_confidence,
            use_multi_timeframe=self.use_multi_timeframe,
            use_pattern_recognition=self.use_pattern_recognition,
            use_ml_prediction=self.use_ml_prediction,
            timeframe=self.timeframe,
            pair=self.pair,
        )


BOT_PRESETS: Dict[str, Dict[str, Any]] = {
    "conservative": dict(
        max_positions=1,
        max_daily_loss=2.0,
        max_daily_trades=3,
        risk_per_trade=1.0,
        min_confidence=80.0,
        use_multi_timeframe=True,
        use_pattern_recognition=True,
        use_ml_prediction=False,
    ),
    "moderate": dict(
        max_positions=2,
        max_daily_loss=3.0,
        max_daily_trades=5,
        risk_per_trade=2.0,
        min_confidence=70.0,
        use_multi_timeframe=True,
        use_pattern_recognition=True,
        use_ml_prediction=True,
    ),
    "aggressive": dict(
        max_positions=3,
        max_daily_loss=5.0,
        max_daily_trades=10,
        risk_per_trade=3.0,
        min_confidence=60.0,
        use_multi_timeframe=True,
        use_pattern_recognition=True,
        use_ml_prediction=True,
    ),
    "scalping": dict(
        max_positions=2,
        max_daily_loss=3.0,
        max_daily_trades=20,
        risk_per_trade=1.0,
        min_confidence=65.0,
        use_multi_timeframe=False,
        use_pattern_recognition=False,
        use_ml_prediction=False,
    ),
    "swing": dict(
        max_positions=3,
        max_daily_loss=4.0,
        max_daily_trades=2,
        risk_per_trade=2.0,
        min_confidence=75.0,
        use_multi_timeframe=True,
        use_pattern_recognition=True,
        use_ml_prediction=True,
    ),
}


@dataclass(frozen=True)
class BotLog:
    timestamp: datetime
    level: str
    message: str
    data: Optional[Dict[str, Any]] = None


@dataclass
class BotPerformance:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    profit_factor: float = 0.0

    def record(self, pnl: float) -> None:
        self.total_trades += 1
        self.total_pnl += pnl
        if pnl > 0:
            self.winning_trades += 1
            self.average_win += (pnl - self.average_win) / self.winning_trades
        else:
            self.losing_trades += 1
            self.average_loss += (abs(pnl) - self.average_loss) / self.losing_trades
        self.win_rate = self.winning_trades / self.total_trades * 100.0
        self.profit_factor = safe_ratio(
            self.winning_trades * self.average_win,
            self.losing_trades * self.average_loss,
            get_backtest_settings().ratio_sentinel,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TradingBot:
    """
    Runs guardrails and signal fusion for one pair, keeping daily counters.

    Args:
        config (Optional[BotConfig]): Bot settings, defaults to the moderate preset.
        balance (float): Account balance used for the daily loss limit.
        now_fn (Callable[[], datetime]): Time source for evaluations and logs.
    """

    def __init__(
        self,
        config: Optional[BotConfig] = None,
        *,
        balance: float = 10_000.0,
        now_fn: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or BotConfig.from_preset("moderate")
        self.state = TradingState(balance=balance)
        self.performance = BotPerformance()
        self.signals: List[TradingSignal] = []
        self.logs: Deque[BotLog] = deque(maxlen=LOG_CAPACITY)
        self.last_check: Optional[datetime] = None
        self._now = now_fn
        self._limits = self.config.limits()
        self._decision_config = self.config.decision_config()
        self._signal_callbacks: List[SignalCallback] = []
        self._log_callbacks: List[Callable[[BotLog], None]] = []
        self._task: Optional[PeriodicTask] = None

    # ------------------------------------------------------------------ #
    # Callbacks and logs
    # ------------------------------------------------------------------ #

    def on_signal(self, callback: SignalCallback) -> None:
        self._signal_callbacks.append(callback)

    def on_log(self, callback: Callable[[BotLog], None]) -> None:
        self._log_callbacks.append(callback)

    def _log(self, level: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        entry = BotLog(timestamp=self._now(), level=level, message=message, data=data)
        # Newest first.
        self.logs.appendleft(entry)
        logger.log(
            _LOGURU_LEVELS.get(level, "INFO"),
            "[bot] name={} {}",
            self.config.name,
            message,
        )
        for callback in self._log_callbacks:
            callback(entry)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.cancelled

    def update_config(self, **changes: Any) -> BotConfig:
        self.config = replace(self.config, **changes)
        self._limits = self.config.limits()
        self._decision_config = self.config.decision_config()
        self._log("info", "configuration updated", {"changes": sorted(changes)})
        return self.config

    def schedule(self, provider: InputsProvider, clock: Optional[Clock] = None) -> PeriodicTask:
        """
        Register a periodic evaluation without starting it.

        The returned task fires immediately on its first ``run_pending`` and
        then every ``interval_seconds`` of ``clock`` time.
        """
        return PeriodicTask(
            self.config.interval_seconds,
            lambda: self.evaluate(provider()),
            clock,
            run_immediately=True,
            name=f"bot:{self.config.name}",
        )

    def start(self, provider: InputsProvider, clock: Optional[Clock] = None) -> PeriodicTask:
        if self._task is not None and not self._task.cancelled:
            self._log("warning", "bot already running")
            return self._task
        self._task = self.schedule(provider, clock)
        self._log("info", f"started strategy={self.config.strategy}")
        self._task.run_pending()
        return self._task

    def stop(self) -> None:
        if self._task is None or self._task.cancelled:
            return
        self._task.cancel()
        self._log("info", "stopped")

    # ------------------------------------------------------------------ #
    # Evaluation
    # ------------------------------------------------------------------ #

    def evaluate(self, inputs: DecisionInputs, now: Optional[datetime] = None) -> Decision:
        """Guardrails, fusion and signal dispatch for one cycle."""
        moment = now or self._now()
        decision = decide(
            inputs,
            self._decision_config,
            limits=self._limits,
            state=self.state,
            now=moment,
        )
        self.last_check = moment
        if decision.blocked:
            self._log("info", f"blocked: {decision.blocked_reason}")
            return decision
        if decision.trading_signal is None:
            if decision.signal_type.direction:
                self._log(
                    "info",
                    f"signal ignored confidence={decision.confidence:g} "
                    f"min={self._decision_config.min_confidence:g}",
                )
            return decision

        signal = decision.trading_signal
        self.signals.append(signal)
        self.state.trades_today += 1
        self._log(
            "trade",
            f"signal {signal.signal_type.value} confidence={signal.confidence:g}",
            signal.as_dict(),
        )
        for callback in self._signal_callbacks:
            callback(signal)
        return decision

    # ------------------------------------------------------------------ #
    # Accounting
    # ------------------------------------------------------------------ #

    def position_opened(self) -> None:
        self.state.open_positions += 1

    def record_trade_result(self, pnl: float) -> None:
        """Book a closed trade: daily pnl, balance and performance counters."""
        self.performance.record(pnl)
        self.state.daily_pnl += pnl
        self.state.balance += pnl
        if self.state.open_positions > 0:
            self.state.open_positions -= 1

    def reset_daily_counters(self) -> None:
        self.state.trades_today = 0
        self.state.daily_pnl = 0.0
        self._log("info", "daily counters reset")


__all__ = [
    "BotConfig",
    "BOT_PRESETS",
    "BotLog",
    "BotPerformance",
    "TradingBot",
]
