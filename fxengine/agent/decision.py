"""
Signal fusion: turn analyzer outputs into one trading decision.

The flow per evaluation:

1. Guardrails (:mod:`fxengine.agent.policy`) short-circuit with a ``hold``.
2. Confidence starts at 50 and each enabled analyzer adjusts it and, while
   the running signal is still ``hold``, may adopt its own direction.
3. A :class:`~fxengine.core.models.TradingSignal` is attached only when the
   fused signal is directional and confidence clears ``min_confidence``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from fxengine.agent.multi_timeframe import MultiTimeframeResult, analyze_multi_timeframe
from fxengine.agent.policy import RiskLimits, TradingState, check_guardrails
from fxengine.core.models import (
    Alignment,
    SignalStrength,
    SignalType,
    TimeFrame,
    TradingSignal,
)
from fxengine.dal.cache import TTLCache
from fxengine.dal.schemas import CandleInput, ensure_candle_frame
from fxengine.features.indicators import Crossover, IndicatorSnapshot, indicator_snapshot
from fxengine.features.patterns import DetectedPattern, detect_patterns
from fxengine.probability.pipeline import PredictionHorizon, PredictionResult, predict_price
from fxengine.settings import get_decision_settings

BASE_CONFIDENCE = 50.0
PATTERN_MIN_CONFIDENCE = 70.0
PREDICTION_MIN_CONFIDENCE = 60.0
STOP_ATR = 2.0
TARGET_ATR = (3.0, 5.0)
RISK_REWARD = 1.5
INSUFFICIENT_DATA = "insufficient_data: no candles to evaluate"

_MTF_BONUS = {Alignment.FULL: 20.0, Alignment.PARTIAL: 10.0, Alignment.CONFLICTING: -15.0}


@dataclass(frozen=True)
class DecisionConfig:
    min_confidence: float = field(default_factory=lambda: get_decision_settings().min_confidence)
    use_multi_timeframe: bool = True
    use_pattern_recognition: bool = True
    use_ml_prediction: bool = True
    timeframe: TimeFrame = TimeFrame.H1
    pair: str = "EUR/USD"


@dataclass(frozen=True)
class DecisionInputs:
    """Everything one evaluation consumes; analyzers left as None are skipped."""

    snapshot: Optional[IndicatorSnapshot]
    mtf: Optional[MultiTimeframeResult] = None
    patterns: Tuple[DetectedPattern, ...] = ()
    prediction: Optional[PredictionResult] = None


@dataclass(frozen=True)
class Decision:
    signal_type: SignalType
    confidence: float
    reasons: Tuple[str, ...]
    blocked_reason: Optional[str] = None
    trading_signal: Optional[TradingSignal] = None
    inputs: Optional[DecisionInputs] = field(default=None, repr=False)

    @property
    def blocked(self) -> bool:
        return self.blocked_reason is not None

    @property
    def actionable(self) -> bool:
        return self.trading_signal is not None


# -----------------------------------------------------------------------------
# Input assembly
# -----------------------------------------------------------------------------


def gather_inputs(
    candles: CandleInput,
    config: Optional[DecisionConfig] = None,
    *,
    timeframe_series: Optional[Tuple[CandleInput, CandleInput, CandleInput]] = None,
    cache: Optional[TTLCache] = None,
) -> DecisionInputs:
    """
    Run every enabled analyzer over in-memory candles.

    Args:
        candles: Series for the decision timeframe.
        config: Which analyzers run.
        timeframe_series: (short, medium, long) series for the multi-timeframe
            vote; without it the vote is skipped.
        cache: Prediction cache shared across evaluations.

    Returns:
        DecisionInputs: Ready for :func:`decide`; without candles the
        snapshot is None and every analyzer is skipped.
    """
    cfg = config or DecisionConfig()
    df = ensure_candle_frame(candles)
    if df.empty:
        logger.debug("[decision] no candles pair={}; analyzers skipped", cfg.pair)
        return DecisionInputs(snapshot=None)
    snapshot = indicator_snapshot(df)

    mtf = None
    if cfg.use_multi_timeframe and timeframe_series is not None:
        mtf = analyze_multi_timeframe(*timeframe_series)
    patterns: Tuple[DetectedPattern, ...] = ()
    if cfg.use_pattern_recognition:
        patterns = tuple(detect_patterns(df))
    prediction = None
    if cfg.use_ml_prediction:
        prediction = predict_price(df, PredictionHorizon.MEDIUM, cache=cache)
    return DecisionInputs(snapshot=snapshot, mtf=mtf, patterns=patterns, prediction=prediction)


# -----------------------------------------------------------------------------
# Fusion
# -----------------------------------------------------------------------------


def _merge(signal: SignalType, candidate: SignalType, confidence: float) -> Tuple[SignalType, float]:
    """Adopt ``candidate`` while undecided, otherwise confirm or penalise."""
    if candidate is SignalType.HOLD:
        return signal, confidence
    if signal is SignalType.HOLD:
        return candidate, confidence
    if signal is candidate:
        return signal, confidence + 10.0
    return signal, confidence - 10.0


def _fuse(inputs: DecisionInputs, config: DecisionConfig) -> Tuple[SignalType, float, List[str]]:
    confidence = BASE_CONFIDENCE
    signal = SignalType.HOLD
    reasons: List[str] = []

    mtf = inputs.mtf
    if config.use_multi_timeframe and mtf is not None:
        confidence += _MTF_BONUS[mtf.alignment]
        if mtf.alignment is Alignment.FULL:
            signal = mtf.overall_signal
        reasons.append(f"mtf:{mtf.alignment.value}:{mtf.overall_signal.value}")

    if config.use_pattern_recognition:
        strong = [p for p in inputs.patterns if p.confidence >= PATTERN_MIN_CONFIDENCE]
        if strong:
            top = strong[0]
            confidence += 15.0
            signal, confidence = _merge(signal, top.signal, confidence)
            reasons.append(f"pattern:{top.pattern_type.value}:{top.confidence:g}")

    prediction = inputs.prediction
    if (
        config.use_ml_prediction
        and prediction is not None
        and prediction.confidence > PREDICTION_MIN_CONFIDENCE
    ):
        confidence += 10.0
        signal, confidence = _merge(signal, prediction.signal, confidence)
        reasons.append(f"ml:{prediction.direction.value}:{prediction.confidence:g}")

    snap = inputs.snapshot
    if snap.oversold and signal is not SignalType.SELL:
        confidence += 5.0
        reasons.append("rsi:oversold")
    elif snap.overbought and signal is not SignalType.BUY:
        confidence += 5.0
        reasons.append("rsi:overbought")

    cross = snap.macd.crossover
    if (cross is Crossover.BULLISH and signal is SignalType.BUY) or (
        cross is Crossover.BEARISH and signal is SignalType.SELL
    ):
        confidence += 5.0
        reasons.append(f"macd:{cross.value}_crossover")

    return signal, max(0.0, min(100.0, confidence)), reasons


def _atr_for_levels(inputs: DecisionInputs) -> Optional[float]:
    if inputs.snapshot.atr.value is not None:
        return inputs.snapshot.atr.value
    if inputs.mtf is not None:
        return inputs.mtf.long.atr
    return None


def _build_signal(
    signal: SignalType,
    confidence: float,
    reasons: Sequence[str],
    inputs: DecisionInputs,
    config: DecisionConfig,
    now: datetime,
) -> Optional[TradingSignal]:
    atr = _atr_for_levels(inputs)
    if atr is None or atr <= 0:
        return None
    price = inputs.snapshot.close
    side = signal.direction
    return TradingSignal(
        pair=config.pair,
        signal_type=signal,
        strength=SignalStrength.from_confidence(confidence),
        entry_price=price,
        stop_loss=price - side * STOP_ATR * atr,
        take_profit=tuple(price + side * k * atr for k in TARGET_ATR),
        confidence=confidence,
        reasoning=tuple(reasons),
        timeframe=config.timeframe,
        timestamp=now,
        risk_reward_ratio=RISK_REWARD,
    )


def decide(
    inputs: DecisionInputs,
    config: Optional[DecisionConfig] = None,
    *,
    limits: Optional[RiskLimits] = None,
    state: Optional[TradingState] = None,
    now: Optional[datetime] = None,
) -> Decision:
    """
    Fuse analyzer outputs into a decision.

    Args:
        inputs (DecisionInputs): Analyzer outputs for one evaluation.
        config (Optional[DecisionConfig]): Enabled analyzers and threshold.
        limits (Optional[RiskLimits]): Guardrails checked before fusion; both
            ``limits`` and ``state`` are needed for the check to run.
        state (Optional[TradingState]): Current counters.
        now (Optional[datetime]): Evaluation time, defaults to UTC now.

    Returns:
        Decision: A ``hold`` with ``blocked_reason`` when a guardrail trips,
        a ``hold`` with reason ``INSUFFICIENT_DATA`` when there is no
        snapshot, otherwise the fused signal, attaching a ``TradingSignal`` only when
        it is directional and meets ``min_confidence``.
    """
    cfg = config or DecisionConfig()
    moment = now or datetime.now(timezone.utc)

    if limits is not None and state is not None:
        reason = check_guardrails(limits, state, moment)
        if reason is not None:
            logger.info("[decision] guardrail hold pair={} reason={}", cfg.pair, reason)
            return Decision(
                signal_type=SignalType.HOLD,
                confidence=0.0,
                reasons=(reason,),
                blocked_reason=reason,
                inputs=inputs,
            )

    if inputs.snapshot is None:
        logger.info("[decision] hold pair={} reason={}", cfg.pair, INSUFFICIENT_DATA)
        return Decision(
            signal_type=SignalType.HOLD,
            confidence=0.0,
            reasons=(INSUFFICIENT_DATA,),
            inputs=inputs,
        )

    signal, confidence, reasons = _fuse(inputs, cfg)
    trading_signal = None
    if signal is not SignalType.HOLD and confidence >= cfg.min_confidence:
        trading_signal = _build_signal(signal, confidence, reasons, inputs, cfg, moment)
    elif signal is not SignalType.HOLD:
        logger.debug(
            "[decision] below threshold pair={} confidence={} min={}",
            cfg.pair,
            confidence,
            cfg.min_confidence,
        )

    logger.debug(
        "[decision] pair={} signal={} confidence={} reasons={}",
        cfg.pair,
        signal.value,
        confidence,
        reasons,
    )
    return Decision(
        signal_type=signal,
        confidence=confidence,
        reasons=tuple(reasons),
        trading_signal=trading_signal,
        inputs=inputs,
    )


__all__ = [
    "DecisionConfig",
    "DecisionInputs",
    "Decision",
    "INSUFFICIENT_DATA",
    "gather_inputs",
    "decide",
]
