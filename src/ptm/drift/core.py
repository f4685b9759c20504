"""Drift engine: smoothed daily drift, growth angle, forecast and warnings.

Every growth analysis in PTM starts from the daily drift series built here:
the per-day sum of semantic change, smoothed with an exponential moving
average (alpha = 0.3).
"""

import logging
import math
from datetime import datetime, timedelta, timezone

import numpy as np

from ..models import DailyDrift, DriftForecast, DriftInsight, DriftWarning, GrowthAngle
from ..rules import Rule, first_match
from ..storage import PtmStoreBase
from ..vectors import round4
from .warnings import (
    INSUFFICIENT_DATA,
    MODE_ADVICE,
    OVERHEAT_RECOMMENDATION,
    STABLE_RECOMMENDATION,
    STAGNATION_RECOMMENDATION,
    detect_extended_warning,
)

logger = logging.getLogger(__name__)

EMA_ALPHA = 0.3
OVERHEAT_SIGMA = 1.5    # overheat: EMA > mean + 1.5 sigma
STAGNATION_SIGMA = 1.0  # stagnation: EMA < mean - 1.0 sigma
TREND_THRESHOLD = 0.05  # 5% relative change


def window_start(range_days: int, now: datetime | None = None) -> datetime:
    """Lower bound of a trailing window of ``range_days`` days."""
    return (now or datetime.now(timezone.utc)) - timedelta(days=range_days)


def smooth_daily_drift(rows: list[tuple[str, float]], alpha: float = EMA_ALPHA) -> list[DailyDrift]:
    """Attach a rounded EMA to chronologically ordered ``(date, total)`` rows."""
    data: list[DailyDrift] = []
    prev_ema = 0.0
    for i, (date, total) in enumerate(rows):
        drift = total or 0.0
        ema = round4(drift) if i == 0 else round4(alpha * drift + (1 - alpha) * prev_ema)
        data.append(DailyDrift(date=date, drift=round4(drift), ema=ema))
        prev_ema = ema
    return data


def get_daily_drift_data(store: PtmStoreBase, range_days: int = 30) -> list[DailyDrift]:
    """Daily drift totals over the trailing window, with EMA."""
    rows = store.fetch_daily_drift_totals(window_start(range_days))
    return smooth_daily_drift(rows)


def calc_ema(values: list[float], alpha: float = EMA_ALPHA) -> list[float]:
    """Unrounded EMA of an arbitrary series."""
    if not values:
        return []
    ema = values[0]
    result = [ema]
    for v in values[1:]:
        ema = alpha * v + (1 - alpha) * ema
        result.append(ema)
    return result


def calc_growth_angle(data: list[DailyDrift]) -> GrowthAngle:
    """angle = atan(EMA[today] - EMA[yesterday])."""
    if len(data) < 2:
        return GrowthAngle(angle=0.0, angle_degrees=0.0, trend="flat", velocity=0.0)

    today, yesterday = data[-1], data[-2]
    velocity = today.ema - yesterday.ema
    angle = math.atan(velocity)

    relative_change = velocity / yesterday.ema if yesterday.ema > 0 else 0.0
    if relative_change > TREND_THRESHOLD:
        trend = "rising"
    elif relative_change < -TREND_THRESHOLD:
        trend = "falling"
    else:
        trend = "flat"

    return GrowthAngle(
        angle=round4(angle),
        angle_degrees=round4(math.degrees(angle)),
        trend=trend,
        velocity=round4(velocity),
    )


def calc_drift_forecast(data: list[DailyDrift], angle: GrowthAngle) -> DriftForecast:
    """Linear extrapolation of the EMA 3 and 7 days ahead, floored at 0."""
    if not data:
        return DriftForecast(forecast_3d=0.0, forecast_7d=0.0, confidence="low")

    today_ema = data[-1].ema
    if len(data) >= 14:
        confidence = "high"
    elif len(data) >= 7:
        confidence = "medium"
    else:
        confidence = "low"

    return DriftForecast(
        forecast_3d=round4(max(0.0, today_ema + angle.velocity * 3)),
        forecast_7d=round4(max(0.0, today_ema + angle.velocity * 7)),
        confidence=confidence,
    )


def detect_warning(data: list[DailyDrift]) -> DriftWarning:
    """Flag overheat/stagnation when today's EMA leaves the band around the series mean.

    Uses the population standard deviation of the EMA series; both
    boundaries are strict, so an EMA exactly on a boundary is stable.
    """
    if len(data) < 3:
        return DriftWarning(state="stable", severity="none", recommendation=INSUFFICIENT_DATA)

    ema_values = np.array([d.ema for d in data])
    mean = float(np.mean(ema_values))
    std = float(np.std(ema_values))
    today = float(ema_values[-1])

    if today > mean + OVERHEAT_SIGMA * std:
        severity = "high" if today > mean + 2 * std else "mid" if today > mean + 1.5 * std else "low"
        return DriftWarning(state="overheat", severity=severity, recommendation=OVERHEAT_RECOMMENDATION)

    if today < mean - STAGNATION_SIGMA * std:
        severity = "high" if today < mean - 2 * std else "mid" if today < mean - 1.5 * std else "low"
        return DriftWarning(state="stagnation", severity=severity, recommendation=STAGNATION_RECOMMENDATION)

    return DriftWarning(state="stable", severity="none", recommendation=STABLE_RECOMMENDATION)


DRIFT_MODE_RULES = (
    Rule("overheat", lambda c: c[1].state == "overheat", "rest"),
    Rule("stagnation", lambda c: c[1].state == "stagnation", "rest"),
    Rule("rising", lambda c: c[0].trend == "rising", "growth"),
    Rule("falling", lambda c: c[0].trend == "falling", "consolidation"),
)


def detect_drift_mode(angle: GrowthAngle, warning: DriftWarning) -> str:
    """Session-level mode: rest, growth or consolidation."""
    return first_match(DRIFT_MODE_RULES, (angle, warning), default="consolidation")


def generate_drift_insight(store: PtmStoreBase, range_days: int = 30, phase: str | None = None) -> DriftInsight:
    """Growth angle, forecast, warning and advice for the trailing window.

    Args:
        store: Read source.
        range_days: Window length in days.
        phase: Today's creation/destruction/neutral phase, if known.
    """
    data = get_daily_drift_data(store, range_days)
    angle = calc_growth_angle(data)
    forecast = calc_drift_forecast(data, angle)
    warning = detect_warning(data)
    mode = detect_drift_mode(angle, warning)
    extended = detect_extended_warning(warning, phase)

    if warning.state != "stable":
        advice = extended.recommendation
    else:
        advice = MODE_ADVICE.get(mode, STABLE_RECOMMENDATION)

    today = data[-1] if data else None
    logger.debug(f"Drift insight over {range_days}d: {len(data)} days, state={warning.state}, mode={mode}")

    return DriftInsight(
        angle=angle,
        forecast=forecast,
        warning=warning,
        extended_warning=extended,
        mode=mode,
        advice=advice,
        today_drift=today.drift if today else 0.0,
        today_ema=today.ema if today else 0.0,
    )
