"""Drift engine."""

from .core import (
    calc_drift_forecast,
    calc_ema,
    calc_growth_angle,
    detect_drift_mode,
    detect_warning,
    generate_drift_insight,
    get_daily_drift_data,
)
from .warnings import detect_extended_warning

__all__ = [
    "calc_drift_forecast",
    "calc_ema",
    "calc_growth_angle",
    "detect_drift_mode",
    "detect_extended_warning",
    "detect_warning",
    "generate_drift_insight",
    "get_daily_drift_data",
]
