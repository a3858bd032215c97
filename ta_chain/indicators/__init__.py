"""
Indicator layer.

Provider interface, the in-process and TA-Lib providers, and the
indicator dispatch engine.
"""

from .engine import Indicator, IndicatorState, combined_window
from .registry import (
    ComputationBinding,
    ComputationInfo,
    ComputationProvider,
    FunctionBinding,
    FunctionProvider,
    get_active_provider,
    make_descriptor,
    provider_session,
)
from .talib_provider import TalibBinding, TalibProvider

__all__ = [
    "Indicator",
    "IndicatorState",
    "combined_window",
    "ComputationBinding",
    "ComputationInfo",
    "ComputationProvider",
    "FunctionBinding",
    "FunctionProvider",
    "get_active_provider",
    "make_descriptor",
    "provider_session",
    "TalibBinding",
    "TalibProvider",
]
