"""
Pytest fixtures for the TA Chain tests.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from ta_chain.core.data_types import OutputStyle  # noqa: E402
from ta_chain.core.series import CandleBundle  # noqa: E402
from ta_chain.indicators.registry import (  # noqa: E402
    FunctionProvider,
    make_descriptor,
    provider_session,
)


CANDLE_ROWS = [
    "2008-04-28 10.0 11.0 9.5 10.5 1000 0",
    "2008-04-29 10.5 11.5 10.0 11.0 1100 0",
    "2008-04-30 11.0 11.2 10.1 10.2 1200 0",
    "2008-05-01 10.2 10.8 9.9 10.6 1300 0",
    "2008-05-02 10.6 11.4 10.4 11.3 1400 0",
    "2008-05-05 11.3 11.9 11.0 11.8 1500 0",
    "2008-05-06 11.8 12.0 11.1 11.2 1600 0",
    "2008-05-07 11.2 11.6 10.9 11.5 1700 0",
    "2008-05-08 11.5 12.2 11.4 12.1 1800 0",
    "2008-05-09 12.1 12.5 11.8 12.4 1900 0",
]


def _rolling_mean(price, timeperiod):
    return pd.Series(price).rolling(timeperiod).mean().to_numpy()


def build_test_provider() -> FunctionProvider:
    """A function provider populated with small reference computations."""
    provider = FunctionProvider()

    provider.register(
        make_descriptor("IDENTITY", description="Copy of the input"),
        lambda price: np.array(price, dtype=np.float64),
    )
    provider.register(
        make_descriptor("SMA", options={"timeperiod": 3}, group="Overlap Studies"),
        _rolling_mean,
        lookback=lambda options: options["timeperiod"] - 1,
        aliases=["MEAN"],
    )
    provider.register(
        make_descriptor("LAG", options={"period": 4}),
        lambda price, period: np.concatenate([np.full(period, np.nan), price[: len(price) - period]]),
        lookback=lambda options: options["period"],
    )
    provider.register(
        make_descriptor("SCALE", options={"factor": 2.0}),
        lambda price, factor: price * factor,
    )
    provider.register(
        make_descriptor("SPREAD", inputs=("real", "real")),
        lambda price0, price1: price0 - price1,
    )
    provider.register(
        make_descriptor(
            "BANDS",
            outputs=[
                ("upper", "real", OutputStyle.DASH_LINE),
                ("middle", "real", OutputStyle.LINE),
                ("lower", "real", OutputStyle.DASH_LINE),
            ],
            options={"timeperiod": 3, "width": 1.0},
        ),
        lambda price, timeperiod, width: (
            _rolling_mean(price, timeperiod) + width,
            _rolling_mean(price, timeperiod),
            _rolling_mean(price, timeperiod) - width,
        ),
        lookback=lambda options: options["timeperiod"] - 1,
    )
    provider.register(
        make_descriptor(
            "MEDPRICE",
            inputs=[("prices", "price")],
        ),
        lambda prices: (prices["high"] + prices["low"]) / 2.0,
    )
    provider.register(
        make_descriptor(
            "UPDAY",
            inputs=[("prices", "price")],
            outputs=[("integer", "integer", OutputStyle.PATTERN_BOOL)],
        ),
        lambda prices: (prices["close"] >= prices["open"]).astype(np.int64),
    )
    provider.register(
        make_descriptor("TWICE", inputs=("integer",), outputs=[("integer", "integer")]),
        lambda price: price * 2,
    )
    return provider


@pytest.fixture
def function_provider():
    """Fresh uninitialized provider with the reference computations."""
    return build_test_provider()


@pytest.fixture
def provider(function_provider):
    """Reference provider inside an open provider session."""
    with provider_session(function_provider) as active:
        yield active


@pytest.fixture
def candle_file(tmp_path):
    """Ten daily candles from 2008-04-28 to 2008-05-09."""
    path = tmp_path / "C"
    path.write_text("\n".join(CANDLE_ROWS) + "\n")
    return path


@pytest.fixture
def candles():
    """Ten-candle bundle matching ``candle_file``."""
    columns = [row.split() for row in CANDLE_ROWS]
    return CandleBundle(
        open=[float(c[1]) for c in columns],
        high=[float(c[2]) for c in columns],
        low=[float(c[3]) for c in columns],
        close=[float(c[4]) for c in columns],
        volume=[float(c[5]) for c in columns],
        open_interest=[float(c[6]) for c in columns],
        dates=np.array([c[0] for c in columns], dtype="datetime64[D]"),
        name="C",
    )
