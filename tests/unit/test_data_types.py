"""
Unit tests for core/data_types.py
"""

import datetime as dt

import numpy as np
import pytest
from pydantic import ValidationError

from ta_chain.core.data_types import (
    BEGINNING,
    ENDING,
    Candle,
    ComputationDescriptor,
    InputDescriptor,
    InputKind,
    OptionDescriptor,
    OptionKind,
    OutputDescriptor,
    OutputStyle,
    SeriesKind,
    parse_date,
)


class TestParseDate:
    """Tests for date token parsing."""

    @pytest.mark.parametrize("token", ["2008-05-01", "2008/05/01", "2008.5.1", " 2008-05-01 "])
    def test_accepted_formats(self, token):
        """Test delimited dates parse."""
        assert parse_date(token) == dt.date(2008, 5, 1)

    @pytest.mark.parametrize("token", ["20080501", "May 1 2008", "2008-13-01", "2008-02-30", ""])
    def test_rejected_tokens(self, token):
        """Test invalid tokens raise ValueError."""
        with pytest.raises(ValueError):
            parse_date(token)

    def test_range_bounds(self):
        """Test open range bounds enclose every date."""
        assert BEGINNING < dt.date(2008, 5, 1) < ENDING


class TestSeriesKind:
    """Tests for SeriesKind."""

    def test_dtypes(self):
        """Test backing dtypes."""
        assert SeriesKind.REAL.dtype == np.float64
        assert SeriesKind.INTEGER.dtype == np.int64
        assert SeriesKind.DATE.dtype == np.dtype("datetime64[D]")

    def test_fill_values(self):
        """Test fill values."""
        assert np.isnan(SeriesKind.REAL.fill_value)
        assert SeriesKind.INTEGER.fill_value == 0
        assert np.isnat(SeriesKind.DATE.fill_value)

    def test_from_dtype(self):
        """Test dtype inference."""
        assert SeriesKind.from_dtype(np.float32) == SeriesKind.REAL
        assert SeriesKind.from_dtype(np.int32) == SeriesKind.INTEGER
        assert SeriesKind.from_dtype("datetime64[D]") == SeriesKind.DATE
        with pytest.raises(TypeError):
            SeriesKind.from_dtype(object)


class TestOutputStyle:
    """Tests for OutputStyle flags."""

    def test_flags_combine(self):
        """Test flags combine as a bit set."""
        style = OutputStyle.LINE | OutputStyle.UPPER_LIMIT
        assert style & OutputStyle.LINE
        assert int(style) == 2049

    def test_is_pattern(self):
        """Test pattern detection."""
        assert OutputStyle.PATTERN_BULL_BEAR.is_pattern
        assert not OutputStyle.HISTOGRAM.is_pattern


class TestCandle:
    """Tests for the Candle model."""

    def test_is_rising(self):
        """Test direction."""
        assert Candle(open=1, high=2, low=0.5, close=1).is_rising
        assert not Candle(open=1.5, high=2, low=0.5, close=1).is_rising

    def test_merge(self):
        """Test merging a later candle."""
        first = Candle(open=10, high=12, low=9, close=11, volume=100, date=dt.date(2008, 5, 1))
        later = Candle(open=11, high=13, low=10, close=12.5, volume=50, date=dt.date(2008, 5, 2))

        merged = first.merge(later)

        assert merged.open == 10
        assert merged.high == 13
        assert merged.low == 9
        assert merged.close == 12.5
        assert merged.volume == 150
        assert merged.date == dt.date(2008, 5, 2)
        assert first.close == 11  # Original unchanged

    def test_frozen(self):
        """Test candles are immutable."""
        candle = Candle(open=1, high=2, low=0.5, close=1)
        with pytest.raises(ValidationError):
            candle.close = 3


class TestDescriptors:
    """Tests for computation descriptors."""

    def test_output_cannot_be_date(self):
        """Test date outputs are rejected."""
        with pytest.raises(ValidationError):
            OutputDescriptor(name="when", kind=SeriesKind.DATE)

    def test_arity_bounds(self):
        """Test one or two inputs are required."""
        real = InputDescriptor(name="price", kind=InputKind.REAL)
        output = OutputDescriptor(name="real")
        with pytest.raises(ValidationError):
            ComputationDescriptor(name="NONE", inputs=(), outputs=(output,))
        with pytest.raises(ValidationError):
            ComputationDescriptor(name="MANY", inputs=(real, real, real), outputs=(output,))

    def test_option_index_and_dict(self):
        """Test schema helpers."""
        descriptor = ComputationDescriptor(
            name="BBANDS",
            group="Overlap Studies",
            options=(
                OptionDescriptor(name="timeperiod", kind=OptionKind.INTEGER, default=5),
                OptionDescriptor(name="nbdevup", kind=OptionKind.REAL, default=2.0),
            ),
            inputs=(InputDescriptor(name="close", kind=InputKind.REAL),),
            outputs=(OutputDescriptor(name="upperband"), OutputDescriptor(name="lowerband")),
        )

        assert descriptor.arity == 1
        assert descriptor.option_index() == {"timeperiod": 0, "nbdevup": 1}
        info = descriptor.to_dict()
        assert info["options"][1] == {"name": "nbdevup", "kind": "real", "default": 2.0}
        assert info["outputs"][0]["style"] == int(OutputStyle.LINE)
