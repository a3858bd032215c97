"""
Unit tests for indicators/engine.py
"""

import numpy as np
import pandas as pd
import pytest

from ta_chain.core.data_types import ExecutionResult, OutputStyle, SeriesKind
from ta_chain.core.exceptions import (
    ArityMismatchError,
    EngineInvariantViolationError,
    InputKindMismatchError,
    InsufficientDataError,
    OptionTypeMismatchError,
    ProviderNotInitializedError,
    ReadOnlySeriesError,
    UnknownComputationError,
    UnknownOptionError,
)
from ta_chain.core.options import OptionSet
from ta_chain.core.series import Series
from ta_chain.indicators.engine import Indicator, IndicatorState, combined_window
from ta_chain.indicators.registry import (
    ComputationBinding,
    FunctionProvider,
    make_descriptor,
    provider_session,
)


def real_series(length, first=0):
    return Series(np.arange(1.0, length + 1.0), first=first)


class ScriptedBinding(ComputationBinding):
    """Binding whose lookback and execute report are fixed up front."""

    def __init__(self, lookback=0, report=None, accept_options=True):
        self._descriptor = make_descriptor("SCRIPTED", options={"timeperiod": 1})
        self._lookback = lookback
        self._report = report
        self._accept_options = accept_options
        self.executed = False

    @property
    def descriptor(self):
        return self._descriptor

    def bind_option(self, name, value):
        return self._accept_options

    def bind_input(self, index, data):
        self._input = data
        return True

    def bind_output(self, index, buffer):
        self._buffer = buffer
        return True

    def lookback(self):
        return self._lookback

    def execute(self, start, end):
        self.executed = True
        if self._report is not None:
            return self._report
        count = end - start + 1
        self._buffer[:] = self._input[self._lookback:count]
        return ExecutionResult(begin_index=self._lookback, count=count - self._lookback)


class ScriptedProvider(FunctionProvider):
    """Provider handing out one prepared binding."""

    def __init__(self, binding):
        super().__init__()
        self.binding = binding

    def has(self, name):
        return name == "SCRIPTED"

    def create(self, name):
        self._require_initialized()
        return self.binding


class TestCombinedWindow:
    """Tests for combined_window."""

    def test_single_operand(self):
        """Test a single operand's own window."""
        assert combined_window(real_series(10, first=3)) == (3, 10)

    def test_two_operands(self):
        """Test the narrower common window governs."""
        assert combined_window(real_series(10, 0), real_series(8, 2)) == (2, 8)

    def test_disjoint_windows(self):
        """Test disjoint valid windows still combine as max first and min length."""
        assert combined_window(real_series(10, 9), real_series(5, 0)) == (9, 5)

    def test_bundle_operand(self, candles):
        """Test bundles contribute their shared first."""
        candles.first = 4
        assert combined_window(candles, real_series(12, 1)) == (4, 10)

    def test_requires_operand(self):
        """Test at least one operand is needed."""
        with pytest.raises(ValueError):
            combined_window()


class TestIndicatorScenarios:
    """Tests for first index propagation."""

    def test_identity_with_zero_lookback(self, provider):
        """Test zero lookback keeps first and copies the input."""
        source = real_series(6, first=2)
        indicator = Indicator("IDENTITY", source)

        assert indicator.state == IndicatorState.COMPUTED
        assert indicator.lookback == 0
        assert indicator.output_first == indicator.combined_first == 2
        assert len(indicator.output) == 6
        np.testing.assert_allclose(indicator.output.valid(), source.valid())

    def test_length_ten_lookback_four(self, provider):
        """Test ten samples with a lookback of four."""
        indicator = Indicator("SMA", real_series(10), options=OptionSet().add("timeperiod", 5))

        output = indicator.output
        assert len(output) == 10
        assert output.first == 4
        np.testing.assert_allclose(output.valid(), [3.0, 4.0, 5.0, 6.0, 7.0, 8.0])
        assert np.isnan(output.values[:4]).all()

    def test_two_inputs_lengths_ten_and_eight(self, provider):
        """Test two inputs of different lengths and firsts."""
        a = real_series(10, first=0)
        b = Series(np.ones(8), first=2)

        indicator = Indicator("SPREAD", a, b)

        assert indicator.combined_first == 2
        assert indicator.visible_length == 8
        output = indicator.output
        assert len(output) == 8
        assert output.first == 2
        np.testing.assert_allclose(output.valid(), [2.0, 3.0, 4.0, 5.0, 6.0, 7.0])

    def test_chained_first(self, provider):
        """Test first grows by each lookback along a chain."""
        source = real_series(20, first=3)
        sma = Indicator("SMA", source, options=OptionSet().add("timeperiod", 4))
        lagged = Indicator("LAG", sma.output, options=OptionSet().add("period", 2))

        assert sma.output.first == 3 + 3
        assert lagged.output.first == 3 + 3 + 2
        assert lagged.output[8] == sma.output[6]

    def test_chained_first_never_decreases(self, provider):
        """Test zero lookback links keep first."""
        source = real_series(12, first=5)
        scaled = Indicator("SCALE", source)
        again = Indicator("IDENTITY", scaled.output)
        assert again.output.first == 5
        np.testing.assert_allclose(again.output.valid(), source.valid() * 2.0)

    def test_empty_valid_region(self, provider):
        """Test a lookback reaching exactly the end yields an empty region."""
        indicator = Indicator("LAG", real_series(5), options=OptionSet().add("period", 5))
        output = indicator.output
        assert len(output) == 5
        assert output.first == 5
        assert len(output.valid()) == 0

    def test_insufficient_data(self, provider):
        """Test a lookback beyond the data fails."""
        with pytest.raises(InsufficientDataError) as exc_info:
            Indicator("LAG", real_series(5), options=OptionSet().add("period", 6))
        assert exc_info.value.output_first == 6
        assert exc_info.value.visible_length == 5

    def test_disjoint_inputs_are_insufficient(self, provider):
        """Test disjoint valid windows leave nothing to compute."""
        with pytest.raises(InsufficientDataError):
            Indicator("SPREAD", real_series(10, first=9), real_series(5))

    def test_price_bundle_input(self, provider, candles):
        """Test a bundle binds as a price input."""
        candles.first = 1
        indicator = Indicator("MEDPRICE", candles)
        assert indicator.output.first == 1
        assert indicator.output[2] == pytest.approx((11.2 + 10.1) / 2)

    def test_integer_output(self, provider, candles):
        """Test integer outputs keep their kind and style."""
        indicator = Indicator("UPDAY", candles)
        output = indicator.output
        assert output.kind == SeriesKind.INTEGER
        assert output.style == OutputStyle.PATTERN_BOOL
        assert list(output[:3]) == [1, 1, 0]

    def test_integer_input(self, provider):
        """Test integer series bind to integer inputs."""
        indicator = Indicator("TWICE", Series([1, 2, 3]))
        assert list(indicator.output) == [2, 4, 6]

    def test_outputs_are_frozen(self, provider):
        """Test outputs are read-only, including their first index."""
        indicator = Indicator("IDENTITY", real_series(3))
        assert indicator.output.frozen
        with pytest.raises(ValueError):
            indicator.output.values[0] = 1.0
        with pytest.raises(ReadOnlySeriesError):
            indicator.output.style = OutputStyle.DOT

    def test_chained_first_cannot_be_lowered(self, provider):
        """Test a lagged output keeps its first index for the next stage."""
        lagged = Indicator("LAG", real_series(10), options=OptionSet().add("period", 4))
        with pytest.raises(ReadOnlySeriesError):
            lagged.output.first = 0
        chained = Indicator("IDENTITY", lagged.output)
        assert chained.output.first == 4
        assert not np.isnan(chained.output.valid()).any()


class TestIndicatorOptions:
    """Tests for option binding."""

    def test_defaults_apply(self, provider):
        """Test omitted options keep their defaults."""
        indicator = Indicator("SMA", real_series(10))
        assert indicator.lookback == 2
        assert indicator.options == {}

    def test_bound_option_retrievable(self, provider):
        """Test bound options can be read back."""
        indicator = Indicator("SMA", real_series(10), options=OptionSet().add("timeperiod", 4))
        assert indicator.get_option("timeperiod") == 4
        with pytest.raises(KeyError):
            indicator.get_option("nbdevup")

    def test_last_write_wins(self, provider):
        """Test a repeated option name keeps the later value."""
        options = OptionSet().add("timeperiod", 3).add("timeperiod", 6)
        indicator = Indicator("SMA", real_series(10), options=options)
        assert indicator.get_option("timeperiod") == 6
        assert indicator.output.first == 5

    def test_unknown_option(self, provider):
        """Test names outside the schema fail."""
        with pytest.raises(UnknownOptionError) as exc_info:
            Indicator("SMA", real_series(10), options=OptionSet().add("period", 3))
        assert exc_info.value.option_name == "period"
        assert exc_info.value.details["known_options"] == ["timeperiod"]

    def test_integer_for_real_option(self, provider):
        """Test an integer value cannot fill a real slot."""
        with pytest.raises(OptionTypeMismatchError) as exc_info:
            Indicator("SCALE", real_series(3), options=OptionSet().add("factor", 3))
        assert exc_info.value.expected == "real"
        assert exc_info.value.actual == "integer"

    def test_real_for_integer_option(self, provider):
        """Test a real value cannot fill an integer slot."""
        with pytest.raises(OptionTypeMismatchError):
            Indicator("SMA", real_series(10), options=OptionSet().add("timeperiod", 3.0))

    def test_non_numeric_option(self, provider):
        """Test non-numeric values are type mismatches."""
        with pytest.raises(OptionTypeMismatchError) as exc_info:
            Indicator("SMA", real_series(10), options=OptionSet().add("timeperiod", "3"))
        assert exc_info.value.actual == "str"


class TestIndicatorFailures:
    """Tests for construction failures."""

    def test_unknown_computation(self, provider):
        """Test unresolvable names fail."""
        with pytest.raises(UnknownComputationError):
            Indicator("NOPE", real_series(3))

    def test_arity_mismatch(self, provider):
        """Test the operand count must match."""
        with pytest.raises(ArityMismatchError) as exc_info:
            Indicator("SPREAD", real_series(3))
        assert (exc_info.value.expected, exc_info.value.actual) == (2, 1)

    def test_bundle_for_real_input(self, provider, candles):
        """Test a bundle cannot fill a real slot."""
        with pytest.raises(InputKindMismatchError) as exc_info:
            Indicator("IDENTITY", candles)
        assert exc_info.value.expected == "real"
        assert exc_info.value.actual == "price"

    def test_series_for_price_input(self, provider):
        """Test a series cannot fill a price slot."""
        with pytest.raises(InputKindMismatchError):
            Indicator("MEDPRICE", real_series(3))

    def test_integer_for_real_input(self, provider):
        """Test integer series cannot fill real slots."""
        with pytest.raises(InputKindMismatchError) as exc_info:
            Indicator("IDENTITY", Series([1, 2, 3]))
        assert exc_info.value.input_index == 0

    def test_date_series_input(self, provider, candles):
        """Test date series are never operands."""
        with pytest.raises(InputKindMismatchError):
            Indicator("IDENTITY", candles.dates)

    def test_requires_session(self):
        """Test the active provider is needed without an explicit one."""
        with pytest.raises(ProviderNotInitializedError):
            Indicator("IDENTITY", real_series(3))

    def test_explicit_provider(self, function_provider):
        """Test an explicit initialized provider is used."""
        function_provider.initialize()
        try:
            indicator = Indicator("IDENTITY", real_series(3), provider=function_provider)
            assert indicator.name == "IDENTITY"
        finally:
            function_provider.shutdown()


class TestEngineInvariants:
    """Tests for provider contract checks."""

    def _build(self, binding, **kwargs):
        with provider_session(ScriptedProvider(binding)):
            return Indicator("SCRIPTED", real_series(10), **kwargs)

    def test_consistent_provider(self):
        """Test the scripted binding satisfies the contract."""
        indicator = self._build(ScriptedBinding(lookback=3))
        assert indicator.output.first == 3
        np.testing.assert_allclose(indicator.output.valid(), [4.0, 5.0, 6.0, 7.0, 8.0, 9.0, 10.0])

    def test_wrong_begin_index(self):
        """Test a reported start other than the lookback is a violation."""
        binding = ScriptedBinding(lookback=3, report=ExecutionResult(begin_index=2, count=7))
        with pytest.raises(EngineInvariantViolationError) as exc_info:
            self._build(binding)
        assert exc_info.value.details["begin_index"] == 2

    def test_wrong_count(self):
        """Test a reported count other than the valid region is a violation."""
        binding = ScriptedBinding(lookback=3, report=ExecutionResult(begin_index=3, count=6))
        with pytest.raises(EngineInvariantViolationError):
            self._build(binding)

    def test_negative_lookback(self):
        """Test a negative lookback is a violation."""
        with pytest.raises(EngineInvariantViolationError):
            self._build(ScriptedBinding(lookback=-1))

    def test_rejected_option(self):
        """Test a provider refusing a schema-valid option is a violation."""
        binding = ScriptedBinding(accept_options=False)
        with pytest.raises(EngineInvariantViolationError):
            self._build(binding, options=OptionSet().add("timeperiod", 2))

    def test_empty_region_skips_execute(self):
        """Test execute is not called when nothing can be produced."""
        binding = ScriptedBinding(lookback=10)
        indicator = self._build(binding)
        assert not binding.executed
        assert indicator.output.first == 10

    def test_violation_is_logged(self, caplog):
        """Test violations are logged at critical level before propagating."""
        binding = ScriptedBinding(lookback=3, report=ExecutionResult(begin_index=0, count=0))
        with caplog.at_level("CRITICAL"):
            with pytest.raises(EngineInvariantViolationError):
                self._build(binding)
        assert any(record.levelname == "CRITICAL" for record in caplog.records)


class TestIndicatorAccessors:
    """Tests for output access."""

    def test_multi_output_access(self, provider):
        """Test outputs by position and name."""
        indicator = Indicator("BANDS", real_series(10))
        assert len(indicator) == 3
        assert indicator.output_names() == ["upper", "middle", "lower"]
        assert indicator["middle"] is indicator[1]
        assert indicator[0].style == OutputStyle.DASH_LINE
        np.testing.assert_allclose(indicator["upper"].valid() - indicator["lower"].valid(), 2.0)
        with pytest.raises(ValueError):
            indicator.output
        with pytest.raises(KeyError):
            indicator["nope"]

    def test_labeled_outputs(self, provider):
        """Test display names for single and multiple outputs."""
        bands = Indicator("BANDS", real_series(10))
        sma = Indicator("SMA", real_series(10))

        assert [name for name, _ in bands.labeled_outputs()] == ["upper", "middle", "lower"]
        assert [name for name, _ in bands.labeled_outputs("bb")] == ["bb:upper", "bb:middle", "bb:lower"]
        assert [name for name, _ in sma.labeled_outputs()] == ["SMA"]
        assert [name for name, _ in sma.labeled_outputs("fast")] == ["fast"]

    def test_display_name_follows_provider(self, provider):
        """Test aliases resolve to the published name for display."""
        mean = Indicator("MEAN", real_series(10))
        assert mean.name == "MEAN"
        assert mean.display_name() == "SMA"
        assert [name for name, _ in mean.labeled_outputs()] == ["SMA"]

    def test_to_frame(self, provider, candles):
        """Test DataFrame conversion masks unstable prefixes."""
        indicator = Indicator("BANDS", candles.close)
        index = pd.DatetimeIndex(candles.dates.values)
        frame = indicator.to_frame(index=index)
        assert list(frame.columns) == ["upper", "middle", "lower"]
        assert frame["middle"].isna().sum() == 2
        assert frame.index[0] == pd.Timestamp("2008-04-28")

    def test_repr_and_iteration(self, provider):
        """Test representation and iteration."""
        indicator = Indicator("SMA", real_series(10))
        assert "SMA" in repr(indicator)
        assert list(indicator) == [indicator.output]
