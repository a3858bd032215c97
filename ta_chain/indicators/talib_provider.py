"""
TA-Lib computation provider.

Adapts ``talib.abstract`` to the ``ComputationProvider`` interface. The
TA-Lib Python package initializes the C library on import and shuts it
down at interpreter exit; the provider session brackets our use of it.

Option names are the TA-Lib Python names (``timeperiod``, ``fastperiod``,
``nbdevup``...). Integer-typed TA-Lib options publish integer defaults,
which is how option kinds are derived.
"""

from __future__ import annotations

import logging
import numbers
from typing import Any, Mapping

import numpy as np

from ..core.data_types import (
    ComputationDescriptor,
    ExecutionResult,
    InputDescriptor,
    InputKind,
    OptionDescriptor,
    OptionKind,
    OutputDescriptor,
    OutputStyle,
    SeriesKind,
)
from ..core.exceptions import ProviderUnavailableError, UnknownComputationError
from .registry import ComputationBinding, ComputationProvider

logger = logging.getLogger(__name__)

# Output flag labels as published in ``Function.info["output_flags"]``.
_STYLE_LABELS: tuple[tuple[str, OutputStyle], ...] = (
    ("Line", OutputStyle.LINE),
    ("Dotted Line", OutputStyle.DOT_LINE),
    ("Dashed Line", OutputStyle.DASH_LINE),
    ("Dot", OutputStyle.DOT),
    ("Histogram", OutputStyle.HISTOGRAM),
    ("Pattern (Bool)", OutputStyle.PATTERN_BOOL),
    ("Bull/Bear Pattern", OutputStyle.PATTERN_BULL_BEAR),
    ("Strength Pattern", OutputStyle.PATTERN_STRENGTH),
    ("Output can be positive", OutputStyle.POSITIVE),
    ("Output can be negative", OutputStyle.NEGATIVE),
    ("Output can be zero", OutputStyle.ZERO),
    ("Values represent an upper limit", OutputStyle.UPPER_LIMIT),
    ("Values represent a lower limit", OutputStyle.LOWER_LIMIT),
)

# Functions whose outputs are TA_Output_Integer outside the pattern group.
_INTEGER_OUTPUT_FUNCTIONS = frozenset({"HT_TRENDMODE", "MAXINDEX", "MININDEX", "MINMAXINDEX"})


def _parse_style(labels: list[str]) -> OutputStyle:
    style = OutputStyle.NONE
    for label in labels:
        for prefix, flag in _STYLE_LABELS:
            if label == prefix or (len(prefix) > 4 and label.startswith(prefix)):
                style |= flag
                break
    return style


def descriptor_from_info(info: Mapping[str, Any]) -> ComputationDescriptor:
    """Build a descriptor from a ``talib.abstract.Function.info`` mapping."""
    name = str(info["name"])
    group = str(info.get("group", ""))

    options = []
    for option_name, default in info.get("parameters", {}).items():
        kind = (
            OptionKind.INTEGER
            if isinstance(default, numbers.Integral) and not isinstance(default, bool)
            else OptionKind.REAL
        )
        options.append(OptionDescriptor(name=option_name, kind=kind, default=default))

    inputs = []
    for input_name, price_series in info.get("input_names", {}).items():
        if isinstance(price_series, (list, tuple)):
            inputs.append(
                InputDescriptor(
                    name=input_name,
                    kind=InputKind.PRICE,
                    price_fields=tuple(price_series),
                )
            )
        else:
            inputs.append(InputDescriptor(name=str(price_series), kind=InputKind.REAL))

    integer_outputs = group == "Pattern Recognition" or name in _INTEGER_OUTPUT_FUNCTIONS
    output_flags = info.get("output_flags", {})
    outputs = [
        OutputDescriptor(
            name=output_name,
            kind=SeriesKind.INTEGER if integer_outputs else SeriesKind.REAL,
            style=_parse_style(list(output_flags.get(output_name, []))),
        )
        for output_name in info.get("output_names", [])
    ]

    return ComputationDescriptor(
        name=name,
        group=group,
        description=str(info.get("display_name", "")),
        options=tuple(options),
        inputs=tuple(inputs),
        outputs=tuple(outputs),
    )


class TalibBinding(ComputationBinding):
    """Binding over one ``talib.abstract.Function`` instance."""

    def __init__(self, function: Any) -> None:
        self._function = function
        self._descriptor = descriptor_from_info(function.info)
        self._kinds = {option.name: option.kind for option in self._descriptor.options}
        self._inputs: list[dict[str, np.ndarray] | None] = [None] * self._descriptor.arity
        self._outputs: list[np.ndarray | None] = [None] * len(self._descriptor.outputs)

    @property
    def descriptor(self) -> ComputationDescriptor:
        return self._descriptor

    def bind_option(self, name: str, value: int | float) -> bool:
        kind = self._kinds.get(name)
        if kind is None:
            return False
        if (kind == OptionKind.INTEGER) != isinstance(value, numbers.Integral):
            return False
        self._function.set_parameters({name: value})
        return True

    def bind_input(self, index: int, data: np.ndarray | Mapping[str, np.ndarray]) -> bool:
        if not 0 <= index < len(self._inputs):
            return False
        declared = self._descriptor.inputs[index]
        if declared.kind == InputKind.PRICE:
            if not isinstance(data, Mapping) or any(f not in data for f in declared.price_fields):
                return False
            self._inputs[index] = {field: data[field] for field in declared.price_fields}
            return True
        if not isinstance(data, np.ndarray):
            return False
        self._inputs[index] = {declared.name: data}
        return True

    def bind_output(self, index: int, buffer: np.ndarray) -> bool:
        if not 0 <= index < len(self._outputs):
            return False
        self._outputs[index] = buffer
        return True

    def lookback(self) -> int:
        return int(self._function.lookback)

    def execute(self, start: int, end: int) -> ExecutionResult:
        count = end - start + 1
        if count <= 0:
            return ExecutionResult(begin_index=0, count=0)

        arrays: dict[str, np.ndarray] = {}
        for bound in self._inputs:
            for key, values in (bound or {}).items():
                arrays[key] = np.array(values[start : end + 1], dtype=np.float64)

        # TA-Lib starts after the longest leading NaN run of its inputs.
        leading = max((_leading_nans(values) for values in arrays.values()), default=0)
        begin = leading + self.lookback()
        if begin >= count:
            return ExecutionResult(begin_index=0, count=0)

        results = self._function.run(arrays)
        if isinstance(results, np.ndarray):
            results = [results]

        produced = count - begin
        for buffer, result in zip(self._outputs, results):
            if buffer is not None:
                buffer[:produced] = np.asarray(result)[begin:count]
        return ExecutionResult(begin_index=begin, count=produced)


def _leading_nans(values: np.ndarray) -> int:
    valid = np.flatnonzero(~np.isnan(values))
    return int(valid[0]) if valid.size else len(values)


class TalibProvider(ComputationProvider):
    """Provider backed by the TA-Lib Python package."""

    name = "talib"

    def __init__(self) -> None:
        super().__init__()
        self._talib: Any = None
        self._abstract: Any = None
        self._names: frozenset[str] = frozenset()

    def _on_initialize(self) -> None:
        try:
            import talib
            from talib import abstract
        except ImportError as exc:
            raise ProviderUnavailableError(
                "TA-Lib is not installed; install the 'talib' extra",
                provider=self.name,
            ) from exc
        self._talib = talib
        self._abstract = abstract
        self._names = frozenset(talib.get_functions())
        logger.debug(f"TA-Lib exposes {len(self._names)} functions")

    def _on_shutdown(self) -> None:
        self._talib = None
        self._abstract = None
        self._names = frozenset()

    def _canonical(self, name: str) -> str:
        self._require_initialized()
        canonical = name.upper()
        if canonical not in self._names:
            raise UnknownComputationError(
                f"Computation '{name}' not found in {self.name} provider",
                computation=name,
            )
        return canonical

    def has(self, name: str) -> bool:
        return name.upper() in self._names

    def list_computations(self) -> list[str]:
        return sorted(self._names)

    def groups(self) -> dict[str, list[str]]:
        """TA-Lib function names by group."""
        self._require_initialized()
        return {group: list(names) for group, names in self._talib.get_function_groups().items()}

    def describe(self, name: str) -> ComputationDescriptor:
        canonical = self._canonical(name)
        return descriptor_from_info(self._abstract.Function(canonical).info)

    def create(self, name: str) -> ComputationBinding:
        canonical = self._canonical(name)
        return TalibBinding(self._abstract.Function(canonical))
