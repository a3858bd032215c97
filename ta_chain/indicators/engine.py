"""
Indicator dispatch engine.

An ``Indicator`` resolves a named computation against the active
provider, binds options and operands, works out the window every input
can support, and produces output series whose ``first`` index accounts
for both the inputs' unstable prefixes and the computation's lookback::

    close = candles.close                    # first == 0
    ema = Indicator("EMA", close, options=OptionSet().add("timeperiod", 10))
    ema.output.first                         # 9
    slope = Indicator("ROC", ema.output)     # first == 9 + lookback(ROC)

Construction is all-or-nothing: every binding and the computation itself
run inside ``__init__`` and any failure propagates.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterator, Union

import numpy as np
import pandas as pd

from ..core.data_types import ComputationDescriptor, InputKind
from ..core.exceptions import (
    ArityMismatchError,
    EngineInvariantViolationError,
    InputKindMismatchError,
    InsufficientDataError,
    OptionTypeMismatchError,
    TAChainError,
    UnknownOptionError,
)
from ..core.options import OptionSet
from ..core.series import CandleBundle, Series
from ..monitoring.logger import LogCategory, get_logger
from .registry import ComputationBinding, ComputationProvider, get_active_provider

Operand = Union[Series, CandleBundle]


class IndicatorState(str, Enum):
    """Construction progress of an indicator."""

    UNCONSTRUCTED = "unconstructed"
    RESOLVED = "resolved"
    OPTIONS_BOUND = "options_bound"
    INPUTS_BOUND = "inputs_bound"
    COMPUTED = "computed"
    FAILED = "failed"


def combined_window(*operands: Operand) -> tuple[int, int]:
    """Window every operand can support.

    Returns:
        ``(combined_first, visible_length)``: the largest ``first`` and the
        smallest length across operands. The pair may describe an empty
        or inverted window when the operands' valid ranges are disjoint.
    """
    if not operands:
        raise ValueError("At least one operand is required")
    return max(op.first for op in operands), min(len(op) for op in operands)


class Indicator:
    """A computation applied to one or two operands.

    Attributes are read-only after construction. Outputs are frozen
    ``Series`` with length equal to the visible length of the inputs and
    ``first`` equal to the combined input ``first`` plus the lookback.
    """

    def __init__(
        self,
        name: str,
        *operands: Operand,
        options: OptionSet | None = None,
        provider: ComputationProvider | None = None,
    ) -> None:
        """Build and compute the indicator.

        Args:
            name: Computation name known to the provider.
            *operands: One or two input series or candle bundles.
            options: Optional parameters; defaults apply when omitted.
            provider: Provider to resolve against. The active provider
                of the enclosing ``provider_session`` when omitted.

        Raises:
            UnknownComputationError: If ``name`` does not resolve.
            ArityMismatchError: If the operand count is wrong.
            UnknownOptionError: If an option name is not in the schema.
            OptionTypeMismatchError: If an option value has the wrong kind.
            InputKindMismatchError: If an operand has the wrong kind.
            InsufficientDataError: If the lookback exceeds the data.
            EngineInvariantViolationError: If the provider breaks its
                binding contract.
        """
        self._name = name
        self._state = IndicatorState.UNCONSTRUCTED
        self._bound_options: dict[str, int | float] = {}
        self._outputs: tuple[Series, ...] = ()
        self._combined_first = 0
        self._visible_length = 0
        self._lookback = 0
        self._log = get_logger(__name__, LogCategory.INDICATOR).with_context(computation=name)

        provider = provider or get_active_provider()
        try:
            binding = self._resolve(provider)
            self._check_arity(operands)
            self._bind_options(binding, options if options is not None else OptionSet())
            self._bind_inputs(binding, operands)
            self._compute(binding)
        except EngineInvariantViolationError as exc:
            self._state = IndicatorState.FAILED
            self._log.critical(f"Provider contract violated: {exc.message}", exc_info=True)
            raise
        except TAChainError as exc:
            self._state = IndicatorState.FAILED
            self._log.debug(f"Indicator construction failed: {exc}")
            raise

    # -------------------------------------------------------------------------
    # Construction steps
    # -------------------------------------------------------------------------

    def _resolve(self, provider: ComputationProvider) -> ComputationBinding:
        binding = provider.create(self._name)
        self._descriptor: ComputationDescriptor = binding.descriptor
        self._state = IndicatorState.RESOLVED
        return binding

    def _check_arity(self, operands: tuple[Operand, ...]) -> None:
        expected = len(self._descriptor.inputs)
        if len(operands) != expected:
            raise ArityMismatchError(
                f"{self._name} takes {expected} input(s), got {len(operands)}",
                computation=self._name,
                expected=expected,
                actual=len(operands),
            )

    def _bind_options(self, binding: ComputationBinding, options: OptionSet) -> None:
        schema = binding.option_schema()
        index = {descriptor.name: i for i, descriptor in enumerate(schema)}

        # Later duplicates overwrite earlier ones.
        for option in options:
            if option.name not in index:
                raise UnknownOptionError(
                    f"{self._name} has no option '{option.name}'",
                    computation=self._name,
                    option_name=option.name,
                    details={"known_options": list(index)},
                )
            declared = schema[index[option.name]]
            try:
                value = option.get(declared.kind)
            except TypeError as exc:
                raise OptionTypeMismatchError(
                    str(exc),
                    computation=self._name,
                    option_name=option.name,
                    expected=declared.kind.value,
                    actual=option.kind.value if option.kind else type(option.value).__name__,
                ) from exc
            if not binding.bind_option(option.name, value):
                raise EngineInvariantViolationError(
                    f"Provider rejected option '{option.name}'={value!r} of declared kind "
                    f"{declared.kind.value}",
                    computation=self._name,
                )
            self._bound_options[option.name] = value
            self._log.trace(f"Bound option {option.name}={value!r}")

        self._state = IndicatorState.OPTIONS_BOUND

    def _bind_inputs(self, binding: ComputationBinding, operands: tuple[Operand, ...]) -> None:
        schema = binding.input_schema()
        for i, (operand, declared) in enumerate(zip(operands, schema)):
            actual = _operand_kind(operand)
            if actual != declared.kind:
                raise InputKindMismatchError(
                    f"{self._name} input {i} ('{declared.name}') expects "
                    f"{declared.kind.value}, got {actual.value if actual else type(operand).__name__}",
                    computation=self._name,
                    input_index=i,
                    expected=declared.kind.value,
                    actual=actual.value if actual else type(operand).__name__,
                )

        self._combined_first, self._visible_length = combined_window(*operands)
        start = self._combined_first
        stop = max(self._visible_length, start)
        for i, operand in enumerate(operands):
            if not binding.bind_input(i, operand.window(start, stop)):
                raise EngineInvariantViolationError(
                    f"Provider rejected input {i} of declared kind {schema[i].kind.value}",
                    computation=self._name,
                )
        self._log.trace(
            f"Bound {len(operands)} input(s) on window [{start}, {stop})",
            extra={"extra_data": {"combined_first": start, "visible_length": self._visible_length}},
        )
        self._state = IndicatorState.INPUTS_BOUND

    def _compute(self, binding: ComputationBinding) -> None:
        lookback = binding.lookback()
        if lookback < 0:
            raise EngineInvariantViolationError(
                f"Provider reported negative lookback {lookback}",
                computation=self._name,
                details={"options": dict(self._bound_options)},
            )
        self._lookback = lookback
        output_first = self._combined_first + lookback
        if output_first > self._visible_length:
            raise InsufficientDataError(
                f"{self._name} needs {lookback} leading sample(s) after index "
                f"{self._combined_first}, only {self._visible_length} available",
                computation=self._name,
                output_first=output_first,
                visible_length=self._visible_length,
            )

        outputs = []
        for i, declared in enumerate(binding.output_schema()):
            series = Series(
                np.full(self._visible_length, declared.kind.fill_value, dtype=declared.kind.dtype),
                kind=declared.kind,
                style=declared.style,
                name=declared.name,
            )
            series.first = output_first
            binding.bind_output(i, series.buffer(output_first))
            outputs.append(series)

        expected_count = self._visible_length - output_first
        if expected_count > 0:
            result = binding.execute(0, self._visible_length - self._combined_first - 1)
            if result.begin_index != lookback or result.count != expected_count:
                raise EngineInvariantViolationError(
                    f"Provider produced {result.count} element(s) from offset "
                    f"{result.begin_index}, expected {expected_count} from {lookback}",
                    computation=self._name,
                    details={
                        "begin_index": result.begin_index,
                        "count": result.count,
                        "lookback": lookback,
                        "expected_count": expected_count,
                    },
                )

        self._outputs = tuple(series.freeze() for series in outputs)
        self._state = IndicatorState.COMPUTED
        self._log.debug(
            f"Computed {self._name}: {len(outputs)} output(s), valid [{output_first}, "
            f"{self._visible_length})"
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        """Computation name as requested."""
        return self._name

    def display_name(self) -> str:
        """Computation name as published by the provider, used for titles."""
        return self._descriptor.name

    @property
    def descriptor(self) -> ComputationDescriptor:
        return self._descriptor

    @property
    def state(self) -> IndicatorState:
        return self._state

    @property
    def lookback(self) -> int:
        return self._lookback

    @property
    def combined_first(self) -> int:
        return self._combined_first

    @property
    def visible_length(self) -> int:
        return self._visible_length

    @property
    def output_first(self) -> int:
        return self._combined_first + self._lookback

    @property
    def options(self) -> dict[str, int | float]:
        """Options explicitly bound, after last-write-wins resolution."""
        return dict(self._bound_options)

    def get_option(self, name: str) -> int | float:
        """Value bound for ``name``.

        Raises:
            KeyError: If the option was not supplied.
        """
        return self._bound_options[name]

    @property
    def outputs(self) -> tuple[Series, ...]:
        return self._outputs

    @property
    def output(self) -> Series:
        """The single output.

        Raises:
            ValueError: If the computation has several outputs.
        """
        if len(self._outputs) != 1:
            raise ValueError(
                f"{self.name} has {len(self._outputs)} outputs; index by position or name"
            )
        return self._outputs[0]

    def output_names(self) -> list[str]:
        return [series.name for series in self._outputs]

    def labeled_outputs(self, label: str = "") -> list[tuple[str, Series]]:
        """Outputs paired with display names.

        A single output is named ``label`` or, without one, the
        computation name. Several outputs are named ``label:output`` or
        just the output name.
        """
        if len(self._outputs) == 1:
            return [(label or self.display_name(), self._outputs[0])]
        return [
            (f"{label}:{series.name}" if label else series.name, series)
            for series in self._outputs
        ]

    def to_frame(self, index: Any = None) -> pd.DataFrame:
        """Outputs as DataFrame columns, unstable prefixes masked."""
        return pd.DataFrame(
            {series.name: series.to_pandas(index=index) for series in self._outputs},
            index=index,
        )

    def __len__(self) -> int:
        return len(self._outputs)

    def __iter__(self) -> Iterator[Series]:
        return iter(self._outputs)

    def __getitem__(self, key: int | str) -> Series:
        if isinstance(key, str):
            for series in self._outputs:
                if series.name == key:
                    return series
            raise KeyError(f"{self.name} has no output '{key}'")
        return self._outputs[key]

    def __repr__(self) -> str:
        return (
            f"<Indicator {self.name} outputs={self.output_names()} "
            f"first={self.output_first} len={self.visible_length}>"
        )


def _operand_kind(operand: Any) -> InputKind | None:
    if isinstance(operand, (Series, CandleBundle)):
        try:
            return operand.operand_kind
        except TypeError:
            return None
    return None
