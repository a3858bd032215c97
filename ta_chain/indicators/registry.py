"""
Computation provider interface and registration.

A provider is the process-wide handle onto an external library of
computations. The caller owns its lifecycle::

    with provider_session(TalibProvider()):
        macd = Indicator("MACD", candles.close)

Each indicator asks the provider for a fresh ``ComputationBinding``,
binds options, inputs and output buffers to it, then executes it.

``FunctionProvider`` hosts caller-defined computations written as plain
Python callables, in the calling convention of the TA-Lib functions:
``compute(*inputs, **options)`` returning one array per output.
"""

from __future__ import annotations

import logging
import numbers
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping, Sequence

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
from ..core.exceptions import (
    InvalidConfigError,
    ProviderNotInitializedError,
    UnknownComputationError,
)

logger = logging.getLogger(__name__)

LookbackFn = Callable[[Mapping[str, Any]], int]


# =============================================================================
# Consumed interface
# =============================================================================


class ComputationBinding(ABC):
    """One invocation's worth of bound computation state."""

    @property
    @abstractmethod
    def descriptor(self) -> ComputationDescriptor:
        """Schema of the bound computation."""

    def option_schema(self) -> tuple[OptionDescriptor, ...]:
        """Declared optional parameters, in order."""
        return self.descriptor.options

    def input_schema(self) -> tuple[InputDescriptor, ...]:
        """Declared inputs, in order."""
        return self.descriptor.inputs

    def output_schema(self) -> tuple[OutputDescriptor, ...]:
        """Declared outputs, in order."""
        return self.descriptor.outputs

    @abstractmethod
    def bind_option(self, name: str, value: int | float) -> bool:
        """Set an optional parameter. Returns False on a kind mismatch."""

    @abstractmethod
    def bind_input(self, index: int, data: np.ndarray | Mapping[str, np.ndarray]) -> bool:
        """Bind an input window. Returns False on a kind mismatch."""

    @abstractmethod
    def bind_output(self, index: int, buffer: np.ndarray) -> bool:
        """Bind the buffer receiving output ``index``."""

    @abstractmethod
    def lookback(self) -> int:
        """Leading samples consumed as context under the bound options."""

    @abstractmethod
    def execute(self, start: int, end: int) -> ExecutionResult:
        """Run over ``[start, end]`` of the bound inputs (inclusive).

        Output element ``k`` is written to position ``k`` of each bound
        buffer; the result reports where, relative to ``start``, the
        first produced element belongs and how many were produced.
        """


class ComputationProvider(ABC):
    """Process-wide handle onto a library of computations.

    ``initialize`` and ``shutdown`` bracket all usage. Bindings are only
    handed out while the provider is initialized.
    """

    name: str = "provider"

    def __init__(self) -> None:
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Acquire the backing library."""
        if self._initialized:
            return
        self._on_initialize()
        self._initialized = True
        logger.info(f"Initialized computation provider: {self.name}")

    def shutdown(self) -> None:
        """Release the backing library."""
        if not self._initialized:
            return
        self._on_shutdown()
        self._initialized = False
        logger.info(f"Shut down computation provider: {self.name}")

    def _on_initialize(self) -> None:
        pass

    def _on_shutdown(self) -> None:
        pass

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ProviderNotInitializedError(
                f"Provider '{self.name}' used before initialize()",
                provider=self.name,
            )

    @abstractmethod
    def has(self, name: str) -> bool:
        """Whether ``name`` resolves to a computation."""

    @abstractmethod
    def list_computations(self) -> list[str]:
        """Names of all available computations."""

    @abstractmethod
    def describe(self, name: str) -> ComputationDescriptor:
        """Schema of ``name``.

        Raises:
            UnknownComputationError: If ``name`` does not resolve.
        """

    @abstractmethod
    def create(self, name: str) -> ComputationBinding:
        """Fresh binding for ``name``.

        Raises:
            UnknownComputationError: If ``name`` does not resolve.
            ProviderNotInitializedError: Outside initialize/shutdown.
        """


# =============================================================================
# Process-wide active provider
# =============================================================================

_active_lock = threading.Lock()
_active_providers: list[ComputationProvider] = []


@contextmanager
def provider_session(provider: ComputationProvider) -> Iterator[ComputationProvider]:
    """Initialize ``provider``, make it the active one, shut it down on exit."""
    provider.initialize()
    with _active_lock:
        _active_providers.append(provider)
    try:
        yield provider
    finally:
        with _active_lock:
            _active_providers.remove(provider)
        provider.shutdown()


def get_active_provider() -> ComputationProvider:
    """The provider installed by the innermost ``provider_session``.

    Raises:
        ProviderNotInitializedError: If no session is open.
    """
    with _active_lock:
        if not _active_providers:
            raise ProviderNotInitializedError(
                "No computation provider session is open; use provider_session()"
            )
        return _active_providers[-1]


# =============================================================================
# Descriptor shorthand
# =============================================================================


def make_descriptor(
    name: str,
    inputs: Sequence[str | InputKind | tuple[str, str | InputKind]] = ("real",),
    outputs: Sequence[str | tuple[Any, ...]] = ("real",),
    options: Mapping[str, int | float] | None = None,
    group: str = "",
    description: str = "",
) -> ComputationDescriptor:
    """Build a descriptor from shorthand.

    Args:
        name: Computation name.
        inputs: Input kinds, or ``(name, kind)`` pairs.
        outputs: Output names, or ``(name, kind[, style])`` tuples.
        options: Option defaults; an ``int`` default declares an integer
            option, a ``float`` default a real one.
        group: Optional group label.
        description: Optional description.

    Returns:
        ComputationDescriptor.

    Example:
        make_descriptor("MOM", options={"timeperiod": 10})
    """
    input_descriptors = []
    for i, spec in enumerate(inputs):
        if isinstance(spec, tuple):
            input_name, kind = spec
        else:
            kind = spec
            input_name = "price" if len(inputs) == 1 else f"price{i}"
        input_descriptors.append(InputDescriptor(name=input_name, kind=InputKind(kind)))

    output_descriptors = []
    for spec in outputs:
        if isinstance(spec, tuple):
            output_name, kind, *rest = spec
            style = OutputStyle(rest[0]) if rest else OutputStyle.LINE
            output_descriptors.append(
                OutputDescriptor(name=output_name, kind=SeriesKind(kind), style=style)
            )
        else:
            output_descriptors.append(OutputDescriptor(name=spec))

    option_descriptors = []
    for option_name, default in (options or {}).items():
        if isinstance(default, bool) or not isinstance(default, numbers.Real):
            raise InvalidConfigError(
                f"Option '{option_name}' default must be int or float",
                config_key=option_name,
                value=default,
            )
        kind = OptionKind.INTEGER if isinstance(default, numbers.Integral) else OptionKind.REAL
        option_descriptors.append(OptionDescriptor(name=option_name, kind=kind, default=default))

    return ComputationDescriptor(
        name=name,
        group=group,
        description=description,
        options=tuple(option_descriptors),
        inputs=tuple(input_descriptors),
        outputs=tuple(output_descriptors),
    )


# =============================================================================
# In-process provider
# =============================================================================


class ComputationInfo:
    """A registered Python computation.

    Attributes:
        descriptor: Published schema.
        compute: ``compute(*inputs, **options)`` returning one array, or a
            tuple of arrays with one entry per output.
        lookback: Constant lookback, or a callable of the option values.
        metadata: Additional metadata.
    """

    def __init__(
        self,
        descriptor: ComputationDescriptor,
        compute: Callable[..., Any],
        lookback: int | LookbackFn = 0,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.compute = compute
        self.lookback = lookback
        self.metadata = metadata or {}

    @property
    def name(self) -> str:
        return self.descriptor.name


class FunctionBinding(ComputationBinding):
    """Binding over a registered Python callable."""

    def __init__(self, info: ComputationInfo) -> None:
        self._info = info
        self._options: dict[str, int | float] = {
            option.name: option.default
            for option in info.descriptor.options
            if option.default is not None
        }
        self._kinds = {option.name: option.kind for option in info.descriptor.options}
        self._inputs: list[Any] = [None] * info.descriptor.arity
        self._outputs: list[np.ndarray | None] = [None] * len(info.descriptor.outputs)

    @property
    def descriptor(self) -> ComputationDescriptor:
        return self._info.descriptor

    @property
    def options(self) -> dict[str, int | float]:
        return dict(self._options)

    def bind_option(self, name: str, value: int | float) -> bool:
        kind = self._kinds.get(name)
        if kind is None or isinstance(value, bool):
            return False
        if kind == OptionKind.INTEGER and not isinstance(value, numbers.Integral):
            return False
        if kind == OptionKind.REAL and isinstance(value, numbers.Integral):
            return False
        self._options[name] = value
        return True

    def bind_input(self, index: int, data: np.ndarray | Mapping[str, np.ndarray]) -> bool:
        if not 0 <= index < len(self._inputs):
            return False
        declared = self.descriptor.inputs[index]
        if declared.kind == InputKind.PRICE:
            if not isinstance(data, Mapping):
                return False
            fields = declared.price_fields or tuple(data.keys())
            if any(field not in data for field in fields):
                return False
            self._inputs[index] = {field: data[field] for field in fields}
            return True
        if not isinstance(data, np.ndarray):
            return False
        is_integer = np.issubdtype(data.dtype, np.integer)
        if is_integer != (declared.kind == InputKind.INTEGER):
            return False
        self._inputs[index] = data
        return True

    def bind_output(self, index: int, buffer: np.ndarray) -> bool:
        if not 0 <= index < len(self._outputs):
            return False
        self._outputs[index] = buffer
        return True

    def lookback(self) -> int:
        lookback = self._info.lookback
        if callable(lookback):
            return int(lookback(dict(self._options)))
        return int(lookback)

    def execute(self, start: int, end: int) -> ExecutionResult:
        count = end - start + 1
        lookback = self.lookback()
        if count <= 0 or lookback >= count:
            return ExecutionResult(begin_index=0, count=0)

        args = []
        for data in self._inputs:
            if isinstance(data, Mapping):
                args.append({field: values[start : end + 1] for field, values in data.items()})
            else:
                args.append(data[start : end + 1])

        results = self._info.compute(*args, **self._options)
        if isinstance(results, np.ndarray):
            results = (results,)
        results = tuple(results)
        if len(results) != len(self._outputs):
            raise ValueError(
                f"{self.descriptor.name} returned {len(results)} outputs, "
                f"declared {len(self._outputs)}"
            )

        produced = count - lookback
        for buffer, result in zip(self._outputs, results):
            if buffer is not None:
                buffer[:produced] = np.asarray(result)[lookback:count]
        return ExecutionResult(begin_index=lookback, count=produced)


class FunctionProvider(ComputationProvider):
    """Provider hosting computations registered as Python callables.

    Thread-safe registration supporting aliases.
    """

    name = "function"

    def __init__(self) -> None:
        super().__init__()
        self._computations: dict[str, ComputationInfo] = {}
        self._aliases: dict[str, str] = {}
        self._lock = threading.RLock()

    def register(
        self,
        descriptor: ComputationDescriptor,
        compute: Callable[..., Any],
        lookback: int | LookbackFn = 0,
        aliases: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Register a computation.

        Args:
            descriptor: Published schema.
            compute: Callable receiving input windows positionally and
                option values by keyword.
            lookback: Constant lookback or callable of the option values.
            aliases: Optional alternative names.
            metadata: Optional metadata.

        Raises:
            InvalidConfigError: If the name is already registered.
        """
        with self._lock:
            if descriptor.name in self._computations:
                raise InvalidConfigError(
                    f"Computation '{descriptor.name}' already registered",
                    config_key=descriptor.name,
                )
            self._computations[descriptor.name] = ComputationInfo(
                descriptor=descriptor,
                compute=compute,
                lookback=lookback,
                metadata=metadata,
            )
            for alias in aliases or []:
                if alias in self._aliases:
                    logger.warning(f"Alias '{alias}' already exists, overwriting")
                self._aliases[alias] = descriptor.name
            logger.debug(f"Registered computation: {descriptor.name}")

    def computation(
        self,
        descriptor: ComputationDescriptor,
        lookback: int | LookbackFn = 0,
        aliases: list[str] | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of :meth:`register`.

        Example:
            @provider.computation(make_descriptor("NEG"))
            def negate(price):
                return -price
        """
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(descriptor, func, lookback=lookback, aliases=aliases)
            return func
        return decorator

    def unregister(self, name: str) -> bool:
        """Remove a computation and its aliases. Returns whether it existed."""
        with self._lock:
            if name not in self._computations:
                return False
            del self._computations[name]
            self._aliases = {k: v for k, v in self._aliases.items() if v != name}
            logger.debug(f"Unregistered computation: {name}")
            return True

    def _resolve(self, name: str) -> ComputationInfo:
        with self._lock:
            name = self._aliases.get(name, name)
            info = self._computations.get(name)
        if info is None:
            raise UnknownComputationError(
                f"Computation '{name}' not found in {self.name} provider",
                computation=name,
            )
        return info

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._computations or name in self._aliases

    def list_computations(self) -> list[str]:
        with self._lock:
            return sorted(self._computations)

    def describe(self, name: str) -> ComputationDescriptor:
        return self._resolve(name).descriptor

    def create(self, name: str) -> ComputationBinding:
        self._require_initialized()
        return FunctionBinding(self._resolve(name))
