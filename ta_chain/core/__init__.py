"""
Core layer for TA Chain.

Contains type definitions, exceptions, series containers and option sets
shared by the indicator engine, the loader and the chart layer.
"""

from .data_types import (
    BEGINNING,
    ENDING,
    Candle,
    ComputationDescriptor,
    ExecutionResult,
    InputDescriptor,
    InputKind,
    OptionDescriptor,
    OptionKind,
    OutputDescriptor,
    OutputStyle,
    SeriesKind,
    parse_date,
)
from .exceptions import (
    TAChainError,
    IndicatorError,
    UnknownComputationError,
    ArityMismatchError,
    UnknownOptionError,
    OptionTypeMismatchError,
    InputKindMismatchError,
    InsufficientDataError,
    EngineInvariantViolationError,
    DataError,
    DataFileNotFoundError,
    MalformedRecordError,
    ReadOnlySeriesError,
    ConfigurationError,
    InvalidConfigError,
    MissingConfigError,
    ProviderNotInitializedError,
    ProviderUnavailableError,
)
from .options import Option, OptionSet
from .series import CandleBundle, Series

__all__ = [
    # Data types
    "BEGINNING",
    "ENDING",
    "Candle",
    "ComputationDescriptor",
    "ExecutionResult",
    "InputDescriptor",
    "InputKind",
    "OptionDescriptor",
    "OptionKind",
    "OutputDescriptor",
    "OutputStyle",
    "SeriesKind",
    "parse_date",
    # Exceptions
    "TAChainError",
    "IndicatorError",
    "UnknownComputationError",
    "ArityMismatchError",
    "UnknownOptionError",
    "OptionTypeMismatchError",
    "InputKindMismatchError",
    "InsufficientDataError",
    "EngineInvariantViolationError",
    "DataError",
    "DataFileNotFoundError",
    "MalformedRecordError",
    "ReadOnlySeriesError",
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
    "ProviderNotInitializedError",
    "ProviderUnavailableError",
    # Containers
    "Option",
    "OptionSet",
    "CandleBundle",
    "Series",
]
