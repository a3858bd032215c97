"""
Pydantic models and type definitions for TA Chain.

Defines the closed sets of series, input, option and output kinds, the
rendering style flags, the single-candle record, calendar date helpers,
and the read-only computation descriptors published by providers.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Calendar dates
# =============================================================================

#: The smallest date, used as the open lower bound of a load range.
BEGINNING = dt.date.min

#: The largest date, used as the open upper bound of a load range.
ENDING = dt.date.max

_DATE_PATTERN = re.compile(r"^\s*(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})\s*$")


def parse_date(text: str) -> dt.date:
    """Parse a delimited calendar date.

    Accepts ``2008-01-01``, ``2008/01/01`` and ``2008.01.01``.

    Args:
        text: Date token.

    Returns:
        Parsed date.

    Raises:
        ValueError: If the token is not a valid delimited date.
    """
    match = _DATE_PATTERN.match(text)
    if match is None:
        raise ValueError(f"Invalid date token: {text!r}")
    year, month, day = (int(part) for part in match.groups())
    return dt.date(year, month, day)


# =============================================================================
# Kinds
# =============================================================================


class SeriesKind(str, Enum):
    """Element kind of a series."""

    REAL = "real"
    INTEGER = "integer"
    DATE = "date"

    @property
    def dtype(self) -> np.dtype:
        """numpy dtype backing this kind."""
        return _SERIES_DTYPES[self]

    @property
    def fill_value(self) -> Any:
        """Value used for samples that carry no meaning."""
        return _SERIES_FILL[self]

    @classmethod
    def from_dtype(cls, dtype: Any) -> "SeriesKind":
        """Infer the series kind of a numpy dtype."""
        dtype = np.dtype(dtype)
        if np.issubdtype(dtype, np.datetime64):
            return cls.DATE
        if np.issubdtype(dtype, np.integer) or np.issubdtype(dtype, np.bool_):
            return cls.INTEGER
        if np.issubdtype(dtype, np.floating):
            return cls.REAL
        raise TypeError(f"Unsupported series dtype: {dtype}")


_SERIES_DTYPES = {
    SeriesKind.REAL: np.dtype(np.float64),
    SeriesKind.INTEGER: np.dtype(np.int64),
    SeriesKind.DATE: np.dtype("datetime64[D]"),
}

_SERIES_FILL = {
    SeriesKind.REAL: np.nan,
    SeriesKind.INTEGER: 0,
    SeriesKind.DATE: np.datetime64("NaT"),
}


class InputKind(str, Enum):
    """Declared kind of a computation input slot."""

    REAL = "real"
    INTEGER = "integer"
    PRICE = "price"


class OptionKind(str, Enum):
    """Declared kind of an optional computation parameter."""

    INTEGER = "integer"
    REAL = "real"


class OutputStyle(IntFlag):
    """Rendering hint attached to a series by the producing computation.

    Bit values follow the TA-Lib output flags so provider flags map
    one to one.
    """

    NONE = 0
    LINE = 1
    DOT_LINE = 2
    DASH_LINE = 4
    DOT = 8
    HISTOGRAM = 16
    PATTERN_BOOL = 32
    PATTERN_BULL_BEAR = 64
    PATTERN_STRENGTH = 128
    POSITIVE = 256
    NEGATIVE = 512
    ZERO = 1024
    UPPER_LIMIT = 2048
    LOWER_LIMIT = 4096

    @property
    def is_pattern(self) -> bool:
        """Whether the style marks a pattern recognition output."""
        return bool(
            self
            & (OutputStyle.PATTERN_BOOL | OutputStyle.PATTERN_BULL_BEAR | OutputStyle.PATTERN_STRENGTH)
        )


# =============================================================================
# Candle record
# =============================================================================


class Candle(BaseModel):
    """A single candle stick synthesized from a candle bundle."""

    model_config = ConfigDict(frozen=True)

    open: float = Field(..., description="Open price")
    high: float = Field(..., description="High price")
    low: float = Field(..., description="Low price")
    close: float = Field(..., description="Close price")
    volume: float = Field(default=0.0, description="Traded volume")
    open_interest: float = Field(default=0.0, description="Open interest")
    date: dt.date | None = Field(default=None, description="Trading day")

    @property
    def is_rising(self) -> bool:
        """Whether the close is not below the open."""
        return self.open <= self.close

    def merge(self, other: "Candle") -> "Candle":
        """Merge a later candle into this one.

        High and low widen, close and date move to the later candle and
        volume accumulates. Open and open interest are kept.

        Args:
            other: The later candle.

        Returns:
            New merged candle.
        """
        return self.model_copy(
            update={
                "high": max(self.high, other.high),
                "low": min(self.low, other.low),
                "close": other.close,
                "volume": self.volume + other.volume,
                "date": other.date if other.date is not None else self.date,
            }
        )


# =============================================================================
# Computation descriptors (owned by providers, read-only to the engine)
# =============================================================================


class OptionDescriptor(BaseModel):
    """Optional parameter declared by a computation."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    kind: OptionKind
    default: int | float | None = None
    display_name: str = ""


class InputDescriptor(BaseModel):
    """Input slot declared by a computation."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    kind: InputKind
    price_fields: tuple[str, ...] = Field(
        default=(),
        description="Bundle members consumed by a price input",
    )


class OutputDescriptor(BaseModel):
    """Output slot declared by a computation."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    kind: SeriesKind = SeriesKind.REAL
    style: OutputStyle = OutputStyle.LINE

    @model_validator(mode="after")
    def validate_kind(self) -> "OutputDescriptor":
        """Outputs are real or integer series only."""
        if self.kind == SeriesKind.DATE:
            raise ValueError(f"Output '{self.name}' cannot be a date series")
        return self


class ComputationDescriptor(BaseModel):
    """Schema of a named computation."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    group: str = ""
    description: str = ""
    options: tuple[OptionDescriptor, ...] = ()
    inputs: tuple[InputDescriptor, ...] = Field(..., min_length=1, max_length=2)
    outputs: tuple[OutputDescriptor, ...] = Field(..., min_length=1)

    @property
    def arity(self) -> int:
        """Number of declared inputs."""
        return len(self.inputs)

    def option_index(self) -> dict[str, int]:
        """Map option names to their schema position."""
        return {option.name: i for i, option in enumerate(self.options)}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary for display."""
        return {
            "name": self.name,
            "group": self.group,
            "options": [
                {"name": o.name, "kind": o.kind.value, "default": o.default}
                for o in self.options
            ],
            "inputs": [{"name": i.name, "kind": i.kind.value} for i in self.inputs],
            "outputs": [
                {"name": o.name, "kind": o.kind.value, "style": int(o.style)}
                for o in self.outputs
            ],
        }


@dataclass(frozen=True)
class ExecutionResult:
    """What a provider reports after running a computation window.

    Attributes:
        begin_index: Offset, relative to the bound window, of the first
            produced element.
        count: Number of elements written into each output buffer.
    """

    begin_index: int
    count: int
