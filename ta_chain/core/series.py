"""
Series containers.

A ``Series`` is a typed, ordered numpy-backed sequence annotated with the
index of its first meaningful sample and a rendering style. A
``CandleBundle`` groups six aligned price series and a date series whose
``first`` and ``style`` always move together.

When an indicator is applied, the ``first`` property of its inputs is
reflected in its outputs. An input with ``first == 5`` fed to a
computation with a lookback of 29 produces outputs with ``first == 34``.
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Iterator, Sequence

import numpy as np
import pandas as pd

from .data_types import BEGINNING, ENDING, Candle, InputKind, OutputStyle, SeriesKind
from .exceptions import ReadOnlySeriesError


class Series:
    """Typed sequence with a first valid index and a style tag.

    Elements before ``first`` exist so positions stay aligned with the
    source data, but carry no meaning.
    """

    def __init__(
        self,
        values: Sequence[Any] | np.ndarray | None = None,
        kind: SeriesKind | None = None,
        first: int = 0,
        style: OutputStyle = OutputStyle.NONE,
        name: str = "",
    ) -> None:
        """Initialize the series.

        Args:
            values: Initial samples. Empty when omitted.
            kind: Element kind. Inferred from ``values`` when omitted,
                defaulting to real.
            first: Index of the first meaningful sample.
            style: Rendering hint.
            name: Optional label used by consumers.
        """
        if kind is None:
            if values is None:
                kind = SeriesKind.REAL
            else:
                kind = SeriesKind.from_dtype(np.asarray(values).dtype)
        self.kind = kind
        self.name = name
        if values is None:
            self._values = np.empty(0, dtype=kind.dtype)
        else:
            self._values = np.array(values, dtype=kind.dtype).reshape(-1)
        self._first = 0
        self._style = OutputStyle(style)
        self._frozen = False
        self._bundled = False
        self._set_first(first)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def first(self) -> int:
        """Index of the first meaningful sample."""
        return self._first

    @first.setter
    def first(self, value: int) -> None:
        self._check_standalone("first")
        self._set_first(value)

    def _set_first(self, value: int) -> None:
        self._check_writable()
        value = int(value)
        if value < 0 or value > len(self._values):
            raise ValueError(
                f"first={value} outside [0, {len(self._values)}] for series of length {len(self._values)}"
            )
        self._first = value

    @property
    def style(self) -> OutputStyle:
        """Rendering hint."""
        return self._style

    @style.setter
    def style(self, value: OutputStyle) -> None:
        self._check_standalone("style")
        self._set_style(value)

    def _set_style(self, value: OutputStyle) -> None:
        self._check_writable()
        self._style = OutputStyle(value)

    @property
    def values(self) -> np.ndarray:
        """Read-only view of all samples, including the unstable prefix."""
        view = self._values.view()
        view.flags.writeable = False
        return view

    @property
    def frozen(self) -> bool:
        """Whether the content is read-only."""
        return self._frozen

    @property
    def operand_kind(self) -> InputKind:
        """Kind of this series when bound as a computation input."""
        if self.kind == SeriesKind.REAL:
            return InputKind.REAL
        if self.kind == SeriesKind.INTEGER:
            return InputKind.INTEGER
        raise TypeError("Date series cannot be bound as a computation input")

    # -------------------------------------------------------------------------
    # Sequence protocol
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._values)

    def __getitem__(self, index: Any) -> Any:
        return self._values[index]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return (
            f"<Series{label} kind={self.kind.value} len={len(self)} "
            f"first={self.first} style={int(self.style)}>"
        )

    # -------------------------------------------------------------------------
    # Mutation (until frozen)
    # -------------------------------------------------------------------------

    def _check_writable(self) -> None:
        if self._frozen:
            raise ReadOnlySeriesError(
                "Series is frozen and cannot be modified",
                details={"name": self.name, "length": len(self)},
            )

    def _check_standalone(self, what: str) -> None:
        # Bundle members only change through their CandleBundle.
        if self._bundled:
            raise ReadOnlySeriesError(
                f"Series '{self.name}' belongs to a candle bundle; set {what} on the bundle",
                details={"name": self.name, "attribute": what},
            )

    def append(self, value: Any) -> None:
        """Append one sample."""
        self.extend([value])

    def extend(self, values: Sequence[Any] | np.ndarray) -> None:
        """Append samples in order."""
        self._check_standalone("length")
        self._extend(values)

    def _extend(self, values: Sequence[Any] | np.ndarray) -> None:
        self._check_writable()
        extra = np.asarray(values, dtype=self.kind.dtype).reshape(-1)
        self._values = np.concatenate([self._values, extra])

    def resize(self, length: int) -> None:
        """Grow or shrink to ``length`` samples.

        New samples hold the kind's fill value (NaN, 0 or NaT). ``first``
        is clamped to the new length.
        """
        self._check_standalone("length")
        self._check_writable()
        if length < 0:
            raise ValueError(f"Invalid series length: {length}")
        current = len(self._values)
        if length <= current:
            self._values = self._values[:length].copy()
        else:
            padding = np.full(length - current, self.kind.fill_value, dtype=self.kind.dtype)
            self._values = np.concatenate([self._values, padding])
        self._first = min(self._first, length)

    def buffer(self, start: int = 0) -> np.ndarray:
        """Writable view from ``start`` used as an output buffer."""
        self._check_writable()
        return self._values[start:]

    def freeze(self) -> "Series":
        """Make the content read-only. Returns the series itself."""
        self._values.flags.writeable = False
        self._frozen = True
        return self

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def valid(self) -> np.ndarray:
        """Read-only view of the meaningful samples."""
        return self.values[self.first:]

    def window(self, start: int, stop: int) -> np.ndarray:
        """Read-only view over ``[start, stop)`` for binding to a provider."""
        return self.values[start:stop]

    def to_pandas(self, index: Any = None) -> pd.Series:
        """Convert to a pandas Series with the unstable prefix masked.

        Args:
            index: Optional index, e.g. the dates of a candle bundle.

        Returns:
            pandas Series; real samples before ``first`` are NaN.
        """
        data = self._values.copy()
        if self.kind == SeriesKind.INTEGER and self.first > 0:
            data = data.astype(np.float64)
            data[: self.first] = np.nan
        elif self.kind != SeriesKind.INTEGER:
            data[: self.first] = self.kind.fill_value
        return pd.Series(data, index=index, name=self.name or None)


class CandleBundle:
    """Open/high/low/close/volume/open-interest series plus dates.

    All seven member series share one length, one ``first`` and one
    ``style``. Setting either on the bundle updates every member.
    """

    PRICE_FIELDS: tuple[str, ...] = ("open", "high", "low", "close", "volume", "open_interest")

    def __init__(
        self,
        open: Sequence[float] | np.ndarray = (),
        high: Sequence[float] | np.ndarray = (),
        low: Sequence[float] | np.ndarray = (),
        close: Sequence[float] | np.ndarray = (),
        volume: Sequence[float] | np.ndarray | None = None,
        open_interest: Sequence[float] | np.ndarray | None = None,
        dates: Sequence[Any] | np.ndarray | None = None,
        name: str = "",
    ) -> None:
        """Initialize the bundle.

        Args:
            open: Open prices.
            high: High prices.
            low: Low prices.
            close: Close prices.
            volume: Volumes, zeros when omitted.
            open_interest: Open interest, zeros when omitted.
            dates: Trading days, NaT when omitted.
            name: Optional label, e.g. the ticker.

        Raises:
            ValueError: If member lengths differ.
        """
        size = len(close)
        if volume is None:
            volume = np.zeros(size)
        if open_interest is None:
            open_interest = np.zeros(size)
        if dates is None:
            dates = np.full(size, np.datetime64("NaT"), dtype="datetime64[D]")

        self.name = name
        self._open = Series(open, SeriesKind.REAL, name="open")
        self._high = Series(high, SeriesKind.REAL, name="high")
        self._low = Series(low, SeriesKind.REAL, name="low")
        self._close = Series(close, SeriesKind.REAL, name="close")
        self._volume = Series(volume, SeriesKind.REAL, name="volume")
        self._open_interest = Series(open_interest, SeriesKind.REAL, name="open_interest")
        self._dates = Series(dates, SeriesKind.DATE, name="date")
        for member in self._members():
            member._bundled = True

        lengths = {len(member) for member in self._members()}
        if len(lengths) > 1:
            raise ValueError(f"Candle bundle members differ in length: {sorted(lengths)}")

        self._first = 0
        self._style = OutputStyle.NONE

    def _members(self) -> tuple[Series, ...]:
        return (
            self._open,
            self._high,
            self._low,
            self._close,
            self._volume,
            self._open_interest,
            self._dates,
        )

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        begin: dt.date = BEGINNING,
        end: dt.date = ENDING,
        strict: bool = False,
    ) -> "CandleBundle":
        """Load candles from a whitespace-separated file.

        See :func:`ta_chain.data.loader.load_candles`.
        """
        from ..data.loader import load_candles

        return load_candles(path, begin=begin, end=end, strict=strict)

    @classmethod
    def from_frame(cls, df: pd.DataFrame, name: str = "") -> "CandleBundle":
        """Build a bundle from a DataFrame.

        Requires ``open``, ``high``, ``low`` and ``close`` columns;
        ``volume`` and ``open_interest`` are optional. Dates come from a
        ``date`` column or, failing that, a datetime index.
        """
        missing = [col for col in ("open", "high", "low", "close") if col not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {missing}")

        if "date" in df.columns:
            dates = pd.to_datetime(df["date"]).to_numpy().astype("datetime64[D]")
        elif isinstance(df.index, pd.DatetimeIndex):
            dates = df.index.to_numpy().astype("datetime64[D]")
        else:
            dates = None

        return cls(
            open=df["open"].to_numpy(dtype=np.float64),
            high=df["high"].to_numpy(dtype=np.float64),
            low=df["low"].to_numpy(dtype=np.float64),
            close=df["close"].to_numpy(dtype=np.float64),
            volume=df["volume"].to_numpy(dtype=np.float64) if "volume" in df.columns else None,
            open_interest=(
                df["open_interest"].to_numpy(dtype=np.float64)
                if "open_interest" in df.columns
                else None
            ),
            dates=dates,
            name=name,
        )

    # -------------------------------------------------------------------------
    # Member access
    # -------------------------------------------------------------------------

    @property
    def open(self) -> Series:
        return self._open

    @property
    def high(self) -> Series:
        return self._high

    @property
    def low(self) -> Series:
        return self._low

    @property
    def close(self) -> Series:
        return self._close

    @property
    def volume(self) -> Series:
        return self._volume

    @property
    def open_interest(self) -> Series:
        return self._open_interest

    @property
    def dates(self) -> Series:
        return self._dates

    @property
    def operand_kind(self) -> InputKind:
        """A bundle always binds as a price input."""
        return InputKind.PRICE

    @property
    def frozen(self) -> bool:
        return self._close.frozen

    # -------------------------------------------------------------------------
    # Shared properties
    # -------------------------------------------------------------------------

    @property
    def first(self) -> int:
        """First valid index shared by all members."""
        return self._first

    @first.setter
    def first(self, value: int) -> None:
        value = int(value)
        if value < 0 or value > len(self):
            raise ValueError(f"first={value} outside [0, {len(self)}]")
        for member in self._members():
            member._set_first(value)
        self._first = value

    @property
    def style(self) -> OutputStyle:
        """Rendering hint shared by all members."""
        return self._style

    @style.setter
    def style(self, value: OutputStyle) -> None:
        value = OutputStyle(value)
        for member in self._members():
            member._set_style(value)
        self._style = value

    # -------------------------------------------------------------------------
    # Sequence protocol
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._close)

    def __getitem__(self, index: int) -> Candle:
        """Synthesize the candle at ``index`` from the member series."""
        day = self._dates[index]
        return Candle(
            open=float(self._open[index]),
            high=float(self._high[index]),
            low=float(self._low[index]),
            close=float(self._close[index]),
            volume=float(self._volume[index]),
            open_interest=float(self._open_interest[index]),
            date=None if np.isnat(day) else day.item(),
        )

    def __iter__(self) -> Iterator[Candle]:
        for i in range(len(self)):
            yield self[i]

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<CandleBundle{label} len={len(self)} first={self.first}>"

    def append(self, candle: Candle) -> None:
        """Append one candle to every member."""
        self._open._extend([candle.open])
        self._high._extend([candle.high])
        self._low._extend([candle.low])
        self._close._extend([candle.close])
        self._volume._extend([candle.volume])
        self._open_interest._extend([candle.open_interest])
        self._dates._extend(
            [np.datetime64("NaT") if candle.date is None else np.datetime64(candle.date, "D")]
        )

    def freeze(self) -> "CandleBundle":
        """Make every member read-only. Returns the bundle itself."""
        for member in self._members():
            member.freeze()
        return self

    def window(self, start: int, stop: int) -> dict[str, np.ndarray]:
        """Read-only price views over ``[start, stop)`` keyed by field."""
        return {
            field: getattr(self, field).window(start, stop)
            for field in self.PRICE_FIELDS
        }

    def to_frame(self) -> pd.DataFrame:
        """Convert to a DataFrame indexed by date."""
        index = pd.DatetimeIndex(self._dates.values, name="date")
        return pd.DataFrame(
            {field: getattr(self, field).values for field in self.PRICE_FIELDS},
            index=index,
        )
