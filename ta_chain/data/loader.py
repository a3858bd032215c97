"""
Candle file loader.

Reads whitespace-separated records of the form::

    date open high low close volume open_interest

Records are consumed in file order over the half-open range
``[begin, end)``: earlier records are skipped, and the first record dated
``end`` or later stops the read. The file is not re-sorted. Records may
span or share lines; only the token sequence matters.
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Iterator

import numpy as np

from ..core.data_types import BEGINNING, ENDING, parse_date
from ..core.exceptions import DataFileNotFoundError, MalformedRecordError
from ..core.series import CandleBundle
from ..monitoring.logger import LogCategory, get_logger

logger = get_logger(__name__, LogCategory.DATA)

RECORD_FIELDS = ("date", "open", "high", "low", "close", "volume", "open_interest")


def _tokens(path: Path) -> Iterator[tuple[int, str]]:
    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            for token in line.split():
                yield line_number, token


def _records(path: Path) -> Iterator[tuple[int, list[str]]]:
    """Group tokens into records. A trailing partial record is yielded as is."""
    record: list[str] = []
    record_line = 0
    for line_number, token in _tokens(path):
        if not record:
            record_line = line_number
        record.append(token)
        if len(record) == len(RECORD_FIELDS):
            yield record_line, record
            record = []
    if record:
        yield record_line, record


def load_candles(
    path: str | Path,
    begin: dt.date = BEGINNING,
    end: dt.date = ENDING,
    strict: bool = False,
    name: str = "",
) -> CandleBundle:
    """Load a candle bundle from a file.

    Args:
        path: Input file path.
        begin: First date loaded (inclusive).
        end: Date at which the read stops (exclusive).
        strict: Raise on a malformed record instead of stopping with a
            warning.
        name: Bundle label. Defaults to the file name.

    Returns:
        Frozen CandleBundle.

    Raises:
        DataFileNotFoundError: If the file does not exist.
        MalformedRecordError: If ``strict`` and a record fails to parse.
    """
    path = Path(path)
    if not path.is_file():
        raise DataFileNotFoundError(f"Candle file not found: {path}", path=str(path))

    log = logger.with_context(symbol=name or path.name)
    columns: dict[str, list] = {field: [] for field in RECORD_FIELDS}
    skipped = 0

    for line_number, record in _records(path):
        try:
            if len(record) < len(RECORD_FIELDS):
                raise ValueError(f"truncated record with {len(record)} field(s)")
            day = parse_date(record[0])
            prices = [float(token) for token in record[1:]]
        except ValueError as exc:
            if strict:
                raise MalformedRecordError(
                    f"Malformed record in {path} at line {line_number}: {exc}",
                    path=str(path),
                    line_number=line_number,
                    token=" ".join(record),
                ) from exc
            log.warning(f"Stopped reading {path} at line {line_number}: {exc}")
            break

        if day < begin:
            skipped += 1
            continue
        if day >= end:
            break

        columns["date"].append(np.datetime64(day, "D"))
        for field, value in zip(RECORD_FIELDS[1:], prices):
            columns[field].append(value)
        log.trace(f"Loaded record {day.isoformat()} from line {line_number}")

    bundle = CandleBundle(
        open=columns["open"],
        high=columns["high"],
        low=columns["low"],
        close=columns["close"],
        volume=columns["volume"],
        open_interest=columns["open_interest"],
        dates=np.array(columns["date"], dtype="datetime64[D]"),
        name=name or path.stem,
    )
    log.info(f"Loaded {len(bundle)} candles from {path} ({skipped} before range start)")
    return bundle.freeze()
