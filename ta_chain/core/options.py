"""
Optional computation parameters.

An ``OptionSet`` is an ordered list of ``(name, value)`` pairs built with
chained ``add`` calls::

    options = OptionSet().add("timeperiod", 5).add("nbdevup", 2.0)

Nothing is validated here. Names and kinds are checked when an indicator
binds the set against the computation schema.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from .data_types import OptionKind


@dataclass(frozen=True)
class Option:
    """A named integer or real parameter value."""

    name: str
    value: Any

    @property
    def kind(self) -> OptionKind | None:
        """Kind carried by the stored value, ``None`` if neither."""
        if isinstance(self.value, bool):
            return None
        if isinstance(self.value, numbers.Integral):
            return OptionKind.INTEGER
        if isinstance(self.value, numbers.Real):
            return OptionKind.REAL
        return None

    def get(self, kind: OptionKind) -> int | float:
        """Return the value as ``kind``.

        Raises:
            TypeError: If the stored value is not of ``kind``. No
                conversion between integer and real is performed.
        """
        if self.kind != kind:
            stored = self.kind.value if self.kind else type(self.value).__name__
            raise TypeError(f"Option '{self.name}' holds {stored}, not {kind.value}")
        if kind == OptionKind.INTEGER:
            return int(self.value)
        return float(self.value)


class OptionSet:
    """Ordered collection of options. Duplicate names are kept."""

    def __init__(self) -> None:
        self._options: list[Option] = []

    @classmethod
    def default(cls) -> "OptionSet":
        """An empty set; every computation option keeps its default."""
        return cls()

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "OptionSet":
        """Build a set from a mapping, in mapping order."""
        options = cls()
        for name, value in mapping.items():
            options.add(name, value)
        return options

    def add(self, name: str, value: int | float) -> "OptionSet":
        """Append an option and return the set for chaining."""
        self._options.append(Option(name, value))
        return self

    def names(self) -> list[str]:
        """Option names in insertion order, duplicates included."""
        return [option.name for option in self._options]

    def __iter__(self) -> Iterator[Option]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)

    def __bool__(self) -> bool:
        return bool(self._options)

    def __repr__(self) -> str:
        pairs = ", ".join(f"{o.name}={o.value!r}" for o in self._options)
        return f"OptionSet({pairs})"
