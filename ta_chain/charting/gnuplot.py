"""
Chart rendering.

A chart is a vertical stack of panes. Each pane plots any number of
series, candle bundles or indicator outputs, starting every series at its
``first`` index and choosing a plot style from its ``OutputStyle``.

``GnuplotChart`` writes a self-contained Gnuplot script with inline data::

    chart = GnuplotChart("acme", candles)     # candle and volume panes
    chart.add_pane("macd").draw_indicator(macd)
    chart.render()                            # acme.gp -> acme.png
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

from ..core.data_types import OutputStyle, SeriesKind
from ..core.series import CandleBundle, Series
from ..indicators.engine import Indicator
from ..monitoring.logger import LogCategory, get_logger

logger = get_logger(__name__, LogCategory.CHART)

RISING_COLOR = "green"
FALLING_COLOR = "red"


class Pane(ABC):
    """One sub-figure of a chart."""

    def __init__(self, name: str = "", log_scale: bool = False) -> None:
        self.name = name
        self.log_scale = log_scale

    @abstractmethod
    def draw(self, name: str, series: Series) -> "Pane":
        """Plot ``series`` from its first valid index under ``name``."""

    @abstractmethod
    def draw_candles(self, candles: CandleBundle, bars: bool = True) -> "Pane":
        """Plot candles as finance bars, or candle sticks when ``bars`` is False."""

    @abstractmethod
    def draw_volumes(self, candles: CandleBundle) -> "Pane":
        """Plot volumes as a histogram coloured by candle direction."""

    def draw_indicator(self, indicator: Indicator, name: str = "") -> "Pane":
        """Plot every output of ``indicator``.

        Several outputs are titled ``name:output``, or just the output
        name when ``name`` is empty. A single output is titled ``name``
        or, failing that, the computation name.
        """
        for title, series in indicator.labeled_outputs(name):
            self.draw(title, series)
        return self


class Chart(ABC):
    """A named stack of panes."""

    def __init__(self, name: str = "") -> None:
        self.name = name

    @abstractmethod
    def add_pane(self, name: str = "", log_scale: bool = False) -> Pane:
        """Append a pane and return it."""

    @abstractmethod
    def get_pane(self, index: int) -> Pane:
        """Pane at ``index``."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of panes."""

    @abstractmethod
    def render(self) -> Path:
        """Produce the output and return its path."""

    def __getitem__(self, index: int) -> Pane:
        return self.get_pane(index)


# =============================================================================
# Gnuplot
# =============================================================================


def style_clause(style: OutputStyle) -> str:
    """Gnuplot ``with`` clause for an output style."""
    if style & (OutputStyle.LINE | OutputStyle.DOT_LINE | OutputStyle.DASH_LINE):
        return "with lines "
    if style & OutputStyle.DOT:
        return "with dots "
    if style & OutputStyle.HISTOGRAM or style.is_pattern:
        return "with impulses "
    return "with lines "


def _title_clause(name: str) -> str:
    return f'title "{name}" ' if name else "notitle "


def _color_clause(color: str) -> str:
    return f'lc rgb "{color}" '


def _format(value: object) -> str:
    if isinstance(value, float):
        return f"{value:.10g}"
    return str(value)


class GnuplotPane(Pane):
    """Pane accumulating plot clauses and inline data blocks."""

    def __init__(self, name: str = "", log_scale: bool = False) -> None:
        super().__init__(name, log_scale)
        self._clauses: list[str] = []
        self._blocks: list[list[str]] = []

    def _plot(self, clause: str, rows: list[str]) -> None:
        prefix = 'plot "-" ' if not self._clauses else ', "-" '
        self._clauses.append(prefix + clause)
        self._blocks.append(rows)

    @property
    def plot_count(self) -> int:
        """Number of data blocks drawn so far."""
        return len(self._blocks)

    def draw(self, name: str, series: Series) -> "GnuplotPane":
        if series.kind == SeriesKind.INTEGER:
            values: Iterator[object] = (int(v) for v in series.valid())
        else:
            values = (float(v) for v in series.valid())
        rows = [f"{i}\t{_format(v)}" for i, v in enumerate(values, start=series.first)]
        self._plot(f"using 1:2 {style_clause(series.style)}{_title_clause(name)}", rows)
        return self

    def draw_candles(self, candles: CandleBundle, bars: bool = True) -> "GnuplotPane":
        style = "with financebars " if bars else "with candlesticks "
        for rising, color in ((True, RISING_COLOR), (False, FALLING_COLOR)):
            rows = [
                "\t".join(
                    [str(i)]
                    + [_format(float(getattr(candles, f)[i])) for f in ("open", "high", "low", "close")]
                )
                for i in _indices(candles, rising)
            ]
            self._plot(f"using 1:2:3:4:5 notitle {style}{_color_clause(color)}", rows)
        return self

    def draw_volumes(self, candles: CandleBundle) -> "GnuplotPane":
        for rising, color in ((True, RISING_COLOR), (False, FALLING_COLOR)):
            rows = [
                f"{i}\t{_format(float(candles.volume[i]))}" for i in _indices(candles, rising)
            ]
            self._plot(
                f"using 1:2 notitle {style_clause(OutputStyle.HISTOGRAM)}{_color_clause(color)}",
                rows,
            )
        return self

    def dump(self, ratio: float, offset: float) -> list[str]:
        """Script lines for this pane at the given size and origin."""
        lines = [
            "set xrange [0:]",
            f"set size 1, {ratio:g}",
            f"set origin 0, {offset:g}",
        ]
        if self.log_scale:
            lines.append("set logscale y")
        lines.append("")
        if self._clauses:
            lines.append("".join(self._clauses).rstrip())
            for rows in self._blocks:
                lines.extend(rows)
                lines.append("e")
        if self.log_scale:
            lines.append("unset logscale y")
        return lines


def _indices(candles: CandleBundle, rising: bool) -> list[int]:
    opens = candles.open.values
    closes = candles.close.values
    return [i for i in range(len(candles)) if (opens[i] <= closes[i]) == rising]


class GnuplotChart(Chart):
    """Chart rendered to a PNG through a generated Gnuplot script."""

    def __init__(
        self,
        name: str,
        candles: CandleBundle | None = None,
        script_path: str | Path | None = None,
        image_path: str | Path | None = None,
        width: int = 800,
        pane_height: int = 480,
        bars: bool = True,
    ) -> None:
        """Initialize the chart.

        Args:
            name: Chart name, used for default output paths.
            candles: When given, a candle pane and a volume pane are added.
            script_path: Script destination, ``<name>.gp`` by default.
            image_path: Image the script produces, ``<name>.png`` by default.
            width: Image width in pixels.
            pane_height: Height unit; the image is ``pane_height * (2 + n) / 3``
                pixels tall for ``n`` panes.
            bars: Finance bars rather than candle sticks for the default pane.
        """
        super().__init__(name)
        self.script_path = Path(script_path) if script_path else Path(f"{name}.gp")
        self.image_path = Path(image_path) if image_path else Path(f"{name}.png")
        self.width = width
        self.pane_height = pane_height
        self._panes: list[GnuplotPane] = []
        if candles is not None:
            self.add_pane().draw_candles(candles, bars=bars)
            self.add_pane().draw_volumes(candles)

    def add_pane(self, name: str = "", log_scale: bool = False) -> GnuplotPane:
        pane = GnuplotPane(name, log_scale)
        self._panes.append(pane)
        return pane

    def get_pane(self, index: int) -> GnuplotPane:
        return self._panes[index]

    def __len__(self) -> int:
        return len(self._panes)

    def script(self) -> str:
        """The full Gnuplot script.

        The first pane is three times as tall as each of the others.
        """
        count = len(self._panes)
        height = self.pane_height * (2 + count) // 3
        ratio = 1.0 / (2 + count)

        lines = [
            f"set terminal png size {self.width}, {height}",
            f'set output "{self.image_path}"',
            "set grid",
            "",
            "set key tmargin left horizontal",
            "set lmargin 10",
            f"set multiplot layout {count},1",
            "",
        ]
        used = 0.0
        for i, pane in enumerate(self._panes):
            share = ratio * 3 if i == 0 else ratio
            used += share
            lines.extend(pane.dump(share, max(0.0, round(1.0 - used, 6))))
        lines.append("unset multiplot")
        return "\n".join(lines) + "\n"

    def render(self) -> Path:
        """Write the script and return its path.

        Running ``gnuplot`` on the script produces ``image_path``.
        """
        self.script_path.parent.mkdir(parents=True, exist_ok=True)
        self.script_path.write_text(self.script(), encoding="utf-8")
        logger.info(
            f"Wrote chart script {self.script_path} ({len(self)} panes) for {self.image_path}"
        )
        return self.script_path
