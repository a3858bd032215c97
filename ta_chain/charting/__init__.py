"""
Chart layer: panes, charts and the Gnuplot renderer.
"""

from .gnuplot import Chart, GnuplotChart, GnuplotPane, Pane, style_clause

__all__ = ["Chart", "GnuplotChart", "GnuplotPane", "Pane", "style_clause"]
