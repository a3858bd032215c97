"""
TA Chain - chained technical-analysis indicators with validity tracking.

Computes indicators over financial time series through an external
computation provider and propagates, for every derived series, the index
of the first numerically meaningful sample.
"""

__version__ = "1.0.0"
__author__ = "TA Chain"
