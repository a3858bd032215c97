"""
Data module: candle file loading.
"""

from .loader import load_candles

__all__ = ["load_candles"]
