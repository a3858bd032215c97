"""
Configuration module for TA Chain.

Provides centralized configuration management using Pydantic settings
and optional YAML configuration files.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
