"""
Provider pattern registry.

Per-country, per-provider SMS extraction rules loaded from YAML.
"""

from .registry import DEFAULT_PATTERNS_PATH, PatternConfigLoader, PatternRegistry

__all__ = [
    "DEFAULT_PATTERNS_PATH",
    "PatternConfigLoader",
    "PatternRegistry",
]
