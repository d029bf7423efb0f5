"""
Shared utility functions for parsing and data manipulation

Provides common helpers for:
- String parsing: Environment variable conversion (parse_bool, parse_int, parse_float)
- Entity ID sanitization: Converting hostnames to Home Assistant-safe identifiers

These utilities are used throughout Rouse for configuration parsing.
"""

from __future__ import annotations


def sanitize_hostname_for_entity_id(hostname: str) -> str:
    """Convert hostnames to Home Assistant–safe entity IDs."""
    return hostname.lower().replace("-", "_").replace(".", "_")


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Interpret env-style booleans."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: str | None, default: int) -> int:
    """Best-effort int parser with fallback."""
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_float(value: str | None, default: float) -> float:
    """Best-effort float parser with fallback."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
