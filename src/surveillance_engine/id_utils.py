"""
ID Management Utilities
=======================

sqlite hands ids back as int, but pandas turns nullable integer columns into
floats and CLI/JSON callers pass strings. Every id entering the engine goes
through ensure_id so that dictionary lookups by id stay consistent.
"""

import math


def ensure_id(value, kind: str = "teacher") -> int:
    """
    Convert any id representation to a plain int.

    Args:
        value: Id in any format (int, str, float, numpy scalar)
        kind: Entity name used in error messages

    Returns:
        int: Standardized id

    Raises:
        ValueError: If value cannot be converted to a valid id
    """
    if value is None:
        raise ValueError(f"{kind.capitalize()} id cannot be None")

    if isinstance(value, bool):
        raise ValueError(f"Invalid {kind} id (boolean): {value}")

    if isinstance(value, float) or type(value).__name__.startswith('float'):
        value = float(value)
        if math.isnan(value) or not value.is_integer():
            raise ValueError(f"Invalid {kind} id (non-integer float): {value}")
        return int(value)

    try:
        return int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Cannot convert '{value}' to valid {kind} id: {e}")


def optional_id(value, kind: str = "teacher"):
    """Like ensure_id but maps None/NaN/empty strings to None."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        if value != value:  # NaN-like scalars (numpy, pandas)
            return None
    except (TypeError, ValueError):
        pass
    return ensure_id(value, kind)
