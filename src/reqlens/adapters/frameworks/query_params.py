"""Shared query parameter parsing utilities for the HTTP adapter.

Helpers take parameters as returned by ``urllib.parse.parse_qs``.
"""

from reqlens.core.errors import ValidationError

# Valid log levels for validation
VALID_LEVELS = {"DEBUG", "INFO", "WARN", "ERROR"}


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None


def _parse_since_param(params: dict[str, list[str]]) -> float:
    """Parse and validate the 'since' query parameter.

    Returns:
        Timestamp as float, defaulting to 0.0 if invalid or missing.
        Rejects negative, NaN, and infinite values, returning 0.0 for these cases.
    """
    try:
        value = float(_first(params, "since") or "0")
        # Reject negative, NaN, and infinite values
        if (
            value < 0
            or value != value
            or value == float("inf")
            or value == float("-inf")
        ):
            return 0.0
        return value
    except ValueError:
        return 0.0


def _parse_level_param(params: dict[str, list[str]]) -> str | None:
    """Parse and validate the 'level' query parameter.

    Returns:
        Validated level string (uppercase) or None if invalid/missing.
        "WARNING" is accepted as an alias of "WARN".
    """
    level_raw = _first(params, "level")
    if not level_raw:
        return None
    level = level_raw.upper()
    if level == "WARNING":
        level = "WARN"
    return level if level in VALID_LEVELS else None


def _parse_age_param(params: dict[str, list[str]]) -> int:
    """Parse the required integer 'age' query parameter.

    Raises:
        ValidationError: If 'age' is missing, empty or not an integer.
    """
    raw = _first(params, "age")
    if raw is None or not raw.strip():
        raise ValidationError("Age query parameter is required")
    try:
        return int(raw.strip())
    except ValueError:
        raise ValidationError(f"Age query parameter must be an integer, got {raw!r}") from None
