"""Coordinate, time, phone, and text normalization for the Booker wire format.

All functions are pure. Coordinates travel as integers scaled by 1e6
in ``[lng, lat]`` order; times travel as whole epoch seconds.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime

COORD_SCALE = 1_000_000

_PHONE_STRIP = re.compile(r"[\s\-()]")
_UNSAFE_CHARS = re.compile(r"[<>\\]")


def to_provider_coords(lat: float, lng: float) -> tuple[int, int]:
    """Convert decimal degrees to provider-scale integers.

    Args:
        lat: Latitude in decimal degrees.
        lng: Longitude in decimal degrees.

    Returns:
        Tuple of (scaled_lng, scaled_lat).

    Raises:
        ValueError: If either value is not a finite number.
    """
    if not (_is_finite(lat) and _is_finite(lng)):
        raise ValueError(f"Coordinates must be finite numbers, got ({lat}, {lng})")
    return round(lng * COORD_SCALE), round(lat * COORD_SCALE)


def from_provider_coords(scaled_lng: int, scaled_lat: int) -> tuple[float, float]:
    """Convert provider-scale integers back to decimal degrees.

    Args:
        scaled_lng: Longitude scaled by 1e6.
        scaled_lat: Latitude scaled by 1e6.

    Returns:
        Tuple of (lat, lng) in decimal degrees.
    """
    return scaled_lat / COORD_SCALE, scaled_lng / COORD_SCALE


def has_coordinates(lat: float | None, lng: float | None) -> bool:
    """Check that both coordinates are present and finite."""
    return _is_finite(lat) and _is_finite(lng)


def resolve_point(
    lat: float | None,
    lng: float | None,
    *,
    fallback_lat: float,
    fallback_lng: float,
) -> tuple[float, float]:
    """Return the given coordinates, or the regional fallback when missing.

    Args:
        lat: Latitude, possibly missing.
        lng: Longitude, possibly missing.
        fallback_lat: Fallback latitude.
        fallback_lng: Fallback longitude.

    Returns:
        Tuple of (lat, lng) guaranteed finite.
    """
    if has_coordinates(lat, lng):
        return float(lat), float(lng)  # type: ignore[arg-type]
    return fallback_lat, fallback_lng


def to_epoch_seconds(instant: datetime | str | float | int) -> int:
    """Truncate an instant to whole epoch seconds.

    Naive datetimes and ISO strings without an offset are taken as UTC.

    Args:
        instant: A datetime, an ISO 8601 string, or epoch seconds.

    Returns:
        Whole seconds since the Unix epoch.
    """
    if isinstance(instant, (int, float)):
        return math.floor(instant)
    if isinstance(instant, str):
        instant = datetime.fromisoformat(instant.strip())
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return math.floor(instant.timestamp())


def normalize_phone(raw: str, default_country_code: str = "+44") -> str:
    """Best-effort E.164 normalization. Never rejects input.

    Args:
        raw: Phone number as typed.
        default_country_code: Calling code replacing a leading trunk ``0``.

    Returns:
        Normalized phone string.
    """
    cleaned = _PHONE_STRIP.sub("", raw or "")
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("0"):
        return default_country_code + cleaned[1:]
    return "+" + cleaned


def sanitize_text(text: str | None, max_length: int = 500) -> str:
    """Strip markup-significant characters, trim, and cap length.

    Args:
        text: User-provided text.
        max_length: Maximum length of the result.

    Returns:
        Sanitized text, empty string for None.
    """
    if not text:
        return ""
    return _UNSAFE_CHARS.sub("", text).strip()[:max_length]


def _is_finite(value: float | None) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except TypeError:
        return False
