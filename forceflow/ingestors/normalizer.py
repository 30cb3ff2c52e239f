"""Validation and type coercion for raw OpenSky state vectors.

OpenSky delivers each aircraft as a positional array::

    [icao24, callsign, origin_country, time_position, last_contact,
     longitude, latitude, baro_altitude, on_ground, velocity, true_track,
     vertical_rate, sensors, geo_altitude, squawk, spi, position_source]

Numeric fields occasionally arrive as strings or nulls. Position and
last-contact time are mandatory; everything else degrades to ``None``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import math
from typing import Any, Optional

from forceflow.errors import RecordValidationError
from forceflow.models.air_traffic import StateVector

logger = logging.getLogger("forceflow.ingestors.normalizer")

DEFAULT_MAX_FUTURE_SKEW = timedelta(minutes=1)
DEFAULT_MAX_AGE = timedelta(hours=24)

COUNTRY_CODES: dict[str, str] = {
    "United Kingdom": "GB",
    "Germany": "DE",
    "France": "FR",
    "Netherlands": "NL",
    "Kingdom of the Netherlands": "NL",
    "Belgium": "BE",
    "Switzerland": "CH",
    "Austria": "AT",
    "Italy": "IT",
    "Spain": "ES",
    "Poland": "PL",
    "Czech Republic": "CZ",
    "Slovakia": "SK",
    "Hungary": "HU",
    "Slovenia": "SI",
    "Croatia": "HR",
    "Serbia": "RS",
    "Bosnia and Herzegovina": "BA",
    "Montenegro": "ME",
    "Albania": "AL",
    "North Macedonia": "MK",
    "Bulgaria": "BG",
    "Romania": "RO",
    "Moldova": "MD",
    "Republic of Moldova": "MD",
    "Ukraine": "UA",
    "Belarus": "BY",
    "Lithuania": "LT",
    "Latvia": "LV",
    "Estonia": "EE",
    "Finland": "FI",
    "Sweden": "SE",
    "Norway": "NO",
    "Denmark": "DK",
    "Iceland": "IS",
    "Ireland": "IE",
    "Portugal": "PT",
    "Luxembourg": "LU",
    "Liechtenstein": "LI",
    "Malta": "MT",
    "Cyprus": "CY",
    "Greece": "GR",
    "Turkey": "TR",
    "Russia": "RU",
    "Russian Federation": "RU",
    "United States": "US",
    "Canada": "CA",
    "Mexico": "MX",
}

_IDX_ICAO24 = 0
_IDX_CALLSIGN = 1
_IDX_COUNTRY = 2
_IDX_LAST_CONTACT = 4
_IDX_LON = 5
_IDX_LAT = 6
_IDX_BARO_ALT = 7
_IDX_ON_GROUND = 8
_IDX_VELOCITY = 9
_IDX_TRACK = 10
_IDX_VERTICAL_RATE = 11
_MIN_FIELDS = _IDX_LAT + 1


def _safe_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        parsed = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    return parsed if math.isfinite(parsed) else None


def _safe_int(value: Any) -> Optional[int]:
    parsed = _safe_float(value)
    return round(parsed) if parsed is not None else None


def _field(raw: list | tuple, index: int) -> Any:
    return raw[index] if len(raw) > index else None


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def country_code_for(country_name: Optional[str]) -> Optional[str]:
    """Map an OpenSky country name to a two-letter code.

    Unknown names fall back to their first two characters upper-cased. This is
    best effort and can produce a wrong code; it never raises.
    """

    if not country_name:
        return None
    name = country_name.strip()
    if not name:
        return None
    if len(name) == 2:
        return name.upper()
    code = COUNTRY_CODES.get(name)
    if code:
        return code
    logger.debug("Unknown origin country %r; using prefix fallback", name)
    return name[:2].upper()


def normalize_state(
    raw: Any,
    *,
    now: datetime,
    max_future_skew: timedelta = DEFAULT_MAX_FUTURE_SKEW,
    max_age: timedelta = DEFAULT_MAX_AGE,
) -> StateVector:
    """Validate one raw state array and coerce it to a ``StateVector``.

    ``now`` is the ingestion wall-clock time as naive UTC. Raises
    ``RecordValidationError`` when the record has no position fix, no usable
    last-contact time, or a last-contact time outside the freshness window.
    """

    if not isinstance(raw, (list, tuple)) or len(raw) < _MIN_FIELDS:
        raise RecordValidationError("malformed state vector")

    icao24 = _clean_text(raw[_IDX_ICAO24])
    lat = _safe_float(raw[_IDX_LAT])
    lon = _safe_float(raw[_IDX_LON])
    raw_last_contact = _field(raw, _IDX_LAST_CONTACT)

    if icao24 is None:
        raise RecordValidationError("missing identifier", raw_timestamp=raw_last_contact)
    icao24 = icao24.upper()
    if lat is None or lon is None:
        raise RecordValidationError(
            "missing position", icao24=icao24, raw_timestamp=raw_last_contact
        )

    last_contact = _safe_float(raw_last_contact)
    if last_contact is None or last_contact <= 0:
        raise RecordValidationError(
            "missing last contact time", icao24=icao24, raw_timestamp=raw_last_contact
        )
    try:
        observed_at = datetime.fromtimestamp(last_contact, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        raise RecordValidationError(
            "unrepresentable last contact time", icao24=icao24, raw_timestamp=raw_last_contact
        ) from None

    if observed_at > now + max_future_skew or observed_at < now - max_age:
        raise RecordValidationError(
            "last contact time outside freshness window",
            icao24=icao24,
            raw_timestamp=raw_last_contact,
        )

    origin_country = _clean_text(_field(raw, _IDX_COUNTRY))

    return StateVector(
        icao24=icao24,
        callsign=_clean_text(raw[_IDX_CALLSIGN]),
        origin_country=origin_country,
        country_code=country_code_for(origin_country),
        observed_at=observed_at,
        lat=lat,
        lon=lon,
        altitude=_safe_int(_field(raw, _IDX_BARO_ALT)),
        velocity=_safe_float(_field(raw, _IDX_VELOCITY)),
        heading=_safe_float(_field(raw, _IDX_TRACK)),
        vertical_rate=_safe_float(_field(raw, _IDX_VERTICAL_RATE)),
        on_ground=_field(raw, _IDX_ON_GROUND) is True,
    )


__all__ = ["COUNTRY_CODES", "country_code_for", "normalize_state"]
