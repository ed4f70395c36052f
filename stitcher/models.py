"""
Position report and frame types shared by the stitcher, simplifier and
wind resolver.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

import numpy as np


class InvalidReportError(ValueError):
    """Raised when a raw report breaks the position report contract."""


def parse_timestamp(value):
    """
    Parse a timestamp into a timezone-aware UTC datetime.

    Args:
        value: ISO-8601 string (a trailing 'Z' is accepted), epoch seconds,
               or a datetime. Naive values are taken to be UTC.

    Returns:
        datetime in UTC

    Raises:
        InvalidReportError: if the value cannot be interpreted as a time
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        if not np.isfinite(value):
            raise InvalidReportError(f"Non-finite epoch timestamp: {value}")
        try:
            dt = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise InvalidReportError(f"Epoch timestamp out of range: {value}") from None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidReportError(f"Unparseable timestamp: {value!r}") from None
    else:
        raise InvalidReportError(f"Unsupported timestamp type: {type(value).__name__}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise InvalidReportError(f"Timestamp out of range in UTC: {value!r}") from None


def format_timestamp(dt):
    """Format a UTC datetime as ISO-8601 with a 'Z' suffix."""
    return dt.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def _coerce_number(value, name):
    if isinstance(value, bool) or value is None:
        raise InvalidReportError(f"Missing {name}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidReportError(f"Non-numeric {name}: {value!r}") from None
    if not np.isfinite(number):
        raise InvalidReportError(f"Non-finite {name}: {value!r}")
    return number


def _first_present(d, keys):
    for key in keys:
        if d.get(key) is not None:
            return d[key]
    return None


@dataclass(frozen=True)
class PositionReport:
    """One position fix of an unlabeled balloon."""

    timestamp: datetime
    latitude: float
    longitude: float
    altitude: Optional[float] = None

    @classmethod
    def from_dict(cls, d):
        """
        Build a report from a loosely-keyed dict, validating the contract
        the stitcher relies on (finite, in-range coordinates and a time).

        Args:
            d: Dict with 'time'/'timestamp'/'t', 'lat'/'latitude',
               'lon'/'longitude' and optional 'alt'/'altitude'

        Returns:
            PositionReport

        Raises:
            InvalidReportError: on missing or invalid fields
        """
        if not isinstance(d, dict):
            raise InvalidReportError(f"Report must be an object, got {type(d).__name__}")

        raw_time = _first_present(d, ('time', 'timestamp', 't'))
        if raw_time is None:
            raise InvalidReportError("Missing time")
        timestamp = parse_timestamp(raw_time)

        latitude = _coerce_number(_first_present(d, ('lat', 'latitude')), 'latitude')
        longitude = _coerce_number(_first_present(d, ('lon', 'longitude')), 'longitude')
        if not -90.0 <= latitude <= 90.0:
            raise InvalidReportError(f"Latitude out of range: {latitude}")
        if not -180.0 <= longitude <= 180.0:
            raise InvalidReportError(f"Longitude out of range: {longitude}")

        altitude = None
        raw_alt = _first_present(d, ('alt', 'altitude'))
        if raw_alt is not None:
            # A bad altitude is dropped, it is never needed for stitching
            try:
                altitude = _coerce_number(raw_alt, 'altitude')
            except InvalidReportError:
                altitude = None

        return cls(timestamp, latitude, longitude, altitude)

    def to_dict(self):
        """Convert report to dictionary for JSON serialization."""
        return {
            'time': format_timestamp(self.timestamp),
            'lat': self.latitude,
            'lon': self.longitude,
            'alt': self.altitude,
        }


@dataclass(frozen=True)
class Frame:
    """
    One hour's snapshot of position reports.

    age_hours is the upstream label (0 = most recent). Labels may skip
    hours when upstream snapshots are missing.
    """

    reports: Tuple[PositionReport, ...]
    age_hours: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'reports', tuple(self.reports))

    def __len__(self):
        return len(self.reports)
