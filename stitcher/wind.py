"""
Wind vector lookup at a point and time.

Two Open-Meteo datasets are tried in order: pressure-level wind at the
requested level, then 10 m surface wind. The sample nearest in time to the
query is taken from the first tier that has finite u/v components there.
Any failure of a tier (HTTP error, timeout, malformed or empty series,
non-finite values) moves on to the next tier; after the last tier the
result is None.

Usage:
    resolver = WindResolver()
    sample = resolver.resolve(10.0, 20.0, '2024-05-01T12:00:00Z', 700)
    if sample is not None:
        print(sample.speed, sample.direction_degrees, sample.level)
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import numpy as np
import requests

from .config import get_config, get_param
from .geometry import wind_direction_from, wind_speed
from .models import InvalidReportError, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

SURFACE_LEVEL = '10m'


@dataclass(frozen=True)
class WindSample:
    """Wind at one time and level. direction_degrees is where it blows FROM."""

    u: float
    v: float
    speed: float
    direction_degrees: float
    time: datetime
    level: str

    @classmethod
    def from_components(cls, u, v, time, level):
        return cls(
            u=float(u),
            v=float(v),
            speed=wind_speed(u, v),
            direction_degrees=wind_direction_from(u, v),
            time=time,
            level=level,
        )

    def to_dict(self):
        return {
            'u': self.u,
            'v': self.v,
            'speed': self.speed,
            'direction_deg': self.direction_degrees,
            'time': format_timestamp(self.time),
            'level': self.level,
        }


# ============================================================================
# SERIES HELPERS
# ============================================================================

def query_window(when):
    """
    UTC calendar-day window of one day either side of when.

    Returns:
        (start_date, end_date) as 'YYYY-MM-DD' strings, both inclusive
    """
    day = when.astimezone(timezone.utc).date()
    return (day - timedelta(days=1)).isoformat(), (day + timedelta(days=1)).isoformat()


def nearest_time_index(times, target):
    """
    Index of the time closest to target.

    Linear scan; on equal distance the earliest index wins.

    Args:
        times: Sequence of datetimes
        target: datetime

    Returns:
        Index, or None for an empty sequence
    """
    best_idx = None
    best_diff = None
    for i, t in enumerate(times):
        diff = abs((t - target).total_seconds())
        if best_diff is None or diff < best_diff:
            best_idx = i
            best_diff = diff
    return best_idx


def _is_finite_number(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return bool(np.isfinite(value))


def sample_nearest(payload, u_key, v_key, when, level):
    """
    Pick the wind sample nearest to when from an Open-Meteo hourly payload.

    Args:
        payload: Decoded JSON response
        u_key, v_key: Names of the hourly u and v series
        when: Target datetime (UTC)
        level: Level label for the returned sample

    Returns:
        WindSample, or None if the series is missing, empty, malformed or
        holds non-finite values at the nearest index
    """
    if not isinstance(payload, dict):
        return None
    hourly = payload.get('hourly')
    if not isinstance(hourly, dict):
        return None

    raw_times = hourly.get('time')
    us = hourly.get(u_key)
    vs = hourly.get(v_key)
    if not isinstance(raw_times, list) or not isinstance(us, list) or not isinstance(vs, list):
        return None
    if not raw_times:
        return None

    try:
        times = [parse_timestamp(t) for t in raw_times]
    except InvalidReportError as e:
        logger.debug("Unparseable time in %s series: %s", u_key, e)
        return None

    idx = nearest_time_index(times, when)
    if idx >= len(us) or idx >= len(vs):
        return None

    u, v = us[idx], vs[idx]
    if not (_is_finite_number(u) and _is_finite_number(v)):
        return None

    return WindSample.from_components(u, v, times[idx], level)


# ============================================================================
# HTTP CLIENT
# ============================================================================

class OpenMeteoClient:
    """Thin wrapper around the Open-Meteo hourly forecast endpoint."""

    def __init__(self, config=None, session=None):
        """
        Args:
            config: Configuration dict (optional)
            session: requests.Session-like object (optional)
        """
        self.config = config if config else get_config()
        self.timeout = get_param('wind', 'timeout', self.config)
        # Injected sessions are shared; otherwise each thread gets its own
        self.session = session
        self._local = threading.local()
        self.headers = {'User-Agent': get_param('wind', 'user_agent', self.config)}

    def _get_session(self):
        if self.session is not None:
            return self.session
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    def fetch_hourly(self, url, variables, latitude, longitude, start_date, end_date):
        """
        Fetch hourly series for the given variables.

        Raises:
            requests.RequestException: on transport errors, timeouts and
                non-2xx responses
            ValueError: if the body is not JSON
        """
        params = {
            'latitude': latitude,
            'longitude': longitude,
            'hourly': ','.join(variables),
            'start_date': start_date,
            'end_date': end_date,
            'timezone': 'UTC',
            'wind_speed_unit': 'ms',
        }
        resp = self._get_session().get(url, params=params, headers=self.headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()


# ============================================================================
# RESOLVER
# ============================================================================

class WindTier:
    """One dataset in the fallback chain."""

    def __init__(self, name, url, u_template, v_template, level_label):
        self.name = name
        self.url = url
        self.u_template = u_template
        self.v_template = v_template
        self.level_label = level_label

    def variables(self, level):
        return self.u_template.format(level=level), self.v_template.format(level=level)

    def label(self, level):
        return self.level_label.format(level=level)


class WindResolver:
    """
    Resolves a wind sample for a point and time through the tier chain
    pressure level -> surface -> not found.
    """

    def __init__(self, client=None, config=None):
        self.config = config if config else get_config()
        self.client = client if client is not None else OpenMeteoClient(config=self.config)
        self.tiers = [
            WindTier('pressure',
                     get_param('wind', 'pressure_url', self.config),
                     get_param('wind', 'pressure_u', self.config),
                     get_param('wind', 'pressure_v', self.config),
                     '{level}hPa'),
            WindTier('surface',
                     get_param('wind', 'surface_url', self.config),
                     get_param('wind', 'surface_u', self.config),
                     get_param('wind', 'surface_v', self.config),
                     SURFACE_LEVEL),
        ]

    def resolve(self, latitude, longitude, when_iso=None, pressure_level=None):
        """
        Best-effort wind vector at a point.

        Args:
            latitude, longitude: Query point in degrees
            when_iso: Target time as ISO-8601 string or datetime (default: now)
            pressure_level: Pressure level in hPa (default from config)

        Returns:
            WindSample, or None if no tier produced a usable sample
        """
        if pressure_level is None:
            pressure_level = get_param('wind', 'pressure_level', self.config)
        if when_iso is None:
            when = datetime.now(timezone.utc)
        else:
            try:
                when = parse_timestamp(when_iso)
            except InvalidReportError as e:
                logger.warning("Wind query with bad time %r: %s", when_iso, e)
                return None

        try:
            window = query_window(when)
        except OverflowError:
            logger.warning("Wind query time %s has no representable day window",
                           format_timestamp(when))
            return None

        for tier in self.tiers:
            sample = self._query_tier(tier, latitude, longitude, when, window, pressure_level)
            if sample is not None:
                return sample
            logger.info("Wind tier %s unusable at (%.3f, %.3f) %s",
                        tier.name, latitude, longitude, format_timestamp(when))

        return None

    def _query_tier(self, tier, latitude, longitude, when, window, pressure_level):
        u_key, v_key = tier.variables(pressure_level)
        start_date, end_date = window
        try:
            payload = self.client.fetch_hourly(
                tier.url, (u_key, v_key), latitude, longitude, start_date, end_date
            )
        except (requests.RequestException, ValueError) as e:
            logger.warning("Wind tier %s request failed: %s", tier.name, e)
            return None
        return sample_nearest(payload, u_key, v_key, when, tier.label(pressure_level))

    def resolve_many(self, queries, max_workers=None):
        """
        Resolve independent queries concurrently.

        Args:
            queries: Iterable of (latitude, longitude, when_iso, pressure_level)
            max_workers: Concurrency limit (default from config)

        Returns:
            List of WindSample or None, in query order
        """
        queries = list(queries)
        if not queries:
            return []
        if max_workers is None:
            max_workers = get_param('wind', 'max_workers', self.config)

        with ThreadPoolExecutor(max_workers=max(1, int(max_workers))) as executor:
            return list(executor.map(lambda q: self.resolve(*q), queries))


def track_midpoint(reports):
    """
    Report closest to the temporal midpoint of a track.

    Args:
        reports: Ordered position reports

    Returns:
        PositionReport, or None for an empty track
    """
    if not reports:
        return None
    first, last = reports[0].timestamp, reports[-1].timestamp
    middle = first + (last - first) / 2
    idx = nearest_time_index([r.timestamp for r in reports], middle)
    return reports[idx]


def wind_for_tracks(resolver, tracks, pressure_level=None, max_workers=None):
    """
    Wind sample at the temporal midpoint of each track.

    Args:
        resolver: WindResolver
        tracks: Mapping of track id to ordered reports
        pressure_level: Pressure level in hPa (default from config)
        max_workers: Concurrency limit

    Returns:
        Dict of track id to WindSample or None
    """
    track_ids = []
    queries = []
    for track_id, reports in tracks.items():
        mid = track_midpoint(reports)
        if mid is None:
            continue
        track_ids.append(track_id)
        queries.append((mid.latitude, mid.longitude, mid.timestamp, pressure_level))

    results = resolver.resolve_many(queries, max_workers=max_workers)
    return dict(zip(track_ids, results))
