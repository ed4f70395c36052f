"""
Spherical-earth geodesy helpers for trajectory reconstruction.
Distances are great-circle (haversine) on a sphere of radius 6,371 km.
"""

import numpy as np

# Constants
EARTH_RADIUS_M = 6371000.0
MS_TO_KMH = 3.6


def haversine(lat1, lon1, lat2, lon2):
    """
    Great-circle distance between two points.

    Args:
        lat1, lon1: First point in degrees
        lat2, lon2: Second point in degrees

    Returns:
        Distance in meters
    """
    phi1 = np.radians(lat1)
    phi2 = np.radians(lat2)
    dphi = np.radians(lat2 - lat1)
    dlambda = np.radians(lon2 - lon1)

    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlambda / 2) ** 2
    # Rounding can push a a hair above 1 for antipodal points
    a = np.minimum(a, 1.0)
    return float(2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(a)))


def report_distance(a, b):
    """Haversine distance in meters between two position reports."""
    return haversine(a.latitude, a.longitude, b.latitude, b.longitude)


def path_length(reports):
    """
    Total length of a polyline through the given reports.

    Args:
        reports: Ordered sequence of position reports

    Returns:
        Sum of consecutive haversine distances in meters
    """
    return sum(report_distance(reports[i - 1], reports[i]) for i in range(1, len(reports)))


def ms_to_kmh(speed):
    """Convert meters per second to kilometers per hour."""
    return speed * MS_TO_KMH


def wind_direction_from(u, v):
    """
    Meteorological wind direction (where the wind blows FROM).

    Args:
        u: Eastward wind component
        v: Northward wind component

    Returns:
        Bearing in degrees, normalized to [0, 360)
    """
    return float((np.degrees(np.arctan2(-u, -v)) + 360.0) % 360.0)


def wind_speed(u, v):
    """Magnitude of a (u, v) wind vector."""
    return float(np.hypot(u, v))
