"""
Track simplification and per-segment speed calculation.

Used by the renderer: tracks are thinned to vertices at least
min_distance_m apart, then each remaining segment gets a speed, a speed
band and a display colour.
"""

from dataclasses import dataclass

from .geometry import ms_to_kmh, path_length, report_distance
from .models import format_timestamp

# Upper bounds (m/s, exclusive) of speed bands 1-3; band 4 is everything faster
SPEED_BAND_LIMITS = (5.0, 15.0, 30.0)
BAND_COLORS = {
    1: '#4CAF50',
    2: '#FFC107',
    3: '#FF9800',
    4: '#F44336',
}


@dataclass(frozen=True)
class Segment:
    """Speed of the hop between two adjacent reports of one track."""

    from_index: int
    to_index: int
    speed: float  # m/s

    def to_dict(self):
        return {'from': self.from_index, 'to': self.to_index, 'speed': self.speed}


def simplify(reports, min_distance_m):
    """
    Greedy single-pass vertex thinning.

    The first report is always kept. Each later report is kept only if it is
    at least min_distance_m from the last kept report, so the final report is
    dropped when it sits too close to its predecessor.

    Args:
        reports: Ordered position reports of one track
        min_distance_m: Minimum spacing between kept vertices (meters)

    Returns:
        List of kept reports, a subsequence of the input
    """
    if not reports:
        return []

    kept = [reports[0]]
    for report in reports[1:]:
        if report_distance(kept[-1], report) >= min_distance_m:
            kept.append(report)
    return kept


def segment_speeds(reports):
    """
    Speed of every adjacent pair of reports.

    Pairs with zero or negative elapsed time are skipped.

    Args:
        reports: Ordered position reports

    Returns:
        List of Segment
    """
    segments = []
    for i in range(1, len(reports)):
        elapsed = (reports[i].timestamp - reports[i - 1].timestamp).total_seconds()
        if elapsed <= 0:
            continue
        distance = report_distance(reports[i - 1], reports[i])
        segments.append(Segment(i - 1, i, distance / elapsed))
    return segments


def speed_band(speed):
    """Classify a speed in m/s into band 1 (slow) through 4 (fast)."""
    for band, limit in enumerate(SPEED_BAND_LIMITS, start=1):
        if speed < limit:
            return band
    return len(SPEED_BAND_LIMITS) + 1


def color_for_speed(speed):
    """Display colour for a speed in m/s."""
    return BAND_COLORS[speed_band(speed)]


def track_score(reports, min_distance_m):
    """Length in meters of the track after simplification."""
    return path_length(simplify(reports, min_distance_m))


def select_tracks(tracks, min_distance_m, min_segments=3, max_tracks=150):
    """
    Pick the tracks worth drawing.

    Every track is simplified and scored by its simplified length. Tracks
    with fewer than min_segments segments left are dropped and the longest
    max_tracks are returned.

    Args:
        tracks: Mapping of track id to ordered reports
        min_distance_m: Simplification spacing (meters)
        min_segments: Minimum segments remaining after simplification
        max_tracks: Maximum number of tracks returned

    Returns:
        List of (track_id, simplified_reports, score) sorted by score, longest first
    """
    scored = []
    for track_id, reports in tracks.items():
        thinned = simplify(reports, min_distance_m)
        if len(thinned) < min_segments + 1:
            continue
        scored.append((track_id, thinned, path_length(thinned)))

    scored.sort(key=lambda item: item[2], reverse=True)
    return scored[:max_tracks]


def render_segments(reports, max_speed_ms=None):
    """
    Segment list ready for drawing, with tooltip fields.

    Args:
        reports: Ordered (usually simplified) reports
        max_speed_ms: Drop segments faster than this (None keeps all)

    Returns:
        List of dicts with indices, speed (m/s and km/h), band, colour and
        the time and altitude of the segment's end point
    """
    rendered = []
    for segment in segment_speeds(reports):
        if max_speed_ms is not None and segment.speed > max_speed_ms:
            continue
        end = reports[segment.to_index]
        rendered.append({
            'from': segment.from_index,
            'to': segment.to_index,
            'speed_ms': segment.speed,
            'speed_kmh': ms_to_kmh(segment.speed),
            'band': speed_band(segment.speed),
            'color': color_for_speed(segment.speed),
            'time': format_timestamp(end.timestamp),
            'alt': end.altitude,
        })
    return rendered
