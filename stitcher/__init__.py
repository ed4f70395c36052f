"""
balloon-stitcher: rebuilds balloon trajectories from unlabeled hourly
position snapshots.

Usage:
    from stitcher import Frame, PositionReport, stitch, simplify, segment_speeds

    # Frames newest first, as delivered upstream
    frames = [Frame(reports_now, age_hours=0), Frame(reports_1h_ago, age_hours=1)]

    # Rebuild tracks
    tracks = stitch(frames)

    # Thin a track for drawing and get per-segment speeds
    vertices = simplify(tracks['b1'], 25000)
    segments = segment_speeds(vertices)

    # Wind at a point
    sample = WindResolver().resolve(10.0, 20.0, '2024-05-01T12:00:00Z', 700)
"""

from .config import get_config, load_config, set_config
from .models import Frame, InvalidReportError, PositionReport
from .simplify import (
    Segment,
    color_for_speed,
    render_segments,
    segment_speeds,
    select_tracks,
    simplify,
    speed_band,
    track_score,
)
from .track_stitching import Stitcher, Track, stitch
from .wind import (
    OpenMeteoClient,
    WindResolver,
    WindSample,
    nearest_time_index,
    track_midpoint,
    wind_for_tracks,
)

__all__ = [
    'Frame',
    'PositionReport',
    'InvalidReportError',
    'Stitcher',
    'Track',
    'stitch',
    'Segment',
    'simplify',
    'segment_speeds',
    'speed_band',
    'color_for_speed',
    'track_score',
    'select_tracks',
    'render_segments',
    'WindResolver',
    'WindSample',
    'OpenMeteoClient',
    'nearest_time_index',
    'track_midpoint',
    'wind_for_tracks',
    'load_config',
    'get_config',
    'set_config',
]
