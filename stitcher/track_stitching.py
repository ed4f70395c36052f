#!/usr/bin/env python3
"""
Trajectory stitcher for unlabeled hourly balloon position snapshots.

Reports carry no identifier, so tracks are rebuilt by linking each report
to the nearest existing track whose last report is physically reachable
(speed and per-step jump limits). Frames are processed oldest first.
"""

import argparse
import json
import logging
import sys

import matplotlib.pyplot as plt
import numpy as np
from scipy.optimize import linear_sum_assignment

from .config import get_config, get_param, load_config, set_config
from .geometry import report_distance
from .models import Frame, InvalidReportError, PositionReport, format_timestamp
from .simplify import BAND_COLORS, render_segments, select_tracks
from .wind import WindResolver, wind_for_tracks

logger = logging.getLogger(__name__)

ASSOCIATION_MODES = ('greedy', 'optimal')

# Cost for gated-out pairs in the optimal assignment
GATED_COST = 1e12


# ============================================================================
# TRACK CLASS
# ============================================================================

class Track:
    """
    A reconstructed sequence of reports believed to come from one balloon.

    The id is a bookkeeping label for one stitching run, not a real-world
    identifier.
    """

    def __init__(self, track_id, report, frame_index):
        """
        Initialize track from its first report.

        Args:
            track_id: Synthetic id ('b1', 'b2', ...)
            report: First PositionReport
            frame_index: Index of the frame the report came from
        """
        self.id = track_id
        self.reports = [report]
        self.frames = [frame_index]

    @property
    def last(self):
        return self.reports[-1]

    def append(self, report, frame_index):
        """Append the report matched to this track in the given frame."""
        self.reports.append(report)
        self.frames.append(frame_index)

    def __len__(self):
        return len(self.reports)

    def sorted_reports(self):
        """Reports ordered by timestamp (stable)."""
        return sorted(self.reports, key=lambda r: r.timestamp)

    def to_dict(self):
        """Convert track to dictionary for JSON serialization."""
        reports = self.sorted_reports()
        return {
            'id': self.id,
            'n_reports': len(reports),
            'start': format_timestamp(reports[0].timestamp),
            'end': format_timestamp(reports[-1].timestamp),
            'frames': self.frames,
            'reports': [r.to_dict() for r in reports],
        }


# ============================================================================
# STITCHER CLASS
# ============================================================================

class Stitcher:
    """
    Online frame-by-frame stitcher.

    Each call to process_frame matches every report of one frame to at most
    one existing track, and every track receives at most one report per
    frame. Frames must be fed oldest first.
    """

    def __init__(self, config=None, association=None):
        """
        Args:
            config: Configuration dict (optional)
            association: 'greedy' (default) or 'optimal'
        """
        self.config = config if config else get_config()
        self.max_speed_ms = get_param('stitcher', 'max_speed_ms', self.config)
        self.max_jump_per_hour_m = get_param('stitcher', 'max_jump_per_hour_m', self.config)
        self.min_dt_hours = get_param('stitcher', 'min_dt_hours', self.config)
        if not self.min_dt_hours > 0:
            raise ValueError(f"min_dt_hours must be positive, got {self.min_dt_hours!r}")
        self.association = association or get_param('stitcher', 'association', self.config)
        if self.association not in ASSOCIATION_MODES:
            raise ValueError(f"Unknown association mode {self.association!r}, "
                             f"expected one of {ASSOCIATION_MODES}")

        self.tracks = []
        self.frame_count = 0
        self._next_id = 1

    def gate(self, last, report):
        """
        Check whether report is a plausible continuation of a track ending at last.

        Elapsed time is floored at min_dt_hours before computing the implied
        speed and the jump limit.

        Returns:
            Great-circle distance in meters if eligible, else None
        """
        dt_hours = abs((report.timestamp - last.timestamp).total_seconds()) / 3600.0
        dt_hours = max(self.min_dt_hours, dt_hours)
        distance = report_distance(last, report)
        speed = distance / (dt_hours * 3600.0)
        jump_limit = self.max_jump_per_hour_m * dt_hours

        if speed <= self.max_speed_ms and distance <= jump_limit:
            return distance
        return None

    def process_frame(self, reports, frame_index=None):
        """
        Process one frame of reports.

        Args:
            reports: Frame or sequence of PositionReport, in the order given
                     by upstream
            frame_index: Label recorded against each assigned report
                         (default: running frame counter)
        """
        if isinstance(reports, Frame):
            reports = reports.reports
        if frame_index is None:
            frame_index = self.frame_count
        self.frame_count += 1

        if self.association == 'optimal':
            self._associate_optimal(reports, frame_index)
        else:
            self._associate_greedy(reports, frame_index)

    def _associate_greedy(self, reports, frame_index):
        """
        First-found-nearest matching in report order.

        A report takes the nearest eligible unclaimed track even if a later
        report in the same frame would have been a better fit for it.
        """
        claimed = set()

        for report in reports:
            best_idx = None
            best_distance = np.inf

            for k, track in enumerate(self.tracks):
                if k in claimed:
                    continue
                distance = self.gate(track.last, report)
                if distance is not None and distance < best_distance:
                    best_distance = distance
                    best_idx = k

            if best_idx is None:
                self._new_track(report, frame_index)
                # Tracks born in this frame already hold this frame's report
                claimed.add(len(self.tracks) - 1)
            else:
                self.tracks[best_idx].append(report, frame_index)
                claimed.add(best_idx)

    def _associate_optimal(self, reports, frame_index):
        """
        Minimum total distance matching (Hungarian algorithm) under the same gate.

        Only tracks that existed before this frame are candidates. Reports left
        unmatched start new tracks in report order.
        """
        n_tracks = len(self.tracks)
        assigned = {}

        if n_tracks and len(reports):
            cost_matrix = np.full((len(reports), n_tracks), GATED_COST)
            for i, report in enumerate(reports):
                for k, track in enumerate(self.tracks):
                    distance = self.gate(track.last, report)
                    if distance is not None:
                        cost_matrix[i, k] = distance

            row_ind, col_ind = linear_sum_assignment(cost_matrix)
            assigned = {
                r: c for r, c in zip(row_ind, col_ind)
                if cost_matrix[r, c] < GATED_COST
            }

        for i, report in enumerate(reports):
            if i in assigned:
                self.tracks[assigned[i]].append(report, frame_index)
            else:
                self._new_track(report, frame_index)

    def _new_track(self, report, frame_index):
        track = Track(f"b{self._next_id}", report, frame_index)
        self._next_id += 1
        self.tracks.append(track)
        return track

    def get_tracks(self, min_reports=None):
        """
        Tracks long enough to draw, keyed by id in creation order.

        Args:
            min_reports: Minimum reports per track (default from config)

        Returns:
            Dict of track id to timestamp-ordered list of PositionReport
        """
        if min_reports is None:
            min_reports = get_param('stitcher', 'min_track_reports', self.config)
        return {
            t.id: t.sorted_reports()
            for t in self.tracks
            if len(t) >= min_reports
        }

    def to_dict(self, min_reports=None):
        """Convert surviving tracks to dictionary."""
        if min_reports is None:
            min_reports = get_param('stitcher', 'min_track_reports', self.config)
        kept = [t for t in self.tracks if len(t) >= min_reports]
        return {
            'tracks': [t.to_dict() for t in kept],
            'n_tracks': len(kept),
            'n_reports': sum(len(t) for t in kept),
        }


def stitch(frames, config=None, association=None):
    """
    Rebuild tracks from hourly frames.

    Args:
        frames: List of Frame (or report lists), newest first as delivered
                upstream. They are processed in reverse so that every track
                grows forward in time; missing hours need no placeholder.
        config: Configuration dict (optional)
        association: 'greedy' (default) or 'optimal'

    Returns:
        Dict of track id to timestamp-ordered list of PositionReport for
        tracks with at least two reports
    """
    stitcher = Stitcher(config=config, association=association)
    for index in range(len(frames) - 1, -1, -1):
        stitcher.process_frame(frames[index], frame_index=index)
    return stitcher.get_tracks()


# ============================================================================
# MAIN STITCHING SCRIPT
# ============================================================================

def _parse_frame(raw, frame_number):
    """Turn one decoded frame into a Frame, skipping invalid reports."""
    if isinstance(raw, dict):
        raw_reports = raw.get('reports', [])
        age_hours = raw.get('age_hours')
    else:
        raw_reports = raw
        age_hours = None

    if not isinstance(raw_reports, list):
        logger.warning("Frame %d has no report list, skipping", frame_number)
        return None

    reports = []
    for raw_report in raw_reports:
        try:
            reports.append(PositionReport.from_dict(raw_report))
        except InvalidReportError as e:
            logger.warning("Frame %d: dropping report: %s", frame_number, e)

    if not reports:
        return None
    return Frame(reports, age_hours=age_hours)


def load_frames(filepath):
    """
    Load frames from a JSON array or JSONL file, newest first.

    Each frame is either {"age_hours": n, "reports": [...]} or a bare list of
    reports. Missing (null), empty or unparseable frames are skipped.
    """
    with open(filepath, 'r') as f:
        content = f.read().strip()

    raw_frames = None
    try:
        decoded = json.loads(content)
        if isinstance(decoded, list):
            raw_frames = decoded
    except json.JSONDecodeError:
        pass

    if raw_frames is None:
        raw_frames = []
        for line_num, line in enumerate(content.split('\n'), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                raw_frames.append(json.loads(line))
            except json.JSONDecodeError as e:
                logger.warning("Failed to parse line %d in %s: %s", line_num, filepath, e)
                raw_frames.append(None)

    frames = []
    for i, raw in enumerate(raw_frames):
        if raw is None:
            logger.info("Frame %d missing, skipping", i)
            continue
        frame = _parse_frame(raw, i)
        if frame is not None:
            frames.append(frame)

    return frames


def build_output(tracks, config=None, wind_samples=None):
    """
    Render-ready view of stitched tracks.

    Args:
        tracks: Dict of track id to ordered reports (output of stitch)
        config: Configuration dict (optional)
        wind_samples: Optional dict of track id to WindSample or None

    Returns:
        Dict with the selected tracks, their simplified vertices and segments
    """
    config = config if config else get_config()
    selected = select_tracks(
        tracks,
        get_param('simplify', 'min_distance_m', config),
        min_segments=get_param('simplify', 'min_segments', config),
        max_tracks=get_param('simplify', 'max_tracks', config),
    )
    max_speed = get_param('simplify', 'max_segment_speed_ms', config)

    out = []
    for track_id, thinned, score in selected:
        entry = {
            'id': track_id,
            'score_m': score,
            'reports': [r.to_dict() for r in tracks[track_id]],
            'vertices': [r.to_dict() for r in thinned],
            'segments': render_segments(thinned, max_speed_ms=max_speed),
        }
        if wind_samples is not None:
            sample = wind_samples.get(track_id)
            entry['wind'] = sample.to_dict() if sample is not None else None
        out.append(entry)

    return {
        'n_tracks': len(tracks),
        'n_reports': sum(len(r) for r in tracks.values()),
        'n_selected': len(out),
        'tracks': out,
    }


def save_tracks(data, output_file):
    """Save rendered tracks to JSON file."""
    with open(output_file, 'w') as f:
        json.dump(data, f, indent=2)
    logger.info("Saved %d tracks to %s", data['n_selected'], output_file)


def visualize_tracks(data, output_image):
    """Plot selected tracks in lon/lat with segments coloured by speed band."""
    fig, ax = plt.subplots(figsize=(14, 8))

    for track in data['tracks']:
        vertices = track['vertices']
        lons = [v['lon'] for v in vertices]
        lats = [v['lat'] for v in vertices]

        # Thin black line through all vertices, behind the coloured segments
        ax.plot(lons, lats, '-', color='black', linewidth=0.5, alpha=0.3, zorder=1)

        for seg in track['segments']:
            a, b = vertices[seg['from']], vertices[seg['to']]
            ax.plot([a['lon'], b['lon']], [a['lat'], b['lat']], '-',
                    color=seg['color'], linewidth=2, alpha=0.55, zorder=2)

    for band, color in BAND_COLORS.items():
        ax.plot([], [], '-', color=color, linewidth=2, label=f'Band {band}')

    ax.set_xlabel('Longitude (deg)', fontsize=12)
    ax.set_ylabel('Latitude (deg)', fontsize=12)
    ax.set_title(f"Balloon Tracks ({data['n_selected']} of {data['n_tracks']})",
                 fontsize=14, fontweight='bold')
    ax.grid(True, alpha=0.3)
    ax.legend(loc='upper right', fontsize=8)

    plt.tight_layout()
    fig.savefig(output_image, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logger.info("Saved visualization to %s", output_image)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Stitch hourly balloon snapshots into tracks')
    parser.add_argument('file', help='Path to frames JSON/JSONL file (newest frame first)')
    parser.add_argument('-o', '--output', default='tracks.json',
                        help='Output JSON file for tracks')
    parser.add_argument('-v', '--visualize', help='Output image file for visualization')
    parser.add_argument('-c', '--config', type=str,
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--association', choices=ASSOCIATION_MODES,
                        help='Report-to-track association mode (default: greedy)')
    parser.add_argument('--wind', action='store_true',
                        help='Look up wind at the temporal midpoint of each selected track')
    parser.add_argument('--pressure-level', type=int,
                        help='Pressure level in hPa for wind lookup')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    if args.config:
        set_config(load_config(args.config))
    config = get_config()

    frames = load_frames(args.file)
    logger.info("Loaded %d frames", len(frames))

    tracks = stitch(frames, config=config, association=args.association)
    logger.info("Stitched %d tracks (%d reports)",
                len(tracks), sum(len(r) for r in tracks.values()))

    wind_samples = None
    if args.wind:
        data = build_output(tracks, config=config)
        selected = {t['id']: tracks[t['id']] for t in data['tracks']}
        wind_samples = wind_for_tracks(WindResolver(config=config), selected,
                                       pressure_level=args.pressure_level)

    data = build_output(tracks, config=config, wind_samples=wind_samples)
    save_tracks(data, args.output)

    if args.visualize:
        visualize_tracks(data, args.visualize)

    return 0


if __name__ == '__main__':
    sys.exit(main())
