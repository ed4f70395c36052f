#!/usr/bin/env python3
"""
Tests for frame loading, output building and the stitch-tracks command.
"""

import json

import numpy as np

from stitcher.geometry import EARTH_RADIUS_M
from stitcher.models import Frame, PositionReport, format_timestamp
from stitcher.track_stitching import build_output, load_frames, main, stitch, visualize_tracks
from stitcher.wind import WindSample

from .conftest import T0, report

KM_PER_DEG = EARTH_RADIUS_M * np.pi / 180 / 1000.0


def create_frames_data(n_hours=6):
    """Two balloons, 40 km/h eastward along 0 and 30 degrees north, newest first."""
    frames = []
    for age in range(n_hours):
        step = n_hours - 1 - age
        reports = []
        for lat in (0.0, 30.0):
            km_per_deg = KM_PER_DEG * np.cos(np.radians(lat))
            reports.append(report(lat, 40.0 * step / km_per_deg, hours_ago=age).to_dict())
        frames.append({'age_hours': age, 'reports': reports})
    return frames


def test_load_frames_json(tmp_path):
    frames = create_frames_data()
    # A missing hour and a frame with one broken report
    frames.insert(2, None)
    frames[0]['reports'].append({'time': format_timestamp(T0), 'lat': float('nan'), 'lon': 0.0})
    path = tmp_path / 'frames.json'
    path.write_text(json.dumps(frames))

    loaded = load_frames(str(path))
    assert len(loaded) == 6
    assert [f.age_hours for f in loaded] == [0, 1, 2, 3, 4, 5]
    assert all(len(f) == 2 for f in loaded)


def test_load_frames_jsonl(tmp_path):
    frames = create_frames_data(3)
    lines = [json.dumps(frames[0]), '{not json', '', json.dumps(frames[1]['reports']),
             json.dumps({'age_hours': 9, 'reports': []}), json.dumps(frames[2])]
    path = tmp_path / 'frames.jsonl'
    path.write_text('\n'.join(lines))

    loaded = load_frames(str(path))
    assert len(loaded) == 3
    assert [f.age_hours for f in loaded] == [0, None, 2]


def test_build_output():
    frames = create_frames_data()
    path_frames = []
    for raw in frames:
        path_frames.append(Frame([PositionReport.from_dict(r) for r in raw['reports']]))
    tracks = stitch(path_frames)
    assert len(tracks) == 2

    config = {'simplify': {'min_distance_m': 25000.0, 'min_segments': 3, 'max_tracks': 1}}
    wind = {'b1': WindSample.from_components(1.0, 0.0, T0, '700hPa')}
    data = build_output(tracks, config=config, wind_samples=wind)

    assert data['n_tracks'] == 2
    assert data['n_reports'] == 12
    assert data['n_selected'] == 1
    track = data['tracks'][0]
    assert len(track['reports']) == 6
    assert len(track['vertices']) == 6
    assert len(track['segments']) == 5
    assert all(seg['band'] == 2 for seg in track['segments'])
    if track['id'] == 'b1':
        assert track['wind']['level'] == '700hPa'
    else:
        assert track['wind'] is None


def test_main_writes_tracks(tmp_path):
    frames_path = tmp_path / 'frames.json'
    frames_path.write_text(json.dumps(create_frames_data()))
    config_path = tmp_path / 'config.yaml'
    config_path.write_text("simplify:\n  min_distance_m: 10000\n  min_segments: 2\n")
    output_path = tmp_path / 'tracks.json'
    image_path = tmp_path / 'tracks.png'

    rc = main([str(frames_path), '-o', str(output_path), '-c', str(config_path),
               '-v', str(image_path), '--association', 'optimal'])

    assert rc == 0
    data = json.loads(output_path.read_text())
    assert data['n_tracks'] == 2
    assert data['n_selected'] == 2
    assert {t['id'] for t in data['tracks']} == {'b1', 'b2'}
    assert 'wind' not in data['tracks'][0]
    assert image_path.exists()


def test_visualize_empty(tmp_path):
    image_path = tmp_path / 'empty.png'
    visualize_tracks({'tracks': [], 'n_selected': 0, 'n_tracks': 0}, str(image_path))
    assert image_path.exists()


def test_load_frames_skips_out_of_range_time(tmp_path):
    good = report(1.0, 2.0).to_dict()
    frames = [[{'time': 1e20, 'lat': 1.0, 'lon': 2.0}, good]]
    path = tmp_path / 'frames.json'
    path.write_text(json.dumps(frames))

    loaded = load_frames(str(path))
    assert len(loaded) == 1
    assert loaded[0].reports == (PositionReport.from_dict(good),)
