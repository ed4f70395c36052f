#!/usr/bin/env python3
"""
Tests for position report parsing and validation.
"""

from datetime import datetime, timezone

import pytest

from stitcher.models import (
    Frame,
    InvalidReportError,
    PositionReport,
    format_timestamp,
    parse_timestamp,
)


def test_parse_timestamp_variants():
    expected = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert parse_timestamp('2024-05-01T12:00:00Z') == expected
    assert parse_timestamp('2024-05-01T12:00:00+00:00') == expected
    assert parse_timestamp('2024-05-01T14:00:00+02:00') == expected
    assert parse_timestamp('2024-05-01T12:00') == expected
    assert parse_timestamp(expected.timestamp()) == expected
    assert parse_timestamp(datetime(2024, 5, 1, 12, 0)) == expected


def test_parse_timestamp_rejects_garbage():
    for bad in ('yesterday', None, True, float('nan'), [2024]):
        with pytest.raises(InvalidReportError):
            parse_timestamp(bad)


def test_parse_timestamp_out_of_range():
    # Epoch too large for datetime, and a local time that overflows year 9999 in UTC
    for bad in (1e20, -1e20, '9999-12-31T23:00-05:00'):
        with pytest.raises(InvalidReportError):
            parse_timestamp(bad)


def test_format_timestamp():
    assert format_timestamp(datetime(2024, 5, 1, 12, tzinfo=timezone.utc)) == '2024-05-01T12:00:00Z'


def test_from_dict_short_keys():
    r = PositionReport.from_dict({'t': '2024-05-01T12:00:00Z', 'lat': 10.5, 'lon': -20.25, 'alt': 18000})
    assert r.latitude == 10.5
    assert r.longitude == -20.25
    assert r.altitude == 18000.0
    assert r.timestamp.tzinfo is not None


def test_from_dict_long_keys_and_strings():
    r = PositionReport.from_dict({'time': '2024-05-01T12:00:00Z', 'latitude': '10.5',
                                  'longitude': '20', 'altitude': None})
    assert (r.latitude, r.longitude, r.altitude) == (10.5, 20.0, None)


def test_from_dict_drops_bad_altitude():
    r = PositionReport.from_dict({'time': 0, 'lat': 1, 'lon': 2, 'alt': 'high'})
    assert r.altitude is None


@pytest.mark.parametrize('raw', [
    {'lat': 1.0, 'lon': 2.0},
    {'time': '2024-05-01T12:00:00Z', 'lon': 2.0},
    {'time': '2024-05-01T12:00:00Z', 'lat': float('nan'), 'lon': 2.0},
    {'time': '2024-05-01T12:00:00Z', 'lat': 1.0, 'lon': float('inf')},
    {'time': '2024-05-01T12:00:00Z', 'lat': 91.0, 'lon': 2.0},
    {'time': '2024-05-01T12:00:00Z', 'lat': 1.0, 'lon': -181.0},
    {'time': '2024-05-01T12:00:00Z', 'lat': 'north', 'lon': 2.0},
    {'time': '2024-05-01T12:00:00Z', 'lat': True, 'lon': 2.0},
    {'time': 1e20, 'lat': 1.0, 'lon': 2.0},
    {'time': '9999-12-31T23:00-05:00', 'lat': 1.0, 'lon': 2.0},
    [1.0, 2.0],
])
def test_from_dict_rejects_contract_violations(raw):
    with pytest.raises(InvalidReportError):
        PositionReport.from_dict(raw)


def test_invalid_report_error_is_value_error():
    assert issubclass(InvalidReportError, ValueError)


def test_report_is_immutable():
    r = PositionReport.from_dict({'time': 0, 'lat': 1, 'lon': 2})
    with pytest.raises(AttributeError):
        r.latitude = 5.0


def test_to_dict():
    r = PositionReport(datetime(2024, 5, 1, 12, tzinfo=timezone.utc), 1.0, 2.0, 3.0)
    assert r.to_dict() == {'time': '2024-05-01T12:00:00Z', 'lat': 1.0, 'lon': 2.0, 'alt': 3.0}
    assert PositionReport.from_dict(r.to_dict()) == r


def test_frame():
    r = PositionReport.from_dict({'time': 0, 'lat': 1, 'lon': 2})
    frame = Frame([r, r], age_hours=3)
    assert isinstance(frame.reports, tuple)
    assert len(frame) == 2
    assert frame.age_hours == 3
