import copy
from datetime import datetime, timedelta, timezone

import pytest

from stitcher import config as config_module
from stitcher.config import DEFAULT_CONFIG
from stitcher.models import PositionReport

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def default_config():
    """Run every test against the built-in defaults."""
    previous = config_module._config
    config_module.set_config(copy.deepcopy(DEFAULT_CONFIG))
    yield config_module.get_config()
    config_module.set_config(previous)


def report(lat, lon, hours_ago=0.0, alt=None):
    """Report at T0 minus hours_ago."""
    return PositionReport(T0 - timedelta(hours=hours_ago), lat, lon, alt)
