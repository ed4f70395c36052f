"""
Configuration loading for the stitcher.

Values come from a YAML file merged section by section over the defaults
below, so a config file only needs the keys it changes.
"""

import copy
import logging
import os

import yaml

logger = logging.getLogger(__name__)


DEFAULT_CONFIG = {
    'stitcher': {
        'max_speed_ms': 80.0,
        'max_jump_per_hour_m': 400000.0,
        'min_dt_hours': 1.0,
        'min_track_reports': 2,
        'association': 'greedy',
    },
    'simplify': {
        'min_distance_m': 25000.0,
        'min_segments': 3,
        'max_tracks': 150,
        'max_segment_speed_ms': 100.0,
    },
    'wind': {
        'pressure_level': 700,
        'timeout': 15.0,
        'max_workers': 4,
        'pressure_url': 'https://api.open-meteo.com/v1/forecast',
        'surface_url': 'https://api.open-meteo.com/v1/forecast',
        'pressure_u': 'u_component_of_wind_{level}hPa',
        'pressure_v': 'v_component_of_wind_{level}hPa',
        'surface_u': 'wind_u_component_10m',
        'surface_v': 'wind_v_component_10m',
        'user_agent': 'BalloonStitcher/0.1',
    },
}


def load_config(config_path=None):
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, looks for config.yaml in:
                    1. Current directory
                    2. Parent directory

    Returns:
        Dict with configuration values, or defaults if no config found.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path is None:
        for path in ('config.yaml', '../config.yaml'):
            if os.path.exists(path):
                config_path = path
                break

    if config_path and os.path.exists(config_path):
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        for key in config:
            if isinstance(loaded.get(key), dict):
                config[key].update(loaded[key])
        logger.info("Loaded config from %s", config_path)
    elif config_path:
        logger.warning("Config file %s not found, using defaults", config_path)

    return config


# Process-wide config (loaded lazily or via set_config)
_config = None


def get_config():
    """Get current configuration, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config):
    """Set configuration dict."""
    global _config
    _config = config


def get_param(section, key, config=None):
    """Look up one parameter, falling back to the built-in default."""
    config = config if config is not None else get_config()
    value = config.get(section, {}).get(key)
    if value is None:
        return DEFAULT_CONFIG[section][key]
    return value
