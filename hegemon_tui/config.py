"""Configuration loading for the dashboard."""

import copy
import logging
import os
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml

from hegemon_tui.model import DEFAULT_INTERVAL_INDEX, DEFAULT_INTERVALS, Interval

logger = logging.getLogger(__name__)

# Smallest terminal the curses front end will draw into
MIN_WIDTH = 40
MIN_HEIGHT = 8

DEFAULTS: Dict[str, Any] = {
    "settings": {
        "default_interval": DEFAULT_INTERVAL_INDEX,
        "min_width": MIN_WIDTH,
        "min_height": MIN_HEIGHT,
    },
    "intervals": [
        {
            "ms": interval.duration // timedelta(milliseconds=1),
            "tick_spacing": interval.tick_spacing,
        }
        for interval in DEFAULT_INTERVALS
    ],
    "streams": {
        "inactive": [],
        "network_interface": None,
    },
}


def discover_config_path() -> Optional[str]:
    """Return the user's config file path if one exists.

    Looks in $XDG_CONFIG_HOME/hegemon/config.yaml, falling back to
    ~/.config when XDG_CONFIG_HOME is unset.
    """
    config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.join(
        os.path.expanduser("~"), ".config"
    )
    candidate = os.path.join(config_home, "hegemon", "config.yaml")
    if os.path.isfile(candidate):
        return candidate
    return None


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from a YAML file, merged over the defaults.

    Missing keys (and missing keys inside the ``settings`` and ``streams``
    sections) take their default values. Falls back to the defaults entirely
    if the file cannot be read or parsed.
    """
    config = copy.deepcopy(DEFAULTS)
    if path is None:
        return config

    try:
        with open(path, "r") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config file '{path}', using defaults: {e}")
        return config

    if not loaded:
        return config
    if not isinstance(loaded, dict):
        logger.warning(f"Config file '{path}' is not a mapping, using defaults")
        return config

    for key, value in loaded.items():
        if key not in config:
            logger.warning(f"Ignoring unknown config key '{key}'")
            continue
        if isinstance(config[key], dict):
            if isinstance(value, dict):
                config[key].update(value)
            elif value is not None:
                logger.warning(f"Config section '{key}' is not a mapping, using defaults")
        else:
            config[key] = value

    return config


def parse_intervals(config: Dict[str, Any]) -> List[Interval]:
    """Build interval presets from the config, or the defaults if they are invalid."""
    raw = config.get("intervals")
    intervals = []
    try:
        for item in raw:
            ms = int(item["ms"])
            tick_spacing = int(item["tick_spacing"])
            if ms <= 0 or tick_spacing <= 0:
                raise ValueError(f"non-positive interval preset {item!r}")
            intervals.append(Interval.from_ms(ms, tick_spacing))
    except (TypeError, KeyError, ValueError) as e:
        logger.warning(f"Invalid interval presets, using defaults: {e}")
        return list(DEFAULT_INTERVALS)

    if not intervals:
        logger.warning("No interval presets configured, using defaults")
        return list(DEFAULT_INTERVALS)
    return intervals


def default_interval_index(config: Dict[str, Any], count: int) -> int:
    """Configured starting interval, clamped to the available presets."""
    try:
        index = int(config["settings"]["default_interval"])
    except (TypeError, KeyError, ValueError):
        logger.warning("Invalid settings.default_interval, using the default")
        index = DEFAULT_INTERVAL_INDEX
    return max(0, min(index, count - 1))


def min_terminal_size(config: Dict[str, Any]) -> Tuple[int, int]:
    """Configured (min_width, min_height), falling back per value to the defaults."""
    sizes = []
    for key, default in (("min_width", MIN_WIDTH), ("min_height", MIN_HEIGHT)):
        try:
            size = int(config["settings"][key])
            if size <= 0:
                raise ValueError(size)
        except (TypeError, KeyError, ValueError):
            logger.warning(f"Invalid settings.{key}, using {default}")
            size = default
        sizes.append(size)
    return sizes[0], sizes[1]


def inactive_streams(config: Dict[str, Any]) -> Set[str]:
    """Names of the streams that start deactivated."""
    names = config["streams"].get("inactive")
    if names is None:
        return set()
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        logger.warning("streams.inactive must be a list of stream names, ignoring it")
        return set()
    return set(names)


def network_interface(config: Dict[str, Any]) -> Optional[str]:
    """Interface the network streams are restricted to, or None for all."""
    interface = config["streams"].get("network_interface")
    if interface is not None and not isinstance(interface, str):
        logger.warning("streams.network_interface must be a name, using all interfaces")
        return None
    return interface
