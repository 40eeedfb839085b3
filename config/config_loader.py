"""
config_loader.py
-----------------
Singleton config loader. Reads config.yaml once and caches it.
Detection, scoring and averaging thresholds are all read through here.
"""

import os
import yaml
from typing import Any, Dict


_CONFIG_CACHE: Dict[str, Any] = {}


def load_config(config_path: str | None = None) -> Dict[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to config/ relative to this file.

    Returns:
        Full config dictionary.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        _CONFIG_CACHE = yaml.safe_load(f)

    return _CONFIG_CACHE


def get_recurrence_detection_config() -> Dict[str, Any]:
    """Returns the recurrence_detection block."""
    return load_config()["recurrence_detection"]


def get_pattern_check_config(pattern_type: str) -> Dict[str, Any]:
    """
    Returns the thresholds for one recurrence check.

    Raises:
        KeyError: If pattern_type has no block under pattern_checks.
    """
    checks = load_config()["pattern_checks"]
    if pattern_type not in checks:
        raise KeyError(
            f"No pattern check config for '{pattern_type}'. "
            f"Available: {list(checks.keys())}"
        )
    return checks[pattern_type]


def get_confidence_scoring_config() -> Dict[str, float]:
    """Returns the shared confidence formula bounds."""
    return load_config()["confidence_scoring"]


def get_averaging_config() -> Dict[str, Any]:
    """Returns averaging denominator thresholds."""
    return load_config()["averaging"]


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
