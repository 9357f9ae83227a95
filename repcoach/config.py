"""
Configuration loading from config.yaml.
"""

import copy
import os

import yaml


class ConfigError(ValueError):
    """config.yaml could not be read or has the wrong shape."""


DEFAULT_CONFIG = {
    "planner": {
        "goals": "hypertrophy",
        "split": "full",
        "time_budget_min": 45,
        "equipment": ["barbell", "dumbbell", "machine", "cable", "bodyweight"],
        "units": None,
        "plate_increment_lb": 5,
        "plate_increment_kg": 2.5,
        "max_heavy_hinges_per_7d": 1,
    },
    "history": {
        "path": "workouts.json",
    },
    "catalog": {
        "path": None,
    },
    "claude": {
        "api_key_env": "ANTHROPIC_API_KEY",
        "model": "claude-sonnet-4-5",
        "max_tokens": 4000,
        "timeout": 120,
    },
}

PLATE_LIMITS = {
    "plate_increment_lb": (1, 10),
    "plate_increment_kg": (0.5, 5),
}


def _deep_merge(base, override):
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _clamp_plates(planner):
    for key, (low, high) in PLATE_LIMITS.items():
        value = planner.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"planner.{key} must be a number, got {value!r}")
        planner[key] = max(low, min(high, value))


def load_config(path="config.yaml"):
    """
    Load configuration, deep-merged over DEFAULT_CONFIG.

    A missing file yields the defaults. Raises ConfigError when the file
    cannot be parsed or is not a mapping.
    """
    if not path or not os.path.exists(path):
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Could not read {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    for section in DEFAULT_CONFIG:
        if section in raw and raw[section] is not None and not isinstance(raw[section], dict):
            raise ConfigError(f"Section '{section}' in {path} must be a mapping")

    config = _deep_merge(DEFAULT_CONFIG, {k: v for k, v in raw.items() if v is not None})
    _clamp_plates(config["planner"])
    if config["planner"].get("max_heavy_hinges_per_7d") is None:
        config["planner"]["max_heavy_hinges_per_7d"] = 1
    return config


def planner_settings(config):
    """Settings dict in the shape generate_plan expects."""
    planner = config.get("planner", {})
    return {
        "units": planner.get("units"),
        "plateIncrementLb": planner.get("plate_increment_lb"),
        "plateIncrementKg": planner.get("plate_increment_kg"),
        "maxHeavyHingesPer7d": planner.get("max_heavy_hinges_per_7d"),
    }
