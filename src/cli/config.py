"""Configuration loading and management."""

import os
from pathlib import Path
from typing import Optional

import yaml

from .config_models import PredictorConfig

CONFIG_ENV_VAR = "PREDICTOR_CONFIG"


def find_config() -> Optional[Path]:
    """Find config file in standard locations."""
    env_path = os.getenv(CONFIG_ENV_VAR)
    locations = [Path(env_path)] if env_path else []
    locations += [
        Path.cwd() / "predictor.yaml",
        Path.home() / ".predictor" / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def load_config_model(config_path: Optional[Path] = None) -> PredictorConfig:
    """Load configuration as Pydantic model with validation."""
    base_config = {}

    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                base_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}")

    try:
        return PredictorConfig.from_dict(base_config)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}")


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration as a plain dict."""
    return load_config_model(config_path).to_dict()
