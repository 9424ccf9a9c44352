"""Logging utilities."""
from __future__ import annotations

import logging.config
from pathlib import Path

import yaml

_CONFIG_PATH = Path(__file__).resolve().parent / "../.." / "configs" / "logging.yaml"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure logging from the YAML configuration file if present."""
    if _CONFIG_PATH.exists():
        with _CONFIG_PATH.open("r", encoding="utf-8") as config_file:
            logging.config.dictConfig(yaml.safe_load(config_file))
    else:
        logging.basicConfig(level=level)


__all__ = ["configure_logging"]
