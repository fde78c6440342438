#!/usr/bin/env python3
"""
Configuration management for oralscreen.

Loads configuration from (in order of priority):
1. Environment variables (ORALSCREEN_*)
2. Config file (~/.config/oralscreen/config.toml or ./config.toml)
3. Default values

Usage:
    from oralscreen.config import config

    print(config.data_dir)
    print(config.jpeg_quality)

Environment variables:
    ORALSCREEN_DATA_DIR       - Root directory for the local image/report/submission stores
    ORALSCREEN_JPEG_QUALITY   - JPEG quality for flattened annotated images (1-95)
    ORALSCREEN_STROKE_WIDTH   - Stroke width in pixels for drawn shapes
    ORALSCREEN_HTTP_TIMEOUT   - Timeout in seconds when fetching http(s) images
    ORALSCREEN_LOG_LEVEL      - Logging level (DEBUG, INFO, WARNING, ...)
    ORALSCREEN_REPORT_TITLE   - Title printed in the report header band
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Try to import toml, fall back gracefully
try:
    import tomllib  # Python 3.11+
except ImportError:
    try:
        import tomli as tomllib  # type: ignore
    except ImportError:
        tomllib = None  # type: ignore


@dataclass
class Config:
    """Configuration container.

    Values are loaded from config.toml file. Environment variables can override.
    """

    # Paths
    data_dir: str = "data"

    # Annotation export
    jpeg_quality: int = 90
    stroke_width: int = 3

    # Image fetching
    http_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"

    # Report
    report_title: str = "Oral Health Screening"

    # Metadata
    config_source: str = "defaults"


def get_package_root() -> Path:
    """Get the root directory of the oralscreen checkout."""
    # This file is at oralscreen/config.py, so parent.parent is repo root
    return Path(__file__).parent.parent.resolve()


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    package_root = get_package_root()

    locations = [
        Path("config.local.toml"),  # Local override (gitignored)
        Path("config.toml"),  # Current directory
        package_root / "config.local.toml",
        package_root / "config.toml",
        Path.home() / ".config" / "oralscreen" / "config.toml",
    ]

    for path in locations:
        if path.exists():
            return path
    return None


def load_config() -> Config:
    """Load configuration from file and environment."""
    config = Config()

    # Load from TOML file if available
    config_file = find_config_file()
    if config_file and tomllib:
        try:
            with open(config_file, "rb") as f:
                data = tomllib.load(f)

            # Paths section
            if "paths" in data:
                paths = data["paths"]
                data_dir = paths.get("data_dir", config.data_dir)
                # Resolve relative paths based on config file location
                data_dir_path = Path(data_dir)
                if not data_dir_path.is_absolute():
                    data_dir_path = (config_file.parent / data_dir_path).resolve()
                config.data_dir = str(data_dir_path)

            if "export" in data:
                config.jpeg_quality = int(data["export"].get("jpeg_quality", config.jpeg_quality))

            if "canvas" in data:
                config.stroke_width = int(data["canvas"].get("stroke_width", config.stroke_width))

            if "http" in data:
                config.http_timeout = float(data["http"].get("timeout", config.http_timeout))

            if "logging" in data:
                config.log_level = data["logging"].get("level", config.log_level)

            if "report" in data:
                config.report_title = data["report"].get("title", config.report_title)

            config.config_source = str(config_file)

        except Exception as e:
            print(f"Warning: Failed to load config from {config_file}: {e}", file=sys.stderr)

    # Environment variables override file config
    env_mappings = {
        "ORALSCREEN_DATA_DIR": "data_dir",
        "ORALSCREEN_JPEG_QUALITY": "jpeg_quality",
        "ORALSCREEN_STROKE_WIDTH": "stroke_width",
        "ORALSCREEN_HTTP_TIMEOUT": "http_timeout",
        "ORALSCREEN_LOG_LEVEL": "log_level",
        "ORALSCREEN_REPORT_TITLE": "report_title",
    }
    converters = {
        "jpeg_quality": int,
        "stroke_width": int,
        "http_timeout": float,
    }

    for env_var, attr in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            if attr in converters:
                value = converters[attr](value)
            setattr(config, attr, value)
            if config.config_source == "defaults":
                config.config_source = "environment"

    return config


# Global config instance - loaded once at import
config = load_config()
