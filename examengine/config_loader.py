"""
Configuration loader for owner-defined session parameters.

Handles loading and validating proctoring and grading configuration files.
"""

import json
import sys
from pathlib import Path
from typing import Optional

from .models import SessionConfig


def default_config_path() -> Path:
    """config.json next to the executable, or in the project root when run from source."""
    if getattr(sys, 'frozen', False):
        exe_dir = Path(sys.executable).parent
    else:
        exe_dir = Path(__file__).parent.parent
    return exe_dir / "config.json"


def load_config(config_path: Optional[Path] = None) -> SessionConfig:
    """
    Load session configuration from a JSON file.

    Args:
        config_path: Path to the configuration file. If None, looks for
                    'config.json' next to the executable/script.

    Returns:
        SessionConfig object with validated configuration

    Raises:
        ValueError: If config is invalid
    """
    config_path = Path(config_path) if config_path is not None else default_config_path()

    if not config_path.exists():
        print(f"Warning: Config file '{config_path}' not found. Using default configuration.")
        return SessionConfig.default()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")
    except OSError as e:
        raise ValueError(f"Error reading config file: {e}")

    if not isinstance(data, dict):
        raise ValueError("Invalid configuration: top-level JSON value must be an object")

    try:
        config = SessionConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration: {e}")

    is_valid, error_message = config.validate()
    if not is_valid:
        raise ValueError(f"Invalid configuration: {error_message}")

    return config


def create_sample_config(output_path: Path):
    """
    Create a sample configuration file for exam owners.

    Args:
        output_path: Path where to save the sample config
    """
    sample_config = {
        "max_warnings": 3,
        "violation_debounce_seconds": 2.0,
        "per_case_timeout_seconds": 2.0,
        "memory_limit_mb": 256,
        "submission_grace_seconds": 0,
        "integrity_check_interval_seconds": 5,
        "network_monitoring": True,
        "assistant_monitoring": True,
        "pass_threshold": 0.35,
        "store_dir": "submissions",
        "_comment": "This is a sample session configuration. Adjust values as needed.",
        "_instructions": {
            "max_warnings": "Integrity violations that trigger automatic submission",
            "violation_debounce_seconds": "Repeated violation signals inside this window count once",
            "per_case_timeout_seconds": "Wall-clock limit for one test-case run of candidate code",
            "memory_limit_mb": "Address-space limit for candidate code (Unix only)",
            "submission_grace_seconds": "Accepted lateness after an exam's end time",
            "integrity_check_interval_seconds": "How often the integrity probes run",
            "network_monitoring": "Treat an internet connection as loss of secure mode",
            "assistant_monitoring": "Treat running AI assistant processes as loss of focus",
            "pass_threshold": "Fraction of the total score needed to pass (statistics)",
            "store_dir": "Directory where graded submissions are stored"
        },
        "_examples": [
            {
                "description": "Strict proctoring: one warning, no lateness",
                "max_warnings": 1,
                "submission_grace_seconds": 0
            },
            {
                "description": "Lenient lab session: no network check, 30 s grace",
                "max_warnings": 5,
                "network_monitoring": False,
                "submission_grace_seconds": 30
            }
        ]
    }

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(sample_config, f, indent=2)

    print(f"Sample configuration created at: {output_path}")
