"""Configuration file loader with validation"""

import yaml
import os
from pathlib import Path
from typing import Dict, Any
from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/engine.yaml"
DEMO_CONFIG_PATH = "config/engine_demo.yaml"

REQUIRED_KEYS = ['version', 'labels', 'listener', 'reports', 'export']

def _resolve(config_path: str) -> Path:
    """Resolve relative paths against the CWD first, then the project root"""
    path = Path(config_path)
    if path.is_absolute() or path.exists():
        return path
    return Path(__file__).resolve().parent.parent.parent / config_path

def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load YAML configuration file with validation.
    Automatically loads demo config if in demo mode.

    Args:
        config_path: Path to configuration file

    Returns:
        Dictionary with configuration

    Raises:
        ConfigurationError: If file doesn't exist or invalid YAML
    """
    # Auto-select demo config if in demo mode
    if os.getenv("DEMO_MODE") == "true" or os.getenv("ENVIRONMENT") == "demo":
        if config_path == DEFAULT_CONFIG_PATH:  # Only override if using default
            config_path = DEMO_CONFIG_PATH

    config_file = _resolve(config_path)

    if not config_file.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error loading configuration: {e}")

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    # Validate required keys
    missing_keys = [key for key in REQUIRED_KEYS if key not in config]

    if missing_keys:
        raise ConfigurationError(f"Missing required configuration keys: {missing_keys}")

    return config


def get_section(config: Dict[str, Any], section: str, key: str, default: Any = None) -> Any:
    """
    Read a single value from a configuration section

    Args:
        config: Full configuration dictionary
        section: Top-level section name (e.g. 'listener')
        key: Key within the section
        default: Returned when section or key is absent

    Returns:
        Configured value or default
    """
    return (config.get(section) or {}).get(key, default)
