"""Utility modules"""

from .config_loader import load_config, get_section
from .errors import (
    ReportingError,
    SourceUnavailableError,
    MalformedRecordError,
    StaleComputationError,
    InvalidFilterError,
    ConfigurationError
)

__all__ = [
    "load_config",
    "get_section",
    "ReportingError",
    "SourceUnavailableError",
    "MalformedRecordError",
    "StaleComputationError",
    "InvalidFilterError",
    "ConfigurationError"
]
