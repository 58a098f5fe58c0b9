"""Demo-specific configuration helpers"""

import os


def is_demo_mode() -> bool:
    """
    Check if system is running in demo mode

    Returns:
        True if demo mode is active
    """
    return (
        os.getenv("DEMO_MODE") == "true" or
        os.getenv("ENVIRONMENT") == "demo"
    )


def get_demo_data_dir() -> str:
    """
    Get demo data directory path

    Returns:
        Path to demo data directory
    """
    return os.getenv("DEMO_DATA_DIR", "demo_data")
