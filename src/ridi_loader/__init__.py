"""
ridi-loader - RIDI Books DRM removal tool.
"""

from importlib.metadata import version, PackageNotFoundError


def get_version() -> str:
    """Get package version from metadata."""
    try:
        return version("ridi-loader")
    except PackageNotFoundError:
        return "0.1.0"  # Fallback for development
