"""Version information for photo-crop."""

__version__ = "1.0.0"
