"""On-device pothole detection and patrol session capture."""

__version__ = "0.1.0"
