"""Distribution version reported in the integration tag."""

__version__ = "1.0.0"
