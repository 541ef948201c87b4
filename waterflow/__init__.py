"""Waterflow: metered water billing core."""

__version__ = "0.1.0"
