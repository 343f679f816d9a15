"""TAMIC simulated investment platform: trading and settlement core."""

__version__ = "0.1.0"
