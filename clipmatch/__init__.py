"""Clip Match - two-sided transaction reconciliation core."""

__version__ = "0.1.0"
