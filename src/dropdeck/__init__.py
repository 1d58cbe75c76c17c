"""Unified delivery event model and client reconciliation layer."""

__version__ = "0.1.0"
