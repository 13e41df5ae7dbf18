"""Errorpilot: error log and trace normalization for Loki and Tempo."""

__version__ = "1.0.0"
