"""Prometheus exporter for Cosmos SDK chains"""

__version__ = "1.0.0"
