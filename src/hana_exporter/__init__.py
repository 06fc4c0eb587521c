"""Prometheus exporter for SAP HANA."""

__version__ = "0.1.0"
