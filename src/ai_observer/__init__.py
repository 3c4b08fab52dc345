"""Telemetry receiver and session importer for AI coding CLIs."""

__version__ = "0.1.0"
