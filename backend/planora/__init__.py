"""Planora - event ticketing backend with a concurrency-safe reservation engine."""

__version__ = "1.0.0"
