"""Durable location capture with an offline upload queue."""

__version__ = "0.1.0"
