"""Nexus backend: chat persistence and SSE relay of upstream generations."""

__version__ = "0.1.0"
