"""Cinda runner profile core: profile accumulation, signal extraction, persistence and routing."""

__version__ = "0.1.0"
