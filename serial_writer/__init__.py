"""Autonomous serial-fiction writer with continuity, pacing and quality control."""

__version__ = "0.1.0"
