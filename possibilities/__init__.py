"""Possibilities: multi-provider candidate generation with confidence ranking."""

__version__ = "1.0.0"
