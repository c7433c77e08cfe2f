"""Adaptive decision and artifact cache engine for emotion-aware learning."""

__version__ = "0.1.0"
