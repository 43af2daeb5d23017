"""Tackle Content - a file-backed content store with a self-healing index."""

__version__ = "0.1.0"
