"""Blame Bot: record and browse blames inside Discord servers."""

__version__ = "0.1.0"
