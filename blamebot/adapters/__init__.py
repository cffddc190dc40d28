"""Integration adapters.

Adapters connect the core services to external systems. Only Discord is wired
today; the pagination core in :mod:`blamebot.pagination` knows nothing about it.
"""
