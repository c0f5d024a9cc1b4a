"""
Core modules for the usage monitor.

This package contains log parsing, model name normalization, Codex
snapshot reduction, report windows, aggregation and the refresh cache.
"""
