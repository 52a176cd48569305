"""Sluice: retention purging for incremental aggregation tables."""

__version__ = "0.1.0"
