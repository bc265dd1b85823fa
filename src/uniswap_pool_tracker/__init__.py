"""Uniswap V3 pool event tracker - valuation, persistence and rollups."""

__version__ = "0.1.0"
