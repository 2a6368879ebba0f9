"""Shared helpers: logging setup, formatting, and market data conversion."""
