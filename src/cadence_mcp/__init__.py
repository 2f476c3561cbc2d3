"""Cadence MCP: autonomous task session control core."""

__version__ = "0.1.0"

__all__ = ["__version__"]
