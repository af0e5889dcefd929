"""Rate-limited GitHub access layer with branch drift and rollback analysis."""

__version__ = "0.3.0"
