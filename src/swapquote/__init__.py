"""Multi-source swap quote aggregation and route selection."""

__version__ = "0.1.0"
