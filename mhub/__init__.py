"""Launx Metrics Hub: objective-aware ad performance aggregation."""

__version__ = "0.1.0"
