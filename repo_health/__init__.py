"""Repository health aggregator: GitHub activity in, trend-ready JSON out."""

__version__ = "0.1.0"
