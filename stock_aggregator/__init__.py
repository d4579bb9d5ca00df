"""
Stock Price Aggregator

Running averages over a trailing time window and pairwise correlation
matrices for correlation heatmaps across a set of tickers.
"""

__version__ = "0.1.0"
