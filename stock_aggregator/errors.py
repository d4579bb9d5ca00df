"""Custom exceptions for the aggregator."""


class AggregatorError(Exception):
    """Base exception for aggregator errors."""
    pass


class DataError(AggregatorError):
    """Raised when price data cannot be fetched or is unusable."""
    pass


class CacheError(AggregatorError):
    """Raised when caching operations fail."""
    pass


class InvalidWindowError(AggregatorError, ValueError):
    """Raised when a requested time window is not an integer in [5, 60]."""
    pass
