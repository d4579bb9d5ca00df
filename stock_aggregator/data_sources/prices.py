"""
Intraday price sample download and caching.

Downloads 1-minute bars from yfinance and hands them on as raw records in
the shape the normalizer expects: ``{"price": ..., "lastUpdatedAt": ...}``
for a history, ``{"stock": {...}}`` for the latest point.
"""

import logging
import math
from typing import List, Optional
import pandas as pd
import yfinance as yf
from stock_aggregator.cache import DataCache
from stock_aggregator.errors import DataError
from stock_aggregator.analytics.window import validate_window

logger = logging.getLogger(__name__)

INTERVAL = "1m"
# yfinance serves 1m bars for the current and previous sessions; one day
# of history always covers a 60 minute window during market hours.
PERIOD = "1d"


def _history(ticker: str) -> pd.DataFrame:
    try:
        data = yf.Ticker(ticker).history(period=PERIOD, interval=INTERVAL)
    except Exception as e:
        raise DataError(f"Failed to download price data for {ticker}: {e}") from e

    if data is None or data.empty or "Close" not in data.columns:
        raise DataError(f"No data returned for {ticker}")
    return data.sort_index()


def _to_record(timestamp, price) -> dict:
    ts = pd.Timestamp(timestamp)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return {"price": float(price), "lastUpdatedAt": ts.tz_convert("UTC").isoformat()}


def get_price_samples(
    ticker: str,
    minutes: int,
    cache: Optional[DataCache] = None,
    use_cache: bool = True
) -> List[dict]:
    """
    Raw price records for the last ``minutes`` minutes of trading.

    The window is anchored at the latest bar rather than the wall clock so
    that a closed market still yields its final hour.

    Preconditions:
        - ticker is a non-empty symbol
        - minutes is a valid window (5..60)

    Postconditions:
        - Records are sorted ascending by lastUpdatedAt
        - Bars with a missing close are skipped

    Returns:
        List of {"price", "lastUpdatedAt"} records

    Raises:
        InvalidWindowError: If minutes is invalid
        DataError: If the download fails or returns nothing
    """
    if not ticker:
        raise ValueError("ticker cannot be empty")
    minutes = validate_window(minutes)

    query_params = {"ticker": ticker.upper(), "minutes": minutes, "interval": INTERVAL}
    if use_cache and cache is not None:
        cached = cache.get(query_params)
        if cached is not None:
            logger.debug("cache hit for %s (%d min)", ticker, minutes)
            return cached

    logger.info("downloading %s bars for %s", INTERVAL, ticker)
    closes = _history(ticker)["Close"]
    cutoff = closes.index.max() - pd.Timedelta(minutes=minutes)
    recent = closes[closes.index >= cutoff]

    records = [
        _to_record(ts, price)
        for ts, price in recent.items()
        if price is not None and not math.isnan(price)
    ]

    if cache is not None:
        cache.set(query_params, records)
    return records


def get_latest_sample(ticker: str) -> dict:
    """
    The most recent price as a single nested point.

    Returns:
        {"stock": {"price", "lastUpdatedAt"}}

    Raises:
        DataError: If the download fails or returns nothing
    """
    closes = _history(ticker)["Close"].dropna()
    if closes.empty:
        raise DataError(f"No prices returned for {ticker}")
    return {"stock": _to_record(closes.index[-1], closes.iloc[-1])}
