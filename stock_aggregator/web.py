"""
FastAPI interface serving the average and correlation views.

The app holds one WindowController as the active window selection;
requests that omit ``minutes`` use it. Ticker input is validated before
anything is fetched.
"""

import logging
import re
from typing import List, Optional, Union
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, StrictInt, StrictStr, field_validator
from stock_aggregator.analytics.align import POLICIES
from stock_aggregator.analytics.views import build_average_view, build_correlation_view, latest_observed
from stock_aggregator.analytics.window import WindowController, validate_window
from stock_aggregator.cache import DataCache
from stock_aggregator.config import load_settings, load_stock_universe
from stock_aggregator.data_sources.prices import get_latest_sample, get_price_samples
from stock_aggregator.errors import DataError, InvalidWindowError

logger = logging.getLogger(__name__)

MAX_TICKERS = 20
TICKER_PATTERN = re.compile(r"^[A-Z0-9.\-]{1,10}$")

settings = load_settings()
cache = DataCache(settings.cache_dir, max_age_seconds=settings.cache_max_age_seconds)

app = FastAPI(title="Stock Price Aggregator")
app.state.window_controller = WindowController(settings.default_window)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["GET", "PUT"],
    allow_headers=["*"],
)


def validate_ticker(value: str) -> str:
    ticker = value.strip().upper()
    if not TICKER_PATTERN.match(ticker):
        raise ValueError(f"Invalid ticker: {value}")
    return ticker


class TickerSet(BaseModel):
    tickers: List[str]

    @field_validator("tickers")
    @classmethod
    def validate_tickers(cls, v):
        if len(v) > MAX_TICKERS:
            raise ValueError(f"Too many tickers (max {MAX_TICKERS})")
        validated = [validate_ticker(t) for t in v if t.strip()]
        return list(dict.fromkeys(validated))


class WindowRequest(BaseModel):
    minutes: Union[StrictInt, StrictStr]


def _window(minutes: Optional[str]) -> int:
    if minutes is None:
        return app.state.window_controller.window
    try:
        return validate_window(minutes)
    except InvalidWindowError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _fetch(ticker: str, minutes: int):
    try:
        return get_price_samples(ticker, minutes, cache=cache)
    except DataError as e:
        logger.warning("fetch failed for %s: %s", ticker, e)
        raise HTTPException(status_code=502, detail=str(e))


def _fetch_latest(ticker: str):
    try:
        return get_latest_sample(ticker)
    except DataError as e:
        logger.warning("fetch failed for %s: %s", ticker, e)
        raise HTTPException(status_code=502, detail=str(e))


def _ticker(value: str) -> str:
    try:
        return validate_ticker(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/stocks")
async def list_stocks():
    """Selectable stocks as {name: ticker}."""
    return {"stocks": load_stock_universe(settings.stocks_file)}


@app.get("/api/window")
async def get_window():
    """Active window and its revision."""
    controller = app.state.window_controller
    return {"minutes": controller.window, "revision": controller.revision}


@app.put("/api/window")
async def put_window(request: WindowRequest):
    """Change the active window; rejected values leave it unchanged."""
    update = app.state.window_controller.set_window(request.minutes)
    if not update.accepted:
        raise HTTPException(status_code=400, detail=update.error)
    return {"minutes": update.window, "revision": update.revision}


# Handlers that download are plain functions so FastAPI runs them in its
# threadpool instead of blocking the event loop.

@app.get("/api/stocks/{ticker}")
def stock_average(ticker: str, minutes: Optional[str] = None):
    """Average view for one ticker."""
    ticker = _ticker(ticker)
    window = _window(minutes)
    raw = _fetch(ticker, window)
    view = build_average_view(raw, window, now=latest_observed(raw))
    return {"ticker": ticker, "minutes": window, **view.to_dict()}


@app.get("/api/stocks/{ticker}/latest")
def stock_latest(ticker: str):
    """Current price as a single point."""
    ticker = _ticker(ticker)
    window = app.state.window_controller.window
    raw = _fetch_latest(ticker)
    view = build_average_view(raw, window, now=latest_observed(raw))
    if not view.samples:
        raise HTTPException(status_code=502, detail=f"No usable price for {ticker}")
    latest = view.samples[-1]
    return {
        "ticker": ticker,
        "price": latest.price,
        "lastUpdatedAt": latest.observed_at.isoformat(),
    }


@app.get("/api/correlation")
def correlation(
    tickers: str = Query(..., description="Comma-separated tickers"),
    minutes: Optional[str] = None,
    policy: Optional[str] = None
):
    """
    Correlation heatmap data for several tickers.

    A ticker whose download fails is listed in ``excluded`` with the
    tickers that had too few points; only a failure of every download
    is an error.
    """
    try:
        selection = TickerSet(tickers=tickers.split(",")).tickers
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if len(selection) < 2:
        raise HTTPException(status_code=400, detail="At least two tickers are required")
    policy = policy or settings.policy
    if policy not in POLICIES:
        raise HTTPException(status_code=400, detail=f"policy must be one of {', '.join(POLICIES)}")

    window = _window(minutes)
    raw_by_ticker = {}
    failed = {}
    for ticker in selection:
        try:
            raw_by_ticker[ticker] = get_price_samples(ticker, window, cache=cache)
        except DataError as e:
            logger.warning("fetch failed for %s: %s", ticker, e)
            failed[ticker] = str(e)

    if not raw_by_ticker:
        raise HTTPException(status_code=502, detail="; ".join(failed.values()))

    view = build_correlation_view(
        raw_by_ticker,
        window,
        now=latest_observed(*raw_by_ticker.values()),
        policy=policy,
        bucket=settings.bucket
    )
    data = view.to_dict()
    data["excluded"] = [t for t in selection if t in failed or t in view.excluded]
    data["failed"] = failed
    return data


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
