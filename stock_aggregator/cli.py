"""
Command-line interface for the aggregator.

This module provides CLI commands for listing the stock universe, averaging
one ticker's price over a trailing window, and printing a correlation
heatmap grid for several tickers.
"""

import argparse
import logging
import sys
import warnings
from typing import List, Optional

# Suppress yfinance warnings about intraday data (expected behavior)
warnings.filterwarnings("ignore", message=".*1m data not available.*")
warnings.filterwarnings("ignore", message=".*possibly delisted.*")

from stock_aggregator.analytics.align import POLICIES
from stock_aggregator.analytics.views import build_average_view, build_correlation_view, latest_observed
from stock_aggregator.analytics.window import MAX_WINDOW, MIN_WINDOW, WINDOW_STEP
from stock_aggregator.cache import DataCache
from stock_aggregator.config import Settings, load_settings, load_stock_universe
from stock_aggregator.data_sources.prices import get_price_samples
from stock_aggregator.errors import DataError, InvalidWindowError


def _cache(settings: Settings) -> DataCache:
    return DataCache(settings.cache_dir, max_age_seconds=settings.cache_max_age_seconds)


def _parse_tickers(value: str) -> List[str]:
    tickers = [t.strip().upper() for t in value.split(",") if t.strip()]
    # Preserve order, drop repeats
    return list(dict.fromkeys(tickers))


def format_heatmap(heatmap: dict, width: int = 8) -> str:
    """Render heatmap data as a fixed-width text grid ('--' for undefined)."""
    tickers = heatmap["tickers"]
    lines = [" " * width + "".join(t.rjust(width) for t in tickers)]
    for ticker, row in zip(tickers, heatmap["cells"]):
        cells = "".join(("--" if v is None else f"{v:.3f}").rjust(width) for v in row)
        lines.append(ticker.ljust(width) + cells)
    return "\n".join(lines)


def stocks_command(args, settings: Settings) -> int:
    """List the selectable stocks."""
    universe = load_stock_universe(settings.stocks_file)
    if not universe:
        print(f"No stocks configured in {settings.stocks_file}")
        return 1
    for name, ticker in sorted(universe.items()):
        print(f"  {ticker:<8} {name}")
    return 0


def average_command(args, settings: Settings) -> int:
    """Print the average price of a ticker over the window."""
    ticker = args.ticker.upper()
    minutes = args.minutes if args.minutes is not None else settings.default_window

    print(f"Averaging {ticker} over the last {minutes} minutes...")
    try:
        raw = get_price_samples(ticker, minutes, cache=_cache(settings))
        view = build_average_view(raw, minutes, now=latest_observed(raw))
    except (DataError, InvalidWindowError) as e:
        print(f"Error: {e}")
        return 1

    if not view.samples:
        print("  No data available for the selected time period")
        return 0
    print(f"  Samples: {len(view.samples)}")
    print(f"  Range:   {view.points[0].label} - {view.points[-1].label} UTC")
    print(f"  Average: ${view.average:.2f}")
    return 0


def correlate_command(args, settings: Settings) -> int:
    """Print the correlation grid for several tickers."""
    tickers = _parse_tickers(args.tickers)
    if len(tickers) < 2:
        print("Error: need at least two tickers")
        return 1
    minutes = args.minutes if args.minutes is not None else settings.default_window
    policy = args.policy or settings.policy

    print(f"Correlating {', '.join(tickers)} over the last {minutes} minutes ({policy})...")
    cache = _cache(settings)
    raw_by_ticker = {}
    for ticker in tickers:
        try:
            raw_by_ticker[ticker] = get_price_samples(ticker, minutes, cache=cache)
        except DataError as e:
            print(f"  Skipping {ticker}: {e}")
        except InvalidWindowError as e:
            print(f"Error: {e}")
            return 1

    try:
        view = build_correlation_view(
            raw_by_ticker,
            minutes,
            now=latest_observed(*raw_by_ticker.values()),
            policy=policy,
            bucket=settings.bucket
        )
    except InvalidWindowError as e:
        print(f"Error: {e}")
        return 1

    if view.excluded:
        print(f"  Excluded (fewer than 2 points): {', '.join(view.excluded)}")
    if len(view.matrix) == 0:
        print("  Not enough overlapping data to correlate")
        return 0
    print(f"  Aligned points: {view.length}")
    print(format_heatmap(view.matrix.to_heatmap()))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Stock Price Aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--config", default=None, help="Settings YAML file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    window_help = f"Window in minutes ({MIN_WINDOW}-{MAX_WINDOW}, step {WINDOW_STEP})"

    subparsers.add_parser("stocks", help="List selectable stocks")

    average_parser = subparsers.add_parser("average", help="Average price over a window")
    average_parser.add_argument("ticker", help="Ticker symbol")
    average_parser.add_argument("--minutes", type=int, default=None, help=window_help)

    correlate_parser = subparsers.add_parser("correlate", help="Correlation heatmap grid")
    correlate_parser.add_argument("tickers", help="Comma-separated tickers (e.g. AAPL,MSFT,NVDA)")
    correlate_parser.add_argument("--minutes", type=int, default=None, help=window_help)
    correlate_parser.add_argument("--policy", choices=POLICIES, default=None, help="Alignment policy")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        settings = load_settings(args.config)
    except ValueError as e:
        print(f"Error: invalid settings: {e}")
        sys.exit(1)

    commands = {
        "stocks": stocks_command,
        "average": average_command,
        "correlate": correlate_command,
    }
    if args.command not in commands:
        parser.print_help()
        sys.exit(1)

    sys.exit(commands[args.command](args, settings))


if __name__ == "__main__":
    main()
