"""Shared fixtures for building samples relative to a fixed clock."""

import pytest
import pandas as pd
from stock_aggregator.entities import PriceSample

T0 = pd.Timestamp("2025-05-08T14:00:00Z")


def make_samples(prices, start=T0, step_seconds=60):
    """PriceSamples spaced step_seconds apart starting at start."""
    return [
        PriceSample(price=p, observed_at=start + pd.Timedelta(seconds=i * step_seconds))
        for i, p in enumerate(prices)
    ]


def make_records(prices, start=T0, step_seconds=60):
    """Raw upstream records spaced step_seconds apart starting at start."""
    return [
        {"price": p, "lastUpdatedAt": (start + pd.Timedelta(seconds=i * step_seconds)).isoformat()}
        for i, p in enumerate(prices)
    ]


@pytest.fixture
def t0():
    return T0
