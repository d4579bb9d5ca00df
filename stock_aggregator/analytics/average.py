"""Arithmetic mean of prices and the chart data built around it."""

from typing import List, Sequence
import numpy as np
from stock_aggregator.entities import AverageView, ChartPoint, PriceSample

LABEL_FORMAT = "%H:%M:%S"


def average_price(samples: Sequence[PriceSample]) -> float:
    """
    Mean price over a sample set.

    Plain sum divided by count: every sample counts the same regardless
    of the time gap to its neighbours. An empty sequence averages to 0.0.
    """
    if len(samples) == 0:
        return 0.0
    prices = np.fromiter((s.price for s in samples), dtype=np.float64, count=len(samples))
    return float(prices.sum() / len(prices))


def chart_points(samples: Sequence[PriceSample], average: float) -> List[ChartPoint]:
    """Price line plus a flat average line, one point per sample, in time order."""
    ordered = sorted(samples, key=lambda s: s.observed_at)
    return [
        ChartPoint(
            label=s.observed_at.strftime(LABEL_FORMAT),
            observed_at=s.observed_at,
            price=s.price,
            average=average,
        )
        for s in ordered
    ]


def average_view(samples: Sequence[PriceSample]) -> AverageView:
    """Bundle the average with the sorted samples and chart points."""
    ordered = tuple(sorted(samples, key=lambda s: s.observed_at))
    average = average_price(ordered)
    return AverageView(
        average=average,
        samples=ordered,
        points=tuple(chart_points(ordered, average)),
    )
