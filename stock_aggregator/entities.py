"""
Core entity classes (ADTs) for the aggregator.

These classes represent the data flowing between the normalizer, the
average calculator, the aligner and the correlation builder. All of them
are read-only once constructed.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union
import pandas as pd
import numpy as np


def to_utc_timestamp(value) -> pd.Timestamp:
    """
    Parse a timestamp into a timezone-aware UTC pd.Timestamp.

    Naive values are taken to be UTC already.

    Raises:
        ValueError: If the value cannot be parsed or is NaT
    """
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        raise ValueError(f"not a timestamp: {value!r}")
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


@dataclass(frozen=True)
class PriceSample:
    """
    One observed (price, timestamp) pair for a ticker.

    Attributes:
        price: Observed price (expected > 0, not enforced)
        observed_at: Observation time, timezone-aware UTC

    Representation Invariants:
        - price is a finite float
        - observed_at is a tz-aware UTC pd.Timestamp
    """
    price: float
    observed_at: pd.Timestamp

    def __post_init__(self):
        """Coerce fields and validate representation invariants."""
        price = float(self.price)
        if not np.isfinite(price):
            raise ValueError(f"price must be finite, got {self.price!r}")
        object.__setattr__(self, "price", price)
        object.__setattr__(self, "observed_at", to_utc_timestamp(self.observed_at))


@dataclass(frozen=True)
class SingleSample:
    """Fetch result carrying one nested price point (``{"stock": {...}}``)."""
    record: dict


@dataclass(frozen=True)
class SampleList:
    """Fetch result carrying an ordered list of price records."""
    records: Tuple = ()


SamplePayload = Union[SingleSample, SampleList]


class PriceSeries:
    """
    A normalized sequence of price samples for one ticker.

    Representation Invariants:
        - samples are sorted ascending by observed_at
        - samples sharing a timestamp keep their arrival order
    """

    def __init__(self, ticker: str, samples: Sequence[PriceSample]):
        if not ticker:
            raise ValueError("ticker cannot be empty")
        self._ticker = ticker
        self._samples = tuple(sorted(samples, key=lambda s: s.observed_at))

    @property
    def ticker(self) -> str:
        return self._ticker

    @property
    def samples(self) -> Tuple[PriceSample, ...]:
        return self._samples

    @property
    def prices(self) -> pd.Series:
        """Prices indexed by observation time (duplicate timestamps kept)."""
        index = pd.DatetimeIndex([s.observed_at for s in self._samples], tz="UTC")
        return pd.Series([s.price for s in self._samples], index=index, dtype="float64", name=self._ticker)

    def __len__(self) -> int:
        return len(self._samples)

    def __repr__(self) -> str:
        return f"PriceSeries({self._ticker}, {len(self)} samples)"


class _UndefinedCorrelation:
    """Sentinel for a correlation that does not exist (zero-variance series)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __reduce__(self):
        return (_UndefinedCorrelation, ())


UNDEFINED_CORRELATION = _UndefinedCorrelation()

Correlation = Union[float, _UndefinedCorrelation]


@dataclass(frozen=True)
class AlignedSeries:
    """
    Per-ticker price series made point-for-point comparable.

    Attributes:
        frame: One float column per kept ticker, all of equal length
        policy: Alignment policy used ("bucket" or "truncate")
        excluded: Tickers dropped for having fewer than 2 points

    Representation Invariants:
        - frame has no NaN values
        - frame is empty (no columns) or has at least 2 rows
    """
    frame: pd.DataFrame
    policy: str
    excluded: Tuple[str, ...] = ()

    @property
    def tickers(self) -> List[str]:
        return list(self.frame.columns)

    def __len__(self) -> int:
        return len(self.frame)


class CorrelationMatrix:
    """
    Symmetric table of pairwise Pearson coefficients keyed by ticker.

    Cells are floats in [-1, 1] or UNDEFINED_CORRELATION. Undefined cells
    are tracked with a separate mask so NaN never leaks out of ``get``.

    Representation Invariants:
        - values is square, symmetric and indexed by tickers on both axes
        - defined is a boolean frame with the same shape as values
        - defined[i, i] is False only for zero-variance series
    """

    def __init__(self, values: pd.DataFrame, defined: pd.DataFrame):
        if list(values.index) != list(values.columns):
            raise ValueError("values must be indexed by the same tickers on both axes")
        if values.shape != defined.shape:
            raise ValueError("defined mask must match values shape")
        self._values = values
        self._defined = defined.astype(bool)

    @classmethod
    def empty(cls) -> "CorrelationMatrix":
        return cls(pd.DataFrame(dtype="float64"), pd.DataFrame(dtype=bool))

    @property
    def tickers(self) -> List[str]:
        return list(self._values.index)

    def get(self, a: str, b: str) -> Correlation:
        """
        Return corr(a, b).

        Raises:
            KeyError: If either ticker is not in the matrix
        """
        if not self._defined.loc[a, b]:
            return UNDEFINED_CORRELATION
        return float(self._values.loc[a, b])

    def is_defined(self, a: str, b: str) -> bool:
        return bool(self._defined.loc[a, b])

    def to_heatmap(self) -> Dict[str, list]:
        """
        Grid for a heatmap: rows and columns follow ``tickers``.

        Undefined cells are None so the rendering layer can draw a blank.
        """
        tickers = self.tickers
        cells = [
            [self._cell(a, b) for b in tickers]
            for a in tickers
        ]
        return {"tickers": tickers, "cells": cells}

    def _cell(self, a: str, b: str) -> Optional[float]:
        value = self.get(a, b)
        return None if value is UNDEFINED_CORRELATION else value

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"CorrelationMatrix({', '.join(self.tickers)})"


@dataclass(frozen=True)
class ChartPoint:
    """One x-position of the price chart with its flat average line."""
    label: str
    observed_at: pd.Timestamp
    price: float
    average: float


@dataclass(frozen=True)
class AverageView:
    """Single-ticker output: mean price plus the sorted samples for charting."""
    average: float
    samples: Tuple[PriceSample, ...] = ()
    points: Tuple[ChartPoint, ...] = ()

    def to_dict(self) -> dict:
        return {
            "average": self.average,
            "samples": [
                {"price": s.price, "observedAt": s.observed_at.isoformat()}
                for s in self.samples
            ],
            "chart": {
                "labels": [p.label for p in self.points],
                "prices": [p.price for p in self.points],
                "average": [p.average for p in self.points],
            },
        }


@dataclass(frozen=True)
class CorrelationView:
    """Multi-ticker output: correlation matrix and how it was aligned."""
    matrix: CorrelationMatrix
    window: int
    policy: str
    length: int = 0
    excluded: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        heatmap = self.matrix.to_heatmap()
        return {
            "window": self.window,
            "policy": self.policy,
            "length": self.length,
            "excluded": list(self.excluded),
            "tickers": heatmap["tickers"],
            "cells": heatmap["cells"],
        }


@dataclass(frozen=True)
class WindowUpdate:
    """
    Result of a window change request.

    Attributes:
        accepted: Whether the requested window was applied
        window: Active window after the request
        revision: Controller revision after the request
        error: Validation message when rejected, else None
    """
    accepted: bool
    window: int
    revision: int
    error: Optional[str] = None

    @property
    def recompute(self) -> bool:
        """Dependent aligned series and matrices must be rebuilt."""
        return self.accepted
