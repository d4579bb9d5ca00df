"""
Trailing time window validation, filtering and the owning controller.

The window is an integer number of minutes in [MIN_WINDOW, MAX_WINDOW].
Out-of-range or non-integer requests are rejected, never clamped.
"""

import logging
import numbers
from typing import Optional, Sequence, List
import pandas as pd
from stock_aggregator.entities import PriceSample, WindowUpdate, to_utc_timestamp
from stock_aggregator.errors import InvalidWindowError

logger = logging.getLogger(__name__)

MIN_WINDOW = 5
MAX_WINDOW = 60
WINDOW_STEP = 5
DEFAULT_WINDOW = 30


def validate_window(value) -> int:
    """
    Validate a requested window size in minutes.

    Accepts Python/NumPy integers and base-10 integer strings (form input).
    Rejects booleans, floats, other strings and values outside
    [MIN_WINDOW, MAX_WINDOW].

    Returns:
        The window as a plain int

    Raises:
        InvalidWindowError: If the value is not an integer in range
    """
    if isinstance(value, bool):
        raise InvalidWindowError(f"window must be an integer, got {value!r}")

    if isinstance(value, numbers.Integral):
        minutes = int(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            minutes = int(text, 10)
        except ValueError:
            raise InvalidWindowError(f"window must be an integer, got {value!r}") from None
    else:
        raise InvalidWindowError(f"window must be an integer, got {value!r}")

    if not MIN_WINDOW <= minutes <= MAX_WINDOW:
        raise InvalidWindowError(
            f"window must be between {MIN_WINDOW} and {MAX_WINDOW} minutes, got {minutes}"
        )
    return minutes


def resolve_now(now=None) -> pd.Timestamp:
    """Return ``now`` as a UTC timestamp, defaulting to the current time."""
    if now is None:
        return pd.Timestamp.now(tz="UTC")
    return to_utc_timestamp(now)


def filter_window(
    samples: Sequence[PriceSample],
    window: int,
    now=None
) -> List[PriceSample]:
    """
    Keep samples observed within [now - window, now], both ends inclusive.

    Order is preserved.

    Raises:
        InvalidWindowError: If window is invalid
    """
    minutes = validate_window(window)
    end = resolve_now(now)
    start = end - pd.Timedelta(minutes=minutes)
    return [s for s in samples if start <= s.observed_at <= end]


class WindowController:
    """
    Owns the active window selection.

    Every accepted change bumps ``revision``. Callers tag recomputations
    with the revision they started from and discard results for which
    ``is_current`` is False (last request wins).

    Representation Invariants:
        - MIN_WINDOW <= window <= MAX_WINDOW
        - revision only increases, by one per accepted update
    """

    def __init__(self, initial: int = DEFAULT_WINDOW):
        """
        Raises:
            InvalidWindowError: If initial is not a valid window
        """
        self._window = validate_window(initial)
        self._revision = 0

    @property
    def window(self) -> int:
        return self._window

    @property
    def revision(self) -> int:
        return self._revision

    def set_window(self, value) -> WindowUpdate:
        """
        Request a new window. Never raises.

        On success the active window is replaced and the revision bumped;
        on failure both are left unchanged and the error is reported in the
        returned WindowUpdate.
        """
        try:
            minutes = validate_window(value)
        except InvalidWindowError as e:
            logger.info("rejected window %r, keeping %d", value, self._window)
            return WindowUpdate(
                accepted=False,
                window=self._window,
                revision=self._revision,
                error=str(e)
            )

        self._window = minutes
        self._revision += 1
        return WindowUpdate(accepted=True, window=self._window, revision=self._revision)

    def is_current(self, revision: Optional[int]) -> bool:
        """Whether a result computed at ``revision`` is still the latest."""
        return revision == self._revision

    def __repr__(self) -> str:
        return f"WindowController(window={self._window}, revision={self._revision})"
