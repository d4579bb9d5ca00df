"""
Normalization of raw fetch results into ordered price samples.

The fetch boundary tags each response once with ``parse_payload`` as either
a single nested point or a list of records; ``normalize`` turns either tag
into a sorted list of PriceSample, dropping malformed records.
"""

import logging
from collections.abc import Mapping
from typing import Iterable, List, Optional, Union
from stock_aggregator.entities import PriceSample, SampleList, SamplePayload, SingleSample

logger = logging.getLogger(__name__)

PRICE_FIELD = "price"
TIMESTAMP_FIELDS = ("lastUpdatedAt", "observed_at", "observedAt")
SINGLE_POINT_KEY = "stock"


def parse_payload(raw) -> SamplePayload:
    """
    Tag a raw fetch result.

    A mapping with a nested ``"stock"`` record is a single point, any list
    or tuple is a list of records. Anything else (None, scalars, mappings
    without the nested record) yields an empty SampleList.

    Args:
        raw: Decoded JSON from the price source

    Returns:
        SingleSample or SampleList
    """
    if isinstance(raw, (SingleSample, SampleList)):
        return raw
    if isinstance(raw, Mapping):
        record = raw.get(SINGLE_POINT_KEY)
        if isinstance(record, Mapping):
            return SingleSample(record=dict(record))
        logger.debug("mapping payload without a nested %r record", SINGLE_POINT_KEY)
        return SampleList()
    if isinstance(raw, (list, tuple)):
        return SampleList(records=tuple(raw))
    if raw is not None:
        logger.debug("unrecognized payload type %s", type(raw).__name__)
    return SampleList()


def parse_record(record) -> Optional[PriceSample]:
    """
    Convert one record into a PriceSample.

    Returns None for malformed records: missing or non-numeric price,
    missing or unparseable timestamp.
    """
    if isinstance(record, PriceSample):
        return record
    if not isinstance(record, Mapping):
        return None

    price = record.get(PRICE_FIELD)
    if price is None or isinstance(price, bool):
        return None

    timestamp = None
    for name in TIMESTAMP_FIELDS:
        if record.get(name) is not None:
            timestamp = record[name]
            break
    if timestamp is None:
        return None

    try:
        return PriceSample(price=price, observed_at=timestamp)
    except (TypeError, ValueError, OverflowError):
        return None


def normalize(payload: Union[SamplePayload, Iterable]) -> List[PriceSample]:
    """
    Coerce a fetch result into an ordered list of price samples.

    Preconditions:
        - payload is a SingleSample, a SampleList, an untagged fetch
          result (tagged here via parse_payload), or an iterable of
          records / PriceSample objects (already-normalized output)

    Postconditions:
        - Result is sorted ascending by observed_at
        - Samples with identical timestamps keep their arrival order
        - Malformed records are dropped, never raised
        - normalize(normalize(x)) == normalize(x)

    Returns:
        List of PriceSample (length 0, 1 or N)
    """
    if isinstance(payload, (Mapping, str, bytes)):
        payload = parse_payload(payload)

    if isinstance(payload, SingleSample):
        records = [payload.record]
    elif isinstance(payload, SampleList):
        records = list(payload.records)
    elif payload is None:
        records = []
    else:
        records = list(payload)

    samples = []
    dropped = 0
    for record in records:
        sample = parse_record(record)
        if sample is None:
            dropped += 1
            continue
        samples.append(sample)

    if dropped:
        logger.info("dropped %d malformed record(s) of %d", dropped, len(records))

    # sorted() is stable, so equal timestamps stay in arrival order
    return sorted(samples, key=lambda s: s.observed_at)
