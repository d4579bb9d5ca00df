"""
Tests for sample normalization.

Tests cover:
- Payload tagging (single nested point vs list)
- Sorting and stable ordering of duplicate timestamps
- Dropping malformed records
- Idempotence
"""

import pytest
import pandas as pd
from stock_aggregator.entities import PriceSample, SampleList, SingleSample
from stock_aggregator.analytics.normalize import normalize, parse_payload, parse_record


class TestParsePayload:
    """Tests for parse_payload."""

    def test_nested_stock_is_single_sample(self):
        """Test that {"stock": {...}} is tagged as a single point."""
        raw = {"stock": {"price": 960.57416, "lastUpdatedAt": "2025-05-08T04:26:27.465Z"}}
        payload = parse_payload(raw)
        assert isinstance(payload, SingleSample)
        assert payload.record["price"] == 960.57416

    def test_list_is_sample_list(self):
        """Test that a list is tagged as a sample list."""
        raw = [{"price": 1.0, "lastUpdatedAt": "2025-05-08T04:26:27Z"}]
        payload = parse_payload(raw)
        assert isinstance(payload, SampleList)
        assert len(payload.records) == 1

    def test_unknown_shapes_are_empty(self):
        """Test that None, scalars and mappings without a record are empty lists."""
        for raw in (None, 42, "text", {"other": 1}, {"stock": 5}):
            payload = parse_payload(raw)
            assert isinstance(payload, SampleList)
            assert payload.records == ()

    def test_already_tagged_passes_through(self):
        """Test that a tagged payload is returned unchanged."""
        payload = SampleList(records=({"price": 1, "lastUpdatedAt": "2025-01-01"},))
        assert parse_payload(payload) is payload


class TestParseRecord:
    """Tests for parse_record."""

    def test_valid_record(self):
        sample = parse_record({"price": 100, "lastUpdatedAt": "2025-05-08T10:00:00Z"})
        assert sample.price == 100.0
        assert sample.observed_at == pd.Timestamp("2025-05-08T10:00:00Z")

    def test_naive_timestamp_is_utc(self):
        sample = parse_record({"price": 100, "lastUpdatedAt": "2025-05-08T10:00:00"})
        assert str(sample.observed_at.tz) == "UTC"

    def test_alias_timestamp_fields(self):
        sample = parse_record({"price": 5, "observedAt": "2025-05-08T10:00:00Z"})
        assert sample is not None

    @pytest.mark.parametrize("record", [
        {"lastUpdatedAt": "2025-05-08T10:00:00Z"},
        {"price": 100},
        {"price": None, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        {"price": "abc", "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        {"price": True, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        {"price": float("nan"), "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        {"price": 100, "lastUpdatedAt": "not a date"},
        "not a record",
        None,
    ])
    def test_malformed_records_return_none(self, record):
        """Test that malformed records are rejected without raising."""
        assert parse_record(record) is None


class TestNormalize:
    """Tests for normalize."""

    def test_single_sample_yields_one(self):
        raw = {"stock": {"price": 960.5, "lastUpdatedAt": "2025-05-08T04:26:27Z"}}
        samples = normalize(parse_payload(raw))
        assert len(samples) == 1
        assert samples[0].price == 960.5

    def test_sorted_ascending(self):
        """Test that output is sorted by timestamp."""
        raw = [
            {"price": 3, "lastUpdatedAt": "2025-05-08T10:02:00Z"},
            {"price": 1, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
            {"price": 2, "lastUpdatedAt": "2025-05-08T10:01:00Z"},
        ]
        samples = normalize(parse_payload(raw))
        assert [s.price for s in samples] == [1.0, 2.0, 3.0]

    def test_duplicate_timestamps_keep_arrival_order(self):
        """Test that identical timestamps are retained in arrival order."""
        raw = [
            {"price": 7, "lastUpdatedAt": "2025-05-08T10:01:00Z"},
            {"price": 5, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
            {"price": 6, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        ]
        samples = normalize(parse_payload(raw))
        assert [s.price for s in samples] == [5.0, 6.0, 7.0]

    def test_malformed_dropped_not_fatal(self):
        """Test that one bad record does not blank the batch."""
        raw = [
            {"price": 1, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
            {"price": 2},
            {"lastUpdatedAt": "2025-05-08T10:02:00Z"},
            {"price": 4, "lastUpdatedAt": "2025-05-08T10:03:00Z"},
        ]
        samples = normalize(parse_payload(raw))
        assert [s.price for s in samples] == [1.0, 4.0]

    def test_mixed_timezones_ordered_by_instant(self):
        raw = [
            {"price": 1, "lastUpdatedAt": "2025-05-08T06:30:00-04:00"},  # 10:30 UTC
            {"price": 2, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        ]
        samples = normalize(parse_payload(raw))
        assert [s.price for s in samples] == [2.0, 1.0]

    def test_empty(self):
        assert normalize(parse_payload([])) == []
        assert normalize(None) == []

    def test_idempotent(self):
        """Test that normalizing normalized output changes nothing."""
        raw = [
            {"price": 3, "lastUpdatedAt": "2025-05-08T10:02:00Z"},
            {"price": 1, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
            {"price": 2, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        ]
        once = normalize(parse_payload(raw))
        twice = normalize(once)
        assert twice == once
        assert normalize(SampleList(records=tuple(once))) == once

    def test_input_not_mutated(self):
        raw = [
            {"price": 2, "lastUpdatedAt": "2025-05-08T10:01:00Z"},
            {"price": 1, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        ]
        normalize(parse_payload(raw))
        assert raw[0]["price"] == 2

    def test_price_sample_is_immutable(self):
        sample = PriceSample(price=1.0, observed_at="2025-05-08T10:00:00Z")
        with pytest.raises(Exception):
            sample.price = 2.0

    def test_untagged_single_point_routed(self):
        """Test that a raw {"stock": {...}} mapping normalizes to one sample."""
        raw = {"stock": {"price": 10.0, "lastUpdatedAt": "2025-05-08T10:00:00Z"}}
        samples = normalize(raw)
        assert len(samples) == 1
        assert samples[0].price == 10.0
        assert samples[0].observed_at == pd.Timestamp("2025-05-08T10:00:00Z")

    def test_untagged_list_matches_tagged(self):
        raw = [
            {"price": 2, "lastUpdatedAt": "2025-05-08T10:01:00Z"},
            {"price": 1, "lastUpdatedAt": "2025-05-08T10:00:00Z"},
        ]
        assert normalize(raw) == normalize(parse_payload(raw))

    def test_string_payload_is_empty(self):
        """Test that a string is not walked character by character."""
        assert normalize("2025-05-08T10:00:00Z") == []
        assert normalize({"other": 1}) == []
