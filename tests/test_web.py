"""
Tests for the FastAPI interface.

Price downloads are patched, so no network access is needed.
"""

import inspect
import pytest
import pandas as pd
from unittest.mock import patch
from fastapi.testclient import TestClient
from stock_aggregator import web
from stock_aggregator.analytics.window import WindowController
from stock_aggregator.errors import DataError
from conftest import make_records


@pytest.fixture
def client():
    web.app.state.window_controller = WindowController(15)
    return TestClient(web.app)


def fake_samples(prices_by_ticker):
    def _get(ticker, minutes, cache=None, use_cache=True):
        if ticker not in prices_by_ticker:
            raise DataError(f"No data returned for {ticker}")
        return make_records(prices_by_ticker[ticker])
    return _get


class TestStocksEndpoints:
    """Tests for /api/stocks endpoints."""

    def test_list_stocks(self, client):
        response = client.get("/api/stocks")
        assert response.status_code == 200
        assert "AAPL" in response.json()["stocks"].values()

    def test_average(self, client):
        with patch.object(web, "get_price_samples", side_effect=fake_samples({"AAPL": [100, 110, 90]})) as mock_get:
            response = client.get("/api/stocks/aapl", params={"minutes": 5})
        assert response.status_code == 200
        data = response.json()
        assert data["ticker"] == "AAPL"
        assert data["minutes"] == 5
        assert data["average"] == pytest.approx(100.0)
        assert len(data["chart"]["labels"]) == 3
        assert mock_get.call_args[0][:2] == ("AAPL", 5)

    def test_average_uses_active_window(self, client):
        with patch.object(web, "get_price_samples", side_effect=fake_samples({"AAPL": [1, 2]})) as mock_get:
            response = client.get("/api/stocks/AAPL")
        assert response.status_code == 200
        assert response.json()["minutes"] == 15
        assert mock_get.call_args[0][1] == 15

    def test_invalid_window_is_400(self, client):
        response = client.get("/api/stocks/AAPL", params={"minutes": 3})
        assert response.status_code == 400

    def test_invalid_ticker_is_400(self, client):
        response = client.get("/api/stocks/$$$")
        assert response.status_code == 400

    def test_fetch_failure_is_502(self, client):
        with patch.object(web, "get_price_samples", side_effect=fake_samples({})):
            response = client.get("/api/stocks/AAPL", params={"minutes": 5})
        assert response.status_code == 502


class TestWindowEndpoints:
    """Tests for /api/window."""

    def test_get_window(self, client):
        assert client.get("/api/window").json() == {"minutes": 15, "revision": 0}

    def test_put_window(self, client):
        response = client.put("/api/window", json={"minutes": 30})
        assert response.status_code == 200
        assert response.json() == {"minutes": 30, "revision": 1}
        assert client.get("/api/window").json()["minutes"] == 30

    def test_rejected_put_keeps_window(self, client):
        response = client.put("/api/window", json={"minutes": 3})
        assert response.status_code == 400
        assert client.get("/api/window").json() == {"minutes": 15, "revision": 0}


class TestCorrelationEndpoint:
    """Tests for /api/correlation."""

    def test_heatmap(self, client):
        prices = {"AAPL": [100, 110, 90], "MSFT": [100, 110, 90], "FLAT": [50, 50, 50]}
        with patch.object(web, "get_price_samples", side_effect=fake_samples(prices)):
            response = client.get("/api/correlation", params={"tickers": "AAPL,MSFT,FLAT", "minutes": 5})
        assert response.status_code == 200
        data = response.json()
        assert data["tickers"] == ["AAPL", "MSFT", "FLAT"]
        assert data["cells"][0][1] == pytest.approx(1.0)
        assert data["cells"][2] == [None, None, None]
        assert data["length"] == 3

    def test_needs_two_tickers(self, client):
        response = client.get("/api/correlation", params={"tickers": "AAPL"})
        assert response.status_code == 400

    def test_duplicate_tickers_collapsed(self, client):
        response = client.get("/api/correlation", params={"tickers": "AAPL,aapl"})
        assert response.status_code == 400

    def test_too_many_tickers(self, client):
        tickers = ",".join(f"T{i}" for i in range(25))
        response = client.get("/api/correlation", params={"tickers": tickers})
        assert response.status_code == 400

    def test_invalid_policy(self, client):
        response = client.get("/api/correlation", params={"tickers": "AAPL,MSFT", "policy": "nearest"})
        assert response.status_code == 400

    def test_partial_fetch_failure_degrades(self, client):
        """Test that one failing download leaves the rest of the heatmap intact."""
        prices = {"AAPL": [100, 110, 90], "MSFT": [100, 110, 90]}
        with patch.object(web, "get_price_samples", side_effect=fake_samples(prices)):
            response = client.get("/api/correlation", params={"tickers": "AAPL,BAD,MSFT", "minutes": 5})
        assert response.status_code == 200
        data = response.json()
        assert data["tickers"] == ["AAPL", "MSFT"]
        assert data["cells"][0][1] == pytest.approx(1.0)
        assert data["excluded"] == ["BAD"]
        assert "BAD" in data["failed"]

    def test_every_fetch_failing_is_502(self, client):
        with patch.object(web, "get_price_samples", side_effect=fake_samples({})):
            response = client.get("/api/correlation", params={"tickers": "AAPL,MSFT", "minutes": 5})
        assert response.status_code == 502


class TestWindowStrictness:
    """Tests that only integer windows are accepted over HTTP."""

    @pytest.mark.parametrize("minutes", [20.0, 12.5, True])
    def test_non_integer_json_rejected(self, client, minutes):
        response = client.put("/api/window", json={"minutes": minutes})
        assert response.status_code in (400, 422)
        assert client.get("/api/window").json() == {"minutes": 15, "revision": 0}

    def test_integer_string_accepted(self, client):
        response = client.put("/api/window", json={"minutes": "20"})
        assert response.status_code == 200
        assert response.json()["minutes"] == 20


class TestLatestEndpoint:
    """Tests for /api/stocks/{ticker}/latest."""

    def test_latest_single_point(self, client):
        latest = {"stock": {"price": 960.57416, "lastUpdatedAt": "2025-05-08T04:26:27.465Z"}}
        with patch.object(web, "get_latest_sample", return_value=latest) as mock_latest:
            response = client.get("/api/stocks/nvda/latest")
        assert response.status_code == 200
        data = response.json()
        assert data["ticker"] == "NVDA"
        assert data["price"] == pytest.approx(960.57416)
        assert data["lastUpdatedAt"].startswith("2025-05-08T04:26:27.465")
        mock_latest.assert_called_once_with("NVDA")

    def test_latest_fetch_failure_is_502(self, client):
        with patch.object(web, "get_latest_sample", side_effect=DataError("No data returned for NVDA")):
            response = client.get("/api/stocks/NVDA/latest")
        assert response.status_code == 502

    def test_malformed_latest_is_502(self, client):
        with patch.object(web, "get_latest_sample", return_value={"stock": {"price": 1.0}}):
            response = client.get("/api/stocks/NVDA/latest")
        assert response.status_code == 502


def test_downloading_handlers_run_in_threadpool():
    """Handlers that call yfinance must be plain functions, not coroutines."""
    for handler in (web.stock_average, web.stock_latest, web.correlation):
        assert not inspect.iscoroutinefunction(handler)
