"""Unit tests for data providers (local files, Binance klines) and the series contract."""

import json

import pytest

from conftest import JAN_1_2024, DAY_MS
from ladder_engine.core.errors import PriceSeriesError
from ladder_engine.core.types import PricePoint
from ladder_engine.data import FilePriceSeriesProvider, validate_series
from ladder_engine.data import binance as binance_data
from binance.exceptions import BinanceAPIException


def test_validate_series_accepts_gaps_and_equal_stamps():
    validate_series([PricePoint(1, 10.0), PricePoint(1, 11.0), PricePoint(500, 9.0)])
    validate_series([])


def test_validate_series_rejects_bad_input():
    with pytest.raises(PriceSeriesError, match="before previous"):
        validate_series([PricePoint(2, 10.0), PricePoint(1, 10.0)])
    with pytest.raises(PriceSeriesError, match="non-positive"):
        validate_series([PricePoint(1, 0.0)])


def write_json(path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_json_array_with_capitalized_columns(tmp_path):
    write_json(tmp_path / "BTC" / "BTC2024.json", [
        {"Date": "2024-01-02T00:00:00Z", "Open": 101, "High": 103, "Low": 100, "Close": 102},
        {"Date": "2024-01-01T00:00:00Z", "Open": 99, "High": 101.5, "Low": 98, "Close": 101},
    ])
    points = FilePriceSeriesProvider(tmp_path).fetch_year("btc", 2024)
    assert [p.timestamp for p in points] == [JAN_1_2024, JAN_1_2024 + DAY_MS]
    first = points[0]
    assert (first.open, first.high, first.low, first.price) == (99.0, 101.5, 98.0, 101.0)


def test_json_object_keyed_by_date_with_ms_timestamps(tmp_path):
    write_json(tmp_path / "ETH" / "ETH2024.json", {
        "2024-01-01": {"timestamp": JAN_1_2024, "open": 2000, "close": 2010},
        "2024-01-02": {"timestamp": JAN_1_2024 + DAY_MS, "open": 2010, "close": 1990},
    })
    points = FilePriceSeriesProvider(tmp_path).fetch_year("ETH", 2024)
    assert len(points) == 2
    assert points[1].price == 1990.0
    assert points[1].high is None


def test_csv_file_and_range_filter(tmp_path):
    (tmp_path / "SOL").mkdir()
    (tmp_path / "SOL" / "SOL2024.csv").write_text(
        "time,open,high,low,close\n"
        f"{JAN_1_2024},100,101,99,100.5\n"
        f"{JAN_1_2024 + DAY_MS},100.5,102,100,101\n"
        f"{JAN_1_2024 + 2 * DAY_MS},101,101,95,96\n",
        encoding="utf-8",
    )
    provider = FilePriceSeriesProvider(tmp_path)
    points = provider.fetch("SOL", JAN_1_2024 + DAY_MS, JAN_1_2024 + 2 * DAY_MS)
    assert [p.price for p in points] == [101.0]


def test_missing_file_returns_empty(tmp_path):
    assert FilePriceSeriesProvider(tmp_path).fetch_year("BTC", 2024) == []


def test_missing_close_column_rejected(tmp_path):
    write_json(tmp_path / "BTC" / "BTC2024.json", [{"Date": "2024-01-01", "Open": 1}])
    with pytest.raises(PriceSeriesError):
        FilePriceSeriesProvider(tmp_path).fetch_year("BTC", 2024)


class FakeFuturesClient:
    """Serves 1h klines from a fixed list, honoring startTime/endTime/limit."""

    def __init__(self, n):
        self.calls = 0
        self.rows = [
            [JAN_1_2024 + i * 3600_000, "100", "101", "99", str(100 + i), "5", 0]
            for i in range(n)
        ]

    def futures_klines(self, symbol, interval, startTime, endTime, limit):
        self.calls += 1
        rows = [r for r in self.rows if startTime <= r[0] <= endTime]
        return rows[:limit]

    def futures_exchange_info(self):
        return {"symbols": [{"symbol": "BTCUSDT", "filters": [{"filterType": "LOT_SIZE", "minQty": "0.01", "stepSize": "0.01"}]}]}


def test_binance_provider_paginates(monkeypatch):
    monkeypatch.setattr(binance_data, "KLINE_LIMIT", 2)
    client = FakeFuturesClient(5)
    provider = binance_data.BinanceKlineProvider(interval="1h", client=client)
    points = provider.fetch("btc", JAN_1_2024, JAN_1_2024 + DAY_MS)
    assert [p.price for p in points] == [100.0, 101.0, 102.0, 103.0, 104.0]
    assert client.calls == 3
    assert points[0].open == 100.0


def test_binance_token_info():
    provider = binance_data.BinanceKlineProvider(client=FakeFuturesClient(0))
    token = provider.token_info("BTC", leverage=3)
    assert token.min_qty == 0.01
    assert token.leverage == 3
    assert provider.token_info("DOGE") is None


def test_retry_on_rate_limit(monkeypatch):
    monkeypatch.setattr(binance_data.time, "sleep", lambda s: None)
    attempts = []

    @binance_data.retry_on_rate_limit(max_retries=3, base_delay=0.01)
    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise BinanceAPIException(None, 429, '{"code": -1003, "msg": "Too many requests"}')
        return "ok"

    assert flaky() == "ok"
    assert len(attempts) == 3


def test_retry_does_not_swallow_other_errors(monkeypatch):
    monkeypatch.setattr(binance_data.time, "sleep", lambda s: None)

    @binance_data.retry_on_rate_limit(max_retries=3)
    def broken():
        raise BinanceAPIException(None, 400, '{"code": -1121, "msg": "Invalid symbol"}')

    with pytest.raises(BinanceAPIException):
        broken()


def test_binance_provider_passes_testnet_flag(monkeypatch):
    built = {}

    class RecordingClient:
        def __init__(self, api_key=None, api_secret=None, **kwargs):
            built.update(kwargs, api_key=api_key)

    monkeypatch.setattr(binance_data, "Client", RecordingClient)
    binance_data.BinanceKlineProvider("key", "secret", testnet=True)
    assert built == {"api_key": "key", "testnet": True}
