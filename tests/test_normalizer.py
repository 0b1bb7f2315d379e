"""Tests for src/trendseeker/normalizer.py."""

from datetime import date, datetime, timezone

import pytest

from trendseeker.errors import MalformedPayload, SymbolNotFound, UpstreamRateLimited
from trendseeker.models import SearchResult
from trendseeker.normalizer import (
    normalize_history,
    normalize_quote,
    normalize_search,
    normalize_symbol,
    safe_float,
)


# --- symbols ---

def test_normalize_symbol_strips_and_uppercases():
    assert normalize_symbol("  aapl ") == "AAPL"


@pytest.mark.parametrize("symbol", ["", "   ", None])
def test_normalize_symbol_rejects_blank(symbol):
    with pytest.raises(ValueError):
        normalize_symbol(symbol)


# --- safe_float ---

def test_safe_float_parses_percent_strings():
    assert safe_float("1.69%") == 1.69


@pytest.mark.parametrize("value", [None, "", "-", "nan", "abc", float("nan"), True])
def test_safe_float_rejects_unusable_values(value):
    assert safe_float(value) is None


# --- quotes ---

def test_canonical_quote_derives_change_fields():
    q = normalize_quote({"price": 110.0, "previous_close": 100.0, "volume": 42}, "xyz")
    assert q.symbol == "XYZ"
    assert q.change == pytest.approx(10.0)
    assert q.change_percent == pytest.approx(10.0)
    assert q.volume == 42


def test_zero_previous_close_gives_zero_change_percent():
    q = normalize_quote({"price": 5.0, "previous_close": 0}, "XYZ")
    assert q.change == 5.0
    assert q.change_percent == 0.0


def test_missing_optional_fields_default_to_zero():
    q = normalize_quote({"price": 5.0}, "XYZ")
    assert (q.high, q.low, q.open, q.previous_close, q.volume) == (0.0, 0.0, 0.0, 0.0, 0)


def test_provided_change_fields_are_kept():
    q = normalize_quote(
        {"price": 110.0, "previousClose": 100.0, "change": 9.0, "changePercent": 8.5}, "XYZ"
    )
    assert q.change == 9.0
    assert q.change_percent == 8.5


def test_inverted_day_range_is_swapped():
    q = normalize_quote({"price": 10.0, "high": 9.0, "low": 11.0}, "XYZ")
    assert (q.high, q.low) == (11.0, 9.0)


def test_fetched_at_is_stamped():
    at = datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert normalize_quote({"price": 1.0}, "XYZ", fetched_at=at).fetched_at == at


def test_alpha_vantage_global_quote():
    raw = {
        "Global Quote": {
            "01. symbol": "IBM",
            "02. open": "150.00",
            "03. high": "152.00",
            "04. low": "148.00",
            "05. price": "151.00",
            "06. volume": "1000000",
            "08. previous close": "147.50",
            "09. change": "3.50",
            "10. change percent": "2.3729%",
        }
    }
    q = normalize_quote(raw, "IBM", "alpha_vantage")
    assert q.price == 151.0
    assert q.change == 3.5
    assert q.change_percent == pytest.approx(2.3729)
    assert q.volume == 1_000_000
    assert q.previous_close == 147.5


def test_alpha_vantage_empty_envelope_is_symbol_not_found():
    with pytest.raises(SymbolNotFound):
        normalize_quote({"Global Quote": {}}, "NOPE", "alpha_vantage")


def test_yahoo_quote_fields():
    raw = {
        "regularMarketPrice": 200.0,
        "regularMarketPreviousClose": 190.0,
        "regularMarketDayHigh": 201.0,
        "regularMarketDayLow": 195.0,
        "regularMarketVolume": 12345.0,
        "marketCap": 3e12,
        "currency": "USD",
    }
    q = normalize_quote(raw, "AAPL", "yahoo")
    assert q.price == 200.0
    assert q.change == 10.0
    assert q.market_cap == 3e12
    assert q.volume == 12345


def test_finnhub_quote_fields():
    q = normalize_quote({"c": 10.0, "pc": 8.0, "d": 2.0, "dp": 25.0, "h": 11, "l": 9}, "X", "finnhub")
    assert (q.price, q.change, q.change_percent, q.high, q.low) == (10.0, 2.0, 25.0, 11.0, 9.0)


def test_none_payload_is_symbol_not_found():
    with pytest.raises(SymbolNotFound) as exc:
        normalize_quote(None, "NOPE")
    assert exc.value.symbol == "NOPE"


def test_empty_mapping_is_symbol_not_found():
    with pytest.raises(SymbolNotFound):
        normalize_quote({}, "NOPE")


def test_non_mapping_is_malformed():
    with pytest.raises(MalformedPayload):
        normalize_quote([1, 2, 3], "XYZ")


def test_unparseable_price_is_malformed():
    with pytest.raises(MalformedPayload):
        normalize_quote({"price": "abc"}, "XYZ")


def test_negative_price_is_malformed():
    with pytest.raises(MalformedPayload):
        normalize_quote({"price": -1.0}, "XYZ")


def test_unknown_payload_format_raises():
    with pytest.raises(ValueError):
        normalize_quote({"price": 1.0}, "XYZ", "bloomberg")


def test_yahoo_fundamentals():
    raw = {
        "regularMarketPrice": 200.0,
        "trailingPE": 31.5,
        "epsTrailingTwelveMonths": 6.35,
        "dividendRate": 1.0,
        "dividendYield": 0.005,
        "beta": 1.2,
        "fiftyTwoWeekHigh": 260.0,
        "fiftyTwoWeekLow": 165.0,
        "sector": "Technology",
        "industry": "Consumer Electronics",
        "fullExchangeName": "NasdaqGS",
    }
    q = normalize_quote(raw, "AAPL", "yahoo")
    assert (q.pe, q.eps, q.dividend, q.beta) == (31.5, 6.35, 1.0, 1.2)
    assert q.dividend_yield == pytest.approx(0.5)
    assert (q.high_52_week, q.low_52_week) == (260.0, 165.0)
    assert (q.sector, q.industry, q.exchange) == ("Technology", "Consumer Electronics", "NasdaqGS")


def test_inverted_52_week_range_is_swapped():
    q = normalize_quote({"price": 10.0, "high_52_week": 8.0, "low_52_week": 12.0}, "XYZ")
    assert (q.high_52_week, q.low_52_week) == (12.0, 8.0)


def test_canonical_fundamentals_default_to_empty():
    q = normalize_quote({"price": 10.0}, "XYZ")
    assert (q.pe, q.eps, q.dividend_yield, q.high_52_week) == (0.0, 0.0, 0.0, 0.0)
    assert (q.sector, q.industry, q.exchange) == ("", "", "")


@pytest.mark.parametrize("key", ["Note", "Information"])
def test_alpha_vantage_throttle_notice_is_rate_limited(key):
    with pytest.raises(UpstreamRateLimited) as exc:
        normalize_quote({key: "API call frequency exceeded"}, "IBM", "alpha_vantage")
    assert exc.value.retryable
    assert exc.value.symbol == "IBM"


def test_finnhub_all_zero_quote_is_symbol_not_found():
    raw = {"c": 0, "d": None, "dp": None, "h": 0, "l": 0, "o": 0, "pc": 0, "t": 0}
    with pytest.raises(SymbolNotFound):
        normalize_quote(raw, "NOPE", "finnhub")


# --- history ---

def _row(day, close, **extra):
    return dict({"date": day, "open": close, "high": close + 1, "low": close - 1, "close": close}, **extra)


def test_history_is_sorted_ascending():
    bars = normalize_history(
        [_row("2024-01-03", 3.0), _row("2024-01-01", 1.0), _row("2024-01-02", 2.0)], "XYZ"
    )
    assert [b.date for b in bars] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]


def test_history_keeps_most_recent_lookback_bars():
    rows = [_row(f"2024-01-{d:02d}", float(d)) for d in range(1, 31)]
    bars = normalize_history(rows, "XYZ", lookback_bars=10)
    assert len(bars) == 10
    assert bars[0].close == 21.0
    assert bars[-1].close == 30.0


def test_history_duplicate_dates_keep_last_row():
    bars = normalize_history([_row("2024-01-01", 1.0), _row("2024-01-01", 5.0)], "XYZ")
    assert len(bars) == 1
    assert bars[0].close == 5.0


def test_history_skips_rows_without_close():
    rows = [_row("2024-01-01", 1.0), {"date": "2024-01-02", "close": None}, _row("2024-01-03", 3.0)]
    bars = normalize_history(rows, "XYZ")
    assert [b.close for b in bars] == [1.0, 3.0]


def test_history_fills_missing_ohl_from_close():
    bars = normalize_history([{"date": "2024-01-01", "close": 4.0}], "XYZ")
    assert (bars[0].open, bars[0].high, bars[0].low, bars[0].volume) == (4.0, 4.0, 4.0, 0)


def test_history_accepts_date_objects_and_capitalized_columns():
    bars = normalize_history(
        [{"Date": datetime(2024, 1, 2, 16, 0), "Open": 1, "High": 2, "Low": 0.5, "Close": 1.5, "Volume": 7}],
        "XYZ",
        payload_format="yahoo",
    )
    assert bars[0].date == date(2024, 1, 2)
    assert bars[0].volume == 7


def test_empty_history_is_symbol_not_found():
    with pytest.raises(SymbolNotFound):
        normalize_history([], "NOPE")


def test_none_history_is_symbol_not_found():
    with pytest.raises(SymbolNotFound):
        normalize_history(None, "NOPE")


def test_history_without_usable_rows_is_malformed():
    with pytest.raises(MalformedPayload):
        normalize_history([{"date": "garbage", "close": 1.0}, {"foo": "bar"}], "XYZ")


def test_canonical_history_must_be_a_sequence():
    with pytest.raises(MalformedPayload):
        normalize_history({"date": "2024-01-01", "close": 1.0}, "XYZ")


def test_lookback_must_be_positive():
    with pytest.raises(ValueError):
        normalize_history([_row("2024-01-01", 1.0)], "XYZ", lookback_bars=0)


def test_alpha_vantage_daily_series():
    raw = {
        "Meta Data": {"2. Symbol": "IBM"},
        "Time Series (Daily)": {
            "2024-01-03": {"1. open": "2", "2. high": "3", "3. low": "1", "4. close": "2.5", "5. volume": "100"},
            "2024-01-02": {"1. open": "1", "2. high": "2", "3. low": "0.5", "4. close": "1.5", "5. volume": "90"},
        },
    }
    bars = normalize_history(raw, "IBM", payload_format="alpha_vantage")
    assert [b.close for b in bars] == [1.5, 2.5]
    assert bars[-1].volume == 100


def test_finnhub_candles():
    ts = int(datetime(2024, 1, 2, tzinfo=timezone.utc).timestamp())
    raw = {"s": "ok", "t": [ts, ts + 86400], "o": [1, 2], "h": [2, 3], "l": [0.5, 1], "c": [1.5, 2.5], "v": [10, 20]}
    bars = normalize_history(raw, "X", payload_format="finnhub")
    assert [b.date for b in bars] == [date(2024, 1, 2), date(2024, 1, 3)]
    assert bars[1].close == 2.5


def test_finnhub_no_data_is_symbol_not_found():
    with pytest.raises(SymbolNotFound):
        normalize_history({"s": "no_data"}, "NOPE", payload_format="finnhub")


@pytest.mark.parametrize("key", ["Note", "Information"])
def test_alpha_vantage_history_throttle_notice_is_rate_limited(key):
    with pytest.raises(UpstreamRateLimited):
        normalize_history({key: "Thank you for using Alpha Vantage!"}, "IBM", payload_format="alpha_vantage")


# --- search ---

def test_search_maps_yahoo_quotes():
    raw = {
        "quotes": [
            {"symbol": "aapl", "shortname": "Apple Inc.", "quoteType": "EQUITY", "exchange": "NMS", "sector": "Technology"},
            {"symbol": "APLE", "longname": "Apple Hospitality REIT", "typeDisp": "Equity", "exchDisp": "NYSE"},
        ]
    }
    first, second = normalize_search(raw, "apple")
    assert first == SearchResult("AAPL", "Apple Inc.", "EQUITY", "NMS", "Technology", "")
    assert (second.name, second.type, second.exchange) == ("Apple Hospitality REIT", "Equity", "NYSE")


def test_search_skips_entries_without_symbol():
    raw = [{"shortname": "news item"}, {"symbol": "MSFT"}, "junk"]
    assert [r.symbol for r in normalize_search(raw, "ms")] == ["MSFT"]


def test_search_caps_results():
    raw = {"quotes": [{"symbol": f"S{i}"} for i in range(15)]}
    assert len(normalize_search(raw, "s", limit=10)) == 10


def test_search_empty_payloads():
    assert normalize_search(None, "zz") == []
    assert normalize_search({}, "zz") == []


def test_search_rejects_non_sequence():
    with pytest.raises(MalformedPayload):
        normalize_search({"quotes": 42}, "zz")
