"""Tests for src/trendseeker/skills/indicators.py."""

import math

import pytest

from conftest import make_bars
from trendseeker.skills.indicators import (
    bollinger,
    compute_indicators,
    ema,
    ema_series,
    macd,
    momentum,
    rsi,
    sma,
    stochastic,
    support_resistance,
    volatility,
)


def _wave(n: int) -> list[float]:
    return [100 + 10 * math.sin(i * 0.7) + 3 * math.cos(i * 1.9) for i in range(n)]


# --- constant price ---

def test_constant_history_collapses_averages_and_bands():
    snap = compute_indicators(make_bars([42.5] * 60))
    assert snap.sma20 == 42.5
    assert snap.sma50 == 42.5
    assert snap.ema12 == 42.5
    assert snap.ema26 == 42.5
    assert snap.bollinger.upper == snap.bollinger.middle == snap.bollinger.lower == 42.5
    assert snap.rsi14 == 100.0
    assert snap.volatility_annualized == 0.0
    assert snap.momentum10 == 0.0
    assert snap.macd.line == 0.0
    assert snap.macd.histogram == 0.0


def test_constant_history_with_flat_bars_has_no_stochastic():
    snap = compute_indicators(make_bars([10.0] * 30, spread=0.0))
    assert snap.stochastic is None


# --- minimum history ---

@pytest.mark.parametrize(
    "field, minimum",
    [
        ("sma20", 20),
        ("sma50", 50),
        ("ema12", 12),
        ("ema26", 26),
        ("rsi14", 15),
        ("macd", 35),
        ("bollinger", 20),
        ("stochastic", 17),
        ("volatility_annualized", 2),
        ("momentum10", 11),
        ("support20", 20),
        ("resistance20", 20),
    ],
)
def test_indicator_unavailable_below_minimum_bars(field, minimum):
    closes = _wave(minimum)
    assert getattr(compute_indicators(make_bars(closes[:-1])), field) is None
    assert getattr(compute_indicators(make_bars(closes)), field) is not None


def test_empty_history_gives_empty_snapshot():
    snap = compute_indicators([])
    assert snap.bars_used == 0
    assert snap.last_close is None
    assert snap.sma20 is None


# --- SMA / EMA ---

def test_sma_uses_trailing_window():
    assert sma([1.0, 2.0, 3.0, 4.0], 2) == 3.5


def test_ema_seeds_with_sma_then_smooths():
    # seed = mean(1, 2, 3) = 2; k = 0.5 -> 3.0 -> 4.0
    assert ema_series([1.0, 2.0, 3.0, 4.0, 5.0], 3) == [2.0, 3.0, 4.0]
    assert ema([1.0, 2.0, 3.0, 4.0, 5.0], 3) == 4.0


def test_ema_of_exactly_n_values_is_the_sma():
    assert ema([2.0, 4.0, 6.0], 3) == 4.0


# --- RSI ---

def test_rsi_is_zero_when_only_losses():
    assert rsi([float(v) for v in range(30, 0, -1)]) == 0.0


def test_rsi_is_100_when_only_gains():
    assert rsi([float(v) for v in range(1, 31)]) == 100.0


@pytest.mark.parametrize("n", [15, 40, 120])
def test_rsi_bounded(n):
    value = rsi(_wave(n))
    assert 0.0 <= value <= 100.0


def test_rsi_wilder_smoothing_by_hand():
    # 14 changes of +1 then one change of -7:
    # avg_gain = (1 * 13 + 0) / 14, avg_loss = (0 * 13 + 7) / 14
    closes = [float(v) for v in range(0, 15)] + [7.0]
    expected = 100 - 100 / (1 + 13 / 7)
    assert rsi(closes) == pytest.approx(expected)


# --- MACD ---

def test_macd_histogram_is_line_minus_signal():
    value = macd(_wave(80))
    assert value.histogram == pytest.approx(value.line - value.signal)


def test_macd_line_positive_in_uptrend():
    value = macd([float(v) for v in range(1, 61)])
    assert value.line > 0


# --- Bollinger ---

def test_bollinger_uses_sample_stddev():
    bands = bollinger([float(v) for v in range(1, 21)])
    sd = math.sqrt(35.0)  # sample variance of 1..20 is 35
    assert bands.middle == 10.5
    assert bands.upper == pytest.approx(10.5 + 2 * sd)
    assert bands.lower == pytest.approx(10.5 - 2 * sd)


# --- Stochastic ---

def test_stochastic_k_and_d():
    # closes 1..17 with high/low = close -/+ 1
    bars = make_bars([float(v) for v in range(1, 18)])
    value = stochastic(bars)
    # last window: closes 4..17, low min 3, high max 18; every window has the same shape
    assert value.k == pytest.approx((17 - 3) / (18 - 3) * 100)
    assert value.d == pytest.approx(14 / 15 * 100)


def test_stochastic_d_averages_last_three_k():
    closes = [10.0] * 14 + [11.0, 12.0, 10.5]
    bars = make_bars(closes)
    value = stochastic(bars)
    # windows end at closes 11.0, 12.0, 10.5; lows min 9.0; highs max 12.0, 13.0, 13.0
    ks = [(11.0 - 9.0) / 3.0 * 100, (12.0 - 9.0) / 4.0 * 100, (10.5 - 9.0) / 4.0 * 100]
    assert value.k == pytest.approx(ks[-1])
    assert value.d == pytest.approx(sum(ks) / 3)


# --- volatility / momentum / levels ---

def test_volatility_two_bars_is_zero():
    assert volatility([100.0, 101.0]) == 0.0


def test_volatility_annualizes_sample_stdev():
    closes = [100.0, 110.0, 99.0]
    returns = [0.1, 99.0 / 110.0 - 1]
    mean = sum(returns) / 2
    sd = math.sqrt(sum((r - mean) ** 2 for r in returns) / 1)
    assert volatility(closes) == pytest.approx(sd * math.sqrt(252))


def test_momentum_ten_bars():
    assert momentum([float(v) for v in range(100, 111)]) == pytest.approx(10.0)


def test_momentum_zero_base_unavailable():
    assert momentum([0.0] + [1.0] * 10) is None


def test_support_resistance_use_trailing_lows_and_highs():
    bars = make_bars([float(v) for v in range(1, 31)], spread=0.5)
    support, resistance = support_resistance(bars)
    assert support == 10.5
    assert resistance == 30.5


def test_indicators_are_deterministic():
    bars = make_bars(_wave(120))
    assert compute_indicators(bars) == compute_indicators(bars)
