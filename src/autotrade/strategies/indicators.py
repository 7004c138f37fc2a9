"""Technical indicators for trading strategies.

Every indicator has a batch form (full recompute over a sequence, used by the
backtester) and a streaming ``*State`` form with constant work per bar (used by
live ticks). Both forms return identical values for identical input.

Below its minimum history an indicator returns a neutral value instead of
failing:

    sma / ema / vwap      last price
    rsi                   50.0
    macd                  (0.0, 0.0, 0.0)
    atr / adx             0.0
    stochastic            (50.0, 50.0)
    bollinger / ichimoku  every line collapses to the last price

Empty input yields ``None`` wherever the neutral value is "last price".
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Sequence

NEUTRAL_RSI = 50.0
NEUTRAL_STOCHASTIC = 50.0


def _check_aligned(*series: Sequence[float]) -> None:
    if len({len(s) for s in series}) > 1:
        raise ValueError("price series must have equal length")


def _true_range(high: float, low: float, prev_close: float) -> float:
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


def _directional_movement(
    high: float, low: float, prev_high: float, prev_low: float
) -> tuple[float, float]:
    up_move = high - prev_high
    down_move = prev_low - low
    plus_dm = up_move if up_move > down_move and up_move > 0 else 0.0
    minus_dm = down_move if down_move > up_move and down_move > 0 else 0.0
    return plus_dm, minus_dm


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else NEUTRAL_RSI
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def _dx(plus_dm: float, minus_dm: float, tr: float) -> float:
    if tr == 0:
        return 0.0
    plus_di = 100.0 * plus_dm / tr
    minus_di = 100.0 * minus_dm / tr
    di_sum = plus_di + minus_di
    if di_sum == 0:
        return 0.0
    return 100.0 * abs(plus_di - minus_di) / di_sum


def _midpoint(highs: Sequence[float], lows: Sequence[float], length: int, fallback: float) -> float:
    if len(highs) < length:
        return fallback
    return (max(highs[-length:]) + min(lows[-length:])) / 2.0


# ============================================================================
# Batch indicator functions
# ============================================================================


def sma(values: Sequence[float], length: int) -> float | None:
    """Calculate Simple Moving Average.

    Args:
        values: Price data (oldest first)
        length: Period for the moving average

    Returns:
        SMA value, the last value if history is shorter than ``length``,
        or None for empty input
    """
    if length <= 0 or not values:
        return None
    if len(values) < length:
        return float(values[-1])
    return sum(values[-length:]) / length


def ema_series(values: Sequence[float], length: int) -> list[float]:
    """Calculate the EMA for every index of ``values``.

    The EMA is seeded with the SMA of the first ``length`` values and uses the
    multiplier ``2 / (length + 1)``. Indices before the seed carry the raw price.
    """
    if length <= 0:
        raise ValueError("length must be positive")

    k = 2.0 / (length + 1)
    out: list[float] = []
    ema_val: float | None = None
    for i, price in enumerate(values):
        if ema_val is None:
            if i + 1 < length:
                out.append(float(price))
                continue
            ema_val = sum(values[: length]) / length
        else:
            ema_val = price * k + ema_val * (1 - k)
        out.append(ema_val)
    return out


def ema(values: Sequence[float], length: int) -> float | None:
    """Calculate Exponential Moving Average.

    Args:
        values: Price data (oldest first)
        length: Period for the moving average

    Returns:
        EMA value, the last value if history is shorter than ``length``,
        or None for empty input
    """
    if length <= 0 or not values:
        return None
    return ema_series(values, length)[-1]


def rsi(values: Sequence[float], length: int = 14) -> float:
    """Calculate Relative Strength Index with Wilder's smoothing.

    Args:
        values: Price data (oldest first)
        length: Period for RSI calculation

    Returns:
        RSI value in [0, 100]; 50.0 when fewer than ``length + 1`` samples
    """
    if length <= 0 or len(values) < length + 1:
        return NEUTRAL_RSI

    changes = [values[i] - values[i - 1] for i in range(1, len(values))]

    avg_gain = sum(max(c, 0.0) for c in changes[:length]) / length
    avg_loss = sum(max(-c, 0.0) for c in changes[:length]) / length

    for change in changes[length:]:
        avg_gain = (avg_gain * (length - 1) + max(change, 0.0)) / length
        avg_loss = (avg_loss * (length - 1) + max(-change, 0.0)) / length

    return _rsi_from_averages(avg_gain, avg_loss)


def macd(
    values: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[float, float, float]:
    """Calculate MACD (Moving Average Convergence Divergence).

    Args:
        values: Price data (oldest first)
        fast: Fast EMA period
        slow: Slow EMA period
        signal: Signal line EMA period

    Returns:
        Tuple of (macd_line, signal_line, histogram); zeros below ``slow`` samples
    """
    if slow <= 0 or fast <= 0 or signal <= 0:
        raise ValueError("MACD periods must be positive")

    if len(values) < slow:
        return 0.0, 0.0, 0.0

    fast_series = ema_series(values, fast)
    slow_series = ema_series(values, slow)
    macd_history = [f - s for f, s in zip(fast_series, slow_series)][slow - 1:]

    macd_line = macd_history[-1]
    signal_line = ema_series(macd_history, signal)[-1]
    return macd_line, signal_line, macd_line - signal_line


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    length: int = 14,
) -> float:
    """Calculate Average True Range with Wilder's smoothing.

    Args:
        highs: High prices (oldest first)
        lows: Low prices (oldest first)
        closes: Close prices (oldest first)
        length: Period for ATR calculation

    Returns:
        ATR value; 0.0 when fewer than ``length + 1`` bars
    """
    _check_aligned(highs, lows, closes)
    if length <= 0 or len(highs) < length + 1:
        return 0.0

    true_ranges = [
        _true_range(highs[i], lows[i], closes[i - 1]) for i in range(1, len(highs))
    ]

    atr_val = sum(true_ranges[:length]) / length
    for tr in true_ranges[length:]:
        atr_val = (atr_val * (length - 1) + tr) / length
    return atr_val


def bollinger(
    values: Sequence[float],
    length: int = 20,
    mult: float = 2.0,
) -> tuple[float | None, float | None, float | None]:
    """Calculate Bollinger Bands.

    Args:
        values: Price data (oldest first)
        length: Period for moving average and std dev
        mult: Standard deviation multiplier

    Returns:
        Tuple of (middle, upper, lower). All three equal the last price when
        history is shorter than ``length``; (None, None, None) for empty input.
    """
    if length <= 0 or not values:
        return None, None, None

    if len(values) < length:
        last = float(values[-1])
        return last, last, last

    recent = values[-length:]
    middle = sum(recent) / length
    variance = sum((x - middle) ** 2 for x in recent) / length
    std_dev = variance**0.5

    return middle, middle + mult * std_dev, middle - mult * std_dev


def adx(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    length: int = 14,
) -> float:
    """Calculate Average Directional Index (Wilder).

    Args:
        highs: High prices (oldest first)
        lows: Low prices (oldest first)
        closes: Close prices (oldest first)
        length: Period for ADX calculation

    Returns:
        ADX value in [0, 100]; 0.0 when fewer than ``2 * length`` bars
    """
    _check_aligned(highs, lows, closes)
    if length <= 0 or len(highs) < length * 2:
        return 0.0

    true_ranges: list[float] = []
    plus_dms: list[float] = []
    minus_dms: list[float] = []
    for i in range(1, len(highs)):
        true_ranges.append(_true_range(highs[i], lows[i], closes[i - 1]))
        plus_dm, minus_dm = _directional_movement(highs[i], lows[i], highs[i - 1], lows[i - 1])
        plus_dms.append(plus_dm)
        minus_dms.append(minus_dm)

    smoothed_tr = sum(true_ranges[:length])
    smoothed_plus = sum(plus_dms[:length])
    smoothed_minus = sum(minus_dms[:length])
    dx_values = [_dx(smoothed_plus, smoothed_minus, smoothed_tr)]

    for i in range(length, len(true_ranges)):
        smoothed_tr = smoothed_tr - smoothed_tr / length + true_ranges[i]
        smoothed_plus = smoothed_plus - smoothed_plus / length + plus_dms[i]
        smoothed_minus = smoothed_minus - smoothed_minus / length + minus_dms[i]
        dx_values.append(_dx(smoothed_plus, smoothed_minus, smoothed_tr))

    adx_val = sum(dx_values[:length]) / length
    for dx in dx_values[length:]:
        adx_val = (adx_val * (length - 1) + dx) / length
    return adx_val


def stochastic(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    k_length: int = 14,
    d_length: int = 3,
) -> tuple[float, float]:
    """Calculate the stochastic oscillator.

    Args:
        highs: High prices (oldest first)
        lows: Low prices (oldest first)
        closes: Close prices (oldest first)
        k_length: Lookback for %K
        d_length: SMA length of %D over %K

    Returns:
        Tuple of (%K, %D); (50.0, 50.0) when fewer than ``k_length`` bars
    """
    _check_aligned(highs, lows, closes)
    if k_length <= 0 or d_length <= 0:
        raise ValueError("stochastic lengths must be positive")

    n = len(closes)
    if n < k_length:
        return NEUTRAL_STOCHASTIC, NEUTRAL_STOCHASTIC

    k_values = []
    for end in range(max(k_length, n - d_length + 1), n + 1):
        highest = max(highs[end - k_length:end])
        lowest = min(lows[end - k_length:end])
        if highest == lowest:
            k_values.append(NEUTRAL_STOCHASTIC)
        else:
            k_values.append(100.0 * (closes[end - 1] - lowest) / (highest - lowest))

    return k_values[-1], sum(k_values) / len(k_values)


@dataclass(slots=True)
class IchimokuLines:
    """Current Ichimoku Kinko Hyo lines (not displaced)."""

    conversion: float
    base: float
    span_a: float
    span_b: float
    lagging: float


def ichimoku(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    conversion: int = 9,
    base: int = 26,
    span_b: int = 52,
) -> IchimokuLines | None:
    """Calculate Ichimoku lines.

    A line whose period exceeds the available history collapses to the last close.

    Returns:
        IchimokuLines, or None for empty input
    """
    _check_aligned(highs, lows, closes)
    if not closes:
        return None

    last = float(closes[-1])
    conversion_line = _midpoint(highs, lows, conversion, last)
    base_line = _midpoint(highs, lows, base, last)
    return IchimokuLines(
        conversion=conversion_line,
        base=base_line,
        span_a=(conversion_line + base_line) / 2.0,
        span_b=_midpoint(highs, lows, span_b, last),
        lagging=last,
    )


def vwap(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    volumes: Sequence[float],
    length: int | None = None,
) -> float | None:
    """Calculate Volume Weighted Average Price over typical prices.

    Args:
        length: Rolling window in bars; None means the whole series

    Returns:
        VWAP, the last close when no volume traded, or None for empty input
    """
    _check_aligned(highs, lows, closes, volumes)
    if not closes:
        return None

    start = 0 if length is None else max(0, len(closes) - length)
    pv = 0.0
    vol = 0.0
    for i in range(start, len(closes)):
        pv += (highs[i] + lows[i] + closes[i]) / 3.0 * volumes[i]
        vol += volumes[i]

    if vol == 0:
        return float(closes[-1])
    return pv / vol


def returns_volatility(values: Sequence[float]) -> float:
    """Population standard deviation of simple per-bar returns."""
    returns = [
        (values[i] - values[i - 1]) / values[i - 1]
        for i in range(1, len(values))
        if values[i - 1] != 0
    ]
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return variance**0.5


def volume_ratio(volumes: Sequence[float], short: int = 5, long: int = 20) -> float:
    """Ratio of the short-window to the long-window average volume.

    Returns 0.0 when fewer than ``long`` samples exist or no volume traded.
    """
    if len(volumes) < long:
        return 0.0
    recent = sum(volumes[-short:]) / short
    average = sum(volumes[-long:]) / long
    return recent / average if average > 0 else 0.0


# ============================================================================
# Stateful wrappers for streaming/incremental updates
# ============================================================================


class SMAState:
    """Stateful Simple Moving Average calculator for streaming data."""

    def __init__(self, length: int) -> None:
        if length <= 0:
            raise ValueError("length must be positive")
        self.length = length
        self.values: deque[float] = deque(maxlen=length)
        self._sum = 0.0

    def update(self, price: float) -> float:
        """Update with new price and return current SMA (last price while warming up)."""
        if len(self.values) == self.length:
            self._sum -= self.values[0]
        self.values.append(price)
        self._sum += price
        if len(self.values) < self.length:
            return price
        return self._sum / self.length

    def reset(self) -> None:
        self.values.clear()
        self._sum = 0.0


class EMAState:
    """Stateful Exponential Moving Average calculator for streaming data."""

    def __init__(self, length: int) -> None:
        """Initialize EMA state.

        Args:
            length: Period for the moving average
        """
        if length <= 0:
            raise ValueError("length must be positive")
        self.length = length
        self.k = 2.0 / (length + 1)
        self.ema_value: float | None = None
        self.warmup_values: list[float] = []

    @property
    def ready(self) -> bool:
        return self.ema_value is not None

    def update(self, price: float) -> float:
        """Update with new price and return current EMA.

        Args:
            price: New price value

        Returns:
            EMA value, or the raw price while warming up
        """
        if self.ema_value is None:
            self.warmup_values.append(price)
            if len(self.warmup_values) >= self.length:
                # Seed with SMA
                self.ema_value = sum(self.warmup_values) / self.length
                self.warmup_values.clear()
                return self.ema_value
            return price

        self.ema_value = price * self.k + self.ema_value * (1 - self.k)
        return self.ema_value

    def reset(self) -> None:
        self.ema_value = None
        self.warmup_values.clear()


class RSIState:
    """Stateful Wilder RSI calculator for streaming data."""

    def __init__(self, length: int = 14) -> None:
        if length <= 0:
            raise ValueError("length must be positive")
        self.length = length
        self.prev_price: float | None = None
        self._seed_gains: list[float] = []
        self._seed_losses: list[float] = []
        self.avg_gain: float | None = None
        self.avg_loss: float | None = None

    def update(self, price: float) -> float:
        """Update with new price and return current RSI (50.0 while warming up)."""
        if self.prev_price is None:
            self.prev_price = price
            return NEUTRAL_RSI

        change = price - self.prev_price
        self.prev_price = price
        gain = max(change, 0.0)
        loss = max(-change, 0.0)

        if self.avg_gain is None or self.avg_loss is None:
            self._seed_gains.append(gain)
            self._seed_losses.append(loss)
            if len(self._seed_gains) < self.length:
                return NEUTRAL_RSI
            self.avg_gain = sum(self._seed_gains) / self.length
            self.avg_loss = sum(self._seed_losses) / self.length
            self._seed_gains.clear()
            self._seed_losses.clear()
        else:
            self.avg_gain = (self.avg_gain * (self.length - 1) + gain) / self.length
            self.avg_loss = (self.avg_loss * (self.length - 1) + loss) / self.length

        return _rsi_from_averages(self.avg_gain, self.avg_loss)

    def reset(self) -> None:
        self.prev_price = None
        self._seed_gains.clear()
        self._seed_losses.clear()
        self.avg_gain = None
        self.avg_loss = None


class MACDState:
    """Stateful MACD calculator for streaming data."""

    def __init__(self, fast: int = 12, slow: int = 26, signal: int = 9) -> None:
        self.fast = EMAState(fast)
        self.slow = EMAState(slow)
        self.signal = EMAState(signal)

    def update(self, price: float) -> tuple[float, float, float]:
        fast_val = self.fast.update(price)
        slow_val = self.slow.update(price)
        if not self.slow.ready:
            return 0.0, 0.0, 0.0
        macd_line = fast_val - slow_val
        signal_line = self.signal.update(macd_line)
        return macd_line, signal_line, macd_line - signal_line

    def reset(self) -> None:
        self.fast.reset()
        self.slow.reset()
        self.signal.reset()


class ATRState:
    """Stateful Wilder ATR calculator for streaming data."""

    def __init__(self, length: int = 14) -> None:
        if length <= 0:
            raise ValueError("length must be positive")
        self.length = length
        self.prev_close: float | None = None
        self._seed: list[float] = []
        self.atr_value: float | None = None

    def update(self, high: float, low: float, close: float) -> float:
        """Update with new bar and return current ATR (0.0 while warming up)."""
        if self.prev_close is None:
            self.prev_close = close
            return 0.0

        tr = _true_range(high, low, self.prev_close)
        self.prev_close = close

        if self.atr_value is None:
            self._seed.append(tr)
            if len(self._seed) < self.length:
                return 0.0
            self.atr_value = sum(self._seed) / self.length
            self._seed.clear()
        else:
            self.atr_value = (self.atr_value * (self.length - 1) + tr) / self.length
        return self.atr_value

    def reset(self) -> None:
        self.prev_close = None
        self._seed.clear()
        self.atr_value = None


class BollingerState:
    """Stateful Bollinger Bands calculator for streaming data."""

    def __init__(self, length: int = 20, mult: float = 2.0) -> None:
        """Initialize Bollinger Bands state.

        Args:
            length: Period for moving average and std dev
            mult: Standard deviation multiplier
        """
        if length <= 0:
            raise ValueError("length must be positive")
        self.length = length
        self.mult = mult
        self.values: deque[float] = deque(maxlen=length)

    def update(self, price: float) -> tuple[float, float, float]:
        """Update with new price and return (middle, upper, lower)."""
        self.values.append(price)

        if len(self.values) < self.length:
            return price, price, price

        middle = sum(self.values) / self.length
        variance = sum((x - middle) ** 2 for x in self.values) / self.length
        std_dev = variance**0.5

        return middle, middle + self.mult * std_dev, middle - self.mult * std_dev

    def reset(self) -> None:
        self.values.clear()


class ADXState:
    """Stateful Wilder ADX calculator for streaming data."""

    def __init__(self, length: int = 14) -> None:
        if length <= 0:
            raise ValueError("length must be positive")
        self.length = length
        self.reset()

    def update(self, high: float, low: float, close: float) -> float:
        """Update with new bar and return current ADX (0.0 while warming up)."""
        if self._prev is None:
            self._prev = (high, low, close)
            return 0.0

        prev_high, prev_low, prev_close = self._prev
        self._prev = (high, low, close)
        tr = _true_range(high, low, prev_close)
        plus_dm, minus_dm = _directional_movement(high, low, prev_high, prev_low)
        self._count += 1

        if self._count <= self.length:
            self._tr += tr
            self._plus += plus_dm
            self._minus += minus_dm
            if self._count < self.length:
                return 0.0
        else:
            self._tr = self._tr - self._tr / self.length + tr
            self._plus = self._plus - self._plus / self.length + plus_dm
            self._minus = self._minus - self._minus / self.length + minus_dm

        dx = _dx(self._plus, self._minus, self._tr)
        if self.adx_value is None:
            self._dx_seed.append(dx)
            if len(self._dx_seed) < self.length:
                return 0.0
            self.adx_value = sum(self._dx_seed) / self.length
            self._dx_seed.clear()
        else:
            self.adx_value = (self.adx_value * (self.length - 1) + dx) / self.length
        return self.adx_value

    def reset(self) -> None:
        self._prev: tuple[float, float, float] | None = None
        self._count = 0
        self._tr = 0.0
        self._plus = 0.0
        self._minus = 0.0
        self._dx_seed: list[float] = []
        self.adx_value: float | None = None


class StochasticState:
    """Stateful stochastic oscillator for streaming data."""

    def __init__(self, k_length: int = 14, d_length: int = 3) -> None:
        if k_length <= 0 or d_length <= 0:
            raise ValueError("length must be positive")
        self.k_length = k_length
        self.highs: deque[float] = deque(maxlen=k_length)
        self.lows: deque[float] = deque(maxlen=k_length)
        self.k_values: deque[float] = deque(maxlen=d_length)

    def update(self, high: float, low: float, close: float) -> tuple[float, float]:
        self.highs.append(high)
        self.lows.append(low)
        if len(self.highs) < self.k_length:
            return NEUTRAL_STOCHASTIC, NEUTRAL_STOCHASTIC

        highest = max(self.highs)
        lowest = min(self.lows)
        if highest == lowest:
            k_val = NEUTRAL_STOCHASTIC
        else:
            k_val = 100.0 * (close - lowest) / (highest - lowest)
        self.k_values.append(k_val)
        return k_val, sum(self.k_values) / len(self.k_values)

    def reset(self) -> None:
        self.highs.clear()
        self.lows.clear()
        self.k_values.clear()


class IchimokuState:
    """Stateful Ichimoku calculator for streaming data."""

    def __init__(self, conversion: int = 9, base: int = 26, span_b: int = 52) -> None:
        if min(conversion, base, span_b) <= 0:
            raise ValueError("length must be positive")
        self.periods = (conversion, base, span_b)
        self.highs: deque[float] = deque(maxlen=max(self.periods))
        self.lows: deque[float] = deque(maxlen=max(self.periods))

    def update(self, high: float, low: float, close: float) -> IchimokuLines:
        self.highs.append(high)
        self.lows.append(low)
        highs = list(self.highs)
        lows = list(self.lows)
        conversion, base, span_b = self.periods

        conversion_line = _midpoint(highs, lows, conversion, close)
        base_line = _midpoint(highs, lows, base, close)
        return IchimokuLines(
            conversion=conversion_line,
            base=base_line,
            span_a=(conversion_line + base_line) / 2.0,
            span_b=_midpoint(highs, lows, span_b, close),
            lagging=close,
        )

    def reset(self) -> None:
        self.highs.clear()
        self.lows.clear()


class VWAPState:
    """Stateful VWAP calculator (cumulative, or rolling when ``length`` is set)."""

    def __init__(self, length: int | None = None) -> None:
        if length is not None and length <= 0:
            raise ValueError("length must be positive")
        self.length = length
        self.window: deque[tuple[float, float]] = deque(maxlen=length)
        self._pv = 0.0
        self._vol = 0.0

    def update(self, high: float, low: float, close: float, volume: float) -> float:
        if self.length is not None and len(self.window) == self.length:
            old_pv, old_vol = self.window[0]
            self._pv -= old_pv
            self._vol -= old_vol

        pv = (high + low + close) / 3.0 * volume
        if self.length is not None:
            self.window.append((pv, volume))
        self._pv += pv
        self._vol += volume

        if self._vol == 0:
            return close
        return self._pv / self._vol

    def reset(self) -> None:
        self.window.clear()
        self._pv = 0.0
        self._vol = 0.0


__all__ = [
    # Batch functions
    "sma",
    "ema",
    "ema_series",
    "rsi",
    "macd",
    "atr",
    "bollinger",
    "adx",
    "stochastic",
    "ichimoku",
    "vwap",
    "returns_volatility",
    "volume_ratio",
    "IchimokuLines",
    # Stateful classes
    "SMAState",
    "EMAState",
    "RSIState",
    "MACDState",
    "ATRState",
    "BollingerState",
    "ADXState",
    "StochasticState",
    "IchimokuState",
    "VWAPState",
]
