"""Risk engine: order validation, position sizing and protective triggers."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import ValidationError

from autotrade.config.models import RiskLimits, SizingAssumptions
from autotrade.errors import ConfigurationError, ValidationRejection
from autotrade.risk.correlation import CORRELATION_THRESHOLD, CorrelationMatrix
from autotrade.strategies.base import Archetype, Order, Position

logger = logging.getLogger(__name__)

Positions = Mapping[str, Position] | Iterable[Position]

# Position-size multipliers per strategy archetype
ARCHETYPE_MULTIPLIERS: dict[str, float] = {
    "momentum": 1.2,
    "mean_reversion": 0.8,
}

HIGH_VOLATILITY = 0.10
HIGH_EXPOSURE = 0.50
QUANTITY_EPSILON = 1e-9


def _as_list(positions: Positions) -> list[Position]:
    if isinstance(positions, Mapping):
        return list(positions.values())
    return list(positions)


@dataclass(slots=True)
class RiskCheckResult:
    """Outcome of :meth:`RiskEngine.validate_order`.

    ``violations`` lists every breached rule; ``warnings`` carries
    non-blocking observations (unknown liquidity, unmapped instrument).
    """

    accepted: bool
    violations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    order_value: float = 0.0


@dataclass(slots=True)
class SizeRecommendation:
    """Recommended position size with an auditable reasoning trail."""

    size: float
    limit: float
    kelly_fraction: float
    risk_score: float
    reasoning: list[str] = field(default_factory=list)
    quantity: float | None = None


@dataclass(slots=True)
class ProtectiveLevels:
    """Absolute stop-loss and take-profit prices for one instrument."""

    instrument: str
    entry_price: float
    stop_loss: float
    take_profit: float


@dataclass(slots=True)
class TriggerHit:
    """A position whose price crossed one of its protective levels."""

    instrument: str
    kind: Literal["stop_loss", "take_profit"]
    trigger_price: float
    current_price: float
    quantity: float

    @property
    def reason(self) -> str:
        label = "Stop loss" if self.kind == "stop_loss" else "Take profit"
        return f"{label} triggered at {self.current_price:.6g} (level {self.trigger_price:.6g})"


@dataclass(slots=True)
class RiskMetrics:
    """Portfolio-level risk snapshot."""

    total_exposure: float
    exposure_pct: float
    daily_pnl: float
    current_drawdown_pct: float
    risk_score: float
    open_positions: int
    violations: list[str] = field(default_factory=list)


class RiskEngine:
    """Validates orders against portfolio limits and recommends sizes.

    Only BUY orders increase risk, so only BUYs are checked against size,
    daily loss, exposure, liquidity and correlation limits. SELL orders are
    checked against the current holding so the ledger can never be oversold.

    Args:
        limits: Portfolio-level risk limits (defaults if omitted)
        correlations: Instrument correlation matrix (empty if omitted)
        sizing: Win statistics for Kelly sizing (defaults if omitted)
    """

    def __init__(
        self,
        limits: RiskLimits | None = None,
        correlations: CorrelationMatrix | None = None,
        sizing: SizingAssumptions | None = None,
    ) -> None:
        self._limits = limits or RiskLimits()
        self.correlations = correlations or CorrelationMatrix()
        self.sizing = sizing or SizingAssumptions()
        self._levels: dict[str, ProtectiveLevels] = {}

    @property
    def limits(self) -> RiskLimits:
        return self._limits

    def update_limits(self, changes: Mapping[str, Any]) -> RiskLimits:
        """Apply ``changes`` to the current limits.

        Raises:
            ConfigurationError: On unknown fields or invalid values; the
                current limits stay in place
        """
        data = self._limits.model_dump()
        data.update(changes)
        try:
            updated = RiskLimits.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid risk limits: {exc}") from exc
        self._limits = updated
        logger.info(f"Risk limits updated: {dict(changes)}")
        return updated

    # ========================================================================
    # Order validation
    # ========================================================================

    def validate_order(
        self,
        order: Order,
        positions: Positions,
        portfolio_value: float,
        daily_pnl: float,
        price: float | None = None,
        liquidity: float | None = None,
        protective: bool = False,
    ) -> RiskCheckResult:
        """Check ``order`` against every risk limit.

        Size and daily-loss limits apply to both sides. A SELL is further
        checked against the holding only; exposure, correlation and liquidity
        limits apply to BUYs.

        Args:
            order: Proposed order
            positions: Open positions (mapping keyed by instrument or iterable)
            portfolio_value: Current total portfolio value
            daily_pnl: Realized P&L for the current UTC day
            price: Expected execution price; falls back to the order's limit
                price and then to the position's mark price
            liquidity: Traded value over the last 24h, if known
            protective: Marks a SELL closing a position on a stop-loss or
                take-profit trigger; only the holding check applies to it

        Returns:
            RiskCheckResult listing all violations
        """
        limits = self._limits
        open_positions = _as_list(positions)
        by_instrument = {p.instrument: p for p in open_positions}
        violations: list[str] = []
        warnings: list[str] = []

        exec_price = price if price is not None else order.limit_price
        held = by_instrument.get(order.instrument)
        if exec_price is None and held is not None:
            exec_price = held.mark_price
        if exec_price is None or exec_price <= 0:
            return RiskCheckResult(
                accepted=False,
                violations=[f"No valid price available for {order.instrument}"],
            )
        order_value = order.quantity * exec_price
        is_sell = order.side == "sell"

        if not (is_sell and protective):
            if order_value > limits.max_position_size:
                violations.append(
                    f"Order value {order_value:.2f} exceeds max position size {limits.max_position_size:.2f}"
                )

            if daily_pnl < -limits.max_daily_loss:
                violations.append(
                    f"Daily loss limit reached: realized P&L {daily_pnl:.2f} is below "
                    f"-{limits.max_daily_loss:.2f}"
                )

        if is_sell:
            held_quantity = held.quantity if held is not None else 0.0
            if order.quantity > held_quantity + QUANTITY_EPSILON:
                violations.append(
                    f"Sell quantity {order.quantity:.8g} exceeds holding {held_quantity:.8g} "
                    f"of {order.instrument}"
                )
            if violations:
                logger.debug(f"Order sell {order.quantity} {order.instrument} rejected: {violations}")
            return RiskCheckResult(not violations, violations, warnings, order_value)

        if portfolio_value <= 0:
            violations.append(f"Portfolio value must be positive, got {portfolio_value:.2f}")
        else:
            exposure = sum(p.market_value for p in open_positions) + order_value
            exposure_pct = exposure / portfolio_value * 100
            if exposure_pct > limits.max_portfolio_risk_pct:
                violations.append(
                    f"Portfolio exposure {exposure_pct:.2f}% would exceed "
                    f"{limits.max_portfolio_risk_pct:.2f}%"
                )

            if not self.correlations.is_mapped(order.instrument):
                warnings.append(
                    f"Instrument {order.instrument} has no correlation group; treated as uncorrelated"
                )
            correlated = self.correlated_exposure(order.instrument, open_positions) + order_value
            correlated_pct = correlated / portfolio_value * 100
            if correlated_pct > limits.max_correlated_exposure_pct:
                violations.append(
                    f"Correlated exposure {correlated_pct:.2f}% would exceed "
                    f"{limits.max_correlated_exposure_pct:.2f}%"
                )

        if liquidity is None:
            warnings.append(f"Liquidity of {order.instrument} unknown; liquidity check skipped")
        elif liquidity < limits.min_liquidity:
            violations.append(
                f"Liquidity {liquidity:.2f} below minimum {limits.min_liquidity:.2f}"
            )

        if violations:
            logger.debug(f"Order {order.side} {order.quantity} {order.instrument} rejected: {violations}")
        return RiskCheckResult(not violations, violations, warnings, order_value)

    def enforce(self, order: Order, *args: Any, **kwargs: Any) -> RiskCheckResult:
        """Validate ``order`` and raise when any limit is breached.

        Takes the same arguments as :meth:`validate_order`.

        Raises:
            ValidationRejection: Carrying every violation
        """
        result = self.validate_order(order, *args, **kwargs)
        if not result.accepted:
            raise ValidationRejection(result.violations)
        return result

    def correlated_exposure(self, instrument: str, positions: Positions) -> float:
        """Correlation-weighted value of positions correlated with ``instrument``.

        Only pairs with correlation above 0.5 count, the instrument's own
        position included (self-correlation 1.0).
        """
        total = 0.0
        for position in _as_list(positions):
            value = self.correlations.get(instrument, position.instrument)
            if value > CORRELATION_THRESHOLD:
                total += position.market_value * value
        return total

    # ========================================================================
    # Position sizing
    # ========================================================================

    def kelly_fraction(self) -> float:
        """Kelly fraction f* = (p*b - q) / b clipped to [0, max_kelly_fraction]."""
        p = self.sizing.win_rate
        q = 1 - p
        b = self.sizing.avg_win / self.sizing.avg_loss
        raw = (p * b - q) / b
        return max(0.0, min(raw, self.sizing.max_kelly_fraction))

    def recommend_size(
        self,
        instrument: str,
        portfolio_value: float,
        positions: Positions,
        daily_pnl: float = 0.0,
        volatility: float = 0.0,
        archetype: Archetype | None = None,
        price: float | None = None,
    ) -> SizeRecommendation:
        """Recommend a position value for a new BUY in ``instrument``.

        Args:
            instrument: Instrument to size
            portfolio_value: Current total portfolio value
            positions: Open positions
            daily_pnl: Realized P&L for the current UTC day
            volatility: Daily return volatility as a fraction
            archetype: Strategy archetype of the requester
            price: If given, the recommendation also carries a quantity

        Returns:
            SizeRecommendation whose ``size`` is in quote currency and never
            exceeds ``limits.max_position_size``
        """
        limits = self._limits
        open_positions = _as_list(positions)
        reasoning: list[str] = []
        score = 50.0

        kelly = self.kelly_fraction()
        size = max(portfolio_value, 0.0) * kelly
        reasoning.append(f"Kelly fraction {kelly:.4f} of portfolio {portfolio_value:.2f} -> {size:.2f}")

        if volatility > HIGH_VOLATILITY:
            size *= 0.5
            score += 20
            reasoning.append(f"High volatility {volatility:.2%}: size halved")

        exposure = sum(p.market_value for p in open_positions)
        if portfolio_value > 0 and exposure / portfolio_value > HIGH_EXPOSURE:
            size *= 0.3
            score += 15
            reasoning.append(f"Existing exposure {exposure / portfolio_value:.2%} above 50%: size x0.3")

        correlated = self.correlations.correlated_with(
            instrument, [p.instrument for p in open_positions if p.instrument != instrument]
        )
        if correlated:
            n = len(correlated)
            size *= max(0.0, 1 - 0.2 * n)
            score += 10 * n
            names = ", ".join(name for name, _ in correlated)
            reasoning.append(f"{n} correlated open position(s) ({names}): size x{max(0.0, 1 - 0.2 * n):.1f}")

        multiplier = ARCHETYPE_MULTIPLIERS.get(archetype or "")
        if multiplier is not None:
            size *= multiplier
            reasoning.append(f"{archetype} strategy adjustment x{multiplier}")

        remaining = limits.max_daily_loss + min(daily_pnl, 0.0)
        stop_fraction = limits.default_stop_loss_pct / 100
        if size * stop_fraction > remaining:
            size = max(remaining, 0.0) / stop_fraction
            score += 25
            reasoning.append(
                f"Clamped to {size:.2f} so a stop-loss hit stays within remaining daily loss "
                f"{max(remaining, 0.0):.2f}"
            )

        if size > limits.max_position_size:
            size = limits.max_position_size
            reasoning.append(f"Capped at max position size {limits.max_position_size:.2f}")
        size = max(size, 0.0)

        quantity = size / price if price else None
        return SizeRecommendation(
            size=size,
            limit=limits.max_position_size,
            kelly_fraction=kelly,
            risk_score=min(score, 100.0),
            reasoning=reasoning,
            quantity=quantity,
        )

    # ========================================================================
    # Stop-loss / take-profit tracking
    # ========================================================================

    def set_triggers(
        self,
        instrument: str,
        entry_price: float,
        stop_loss_pct: float | None = None,
        take_profit_pct: float | None = None,
    ) -> ProtectiveLevels:
        """Store absolute trigger prices entry*(1 - sl%) and entry*(1 + tp%).

        Percentages default to the configured limits.
        """
        if entry_price <= 0:
            raise ValueError(f"entry_price must be positive, got {entry_price}")
        sl_pct = stop_loss_pct if stop_loss_pct is not None else self._limits.default_stop_loss_pct
        tp_pct = take_profit_pct if take_profit_pct is not None else self._limits.default_take_profit_pct
        levels = ProtectiveLevels(
            instrument=instrument,
            entry_price=entry_price,
            stop_loss=entry_price * (1 - sl_pct / 100),
            take_profit=entry_price * (1 + tp_pct / 100),
        )
        self._levels[instrument] = levels
        return levels

    def clear_triggers(self, instrument: str) -> None:
        self._levels.pop(instrument, None)

    def triggers(self, instrument: str) -> ProtectiveLevels | None:
        return self._levels.get(instrument)

    def check_triggers(self, positions: Positions) -> list[TriggerHit]:
        """Return positions whose current price crossed a trigger.

        Levels stored via :meth:`set_triggers` take precedence over the
        position's own ``stop_loss``/``take_profit`` fields. Positions
        without a current price are skipped.
        """
        hits: list[TriggerHit] = []
        for position in _as_list(positions):
            price = position.current_price
            if price is None:
                continue
            levels = self._levels.get(position.instrument)
            stop = levels.stop_loss if levels else position.stop_loss
            target = levels.take_profit if levels else position.take_profit

            if stop is not None and price <= stop:
                hits.append(TriggerHit(position.instrument, "stop_loss", stop, price, position.quantity))
            elif target is not None and price >= target:
                hits.append(TriggerHit(position.instrument, "take_profit", target, price, position.quantity))
        return hits

    # ========================================================================
    # Portfolio metrics
    # ========================================================================

    def risk_metrics(self, positions: Positions, portfolio_value: float, daily_pnl: float) -> RiskMetrics:
        limits = self._limits
        open_positions = _as_list(positions)
        exposure = sum(p.market_value for p in open_positions)
        exposure_ratio = exposure / portfolio_value if portfolio_value > 0 else 0.0
        drawdown_pct = abs(daily_pnl) / portfolio_value * 100 if daily_pnl < 0 and portfolio_value > 0 else 0.0

        score = (
            exposure_ratio * 50
            + abs(daily_pnl / limits.max_daily_loss) * 30
            + len(open_positions) / 10 * 20
        )

        violations = []
        if exposure_ratio * 100 > limits.max_portfolio_risk_pct:
            violations.append(
                f"Exposure {exposure_ratio * 100:.2f}% above {limits.max_portfolio_risk_pct:.2f}%"
            )
        if daily_pnl < -limits.max_daily_loss:
            violations.append(f"Daily loss {daily_pnl:.2f} beyond -{limits.max_daily_loss:.2f}")

        return RiskMetrics(
            total_exposure=exposure,
            exposure_pct=exposure_ratio * 100,
            daily_pnl=daily_pnl,
            current_drawdown_pct=drawdown_pct,
            risk_score=min(score, 100.0),
            open_positions=len(open_positions),
            violations=violations,
        )


__all__ = [
    "RiskEngine",
    "RiskCheckResult",
    "SizeRecommendation",
    "ProtectiveLevels",
    "TriggerHit",
    "RiskMetrics",
]
