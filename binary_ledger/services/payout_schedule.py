"""
Payout schedule for binary trades.

Maps (direction, duration) to the profit and commission rates locked into
a trade at creation. Buy trades pay a flat rate; Sell trades are tiered by
duration. The same table backs the order form menu and trade creation.
"""

from dataclasses import dataclass
from decimal import Decimal

from binary_ledger.config import Settings
from binary_ledger.core.exceptions import InvalidDurationError, ValidationError
from binary_ledger.models.binary_trade import TradeDirection


@dataclass(frozen=True)
class PayoutTerms:
    """Rates locked into a trade; both are fractions (0.85 == 85%)."""
    direction: TradeDirection
    duration_seconds: int
    profit_rate: Decimal
    commission_rate: Decimal

    @property
    def profit_percentage(self) -> Decimal:
        return self.profit_rate * 100

    @property
    def commission_percentage(self) -> Decimal:
        return self.commission_rate * 100


def parse_direction(value: TradeDirection | str) -> TradeDirection:
    """Accepts 'Buy'/'buy'/TradeDirection.BUY and friends."""
    if isinstance(value, TradeDirection):
        return value
    try:
        return TradeDirection(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Unsupported direction: {value}",
            details={"allowed": [d.value for d in TradeDirection]},
        )


class PayoutSchedule:
    """
    Pure lookup of payout terms. Holds no state beyond its rate table.

    Args:
        buy_profit_rate: Flat profit rate for Buy trades
        sell_tiers: Ascending (max_seconds, rate) tiers for Sell trades;
            a max_seconds of None matches every longer duration
        commission_rate: Flat commission rate for both directions
        durations: Supported trade durations in seconds
    """

    def __init__(
        self,
        buy_profit_rate: Decimal,
        sell_tiers: list[tuple[int | None, Decimal]],
        commission_rate: Decimal,
        durations: list[int],
    ):
        if not durations:
            raise ValueError("At least one trade duration must be configured")
        if not sell_tiers or sell_tiers[-1][0] is not None:
            raise ValueError("Sell tiers must end with an open-ended tier")

        self.buy_profit_rate = buy_profit_rate
        self.sell_tiers = list(sell_tiers)
        self.commission_rate = commission_rate
        self.durations = sorted(durations)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PayoutSchedule":
        return cls(
            buy_profit_rate=settings.buy_profit_rate,
            sell_tiers=settings.sell_profit_tiers_list,
            commission_rate=settings.commission_rate,
            durations=settings.trade_durations_list,
        )

    def _sell_rate(self, duration_seconds: int) -> Decimal:
        for max_seconds, rate in self.sell_tiers:
            if max_seconds is None or duration_seconds <= max_seconds:
                return rate
        # Unreachable: the last tier is open-ended
        return self.sell_tiers[-1][1]

    def validate_duration(self, duration_seconds: int) -> int:
        """
        Raises:
            InvalidDurationError: If the duration is not on the menu
        """
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int):
            raise InvalidDurationError(
                f"Duration must be whole seconds, got {duration_seconds!r}",
                details={"allowed": self.durations},
            )
        if duration_seconds not in self.durations:
            raise InvalidDurationError(
                f"Unsupported duration: {duration_seconds}s",
                details={"allowed": self.durations},
            )
        return duration_seconds

    def resolve(self, direction: TradeDirection | str, duration_seconds: int) -> PayoutTerms:
        """
        Returns the payout terms for a new trade.

        Raises:
            InvalidDurationError: If the duration is not on the menu
            ValidationError: If the direction is not buy or sell
        """
        direction = parse_direction(direction)
        self.validate_duration(duration_seconds)

        if direction == TradeDirection.BUY:
            profit_rate = self.buy_profit_rate
        else:
            profit_rate = self._sell_rate(duration_seconds)

        return PayoutTerms(
            direction=direction,
            duration_seconds=duration_seconds,
            profit_rate=profit_rate,
            commission_rate=self.commission_rate,
        )

    def options(self, direction: TradeDirection | str) -> list[PayoutTerms]:
        """Full duration menu for one direction, shortest first."""
        direction = parse_direction(direction)
        return [self.resolve(direction, d) for d in self.durations]
