"""Simulated external liquidity venues."""

import structlog

from basketmigrator.basket.ledger import Ledger
from basketmigrator.errors import InsufficientLiquidity, PreconditionViolation, SlippageExceeded
from basketmigrator.rebalancing.base import LiquidityVenue
from basketmigrator.units import BPS, convert_decimals

logger = structlog.get_logger(__name__)


class FixedRateVenue(LiquidityVenue):
    """Pool that quotes a fixed rate per pair, minus a fee, against finite reserves.

    Rates are basis points of the decimal-adjusted input: 9990 means one unit
    in returns 0.999 units out before the fee.
    """

    def __init__(
        self,
        ledger: Ledger,
        name: str,
        decimals: dict[str, int],
        rates_bps: dict[tuple[str, str], int] | None = None,
        fee_bps: int = 4,
    ):
        self._ledger = ledger
        self.name = name
        self._decimals = dict(decimals)
        self._rates_bps = dict(rates_bps or {})
        self.fee_bps = fee_bps

    def decimals_of(self, asset_id: str) -> int:
        try:
            return self._decimals[asset_id]
        except KeyError:
            raise PreconditionViolation(f"{self.name} does not list {asset_id}") from None

    def set_rate(self, asset_in: str, asset_out: str, rate_bps: int) -> None:
        self._rates_bps[(asset_in, asset_out)] = rate_bps

    def quote(self, asset_in: str, asset_out: str, amount_in: int) -> int:
        rate = self._rates_bps.get((asset_in, asset_out), BPS)
        converted = convert_decimals(amount_in, self.decimals_of(asset_in), self.decimals_of(asset_out))
        return converted * rate // BPS * (BPS - self.fee_bps) // BPS

    def exchange(
        self, asset_in: str, asset_out: str, amount_in: int, min_out: int, *, account: str
    ) -> int:
        amount_out = self.quote(asset_in, asset_out, amount_in)
        if amount_out < min_out:
            raise SlippageExceeded(f"{self.name}: exchange resulted in fewer coins than expected", amount_out, min_out)
        reserve = self._ledger.balance_of(self.name, asset_out)
        if amount_out > reserve:
            raise InsufficientLiquidity(f"{self.name} holds {reserve} {asset_out}, {amount_out} requested")

        with self._ledger.atomic():
            self._ledger.transfer(asset_in, account, self.name, amount_in)
            self._ledger.transfer(asset_out, self.name, account, amount_out)

        logger.debug(
            "venue.exchanged",
            venue=self.name,
            asset_in=asset_in,
            asset_out=asset_out,
            amount_in=amount_in,
            amount_out=amount_out,
        )
        return amount_out
