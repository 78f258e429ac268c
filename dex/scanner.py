"""
Cross-DEX opportunity detection.

Groups a monitor snapshot by token pair and compares every two pools on
different DEXes. A pair whose normalized prices diverge by at least the
configured percentage yields one ArbitrageOpportunity.
"""

from dataclasses import dataclass
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from arbites.exceptions import InsufficientLiquidityError
from arbites.utils import get_logger

from .adapters.v2 import calculate_price, orient_reserves, pair_key, swap_out
from .types import ArbitrageOpportunity, PoolRecord, Token

logger = get_logger(__name__)

DEFAULT_PROBE_AMOUNT = 1000
DEFAULT_GAS_ESTIMATE = 200_000


@dataclass(frozen=True)
class OpportunityCandidate:
    """Everything known about a divergence before profit is estimated."""

    buy_record: PoolRecord
    sell_record: PoolRecord
    token_in: Token
    token_out: Token
    amount_in: int
    expected_output: int
    buy_price: float
    sell_price: float
    gas_estimate: int


class ProfitEstimator(Protocol):
    """Turns a candidate into (expected_profit, net_profit) in raw token_in units."""

    def estimate(self, candidate: OpportunityCandidate) -> Tuple[int, int]:
        ...


class ZeroProfitEstimator:
    """Reports no profit; opportunities are ranked by divergence alone."""

    def estimate(self, candidate: OpportunityCandidate) -> Tuple[int, int]:
        return 0, 0


class OpportunityScanner:
    """
    Finds price divergences between pools quoting the same pair.

    Args:
        min_profit_percentage: Minimum divergence (percent) to report
        probe_amount: Trade size in whole token_in units
        gas_estimate: Gas units assumed per swap
        profit_estimator: Profit model (default: ZeroProfitEstimator)
    """

    def __init__(
        self,
        min_profit_percentage: float = 0.5,
        probe_amount: int = DEFAULT_PROBE_AMOUNT,
        gas_estimate: int = DEFAULT_GAS_ESTIMATE,
        profit_estimator: Optional[ProfitEstimator] = None,
    ):
        if min_profit_percentage < 0:
            raise ValueError(f"min_profit_percentage must be >= 0: {min_profit_percentage}")
        if probe_amount <= 0:
            raise ValueError(f"probe_amount must be positive: {probe_amount}")
        self.min_profit_percentage = min_profit_percentage
        self.probe_amount = probe_amount
        self.gas_estimate = gas_estimate
        self.profit_estimator = profit_estimator or ZeroProfitEstimator()

    def scan(self, records: Iterable[PoolRecord]) -> List[ArbitrageOpportunity]:
        """
        Scan one snapshot.

        Returns:
            Opportunities sorted by profit_percentage, highest first
        """
        groups: Dict[str, List[PoolRecord]] = {}
        for record in records:
            if record.reserves is None:
                continue
            key = pair_key(record.reserves.token0, record.reserves.token1)
            groups.setdefault(key, []).append(record)

        opportunities = []
        for key, group in groups.items():
            if len(group) < 2:
                continue
            for first, second in combinations(group, 2):
                if first.dex_name == second.dex_name:
                    continue
                opportunity = self._compare(key, first, second)
                if opportunity is not None:
                    opportunities.append(opportunity)

        opportunities.sort(key=lambda o: o.profit_percentage, reverse=True)
        return opportunities

    def _compare(
        self, key: str, first: PoolRecord, second: PoolRecord
    ) -> Optional[ArbitrageOpportunity]:
        token_a, token_b, first_a, first_b = orient_reserves(first.reserves)
        _, _, second_a, second_b = orient_reserves(second.reserves)

        try:
            price_first = calculate_price(first_a, first_b, token_a.decimals, token_b.decimals)
            price_second = calculate_price(second_a, second_b, token_a.decimals, token_b.decimals)
        except InsufficientLiquidityError as e:
            logger.debug(f"Skipping {first.dex_name}/{second.dex_name} on {key}: {e}")
            return None

        average = (price_first + price_second) / 2
        divergence = abs(price_first - price_second) / average * 100
        if divergence < self.min_profit_percentage:
            return None

        if price_first < price_second:
            buy, sell, buy_in, buy_out, buy_price, sell_price = (
                first, second, first_a, first_b, price_first, price_second
            )
        else:
            buy, sell, buy_in, buy_out, buy_price, sell_price = (
                second, first, second_a, second_b, price_second, price_first
            )

        amount_in = self.probe_amount * 10**token_a.decimals
        try:
            expected_output = swap_out(amount_in, buy_in, buy_out, buy.reserves.fee_bps)
        except InsufficientLiquidityError as e:
            logger.debug(f"Buy pool {buy.address} cannot quote probe on {key}: {e}")
            return None

        candidate = OpportunityCandidate(
            buy_record=buy,
            sell_record=sell,
            token_in=token_a,
            token_out=token_b,
            amount_in=amount_in,
            expected_output=expected_output,
            buy_price=buy_price,
            sell_price=sell_price,
            gas_estimate=self.gas_estimate,
        )
        expected_profit, net_profit = self.profit_estimator.estimate(candidate)

        return ArbitrageOpportunity(
            buy_dex=buy.dex_name,
            sell_dex=sell.dex_name,
            token_in=token_a,
            token_out=token_b,
            amount_in=amount_in,
            expected_profit=expected_profit,
            profit_percentage=divergence,
            gas_estimate=self.gas_estimate,
            net_profit=net_profit,
            expected_output=expected_output,
            buy_pool=buy.address,
            sell_pool=sell.address,
            pair_key=key,
        )
