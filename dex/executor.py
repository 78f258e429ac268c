"""
DEX arbitrage execution engine.

Walks one opportunity through gas check, allowance check, optional approval,
swap and settlement. Every attempt ends in an ExecutionResult; no exception
other than task cancellation leaves ``execute_opportunity``.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3

from arbites.exceptions import ExecutionError, error_kind
from arbites.utils import get_logger

from .chain_client import ChainClient
from .registry import DexRegistry
from .tx_builder import TransactionBuilder
from .types import (
    ArbitrageOpportunity,
    ExecutionResult,
    ExecutionStatus,
    TxDescriptor,
    TxReceipt,
)

logger = get_logger(__name__)


@dataclass
class ExecutionConfig:
    """
    Configuration for arbitrage execution.

    Attributes:
        max_gas_price: Gas price ceiling in wei; above it attempts are skipped
        slippage_bps: Tolerated swap slippage in basis points
        confirmations: Blocks to wait for on each transaction
        call_timeout: Seconds allowed for a single read or broadcast
        receipt_timeout: Seconds allowed for a transaction to confirm
    """

    max_gas_price: int = Web3.to_wei(100, "gwei")
    slippage_bps: int = 50
    confirmations: int = 1
    call_timeout: float = 30.0
    receipt_timeout: float = 180.0


class ExecutionEngine:
    """Executes cross-DEX opportunities with a single signing account."""

    def __init__(
        self,
        chain_client: ChainClient,
        registry: DexRegistry,
        signer: LocalAccount,
        config: Optional[ExecutionConfig] = None,
        tx_builder: Optional[TransactionBuilder] = None,
    ):
        """
        Initialize engine.

        Args:
            chain_client: Chain access for reads and sends
            registry: DEX lookup for router addresses
            signer: Account that signs and receives swaps
            config: Execution limits
            tx_builder: Transaction builder (default: wall-clock deadlines)
        """
        self.chain_client = chain_client
        self.registry = registry
        self.signer = signer
        self.config = config or ExecutionConfig()
        self.tx_builder = tx_builder or TransactionBuilder()

        # Execution statistics
        self.executions_attempted = 0
        self.executions_successful = 0
        self.executions_skipped = 0
        self.executions_failed = 0
        self.total_gas_used = 0
        self.total_actual_profit = 0

    async def execute_opportunities(
        self, opportunities: List[ArbitrageOpportunity]
    ) -> List[ExecutionResult]:
        """
        Execute the single best opportunity of a scan.

        Ranks by net profit, then by divergence, highest first. Only the best
        one is attempted, so two trades never race for the same nonce or
        reserves.

        Returns:
            Empty list if there was nothing to do, otherwise one result
        """
        if not opportunities:
            logger.debug("No opportunities to execute")
            return []

        best = max(opportunities, key=lambda o: (o.net_profit, o.profit_percentage))
        logger.info(
            f"Executing best opportunity: {best.route} "
            f"for {best.profit_percentage:.2f}% divergence"
        )
        return [await self.execute_opportunity(best)]

    async def execute_opportunity(self, opportunity: ArbitrageOpportunity) -> ExecutionResult:
        self.executions_attempted += 1

        buy_dex = self.registry.get_dex(opportunity.buy_dex)
        sell_dex = self.registry.get_dex(opportunity.sell_dex)
        if buy_dex is None or sell_dex is None:
            return self._finish(
                opportunity, ExecutionStatus.FAILED, reason="DEX not found in registry"
            )

        approval_receipt: Optional[TxReceipt] = None
        try:
            gas_price = await self._bounded(self.chain_client.get_gas_price())
            if gas_price > self.config.max_gas_price:
                return self._finish(
                    opportunity,
                    ExecutionStatus.SKIPPED,
                    reason=f"Gas price too high: {gas_price} > {self.config.max_gas_price}",
                )

            allowance = await self._bounded(
                self.chain_client.get_allowance(
                    opportunity.token_in, self.signer.address, buy_dex.router_address
                )
            )
            if allowance < opportunity.amount_in:
                logger.info(
                    f"Approving {opportunity.token_in.symbol} spend for {buy_dex.name} router"
                )
                approval = replace(
                    self.tx_builder.build_approval(
                        opportunity.token_in, buy_dex.router_address, opportunity.amount_in
                    ),
                    gas_price=gas_price,
                )
                try:
                    approval_receipt = await self._send_and_wait(approval, stage="approve")
                except Exception as e:
                    return self._finish(
                        opportunity, ExecutionStatus.FAILED, reason=f"Approval failed: {e}"
                    )

            # Both transactions are signed at the price that passed the ceiling check
            swap = replace(
                self.tx_builder.build_swap(
                    opportunity,
                    buy_dex.router_address,
                    self.signer.address,
                    self.config.slippage_bps,
                ),
                gas_price=gas_price,
            )
            swap_receipt = await self._send_and_wait(swap, stage="swap")

            # Realized output is not read back from logs; gas is the only known cost
            paid_gas_price = swap_receipt.effective_gas_price or gas_price
            actual_profit = opportunity.expected_profit - swap_receipt.gas_used * paid_gas_price
            self.total_gas_used += swap_receipt.gas_used
            self.total_actual_profit += actual_profit

            return self._finish(
                opportunity,
                ExecutionStatus.SUCCESS,
                approval_receipt=approval_receipt,
                swap_receipt=swap_receipt,
                actual_profit=actual_profit,
            )

        except Exception as e:
            return self._finish(
                opportunity,
                ExecutionStatus.FAILED,
                approval_receipt=approval_receipt,
                reason=f"{error_kind(e)}: {e}",
            )

    async def _bounded(self, awaitable: Any) -> Any:
        return await asyncio.wait_for(awaitable, timeout=self.config.call_timeout)

    async def _send_and_wait(self, tx: TxDescriptor, stage: str) -> TxReceipt:
        """
        Broadcast a transaction and wait for it to confirm.

        Raises:
            ExecutionError: If the transaction reverted
        """
        tx_hash = await self._bounded(self.chain_client.send_transaction(tx, self.signer))
        logger.info(f"{stage.capitalize()} transaction: {tx_hash}")

        receipt = await asyncio.wait_for(
            self.chain_client.wait_for_transaction(tx_hash, self.config.confirmations),
            timeout=self.config.receipt_timeout,
        )
        if not receipt.succeeded:
            raise ExecutionError(
                f"{stage.capitalize()} transaction {tx_hash} reverted",
                stage=stage,
                tx_hash=tx_hash,
            )
        return receipt

    def _finish(
        self,
        opportunity: ArbitrageOpportunity,
        status: ExecutionStatus,
        **fields: Any,
    ) -> ExecutionResult:
        result = ExecutionResult(opportunity=opportunity, status=status, **fields)

        if status == ExecutionStatus.SUCCESS:
            self.executions_successful += 1
        elif status == ExecutionStatus.SKIPPED:
            self.executions_skipped += 1
            logger.warning(f"Execution skipped: {opportunity.route}: {result.reason}")
        else:
            self.executions_failed += 1
            logger.error(f"Execution failed: {opportunity.route}: {result.reason}")
        return result

    def get_stats(self) -> Dict[str, Any]:
        """Get execution statistics."""
        success_rate = (
            self.executions_successful / self.executions_attempted * 100
            if self.executions_attempted > 0
            else 0.0
        )

        return {
            "executions_attempted": self.executions_attempted,
            "executions_successful": self.executions_successful,
            "executions_skipped": self.executions_skipped,
            "executions_failed": self.executions_failed,
            "success_rate_pct": success_rate,
            "total_gas_used": self.total_gas_used,
            "total_actual_profit": self.total_actual_profit,
        }
