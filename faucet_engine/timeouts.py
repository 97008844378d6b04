"""
Timeout Reconciler

Periodically recovers transfers that stayed inflight longer than the
transaction timeout: the request is requeued and the sender returned to
the pool. The original transaction is not cancelled; if it confirms
later it is handled as an external transfer.
"""

import asyncio
from typing import List, Optional

from loguru import logger

from .config import FaucetConfig
from .retry import RetryPolicy
from .state import FaucetState


class TimeoutReconciler:
    """Sweeps stale inflight transfers back into queue and pool"""

    def __init__(
        self,
        config: FaucetConfig,
        state: FaucetState,
        chain,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.config = config
        self.state = state
        self.chain = chain
        self.balance_policy = (retry_policy or RetryPolicy(delay=config.query_retry_delay)).with_description(
            "Balance query"
        )

    async def process_transaction_timeouts(self) -> List[str]:
        """
        Recover every inflight transfer older than the timeout

        Returns:
            Hashes of the recovered transfers
        """
        logger.info("Processing transaction timeouts")
        async with self.state.lock:
            inflight = dict(self.state.inflight)

        recovered = []
        for tx_hash, transfer in inflight.items():
            if transfer.age() < self.config.transaction_timeout:
                continue
            logger.warning(f"Transfer timed out: {transfer.request}")
            balance = await self.balance_policy.call(self.chain.balance, transfer.sender.address)

            async with self.state.lock:
                if self.state.inflight.get(tx_hash) is not transfer:
                    # Confirmed while we were querying the balance.
                    continue
                self.state.queue.append(transfer.request)
                del self.state.inflight[tx_hash]
                self.state.pool.push(balance, transfer.sender)
            recovered.append(tx_hash)
        return recovered

    async def run(self):
        while True:
            await asyncio.sleep(self.config.timeout_sweep_interval)
            try:
                await self.process_transaction_timeouts()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error processing transaction timeouts: {e}")
