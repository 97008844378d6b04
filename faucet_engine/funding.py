"""
Funding Coordinator

Startup balancing of the faucet's own accounts:
1. Derive num_clients signers from the mnemonic
2. Query every balance (retrying until the node answers)
3. desired = max(80% of the average balance, 2x grant amount)
4. Clients below desired are parked in being_funded with a queued
   FundingRequest; everyone else goes straight into the pool
"""

from typing import List, Optional, Sequence, Tuple

from loguru import logger

from .chain_client import Signer, derive_signers
from .config import FaucetConfig
from .retry import RetryPolicy
from .state import FaucetState
from .transfer_request import FundingRequest


def desired_balance(balances: Sequence[int], min_funding_balance: int) -> int:
    """
    Target balance every client should be topped up to

    Python ints are unbounded so summing large wei balances cannot overflow.

    Args:
        balances: Observed client balances in wei
        min_funding_balance: Lower bound for the target

    Returns:
        max(80% of mean balance, min_funding_balance)
    """
    if not balances:
        return min_funding_balance
    average = sum(balances) // len(balances)
    return max(average * 8 // 10, min_funding_balance)


class FundingCoordinator:
    """Partition freshly derived clients between the pool and being_funded"""

    def __init__(self, config: FaucetConfig, chain, retry_policy: Optional[RetryPolicy] = None):
        self.config = config
        self.chain = chain
        # On startup the node may fail balance queries for a while even
        # after answering chain id requests.
        self.retry_policy = retry_policy or RetryPolicy(
            delay=config.query_retry_delay,
            description="Startup balance query",
        )

    def derive_clients(self) -> List[Signer]:
        return derive_signers(
            self.config.mnemonic,
            self.config.first_account_index,
            self.config.num_clients,
        )

    async def query_balances(self, clients: Sequence[Signer]) -> List[Tuple[int, Signer]]:
        results = []
        for client in clients:
            balance = await self.retry_policy.with_description(
                f"Balance query for {client.address}"
            ).call(self.chain.balance, client.address)
            logger.info(f"Created client {client.index} {client.address} with balance {balance}")
            results.append((balance, client))
        return results

    async def initialize(self, state: FaucetState, clients: Optional[Sequence[Signer]] = None) -> int:
        """
        Fill ``state`` with the startup partition

        Args:
            state: Empty faucet state
            clients: Pre-derived clients (derived from config if omitted)

        Returns:
            The desired balance used for the partition
        """
        if clients is None:
            clients = self.derive_clients()

        balances = await self.query_balances(clients)
        target = desired_balance([b for b, _ in balances], self.config.min_funding_balance())
        logger.info(f"Desired client balance: {target} wei")

        async with state.lock:
            for balance, client in balances:
                if balance < target:
                    logger.info(f"Queuing funding transfer for {client.address}")
                    state.queue.append(FundingRequest(client.address, target))
                    state.being_funded[client.address] = client
                else:
                    state.pool.push(balance, client)

        logger.info(
            f"✓ Startup balancing done: {len(state.pool)} available, "
            f"{len(state.being_funded)} being funded"
        )
        return target
