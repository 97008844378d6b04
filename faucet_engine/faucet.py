"""
Faucet

Wires the faucet activities around one shared state:
- ChainMonitor: block feed -> reconciliation
- request listener: inbound addresses -> FaucetRequests
- TimeoutReconciler: recovers stuck inflight transfers
- TransferExecutor: queue head -> submitted transaction

All four run concurrently until the process exits.
"""

import asyncio
from typing import Dict, Optional

from loguru import logger

from .chain_client import ChainClient
from .config import FaucetConfig
from .executor import TransferExecutor
from .funding import FundingCoordinator
from .monitor import ChainMonitor
from .reconciliation import TransactionReconciler
from .state import FaucetState
from .timeouts import TimeoutReconciler
from .transfer_request import FaucetRequest, TransferRequest


class Faucet:
    """
    Multi-account faucet

    Usage:
        requests = asyncio.Queue()
        faucet = await Faucet.create(config, requests)
        task = faucet.start()
        await requests.put("0x...")
    """

    def __init__(self, config: FaucetConfig, chain, request_queue: asyncio.Queue, state: Optional[FaucetState] = None):
        self.config = config
        self.chain = chain
        self.request_queue = request_queue
        self.state = state or FaucetState()

        self.reconciler = TransactionReconciler(config, self.state, chain)
        self.executor = TransferExecutor(config, self.state, chain)
        self.monitor = ChainMonitor(config, self.state, chain, self.reconciler)
        self.timeouts = TimeoutReconciler(config, self.state, chain)

    @classmethod
    async def create(cls, config: FaucetConfig, request_queue: asyncio.Queue, chain=None) -> 'Faucet':
        """
        Create a faucet and run startup balancing

        Args:
            config: Faucet configuration
            request_queue: Channel of recipient addresses
            chain: Chain client (built from config if omitted)

        Returns:
            Faucet ready to start
        """
        if chain is None:
            chain = ChainClient(
                config.provider_url_http,
                provider_url_ws=config.provider_url_ws,
                poll_interval=config.poll_interval,
            )
            logger.info(f"Connected to chain {await chain.chain_id()} at {config.provider_url_http}")

        faucet = cls(config, chain, request_queue)
        await FundingCoordinator(config, chain).initialize(faucet.state)
        return faucet

    def start(self) -> asyncio.Future:
        """Spawn all faucet activities; the returned future never completes normally"""
        logger.info("Starting faucet activities")
        return asyncio.gather(
            asyncio.create_task(self.monitor.run(), name="chain-monitor"),
            asyncio.create_task(self.monitor_faucet_requests(), name="faucet-requests"),
            asyncio.create_task(self.timeouts.run(), name="transaction-timeouts"),
            asyncio.create_task(self.executor.run(), name="transfer-executor"),
        )

    async def request_transfer(self, request: TransferRequest):
        logger.info(f"Adding transfer to queue: {request}")
        async with self.state.lock:
            self.state.queue.append(request)

    async def monitor_faucet_requests(self):
        while True:
            address = await self.request_queue.get()
            try:
                await self.request_transfer(FaucetRequest(address, self.config.faucet_grant_amount))
            finally:
                self.request_queue.task_done()

    async def execute_transfer(self) -> str:
        return await self.executor.execute_transfer()

    async def process_transaction_timeouts(self):
        return await self.timeouts.process_transaction_timeouts()

    async def balance(self, address: str) -> int:
        return await self.chain.balance(address)

    async def status(self) -> Dict:
        async with self.state.lock:
            return self.state.snapshot()
