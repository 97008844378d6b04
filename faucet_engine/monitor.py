"""
Chain Monitor

Watches new blocks forever and hands every transaction to the
reconciler. Reconnects on any subscription failure or stream end; never
gives up.
"""

import asyncio

from loguru import logger

from .config import FaucetConfig
from .reconciliation import TransactionReconciler
from .retry import RetryPolicy
from .state import FaucetState


class ChainMonitor:
    """Block feed consumer driving transaction reconciliation"""

    def __init__(
        self,
        config: FaucetConfig,
        state: FaucetState,
        chain,
        reconciler: TransactionReconciler,
    ):
        self.config = config
        self.state = state
        self.chain = chain
        self.reconciler = reconciler
        self.block_policy = RetryPolicy(
            delay=config.query_retry_delay,
            description="Block lookup",
        )
        self.blocks_processed = 0

    async def process_block(self, block_hash: str):
        transactions = await self.block_policy.with_description(
            f"Block lookup {block_hash}"
        ).call(self.chain.get_block_with_txs, block_hash)

        if transactions is None:
            # Only just-announced hashes are requested, so a missing block
            # means it was re-orged out. Its transactions are dropped.
            logger.error(f"Received hash {block_hash} from block stream, but block was missing")
            return

        for tx in transactions:
            await self.reconciler.handle_tx(tx)
        self.blocks_processed += 1

    async def _mark_started(self):
        async with self.state.lock:
            self.state.monitoring_started = True
        logger.info("Transaction monitoring started ...")

    async def run_once(self) -> bool:
        """
        Open one block stream and consume it until it ends

        Returns:
            False if the stream could not be established, True once an
            established stream has ended
        """
        try:
            stream = await self.chain.open_block_stream()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error reconnecting to block stream: {e}")
            return False

        await self._mark_started()
        try:
            async for block_hash in stream:
                await self.process_block(block_hash)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Block stream failed: {e}")
        finally:
            await stream.close()
        return True

    async def run(self):
        while True:
            if not await self.run_once():
                await asyncio.sleep(self.config.subscribe_retry_delay)
                continue
            # The subscription was closed, e.g. the RPC server restarted.
            logger.warning("Block subscription closed, will restart ...")
            await asyncio.sleep(self.config.stream_restart_delay)
