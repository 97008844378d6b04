"""
Transfer Executor

Matches the head of the transfer queue against the richest pool client
and submits the transaction. Only the head is ever considered: a head
request no client can afford blocks everything behind it.
"""

import asyncio

from loguru import logger

from .config import FaucetConfig
from .state import FaucetState
from .transfer_request import Transfer, TransferRequest


class TransferError(Exception):
    """Base class for failed execution attempts"""


class NoRequests(TransferError):
    """The transfer queue is empty"""

    def __init__(self):
        super().__init__("No transfer requests available")


class NoClient(TransferError):
    """No pool client can cover the head request"""

    def __init__(self):
        super().__init__("No client available")


class RpcSubmitError(TransferError):
    """The chain rejected the submission"""

    def __init__(self, request: TransferRequest, sender: str, msg: str):
        self.request = request
        self.sender = sender
        self.msg = msg
        super().__init__(f"Error during transfer submission: {request} {sender} {msg}")


class TransferExecutor:
    """Drains the transfer queue into inflight transfers"""

    def __init__(self, config: FaucetConfig, state: FaucetState, chain):
        self.config = config
        self.state = state
        self.chain = chain

    async def execute_transfer(self) -> str:
        """
        Submit the head request using the richest eligible client

        Returns:
            Hash of the submitted transaction

        Raises:
            NoRequests: queue is empty
            NoClient: head request is not affordable by any client
            RpcSubmitError: submission failed; client and request were returned
        """
        async with self.state.lock:
            if not self.state.queue:
                raise NoRequests()
            if not self.state.pool.has_client_for(self.state.queue[0]):
                raise NoClient()
            balance, sender = self.state.pool.pop()
            request = self.state.queue.popleft()

        # Lock is released while talking to the RPC.
        amount = request.amount_to_send(balance)
        try:
            tx_hash = await self.chain.send_transfer(sender, request.to, amount)
        except asyncio.CancelledError:
            async with self.state.lock:
                self.state.pool.push(balance, sender)
                self.state.queue.append(request)
            raise
        except Exception as e:
            async with self.state.lock:
                # Make the client available again and requeue the request.
                self.state.pool.push(balance, sender)
                self.state.queue.append(request)
            raise RpcSubmitError(request, sender.address, str(e)) from e

        logger.info(f"Sending transfer: {request} hash={tx_hash}")
        # On an extremely fast chain the tx could be mined before it is
        # registered here; the monitor would then treat it as external.
        async with self.state.lock:
            self.state.inflight[tx_hash] = Transfer(sender, request)
        return tx_hash

    async def wait_for_monitoring(self):
        while True:
            async with self.state.lock:
                if self.state.monitoring_started:
                    return
            logger.info("Waiting for transaction monitoring to start...")
            await asyncio.sleep(self.config.monitor_start_wait)

    async def run(self):
        """Execute transfers forever once block monitoring is live"""
        await self.wait_for_monitoring()
        while True:
            try:
                await self.execute_transfer()
                continue
            except RpcSubmitError as e:
                logger.error(f"Failed to execute transfer: {e}")
            except NoClient:
                logger.info("No clients to handle transfer requests.")
            except NoRequests:
                pass
            except Exception as e:
                logger.error(f"Unexpected error executing transfer: {e}")
            # Avoid creating a busy loop.
            await asyncio.sleep(self.config.idle_backoff)
