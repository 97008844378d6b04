"""
Transaction Reconciliation

Matches confirmed transactions back to faucet state:
- inflight transfers: free the sender, promote funded recipients,
  requeue failed requests
- external transfers to being-funded accounts: promote the account
  once its balance reaches the funding threshold

All chain queries happen before the state lock is taken; the lock is
only held to re-validate and commit.
"""

from typing import Optional

from loguru import logger

from .chain_client import ChainTx, Receipt
from .config import FaucetConfig
from .retry import RetryPolicy
from .state import FaucetState
from .transfer_request import FundingRequest, Transfer


class TransactionReconciler:
    """Applies confirmed transactions to the faucet state"""

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
        retry_policy = retry_policy or RetryPolicy(delay=config.query_retry_delay)
        self.balance_policy = retry_policy.with_description("Balance query")
        self.receipt_policy = RetryPolicy(
            delay=retry_policy.delay,
            max_attempts=retry_policy.max_attempts,
            description="Receipt lookup",
            retry_on_none=True,
            log_level="WARNING",
        )

    async def balance(self, address: str) -> int:
        return await self.balance_policy.call(self.chain.balance, address)

    async def handle_tx(self, tx: ChainTx):
        """Reconcile one transaction from a confirmed block"""
        logger.debug(f"Got tx hash {tx.hash}")

        async with self.state.lock:
            inflight = self.state.inflight.get(tx.hash)
            relevant = self.state.is_relevant(tx.hash, tx.to)

        if not relevant:
            return

        # The receipt may lag behind the block announcement; wait for it.
        receipt = await self.receipt_policy.with_description(
            f"Receipt for tx_hash={tx.hash}"
        ).call(self.chain.get_receipt, tx.hash)
        logger.debug(f"Got receipt {receipt}")

        if inflight is None:
            await self.handle_external_transfer(receipt.to or tx.to)
            return

        await self.handle_inflight_transfer(tx.hash, inflight, receipt)

    async def handle_external_transfer(self, receiver: Optional[str]):
        """Promote a being-funded account funded from outside the faucet"""
        if receiver is None:
            return
        logger.debug(f"Handling external incoming transfer to {receiver}")

        async with self.state.lock:
            if receiver not in self.state.being_funded:
                logger.debug(f"Irrelevant transfer to {receiver}")
                return

        balance = await self.balance(receiver)
        if balance < self.config.min_funding_balance():
            logger.warning(f"Balance for client {receiver} {balance} too low to make it available")
            return

        async with self.state.lock:
            if receiver not in self.state.being_funded:
                logger.debug(f"Client {receiver} was made available concurrently")
                return
            logger.info(f"Funded client {receiver} with external transfer")
            if self.state.remove_queued_funding(receiver) is not None:
                logger.info("Removing funding request from queue")
            else:
                logger.warning("Funding request not found in queue")
            logger.info(f"Making client {receiver} available")
            self.state.promote(receiver, balance)

    async def handle_inflight_transfer(self, tx_hash: str, transfer: Transfer, receipt: Receipt):
        """
        Settle a transfer the faucet submitted

        Args:
            tx_hash: Hash of the confirmed transaction
            transfer: Inflight entry read before the receipt lookup
            receipt: Receipt of the transaction
        """
        sender, request = transfer.sender, transfer.request
        logger.info(f"Received receipt for {request}")

        # Do all external calls before state modifications.
        new_sender_balance = await self.balance(sender.address)
        receiver_update = None
        if receipt.succeeded and isinstance(request, FundingRequest):
            receiver_update = (request.to, await self.balance(request.to))

        async with self.state.lock:
            if self.state.inflight.get(tx_hash) is not transfer:
                # The timeout sweep already returned the sender and requeued
                # the request; what is left is an external transfer.
                logger.warning(f"Transfer {tx_hash} no longer inflight, treating as external")
                if receiver_update is not None and receiver_update[0] in self.state.being_funded:
                    receiver, balance = receiver_update
                    if balance < self.config.min_funding_balance():
                        logger.warning(f"Balance for client {receiver} {balance} too low to make it available")
                    else:
                        self._promote_recipient(receiver, balance)
                return

            self.state.pool.push(new_sender_balance, sender)

            if receiver_update is not None:
                self._promote_recipient(*receiver_update)

            if receipt.failed:
                logger.warning(f"Transfer failed tx_hash={tx_hash}, will resend: {request}")
                self.state.queue.append(request)
            elif not receipt.succeeded:
                logger.warning(f"Transfer tx_hash={tx_hash} has unknown status {receipt.status}, not retrying")

            self.state.inflight.pop(tx_hash, None)

    def _promote_recipient(self, receiver: str, balance: int):
        # Caller holds the state lock.
        if receiver not in self.state.being_funded:
            logger.warning(f"Received funding transfer for unknown client {receiver}")
            return
        self.state.remove_queued_funding(receiver)
        self.state.promote(receiver, balance)
        logger.info(f"✓ Funded client {receiver} with {balance}")
