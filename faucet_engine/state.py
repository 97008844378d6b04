"""
Faucet State

The single shared aggregate all faucet activities operate on:
- pool: signers usable as senders (ClientPool)
- inflight: tx hash -> Transfer
- being_funded: address -> Signer waiting for its own top-up
- queue: FIFO backlog of transfer requests
- monitoring_started: set once block observation is live

Every managed account is held by exactly one of pool, being_funded or
an inflight transfer (as sender). All mutation happens while holding
``lock``; helpers below assume the caller holds it.
"""

import asyncio
from collections import Counter, deque
from typing import Deque, Dict, List, Optional

from .chain_client import Signer
from .client_pool import ClientPool
from .transfer_request import FundingRequest, Transfer, TransferRequest


class FaucetState:
    """Lock guarded aggregate of pool, inflight, being-funded and queue"""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.pool = ClientPool()
        self.inflight: Dict[str, Transfer] = {}
        self.being_funded: Dict[str, Signer] = {}
        # Funding requests are only ordered before faucet requests by
        # having been enqueued at startup; there is no separate priority.
        self.queue: Deque[TransferRequest] = deque()
        self.monitoring_started = False

    def is_relevant(self, tx_hash: str, to: Optional[str]) -> bool:
        """A transaction matters if it is inflight or pays a being-funded account"""
        return tx_hash in self.inflight or (to is not None and to in self.being_funded)

    def remove_queued_funding(self, address: str) -> Optional[TransferRequest]:
        """Drop the first queued funding request addressed to ``address``"""
        for request in self.queue:
            if isinstance(request, FundingRequest) and request.to == address:
                self.queue.remove(request)
                return request
        return None

    def promote(self, address: str, balance: int) -> bool:
        """Move a being-funded client into the pool"""
        client = self.being_funded.pop(address, None)
        if client is None:
            return False
        self.pool.push(balance, client)
        return True

    def custody_violations(self) -> List[str]:
        """
        Addresses held by more than one container

        Returns:
            Sorted list of offending addresses (empty when consistent)
        """
        holders = Counter(self.pool.addresses())
        holders.update(self.being_funded.keys())
        holders.update(t.sender.address for t in self.inflight.values())
        return sorted(address for address, count in holders.items() if count > 1)

    def managed_addresses(self) -> List[str]:
        addresses = list(self.pool.addresses())
        addresses.extend(self.being_funded)
        addresses.extend(t.sender.address for t in self.inflight.values())
        return sorted(addresses)

    def snapshot(self) -> Dict:
        return {
            'available_clients': len(self.pool),
            'clients_being_funded': len(self.being_funded),
            'inflight_transfers': len(self.inflight),
            'queued_requests': len(self.queue),
            'monitoring_started': self.monitoring_started,
        }
