"""
Client Pool

Available signer clients ordered by last known balance (richest first).
Selection is greedy: the richest client is always handed out, even for
cheap transfers.
"""

import heapq
import itertools
from typing import Dict, Iterator, List, Optional, Tuple

from .chain_client import Signer

_REMOVED = None


class ClientPool:
    """
    Max-heap of signers keyed by balance with an address side map

    The side map allows a client to be removed or re-keyed by address;
    stale heap entries are invalidated in place and skipped on pop.
    """

    def __init__(self):
        self._heap: List[list] = []
        self._entries: Dict[str, list] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: str) -> bool:
        return address in self._entries

    def __iter__(self) -> Iterator[Tuple[int, Signer]]:
        for entry in self._entries.values():
            yield -entry[0], entry[2]

    def push(self, balance: int, client: Signer):
        """Insert a client, or update its balance if already present"""
        if client.address in self._entries:
            self._invalidate(client.address)
        entry = [-balance, next(self._counter), client]
        self._entries[client.address] = entry
        heapq.heappush(self._heap, entry)

    def pop(self) -> Optional[Tuple[int, Signer]]:
        """Remove and return the highest balance client, or None if empty"""
        while self._heap:
            neg_balance, _, client = heapq.heappop(self._heap)
            if client is not _REMOVED:
                del self._entries[client.address]
                return -neg_balance, client
        return None

    def remove(self, address: str) -> Optional[Tuple[int, Signer]]:
        """Remove a client by address"""
        if address not in self._entries:
            return None
        entry = self._entries[address]
        client = entry[2]
        self._invalidate(address)
        return -entry[0], client

    def best_balance(self) -> Optional[int]:
        self._discard_stale()
        if not self._heap:
            return None
        return -self._heap[0][0]

    def has_client_for(self, request) -> bool:
        """Check whether the richest available client can cover the request"""
        balance = self.best_balance()
        return balance is not None and balance >= request.required_funds()

    def addresses(self) -> List[str]:
        return list(self._entries)

    def _invalidate(self, address: str):
        entry = self._entries.pop(address)
        entry[2] = _REMOVED

    def _discard_stale(self):
        while self._heap and self._heap[0][2] is _REMOVED:
            heapq.heappop(self._heap)
