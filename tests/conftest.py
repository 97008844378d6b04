"""
Shared fixtures and an in-memory chain for faucet tests.
"""

import asyncio
import itertools
from typing import Dict, List, Optional

import pytest
from eth_account import Account

from faucet_engine.chain_client import TEST_MNEMONIC, ChainTx, Receipt, Signer
from faucet_engine.config import FaucetConfig
from faucet_engine.state import FaucetState

ETHER = 10 ** 18

_END = object()


def make_signer() -> Signer:
    return Signer(Account.create())


def random_address() -> str:
    return Account.create().address


class FakeBlockStream:
    """Controllable block hash stream"""

    def __init__(self):
        self._hashes: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, block_hash: str):
        self._hashes.put_nowait(block_hash)

    def end(self):
        self._hashes.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._hashes.get()
        if item is _END:
            raise StopAsyncIteration
        return item

    async def close(self):
        self.closed = True


class FakeChain:
    """
    In-memory stand-in for ChainClient

    Submitted transfers stay pending until ``mine()`` puts them in a block.
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self.balances: Dict[str, int] = dict(balances or {})
        self.pending: List[dict] = []
        self.sent: List[dict] = []
        self.receipts: Dict[str, Receipt] = {}
        self.blocks: Dict[str, List[ChainTx]] = {}
        self.streams: List[FakeBlockStream] = []

        self.submit_error: Optional[Exception] = None
        self.balance_failures = 0
        self.stream_open_failures = 0
        self.hide_receipts = 0
        self.balance_queries = 0

        self._tx_counter = itertools.count(1)
        self._block_counter = itertools.count(1)

    async def chain_id(self) -> int:
        return 31337

    async def balance(self, address: str) -> int:
        self.balance_queries += 1
        if self.balance_failures > 0:
            self.balance_failures -= 1
            raise ConnectionError("failed to get the last block number from state")
        return self.balances.get(address, 0)

    async def send_transfer(self, signer: Signer, to: str, amount: int) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        tx_hash = f"0x{next(self._tx_counter):064x}"
        tx = {'hash': tx_hash, 'from': signer.address, 'to': to, 'value': amount}
        self.pending.append(tx)
        self.sent.append(tx)
        return tx_hash

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        if self.hide_receipts > 0:
            self.hide_receipts -= 1
            return None
        return self.receipts.get(tx_hash)

    async def get_block_with_txs(self, block_hash: str) -> Optional[List[ChainTx]]:
        return self.blocks.get(block_hash)

    async def open_block_stream(self) -> FakeBlockStream:
        if self.stream_open_failures > 0:
            self.stream_open_failures -= 1
            raise ConnectionError("connection refused")
        stream = FakeBlockStream()
        self.streams.append(stream)
        return stream

    def add_block(self, txs: List[ChainTx], receipts: Optional[List[Receipt]] = None) -> str:
        block_hash = f"0x{next(self._block_counter):064x}"
        self.blocks[block_hash] = txs
        for receipt in receipts or []:
            self.receipts[receipt.tx_hash] = receipt
        return block_hash

    def mine(self, status: Optional[int] = None, announce: bool = True) -> str:
        """
        Include all pending transfers in a new block

        Args:
            status: Force a receipt status (default: 1 if sender can pay, else 0)
            announce: Push the block hash to every open stream
        """
        txs, receipts = [], []
        for tx in self.pending:
            ok = self.balances.get(tx['from'], 0) >= tx['value']
            tx_status = status if status is not None else int(ok)
            if tx_status == 1 and ok:
                self.balances[tx['from']] -= tx['value']
                self.balances[tx['to']] = self.balances.get(tx['to'], 0) + tx['value']
            txs.append(ChainTx(hash=tx['hash'], to=tx['to']))
            receipts.append(Receipt(tx_hash=tx['hash'], to=tx['to'], status=tx_status))
        self.pending = []

        block_hash = self.add_block(txs, receipts)
        if announce:
            self.announce(block_hash)
        return block_hash

    def external_transfer(self, to: str, amount: int, announce: bool = True) -> str:
        """Credit ``to`` from outside the faucet and put it in a block"""
        tx_hash = f"0x{next(self._tx_counter):064x}"
        self.balances[to] = self.balances.get(to, 0) + amount
        block_hash = self.add_block(
            [ChainTx(hash=tx_hash, to=to)],
            [Receipt(tx_hash=tx_hash, to=to, status=1)],
        )
        if announce:
            self.announce(block_hash)
        return block_hash

    def announce(self, block_hash: str):
        for stream in self.streams:
            if not stream.closed:
                stream.push(block_hash)


async def wait_for(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Poll ``predicate`` until it is true"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


def assert_custody(state: FaucetState, expected_addresses=None):
    """Every managed address is held by exactly one container"""
    assert state.custody_violations() == []
    if expected_addresses is not None:
        assert state.managed_addresses() == sorted(expected_addresses)


@pytest.fixture
def config():
    return FaucetConfig(
        num_clients=3,
        mnemonic=TEST_MNEMONIC,
        provider_url_http="http://localhost:8545",
        faucet_grant_amount=ETHER,
        transaction_timeout=300.0,
        idle_backoff=0.01,
        monitor_start_wait=0.01,
        query_retry_delay=0.01,
        subscribe_retry_delay=0.01,
        stream_restart_delay=0.05,
        timeout_sweep_interval=3600.0,
    )


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def state():
    return FaucetState()
