"""
Chain Client

JSON-RPC access for the faucet:
- signer derivation from a mnemonic
- balance queries, value transfers, receipt / block lookups
- new block hash streams (WebSocket subscription or HTTP polling)

Design:
- web3.py AsyncWeb3 over HTTP for request/response calls
- WebSocket ``newHeads`` subscription when a ws url is configured,
  otherwise a ``latest`` block filter polled every poll_interval
- "Not found" is returned as None; transport errors are raised
- Addresses are checksummed, hashes are 0x-prefixed hex strings
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3, WebSocketProvider
from web3.exceptions import BlockNotFound, TransactionNotFound

TEST_MNEMONIC = "test test test test test test test test test test test junk"

# Plain value transfer
TRANSFER_GAS = 21_000

RECEIPT_STATUS_FAILURE = 0
RECEIPT_STATUS_SUCCESS = 1


def derivation_path(index: int) -> str:
    return f"m/44'/60'/0'/0/{index}"


def to_checksum(address: str) -> str:
    """
    Normalize an address to checksum form

    Raises:
        ValueError: if ``address`` is not a valid Ethereum address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Invalid Ethereum address: {address!r}")
    return Web3.to_checksum_address(address)


class Signer:
    """A managed account able to sign faucet transfers (a "client")"""

    def __init__(self, account: LocalAccount, index: Optional[int] = None):
        self.account = account
        self.index = index

    @property
    def address(self) -> str:
        return self.account.address

    def sign_transaction(self, tx: dict):
        return self.account.sign_transaction(tx)

    def __eq__(self, other):
        return isinstance(other, Signer) and other.address == self.address

    def __hash__(self):
        return hash(self.address)

    def __repr__(self):
        return f"Signer({self.address}, index={self.index})"


def derive_signers(mnemonic: str, first_index: int, count: int) -> List[Signer]:
    """
    Derive ``count`` signers at consecutive HD positions

    Args:
        mnemonic: BIP39 seed phrase
        first_index: Position of the first account
        count: Number of accounts

    Returns:
        Signers in derivation order
    """
    # Required for eth-account mnemonic derivation
    Account.enable_unaudited_hdwallet_features()

    signers = []
    for index in range(first_index, first_index + count):
        account = Account.from_mnemonic(mnemonic, account_path=derivation_path(index))
        signers.append(Signer(account, index))
    return signers


@dataclass(frozen=True)
class ChainTx:
    """Transaction as seen in a block"""
    hash: str
    to: Optional[str]


@dataclass(frozen=True)
class Receipt:
    """Transaction receipt"""
    tx_hash: str
    to: Optional[str]
    status: Optional[int]

    @property
    def succeeded(self) -> bool:
        return self.status == RECEIPT_STATUS_SUCCESS

    @property
    def failed(self) -> bool:
        return self.status == RECEIPT_STATUS_FAILURE


class BlockStream:
    """An established source of new block hashes"""

    def __init__(self, hashes: AsyncIterator[str], on_close: Optional[Callable[[], Awaitable]] = None):
        self._hashes = hashes
        self._on_close = on_close

    def __aiter__(self):
        return self._hashes

    async def close(self):
        aclose = getattr(self._hashes, 'aclose', None)
        if aclose is not None:
            await aclose()
        if self._on_close is not None:
            try:
                await self._on_close()
            except Exception as e:
                logger.debug(f"Error closing block stream: {e}")


def _normalize_address(value) -> Optional[str]:
    if value is None:
        return None
    return Web3.to_checksum_address(value)


class ChainClient:
    """
    Async JSON-RPC adapter for balance, transfer and block access

    Usage:
        chain = ChainClient("http://localhost:8545", provider_url_ws="ws://localhost:8545")
        balance = await chain.balance(address)
        stream = await chain.open_block_stream()
        async for block_hash in stream:
            ...
    """

    def __init__(
        self,
        provider_url_http: str,
        provider_url_ws: Optional[str] = None,
        poll_interval: float = 7.0,
        request_timeout: float = 30.0,
    ):
        """
        Args:
            provider_url_http: JSON-RPC endpoint for requests
            provider_url_ws: Optional WebSocket endpoint for block subscriptions
            poll_interval: Block filter polling interval when no ws url is set
            request_timeout: HTTP request timeout in seconds
        """
        self.provider_url_http = provider_url_http
        self.provider_url_ws = provider_url_ws
        self.poll_interval = poll_interval
        self.w3 = AsyncWeb3(AsyncHTTPProvider(provider_url_http, request_kwargs={'timeout': request_timeout}))
        self._chain_id: Optional[int] = None

    async def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.w3.eth.chain_id
        return self._chain_id

    async def balance(self, address: str) -> int:
        return await self.w3.eth.get_balance(address)

    async def send_transfer(self, signer: Signer, to: str, amount: int) -> str:
        """
        Sign locally and submit a value transfer

        Returns:
            Transaction hash
        """
        nonce = await self.w3.eth.get_transaction_count(signer.address, 'pending')
        tx = {
            'to': to,
            'value': amount,
            'gas': TRANSFER_GAS,
            'gasPrice': await self.w3.eth.gas_price,
            'nonce': nonce,
            'chainId': await self.chain_id(),
        }
        signed = signer.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return Receipt(
            tx_hash=Web3.to_hex(receipt['transactionHash']),
            to=_normalize_address(receipt.get('to')),
            status=receipt.get('status'),
        )

    async def get_block_with_txs(self, block_hash: str) -> Optional[List[ChainTx]]:
        """
        Fetch a block's transactions

        Returns:
            Transactions in block order, or None if the block is unknown
            (e.g. it was re-orged out after being announced)
        """
        try:
            block = await self.w3.eth.get_block(block_hash, full_transactions=True)
        except BlockNotFound:
            return None
        if block is None:
            return None
        return [
            ChainTx(hash=Web3.to_hex(tx['hash']), to=_normalize_address(tx.get('to')))
            for tx in block['transactions']
        ]

    async def open_block_stream(self) -> BlockStream:
        """
        Establish a new block hash source

        Raises on connection / subscription failure so the caller can
        retry; the returned stream ends (or raises) when the source dies.
        """
        if self.provider_url_ws:
            return await self._open_subscription()
        return await self._open_polling()

    async def _open_subscription(self) -> BlockStream:
        w3 = await AsyncWeb3(WebSocketProvider(self.provider_url_ws))
        try:
            subscription_id = await w3.eth.subscribe('newHeads')
        except Exception:
            await w3.provider.disconnect()
            raise
        logger.debug(f"Subscribed to new heads: {subscription_id}")
        return BlockStream(self._subscription_hashes(w3), on_close=w3.provider.disconnect)

    async def _subscription_hashes(self, w3: AsyncWeb3) -> AsyncIterator[str]:
        async for message in w3.socket.process_subscriptions():
            header = message.get('result') or {}
            block_hash = header.get('hash')
            if block_hash is None:
                logger.warning(f"Received block without hash, ignoring: {header}")
                continue
            yield Web3.to_hex(block_hash)

    async def _open_polling(self) -> BlockStream:
        block_filter = await self.w3.eth.filter('latest')
        return BlockStream(self._polled_hashes(block_filter))

    async def _polled_hashes(self, block_filter) -> AsyncIterator[str]:
        while True:
            for block_hash in await block_filter.get_new_entries():
                yield Web3.to_hex(block_hash)
            await asyncio.sleep(self.poll_interval)
