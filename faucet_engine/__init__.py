"""
Faucet Engine

Multi-account EVM faucet that grants funds on request and keeps its own
accounts funded.

Components:
- client_pool: signers available as senders, richest first
- state: shared pool / inflight / being-funded / queue aggregate
- funding: startup balancing of the managed accounts
- executor: queue head -> submitted transaction
- monitor: block feed consumer
- reconciliation: confirmed transactions -> state updates
- timeouts: recovery of stuck inflight transfers
- chain_client: web3 JSON-RPC adapter and signer derivation
- web: thin HTTP front (request endpoint, healthcheck)

Invariant:
Every managed account is held by exactly one of the pool, the
being-funded set, or an inflight transfer (as sender).
"""

from .chain_client import (
    TEST_MNEMONIC,
    BlockStream,
    ChainClient,
    ChainTx,
    Receipt,
    Signer,
    derive_signers,
)
from .client_pool import ClientPool
from .config import ConfigError, FaucetConfig
from .executor import (
    NoClient,
    NoRequests,
    RpcSubmitError,
    TransferError,
    TransferExecutor,
)
from .faucet import Faucet
from .funding import FundingCoordinator, desired_balance
from .monitor import ChainMonitor
from .reconciliation import TransactionReconciler
from .retry import RetryExhausted, RetryPolicy
from .state import FaucetState
from .timeouts import TimeoutReconciler
from .transfer_request import FaucetRequest, FundingRequest, Transfer, TransferRequest

__all__ = [
    # Main faucet
    'Faucet',
    'FaucetConfig',
    'ConfigError',
    'FaucetState',

    # Requests
    'FaucetRequest',
    'FundingRequest',
    'TransferRequest',
    'Transfer',

    # Activities
    'TransferExecutor',
    'ChainMonitor',
    'TransactionReconciler',
    'TimeoutReconciler',
    'FundingCoordinator',
    'desired_balance',

    # Errors
    'TransferError',
    'NoRequests',
    'NoClient',
    'RpcSubmitError',
    'RetryExhausted',

    # Chain access
    'ChainClient',
    'BlockStream',
    'ChainTx',
    'Receipt',
    'Signer',
    'derive_signers',
    'TEST_MNEMONIC',

    'ClientPool',
    'RetryPolicy',
]

__version__ = '0.1.0'
__description__ = 'Multi-account EVM faucet with startup balancing'
