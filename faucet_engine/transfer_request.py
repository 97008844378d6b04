"""
Transfer Requests

The two kinds of work the faucet performs:
- FaucetRequest: fixed-amount grant to an externally requested address
- FundingRequest: internal top-up of one of the faucet's own accounts

Both variants expose the same surface (``to``, ``required_funds()``,
``amount_to_send()``) so callers never branch on the variant.
"""

import time
from dataclasses import dataclass, field
from typing import Union

from .chain_client import Signer


@dataclass(frozen=True)
class FaucetRequest:
    """Grant request for an external recipient"""
    to: str
    amount: int

    def required_funds(self) -> int:
        # Double the faucet amount to be on the safe side regarding gas.
        return self.amount * 2

    def amount_to_send(self, sender_balance: int) -> int:
        return self.amount

    def __str__(self):
        return f"Faucet(to={self.to}, amount={self.amount})"


@dataclass(frozen=True)
class FundingRequest:
    """Top-up request for a managed account that is being funded"""
    to: str
    average_wallet_balance: int

    def required_funds(self) -> int:
        return self.average_wallet_balance

    def amount_to_send(self, sender_balance: int) -> int:
        """
        Funding transfers move half of the sender's last known balance.

        Args:
            sender_balance: Balance the sender was keyed by in the pool

        Returns:
            Amount in wei to transfer
        """
        return sender_balance // 2

    def __str__(self):
        return f"Funding(to={self.to}, target={self.average_wallet_balance})"


TransferRequest = Union[FaucetRequest, FundingRequest]


@dataclass
class Transfer:
    """Submitted but not yet confirmed transfer"""
    sender: Signer
    request: TransferRequest
    submitted_at: float = field(default_factory=time.monotonic)

    def age(self) -> float:
        """Seconds since submission"""
        return time.monotonic() - self.submitted_at
