"""
Faucet Configuration

Loaded once at startup from (lowest to highest precedence):
1. Dataclass defaults
2. YAML config file (faucet_config.yaml)
3. FAUCET_* environment variables
4. Explicit overrides
"""

import os
import re
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger
from web3 import Web3

ENV_PREFIX = "FAUCET_"

_DURATION_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$')
_DURATION_UNITS = {'ms': 0.001, 's': 1.0, 'm': 60.0, 'h': 3600.0}


class ConfigError(ValueError):
    """Invalid or incomplete faucet configuration"""


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds

    Accepts numbers (seconds) and strings such as "7s", "500ms", "2m".
    """
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ConfigError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or 's']


def parse_ether(value: Any) -> int:
    """Convert an ether amount (number or decimal string) to wei"""
    try:
        return int(Web3.to_wei(Decimal(str(value)), 'ether'))
    except (InvalidOperation, ValueError) as e:
        raise ConfigError(f"Invalid ether amount: {value!r}") from e


def _parse_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid integer: {value!r}") from e


def _parse_optional_str(value: Any) -> Optional[str]:
    if value is None or str(value).strip() == '':
        return None
    return str(value)


@dataclass
class FaucetConfig:
    """Faucet settings; amounts in wei, durations in seconds"""

    # Number of managed accounts. Each can carry one transfer per block.
    num_clients: int = 10
    mnemonic: str = ""
    first_account_index: int = 0
    port: int = 8111
    faucet_grant_amount: int = field(default_factory=lambda: parse_ether(100))
    transaction_timeout: float = 300.0
    provider_url_ws: Optional[str] = None
    provider_url_http: str = ""
    poll_interval: float = 7.0

    # Loop timing
    idle_backoff: float = 1.0
    monitor_start_wait: float = 1.0
    query_retry_delay: float = 1.0
    subscribe_retry_delay: float = 1.0
    stream_restart_delay: float = 5.0
    timeout_sweep_interval: float = 60.0

    def min_funding_balance(self) -> int:
        """Minimum balance for a client to count as funded (2x grant, for gas)"""
        return self.faucet_grant_amount * 2

    def validate(self) -> 'FaucetConfig':
        if not self.mnemonic:
            raise ConfigError("mnemonic is required")
        if not self.provider_url_http:
            raise ConfigError("provider_url_http is required")
        if self.num_clients < 1:
            raise ConfigError(f"num_clients must be at least 1, got {self.num_clients}")
        if self.first_account_index < 0:
            raise ConfigError("first_account_index must not be negative")
        if self.faucet_grant_amount <= 0:
            raise ConfigError("faucet_grant_amount must be positive")
        return self

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'FaucetConfig':
        """
        Build a config from raw (string or YAML typed) values

        The grant is given either as ``faucet_grant_amount_ethers`` (ether,
        decimal string allowed) or as ``faucet_grant_amount`` (wei).
        """
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known - {'faucet_grant_amount_ethers'}
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")

        parsed: Dict[str, Any] = {}
        for key, value in values.items():
            if key == 'faucet_grant_amount_ethers':
                parsed['faucet_grant_amount'] = parse_ether(value)
            elif key in ('faucet_grant_amount', 'num_clients', 'first_account_index', 'port'):
                parsed[key] = _parse_int(value)
            elif key in ('transaction_timeout', 'poll_interval', 'idle_backoff', 'monitor_start_wait',
                         'query_retry_delay', 'subscribe_retry_delay', 'stream_restart_delay',
                         'timeout_sweep_interval'):
                parsed[key] = parse_duration(value)
            elif key == 'provider_url_ws':
                parsed[key] = _parse_optional_str(value)
            elif key in known:
                parsed[key] = str(value)
        return cls(**parsed)

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = "faucet_config.yaml",
        environ: Optional[Dict[str, str]] = None,
        **overrides,
    ) -> 'FaucetConfig':
        """
        Load configuration from file, environment and overrides

        Args:
            config_path: YAML file; skipped if missing
            environ: Environment mapping (defaults to os.environ)
            **overrides: Final values, already in internal units

        Returns:
            Validated FaucetConfig
        """
        values: Dict[str, Any] = {}

        if config_path:
            config_file = Path(config_path)
            if config_file.exists():
                with open(config_file, 'r', encoding='utf-8') as f:
                    loaded = yaml.safe_load(f) or {}
                if not isinstance(loaded, dict):
                    raise ConfigError(f"{config_path} must contain a mapping")
                values.update(loaded.get('faucet', loaded))
                logger.info(f"Loaded faucet config from {config_path}")
            else:
                logger.debug(f"Config file {config_path} not found, using environment only")

        environ = os.environ if environ is None else environ
        for key, value in environ.items():
            if key.startswith(ENV_PREFIX):
                values[key[len(ENV_PREFIX):].lower()] = value

        config = cls.from_dict(values)
        if overrides:
            config = replace(config, **overrides)
        return config.validate()

    def describe(self) -> Dict[str, Any]:
        """Loggable view of the config (mnemonic redacted)"""
        return {
            'num_clients': self.num_clients,
            'first_account_index': self.first_account_index,
            'port': self.port,
            'faucet_grant_amount_wei': self.faucet_grant_amount,
            'transaction_timeout': self.transaction_timeout,
            'provider_url_http': self.provider_url_http,
            'provider_url_ws': self.provider_url_ws,
            'poll_interval': self.poll_interval,
        }
