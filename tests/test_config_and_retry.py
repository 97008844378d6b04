"""
Unit tests for configuration loading and the retry policy.
"""

import pytest

from faucet_engine.chain_client import TEST_MNEMONIC
from faucet_engine.config import ConfigError, FaucetConfig, parse_duration, parse_ether
from faucet_engine.retry import RetryExhausted, RetryPolicy

ETHER = 10 ** 18


class TestParsing:
    """Test value parsing helpers."""

    @pytest.mark.parametrize("value,expected", [
        (7, 7.0),
        ("7s", 7.0),
        ("500ms", 0.5),
        ("2m", 120.0),
        ("1.5", 1.5),
    ])
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected

    def test_parse_duration_rejects_garbage(self):
        with pytest.raises(ConfigError):
            parse_duration("soon")

    def test_parse_ether(self):
        assert parse_ether("100") == 100 * ETHER
        assert parse_ether("0.5") == ETHER // 2

    def test_parse_ether_rejects_garbage(self):
        with pytest.raises(ConfigError):
            parse_ether("lots")


class TestFaucetConfig:
    """Test config sources and validation."""

    def test_defaults(self):
        config = FaucetConfig()
        assert config.num_clients == 10
        assert config.port == 8111
        assert config.faucet_grant_amount == 100 * ETHER
        assert config.transaction_timeout == 300.0
        assert config.poll_interval == 7.0

    def test_min_funding_balance_is_double_grant(self):
        config = FaucetConfig(faucet_grant_amount=3)
        assert config.min_funding_balance() == 6

    def test_load_yaml_then_env(self, tmp_path):
        config_file = tmp_path / "faucet_config.yaml"
        config_file.write_text(
            "faucet:\n"
            "  num_clients: 4\n"
            "  faucet_grant_amount_ethers: '1'\n"
            "  provider_url_http: http://node:8545\n"
            "  poll_interval: 500ms\n"
        )
        environ = {
            'FAUCET_MNEMONIC': TEST_MNEMONIC,
            'FAUCET_NUM_CLIENTS': '12',
            'FAUCET_PROVIDER_URL_WS': '',
            'UNRELATED': 'x',
        }

        config = FaucetConfig.load(str(config_file), environ=environ)

        assert config.num_clients == 12
        assert config.faucet_grant_amount == ETHER
        assert config.provider_url_http == "http://node:8545"
        assert config.provider_url_ws is None
        assert config.poll_interval == 0.5
        assert config.mnemonic == TEST_MNEMONIC

    def test_grant_amount_units(self):
        base = {'mnemonic': TEST_MNEMONIC, 'provider_url_http': "http://node:8545"}

        in_wei = FaucetConfig.from_dict(dict(base, faucet_grant_amount=1))
        in_ether = FaucetConfig.from_dict(dict(base, faucet_grant_amount_ethers="0.5"))

        assert in_wei.faucet_grant_amount == 1
        assert in_ether.faucet_grant_amount == ETHER // 2

    def test_overrides_win(self, tmp_path):
        environ = {
            'FAUCET_MNEMONIC': TEST_MNEMONIC,
            'FAUCET_PROVIDER_URL_HTTP': 'http://node:8545',
        }
        config = FaucetConfig.load(str(tmp_path / "missing.yaml"), environ=environ, num_clients=1)
        assert config.num_clients == 1

    def test_missing_mnemonic_rejected(self):
        with pytest.raises(ConfigError):
            FaucetConfig.load(None, environ={'FAUCET_PROVIDER_URL_HTTP': 'http://node:8545'})

    def test_missing_http_url_rejected(self):
        with pytest.raises(ConfigError):
            FaucetConfig.load(None, environ={'FAUCET_MNEMONIC': TEST_MNEMONIC})

    def test_bad_num_clients_rejected(self):
        with pytest.raises(ConfigError):
            FaucetConfig.load(None, environ={
                'FAUCET_MNEMONIC': TEST_MNEMONIC,
                'FAUCET_PROVIDER_URL_HTTP': 'http://node:8545',
                'FAUCET_NUM_CLIENTS': '0',
            })

    def test_describe_hides_mnemonic(self):
        config = FaucetConfig(mnemonic=TEST_MNEMONIC, provider_url_http="http://node:8545")
        assert TEST_MNEMONIC not in str(config.describe())


class TestRetryPolicy:
    """Test fixed backoff retries."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("boom")
            return 42

        result = await RetryPolicy(delay=0).call(flaky)
        assert result == 42
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_bounded_policy_gives_up(self):
        async def broken():
            raise ConnectionError("boom")

        with pytest.raises(RetryExhausted) as exc_info:
            await RetryPolicy(delay=0, max_attempts=2).call(broken)
        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_retry_on_none(self):
        results = [None, None, "receipt"]

        async def lookup():
            return results.pop(0)

        assert await RetryPolicy(delay=0, retry_on_none=True).call(lookup) == "receipt"

    @pytest.mark.asyncio
    async def test_none_returned_without_retry_on_none(self):
        async def lookup():
            return None

        assert await RetryPolicy(delay=0, max_attempts=1).call(lookup) is None
