"""
Tests for the faucet HTTP front.
"""

import asyncio

from fastapi.testclient import TestClient

from faucet_engine.web import create_app

ADDRESS = "0x1234567890123456789012345678901234567890"


class StubFaucet:
    async def status(self):
        return {'available_clients': 2, 'queued_requests': 0}


class BrokenQueue:
    def put_nowait(self, item):
        raise RuntimeError("channel closed")


class TestRequestEndpoint:
    """Test POST /faucet/request/{address}."""

    def test_valid_address_is_queued(self):
        requests = asyncio.Queue()
        client = TestClient(create_app(requests))

        response = client.post(f"/faucet/request/{ADDRESS}")

        assert response.status_code == 200
        assert requests.qsize() == 1
        assert requests.get_nowait() == "0x1234567890123456789012345678901234567890"

    def test_lowercase_address_is_checksummed(self):
        requests = asyncio.Queue()
        client = TestClient(create_app(requests))

        address = "0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266"
        response = client.post(f"/faucet/request/{address}")

        assert response.status_code == 200
        assert requests.get_nowait() == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

    def test_bad_address_rejected(self):
        requests = asyncio.Queue()
        client = TestClient(create_app(requests))

        response = client.post("/faucet/request/not-an-address")

        assert response.status_code == 400
        assert response.json() == {'error': "BadAddress", 'input': "not-an-address"}
        assert requests.empty()

    def test_internal_failure_is_generic(self):
        client = TestClient(create_app(BrokenQueue()))

        response = client.post(f"/faucet/request/{ADDRESS}")

        assert response.status_code == 500
        assert response.json() == {'error': "FaucetError", 'msg': "channel closed"}


class TestHealthcheck:
    """Test GET /healthcheck."""

    def test_available_without_faucet(self):
        client = TestClient(create_app(asyncio.Queue()))
        response = client.get("/healthcheck")
        assert response.status_code == 200
        assert response.json() == {'status': 'available'}

    def test_reports_faucet_status(self):
        client = TestClient(create_app(asyncio.Queue(), StubFaucet()))
        body = client.get("/healthcheck").json()
        assert body['status'] == 'available'
        assert body['available_clients'] == 2
