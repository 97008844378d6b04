"""
Faucet Web Server

Thin HTTP front for the faucet:
1. Healthcheck endpoint so the process can be restarted if it fails
2. Request endpoint to use the faucet without a chat bot

Endpoints:
- POST /faucet/request/{address}   Queue a grant for address
- GET  /healthcheck                Liveness + state snapshot

Only two failures cross this boundary: a malformed address (400) and a
generic internal error (500).
"""

import asyncio
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from loguru import logger

from .chain_client import to_checksum

VERSION = "0.1.0"


def create_app(request_queue: asyncio.Queue, faucet=None) -> FastAPI:
    """
    Create the FastAPI app

    Args:
        request_queue: Channel the faucet consumes recipient addresses from
        faucet: Optional Faucet whose status is reported by the healthcheck
    """
    app = FastAPI(
        title="faucet-engine",
        description="Multi-account EVM faucet",
        version=VERSION,
    )

    # Can invoke with
    #    curl -i -X POST http://0.0.0.0:8111/faucet/request/0x1234567890123456789012345678901234567890
    @app.post("/faucet/request/{address}")
    async def request_grant(address: str):
        try:
            recipient = to_checksum(address)
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "BadAddress", "input": address})

        logger.info(f"Received faucet request for {recipient}")
        try:
            request_queue.put_nowait(recipient)
        except Exception as e:
            logger.error(f"Failed to queue faucet request for {recipient}: {e}")
            return JSONResponse(status_code=500, content={"error": "FaucetError", "msg": str(e)})
        return {"status": "queued", "address": recipient}

    @app.get("/healthcheck")
    async def healthcheck():
        """Heartbeat endpoint."""
        body = {"status": "available"}
        if faucet is not None:
            body.update(await faucet.status())
        return body

    return app


async def serve(app: FastAPI, port: int, host: str = "0.0.0.0", log_level: Optional[str] = "info"):
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level)
    await uvicorn.Server(config).serve()
