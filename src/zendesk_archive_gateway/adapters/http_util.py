"""HTTP plumbing shared by the outbound clients and the ASGI middlewares."""

from __future__ import annotations

import httpx
from starlette.types import Receive


def timeouts_for(seconds: float) -> httpx.Timeout:
    """Read/write get the full budget; connect and pool wait are capped at 5s."""
    total = float(seconds)
    connect = min(5.0, total)
    return httpx.Timeout(connect=connect, read=total, write=total, pool=connect)


async def drain_stream(receive: Receive) -> None:
    """Read and discard the rest of a request body (used after an early reject)."""
    while True:
        message = await receive()
        if message.get("type") == "http.disconnect":
            return
        if message.get("type") == "http.request" and not message.get("more_body", False):
            return
