from __future__ import annotations

import asyncio
import os
import socket

import pytest
from hypothesis import settings

try:
    s = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
    s.bind(("::1", 0))
    s.close()
except OSError:
    no_ipv6 = True
else:
    no_ipv6 = False

skip_no_ipv6 = pytest.mark.skipif(no_ipv6, reason="Host has no IPv6 support")

settings.register_profile("fast", max_examples=10, deadline=None)
settings.register_profile("deep", max_examples=100_000, deadline=None)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


class Peer:
    """
    A local TCP server standing in for a DC or an upstream proxy.
    Tests drive the server side of each accepted connection by hand.
    """

    def __init__(self) -> None:
        self.connections: asyncio.Queue[
            tuple[asyncio.StreamReader, asyncio.StreamWriter]
        ] = asyncio.Queue()
        self.writers: list[asyncio.StreamWriter] = []
        self.server: asyncio.Server | None = None

    async def _handle(self, reader, writer):
        self.writers.append(writer)
        await self.connections.put((reader, writer))

    async def start(self, host: str = "127.0.0.1") -> None:
        self.server = await asyncio.start_server(self._handle, host, 0)

    @property
    def address(self) -> tuple[str, int]:
        assert self.server
        return self.server.sockets[0].getsockname()[:2]

    @property
    def uri(self) -> str:
        host, port = self.address
        return f"tcp://{host}:{port}"

    async def accept(
        self, timeout: float = 5
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        return await asyncio.wait_for(self.connections.get(), timeout)

    async def stop(self) -> None:
        for writer in self.writers:
            writer.close()
        assert self.server
        self.server.close()
        await self.server.wait_closed()


@pytest.fixture
async def peer():
    p = Peer()
    await p.start()
    yield p
    await p.stop()


@pytest.fixture
def closed_port() -> int:
    """A local port nobody listens on."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
