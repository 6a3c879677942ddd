from __future__ import annotations

import asyncio
import contextlib
import ssl
from typing import TYPE_CHECKING

from dclink.net import tcp
from dclink.stream.layer import Layer
from dclink.stream.layer import LayerKind

if TYPE_CHECKING:
    from dclink.stream.context import ConnectionContext


class TransportLayer(Layer, kind=LayerKind.TRANSPORT):
    """
    The bottom of every chain: a TCP socket to the context's address, with TLS if the context is secure.
    """

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter

    def __init__(self) -> None:
        self.read_callback = None

    def __repr__(self):
        writer = getattr(self, "writer", None)
        peername = writer.get_extra_info("peername") if writer else None
        return f"TransportLayer({peername!r})"

    async def connect(self, ctx: ConnectionContext, buffer: bytes = b"") -> None:
        self.reader, self.writer = await tcp.open_stream(
            ctx.socket_config,
            ctx.address,
            secure=ctx.secure,
            ipv6=ctx.ipv6,
            cancellation=ctx.cancellation,
        )
        self.read_callback = ctx.read_callback
        if buffer:
            try:
                await self.write(buffer)
            except BaseException:
                await self.close()
                raise

    async def read(self, n: int = -1) -> bytes:
        data = await self.reader.read(n)
        if data and self.read_callback is not None:
            self.read_callback(len(data))
        return data

    async def readexactly(self, n: int) -> bytes:
        data = await self.reader.readexactly(n)
        if data and self.read_callback is not None:
            self.read_callback(len(data))
        return data

    async def write(self, data: bytes) -> None:
        self.writer.write(data)
        await self.writer.drain()

    async def close(self) -> None:
        self.writer.close()
        with contextlib.suppress(OSError):
            await self.writer.wait_closed()

    async def start_tls(
        self, ssl_context: ssl.SSLContext, server_hostname: str | None = None
    ) -> None:
        await self.writer.start_tls(ssl_context, server_hostname=server_hostname)
