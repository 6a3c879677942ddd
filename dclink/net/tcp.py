"""
Opening the byte stream at the bottom of a layer chain.

This is the only place in dclink that touches sockets. Everything it raises
(`OSError`, `ssl.SSLError`, `TimeoutError`, `asyncio.CancelledError`) reaches the
caller unchanged.
"""

import asyncio
import contextlib
import logging
import socket

from dclink.stream.config import Address
from dclink.stream.config import SocketConfig
from dclink.utils import human

logger = logging.getLogger(__name__)


async def _race_cancellation(
    coro,
    cancellation: asyncio.Event,
):
    connect = asyncio.ensure_future(coro)
    cancelled = asyncio.ensure_future(cancellation.wait())
    try:
        await asyncio.wait({connect, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        connect.cancel()
        raise
    finally:
        cancelled.cancel()
    if connect.done():
        return connect.result()
    connect.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await connect
    raise asyncio.CancelledError("connection attempt was cancelled")


async def open_stream(
    config: SocketConfig,
    address: Address,
    *,
    secure: bool = False,
    ipv6: bool = False,
    cancellation: asyncio.Event | None = None,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """
    Open a TCP connection to address, with TLS if secure is set.

    *Raises:*
     - asyncio.CancelledError, if the cancellation handle is set before we are connected.
    """
    host, port = address
    kwargs = {}
    if secure:
        kwargs["ssl"] = config.get_ssl_context()
        kwargs["server_hostname"] = config.server_hostname or host
    if config.bind_address is not None:
        kwargs["local_addr"] = config.bind_address

    if cancellation is not None and cancellation.is_set():
        raise asyncio.CancelledError("connection attempt was cancelled")

    logger.debug(
        f"Opening {'TLS' if secure else 'TCP'} connection to {human.format_address(address)}"
    )
    connect = asyncio.wait_for(
        asyncio.open_connection(
            host,
            port,
            family=socket.AF_INET6 if ipv6 else socket.AF_INET,
            **kwargs,
        ),
        config.connect_timeout,
    )
    if cancellation is None:
        return await connect
    return await _race_cancellation(connect, cancellation)
