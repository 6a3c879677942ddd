"""
Upstream proxies.

Both proxy layers redirect the layers below them to the proxy's address, open a
tunnel to the context's address and then continue as if they were directly
connected: if the context is secure, TLS is negotiated through the tunnel.

Accepted extra parameters: address, port, and optionally username and password.
"""

from __future__ import annotations

import base64
import logging
import socket
import struct
from abc import abstractmethod
from typing import TYPE_CHECKING

from dclink.exceptions import ProxyError
from dclink.net import check
from dclink.stream.layer import LayerKind
from dclink.stream.layer import ProxyLayer
from dclink.utils import human

if TYPE_CHECKING:
    from dclink.stream.context import ConnectionContext

logger = logging.getLogger(__name__)

MAX_RESPONSE_HEADER_SIZE = 64 * 1024

SOCKS5_VERSION = 0x05

SOCKS5_METHOD_NO_AUTHENTICATION_REQUIRED = 0x00
SOCKS5_METHOD_USER_PASSWORD_AUTHENTICATION = 0x02
SOCKS5_METHOD_NO_ACCEPTABLE_METHODS = 0xFF

SOCKS5_CMD_CONNECT = 0x01

SOCKS5_ATYP_IPV4_ADDRESS = 0x01
SOCKS5_ATYP_DOMAINNAME = 0x03
SOCKS5_ATYP_IPV6_ADDRESS = 0x04

SOCKS5_REPLIES = {
    0x01: "general SOCKS server failure",
    0x02: "connection not allowed by ruleset",
    0x03: "network unreachable",
    0x04: "host unreachable",
    0x05: "connection refused",
    0x06: "TTL expired",
    0x07: "command not supported",
    0x08: "address type not supported",
}


class _TunnelLayer(ProxyLayer):
    async def connect(self, ctx: ConnectionContext, buffer: bytes = b"") -> None:
        proxy = self.proxy_address()
        target = ctx.address
        inner = ctx.fork_remaining()
        inner.set_uri(f"tcp://{human.format_address(proxy)}").set_secure(False)
        self.stream = await inner.next_layer()

        try:
            await self.open_tunnel(target)
            logger.debug(
                f"{self.kind.value} tunnel to {human.format_address(target)} "
                f"established via {human.format_address(proxy)}"
            )
            if ctx.secure:
                config = ctx.socket_config
                await self.start_tls(
                    config.get_ssl_context(), config.server_hostname or target[0]
                )
            if buffer:
                await self.write(buffer)
        except BaseException:
            await self.stream.close()
            raise

    @abstractmethod
    async def open_tunnel(self, target: tuple[str, int]) -> None:
        pass

    @property
    def username(self) -> str | None:
        return self.extra.get("username") if self.extra else None

    @property
    def password(self) -> str:
        return (self.extra.get("password") if self.extra else None) or ""


class HttpProxyLayer(_TunnelLayer, kind=LayerKind.HTTP_PROXY):
    """Tunnel through an HTTP proxy using `CONNECT`."""

    async def open_tunnel(self, target: tuple[str, int]) -> None:
        authority = human.format_address(target)
        request = (
            f"CONNECT {authority} HTTP/1.1\r\n"
            f"Host: {authority}\r\n"
        )
        if self.username is not None:
            credentials = base64.b64encode(
                f"{self.username}:{self.password}".encode()
            ).decode()
            request += f"Proxy-Authorization: Basic {credentials}\r\n"
        request += "\r\n"
        await self.write(request.encode())

        head = await self._read_head()
        status_line = head.split(b"\r\n", 1)[0]
        try:
            http_version, status_code, *reason = status_line.split(b" ", 2)
            status = int(status_code)
        except ValueError:
            raise ProxyError(f"Invalid HTTP proxy response: {status_line!r}") from None
        if not http_version.startswith(b"HTTP/"):
            raise ProxyError(f"Invalid HTTP proxy response: {status_line!r}")
        if status != 200:
            raise ProxyError(
                f"HTTP proxy refused tunnel to {authority}: {status_line.decode(errors='replace')}"
            )

    async def _read_head(self) -> bytes:
        # read byte by byte, anything after the head belongs to the tunnel.
        head = b""
        while not head.endswith(b"\r\n\r\n"):
            if len(head) > MAX_RESPONSE_HEADER_SIZE:
                raise ProxyError("HTTP proxy response header too large.")
            head += await self.readexactly(1)
        return head


class Socks5ProxyLayer(_TunnelLayer, kind=LayerKind.SOCKS5_PROXY):
    """Tunnel through a SOCKS5 proxy (RFC 1928), with optional username/password authentication (RFC 1929)."""

    async def open_tunnel(self, target: tuple[str, int]) -> None:
        methods = [SOCKS5_METHOD_NO_AUTHENTICATION_REQUIRED]
        if self.username is not None:
            methods.append(SOCKS5_METHOD_USER_PASSWORD_AUTHENTICATION)
        await self.write(bytes([SOCKS5_VERSION, len(methods), *methods]))

        version, method = await self.readexactly(2)
        if version != SOCKS5_VERSION:
            raise ProxyError(
                "Invalid SOCKS version. Expected 0x05, got 0x%x" % version
            )
        if method == SOCKS5_METHOD_USER_PASSWORD_AUTHENTICATION:
            await self._authenticate()
        elif method != SOCKS5_METHOD_NO_AUTHENTICATION_REQUIRED:
            raise ProxyError("SOCKS5 proxy accepts none of our authentication methods.")

        await self.write(
            bytes([SOCKS5_VERSION, SOCKS5_CMD_CONNECT, 0x00])
            + self._pack_address(target)
        )
        version, reply, _, atyp = await self.readexactly(4)
        if version != SOCKS5_VERSION:
            raise ProxyError(
                "Invalid SOCKS version. Expected 0x05, got 0x%x" % version
            )
        if reply != 0x00:
            message = SOCKS5_REPLIES.get(reply, f"unknown error 0x{reply:x}")
            raise ProxyError(f"SOCKS5 proxy could not connect to {human.format_address(target)}: {message}")

        # skip the bound address, we have no use for it.
        if atyp == SOCKS5_ATYP_IPV4_ADDRESS:
            await self.readexactly(4 + 2)
        elif atyp == SOCKS5_ATYP_IPV6_ADDRESS:
            await self.readexactly(16 + 2)
        elif atyp == SOCKS5_ATYP_DOMAINNAME:
            (length,) = await self.readexactly(1)
            await self.readexactly(length + 2)
        else:
            raise ProxyError(f"Unknown address type: {atyp}")

    async def _authenticate(self) -> None:
        if self.username is None:
            raise ProxyError("SOCKS5 proxy requires authentication.")
        username = self.username.encode()
        password = self.password.encode()
        if len(username) > 255 or len(password) > 255:
            raise ValueError("SOCKS5 username and password must not exceed 255 bytes.")
        await self.write(
            bytes([0x01, len(username)]) + username + bytes([len(password)]) + password
        )
        # The first byte is the version of the subnegotiation, which is X'01'.
        _, status = await self.readexactly(2)
        if status != 0x00:
            raise ProxyError("SOCKS5 authentication failed.")

    @staticmethod
    def _pack_address(address: tuple[str, int]) -> bytes:
        host, port = address
        version = check.ip_version(host)
        if version == 4:
            packed = bytes([SOCKS5_ATYP_IPV4_ADDRESS]) + socket.inet_pton(socket.AF_INET, host)
        elif version == 6:
            packed = bytes([SOCKS5_ATYP_IPV6_ADDRESS]) + socket.inet_pton(socket.AF_INET6, host)
        else:
            host_bytes = host.encode("idna")
            packed = bytes([SOCKS5_ATYP_DOMAINNAME, len(host_bytes)]) + host_bytes
        return packed + struct.pack("!H", port)
