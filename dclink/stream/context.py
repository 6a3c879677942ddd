from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from dclink.dc import DcId
from dclink.exceptions import ChainExhausted
from dclink.net import server_spec
from dclink.stream import layer
from dclink.stream.config import Address
from dclink.stream.config import SocketConfig
from dclink.stream.layer import LayerKind
from dclink.stream.layer import LayerSpec
from dclink.stream.layer import ProxyLayer

logger = logging.getLogger(__name__)

ReadCallback = Callable[[int], Any]


class ConnectionContext:
    """
    Everything needed to open one connection to a DC: the target, the flags that
    select which servers we talk to, and the chain of layers the connection is built from.

    Layers are declared bottom-up and consumed top-down:

        ctx = (
            ConnectionContext()
            .set_uri("tcp://149.154.167.51:443")
            .set_dc("2")
            .add_layer(LayerKind.TRANSPORT)
            .add_layer(LayerKind.OBFUSCATION)
            .add_layer(LayerKind.INTERMEDIATE)
        )
        stream = await ctx.fork().next_layer()

    `next_layer` consumes the context, so every connection attempt should work on its own `fork()`.
    """

    layers: list[LayerSpec]
    """The declared layer stack, innermost first."""
    cursor: int
    """Index of the next layer `next_layer` will build. -1 once the stack is exhausted."""

    def __init__(self) -> None:
        self._secure = False
        self._test = False
        self._media = False
        self._cdn = False
        self._ipv6 = False
        self._is_dns = False
        self._dc: DcId | None = None
        self._uri: str | None = None
        self._address: Address | None = None
        self._socket_config = SocketConfig()
        self._cancellation: asyncio.Event | None = None
        self._read_callback: ReadCallback | None = None
        self.layers = []
        self.cursor = -1

    def __repr__(self):
        return (
            f"ConnectionContext(\n"
            f"  uri={self._uri!r},\n"
            f"  dc={self._dc!s},\n"
            f"  layers=[{self.layers!r}],\n"
            f"  cursor={self.cursor}\n"
            f")"
        )

    def __str__(self):
        return self.describe()

    # Addressing

    def set_uri(self, uri: str) -> ConnectionContext:
        """
        Set the endpoint to connect to, e.g. `tcp://149.154.167.51:443`.

        *Raises:*
         - ValueError, if the URI is not a valid server specification.
        """
        self._address = server_spec.parse(uri, "tcp")[1]
        self._uri = uri
        return self

    @property
    def uri(self) -> str | None:
        return self._uri

    @property
    def address(self) -> Address:
        """
        The `(host, port)` tuple parsed from the URI.

        *Raises:*
         - ValueError, if no URI has been set.
        """
        if self._address is None:
            raise ValueError("No URI has been set on this connection context.")
        return self._address

    def set_dc(self, dc: str | int) -> ConnectionContext:
        """
        Set the DC from its text form, e.g. `"2"`, `"4_media"` or `"203_cdn"`.

        *Raises:*
         - InvalidDcId, if the id is malformed or not within [1, 1000].
        """
        self._dc = DcId.parse(dc)
        self._media = self._dc.media
        self._cdn = self._dc.cdn
        return self

    @property
    def dc(self) -> DcId | None:
        if self._dc is None:
            return None
        return self._dc.with_test(self._test)

    def int_dc(self) -> int:
        """
        The signed integer form of the DC: shifted by 10000 for test servers, negated for media servers.
        Zero if no DC has been set.
        """
        if self._dc is None:
            return 0
        return DcId(self._dc.number, self._test, self._dc.variant).encode()

    @property
    def is_media(self) -> bool:
        return self._media

    @property
    def is_cdn(self) -> bool:
        return self._cdn

    # Flags

    def set_secure(self, secure: bool) -> ConnectionContext:
        self._secure = secure
        return self

    @property
    def secure(self) -> bool:
        """Whether the socket should be protected with TLS."""
        return self._secure

    def set_test(self, test: bool) -> ConnectionContext:
        self._test = test
        return self

    @property
    def test(self) -> bool:
        return self._test

    def set_ipv6(self, ipv6: bool) -> ConnectionContext:
        self._ipv6 = ipv6
        return self

    @property
    def ipv6(self) -> bool:
        return self._ipv6

    def set_is_dns(self, is_dns: bool) -> ConnectionContext:
        self._is_dns = is_dns
        return self

    @property
    def is_dns(self) -> bool:
        """Whether this context will only be used by the DNS client."""
        return self._is_dns

    def set_socket_config(self, config: SocketConfig) -> ConnectionContext:
        self._socket_config = config
        return self

    @property
    def socket_config(self) -> SocketConfig:
        return self._socket_config

    def set_cancellation(self, cancellation: asyncio.Event | None) -> ConnectionContext:
        self._cancellation = cancellation
        return self

    @property
    def cancellation(self) -> asyncio.Event | None:
        """When set, a pending socket connect is aborted."""
        return self._cancellation

    def set_read_callback(self, callback: ReadCallback | None) -> None:
        """Set a callback that is invoked with the number of bytes every time the socket reads data."""
        self._read_callback = callback

    def has_read_callback(self) -> bool:
        return self._read_callback is not None

    @property
    def read_callback(self) -> ReadCallback | None:
        return self._read_callback

    # Layer stack

    def add_layer(
        self, kind: LayerKind, extra: dict[str, Any] | None = None
    ) -> ConnectionContext:
        """Push a layer on top of the stack. The first layer added is the innermost one."""
        self.layers.append(LayerSpec(kind, dict(extra) if extra is not None else None))
        self.cursor = len(self.layers) - 1
        return self

    def has_layer(self, kind: LayerKind) -> bool:
        """Whether a layer of this kind has been declared, consumed or not."""
        return any(spec.kind is kind for spec in self.layers)

    def current_layer(self) -> LayerKind:
        """
        The kind of layer the next call to `next_layer` will build.

        *Raises:*
         - ChainExhausted, if there are no layers left.
        """
        if self.cursor < 0:
            raise ChainExhausted("No layers left in the stream chain.")
        return self.layers[self.cursor].kind

    async def next_layer(self, buffer: bytes = b"") -> layer.Layer:
        """
        Build and connect the next layer in the chain, which recursively builds all layers below it.
        Returns the connected layer.

        *Raises:*
         - ChainExhausted, if all layers have been consumed already.
        """
        if self.cursor < 0:
            raise ChainExhausted("No layers left in the stream chain.")
        kind, extra = self.layers[self.cursor]
        obj = layer.create(kind)
        self.cursor -= 1

        if isinstance(obj, ProxyLayer):
            obj.set_extra(extra)
        logger.debug(f"Connecting {kind.value} layer ({self.cursor + 1} left)")
        await obj.connect(self, buffer)
        return obj

    def proxy_descriptor(self) -> dict[str, Any] | None:
        """
        The `inputClientProxy` object that tells the server which MTProxy we are connecting through,
        or `None` if there is no addressed obfuscation layer in the chain.
        """
        for kind, extra in self.layers:
            if kind is LayerKind.OBFUSCATION and extra and "address" in extra:
                return {**extra, "_": "inputClientProxy"}
        return None

    # Forking

    def _copy(self, layers: list[LayerSpec]) -> ConnectionContext:
        ret = ConnectionContext()
        ret._secure = self._secure
        ret._test = self._test
        ret._media = self._media
        ret._cdn = self._cdn
        ret._ipv6 = self._ipv6
        ret._is_dns = self._is_dns
        ret._dc = self._dc
        ret._uri = self._uri
        ret._address = self._address
        ret._socket_config = self._socket_config
        ret._cancellation = self._cancellation
        ret._read_callback = self._read_callback
        # extras are mutable, every copy gets its own.
        ret.layers = [
            LayerSpec(kind, dict(extra) if extra is not None else None)
            for kind, extra in layers
        ]
        ret.cursor = len(layers) - 1
        return ret

    def fork(self) -> ConnectionContext:
        """
        Return an independent copy of this context with the full layer stack, ready to be consumed.
        """
        return self._copy(self.layers)

    def fork_remaining(self) -> ConnectionContext:
        """
        Return a copy of this context that only holds the layers which have not been consumed yet.
        Layers use this to redirect the connection below them, e.g. to an upstream proxy,
        without touching the context they have been given.
        """
        return self._copy(self.layers[: self.cursor + 1])

    # Description

    def describe(self) -> str:
        """
        A one-line description for log output, e.g.
        `tcp://1.2.3.4:443 (TLS) main DC 2, via ipv4 using Intermediate => Obfuscation => Transport`.
        """
        ret = self._uri or "<no uri>"
        if self._secure:
            ret += " (TLS)"
        ret += " test" if self._test else " main"
        ret += f" DC {self._dc if self._dc is not None else 0}"
        ret += ", via ipv6" if self._ipv6 else ", via ipv4"
        names = []
        for kind, extra in reversed(self.layers):
            name = kind.value
            if extra and kind is not LayerKind.TRANSPORT:
                name += f" ({json.dumps(extra, separators=(',', ':'), default=str)})"
            names.append(name)
        ret += " using " + " => ".join(names)
        return ret
