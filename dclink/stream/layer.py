"""
Base classes for stream layers.

A layer chain is declared bottom-up on a `ConnectionContext`
(transport first, outer decorators after) and assembled top-down:
the outermost layer is created first, and each wrapping layer asks the
context for the layer below it from within its own `connect`.

A connected layer is itself the stream handle: reading from and writing to
it reads from and writes to the whole chain underneath.
"""

from __future__ import annotations

import asyncio
import enum
from abc import ABCMeta
from abc import abstractmethod
from typing import Any
from typing import ClassVar
from typing import NamedTuple
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import ssl

    from dclink.stream.context import ConnectionContext


class LayerKind(enum.Enum):
    """The closed set of layer kinds. The value is the name used in log output."""

    TRANSPORT = "Transport"
    OBFUSCATION = "Obfuscation"
    ABRIDGED = "Abridged"
    INTERMEDIATE = "Intermediate"
    INTERMEDIATE_PADDED = "IntermediatePadded"
    HTTP_PROXY = "HttpProxy"
    SOCKS5_PROXY = "Socks5Proxy"


class LayerSpec(NamedTuple):
    """A layer that has been declared on a context but not instantiated yet."""

    kind: LayerKind
    extra: dict[str, Any] | None = None


registry: dict[LayerKind, type[Layer]] = {}
"""Maps each layer kind to the class implementing it. Filled by `Layer.__init_subclass__`."""


def create(kind: LayerKind) -> Layer:
    """
    Instantiate the layer registered for kind.

    *Raises:*
     - KeyError, if no implementation has been registered for kind.
    """
    try:
        cls = registry[kind]
    except KeyError:
        raise KeyError(f"No layer registered for {kind.value}") from None
    return cls()


class Layer(metaclass=ABCMeta):
    """
    The base class for all stream layers.

    Concrete layers register themselves for a kind:

        class TransportLayer(Layer, kind=LayerKind.TRANSPORT):
            ...
    """

    kind: ClassVar[LayerKind]

    def __init_subclass__(cls, kind: LayerKind | None = None, **kwargs):
        super().__init_subclass__(**kwargs)
        if kind is not None:
            assert kind not in registry, f"{kind.value} is already registered"
            cls.kind = kind
            registry[kind] = cls

    def __repr__(self):
        return f"{type(self).__name__}()"

    @abstractmethod
    async def connect(self, ctx: ConnectionContext, buffer: bytes = b"") -> None:
        """
        Establish this layer. `buffer` holds bytes that must be sent before anything else,
        they are usually a protocol tag or header produced by an outer layer.
        """

    @abstractmethod
    async def read(self, n: int = -1) -> bytes:
        """Read up to n bytes. Returns an empty bytes object on EOF."""

    async def readexactly(self, n: int) -> bytes:
        """
        Read exactly n bytes.

        *Raises:*
         - asyncio.IncompleteReadError, if EOF is reached first.
        """
        buf = b""
        while len(buf) < n:
            chunk = await self.read(n - len(buf))
            if not chunk:
                raise asyncio.IncompleteReadError(buf, n)
            buf += chunk
        return buf

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write data and wait until it has been handed to the layer below."""

    @abstractmethod
    async def close(self) -> None:
        pass

    async def start_tls(
        self, ssl_context: ssl.SSLContext, server_hostname: str | None = None
    ) -> None:
        """Upgrade the underlying socket to TLS in place."""
        raise NotImplementedError(f"{type(self).__name__} cannot be upgraded to TLS.")


class WrappingLayer(Layer):
    """
    A layer that decorates the layer below it. By default, all I/O is passed through.
    """

    stream: Layer
    """The inner layer, set in `connect`."""

    def __repr__(self):
        inner = getattr(self, "stream", None)
        return f"{type(self).__name__}({inner!r})" if inner else super().__repr__()

    async def read(self, n: int = -1) -> bytes:
        return await self.stream.read(n)

    async def readexactly(self, n: int) -> bytes:
        return await self.stream.readexactly(n)

    async def write(self, data: bytes) -> None:
        await self.stream.write(data)

    async def close(self) -> None:
        await self.stream.close()

    async def start_tls(
        self, ssl_context: ssl.SSLContext, server_hostname: str | None = None
    ) -> None:
        await self.stream.start_tls(ssl_context, server_hostname)


class ProxyLayer(WrappingLayer):
    """
    A wrapping layer that takes additional configuration, e.g. the address of an upstream proxy.
    The context calls `set_extra` before `connect`.
    """

    extra: dict[str, Any] | None = None

    def set_extra(self, extra: dict[str, Any] | None) -> None:
        self.extra = extra

    def proxy_address(self) -> tuple[str, int]:
        """
        The `(address, port)` tuple from extra.

        *Raises:*
         - ValueError, if extra does not contain an address and a port.
        """
        if not self.extra or "address" not in self.extra or "port" not in self.extra:
            raise ValueError(f"{self.kind.value} requires an address and a port.")
        return str(self.extra["address"]), int(self.extra["port"])


class PacketLayer(WrappingLayer):
    """
    A wrapping layer that splits the byte stream into length-delimited packets.
    """

    @abstractmethod
    async def write_packet(self, payload: bytes) -> None:
        pass

    @abstractmethod
    async def read_packet(self) -> bytes:
        pass
