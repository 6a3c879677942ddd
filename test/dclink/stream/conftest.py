from __future__ import annotations

import pytest

from dclink.stream import layer
from dclink.stream.context import ConnectionContext
from dclink.stream.layer import Layer
from dclink.stream.layer import LayerKind
from dclink.stream.layer import ProxyLayer
from dclink.stream.layer import WrappingLayer


@pytest.fixture
def tctx() -> ConnectionContext:
    return ConnectionContext().set_uri("tcp://149.154.167.51:443").set_dc("2")


class Fakes:
    """
    Records which fake layers have been connected, in connection order, as
    `(kind name, prefix buffer, extra)` tuples.
    """

    def __init__(self) -> None:
        self.connected: list[tuple[str, bytes, dict | None]] = []

    def bottom(self, kind: LayerKind) -> type[Layer]:
        fakes = self

        class FakeBottom(Layer):
            def __init__(self):
                self.written = b""

            async def connect(self, ctx, buffer=b""):
                fakes.connected.append((kind.value, buffer, None))
                self.written = buffer

            async def read(self, n=-1):
                return b""

            async def write(self, data):
                self.written += data

            async def close(self):
                pass

        FakeBottom.kind = kind
        return FakeBottom

    def leaf(self, kind: LayerKind) -> type[Layer]:
        """A layer that does not ask for the layer below it."""
        return self.bottom(kind)

    def wrapper(self, kind: LayerKind, proxy: bool = False) -> type[Layer]:
        """A layer that connects the layer below it, appending its own name to the prefix buffer."""
        fakes = self
        base = ProxyLayer if proxy else WrappingLayer

        class FakeWrapper(base):
            async def connect(self, ctx, buffer=b""):
                fakes.connected.append((kind.value, buffer, getattr(self, "extra", None)))
                self.stream = await ctx.next_layer(buffer + kind.value.encode() + b"|")

        FakeWrapper.kind = kind
        return FakeWrapper


@pytest.fixture
def fakes(monkeypatch) -> Fakes:
    """Replace all registered layer kinds with recording fakes."""
    f = Fakes()
    for kind in LayerKind:
        monkeypatch.setitem(layer.registry, kind, f.leaf(kind))
    return f
