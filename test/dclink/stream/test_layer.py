import asyncio

import pytest

from dclink.stream import layer
from dclink.stream import layers
from dclink.stream.layer import Layer
from dclink.stream.layer import LayerKind
from dclink.stream.layer import ProxyLayer


def test_registry():
    assert layer.registry[LayerKind.TRANSPORT] is layers.TransportLayer
    assert layer.registry[LayerKind.OBFUSCATION] is layers.ObfuscationLayer
    assert layer.registry[LayerKind.ABRIDGED] is layers.AbridgedLayer
    assert layer.registry[LayerKind.INTERMEDIATE] is layers.IntermediateLayer
    assert layer.registry[LayerKind.INTERMEDIATE_PADDED] is layers.IntermediatePaddedLayer
    assert layer.registry[LayerKind.HTTP_PROXY] is layers.HttpProxyLayer
    assert layer.registry[LayerKind.SOCKS5_PROXY] is layers.Socks5ProxyLayer
    assert set(layer.registry) == set(LayerKind)


def test_create():
    obj = layer.create(LayerKind.ABRIDGED)
    assert isinstance(obj, layers.AbridgedLayer)
    assert obj.kind is LayerKind.ABRIDGED
    assert repr(obj) == "AbridgedLayer()"


def test_register_twice():
    with pytest.raises(AssertionError, match="Transport is already registered"):

        class Another(Layer, kind=LayerKind.TRANSPORT):
            pass


def test_proxy_address():
    p = layers.HttpProxyLayer()
    with pytest.raises(ValueError, match="HttpProxy requires an address and a port"):
        p.proxy_address()
    p.set_extra({"address": "10.0.0.1"})
    with pytest.raises(ValueError):
        p.proxy_address()
    p.set_extra({"address": "10.0.0.1", "port": "3128"})
    assert p.proxy_address() == ("10.0.0.1", 3128)
    assert isinstance(p, ProxyLayer)
    assert not isinstance(layers.AbridgedLayer(), ProxyLayer)


class Chunked(Layer):
    def __init__(self, chunks):
        self.chunks = list(chunks)

    async def connect(self, ctx, buffer=b""):
        pass  # pragma: no cover

    async def read(self, n=-1):
        if not self.chunks:
            return b""
        chunk = self.chunks.pop(0)
        if n >= 0 and len(chunk) > n:
            chunk, rest = chunk[:n], chunk[n:]
            self.chunks.insert(0, rest)
        return chunk

    async def write(self, data):
        pass  # pragma: no cover

    async def close(self):
        pass  # pragma: no cover


async def test_readexactly():
    s = Chunked([b"ab", b"cde", b"f"])
    assert await s.readexactly(4) == b"abcd"
    assert await s.readexactly(1) == b"e"
    with pytest.raises(asyncio.IncompleteReadError) as e:
        await s.readexactly(3)
    assert e.value.partial == b"f"


async def test_start_tls_unsupported():
    with pytest.raises(NotImplementedError, match="Chunked cannot be upgraded to TLS"):
        await Chunked([]).start_tls(None)
