import pytest

from dclink.stream.context import ConnectionContext
from dclink.stream.layer import LayerKind
from dclink.stream.layers import AbridgedLayer
from dclink.stream.layers import IntermediateLayer
from dclink.stream.layers import IntermediatePaddedLayer
from dclink.stream.layers import framing


def _ctx(peer, kind: LayerKind) -> ConnectionContext:
    return (
        ConnectionContext()
        .set_uri(peer.uri)
        .set_dc("2")
        .add_layer(LayerKind.TRANSPORT)
        .add_layer(kind)
    )


async def test_abridged(peer):
    stream = await _ctx(peer, LayerKind.ABRIDGED).next_layer()
    assert isinstance(stream, AbridgedLayer)
    reader, writer = await peer.accept()
    assert await reader.readexactly(1) == b"\xef"

    await stream.write_packet(b"abcd" * 2)
    assert await reader.readexactly(9) == b"\x02" + b"abcd" * 2

    writer.write(b"\x01wxyz")
    await writer.drain()
    assert await stream.read_packet() == b"wxyz"
    await stream.close()


async def test_abridged_long(peer):
    stream = await _ctx(peer, LayerKind.ABRIDGED).next_layer()
    reader, writer = await peer.accept()
    await reader.readexactly(1)

    payload = b"\x42" * (0x7F * 4)
    await stream.write_packet(payload)
    assert await reader.readexactly(4) == b"\x7f\x7f\x00\x00"
    assert await reader.readexactly(len(payload)) == payload

    payload = b"\x01\x02\x03\x04" * 1000
    writer.write(b"\x7f" + (1000).to_bytes(3, "little") + payload)
    await writer.drain()
    assert await stream.read_packet() == payload
    await stream.close()


async def test_abridged_invalid_length():
    with pytest.raises(ValueError, match="multiple of 4"):
        await AbridgedLayer().write_packet(b"abc")


async def test_intermediate(peer):
    stream = await _ctx(peer, LayerKind.INTERMEDIATE).next_layer()
    assert isinstance(stream, IntermediateLayer)
    reader, writer = await peer.accept()
    assert await reader.readexactly(4) == framing.INTERMEDIATE_TAG

    await stream.write_packet(b"hello")
    assert await reader.readexactly(9) == b"\x05\x00\x00\x00hello"

    writer.write(b"\x03\x00\x00\x00abc")
    await writer.drain()
    assert await stream.read_packet() == b"abc"
    await stream.close()


async def test_intermediate_padded(peer):
    stream = await _ctx(peer, LayerKind.INTERMEDIATE_PADDED).next_layer()
    assert isinstance(stream, IntermediatePaddedLayer)
    reader, writer = await peer.accept()
    assert await reader.readexactly(4) == framing.INTERMEDIATE_PADDED_TAG

    for _ in range(5):
        await stream.write_packet(b"hello")
        length = int.from_bytes(await reader.readexactly(4), "little")
        assert 5 <= length < 5 + 16
        assert (await reader.readexactly(length))[:5] == b"hello"

    writer.write(b"\x06\x00\x00\x00abc\x00\x00\x00")
    await writer.drain()
    assert await stream.read_packet() == b"abc\x00\x00\x00"
    await stream.close()


async def test_framing_passes_buffer(peer):
    ctx = _ctx(peer, LayerKind.INTERMEDIATE)
    await ctx.next_layer(b"more")
    reader, writer = await peer.accept()
    assert await reader.readexactly(8) == framing.INTERMEDIATE_TAG + b"more"
