"""
Packet framing.

Each framing layer announces itself with a protocol tag that is sent before
anything else. Without obfuscation the tag goes on the wire as-is, with
obfuscation it becomes part of the obfuscated header.

    abridged:             0xef, then len/4 as 1 byte (or 0x7f + 3 bytes LE), payload
    intermediate:         0xeeeeeeee, then len as 4 bytes LE, payload
    padded intermediate:  0xdddddddd, then len as 4 bytes LE, payload + 0-15 random bytes
"""

from __future__ import annotations

import os
import random
from typing import TYPE_CHECKING

from dclink.stream.layer import LayerKind
from dclink.stream.layer import PacketLayer

if TYPE_CHECKING:
    from dclink.stream.context import ConnectionContext

ABRIDGED_TAG = b"\xef"
INTERMEDIATE_TAG = b"\xee" * 4
INTERMEDIATE_PADDED_TAG = b"\xdd" * 4

MAX_ABRIDGED_LENGTH = (1 << 24) - 1


class AbridgedLayer(PacketLayer, kind=LayerKind.ABRIDGED):
    async def connect(self, ctx: ConnectionContext, buffer: bytes = b"") -> None:
        self.stream = await ctx.next_layer(ABRIDGED_TAG + buffer)

    async def write_packet(self, payload: bytes) -> None:
        if len(payload) % 4:
            raise ValueError(
                f"Abridged payloads must be a multiple of 4 bytes, got {len(payload)}."
            )
        length = len(payload) // 4
        if length < 0x7F:
            header = bytes([length])
        elif length <= MAX_ABRIDGED_LENGTH:
            header = b"\x7f" + length.to_bytes(3, "little")
        else:
            raise ValueError(f"Payload too large: {len(payload)} bytes.")
        await self.write(header + payload)

    async def read_packet(self) -> bytes:
        length = (await self.readexactly(1))[0]
        if length == 0x7F:
            length = int.from_bytes(await self.readexactly(3), "little")
        return await self.readexactly(length * 4)


class IntermediateLayer(PacketLayer, kind=LayerKind.INTERMEDIATE):
    tag: bytes = INTERMEDIATE_TAG

    async def connect(self, ctx: ConnectionContext, buffer: bytes = b"") -> None:
        self.stream = await ctx.next_layer(self.tag + buffer)

    async def write_packet(self, payload: bytes) -> None:
        await self.write(len(payload).to_bytes(4, "little") + payload)

    async def read_packet(self) -> bytes:
        length = int.from_bytes(await self.readexactly(4), "little")
        return await self.readexactly(length)


class IntermediatePaddedLayer(IntermediateLayer, kind=LayerKind.INTERMEDIATE_PADDED):
    """
    Like intermediate, but every packet carries up to 15 random trailing bytes.
    `read_packet` returns the padding with the payload, the payload has to know its own length.
    """

    tag = INTERMEDIATE_PADDED_TAG

    async def write_packet(self, payload: bytes) -> None:
        await super().write_packet(payload + os.urandom(random.randrange(16)))
