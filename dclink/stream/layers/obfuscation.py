"""
The obfuscated2 transport.

The connection starts with a 64 byte header that looks random to an observer:

    0..8     random, must not look like another protocol
    8..40    AES-256-CTR key for client-to-server traffic
    40..56   AES-256-CTR IV for client-to-server traffic
    56..60   protocol tag of the framing layer above
    60..62   signed DC id, little endian
    62..64   random

Bytes 56..64 are sent encrypted. The server-to-client key and IV are taken from bytes 8..56 in
reverse order. When connecting through an MTProxy, both keys are hashed together with the proxy secret.
"""

from __future__ import annotations

import hashlib
import logging
import os
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives.ciphers import Cipher
from cryptography.hazmat.primitives.ciphers import algorithms
from cryptography.hazmat.primitives.ciphers import modes

from dclink.stream.layer import LayerKind
from dclink.stream.layer import ProxyLayer
from dclink.utils import human

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.ciphers import CipherContext

    from dclink.stream.context import ConnectionContext

logger = logging.getLogger(__name__)

HEADER_SIZE = 64

RESERVED_PREFIXES = frozenset(
    {
        b"PVrG",
        b"GET ",
        b"POST",
        b"HEAD",
        b"\xee\xee\xee\xee",
        b"\xdd\xdd\xdd\xdd",
        b"\x16\x03\x01\x02",
    }
)


def parse_secret(secret: str | bytes) -> bytes:
    """
    Parse an MTProxy secret, given as hex text or raw bytes.
    Secrets with the `dd` prefix (random padding required) are accepted and stripped.

    *Raises:*
     - ValueError, if the secret is not a plain or `dd`-prefixed 16 byte secret.
    """
    if isinstance(secret, str):
        secret = bytes.fromhex(secret)
    if len(secret) == 17 and secret[0] == 0xDD:
        secret = secret[1:]
    if len(secret) != 16:
        raise ValueError(f"Unsupported MTProxy secret: {secret.hex()}")
    return secret


def split_tag(buffer: bytes) -> tuple[bytes, bytes]:
    """
    Split the prefix buffer handed down by a framing layer into its 4 byte protocol tag and the rest.
    The single-byte abridged tag is repeated to fill 4 bytes.
    """
    if buffer[:1] == b"\xef":
        return b"\xef" * 4, buffer[1:]
    if len(buffer) < 4:
        raise ValueError(
            "Obfuscation requires a framing layer on top of it to supply a protocol tag."
        )
    return buffer[:4], buffer[4:]


def random_header() -> bytearray:
    while True:
        header = bytearray(os.urandom(HEADER_SIZE))
        if header[0] == 0xEF:
            continue
        if bytes(header[:4]) in RESERVED_PREFIXES:
            continue
        if header[4:8] == b"\x00\x00\x00\x00":
            continue
        return header


def _cipher(key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.CTR(iv))


class ObfuscationLayer(ProxyLayer, kind=LayerKind.OBFUSCATION):
    """
    Obfuscates all traffic of the layers above it.

    Accepted extra parameters:
        address, port: connect to this MTProxy instead of the context's URI.
        secret: the MTProxy secret, as hex text or bytes.
    """

    encryptor: CipherContext
    decryptor: CipherContext

    async def connect(self, ctx: ConnectionContext, buffer: bytes = b"") -> None:
        tag, rest = split_tag(buffer)
        secret = None
        if self.extra and self.extra.get("secret"):
            secret = parse_secret(self.extra["secret"])
        if self.extra and "address" in self.extra:
            proxy = self.proxy_address()
            logger.debug(f"Connecting through MTProxy at {human.format_address(proxy)}")
            ctx = ctx.fork_remaining()
            ctx.set_uri(f"tcp://{human.format_address(proxy)}").set_secure(False)

        header = random_header()
        header[56:60] = tag
        header[60:62] = ctx.int_dc().to_bytes(2, "little", signed=True)

        reversed_ = bytes(header[8:56])[::-1]
        encrypt_key, encrypt_iv = bytes(header[8:40]), bytes(header[40:56])
        decrypt_key, decrypt_iv = reversed_[:32], reversed_[32:48]
        if secret is not None:
            encrypt_key = hashlib.sha256(encrypt_key + secret).digest()
            decrypt_key = hashlib.sha256(decrypt_key + secret).digest()

        self.encryptor = _cipher(encrypt_key, encrypt_iv).encryptor()
        self.decryptor = _cipher(decrypt_key, decrypt_iv).decryptor()

        encrypted = self.encryptor.update(bytes(header))
        header[56:64] = encrypted[56:64]
        logger.debug(f"Obfuscated header: {human.format_hex(bytes(header), HEADER_SIZE)}")

        self.stream = await ctx.next_layer(bytes(header) + self.encryptor.update(rest))

    async def read(self, n: int = -1) -> bytes:
        return self.decryptor.update(await self.stream.read(n))

    async def readexactly(self, n: int) -> bytes:
        return self.decryptor.update(await self.stream.readexactly(n))

    async def write(self, data: bytes) -> None:
        await self.stream.write(self.encryptor.update(data))
