"""
Datacenter identifiers.

A DC is addressed by a number between 1 and 1000, optionally suffixed with the
kind of servers we want to reach:

    DcId.parse("2")        # main servers of DC 2
    DcId.parse("4_media")  # media servers of DC 4
    DcId.parse("203_cdn")  # CDN DC 203

On the wire (and as a cache key) a DC is a single signed integer: test servers are
shifted by 10000 and media servers are negated. CDN DCs are indistinguishable from
main DCs in that form.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from dataclasses import replace

from dclink.exceptions import InvalidDcId

MIN_DC = 1
MAX_DC = 1000
TEST_OFFSET = 10000

_dc_re = re.compile(r"(?P<number>[0-9]+)(?:_(?P<variant>media|cdn))?")


class DcVariant(enum.Enum):
    MAIN = "main"
    MEDIA = "media"
    CDN = "cdn"


@dataclass(frozen=True)
class DcId:
    number: int
    test: bool = False
    variant: DcVariant = DcVariant.MAIN

    def __post_init__(self) -> None:
        if not MIN_DC <= self.number <= MAX_DC:
            raise InvalidDcId(f"Invalid DC id provided: {self.number}")

    @classmethod
    def parse(cls, raw: str | int, test: bool = False) -> DcId:
        """
        Parse the `<digits>[_media|_cdn]` text form. Integers are taken as main DCs.

        *Raises:*
         - InvalidDcId, if the text is malformed or the number is out of range.
        """
        if isinstance(raw, bool):
            raise InvalidDcId(f"Invalid DC id provided: {raw!r}")
        if isinstance(raw, int):
            return cls(raw, test)
        m = _dc_re.fullmatch(raw.strip())
        if not m:
            raise InvalidDcId(f"Invalid DC id provided: {raw!r}")
        variant = DcVariant(m.group("variant") or "main")
        return cls(int(m.group("number")), test, variant)

    @property
    def media(self) -> bool:
        return self.variant is DcVariant.MEDIA

    @property
    def cdn(self) -> bool:
        return self.variant is DcVariant.CDN

    def with_test(self, test: bool) -> DcId:
        return replace(self, test=test)

    def encode(self) -> int:
        """The signed integer form of this DC."""
        return encode(self.number, self.test, self.media)

    def __int__(self) -> int:
        return self.encode()

    @property
    def description(self) -> str:
        ret = f"{'test' if self.test else 'main'} DC {self.number}"
        if self.variant is not DcVariant.MAIN:
            ret += f" ({self.variant.value})"
        return ret

    def __str__(self) -> str:
        if self.variant is DcVariant.MAIN:
            return str(self.number)
        return f"{self.number}_{self.variant.value}"


def encode(number: int, test: bool = False, media: bool = False) -> int:
    ret = number
    if test:
        ret += TEST_OFFSET
    if media:
        ret = -ret
    return ret


def decode(value: int, cdn: bool = False) -> DcId:
    """
    Inverse of `encode`. The CDN flag is not part of the integer form and must be supplied.
    """
    media = value < 0
    value = abs(value)
    test = value > TEST_OFFSET
    if test:
        value -= TEST_OFFSET
    if media and cdn:
        raise InvalidDcId("A DC cannot be both a media and a CDN DC.")
    if media:
        variant = DcVariant.MEDIA
    elif cdn:
        variant = DcVariant.CDN
    else:
        variant = DcVariant.MAIN
    return DcId(value, test, variant)
