"""WebSocket frame headers: parsing, writing and payload masking."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from itertools import cycle
from typing import Optional, Union

HEADER_MAX_SIZE = 14

_MAX_PAYLOAD_LENGTH = 2**64


class Opcode(IntEnum):
    """Frame opcodes."""

    CONT = 0
    TEXT = 1
    BIN = 2
    CLOSE = 8
    PING = 9
    PONG = 10


_NAMES = {
    Opcode.CONT: "cont",
    Opcode.TEXT: "text",
    Opcode.BIN: "bin",
    Opcode.CLOSE: "close",
    Opcode.PING: "ping",
    Opcode.PONG: "pong",
}


def opcode_name(op: int) -> str:
    """Return the short name of an opcode, or "INVALID" for unknown ones."""
    try:
        return _NAMES[Opcode(op)]
    except ValueError:
        return "INVALID"


def _to_opcode(value: int) -> Union[Opcode, int]:
    try:
        return Opcode(value)
    except ValueError:
        return value


@dataclass
class FrameHeader:
    """A decoded WebSocket frame header."""

    fin: bool = False
    opcode: int = Opcode.CONT
    mask: bool = False
    payload_length: int = 0
    masking_key: bytes = bytes(4)
    header_length: int = 0

    def __post_init__(self) -> None:
        self.masking_key = bytes(self.masking_key)
        if len(self.masking_key) != 4:
            raise ValueError("masking key must be exactly 4 bytes")
        if not 0 <= self.payload_length < _MAX_PAYLOAD_LENGTH:
            raise ValueError("payload length out of range")


def parse_frame_header(data: bytes) -> Optional[FrameHeader]:
    """Parse a frame header from the start of ``data``.

    Returns None when ``data`` does not yet hold a complete header.
    """
    size = len(data)
    if size < 2:
        return None

    first, second = data[0], data[1]
    fin = bool(first & 0x80)
    opcode = _to_opcode(first & 0x0F)
    mask = bool(second & 0x80)
    length = second & 0x7F
    pos = 2

    if length == 126:
        if size - pos < 2:
            return None
        (length,) = struct.unpack_from("!H", data, pos)
        pos += 2
    elif length == 127:
        if size - pos < 8:
            return None
        (length,) = struct.unpack_from("!Q", data, pos)
        pos += 8

    key = bytes(4)
    if mask:
        if size - pos < 4:
            return None
        key = bytes(data[pos:pos + 4])
        pos += 4

    return FrameHeader(
        fin=fin,
        opcode=opcode,
        mask=mask,
        payload_length=length,
        masking_key=key,
        header_length=pos,
    )


def _xor_with_key(data: bytes, key: bytes) -> bytes:
    return bytes(a ^ b for a, b in zip(data, cycle(key)))


def apply_mask(header: FrameHeader, payload: bytes) -> bytes:
    """Unmask the frame's payload (its first ``payload_length`` bytes)."""
    if not header.mask:
        raise ValueError("frame is not masked")
    if len(payload) < header.payload_length:
        raise ValueError("payload is shorter than the frame's payload length")
    return _xor_with_key(payload[:header.payload_length], header.masking_key)


def copy_payload(header: FrameHeader, data: bytes) -> bytes:
    """Return a copy of ``data``, unmasked if the frame is masked."""
    if not header.mask:
        return bytes(data)
    return _xor_with_key(data, header.masking_key)


def write_frame_header(header: FrameHeader) -> bytes:
    """Encode a frame header in its shortest wire form."""
    first = (0x80 if header.fin else 0) | (int(header.opcode) & 0x0F)
    mask_bit = 0x80 if header.mask else 0
    length = header.payload_length

    if length <= 125:
        raw = bytes([first, mask_bit | length])
    elif length <= 0xFFFF:
        raw = struct.pack("!BBH", first, mask_bit | 126, length)
    else:
        raw = struct.pack("!BBQ", first, mask_bit | 127, length)

    if header.mask:
        raw += header.masking_key
    return raw