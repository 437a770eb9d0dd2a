import dataclasses

import pytest

from vncstream.framing import (
    FrameHeader,
    Opcode,
    apply_mask,
    copy_payload,
    opcode_name,
    parse_frame_header,
    write_frame_header,
)

# Masked "Hello" text frame from the WebSocket specification.
MASKED_HELLO = bytes(
    [0x81, 0x85, 0x37, 0xFA, 0x21, 0x3D, 0x7F, 0x9F, 0x4D, 0x51, 0x58]
)


@pytest.mark.parametrize(
    "op, name",
    [
        (Opcode.CONT, "cont"),
        (Opcode.TEXT, "text"),
        (Opcode.BIN, "bin"),
        (Opcode.CLOSE, "close"),
        (Opcode.PING, "ping"),
        (Opcode.PONG, "pong"),
    ],
)
def test_opcode_names(op, name):
    assert opcode_name(op) == name


def test_unknown_opcode_is_invalid():
    assert opcode_name(3) == "INVALID"


def test_parse_masked_hello_example():
    header = parse_frame_header(MASKED_HELLO)
    assert header.fin is True
    assert header.opcode == Opcode.TEXT
    assert header.mask is True
    assert header.payload_length == len(b"Hello")
    body = MASKED_HELLO[header.header_length:]
    assert copy_payload(header, body) == b"Hello"
    assert apply_mask(header, body) == b"Hello"


def test_write_unmasked_hello_example():
    header = FrameHeader(fin=True, opcode=Opcode.TEXT, payload_length=5)
    assert write_frame_header(header) + b"Hello" == bytes([0x81, 0x05]) + b"Hello"


def test_parse_keeps_unknown_opcode_value():
    header = parse_frame_header(b"\x83\x00")
    assert opcode_name(header.opcode) == "INVALID"
    assert header.payload_length == 0


@pytest.mark.parametrize(
    "data",
    [b"", b"\x82", b"\x82\x7e\x01", b"\x82\x7f" + bytes(7), b"\x82\x85\x01\x02"],
)
def test_incomplete_headers_return_none(data):
    assert parse_frame_header(data) is None


@pytest.mark.parametrize("length", [0, 125, 126, 65535, 65536, 2**40])
@pytest.mark.parametrize("mask", [False, True])
def test_header_round_trip(length, mask):
    header = FrameHeader(
        fin=True,
        opcode=Opcode.BIN,
        mask=mask,
        payload_length=length,
        masking_key=b"\x01\x02\x03\x04" if mask else bytes(4),
    )
    raw = write_frame_header(header)
    parsed = parse_frame_header(raw + b"trailing")
    assert parsed == dataclasses.replace(header, header_length=len(raw))


@pytest.mark.parametrize(
    "length, marker",
    [(125, 125), (126, 126), (65535, 126), (65536, 127)],
)
def test_length_encoding_boundaries(length, marker):
    raw = write_frame_header(FrameHeader(opcode=Opcode.BIN, payload_length=length))
    assert raw[1] & 0x7F == marker


def test_mask_is_an_involution():
    header = FrameHeader(mask=True, payload_length=9, masking_key=b"\xaa\x55\x0f\xf0")
    data = b"some data"
    assert apply_mask(header, apply_mask(header, data)) == data


def test_apply_mask_only_covers_payload_length():
    header = FrameHeader(mask=True, payload_length=3, masking_key=b"\x00\x00\x00\x00")
    assert apply_mask(header, b"abcdef") == b"abc"


def test_copy_payload_unmasked_is_identity():
    header = FrameHeader(payload_length=4)
    assert copy_payload(header, bytearray(b"data")) == b"data"


def test_apply_mask_requires_mask():
    with pytest.raises(ValueError):
        apply_mask(FrameHeader(payload_length=1), b"x")


def test_apply_mask_rejects_short_payload():
    header = FrameHeader(mask=True, payload_length=10, masking_key=b"abcd")
    with pytest.raises(ValueError):
        apply_mask(header, b"short")


def test_masking_key_must_be_four_bytes():
    with pytest.raises(ValueError):
        FrameHeader(masking_key=b"abc")