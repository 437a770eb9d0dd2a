"""Server side of the WebSocket opening handshake."""

from __future__ import annotations

import base64
import hashlib
from typing import Union

from vncstream.http import HttpParseError, parse_request

MAGIC_UUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

_LIST_LIMIT = 255
_C_SPACE = frozenset(" \t\n\v\f\r")


class HandshakeError(ValueError):
    """The handshake request is incomplete, malformed or unsupported."""


def _accumulate(current: str, value: str) -> str:
    combined = (current + value + ",")[:_LIST_LIMIT]
    return "".join(c.lower() for c in combined if c not in _C_SPACE)


def ws_handshake(request: Union[str, bytes, bytearray]) -> tuple[str, int]:
    """Answer a WebSocket upgrade request.

    Returns the response text and the length of the request head, so the
    caller can discard it from its input buffer.
    """
    try:
        req = parse_request(request)
    except HttpParseError as exc:
        raise HandshakeError(str(exc)) from exc

    protocols = ","
    versions = ","
    challenge = None
    for key, value in req.fields:
        name = key.lower()
        if name == "sec-websocket-key":
            challenge = value
        elif name == "sec-websocket-protocol":
            protocols = _accumulate(protocols, value)
        elif name == "sec-websocket-version":
            versions = _accumulate(versions, value)

    if challenge is None:
        raise HandshakeError("missing Sec-WebSocket-Key")

    have_protocols = len(protocols) != 1
    have_versions = len(versions) != 1

    if have_protocols and ",binary," not in protocols:
        raise HandshakeError("binary protocol not offered")
    if have_versions and ",13," not in versions:
        raise HandshakeError("unsupported WebSocket version")

    digest = hashlib.sha1((challenge + MAGIC_UUID).encode("latin-1")).digest()
    accept = base64.b64encode(digest).decode("ascii")

    response = (
        "HTTP/1.1 101 Switching Protocols\r\n"
        "Upgrade: websocket\r\n"
        "Connection: Upgrade\r\n"
        f"Sec-WebSocket-Accept: {accept}\r\n"
        + ("Sec-WebSocket-Protocol: binary\r\n" if have_protocols else "")
        + ("Sec-WebSocket-Version: 13\r\n" if have_versions else "")
        + "\r\n"
    )
    return response, req.header_length