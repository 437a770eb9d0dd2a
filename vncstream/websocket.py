"""Server-side WebSocket stream carrying binary data over a socket."""

from __future__ import annotations

import socket
from dataclasses import replace
from enum import Enum, auto
from typing import Optional

from vncstream.framing import (
    FrameHeader,
    Opcode,
    copy_payload,
    parse_frame_header,
    write_frame_header,
)
from vncstream.handshake import HandshakeError, ws_handshake
from vncstream.stream import (
    DoneCallback,
    EventCallback,
    ExecCallback,
    Payload,
    Stream,
    StreamError,
    StreamState,
)

READ_BUFFER_SIZE = 4096


class _WsState(Enum):
    HANDSHAKE = auto()
    READY = auto()


def _binary_header(length: int) -> bytes:
    return write_frame_header(
        FrameHeader(fin=True, opcode=Opcode.BIN, payload_length=length)
    )


class WebSocketStream(Stream):
    """A stream that answers the WebSocket handshake and then exchanges
    binary frames.

    Framing is not preserved: binary payloads are handed to the reader as
    they arrive. Nothing is sent until the handshake has completed.
    """

    def __init__(self, sock: socket.socket,
                 on_event: Optional[EventCallback] = None) -> None:
        super().__init__(sock, on_event)
        self._ws_state = _WsState.HANDSHAKE
        self._buffer = bytearray()
        self._header = FrameHeader()
        self._remaining = 0
        self._mask_offset = 0
        self._opcode: int = Opcode.CONT
        self.cork = True

    # Reading -------------------------------------------------------------

    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes of binary payload received so far."""
        self._fill_buffer()
        if self.state is StreamState.CLOSED:
            return b""
        if self._ws_state is _WsState.HANDSHAKE:
            return self._read_handshake(size)
        return self._read_ready(size)

    def _fill_buffer(self) -> None:
        space = READ_BUFFER_SIZE - len(self._buffer)
        if space > 0 and self.state is StreamState.NORMAL:
            self._buffer += Stream.read(self, space)

    def _read_handshake(self, size: int) -> bytes:
        if len(self._buffer) >= READ_BUFFER_SIZE:
            self._remote_closed()
            raise StreamError("handshake request is too long")

        try:
            response, header_length = ws_handshake(bytes(self._buffer))
        except HandshakeError:
            return b""

        self.cork = False
        self.send_first(response.encode("latin-1"))

        del self._buffer[:header_length]
        self._ws_state = _WsState.READY
        return self._read_ready(size)

    def _read_ready(self, size: int) -> bytes:
        out = bytearray()
        while True:
            chunk = self._read_frame(size - len(out))
            if not chunk:
                break
            out += chunk
        return bytes(out)

    def _read_frame(self, size: int) -> bytes:
        if self._remaining > 0:
            return self._process_payload(size, 0)

        header = parse_frame_header(self._buffer)
        if header is None:
            return b""

        self._header = header
        self._remaining = header.payload_length
        self._mask_offset = 0
        if header.opcode != Opcode.CONT:
            self._opcode = header.opcode

        return self._process_payload(size, header.header_length)

    def _process_payload(self, size: int, offset: int) -> bytes:
        op = self._opcode
        if op == Opcode.BIN:
            return self._take_payload(size, offset)
        if op in (Opcode.CONT, Opcode.CLOSE):
            # A leading continuation frame is unexpected; treat it as a close.
            self._remote_closed()
            return b""
        if op in (Opcode.TEXT, Opcode.PONG):
            self._advance(len(self._buffer), offset)
            return b""
        if op == Opcode.PING:
            self._process_ping(offset)
            return b""
        raise StreamError(f"unexpected opcode {op}")

    def _available(self, size: int, offset: int) -> int:
        return max(0, min(size, len(self._buffer) - offset, self._remaining))

    def _advance(self, size: int, offset: int) -> int:
        count = self._available(size, offset)
        del self._buffer[:offset + count]
        self._remaining -= count
        self._mask_offset += count
        return count

    def _unmasked(self, offset: int, count: int) -> bytes:
        data = bytes(self._buffer[offset:offset + count])
        header = self._header
        if not header.mask:
            return data
        shift = self._mask_offset % 4
        key = header.masking_key[shift:] + header.masking_key[:shift]
        return copy_payload(replace(header, masking_key=key), data)

    def _take_payload(self, size: int, offset: int) -> bytes:
        count = self._available(size, offset)
        data = self._unmasked(offset, count)
        self._advance(count, offset)
        return data

    def _process_ping(self, offset: int) -> None:
        if offset > 0:
            # Start of the frame: answer with a pong header first.
            reply = FrameHeader(fin=True, opcode=Opcode.PONG,
                                payload_length=self._remaining)
            Stream.send(self, write_frame_header(reply))

        count = self._available(len(self._buffer), offset)
        data = self._unmasked(offset, count)
        self._advance(count, offset)
        if data:
            Stream.send(self, data)

    # Writing -------------------------------------------------------------

    def send(self, payload: Payload,
             on_done: Optional[DoneCallback] = None) -> int:
        """Send ``payload`` as one binary frame."""
        data = bytes(payload)
        super().send(_binary_header(len(data)))
        return super().send(data, on_done)

    def exec_and_send(self, exec_fn: ExecCallback) -> None:
        """Queue a binary frame whose payload ``exec_fn`` builds when sent."""

        def framed(_stream: Stream) -> bytes:
            body = bytes(exec_fn(self))
            return _binary_header(len(body)) + body

        super().exec_and_send(framed)