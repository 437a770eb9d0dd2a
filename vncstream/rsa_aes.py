"""Authenticated, encrypted message framing over an existing stream."""

from __future__ import annotations

import hmac
import struct
from typing import Optional, Protocol

from vncstream.stream import (
    DoneCallback,
    ExecCallback,
    Payload,
    Stream,
    StreamError,
    StreamState,
)

BUFFER_SIZE = 8192
MAC_SIZE = 16

_LENGTH = struct.Struct("!H")
_OVERHEAD = _LENGTH.size + MAC_SIZE
_READ_CAPACITY = BUFFER_SIZE + _OVERHEAD


class Cipher(Protocol):
    """An AEAD cipher producing 16-byte MACs.

    Both methods return the transformed data together with the MAC computed
    over it; the cipher keeps its own message counters.
    """

    def encrypt(self, data: bytes, associated_data: bytes) -> tuple[bytes, bytes]:
        ...

    def decrypt(self, data: bytes, associated_data: bytes) -> tuple[bytes, bytes]:
        ...


class MessageAuthenticationError(StreamError):
    """A received message failed authentication."""


class RsaAesStream(Stream):
    """A stream whose traffic is split into length-prefixed, encrypted and
    authenticated messages of at most ``BUFFER_SIZE`` bytes each.

    Obtained by upgrading an open stream with :func:`upgrade_to_rsa_aes`.
    """

    _cipher: Optional[Cipher] = None
    _read_buffer: bytearray

    def _require_cipher(self) -> Cipher:
        if self._cipher is None:
            raise StreamError("stream has not been upgraded")
        return self._cipher

    def read(self, size: int) -> bytes:
        """Return the plaintext of every complete message that fits in
        ``size`` bytes."""
        self._require_cipher()
        self._fill_buffer()
        if self.state is StreamState.CLOSED:
            return b""

        out = bytearray()
        while True:
            message = self._read_message(size - len(out))
            if not message:
                break
            out += message
        return bytes(out)

    def _fill_buffer(self) -> None:
        space = _READ_CAPACITY - len(self._read_buffer)
        if space > 0 and self.state is StreamState.NORMAL:
            self._read_buffer += Stream.read(self, space)

    def _message_length(self) -> Optional[int]:
        buffer = self._read_buffer
        if len(buffer) <= _LENGTH.size:
            return None
        (length,) = _LENGTH.unpack_from(buffer)
        if len(buffer) < _OVERHEAD + length:
            return None
        return length

    def _read_message(self, size: int) -> Optional[bytes]:
        length = self._message_length()
        # The whole message must fit in what the caller asked for.
        if length is None or length > size:
            return None

        buffer = self._read_buffer
        prefix = bytes(buffer[:_LENGTH.size])
        body = bytes(buffer[_LENGTH.size:_LENGTH.size + length])
        actual_mac = bytes(buffer[_LENGTH.size + length:_OVERHEAD + length])

        plaintext, expected_mac = self._require_cipher().decrypt(body, prefix)
        if not hmac.compare_digest(bytes(expected_mac), actual_mac):
            raise MessageAuthenticationError("message authentication failed")

        del buffer[:_OVERHEAD + length]
        return bytes(plaintext)

    def _seal(self, data: bytes) -> bytes:
        cipher = self._require_cipher()
        out = bytearray()
        for start in range(0, len(data), BUFFER_SIZE):
            chunk = data[start:start + BUFFER_SIZE]
            prefix = _LENGTH.pack(len(chunk))
            ciphertext, mac = cipher.encrypt(chunk, prefix)
            out += prefix
            out += ciphertext
            out += mac
        return bytes(out)

    def send(self, payload: Payload,
             on_done: Optional[DoneCallback] = None) -> int:
        """Encrypt and queue ``payload``; return its plaintext length."""
        data = bytes(payload)
        Stream.send(self, self._seal(data), on_done)
        return len(data)

    def exec_and_send(self, exec_fn: ExecCallback) -> None:
        """Build the payload now and send it encrypted."""
        if self.state is StreamState.CLOSED:
            return
        try:
            self.send(exec_fn(self))
        except StreamError:
            pass


def upgrade_to_rsa_aes(stream: Stream, cipher: Cipher) -> RsaAesStream:
    """Switch ``stream`` to encrypted messaging in place and return it."""
    if not isinstance(stream, Stream):
        raise TypeError("only a Stream can be upgraded")
    stream.__class__ = RsaAesStream
    upgraded: RsaAesStream = stream  # type: ignore[assignment]
    upgraded._cipher = cipher
    upgraded._read_buffer = bytearray()
    return upgraded