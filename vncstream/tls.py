"""TLS on top of an open stream, using the standard library's ssl module."""

from __future__ import annotations

import ssl
from typing import Any, Optional

from vncstream.stream import (
    DoneCallback,
    Payload,
    ReqStatus,
    Stream,
    StreamError,
    StreamEvent,
    StreamState,
    _Request,
)

_WOULD_BLOCK = (
    ssl.SSLWantReadError,
    ssl.SSLWantWriteError,
    BlockingIOError,
    InterruptedError,
)


class TlsStream(Stream):
    """A stream whose traffic runs through a server-side TLS session.

    Obtained by upgrading an open stream with :func:`upgrade_to_tls`. The
    handshake is driven by :meth:`handle_events` until it completes.
    """

    def close(self) -> None:
        """Close the stream, failing every request still queued."""
        if self.state is StreamState.CLOSED:
            return
        self.state = StreamState.CLOSED
        while self.send_queue:
            self.send_queue.popleft().finish(ReqStatus.FAILED)
        self.wants_read = self.wants_write = False
        self.sock.close()

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes of decrypted data.

        Returns b"" when nothing is available yet, and also when the peer
        has closed; in the latter case the owner is told through
        ``REMOTE_CLOSED``.
        """
        if self.state is StreamState.CLOSED:
            raise StreamError("stream is closed")
        try:
            data = self.sock.recv(size)
        except ssl.SSLZeroReturnError:
            self._remote_closed()
            return b""
        except _WOULD_BLOCK:
            return b""
        except OSError as exc:
            raise StreamError(str(exc)) from exc
        if not data:
            self._remote_closed()
            return b""
        self.bytes_received += len(data)
        return data

    def send(self, payload: Payload,
             on_done: Optional[DoneCallback] = None) -> int:
        """Queue ``payload`` and try to flush; return the bytes written now."""
        if self.state is StreamState.CLOSED:
            raise StreamError("stream is closed")
        self.send_queue.append(_Request(bytes(payload), on_done))
        return self._flush()

    def handle_events(self, readable: bool, writable: bool) -> None:
        """Dispatch readiness reported by the event loop."""
        if readable:
            self._on_readable()
        if writable:
            self._on_writable()

    # Internals -----------------------------------------------------------

    def _on_readable(self) -> None:
        if self.state in (StreamState.NORMAL, StreamState.TLS_READY):
            if self.on_event is not None:
                self.on_event(self, StreamEvent.READ)
        elif self.state is StreamState.TLS_HANDSHAKE:
            self._try_accept()

    def _on_writable(self) -> None:
        if self.state in (StreamState.NORMAL, StreamState.TLS_READY):
            try:
                self._flush()
            except StreamError:
                pass
        elif self.state is StreamState.TLS_HANDSHAKE:
            self._try_accept()

    def _flush(self) -> int:
        total = 0
        while self.send_queue:
            req = self.send_queue[0]
            if req.exec_fn is not None:
                req.payload = bytes(req.exec_fn(self))
                req.exec_fn = None
            payload = req.payload or b""

            try:
                sent = self.sock.send(payload) if payload else 0
            except _WOULD_BLOCK:
                self._poll_rw()
                return total
            except OSError as exc:
                self.close()
                raise StreamError(str(exc)) from exc

            self.bytes_sent += sent
            total += sent

            if sent < len(payload):
                req.payload = payload[sent:]
                self._poll_rw()
                return total

            self.send_queue.popleft()
            req.finish(ReqStatus.DONE)

        if self.state is not StreamState.CLOSED:
            self._poll_r()
        return total

    def _try_accept(self) -> bool:
        try:
            self.sock.do_handshake()
        except ssl.SSLWantReadError:
            self._poll_r()
            self.state = StreamState.TLS_HANDSHAKE
            return True
        except ssl.SSLWantWriteError:
            self._poll_w()
            self.state = StreamState.TLS_HANDSHAKE
            return True
        except OSError:
            self.wants_read = self.wants_write = False
            return False
        self.state = StreamState.TLS_READY
        self._poll_r()
        return True


def upgrade_to_tls(stream: Stream, context: Any) -> TlsStream:
    """Start a server-side TLS session on ``stream`` in place and return it.

    ``context`` is an :class:`ssl.SSLContext` (or anything with the same
    ``wrap_socket``). Raises :class:`StreamError` if the session cannot be
    set up or the handshake fails outright.
    """
    if not isinstance(stream, Stream):
        raise TypeError("only a Stream can be upgraded")
    try:
        tls_sock = context.wrap_socket(
            stream.sock, server_side=True, do_handshake_on_connect=False
        )
    except (OSError, ValueError) as exc:
        raise StreamError(f"cannot start TLS session: {exc}") from exc
    tls_sock.setblocking(False)

    stream.__class__ = TlsStream
    upgraded: TlsStream = stream  # type: ignore[assignment]
    upgraded.sock = tls_sock

    if not upgraded._try_accept():
        raise StreamError("TLS handshake failed")
    return upgraded