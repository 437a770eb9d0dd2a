"""Buffered, non-blocking byte stream over a socket with a send queue."""

from __future__ import annotations

import os
import socket
from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, Union

Payload = Union[bytes, bytearray, memoryview]
EventCallback = Callable[["Stream", "StreamEvent"], None]
DoneCallback = Callable[["ReqStatus"], None]
ExecCallback = Callable[["Stream"], Payload]


def _iov_max() -> int:
    try:
        value = os.sysconf("SC_IOV_MAX")
    except (AttributeError, ValueError, OSError):
        return 1024
    return value if value > 0 else 1024


_IOV_MAX = _iov_max()
_MSG_NOSIGNAL = getattr(socket, "MSG_NOSIGNAL", 0)


class StreamState(Enum):
    """Lifecycle state of a stream."""

    NORMAL = auto()
    CLOSED = auto()
    TLS_HANDSHAKE = auto()
    TLS_READY = auto()


class StreamEvent(Enum):
    """Events reported to the stream's owner."""

    READ = auto()
    REMOTE_CLOSED = auto()


class ReqStatus(Enum):
    """Outcome of a queued send request."""

    DONE = auto()
    FAILED = auto()


class StreamError(Exception):
    """The stream cannot carry out the operation."""


@dataclass
class _Request:
    payload: Optional[bytes] = None
    on_done: Optional[DoneCallback] = None
    exec_fn: Optional[ExecCallback] = None

    def finish(self, status: ReqStatus) -> None:
        if self.on_done is not None:
            self.on_done(status)


class Stream:
    """A non-blocking socket stream driven by an external event loop.

    The owner polls :meth:`fileno` for the events named by ``wants_read``
    and ``wants_write`` and reports readiness through :meth:`handle_events`.
    """

    def __init__(self, sock: socket.socket,
                 on_event: Optional[EventCallback] = None) -> None:
        self.sock = sock
        self.on_event = on_event
        self.state = StreamState.NORMAL
        self.cork = False
        self.bytes_sent = 0
        self.bytes_received = 0
        self.send_queue: deque[_Request] = deque()
        self.wants_read = False
        self.wants_write = False
        sock.setblocking(False)
        self._poll_r()

    # Poll interest -------------------------------------------------------

    def _poll_r(self) -> None:
        self.wants_read, self.wants_write = True, False

    def _poll_w(self) -> None:
        self.wants_read, self.wants_write = False, True

    def _poll_rw(self) -> None:
        self.wants_read, self.wants_write = True, True

    # Public interface ----------------------------------------------------

    def fileno(self) -> int:
        """Return the socket's descriptor, or -1 once the stream is closed."""
        if self.state is StreamState.CLOSED:
            return -1
        return self.sock.fileno()

    def close(self) -> None:
        """Close the stream, failing every request still queued."""
        if self.state is StreamState.CLOSED:
            return
        self.state = StreamState.CLOSED
        self.cork = True
        while self.send_queue:
            self.send_queue.popleft().finish(ReqStatus.FAILED)
        self.wants_read = self.wants_write = False
        self.sock.close()

    def _remote_closed(self) -> None:
        self.close()
        if self.on_event is not None:
            self.on_event(self, StreamEvent.REMOTE_CLOSED)

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes.

        Returns b"" when nothing is available yet, and also when the peer
        has closed; in the latter case the stream is closed and the owner
        is told through ``REMOTE_CLOSED``.
        """
        if self.state is not StreamState.NORMAL:
            raise StreamError("stream is not open for reading")
        try:
            data = self.sock.recv(size)
        except (BlockingIOError, InterruptedError):
            return b""
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

    def send_first(self, payload: Payload) -> int:
        """Queue ``payload`` ahead of everything else and try to flush."""
        if self.state is StreamState.CLOSED:
            raise StreamError("stream is closed")
        self.send_queue.appendleft(_Request(bytes(payload)))
        return self._flush()

    def exec_and_send(self, exec_fn: ExecCallback) -> None:
        """Queue a payload that ``exec_fn(stream)`` builds when it is sent."""
        if self.state is StreamState.CLOSED:
            return
        self.send_queue.append(_Request(exec_fn=exec_fn))
        try:
            self._flush()
        except StreamError:
            pass

    def handle_events(self, readable: bool, writable: bool) -> None:
        """Dispatch readiness reported by the event loop."""
        if readable:
            self._on_readable()
        if writable:
            self._on_writable()

    # Internals -----------------------------------------------------------

    def _on_readable(self) -> None:
        if self.state is StreamState.NORMAL and self.on_event is not None:
            self.on_event(self, StreamEvent.READ)

    def _on_writable(self) -> None:
        if self.state is StreamState.NORMAL:
            try:
                self._flush()
            except StreamError:
                pass

    def _gather(self) -> list[bytes]:
        buffers: list[bytes] = []
        for req in self.send_queue:
            if req.exec_fn is not None:
                req.payload = bytes(req.exec_fn(self))
            buffers.append(req.payload or b"")
            if len(buffers) >= _IOV_MAX:
                break
        return buffers

    def _transmit(self, buffers: list[bytes]) -> int:
        if hasattr(self.sock, "sendmsg"):
            return self.sock.sendmsg(buffers, [], _MSG_NOSIGNAL)
        return self.sock.send(b"".join(buffers))

    def _flush(self) -> int:
        if self.cork:
            return 0

        buffers = self._gather()
        if not buffers:
            return 0

        try:
            sent = self._transmit(buffers)
        except (BlockingIOError, InterruptedError):
            self._poll_rw()
            return 0
        except (BrokenPipeError, ConnectionResetError) as exc:
            self._remote_closed()
            raise StreamError("remote end closed the connection") from exc
        except OSError as exc:
            raise StreamError(str(exc)) from exc

        self.bytes_sent += sent
        bytes_left = sent

        # Callbacks may send more; don't flush while flushing.
        self.cork = True
        while self.send_queue:
            req = self.send_queue[0]
            payload = req.payload or b""
            bytes_left -= len(payload)
            if bytes_left >= 0:
                self.send_queue.popleft()
                req.finish(ReqStatus.DONE)
            else:
                req.exec_fn = None
                req.payload = payload[len(payload) + bytes_left:]
                self._poll_rw()
            if bytes_left <= 0:
                break
        self.cork = False

        if bytes_left == 0 and self.state is not StreamState.CLOSED:
            self._poll_r()

        return sent