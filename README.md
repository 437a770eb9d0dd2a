# vncstream

Non-blocking byte streams for the transport layer of a VNC server, built on
plain sockets and the standard library only.

A stream does not run its own loop. You register `stream.fileno()` with a
poll or selector loop, watch for the events named by `stream.wants_read`
and `stream.wants_write`, and report readiness with
`stream.handle_events(readable, writable)`.

## Streams

### `vncstream.stream.Stream`

`Stream(sock, on_event=None)` puts the socket in non-blocking mode.

- `on_event(stream, event)` is called with `StreamEvent.READ` when the
  socket is readable and with `StreamEvent.REMOTE_CLOSED` when the peer
  has hung up.
- `read(size)` returns up to `size` bytes, or `b""` when nothing is
  available yet or the peer has closed (the stream is then closed and
  `REMOTE_CLOSED` is reported). It raises `StreamError` if the stream is
  not open.
- `send(payload, on_done=None)` queues the payload, tries to flush, and
  returns the number of bytes written right away. `on_done(status)` is
  called with `ReqStatus.DONE` once the whole payload is written, or with
  `ReqStatus.FAILED` if the stream is closed first. Sending on a closed
  stream raises `StreamError`.
- `send_first(payload)` queues a payload ahead of everything else.
- `exec_and_send(exec_fn)` queues a payload that `exec_fn(stream)` builds
  only when the queue is flushed.
- `close()` fails every queued request and closes the socket;
  `fileno()` then returns -1.
- `bytes_sent` and `bytes_received` count traffic; `state` is a
  `StreamState`.

### `vncstream.websocket.WebSocketStream`

The same interface over WebSocket. Until the client's upgrade request has
been answered, nothing queued is sent. After that:

- `read(size)` returns the payload of binary frames as it arrives (frame
  boundaries are not kept), answers pings with pongs, ignores text and
  pong frames, and treats a close frame, or a leading continuation frame,
  as the peer closing. An upgrade request longer than 4096 bytes closes
  the stream and raises `StreamError`.
- `send(payload, on_done=None)` sends the payload as one binary frame.
- `exec_and_send(exec_fn)` frames the payload that `exec_fn` builds.

### `vncstream.rsa_aes`

`upgrade_to_rsa_aes(stream, cipher)` turns an open `Stream` into an
`RsaAesStream` in place and returns it. Traffic is split into messages of
at most 8192 bytes, each sent as a 2-byte big-endian length, the
ciphertext and a 16-byte MAC.

The cipher is yours to supply. It needs two methods,
`encrypt(data, associated_data)` and `decrypt(data, associated_data)`,
each returning `(output, mac)`; the associated data is the 2-byte length
prefix, and the cipher keeps its own message counters.

- `read(size)` returns the plaintext of every complete message that fits
  in `size` bytes. A MAC that does not match raises
  `MessageAuthenticationError` (a `StreamError`).
- `send(payload, on_done=None)` encrypts and queues the payload and
  returns its plaintext length.

### `vncstream.tls`

`upgrade_to_tls(stream, context)` wraps the stream's socket with
`context.wrap_socket(..., server_side=True)` (an `ssl.SSLContext`), turns
the stream into a `TlsStream` in place and starts the handshake without
blocking. The handshake continues through `handle_events`; `state` is
`StreamState.TLS_READY` once it has finished. A session that cannot be
set up, or a handshake that fails at once, raises `StreamError`.

## Protocol helpers

- `vncstream.framing`: WebSocket frame headers. `parse_frame_header(data)`
  returns a `FrameHeader`, or `None` if `data` does not yet hold a whole
  header; `write_frame_header(header)` encodes the shortest form;
  `apply_mask` and `copy_payload` unmask payloads; `opcode_name(op)` gives
  `"bin"`, `"ping"` and so on, or `"INVALID"`. Opcodes are in `Opcode`.
- `vncstream.http`: `parse_request(text)` parses the head of an HTTP/1.1
  GET request (text or bytes) into an `HttpRequest` with `header_length`,
  `content_length`, `content_type` and up to 32 other `fields`, or raises
  `HttpParseError`.
- `vncstream.handshake`: `ws_handshake(request)` returns the
  `101 Switching Protocols` response and the length of the request head.
  It raises `HandshakeError` when the key is missing, when a
  `Sec-WebSocket-Protocol` list lacks `binary`, or when a
  `Sec-WebSocket-Version` list lacks `13`.
- `vncstream.transform`: output transforms (`Transform`, numbered like
  Wayland output transforms). `transform_to_matrix` gives the inverse
  transform as a 3x3 matrix in 16.16 fixed point, `transform_dimensions`
  swaps width and height for quarter turns, and `transform_region` maps a
  list of `Box` rectangles through a transform.

## Example

```python
import selectors
import socket

from vncstream.stream import StreamEvent
from vncstream.websocket import WebSocketStream

sel = selectors.DefaultSelector()
listener = socket.create_server(("127.0.0.1", 5900))
client_sock, _ = listener.accept()


def interest(stream):
    mask = 0
    if stream.wants_read:
        mask |= selectors.EVENT_READ
    if stream.wants_write:
        mask |= selectors.EVENT_WRITE
    return mask or selectors.EVENT_READ


def on_event(stream, event):
    if event is StreamEvent.READ:
        data = stream.read(4096)
        if data:
            stream.send(data)  # echo back as a binary frame
    elif event is StreamEvent.REMOTE_CLOSED:
        sel.unregister(stream)


ws = WebSocketStream(client_sock, on_event)
sel.register(ws, interest(ws))

while sel.get_map():
    for key, mask in sel.select():
        stream = key.fileobj
        stream.handle_events(
            bool(mask & selectors.EVENT_READ),
            bool(mask & selectors.EVENT_WRITE),
        )
        if stream.fileno() >= 0:
            sel.modify(stream, interest(stream))
```

## What this package does not do

It is the transport layer only. It does not speak the VNC protocol itself:
there is no server, no framebuffer handling or encoders, no
authentication schemes, no key exchange and no cipher implementation for
`upgrade_to_rsa_aes`, and no command to run.

## Install

    pip install .

## Tests

    pip install .[test]
    pytest