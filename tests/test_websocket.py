import socket

import pytest

from vncstream.framing import (
    FrameHeader,
    Opcode,
    copy_payload,
    parse_frame_header,
    write_frame_header,
)
from vncstream.handshake import ws_handshake
from vncstream.stream import StreamError, StreamEvent, StreamState
from vncstream.websocket import WebSocketStream

CHALLENGE = "dGhlIHNhbXBsZSBub25jZQ=="
REQUEST = (
    "GET / HTTP/1.1\r\n"
    "Host: localhost\r\n"
    "Upgrade: websocket\r\n"
    "Connection: Upgrade\r\n"
    f"Sec-WebSocket-Key: {CHALLENGE}\r\n"
    "Sec-WebSocket-Version: 13\r\n"
    "\r\n"
).encode("ascii")
MASK = b"\x01\x02\x03\x04"


@pytest.fixture
def pair():
    server, client = socket.socketpair()
    client.settimeout(2)
    events = []
    ws = WebSocketStream(server, lambda stream, event: events.append(event))
    yield ws, client, events
    ws.close()
    client.close()


def _recv_exact(sock, size):
    out = b""
    while len(out) < size:
        chunk = sock.recv(size - len(out))
        if not chunk:
            break
        out += chunk
    return out


def _masked_frame(opcode, payload, key=MASK):
    header = write_frame_header(
        FrameHeader(fin=True, opcode=opcode, mask=True,
                    payload_length=len(payload), masking_key=key)
    )
    return header + copy_payload(FrameHeader(mask=True, masking_key=key), payload)


def _expected_response():
    response, _ = ws_handshake(REQUEST)
    return response.encode("latin-1")


def _handshake(ws, client):
    client.sendall(REQUEST)
    data = ws.read(4096)
    response = _recv_exact(client, len(_expected_response()))
    return data, response


def test_handshake_response_is_sent(pair):
    ws, client, _ = pair
    data, response = _handshake(ws, client)
    assert data == b""
    assert response == _expected_response()
    assert response.startswith(b"HTTP/1.1 101 Switching Protocols\r\n")


def test_binary_frame_in_same_packet_as_handshake(pair):
    ws, client, _ = pair
    client.sendall(REQUEST + _masked_frame(Opcode.BIN, b"hello"))
    assert ws.read(4096) == b"hello"
    assert _recv_exact(client, len(_expected_response())) == _expected_response()


def test_send_is_held_until_handshake(pair):
    ws, client, _ = pair
    ws.send(b"abc")
    client.setblocking(False)
    with pytest.raises(BlockingIOError):
        client.recv(16)
    client.settimeout(2)
    _, response = _handshake(ws, client)
    assert response == _expected_response()
    assert _recv_exact(client, 5) == b"\x82\x03abc"


def test_incomplete_request_waits(pair):
    ws, client, _ = pair
    client.sendall(REQUEST[:20])
    assert ws.read(4096) == b""
    client.setblocking(False)
    with pytest.raises(BlockingIOError):
        client.recv(16)
    client.settimeout(2)
    client.sendall(REQUEST[20:])
    assert ws.read(4096) == b""
    assert _recv_exact(client, len(_expected_response())) == _expected_response()


def test_masked_binary_frame_is_unmasked(pair):
    ws, client, _ = pair
    _handshake(ws, client)
    client.sendall(_masked_frame(Opcode.BIN, b"hello world"))
    assert ws.read(4096) == b"hello world"


def test_payload_split_across_reads(pair):
    ws, client, _ = pair
    _handshake(ws, client)
    frame = _masked_frame(Opcode.BIN, b"abcdefgh")
    header_length = parse_frame_header(frame).header_length
    client.sendall(frame[:header_length + 3])
    assert ws.read(4096) == b"abc"
    client.sendall(frame[header_length + 3:])
    assert ws.read(4096) == b"defgh"


def test_read_respects_size(pair):
    ws, client, _ = pair
    _handshake(ws, client)
    client.sendall(_masked_frame(Opcode.BIN, b"abcdef"))
    assert ws.read(4) == b"abcd"
    assert ws.read(4) == b"ef"


def test_consecutive_binary_frames_are_joined(pair):
    ws, client, _ = pair
    _handshake(ws, client)
    client.sendall(_masked_frame(Opcode.BIN, b"one") + _masked_frame(Opcode.BIN, b"two"))
    assert ws.read(4096) == b"onetwo"


def test_text_frame_is_ignored(pair):
    ws, client, _ = pair
    _handshake(ws, client)
    client.sendall(_masked_frame(Opcode.TEXT, b"text") + _masked_frame(Opcode.BIN, b"bin"))
    assert ws.read(4096) == b""
    assert ws.read(4096) == b"bin"


def test_ping_is_answered_with_pong(pair):
    ws, client, _ = pair
    _handshake(ws, client)
    client.sendall(_masked_frame(Opcode.PING, b"hi"))
    assert ws.read(4096) == b""
    assert _recv_exact(client, 4) == b"\x8a\x02hi"


def test_close_frame_closes_stream(pair):
    ws, client, events = pair
    _handshake(ws, client)
    client.sendall(_masked_frame(Opcode.CLOSE, b""))
    assert ws.read(4096) == b""
    assert ws.state is StreamState.CLOSED
    assert events == [StreamEvent.REMOTE_CLOSED]


def test_leading_continuation_frame_closes_stream(pair):
    ws, client, events = pair
    _handshake(ws, client)
    client.sendall(_masked_frame(Opcode.CONT, b"x"))
    assert ws.read(4096) == b""
    assert ws.state is StreamState.CLOSED
    assert events == [StreamEvent.REMOTE_CLOSED]


def test_overlong_handshake_is_rejected(pair):
    ws, client, events = pair
    client.sendall(b"A" * 5000)
    with pytest.raises(StreamError):
        ws.read(4096)
    assert ws.state is StreamState.CLOSED
    assert events == [StreamEvent.REMOTE_CLOSED]


def test_send_uses_extended_length(pair):
    ws, client, _ = pair
    _handshake(ws, client)
    ws.send(b"x" * 200)
    raw = _recv_exact(client, 204)
    header = parse_frame_header(raw)
    assert header.opcode == Opcode.BIN
    assert header.fin is True
    assert header.mask is False
    assert header.payload_length == 200
    assert raw[header.header_length:] == b"x" * 200


def test_exec_and_send_frames_result(pair):
    ws, client, _ = pair
    _handshake(ws, client)
    ws.exec_and_send(lambda stream: b"ok")
    assert _recv_exact(client, 4) == b"\x82\x02ok"


def test_read_after_close_is_empty(pair):
    ws, client, _ = pair
    ws.close()
    assert ws.read(4096) == b""
    assert ws.fileno() == -1