"""Non-blocking TCP, WebSocket, encrypted-message and TLS streams for VNC
servers, with WebSocket, HTTP and output-transform helpers."""

__version__ = "0.10.0"