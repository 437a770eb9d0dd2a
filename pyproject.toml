[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vncstream"
version = "0.10.0"
description = "Non-blocking socket streams for VNC servers: TCP, WebSocket, encrypted-message and TLS transports"
requires-python = ">=3.10"
dependencies = []
keywords = ["vnc", "rfb", "websocket", "stream", "tls", "non-blocking"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vncstream"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
