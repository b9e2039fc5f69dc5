"""Shared fixtures: a threaded loopback proxy stub and pass-through TLS."""

import socket
import ssl
import threading
from unittest.mock import MagicMock

import pytest

from proxyfetch.core.target import ProxyTarget


class ProxyStub:
    """One-connection proxy stub; ``handler(stub, conn)`` scripts the exchange."""

    def __init__(self, handler):
        self._handler = handler
        self.received = []
        self.errors = []
        self._srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._srv.bind(("127.0.0.1", 0))
        self._srv.listen(1)
        self._srv.settimeout(5)
        self.port = self._srv.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def target(self) -> ProxyTarget:
        return ProxyTarget("http", "127.0.0.1", self.port)

    @staticmethod
    def read_head(conn) -> bytes:
        """Read up to and including the blank line ending a message head."""
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = conn.recv(4096)
            if not chunk:
                break
            data += chunk
        return data

    def _serve(self):
        try:
            conn, _ = self._srv.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(5)
            try:
                self._handler(self, conn)
            except OSError as e:
                self.errors.append(e)

    def close(self):
        self._thread.join(5)
        self._srv.close()


class PassthroughTLS:
    """Stands in for an SSLSocket without encrypting anything."""

    def __init__(self, sock):
        self._sock = sock

    def __getattr__(self, name):
        return getattr(self._sock, name)

    def version(self):
        return "TLSv1.3"


@pytest.fixture
def stub_factory():
    stubs = []

    def make(handler):
        stub = ProxyStub(handler)
        stubs.append(stub)
        return stub

    yield make
    for stub in stubs:
        stub.close()


@pytest.fixture
def passthrough_ctx():
    """Factory for mocked SSL contexts whose sockets stay in cleartext."""
    def make():
        ctx = MagicMock(spec=ssl.SSLContext)
        ctx.wrap_socket.side_effect = lambda sock, server_hostname=None: PassthroughTLS(sock)
        return ctx
    return make


@pytest.fixture
def tls_ctx(passthrough_ctx):
    return passthrough_ctx()
