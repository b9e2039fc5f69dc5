"""
TLS session carried over an already-encrypted socket.

An ``ssl.SSLSocket`` cannot be wrapped a second time, so an https
destination reached through an https proxy drives its TLS state machine
through a pair of ``ssl.MemoryBIO`` buffers and shuttles the records over
the proxy socket by hand.
"""

from __future__ import annotations

import io
import socket
import ssl
from typing import Any, Callable, Optional

_RECV_SIZE = 16384


class LayeredTLSSocket:
    """Minimal socket-like TLS client over another socket."""

    def __init__(self, sock: socket.socket, context: ssl.SSLContext, server_hostname: str):
        self._sock = sock
        self._incoming = ssl.MemoryBIO()
        self._outgoing = ssl.MemoryBIO()
        self._ssl = context.wrap_bio(
            self._incoming, self._outgoing, server_hostname=server_hostname
        )
        self._pump(self._ssl.do_handshake)

    # ── Record shuttling ─────────────────────────────────────────────────

    def _flush(self) -> None:
        pending = self._outgoing.read()
        if pending:
            self._sock.sendall(pending)

    def _pump(self, func: Callable[..., Any], *args: Any) -> Any:
        while True:
            try:
                result = func(*args)
            except ssl.SSLWantReadError:
                self._flush()
                data = self._sock.recv(_RECV_SIZE)
                if data:
                    self._incoming.write(data)
                else:
                    self._incoming.write_eof()
            except ssl.SSLWantWriteError:
                self._flush()
            else:
                self._flush()
                return result

    # ── Socket API used by http.client ───────────────────────────────────

    def sendall(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            sent = self._pump(self._ssl.write, view)
            view = view[sent:]

    def recv(self, bufsize: int) -> bytes:
        try:
            return self._pump(self._ssl.read, bufsize)
        except (ssl.SSLZeroReturnError, ssl.SSLEOFError):
            # Peer closed, with or without close_notify
            return b""

    def recv_into(self, buffer, nbytes: int = 0) -> int:
        data = self.recv(nbytes or len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def makefile(self, mode: str = "rb") -> io.BufferedReader:
        """Buffered binary reader; only ``"rb"`` is supported."""
        if mode != "rb":
            raise ValueError(f"Unsupported makefile mode {mode!r}")
        return io.BufferedReader(_Reader(self))

    def settimeout(self, timeout: Optional[float]) -> None:
        self._sock.settimeout(timeout)

    def version(self) -> Optional[str]:
        return self._ssl.version()

    def close(self) -> None:
        self._sock.close()


class _Reader(io.RawIOBase):
    def __init__(self, tls: LayeredTLSSocket):
        self._tls = tls

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        return self._tls.recv_into(buffer)
