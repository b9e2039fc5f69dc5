"""
ProxyFetch Response Collector
=============================
Drains the destination's response body into memory and releases the
connection. A body cut short before its Content-Length or chunked framing
completes is a ``ReadError``, never a truncated success.
"""

from __future__ import annotations

import http.client
import logging
import socket
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from proxyfetch.core.deadline import Deadline
from proxyfetch.core.errors import FetchTimeout, ReadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


# ── Data Models ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Response:
    """Final status and body of the destination exchange."""
    status_code: int
    body: bytes
    reason: str = ""
    headers: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def status_line(self) -> str:
        return f"{self.status_code} {self.reason}".strip()

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")


class PendingResponse:
    """A response whose head has been parsed but whose body is still on the wire.

    Owns the connection: ``close()`` releases it.
    """

    def __init__(self, response: http.client.HTTPResponse, stream: Any, deadline: Optional[Deadline] = None):
        self.response = response
        self.stream = stream
        self.deadline = deadline or Deadline()
        self._closed = False

    @property
    def status_code(self) -> int:
        return self.response.status

    @property
    def reason(self) -> str:
        return self.response.reason or ""

    @property
    def headers(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(self.response.getheaders())

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.response.close()
        self.stream.close()

    def __enter__(self) -> "PendingResponse":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# ── Collection ───────────────────────────────────────────────────────────────

def collect(pending: PendingResponse) -> Response:
    """Read the full body and close the connection."""
    resp = pending.response
    chunks = []
    received = 0
    try:
        while True:
            pending.stream.settimeout(pending.deadline.remaining("read"))
            chunk = resp.read(CHUNK_SIZE)
            if not chunk:
                break
            chunks.append(chunk)
            received += len(chunk)

        # http.client stops quietly at EOF even when Content-Length says more
        if resp.length:
            raise ReadError(
                f"Connection closed after {received} bytes, "
                f"{resp.length} bytes of body missing",
                received=received,
            )
    except http.client.IncompleteRead as e:
        raise ReadError(
            f"Chunked body ended early after {received + len(e.partial)} bytes",
            received=received + len(e.partial),
        ) from e
    except socket.timeout as e:
        raise FetchTimeout("read", pending.deadline.budget) from e
    except (OSError, http.client.HTTPException) as e:
        raise ReadError(f"Error reading response body: {e}", received=received) from e
    finally:
        pending.close()

    body = b"".join(chunks)
    logger.debug(f"Read {len(body)} bytes of body (status {pending.status_code})")
    return Response(
        status_code=pending.status_code,
        body=body,
        reason=pending.reason,
        headers=pending.headers,
    )
