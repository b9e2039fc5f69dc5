"""
ProxyFetch Errors
=================
Every failure of a fetch is reported as a ``ProxyFetchError`` subclass that
names the phase it happened in, so "the proxy rejected our credentials" can be
told apart from "the proxy is unreachable" or "the destination TLS handshake
failed".

Phases, in the order a fetch runs through them::

    config → dial → proxy-tls → connect → tls → request → response → read
"""

from __future__ import annotations

from typing import Optional


class ProxyFetchError(Exception):
    """Base class for all fetch failures."""

    phase = "fetch"

    def __init__(self, message: str, *, phase: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if phase:
            self.phase = phase

    def __str__(self) -> str:
        return f"[{self.phase}] {self.message}"


class ConfigError(ProxyFetchError):
    """Malformed proxy specifier, destination URL or settings file."""

    phase = "config"


class DialError(ProxyFetchError):
    """The proxy could not be reached."""

    phase = "dial"


class ProxyAuthError(ProxyFetchError):
    """The proxy answered CONNECT with a non-2xx status."""

    phase = "connect"

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        status_line: str,
        challenge: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.status_line = status_line
        self.challenge = challenge


class TLSError(ProxyFetchError):
    """TLS handshake with the destination (or an https proxy) failed."""

    phase = "tls"


class RequestError(ProxyFetchError):
    """I/O or protocol failure while writing the request or reading the head."""

    phase = "request"


class ReadError(ProxyFetchError):
    """The response body ended before its framing was complete."""

    phase = "read"

    def __init__(self, message: str, *, received: int = 0):
        super().__init__(message)
        self.received = received


class FetchTimeout(ProxyFetchError):
    """The total time budget ran out."""

    def __init__(self, phase: str, budget: Optional[float]):
        super().__init__(
            f"Timed out after {budget:g}s" if budget else "Timed out",
            phase=phase,
        )
        self.budget = budget
