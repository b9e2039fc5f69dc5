"""
ProxyFetch Client
=================
Glues the pieces together for one invocation::

    resolve() → build_request() → TunnelingTransport.send() → Response

The transport is always passed in; there is no process-wide default.
"""

from __future__ import annotations

import logging
import time

from proxyfetch.core.request import DEFAULT_USER_AGENT, OutboundRequest, build_request
from proxyfetch.core.response import Response
from proxyfetch.core.target import FetchTarget
from proxyfetch.core.transport import TunnelingTransport

logger = logging.getLogger(__name__)


class ProxyClient:
    """Fetches destinations through a proxy using an explicit transport."""

    def __init__(self, transport: TunnelingTransport, user_agent: str = DEFAULT_USER_AGENT):
        self.transport = transport
        self.user_agent = user_agent

    def prepare(self, target: FetchTarget) -> OutboundRequest:
        return build_request(target.destination, target.credentials, user_agent=self.user_agent)

    def fetch(self, target: FetchTarget) -> Response:
        """Fetch ``target.destination`` through ``target.proxy``."""
        request = self.prepare(target)
        start = time.monotonic()
        logger.info(f"Fetching {target.destination.url} via {target.proxy}")
        response = self.transport.send(request, target.proxy)
        logger.info(
            f"{target.destination.url} → {response.status_code} "
            f"({len(response.body)}B, {(time.monotonic() - start) * 1000:.0f}ms)"
        )
        return response
