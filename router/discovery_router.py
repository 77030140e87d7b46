"""
Discovery Router Module
Round-robin selection of a broker and construction of the redirect location
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from .instance_registry import BrokerEndpoint, InstanceRegistry

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    """Request cannot be redirected, maps to an HTTP status"""

    status_code = 503

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoInstanceAvailable(DiscoveryError):
    """Registry reports no healthy broker"""

    def __init__(self, message: str = "No active broker is available"):
        super().__init__(message)


class BackendUnavailable(DiscoveryError):
    """Selected broker has an unusable endpoint"""

    def __init__(self, message: str = "Broker is not available"):
        super().__init__(message)


@dataclass(frozen=True)
class InboundRequest:
    """Scheme, path and raw query string of the request being redirected"""

    scheme: str
    path: str
    query: Optional[str] = None

    @classmethod
    def from_url(cls, url: Any) -> "InboundRequest":
        """Build from a URL string or any object with scheme/path/query"""
        if isinstance(url, str):
            url = urlsplit(url)
        return cls(scheme=url.scheme, path=url.path or "/", query=url.query or None)

    @classmethod
    def from_scope(cls, scheme: str, scope: Dict[str, Any]) -> "InboundRequest":
        """
        Build from an ASGI scope, keeping the path exactly as the client sent
        it. ``scope["path"]`` is percent-decoded, so an encoded ``%2F`` in a
        topic name would become a real separator; ``raw_path`` is not.
        """
        raw_path = scope.get("raw_path")
        if raw_path:
            path = raw_path.decode("latin-1")
        else:
            path = scope.get("path") or "/"
        query = scope.get("query_string", b"").decode("latin-1")
        return cls(scheme=scheme, path=path, query=query or None)


def sign_safe_mod(dividend: int, divisor: int) -> int:
    """
    Modulo that always lands in ``[0, divisor)``, even for negative dividends.

    Python's ``%`` floors toward negative infinity, so for a positive divisor
    the result already carries the divisor's sign.
    """
    if divisor <= 0:
        raise ValueError(f"divisor must be positive, got {divisor}")
    return dividend % divisor


class RoundRobinRouter:
    """
    Redirects each request to the next broker in the registry.

    The cursor is an ``itertools.count``; ``next()`` on it is atomic under the
    interpreter lock, so concurrent handlers each get a distinct value without
    a lock. The registry list may change between calls, which only skews the
    distribution.
    """

    def __init__(self, registry: InstanceRegistry, initial_counter: int = 0):
        self.registry = registry
        self._counter = itertools.count(initial_counter)

    def select_instance(self) -> BrokerEndpoint:
        """Next broker in round-robin order"""
        available = self.registry.list_healthy_instances()
        if not available:
            logger.warning("No active broker is available")
            raise NoInstanceAvailable()

        next_idx = sign_safe_mod(next(self._counter), len(available))
        return available[next_idx]

    def build_redirect_location(
        self, request: InboundRequest, endpoint: BrokerEndpoint
    ) -> str:
        """Broker scheme/host/port joined with the request path and query"""
        if request.scheme == "http":
            url = endpoint.web_service_url
        else:
            url = endpoint.web_service_url_tls

        try:
            if not url:
                raise ValueError("missing web service url")
            broker_uri = urlsplit(url)
            port = broker_uri.port
            if not broker_uri.scheme or not broker_uri.hostname:
                raise ValueError(f"incomplete url {url!r}")
        except ValueError as e:
            logger.warning(f"Invalid endpoint for broker {endpoint}: {e}")
            raise BackendUnavailable() from e

        host = broker_uri.hostname
        if ":" in host:
            host = f"[{host}]"

        location = f"{broker_uri.scheme}://{host}"
        if port is not None:
            location += f":{port}"
        location += request.path
        if request.query is not None:
            location += f"?{request.query}"

        logger.debug(f"Redirecting to {location}")
        return location

    def redirect(self, request: InboundRequest) -> str:
        """Select a broker and build the location for ``request``"""
        return self.build_redirect_location(request, self.select_instance())
