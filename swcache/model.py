"""
Defines types shared by the router, the strategies and the store.

These types are as simple as possible in order to most conveniently consume and
produce instances of them.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit


NAVIGATE = 'navigate'


@dataclass(frozen=True)
class Request:
    """
    Represents an intercepted request, excluding parts not used for routing.

    Only the method and the URI identify a request in the store. Headers, mode
    and body ride along so that a request can still be forwarded verbatim.
    """

    method: str
    """
    The HTTP method of the request. E.g., "GET".
    """

    uri: str
    """
    The absolute URL of the resource being requested.
    """

    headers: Mapping[str, str] = field(default_factory=dict, compare=False)
    """
    All the headers being sent with the request.
    """

    mode: str = field(default='cors', compare=False)
    """
    The fetch mode. Only "navigate" has meaning here: it marks a request for a
    top-level document.
    """

    body: Optional[bytes] = field(default=None, compare=False, repr=False)
    """
    The request payload, if any. Never stored.
    """

    options: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)
    """
    Transport options given for this one request (`timeout`, `verify`, `cert`,
    `proxies`). Used when the request goes to the network, never stored.
    """

    @property
    def key(self):
        return (self.method, self.uri)

    @property
    def is_navigation(self) -> bool:
        return self.mode == NAVIGATE

    @property
    def scheme(self) -> str:
        return urlsplit(self.uri).scheme

    @property
    def host(self) -> str:
        return urlsplit(self.uri).netloc

    @property
    def path(self) -> str:
        return urlsplit(self.uri).path or '/'


@dataclass(frozen=True)
class Response:
    """
    An immutable snapshot of a response: status, headers and the whole body.

    Bodies are held as bytes so that a copy handed out for a fallback can never
    be disturbed by a fresh response being written for the same key.
    """

    status: int
    """
    The status code of the response. E.g., 200 or 400.
    """

    reason: str
    """
    The reason string, which relates to the status code.
    """

    headers: Mapping[str, str]
    """
    All the headers sent with the response.
    """

    body: bytes = field(default=b'', repr=False)
    """
    The complete response payload.
    """

    origin: Any = field(default=None, compare=False, repr=False)
    """
    The `http.client.HTTPResponse` a network answer was read from, which still
    carries the raw headers (e.g. every `Set-Cookie`). `None` for store hits.
    """

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def copy(self) -> 'Response':
        return replace(self, headers=dict(self.headers))


class Strategy(Enum):
    """
    How a single request is resolved.
    """

    PASSTHROUGH = 'passthrough'
    NETWORK_ONLY = 'network-only'
    CACHE_FIRST = 'cache-first'
    CACHE_ONLY = 'cache-only'
    NETWORK_FIRST = 'network-first'
