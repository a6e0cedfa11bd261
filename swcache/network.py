from http.cookiejar import DefaultCookiePolicy
import logging
from typing import Optional

import requests
from requests.cookies import RequestsCookieJar

from .model import Request, Response


logger = logging.getLogger(__name__)


# Hop-by-hop and encoding headers no longer describe a body that `requests` has already decoded.
DROPPED_HEADERS = {'content-encoding', 'transfer-encoding', 'connection', 'keep-alive'}


# Anything `requests` raises while talking to the network: refused connections, DNS errors, timeouts.
NetworkFailure = requests.RequestException


def _discarding_jar() -> RequestsCookieJar:
    # No domain is allowed, so nothing is ever kept or sent.
    return RequestsCookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


class Network:
    """
    Forwards requests to the real network through a plain `requests` session.

    The session handed in must not itself be routed through an intercepting adapter, or requests would loop back
    into the worker. The session created by default keeps no cookies: every caller's cookies travel in the
    request's own headers, and `Set-Cookie` goes back to the caller with the response.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None) -> None:
        if session is None:
            session = requests.Session()
            session.cookies = _discarding_jar()
        self.__session = session
        self.__timeout = timeout

    @property
    def session(self) -> requests.Session:
        return self.__session

    def fetch(self, request: Request) -> Response:
        """
        Send `request` and read the whole response.

        The request's own transport options win over the defaults of this network; its timeout falls back to the
        configured one.

        @return
          The response, whatever its status. An error status is not a network failure.
        @throws requests.RequestException
          If no response could be obtained. The exception is not wrapped.
        """
        logger.debug('Fetching {} {} from the network.'.format(request.method, request.uri))
        options = dict(request.options)
        if options.get('timeout') is None:
            options['timeout'] = self.__timeout
        requests_response = self.__session.request(request.method,
                                                    request.uri,
                                                    headers=dict(request.headers),
                                                    data=request.body,
                                                    allow_redirects=True,
                                                    **options)
        return Response(status=requests_response.status_code,
                        reason=requests_response.reason or '',
                        headers={k: v for k, v in requests_response.headers.items()
                                 if k.lower() not in DROPPED_HEADERS},
                        body=requests_response.content,
                        origin=getattr(requests_response.raw, '_original_response', None))

    def close(self) -> None:
        self.__session.close()
