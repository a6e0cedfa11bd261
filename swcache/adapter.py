from io import BytesIO
from pathlib import Path
from typing import Callable, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers
from urllib3.response import HTTPResponse

from .cache import CacheStorage
from .config import WorkerConfig
from .events import FetchEvent
from .lifecycle import Client, Registration
from .model import Request, Response
from .network import Network
from .notifications import Notification
from .sync import SyncHooks


class CacheOnlyMiss(requests.exceptions.RequestException):
    """
    A request that may only be answered from the cache was not found there.
    """


class InterceptingHTTPAdapter(HTTPAdapter):
    """
    Routes the requests of one session through the worker that controls it.

    A session is a client of the registration. Requests carrying `Sec-Fetch-Mode: navigate` are navigations, which
    is when a session can move over to a newer worker.
    """

    send_options = ('timeout', 'verify', 'cert', 'proxies')

    def __init__(self,
                 registration: Registration,
                 client: Optional[Client] = None,
                 owns_registration: bool = False,
                 *args, **kw) -> None:
        """
        @param owns_registration
          Whether closing the adapter also closes the registration, with its workers and network session.
        """
        super().__init__(*args, **kw)
        self.registration = registration
        self.owns_registration = owns_registration
        self.__closed = False
        self.client = client if client is not None else registration.clients.open(controller=registration.active)

    def send(self, requests_request: requests.PreparedRequest, **kw) -> requests.Response:
        """
        Send a request. The controlling worker decides whether it is answered from the cache, the network or both;
        requests it does not intercept are sent the normal way.
        """
        request = self._to_request(requests_request, kw)

        if request.is_navigation:
            worker = self.registration.navigate(self.client)
        else:
            worker = self.client.controller

        if worker is None:
            return super().send(requests_request, **kw)

        event = FetchEvent(request)
        worker.dispatch(event)
        # Network failures come out of here unchanged.
        response = event.response.result()

        if not event.intercepted:
            return super().send(requests_request, **kw)
        if response is None:
            raise CacheOnlyMiss('{} is not in the cache'.format(request.uri), request=requests_request)
        return self.build_cached_response(requests_request, response)

    def build_cached_response(self, requests_request: requests.PreparedRequest, response: Response) -> requests.Response:
        result = requests.Response()
        result.status_code = response.status
        result.reason = response.reason
        result.headers = CaseInsensitiveDict(response.headers)
        result.encoding = get_encoding_from_headers(result.headers)
        # `Session.send` extracts cookies from the original response, which only a network answer has.
        raw_headers = {k: v for k, v in response.headers.items() if k.lower() != 'content-length'}
        result.raw = HTTPResponse(body=BytesIO(response.body),
                                  headers=raw_headers,
                                  status=response.status,
                                  reason=response.reason,
                                  preload_content=False,
                                  decode_content=False,
                                  original_response=response.origin)
        result.url = requests_request.url
        result.request = requests_request
        result.connection = self
        return result

    def close(self):
        # A session closes an adapter once per prefix it is mounted on.
        if not self.__closed:
            self.__closed = True
            self.registration.release(self.client)
            if self.owns_registration:
                self.registration.close()
        super().close()

    def _to_request(self, requests_request: requests.PreparedRequest, send_kw: Mapping) -> Request:
        headers = dict(requests_request.headers)
        mode = CaseInsensitiveDict(headers).get('Sec-Fetch-Mode', 'cors')
        body = requests_request.body
        if isinstance(body, str):
            body = body.encode('utf-8')
        elif not isinstance(body, bytes):
            body = None
        return Request(method=requests_request.method,
                       uri=requests_request.url,
                       headers=headers,
                       mode=mode.lower(),
                       body=body,
                       options={k: send_kw[k] for k in self.send_options if k in send_kw})


def create(directory: Path,
           config: Optional[WorkerConfig] = None,
           sync_routines: Optional[Mapping[str, Callable[[], None]]] = None,
           periodic_routines: Optional[Mapping[str, Callable[[], None]]] = None,
           notifier: Optional[Callable[[Notification], None]] = None) -> requests.Session:
    """
    Install a worker for `config` into `directory` and return a session whose requests it intercepts.

    Closing the session shuts the worker down.

    @throws InstallFailure
      If the precache manifest could not be fetched completely.
    """
    config = config if config is not None else WorkerConfig()
    registration = Registration(CacheStorage(directory), Network(timeout=config.network_timeout))
    registration.register(config,
                          sync_hooks=SyncHooks(sync_routines, periodic_routines),
                          notifier=notifier)
    if periodic_routines and registration.active is not None:
        registration.active.schedule_periodic_sync()

    session = requests.Session()
    adapter = InterceptingHTTPAdapter(registration, owns_registration=True)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session
