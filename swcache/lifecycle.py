"""
Installation, activation and hand-over between worker versions.

A worker goes through PARSED -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVATED, or ends up REDUNDANT when its
install fails or a newer version takes over. Exactly one version is active per registration at any time.

The upgrade is cooperative: an installed worker waits until no open session is controlled by the active one,
unless it was asked to skip waiting.
"""

from concurrent.futures import ThreadPoolExecutor
from enum import Enum
import itertools
import logging
import threading
from typing import List, Optional, Sequence

import requests

from .cache import CacheStorage, FileCache
from .events import ActivateEvent, InstallEvent
from .model import Request, Response
from .network import Network


logger = logging.getLogger(__name__)


MAX_PRECACHE_FETCHES = 6


class WorkerState(Enum):
    PARSED = 'parsed'
    INSTALLING = 'installing'
    INSTALLED = 'installed'
    ACTIVATING = 'activating'
    ACTIVATED = 'activated'
    REDUNDANT = 'redundant'


class InstallFailure(Exception):
    def __init__(self, version: str, cause: BaseException) -> None:
        super().__init__('Installing {} failed: {}'.format(version, cause))
        self.version = version
        self.cause = cause


class ActivationFailure(Exception):
    def __init__(self, version: str, errors: Sequence[BaseException]) -> None:
        super().__init__('Activating {} failed: {}'.format(version, '; '.join(str(e) for e in errors)))
        self.version = version
        self.errors = list(errors)


def _fetch_for_precache(network: Network, request: Request) -> Response:
    response = network.fetch(request)
    if not response.ok:
        raise requests.HTTPError('{} {} for {}'.format(response.status, response.reason, request.uri))
    return response


def install(storage: CacheStorage, version: str, manifest: Sequence[Request], network: Network) -> FileCache:
    """
    Seed the store of `version` with every entry of the precache manifest.

    Either every entry is fetched and stored, or the attempt fails as a whole. A store that did not exist before the
    attempt is removed again on failure, so it can never be picked up half-filled.

    @throws InstallFailure
      If any entry could not be fetched, or was answered with an error status.
    """
    existed = storage.has(version)
    cache = storage.open(version)
    logger.info('Precaching {} entries into {}.'.format(len(manifest), version))

    try:
        if manifest:
            with ThreadPoolExecutor(max_workers=min(len(manifest), MAX_PRECACHE_FETCHES)) as pool:
                responses = list(pool.map(lambda request: _fetch_for_precache(network, request), manifest))
            for request, response in zip(manifest, responses):
                cache.put(request, response)
    except (requests.RequestException, OSError) as e:
        if not existed:
            storage.delete(version)
        raise InstallFailure(version, e) from e

    logger.info('Precached {} entries into {}.'.format(len(manifest), version))
    return cache


def activate(storage: CacheStorage, version: str) -> List[str]:
    """
    Delete every store whose version is not `version`. The store of `version` itself is never touched.

    @return
      The versions that were deleted.
    @throws ActivationFailure
      If the stores could not be listed, or some could not be deleted. Everything deletable has been deleted by then.
    """
    try:
        versions = storage.keys()
    except OSError as e:
        raise ActivationFailure(version, [e]) from e

    deleted = []
    errors = []
    for name in versions:
        if name == version:
            continue
        logger.info('Deleting stale cache {}.'.format(name))
        try:
            storage.delete(name)
            deleted.append(name)
        except OSError as e:
            logger.exception('Could not delete stale cache {}'.format(name))
            errors.append(e)

    if errors:
        raise ActivationFailure(version, errors)
    return deleted


class Client:
    """
    An open session of the host application, e.g. one `requests.Session` with the intercepting adapter mounted.
    """

    def __init__(self, client_id: int, url: str) -> None:
        self.id = client_id
        self.url = url
        self.controller = None

    def __repr__(self):
        return 'Client(id={}, url={!r})'.format(self.id, self.url)


_ANY = object()


class Clients:
    def __init__(self) -> None:
        self.__clients = {}
        self.__ids = itertools.count(1)
        self.__lock = threading.Lock()

    def open(self, url: str = '/', controller=None) -> Client:
        with self.__lock:
            client = Client(next(self.__ids), url)
            client.controller = controller
            self.__clients[client.id] = client
        return client

    def close(self, client: Client) -> None:
        with self.__lock:
            self.__clients.pop(client.id, None)
            client.controller = None

    def control(self, client: Client, worker) -> None:
        with self.__lock:
            client.controller = worker

    def match_all(self, controller=_ANY) -> List[Client]:
        with self.__lock:
            clients = list(self.__clients.values())
        if controller is _ANY:
            return clients
        return [c for c in clients if c.controller is controller]

    def claim(self, worker) -> int:
        """
        Make `worker` the controller of every open session.

        @return
          The number of sessions claimed.
        """
        with self.__lock:
            for client in self.__clients.values():
                client.controller = worker
            return len(self.__clients)


class Registration:
    """
    Tracks the installing, waiting and active workers sharing one cache storage.
    """

    def __init__(self,
                 storage: CacheStorage,
                 network: Optional[Network] = None,
                 clients: Optional[Clients] = None) -> None:
        self.storage = storage
        self.network = network if network is not None else Network()
        self.clients = clients if clients is not None else Clients()
        self.__lock = threading.RLock()
        self.__installing = None
        self.__waiting = None
        self.__active = None
        self.__retired = []

    @property
    def installing(self):
        return self.__installing

    @property
    def waiting(self):
        return self.__waiting

    @property
    def active(self):
        return self.__active

    def register(self, config, **kw):
        """
        Create a worker for `config` and install it.

        @param kw
          Passed on to the worker: `sync_hooks`, `notifier`, `max_workers`.
        @return
          The new worker. It is active by the time this returns unless it is waiting for old sessions to go away.
        @throws InstallFailure
          If the install failed. The worker is then redundant and never becomes current.
        """
        from .worker import ServiceWorker

        worker = ServiceWorker(config, self.storage, self.network, registration=self, **kw)
        self.install(worker)
        return worker

    def install(self, worker) -> None:
        with self.__lock:
            self.__installing = worker
            worker.state = WorkerState.INSTALLING
        logger.info('Installing worker {}.'.format(worker.version))

        try:
            worker.run(InstallEvent())
        except Exception as e:
            with self.__lock:
                if self.__installing is worker:
                    self.__installing = None
                worker.retire()
                self.__retired.append(worker)
            logger.error('Install of {} failed: {}'.format(worker.version, e))
            if isinstance(e, InstallFailure):
                raise
            raise InstallFailure(worker.version, e) from e

        with self.__lock:
            if self.__installing is worker:
                self.__installing = None
            if self.__waiting is not None and self.__waiting is not worker:
                self.__waiting.retire()
                self.__retired.append(self.__waiting)
            self.__waiting = worker
            worker.state = WorkerState.INSTALLED
        logger.info('Worker {} installed.'.format(worker.version))

        self._try_activate()

    def skip_waiting(self, worker) -> None:
        worker.skip_waiting_requested = True
        self._try_activate()

    def navigate(self, client: Client):
        """
        A session is loading a new top-level document. It detaches from its old controller, which may let a waiting
        worker take over, and is then controlled by whichever worker is active.
        """
        self.clients.control(client, None)
        self._try_activate()
        with self.__lock:
            active = self.__active
        self.clients.control(client, active)
        return active

    def release(self, client: Client) -> None:
        """
        A session was closed. A worker waiting for it to go away may take over now.
        """
        self.clients.close(client)
        self._try_activate()

    def _try_activate(self):
        with self.__lock:
            waiting = self.__waiting
            if waiting is None:
                return None
            active = self.__active
            if active is not None and not waiting.skip_waiting_requested and self.clients.match_all(active):
                logger.info('Worker {} is waiting for sessions of {} to close.'.format(waiting.version, active.version))
                return None
            self.__waiting = None
            self.__active = waiting
            waiting.state = WorkerState.ACTIVATING
            if active is not None:
                active.retire()
                self.__retired.append(active)
        self._activate(waiting)
        return waiting

    def _activate(self, worker) -> None:
        logger.info('Activating worker {}.'.format(worker.version))
        try:
            worker.run(ActivateEvent())
        except ActivationFailure as e:
            # Whatever was already deleted stays deleted and the worker still serves.
            logger.error('Activation of {} reported errors: {}'.format(worker.version, e))
            worker.activation_error = e
        worker.state = WorkerState.ACTIVATED
        logger.info('Worker {} is active.'.format(worker.version))

    def close(self) -> None:
        with self.__lock:
            workers = [w for w in (self.__installing, self.__waiting, self.__active) if w is not None]
            workers += self.__retired
            self.__retired = []
        for worker in workers:
            worker.close()
        self.network.close()
