from concurrent.futures import Future
import logging
from typing import Callable, Optional

from .cache import FileCache, StoreClosed
from .model import Request, Response, Strategy
from .network import Network, NetworkFailure
from .util import run_now


logger = logging.getLogger(__name__)


class StrategyExecutor:
    """
    Resolves a request against one store and the network according to a strategy.

    The executor only ever writes to the store it was built with, which is the store of the worker's own version.
    """

    def __init__(self,
                 cache: FileCache,
                 network: Network,
                 offline_uri: Optional[str] = None,
                 schedule: Callable[..., Future] = run_now) -> None:
        """
        @param cache
          The store of the current version.
        @param network
          Where requests go when they are not answered from the store.
        @param offline_uri
          The absolute URL of the stored offline document, or `None` for no offline fallback.
        @param schedule
          Runs a store write in the background and returns its future. Defaults to running it immediately.
        """
        self.__cache = cache
        self.__network = network
        self.__offline_uri = offline_uri
        self.__schedule = schedule

    def execute(self, strategy: Strategy, request: Request) -> Optional[Response]:
        handlers = {
            Strategy.PASSTHROUGH: self.passthrough,
            Strategy.NETWORK_ONLY: self.network_only,
            Strategy.NETWORK_FIRST: self.network_first,
            Strategy.CACHE_FIRST: self.cache_first,
            Strategy.CACHE_ONLY: self.cache_only,
        }
        logger.debug('Resolving {} {} with {}.'.format(request.method, request.uri, strategy.value))
        return handlers[strategy](request)

    def passthrough(self, request: Request) -> Response:
        return self.__network.fetch(request)

    def network_only(self, request: Request) -> Response:
        # Live data: never read or written, failures go straight back to the caller.
        return self.__network.fetch(request)

    def network_first(self, request: Request) -> Response:
        try:
            response = self.__network.fetch(request)
        except NetworkFailure as e:
            logger.info('Network failed for {}, falling back to the cache: {}'.format(request.uri, e))

            cached = self.__cache.get(request)
            if cached is not None:
                return cached

            if request.is_navigation and self.__offline_uri is not None:
                offline = self.__cache.get(Request(method='GET', uri=self.__offline_uri))
                if offline is not None:
                    logger.info('Serving the offline document for {}.'.format(request.uri))
                    return offline
                logger.warning('The offline document {} is not in the cache.'.format(self.__offline_uri))

            raise

        if response.ok:
            # Scheduled before the response is handed back, so a later read of the store sees it once it lands.
            self.__schedule(self._store, request, response.copy())
        return response

    def cache_first(self, request: Request) -> Response:
        cached = self.__cache.get(request)
        if cached is not None:
            return cached

        response = self.__network.fetch(request)
        if response.ok:
            self._store(request, response.copy())
        return response

    def cache_only(self, request: Request) -> Optional[Response]:
        return self.__cache.get(request)

    def _store(self, request: Request, response: Response) -> None:
        try:
            self.__cache.put(request, response)
        except StoreClosed:
            logger.info('Not storing {}: this version was retired.'.format(request.uri))
        except OSError:
            logger.exception('Could not store the response for {}'.format(request.uri))
