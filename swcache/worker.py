from concurrent.futures import Future, ThreadPoolExecutor
import logging
from typing import Callable, Optional

from .cache import CacheStorage, FileCache
from .config import WorkerConfig
from .control import ControlChannel
from .events import (ActivateEvent, ExtendableEvent, FetchEvent, InstallEvent, MessageEvent, PeriodicSyncEvent,
                     PushEvent, SyncEvent)
from .lifecycle import WorkerState, activate, install
from .model import Request, Response, Strategy
from .network import Network
from .notifications import Notification, parse_payload
from .routing import Router
from .strategies import StrategyExecutor
from .sync import PeriodicSyncScheduler, SyncHooks


logger = logging.getLogger(__name__)


class ServiceWorker:
    """
    One generation of the interceptor, bound to a single cache version.

    Every event is handled as an independent task on a thread pool. Tasks share the store of this worker's version
    without locking: puts to different keys are independent and puts to the same key are last-write-wins.
    """

    def __init__(self,
                 config: WorkerConfig,
                 storage: CacheStorage,
                 network: Network,
                 registration=None,
                 sync_hooks: Optional[SyncHooks] = None,
                 notifier: Optional[Callable[[Notification], None]] = None,
                 max_workers: Optional[int] = None) -> None:
        self.config = config
        self.state = WorkerState.PARSED
        self.skip_waiting_requested = False
        self.activation_error = None

        self.__storage = storage
        self.__network = network
        self.__registration = registration
        self.__cache = storage.open(config.version, create=False)
        self.__router = Router(network_only=config.network_only,
                               cache_first=config.cache_first,
                               precache=config.precache,
                               passthrough_schemes=config.passthrough_schemes)
        self.__control = ControlChannel(storage, config.version, self.skip_waiting)
        self.__sync = sync_hooks if sync_hooks is not None else SyncHooks()
        self.__notifier = notifier
        self.__periodic_sync: Optional[PeriodicSyncScheduler] = None
        self.__executor = ThreadPoolExecutor(max_workers=max_workers,
                                             thread_name_prefix='swcache-{}'.format(config.version))
        self.__handlers = {
            InstallEvent: self.on_install,
            ActivateEvent: self.on_activate,
            FetchEvent: self.on_fetch,
            MessageEvent: self.on_message,
            SyncEvent: self.__sync.on_sync,
            PeriodicSyncEvent: self.__sync.on_periodic_sync,
            PushEvent: self.on_push,
        }

    def __repr__(self):
        return 'ServiceWorker(version={!r}, state={})'.format(self.version, self.state.value)

    @property
    def version(self) -> str:
        return self.config.version

    @property
    def cache(self) -> FileCache:
        return self.__cache

    @property
    def router(self) -> Router:
        return self.__router

    # region Entry points

    def dispatch(self, event: ExtendableEvent) -> Future:
        """
        Handle `event` as a background task.

        @return
          A future that resolves to the event once the handler and all the work it passed to `wait_until()` are
          done, or fails with the first error among them.
        """
        done = Future()

        def on_settled(settled: Future):
            error = settled.exception()
            if error is not None:
                done.set_exception(error)
            else:
                done.set_result(event)

        def on_handled(handled: Future):
            error = handled.exception()
            if error is not None:
                if isinstance(event, FetchEvent) and not event.response.done():
                    event.fail_with(error)
                done.set_exception(error)
            else:
                event.settled().add_done_callback(on_settled)

        self.__executor.submit(self._handle, event).add_done_callback(on_handled)
        return done

    def run(self, event: ExtendableEvent, timeout: Optional[float] = None) -> ExtendableEvent:
        """
        Handle `event` in the calling thread and wait for the work it extended itself with.
        """
        self._handle(event)
        event.settled().result(timeout)
        return event

    def fetch(self, request: Request, timeout: Optional[float] = None) -> Optional[Response]:
        """
        Resolve `request` the way an intercepted request would be, forwarding it to the network if the worker lets
        it pass.
        """
        event = FetchEvent(request)
        self.dispatch(event)
        response = event.response.result(timeout)
        if not event.intercepted:
            return self.__network.fetch(request)
        return response

    def post_message(self, data, ports=()) -> Future:
        return self.dispatch(MessageEvent(data, ports))

    def skip_waiting(self) -> None:
        self.skip_waiting_requested = True
        if self.__registration is not None:
            self.__registration.skip_waiting(self)

    def retire(self) -> None:
        """
        Make this worker redundant. Its store takes no more writes from here on, so a newer version can delete it
        without an in-flight task bringing it back.
        """
        self.state = WorkerState.REDUNDANT
        self.__cache.close()

    def schedule_periodic_sync(self) -> PeriodicSyncScheduler:
        """
        Start firing the configured periodic sync tag at the configured interval.
        """
        if self.__periodic_sync is None:
            self.__periodic_sync = PeriodicSyncScheduler(self,
                                                         self.config.periodic_sync_tag,
                                                         self.config.periodic_sync_interval)
            self.__periodic_sync.start()
        return self.__periodic_sync

    def close(self) -> None:
        if self.__periodic_sync is not None:
            self.__periodic_sync.stop()
            self.__periodic_sync = None
        self.__executor.shutdown(wait=True)

    def _handle(self, event: ExtendableEvent) -> None:
        handler = self.__handlers.get(type(event))
        if handler is None:
            raise TypeError('No handler for {}'.format(type(event).__name__))
        handler(event)

    # endregion

    # region Handlers

    def on_install(self, event: InstallEvent) -> None:
        install(self.__storage, self.version, self.config.precache_requests(), self.__network)
        if self.config.skip_waiting_on_install:
            self.skip_waiting_requested = True

    def on_activate(self, event: ActivateEvent) -> None:
        try:
            deleted = activate(self.__storage, self.version)
            logger.info('Deleted {} stale cache(s) while activating {}.'.format(len(deleted), self.version))
        finally:
            if self.__registration is not None:
                claimed = self.__registration.clients.claim(self)
                logger.info('Worker {} claimed {} session(s).'.format(self.version, claimed))

    def on_fetch(self, event: FetchEvent) -> None:
        request = event.request
        strategy = self.__router.classify(request)
        if strategy is Strategy.PASSTHROUGH:
            event.pass_through()
            return

        def schedule(fn, *args):
            return event.wait_until(self.__executor.submit(fn, *args))

        executor = StrategyExecutor(self.cache, self.__network, self.config.offline_uri, schedule)
        try:
            response = executor.execute(strategy, request)
        except Exception as e:
            event.fail_with(e)
            return
        event.respond_with(response)

    def on_message(self, event: MessageEvent) -> None:
        self.__control.handle(event)

    def on_push(self, event: PushEvent) -> None:
        notification = parse_payload(event.data, self.config.notification)
        if self.__notifier is None:
            logger.info('No notifier registered; dropping notification {!r}.'.format(notification.title))
            return
        self.__notifier(notification)

    # endregion
