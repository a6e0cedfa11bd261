import logging
import threading
from typing import Callable, Mapping, Optional

from .events import PeriodicSyncEvent, SyncEvent


logger = logging.getLogger(__name__)


Routine = Callable[[], None]


class SyncHooks:
    """
    Routes sync tags to the routines that do the actual synchronisation.

    The routines themselves live in the host application. A routine's exception is left to propagate so that the
    platform can schedule a retry; unknown tags are ignored.
    """

    def __init__(self,
                 sync_routines: Optional[Mapping[str, Routine]] = None,
                 periodic_routines: Optional[Mapping[str, Routine]] = None) -> None:
        self.__sync_routines = dict(sync_routines or {})
        self.__periodic_routines = dict(periodic_routines or {})

    def on_sync(self, event: SyncEvent) -> bool:
        return self._run('sync', self.__sync_routines, event.tag)

    def on_periodic_sync(self, event: PeriodicSyncEvent) -> bool:
        return self._run('periodic sync', self.__periodic_routines, event.tag)

    def _run(self, kind: str, routines: Mapping[str, Routine], tag: str) -> bool:
        routine = routines.get(tag)
        if routine is None:
            logger.info('Ignoring {} for unknown tag {!r}.'.format(kind, tag))
            return False
        logger.info('Running {} for tag {!r}.'.format(kind, tag))
        routine()
        logger.info('Finished {} for tag {!r}.'.format(kind, tag))
        return True


class PeriodicSyncScheduler:
    """
    Fires a periodic sync event for one tag at a fixed interval on a daemon thread.

    A failed run is logged and tried again at the next tick.
    """

    def __init__(self, worker, tag: str, interval: float) -> None:
        if interval <= 0:
            raise ValueError('The interval must be positive')
        self.__worker = worker
        self.__tag = tag
        self.__interval = interval
        self.__stopped = threading.Event()
        self.__thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.__thread is not None:
            return
        self.__thread = threading.Thread(target=self._run,
                                         name='periodic-sync-{}'.format(self.__tag),
                                         daemon=True)
        self.__thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self.__stopped.set()
        if self.__thread is not None:
            self.__thread.join(timeout)
            self.__thread = None

    def tick(self) -> bool:
        """
        Fire one periodic sync and wait for it.

        @return
          Whether the sync completed without error.
        """
        try:
            self.__worker.dispatch(PeriodicSyncEvent(self.__tag)).result()
            return True
        except Exception:
            logger.exception('Periodic sync {!r} failed; it will be retried at the next tick'.format(self.__tag))
            return False

    def _run(self) -> None:
        while not self.__stopped.wait(self.__interval):
            self.tick()
