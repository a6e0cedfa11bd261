"""
Commands the host application can send to a running worker.

- `{"type": "FORCE_ACTIVATE"}` (or the older `SKIP_WAITING`): take over without waiting for old sessions.
- `{"type": "CLEAR_CACHE"}`: delete the store of the worker's own version.
- `{"type": "GET_CACHE_INFO"}`: reply on the first port with
  `{"type": "CACHE_INFO", "count": <int>, "items": [<url>, ...]}`.
"""

import logging
from typing import Any, Callable, Dict, Mapping

from .cache import CacheStorage
from .events import MessageEvent


logger = logging.getLogger(__name__)


FORCE_ACTIVATE = 'FORCE_ACTIVATE'
SKIP_WAITING = 'SKIP_WAITING'
CLEAR_CACHE = 'CLEAR_CACHE'
GET_CACHE_INFO = 'GET_CACHE_INFO'
CACHE_INFO = 'CACHE_INFO'


class ControlChannel:
    def __init__(self, storage: CacheStorage, version: str, skip_waiting: Callable[[], None]) -> None:
        self.__storage = storage
        self.__version = version
        self.__skip_waiting = skip_waiting

    def handle(self, event: MessageEvent) -> None:
        data = event.data
        if not isinstance(data, Mapping) or not isinstance(data.get('type'), str):
            logger.info('Ignoring message without a type: {!r}'.format(data))
            return

        message_type = data['type']
        if message_type in (FORCE_ACTIVATE, SKIP_WAITING):
            logger.info('Activation forced by the host application.')
            self.__skip_waiting()
        elif message_type == CLEAR_CACHE:
            self.clear_cache()
        elif message_type == GET_CACHE_INFO:
            if not event.ports:
                logger.warning('GET_CACHE_INFO received without a reply port.')
                return
            event.ports[0].post_message(self.cache_info())
        else:
            logger.info('Ignoring message of unknown type {!r}.'.format(message_type))

    def clear_cache(self) -> bool:
        deleted = self.__storage.delete(self.__version)
        logger.info('Cleared cache {}.'.format(self.__version) if deleted
                    else 'Cache {} was already empty.'.format(self.__version))
        return deleted

    def cache_info(self) -> Dict[str, Any]:
        if self.__storage.has(self.__version):
            keys = self.__storage.open(self.__version).keys()
        else:
            keys = []
        return {
            'type': CACHE_INFO,
            'count': len(keys),
            'items': [request.uri for request in keys],
        }
