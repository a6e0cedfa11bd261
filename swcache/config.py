"""
Static configuration of one worker generation.

A configuration is resolved once, when the process starts, and then handed to the objects that need it. Nothing
here is global, so several versions can live side by side (which is what an upgrade looks like).
"""

from dataclasses import dataclass, field, fields, replace
import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple
from urllib.parse import urljoin

from .model import Request
from .routing import Rule


logger = logging.getLogger(__name__)


DEFAULT_VERSION = 'subastas-bolivia-v2.0'

DEFAULT_PRECACHE = (
    '/',
    '/index.html',
    '/styles.css',
    '/responsive.css',
    '/config.js',
    '/app.js',
    '/manifest.json',
    '/offline.html',
    'https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css',
    'https://fonts.googleapis.com/css2?family=Segoe+UI:wght@300;400;500;600;700&display=swap',
)

DEFAULT_NETWORK_ONLY = (
    Rule(r'/__/auth/'),
    Rule(r'/__/firestore/'),
    Rule(r'/api/'),
    Rule(r'\.(json|xml)$'),
)

DEFAULT_CACHE_FIRST = (
    Rule(r'\.(css|js)$', 'url'),
    Rule(r'\.(png|jpg|jpeg|gif|svg|ico|webp)$', 'url'),
    Rule(r'fonts\.googleapis\.com', 'url'),
    Rule(r'cdnjs\.cloudflare\.com', 'url'),
)

TWELVE_HOURS = 12 * 60 * 60


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class NotificationDefaults:
    title: str = 'Subastas Bolivia'
    body: str = 'Nueva actualización en Subastas Bolivia'
    icon: str = '/icons/icon-192x192.png'
    badge: str = '/icons/badge-96x96.png'
    url: str = '/'
    tag: str = 'subastas-notification'


@dataclass(frozen=True)
class WorkerConfig:
    version: str = DEFAULT_VERSION
    """
    The cache version this worker owns. Exactly one version is current for a running worker.
    """

    origin: str = 'http://localhost'
    """
    The origin root-relative URLs (manifest entries, the offline page) are resolved against.
    """

    precache: Tuple[str, ...] = DEFAULT_PRECACHE
    """
    URLs fetched and stored all-or-nothing at install time, in order.
    """

    offline_url: Optional[str] = '/offline.html'
    """
    The document served for a failed navigation with nothing cached. `None` disables the fallback.
    """

    network_only: Tuple[Rule, ...] = DEFAULT_NETWORK_ONLY
    cache_first: Tuple[Rule, ...] = DEFAULT_CACHE_FIRST
    passthrough_schemes: Tuple[str, ...] = ('chrome-extension',)

    skip_waiting_on_install: bool = False
    """
    Take over as soon as install succeeds instead of waiting for the sessions of the old version to go away.
    """

    network_timeout: Optional[float] = None
    """
    Seconds before a network fetch is abandoned. `None` waits forever.
    """

    periodic_sync_tag: str = 'update-auctions'
    periodic_sync_interval: float = TWELVE_HOURS

    notification: NotificationDefaults = field(default_factory=NotificationDefaults)

    def __post_init__(self):
        if not isinstance(self.version, str) or not self.version:
            raise ConfigError('version must be a non-empty string')
        if self.periodic_sync_interval <= 0:
            raise ConfigError('periodic_sync_interval must be positive')

    def resolve(self, url: str) -> str:
        return urljoin(self.origin.rstrip('/') + '/', url)

    @property
    def offline_uri(self) -> Optional[str]:
        if self.offline_url is None:
            return None
        return self.resolve(self.offline_url)

    def precache_requests(self) -> Sequence[Request]:
        return [Request(method='GET', uri=self.resolve(url)) for url in self.precache]

    def with_version(self, version: str) -> 'WorkerConfig':
        return replace(self, version=version)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'WorkerConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError('Unknown configuration keys: {}'.format(', '.join(sorted(unknown))))

        values = dict(data)
        try:
            for name in ('network_only', 'cache_first'):
                if name in values:
                    values[name] = tuple(_parse_rule(item) for item in values[name])
            for name in ('precache', 'passthrough_schemes'):
                if name in values:
                    values[name] = tuple(values[name])
            if 'notification' in values:
                values['notification'] = NotificationDefaults(**values['notification'])
        except (TypeError, ValueError, re.error) as e:
            raise ConfigError(str(e)) from e

        return cls(**values)

    @classmethod
    def from_file(cls, path: Path) -> 'WorkerConfig':
        logger.info('Loading worker configuration from {}.'.format(path))
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError('{} is not valid JSON: {}'.format(path, e)) from e
        if not isinstance(data, dict):
            raise ConfigError('{} must contain a JSON object'.format(path))
        return cls.from_dict(data)


def _parse_rule(item) -> Rule:
    if isinstance(item, Rule):
        return item
    if isinstance(item, str):
        return Rule(item)
    if isinstance(item, Mapping):
        return Rule(**item)
    raise ConfigError('A rule must be a pattern string or an object with "pattern" and "target", not {!r}'.format(item))
