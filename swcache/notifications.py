"""
Turns push payloads into notifications for the host to display.

A payload is optional JSON with `title`, `body`, `icon` and `url`. Anything missing or unreadable falls back to
the configured defaults. Displaying the notification, and reacting to clicks on it, is up to the host.
"""

from dataclasses import dataclass
import json
import logging
import time
from typing import Optional, Tuple

from .config import NotificationDefaults


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    icon: str
    badge: str
    url: str
    tag: str
    timestamp: float
    vibrate: Tuple[int, ...] = (200, 100, 200, 100, 200)
    actions: Tuple[str, ...] = ('open', 'close')
    renotify: bool = True


def parse_payload(data: Optional[bytes], defaults: NotificationDefaults = NotificationDefaults()) -> Notification:
    payload = {}
    if data:
        try:
            payload = json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning('Push payload is not JSON; using the default notification.')
            payload = {}
        if not isinstance(payload, dict):
            logger.warning('Push payload is not a JSON object; using the default notification.')
            payload = {}

    def text(name: str, fallback: str) -> str:
        value = payload.get(name)
        return value if isinstance(value, str) and value else fallback

    return Notification(title=text('title', defaults.title),
                        body=text('body', defaults.body),
                        icon=text('icon', defaults.icon),
                        badge=defaults.badge,
                        url=text('url', defaults.url),
                        tag=defaults.tag,
                        timestamp=time.time())
