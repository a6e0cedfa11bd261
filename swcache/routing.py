"""
Maps each intercepted request to the strategy that resolves it.

Classification is a pure function of the request and the static rule sets, checked in this order:

1. Non-GET requests and requests with an internal scheme pass through untouched.
2. Network-only rules. These win over everything else so live endpoints are never served stale.
3. Paths listed in the precache manifest are served from the store only.
4. Cache-first rules.
5. Everything else is network-first.
"""

from dataclasses import dataclass, field
import logging
import re
from typing import Iterable, Pattern, Sequence

from .model import Request, Strategy


logger = logging.getLogger(__name__)


TARGETS = ('path', 'url', 'host')


@dataclass(frozen=True)
class Rule:
    """
    A regular expression searched for in one part of the request URL.
    """

    pattern: str
    """
    The regular expression, applied with `re.search`.
    """

    target: str = 'path'
    """
    Which part of the URL to match: "path", "url" (the full URL) or "host". Third-party hosts can only be recognised
    by "url" or "host".
    """

    regex: Pattern = field(init=False, compare=False, repr=False)

    def __post_init__(self):
        if self.target not in TARGETS:
            raise ValueError('Unknown rule target {!r}; expected one of {}'.format(self.target, ', '.join(TARGETS)))
        object.__setattr__(self, 'regex', re.compile(self.pattern))

    def matches(self, request: Request) -> bool:
        if self.target == 'path':
            subject = request.path
        elif self.target == 'host':
            subject = request.host
        else:
            subject = request.uri
        return self.regex.search(subject) is not None


class RuleSet:
    """
    An ordered, immutable list of rules. The first rule to match wins.
    """

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self.__rules = tuple(rules)

    def __iter__(self):
        return iter(self.__rules)

    def __len__(self):
        return len(self.__rules)

    def first_match(self, request: Request):
        for rule in self.__rules:
            if rule.matches(request):
                return rule
        return None

    def matches(self, request: Request) -> bool:
        return self.first_match(request) is not None


def precache_paths(manifest: Sequence[str]) -> frozenset:
    """
    The root-relative entries of a precache manifest, as they are compared against request paths.

    Absolute entries are still precached, but they are reached through the cache-first host rules instead.
    """
    return frozenset(entry for entry in manifest if entry.startswith('/') and not entry.startswith('//'))


class Router:
    def __init__(self,
                 network_only: Iterable[Rule] = (),
                 cache_first: Iterable[Rule] = (),
                 precache: Sequence[str] = (),
                 passthrough_schemes: Iterable[str] = ('chrome-extension',)) -> None:
        self.__network_only = RuleSet(network_only)
        self.__cache_first = RuleSet(cache_first)
        self.__precache_paths = precache_paths(precache)
        self.__passthrough_schemes = frozenset(s.lower().rstrip(':') for s in passthrough_schemes)

    def classify(self, request: Request) -> Strategy:
        if request.method != 'GET':
            return Strategy.PASSTHROUGH
        if request.scheme.lower() in self.__passthrough_schemes:
            return Strategy.PASSTHROUGH

        rule = self.__network_only.first_match(request)
        if rule is not None:
            logger.debug('{} matched network-only rule {!r}.'.format(request.uri, rule.pattern))
            return Strategy.NETWORK_ONLY

        # Checked before the cache-first rules: a precached path is served from the store even when it also looks
        # like a static asset.
        if request.path in self.__precache_paths:
            return Strategy.CACHE_ONLY

        rule = self.__cache_first.first_match(request)
        if rule is not None:
            logger.debug('{} matched cache-first rule {!r}.'.format(request.uri, rule.pattern))
            return Strategy.CACHE_FIRST

        return Strategy.NETWORK_FIRST
