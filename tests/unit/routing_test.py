from ddt import ddt, data, unpack
from unittest import TestCase

from swcache.config import WorkerConfig
from swcache.model import Request, Strategy
from swcache.routing import Router, Rule, RuleSet, precache_paths


def _default_router():
    config = WorkerConfig()
    return Router(network_only=config.network_only,
                  cache_first=config.cache_first,
                  precache=config.precache,
                  passthrough_schemes=config.passthrough_schemes)


@ddt
class TestDefaultClassification(TestCase):
    def setUp(self):
        self.__sut = _default_router()

    @data(
        # Non-GET requests are never intercepted.
        ('POST', 'http://localhost/api/bids', Strategy.PASSTHROUGH),
        ('PUT', 'http://localhost/app.js', Strategy.PASSTHROUGH),
        # Neither are extension-internal URLs.
        ('GET', 'chrome-extension://abcdef/app.js', Strategy.PASSTHROUGH),

        ('GET', 'http://localhost/api/bids', Strategy.NETWORK_ONLY),
        ('GET', 'http://localhost/__/auth/handler?x=1', Strategy.NETWORK_ONLY),
        ('GET', 'http://localhost/__/firestore/v1/doc', Strategy.NETWORK_ONLY),
        ('GET', 'http://localhost/feeds/latest.xml', Strategy.NETWORK_ONLY),
        # A network-only rule beats the precache manifest.
        ('GET', 'http://localhost/manifest.json', Strategy.NETWORK_ONLY),

        ('GET', 'http://localhost/', Strategy.CACHE_ONLY),
        ('GET', 'http://localhost/index.html', Strategy.CACHE_ONLY),
        ('GET', 'http://localhost/offline.html', Strategy.CACHE_ONLY),
        # Precached paths are served from the cache even though they also look like static assets.
        ('GET', 'http://localhost/app.js', Strategy.CACHE_ONLY),
        ('GET', 'http://localhost/styles.css', Strategy.CACHE_ONLY),
        # Only the path is compared against the manifest.
        ('GET', 'http://localhost/app.js?v=2', Strategy.CACHE_ONLY),
        ('GET', 'https://mirror.example/app.js', Strategy.CACHE_ONLY),

        ('GET', 'http://localhost/js/vendor.js', Strategy.CACHE_FIRST),
        ('GET', 'http://localhost/img/logo.PNG', Strategy.NETWORK_FIRST),
        ('GET', 'http://localhost/img/logo.png', Strategy.CACHE_FIRST),
        ('GET', 'https://fonts.googleapis.com/css2?family=Segoe+UI:wght@300', Strategy.CACHE_FIRST),
        ('GET', 'https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.4.0/css/all.min.css', Strategy.CACHE_FIRST),

        ('GET', 'http://localhost/auctions/123', Strategy.NETWORK_FIRST),
        ('GET', 'http://localhost/about.html', Strategy.NETWORK_FIRST),
    )
    @unpack
    def test_classify(self, method, uri, expected):
        self.assertEqual(expected, self.__sut.classify(Request(method=method, uri=uri)))

    def test_classify_is_deterministic(self):
        request = Request(method='GET', uri='http://localhost/auctions/123', mode='navigate')

        self.assertEqual({Strategy.NETWORK_FIRST}, {self.__sut.classify(request) for _ in range(10)})


@ddt
class TestRouter(TestCase):
    def test_scenario_api_is_network_only_and_assets_are_cache_first(self):
        sut = Router(network_only=[Rule(r'^/api/')], cache_first=[Rule(r'\.js$', 'url')])

        self.assertEqual(Strategy.NETWORK_ONLY, sut.classify(Request(method='GET', uri='http://localhost/api/bids')))
        self.assertEqual(Strategy.CACHE_FIRST, sut.classify(Request(method='GET', uri='http://localhost/app.js')))

    @data(
        ('fonts.gstatic.com', 'https://fonts.gstatic.com/s/roboto.woff2', True),
        ('fonts.gstatic.com', 'https://localhost/fonts.gstatic.com/x', False),
    )
    @unpack
    def test_host_rules_only_look_at_the_host(self, pattern, uri, matches):
        rule = Rule(r'^' + pattern.replace('.', r'\.') + r'$', 'host')

        self.assertEqual(matches, rule.matches(Request(method='GET', uri=uri)))

    def test_path_rules_ignore_host_and_query(self):
        rule = Rule(r'\.json$')

        self.assertTrue(rule.matches(Request(method='GET', uri='https://example.org/data.json')))
        self.assertFalse(rule.matches(Request(method='GET', uri='https://data.json/index?format=.json')))

    def test_unknown_target(self):
        with self.assertRaises(ValueError):
            Rule('x', 'fragment')

    def test_first_match_wins(self):
        first, second = Rule(r'\.js$', 'url'), Rule(r'app', 'url')
        rules = RuleSet([first, second])

        self.assertIs(first, rules.first_match(Request(method='GET', uri='http://localhost/app.js')))
        self.assertIs(second, rules.first_match(Request(method='GET', uri='http://localhost/app.css')))
        self.assertIsNone(rules.first_match(Request(method='GET', uri='http://localhost/x.css')))

    def test_passthrough_schemes_are_configurable(self):
        sut = Router(passthrough_schemes=['moz-extension:'])

        self.assertEqual(Strategy.PASSTHROUGH, sut.classify(Request(method='GET', uri='moz-extension://id/a.js')))
        self.assertEqual(Strategy.NETWORK_FIRST, sut.classify(Request(method='GET', uri='chrome-extension://id/a.js')))

    def test_precache_paths_keep_only_root_relative_entries(self):
        self.assertEqual(frozenset(['/', '/app.js']),
                         precache_paths(['/', '/app.js', 'https://cdn.example/lib.js', '//cdn.example/x.js']))
