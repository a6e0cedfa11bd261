import json
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import TestCase

from swcache.config import ConfigError, NotificationDefaults, WorkerConfig, TWELVE_HOURS
from swcache.routing import Rule


class TestWorkerConfig(TestCase):
    def test_defaults(self):
        config = WorkerConfig()

        self.assertEqual('subastas-bolivia-v2.0', config.version)
        self.assertIn('/offline.html', config.precache)
        self.assertEqual('http://localhost/offline.html', config.offline_uri)
        self.assertEqual(TWELVE_HOURS, config.periodic_sync_interval)
        self.assertFalse(config.skip_waiting_on_install)

    def test_precache_requests_resolve_against_origin(self):
        config = WorkerConfig(origin='https://app.example/', precache=('/', '/app.js', 'https://cdn.example/x.css'))

        self.assertEqual(['https://app.example/', 'https://app.example/app.js', 'https://cdn.example/x.css'],
                         [request.uri for request in config.precache_requests()])
        self.assertTrue(all(request.method == 'GET' for request in config.precache_requests()))

    def test_no_offline_page(self):
        self.assertIsNone(WorkerConfig(offline_url=None).offline_uri)

    def test_with_version(self):
        config = WorkerConfig().with_version('v3')

        self.assertEqual('v3', config.version)
        self.assertEqual(WorkerConfig().precache, config.precache)

    def test_from_dict(self):
        config = WorkerConfig.from_dict({
            'version': 'v7',
            'precache': ['/', '/app.js'],
            'network_only': ['/api/', {'pattern': r'^api\.example$', 'target': 'host'}],
            'cache_first': [{'pattern': r'\.woff2$', 'target': 'url'}],
            'notification': {'title': 'Hello'},
        })

        self.assertEqual('v7', config.version)
        self.assertEqual(('/', '/app.js'), config.precache)
        self.assertEqual((Rule('/api/'), Rule(r'^api\.example$', 'host')), config.network_only)
        self.assertEqual((Rule(r'\.woff2$', 'url'),), config.cache_first)
        self.assertEqual(NotificationDefaults(title='Hello'), config.notification)

    def test_from_dict_rejects_unknown_keys(self):
        with self.assertRaises(ConfigError):
            WorkerConfig.from_dict({'version': 'v1', 'lru_size': 10})

    def test_from_dict_rejects_bad_rules(self):
        with self.assertRaises(ConfigError):
            WorkerConfig.from_dict({'network_only': [{'pattern': 'x', 'target': 'fragment'}]})
        with self.assertRaises(ConfigError):
            WorkerConfig.from_dict({'network_only': ['(unclosed']})
        with self.assertRaises(ConfigError):
            WorkerConfig.from_dict({'cache_first': [42]})

    def test_empty_version(self):
        with self.assertRaises(ConfigError):
            WorkerConfig(version='')

    def test_from_file(self):
        with TemporaryDirectory() as directory:
            path = Path(directory) / 'worker.json'
            path.write_text(json.dumps({'version': 'v9', 'offline_url': '/sin-conexion.html'}), encoding='utf-8')

            config = WorkerConfig.from_file(path)

        self.assertEqual('v9', config.version)
        self.assertEqual('http://localhost/sin-conexion.html', config.offline_uri)

    def test_from_file_rejects_invalid_json(self):
        with TemporaryDirectory() as directory:
            path = Path(directory) / 'worker.json'
            path.write_text('{not json', encoding='utf-8')

            with self.assertRaises(ConfigError):
                WorkerConfig.from_file(path)
