from ddt import ddt, data
import json
from pathlib import Path
from tempfile import TemporaryDirectory
import time
from unittest import TestCase

from swcache.cache import CacheStorage, FileCache, StoreClosed
from swcache.model import Request, Response


def _request(uri='http://localhost/app.js', method='GET'):
    return Request(method=method, uri=uri)


def _response(body=b'console.log(1);', status=200):
    return Response(status=status,
                    reason='OK',
                    headers={'Content-Type': 'application/javascript', 'ETag': 'gibberish'},
                    body=body)


class TestFileCache(TestCase):
    def setUp(self):
        self.__directory = TemporaryDirectory()
        self.__root = Path(self.__directory.name)
        self.__sut = FileCache(self.__root, 5)

    def tearDown(self):
        self.__directory.cleanup()

    def test_get_missing_entry(self):
        self.assertIsNone(self.__sut.get(_request()))

    def test_put_then_get_returns_equivalent_response(self):
        response = _response(body=b'\x00binary\nbody\r\n')

        self.__sut.put(_request(), response)
        stored = self.__sut.get(_request())

        self.assertEqual(response.status, stored.status)
        self.assertEqual(response.reason, stored.reason)
        self.assertEqual(dict(response.headers), dict(stored.headers))
        self.assertEqual(response.body, stored.body)

    def test_entry_file_layout(self):
        self.__sut.put(Request(method='GET', uri='http://google.ca'), _response(body=b'some contents'))

        # The entry path is the sha256 of the URI, split into directory levels.
        entry_path = self.__root / 'entries' / Path(
            '9', '8', 'c', 'e', '0', 'b4f1e97102727131a3807371ff3494db4343c7ca41027ad7271a47af279')
        self.assertTrue(entry_path.exists(), 'The cache should create the file for the cache entry')

        header, body = entry_path.read_bytes().split(b'\n', 1)
        record = json.loads(header.decode('utf-8'))
        self.assertEqual('http://google.ca', record['uri'])
        self.assertEqual(200, record['status'])
        self.assertEqual(b'some contents', body)

    def test_closed_store_refuses_puts(self):
        self.__sut.put(_request(), _response(body=b'old'))

        self.__sut.close()

        with self.assertRaises(StoreClosed):
            self.__sut.put(_request(), _response(body=b'new'))
        self.assertEqual(b'old', self.__sut.get(_request()).body)

    def test_closed_store_is_not_recreated(self):
        sut = FileCache(self.__root / 'v1')
        sut.close()

        with self.assertRaises(StoreClosed):
            sut.put(_request(), _response())
        self.assertFalse((self.__root / 'v1').exists())

    def test_put_overwrites(self):
        self.__sut.put(_request(), _response(body=b'first'))
        self.__sut.put(_request(), _response(body=b'second'))

        self.assertEqual(b'second', self.__sut.get(_request()).body)
        self.assertEqual(1, len(self.__sut.keys()))

    def test_get_returns_independent_copies(self):
        self.__sut.put(_request(), _response())

        first = self.__sut.get(_request())
        first.headers['X-Changed'] = 'yes'

        self.assertNotIn('X-Changed', self.__sut.get(_request()).headers)

    def test_query_is_part_of_the_key(self):
        self.__sut.put(_request('http://localhost/search?q=1'), _response(body=b'one'))

        self.assertIsNone(self.__sut.get(_request('http://localhost/search?q=2')))
        self.assertIsNone(self.__sut.get(_request('http://localhost/search')))
        self.assertEqual(b'one', self.__sut.get(_request('http://localhost/search?q=1')).body)

    def test_put_rejects_non_get(self):
        with self.assertRaises(ValueError):
            self.__sut.put(_request(method='POST'), _response())

    def test_get_ignores_non_get(self):
        self.__sut.put(_request(), _response())

        self.assertIsNone(self.__sut.get(_request(method='HEAD')))

    def test_corrupt_entry_is_a_miss_and_is_deleted(self):
        self.__sut.put(_request(), _response())
        entry_path = next(p for p in (self.__root / 'entries').rglob('*') if p.is_file())
        entry_path.write_bytes(b'this is not json\nbody')

        self.assertIsNone(self.__sut.get(_request()))
        self.assertFalse(entry_path.exists())

    def test_delete(self):
        self.__sut.put(_request(), _response())

        self.assertTrue(self.__sut.delete(_request()))
        self.assertIsNone(self.__sut.get(_request()))
        self.assertFalse(self.__sut.delete(_request()))

    def test_keys_in_insertion_order(self):
        uris = ['http://localhost/', 'http://localhost/app.js', 'https://fonts.googleapis.com/css2?family=A']
        for uri in uris:
            self.__sut.put(_request(uri), _response())
            # Keep the timestamps apart on coarse clocks.
            time.sleep(0.01)

        self.assertEqual(uris, [request.uri for request in self.__sut.keys()])

    def test_keys_of_missing_store(self):
        self.assertEqual([], FileCache(self.__root / 'nothing-here').keys())


@ddt
class TestCacheStorage(TestCase):
    def setUp(self):
        self.__directory = TemporaryDirectory()
        self.__sut = CacheStorage(Path(self.__directory.name))

    def tearDown(self):
        self.__directory.cleanup()

    @data(
        'subastas-bolivia-v2.0',
        'release/2024.06',
        'v 3 with spaces',
    )
    def test_open_has_keys_delete(self, version):
        self.assertFalse(self.__sut.has(version))

        self.__sut.open(version).put(_request(), _response())

        self.assertTrue(self.__sut.has(version))
        self.assertEqual([version], self.__sut.keys())

        self.assertTrue(self.__sut.delete(version))
        self.assertFalse(self.__sut.has(version))
        self.assertEqual([], self.__sut.keys())

    def test_open_without_create_does_not_touch_disk(self):
        cache = self.__sut.open('v1', create=False)

        self.assertFalse(self.__sut.has('v1'))
        self.assertIsNone(cache.get(_request()))

    def test_delete_missing(self):
        self.assertFalse(self.__sut.delete('v1'))

    def test_stores_are_independent(self):
        self.__sut.open('v1').put(_request(), _response(body=b'one'))
        self.__sut.open('v2').put(_request(), _response(body=b'two'))

        self.__sut.delete('v1')

        self.assertIsNone(self.__sut.open('v1', create=False).get(_request()))
        self.assertEqual(b'two', self.__sut.open('v2').get(_request()).body)

    def test_handle_survives_deletion_of_its_store(self):
        cache = self.__sut.open('v1')
        cache.put(_request(), _response())

        self.__sut.delete('v1')
        self.assertIsNone(cache.get(_request()))

        cache.put(_request(), _response(body=b'again'))
        self.assertEqual(b'again', cache.get(_request()).body)

    def test_rejects_empty_version(self):
        with self.assertRaises(ValueError):
            self.__sut.open('')
