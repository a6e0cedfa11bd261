from dataclasses import dataclass
import hashlib
import json
import logging
from pathlib import Path
import shutil
import threading
import time
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from .model import Request, Response
from .util import DataclassJSONDecoder, DataclassJSONEncoder, atomic_write, clamp


logger = logging.getLogger(__name__)


CACHEABLE_METHODS = {'GET'}


@dataclass
class EntryRecord:
    method: str
    uri: str
    status: int
    reason: str
    headers: Dict[str, str]
    stored_at: float


class CorruptEntry(Exception):
    def __init__(self, entry_path: Path):
        super().__init__()
        self.__entry_path = entry_path

    @property
    def entry_path(self) -> Path:
        return self.__entry_path


class StoreClosed(Exception):
    def __init__(self, directory: Path):
        super().__init__('The store at {} takes no more writes'.format(directory))
        self.directory = directory


class FileCache:
    """
    One generation of the response store, kept in a single directory.

    Each entry is one file holding a JSON header line followed by the raw response body. Files are replaced
    atomically, so every operation is atomic on its own; there are no multi-key transactions. Concurrent puts to the
    same key are unordered and the last one to land wins. Once closed, a store refuses puts.
    """

    def __init__(self, directory: Path, cache_directory_levels: int = 5) -> None:
        """
        Initialize the file cache.

        @param directory
          The path to the root directory of this store.
        @param cache_directory_levels
          The number of subdirectory levels to use in the cache directory. This
          will be clamped to be between 0 and 20, respectively.
        """
        self.__directory = Path(directory)
        self.__entry_directory = self.__directory / 'entries'
        self.__cache_directory_levels = clamp(cache_directory_levels, 0, 20)
        self.__lock = threading.Lock()
        self.__closed = False

    @property
    def directory(self) -> Path:
        return self.__directory

    def _get_path(self, uri: str) -> Path:
        hashed = hashlib.sha256(uri.encode('utf-8')).hexdigest()
        return self._split_path(hashed)

    def _split_path(self, path: str) -> Path:
        subdirectories = (list(path[:self.__cache_directory_levels])
                          + [path[self.__cache_directory_levels:]])
        return Path(*subdirectories)

    def _read_entry(self, entry_path: Path, with_body: bool = True):
        """
        Read an entry file.

        @param entry_path
            The path to the entry file.
        @param with_body
            Whether the body should be read too. Enumeration only needs the header line.
        @return
            A tuple of the decoded record and the body (or `None` when `with_body` is false).
        @throws FileNotFoundError
            If there is no entry file.
        @throws CorruptEntry
            If the entry file could not be parsed.
        """
        with open(entry_path, 'rb') as f:
            header = f.readline()
            body = f.read() if with_body else None
        try:
            record = json.loads(header.decode('utf-8'), cls=DataclassJSONDecoder, class_type=EntryRecord)
        except (TypeError, UnicodeDecodeError, json.JSONDecodeError):
            raise CorruptEntry(entry_path)
        return record, body

    def get(self, request: Request) -> Optional[Response]:
        """
        Retrieve the stored response matching `request`.

        @param request
          The request to look up in the store.
        @return
          A fresh copy of the stored response, or `None` on a miss.
        """
        if request.method not in CACHEABLE_METHODS:
            return None

        entry_path = self.__entry_directory / self._get_path(request.uri)
        try:
            record, body = self._read_entry(entry_path)
        except CorruptEntry as e:
            logger.warning('Found a corrupt cache entry. Deleting the entry file {}.'.format(e.entry_path))
            self._unlink(e.entry_path)
            return None
        except FileNotFoundError:
            logger.debug('No matching cache entry found for {}.'.format(request.uri))
            return None

        if record.method != request.method or record.uri != request.uri:
            logger.warning('Cache entry at {} belongs to {}, not {}.'.format(entry_path, record.uri, request.uri))
            return None

        return Response(status=record.status,
                        reason=record.reason,
                        headers=dict(record.headers),
                        body=body)

    def put(self, request: Request, response: Response) -> None:
        """
        Store `response` for `request`, replacing any existing entry for the same key.

        @throws StoreClosed
          If the store was closed.
        """
        if request.method not in CACHEABLE_METHODS:
            raise ValueError('Only {} requests can be stored, not {}'.format(
                ', '.join(sorted(CACHEABLE_METHODS)), request.method))

        record = EntryRecord(method=request.method,
                             uri=request.uri,
                             status=response.status,
                             reason=response.reason,
                             headers=dict(response.headers),
                             stored_at=time.time())
        header = json.dumps(record, cls=DataclassJSONEncoder).encode('utf-8')

        entry_path = self.__entry_directory / self._get_path(request.uri)
        logger.debug('Writing cache entry for {} to {}.'.format(request.uri, entry_path))
        with self.__lock:
            if self.__closed:
                raise StoreClosed(self.__directory)
            atomic_write(entry_path, header + b'\n' + response.body)

    def close(self) -> None:
        """
        Refuse every later put. A put already in progress finishes first, so once this returns nothing writes here.
        """
        with self.__lock:
            self.__closed = True

    def delete(self, request: Request) -> bool:
        entry_path = self.__entry_directory / self._get_path(request.uri)
        return self._unlink(entry_path)

    def keys(self) -> List[Request]:
        """
        List the requests that have a stored response, oldest entry first.
        """
        if not self.__entry_directory.is_dir():
            return []

        records = []
        for entry_path in self.__entry_directory.rglob('*'):
            if not entry_path.is_file() or entry_path.name.startswith('.tmp-'):
                continue
            try:
                record, _ = self._read_entry(entry_path, with_body=False)
            except CorruptEntry as e:
                logger.warning('Skipping corrupt cache entry {}.'.format(e.entry_path))
                continue
            except FileNotFoundError:
                # Deleted while we were walking the directory.
                continue
            records.append(record)

        records.sort(key=lambda r: (r.stored_at, r.uri))
        return [Request(method=r.method, uri=r.uri) for r in records]

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False


class CacheStorage:
    """
    The set of named stores, one per cache version, under a common root directory.
    """

    def __init__(self, directory: Path, cache_directory_levels: int = 5) -> None:
        self.__directory = Path(directory)
        self.__cache_directory_levels = cache_directory_levels

    def _store_path(self, version: str) -> Path:
        if not version:
            raise ValueError('A cache version must be a non-empty string')
        return self.__directory / quote(version, safe='')

    def open(self, version: str, create: bool = True) -> FileCache:
        path = self._store_path(version)
        if create:
            path.mkdir(parents=True, exist_ok=True)
        return FileCache(path, self.__cache_directory_levels)

    def has(self, version: str) -> bool:
        return self._store_path(version).is_dir()

    def delete(self, version: str) -> bool:
        path = self._store_path(version)
        if not path.is_dir():
            return False
        logger.info('Deleting cache store {}.'.format(version))
        shutil.rmtree(path)
        return True

    def keys(self) -> List[str]:
        if not self.__directory.is_dir():
            return []
        return sorted(unquote(p.name) for p in self.__directory.iterdir() if p.is_dir())
