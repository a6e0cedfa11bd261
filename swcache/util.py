from concurrent.futures import Future
import dataclasses
import json
import os
from pathlib import Path
import tempfile
import threading
from typing import Callable, Iterable, List, Type


def clamp(value, min, max):
    return sorted((min, value, max))[1]


class DataclassJSONEncoder(json.JSONEncoder):
    def default(self, o):
        if dataclasses.is_dataclass(o):
            return dataclasses.asdict(o)
        return super().default(o)


class DataclassJSONDecoder(json.JSONDecoder):
    def __init__(self, class_type: Type, **kwargs) -> None:
        super().__init__(**kwargs)
        self.__class_type = class_type

    def decode(self, s):
        result = super().decode(s)
        return self.__class_type(**result)


def atomic_write(path: Path, data: bytes) -> None:
    """
    Write `data` to `path` such that readers see either the old file or the new one, never a partial file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=str(path.parent), prefix='.tmp-')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(temp_name, str(path))
    except BaseException:
        try:
            os.unlink(temp_name)
        except FileNotFoundError:
            pass
        raise


def run_now(fn: Callable, *args, **kwargs) -> Future:
    """
    Run `fn` in the calling thread and wrap the outcome in an already completed future.
    """
    future = Future()
    try:
        future.set_result(fn(*args, **kwargs))
    except Exception as e:
        future.set_exception(e)
    return future


def gather(futures: Iterable[Future]) -> Future:
    """
    Combine futures into one that completes when all of them have.

    The combined future holds the list of results, or the first exception in submission order.
    """
    futures = list(futures)
    combined = Future()
    if not futures:
        combined.set_result([])
        return combined

    remaining = [len(futures)]
    lock = threading.Lock()

    def on_done(_):
        with lock:
            remaining[0] -= 1
            if remaining[0]:
                return
        results: List = []
        for future in futures:
            error = future.exception()
            if error is not None:
                combined.set_exception(error)
                return
            results.append(future.result())
        combined.set_result(results)

    for future in futures:
        future.add_done_callback(on_done)
    return combined
