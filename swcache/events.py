"""
Typed events delivered to a worker.

Every event is handled as its own task. A handler may hand background work to `wait_until()`; the event only
counts as finished once that work has completed too.
"""

from concurrent.futures import Future
import threading
from typing import Any, List, Optional, Sequence

from .model import Request, Response
from .util import gather


class ExtendableEvent:
    def __init__(self) -> None:
        self.__extensions: List[Future] = []
        self.__lock = threading.Lock()

    def wait_until(self, future: Future) -> Future:
        """
        Keep the event alive until `future` completes. A failed future fails the event.
        """
        with self.__lock:
            self.__extensions.append(future)
        return future

    def settled(self) -> Future:
        with self.__lock:
            extensions = list(self.__extensions)
        return gather(extensions)


class InstallEvent(ExtendableEvent):
    pass


class ActivateEvent(ExtendableEvent):
    pass


class FetchEvent(ExtendableEvent):
    """
    An intercepted request.

    `response` resolves as soon as the handler has an answer, which may be before the event itself is finished
    (e.g. while a copy of the response is still being written to the store).
    """

    def __init__(self, request: Request) -> None:
        super().__init__()
        self.request = request
        self.__response = Future()
        self.__intercepted = False

    @property
    def response(self) -> Future:
        return self.__response

    @property
    def intercepted(self) -> bool:
        """
        Whether the worker answered the request. When it did not, the caller forwards it to the network itself.
        """
        return self.__intercepted

    def respond_with(self, response: Optional[Response]) -> None:
        self.__intercepted = True
        self.__response.set_result(response)

    def fail_with(self, error: BaseException) -> None:
        self.__intercepted = True
        self.__response.set_exception(error)

    def pass_through(self) -> None:
        self.__response.set_result(None)


class ReplyPort:
    """
    A one-shot channel a message handler answers on.
    """

    def __init__(self) -> None:
        self.__reply = Future()

    def post_message(self, message: Any) -> None:
        self.__reply.set_result(message)

    def receive(self, timeout: Optional[float] = None) -> Any:
        return self.__reply.result(timeout)


class MessageEvent(ExtendableEvent):
    def __init__(self, data: Any, ports: Sequence[ReplyPort] = ()) -> None:
        super().__init__()
        self.data = data
        self.ports = list(ports)


class SyncEvent(ExtendableEvent):
    """
    Connectivity came back and the platform wants the unit of work named by `tag` done.
    """

    def __init__(self, tag: str) -> None:
        super().__init__()
        self.tag = tag


class PeriodicSyncEvent(ExtendableEvent):
    def __init__(self, tag: str) -> None:
        super().__init__()
        self.tag = tag


class PushEvent(ExtendableEvent):
    def __init__(self, data: Optional[bytes] = None) -> None:
        super().__init__()
        self.data = data
