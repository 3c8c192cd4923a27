# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Completion provider interface and stream handle.

A provider turns a CompletionRequest into a StreamHandle: an async
iterator of provider events for that one request. The engine consumes
the handle; the provider only emits into it. Handles enforce the
transport contract: zero or more fragments, then exactly one of done or
error, and nothing after a cancel.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union, runtime_checkable

from supertab.completion.errors import SizeLimitExceeded, TransportError
from supertab.completion.protocol import CompletionRequest, ResponseItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fragment:
    """A piece of suggested text."""

    text: str


@dataclass(frozen=True)
class Control:
    """A non-text response item (dedent or control signal)."""

    item: ResponseItem


@dataclass(frozen=True)
class Done:
    """The provider finished successfully."""


@dataclass(frozen=True)
class Error:
    """The provider failed."""

    message: str


ProviderEvent = Union[Fragment, Control, Done, Error]

_CLOSED = object()


class StreamHandle:
    """Event channel for a single in-flight completion request."""

    def __init__(self, request_id: int):
        self.request_id = request_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._terminated = asyncio.Event()
        self._cancelled = False
        self._exhausted = False
        self._task: Optional[asyncio.Task] = None
        self._cancel_callbacks: list[Callable[[], None]] = []

    @property
    def is_terminated(self) -> bool:
        """Whether a done or error event has been emitted."""
        return self._terminated.is_set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_active(self) -> bool:
        return not (self._cancelled or self._terminated.is_set())

    def attach(self, task: asyncio.Task) -> None:
        """Attach the transport task so cancel() can stop it."""
        self._task = task

    def add_cancel_callback(self, callback: Callable[[], None]) -> None:
        self._cancel_callbacks.append(callback)

    def emit_fragment(self, text: str) -> bool:
        """Queue a text fragment.

        Returns:
            False if the handle no longer accepts events
        """
        if not self.is_active:
            return False
        if text:
            self._queue.put_nowait(Fragment(text))
        return True

    def emit_item(self, item: ResponseItem) -> bool:
        if not self.is_active:
            return False
        self._queue.put_nowait(Control(item))
        return True

    def emit_done(self) -> bool:
        return self._terminate(Done())

    def emit_error(self, message: str) -> bool:
        return self._terminate(Error(message))

    def _terminate(self, event: ProviderEvent) -> bool:
        if not self.is_active:
            return False
        self._queue.put_nowait(event)
        self._terminated.set()
        return True

    async def wait_terminated(self) -> None:
        """Wait until a terminal event has been emitted."""
        await self._terminated.wait()

    def cancel(self) -> None:
        """Stop the transport and detach consumers.

        Safe to call repeatedly and after the request has completed.
        """
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        for callback in self._cancel_callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancel callback failed for request {self.request_id}: {e}")
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "StreamHandle":
        return self

    async def __anext__(self) -> ProviderEvent:
        if self._cancelled or self._exhausted:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is _CLOSED or self._cancelled:
            raise StopAsyncIteration
        if isinstance(event, (Done, Error)):
            self._exhausted = True
        return event


@runtime_checkable
class CompletionProvider(Protocol):
    """Protocol for completion transports."""

    @property
    def name(self) -> str:
        """Unique identifier for this provider."""
        ...

    def start(self, request: CompletionRequest) -> StreamHandle:
        """Start streaming a completion for the request."""
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...


class BaseCompletionProvider(ABC):
    """Abstract base class for completion providers.

    Subclasses implement ``_run``, which emits events into the handle.
    The base class owns task creation, the size check and the mapping of
    transport failures onto error events.
    """

    def __init__(self, max_document_bytes: Optional[int] = None):
        """Initialize the provider.

        Args:
            max_document_bytes: Reject requests above this size (None = no limit)
        """
        self._max_document_bytes = max_document_bytes
        self._enabled = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this provider."""
        ...

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    def check_request(self, request: CompletionRequest) -> None:
        """Validate a request before any transport I/O.

        Raises:
            SizeLimitExceeded: If the document is over the size limit
        """
        if self._max_document_bytes is None:
            return
        size = len(request.document_text.encode("utf-8"))
        if size > self._max_document_bytes:
            raise SizeLimitExceeded(size, self._max_document_bytes)

    def start(self, request: CompletionRequest) -> StreamHandle:
        """Start streaming a completion.

        Must be called from a running event loop.

        Raises:
            SizeLimitExceeded: If the request cannot be constructed
        """
        self.check_request(request)
        handle = StreamHandle(request.request_id)
        task = asyncio.get_running_loop().create_task(self._run_guarded(request, handle))
        handle.attach(task)
        return handle

    async def _run_guarded(self, request: CompletionRequest, handle: StreamHandle) -> None:
        try:
            await self._run(request, handle)
        except asyncio.CancelledError:
            raise
        except TransportError as e:
            logger.warning(f"Provider {self.name} transport error: {e}")
            handle.emit_error(str(e))
        except Exception as e:
            logger.exception(f"Provider {self.name} failed: {e}")
            handle.emit_error(str(e))
        else:
            handle.emit_done()

    @abstractmethod
    async def _run(self, request: CompletionRequest, handle: StreamHandle) -> None:
        """Perform the request, emitting events into the handle.

        Returning normally emits done unless a terminal event was already
        emitted. Raising TransportError emits an error event.
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources. Default does nothing."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
