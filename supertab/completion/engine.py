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

"""Completion engine.

Owns the completion state store and the single active transport
operation for one editing session. Every mutation happens on the event
loop that calls into the engine:

- ``on_update`` receives editor events and decides whether to request
- ``submit`` reuses the newest state for an unchanged document or
  starts a new provider request (cancelling the previous one)
- one consumer task per request appends provider events to its state
- ``poll_once`` reconciles the live prefix and drives the renderer; it
  runs on every provider event and on a fixed tick until the time
  budget runs out or the winning state has ended
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Protocol, runtime_checkable

from supertab.completion.errors import SizeLimitExceeded, TimeoutAbandoned
from supertab.completion.protocol import (
    CompletionMetrics,
    CompletionRequest,
    CompletionState,
    EventKind,
    QueryContext,
    ReconciliationResult,
    RequestMetrics,
    Suggestion,
)
from supertab.completion.provider import (
    CompletionProvider,
    Control,
    Done,
    Error,
    Fragment,
    StreamHandle,
)
from supertab.completion.reconcile import derive_suggestion, reconcile
from supertab.completion.registry import CompletionProviderRegistry
from supertab.completion.store import CompletionStateStore
from supertab.config import SupertabSettings
from supertab.context.tracker import ChangeTracker, EnrichmentSource

logger = logging.getLogger(__name__)


@runtime_checkable
class SuggestionRenderer(Protocol):
    """Displays suggestions in the editor."""

    def render(self, suggestion: Suggestion) -> None:
        ...

    def clear(self) -> None:
        ...


class NullRenderer:
    """Renderer that displays nothing."""

    def render(self, suggestion: Suggestion) -> None:
        pass

    def clear(self) -> None:
        pass


@dataclass
class _ActiveOperation:
    """The one transport operation currently in flight."""

    state_id: int
    handle: StreamHandle
    metrics: RequestMetrics
    consumer: Optional[asyncio.Task] = None
    output: list[str] = field(default_factory=list)


class CompletionEngine:
    """Request, cache and reconcile inline completions for one session."""

    def __init__(
        self,
        provider: CompletionProvider,
        settings: Optional[SupertabSettings] = None,
        renderer: Optional[SuggestionRenderer] = None,
        enrichment_sources: Optional[Iterable[EnrichmentSource]] = None,
        change_tracker: Optional[ChangeTracker] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the engine.

        Args:
            provider: Transport used for new requests
            settings: Engine settings (defaults if not provided)
            renderer: Receives suggestions and clear signals
            enrichment_sources: Contribute opaque prompt context per request
            change_tracker: Edit history the editor layer feeds; added as an
                enrichment source
            clock: Monotonic clock in seconds
        """
        self._provider = provider
        self._settings = settings or SupertabSettings()
        self._renderer = renderer or NullRenderer()
        self._enrichment_sources = list(enrichment_sources or [])
        self._change_tracker = change_tracker
        if change_tracker is not None and change_tracker not in self._enrichment_sources:
            self._enrichment_sources.append(change_tracker)
        self._clock = clock

        self._store = CompletionStateStore(self._settings.engine.retention_window)
        self._metrics = CompletionMetrics()
        self._last_completion_metrics = RequestMetrics()

        self._is_active = False
        self._active: Optional[_ActiveOperation] = None
        self._last_query: Optional[QueryContext] = None
        self._live: Optional[QueryContext] = None
        self._last_text: Optional[str] = None
        self._last_path: Optional[str] = None
        self._last_context: Optional[QueryContext] = None

        self._deadline = 0.0
        self._wants_polling = False
        self._tick_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(
        cls,
        settings: SupertabSettings,
        registry: Optional[CompletionProviderRegistry] = None,
        **kwargs,
    ) -> "CompletionEngine":
        """Build an engine with the transport the settings select.

        A ChangeTracker is attached when change-history context is enabled.
        """
        registry = registry or CompletionProviderRegistry()
        if settings.context.enabled and "change_tracker" not in kwargs:
            kwargs["change_tracker"] = ChangeTracker(settings.context)
        return cls(registry.create_for_settings(settings), settings=settings, **kwargs)

    @property
    def provider(self) -> CompletionProvider:
        return self._provider

    @property
    def store(self) -> CompletionStateStore:
        return self._store

    @property
    def change_tracker(self) -> Optional[ChangeTracker]:
        """Edit history used for prompt context, if enabled."""
        return self._change_tracker

    @property
    def settings(self) -> SupertabSettings:
        return self._settings

    @property
    def metrics(self) -> CompletionMetrics:
        """Engine-wide counters."""
        return self._metrics

    @property
    def last_completion_metrics(self) -> RequestMetrics:
        """Metrics of the most recently completed request."""
        return self._last_completion_metrics

    @property
    def is_running(self) -> bool:
        return self._is_active

    @property
    def wants_polling(self) -> bool:
        return self._wants_polling

    @property
    def active_state_id(self) -> Optional[int]:
        """Id of the state whose request is in flight."""
        return self._active.state_id if self._active else None

    def reset_metrics(self) -> None:
        self._metrics = CompletionMetrics()

    # Lifecycle

    def start(self) -> None:
        """Start accepting editor updates."""
        if self._is_active:
            logger.warning("Completion engine is already running.")
            return
        self._is_active = True
        self._last_text = None
        self._last_path = None
        self._last_context = None
        self._wants_polling = False
        logger.info(f"Completion engine started ({getattr(self._provider, 'name', 'provider')})")

    async def stop(self) -> None:
        """Cancel the active request, drop all states and close the transport."""
        if not self._is_active:
            logger.warning("Completion engine is not running.")
        self._is_active = False
        self._wants_polling = False
        self._cancel_active()

        if self._tick_task is not None and not self._tick_task.done():
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
        self._tick_task = None

        self._store.clear()
        self._last_query = None
        self._live = None
        self._renderer.clear()

        try:
            await self._provider.aclose()
        except Exception as e:
            logger.warning(f"Failed to close completion provider: {e}")
        logger.info("Completion engine stopped")

    async def restart(self) -> None:
        if self._is_active:
            await self.stop()
        self.start()

    async def toggle(self) -> None:
        if self._is_active:
            await self.stop()
        else:
            self.start()

    # Editor events

    def on_update(
        self,
        document_text: str,
        cursor_offset: int,
        file_identity: str,
        event_kind: EventKind = EventKind.TEXT_CHANGED,
    ) -> None:
        """Handle a text change or cursor move.

        Must be called from the event loop that owns the engine. A new
        request starts only when the text changed within the same file;
        any other change of context clears the displayed suggestion.
        """
        if not self._is_active:
            return
        if self._settings.is_ignored(file_identity):
            return

        size = len(document_text.encode("utf-8"))
        if size > self._settings.engine.max_document_bytes:
            logger.warning(f"File is too large to send to provider ({size} bytes). Skipping...")
            self._metrics.skipped_oversize += 1
            return

        context = QueryContext(
            cursor_offset=cursor_offset,
            file_identity=file_identity,
            document_text=document_text,
        )
        completion_is_allowed = (
            document_text != self._last_text and self._last_path == file_identity
        )
        logger.debug(f"Editor update ({event_kind.value}) at offset {cursor_offset}")

        if completion_is_allowed:
            self._provide(context)
        elif context != self._last_context:
            self._wants_polling = False
            self._renderer.clear()

        self._last_path = file_identity
        self._last_text = document_text
        self._last_context = context

    def _provide(self, context: QueryContext) -> None:
        self._live = context
        self._deadline = self._clock() + self._settings.engine.time_budget_ms / 1000
        self.poll_once()
        self._ensure_ticking()

    # Query submission

    def submit(self, document_text: str, cursor_offset: int, file_identity: str) -> Optional[int]:
        """Reuse or issue a completion request for a cursor position.

        Args:
            document_text: Full document text
            cursor_offset: Cursor offset into the document
            file_identity: Path or other identity of the document

        Returns:
            Id of the state answering this query, or None if no request
            could be built
        """
        self._store.evict()

        context = QueryContext(
            cursor_offset=cursor_offset,
            file_identity=file_identity,
            document_text=document_text,
        )
        if self._last_query == context and self._store.newest_id in self._store:
            self._metrics.cache_hits += 1
            return self._store.newest_id

        limit = self._settings.engine.max_document_bytes
        size = len(document_text.encode("utf-8"))
        if size > limit:
            logger.warning(f"Not submitting completion request: {SizeLimitExceeded(size, limit)}")
            self._metrics.skipped_oversize += 1
            return None

        self._cancel_active()

        state = self._store.create(context.prefix)
        enrichment = self._collect_enrichment()
        request = CompletionRequest(
            request_id=state.id,
            file_identity=file_identity,
            document_text=document_text,
            cursor_offset=cursor_offset,
            enrichment_text=enrichment,
        )

        now = self._clock()
        try:
            handle = self._provider.start(request)
        except SizeLimitExceeded as e:
            logger.warning(f"Provider rejected completion request: {e}")
            self._store.discard(state.id)
            self._metrics.skipped_oversize += 1
            return None
        except Exception as e:
            logger.error(f"Failed to start completion request: {e}")
            state.end(failed=True)
            self._metrics.failed_requests += 1
            self._last_query = context
            self._renderer.clear()
            return state.id

        self._last_query = context
        self._deadline = now + self._settings.engine.time_budget_ms / 1000
        self._metrics.total_requests += 1

        operation = _ActiveOperation(
            state_id=state.id,
            handle=handle,
            metrics=RequestMetrics(
                start_time=now,
                input_char_count=len(document_text) + len(enrichment or ""),
            ),
        )
        self._active = operation
        operation.consumer = asyncio.get_running_loop().create_task(self._consume(operation))
        logger.debug(f"Submitted completion request {state.id} at offset {cursor_offset}")
        return state.id

    def _collect_enrichment(self) -> Optional[str]:
        parts = []
        for source in self._enrichment_sources:
            try:
                text = source.get_enrichment()
            except Exception as e:
                logger.warning(f"Enrichment source {source!r} failed: {e}")
                continue
            if text:
                parts.append(text)
        return "\n\n".join(parts) if parts else None

    # Streaming

    async def _consume(self, operation: _ActiveOperation) -> None:
        """Apply provider events to the operation's state in order."""
        async for event in operation.handle:
            if self._active is not operation:
                break
            state = self._store.get(operation.state_id)

            if isinstance(event, Fragment):
                self._on_fragment(operation, state, event.text)
            elif isinstance(event, Control):
                if state is not None:
                    state.append_item(event.item)
            elif isinstance(event, Done):
                self._on_done(operation, state)
            elif isinstance(event, Error):
                self._on_error(operation, state, event.message)
                # display stays cleared until the next editor update
                continue

            if self._is_active and self._live is not None:
                try:
                    self.poll_once()
                except Exception as e:
                    logger.exception(f"Completion update failed: {e}")

    def _on_fragment(
        self, operation: _ActiveOperation, state: Optional[CompletionState], text: str
    ) -> None:
        if operation.metrics.first_token_ms is None and operation.metrics.start_time is not None:
            operation.metrics.first_token_ms = (self._clock() - operation.metrics.start_time) * 1000
        operation.output.append(text)
        if state is not None:
            state.append_text(text)

    def _on_done(self, operation: _ActiveOperation, state: Optional[CompletionState]) -> None:
        end_time = self._clock()
        output = "".join(operation.output)
        metrics = operation.metrics
        metrics.end_time = end_time
        metrics.output_char_count = len(output)
        metrics.char_count = metrics.input_char_count + metrics.output_char_count
        metrics.token_count = len(output.split())
        metrics.duration_ms = (end_time - (metrics.start_time or end_time)) * 1000
        if metrics.first_token_ms is None:
            metrics.first_token_ms = 0.0

        self._last_completion_metrics = metrics
        self._metrics.successful_requests += 1
        self._metrics.total_latency_ms += metrics.duration_ms

        if state is not None:
            state.finish()
        self._active = None

    def _on_error(
        self, operation: _ActiveOperation, state: Optional[CompletionState], message: str
    ) -> None:
        logger.error(f"Completion request {operation.state_id} failed: {message}")
        self._renderer.clear()
        self._wants_polling = False
        self._metrics.failed_requests += 1
        if state is not None:
            state.end(failed=True)
        self._active = None

    def _cancel_active(self) -> None:
        operation = self._active
        if operation is None:
            return
        self._active = None

        state = self._store.get(operation.state_id)
        if state is not None and not state.has_ended:
            state.end()
            self._metrics.cancelled_requests += 1

        try:
            operation.handle.cancel()
        except Exception as e:
            logger.warning(f"Failed to cancel completion request {operation.state_id}: {e}")

        consumer = operation.consumer
        if consumer is not None and not consumer.done() and consumer is not asyncio.current_task():
            consumer.cancel()

    # Reconciliation and scheduling

    def reconcile(self, live_prefix: str) -> Optional[ReconciliationResult]:
        """Best cached continuation for the live prefix."""
        return reconcile(self._store, live_prefix)

    def poll_once(self) -> Optional[Suggestion]:
        """Run one scheduling step for the live context.

        Returns:
            The suggestion handed to the renderer, if any
        """
        context = self._live
        if context is None:
            return None

        if self._clock() > self._deadline:
            if self._wants_polling:
                self._abandon()
            self._wants_polling = False
            return None

        self._wants_polling = True
        state_id = self.submit(
            context.document_text, context.cursor_offset, context.file_identity
        )
        if state_id is None:
            self._wants_polling = False
            return None

        result = self.reconcile(context.prefix)
        if result is None:
            self._renderer.clear()
            return None

        if result.leading_control is not None:
            return None

        self._wants_polling = result.is_incomplete
        suggestion = derive_suggestion(result, context.line_before_cursor)
        if suggestion is None:
            return None

        self._renderer.render(suggestion)
        return suggestion

    def _abandon(self) -> None:
        newest = self._store.get(self._store.newest_id)
        if newest is not None and not newest.has_ended:
            self._metrics.timeouts += 1
        reason = TimeoutAbandoned(self._store.newest_id, self._settings.engine.time_budget_ms)
        logger.debug(f"Stopped polling: {reason}")

    def _ensure_ticking(self) -> None:
        if not self._wants_polling:
            return
        if self._tick_task is None or self._tick_task.done():
            self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop())

    async def _tick_loop(self) -> None:
        interval = self._settings.engine.tick_interval_ms / 1000
        while self._is_active and self._wants_polling:
            await asyncio.sleep(interval)
            if not (self._is_active and self._wants_polling):
                break
            try:
                self.poll_once()
            except Exception as e:
                logger.exception(f"Completion tick failed: {e}")
