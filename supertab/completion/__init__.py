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

"""Inline completion engine.

Requests completions from a provider, caches every response by the
prefix it was requested for, and keeps a suggestion on screen for as
long as the user's typing agrees with it.

Example usage:
    from supertab.completion import CompletionEngine
    from supertab.config import load_settings

    settings = load_settings("supertab.yaml")
    engine = CompletionEngine.from_settings(settings, renderer=my_renderer)
    engine.start()

    # from the editor's event loop, on every text change or cursor move
    engine.on_update(text, cursor_offset, "src/main.py")

    await engine.stop()
"""

from supertab.completion.engine import (
    CompletionEngine,
    NullRenderer,
    SuggestionRenderer,
)
from supertab.completion.errors import (
    CompletionError,
    MalformedProviderOutput,
    SizeLimitExceeded,
    TimeoutAbandoned,
    TransportError,
)
from supertab.completion.protocol import (
    CompletionMetrics,
    CompletionRequest,
    CompletionState,
    Dedent,
    Delete,
    EventKind,
    FinishEdit,
    Jump,
    QueryContext,
    ReconciliationResult,
    RequestMetrics,
    ResponseItem,
    ResponseKind,
    Skip,
    Suggestion,
    Text,
)
from supertab.completion.provider import (
    BaseCompletionProvider,
    CompletionProvider,
    StreamHandle,
)
from supertab.completion.providers import (
    BinaryCompletionProvider,
    HTTPCompletionProvider,
)
from supertab.completion.reconcile import derive_suggestion, reconcile, strip_typed
from supertab.completion.registry import CompletionProviderRegistry
from supertab.completion.store import CompletionStateStore

__all__ = [
    # Engine
    "CompletionEngine",
    "NullRenderer",
    "SuggestionRenderer",
    # Errors
    "CompletionError",
    "MalformedProviderOutput",
    "SizeLimitExceeded",
    "TimeoutAbandoned",
    "TransportError",
    # Protocol types
    "CompletionMetrics",
    "CompletionRequest",
    "CompletionState",
    "Dedent",
    "Delete",
    "EventKind",
    "FinishEdit",
    "Jump",
    "QueryContext",
    "ReconciliationResult",
    "RequestMetrics",
    "ResponseItem",
    "ResponseKind",
    "Skip",
    "Suggestion",
    "Text",
    # Providers
    "BaseCompletionProvider",
    "BinaryCompletionProvider",
    "CompletionProvider",
    "CompletionProviderRegistry",
    "HTTPCompletionProvider",
    "StreamHandle",
    # Algorithms
    "CompletionStateStore",
    "derive_suggestion",
    "reconcile",
    "strip_typed",
]
