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

"""Completion data model.

Types shared by the engine, the reconciliation algorithm and the
transports:

- ResponseItem variants streamed back by a provider
- CompletionState, one per submitted request
- QueryContext, the snapshot used to detect unchanged documents
- ReconciliationResult and Suggestion, what reaches the renderer
- CompletionRequest, what a provider receives
- Request and engine metrics
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from supertab.completion.errors import MalformedProviderOutput


class ResponseKind(str, Enum):
    """Tag of a response item."""

    TEXT = "text"
    DEDENT = "dedent"
    FINISH_EDIT = "finish_edit"
    JUMP = "jump"
    DELETE = "delete"
    SKIP = "skip"


class EventKind(str, Enum):
    """Editor event that triggered an update."""

    TEXT_CHANGED = "text_changed"
    CURSOR = "cursor"


@dataclass(frozen=True)
class Text:
    """A contiguous fragment of suggested code."""

    text: str
    kind: ClassVar[ResponseKind] = ResponseKind.TEXT


@dataclass(frozen=True)
class Dedent:
    """Characters before the cursor that the suggestion replaces."""

    text: str
    kind: ClassVar[ResponseKind] = ResponseKind.DEDENT


@dataclass(frozen=True)
class FinishEdit:
    """Terminal marker: no further text follows."""

    kind: ClassVar[ResponseKind] = ResponseKind.FINISH_EDIT


@dataclass(frozen=True)
class Jump:
    kind: ClassVar[ResponseKind] = ResponseKind.JUMP


@dataclass(frozen=True)
class Delete:
    kind: ClassVar[ResponseKind] = ResponseKind.DELETE


@dataclass(frozen=True)
class Skip:
    kind: ClassVar[ResponseKind] = ResponseKind.SKIP


ResponseItem = Union[Text, Dedent, FinishEdit, Jump, Delete, Skip]

# Items that must never be applied to the buffer
CONTROL_KINDS = frozenset({ResponseKind.JUMP, ResponseKind.DELETE, ResponseKind.SKIP})


def is_control(item: ResponseItem) -> bool:
    """Check whether an item is a non-insertable control signal."""
    return item.kind in CONTROL_KINDS


def item_from_wire(data: dict[str, Any]) -> ResponseItem:
    """Build a response item from its wire dictionary.

    Args:
        data: Dictionary with a ``kind`` key and optional ``text``

    Returns:
        The matching response item

    Raises:
        MalformedProviderOutput: If the kind is unknown or text is missing
    """
    kind = data.get("kind") if isinstance(data, dict) else None
    if kind in ("text", "dedent"):
        text = data.get("text")
        if not isinstance(text, str):
            raise MalformedProviderOutput(f"{kind} item without text: {data!r}")
        return Text(text) if kind == "text" else Dedent(text)
    if kind in ("finish_edit", "end"):
        return FinishEdit()
    if kind == "jump":
        return Jump()
    if kind == "delete":
        return Delete()
    if kind == "skip":
        return Skip()
    raise MalformedProviderOutput(f"Unknown response item kind: {kind!r}")


def text_length(items: list[ResponseItem]) -> int:
    """Total length of the Text items in a response."""
    return sum(len(item.text) for item in items if isinstance(item, Text))


@dataclass
class CompletionState:
    """A tracked completion request and its accumulated response."""

    id: int
    prefix: str
    response: list[ResponseItem] = field(default_factory=list)
    has_ended: bool = False
    failed: bool = False

    def append_text(self, text: str) -> None:
        """Append a fragment, merging it into a trailing Text item."""
        if self.has_ended or not text:
            return
        if self.response and isinstance(self.response[-1], Text):
            self.response[-1] = Text(self.response[-1].text + text)
        else:
            self.response.append(Text(text))

    def append_item(self, item: ResponseItem) -> None:
        """Append a non-fragment item (Dedent or a control signal)."""
        if self.has_ended:
            return
        if isinstance(item, Text):
            self.append_text(item.text)
        elif isinstance(item, FinishEdit):
            self.finish()
        else:
            self.response.append(item)

    def finish(self) -> None:
        """Append the terminal marker and end the state."""
        if self.has_ended:
            return
        self.response.append(FinishEdit())
        self.has_ended = True

    def end(self, failed: bool = False) -> None:
        """End the state without a terminal marker (error or cancel)."""
        if self.has_ended:
            return
        self.has_ended = True
        self.failed = failed

    @property
    def text(self) -> str:
        """Concatenated text of the response so far."""
        return "".join(item.text for item in self.response if isinstance(item, Text))


@dataclass(frozen=True)
class QueryContext:
    """Snapshot of the document used to decide whether a new request is needed."""

    cursor_offset: int
    file_identity: str
    document_text: str

    @property
    def prefix(self) -> str:
        return self.document_text[: self.cursor_offset]

    @property
    def line_before_cursor(self) -> str:
        prefix = self.prefix
        return prefix[prefix.rfind("\n") + 1 :]


@dataclass
class ReconciliationResult:
    """Best still-valid continuation for the live prefix."""

    remaining_items: list[ResponseItem]
    is_incomplete: bool
    source_state_id: int

    @property
    def leading_control(self) -> Optional[ResponseItem]:
        """The first remaining item if it is a control signal."""
        if self.remaining_items and is_control(self.remaining_items[0]):
            return self.remaining_items[0]
        return None


@dataclass
class Suggestion:
    """Display-ready suggestion handed to the renderer."""

    text: str
    leading_delete_count: int = 0
    is_incomplete: bool = False
    source_state_id: int = -1


@dataclass
class CompletionRequest:
    """Payload sent to a completion provider."""

    request_id: int
    file_identity: str
    document_text: str
    cursor_offset: int
    enrichment_text: Optional[str] = None

    @property
    def prefix(self) -> str:
        return self.document_text[: self.cursor_offset]

    @property
    def suffix(self) -> str:
        return self.document_text[self.cursor_offset :]


@dataclass
class RequestMetrics:
    """Metrics for a single completion request."""

    token_count: int = 0
    char_count: int = 0
    input_char_count: int = 0
    output_char_count: int = 0
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    duration_ms: float = 0.0
    first_token_ms: Optional[float] = None


@dataclass
class CompletionMetrics:
    """Metrics for completion operations."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    cancelled_requests: int = 0
    cache_hits: int = 0
    timeouts: int = 0
    skipped_oversize: int = 0
    total_latency_ms: float = 0.0
