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

"""Change-history tracking for prompt enrichment.

Takes a snapshot of a file when editing starts, diffs it against the
text when editing stops, and keeps the last few diffs. The formatted
history is handed to the engine as an opaque enrichment string.
"""

import difflib
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from supertab.config import ContextSettings

logger = logging.getLogger(__name__)

TRUNCATED_MARKER = "... (truncated)"


@runtime_checkable
class EnrichmentSource(Protocol):
    """Anything that contributes extra prompt context."""

    def get_enrichment(self) -> str:
        ...


@dataclass
class RecordedChange:
    """A diff recorded for one editing session."""

    file_identity: str
    timestamp: float
    diff: str


def generate_unified_diff(
    before: str, after: str, file_identity: str, max_lines: Optional[int] = None
) -> Optional[str]:
    """Generate a unified diff between two texts.

    Args:
        before: Original text
        after: Modified text
        file_identity: Path used in the diff header
        max_lines: Maximum diff lines (None = no limit)

    Returns:
        The diff, or None if nothing changed
    """
    if before == after:
        return None

    lines = list(
        difflib.unified_diff(
            before.splitlines(),
            after.splitlines(),
            fromfile=f"a/{file_identity}",
            tofile=f"b/{file_identity}",
            n=2,
            lineterm="",
        )
    )
    if not lines:
        return None

    if max_lines is not None and len(lines) > max_lines:
        lines = lines[:max_lines] + [TRUNCATED_MARKER]
    return "\n".join(lines)


def _format_age(seconds: float) -> str:
    if seconds < 60:
        return f"{int(seconds)}s ago"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    return f"{int(seconds // 3600)}h ago"


class ChangeTracker:
    """Keeps a bounded history of recent edits."""

    def __init__(
        self,
        settings: Optional[ContextSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings or ContextSettings()
        self._clock = clock
        self._snapshots: dict[str, str] = {}
        self._history: deque[RecordedChange] = deque(maxlen=max(1, self._settings.max_changes))

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def history(self) -> list[RecordedChange]:
        return list(self._history)

    def capture_snapshot(self, file_identity: str, text: str) -> None:
        """Remember a file's text before editing starts."""
        if not file_identity:
            return
        self._snapshots[file_identity] = text
        logger.debug(f"Captured snapshot for {file_identity}")

    def record_change(self, file_identity: str, text: str) -> Optional[RecordedChange]:
        """Diff the current text against the snapshot and record it.

        Returns:
            The recorded change, or None if there was no snapshot or no diff
        """
        snapshot = self._snapshots.pop(file_identity, None)
        if snapshot is None:
            logger.debug(f"No snapshot found for {file_identity}")
            return None

        diff = generate_unified_diff(
            snapshot, text, file_identity, self._settings.max_diff_lines
        )
        if diff is None:
            logger.debug(f"No changes detected for {file_identity}")
            return None

        change = RecordedChange(file_identity=file_identity, timestamp=self._clock(), diff=diff)
        self._history.append(change)
        logger.debug(
            f"Recorded change for {file_identity} ({len(self._history)} changes in history)"
        )
        return change

    def get_enrichment(self) -> str:
        """Format the history for inclusion in a prompt ("" when empty)."""
        if not self.enabled or not self._history:
            return ""

        lines = ["Recent code changes:"]
        now = self._clock()
        for index, change in enumerate(self._history, start=1):
            lines.append("")
            if self._settings.include_timestamps:
                age = _format_age(now - change.timestamp)
                lines.append(f"Change {index}: {change.file_identity} ({age})")
            else:
                lines.append(f"Change {index}: {change.file_identity}")
            lines.append(change.diff)
        return "\n".join(lines)

    def clear(self) -> None:
        self._snapshots.clear()
        self._history.clear()
