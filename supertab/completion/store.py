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

"""Completion state store.

Append-mostly map from request id to CompletionState with bounded
retention. Ids are allocated here and are strictly increasing.
"""

import logging
from typing import Iterator, Optional

from supertab.completion.protocol import CompletionState

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_WINDOW = 50


class CompletionStateStore:
    """Retains the most recent completion states."""

    def __init__(self, retention_window: int = DEFAULT_RETENTION_WINDOW):
        """Initialize the store.

        Args:
            retention_window: Number of most recent ids kept on eviction
        """
        self._retention_window = retention_window
        self._states: dict[int, CompletionState] = {}
        self._newest_id = 0

    @property
    def newest_id(self) -> int:
        """Id of the most recently created state (0 if none)."""
        return self._newest_id

    @property
    def retention_window(self) -> int:
        return self._retention_window

    def create(self, prefix: str) -> CompletionState:
        """Allocate the next id and create a state for it.

        States older than the retention window relative to the new id
        are evicted, so at most ``retention_window`` states are kept.
        """
        self._newest_id += 1
        state = CompletionState(id=self._newest_id, prefix=prefix)
        self._states[state.id] = state
        self.evict()
        return state

    def get(self, state_id: int) -> Optional[CompletionState]:
        return self._states.get(state_id)

    def discard(self, state_id: int) -> None:
        """Remove a single state (its id is not reused)."""
        self._states.pop(state_id, None)

    def evict(self) -> int:
        """Drop states that fell out of the retention window.

        Returns:
            Number of states removed
        """
        cutoff = self._newest_id - self._retention_window
        stale = [state_id for state_id in self._states if state_id <= cutoff]
        for state_id in stale:
            del self._states[state_id]
        if stale:
            logger.debug(f"Evicted {len(stale)} completion states (cutoff {cutoff})")
        return len(stale)

    def clear(self) -> None:
        """Drop every state. Ids keep increasing afterwards."""
        self._states.clear()

    def __iter__(self) -> Iterator[CompletionState]:
        return iter(list(self._states.values()))

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, state_id: object) -> bool:
        return state_id in self._states
