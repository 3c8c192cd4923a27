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

"""Completion error taxonomy.

None of these reach the editor integration layer: the engine catches
them, logs them and at worst shows no suggestion.
"""

from typing import Optional


class CompletionError(Exception):
    """Base class for completion engine errors."""


class SizeLimitExceeded(CompletionError):
    """Raised when a document is too large to send to a provider."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Document is {size} bytes, limit is {limit}")


class TransportError(CompletionError):
    """Raised when a provider fails to deliver a completion."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TimeoutAbandoned(CompletionError):
    """Raised when no terminal signal arrived within the time budget."""

    def __init__(self, state_id: int, budget_ms: float):
        self.state_id = state_id
        self.budget_ms = budget_ms
        super().__init__(f"State {state_id} abandoned after {budget_ms:.0f}ms")


class MalformedProviderOutput(CompletionError):
    """Raised when provider output cannot be parsed."""
