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

"""Prefix reconciliation.

Matches the user's live prefix against every retained completion state
and picks the longest still-valid continuation. A state is usable when
its prefix is a prefix of the live prefix and the text typed since then
is itself a prefix of the state's response.
"""

import logging
from typing import Iterable, Optional

from supertab.completion.protocol import (
    CompletionState,
    Dedent,
    FinishEdit,
    ReconciliationResult,
    ResponseItem,
    Suggestion,
    Text,
    is_control,
    text_length,
)

logger = logging.getLogger(__name__)


def shares_common_prefix(first: str, second: str) -> bool:
    """Check whether the shorter string is a prefix of the longer one."""
    length = min(len(first), len(second))
    return first[:length] == second[:length]


def strip_typed(response: list[ResponseItem], typed: str) -> Optional[list[ResponseItem]]:
    """Remove already-typed text from the front of a response.

    Args:
        response: Response items of a state
        typed: Text the user typed since the state was created

    Returns:
        The remaining items, or None if the response diverges from the
        typed text or does not (yet) cover all of it
    """
    remaining: list[ResponseItem] = []
    for item in response:
        if isinstance(item, Text):
            text = item.text
            if not shares_common_prefix(text, typed):
                return None
            trim = min(len(text), len(typed))
            text = text[trim:]
            typed = typed[trim:]
            if text:
                remaining.append(Text(text))
        elif not typed:
            # non-text items are never matched against typed input
            remaining.append(item)
    if typed:
        return None
    return remaining


def reconcile(
    states: Iterable[CompletionState], live_prefix: str
) -> Optional[ReconciliationResult]:
    """Find the best cached continuation for the live prefix.

    Candidates are ranked by remaining text length, then by state id, so
    a longer or fresher completion wins over a shorter or staler one.

    Args:
        states: Retained completion states
        live_prefix: Document text from start up to the cursor

    Returns:
        The winning result, or None if no state matches
    """
    best: Optional[ReconciliationResult] = None
    best_length = -1

    for state in states:
        if state.failed:
            continue
        if not live_prefix.startswith(state.prefix):
            continue

        typed = live_prefix[len(state.prefix) :]
        remaining = strip_typed(state.response, typed)
        if remaining is None:
            continue

        length = text_length(remaining)
        if length > best_length or (
            length == best_length and best is not None and state.id > best.source_state_id
        ):
            best = ReconciliationResult(
                remaining_items=remaining,
                is_incomplete=not state.has_ended,
                source_state_id=state.id,
            )
            best_length = length

    return best


def derive_suggestion(
    result: ReconciliationResult, line_before_cursor: str
) -> Optional[Suggestion]:
    """Turn a reconciliation result into a display-ready suggestion.

    Leading Dedent items name characters before the cursor to delete;
    text is collected up to the terminal marker or the first control item.

    Args:
        result: Winning reconciliation result
        line_before_cursor: Current line up to the cursor

    Returns:
        The suggestion, or None if it cannot be applied at this cursor
    """
    dedent = ""
    text = ""
    for item in result.remaining_items:
        if isinstance(item, Dedent):
            if text:
                break
            dedent += item.text
        elif isinstance(item, Text):
            text += item.text
        elif isinstance(item, FinishEdit) or is_control(item):
            break

    if dedent and not line_before_cursor.endswith(dedent):
        logger.debug(f"Dedent {dedent!r} does not match line before cursor")
        return None

    while dedent and text and dedent[0] == text[0]:
        dedent = dedent[1:]
        text = text[1:]

    return Suggestion(
        text=text.rstrip(),
        leading_delete_count=len(dedent),
        is_incomplete=result.is_incomplete,
        source_state_id=result.source_state_id,
    )
