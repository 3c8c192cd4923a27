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

"""Tests for change tracking and prompt construction."""

from supertab.completion.prompt import (
    CURSOR_MARKER,
    SYSTEM_PROMPT,
    build_completion_messages,
    insert_cursor_marker,
)
from supertab.completion.protocol import CompletionRequest
from supertab.config import ContextSettings
from supertab.context import ChangeTracker, EnrichmentSource, generate_unified_diff


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestGenerateUnifiedDiff:
    """Tests for generate_unified_diff."""

    def test_no_change(self):
        assert generate_unified_diff("a\nb\n", "a\nb\n", "f.py") is None

    def test_diff_headers_and_lines(self):
        diff = generate_unified_diff("a\nb\nc\n", "a\nB\nc\n", "f.py")

        lines = diff.splitlines()
        assert lines[0] == "--- a/f.py"
        assert lines[1] == "+++ b/f.py"
        assert "-b" in lines
        assert "+B" in lines

    def test_truncation(self):
        before = "\n".join(str(i) for i in range(100))
        after = "\n".join(f"x{i}" for i in range(100))

        diff = generate_unified_diff(before, after, "f.py", max_lines=10)

        lines = diff.splitlines()
        assert len(lines) == 11
        assert lines[-1] == "... (truncated)"


class TestChangeTracker:
    """Tests for ChangeTracker."""

    def test_records_change_against_snapshot(self):
        tracker = ChangeTracker()
        tracker.capture_snapshot("a.py", "x = 1\n")

        change = tracker.record_change("a.py", "x = 2\n")

        assert change.file_identity == "a.py"
        assert "+x = 2" in change.diff
        assert tracker.history == [change]

    def test_snapshot_is_consumed(self):
        tracker = ChangeTracker()
        tracker.capture_snapshot("a.py", "x\n")
        tracker.record_change("a.py", "y\n")

        assert tracker.record_change("a.py", "z\n") is None

    def test_no_snapshot_or_no_change(self):
        tracker = ChangeTracker()
        assert tracker.record_change("a.py", "x\n") is None

        tracker.capture_snapshot("a.py", "x\n")
        assert tracker.record_change("a.py", "x\n") is None
        assert tracker.history == []

    def test_history_is_bounded(self):
        tracker = ChangeTracker(ContextSettings(max_changes=2))
        for i in range(4):
            tracker.capture_snapshot("a.py", f"{i}\n")
            tracker.record_change("a.py", f"{i + 1}\n")

        history = tracker.history
        assert len(history) == 2
        assert "+4" in history[-1].diff

    def test_enrichment_format(self):
        tracker = ChangeTracker()
        tracker.capture_snapshot("a.py", "x\n")
        tracker.record_change("a.py", "y\n")

        text = tracker.get_enrichment()

        assert text.startswith("Recent code changes:\n\nChange 1: a.py\n--- a/a.py")

    def test_enrichment_with_timestamps(self):
        clock = FakeClock()
        tracker = ChangeTracker(ContextSettings(include_timestamps=True), clock=clock)
        tracker.capture_snapshot("a.py", "x\n")
        tracker.record_change("a.py", "y\n")
        clock.now += 125

        assert "Change 1: a.py (2m ago)" in tracker.get_enrichment()

    def test_disabled_or_empty_gives_empty_string(self):
        assert ChangeTracker().get_enrichment() == ""

        tracker = ChangeTracker(ContextSettings(enabled=False))
        tracker.capture_snapshot("a.py", "x\n")
        tracker.record_change("a.py", "y\n")
        assert tracker.get_enrichment() == ""

    def test_is_enrichment_source(self):
        assert isinstance(ChangeTracker(), EnrichmentSource)


class TestPrompt:
    """Tests for chat prompt construction."""

    def test_insert_cursor_marker(self):
        assert insert_cursor_marker("abcd", 2) == f"ab{CURSOR_MARKER}cd"
        assert insert_cursor_marker("abcd", 4) == f"abcd{CURSOR_MARKER}"
        assert insert_cursor_marker("abcd", 9) == "abcd"

    def test_messages_without_enrichment(self):
        request = CompletionRequest(1, "src/app.py", "x = ", 4)

        messages = build_completion_messages(request)

        assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert len(messages) == 2
        assert messages[1]["content"] == f"Complete the py code at {CURSOR_MARKER}:\n\nx = {CURSOR_MARKER}"

    def test_enrichment_is_passed_verbatim(self):
        request = CompletionRequest(1, "a.lua", "", 0, enrichment_text="  opaque\ncontext  ")

        messages = build_completion_messages(request)

        assert messages[1] == {"role": "user", "content": "  opaque\ncontext  "}

