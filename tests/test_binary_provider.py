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

"""Tests for the local subprocess provider."""

import asyncio
import sys

import pytest

from supertab.completion.protocol import CompletionRequest, Dedent
from supertab.completion.provider import Control, Done, Error, Fragment
from supertab.completion.providers.binary import BinaryCompletionProvider
from supertab.config import BinarySettings

FAKE_AGENT = r"""
import json
import sys

def send(message):
    print("SM-MESSAGE " + json.dumps(message), flush=True)

for line in sys.stdin:
    message = json.loads(line)
    state_id = message["newId"]
    content = message["updates"][0]["content"]
    if content == "crash":
        sys.exit(1)
    if content == "hang":
        continue
    if content == "fail":
        send({"kind": "error", "stateId": state_id, "message": "model unavailable"})
        continue
    print("agent ready", flush=True)
    send({"kind": "response", "stateId": state_id, "items": [{"kind": "text", "text": "hello "}]})
    print("SM-MESSAGE {not json", flush=True)
    send({"kind": "response", "stateId": "999", "items": [{"kind": "text", "text": "stray"}]})
    send({
        "kind": "response",
        "stateId": state_id,
        "items": [
            {"kind": "dedent", "text": "  "},
            {"kind": "text", "text": "world"},
            {"kind": "end"},
        ],
    })
"""


def _provider(command=None):
    settings = BinarySettings(command=command or [sys.executable, "-c", FAKE_AGENT], args=[])
    return BinaryCompletionProvider(settings=settings)


def _request(content, request_id=1):
    return CompletionRequest(
        request_id=request_id,
        file_identity="a.py",
        document_text=content,
        cursor_offset=len(content),
    )


async def _collect(handle):
    return [event async for event in handle]


class TestBinaryCompletionProvider:
    """Tests for BinaryCompletionProvider against a fake agent process."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        provider = _provider()
        try:
            handle = provider.start(_request("say "))
            events = await asyncio.wait_for(_collect(handle), timeout=10)
        finally:
            await provider.aclose()

        assert events == [
            Fragment("hello "),
            Control(Dedent("  ")),
            Fragment("world"),
            Done(),
        ]

    @pytest.mark.asyncio
    async def test_process_is_reused(self):
        provider = _provider()
        try:
            await asyncio.wait_for(_collect(provider.start(_request("a", 1))), timeout=10)
            first = provider._process
            events = await asyncio.wait_for(_collect(provider.start(_request("b", 2))), timeout=10)
            assert provider._process is first
        finally:
            await provider.aclose()

        assert events[-1] == Done()

    @pytest.mark.asyncio
    async def test_error_message(self):
        provider = _provider()
        try:
            events = await asyncio.wait_for(_collect(provider.start(_request("fail"))), timeout=10)
        finally:
            await provider.aclose()

        assert events == [Error("model unavailable")]

    @pytest.mark.asyncio
    async def test_process_exit_fails_pending_request(self):
        provider = _provider()
        try:
            events = await asyncio.wait_for(_collect(provider.start(_request("crash"))), timeout=10)
        finally:
            await provider.aclose()

        assert events == [Error("Completion binary exited")]

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        provider = _provider(command=["/nonexistent/sm-agent"])

        events = await asyncio.wait_for(_collect(provider.start(_request("x"))), timeout=10)

        assert len(events) == 1
        assert isinstance(events[0], Error)
        assert "not available" in events[0].message

    @pytest.mark.asyncio
    async def test_cancel_removes_pending_request(self):
        provider = _provider()
        try:
            handle = provider.start(_request("hang"))
            for _ in range(100):
                if provider._pending:
                    break
                await asyncio.sleep(0.01)
            assert "1" in provider._pending

            handle.cancel()
            await asyncio.sleep(0)

            assert provider._pending == {}
            assert provider.is_running
        finally:
            await provider.aclose()

        assert not provider.is_running

    def test_build_message(self):
        request = CompletionRequest(
            request_id=7,
            file_identity="a.py",
            document_text="x = ",
            cursor_offset=4,
            enrichment_text="Recent code changes:",
        )

        message = _provider().build_message(request)

        assert message["kind"] == "state_update"
        assert message["newId"] == "7"
        assert [u["kind"] for u in message["updates"]] == [
            "file_update",
            "cursor_update",
            "context_update",
        ]
        assert message["updates"][1]["offset"] == 4
