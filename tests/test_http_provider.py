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

"""Tests for the streaming HTTP provider."""

import json

import httpx
import pytest

from supertab.completion.errors import MalformedProviderOutput, SizeLimitExceeded
from supertab.completion.protocol import CompletionRequest
from supertab.completion.provider import Done, Error, Fragment
from supertab.completion.providers.http import (
    HTTPCompletionProvider,
    extract_delta,
    parse_sse_data,
)
from supertab.config import ApiSettings
from supertab.message_log import MessageLogger


def _chunk(content):
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"


def _sse(*parts):
    return "".join(parts).encode("utf-8")


def _request(text="def foo(", enrichment=None):
    return CompletionRequest(
        request_id=1,
        file_identity="src/a.py",
        document_text=text,
        cursor_offset=len(text),
        enrichment_text=enrichment,
    )


def _provider(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    settings = ApiSettings(api_key="sk-test", url="https://llm.test/v1/chat/completions")
    return HTTPCompletionProvider(settings=settings, client=client, **kwargs)


async def _collect(handle):
    return [event async for event in handle]


class TestSseParsing:
    """Tests for SSE line and chunk parsing."""

    def test_parse_sse_data(self):
        assert parse_sse_data('data: {"a": 1}') == '{"a": 1}'
        assert parse_sse_data("data:[DONE]") == "[DONE]"
        assert parse_sse_data(": keep-alive") is None
        assert parse_sse_data("") is None

    def test_extract_delta(self):
        assert extract_delta({"choices": [{"delta": {"content": "x"}}]}) == "x"
        assert extract_delta({"choices": [{"delta": {}}]}) is None
        assert extract_delta({"choices": [], "usage": {"total_tokens": 3}}) is None

    def test_extract_delta_rejects_bad_shapes(self):
        with pytest.raises(MalformedProviderOutput):
            extract_delta({"id": "x"})
        with pytest.raises(MalformedProviderOutput):
            extract_delta({"choices": [{"delta": {"content": 5}}]})


class TestHTTPCompletionProvider:
    """Tests for HTTPCompletionProvider against a mock transport."""

    @pytest.mark.asyncio
    async def test_streams_fragments_until_done(self):
        def handler(request):
            return httpx.Response(
                200, content=_sse(_chunk("a, "), _chunk("b):"), "data: [DONE]\n\n")
            )

        provider = _provider(handler)
        events = await _collect(provider.start(_request()))

        assert events == [Fragment("a, "), Fragment("b):"), Done()]
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_stream_end_without_sentinel_is_done(self):
        def handler(request):
            return httpx.Response(200, content=_sse(_chunk("x")))

        events = await _collect(_provider(handler).start(_request()))

        assert events == [Fragment("x"), Done()]

    @pytest.mark.asyncio
    async def test_malformed_chunk_is_dropped(self):
        def handler(request):
            return httpx.Response(
                200,
                content=_sse(_chunk("a"), "data: {not json\n\n", _chunk("b"), "data: [DONE]\n\n"),
            )

        events = await _collect(_provider(handler).start(_request()))

        assert events == [Fragment("a"), Fragment("b"), Done()]

    @pytest.mark.asyncio
    async def test_http_error_status_becomes_error(self):
        def handler(request):
            return httpx.Response(500, text="upstream exploded")

        events = await _collect(_provider(handler).start(_request()))

        assert len(events) == 1
        assert isinstance(events[0], Error)
        assert "500" in events[0].message

    @pytest.mark.asyncio
    async def test_connection_failure_becomes_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        events = await _collect(_provider(handler).start(_request()))

        assert len(events) == 1
        assert isinstance(events[0], Error)
        assert "connection refused" in events[0].message

    @pytest.mark.asyncio
    async def test_request_body_and_headers(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=_sse("data: [DONE]\n\n"))

        provider = _provider(handler)
        await _collect(provider.start(_request(enrichment="Recent code changes:")))

        body = seen["body"]
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert body["stream"] is True
        assert body["model"] == "gpt-3.5-turbo"
        assert body["max_tokens"] == 100
        assert [m["role"] for m in body["messages"]] == ["system", "user", "user"]
        assert body["messages"][1]["content"] == "Recent code changes:"
        assert body["messages"][2]["content"].endswith("def foo(<|cursor|>")

    def test_extra_params_are_merged(self):
        settings = ApiSettings(api_key="k", extra_params={"top_p": 0.9, "max_tokens": 64})
        body = HTTPCompletionProvider(settings=settings).build_body(_request())

        assert body["top_p"] == 0.9
        assert body["max_tokens"] == 64

    @pytest.mark.asyncio
    async def test_size_limit_prevents_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        provider = _provider(handler, max_document_bytes=5)

        with pytest.raises(SizeLimitExceeded):
            provider.start(_request("x" * 6))
        assert calls == []

    @pytest.mark.asyncio
    async def test_messages_are_logged(self, tmp_path):
        def handler(request):
            return httpx.Response(200, content=_sse(_chunk("x"), "data: [DONE]\n\n"))

        log = MessageLogger(tmp_path / "messages.log")
        await _collect(_provider(handler, message_logger=log).start(_request()))

        content = log.read()
        assert "OUTGOING" in content
        assert "INCOMING" in content
        assert "llm.test" in content

    @pytest.mark.asyncio
    async def test_aclose_keeps_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        provider = HTTPCompletionProvider(client=client)

        await provider.aclose()

        assert not client.is_closed
        await client.aclose()
