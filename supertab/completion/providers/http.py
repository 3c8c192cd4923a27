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

"""Streaming HTTP completion provider.

Posts an OpenAI-compatible chat completion request with ``stream=True``
and turns the server-sent events into fragments:

    data: {"choices": [{"delta": {"content": "def "}}]}

    data: [DONE]
"""

import json
import logging
from typing import Any, Optional

import httpx

from supertab.completion.errors import MalformedProviderOutput, TransportError
from supertab.completion.prompt import build_completion_messages
from supertab.completion.protocol import CompletionRequest
from supertab.completion.provider import BaseCompletionProvider, StreamHandle
from supertab.config import ApiSettings
from supertab.message_log import MessageLogger

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def parse_sse_data(line: str) -> Optional[str]:
    """Return the payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    return line[len("data:") :].strip()


def extract_delta(payload: dict[str, Any]) -> Optional[str]:
    """Extract delta content from a chat completion chunk.

    Raises:
        MalformedProviderOutput: If the chunk has an unexpected shape
    """
    choices = payload.get("choices")
    if not choices:
        # usage-only chunks carry no text
        if "usage" in payload:
            return None
        raise MalformedProviderOutput(f"Chunk without choices: {payload!r}")
    try:
        delta = choices[0].get("delta") or {}
    except (AttributeError, IndexError, TypeError) as e:
        raise MalformedProviderOutput(f"Invalid choices in chunk: {e}") from e
    content = delta.get("content")
    if content is not None and not isinstance(content, str):
        raise MalformedProviderOutput(f"Non-string delta content: {content!r}")
    return content


class HTTPCompletionProvider(BaseCompletionProvider):
    """Completion provider for OpenAI-compatible streaming endpoints."""

    def __init__(
        self,
        settings: Optional[ApiSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        message_logger: Optional[MessageLogger] = None,
        max_document_bytes: Optional[int] = None,
    ):
        """Initialize the HTTP provider.

        Args:
            settings: Endpoint, model and sampling settings
            client: HTTP client (created lazily if not provided)
            message_logger: Optional raw message log
            max_document_bytes: Reject larger documents before sending
        """
        super().__init__(max_document_bytes=max_document_bytes)
        self._settings = settings or ApiSettings()
        self._client = client
        self._owns_client = client is None
        self._message_logger = message_logger

    @property
    def name(self) -> str:
        return "http"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    def build_body(self, request: CompletionRequest) -> dict[str, Any]:
        """Build the JSON request body."""
        body: dict[str, Any] = {
            "model": self._settings.model,
            "messages": build_completion_messages(request),
            "stream": True,
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }
        body.update(self._settings.extra_params)
        return body

    def build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
        }

    async def _run(self, request: CompletionRequest, handle: StreamHandle) -> None:
        body = self.build_body(request)
        if self._message_logger:
            self._message_logger.log_outgoing({"url": self._settings.url, "body": body})

        client = self._get_client()
        try:
            async with client.stream(
                "POST", self._settings.url, headers=self.build_headers(), json=body
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError(
                        f"HTTP request failed with status {response.status_code}: {detail[:200]}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    data = parse_sse_data(line)
                    if data is None or not data:
                        continue
                    if data == DONE_SENTINEL:
                        handle.emit_done()
                        return
                    self._handle_chunk(data, handle)
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP request failed: {e}") from e

    def _handle_chunk(self, data: str, handle: StreamHandle) -> None:
        try:
            payload = json.loads(data)
            if not isinstance(payload, dict):
                raise MalformedProviderOutput(f"Chunk is not an object: {data[:100]}")
            if self._message_logger:
                self._message_logger.log_incoming(payload)
            content = extract_delta(payload)
        except (json.JSONDecodeError, MalformedProviderOutput) as e:
            logger.warning(f"Failed to parse SSE chunk: {e}")
            return
        if content:
            handle.emit_fragment(content)

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
