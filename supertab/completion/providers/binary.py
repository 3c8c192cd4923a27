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

"""Local subprocess completion provider.

Talks to a long-lived completion binary over stdio. Each request is one
JSON line on stdin:

    {"kind": "state_update", "newId": "7", "updates": [
        {"kind": "file_update", "path": "a.py", "content": "..."},
        {"kind": "cursor_update", "path": "a.py", "offset": 42},
        {"kind": "context_update", "text": "..."}]}

The binary answers with lines prefixed by ``SM-MESSAGE``:

    SM-MESSAGE {"kind": "response", "stateId": "7", "items": [{"kind": "text", "text": "x"}]}
    SM-MESSAGE {"kind": "response", "stateId": "7", "items": [{"kind": "end"}]}
    SM-MESSAGE {"kind": "error", "stateId": "7", "message": "..."}
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from supertab.completion.errors import MalformedProviderOutput, TransportError
from supertab.completion.protocol import (
    CompletionRequest,
    FinishEdit,
    Text,
    item_from_wire,
)
from supertab.completion.provider import BaseCompletionProvider, StreamHandle
from supertab.config import BinarySettings
from supertab.message_log import MessageLogger

logger = logging.getLogger(__name__)

MESSAGE_PREFIX = "SM-MESSAGE "
STREAM_LIMIT = 4 * 1024 * 1024


class BinaryCompletionProvider(BaseCompletionProvider):
    """Completion provider backed by a local subprocess."""

    def __init__(
        self,
        settings: Optional[BinarySettings] = None,
        message_logger: Optional[MessageLogger] = None,
        max_document_bytes: Optional[int] = None,
    ):
        """Initialize the binary provider.

        Args:
            settings: Command line of the completion binary
            message_logger: Optional raw message log
            max_document_bytes: Reject larger documents before sending
        """
        super().__init__(max_document_bytes=max_document_bytes)
        self._settings = settings or BinarySettings()
        self._message_logger = message_logger
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, StreamHandle] = {}
        self._start_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "binary"

    @property
    def is_running(self) -> bool:
        """Check if the subprocess is running."""
        return self._process is not None and self._process.returncode is None

    async def _ensure_process(self) -> asyncio.subprocess.Process:
        async with self._start_lock:
            if self.is_running:
                return self._process

            cmd = self._settings.command + self._settings.args
            logger.info(f"Starting completion binary: {' '.join(cmd)}")
            try:
                self._process = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                    limit=STREAM_LIMIT,
                )
            except (FileNotFoundError, PermissionError) as e:
                raise TransportError(f"Completion binary not available: {e}") from e

            self._reader_task = asyncio.get_running_loop().create_task(
                self._read_messages(self._process)
            )
            return self._process

    def build_message(self, request: CompletionRequest) -> Dict[str, Any]:
        """Build the state update sent for a request."""
        updates: List[Dict[str, Any]] = [
            {
                "kind": "file_update",
                "path": request.file_identity,
                "content": request.document_text,
            },
            {
                "kind": "cursor_update",
                "path": request.file_identity,
                "offset": request.cursor_offset,
            },
        ]
        if request.enrichment_text:
            updates.append({"kind": "context_update", "text": request.enrichment_text})
        return {"kind": "state_update", "newId": str(request.request_id), "updates": updates}

    async def _run(self, request: CompletionRequest, handle: StreamHandle) -> None:
        process = await self._ensure_process()
        key = str(request.request_id)
        self._pending[key] = handle
        handle.add_cancel_callback(lambda: self._pending.pop(key, None))

        try:
            await self._write_message(process, self.build_message(request))
            await handle.wait_terminated()
        finally:
            self._pending.pop(key, None)

    async def _write_message(
        self, process: asyncio.subprocess.Process, message: Dict[str, Any]
    ) -> None:
        if process.stdin is None:
            raise TransportError("Completion binary has no stdin")
        if self._message_logger:
            self._message_logger.log_outgoing(message)
        try:
            process.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportError(f"Failed to write to completion binary: {e}") from e

    async def _read_messages(self, process: asyncio.subprocess.Process) -> None:
        """Read messages from the binary until it exits."""
        if process.stdout is None:
            return
        try:
            while True:
                raw = await process.stdout.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line.startswith(MESSAGE_PREFIX):
                    if line:
                        logger.debug(f"Completion binary: {line}")
                    continue
                try:
                    self._handle_message(json.loads(line[len(MESSAGE_PREFIX) :]))
                except (json.JSONDecodeError, MalformedProviderOutput) as e:
                    logger.warning(f"Dropping malformed message from completion binary: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error reading from completion binary: {e}")

        # process gone: fail whatever is still waiting
        for handle in list(self._pending.values()):
            handle.emit_error("Completion binary exited")
        self._pending.clear()

    def _handle_message(self, message: Dict[str, Any]) -> None:
        if not isinstance(message, dict):
            raise MalformedProviderOutput(f"Message is not an object: {message!r}")
        if self._message_logger:
            self._message_logger.log_incoming(message)

        kind = message.get("kind")
        handle = self._pending.get(str(message.get("stateId")))
        if kind == "response":
            if handle is None:
                return
            items = message.get("items")
            if not isinstance(items, list):
                raise MalformedProviderOutput(f"Response without items: {message!r}")
            for data in items:
                try:
                    item = item_from_wire(data)
                except MalformedProviderOutput as e:
                    logger.warning(f"Dropping response item: {e}")
                    continue
                if isinstance(item, Text):
                    handle.emit_fragment(item.text)
                elif isinstance(item, FinishEdit):
                    handle.emit_done()
                else:
                    handle.emit_item(item)
        elif kind == "error":
            if handle is not None:
                handle.emit_error(str(message.get("message", "Unknown error")))
        else:
            logger.debug(f"Ignoring completion binary message: {kind}")

    async def aclose(self) -> None:
        """Stop the completion binary."""
        for handle in list(self._pending.values()):
            handle.cancel()
        self._pending.clear()

        process = self._process
        self._process = None
        if process is not None and process.returncode is None:
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=5)
            except asyncio.TimeoutError:
                process.kill()
            except ProcessLookupError:
                pass

        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
