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

"""Raw transport message log.

Appends every outgoing request and incoming chunk to a plain text file
so a user can inspect what was exchanged with a provider.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Union

logger = logging.getLogger(__name__)

SEPARATOR = "=" * 80


class MessageLogger:
    """Append-only log of transport messages."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def log_outgoing(self, message: Any) -> None:
        self._write("OUTGOING", message)

    def log_incoming(self, message: Any) -> None:
        self._write("INCOMING", message)

    def _write(self, direction: str, message: Any) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        body = json.dumps(message, indent=2, default=str, ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(f"\n{SEPARATOR}\n{direction} @ {timestamp}\n{SEPARATOR}\n{body}\n")
        except OSError as e:
            logger.warning(f"Failed to write message log {self.path}: {e}")

    def read(self) -> str:
        """Return the log contents ("" if the file does not exist)."""
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")

    def clear(self) -> None:
        """Truncate the log file."""
        if self.path.exists():
            self.path.write_text("", encoding="utf-8")
