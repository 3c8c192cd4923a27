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

"""Configuration for the completion engine and its transports.

Settings are pydantic models so YAML files and keyword overrides are
validated the same way. Example file:

```yaml
log_level: debug
ignore_filetypes: [md, txt]
engine:
  time_budget_ms: 3000
api:
  api_key: sk-...
  model: gpt-4o-mini
context:
  max_changes: 3
```
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 1,
}


class EngineSettings(BaseModel):
    """Timing and retention knobs of the completion engine."""

    tick_interval_ms: float = Field(default=25, description="Polling tick interval")
    time_budget_ms: float = Field(
        default=5000, description="Stop ticking this long after the last submission"
    )
    retention_window: int = Field(default=50, description="Number of recent states kept")
    max_document_bytes: int = Field(
        default=10_000_000, description="Documents above this size are never sent"
    )


class ApiSettings(BaseModel):
    """OpenAI-compatible streaming HTTP endpoint."""

    url: str = Field(default="https://api.openai.com/v1/chat/completions")
    api_key: str = Field(default="", description="Bearer token; empty selects the binary")
    model: str = Field(default="gpt-3.5-turbo")
    max_tokens: int = Field(default=100)
    temperature: float = Field(default=0.2)
    extra_params: Dict[str, Any] = Field(
        default_factory=dict, description="Merged into the request body"
    )
    timeout: float = Field(default=30.0, description="HTTP timeout in seconds")


class BinarySettings(BaseModel):
    """Local completion subprocess speaking JSON lines over stdio."""

    command: List[str] = Field(default_factory=lambda: ["sm-agent"])
    args: List[str] = Field(default_factory=lambda: ["stdio"])


class ContextSettings(BaseModel):
    """Change-history enrichment."""

    enabled: bool = Field(default=True)
    max_changes: int = Field(default=5, description="Keep the last N changes")
    max_diff_lines: int = Field(default=50, description="Truncate each diff")
    include_timestamps: bool = Field(default=False)


class SupertabSettings(BaseModel):
    """Top-level settings."""

    log_level: str = Field(default="info")
    ignore_filetypes: List[str] = Field(default_factory=list)
    message_log_path: Optional[str] = Field(
        default=None, description="Append raw transport messages to this file"
    )
    engine: EngineSettings = Field(default_factory=EngineSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    binary: BinarySettings = Field(default_factory=BinarySettings)
    context: ContextSettings = Field(default_factory=ContextSettings)

    @property
    def use_api(self) -> bool:
        """Whether the HTTP transport is selected."""
        return bool(self.api.api_key)

    def is_ignored(self, file_identity: str) -> bool:
        """Check whether a file's extension is in ignore_filetypes."""
        if not self.ignore_filetypes:
            return False
        suffix = Path(file_identity).suffix.lstrip(".").lower()
        return suffix in {ft.lower().lstrip(".") for ft in self.ignore_filetypes}


def load_settings(
    path: Optional[Union[str, Path]] = None, **overrides: Any
) -> SupertabSettings:
    """Load settings from a YAML file.

    Args:
        path: YAML file (defaults are used if None or missing)
        **overrides: Top-level keys that replace values from the file

    Returns:
        Validated settings
    """
    data: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                logger.warning(f"Ignoring settings file {path}: expected a mapping")
                data = {}
        else:
            logger.warning(f"Settings file not found: {path}, using defaults")
    data.update(overrides)
    return SupertabSettings.model_validate(data)


def configure_logging(level: str = "info") -> logging.Logger:
    """Set the level of the package logger from a config level name."""
    package_logger = logging.getLogger("supertab")
    package_logger.setLevel(LOG_LEVELS.get(level.lower(), logging.INFO))
    return package_logger
