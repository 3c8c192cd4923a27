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

"""Completion provider registry.

Maps transport names to factories and picks the transport for a
configuration: the HTTP transport when an API key is configured, the
local binary otherwise.
"""

import logging
from typing import Callable, Optional

from supertab.completion.provider import BaseCompletionProvider
from supertab.completion.providers.binary import BinaryCompletionProvider
from supertab.completion.providers.http import HTTPCompletionProvider
from supertab.config import SupertabSettings
from supertab.message_log import MessageLogger

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[SupertabSettings], BaseCompletionProvider]


def _message_logger(settings: SupertabSettings) -> Optional[MessageLogger]:
    if settings.message_log_path:
        return MessageLogger(settings.message_log_path)
    return None


def _create_http(settings: SupertabSettings) -> BaseCompletionProvider:
    return HTTPCompletionProvider(
        settings=settings.api,
        message_logger=_message_logger(settings),
        max_document_bytes=settings.engine.max_document_bytes,
    )


def _create_binary(settings: SupertabSettings) -> BaseCompletionProvider:
    return BinaryCompletionProvider(
        settings=settings.binary,
        message_logger=_message_logger(settings),
        max_document_bytes=settings.engine.max_document_bytes,
    )


class CompletionProviderRegistry:
    """Registry of completion provider factories."""

    def __init__(self, register_builtins: bool = True):
        """Initialize the registry.

        Args:
            register_builtins: Register the "http" and "binary" transports
        """
        self._factories: dict[str, ProviderFactory] = {}
        if register_builtins:
            self.register_factory("http", _create_http)
            self.register_factory("binary", _create_binary)

    def register_factory(self, name: str, factory: ProviderFactory) -> None:
        """Register a factory function for a transport.

        Args:
            name: Transport name
            factory: Function building the provider from settings
        """
        if name in self._factories:
            logger.warning(f"Overwriting existing provider factory: {name}")
        self._factories[name] = factory
        logger.debug(f"Registered provider factory: {name}")

    def unregister(self, name: str) -> bool:
        """Unregister a factory.

        Returns:
            True if the factory was found and removed
        """
        return self._factories.pop(name, None) is not None

    def list_providers(self) -> list[str]:
        return sorted(self._factories)

    def create(self, name: str, settings: SupertabSettings) -> BaseCompletionProvider:
        """Build a provider by transport name.

        Raises:
            KeyError: If no factory is registered under the name
        """
        if name not in self._factories:
            raise KeyError(f"Unknown completion provider: {name}")
        return self._factories[name](settings)

    @staticmethod
    def select_name(settings: SupertabSettings) -> str:
        """Name of the transport the settings call for."""
        return "http" if settings.use_api else "binary"

    def create_for_settings(self, settings: SupertabSettings) -> BaseCompletionProvider:
        """Build the provider the settings call for."""
        name = self.select_name(settings)
        if name == "http":
            logger.info("Using API mode for completions")
        else:
            logger.info("Using binary mode for completions")
        return self.create(name, settings)
