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

"""Tests for the provider registry."""

import pytest

from supertab.completion.engine import CompletionEngine
from supertab.completion.providers import BinaryCompletionProvider, HTTPCompletionProvider
from supertab.completion.registry import CompletionProviderRegistry
from supertab.config import ApiSettings, SupertabSettings


class TestCompletionProviderRegistry:
    """Tests for CompletionProviderRegistry."""

    def test_builtins(self):
        registry = CompletionProviderRegistry()
        assert registry.list_providers() == ["binary", "http"]

    def test_empty_registry(self):
        registry = CompletionProviderRegistry(register_builtins=False)
        assert registry.list_providers() == []
        with pytest.raises(KeyError):
            registry.create("http", SupertabSettings())

    def test_api_key_selects_http(self):
        settings = SupertabSettings(api=ApiSettings(api_key="sk-abc"))

        assert CompletionProviderRegistry.select_name(settings) == "http"
        provider = CompletionProviderRegistry().create_for_settings(settings)
        assert isinstance(provider, HTTPCompletionProvider)

    def test_no_api_key_selects_binary(self):
        provider = CompletionProviderRegistry().create_for_settings(SupertabSettings())
        assert isinstance(provider, BinaryCompletionProvider)

    def test_custom_factory_and_unregister(self):
        registry = CompletionProviderRegistry()
        sentinel = object()

        registry.register_factory("binary", lambda settings: sentinel)

        assert registry.create("binary", SupertabSettings()) is sentinel
        assert registry.unregister("binary") is True
        assert registry.unregister("binary") is False
        assert registry.list_providers() == ["http"]

    def test_engine_from_settings(self):
        registry = CompletionProviderRegistry()
        chosen = []

        def factory(settings):
            provider = BinaryCompletionProvider(settings=settings.binary)
            chosen.append(provider)
            return provider

        registry.register_factory("binary", factory)
        settings = SupertabSettings()

        engine = CompletionEngine.from_settings(settings, registry=registry)

        assert engine.provider is chosen[0]
        assert engine.settings is settings
        assert not engine.is_running
