"""Shared fixtures for conductor tests."""

import os

import pytest

from conductor.config import Settings, get_settings
from conductor.pipeline.context import (
    AgentContext,
    ContextChain,
    PlatformContext,
    UserInputContext,
    now_ms,
)
from conductor.providers.stub import InMemoryMemoryProvider, StubModelProvider
from conductor.telemetry import RecordingEventSink

os.environ["ENVIRONMENT"] = "development"


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with a short poll interval and no .env lookup."""
    return Settings(_env_file=None, queue_poll_interval_ms=5)


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def stub_provider() -> StubModelProvider:
    return StubModelProvider()


@pytest.fixture
def memory_provider() -> InMemoryMemoryProvider:
    return InMemoryMemoryProvider()


def make_user_input(
    message: str = "hello",
    user: str = "alice",
    platform: str = "plugin-chat",
) -> UserInputContext:
    timestamp = now_ms()
    return UserInputContext(
        id=f"{platform}-{timestamp}",
        plugin_id=platform,
        action="receive_message",
        content=message,
        timestamp=timestamp,
        raw_message=message,
        user=user,
    )


def make_context(
    message: str = "hello",
    user: str = "alice",
    platform: str = "plugin-chat",
    platform_context: PlatformContext | None = None,
) -> AgentContext:
    return AgentContext(
        context_chain=ContextChain([make_user_input(message, user, platform)]),
        conversation_id="conv-test",
        platform_context=platform_context,
    )


@pytest.fixture(name="make_user_input")
def make_user_input_fixture():
    return make_user_input


@pytest.fixture(name="make_context")
def make_context_fixture():
    return make_context
