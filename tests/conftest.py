"""
Core pytest configuration and fixtures for VoiceStudio testing.

This module provides shared test fixtures, configuration, and utilities
that support the pillar-based testing architecture.
"""

import tempfile
from pathlib import Path
from typing import Dict, List
from unittest.mock import MagicMock

import pytest
from voicestudio.config import Settings
from voicestudio.models import ASSISTANT_ROLE, USER_ROLE, ChatMessage

# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[ChatMessage]:
    """Sample chat messages for testing."""
    return [
        ChatMessage(role=USER_ROLE, content="Hello, how are you?"),
        ChatMessage(
            role=ASSISTANT_ROLE,
            content="I'm doing well, thank you! How can I help you today?",
        ),
        ChatMessage(role=USER_ROLE, content="Can you explain quantum computing?"),
        ChatMessage(
            role=ASSISTANT_ROLE,
            content="Quantum computing uses quantum mechanics principles...",
        ),
    ]


@pytest.fixture
def long_history() -> List[ChatMessage]:
    """Twelve alternating messages, u0 a1 u2 ... a11."""
    return [
        ChatMessage(
            role=USER_ROLE if i % 2 == 0 else ASSISTANT_ROLE,
            content=f"{'u' if i % 2 == 0 else 'a'}{i}",
        )
        for i in range(12)
    ]


@pytest.fixture
def mock_llm_response() -> Dict:
    """Mock LLM response object."""
    return {
        "content": "This is a mock response from the LLM",
        "model": "test-model-v1",
        "usage": {"prompt_tokens": 10, "completion_tokens": 20},
    }


# ===== DIRECTORY FIXTURES =====


@pytest.fixture
def temp_dir():
    """Temporary directory for file-based tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ===== SETTINGS FIXTURES =====


@pytest.fixture
def settings(temp_dir) -> Settings:
    """Offline settings rooted in a temporary directory."""
    return Settings(data_dir=temp_dir / "data", api_key=None)


# ===== MOCK FIXTURES =====


@pytest.fixture
def mock_llm():
    """Mock LLM provider for testing."""
    mock = MagicMock()
    mock.generate_response.return_value = {"content": "Mock LLM response"}
    mock.extract_content.return_value = "Mock LLM response"
    mock.create_assistant_message.return_value = ChatMessage(
        role=ASSISTANT_ROLE, content="Mock LLM response"
    )
    mock.generate_title.return_value = "Mock Title"
    return mock


# ===== PILLAR IMPLEMENTATION FIXTURES =====


@pytest.fixture
def all_store_implementations(temp_dir):
    """All store implementations for contract testing."""
    from voicestudio import store

    return [
        ("InMemory", store.InMemory()),
        ("File", store.File(str(temp_dir / "file_store"))),
        ("SQLite", store.SQLite(str(temp_dir / "test.db"))),
    ]


# ===== APP FIXTURES =====


@pytest.fixture
def test_app(settings):
    """
    Provides a VoiceStudio instance with simple, predictable pillars.

    This fixture is ideal for integration tests where we need a running app
    but want to avoid external dependencies like filesystems or actual APIs.
    """
    from voicestudio import VoiceStudio
    from voicestudio.audio import EchoSpeech, EchoTranscriber
    from voicestudio.llm import Echo
    from voicestudio.store import InMemory

    app = VoiceStudio(
        store=InMemory(),
        llm=Echo(),
        speech=EchoSpeech(),
        transcriber=EchoTranscriber(),
        settings=settings,
    )
    yield app
    app.close()


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
