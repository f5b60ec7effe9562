"""
Configuration des tests pytest.
"""
import json
import os
import sys

import pytest

# Ajoute src au path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from nim_proxy.config.loader import _clear_config_cache  # noqa: E402
from nim_proxy.config.settings import Settings, UpstreamConfig, DisplayConfig  # noqa: E402

UPSTREAM_BASE = "http://nim.test/v1"


def sse(payload) -> bytes:
    """Construit un événement SSE upstream."""
    if isinstance(payload, str):
        return f"data: {payload}\n\n".encode("utf-8")
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def delta_chunk(content=None, reasoning=None, chunk_id="chatcmpl-1"):
    """Chunk chat.completion.chunk avec un delta content/reasoning_content."""
    delta = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    return {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": None}]
    }


@pytest.fixture
def make_sse():
    return sse


@pytest.fixture
def make_delta():
    return delta_chunk


@pytest.fixture(autouse=True)
def clean_config_cache():
    """Le cache de config.loader est global: on le vide entre les tests."""
    _clear_config_cache()
    yield
    _clear_config_cache()


@pytest.fixture
def test_settings():
    """Settings de test (clé factice, upstream local)."""
    return Settings(
        upstream=UpstreamConfig(base_url=UPSTREAM_BASE, api_key="test-key"),
        display=DisplayConfig(show_reasoning=False, enable_thinking_mode=True)
    )


@pytest.fixture
def sample_messages():
    """Fixture pour des messages de test."""
    return [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "Hello, how are you?"}
    ]
