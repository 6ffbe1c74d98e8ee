"""
Pytest Configuration and Shared Fixtures
=========================================
Common fixtures for the anthropic_api tests. No test talks to the network.
"""

import json

import pytest
from unittest.mock import Mock

import requests

from anthropic_api import AnthropicConfig


@pytest.fixture
def config():
    """Config pointing at a fake host."""
    return AnthropicConfig(api_key="test-key-123", base_url="https://api.test")


@pytest.fixture
def response_payload():
    """A typical /v1/messages response body."""
    return {
        "id": "msg_01",
        "model": "claude-3-5-sonnet-20241022",
        "role": "assistant",
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "type": "message",
        "usage": {"input_tokens": 12, "output_tokens": 5},
        "content": [{"type": "text", "text": "Paris."}],
    }


@pytest.fixture
def model_payload():
    return {
        "id": "claude-3-5-sonnet-20241022",
        "display_name": "Claude 3.5 Sonnet (New)",
        "type": "model",
        "created_at": "2024-10-22T00:00:00Z",
    }


@pytest.fixture
def mock_session():
    """Mock requests.Session; set the reply with ``mock_session.reply(status, body)``."""
    session = Mock(spec=requests.Session)

    def reply(status_code, body):
        text = body if isinstance(body, str) else json.dumps(body)
        session.request.return_value = Mock(status_code=status_code, text=text)

    session.reply = reply
    return session


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests without external deps")
