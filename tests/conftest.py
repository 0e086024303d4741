"""
Pytest configuration and fixtures
"""

import os
import sys
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

# Set test environment variables
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("LOG_FORMAT", "console")

from billing_api.src.endpoints import BillingEndpoint  # noqa: E402
from conversation_engine.src import Dispatcher, InMemorySessionStore, Orchestrator  # noqa: E402


class RecordingBillingApi:
    """
    Fake BillingApiClient

    Responses are queued per endpoint; a queued exception is raised instead
    of returned. Every call is recorded as (endpoint, payload, method, token).
    """

    def __init__(self):
        self.responses: Dict[BillingEndpoint, List[Any]] = {}
        self.calls: List[Tuple[BillingEndpoint, Optional[Dict[str, Any]], str, Optional[str]]] = []

    def reply(self, endpoint: BillingEndpoint, *responses: Any) -> "RecordingBillingApi":
        self.responses.setdefault(endpoint, []).extend(responses)
        return self

    async def call(self, endpoint, payload=None, method="post", token=None):
        self.calls.append((endpoint, payload, method, token))
        queued = self.responses.get(endpoint)
        if not queued:
            raise AssertionError(f"unexpected call to {endpoint}")
        response = queued.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def endpoints(self) -> List[BillingEndpoint]:
        return [call[0] for call in self.calls]

    def payload_for(self, endpoint: BillingEndpoint) -> Optional[Dict[str, Any]]:
        for called, payload, _, _ in self.calls:
            if called == endpoint:
                return payload
        return None

    async def close(self):
        pass


class RecordingResponder:
    """Collects replies instead of sending them"""

    def __init__(self):
        self.sent: List[str] = []

    async def send(self, text: str) -> None:
        self.sent.append(text)


@pytest.fixture
def api():
    return RecordingBillingApi()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def orchestrator(api, store):
    return Orchestrator(api=api, store=store)


@pytest.fixture
def dispatcher(orchestrator):
    return Dispatcher(orchestrator)


@pytest.fixture
def responder():
    return RecordingResponder()
