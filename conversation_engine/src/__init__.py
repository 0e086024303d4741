"""
Conversation Engine Package

State machine and payment orchestration behind the chat bot
"""

from .core.dispatcher import Dispatcher, Responder
from .core.orchestrator import Orchestrator
from .flows.definitions import FLOWS, FlowRegistry, registry
from .storage.session_store import InMemorySessionStore, SessionStore

__all__ = [
    "Dispatcher",
    "Responder",
    "Orchestrator",
    "FLOWS",
    "FlowRegistry",
    "registry",
    "InMemorySessionStore",
    "SessionStore",
]
