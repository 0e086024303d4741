"""
Shared data models used by the bot packages
"""

from .message import IncomingTurn, TurnKind, Outcome, OutcomeCategory
from .session import Session, FlowState, FlowId, FieldValue

__all__ = [
    "IncomingTurn",
    "TurnKind",
    "Outcome",
    "OutcomeCategory",
    "Session",
    "FlowState",
    "FlowId",
    "FieldValue",
]
