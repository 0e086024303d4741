"""
Dispatcher - routes incoming chat turns

Commands start, restart or cancel flows; everything else goes to the
orchestrator according to the user's current state.
"""

import asyncio
import weakref
from typing import List, Optional, Protocol
import structlog

from shared.models.message import IncomingTurn, TurnKind
from shared.models.session import FlowState

from ..flows import messages
from .orchestrator import Orchestrator

logger = structlog.get_logger(__name__)

CMD_START = "start"
CMD_CANCEL = "cancel"


class Responder(Protocol):
    """Sends replies back to the chat user"""

    async def send(self, text: str) -> None: ...


def parse_command(text: str) -> Optional[str]:
    """"/4g@PayBot 123" -> "4g"; None when `text` is not a command"""
    stripped = (text or "").strip()
    if not stripped.startswith("/"):
        return None
    head = stripped[1:].split(maxsplit=1)[0] if len(stripped) > 1 else ""
    return head.split("@", 1)[0].lower()


class Dispatcher:
    """
    Entry point of the conversation engine

    Turns of one user are handled strictly one after another; turns of
    different users may run concurrently.
    """

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def handle(self, turn: IncomingTurn, responder: Responder) -> None:
        """Process one turn to completion and send the replies"""
        lock = self._lock_for(turn.user_id)
        async with lock:
            for text in await self._route(turn, responder):
                await responder.send(text)

    async def _route(self, turn: IncomingTurn, responder: Responder) -> List[str]:
        user_id = turn.user_id

        if turn.is_command:
            return self._command(user_id, parse_command(turn.text))

        state = self.orchestrator.current_state(user_id)

        if turn.kind == TurnKind.IMAGE:
            if state != FlowState.VOUCHER_SCAN_AWAIT_CODE:
                return [messages.SCAN_FIRST]
            await responder.send(messages.SCAN_PROCESSING)
            image_base64 = await turn.load_image()
            return await self.orchestrator.scan_image(user_id, image_base64 or "")

        if state == FlowState.NONE:
            # Stray text outside of a flow is ignored
            return []

        if turn.kind != TurnKind.TEXT:
            return [messages.TEXT_ONLY]

        return await self.orchestrator.advance(user_id, turn.text or "")

    def _command(self, user_id: str, command: Optional[str]) -> List[str]:
        logger.info("command_received", user_id=user_id, command=command)

        if command == CMD_START:
            self.orchestrator.store.clear(user_id)
            return [messages.WELCOME]

        if command == CMD_CANCEL:
            return self.orchestrator.cancel(user_id)

        flow = self.orchestrator.flows.by_command(command or "")
        if flow is None:
            return [messages.UNKNOWN_COMMAND]

        return self.orchestrator.start_flow(user_id, flow.flow_id)
