"""
Message models passed between the transport and the conversation engine
"""

from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional
from pydantic import BaseModel, Field

from .session import FieldValue, FlowId


class TurnKind(str, Enum):
    """Kinds of incoming chat turns"""
    TEXT = "text"
    IMAGE = "image"
    OTHER = "other"  # stickers, documents, voice...


class IncomingTurn(BaseModel):
    """One message received from a chat user"""

    user_id: str = Field(..., description="Chat participant ID")
    kind: TurnKind = Field(default=TurnKind.TEXT)
    text: Optional[str] = Field(None, description="Message text")
    image_base64: Optional[str] = Field(None, description="Base64 encoded photo")

    # Fetches the photo on demand; returns None when the download fails
    image_loader: Optional[Callable[[], Awaitable[Optional[str]]]] = Field(default=None, exclude=True)

    @property
    def is_command(self) -> bool:
        return self.kind == TurnKind.TEXT and (self.text or "").lstrip().startswith("/")

    async def load_image(self) -> Optional[str]:
        """Base64 photo, downloading it first if the transport deferred that"""
        if self.image_base64 is None and self.image_loader is not None:
            self.image_base64 = await self.image_loader()
        return self.image_base64


class OutcomeCategory(str, Enum):
    """How a terminal action ended"""
    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"
    CHECK_FAILED = "check_failed"


class Outcome(BaseModel):
    """Result of a terminal action"""

    category: OutcomeCategory
    messages: List[str] = Field(default_factory=list)

    # Set when the action hands the user over to another flow
    next_flow: Optional[FlowId] = None
    next_fields: Dict[str, FieldValue] = Field(default_factory=dict)
