"""
Error taxonomy for the billing bot
"""

import json
from typing import Any, Dict, Optional


class BillingBotError(Exception):
    """Base class for all bot errors"""


class ValidationError(BillingBotError):
    """User input rejected by a step validator. Always recoverable."""

    def __init__(self, reason: str = "invalid input"):
        super().__init__(reason)
        self.reason = reason


class ApiError(BillingBotError):
    """Billing API call failed after all retry attempts"""

    def __init__(self, endpoint: str, last_cause: Optional[BaseException] = None):
        self.endpoint = endpoint
        self.last_cause = last_cause
        detail = str(last_cause) if last_cause is not None else "unknown error"
        super().__init__(f"{endpoint}: {detail or type(last_cause).__name__}")


class BusinessError(BillingBotError):
    """Billing API answered with a well-formed non-success status"""

    def __init__(self, response: Dict[str, Any]):
        self.response = response or {}
        super().__init__(self.detail)

    @property
    def code(self) -> Optional[str]:
        return self.response.get("code")

    @property
    def detail(self) -> str:
        """API `message` when present, otherwise the raw response"""
        return self.response.get("message") or render_raw(self.response)


class ProgrammingInvariantError(BillingBotError):
    """State machine invariant broken (missing field, orphan state)"""


def render_raw(response: Any) -> str:
    """Compact JSON rendering of an API response for diagnostics"""
    return json.dumps(response, separators=(",", ":"), ensure_ascii=False, default=str)
