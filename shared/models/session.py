"""
Session models for tracking where a user is in a billing dialogue
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Union
from pydantic import BaseModel, Field


FieldValue = Union[str, float]


class FlowId(str, Enum):
    """Dialogues the bot can walk a user through"""
    LOGIN = "login"
    PSTN_PAYMENT = "pstn_payment"
    LTE_PAYMENT = "lte_payment"
    ADSL_PAYMENT = "adsl_payment"
    VOUCHER = "voucher"
    VOUCHER_SCAN = "voucher_scan"
    APPLY_VOUCHER = "apply_voucher"


class FlowState(str, Enum):
    """Position of a user inside a flow"""
    NONE = "none"  # No active flow

    LOGIN_AWAIT_ND = "login_await_nd"
    LOGIN_AWAIT_PASSWORD = "login_await_password"

    PSTN_AWAIT_ND = "pstn_await_nd"

    LTE_AWAIT_ND = "lte_await_nd"
    LTE_AWAIT_AMOUNT = "lte_await_amount"

    ADSL_AWAIT_ND = "adsl_await_nd"
    ADSL_AWAIT_AMOUNT = "adsl_await_amount"

    VOUCHER_AWAIT_ND = "voucher_await_nd"
    VOUCHER_AWAIT_CODE = "voucher_await_code"

    VOUCHER_SCAN_AWAIT_CODE = "voucher_scan_await_code"

    # Shared by both voucher entry paths
    APPLY_VOUCHER_AWAIT_ND = "apply_voucher_await_nd"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """Dialogue state of one chat user"""

    user_id: str = Field(..., description="Chat participant ID")
    state: FlowState = Field(default=FlowState.NONE)

    # Answers collected so far: nd, password, amount, voucher_code, voucher_type
    fields: Dict[str, FieldValue] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=_utcnow)
    last_activity_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_active(self) -> bool:
        return self.state != FlowState.NONE

    def touch(self) -> None:
        self.last_activity_at = _utcnow()

    model_config = {
        "json_schema_extra": {
            "example": {
                "user_id": "123456789",
                "state": "lte_await_amount",
                "fields": {"nd": "0661234567"},
            }
        }
    }
