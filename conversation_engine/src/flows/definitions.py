"""
Flow definitions

Every dialogue is described as data: an ordered list of steps (one field per
step) and a terminal action that runs once the last field is collected.
Check-then-act descriptors carry everything the orchestrator needs to talk
to the billing API and word the outcome, so no flow has its own code path.
"""

from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

from billing_api.src.endpoints import BillingEndpoint
from shared.exceptions import ProgrammingInvariantError
from shared.models.session import FlowId, FlowState

from . import messages
from .validators import non_empty, numeric_nd, positive_amount


class TerminalKind(str, Enum):
    """What happens when the last step of a flow is answered"""
    LOGIN = "login"
    CHECK_THEN_ACT = "check_then_act"
    VOUCHER_BY_TYPE = "voucher_by_type"
    VOUCHER_SCAN = "voucher_scan"


class Step(BaseModel):
    """One question of a flow"""
    model_config = ConfigDict(frozen=True)

    state: FlowState
    prompt: str
    field: str = Field(..., description="Session field filled by the answer")
    validator: Callable[[str], Any]
    error_message: str


class BillingCall(BaseModel):
    """One outbound billing API call"""
    model_config = ConfigDict(frozen=True)

    endpoint: BillingEndpoint
    required_fields: Tuple[str, ...] = ()
    method: str = "post"
    service: Optional[str] = Field(None, description="Fixed `service` qualifier of check calls")


class CheckThenAct(BaseModel):
    """
    Check the service number, then pay or redeem

    The act payload is assembled from `payload_fields` (payload key -> context
    key, where the context is the session fields plus `ncli` and
    `service_type` taken from the check) and `static_payload`. Context keys
    missing from the session fall back to `defaults`.
    """
    model_config = ConfigDict(frozen=True)

    label: str
    check: BillingCall
    act: BillingCall

    payload_fields: Dict[str, str]
    static_payload: Dict[str, Any] = Field(default_factory=dict)
    defaults: Dict[str, Any] = Field(default_factory=dict)

    # Service type: fixed value, or read from the check INFO block
    service_type: Optional[str] = None
    service_type_key: Optional[str] = None
    service_type_default: Optional[str] = None

    # Success needs code "0" and, when set, a non-empty key in the response
    success_key: Optional[str] = None
    known_failure_codes: FrozenSet[str] = frozenset()

    success_message: str
    known_failure_message: Optional[str] = None
    unknown_failure_message: str
    check_failure_message: str


class FlowDefinition(BaseModel):
    """A complete dialogue"""
    model_config = ConfigDict(frozen=True)

    flow_id: FlowId
    command: Optional[str] = None
    steps: Tuple[Step, ...]
    terminal: TerminalKind
    action: Optional[CheckThenAct] = None
    error_message: str = messages.GENERIC_ERROR

    @property
    def initial_state(self) -> FlowState:
        return self.steps[0].state

    @property
    def states(self) -> FrozenSet[FlowState]:
        return frozenset(step.state for step in self.steps)

    def next_step(self, state: FlowState) -> Optional[Step]:
        """Step following `state`, None when `state` is the terminal one"""
        for index, step in enumerate(self.steps):
            if step.state == state:
                return self.steps[index + 1] if index + 1 < len(self.steps) else None
        raise ProgrammingInvariantError(f"{state.value} is not part of flow {self.flow_id.value}")


# ============================================
# CHECK-THEN-ACT DESCRIPTORS
# ============================================

PAYMENT_STATIC = {"ip": "0.0.0.0", "mode": "Edahabia", "lang": "fr"}
PAYMENT_FIELDS = {"nd": "nd", "ncli": "ncli", "type": "service_type", "montant": "amount"}

# Fixed amount of a landline invoice payment
DEFAULT_PSTN_AMOUNT = "595.0"

VOUCHER_REJECTED_CODE = "118100548"


def _payment(label: str, check: BillingCall, act: BillingCall, **overrides) -> CheckThenAct:
    params: Dict[str, Any] = dict(
        label=label,
        check=check,
        act=act,
        payload_fields=PAYMENT_FIELDS,
        static_payload={**PAYMENT_STATIC, "type_client": None},
        success_key="message",
        success_message=messages.PAYMENT_SUCCESS,
        unknown_failure_message=messages.PAYMENT_FAILED,
        check_failure_message=messages.PAYMENT_CHECK_FAILED,
    )
    params.update(overrides)
    return CheckThenAct(**params)


PSTN_PAYMENT = _payment(
    "PSTN",
    check=BillingCall(endpoint=BillingEndpoint.CHECK_ND_FACT, required_fields=("nd",), service="Dus"),
    act=BillingCall(endpoint=BillingEndpoint.PAY_FACT, required_fields=("nd",)),
    service_type="PSTN",
    defaults={"amount": DEFAULT_PSTN_AMOUNT},
)

LTE_PAYMENT = _payment(
    "4G LTE",
    check=BillingCall(endpoint=BillingEndpoint.CHECK_ND_LTE, required_fields=("nd",)),
    act=BillingCall(endpoint=BillingEndpoint.PAY_LTE, required_fields=("nd", "amount")),
    service_type="4G LTE",
)

ADSL_PAYMENT = _payment(
    "ADSL",
    check=BillingCall(endpoint=BillingEndpoint.CHECK_ND_ADSL, required_fields=("nd",), service="Paiement"),
    act=BillingCall(endpoint=BillingEndpoint.PAY_ADSL, required_fields=("nd", "amount")),
    static_payload={**PAYMENT_STATIC, "type_client": "Residential"},
    service_type_key="type1",
    service_type_default="FTTH",
)

ADSL_VOUCHER = CheckThenAct(
    label="ADSL/FTTH",
    check=BillingCall(endpoint=BillingEndpoint.CHECK_ND_ADSL, required_fields=("nd",), service="Paiement"),
    act=BillingCall(endpoint=BillingEndpoint.VOUCHER_ADSL, required_fields=("nd", "voucher_code")),
    payload_fields={"nd": "nd", "ncli": "ncli", "type": "service_type", "voucher": "voucher_code"},
    static_payload={"ip": "0.0.0.0"},
    service_type="FTTH",
    known_failure_codes=frozenset({VOUCHER_REJECTED_CODE}),
    success_message=messages.VOUCHER_SUCCESS,
    known_failure_message=messages.VOUCHER_REJECTED,
    unknown_failure_message=messages.VOUCHER_RESULT,
    check_failure_message=messages.VOUCHER_CHECK_FAILED,
)

# /voucher redeems like ADSL_VOUCHER but reports a failed check with the raw response
MANUAL_VOUCHER = ADSL_VOUCHER.model_copy(update={"check_failure_message": messages.VOUCHER_NOT_FOUND})

LTE_VOUCHER = CheckThenAct(
    label="4G LTE",
    check=BillingCall(endpoint=BillingEndpoint.CHECK_ND_LTE, required_fields=("nd",)),
    act=BillingCall(endpoint=BillingEndpoint.VOUCHER_LTE, required_fields=("nd", "voucher_code")),
    payload_fields={"nd": "nd", "voucher": "voucher_code"},
    static_payload={"ip": "0.0.0.0"},
    known_failure_codes=frozenset({VOUCHER_REJECTED_CODE}),
    success_message=messages.VOUCHER_SUCCESS,
    known_failure_message=messages.VOUCHER_REJECTED,
    unknown_failure_message=messages.VOUCHER_RESULT,
    check_failure_message=messages.VOUCHER_CHECK_FAILED,
)

# Normalized voucher type -> redemption
VOUCHER_TYPE_ADSL = "ADSL"
VOUCHER_TYPE_LTE = "4G"

VOUCHER_REDEMPTIONS: Dict[str, CheckThenAct] = {
    VOUCHER_TYPE_ADSL: ADSL_VOUCHER,
    VOUCHER_TYPE_LTE: LTE_VOUCHER,
}


def normalize_voucher_type(raw: str) -> str:
    """Scan endpoint types ("ADSL 1000", "FTTH", "4G 2000"...) -> ADSL | 4G"""
    upper = (raw or "").upper()
    if "ADSL" in upper or "FTTH" in upper:
        return VOUCHER_TYPE_ADSL
    return VOUCHER_TYPE_LTE


# ============================================
# FLOWS
# ============================================

def _nd_step(state: FlowState, prompt: str, error_message: str) -> Step:
    return Step(state=state, prompt=prompt, field="nd", validator=numeric_nd, error_message=error_message)


def _amount_step(state: FlowState) -> Step:
    return Step(
        state=state,
        prompt=messages.PROMPT_AMOUNT,
        field="amount",
        validator=positive_amount,
        error_message=messages.INVALID_AMOUNT,
    )


FLOWS: Dict[FlowId, FlowDefinition] = {
    FlowId.LOGIN: FlowDefinition(
        flow_id=FlowId.LOGIN,
        command="login",
        steps=(
            Step(
                state=FlowState.LOGIN_AWAIT_ND,
                prompt=messages.PROMPT_LOGIN_ND,
                field="nd",
                validator=non_empty,
                error_message=messages.INVALID_LOGIN_ND,
            ),
            Step(
                state=FlowState.LOGIN_AWAIT_PASSWORD,
                prompt=messages.PROMPT_PASSWORD,
                field="password",
                validator=non_empty,
                error_message=messages.INVALID_PASSWORD,
            ),
        ),
        terminal=TerminalKind.LOGIN,
        error_message=messages.LOGIN_ERROR,
    ),
    FlowId.PSTN_PAYMENT: FlowDefinition(
        flow_id=FlowId.PSTN_PAYMENT,
        command="fact",
        steps=(
            _nd_step(FlowState.PSTN_AWAIT_ND, messages.PROMPT_PSTN_ND, messages.INVALID_PSTN_ND),
        ),
        terminal=TerminalKind.CHECK_THEN_ACT,
        action=PSTN_PAYMENT,
        error_message=messages.PAYMENT_ERROR,
    ),
    FlowId.LTE_PAYMENT: FlowDefinition(
        flow_id=FlowId.LTE_PAYMENT,
        command="4g",
        steps=(
            _nd_step(FlowState.LTE_AWAIT_ND, messages.PROMPT_LTE_ND, messages.INVALID_LTE_ND),
            _amount_step(FlowState.LTE_AWAIT_AMOUNT),
        ),
        terminal=TerminalKind.CHECK_THEN_ACT,
        action=LTE_PAYMENT,
        error_message=messages.PAYMENT_ERROR,
    ),
    FlowId.ADSL_PAYMENT: FlowDefinition(
        flow_id=FlowId.ADSL_PAYMENT,
        command="adsl",
        steps=(
            _nd_step(FlowState.ADSL_AWAIT_ND, messages.PROMPT_ADSL_ND, messages.INVALID_ADSL_ND),
            _amount_step(FlowState.ADSL_AWAIT_AMOUNT),
        ),
        terminal=TerminalKind.CHECK_THEN_ACT,
        action=ADSL_PAYMENT,
        error_message=messages.PAYMENT_ERROR,
    ),
    FlowId.VOUCHER: FlowDefinition(
        flow_id=FlowId.VOUCHER,
        command="voucher",
        steps=(
            _nd_step(FlowState.VOUCHER_AWAIT_ND, messages.PROMPT_VOUCHER_ND, messages.INVALID_ADSL_ND),
            Step(
                state=FlowState.VOUCHER_AWAIT_CODE,
                prompt=messages.PROMPT_VOUCHER_CODE,
                field="voucher_code",
                validator=non_empty,
                error_message=messages.INVALID_VOUCHER_CODE,
            ),
        ),
        terminal=TerminalKind.CHECK_THEN_ACT,
        action=MANUAL_VOUCHER,
        error_message=messages.VOUCHER_ERROR,
    ),
    FlowId.VOUCHER_SCAN: FlowDefinition(
        flow_id=FlowId.VOUCHER_SCAN,
        command="scanvoucher",
        steps=(
            Step(
                state=FlowState.VOUCHER_SCAN_AWAIT_CODE,
                prompt=messages.PROMPT_SCAN,
                field="voucher_code",
                validator=non_empty,
                error_message=messages.INVALID_VOUCHER_CODE,
            ),
        ),
        terminal=TerminalKind.VOUCHER_SCAN,
        error_message=messages.SCAN_ERROR,
    ),
    FlowId.APPLY_VOUCHER: FlowDefinition(
        flow_id=FlowId.APPLY_VOUCHER,
        steps=(
            _nd_step(FlowState.APPLY_VOUCHER_AWAIT_ND, messages.PROMPT_SERVICE_ND, messages.INVALID_SERVICE_ND),
        ),
        terminal=TerminalKind.VOUCHER_BY_TYPE,
        error_message=messages.VOUCHER_ERROR,
    ),
}


class FlowRegistry:
    """Lookup of flows by id, command and state"""

    def __init__(self, flows: Dict[FlowId, FlowDefinition]):
        self._flows = dict(flows)
        self._by_state: Dict[FlowState, FlowDefinition] = {}
        self._by_command: Dict[str, FlowDefinition] = {}

        for flow in self._flows.values():
            if flow.terminal == TerminalKind.CHECK_THEN_ACT and flow.action is None:
                raise ProgrammingInvariantError(f"flow {flow.flow_id.value} has no check-then-act descriptor")

            for step in flow.steps:
                if step.state == FlowState.NONE:
                    raise ProgrammingInvariantError("NONE cannot be a flow step")
                if step.state in self._by_state:
                    raise ProgrammingInvariantError(f"state {step.state.value} used by two flows")
                self._by_state[step.state] = flow

            if flow.command:
                self._by_command[flow.command] = flow

    def get(self, flow_id: FlowId) -> FlowDefinition:
        return self._flows[flow_id]

    def by_command(self, command: str) -> Optional[FlowDefinition]:
        return self._by_command.get(command)

    def for_state(self, state: FlowState) -> FlowDefinition:
        """Flow owning `state`"""
        try:
            return self._by_state[state]
        except KeyError:
            raise ProgrammingInvariantError(f"no flow declares state {state.value}")

    def step_for(self, state: FlowState) -> Tuple[FlowDefinition, Step]:
        flow = self.for_state(state)
        for step in flow.steps:
            if step.state == state:
                return flow, step
        raise ProgrammingInvariantError(f"no step for state {state.value}")

    @property
    def commands(self) -> List[str]:
        return list(self._by_command)

    @property
    def states(self) -> FrozenSet[FlowState]:
        return frozenset(self._by_state)


registry = FlowRegistry(FLOWS)
