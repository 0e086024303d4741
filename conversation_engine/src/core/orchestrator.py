"""
Orchestrator - conversation state machine and payment orchestration

Validates each answer against the current flow step, advances the session,
and once a flow is complete runs its terminal action against the billing API.
"""

from typing import Any, Dict, List, Mapping, Optional
import structlog

from billing_api.src.client import BillingApiClient
from billing_api.src.endpoints import BillingEndpoint, SUCCESS_CODE
from shared.exceptions import BusinessError, ProgrammingInvariantError, ValidationError, render_raw
from shared.models.message import Outcome, OutcomeCategory
from shared.models.session import FieldValue, FlowId, FlowState, Session

from ..flows import messages
from ..flows.definitions import (
    CheckThenAct,
    FlowDefinition,
    FlowRegistry,
    TerminalKind,
    VOUCHER_REDEMPTIONS,
    VOUCHER_TYPE_ADSL,
    normalize_voucher_type,
    registry as default_registry,
)
from ..storage.session_store import SessionStore

logger = structlog.get_logger(__name__)


def format_amount(value: FieldValue) -> str:
    """1000.0 -> "1000", 1000.5 -> "1000.5"; strings pass through"""
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def _dig(data: Any, *keys: str) -> Any:
    """Nested dict lookup that tolerates missing levels"""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class Orchestrator:
    """
    Drives one user's dialogue turn by turn

    Responsible for:
    - Starting flows and cancelling them
    - Validating answers and moving between states
    - Running terminal actions (login, check-then-act, voucher scan)
    - Clearing the session whenever a flow ends, whatever the outcome
    """

    def __init__(
        self,
        api: BillingApiClient,
        store: SessionStore,
        flows: Optional[FlowRegistry] = None,
    ):
        self.api = api
        self.store = store
        self.flows = flows or default_registry

    # ============================================
    # SESSION LIFECYCLE
    # ============================================

    def start_flow(
        self,
        user_id: str,
        flow_id: FlowId,
        fields: Optional[Mapping[str, FieldValue]] = None,
    ) -> List[str]:
        """Put the user at the first step of a flow, replacing any active one"""
        flow = self.flows.get(flow_id)
        session = Session(user_id=user_id, state=flow.initial_state, fields=dict(fields or {}))
        self.store.put(user_id, session)

        logger.info("flow_started", user_id=user_id, flow=flow_id.value, state=session.state.value)
        return [flow.steps[0].prompt]

    def cancel(self, user_id: str) -> List[str]:
        session = self.store.get(user_id)
        if not session.is_active:
            return [messages.NOTHING_TO_CANCEL]

        self.store.clear(user_id)
        logger.info("flow_cancelled", user_id=user_id, state=session.state.value)
        return [messages.CANCELLED]

    def current_state(self, user_id: str) -> FlowState:
        return self.store.get(user_id).state

    # ============================================
    # TURNS
    # ============================================

    async def advance(self, user_id: str, text: str) -> List[str]:
        """
        Handle a text answer for the user's current step

        Returns:
            Messages to send back. An invalid answer returns the step's
            error message and leaves the session untouched.
        """
        session = self.store.get(user_id)
        if not session.is_active:
            return []

        try:
            flow, step = self.flows.step_for(session.state)
        except ProgrammingInvariantError as e:
            return self._abort(user_id, e)

        try:
            value = step.validator(text)
        except ValidationError as e:
            logger.info(
                "input_rejected",
                user_id=user_id,
                state=session.state.value,
                reason=e.reason
            )
            return [step.error_message]

        session = self.store.merge_fields(user_id, {step.field: value})

        next_step = flow.next_step(session.state)
        if next_step is not None:
            session.state = next_step.state
            self.store.put(user_id, session)
            logger.debug("state_advanced", user_id=user_id, state=next_step.state.value)
            return [next_step.prompt]

        outcome = await self._run_terminal(flow, session)
        return self._finish(user_id, flow, outcome)

    async def scan_image(self, user_id: str, image_base64: str) -> List[str]:
        """Image answer of the voucher scan flow"""
        session = self.store.get(user_id)
        if session.state != FlowState.VOUCHER_SCAN_AWAIT_CODE:
            return [messages.SCAN_FIRST]

        flow = self.flows.get(FlowId.VOUCHER_SCAN)
        try:
            if not image_base64:
                raise ValueError("photo could not be downloaded")
            outcome = await self._scan(image_base64=image_base64)
        except Exception as e:
            logger.error("voucher_image_failed", user_id=user_id, error=str(e), exc_info=True)
            outcome = Outcome(category=OutcomeCategory.UNKNOWN_FAILURE, messages=[messages.SCAN_IMAGE_ERROR])

        return self._finish(user_id, flow, outcome)

    def _finish(self, user_id: str, flow: FlowDefinition, outcome: Outcome) -> List[str]:
        """Flows are single-shot: clear, unless the outcome hands over to another flow"""
        logger.info(
            "flow_finished",
            user_id=user_id,
            flow=flow.flow_id.value,
            outcome=outcome.category.value
        )

        if outcome.next_flow is not None:
            next_flow = self.flows.get(outcome.next_flow)
            self.store.put(
                user_id,
                Session(user_id=user_id, state=next_flow.initial_state, fields=outcome.next_fields),
            )
            logger.info("flow_started", user_id=user_id, flow=next_flow.flow_id.value)
        else:
            self.store.clear(user_id)

        return outcome.messages

    def _abort(self, user_id: str, error: Exception) -> List[str]:
        logger.error("flow_aborted", user_id=user_id, error=str(error))
        self.store.clear(user_id)
        return [messages.GENERIC_ERROR.format(error=error)]

    # ============================================
    # TERMINAL ACTIONS
    # ============================================

    async def _run_terminal(self, flow: FlowDefinition, session: Session) -> Outcome:
        """Run the flow's terminal action; every failure becomes an outcome"""
        label = flow.action.label if flow.action else ""
        try:
            if flow.terminal == TerminalKind.LOGIN:
                return await self._login(session.fields)
            if flow.terminal == TerminalKind.CHECK_THEN_ACT:
                return await self.check_then_act(flow.action, session.fields)
            if flow.terminal == TerminalKind.VOUCHER_BY_TYPE:
                return await self._redeem_by_type(session.fields)
            if flow.terminal == TerminalKind.VOUCHER_SCAN:
                return await self._scan(code=self._require(session.fields, ("voucher_code",))["voucher_code"])
            raise ProgrammingInvariantError(f"unknown terminal action {flow.terminal}")

        except ProgrammingInvariantError as e:
            logger.error(
                "terminal_invariant_broken",
                user_id=session.user_id,
                flow=flow.flow_id.value,
                error=str(e)
            )
            return Outcome(
                category=OutcomeCategory.UNKNOWN_FAILURE,
                messages=[messages.GENERIC_ERROR.format(error=e)],
            )
        except Exception as e:
            logger.error(
                "terminal_action_failed",
                user_id=session.user_id,
                flow=flow.flow_id.value,
                error=str(e),
                exc_info=True
            )
            return Outcome(
                category=OutcomeCategory.UNKNOWN_FAILURE,
                messages=[flow.error_message.format(label=label, error=e)],
            )

    @staticmethod
    def _require(fields: Mapping[str, FieldValue], names) -> Dict[str, FieldValue]:
        missing = sorted(name for name in names if name not in fields)
        if missing:
            raise ProgrammingInvariantError(f"missing required fields: {', '.join(missing)}")
        return dict(fields)

    async def check_then_act(self, action: CheckThenAct, fields: Mapping[str, FieldValue]) -> Outcome:
        """
        Generic check -> pay/redeem sequence

        1. Required fields must be present
        2. Check call with the service number
        3. Abort with the check response unless code is "0" and INFO is set
        4. Act call with the collected fields and check-derived values
        5. Classify the act response
        """
        context = self._require(fields, set(action.check.required_fields) | set(action.act.required_fields))

        check_payload: Dict[str, Any] = {"nd": context["nd"]}
        if action.check.service:
            check_payload["service"] = action.check.service

        check = await self.api.call(action.check.endpoint, check_payload, method=action.check.method)

        if not isinstance(check, dict) or check.get("code") != SUCCESS_CODE or not check.get("INFO"):
            error = BusinessError(check if isinstance(check, dict) else {"response": check})
            logger.warning(
                "billing_check_rejected",
                endpoint=action.check.endpoint.value,
                code=error.code
            )
            text = action.check_failure_message.format(
                label=action.label,
                detail=error.detail,
                raw=render_raw(error.response),
            )
            return Outcome(category=OutcomeCategory.CHECK_FAILED, messages=[text])

        info = check["INFO"]
        context["ncli"] = info.get("ncli") or ""
        context["service_type"] = self._resolve_service_type(action, info)

        act_payload = dict(action.static_payload)
        for key, source in action.payload_fields.items():
            if source in context:
                act_payload[key] = format_amount(context[source]) if key == "montant" else context[source]
            elif source in action.defaults:
                act_payload[key] = action.defaults[source]
            else:
                raise ProgrammingInvariantError(f"no value for payload key {key!r}")

        result = await self.api.call(action.act.endpoint, act_payload, method=action.act.method)
        return self._classify(action, result)

    @staticmethod
    def _resolve_service_type(action: CheckThenAct, info: Mapping[str, Any]) -> Optional[str]:
        if action.service_type_key:
            return info.get(action.service_type_key) or action.service_type_default
        return action.service_type

    @staticmethod
    def _classify(action: CheckThenAct, result: Any) -> Outcome:
        response = result if isinstance(result, dict) else {"response": result}
        code = response.get("code")
        raw = render_raw(response)

        if code == SUCCESS_CODE and (action.success_key is None or response.get(action.success_key)):
            text = action.success_message.format(
                label=action.label,
                message=response.get("message", ""),
            )
            return Outcome(category=OutcomeCategory.SUCCESS, messages=[text])

        if code in action.known_failure_codes and action.known_failure_message:
            logger.warning("billing_act_rejected", endpoint=action.act.endpoint.value, code=code)
            return Outcome(
                category=OutcomeCategory.KNOWN_FAILURE,
                messages=[action.known_failure_message.format(label=action.label)],
            )

        logger.warning("billing_act_unexpected", endpoint=action.act.endpoint.value, response=raw)
        detail = BusinessError(response).detail
        text = action.unknown_failure_message.format(label=action.label, raw=raw, detail=detail)
        return Outcome(category=OutcomeCategory.UNKNOWN_FAILURE, messages=[text])

    async def _redeem_by_type(self, fields: Mapping[str, FieldValue]) -> Outcome:
        """Voucher found by a scan: redeem on the ADSL/FTTH or the 4G side"""
        context = self._require(fields, ("nd", "voucher_code", "voucher_type"))
        voucher_type = normalize_voucher_type(str(context["voucher_type"]))
        return await self.check_then_act(VOUCHER_REDEMPTIONS[voucher_type], context)

    async def _scan(self, code: Optional[str] = None, image_base64: Optional[str] = None) -> Outcome:
        """
        Identify a voucher from a typed code or a photo

        On success the user moves on to the apply-after-scan flow with the
        voucher code and its normalized type.
        """
        if image_base64 is not None:
            payload = {"image": image_base64, "format": "base64"}
        else:
            payload = {"voucher": code}

        response = await self.api.call(BillingEndpoint.VOUCHER_SCAN, payload)
        response = response if isinstance(response, dict) else {}

        voucher_code = response.get("voucher") if image_base64 is not None else code
        # Codes may come back as JSON numbers; keep every digit
        if voucher_code is not None and not isinstance(voucher_code, str):
            voucher_code = str(voucher_code)
        raw_type = response.get("type")

        if response.get("code") != SUCCESS_CODE or not voucher_code or not raw_type:
            logger.warning("voucher_scan_rejected", code=response.get("code"), from_image=image_base64 is not None)
            failure = messages.SCAN_UNREADABLE if image_base64 is not None else messages.SCAN_INVALID_CODE
            return Outcome(category=OutcomeCategory.CHECK_FAILED, messages=[failure])

        voucher_type = normalize_voucher_type(raw_type)
        logger.info("voucher_identified", voucher_type=voucher_type, from_image=image_base64 is not None)

        if image_base64 is not None:
            template = messages.SCAN_FOUND_ADSL if voucher_type == VOUCHER_TYPE_ADSL else messages.SCAN_FOUND_LTE
            text = template.format(code=voucher_code)
        else:
            text = messages.SCAN_CODE_ACCEPTED

        return Outcome(
            category=OutcomeCategory.SUCCESS,
            messages=[text],
            next_flow=FlowId.APPLY_VOUCHER,
            next_fields={"voucher_code": voucher_code, "voucher_type": voucher_type},
        )

    async def _login(self, fields: Mapping[str, FieldValue]) -> Outcome:
        """Authenticate, then show the account summary"""
        context = self._require(fields, ("nd", "password"))

        login = await self.api.call(
            BillingEndpoint.LOGIN,
            {"nd": context["nd"], "password": context["password"]},
        )
        token = _dig(login, "meta_data", "original", "token")
        if not token:
            logger.info("login_rejected")
            return Outcome(category=OutcomeCategory.KNOWN_FAILURE, messages=[messages.LOGIN_FAILED])

        account = await self.api.call(BillingEndpoint.ACCOUNT, {}, method="get", token=token)
        if not isinstance(account, dict) or not account:
            return Outcome(category=OutcomeCategory.SUCCESS, messages=[messages.LOGIN_NO_ACCOUNT])

        return Outcome(category=OutcomeCategory.SUCCESS, messages=[messages.format_account(account)])
