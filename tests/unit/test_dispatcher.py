"""
Unit tests for turn routing
"""

import asyncio

import pytest

from billing_api.src.endpoints import BillingEndpoint
from conversation_engine.src.core.dispatcher import parse_command
from conversation_engine.src.flows import messages
from shared.models.message import IncomingTurn, TurnKind
from shared.models.session import FlowState


def text(user_id: str, body: str) -> IncomingTurn:
    return IncomingTurn(user_id=user_id, kind=TurnKind.TEXT, text=body)


def photo(user_id: str, data: str = "aW1hZ2U=") -> IncomingTurn:
    return IncomingTurn(user_id=user_id, kind=TurnKind.IMAGE, image_base64=data)


@pytest.mark.parametrize("raw,expected", [
    ("/start", "start"),
    ("/4g@PayBot", "4g"),
    ("  /ADSL extra words", "adsl"),
    ("/", ""),
    ("hello", None),
    ("", None),
])
def test_parse_command(raw, expected):
    assert parse_command(raw) == expected


class TestCommands:
    """Tests for command handling"""

    async def test_start_sends_welcome_and_clears(self, dispatcher, responder, store):
        await dispatcher.handle(text("u1", "/4g"), responder)
        await dispatcher.handle(text("u1", "/start"), responder)

        assert responder.sent[-1] == messages.WELCOME
        assert "/unpaid" not in messages.WELCOME
        assert store.get("u1").state == FlowState.NONE

    async def test_cancel_is_idempotent(self, dispatcher, responder, store):
        """Test /cancel twice: confirmation, then nothing to cancel"""
        await dispatcher.handle(text("u1", "/adsl"), responder)
        await dispatcher.handle(text("u1", "/cancel"), responder)
        await dispatcher.handle(text("u1", "/cancel"), responder)

        assert responder.sent == [messages.PROMPT_ADSL_ND, messages.CANCELLED, messages.NOTHING_TO_CANCEL]
        assert store.get("u1").state == FlowState.NONE

    async def test_flow_command_overwrites_active_flow(self, dispatcher, responder, store):
        """Test a new flow command discards collected fields"""
        await dispatcher.handle(text("u1", "/adsl"), responder)
        await dispatcher.handle(text("u1", "0213456789"), responder)
        await dispatcher.handle(text("u1", "/fact"), responder)

        session = store.get("u1")
        assert session.state == FlowState.PSTN_AWAIT_ND
        assert session.fields == {}
        assert responder.sent[-1] == messages.PROMPT_PSTN_ND

    async def test_unknown_command(self, dispatcher, responder, store):
        await dispatcher.handle(text("u1", "/unpaid"), responder)

        assert responder.sent == [messages.UNKNOWN_COMMAND]
        assert store.get("u1").state == FlowState.NONE

    async def test_command_with_bot_mention(self, dispatcher, responder, store):
        await dispatcher.handle(text("u1", "/scanvoucher@PayBot"), responder)

        assert store.get("u1").state == FlowState.VOUCHER_SCAN_AWAIT_CODE


class TestTurns:
    """Tests for non-command turns"""

    async def test_stray_text_is_ignored(self, dispatcher, responder, api):
        await dispatcher.handle(text("u1", "hello"), responder)

        assert responder.sent == []
        assert api.calls == []

    async def test_photo_without_scan_flow(self, dispatcher, responder, api):
        """Test a photo outside the scan flow gets guidance only"""
        await dispatcher.handle(photo("u1"), responder)

        assert responder.sent == [messages.SCAN_FIRST]
        assert api.calls == []

    async def test_photo_during_other_flow(self, dispatcher, responder, store):
        await dispatcher.handle(text("u1", "/4g"), responder)
        await dispatcher.handle(photo("u1"), responder)

        assert responder.sent[-1] == messages.SCAN_FIRST
        assert store.get("u1").state == FlowState.LTE_AWAIT_ND

    async def test_photo_during_scan_flow(self, dispatcher, responder, api, store):
        """Test the processing notice comes before the scan result"""
        api.reply(BillingEndpoint.VOUCHER_SCAN, {"code": "0", "voucher": "4455", "type": "ADSL"})
        await dispatcher.handle(text("u1", "/scanvoucher"), responder)

        await dispatcher.handle(photo("u1"), responder)

        assert responder.sent[1] == messages.SCAN_PROCESSING
        assert "Found ADSL/FTTH voucher" in responder.sent[2]
        assert store.get("u1").state == FlowState.APPLY_VOUCHER_AWAIT_ND

    async def test_photo_is_loaded_after_processing_notice(self, dispatcher, responder, api):
        """Test the deferred download runs only once the scan flow is confirmed"""
        api.reply(BillingEndpoint.VOUCHER_SCAN, {"code": "0", "voucher": "4455", "type": "4G"})
        loads = []

        async def loader():
            loads.append(list(responder.sent))
            return "aW1hZ2U="

        await dispatcher.handle(text("u1", "/scanvoucher"), responder)
        await dispatcher.handle(
            IncomingTurn(user_id="u1", kind=TurnKind.IMAGE, image_loader=loader),
            responder,
        )

        assert loads == [[messages.PROMPT_SCAN, messages.SCAN_PROCESSING]]
        assert api.payload_for(BillingEndpoint.VOUCHER_SCAN)["image"] == "aW1hZ2U="

    async def test_deferred_photo_not_loaded_without_scan(self, dispatcher, responder):
        loads = []

        async def loader():
            loads.append(1)
            return "aW1hZ2U="

        await dispatcher.handle(IncomingTurn(user_id="u1", kind=TurnKind.IMAGE, image_loader=loader), responder)

        assert loads == []
        assert responder.sent == [messages.SCAN_FIRST]

    async def test_failed_photo_download(self, dispatcher, responder, api, store):
        """Test a photo that could not be fetched ends the scan flow"""
        await dispatcher.handle(text("u1", "/scanvoucher"), responder)

        await dispatcher.handle(photo("u1", data=None), responder)

        assert responder.sent[-1] == messages.SCAN_IMAGE_ERROR
        assert api.calls == []
        assert store.get("u1").state == FlowState.NONE

    async def test_non_text_during_flow(self, dispatcher, responder, store):
        await dispatcher.handle(text("u1", "/login"), responder)

        await dispatcher.handle(IncomingTurn(user_id="u1", kind=TurnKind.OTHER), responder)

        assert responder.sent[-1] == messages.TEXT_ONLY
        assert store.get("u1").state == FlowState.LOGIN_AWAIT_ND

    async def test_full_pstn_conversation(self, dispatcher, responder, api, store):
        api.reply(BillingEndpoint.CHECK_ND_FACT, {"code": "0", "INFO": {"ncli": "X"}})
        api.reply(BillingEndpoint.PAY_FACT, {"code": "0", "message": "http://pay/link"})

        await dispatcher.handle(text("u1", "/fact"), responder)
        await dispatcher.handle(text("u1", "12345678"), responder)

        assert responder.sent == [messages.PROMPT_PSTN_ND, "✅ PSTN Payment link: http://pay/link"]
        assert store.get("u1").state == FlowState.NONE


class TestConcurrency:
    """Tests for per-user serialization"""

    async def test_turns_of_one_user_run_in_order(self, dispatcher, responder, api, store):
        """Test a second turn waits for the billing call of the first"""
        release = asyncio.Event()
        order = []

        async def slow_call(endpoint, payload=None, method="post", token=None):
            order.append(("call", endpoint))
            await release.wait()
            return {"code": "1", "message": "nope"}

        api.call = slow_call
        await dispatcher.handle(text("u1", "/fact"), responder)

        first = asyncio.create_task(dispatcher.handle(text("u1", "12345678"), responder))
        await asyncio.sleep(0)
        second = asyncio.create_task(dispatcher.handle(text("u1", "/cancel"), responder))
        await asyncio.sleep(0)

        assert not second.done()
        release.set()
        await asyncio.gather(first, second)

        assert order == [("call", BillingEndpoint.CHECK_ND_FACT)]
        assert responder.sent[1] == "❌ PSTN Invoice not found or check error: nope"
        assert responder.sent[2] == messages.NOTHING_TO_CANCEL
        assert store.get("u1").state == FlowState.NONE

    async def test_users_do_not_block_each_other(self, dispatcher, responder, api):
        release = asyncio.Event()

        async def slow_call(endpoint, payload=None, method="post", token=None):
            await release.wait()
            return {"code": "1"}

        api.call = slow_call
        await dispatcher.handle(text("u1", "/fact"), responder)

        blocked = asyncio.create_task(dispatcher.handle(text("u1", "12345678"), responder))
        await asyncio.sleep(0)
        await dispatcher.handle(text("u2", "/4g"), responder)

        assert responder.sent[-1] == messages.PROMPT_LTE_ND
        release.set()
        await blocked
