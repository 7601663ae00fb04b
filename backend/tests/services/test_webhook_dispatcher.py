import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from wacrm.modules.whatsapp.services.webhook_dispatcher import WebhookDispatcher
from conftest import COMPANY_ID, CONTACT, PHONE_NUMBER_ID, make_message, make_payload


@pytest.fixture
def auto_reply():
    engine = MagicMock()
    engine.handle_referred_product = AsyncMock(return_value=[])
    engine.handle_order = AsyncMock(return_value=[])
    engine.handle_keyword_rules = AsyncMock(return_value=[])
    return engine


@pytest.fixture
def dispatcher(mock_db, auto_reply, whatsapp_config):
    dispatcher = WebhookDispatcher(mock_db, auto_reply=auto_reply)

    dispatcher.company_repo = MagicMock()
    dispatcher.company_repo.get_config_by_phone_number_id = AsyncMock(return_value=whatsapp_config)

    dispatcher.message_repo = MagicMock()
    dispatcher.message_repo.exists_by_message_id = AsyncMock(return_value=False)
    dispatcher.message_repo.create_incoming = AsyncMock(side_effect=lambda data: {"id": 1, **data})
    dispatcher.message_repo.update_status_by_message_id = AsyncMock(return_value=True)

    dispatcher.lead_repo = MagicMock()
    dispatcher.lead_repo.get_by_phone = AsyncMock(return_value=None)
    dispatcher.lead_repo.append_interaction = AsyncMock()
    dispatcher.lead_repo.find_or_create_ad_lead = AsyncMock(
        side_effect=lambda data: ({"id": 50, **data}, True)
    )

    dispatcher.product_repo = MagicMock()
    dispatcher.product_repo.get_by_flow_id = AsyncMock(return_value=None)

    dispatcher.flow_repo = MagicMock()
    dispatcher.flow_repo.create = AsyncMock(side_effect=lambda data: {"id": 9, **data})
    return dispatcher


AD_REFERRAL = {"source_url": "https://fb.me/ad", "source_id": "AD-1", "source_type": "ad", "headline": "Free demo"}


# --- INGESTION ---

def test_new_text_message_is_stored_for_resolved_tenant(dispatcher, auto_reply):
    async def test_logic():
        payload = make_payload(messages=[make_message(text={"body": "hello"})])

        result = await dispatcher.dispatch(payload)

        assert result.processed == 1
        assert result.errors == 0
        stored = dispatcher.message_repo.create_incoming.call_args[0][0]
        assert stored["message_id"] == "wamid.IN1"
        assert stored["company_id"] == COMPANY_ID
        assert stored["from_number"] == CONTACT
        assert stored["from_name"] == "Asha"
        assert stored["type"] == "text"
        assert stored["body"] == "hello"
        auto_reply.handle_keyword_rules.assert_called_once()
        auto_reply.handle_order.assert_not_called()
        auto_reply.handle_referred_product.assert_not_called()

    asyncio.run(test_logic())


def test_redelivered_message_is_skipped_entirely(dispatcher, auto_reply):
    async def test_logic():
        dispatcher.message_repo.exists_by_message_id = AsyncMock(return_value=True)
        payload = make_payload(messages=[make_message(text={"body": "hello"})])

        result = await dispatcher.dispatch(payload)

        assert result.duplicates == 1
        assert result.processed == 0
        dispatcher.message_repo.create_incoming.assert_not_called()
        auto_reply.handle_keyword_rules.assert_not_called()
        dispatcher.lead_repo.get_by_phone.assert_not_called()

    asyncio.run(test_logic())


def test_same_delivery_twice_stores_one_message(dispatcher, auto_reply):
    async def test_logic():
        stored = {}

        async def exists(message_id):
            return message_id in stored

        async def create(data):
            if data["message_id"] in stored:
                return None
            stored[data["message_id"]] = {"id": len(stored) + 1, **data}
            return stored[data["message_id"]]

        dispatcher.message_repo.exists_by_message_id = AsyncMock(side_effect=exists)
        dispatcher.message_repo.create_incoming = AsyncMock(side_effect=create)
        payload = make_payload(messages=[make_message(text={"body": "hello"})])

        first = await dispatcher.dispatch(payload)
        second = await dispatcher.dispatch(payload)

        assert first.processed == 1
        assert second.duplicates == 1
        assert second.processed == 0
        dispatcher.message_repo.create_incoming.assert_called_once()
        assert list(stored) == ["wamid.IN1"]
        auto_reply.handle_keyword_rules.assert_called_once()

    asyncio.run(test_logic())


def test_lost_insert_race_counts_as_duplicate(dispatcher, auto_reply):
    async def test_logic():
        dispatcher.message_repo.create_incoming = AsyncMock(return_value=None)
        payload = make_payload(messages=[make_message(text={"body": "hello"})])

        result = await dispatcher.dispatch(payload)

        assert result.duplicates == 1
        auto_reply.handle_keyword_rules.assert_not_called()

    asyncio.run(test_logic())


def test_unknown_phone_number_id_stores_nothing(dispatcher, auto_reply):
    async def test_logic():
        dispatcher.company_repo.get_config_by_phone_number_id = AsyncMock(return_value=None)
        payload = make_payload(messages=[make_message(text={"body": "hello"})], phone_number_id="999")

        result = await dispatcher.dispatch(payload)

        assert result.unknown_tenant == 1
        dispatcher.message_repo.create_incoming.assert_not_called()
        auto_reply.handle_keyword_rules.assert_not_called()

    asyncio.run(test_logic())


def test_invalid_envelope_counts_one_error(dispatcher):
    async def test_logic():
        result = await dispatcher.dispatch({"entry": "nope"})

        assert result.errors == 1
        assert result.processed == 0

    asyncio.run(test_logic())


# --- LEADS ---

def test_ad_referral_creates_lead_with_attribution(dispatcher):
    async def test_logic():
        payload = make_payload(messages=[make_message(text={"body": "I saw your ad"}, referral=AD_REFERRAL)])

        await dispatcher.dispatch(payload)

        lead_data = dispatcher.lead_repo.find_or_create_ad_lead.call_args[0][0]
        assert lead_data["company_id"] == COMPANY_ID
        assert lead_data["phone"] == CONTACT
        assert lead_data["name"] == "Asha"
        assert lead_data["stage"] == "new"
        assert lead_data["ad_referral"]["source_id"] == "AD-1"
        assert "I saw your ad" in lead_data["notes"]
        assert lead_data["comment_history"][0]["content"] == "WhatsApp message: I saw your ad"
        dispatcher.lead_repo.append_interaction.assert_not_called()

    asyncio.run(test_logic())


def test_ad_lead_without_profile_name_gets_placeholder(dispatcher):
    async def test_logic():
        payload = make_payload(messages=[make_message(text={"body": "hi"}, referral=AD_REFERRAL)])
        del payload["entry"][0]["changes"][0]["value"]["contacts"]

        await dispatcher.dispatch(payload)

        lead_data = dispatcher.lead_repo.find_or_create_ad_lead.call_args[0][0]
        assert lead_data["name"] == f"WhatsApp User {CONTACT}"

    asyncio.run(test_logic())


def test_organic_message_without_lead_creates_no_lead(dispatcher):
    async def test_logic():
        payload = make_payload(messages=[make_message(text={"body": "hello"})])

        await dispatcher.dispatch(payload)

        dispatcher.lead_repo.find_or_create_ad_lead.assert_not_called()
        dispatcher.lead_repo.append_interaction.assert_not_called()

    asyncio.run(test_logic())


def test_existing_lead_gets_timeline_entry(dispatcher):
    async def test_logic():
        dispatcher.lead_repo.get_by_phone = AsyncMock(return_value={"id": 21, "name": "Asha"})
        payload = make_payload(messages=[make_message(text={"body": "any update?"}, referral=AD_REFERRAL)])

        await dispatcher.dispatch(payload)

        dispatcher.lead_repo.find_or_create_ad_lead.assert_not_called()
        args, kwargs = dispatcher.lead_repo.append_interaction.call_args
        assert args[0] == 21
        assert args[1] == "WhatsApp message: any update?"
        assert kwargs["last_message"] == "any update?"
        assert kwargs["phone_number_id"] == PHONE_NUMBER_ID

    asyncio.run(test_logic())


def test_ad_lead_that_already_exists_is_updated_not_duplicated(dispatcher):
    async def test_logic():
        dispatcher.lead_repo.find_or_create_ad_lead = AsyncMock(return_value=({"id": 33, "name": "Asha"}, False))
        payload = make_payload(messages=[make_message(text={"body": "again"}, referral=AD_REFERRAL)])

        await dispatcher.dispatch(payload)

        dispatcher.lead_repo.append_interaction.assert_called_once()
        assert dispatcher.lead_repo.append_interaction.call_args[0][0] == 33

    asyncio.run(test_logic())


# --- FLOW REPLIES ---

def test_flow_reply_is_captured_with_parsed_fields(dispatcher):
    async def test_logic():
        dispatcher.lead_repo.get_by_phone = AsyncMock(return_value={"id": 21, "name": "Asha"})
        dispatcher.product_repo.get_by_flow_id = AsyncMock(return_value={"id": 4, "name": "Demo"})
        response_json = json.dumps({"flow_token": "flow_555_abc123", "city": "Pune", "budget": 5000})
        payload = make_payload(messages=[make_message(
            "wamid.FLOW", msg_type="interactive",
            interactive={"type": "nfm_reply", "nfm_reply": {"name": "flow", "body": "Sent", "response_json": response_json}}
        )])

        result = await dispatcher.dispatch(payload)

        assert result.processed == 1
        row = dispatcher.flow_repo.create.call_args[0][0]
        assert row["flow_id"] == "555"
        assert row["flow_token"] == "flow_555_abc123"
        assert row["status"] == "completed"
        assert row["lead_id"] == 21
        assert row["product_id"] == 4
        assert row["message_id"] == "wamid.FLOW"
        assert [f["field_name"] for f in row["parsed_fields"]] == ["city", "budget"]
        dispatcher.product_repo.get_by_flow_id.assert_called_once_with(COMPANY_ID, "555")

    asyncio.run(test_logic())


def test_flow_reply_with_broken_json_is_still_captured(dispatcher):
    async def test_logic():
        payload = make_payload(messages=[make_message(
            "wamid.FLOW", msg_type="interactive",
            interactive={"type": "nfm_reply", "nfm_reply": {"response_json": "{broken"}}
        )])

        await dispatcher.dispatch(payload)

        row = dispatcher.flow_repo.create.call_args[0][0]
        assert row["status"] == "error"
        assert row["flow_id"] == "unknown"
        assert row["response_data"] == {"raw": "{broken"}
        dispatcher.product_repo.get_by_flow_id.assert_not_called()

    asyncio.run(test_logic())


# --- STEP ORDER & ISOLATION ---

def test_order_runs_order_replies_then_lead_step(dispatcher, auto_reply):
    async def test_logic():
        calls = []
        auto_reply.handle_order = AsyncMock(side_effect=lambda e, c: calls.append("order"))
        auto_reply.handle_keyword_rules = AsyncMock(side_effect=lambda e, c: calls.append("keyword"))
        dispatcher.lead_repo.get_by_phone = AsyncMock(side_effect=lambda *a: calls.append("lead"))
        payload = make_payload(messages=[make_message(
            msg_type="order",
            order={"catalog_id": "CAT-1", "product_items": [{"product_retailer_id": "SKU-1", "quantity": 1}]}
        )])

        await dispatcher.dispatch(payload)

        assert calls == ["order", "keyword", "lead"]

    asyncio.run(test_logic())


def test_failing_step_does_not_stop_later_steps(dispatcher, auto_reply, mock_db):
    async def test_logic():
        auto_reply.handle_keyword_rules = AsyncMock(side_effect=RuntimeError("provider exploded"))
        dispatcher.lead_repo.get_by_phone = AsyncMock(return_value={"id": 21, "name": "Asha"})
        payload = make_payload(messages=[make_message(text={"body": "price"})])

        result = await dispatcher.dispatch(payload)

        assert result.processed == 1
        assert result.errors == 1
        dispatcher.lead_repo.append_interaction.assert_called_once()
        mock_db.rollback.assert_called_once()

    asyncio.run(test_logic())


def test_one_bad_message_does_not_block_the_batch(dispatcher):
    async def test_logic():
        dispatcher.message_repo.exists_by_message_id = AsyncMock(
            side_effect=[RuntimeError("db gone"), False]
        )
        payload = make_payload(messages=[
            make_message("wamid.A", text={"body": "one"}),
            make_message("wamid.B", text={"body": "two"}),
        ])

        result = await dispatcher.dispatch(payload)

        assert result.errors == 1
        assert result.processed == 1
        assert dispatcher.message_repo.create_incoming.call_args[0][0]["message_id"] == "wamid.B"

    asyncio.run(test_logic())


def test_malformed_message_does_not_lose_status_in_same_delivery(dispatcher):
    async def test_logic():
        payload = make_payload(
            messages=["junk", make_message("wamid.BAD", msg_type="interactive", interactive="oops")],
            statuses=[{"id": "wamid.OUT1", "status": "read", "timestamp": "1700000100"}],
        )

        result = await dispatcher.dispatch(payload)

        assert result.statuses_updated == 1
        dispatcher.message_repo.update_status_by_message_id.assert_called_once_with("wamid.OUT1", "read")
        assert dispatcher.message_repo.create_incoming.call_args[0][0]["message_id"] == "wamid.BAD"

    asyncio.run(test_logic())


# --- STATUSES ---

def test_delivery_status_updates_stored_message(dispatcher):
    async def test_logic():
        payload = make_payload(statuses=[{"id": "wamid.OUT1", "status": "delivered", "timestamp": "1700000100"}])

        result = await dispatcher.dispatch(payload)

        assert result.statuses_updated == 1
        dispatcher.message_repo.update_status_by_message_id.assert_called_once_with("wamid.OUT1", "delivered")

    asyncio.run(test_logic())


def test_unknown_status_value_is_ignored(dispatcher):
    async def test_logic():
        payload = make_payload(statuses=[{"id": "wamid.OUT1", "status": "deleted"}])

        result = await dispatcher.dispatch(payload)

        assert result.statuses_ignored == 1
        dispatcher.message_repo.update_status_by_message_id.assert_not_called()

    asyncio.run(test_logic())
