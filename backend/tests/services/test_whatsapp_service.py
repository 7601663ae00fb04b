import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from wacrm.main import app
from wacrm.shared.db.session import get_db
from wacrm.shared.utils.exceptions import EntityNotFoundError, WhatsAppConfigurationError, WhatsAppSendError
from wacrm.modules.whatsapp.services.whatsapp_service import WhatsAppService
from conftest import COMPANY_ID, CONTACT, PHONE_NUMBER_ID


@pytest.fixture
def service(mock_db, mock_graph_client, whatsapp_config, stored_outgoing):
    service = WhatsAppService(mock_db, client_factory=lambda config: mock_graph_client)

    service.company_repo = MagicMock()
    service.company_repo.get_default_config = AsyncMock(return_value=whatsapp_config)
    service.company_repo.get_config_by_phone_number_id = AsyncMock(return_value=whatsapp_config)
    service.company_repo.get_configs_for_company = AsyncMock(return_value=[whatsapp_config])

    service.message_repo = MagicMock()
    service.message_repo.create_outgoing = stored_outgoing
    service.message_repo.mark_replied = AsyncMock(return_value=2)

    service.lead_repo = MagicMock()
    service.lead_repo.touch_last_interaction = AsyncMock()
    return service


# --- SEND ---

def test_send_normalizes_phone_and_logs_outbound(service, mock_graph_client, mock_db):
    async def test_logic():
        result = await service.send_text_message(COMPANY_ID, "+91 98765 43210", "Hello!", lead_id=21)

        mock_graph_client.send_text.assert_called_once_with(CONTACT, "Hello!")
        assert result["success"] is True
        assert result["message_id"] == "wamid.OUT1"
        assert result["to"] == CONTACT
        assert result["status"] == "sent"

        kwargs = service.message_repo.create_outgoing.call_args.kwargs
        assert kwargs["phone_number_id"] == PHONE_NUMBER_ID
        assert kwargs["to_number"] == CONTACT
        service.message_repo.mark_replied.assert_called_once_with(COMPANY_ID, CONTACT, PHONE_NUMBER_ID)
        service.lead_repo.touch_last_interaction.assert_called_once_with(21, last_message="Hello!")
        mock_db.commit.assert_called_once()

    asyncio.run(test_logic())


def test_send_without_provider_id_gets_generated_id(service, mock_graph_client):
    async def test_logic():
        mock_graph_client.send_text = AsyncMock(return_value={"success": True, "to": CONTACT, "response": {}})

        result = await service.send_text_message(COMPANY_ID, CONTACT, "Hi")

        assert result["message_id"].startswith("sent-")

    asyncio.run(test_logic())


def test_provider_rejection_raises_send_error_and_logs_nothing(service, mock_graph_client):
    async def test_logic():
        mock_graph_client.send_text = AsyncMock(return_value={
            "success": False, "to": CONTACT, "status_code": 400,
            "error": {"message": "Recipient not in allowed list", "code": 131030}
        })

        with pytest.raises(WhatsAppSendError) as exc_info:
            await service.send_text_message(COMPANY_ID, CONTACT, "Hi")

        assert exc_info.value.status_code == 400
        assert exc_info.value.provider_error["code"] == 131030
        service.message_repo.create_outgoing.assert_not_called()

    asyncio.run(test_logic())


def test_config_of_another_company_is_not_found(service, whatsapp_config):
    async def test_logic():
        service.company_repo.get_config_by_phone_number_id = AsyncMock(
            return_value={**whatsapp_config, "company_id": 999}
        )

        with pytest.raises(EntityNotFoundError):
            await service.resolve_config(COMPANY_ID, PHONE_NUMBER_ID)

    asyncio.run(test_logic())


def test_config_without_token_is_a_configuration_error(service, whatsapp_config):
    async def test_logic():
        service.company_repo.get_default_config = AsyncMock(
            return_value={**whatsapp_config, "access_token": None}
        )

        with pytest.raises(WhatsAppConfigurationError):
            await service.resolve_config(COMPANY_ID)

    asyncio.run(test_logic())


def test_list_configs_hides_tokens(service):
    async def test_logic():
        configs = await service.list_configs(COMPANY_ID)

        assert configs[0]["has_access_token"] is True
        assert "access_token" not in configs[0]

    asyncio.run(test_logic())


# --- INBOX ---

def test_conversations_use_lead_names(service):
    async def test_logic():
        service.message_repo.list_for_inbox = AsyncMock(return_value=[{
            "message_id": "wamid.IN1", "phone_number_id": PHONE_NUMBER_ID, "direction": "incoming",
            "from_number": CONTACT, "to_number": PHONE_NUMBER_ID, "status": "received",
            "from_name": None, "timestamp": None, "created_at": None,
        }])
        service.lead_repo.get_names_by_phones = AsyncMock(return_value={CONTACT: "Asha Lead"})

        threads, truncated = await service.get_conversations(COMPANY_ID)

        assert truncated is False
        assert len(threads) == 1
        assert threads[0].contact_name == "Asha Lead"
        assert threads[0].unread_count == 1

    asyncio.run(test_logic())


def test_conversations_flag_messages_beyond_the_inbox_window(service):
    async def test_logic():
        rows = [{
            "message_id": f"wamid.{i}", "phone_number_id": PHONE_NUMBER_ID, "direction": "incoming",
            "from_number": CONTACT, "to_number": PHONE_NUMBER_ID, "status": "received",
            "from_name": "Asha", "timestamp": None, "created_at": None,
        } for i in (3, 2, 1)]
        service.message_repo.list_for_inbox = AsyncMock(return_value=rows)
        service.lead_repo.get_names_by_phones = AsyncMock(return_value={})

        with patch("wacrm.modules.whatsapp.services.whatsapp_service.MAX_CONVERSATION_MESSAGES", 2):
            threads, truncated = await service.get_conversations(COMPANY_ID)

        assert truncated is True
        assert service.message_repo.list_for_inbox.call_args.kwargs["limit"] == 3
        assert threads[0].unread_count == 2
        assert {m["message_id"] for m in threads[0].messages} == {"wamid.3", "wamid.2"}

    asyncio.run(test_logic())


# --- SUBSCRIPTIONS ---

def test_subscription_status_reports_missing_credentials(service, whatsapp_config, mock_graph_client):
    async def test_logic():
        service.company_repo.get_configs_for_company = AsyncMock(return_value=[
            {**whatsapp_config, "business_account_id": None}
        ])

        results = await service.subscription_status(COMPANY_ID)

        assert results[0]["success"] is False
        assert results[0]["is_subscribed"] is False

    asyncio.run(test_logic())


def test_subscribe_requires_configs(service):
    async def test_logic():
        service.company_repo.get_configs_for_company = AsyncMock(return_value=[])

        with pytest.raises(EntityNotFoundError):
            await service.subscribe_apps(COMPANY_ID)

    asyncio.run(test_logic())


# --- API ERROR MAPPING ---

async def _fake_db():
    yield MagicMock()


def test_send_endpoint_maps_provider_rejection_to_502():
    app.dependency_overrides[get_db] = _fake_db
    try:
        with patch("wacrm.modules.whatsapp.api.whatsapp_endpoints.WhatsAppService") as service_cls:
            service_cls.return_value.send_text_message = AsyncMock(side_effect=WhatsAppSendError(
                "Failed to send message", status_code=400, provider_error={"message": "bad number"}
            ))
            response = TestClient(app).post(
                "/api/whatsapp/send", params={"company_id": COMPANY_ID},
                json={"phone": CONTACT, "message": "Hi"}
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["provider_status"] == 400
    assert detail["provider_error"] == {"message": "bad number"}


def test_send_endpoint_maps_missing_config_to_404():
    app.dependency_overrides[get_db] = _fake_db
    try:
        with patch("wacrm.modules.whatsapp.api.whatsapp_endpoints.WhatsAppService") as service_cls:
            service_cls.return_value.send_text_message = AsyncMock(
                side_effect=EntityNotFoundError("WhatsAppConfig", "company:7")
            )
            response = TestClient(app).post(
                "/api/whatsapp/send", params={"company_id": COMPANY_ID},
                json={"phone": CONTACT, "message": "Hi"}
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 404


def test_conversations_endpoint_reports_truncation():
    app.dependency_overrides[get_db] = _fake_db
    try:
        with patch("wacrm.modules.whatsapp.api.whatsapp_endpoints.WhatsAppService") as service_cls:
            service_cls.return_value.get_conversations = AsyncMock(return_value=([], True))
            response = TestClient(app).get("/api/whatsapp/conversations", params={"company_id": COMPANY_ID})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == {"conversations": [], "total": 0, "truncated": True}
