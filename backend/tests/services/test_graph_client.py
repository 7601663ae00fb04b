import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from wacrm.modules.whatsapp.services.graph_client import MetaGraphClient
from conftest import CONTACT, PHONE_NUMBER_ID

HTTP_CLIENT = "wacrm.modules.whatsapp.services.graph_client.http_client_manager"


def graph_response(status_code, body):
    return httpx.Response(status_code, json=body, request=httpx.Request("POST", "https://graph.facebook.com"))


def make_client(**overrides):
    config = {"access_token": "token-abc", "phone_number_id": PHONE_NUMBER_ID, "business_account_id": "WABA-1"}
    config.update(overrides)
    return MetaGraphClient.from_config(config)


def test_send_text_success_returns_wamid():
    async def test_logic():
        http = MagicMock()
        http.post = AsyncMock(return_value=graph_response(200, {"messages": [{"id": "wamid.OK"}]}))

        with patch(HTTP_CLIENT) as manager:
            manager.get_client.return_value = http
            result = await make_client().send_text(CONTACT, "Hello")

        assert result["success"] is True
        assert result["message_id"] == "wamid.OK"
        url = http.post.call_args[0][0]
        assert url.endswith(f"/{PHONE_NUMBER_ID}/messages")
        payload = http.post.call_args.kwargs["json"]
        assert payload["to"] == CONTACT
        assert payload["text"]["body"] == "Hello"
        assert http.post.call_args.kwargs["headers"]["Authorization"] == "Bearer token-abc"

    asyncio.run(test_logic())


def test_send_rejection_is_returned_not_raised():
    async def test_logic():
        http = MagicMock()
        http.post = AsyncMock(return_value=graph_response(400, {"error": {"message": "Invalid parameter", "code": 100}}))

        with patch(HTTP_CLIENT) as manager:
            manager.get_client.return_value = http
            result = await make_client().send_text(CONTACT, "Hello")

        assert result["success"] is False
        assert result["status_code"] == 400
        assert result["error"]["code"] == 100
        http.post.assert_called_once()

    asyncio.run(test_logic())


def test_send_timeout_is_a_single_failed_attempt():
    async def test_logic():
        http = MagicMock()
        http.post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))

        with patch(HTTP_CLIENT) as manager:
            manager.get_client.return_value = http
            result = await make_client().send_text(CONTACT, "Hello")

        assert result == {"success": False, "to": CONTACT, "error": "Request timeout"}
        http.post.assert_called_once()

    asyncio.run(test_logic())


def test_send_flow_payload():
    async def test_logic():
        http = MagicMock()
        http.post = AsyncMock(return_value=graph_response(200, {"messages": [{"id": "wamid.F"}]}))

        with patch(HTTP_CLIENT) as manager:
            manager.get_client.return_value = http
            await make_client().send_flow(CONTACT, flow_id="777", flow_token="flow_777_x", body_text="Book now")

        interactive = http.post.call_args.kwargs["json"]["interactive"]
        assert interactive["type"] == "flow"
        assert interactive["action"]["parameters"]["flow_id"] == "777"
        assert interactive["action"]["parameters"]["flow_token"] == "flow_777_x"

    asyncio.run(test_logic())


def test_unconfigured_client_makes_no_call():
    async def test_logic():
        with patch(HTTP_CLIENT) as manager:
            result = await make_client(access_token=None).send_text(CONTACT, "Hello")

        assert result["success"] is False
        manager.get_client.assert_not_called()

    asyncio.run(test_logic())


def test_subscribe_client_error_is_not_retried():
    async def test_logic():
        http = MagicMock()
        http.request = AsyncMock(return_value=graph_response(403, {"error": {"message": "No permission"}}))

        with patch(HTTP_CLIENT) as manager:
            manager.get_client.return_value = http
            result = await make_client().subscribe_app()

        assert result["success"] is False
        assert result["status_code"] == 403
        http.request.assert_called_once()

    asyncio.run(test_logic())


def test_subscription_status_success():
    async def test_logic():
        http = MagicMock()
        http.request = AsyncMock(return_value=graph_response(200, {"data": [{"whatsapp_business_api_data": {"id": "APP"}}]}))

        with patch(HTTP_CLIENT) as manager:
            manager.get_client.return_value = http
            result = await make_client().get_subscribed_apps()

        assert result["success"] is True
        assert len(result["data"]["data"]) == 1
        assert http.request.call_args[0][0] == "GET"

    asyncio.run(test_logic())


def test_send_success_with_non_json_body_still_returns_result():
    async def test_logic():
        http = MagicMock()
        http.post = AsyncMock(return_value=httpx.Response(
            200, text="<html>ok</html>", request=httpx.Request("POST", "https://graph.facebook.com")
        ))

        with patch(HTTP_CLIENT) as manager:
            manager.get_client.return_value = http
            result = await make_client().send_text(CONTACT, "Hello")

        assert result["success"] is True
        assert result["message_id"] is None
        assert result["response"] == {"raw": "<html>ok</html>"}

    asyncio.run(test_logic())


def test_send_success_with_list_body_has_no_message_id():
    async def test_logic():
        http = MagicMock()
        http.post = AsyncMock(return_value=graph_response(200, ["unexpected"]))

        with patch(HTTP_CLIENT) as manager:
            manager.get_client.return_value = http
            result = await make_client().send_text(CONTACT, "Hello")

        assert result["success"] is True
        assert result["message_id"] is None

    asyncio.run(test_logic())
