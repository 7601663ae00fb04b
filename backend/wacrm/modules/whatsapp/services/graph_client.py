"""
Meta Graph API Client
Low-level wrapper for the WhatsApp Business Cloud API.

API Documentation: https://developers.facebook.com/docs/whatsapp/cloud-api

Handles:
- Authentication via the business account's Bearer token
- Send text messages
- Send native flow invocations (interactive type "flow")
- App subscription to the business account (subscribed_apps)

Retry Strategy:
- Message sends are NEVER retried: one call per action, the caller logs the outcome
- subscribed_apps calls are idempotent and retry up to 3 times with
  exponential backoff on timeouts, connection errors and 5xx responses
"""
import logging
import httpx
from typing import Dict, Any, Optional

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
    RetryError
)

from wacrm.shared.core.config import settings
from wacrm.shared.core.constants import (
    TIMEOUT_GRAPH_API,
    TIMEOUT_GRAPH_MESSAGE,
    GRAPH_MAX_RETRY_ATTEMPTS,
    GRAPH_RETRY_MIN_WAIT_SECONDS,
    GRAPH_RETRY_MAX_WAIT_SECONDS,
    FLOW_MESSAGE_VERSION,
    DEFAULT_FLOW_CTA,
)
from wacrm.shared.utils.http_client import http_client_manager

logger = logging.getLogger("graph_client")


# ============================================
# CUSTOM EXCEPTIONS FOR RETRY LOGIC
# ============================================

class GraphRetryableError(Exception):
    """Exception that indicates the request should be retried."""
    pass


class GraphNonRetryableError(Exception):
    """Exception that indicates the request should NOT be retried (client error)."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        self.status_code = status_code
        self.details = details
        super().__init__(message)


# ============================================
# RETRY DECORATOR
# ============================================

def graph_admin_retry():
    """
    Retry decorator for idempotent Graph API admin calls.

    Retries on:
    - GraphRetryableError (server errors)
    - httpx.TimeoutException
    - httpx.ConnectError

    Does NOT retry on:
    - GraphNonRetryableError (4xx client errors)
    """
    return retry(
        stop=stop_after_attempt(GRAPH_MAX_RETRY_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1,
            min=GRAPH_RETRY_MIN_WAIT_SECONDS,
            max=GRAPH_RETRY_MAX_WAIT_SECONDS
        ),
        retry=retry_if_exception_type((
            GraphRetryableError,
            httpx.TimeoutException,
            httpx.ConnectError,
        )),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=False
    )


def _error_body(response: httpx.Response) -> Any:
    """Graph error object ({"error": {...}}) or the raw text."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    return data.get("error", data) if isinstance(data, dict) else data


def _success_body(response: httpx.Response) -> Dict[str, Any]:
    """2xx body as a dict; anything else is kept under "raw"."""
    try:
        data = response.json()
    except ValueError:
        return {"raw": response.text}
    return data if isinstance(data, dict) else {"raw": data}


def _first_message_id(data: Dict[str, Any]) -> Optional[str]:
    """messages[0].id of a send response, if present."""
    messages = data.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        return messages[0].get("id")
    return None


class MetaGraphClient:
    """
    Graph API client bound to one business-account configuration.

    Built from a whatsapp_configs row:
        client = MetaGraphClient.from_config(config)
    """

    def __init__(
        self,
        access_token: Optional[str],
        phone_number_id: Optional[str],
        business_account_id: Optional[str] = None
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.business_account_id = business_account_id
        self.base_url = f"{settings.GRAPH_API_BASE_URL.rstrip('/')}/{settings.GRAPH_API_VERSION}"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "MetaGraphClient":
        return cls(
            access_token=config.get("access_token"),
            phone_number_id=config.get("phone_number_id"),
            business_account_id=config.get("business_account_id")
        )

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def is_configured(self) -> bool:
        """Check if this config can send messages."""
        return bool(self.access_token and self.phone_number_id)

    # ============================================
    # MESSAGE OPERATIONS (single attempt)
    # ============================================

    async def send_text(self, to: str, body: str, preview_url: bool = False) -> Dict[str, Any]:
        """
        Send a plain text message.

        Returns:
            Dict with success, message_id (provider wamid), status_code, error
        """
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": preview_url, "body": body}
        }
        return await self._send_message(payload)

    async def send_flow(
        self,
        to: str,
        flow_id: str,
        flow_token: str,
        body_text: str,
        cta: str = DEFAULT_FLOW_CTA,
        header_text: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Send a native flow invocation.
        flow_token comes back in the nfm_reply so the submission can be correlated.
        """
        interactive = {
            "type": "flow",
            "body": {"text": body_text},
            "action": {
                "name": "flow",
                "parameters": {
                    "flow_message_version": FLOW_MESSAGE_VERSION,
                    "flow_token": flow_token,
                    "flow_id": flow_id,
                    "flow_cta": cta,
                }
            }
        }
        if header_text:
            interactive["header"] = {"type": "text", "text": header_text}

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "interactive",
            "interactive": interactive
        }
        return await self._send_message(payload)

    async def _send_message(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /{phone_number_id}/messages. Never raises."""
        to = payload.get("to")
        if not self.is_configured():
            logger.error(f"❌ Send to {to} skipped: config missing access token or phone_number_id")
            return {"success": False, "to": to, "error": "WhatsApp configuration incomplete"}

        try:
            client = http_client_manager.get_client()
            response = await client.post(
                f"{self.base_url}/{self.phone_number_id}/messages",
                headers=self._get_headers(),
                json=payload,
                timeout=TIMEOUT_GRAPH_MESSAGE
            )
        except httpx.TimeoutException:
            logger.error(f"Timeout sending {payload.get('type')} message to {to}")
            return {"success": False, "to": to, "error": "Request timeout"}
        except httpx.HTTPError as e:
            logger.error(f"HTTP error sending message to {to}: {str(e)}")
            return {"success": False, "to": to, "error": str(e)}

        if response.is_success:
            data = _success_body(response)
            message_id = _first_message_id(data)
            logger.info(f"✅ {payload.get('type')} message sent to {to} ({message_id})")
            return {
                "success": True,
                "to": to,
                "message_id": message_id,
                "status_code": response.status_code,
                "response": data
            }

        error = _error_body(response)
        logger.error(f"❌ Graph API rejected message to {to}: {response.status_code} - {error}")
        return {
            "success": False,
            "to": to,
            "status_code": response.status_code,
            "error": error
        }

    # ============================================
    # SUBSCRIPTION OPERATIONS (with retry)
    # ============================================

    async def subscribe_app(self) -> Dict[str, Any]:
        """Subscribe our app to the business account's webhooks."""
        return await self._admin_call("POST")

    async def get_subscribed_apps(self) -> Dict[str, Any]:
        """List apps subscribed to the business account."""
        return await self._admin_call("GET")

    async def _admin_call(self, method: str) -> Dict[str, Any]:
        if not (self.business_account_id and self.access_token):
            return {"success": False, "error": "Missing business_account_id or access_token"}

        try:
            data = await self._subscribed_apps_with_retry(method)
            return {"success": True, "data": data}
        except RetryError as e:
            logger.error(f"All retries exhausted for subscribed_apps ({self.business_account_id}): {str(e)}")
            return {
                "success": False,
                "error": f"Failed after {GRAPH_MAX_RETRY_ATTEMPTS} attempts: server error, timeout or connection error",
                "retries_exhausted": True
            }
        except GraphNonRetryableError as e:
            return {"success": False, "error": e.details or str(e), "status_code": e.status_code}

    @graph_admin_retry()
    async def _subscribed_apps_with_retry(self, method: str) -> Dict[str, Any]:
        """
        Internal method with retry decorator.
        Raises exceptions for retry logic to work.
        """
        client = http_client_manager.get_client()
        response = await client.request(
            method,
            f"{self.base_url}/{self.business_account_id}/subscribed_apps",
            headers=self._get_headers(),
            timeout=TIMEOUT_GRAPH_API
        )

        if response.is_success:
            return _success_body(response)

        if response.status_code >= 500:
            logger.warning(f"Server error {response.status_code}, will retry...")
            raise GraphRetryableError(f"Server error: {response.status_code}")

        logger.error(f"Client error {response.status_code}: {response.text}")
        raise GraphNonRetryableError(
            f"Client error: {response.status_code}",
            status_code=response.status_code,
            details=_error_body(response)
        )
