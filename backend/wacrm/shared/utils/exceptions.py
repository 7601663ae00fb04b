"""
Custom Exceptions for the WhatsApp CRM backend.

Webhook ingestion never lets these reach the provider; they are raised on the
synchronous API paths (manual send, inbox) and mapped to HTTP errors there.
"""
from typing import Any, Optional


class EntityNotFoundError(Exception):
    """
    Raised when a requested entity does not exist in the database.
    """
    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.message = f"{entity_type} with ID {entity_id} not found."
        super().__init__(self.message)


class WhatsAppConfigurationError(Exception):
    """
    Raised when no usable WhatsApp business-account configuration exists
    (missing config, disabled config, or missing access token).
    """
    def __init__(self, message: str, phone_number_id: Optional[str] = None):
        self.phone_number_id = phone_number_id
        self.message = message
        super().__init__(self.message)


class WhatsAppSendError(Exception):
    """
    Raised when the Graph API rejects an outbound message on the manual send path.

    Carries the provider's HTTP status and error body so the API layer can
    surface a structured failure to the caller.
    """
    def __init__(self, message: str, status_code: Optional[int] = None, provider_error: Any = None):
        self.status_code = status_code
        self.provider_error = provider_error
        self.message = message
        super().__init__(self.message)
