"""
Shared Utility Functions
"""
from wacrm.shared.utils.json_utils import parse_json_object, json_type_name
from wacrm.shared.utils.exceptions import (
    EntityNotFoundError,
    WhatsAppConfigurationError,
    WhatsAppSendError,
)
from wacrm.shared.utils.phone_utils import (
    validate_phone,
    normalize_phone_number,
    PhoneValidationResult
)

__all__ = [
    "parse_json_object",
    "json_type_name",
    "EntityNotFoundError",
    "WhatsAppConfigurationError",
    "WhatsAppSendError",
    # Phone utilities
    "validate_phone",
    "normalize_phone_number",
    "PhoneValidationResult"
]
