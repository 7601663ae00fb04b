"""
WhatsApp - Pydantic Schemas
Request and Response models for API endpoints.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
import re


# ============================================
# REQUEST MODELS
# ============================================

class SendMessageRequest(BaseModel):
    """Request to send a free-form WhatsApp text message"""
    phone: str = Field(
        ...,
        description="Recipient number (normalized to E.164 digits)"
    )
    message: str = Field(
        ...,
        min_length=1,
        max_length=4096,
        description="Text body"
    )
    phone_number_id: Optional[str] = Field(
        default=None,
        description="Business number to send from (defaults to the company's first enabled number)"
    )
    lead_id: Optional[int] = Field(
        default=None,
        description="Lead whose last interaction is bumped on success"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "phone": "+91 98765 43210",
                "message": "Hi! Thanks for reaching out.",
                "lead_id": 42
            }
        }

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        cleaned = re.sub(r"[\s\+\-\(\)]", "", v)
        if not cleaned.isdigit():
            raise ValueError("Phone number must contain only digits")
        if not (7 <= len(cleaned) <= 15):
            raise ValueError("Phone number must be between 7 and 15 digits")
        return v.strip()


class MarkReadRequest(BaseModel):
    """Mark a conversation as read"""
    contact_phone: str = Field(..., min_length=1)
    phone_number_id: Optional[str] = None


# ============================================
# RESPONSE MODELS
# ============================================

class SendMessageResponse(BaseModel):
    """Response after sending a message"""
    success: bool
    message_id: str
    to: str
    phone_number_id: str
    status: str


class MessageResponse(BaseModel):
    """A stored WhatsApp message"""
    id: int
    message_id: str
    phone_number_id: str
    company_id: Optional[int] = None
    direction: str
    from_number: str
    from_name: Optional[str] = None
    to_number: Optional[str] = None
    type: str
    body: Optional[str] = None
    media_id: Optional[str] = None
    media_url: Optional[str] = None
    status: str
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> "MessageResponse":
        data = dict(row)
        data["metadata"] = data.pop("provider_metadata", None)
        return cls(**data)


class MessageListResponse(BaseModel):
    """Paginated message list"""
    messages: List[MessageResponse]
    total: int
    page: int
    limit: int


class ConversationResponse(BaseModel):
    """One conversation thread of the inbox"""
    contact_phone: str
    phone_number_id: str
    contact_name: str
    unread_count: int
    last_message: Optional[MessageResponse] = None
    messages: List[MessageResponse]


class ConversationListResponse(BaseModel):
    conversations: List[ConversationResponse]
    total: int
    truncated: bool = False  # older messages beyond the inbox window were left out


class MarkReadResponse(BaseModel):
    success: bool
    updated: int


class ParsedField(BaseModel):
    field_name: str
    field_value: Any = None
    field_type: str


class FlowResponseItem(BaseModel):
    """A captured flow submission"""
    id: int
    company_id: int
    phone_number_id: str
    flow_id: str
    flow_token: Optional[str] = None
    from_number: str
    from_name: Optional[str] = None
    response_data: Dict[str, Any]
    parsed_fields: List[ParsedField]
    status: str
    product_id: Optional[int] = None
    lead_id: Optional[int] = None
    message_id: Optional[str] = None
    created_at: Optional[datetime] = None


class FlowResponseListResponse(BaseModel):
    responses: List[FlowResponseItem]
    total: int


class SubscriptionResult(BaseModel):
    """Outcome of a subscribed_apps call for one business account"""
    name: Optional[str] = None
    business_account_id: Optional[str] = None
    phone_number_id: Optional[str] = None
    is_enabled: Optional[bool] = None
    success: bool
    is_subscribed: Optional[bool] = None
    subscription_data: Optional[List[Dict[str, Any]]] = None
    error: Optional[Any] = None


class SubscriptionResultsResponse(BaseModel):
    success: bool
    results: List[SubscriptionResult]


class WhatsAppConfigResponse(BaseModel):
    """A business-account configuration (access token never exposed)"""
    id: int
    name: Optional[str] = None
    phone_number_id: str
    business_account_id: Optional[str] = None
    catalog_id: Optional[str] = None
    is_enabled: bool
    has_access_token: bool


class WhatsAppConfigListResponse(BaseModel):
    company_id: int
    configs: List[WhatsAppConfigResponse]


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the provider"""
    success: bool
    processed: int = 0
    duplicates: int = 0
    unknown_tenant: int = 0
    statuses_updated: int = 0
    statuses_ignored: int = 0
    errors: int = 0
