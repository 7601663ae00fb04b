"""
Conversation Grouper
Pure transform from a flat list of stored messages into inbox threads.

A thread is keyed by (contact_phone, phone_number_id): the same contact
talking to two of our business numbers gives two threads.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from wacrm.modules.whatsapp.constants import MessageDirection, MessageStatus

ThreadKey = Tuple[str, str]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ConversationThread:
    contact_phone: str
    phone_number_id: str
    contact_name: str
    messages: List[dict] = field(default_factory=list)
    unread_count: int = 0

    @property
    def key(self) -> ThreadKey:
        return (self.contact_phone, self.phone_number_id)

    @property
    def last_message(self) -> Optional[dict]:
        return self.messages[-1] if self.messages else None


def contact_phone_of(message: dict) -> Optional[str]:
    """The counterparty: sender of incoming messages, recipient of outgoing ones."""
    if message.get("direction") == MessageDirection.OUTGOING.value:
        return message.get("to_number")
    return message.get("from_number")


def _as_aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def message_sort_key(message: dict) -> Tuple[datetime, str]:
    """(timestamp or created_at, message_id): total order even on equal timestamps."""
    moment = message.get("timestamp") or message.get("created_at")
    return _as_aware(moment), message.get("message_id") or ""


def _contact_name(messages: List[dict], contact_phone: str, lead_names: Dict[str, str]) -> str:
    for message in reversed(messages):
        if message.get("direction") != MessageDirection.OUTGOING.value and message.get("from_name"):
            return message["from_name"]
    return lead_names.get(contact_phone) or contact_phone


def group_conversations(
    messages: Iterable[dict],
    lead_names: Optional[Dict[str, str]] = None
) -> List[ConversationThread]:
    """
    Group messages into threads.

    - messages inside a thread are ascending by timestamp
    - unread_count counts incoming messages not yet read or replied
    - threads are ordered by their last message, newest first

    Messages without a counterparty phone are ignored. Input order and the
    input list itself are left untouched.
    """
    lead_names = lead_names or {}
    buckets: Dict[ThreadKey, List[dict]] = {}

    for message in messages:
        contact_phone = contact_phone_of(message)
        if not contact_phone:
            continue
        key = (contact_phone, message.get("phone_number_id") or "")
        buckets.setdefault(key, []).append(message)

    threads = []
    for (contact_phone, phone_number_id), bucket in buckets.items():
        ordered = sorted(bucket, key=message_sort_key)
        unread = sum(
            1 for m in ordered
            if m.get("direction") != MessageDirection.OUTGOING.value
            and MessageStatus.is_unread(m.get("status"))
        )
        threads.append(ConversationThread(
            contact_phone=contact_phone,
            phone_number_id=phone_number_id,
            contact_name=_contact_name(ordered, contact_phone, lead_names),
            messages=ordered,
            unread_count=unread
        ))

    # Stable two-pass sort: key ascending breaks ties, then newest first
    threads.sort(key=lambda t: t.key)
    threads.sort(key=lambda t: message_sort_key(t.last_message)[0], reverse=True)
    return threads
