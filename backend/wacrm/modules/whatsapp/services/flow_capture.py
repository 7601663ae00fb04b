"""
Flow submission parsing.

Turns the response_json string of an nfm_reply into the stored shape of a
flow_responses row. Never raises: unparseable payloads are kept raw with
status "error".
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from wacrm.modules.whatsapp.constants import FLOW_INTERNAL_KEYS, FlowResponseStatus
from wacrm.shared.core.constants import FLOW_TOKEN_PREFIX
from wacrm.shared.utils.json_utils import parse_json_object, json_type_name

UNKNOWN_FLOW_ID = "unknown"


@dataclass
class FlowSubmission:
    flow_id: str
    flow_token: Optional[str]
    response_data: Dict[str, Any]
    parsed_fields: List[Dict[str, Any]] = field(default_factory=list)
    status: str = FlowResponseStatus.COMPLETED.value


def flow_id_from_token(flow_token: Optional[str]) -> Optional[str]:
    """flow_<flow_id>_<hex> -> flow_id. Tokens of any other shape give None."""
    if not flow_token or not flow_token.startswith(FLOW_TOKEN_PREFIX):
        return None
    remainder = flow_token[len(FLOW_TOKEN_PREFIX):]
    flow_id, sep, suffix = remainder.rpartition("_")
    if not sep or not flow_id or not suffix:
        return None
    return flow_id


def parse_flow_submission(response_json: Optional[str]) -> FlowSubmission:
    ok, data = parse_json_object(response_json)
    if not ok:
        return FlowSubmission(
            flow_id=UNKNOWN_FLOW_ID,
            flow_token=None,
            response_data={"raw": response_json if response_json is not None else ""},
            status=FlowResponseStatus.ERROR.value
        )

    flow_token = data.get("flow_token")
    if flow_token is not None and not isinstance(flow_token, str):
        flow_token = str(flow_token)

    flow_id = data.get("flow_id")
    if flow_id in (None, ""):
        flow_id = flow_id_from_token(flow_token) or UNKNOWN_FLOW_ID

    parsed_fields = [
        {"field_name": key, "field_value": value, "field_type": json_type_name(value)}
        for key, value in data.items()
        if key not in FLOW_INTERNAL_KEYS
    ]

    return FlowSubmission(
        flow_id=str(flow_id),
        flow_token=flow_token,
        response_data=data,
        parsed_fields=parsed_fields
    )
