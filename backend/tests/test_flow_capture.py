import json

from wacrm.modules.whatsapp.services.flow_capture import (
    UNKNOWN_FLOW_ID,
    flow_id_from_token,
    parse_flow_submission,
)
from wacrm.modules.whatsapp.services.auto_reply_engine import generate_flow_token


def test_flow_id_recovered_from_generated_token():
    token = generate_flow_token("123456789")

    assert token.startswith("flow_123456789_")
    assert flow_id_from_token(token) == "123456789"


def test_flow_id_from_foreign_tokens_is_none():
    assert flow_id_from_token(None) is None
    assert flow_id_from_token("unused") is None
    assert flow_id_from_token("flow_") is None
    assert flow_id_from_token("flow_nosuffix") is None


def test_submission_fields_exclude_correlation_keys():
    submission = parse_flow_submission(json.dumps({
        "flow_token": "flow_42_deadbeef",
        "full_name": "Ravi Kumar",
        "age": 31,
        "subscribed": True,
    }))

    assert submission.flow_id == "42"
    assert submission.flow_token == "flow_42_deadbeef"
    assert submission.status == "completed"
    assert submission.response_data["full_name"] == "Ravi Kumar"
    assert submission.parsed_fields == [
        {"field_name": "full_name", "field_value": "Ravi Kumar", "field_type": "string"},
        {"field_name": "age", "field_value": 31, "field_type": "number"},
        {"field_name": "subscribed", "field_value": True, "field_type": "boolean"},
    ]


def test_explicit_flow_id_wins_over_token():
    submission = parse_flow_submission(json.dumps({"flow_id": "999", "flow_token": "flow_42_abc", "x": 1}))

    assert submission.flow_id == "999"
    assert [f["field_name"] for f in submission.parsed_fields] == ["x"]


def test_token_of_unknown_shape_gives_unknown_flow():
    submission = parse_flow_submission(json.dumps({"flow_token": "unused", "city": "Pune"}))

    assert submission.flow_id == UNKNOWN_FLOW_ID
    assert submission.status == "completed"


def test_invalid_json_is_kept_raw_with_error_status():
    submission = parse_flow_submission("{not json")

    assert submission.flow_id == UNKNOWN_FLOW_ID
    assert submission.flow_token is None
    assert submission.response_data == {"raw": "{not json"}
    assert submission.parsed_fields == []
    assert submission.status == "error"


def test_json_that_is_not_an_object_is_an_error():
    submission = parse_flow_submission("[1, 2, 3]")

    assert submission.status == "error"
    assert submission.response_data == {"raw": "[1, 2, 3]"}


def test_name_and_plain_token_reply():
    submission = parse_flow_submission('{"name":"Jane","flow_token":"t1"}')

    assert submission.parsed_fields == [{"field_name": "name", "field_value": "Jane", "field_type": "string"}]
    assert submission.flow_token == "t1"
    assert submission.flow_id == UNKNOWN_FLOW_ID
