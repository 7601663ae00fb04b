from datetime import datetime, timedelta, timezone

from wacrm.modules.whatsapp.services.conversation_grouper import group_conversations

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def msg(message_id, minutes, direction="incoming", contact="911111111111", pnid="PN1",
        status="received", from_name=None):
    """A stored message row as the repository returns it."""
    message = {
        "message_id": message_id,
        "phone_number_id": pnid,
        "direction": direction,
        "status": status,
        "timestamp": T0 + timedelta(minutes=minutes),
        "from_name": from_name,
    }
    if direction == "outgoing":
        message.update(from_number=pnid, to_number=contact)
    else:
        message.update(from_number=contact, to_number=pnid)
    return message


def test_threads_keyed_by_contact_and_business_number():
    messages = [
        msg("a", 1, contact="911111111111", pnid="PN1"),
        msg("b", 2, contact="911111111111", pnid="PN2"),
        msg("c", 3, direction="outgoing", contact="911111111111", pnid="PN1", status="sent"),
    ]

    threads = group_conversations(messages)

    keys = {t.key: [m["message_id"] for m in t.messages] for t in threads}
    assert keys == {("911111111111", "PN1"): ["a", "c"], ("911111111111", "PN2"): ["b"]}


def test_messages_ascending_and_threads_newest_first():
    messages = [
        msg("late", 30, contact="922222222222"),
        msg("x2", 5, contact="911111111111"),
        msg("x1", 1, contact="911111111111"),
    ]

    threads = group_conversations(messages)

    assert [t.contact_phone for t in threads] == ["922222222222", "911111111111"]
    assert [m["message_id"] for m in threads[1].messages] == ["x1", "x2"]
    assert threads[1].last_message["message_id"] == "x2"


def test_equal_last_timestamps_are_ordered_deterministically():
    messages = [
        msg("b", 10, contact="922222222222"),
        msg("a", 10, contact="911111111111"),
    ]

    first = [t.key for t in group_conversations(messages)]
    second = [t.key for t in group_conversations(list(reversed(messages)))]

    assert first == second == [("911111111111", "PN1"), ("922222222222", "PN1")]


def test_unread_counts_incoming_not_read_or_replied():
    messages = [
        msg("1", 1, status="received"),
        msg("2", 2, status="pending"),
        msg("2b", 2, status="delivered"),
        msg("3", 3, status="read"),
        msg("4", 4, status="replied"),
        msg("5", 5, direction="outgoing", status="pending"),
    ]

    thread = group_conversations(messages)[0]

    assert thread.unread_count == 3


def test_contact_name_prefers_profile_then_lead_then_phone():
    messages = [
        msg("a", 1, contact="911111111111", from_name="Asha"),
        msg("b", 2, contact="922222222222"),
        msg("c", 3, contact="933333333333"),
    ]

    threads = group_conversations(messages, lead_names={"922222222222": "Ravi (lead)"})

    names = {t.contact_phone: t.contact_name for t in threads}
    assert names == {
        "911111111111": "Asha",
        "922222222222": "Ravi (lead)",
        "933333333333": "933333333333",
    }


def test_naive_timestamps_and_missing_phone():
    naive = msg("naive", 0)
    naive["timestamp"] = datetime(2024, 5, 1, 9, 30)
    orphan = msg("orphan", 1)
    orphan["from_number"] = None

    threads = group_conversations([msg("aware", 10), naive, orphan])

    assert len(threads) == 1
    assert [m["message_id"] for m in threads[0].messages] == ["aware", "naive"]


def test_input_is_not_mutated():
    messages = [msg("b", 2), msg("a", 1)]

    group_conversations(messages)

    assert [m["message_id"] for m in messages] == ["b", "a"]
