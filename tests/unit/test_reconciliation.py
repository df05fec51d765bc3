from __future__ import annotations

from datetime import timedelta

import pytest

from relay_chat.client.reconciliation import MessageView, coerce_message
from relay_chat.domain.entities.message import Attachment
from relay_chat.domain.value_objects.enums import DeliveryStatus
from relay_chat.infrastructure.ws.protocol import MessagePayload
from tests.conftest import BASE_TIME, make_message


def _ids(view: MessageView) -> list[str]:
    return [m.id for m in view.messages]


def test_duplicate_live_event_is_a_no_op():
    view = MessageView()
    msg = make_message("m1")

    assert view.apply_live(msg) is True
    first = view.messages
    assert view.apply_live(msg) is False

    assert view.messages == first
    assert len(view) == 1


def test_out_of_order_arrival_is_sorted_by_timestamp():
    view = MessageView()
    view.apply_live(make_message("m2", seconds=2))
    view.apply_live(make_message("m1", seconds=1))

    assert _ids(view) == ["m1", "m2"]


def test_equal_timestamps_keep_first_seen_order():
    view = MessageView()
    for mid in ("b", "a", "c"):
        view.apply_live(make_message(mid, seconds=5))
    # Re-applying an existing id must not move it.
    view.apply_live(make_message("b", seconds=5))

    assert _ids(view) == ["b", "a", "c"]


def test_derived_sequence_is_always_non_decreasing():
    view = MessageView()
    for i, offset in enumerate([9, 3, 7, 1, 5, 3, 8, 0]):
        view.apply_live(make_message(f"m{i}", seconds=offset))

    stamps = [m.timestamp for m in view.messages]
    assert stamps == sorted(stamps)


def test_display_is_capped_to_most_recent():
    view = MessageView(display_cap=5, working_set_cap=8)
    for i in range(12):
        view.apply_live(make_message(f"m{i:02d}", seconds=i))

    assert _ids(view) == [f"m{i:02d}" for i in range(7, 12)]
    assert len(view) == 8


def test_history_then_live_equals_live_then_history():
    history = [make_message(f"h{i}", seconds=i) for i in range(3)]
    live = [make_message("l1", seconds=10), make_message("l2", seconds=1.5)]

    a = MessageView()
    a.load_history(history)
    for m in live:
        a.apply_live(m)

    b = MessageView()
    for m in live:
        b.apply_live(m)
    b.load_history(history)

    assert _ids(a) == _ids(b) == ["h0", "h1", "l2", "h2", "l1"]
    assert b.history_loaded is True


def test_live_event_overlapping_history_does_not_duplicate():
    view = MessageView()
    view.apply_live(make_message("m1", seconds=1))
    view.load_history([make_message("m1", seconds=1), make_message("m0", seconds=0)])

    assert _ids(view) == ["m0", "m1"]


def test_jittered_delivery_lists_earlier_message_first():
    view = MessageView()
    view.apply_live({"id": "m2", "sender": "bob", "content": "second", "timestamp": "2024-05-01T12:00:02Z"})
    view.apply_live({"id": "m1", "sender": "alice", "content": "first", "timestamp": "2024-05-01T12:00:01.000Z"})

    assert _ids(view) == ["m1", "m2"]


def test_mixed_timestamp_representations_compare():
    epoch_ms = int(BASE_TIME.timestamp() * 1000) + 500
    view = MessageView()
    view.apply_live({"id": "iso", "sender": "a", "content": "x", "timestamp": "2024-05-01T12:00:01+00:00"})
    view.apply_live({"id": "ms", "sender": "a", "content": "x", "timestamp": epoch_ms})
    view.apply_live({"id": "sec", "sender": "a", "content": "x", "timestamp": BASE_TIME.timestamp()})

    assert _ids(view) == ["sec", "ms", "iso"]
    assert all(m.timestamp.utcoffset() == timedelta(0) for m in view.messages)


def test_filter_applies_only_when_deriving():
    view = MessageView()
    view.apply_live(make_message("blank", content="   ", seconds=1))
    view.apply_live(
        make_message("file", content="", seconds=2, attachment=Attachment(url="/uploads/a.png")),
    )
    view.apply_live(make_message("text", seconds=3))

    assert _ids(view) == ["file", "text"]
    assert "blank" in view
    assert view.get("blank").content == "   "


def test_delete_is_tombstoned_against_stale_history():
    view = MessageView()
    view.apply_live(make_message("m1"))

    assert view.apply_delete("m1") is True
    view.load_history([make_message("m1")])
    view.apply_live(make_message("m1"))

    assert "m1" not in view
    assert view.messages == []


def test_tombstones_are_bounded_by_working_set():
    view = MessageView(display_cap=2, working_set_cap=3)
    for i in range(5):
        view.apply_delete(f"gone{i}")

    assert view.apply_live(make_message("gone0")) is True
    assert view.apply_live(make_message("gone1")) is True
    assert view.apply_live(make_message("gone2")) is False
    assert view.apply_live(make_message("gone4")) is False


def test_edit_survives_stale_echo():
    view = MessageView()
    view.apply_live(make_message("m1", content="draft"))
    view.apply_edit(make_message("m1", content="final", edited=True, edited_at=BASE_TIME))
    view.load_history([make_message("m1", content="draft")])

    msg = view.get("m1")
    assert msg.content == "final"
    assert msg.edited is True


def test_status_never_regresses():
    view = MessageView()
    view.apply_live(make_message("m1"))
    view.apply_status("m1", DeliveryStatus.SEEN, "user-bob")
    view.apply_status("m1", DeliveryStatus.DELIVERED)
    view.apply_live(make_message("m1"))

    msg = view.get("m1")
    assert msg.delivery_status is DeliveryStatus.SEEN
    assert msg.seen_by == ("user-bob",)


def test_status_for_unknown_message_is_ignored():
    view = MessageView()
    assert view.apply_status("nope", DeliveryStatus.DELIVERED) is False


def test_on_change_receives_derived_sequence():
    seen: list[list[str]] = []
    view = MessageView(on_change=lambda msgs: seen.append([m.id for m in msgs]))
    view.apply_live(make_message("m1"))
    view.apply_live(make_message("m1"))

    assert seen == [["m1"]]


def test_coerce_payload_keeps_camel_case_fields():
    payload = MessagePayload.model_validate(
        {
            "id": "m1",
            "sender": "bob",
            "content": None,
            "timestamp": "2024-05-01T12:00:00Z",
            "fileUrl": "/uploads/x.pdf",
            "fileSize": 10,
            "deliveryStatus": "delivered",
            "replyToId": "m0",
        }
    )
    msg = coerce_message(payload)

    assert msg.content == ""
    assert msg.attachment.url == "/uploads/x.pdf"
    assert msg.delivery_status is DeliveryStatus.DELIVERED
    assert msg.reply.message_id == "m0"


def test_caps_are_validated():
    with pytest.raises(ValueError):
        MessageView(display_cap=10, working_set_cap=5)
