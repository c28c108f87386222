from __future__ import annotations

from datetime import datetime, timezone

from cuidado_tool.event_store import EventStore, build_event
from cuidado_tool.model import AutoSuppressionEntry, CareEvent, EventType, to_iso
from cuidado_tool.pipeline import apply_event, rebuild_from_log

UTC = timezone.utc
DAY = datetime(2024, 3, 1, tzinfo=UTC)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


def test_build_event_is_real_with_unique_id() -> None:
    first = build_event(EventType.MILK_GIVEN, _at(8))
    second = build_event(EventType.MILK_GIVEN, _at(8))
    assert first.id.startswith("MilkGiven-")
    assert first.id != second.id
    assert first.timestamp_utc == "2024-03-01T08:00:00.000Z"
    assert not first.auto_predicted


def test_edit_and_delete_unknown_ids_are_noops() -> None:
    event = build_event(EventType.FIRST_AWAKE, _at(7))
    store = EventStore([event])
    assert store.edit_timestamp("missing", _at(9)) is False
    assert store.delete("missing") is False
    assert store.events == (event,)
    assert store.suppressed == ()


def test_editing_auto_event_suppresses_original() -> None:
    auto = CareEvent("auto-feed-1", EventType.MILK_GIVEN, to_iso(_at(9)), True)
    store = EventStore([auto])
    assert store.edit_timestamp("auto-feed-1", _at(9, 40))

    edited = store.find("auto-feed-1")
    assert edited is not None
    assert edited.instant == _at(9, 40)
    assert not edited.auto_predicted
    assert store.suppressed == (
        AutoSuppressionEntry(EventType.MILK_GIVEN, to_iso(_at(9))),
    )


def test_deleting_real_event_does_not_suppress() -> None:
    event = build_event(EventType.SOLIDS_GIVEN, _at(11))
    store = EventStore([event])
    assert store.delete(event.id)
    assert store.events == ()
    assert store.suppressed == ()


def test_clear_drops_everything() -> None:
    auto = CareEvent("auto-feed-1", EventType.MILK_GIVEN, to_iso(_at(9)), True)
    store = EventStore([auto])
    store.delete("auto-feed-1")
    store.clear()
    assert store.events == ()
    assert store.suppressed == ()


def test_refresh_keeps_normalized_log() -> None:
    store = EventStore([build_event(EventType.FIRST_AWAKE, _at(7))])
    state = store.refresh(_at(10))
    assert store.events == state.event_log
    assert any(e.auto_predicted for e in store.events)
    assert state.last_wake_time == _at(9, 15)


def test_rebuild_copies_core_fields_and_suppressions() -> None:
    suppressed = (AutoSuppressionEntry(EventType.MILK_GIVEN, to_iso(_at(9))),)
    state = rebuild_from_log(
        [build_event(EventType.FIRST_AWAKE, _at(7))], _at(10), suppressed
    )
    assert state.auto_suppressed == suppressed
    assert not any(e.type is EventType.MILK_GIVEN for e in state.event_log)
    assert state.last_nap_start == _at(8, 15)
    assert state.last_nap_end == _at(9, 15)


def test_apply_event_appends_and_rebuilds() -> None:
    start = rebuild_from_log([build_event(EventType.FIRST_AWAKE, _at(7))], _at(7, 30))
    assert start.last_feed_time is None
    after = apply_event(start, build_event(EventType.MILK_GIVEN, _at(7, 20)), _at(7, 30))
    assert after.last_feed_time == _at(7, 20)
    assert len(after.event_log) == len(start.event_log) + 1


def test_deleted_auto_first_awake_returns_at_day_start() -> None:
    store = EventStore([])
    store.refresh(_at(8, 30))
    auto_wake = next(e for e in store.events if e.type is EventType.FIRST_AWAKE)
    assert auto_wake.auto_predicted

    assert store.delete(auto_wake.id)
    assert store.suppressed == (AutoSuppressionEntry(EventType.FIRST_AWAKE, to_iso(_at(7))),)

    # El despertar del día operativo no consulta la lista de suprimidos.
    state = store.refresh(_at(8, 30))
    wakes = [e for e in state.event_log if e.type is EventType.FIRST_AWAKE]
    assert [(e.instant, e.auto_predicted) for e in wakes] == [(_at(7), True)]
    assert len(store.suppressed) == 1
