import pytest

from hangouts.core.ConversationStore import Conversation, ConversationStore
from hangouts.core.SessionClock import SessionClock
from shared.envelope import UnknownConversationError

from protocol_fakes import make_conversation, make_event, make_state


def timestamps(conversation):
    return [e.timestamp for e in conversation.events]


@pytest.fixture
def store():
    return ConversationStore(SessionClock())


def test_full_sync_loads_conversations(store):
    loaded = store.apply_full_sync([
        make_state("a", [30, 10, 20], name="Alpha"),
        make_state("b", [5]),
    ])

    assert loaded == 2
    assert len(store) == 2
    assert timestamps(store.require("a")) == [10, 20, 30]
    assert store.require("a").name == "Alpha"
    assert [c.id for c in store.conversations] == ["a", "b"]


def test_incremental_filters_events_not_newer_than_clock(store):
    store.apply_full_sync([make_state("a", [50, 100])])
    store.clock.advance(100)

    appended = store.apply_incremental_state("a", None, [make_event("a", ts) for ts in (50, 100, 150)])

    assert [e.timestamp for e in appended] == [150]
    assert timestamps(store.require("a")) == [50, 100, 150]


def test_incremental_never_duplicates(store):
    store.apply_full_sync([make_state("a", [10])])
    store.clock.advance(5)

    first = store.apply_incremental_state("a", None, [make_event("a", 10), make_event("a", 20)])
    second = store.apply_incremental_state("a", None, [make_event("a", 20)])

    assert [e.timestamp for e in first] == [20]
    assert second == []
    assert timestamps(store.require("a")) == [10, 20]


def test_incremental_creates_unknown_conversation_with_all_events(store):
    store.clock.advance(1000)

    appended = store.apply_incremental_state("new", make_conversation("new", name="Fresh"),
                                             [make_event("new", 10), make_event("new", 2000)])

    assert appended == []
    assert "new" in store
    assert store.require("new").name == "Fresh"
    assert timestamps(store.require("new")) == [10, 2000]


def test_incremental_replaces_metadata(store):
    store.apply_full_sync([make_state("a", [], name="Old")])

    store.apply_incremental_state("a", make_conversation("a", name="New"), [])
    assert store.require("a").name == "New"

    store.apply_incremental_state("a", None, [])
    assert store.require("a").name == "New"


def test_incremental_drops_events_for_unknown_other_conversation(store):
    store.apply_full_sync([make_state("a", [])])

    appended = store.apply_incremental_state("a", None, [make_event("zzz", 10)])

    assert appended == []
    assert "zzz" not in store


def test_apply_event(store):
    store.apply_full_sync([make_state("a", [10])])
    store.clock.advance(10)

    assert store.apply_event(make_event("a", 20)) is True
    assert store.apply_event(make_event("a", 20)) is False
    assert store.apply_event(make_event("a", 10)) is False
    assert timestamps(store.require("a")) == [10, 20]


def test_apply_event_for_unknown_conversation_is_dropped(store, caplog):
    assert store.apply_event(make_event("ghost", 10)) is False
    assert "ghost" not in store
    assert "unknown conversation ghost" in caplog.text


def test_apply_conversation_creates_then_updates(store):
    created = store.apply_conversation(make_conversation("c", name="One"))
    updated = store.apply_conversation(make_conversation("c", name="Two"))

    assert created is updated
    assert store.require("c").name == "Two"
    assert len(store.require("c")) == 0


def test_require_unknown_raises(store):
    assert store.lookup("missing") is None
    with pytest.raises(UnknownConversationError):
        store.require("missing")


def test_conversation_log_is_append_only():
    conversation = Conversation("a")

    assert conversation.add_event(make_event("a", 10))
    assert not conversation.add_event(make_event("a", 10, text="again"))
    assert not conversation.add_event(make_event("a", 5))
    assert conversation.add_event(make_event("a", 11))
    assert conversation.latest_timestamp == 11
    assert conversation.last_event.timestamp == 11
    assert conversation.has_event(10)
    assert not conversation.has_event(5)

    snapshot = conversation.events
    snapshot.clear()
    assert len(conversation) == 2
