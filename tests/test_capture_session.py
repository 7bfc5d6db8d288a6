import threading

import pytest

from clipshelf.errors import SessionStateError
from clipshelf.models import SessionState, Suggestion, TextContent
from clipshelf.services import CaptureSessionManager, EnrichmentService
from clipshelf.services.notification_service import (
    ENRICHMENT_FAILED,
    SESSION_CLOSED,
    SESSION_OPENED,
    SUGGESTION_READY,
)

from conftest import FakeClassifier, wait_for

URL = TextContent(plain="https://example.com")
URL_SUGGESTION = Suggestion(category="url", tags=["web", "example"], summary="Example domain")


@pytest.fixture
def make_manager(store, bus):
    created = []

    def factory(classifier, timeout=None):
        enrichment = EnrichmentService(classifier, store, bus, max_workers=2)
        manager = CaptureSessionManager(store, enrichment, bus, timeout=timeout)
        created.append((manager, enrichment))
        return manager

    yield factory
    for manager, enrichment in created:
        manager.close()
        enrichment.shutdown(wait=True)


def test_url_suggestion_saved_without_editing(store, make_manager):
    manager = make_manager(FakeClassifier(URL_SUGGESTION))

    opened = manager.open(URL)
    assert opened.state in (SessionState.AWAITING_SUGGESTION, SessionState.READY)
    assert manager.wait_until_ready(timeout=3)

    snapshot = manager.current()
    assert snapshot.state == SessionState.READY
    assert snapshot.effective_category == "url"
    assert snapshot.can_save

    item_id = manager.confirm()
    item = store.get_item(item_id)
    assert item.category == "url"
    assert item.tags == ["web", "example"]
    assert item.summary == "Example domain"
    assert manager.current().state == SessionState.SAVED


def test_save_is_disabled_until_a_suggestion_or_input(store, make_manager):
    gate = threading.Event()
    manager = make_manager(FakeClassifier(URL_SUGGESTION, gate=gate))

    snapshot = manager.open(URL)
    assert snapshot.state == SessionState.AWAITING_SUGGESTION
    assert not snapshot.can_save
    with pytest.raises(SessionStateError):
        manager.confirm()
    assert store.list_items() == []

    gate.set()
    assert manager.wait_until_ready(timeout=3)
    assert manager.current().can_save


def test_typed_category_wins_over_later_suggestion(store, make_manager):
    gate = threading.Event()
    manager = make_manager(FakeClassifier(URL_SUGGESTION, gate=gate))

    manager.open(URL)
    manager.set_category("work")
    gate.set()
    assert manager.wait_until_ready(timeout=3)

    assert manager.current().effective_category == "work"
    item_id = manager.confirm()
    assert store.get_item(item_id).category == "work"


def test_suggestion_is_prefilled_when_user_has_not_typed(bus, make_manager):
    sub = bus.subscribe()
    manager = make_manager(FakeClassifier(URL_SUGGESTION))

    manager.open(URL)
    assert manager.wait_until_ready(timeout=3)

    ready = [e for e in sub.drain() if e.kind == SUGGESTION_READY][0]
    assert ready.payload["prefill"] == "url"
    assert ready.payload["failed"] is False


def test_clearing_typed_text_falls_back_to_suggestion(make_manager):
    manager = make_manager(FakeClassifier(URL_SUGGESTION))

    manager.open(URL)
    manager.wait_until_ready(timeout=3)
    manager.set_category("work")
    snapshot = manager.set_category("   ")

    assert snapshot.effective_category == "url"


def test_save_before_suggestion_keeps_category_and_gets_tags_later(store, make_manager):
    gate = threading.Event()
    manager = make_manager(FakeClassifier(URL_SUGGESTION, gate=gate))

    manager.open(URL)
    item_id = manager.confirm("reading")
    assert store.get_item(item_id).tags == []

    gate.set()
    assert wait_for(lambda: store.get_item(item_id).tags == ["web", "example"])
    item = store.get_item(item_id)
    assert item.category == "reading"
    assert item.summary == "Example domain"


def test_cancel_persists_nothing_and_discards_suggestion(store, bus, make_manager):
    gate = threading.Event()
    sub = bus.subscribe()
    manager = make_manager(FakeClassifier(URL_SUGGESTION, gate=gate))

    manager.open(URL)
    snapshot = manager.cancel()
    gate.set()

    assert snapshot.state == SessionState.CANCELLED
    manager.enrichment.shutdown(wait=True)
    assert store.list_items() == []
    assert manager.current().suggestion is None
    kinds = [e.kind for e in sub.drain()]
    assert SUGGESTION_READY not in kinds
    assert kinds[0] == SESSION_OPENED
    assert SESSION_CLOSED in kinds


def test_confirm_twice_persists_exactly_once(store, make_manager):
    manager = make_manager(FakeClassifier(URL_SUGGESTION))

    manager.open(URL)
    manager.wait_until_ready(timeout=3)
    manager.confirm()
    with pytest.raises(SessionStateError):
        manager.confirm()
    with pytest.raises(SessionStateError):
        manager.cancel()

    assert len(store.list_items()) == 1


def test_concurrent_confirms_save_once(store, make_manager):
    manager = make_manager(FakeClassifier(URL_SUGGESTION))
    manager.open(URL)
    manager.wait_until_ready(timeout=3)
    errors = []

    def confirm():
        try:
            manager.confirm()
        except SessionStateError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=confirm) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(store.list_items()) == 1
    assert len(errors) == 4


def test_failed_suggestion_falls_back_to_default(store, bus, make_manager, unreachable_classifier):
    sub = bus.subscribe()
    manager = make_manager(unreachable_classifier)

    manager.open(TextContent(plain="hello world"))
    assert manager.wait_until_ready(timeout=3)

    snapshot = manager.current()
    assert snapshot.suggestion_failed
    assert snapshot.effective_category == "Other"
    item = store.get_item(manager.confirm())
    assert (item.category, item.tags, item.summary) == ("Other", [], None)
    assert ENRICHMENT_FAILED in [e.kind for e in sub.drain()]


def test_new_session_supersedes_open_one(store, make_manager):
    gate = threading.Event()
    manager = make_manager(FakeClassifier(URL_SUGGESTION, gate=gate))

    first = manager.open(TextContent(plain="first"))
    second = manager.open(TextContent(plain="second"))
    gate.set()
    assert manager.wait_until_ready(timeout=3)

    assert first.session_id != second.session_id
    assert manager.current().session_id == second.session_id
    manager.confirm()
    assert [i.content.plain for i in store.list_items()] == ["second"]


def test_commands_without_session_fail(make_manager):
    manager = make_manager(FakeClassifier())

    assert manager.current() is None
    with pytest.raises(SessionStateError):
        manager.confirm("x")
    with pytest.raises(SessionStateError):
        manager.set_category("x")
    with pytest.raises(SessionStateError):
        manager.cancel()


def test_timeout_saves_automatically(store, make_manager):
    manager = make_manager(FakeClassifier(URL_SUGGESTION), timeout=0.2)

    manager.open(URL)

    assert wait_for(lambda: len(store.list_items()) == 1)
    assert store.list_items()[0].category == "url"
    assert manager.current().state == SessionState.SAVED


def test_session_opened_after_enrichment_shutdown_becomes_ready(store, make_manager):
    manager = make_manager(FakeClassifier(URL_SUGGESTION))
    manager.enrichment.shutdown(wait=True)

    opened = manager.open(URL)

    assert opened.state == SessionState.AWAITING_SUGGESTION
    snapshot = manager.current()
    assert snapshot.state == SessionState.READY
    assert snapshot.suggestion_failed
    assert store.get_item(manager.confirm()).category == "Other"
