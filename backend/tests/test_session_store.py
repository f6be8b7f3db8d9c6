"""
Tests for the in-memory form and session registry.
"""
import threading

import pytest

from form_assistant.errors import UnknownForm, UnknownSession
from form_assistant.services.form_structure import FALLBACK_FORM
from form_assistant.services.session_engine import SessionEngine
from form_assistant.services.session_store import SessionStore


def test_forms_are_looked_up_by_id():
    store = SessionStore()
    uploaded = store.add_form(FALLBACK_FORM.with_form_id("abc"))

    assert store.get_form("abc") is uploaded
    assert store.get_form(None) is FALLBACK_FORM
    with pytest.raises(UnknownForm):
        store.get_form("missing")


def test_unknown_session():
    store = SessionStore()
    with pytest.raises(UnknownSession):
        with store.session("missing"):
            pass


def test_discard():
    store = SessionStore()
    engine = store.add_session(SessionEngine(FALLBACK_FORM))
    store.discard(engine.session_id)
    assert store.session_ids() == []


def test_full_store_evicts_finished_sessions():
    store = SessionStore(max_sessions=2)
    finished = store.add_session(SessionEngine(FALLBACK_FORM))
    finished.cancel()
    active = store.add_session(SessionEngine(FALLBACK_FORM))
    newest = store.add_session(SessionEngine(FALLBACK_FORM))

    assert set(store.session_ids()) == {active.session_id, newest.session_id}


def test_store_stays_bounded_when_every_session_is_in_progress():
    store = SessionStore(max_sessions=3)
    engines = [store.add_session(SessionEngine(FALLBACK_FORM)) for _ in range(3)]

    for _ in range(5):
        store.add_session(SessionEngine(FALLBACK_FORM))

    assert len(store.session_ids()) == 3
    assert not set(store.session_ids()) & {e.session_id for e in engines}


def test_least_recently_used_session_is_evicted_first():
    store = SessionStore(max_sessions=2)
    first = store.add_session(SessionEngine(FALLBACK_FORM))
    second = store.add_session(SessionEngine(FALLBACK_FORM))
    with store.session(first.session_id):
        pass

    third = store.add_session(SessionEngine(FALLBACK_FORM))

    assert store.session_ids() == [first.session_id, third.session_id]
    assert second.session_id not in store.session_ids()


def test_form_is_dropped_with_its_last_session():
    store = SessionStore(max_sessions=1)
    uploaded = store.add_form(FALLBACK_FORM.with_form_id("upload-1"))
    first = store.add_session(SessionEngine(uploaded))
    second_form = store.add_form(FALLBACK_FORM.with_form_id("upload-2"))
    store.add_session(SessionEngine(second_form))

    assert first.session_id not in store.session_ids()
    with pytest.raises(UnknownForm):
        store.get_form("upload-1")
    assert store.get_form("upload-2") is second_form
    assert sorted(store.form_ids()) == ["fallback", "upload-2"]


def test_form_shared_by_sessions_outlives_the_first():
    store = SessionStore()
    uploaded = store.add_form(FALLBACK_FORM.with_form_id("shared"))
    first = store.add_session(SessionEngine(uploaded))
    second = store.add_session(SessionEngine(uploaded))

    store.discard(first.session_id)
    assert store.get_form("shared") is uploaded
    store.discard(second.session_id)
    with pytest.raises(UnknownForm):
        store.get_form("shared")
    assert store.get_form(None) is FALLBACK_FORM


def test_operations_on_one_session_are_serialized():
    store = SessionStore()
    engine = store.add_session(SessionEngine(FALLBACK_FORM))
    entered = threading.Event()
    release = threading.Event()
    order = []

    def hold():
        with store.session(engine.session_id):
            order.append("first")
            entered.set()
            release.wait(timeout=5)

    def follow():
        entered.wait(timeout=5)
        with store.session(engine.session_id):
            order.append("second")

    threads = [threading.Thread(target=hold), threading.Thread(target=follow)]
    for thread in threads:
        thread.start()
    entered.wait(timeout=5)
    assert order == ["first"]
    release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert order == ["first", "second"]
