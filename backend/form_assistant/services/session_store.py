"""
In-memory registry of uploaded forms and live sessions.

Each session gets its own lock; callers hold it for the duration of every
engine operation, so calls against one session are serialized while
different sessions proceed in parallel. Nothing survives a restart.

The store holds at most `max_sessions` sessions. When full, finished
(completed or abandoned) sessions go first, then the least recently used
ones. An uploaded form is kept while at least one session refers to it.
"""
import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from form_assistant.errors import UnknownForm, UnknownSession
from form_assistant.services.form_structure.form_model import FALLBACK_FORM, FALLBACK_FORM_ID, FormModel
from form_assistant.services.session_engine import SessionEngine, SessionStatus

logger = logging.getLogger(__name__)


class SessionStore:
    """Thread-safe store of FormModels and SessionEngines."""

    def __init__(self, max_sessions: int = 1000):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.max_sessions = max_sessions
        self._forms: Dict[str, FormModel] = {FALLBACK_FORM_ID: FALLBACK_FORM}
        # Least recently used first
        self._sessions: "OrderedDict[str, SessionEngine]" = OrderedDict()
        self._session_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    # Forms

    def add_form(self, form: FormModel) -> FormModel:
        with self._lock:
            self._forms[form.form_id] = form
        return form

    def get_form(self, form_id: Optional[str]) -> FormModel:
        """Look up an uploaded form; None gives the fallback form."""
        if form_id is None:
            return FALLBACK_FORM
        with self._lock:
            form = self._forms.get(form_id)
        if form is None:
            raise UnknownForm(form_id)
        return form

    def form_ids(self) -> List[str]:
        with self._lock:
            return list(self._forms)

    # Sessions

    def add_session(self, engine: SessionEngine) -> SessionEngine:
        with self._lock:
            if len(self._sessions) >= self.max_sessions:
                self._make_room()
            self._sessions[engine.session_id] = engine
            self._session_locks[engine.session_id] = threading.Lock()
        return engine

    @contextmanager
    def session(self, session_id: str) -> Iterator[SessionEngine]:
        """
        Hold a session exclusively.

        Usage:
            with store.session(session_id) as engine:
                engine.submit_answer(...)
        """
        with self._lock:
            engine = self._sessions.get(session_id)
            session_lock = self._session_locks.get(session_id)
            if engine is not None:
                self._sessions.move_to_end(session_id)
        if engine is None or session_lock is None:
            raise UnknownSession(session_id)

        with session_lock:
            yield engine

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._drop(session_id)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def _make_room(self):
        """Evict until one more session fits. Caller holds _lock."""
        finished = [
            session_id for session_id, engine in self._sessions.items()
            if engine.status in (SessionStatus.ABANDONED, SessionStatus.COMPLETE)
            and not self._session_locks[session_id].locked()
        ]
        for session_id in finished:
            self._drop(session_id)

        # Idle sessions before ones currently held by a request
        by_age = sorted(self._sessions, key=lambda sid: self._session_locks[sid].locked())
        stale = by_age[:max(0, len(self._sessions) - self.max_sessions + 1)]
        for session_id in stale:
            self._drop(session_id)

        logger.info(f"Evicted {len(finished)} finished and {len(stale)} least recently used sessions")

    def _drop(self, session_id: str):
        """Remove a session, and its form once no session uses it. Caller holds _lock."""
        engine = self._sessions.pop(session_id, None)
        self._session_locks.pop(session_id, None)
        if engine is None:
            return
        form_id = engine.form.form_id
        if form_id == FALLBACK_FORM_ID:
            return
        if not any(other.form.form_id == form_id for other in self._sessions.values()):
            self._forms.pop(form_id, None)
