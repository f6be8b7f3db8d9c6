"""
End-to-end: upload with inference down, fill the fallback form, render it.
"""
from form_assistant.services.form_structure import FALLBACK_FORM, StructureInferencer
from form_assistant.services.renderer import PdfFormRenderer
from form_assistant.services.session_engine import SessionEngine, SessionStatus
from form_assistant.services.session_store import SessionStore

from conftest import FailingInferenceClient

JANE_DOE = [
    ("name", "Jane Doe"),
    ("father_name", "John Doe"),
    ("address", "123 Main St"),
    ("phone", "5551234"),
    ("purpose", "RTI request"),
]


def test_fallback_form_filled_and_rendered(tmp_path, identity_translator):
    outcome = StructureInferencer(FailingInferenceClient()).infer("", form_id="jane")
    assert outcome.used_fallback

    store = SessionStore()
    form = store.add_form(outcome.form)
    engine = store.add_session(SessionEngine(form, translator=identity_translator))

    with store.session(engine.session_id) as session:
        for field_id, value in JANE_DOE:
            assert session.next_prompt().field_id == field_id
            session.submit_answer(field_id, value)

        assert session.status == SessionStatus.COMPLETE
        summary = session.summary()

    assert [(item.field_id, item.value) for item in summary] == JANE_DOE
    assert [item.label for item in summary] == [f.label for f in FALLBACK_FORM.fields]

    document = PdfFormRenderer(output_dir=str(tmp_path)).render(form, {i.field_id: i.value for i in summary})
    assert document.filename.startswith("jane_")
    assert document.path.read_bytes().startswith(b"%PDF")


def test_two_sessions_on_one_form_are_independent(identity_translator):
    store = SessionStore()
    first = store.add_session(SessionEngine(FALLBACK_FORM, translator=identity_translator))
    second = store.add_session(SessionEngine(FALLBACK_FORM, translator=identity_translator))

    with store.session(first.session_id) as engine:
        engine.submit_answer("name", "Jane Doe")
    with store.session(second.session_id) as engine:
        engine.cancel()

    assert first.values == {"name": "Jane Doe"}
    assert first.status == SessionStatus.AWAITING_FIELD
    assert second.values == {}
    assert second.status == SessionStatus.ABANDONED


def test_fallback_form_filled_over_http(client):
    upload = client.post("/api/upload", files={"file": ("form.pdf", b"%PDF-1.4\n", "application/pdf")}).json()
    assert upload["used_fallback"] is True
    assert upload["total_fields"] == 5
    assert len(upload["sections"]) == 2
    session_id = upload["session_id"]

    for field_id, value in JANE_DOE:
        body = client.post("/api/chat", json={"message": value, "context": {"session_id": session_id}}).json()
        assert body["errors"] is None

    assert body["session_status"] == "complete"
    assert body["next_field"] is None
    assert [(item["field_id"], item["value"]) for item in body["summary"]] == JANE_DOE

    body = client.post("/api/chat", json={"context": {"session_id": session_id, "action": "summary"}}).json()
    assert [(item["field_id"], item["value"]) for item in body["summary"]] == JANE_DOE
