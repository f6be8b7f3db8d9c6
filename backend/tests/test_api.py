"""
Tests for the HTTP surface.
"""
import pytest

from form_assistant.errors import CollaboratorIOFailure
from form_assistant.services.form_structure import StructureInferencer
from form_assistant.services.textract_service import ExtractedDocument

from conftest import FailingTranslator, ScriptedInferenceClient, StaticExtractor

PDF_BYTES = b"%PDF-1.4\n% test document\n"


def upload(client, filename="form.pdf", content=PDF_BYTES, **data):
    return client.post("/api/upload", files={"file": (filename, content, "application/pdf")}, data=data)


def chat(client, session_id, message="", **context):
    return client.post("/api/chat", json={"message": message, "context": {"session_id": session_id, **context}})


class TestUpload:

    def test_upload_falls_back_when_inference_is_unavailable(self, client):
        response = upload(client)
        assert response.status_code == 200

        body = response.json()
        assert body["success"] is True
        assert body["used_fallback"] is True
        assert body["form_title"] == "Government Application Form"
        assert body["total_fields"] == 5
        assert [f["id"] for f in body["fields"]] == ["name", "father_name", "address", "phone", "purpose"]
        assert body["session_id"]
        assert body["form_id"]

    def test_upload_with_inferred_structure(self, client, services):
        services.inferencer = StructureInferencer(ScriptedInferenceClient({
            "title": "Birth Certificate",
            "language": "en",
            "fields": [{"label": "Child Name"}, {"label": "Date of Birth", "type": "date"}],
            "sections": [{"title": "Child", "field_ids": ["child_name", "date_of_birth"]}],
        }))
        body = upload(client).json()

        assert body["used_fallback"] is False
        assert body["form_title"] == "Birth Certificate"
        assert body["fields"][1] == {
            "id": "date_of_birth", "label": "Date of Birth", "type": "date",
            "required": True, "options": [], "section": "child",
        }

    @pytest.mark.parametrize("filename,content", [
        ("form.docx", PDF_BYTES),
        ("form.pdf", b""),
        ("form.pdf", b"not a pdf"),
    ])
    def test_rejects_bad_files(self, client, filename, content):
        assert upload(client, filename=filename, content=content).status_code == 400

    def test_rejects_oversized_files(self, client, monkeypatch):
        from form_assistant.config import Config
        monkeypatch.setattr(Config, "MAX_UPLOAD_BYTES", 10)
        assert upload(client).status_code == 400

    def test_accepts_images(self, client):
        assert upload(client, filename="scan.JPG", content=b"\xff\xd8\xff fake jpeg").status_code == 200

    def test_extraction_failure_is_500(self, client, services):
        services.extractor = StaticExtractor(error=CollaboratorIOFailure('textract', 'AWS credentials have expired'))
        response = upload(client)
        assert response.status_code == 500
        assert "expired" in response.json()["detail"]

    def test_unsupported_interaction_language(self, client):
        assert upload(client, language="xx").status_code == 400


class TestChat:

    def test_without_session_asks_for_upload(self, client):
        response = client.post("/api/chat", json={"message": "hello"})
        assert response.status_code == 200
        assert "upload" in response.json()["response"].lower()
        assert response.json()["session_status"] is None

    def test_prompt_then_answer(self, client):
        session_id = upload(client).json()["session_id"]

        body = chat(client, session_id).json()
        assert body["session_status"] == "awaiting_field"
        assert body["next_field"]["field_id"] == "name"
        assert body["suggestions"]

        body = chat(client, session_id, "Jane Doe").json()
        assert body["next_field"]["field_id"] == "father_name"

    def test_empty_message_skips_optional_field(self, client, services):
        services.inferencer = StructureInferencer(ScriptedInferenceClient({
            "title": "Contact Details",
            "language": "en",
            "fields": [
                {"label": "Name"},
                {"label": "Email", "required": False},
                {"label": "Phone"},
            ],
        }))
        session_id = upload(client).json()["session_id"]

        assert chat(client, session_id).json()["next_field"]["field_id"] == "name"
        body = chat(client, session_id, "Jane Doe").json()
        assert body["next_field"]["field_id"] == "email"
        assert "This field is optional. Send an empty answer to skip it." in body["suggestions"]

        body = chat(client, session_id).json()
        assert body["next_field"]["field_id"] == "phone"
        # Required fields are re-asked, not skipped
        assert chat(client, session_id).json()["next_field"]["field_id"] == "phone"
        assert client.get(f"/api/sessions/{session_id}").json()["values"] == {"name": "Jane Doe", "email": ""}

    def test_validation_failure_is_reported_not_raised(self, client):
        session_id = upload(client).json()["session_id"]
        response = chat(client, session_id, "   ", action="answer")

        assert response.status_code == 200
        body = response.json()
        assert body["errors"] == ["Full Name is required."]
        assert body["next_field"]["field_id"] == "name"

    def test_answer_for_wrong_field_is_409(self, client):
        session_id = upload(client).json()["session_id"]
        response = chat(client, session_id, "Somewhere", field_id="address")
        assert response.status_code == 409
        assert response.json()["error"] == "FieldMismatch"

    def test_navigate_unknown_field_is_400(self, client):
        session_id = upload(client).json()["session_id"]
        response = chat(client, session_id, action="navigate", field_id="nope")
        assert response.status_code == 400
        assert response.json()["error"] == "UnknownField"

    def test_navigate_requires_field_id(self, client):
        session_id = upload(client).json()["session_id"]
        assert chat(client, session_id, action="navigate").status_code == 400

    def test_unknown_session_is_404(self, client):
        assert chat(client, "missing", "hi").status_code == 404

    def test_summary_before_completion_is_409(self, client):
        session_id = upload(client).json()["session_id"]
        response = chat(client, session_id, action="summary")
        assert response.status_code == 409
        assert response.json()["extra"]["missing_field_ids"][0] == "name"

    def test_form_data_prefill(self, client):
        session_id = upload(client).json()["session_id"]
        response = client.post("/api/chat", json={
            "context": {"session_id": session_id},
            "form_data": {"name": "Jane Doe", "father_name": "John Doe"},
        })
        assert response.json()["next_field"]["field_id"] == "address"

    def test_form_data_with_unknown_key_is_400(self, client):
        session_id = upload(client).json()["session_id"]
        response = client.post("/api/chat", json={
            "context": {"session_id": session_id},
            "form_data": {"favourite_colour": "blue"},
        })
        assert response.status_code == 400

    def test_cancel_closes_session(self, client):
        session_id = upload(client).json()["session_id"]
        body = chat(client, session_id, action="cancel").json()
        assert body["session_status"] == "abandoned"

        response = chat(client, session_id, "Jane Doe")
        assert response.status_code == 409
        assert response.json()["error"] == "SessionClosed"

    def test_session_detail_and_cancel_endpoint(self, client):
        session_id = upload(client).json()["session_id"]
        chat(client, session_id, "Jane Doe")

        detail = client.get(f"/api/sessions/{session_id}").json()
        assert detail["values"] == {"name": "Jane Doe"}
        assert detail["current_field_id"] == "father_name"
        assert detail["history"] == ["name"]
        assert [turn["role"] for turn in detail["transcript"]] == ["user", "assistant"]

        cancelled = client.post(f"/api/sessions/{session_id}/cancel").json()
        assert cancelled["status"] == "abandoned"

    def test_switch_language_to_unsupported_is_400(self, client):
        session_id = upload(client).json()["session_id"]
        assert chat(client, session_id, language="xx").status_code == 400


class TestTranslate:

    def test_identity_translation(self, client):
        response = client.post("/api/translate", json={"text": "नमस्ते", "target_language": "en"})
        assert response.status_code == 200
        assert response.json() == {"translated_text": "नमस्ते", "source_language": "hi", "target_language": "en"}

    def test_unsupported_target_is_400(self, client):
        response = client.post("/api/translate", json={"text": "hello", "target_language": "xx"})
        assert response.status_code == 400

    def test_translator_down_is_503(self, client, services):
        services.translator = FailingTranslator()
        response = client.post("/api/translate", json={"text": "hello", "target_language": "hi"})
        assert response.status_code == 503


class TestGenerate:

    FALLBACK_VALUES = {
        "name": "Jane Doe",
        "father_name": "John Doe",
        "address": "12 MG Road, Bengaluru",
        "phone": "9876543210",
        "purpose": "Caste certificate",
    }

    def test_generate_from_form_data_and_download(self, client):
        response = client.post("/api/generate", json={"form_data": self.FALLBACK_VALUES})
        assert response.status_code == 200

        body = response.json()
        assert body["success"] is True
        assert body["file_size"] > 0
        assert body["download_url"].startswith("/api/download/fallback_")

        download = client.get(body["download_url"])
        assert download.status_code == 200
        assert download.content.startswith(b"%PDF")

    def test_generate_from_completed_session(self, client):
        upload_body = upload(client).json()
        session_id = upload_body["session_id"]
        for value in self.FALLBACK_VALUES.values():
            chat(client, session_id, value)

        response = client.post("/api/generate", json={"session_id": session_id})
        assert response.status_code == 200
        assert upload_body["form_id"] in response.json()["download_url"]

    def test_generate_from_incomplete_session_is_409(self, client):
        session_id = upload(client).json()["session_id"]
        response = client.post("/api/generate", json={"session_id": session_id})
        assert response.status_code == 409

    def test_missing_required_values_is_409(self, client):
        response = client.post("/api/generate", json={"form_data": {"name": "Jane Doe"}})
        assert response.status_code == 409
        assert "father_name" in response.json()["extra"]["missing_field_ids"]

    def test_unknown_keys_are_400(self, client):
        values = dict(self.FALLBACK_VALUES, shoe_size="9")
        assert client.post("/api/generate", json={"form_data": values}).status_code == 400

    @pytest.mark.parametrize("field_id,value", [
        ("gender", "Banana"),
        ("date_of_birth", "not a date"),
        ("bpl", "maybe"),
    ])
    def test_invalid_values_are_422(self, client, services, choice_form, field_id, value):
        services.store.add_form(choice_form)
        values = {"full_name": "Asha Devi", "gender": "Female", "date_of_birth": "15/08/1990", "bpl": "yes"}
        values[field_id] = value

        response = client.post("/api/generate", json={"template_id": "ration", "form_data": values})

        assert response.status_code == 422
        assert response.json()["field_id"] == field_id

    def test_values_are_canonicalized_before_rendering(self, client, services, choice_form):
        rendered = {}
        pdf_renderer = services.renderer

        class RecordingRenderer:
            output_dir = pdf_renderer.output_dir

            def render(self, form, values):
                rendered.update(values)
                return pdf_renderer.render(form, values)

        services.store.add_form(choice_form)
        services.renderer = RecordingRenderer()
        values = {"full_name": "Asha Devi", "gender": "female", "date_of_birth": "15/08/1990", "bpl": "Y"}

        response = client.post("/api/generate", json={"template_id": "ration", "form_data": values})

        assert response.status_code == 200
        assert rendered["gender"] == "Female"
        assert rendered["bpl"] == "Yes"

    def test_unknown_template_is_404(self, client):
        response = client.post("/api/generate", json={"form_data": self.FALLBACK_VALUES, "template_id": "nope"})
        assert response.status_code == 404

    def test_renderer_failure_is_503(self, client, services):
        class BrokenRenderer:
            output_dir = "."

            def render(self, form, values):
                raise CollaboratorIOFailure('renderer', 'disk full')

        services.renderer = BrokenRenderer()
        assert client.post("/api/generate", json={"form_data": self.FALLBACK_VALUES}).status_code == 503

    def test_download_missing_file_is_404(self, client):
        assert client.get("/api/download/nothing.pdf").status_code == 404


class TestReferenceEndpoints:

    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"

    def test_languages(self, client):
        body = client.get("/api/languages").json()
        codes = [language["code"] for language in body["languages"]]
        assert "en" in codes and "hi" in codes

    def test_rate_limit(self, client):
        body = client.get("/api/rate-limit").json()
        assert body["max_calls"] == 50
        assert body["remaining_calls"] == 50


def test_extracted_text_reaches_the_inferencer(client, services):
    inference_client = ScriptedInferenceClient({"title": "T", "fields": [{"label": "Village"}]})
    services.inferencer = StructureInferencer(inference_client)
    services.extractor = StaticExtractor(ExtractedDocument(
        lines=["GRAM PANCHAYAT FORM", "Village:"],
        table_rows=[["Ward", "choice", "1/2/3"]],
    ))

    upload(client)
    prompt = inference_client.requests[0]['user_prompt']
    assert "GRAM PANCHAYAT FORM" in prompt
    assert "- Ward | choice | 1, 2, 3" in prompt
