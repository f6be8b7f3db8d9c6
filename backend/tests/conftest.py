"""
Shared fixtures: stub collaborators and an API client wired to them.
"""
import json

import pytest
from fastapi.testclient import TestClient

from form_assistant.dependencies import AssistantServices, get_services
from form_assistant.errors import CollaboratorIOFailure, InferenceUnavailable
from form_assistant.main import app
from form_assistant.services.form_structure import (
    FieldType, FormField, FormModel, FormSection, StructureInferencer
)
from form_assistant.services.renderer import PdfFormRenderer
from form_assistant.services.session_store import SessionStore
from form_assistant.services.textract_service import ExtractedDocument
from form_assistant.services.translator import IdentityTranslator
from form_assistant.utils.rate_limiter import RateLimiter


class FailingInferenceClient:
    """Inference client whose every call fails with a preset error."""

    def __init__(self, error=None):
        self.error = error or InferenceUnavailable("Inference API key not configured")
        self.calls = 0

    @property
    def is_available(self):
        return False

    def complete(self, system_prompt, user_prompt, timeout=None, service='inference', json_output=False, max_tokens=2000):
        self.calls += 1
        raise self.error


class ScriptedInferenceClient:
    """Inference client replaying canned responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    @property
    def is_available(self):
        return True

    def complete(self, system_prompt, user_prompt, timeout=None, service='inference', json_output=False, max_tokens=2000):
        self.requests.append({
            'system_prompt': system_prompt,
            'user_prompt': user_prompt,
            'timeout': timeout,
            'service': service,
        })
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response, ensure_ascii=False)
        return response


class DictTranslator:
    """Translator answering from a {(text, target_language): translation} table."""

    def __init__(self, table=None):
        self.table = table or {}
        self.calls = []

    def translate(self, text, source_language, target_language, timeout=None):
        self.calls.append((text, source_language, target_language))
        return self.table.get((text, target_language), text)


class FailingTranslator:
    """Translator that is always unreachable."""

    def __init__(self):
        self.calls = 0

    def translate(self, text, source_language, target_language, timeout=None):
        self.calls += 1
        raise CollaboratorIOFailure('translator', 'connection refused')


class StaticExtractor:
    """Document extractor returning a fixed document, or failing."""

    def __init__(self, document=None, error=None):
        self.document = document or ExtractedDocument(lines=["APPLICATION FORM", "Name:", "Address:"])
        self.error = error
        self.calls = []

    def extract(self, document_bytes, filename=""):
        self.calls.append(filename)
        if self.error:
            raise self.error
        return self.document


@pytest.fixture
def identity_translator():
    return IdentityTranslator()


@pytest.fixture
def choice_form():
    """Small English form exercising every field type."""
    return FormModel(
        title="Ration Card Application",
        language="en",
        fields=(
            FormField(id="full_name", label="Full Name", section="applicant"),
            FormField(id="gender", label="Gender", type=FieldType.CHOICE,
                      options=("Male", "Female", "Other"), section="applicant"),
            FormField(id="date_of_birth", label="Date of Birth", type=FieldType.DATE, section="applicant"),
            FormField(id="bpl", label="Are you below the poverty line?", type=FieldType.CHECKBOX,
                      section="household"),
            FormField(id="email", label="Email", required=False, section="household"),
        ),
        sections=(
            FormSection(id="applicant", title="Applicant", field_ids=("full_name", "gender", "date_of_birth")),
            FormSection(id="household", title="Household", field_ids=("bpl", "email")),
        ),
        form_id="ration",
    )


@pytest.fixture
def abc_form():
    """Three required text fields A, B, C."""
    return FormModel(
        title="ABC",
        language="en",
        fields=(
            FormField(id="a", label="A"),
            FormField(id="b", label="B"),
            FormField(id="c", label="C"),
        ),
        sections=(),
        form_id="abc",
    )


@pytest.fixture
def services(tmp_path):
    """Service container built entirely from stubs."""
    rate_limiter = RateLimiter(max_total_calls=50, enabled=True)
    return AssistantServices(
        inferencer=StructureInferencer(FailingInferenceClient()),
        translator=IdentityTranslator(),
        renderer=PdfFormRenderer(output_dir=str(tmp_path / "documents")),
        store=SessionStore(),
        rate_limiter=rate_limiter,
        extractor=StaticExtractor(),
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()
