"""
Tests for PDF rendering.
"""
import pytest

from form_assistant.errors import CollaboratorIOFailure
from form_assistant.services.form_structure import FALLBACK_FORM, FormField, FormModel
from form_assistant.services.renderer import PdfFormRenderer


@pytest.fixture
def renderer(tmp_path):
    return PdfFormRenderer(output_dir=str(tmp_path))


def test_renders_pdf_named_after_form(renderer, tmp_path):
    document = renderer.render(FALLBACK_FORM.with_form_id("f1"), {"name": "Jane Doe", "phone": "9876543210"})

    assert document.path.parent == tmp_path
    assert document.filename.startswith("f1_") and document.filename.endswith(".pdf")
    assert document.file_size == document.path.stat().st_size > 0
    assert document.path.read_bytes().startswith(b"%PDF")


def test_each_render_gets_its_own_file(renderer):
    first = renderer.render(FALLBACK_FORM, {})
    second = renderer.render(FALLBACK_FORM, {})
    assert first.path != second.path


def test_long_forms_paginate(renderer):
    form = FormModel(
        title="Long Form",
        language="en",
        fields=tuple(FormField(id=f"item_{i}", label=f"Item {i}") for i in range(120)),
    )
    values = {f"item_{i}": "word " * 40 for i in range(120)}

    lines = renderer._layout_lines(form, values)
    assert len(renderer._draw_pages(lines)) > 1
    assert renderer.render(form, values).file_size > 0


def test_fields_outside_sections_are_listed(renderer):
    form = FormModel(
        title="T",
        language="en",
        fields=(FormField(id="a", label="A", section="s"), FormField(id="b", label="B")),
        sections=(),
    )
    texts = [text for text, _ in renderer._layout_lines(form, {"a": "1"})]
    assert "A: 1" in texts
    assert "B: -" in texts


def test_unwritable_output_raises_collaborator_failure(renderer, tmp_path):
    renderer.output_dir = tmp_path / "removed"
    with pytest.raises(CollaboratorIOFailure):
        renderer.render(FALLBACK_FORM, {})
