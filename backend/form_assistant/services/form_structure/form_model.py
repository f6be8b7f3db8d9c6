"""
Form Model
==========

Canonical, typed representation of a government form: its fields, the
sections grouping them, and its language.

A FormModel is created once per uploaded document by the structure
inferencer and is IMMUTABLE afterwards. Sessions only read it, which is why
every type here is a frozen dataclass holding tuples.

Invariants:
- field ids are non-empty and unique within a model
- every section field id references an existing field
- a field belongs to at most one section
- `fields` order is the canonical fill order
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .languages import MIXED


class FieldType(str, Enum):
    """Input types a field can take."""
    TEXT = "text"
    CHOICE = "choice"
    CHECKBOX = "checkbox"
    DATE = "date"


@dataclass(frozen=True)
class FormField:
    """A single fillable field."""
    id: str
    label: str
    type: FieldType = FieldType.TEXT
    required: bool = True
    options: Tuple[str, ...] = ()
    section: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("FormField id must be non-empty")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'label': self.label,
            'type': self.type.value,
            'required': self.required,
            'options': list(self.options),
            'section': self.section,
        }


@dataclass(frozen=True)
class FormSection:
    """An ordered group of fields."""
    id: str
    title: str
    field_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'field_ids': list(self.field_ids),
        }


@dataclass(frozen=True)
class FormModel:
    """
    Structured model of a form.

    `form_id` identifies the uploaded document the model was built from and
    disambiguates everything derived from it (sessions, rendered files).
    """
    title: str
    language: str
    fields: Tuple[FormField, ...]
    sections: Tuple[FormSection, ...] = ()
    form_id: str = field(default="", compare=False)
    _index: Dict[str, FormField] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        index: Dict[str, FormField] = {}
        for form_field in self.fields:
            if form_field.id in index:
                raise ValueError(f"Duplicate field id '{form_field.id}'")
            index[form_field.id] = form_field

        seen_in_sections = set()
        for section in self.sections:
            for field_id in section.field_ids:
                if field_id not in index:
                    raise ValueError(f"Section '{section.id}' references unknown field '{field_id}'")
                if field_id in seen_in_sections:
                    raise ValueError(f"Field '{field_id}' appears in more than one section")
                seen_in_sections.add(field_id)

        object.__setattr__(self, '_index', index)

    @property
    def field_ids(self) -> List[str]:
        return [f.id for f in self.fields]

    @property
    def required_fields(self) -> List[FormField]:
        return [f for f in self.fields if f.required]

    @property
    def total_fields(self) -> int:
        return len(self.fields)

    def has_field(self, field_id: str) -> bool:
        return field_id in self._index

    def get_field(self, field_id: str) -> Optional[FormField]:
        return self._index.get(field_id)

    def get_section(self, section_id: Optional[str]) -> Optional[FormSection]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def with_form_id(self, form_id: str) -> 'FormModel':
        """Copy of this model stamped with another form id; content unchanged."""
        return replace(self, form_id=form_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'form_id': self.form_id,
            'title': self.title,
            'language': self.language,
            'fields': [f.to_dict() for f in self.fields],
            'sections': [s.to_dict() for s in self.sections],
            'total_fields': self.total_fields,
        }

    def to_json(self) -> str:
        """
        Deterministic JSON of the form content.

        The per-upload form_id is left out, so equal models give byte-identical
        output wherever they came from.
        """
        content = self.to_dict()
        content.pop('form_id')
        return json.dumps(content, sort_keys=True, ensure_ascii=False)


# ============================================================================
# Canonical fallback form
# ============================================================================

FALLBACK_FORM_ID = "fallback"
FALLBACK_TITLE = "Government Application Form"

FALLBACK_FORM = FormModel(
    title=FALLBACK_TITLE,
    language=MIXED,
    fields=(
        FormField(id="name", label="Full Name", section="personal_information"),
        FormField(id="father_name", label="Father's/Guardian's Name", section="personal_information"),
        FormField(id="address", label="Address", section="personal_information"),
        FormField(id="phone", label="Phone Number", section="personal_information"),
        FormField(id="purpose", label="Purpose of Application", section="application_details"),
    ),
    sections=(
        FormSection(
            id="personal_information",
            title="Personal Information",
            field_ids=("name", "father_name", "address", "phone"),
        ),
        FormSection(
            id="application_details",
            title="Application Details",
            field_ids=("purpose",),
        ),
    ),
    form_id=FALLBACK_FORM_ID,
)
