"""
Session Engine
==============

Drives one user through filling one FormModel, a field at a time.

States:
-------
- AWAITING_FIELD: a field is being asked (`current_field_id` is set)
- COMPLETE: nothing is being asked and every required field has a value
- ABANDONED: cancelled; terminal, every operation fails with SessionClosed

The state is recomputed from the fill state on every read, never cached,
so corrections made after navigating back cannot leave a stale status.

Ordering:
---------
Advancement always follows the FormModel's `fields` order: after an answer
the engine moves to the next unfilled field after the current one
(wrapping around to pick up fields skipped by navigation), or to COMPLETE
once every required field has a value. Optional fields are asked in order
but never block completion.

Translation:
------------
Everything shown to the user is in the session's interaction language.
Values are stored in the form's language: answers are translated back when
the two differ (forms of `mixed` language store answers as entered). The
translator is trusted as-is; when it is unreachable the engine passes the
text through unchanged and logs a warning.

Thread safety:
--------------
None. Callers serialize access per session (see SessionStore).
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from form_assistant.errors import (
    CollaboratorIOFailure,
    FieldMismatch,
    SessionClosed,
    SessionIncomplete,
    UnknownField,
    UnsupportedLanguage,
)
from form_assistant.services.field_validator import FieldValidator, match_option
from form_assistant.services.form_structure.form_model import FieldType, FormField, FormModel
from form_assistant.services.form_structure.languages import AUTO, MIXED, detect_language, is_supported
from form_assistant.services.suggestions import Suggestions
from form_assistant.services.translator import Translator, needs_translation

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """Lifecycle states of a session."""
    AWAITING_FIELD = "awaiting_field"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


@dataclass
class FillState:
    """Mutable record of a session's progress through its form."""
    form_id: str
    values: Dict[str, str] = field(default_factory=dict)
    current_field_id: Optional[str] = None
    history: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'form_id': self.form_id,
            'values': dict(self.values),
            'current_field_id': self.current_field_id,
            'history': list(self.history),
        }


@dataclass(frozen=True)
class ChatTurn:
    """One entry of the session transcript."""
    role: str  # "user" | "assistant"
    text: str
    related_field_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'role': self.role, 'text': self.text, 'related_field_id': self.related_field_id}


@dataclass(frozen=True)
class SummaryItem:
    """A collected value paired with its field label."""
    field_id: str
    label: str
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {'field_id': self.field_id, 'label': self.label, 'value': self.value}


@dataclass(frozen=True)
class Prompt:
    """
    What the engine is asking for, ready for display.

    `kind` is "field" while a field is awaited and "summary" once complete.
    `label` is the form's own label; `display_label` is its translation into
    the interaction language.
    """
    kind: str
    text: str
    field_id: Optional[str] = None
    label: Optional[str] = None
    display_label: Optional[str] = None
    type: Optional[FieldType] = None
    options: Tuple[str, ...] = ()
    display_options: Tuple[str, ...] = ()
    required: bool = False
    section_title: Optional[str] = None
    summary: Tuple[SummaryItem, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'text': self.text,
            'field_id': self.field_id,
            'label': self.label,
            'display_label': self.display_label,
            'type': self.type.value if self.type else None,
            'options': list(self.options),
            'display_options': list(self.display_options),
            'required': self.required,
            'section_title': self.section_title,
            'summary': [item.to_dict() for item in self.summary],
        }


class SessionEngine:
    """
    Finite-state machine filling one FormModel.

    Args:
        form: The (immutable) form being filled
        translator: Translation collaborator; None disables translation
        interaction_language: Language used to talk to the user
        translation_timeout: Timeout per translation call in seconds
        session_id: Identifier (generated if None)
    """

    def __init__(
        self,
        form: FormModel,
        translator: Optional[Translator] = None,
        interaction_language: str = "en",
        translation_timeout: Optional[float] = None,
        session_id: Optional[str] = None
    ):
        if not is_supported(interaction_language):
            raise UnsupportedLanguage(interaction_language)

        self.form = form
        self.translator = translator
        self.interaction_language = interaction_language
        self.translation_timeout = translation_timeout
        self.session_id = session_id or uuid.uuid4().hex
        self.validator = FieldValidator(localize=self._localize, display=self._display_label)

        self._state = FillState(form_id=form.form_id)
        self._transcript: List[ChatTurn] = []
        self._abandoned = False

        missing = self._missing_required()
        self._state.current_field_id = missing[0] if missing else None
        logger.info(
            f"Session {self.session_id} started for form {form.form_id} "
            f"({form.total_fields} fields, language={interaction_language})"
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        if self._abandoned:
            return SessionStatus.ABANDONED
        if self._state.current_field_id is not None:
            return SessionStatus.AWAITING_FIELD
        if not self._missing_required():
            return SessionStatus.COMPLETE
        # Unreachable through the public API; recover by asking the next field
        return SessionStatus.AWAITING_FIELD

    @property
    def is_complete(self) -> bool:
        return self.status == SessionStatus.COMPLETE

    @property
    def current_field_id(self) -> Optional[str]:
        return self._state.current_field_id

    @property
    def values(self) -> Dict[str, str]:
        return dict(self._state.values)

    @property
    def fill_state(self) -> FillState:
        """Snapshot of the fill state (a copy; mutate through the engine only)."""
        return FillState(
            form_id=self._state.form_id,
            values=dict(self._state.values),
            current_field_id=self._state.current_field_id,
            history=list(self._state.history),
        )

    @property
    def transcript(self) -> List[ChatTurn]:
        return list(self._transcript)

    def missing_required_fields(self) -> List[str]:
        return self._missing_required()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def next_prompt(self) -> Prompt:
        """
        Describe what the session is waiting for.

        Returns the current field's prompt, or a summary prompt once complete.

        Raises:
            SessionClosed: The session was abandoned
        """
        self._ensure_open()
        self._recover_current_field()

        form_field = self._current_field()
        if form_field is None:
            items = tuple(self._summary_items())
            lines = [self._localize("All required fields are filled. Please review your answers:")]
            lines.extend(f"- {self._display_label(item.label)}: {item.value}" for item in items)
            return Prompt(kind="summary", text="\n".join(lines), summary=items)

        display_label = self._display_label(form_field.label)
        display_options = tuple(self._display_label(o) for o in form_field.options)
        section = self.form.get_section(form_field.section)

        if form_field.type == FieldType.CHOICE:
            template = "Please choose {label}: {options}"
        elif form_field.type == FieldType.CHECKBOX:
            template = "{label} (Yes/No)"
        elif form_field.type == FieldType.DATE:
            template = "Please enter {label} (DD/MM/YYYY)"
        else:
            template = "Please enter {label}"
        if not form_field.required:
            template += " (optional)"

        text = self._localize(template.format(label=display_label, options=", ".join(display_options)))
        return Prompt(
            kind="field",
            text=text,
            field_id=form_field.id,
            label=form_field.label,
            display_label=display_label,
            type=form_field.type,
            options=form_field.options,
            display_options=display_options,
            required=form_field.required,
            section_title=self._display_label(section.title) if section else None,
        )

    def submit_answer(self, field_id: str, raw_value: Optional[str]) -> Prompt:
        """
        Store an answer for the field currently being asked and advance.

        Args:
            field_id: Field the answer is for; must be the current field
            raw_value: Value as typed by the user, in the interaction language

        Returns:
            The next prompt (or the summary prompt when complete)

        Raises:
            SessionClosed: The session was abandoned
            FieldMismatch: field_id is not the field being asked
            ValidationFailed: The value is unacceptable (state unchanged)
        """
        self._ensure_open()
        current_id = self._state.current_field_id
        if current_id is None or field_id != current_id:
            raise FieldMismatch(field_id, current_id)

        form_field = self.form.get_field(field_id)
        value = self._accept_value(form_field, raw_value, from_user=True)

        self._state.values[field_id] = value
        self._transcript.append(ChatTurn(role="user", text=(raw_value or "").strip(), related_field_id=field_id))
        self._transcript.append(ChatTurn(
            role="assistant",
            text=self._localize(
                "Saved {label}.".format(label=self._display_label(form_field.label)) if value
                else "Skipped {label}.".format(label=self._display_label(form_field.label))
            ),
            related_field_id=field_id
        ))

        self._move_to(self._next_field_after(field_id))
        if self.status == SessionStatus.COMPLETE:
            logger.info(f"Session {self.session_id} complete ({len(self._state.values)} values)")
        return self.next_prompt()

    def navigate(self, target_field_id: str) -> Prompt:
        """
        Jump to any field of the form, answered or not.

        Existing values are kept; resubmitting replaces the target's value.

        Raises:
            SessionClosed: The session was abandoned
            UnknownField: The target is not a field of the form
        """
        self._ensure_open()
        if not self.form.has_field(target_field_id):
            raise UnknownField(target_field_id)
        self._move_to(target_field_id)
        return self.next_prompt()

    def go_back(self) -> Prompt:
        """
        Return to the previously asked field.

        Raises:
            SessionClosed: The session was abandoned
            UnknownField: There is no previous field
        """
        self._ensure_open()
        history = self._state.history
        while history and history[-1] == self._state.current_field_id:
            history.pop()
        if not history:
            raise UnknownField("(previous field)")
        self._state.current_field_id = history.pop()
        return self.next_prompt()

    def suggestions(self) -> Suggestions:
        """Hints for the current field; empty when no field is awaited."""
        self._ensure_open()
        return Suggestions(self._current_field(), localize=self._localize)

    def summary(self) -> List[SummaryItem]:
        """
        Collected values paired with their labels, in form order.

        Raises:
            SessionClosed: The session was abandoned
            SessionIncomplete: The session is not complete
        """
        self._ensure_open()
        if self.status != SessionStatus.COMPLETE:
            missing = self._missing_required() or [self._state.current_field_id]
            raise SessionIncomplete(missing)
        return self._summary_items()

    def apply_form_data(self, form_data: Optional[Mapping[str, Any]]) -> None:
        """
        Prefill values from a client-supplied mapping of field id -> value.

        Keys must be field ids of the form; values are taken to be in the
        form's language already. Empty values are ignored. Either every entry
        is accepted or none is.

        Raises:
            SessionClosed: The session was abandoned
            UnknownField: A key is not a field of the form
            ValidationFailed: A value is unacceptable
        """
        self._ensure_open()
        if not form_data:
            return

        accepted = self.validator.accept_mapping(self.form, form_data)

        if not accepted:
            return
        self._state.values.update(accepted)

        current_id = self._state.current_field_id
        if current_id is None or current_id in accepted:
            anchor = current_id or self.form.fields[-1].id
            self._move_to(self._next_field_after(anchor))
        logger.info(f"Session {self.session_id}: prefilled {len(accepted)} values")

    def set_interaction_language(self, language: str) -> None:
        """
        Switch the language used to talk to the user.

        Raises:
            UnsupportedLanguage: Unknown language code
        """
        self._ensure_open()
        if not is_supported(language):
            raise UnsupportedLanguage(language)
        self.interaction_language = language

    def cancel(self) -> None:
        """Abandon the session. Idempotent."""
        if not self._abandoned:
            self._abandoned = True
            logger.info(f"Session {self.session_id} abandoned")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self):
        if self._abandoned:
            raise SessionClosed(self.session_id)

    def _current_field(self) -> Optional[FormField]:
        current_id = self._state.current_field_id
        return self.form.get_field(current_id) if current_id else None

    def _recover_current_field(self):
        if self._state.current_field_id is None:
            missing = self._missing_required()
            if missing:
                self._state.current_field_id = missing[0]

    def _missing_required(self) -> List[str]:
        values = self._state.values
        return [f.id for f in self.form.required_fields if not values.get(f.id, "").strip()]

    def _next_field_after(self, field_id: str) -> Optional[str]:
        """Next unfilled field after field_id in form order (wrapping), or None once complete."""
        if not self._missing_required():
            return None

        ids = self.form.field_ids
        start = ids.index(field_id) + 1 if field_id in ids else 0
        for offset in range(len(ids)):
            candidate = ids[(start + offset) % len(ids)]
            if candidate not in self._state.values:
                return candidate
        return self._missing_required()[0]

    def _move_to(self, field_id: Optional[str]):
        previous = self._state.current_field_id
        if previous == field_id:
            return
        if previous is not None:
            self._state.history.append(previous)
        self._state.current_field_id = field_id

    def _summary_items(self) -> List[SummaryItem]:
        values = self._state.values
        return [
            SummaryItem(field_id=f.id, label=f.label, value=values[f.id])
            for f in self.form.fields
            if f.id in values
        ]

    def _accept_value(self, form_field: FormField, raw_value: Optional[str], from_user: bool) -> str:
        """Validate (and for user input, back-translate) a value. Returns what to store."""
        value = (raw_value or "").strip()
        if not from_user or not value or form_field.type == FieldType.CHECKBOX:
            return self.validator.accept(form_field, value)
        if form_field.type == FieldType.CHOICE:
            return self._match_user_choice(form_field, value)
        return self.validator.accept(form_field, self._to_form_language(value))

    def _match_user_choice(self, form_field: FormField, value: str) -> str:
        """Options may be picked by name, 1-based number, displayed name or translation."""
        options = form_field.options
        option = match_option(options, value)
        if option is None and value.isdigit() and 1 <= int(value) <= len(options):
            option = options[int(value) - 1]
        if option is None:
            displayed = {self._display_label(o).casefold(): o for o in options}
            option = displayed.get(value.casefold())
        if option is None:
            option = match_option(options, self._to_form_language(value))
        if option is None:
            raise self.validator.choice_error(form_field)
        return option

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def _source_language_of(self, text: str) -> str:
        language = self.form.language
        if language == MIXED:
            language = detect_language(text)
        return language if is_supported(language) else AUTO

    def _display_label(self, text: str) -> str:
        """Form-language text rendered in the interaction language."""
        return self._translate(text, self._source_language_of(text), self.interaction_language)

    def _localize(self, text: str) -> str:
        """Engine message (English) rendered in the interaction language."""
        return self._translate(text, "en", self.interaction_language)

    def _to_form_language(self, value: str) -> str:
        """User input rendered in the form's language (mixed forms keep input as entered)."""
        if self.form.language == MIXED or not is_supported(self.form.language):
            return value
        return self._translate(value, self.interaction_language, self.form.language)

    def _translate(self, text: str, source: str, target: str) -> str:
        if self.translator is None or not needs_translation(text, source, target):
            return text
        try:
            return self.translator.translate(text, source, target, timeout=self.translation_timeout)
        except CollaboratorIOFailure as e:
            logger.warning(f"Session {self.session_id}: translation unavailable, passing text through ({e})")
            return text
