"""
Error taxonomy for the form assistant.

Two families matter to callers:
- Protocol errors: the client misused the session API (wrong field,
  unknown target, closed session). Not retried.
- Input errors: the submitted value is unacceptable. The session is left
  unchanged and the caller re-prompts.

Collaborator failures (translator, renderer, document extraction) surface as
CollaboratorIOFailure. Inference failures never leave the structure
inferencer; they are converted to the fallback form.
"""
from typing import Optional


class FormAssistantError(Exception):
    """Base class for all form assistant errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ============================================================================
# Session protocol errors
# ============================================================================

class SessionProtocolError(FormAssistantError):
    """The session API was called in a way its state does not allow."""

    status_code = 409


class FieldMismatch(SessionProtocolError):
    """An answer targeted a field other than the one being asked."""

    def __init__(self, field_id: str, current_field_id: Optional[str]):
        super().__init__(
            f"Answer submitted for '{field_id}' but the session is awaiting "
            f"'{current_field_id}'" if current_field_id else
            f"Answer submitted for '{field_id}' but the session is not awaiting any field"
        )
        self.field_id = field_id
        self.current_field_id = current_field_id


class UnknownField(SessionProtocolError):
    """A field id does not belong to the session's form."""

    status_code = 400

    def __init__(self, field_id: str):
        super().__init__(f"Unknown field '{field_id}'")
        self.field_id = field_id


class SessionClosed(SessionProtocolError):
    """The session was abandoned and accepts no further operations."""

    def __init__(self, session_id: Optional[str] = None):
        super().__init__(f"Session {session_id} is closed" if session_id else "Session is closed")
        self.session_id = session_id


class SessionIncomplete(SessionProtocolError):
    """A summary was requested before every required field was filled."""

    def __init__(self, missing_field_ids):
        missing = list(missing_field_ids)
        super().__init__(f"Session is not complete; missing: {', '.join(missing)}")
        self.missing_field_ids = missing


class UnknownSession(SessionProtocolError):
    """No session is registered under the given id."""

    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' not found")
        self.session_id = session_id


class UnknownForm(SessionProtocolError):
    """No uploaded form is registered under the given id."""

    status_code = 404

    def __init__(self, form_id: str):
        super().__init__(f"Form '{form_id}' not found")
        self.form_id = form_id


class UnsupportedLanguage(FormAssistantError):
    """A language code outside the supported set was requested."""

    status_code = 400

    def __init__(self, language: str):
        super().__init__(f"Unsupported language code '{language}'")
        self.language = language


# ============================================================================
# Input errors
# ============================================================================

class ValidationFailed(FormAssistantError):
    """A submitted value violates the field's constraints."""

    status_code = 422

    def __init__(self, field_id: str, message: str):
        super().__init__(message)
        self.field_id = field_id


# ============================================================================
# Collaborator errors
# ============================================================================

class CollaboratorIOFailure(FormAssistantError):
    """An external collaborator (translator, renderer, extractor) is unreachable."""

    status_code = 503

    def __init__(self, service: str, message: str):
        super().__init__(f"{service} unavailable: {message}")
        self.service = service


class ExtractionUnavailable(FormAssistantError):
    """Model inference could not be performed. Absorbed by the structure inferencer."""


class InferenceUnavailable(ExtractionUnavailable):
    """No inference credentials are configured."""


class CallBudgetExceeded(ExtractionUnavailable):
    """The external call budget refused the call."""

    status_code = 429
