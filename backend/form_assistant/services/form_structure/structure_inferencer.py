"""
Structure Inferencer
====================

Turns raw extracted document text (and optional table rows) into a
FormModel by asking a language model for the form's structure.

CRITICAL DESIGN PRINCIPLE:
--------------------------
Inference NEVER fails the upload flow. Any of:
- missing credentials or exhausted call budget
- timeout / connection error / non-success HTTP status
- unparsable or wrongly-shaped output
- a structure with no usable fields
resolves to the canonical FALLBACK_FORM. The reason is recorded on the
returned InferenceOutcome (and logged) but never raised.

Trust boundary:
---------------
The model's output is advisory. Every field goes through the
FieldNormalizer, so ids are unique slugs even when the model supplies its
own; empty labels are dropped; section references to unknown or already
claimed fields are removed while the section itself is kept.

Retry policy:
-------------
Transient transport failures and malformed output are classified
separately (FailureKind) for observability, but both resolve to the
fallback form. Retrying is left to the caller, who can re-upload.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from form_assistant.errors import CallBudgetExceeded, InferenceUnavailable

from .field_normalizer import FieldNormalizer, NormalizationBatch
from .form_model import FALLBACK_FORM, FALLBACK_TITLE, FormField, FormModel, FormSection
from .languages import MIXED, SUPPORTED_LANGUAGES, detect_language, is_form_language

logger = logging.getLogger(__name__)

INFERENCE_TIMEOUT_SECONDS = 30
MAX_PROMPT_CHARS = 12000
MAX_TABLE_ROWS = 200


class FailureKind(str, Enum):
    """Why inference fell back to the canonical form."""
    UNAVAILABLE = "unavailable"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    MALFORMED_OUTPUT = "malformed_output"
    EMPTY_STRUCTURE = "empty_structure"


@dataclass(frozen=True)
class ExtractionFailure:
    """Recorded-but-swallowed inference failure."""
    kind: FailureKind
    reason: str


@dataclass(frozen=True)
class InferenceOutcome:
    """
    Result of structure inference.

    `form` is always usable; `failure` is set when it is the fallback form.
    """
    form: FormModel
    failure: Optional[ExtractionFailure] = None
    processing_time_ms: int = 0
    dropped_fields: int = 0
    repaired_references: int = 0

    @property
    def used_fallback(self) -> bool:
        return self.failure is not None


class StructureInferencer:
    """
    Infers a FormModel from raw document text via an inference client.

    The client is any object with a
    `complete(system_prompt, user_prompt, timeout=..., service=..., json_output=...)`
    method returning the model's text (see InferenceClient).
    """

    SYSTEM_PROMPT = """You are a precise assistant that reads the text of government application forms and describes their fillable structure.

CRITICAL RULES:
1. Only describe fields that a citizen has to fill in. Ignore instructions, office-use-only boxes and headers.
2. Keep labels in the language they appear in on the form.
3. Field "type" MUST be one of: "text", "choice", "checkbox", "date".
4. Give "options" only for "choice" fields.
5. Every id listed in a section's "field_ids" MUST be the id of a field you listed.
6. "language" MUST be one of: {languages}, or "mixed" if the form uses several.

Output ONLY a JSON object in this exact shape:
{{
  "title": "Form title",
  "language": "en",
  "fields": [
    {{"id": "full_name", "label": "Full Name", "type": "text", "required": true, "options": []}}
  ],
  "sections": [
    {{"id": "personal_information", "title": "Personal Information", "field_ids": ["full_name"]}}
  ]
}}"""

    USER_PROMPT_TEMPLATE = """Describe the fillable structure of this form.

EXTRACTED TEXT:
\"\"\"
{raw_text}
\"\"\"

TABLE ROWS DETECTED (label | type | options):
{table_rows}"""

    def __init__(
        self,
        inference_client: Any,
        normalizer: Optional[FieldNormalizer] = None,
        timeout: float = INFERENCE_TIMEOUT_SECONDS
    ):
        """
        Initialize the structure inferencer.

        Args:
            inference_client: Shared inference capability object
            normalizer: Field normalizer (a default one if not provided)
            timeout: Inference call timeout in seconds
        """
        self.client = inference_client
        self.normalizer = normalizer or FieldNormalizer()
        self.timeout = timeout

    def infer(
        self,
        raw_text: str,
        table_rows: Optional[Sequence[Sequence[str]]] = None,
        form_id: Optional[str] = None
    ) -> InferenceOutcome:
        """
        Infer the form structure. Never raises.

        Args:
            raw_text: Extracted document text (may be empty)
            table_rows: Optional raw table rows, each a sequence of cell strings
            form_id: Identifier to stamp on the resulting model (generated if None)

        Returns:
            InferenceOutcome with the inferred or fallback FormModel
        """
        start_time = time.time()
        form_id = form_id or uuid.uuid4().hex

        try:
            raw_output = self._call_model(raw_text or "", table_rows or [])
        except InferenceUnavailable as e:
            return self._fallback(form_id, FailureKind.UNAVAILABLE, str(e), start_time)
        except CallBudgetExceeded as e:
            return self._fallback(form_id, FailureKind.RATE_LIMITED, str(e), start_time)
        except requests.Timeout as e:
            return self._fallback(form_id, FailureKind.TIMEOUT, f"Inference timed out: {e}", start_time)
        except requests.RequestException as e:
            return self._fallback(form_id, FailureKind.TRANSPORT, f"Inference request failed: {e}", start_time)
        except ValueError as e:
            # Completion payload without a message body
            return self._fallback(form_id, FailureKind.MALFORMED_OUTPUT, str(e), start_time)
        except Exception as e:
            logger.error(f"Unexpected inference error: {e}", exc_info=True)
            return self._fallback(form_id, FailureKind.TRANSPORT, f"Inference error: {e}", start_time)

        try:
            data = self.parse_model_output(raw_output)
        except ValueError as e:
            return self._fallback(form_id, FailureKind.MALFORMED_OUTPUT, str(e), start_time)
        except Exception as e:
            logger.error(f"Unexpected error parsing inference output: {e}", exc_info=True)
            return self._fallback(form_id, FailureKind.MALFORMED_OUTPUT, f"Unreadable inference output: {e}", start_time)

        try:
            form, dropped, repaired = self.build_form_model(data, raw_text or "", form_id)
        except (ValueError, TypeError) as e:
            return self._fallback(form_id, FailureKind.MALFORMED_OUTPUT, f"Invalid structure: {e}", start_time)
        except Exception as e:
            logger.error(f"Unexpected error building form model: {e}", exc_info=True)
            return self._fallback(form_id, FailureKind.MALFORMED_OUTPUT, f"Invalid structure: {e}", start_time)

        if form.total_fields == 0:
            return self._fallback(
                form_id, FailureKind.EMPTY_STRUCTURE, "Inferred structure has no usable fields", start_time
            )

        processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Inferred form '{form.title}' [{form_id}]: {form.total_fields} fields, "
            f"{len(form.sections)} sections, language={form.language} "
            f"(dropped {dropped}, repaired {repaired} references) in {processing_time_ms}ms"
        )
        return InferenceOutcome(
            form=form,
            processing_time_ms=processing_time_ms,
            dropped_fields=dropped,
            repaired_references=repaired
        )

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def build_prompts(self, raw_text: str, table_rows: Sequence[Sequence[str]]) -> Tuple[str, str]:
        """Build the (system, user) prompt pair for an inference request."""
        system_prompt = self.SYSTEM_PROMPT.format(
            languages=", ".join(f'"{code}"' for code in SUPPORTED_LANGUAGES)
        )

        text = raw_text.strip()
        if len(text) > MAX_PROMPT_CHARS:
            logger.debug(f"Truncating extracted text from {len(text)} to {MAX_PROMPT_CHARS} chars")
            text = text[:MAX_PROMPT_CHARS]

        row_lines = []
        for row in list(table_rows)[:MAX_TABLE_ROWS]:
            candidate = self.normalizer.normalize_row(row)
            if candidate is None:
                continue
            label, hint, options = candidate
            row_lines.append(f"- {label} | {hint or 'text'} | {', '.join(options) or '-'}")

        user_prompt = self.USER_PROMPT_TEMPLATE.format(
            raw_text=text or "(no text extracted)",
            table_rows="\n".join(row_lines) or "(none)"
        )
        return system_prompt, user_prompt

    def _call_model(self, raw_text: str, table_rows: Sequence[Sequence[str]]) -> str:
        system_prompt, user_prompt = self.build_prompts(raw_text, table_rows)
        return self.client.complete(
            system_prompt,
            user_prompt,
            timeout=self.timeout,
            service='inference',
            json_output=True
        )

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    @staticmethod
    def parse_model_output(raw_output: str) -> Dict[str, Any]:
        """
        Extract the JSON object from a model response.

        Handles markdown code fences and leading/trailing chatter.

        Raises:
            ValueError: No JSON object could be parsed
        """
        if not raw_output or not raw_output.strip():
            raise ValueError("Empty inference output")

        response_text = raw_output.strip()

        # Handle potential markdown code blocks
        if "```json" in response_text:
            json_start = response_text.find("```json") + 7
            json_end = response_text.find("```", json_start)
            response_text = response_text[json_start:json_end if json_end != -1 else None].strip()
        elif "```" in response_text:
            json_start = response_text.find("```") + 3
            json_end = response_text.find("```", json_start)
            response_text = response_text[json_start:json_end if json_end != -1 else None].strip()

        if not response_text.startswith('{'):
            first, last = response_text.find('{'), response_text.rfind('}')
            if first == -1 or last <= first:
                raise ValueError("Inference output contains no JSON object")
            response_text = response_text[first:last + 1]

        try:
            data = json.loads(response_text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse inference output: {e}") from e
        except RecursionError as e:
            raise ValueError("Inference output is nested too deeply to parse") from e

        if not isinstance(data, dict):
            raise ValueError(f"Inference output is a {type(data).__name__}, expected an object")
        if not isinstance(data.get('fields', []), list):
            raise ValueError("Inference output 'fields' is not a list")
        if not isinstance(data.get('sections', []), list):
            raise ValueError("Inference output 'sections' is not a list")
        return data

    def build_form_model(
        self,
        data: Dict[str, Any],
        raw_text: str,
        form_id: str
    ) -> Tuple[FormModel, int, int]:
        """
        Validate inferred data into a FormModel.

        Returns:
            Tuple of (form, dropped_field_count, repaired_reference_count)
        """
        batch = NormalizationBatch(self.normalizer)
        fields: List[FormField] = []
        id_map: Dict[str, str] = {}

        for raw_field in data.get('fields', []):
            if not isinstance(raw_field, dict):
                batch.skipped += 1
                continue
            label = raw_field.get('label')
            form_field = batch.add(
                label if isinstance(label, str) else "",
                type_hint=raw_field.get('type') if isinstance(raw_field.get('type'), str) else None,
                required=_as_bool(raw_field.get('required'), default=True),
                options=raw_field.get('options') if isinstance(raw_field.get('options'), list) else None,
            )
            if form_field is None:
                continue
            fields.append(form_field)
            raw_id = raw_field.get('id')
            if isinstance(raw_id, str) and raw_id and raw_id not in id_map:
                id_map[raw_id] = form_field.id

        valid_ids = {f.id for f in fields}
        section_batch = NormalizationBatch(self.normalizer)
        claimed: Dict[str, str] = {}
        sections: List[FormSection] = []
        repaired = 0

        for raw_section in data.get('sections', []):
            if not isinstance(raw_section, dict):
                continue
            title = raw_section.get('title')
            title = title.strip() if isinstance(title, str) else ""
            raw_section_id = raw_section.get('id')
            base_id = self.normalizer.derive_id(
                raw_section_id if isinstance(raw_section_id, str) and raw_section_id.strip() else title or "section"
            )
            section_id = section_batch.reserve(base_id)

            raw_refs = raw_section.get('field_ids', raw_section.get('fields', []))
            if not isinstance(raw_refs, list):
                raw_refs = []

            field_ids = []
            for ref in raw_refs:
                resolved = self._resolve_reference(ref, id_map, valid_ids)
                if resolved is None or resolved in claimed:
                    repaired += 1
                    logger.debug(f"Removed dangling reference {ref!r} from section '{section_id}'")
                    continue
                claimed[resolved] = section_id
                field_ids.append(resolved)

            sections.append(FormSection(
                id=section_id,
                title=title or section_id.replace('_', ' ').title(),
                field_ids=tuple(field_ids)
            ))

        fields = [
            FormField(
                id=f.id,
                label=f.label,
                type=f.type,
                required=f.required,
                options=f.options,
                section=claimed.get(f.id)
            )
            for f in fields
        ]

        title = data.get('title')
        title = title.strip() if isinstance(title, str) and title.strip() else FALLBACK_TITLE

        form = FormModel(
            title=title,
            language=self._resolve_language(data.get('language'), raw_text),
            fields=tuple(fields),
            sections=tuple(sections),
            form_id=form_id
        )
        return form, batch.skipped, repaired

    @staticmethod
    def _resolve_reference(ref: Any, id_map: Dict[str, str], valid_ids: set) -> Optional[str]:
        if not isinstance(ref, str) or not ref:
            return None
        if ref in id_map:
            return id_map[ref]
        if ref in valid_ids:
            return ref
        return None

    @staticmethod
    def _resolve_language(language: Any, raw_text: str) -> str:
        if isinstance(language, str):
            code = language.strip().lower()
            if is_form_language(code):
                return code
        detected = detect_language(raw_text)
        return detected if is_form_language(detected) else MIXED

    def _fallback(
        self,
        form_id: str,
        kind: FailureKind,
        reason: str,
        start_time: float
    ) -> InferenceOutcome:
        logger.warning(f"Structure inference failed ({kind.value}): {reason}. Using fallback form.")
        return InferenceOutcome(
            form=FALLBACK_FORM.with_form_id(form_id),
            failure=ExtractionFailure(kind=kind, reason=reason),
            processing_time_ms=int((time.time() - start_time) * 1000)
        )


def _as_bool(value: Any, default: bool = True) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('false', 'no', 'optional', '0'):
            return False
        if lowered in ('true', 'yes', 'required', '1'):
            return True
    if isinstance(value, (int, float)):
        return bool(value)
    return default
