"""
Field normalization service.
Maps raw detected labels and table rows into canonical FormField descriptors.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .form_model import FieldType, FormField

logger = logging.getLogger(__name__)

MAX_ID_LENGTH = 40
DEFAULT_FIELD_ID = "field"


class FieldNormalizer:
    """Service for turning raw labels into FormFields with stable ids and types."""

    # Explicit type hints (from an inference source or a table column)
    TYPE_HINT_ALIASES: Dict[str, FieldType] = {
        'text': FieldType.TEXT,
        'string': FieldType.TEXT,
        'textarea': FieldType.TEXT,
        'number': FieldType.TEXT,
        'choice': FieldType.CHOICE,
        'select': FieldType.CHOICE,
        'dropdown': FieldType.CHOICE,
        'radio': FieldType.CHOICE,
        'option': FieldType.CHOICE,
        'checkbox': FieldType.CHECKBOX,
        'check': FieldType.CHECKBOX,
        'tick': FieldType.CHECKBOX,
        'bool': FieldType.CHECKBOX,
        'boolean': FieldType.CHECKBOX,
        'yes/no': FieldType.CHECKBOX,
        'yes_no': FieldType.CHECKBOX,
        'date': FieldType.DATE,
        'dob': FieldType.DATE,
        'datetime': FieldType.DATE,
    }

    # Keywords that mark a date field (English and Hindi)
    DATE_PATTERNS: List[str] = [
        r'\bdate\b',
        r'\bdated\b',
        r'\bdob\b',
        r'\bd\.o\.b\b',
        r'\bdate\s+of\s+birth\b',
        r'\bbirth\s*date\b',
        r'\bdd\s*/\s*mm\s*/\s*yy(yy)?\b',
        r'\bmm\s*/\s*dd\s*/\s*yy(yy)?\b',
        r'तारीख',
        r'तिथि',
        r'दिनांक',
        r'जन्म\s*तिथि',
    ]

    # Yes/no context markers for questions
    YES_NO_PATTERNS: List[str] = [
        r'\byes\s*/\s*no\b',
        r'\(\s*y\s*/\s*n\s*\)',
        r'\byes\s+or\s+no\b',
        r'हाँ\s*/\s*नहीं',
    ]

    # Questions opening with an auxiliary verb expect a yes/no answer
    YES_NO_QUESTION = re.compile(
        r'^(are|is|am|do|does|did|have|has|had|will|would|can|could|should|was|were)\b',
        re.IGNORECASE
    )

    def __init__(self, max_id_length: int = MAX_ID_LENGTH):
        """Initialize field normalizer."""
        self.max_id_length = max_id_length
        self.date_patterns = [re.compile(p, re.IGNORECASE) for p in self.DATE_PATTERNS]
        self.yes_no_patterns = [re.compile(p, re.IGNORECASE) for p in self.YES_NO_PATTERNS]

    def clean_label(self, raw_label: str) -> str:
        """Strip surrounding whitespace and trailing colons from a label."""
        if not raw_label:
            return ""
        label = raw_label.strip()
        label = re.sub(r'[:：]+$', '', label).strip()
        return label

    def derive_id(self, label: str) -> str:
        """
        Derive a slug id from a label.

        Lower-cased, runs outside [a-z0-9] collapsed to '_', trimmed of '_',
        truncated to the maximum id length.
        """
        slug = re.sub(r'[^a-z0-9]+', '_', label.lower()).strip('_')
        slug = slug[:self.max_id_length].rstrip('_')
        return slug or DEFAULT_FIELD_ID

    def infer_type(self, label: str, type_hint: Optional[str] = None) -> FieldType:
        """
        Infer a field type from an explicit hint or from label markers.

        Args:
            label: Cleaned label text
            type_hint: Optional raw type hint

        Returns:
            The inferred FieldType (TEXT when nothing matches)
        """
        hint = (type_hint or '').strip().lower()
        if hint in self.TYPE_HINT_ALIASES:
            return self.TYPE_HINT_ALIASES[hint]

        if label.rstrip().endswith('?') and self._has_yes_no_context(label, hint):
            return FieldType.CHECKBOX

        if any(pattern.search(label) for pattern in self.date_patterns):
            return FieldType.DATE

        return FieldType.TEXT

    def _has_yes_no_context(self, label: str, hint: str) -> bool:
        text = f"{label} {hint}"
        if any(pattern.search(text) for pattern in self.yes_no_patterns):
            return True
        return bool(self.YES_NO_QUESTION.match(label.strip()))

    def normalize(
        self,
        raw_label: str,
        type_hint: Optional[str] = None,
        required: bool = True,
        options: Optional[Iterable[str]] = None,
        taken_ids: Optional[Dict[str, int]] = None
    ) -> Optional[FormField]:
        """
        Normalize one raw label into a FormField.

        Args:
            raw_label: Label text as detected
            type_hint: Optional raw type hint
            required: Whether the field must be filled
            options: Options for choice fields
            taken_ids: Ids already used in the current batch (mutated)

        Returns:
            FormField, or None if the label is empty
        """
        label = self.clean_label(raw_label)
        if not label:
            return None

        field_type = self.infer_type(label, type_hint)
        cleaned_options = tuple(
            o.strip() for o in (options or []) if isinstance(o, str) and o.strip()
        )
        if field_type == FieldType.CHOICE and not cleaned_options:
            logger.debug(f"Choice field '{label}' has no options - treating as text")
            field_type = FieldType.TEXT
        if field_type != FieldType.CHOICE:
            cleaned_options = ()

        field_id = self.derive_id(label)
        if taken_ids is not None:
            field_id = self.unique_id(field_id, taken_ids)

        return FormField(
            id=field_id,
            label=label,
            type=field_type,
            required=bool(required),
            options=cleaned_options,
        )

    def unique_id(self, base_id: str, taken_ids: Dict[str, int]) -> str:
        """Suffix _2, _3, ... onto ids already seen in the batch."""
        if base_id not in taken_ids:
            taken_ids[base_id] = 1
            return base_id

        count = taken_ids[base_id]
        while True:
            count += 1
            candidate = f"{base_id}_{count}"
            if candidate not in taken_ids:
                taken_ids[base_id] = count
                taken_ids[candidate] = 1
                return candidate

    def normalize_batch(
        self,
        items: Iterable[Tuple[str, Optional[str]]]
    ) -> List[FormField]:
        """
        Normalize multiple (label, type_hint) pairs with batch-wide unique ids.

        Empty labels are skipped; everything else is kept, in order.
        """
        batch = NormalizationBatch(self)
        results = []
        for label, hint in items:
            form_field = batch.add(label, hint)
            if form_field is not None:
                results.append(form_field)
        return results

    def normalize_row(self, row: Sequence[str]) -> Optional[Tuple[str, Optional[str], List[str]]]:
        """
        Turn a raw table row into a (label, type_hint, options) candidate.

        The first non-empty cell is the label. A following cell that names a
        type becomes the hint; remaining cells contribute options.
        """
        cells = [c.strip() for c in row if isinstance(c, str) and c.strip()]
        if not cells:
            return None

        label, rest = cells[0], cells[1:]
        type_hint = None
        if rest and rest[0].lower() in self.TYPE_HINT_ALIASES:
            type_hint = rest[0]
            rest = rest[1:]

        options: List[str] = []
        for cell in rest:
            options.extend(part.strip() for part in re.split(r'[/,|]', cell) if part.strip())

        if options and type_hint is None:
            type_hint = 'choice'
        return (label, type_hint, options)


class NormalizationBatch:
    """
    One normalization pass over a document.

    Ids are unique across everything added to the same batch; colliding ids
    receive numeric suffixes in order of first appearance.
    """

    def __init__(self, normalizer: Optional[FieldNormalizer] = None):
        self.normalizer = normalizer or FieldNormalizer()
        self._taken: Dict[str, int] = {}
        self.skipped = 0

    def add(
        self,
        raw_label: str,
        type_hint: Optional[str] = None,
        required: bool = True,
        options: Optional[Iterable[str]] = None
    ) -> Optional[FormField]:
        form_field = self.normalizer.normalize(
            raw_label,
            type_hint=type_hint,
            required=required,
            options=options,
            taken_ids=self._taken,
        )
        if form_field is None:
            self.skipped += 1
        return form_field

    def reserve(self, field_id: str) -> str:
        """Claim an id (e.g. a section id) so later adds cannot reuse it."""
        return self.normalizer.unique_id(field_id, self._taken)
