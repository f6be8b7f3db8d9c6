"""
Input hints for the field currently being asked.

Hints are produced lazily: nothing is computed (or translated) until the
caller iterates, and iterating again starts over from the first hint.
"""
import re
from typing import Callable, Iterator, List, Optional, Tuple

from form_assistant.services.form_structure.form_model import FieldType, FormField

# (pattern over the lower-cased label, hints)
KEYWORD_HINTS: List[Tuple[str, List[str]]] = [
    (r'\b(phone|mobile|telephone|contact\s+number)\b|फ़ोन|फोन|मोबाइल', [
        "Enter a 10-digit mobile number, e.g. 9876543210",
        "Add the country code only for numbers outside India, e.g. +44 20 7946 0958",
    ]),
    (r'\b(pin\s*code|pincode|postal\s+code|zip)\b|पिन', [
        "Enter the 6-digit PIN code, e.g. 110001",
    ]),
    (r'\baadhaa?r\b|आधार', [
        "Enter the 12-digit Aadhaar number, e.g. 1234 5678 9012",
    ]),
    (r'\be-?mail\b|ईमेल', [
        "Enter an email address, e.g. name@example.com",
    ]),
    (r'\baddress\b|पता', [
        "Include house number, street, city, state and PIN code",
        "Example: 12 MG Road, Bengaluru, Karnataka 560001",
    ]),
    (r"\b(father|guardian|mother|husband|spouse)'?s?\b|पिता|अभिभावक", [
        "Write the name as it appears on official documents",
    ]),
    (r'\bname\b|नाम', [
        "Write your full name as it appears on your ID document",
        "Example: Jane Doe",
    ]),
    (r'\b(purpose|reason|details|description)\b|उद्देश्य|कारण', [
        "Describe it briefly in one or two sentences",
        "Example: RTI request for land records",
    ]),
]

DATE_HINTS = [
    "Use the format DD/MM/YYYY",
    "For example: 15/08/1990",
    "You can also write the month as a word, e.g. 15 August 1990",
]

CHECKBOX_HINTS = [
    "Answer Yes or No",
]

OPTIONAL_HINT = "This field is optional. Send an empty answer to skip it."


class Suggestions:
    """
    Lazy, finite, restartable sequence of hints for one field.

    Args:
        form_field: The field the hints are for (None gives no hints)
        localize: Callable translating an English hint for the user
    """

    def __init__(self, form_field: Optional[FormField], localize: Optional[Callable[[str], str]] = None):
        self.form_field = form_field
        self.localize = localize or (lambda text: text)

    def __iter__(self) -> Iterator[str]:
        for hint in self._raw_hints():
            yield self.localize(hint)

    def _raw_hints(self) -> Iterator[str]:
        form_field = self.form_field
        if form_field is None:
            return

        if form_field.type == FieldType.DATE:
            yield from DATE_HINTS
        elif form_field.type == FieldType.CHECKBOX:
            yield from CHECKBOX_HINTS
        elif form_field.type == FieldType.CHOICE:
            yield f"Choose one of: {', '.join(form_field.options)}"
            if form_field.options:
                yield f"You can also reply with the option number, e.g. 1 for {form_field.options[0]}"
        else:
            label = form_field.label.lower()
            for pattern, hints in KEYWORD_HINTS:
                if re.search(pattern, label):
                    yield from hints
                    break

        if not form_field.required:
            yield OPTIONAL_HINT

    def to_list(self, limit: Optional[int] = None) -> List[str]:
        """Materialize the hints (at most `limit` of them)."""
        hints = []
        for hint in self:
            if limit is not None and len(hints) >= limit:
                break
            hints.append(hint)
        return hints
