"""
Field value validation shared by chat sessions and direct document generation.

Values reaching the validator are in the form's language already: chat
answers are mapped into it by the session engine first, while prefilled and
generation data are taken as given.
"""
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from dateutil.parser import parse as parse_date

from form_assistant.errors import UnknownField, ValidationFailed
from form_assistant.services.form_structure.form_model import FieldType, FormField, FormModel

logger = logging.getLogger(__name__)

YES_TOKENS = {"yes", "y", "true", "1", "haan", "han", "ha", "हाँ", "हां", "checked", "✓", "x"}
NO_TOKENS = {"no", "n", "false", "0", "nahi", "nahin", "नहीं", "unchecked"}


def match_option(options: Sequence[str], value: str) -> Optional[str]:
    """Case-insensitive exact match against a choice field's options."""
    lowered = value.strip().casefold()
    for option in options:
        if option.casefold() == lowered:
            return option
    return None


def checkbox_value(value: str) -> Optional[str]:
    """Map a yes/no style answer to "Yes" or "No" (None if unrecognized)."""
    token = value.casefold().strip(" .!")
    if token in YES_TOKENS:
        return "Yes"
    if token in NO_TOKENS:
        return "No"
    return None


def is_valid_date(value: str) -> bool:
    try:
        parse_date(value, dayfirst=True, fuzzy=False)
    except (ValueError, OverflowError):
        return False
    return True


class FieldValidator:
    """
    Checks values against a field's type, options and required flag.

    Args:
        localize: Renders an English message in the user's language
        display: Renders form-language text (labels, options) for the user
    """

    def __init__(
        self,
        localize: Optional[Callable[[str], str]] = None,
        display: Optional[Callable[[str], str]] = None
    ):
        self.localize = localize or (lambda text: text)
        self.display = display or (lambda text: text)

    def accept(self, form_field: FormField, raw_value: Optional[str]) -> str:
        """
        Validate a form-language value and return its canonical form.

        Choice values come back spelled as the option, checkbox values as
        "Yes"/"No". An empty optional value is returned as "".

        Raises:
            ValidationFailed: The value is unacceptable
        """
        value = (raw_value or "").strip()
        if not value:
            if form_field.required:
                raise self.required_error(form_field)
            return ""

        if form_field.type == FieldType.CHOICE:
            option = match_option(form_field.options, value)
            if option is None:
                raise self.choice_error(form_field)
            return option

        if form_field.type == FieldType.CHECKBOX:
            checked = checkbox_value(value)
            if checked is None:
                raise ValidationFailed(form_field.id, self.localize("Please answer Yes or No."))
            return checked

        if form_field.type == FieldType.DATE and not is_valid_date(value):
            raise ValidationFailed(form_field.id, self.localize("Please enter a valid date, e.g. 15/08/1990."))
        return value

    def accept_mapping(self, form: FormModel, form_data: Mapping[str, Any]) -> Dict[str, str]:
        """
        Validate a field id -> value mapping against a form.

        Empty values are left out of the result. Either every entry is
        accepted or an error is raised.

        Raises:
            UnknownField: A key is not a field of the form
            ValidationFailed: A value is unacceptable
        """
        unknown = [key for key in form_data if not form.has_field(key)]
        if unknown:
            raise UnknownField(unknown[0])

        accepted: Dict[str, str] = {}
        for field_id, raw in form_data.items():
            if raw is None or not str(raw).strip():
                continue
            accepted[field_id] = self.accept(form.get_field(field_id), str(raw))
        logger.debug(f"Validated {len(accepted)} values for form {form.form_id}")
        return accepted

    def required_error(self, form_field: FormField) -> ValidationFailed:
        return ValidationFailed(
            form_field.id,
            self.localize("{label} is required.".format(label=self.display(form_field.label)))
        )

    def choice_error(self, form_field: FormField) -> ValidationFailed:
        return ValidationFailed(
            form_field.id,
            self.localize("Please choose one of: {options}".format(
                options=", ".join(self.display(o) for o in form_field.options)
            ))
        )
