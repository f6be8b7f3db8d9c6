"""
Supported interaction and form languages.

The set is CLOSED: English and Hindi plus the scheduled regional languages
the assistant is offered in. `mixed` is only valid as a FormModel language,
for forms whose language could not be pinned down.
"""
import re
from typing import Dict, List

MIXED = "mixed"
AUTO = "auto"

SUPPORTED_LANGUAGES: Dict[str, str] = {
    "en": "English",
    "hi": "Hindi",
    "bn": "Bengali",
    "ta": "Tamil",
    "te": "Telugu",
    "mr": "Marathi",
    "gu": "Gujarati",
    "kn": "Kannada",
    "ml": "Malayalam",
    "pa": "Punjabi",
    "or": "Odia",
    "ur": "Urdu",
}

# Unicode script ranges used for detection. Marathi shares Devanagari with
# Hindi and is reported as Hindi.
_SCRIPT_PATTERNS: Dict[str, re.Pattern] = {
    "en": re.compile(r"[A-Za-z]"),
    "hi": re.compile(r"[\u0900-\u097F]"),
    "bn": re.compile(r"[\u0980-\u09FF]"),
    "pa": re.compile(r"[\u0A00-\u0A7F]"),
    "gu": re.compile(r"[\u0A80-\u0AFF]"),
    "or": re.compile(r"[\u0B00-\u0B7F]"),
    "ta": re.compile(r"[\u0B80-\u0BFF]"),
    "te": re.compile(r"[\u0C00-\u0C7F]"),
    "kn": re.compile(r"[\u0C80-\u0CFF]"),
    "ml": re.compile(r"[\u0D00-\u0D7F]"),
    "ur": re.compile(r"[\u0600-\u06FF]"),
}

# A script counts as present only above this share of letters, so a stray
# English word in a Hindi form does not make it mixed.
_MIN_SCRIPT_SHARE = 0.1


def is_supported(code: str) -> bool:
    """Check whether a code is a supported interaction language."""
    return bool(code) and code in SUPPORTED_LANGUAGES


def is_form_language(code: str) -> bool:
    """Check whether a code is valid as a FormModel language."""
    return code == MIXED or is_supported(code)


def language_name(code: str) -> str:
    """Human-readable name for a language code."""
    if code == MIXED:
        return "Mixed"
    return SUPPORTED_LANGUAGES.get(code, code)


def list_languages() -> List[Dict[str, str]]:
    """Supported languages as serialisable dictionaries."""
    return [{'code': code, 'name': name} for code, name in SUPPORTED_LANGUAGES.items()]


def detect_language(text: str) -> str:
    """
    Detect the language of a text from the scripts it uses.

    Returns a supported code when one script dominates, `mixed` when several
    scripts are present or no letters are found.
    """
    if not text:
        return MIXED

    counts = {
        code: len(pattern.findall(text))
        for code, pattern in _SCRIPT_PATTERNS.items()
    }
    total = sum(counts.values())
    if total == 0:
        return MIXED

    present = [code for code, count in counts.items() if count / total >= _MIN_SCRIPT_SHARE]
    if len(present) == 1:
        return present[0]
    return MIXED
