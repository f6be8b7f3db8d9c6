"""
Form Structure
==============

Turns the raw text of an uploaded government form into an immutable
FormModel: the ordered fillable fields and the sections grouping them.

Stages:
1. NORMALIZATION: raw labels become FormFields with stable, unique ids
2. INFERENCE: a language model describes the form's structure as JSON
3. VALIDATION: the description is normalized and its sections repaired
4. FALLBACK: any inference problem yields the canonical five-field form

Design Principles:
- Inference never raises (failures are classified, then fall back)
- Deterministic outputs (equal models serialize byte-identically)
- Labels stay in the form's own language
"""

from .languages import (
    AUTO,
    MIXED,
    SUPPORTED_LANGUAGES,
    detect_language,
    is_supported,
    language_name,
    list_languages,
)
from .form_model import (
    FALLBACK_FORM,
    FALLBACK_FORM_ID,
    FieldType,
    FormField,
    FormModel,
    FormSection,
)
from .field_normalizer import FieldNormalizer, NormalizationBatch
from .structure_inferencer import (
    ExtractionFailure,
    FailureKind,
    InferenceOutcome,
    StructureInferencer,
)

__all__ = [
    'StructureInferencer',
    'InferenceOutcome',
    'ExtractionFailure',
    'FailureKind',
    'FieldNormalizer',
    'NormalizationBatch',
    'FormModel',
    'FormField',
    'FormSection',
    'FieldType',
    'FALLBACK_FORM',
    'FALLBACK_FORM_ID',
    # Languages
    'SUPPORTED_LANGUAGES',
    'AUTO',
    'MIXED',
    'detect_language',
    'is_supported',
    'language_name',
    'list_languages',
]
