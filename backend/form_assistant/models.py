"""
Pydantic models for API request/response schemas.
"""
from typing import Optional, List, Dict
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum


class RateLimitStatus(BaseModel):
    """Rate limit status response model."""
    total_calls: int
    max_calls: int
    remaining_calls: int
    calls_by_service: Dict[str, int]


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str
    timestamp: datetime


# ============================================================================
# Form structure
# ============================================================================

class FormFieldOut(BaseModel):
    """A fillable field of an uploaded form."""
    id: str
    label: str
    type: str = Field(..., description="text | choice | checkbox | date")
    required: bool
    options: List[str] = Field(default_factory=list, description="Options (choice fields only)")
    section: Optional[str] = None


class FormSectionOut(BaseModel):
    """An ordered group of fields."""
    id: str
    title: str
    field_ids: List[str]


class UploadResponse(BaseModel):
    """Structured model of an uploaded form plus the session created for it."""
    success: bool
    form_id: str
    session_id: str
    form_title: str
    fields: List[FormFieldOut]
    sections: List[FormSectionOut]
    language: str
    total_fields: int
    used_fallback: bool = False
    fallback_reason: Optional[str] = None


# ============================================================================
# Chat
# ============================================================================

class ChatAction(str, Enum):
    """What a chat message asks the session to do."""
    ANSWER = "answer"
    PROMPT = "prompt"
    NAVIGATE = "navigate"
    BACK = "back"
    SUMMARY = "summary"
    CANCEL = "cancel"


class ChatContext(BaseModel):
    """Session routing for a chat message."""
    session_id: Optional[str] = None
    field_id: Optional[str] = Field(None, description="Field answered (answer) or jumped to (navigate)")
    action: Optional[ChatAction] = Field(None, description="Defaults to answer, or prompt for an empty message")
    language: Optional[str] = Field(None, description="Switch the interaction language")


class ChatRequest(BaseModel):
    """Request model for a chat turn."""
    message: str = ""
    context: Optional[ChatContext] = None
    form_data: Optional[Dict[str, str]] = Field(
        None, description="Values to prefill, keyed by field id of the session's form"
    )


class NextFieldOut(BaseModel):
    """The field the session is asking for."""
    field_id: str
    label: str
    display_label: str
    type: str
    options: List[str] = Field(default_factory=list)
    display_options: List[str] = Field(default_factory=list)
    required: bool
    section_title: Optional[str] = None


class SummaryItemOut(BaseModel):
    """A collected value with its label."""
    field_id: str
    label: str
    value: str


class ChatResponse(BaseModel):
    """Response model for a chat turn."""
    response: str
    next_field: Optional[NextFieldOut] = None
    suggestions: Optional[List[str]] = None
    session_status: Optional[str] = None
    summary: Optional[List[SummaryItemOut]] = None
    errors: Optional[List[str]] = None


class ChatTurnOut(BaseModel):
    role: str
    text: str
    related_field_id: Optional[str] = None


class SessionDetail(BaseModel):
    """Full state of a session."""
    session_id: str
    form_id: str
    status: str
    interaction_language: str
    values: Dict[str, str]
    current_field_id: Optional[str] = None
    history: List[str] = Field(default_factory=list)
    missing_required: List[str] = Field(default_factory=list)
    transcript: List[ChatTurnOut] = Field(default_factory=list)


# ============================================================================
# Translation / generation
# ============================================================================

class TranslateRequest(BaseModel):
    """Request model for free-text translation."""
    text: str
    source_language: str = "auto"
    target_language: str = "en"


class TranslateResponse(BaseModel):
    translated_text: str
    source_language: str
    target_language: str


class GenerateRequest(BaseModel):
    """Request model for rendering a filled document."""
    form_data: Dict[str, str] = Field(default_factory=dict, description="Field id -> value")
    template_id: Optional[str] = Field(None, description="form_id of an uploaded form (fallback form if omitted)")
    session_id: Optional[str] = Field(None, description="Render a completed session's values")


class GenerateResponse(BaseModel):
    success: bool
    download_url: str
    file_size: int


class LanguageInfo(BaseModel):
    code: str
    name: str


class LanguagesResponse(BaseModel):
    default_language: str
    languages: List[LanguageInfo]

