"""
Chat API Routes
===============

Conversational filling of an uploaded form.

Endpoints:
- POST /api/chat - One chat turn against a session
- GET /api/sessions/{session_id} - Fill state, status and transcript
- POST /api/sessions/{session_id}/cancel - Abandon a session
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from form_assistant.dependencies import AssistantServices, get_services
from form_assistant.errors import ValidationFailed
from form_assistant.models import (
    ChatAction, ChatContext, ChatRequest, ChatResponse, ChatTurnOut,
    NextFieldOut, SessionDetail, SummaryItemOut
)
from form_assistant.services.session_engine import Prompt, SessionEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Chat"])

MAX_SUGGESTIONS = 5

NO_SESSION_MESSAGE = (
    "Please upload a form first. I will then ask you for each field, one at a time."
)


@router.post("/chat", response_model=ChatResponse)
def chat(request: ChatRequest, services: AssistantServices = Depends(get_services)) -> ChatResponse:
    """
    Advance a session by one turn.

    The action defaults to `answer` for a non-empty message. An empty
    message re-asks the current question, or skips it when the field is
    optional. Rejected answers are not errors: the response repeats the
    question and lists what was wrong in `errors`.
    """
    context = request.context or ChatContext()
    if not context.session_id:
        return ChatResponse(response=NO_SESSION_MESSAGE)

    with services.store.session(context.session_id) as engine:
        action = context.action or _default_action(engine, request)

        if action == ChatAction.CANCEL:
            engine.cancel()
            return ChatResponse(
                response="Your session has been cancelled.",
                session_status=engine.status.value
            )

        if context.language:
            engine.set_interaction_language(context.language)

        try:
            if request.form_data:
                engine.apply_form_data(request.form_data)
            prompt = _dispatch(engine, action, context, request.message)
        except ValidationFailed as e:
            logger.info(f"Session {engine.session_id}: rejected value for {e.field_id}: {e.message}")
            prompt = engine.next_prompt()
            return _chat_response(engine, prompt, response=f"{e.message}\n{prompt.text}", errors=[e.message])

        return _chat_response(engine, prompt)


def _default_action(engine: SessionEngine, request: ChatRequest) -> ChatAction:
    if request.message.strip():
        return ChatAction.ANSWER
    current_id = engine.current_field_id
    if current_id and not request.form_data and not engine.form.get_field(current_id).required:
        return ChatAction.ANSWER
    return ChatAction.PROMPT


def _dispatch(engine: SessionEngine, action: ChatAction, context: ChatContext, message: str) -> Prompt:
    if action == ChatAction.ANSWER:
        field_id = context.field_id or engine.current_field_id
        if field_id is None:
            # Nothing is being asked; show the summary again
            return engine.next_prompt()
        return engine.submit_answer(field_id, message)

    if action == ChatAction.NAVIGATE:
        if not context.field_id:
            raise HTTPException(status_code=400, detail="context.field_id is required to navigate")
        return engine.navigate(context.field_id)

    if action == ChatAction.BACK:
        return engine.go_back()

    if action == ChatAction.SUMMARY:
        # Raises SessionIncomplete until every required field is filled
        engine.summary()

    return engine.next_prompt()


def _chat_response(
    engine: SessionEngine,
    prompt: Prompt,
    response: Optional[str] = None,
    errors: Optional[List[str]] = None
) -> ChatResponse:
    next_field = None
    suggestions = None
    summary = None

    if prompt.kind == "field":
        next_field = NextFieldOut(
            field_id=prompt.field_id,
            label=prompt.label,
            display_label=prompt.display_label,
            type=prompt.type.value,
            options=list(prompt.options),
            display_options=list(prompt.display_options),
            required=prompt.required,
            section_title=prompt.section_title
        )
        suggestions = engine.suggestions().to_list(limit=MAX_SUGGESTIONS)
    else:
        summary = [SummaryItemOut(**item.to_dict()) for item in prompt.summary]

    return ChatResponse(
        response=response or prompt.text,
        next_field=next_field,
        suggestions=suggestions,
        session_status=engine.status.value,
        summary=summary,
        errors=errors
    )


@router.get("/sessions/{session_id}", response_model=SessionDetail)
def get_session(session_id: str, services: AssistantServices = Depends(get_services)) -> SessionDetail:
    """Get the fill state, status and transcript of a session."""
    with services.store.session(session_id) as engine:
        return _session_detail(engine)


@router.post("/sessions/{session_id}/cancel", response_model=SessionDetail)
def cancel_session(session_id: str, services: AssistantServices = Depends(get_services)) -> SessionDetail:
    """Abandon a session. Cancelling twice is harmless."""
    with services.store.session(session_id) as engine:
        engine.cancel()
        return _session_detail(engine)


def _session_detail(engine: SessionEngine) -> SessionDetail:
    state = engine.fill_state
    return SessionDetail(
        session_id=engine.session_id,
        form_id=state.form_id,
        status=engine.status.value,
        interaction_language=engine.interaction_language,
        values=state.values,
        current_field_id=state.current_field_id,
        history=state.history,
        missing_required=engine.missing_required_fields(),
        transcript=[ChatTurnOut(**turn.to_dict()) for turn in engine.transcript]
    )
