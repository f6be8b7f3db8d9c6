"""
FastAPI application for the Government Form Assistant.
"""
from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import uuid

from form_assistant.config import Config
from form_assistant.dependencies import AssistantServices, get_services, init_services
from form_assistant.errors import (
    CollaboratorIOFailure,
    FormAssistantError,
    SessionIncomplete,
    UnsupportedLanguage,
)
from form_assistant.models import (
    FormFieldOut, FormSectionOut, GenerateRequest, GenerateResponse, HealthResponse,
    LanguageInfo, LanguagesResponse, RateLimitStatus, TranslateRequest,
    TranslateResponse, UploadResponse
)
from form_assistant.routes.chat import router as chat_router
from form_assistant.services.field_validator import FieldValidator
from form_assistant.services.form_structure import detect_language, is_supported, list_languages
from form_assistant.services.form_structure.languages import AUTO, MIXED
from form_assistant.services.session_engine import SessionEngine
from form_assistant.utils.pdf_handler import PDFHandler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Government Form Assistant API",
    description="Conversational filling of government forms in Indian languages",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    try:
        Config.validate()
        logger.info("Configuration validated successfully")
        init_services()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now()
    )


# ============================================================================
# Upload
# ============================================================================

@app.post("/api/upload", response_model=UploadResponse)
async def upload_form(
    file: UploadFile = File(..., description="Scanned form (PDF or image)"),
    language: Optional[str] = Form(None, description="Interaction language for the new session"),
    services: AssistantServices = Depends(get_services)
):
    """
    Upload a form, infer its structure and open a filling session.

    Inference problems never fail the upload: the canonical fallback form is
    used instead and `used_fallback` is set.
    """
    filename = file.filename or ""
    extension = Path(filename).suffix.lower()
    if extension not in Config.allowed_extensions():
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{extension or filename}'. "
                   f"Allowed: {', '.join(sorted(Config.allowed_extensions()))}"
        )

    document_bytes = await file.read()

    if len(document_bytes) == 0:
        raise HTTPException(status_code=400, detail="Empty file uploaded")
    if len(document_bytes) > Config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"File too large ({len(document_bytes)} bytes); limit is {Config.MAX_UPLOAD_BYTES} bytes"
        )
    if extension == '.pdf' and not PDFHandler.is_pdf(document_bytes):
        raise HTTPException(status_code=400, detail="Invalid PDF format")

    interaction_language = language or Config.DEFAULT_LANGUAGE
    if not is_supported(interaction_language):
        raise UnsupportedLanguage(interaction_language)

    if services.extractor is None:
        raise HTTPException(status_code=500, detail="Document extraction is not configured")

    logger.info(f"Processing upload: {filename} ({len(document_bytes)} bytes)")
    try:
        document = await run_in_threadpool(services.extractor.extract, document_bytes, filename)
    except CollaboratorIOFailure as e:
        logger.error(f"Extraction failed for {filename}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to extract text: {e.message}")

    form_id = uuid.uuid4().hex
    outcome = await run_in_threadpool(
        services.inferencer.infer, document.text, document.table_rows, form_id
    )
    form = services.store.add_form(outcome.form)

    engine = SessionEngine(
        form,
        translator=services.translator,
        interaction_language=interaction_language,
        translation_timeout=Config.TRANSLATION_TIMEOUT,
    )
    services.store.add_session(engine)

    return UploadResponse(
        success=True,
        form_id=form.form_id,
        session_id=engine.session_id,
        form_title=form.title,
        fields=[FormFieldOut(**f.to_dict()) for f in form.fields],
        sections=[FormSectionOut(**s.to_dict()) for s in form.sections],
        language=form.language,
        total_fields=form.total_fields,
        used_fallback=outcome.used_fallback,
        fallback_reason=outcome.failure.reason if outcome.failure else None,
    )


# ============================================================================
# Translation
# ============================================================================

@app.post("/api/translate", response_model=TranslateResponse)
def translate_text(request: TranslateRequest, services: AssistantServices = Depends(get_services)):
    """Translate free text between supported languages."""
    if not is_supported(request.target_language):
        raise UnsupportedLanguage(request.target_language)

    source = request.source_language
    if source == AUTO:
        source = detect_language(request.text)
    if source != MIXED and not is_supported(source):
        raise UnsupportedLanguage(source)

    translated = services.translator.translate(
        request.text,
        AUTO if source == MIXED else source,
        request.target_language,
        timeout=Config.TRANSLATION_TIMEOUT
    )
    return TranslateResponse(
        translated_text=translated,
        source_language=source,
        target_language=request.target_language
    )


# ============================================================================
# Document generation
# ============================================================================

@app.post("/api/generate", response_model=GenerateResponse)
def generate_document(request: GenerateRequest, services: AssistantServices = Depends(get_services)):
    """
    Render filled values into a downloadable PDF.

    With a session_id the session must be complete; its values are rendered
    with `form_data` entries taking precedence. Otherwise `template_id` names
    an uploaded form (the fallback form when omitted).
    """
    if request.session_id:
        with services.store.session(request.session_id) as engine:
            form = engine.form
            values = {item.field_id: item.value for item in engine.summary()}
    else:
        form = services.store.get_form(request.template_id)
        values = {}

    values.update(FieldValidator().accept_mapping(form, request.form_data))

    missing = [f.id for f in form.required_fields if not values.get(f.id, "").strip()]
    if missing:
        raise SessionIncomplete(missing)

    document = services.renderer.render(form, values)
    return GenerateResponse(
        success=True,
        download_url=f"/api/download/{document.filename}",
        file_size=document.file_size
    )


@app.get("/api/download/{filename}")
async def download_document(filename: str, services: AssistantServices = Depends(get_services)):
    """Serve a generated document."""
    if Path(filename).name != filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    path = Path(services.renderer.output_dir) / filename
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Document not found")

    return FileResponse(path, media_type="application/pdf", filename=filename)


# ============================================================================
# Reference data
# ============================================================================

@app.get("/api/languages", response_model=LanguagesResponse)
async def get_languages():
    """Supported interaction languages."""
    return LanguagesResponse(
        default_language=Config.DEFAULT_LANGUAGE,
        languages=[LanguageInfo(**language) for language in list_languages()]
    )


@app.get("/api/rate-limit", response_model=RateLimitStatus)
async def get_rate_limit_status(services: AssistantServices = Depends(get_services)):
    """Get current external-call budget status."""
    stats = services.rate_limiter.get_stats()
    return RateLimitStatus(
        total_calls=stats['total_calls'],
        max_calls=stats['max_calls'],
        remaining_calls=stats['remaining_calls'],
        calls_by_service=stats['calls_by_service']
    )


# ============================================================================
# Error handling
# ============================================================================

@app.exception_handler(FormAssistantError)
async def form_assistant_exception_handler(request, exc: FormAssistantError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__}: {exc.message}")

    content = {"detail": exc.message, "error": type(exc).__name__}
    field_id = getattr(exc, 'field_id', None)
    if field_id:
        content["field_id"] = field_id
    missing = getattr(exc, 'missing_field_ids', None)
    if missing:
        content["extra"] = {"missing_field_ids": missing}
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "form_assistant.main:app",
        host=Config.API_HOST,
        port=Config.API_PORT,
        reload=True
    )
