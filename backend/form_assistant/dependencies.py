"""
Service wiring.

Every collaborator is built once, at startup, and handed to the endpoints
through FastAPI dependencies. Tests swap the whole container with
`app.dependency_overrides[get_services]`.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from form_assistant.config import Config
from form_assistant.services.form_structure import StructureInferencer
from form_assistant.services.inference_client import InferenceClient
from form_assistant.services.renderer import PdfFormRenderer, Renderer
from form_assistant.services.session_store import SessionStore
from form_assistant.services.textract_service import TextractService
from form_assistant.services.translator import LLMTranslator, Translator
from form_assistant.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class AssistantServices:
    """Container of the process-wide collaborators."""
    inferencer: StructureInferencer
    translator: Translator
    renderer: Renderer
    store: SessionStore
    rate_limiter: RateLimiter
    extractor: Optional[Any] = None  # TextractService or any object with extract(bytes, filename)


_services: Optional[AssistantServices] = None


def build_services() -> AssistantServices:
    """Construct the collaborators from Config."""
    rate_limiter = RateLimiter(max_total_calls=Config.MAX_TOTAL_CALLS)
    inference_client = InferenceClient(rate_limiter=rate_limiter)

    try:
        extractor = TextractService(rate_limiter=rate_limiter)
    except Exception as e:
        # Uploads will fail with 500 until AWS is configured; everything else works
        logger.error(f"Failed to initialize Textract client: {e}")
        extractor = None

    return AssistantServices(
        inferencer=StructureInferencer(inference_client, timeout=Config.INFERENCE_TIMEOUT),
        translator=LLMTranslator(inference_client, timeout=Config.TRANSLATION_TIMEOUT),
        renderer=PdfFormRenderer(),
        store=SessionStore(),
        rate_limiter=rate_limiter,
        extractor=extractor,
    )


def init_services(services: Optional[AssistantServices] = None) -> AssistantServices:
    """Install the service container (built from Config if not given)."""
    global _services
    _services = services or build_services()
    logger.info("Services initialized successfully")
    return _services


def get_services() -> AssistantServices:
    """FastAPI dependency returning the service container."""
    if _services is None:
        return init_services()
    return _services
