#!/usr/bin/env python3
"""
Form Session - Example Usage
============================

This script demonstrates the form assistant end to end without the HTTP
layer: extract a form, infer its structure, fill it in an interactive chat
session and render the result.

Usage:
    python examples/form_session_example.py path/to/form.pdf
    python examples/form_session_example.py --offline

Requirements:
    - AWS credentials configured (for Textract), unless --offline
    - Optional: INFERENCE_API_KEY environment variable (structure inference
      and translation; without it the fallback form is used)
"""

import sys
import json
import argparse
import logging
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from form_assistant.config import Config
from form_assistant.errors import FormAssistantError, ValidationFailed
from form_assistant.services.form_structure import FALLBACK_FORM, StructureInferencer, list_languages
from form_assistant.services.inference_client import InferenceClient
from form_assistant.services.renderer import PdfFormRenderer
from form_assistant.services.session_engine import SessionEngine
from form_assistant.services.textract_service import TextractService
from form_assistant.services.translator import IdentityTranslator, LLMTranslator
from form_assistant.utils.rate_limiter import RateLimiter

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

COMMANDS = "Commands: :back, :goto <field_id>, :hint, :quit"


def load_form(document_path: str, inference_client: InferenceClient, rate_limiter: RateLimiter):
    """
    Extract and infer the structure of a document.

    Args:
        document_path: Path to a PDF or image
        inference_client: Shared inference client
        rate_limiter: Shared external-call budget

    Returns:
        The inferred (or fallback) FormModel, or None if the file is missing
    """
    document_path = Path(document_path)
    if not document_path.exists():
        logger.error(f"File not found: {document_path}")
        return None

    with open(document_path, 'rb') as f:
        document_bytes = f.read()

    print(f"Extracting: {document_path.name} ({len(document_bytes):,} bytes)")
    document = TextractService(rate_limiter=rate_limiter).extract(document_bytes, document_path.name)

    outcome = StructureInferencer(inference_client, timeout=Config.INFERENCE_TIMEOUT).infer(
        document.text, document.table_rows, form_id=document_path.stem
    )
    if outcome.used_fallback:
        print(f"Using the standard form ({outcome.failure.kind.value}: {outcome.failure.reason})")
    return outcome.form


def print_form(form):
    print("\n" + "=" * 60)
    print(form.title)
    print("=" * 60)
    print(f"Language: {form.language}   Fields: {form.total_fields}")
    for section in form.sections:
        print(f"\n{section.title}")
        for field_id in section.field_ids:
            form_field = form.get_field(field_id)
            required = "*" if form_field.required else " "
            print(f"  {required} [{form_field.type.value:8}] {form_field.id:30} {form_field.label}")


def run_session(engine: SessionEngine):
    """Interactive loop. Returns True when the session completed."""
    print("\n" + COMMANDS)
    while not engine.is_complete:
        prompt = engine.next_prompt()
        try:
            answer = input(f"\n{prompt.text}\n> ")
        except EOFError:
            answer = ":quit"

        command = answer.strip()
        try:
            if command == ":quit":
                engine.cancel()
                print("Session cancelled.")
                return False
            elif command == ":back":
                engine.go_back()
            elif command.startswith(":goto "):
                engine.navigate(command.split(maxsplit=1)[1])
            elif command == ":hint":
                for hint in engine.suggestions():
                    print(f"  • {hint}")
            else:
                engine.submit_answer(prompt.field_id, answer)
        except ValidationFailed as e:
            print(f"  ✗ {e.message}")
        except FormAssistantError as e:
            print(f"  ! {e.message}")

    print("\n" + engine.next_prompt().text)
    return True


def main():
    parser = argparse.ArgumentParser(
        description='Government Form Assistant - interactive session',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Fill an uploaded form in English
    python form_session_example.py form.pdf

    # Fill the standard form in Hindi, then render a PDF
    python form_session_example.py --offline -l hi --render

    # Save collected values to JSON
    python form_session_example.py form.pdf -o values.json
        """
    )

    parser.add_argument(
        'document_path',
        nargs='?',
        help='Path to the form (PDF or image)'
    )

    parser.add_argument(
        '--offline',
        action='store_true',
        help='Skip extraction and fill the standard fallback form'
    )

    parser.add_argument(
        '-l', '--language',
        default=Config.DEFAULT_LANGUAGE,
        choices=[language['code'] for language in list_languages()],
        help='Interaction language'
    )

    parser.add_argument(
        '-o', '--output',
        help='Path to save collected values as JSON'
    )

    parser.add_argument(
        '--render',
        action='store_true',
        help='Render the completed form to PDF'
    )

    args = parser.parse_args()

    rate_limiter = RateLimiter(max_total_calls=Config.MAX_TOTAL_CALLS)
    inference_client = InferenceClient(rate_limiter=rate_limiter)

    if args.offline:
        form = FALLBACK_FORM
    elif args.document_path:
        form = load_form(args.document_path, inference_client, rate_limiter)
        if form is None:
            sys.exit(1)
    else:
        parser.print_help()
        print("\nError: Please provide a document path or use --offline")
        sys.exit(1)

    translator = LLMTranslator(inference_client) if inference_client.is_available else IdentityTranslator()
    engine = SessionEngine(form, translator=translator, interaction_language=args.language)

    print_form(form)
    if not run_session(engine):
        sys.exit(1)

    values = {item.field_id: item.value for item in engine.summary()}

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            json.dump(values, f, indent=2, ensure_ascii=False)
        print(f"\nValues saved to: {args.output}")

    if args.render:
        document = PdfFormRenderer().render(form, values)
        print(f"Rendered: {document.path} ({document.file_size:,} bytes)")


if __name__ == '__main__':
    main()
