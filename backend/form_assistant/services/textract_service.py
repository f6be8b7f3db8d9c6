"""
AWS Textract service: raw text and table extraction from uploaded documents.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from form_assistant.config import Config
from form_assistant.errors import CollaboratorIOFailure
from form_assistant.utils.pdf_handler import PDFHandler
from form_assistant.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Synchronous Textract calls accept documents up to 5MB
MAX_SYNC_DOCUMENT_BYTES = 5 * 1024 * 1024


@dataclass
class ExtractedDocument:
    """Raw extraction output: text lines plus table rows."""
    lines: List[str] = field(default_factory=list)
    table_rows: List[List[str]] = field(default_factory=list)
    pages: int = 1
    confidence: float = 0.0

    @property
    def text(self) -> str:
        return '\n'.join(self.lines)


class TextractService:
    """Service for extracting document text with AWS Textract."""

    def __init__(self, rate_limiter: Optional[RateLimiter] = None, client: Any = None):
        """
        Initialize Textract service.

        Args:
            rate_limiter: Optional rate limiter instance
            client: Optional pre-built Textract client
        """
        self.rate_limiter = rate_limiter
        self.service_name = 'textract'
        self.pdf_handler = PDFHandler()

        if client is not None:
            self.client = client
            return

        config = Config.get_boto3_config()
        if 'profile_name' in config:
            session = boto3.Session(profile_name=config['profile_name'])
            self.client = session.client('textract', region_name=config['region_name'])
        else:
            self.client = boto3.client('textract', **config)
        logger.info("Initialized AWS Textract service")

    def extract(self, document_bytes: bytes, filename: str = "") -> ExtractedDocument:
        """
        Extract lines and table rows from a PDF or image.

        Args:
            document_bytes: Uploaded document
            filename: Original filename (for logging)

        Returns:
            ExtractedDocument

        Raises:
            CollaboratorIOFailure: Textract (or PDF rasterization) failed
        """
        if self.rate_limiter:
            can_call, reason = self.rate_limiter.can_make_call(self.service_name)
            if not can_call:
                logger.warning(f"Rate limit exceeded: {reason}")
                raise CollaboratorIOFailure('textract', f"Rate limit exceeded: {reason}")

        payload = document_bytes
        if self.pdf_handler.is_pdf(document_bytes) and len(document_bytes) > MAX_SYNC_DOCUMENT_BYTES:
            payload = self._first_page_image(document_bytes)

        logger.info(f"Extracting {filename or 'document'} with Textract ({len(payload)} bytes)")
        try:
            response = self._analyze(payload)
        except ClientError as e:
            if not self.pdf_handler.is_pdf(document_bytes) or payload is not document_bytes:
                raise self._client_failure(e)
            # Some PDFs are rejected by the synchronous API; retry with a rendered page
            logger.warning(f"Textract rejected PDF directly: {e}. Falling back to image conversion.")
            try:
                response = self._analyze(self._first_page_image(document_bytes))
            except ClientError as retry_error:
                raise self._client_failure(retry_error)
        except BotoCoreError as e:
            logger.error(f"Textract transport error: {e}")
            raise CollaboratorIOFailure('textract', str(e)) from e

        document = self.parse_response(response)
        logger.info(
            f"Textract extraction complete: {len(document.lines)} lines, "
            f"{len(document.table_rows)} table rows, confidence: {document.confidence:.2f}%"
        )
        return document

    def _analyze(self, payload: bytes) -> Dict[str, Any]:
        try:
            return self.client.analyze_document(
                Document={'Bytes': payload},
                FeatureTypes=['TABLES']
            )
        finally:
            # Failed attempts still count
            if self.rate_limiter:
                self.rate_limiter.record_call(self.service_name)

    def _first_page_image(self, pdf_bytes: bytes) -> bytes:
        image_bytes = self.pdf_handler.first_page_png(pdf_bytes)
        if image_bytes is None:
            raise CollaboratorIOFailure(
                'textract',
                'Failed to convert PDF to image. Poppler may not be installed. '
                'Install with: apt-get install poppler-utils (Linux) or brew install poppler (macOS)'
            )
        logger.info(f"Converted PDF to image: {len(image_bytes)} bytes")
        return image_bytes

    @staticmethod
    def _client_failure(error: ClientError) -> CollaboratorIOFailure:
        error_msg = str(error)
        logger.error(f"Textract error: {error}")

        # Provide helpful error messages
        if "ExpiredTokenException" in error_msg or "expired" in error_msg.lower():
            error_msg = f"AWS credentials have expired. {error_msg} Please refresh your AWS credentials."
        elif "InvalidClientTokenId" in error_msg:
            error_msg = f"AWS credentials are invalid. {error_msg} Please check your AWS credentials."
        return CollaboratorIOFailure('textract', error_msg)

    @staticmethod
    def parse_response(response: Dict[str, Any]) -> ExtractedDocument:
        """
        Turn a Textract AnalyzeDocument response into lines and table rows.

        Tables are rebuilt from CELL blocks (RowIndex/ColumnIndex) and the
        WORD children of each cell.
        """
        blocks = response.get('Blocks', [])
        blocks_by_id = {block.get('Id'): block for block in blocks}

        lines = [
            block.get('Text', '')
            for block in blocks
            if block.get('BlockType') == 'LINE' and block.get('Text')
        ]

        table_rows: List[List[str]] = []
        for table in (b for b in blocks if b.get('BlockType') == 'TABLE'):
            cells: Dict[int, Dict[int, str]] = {}
            for cell_id in _child_ids(table):
                cell = blocks_by_id.get(cell_id)
                if not cell or cell.get('BlockType') != 'CELL':
                    continue
                words = [
                    blocks_by_id[word_id].get('Text', '')
                    for word_id in _child_ids(cell)
                    if word_id in blocks_by_id and blocks_by_id[word_id].get('BlockType') == 'WORD'
                ]
                row_index = cell.get('RowIndex', 1)
                column_index = cell.get('ColumnIndex', 1)
                cells.setdefault(row_index, {})[column_index] = ' '.join(words)

            for row_index in sorted(cells):
                row = cells[row_index]
                width = max(row)
                table_rows.append([row.get(column, '') for column in range(1, width + 1)])

        confidences = [block['Confidence'] for block in blocks if 'Confidence' in block]
        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0

        return ExtractedDocument(
            lines=lines,
            table_rows=table_rows,
            pages=response.get('DocumentMetadata', {}).get('Pages', 1),
            confidence=avg_confidence
        )


def _child_ids(block: Dict[str, Any]) -> List[str]:
    ids: List[str] = []
    for relationship in block.get('Relationships', []) or []:
        if relationship.get('Type') == 'CHILD':
            ids.extend(relationship.get('Ids', []))
    return ids
