"""
Tests for Textract response parsing and error mapping.
"""
import pytest
from botocore.exceptions import ClientError

from form_assistant.errors import CollaboratorIOFailure
from form_assistant.services.textract_service import TextractService
from form_assistant.utils.rate_limiter import RateLimiter

PNG_BYTES = b"\x89PNG\r\n\x1a\n fake image"


def block(block_id, block_type, text=None, children=None, **extra):
    data = {'Id': block_id, 'BlockType': block_type, 'Confidence': 90.0, **extra}
    if text is not None:
        data['Text'] = text
    if children:
        data['Relationships'] = [{'Type': 'CHILD', 'Ids': children}]
    return data


RESPONSE = {
    'DocumentMetadata': {'Pages': 1},
    'Blocks': [
        block('p1', 'PAGE'),
        block('l1', 'LINE', 'APPLICATION FOR CASTE CERTIFICATE'),
        block('l2', 'LINE', 'Name of Applicant:'),
        block('t1', 'TABLE', children=['c11', 'c12', 'c21', 'c22']),
        block('c11', 'CELL', children=['w1'], RowIndex=1, ColumnIndex=1),
        block('c12', 'CELL', children=['w2', 'w3'], RowIndex=1, ColumnIndex=2),
        block('c21', 'CELL', children=['w4'], RowIndex=2, ColumnIndex=1),
        block('c22', 'CELL', RowIndex=2, ColumnIndex=2),
        block('w1', 'WORD', 'Caste'),
        block('w2', 'WORD', 'SC'),
        block('w3', 'WORD', '/ST'),
        block('w4', 'WORD', 'Religion'),
    ],
}


class StubTextractClient:

    def __init__(self, response=None, error=None):
        self.response = response or RESPONSE
        self.error = error
        self.calls = 0

    def analyze_document(self, Document, FeatureTypes):
        self.calls += 1
        assert FeatureTypes == ['TABLES']
        if self.error:
            raise self.error
        return self.response


def test_parse_lines_and_tables():
    document = TextractService.parse_response(RESPONSE)

    assert document.lines == ['APPLICATION FOR CASTE CERTIFICATE', 'Name of Applicant:']
    assert document.text == 'APPLICATION FOR CASTE CERTIFICATE\nName of Applicant:'
    assert document.table_rows == [['Caste', 'SC /ST'], ['Religion', '']]
    assert document.pages == 1
    assert document.confidence == pytest.approx(90.0)


def test_parse_empty_response():
    document = TextractService.parse_response({})
    assert document.lines == [] and document.table_rows == [] and document.confidence == 0.0


def test_extract_counts_calls():
    limiter = RateLimiter(max_total_calls=5, enabled=True)
    service = TextractService(rate_limiter=limiter, client=StubTextractClient())

    document = service.extract(PNG_BYTES, "scan.png")

    assert document.table_rows[0][0] == 'Caste'
    assert limiter.get_stats()['calls_by_service'] == {'textract': 1}


def test_exhausted_budget_refuses_before_calling():
    limiter = RateLimiter(max_total_calls=1, enabled=True)
    limiter.record_call('inference')
    client = StubTextractClient()

    with pytest.raises(CollaboratorIOFailure):
        TextractService(rate_limiter=limiter, client=client).extract(PNG_BYTES)
    assert client.calls == 0


def test_client_error_maps_to_collaborator_failure():
    error = ClientError({'Error': {'Code': 'ExpiredTokenException', 'Message': 'token expired'}}, 'AnalyzeDocument')
    service = TextractService(client=StubTextractClient(error=error))

    with pytest.raises(CollaboratorIOFailure) as exc_info:
        service.extract(PNG_BYTES, "scan.png")
    assert "expired" in exc_info.value.message


class RejectPdfClient(StubTextractClient):
    """Rejects PDF payloads, accepts images."""

    def __init__(self):
        super().__init__()
        self.payloads = []

    def analyze_document(self, Document, FeatureTypes):
        self.calls += 1
        self.payloads.append(Document['Bytes'])
        if Document['Bytes'].startswith(b'%PDF'):
            raise ClientError({'Error': {'Code': 'UnsupportedDocumentException', 'Message': 'bad'}}, 'AnalyzeDocument')
        return self.response


def test_rejected_pdf_retries_with_rendered_page(monkeypatch):
    limiter = RateLimiter(max_total_calls=5, enabled=True)
    client = RejectPdfClient()
    service = TextractService(rate_limiter=limiter, client=client)
    monkeypatch.setattr(service.pdf_handler, 'first_page_png', lambda pdf_bytes: PNG_BYTES)

    document = service.extract(b'%PDF-1.4 fake', "form.pdf")

    assert document.lines[0] == 'APPLICATION FOR CASTE CERTIFICATE'
    assert client.payloads == [b'%PDF-1.4 fake', PNG_BYTES]
    assert limiter.get_stats()['total_calls'] == 2


def test_unrenderable_pdf_is_collaborator_failure(monkeypatch):
    service = TextractService(client=RejectPdfClient())
    monkeypatch.setattr(service.pdf_handler, 'first_page_png', lambda pdf_bytes: None)

    with pytest.raises(CollaboratorIOFailure) as exc_info:
        service.extract(b'%PDF-1.4 fake', "form.pdf")
    assert "Poppler" in exc_info.value.message
