"""Tests for text extraction and the upload intake pipeline."""
import time
import pytest
from unittest.mock import Mock, patch
from uuid import uuid4
from shared.exceptions import DocumentNotFoundError, MalformedInputError, StoreUnavailableError
from shared.models import Category, UploadRequest
from api.services.classification import ClassificationEngine, FeatureScorer
from api.services.extraction import HttpExtractionService, TextExtractor
from api.services.translation import TranslationClient


def _upload(name="invoice.txt", content=b"invoice payment due", media_type="text/plain", owner_id="owner-1"):
    return UploadRequest(
        name=name,
        media_type=media_type,
        size_bytes=len(content),
        content=content,
        owner_id=owner_id
    )


class TestTextExtractor:
    """Tests for TextExtractor."""

    @pytest.fixture
    def pdf_service(self):
        service = Mock()
        service.extract.return_value = "pdf text"
        return service

    @pytest.fixture
    def ocr_service(self):
        service = Mock()
        service.extract.return_value = "ocr text"
        return service

    @pytest.fixture
    def extractor(self, pdf_service, ocr_service):
        extractor = TextExtractor(pdf_service=pdf_service, ocr_service=ocr_service, timeout=1)
        yield extractor
        extractor.close()

    def test_dispatch_by_media_type(self, extractor, pdf_service, ocr_service):
        assert extractor.extract(b"%PDF", "application/pdf", "a.pdf") == "pdf text"
        assert extractor.extract(b"\x89PNG", "image/png", "a.png") == "ocr text"
        assert extractor.extract("héllo".encode("utf-8"), "text/plain") == "héllo"
        assert extractor.extract(b"PK\x03\x04", "application/zip") == ""
        ocr_service.extract.assert_called_once_with(b"\x89PNG", "a.png", "image/png")

    def test_nul_characters_are_stripped(self, extractor, pdf_service):
        pdf_service.extract.return_value = "page\x00one"

        assert extractor.extract(b"invoice\x00 payment", "text/plain") == "invoice payment"
        assert extractor.extract(b"%PDF", "application/pdf", "a.pdf") == "pageone"

    def test_latin1_fallback(self, extractor):
        assert extractor.extract("café".encode("latin-1"), "text/plain") == "café"

    def test_collaborator_failure_returns_empty(self, extractor, pdf_service):
        pdf_service.extract.side_effect = RuntimeError("corrupt pdf")

        assert extractor.extract(b"%PDF", "application/pdf", "broken.pdf") == ""

    def test_timeout_returns_empty(self, ocr_service):
        ocr_service.extract.side_effect = lambda *args: time.sleep(0.5) or "late"
        extractor = TextExtractor(pdf_service=Mock(), ocr_service=ocr_service, timeout=0.05)

        try:
            assert extractor.extract(b"img", "image/jpeg", "slow.jpg") == ""
        finally:
            extractor.close()

    @patch("api.services.extraction.requests.post")
    def test_http_extraction_service(self, mock_post):
        mock_post.return_value.json.return_value = {"text": "scanned words"}

        text = HttpExtractionService("http://ocr/extract", timeout=5).extract(b"img", "scan.png", "image/png")

        assert text == "scanned words"
        assert mock_post.call_args.kwargs["timeout"] == 5
        assert mock_post.call_args.kwargs["files"]["file"] == ("scan.png", b"img", "image/png")

    def test_unconfigured_http_service_degrades(self):
        extractor = TextExtractor(pdf_service=Mock(), ocr_service=HttpExtractionService(None))

        try:
            assert extractor.extract(b"img", "image/png", "a.png") == ""
        finally:
            extractor.close()


class TestIntakePipeline:
    """Tests for IntakePipeline."""

    def test_accepted_upload_is_stored_and_searchable(self, services, blob_store, fixed_rng):
        """Upload then search returns the document with the independently computed category."""
        outcome = services.pipeline.ingest(_upload())

        assert outcome.accepted is True
        document = outcome.document
        expected = ClassificationEngine(feature_scorer=FeatureScorer(rng=fixed_rng)).classify(
            "invoice.txt", "text/plain", "invoice payment due"
        )
        assert document.category == expected.category == Category.FINANCIAL
        assert document.confidence == pytest.approx(expected.confidence)
        assert document.blob_path == f"owner-1/{document.id}/invoice.txt"
        blob_store.upload_file.assert_called_once_with(
            b"invoice payment due", document.blob_path, content_type="text/plain"
        )

        result = services.search_engine.search("invoice", "owner-1")
        assert [d.id for d in result.documents] == [document.id]
        assert result.documents[0].category == expected.category

    def test_rejected_upload_is_not_stored(self, services, blob_store):
        outcome = services.pipeline.ingest(_upload(name="invoice.pdf.exe", content=b"MZ\x00\x00"))

        assert outcome.accepted is False
        assert outcome.document is None
        assert any(v.startswith("suspicious filename") for v in outcome.violations)
        blob_store.upload_file.assert_not_called()
        assert services.search_engine.search("", "owner-1").total_count == 0

    def test_new_upload_invalidates_cached_search(self, services):
        assert services.search_engine.search("", "owner-1").total_count == 0

        services.pipeline.ingest(_upload())

        assert services.search_engine.search("", "owner-1").total_count == 1

    def test_blob_failure_is_fatal(self, services, blob_store):
        blob_store.upload_file.side_effect = StoreUnavailableError("Blob store unavailable")

        with pytest.raises(StoreUnavailableError):
            services.pipeline.ingest(_upload())
        assert services.search_engine.search("", "owner-1").total_count == 0

    def test_row_failure_removes_blob(self, services, blob_store):
        services.pipeline.document_store = Mock()
        services.pipeline.document_store.insert.side_effect = StoreUnavailableError("Document store unreachable")

        with pytest.raises(StoreUnavailableError):
            services.pipeline.ingest(_upload())
        stored_path = blob_store.upload_file.call_args[0][1]
        blob_store.delete_file.assert_called_once_with(stored_path)

    def test_unexpected_row_failure_removes_blob(self, services, blob_store):
        services.pipeline.document_store = Mock()
        services.pipeline.document_store.insert.side_effect = ValueError("A string literal cannot contain NUL")

        with pytest.raises(ValueError):
            services.pipeline.ingest(_upload())
        blob_store.delete_file.assert_called_once_with(blob_store.upload_file.call_args[0][1])

    def test_text_with_nul_bytes_is_stored_clean(self, services):
        outcome = services.pipeline.ingest(_upload(content=b"invoice\x00 payment due"))

        assert outcome.accepted is True
        assert "\x00" not in outcome.document.extracted_text
        assert services.search_engine.search("invoice", "owner-1").total_count == 1

    @pytest.mark.parametrize("request_fields", [
        {"name": "   "},
        {"size_bytes": 999},
    ])
    def test_malformed_input(self, services, request_fields):
        request = _upload().model_copy(update=request_fields)

        with pytest.raises(MalformedInputError):
            services.pipeline.ingest(request)

    def test_delete(self, services, blob_store):
        document = services.pipeline.ingest(_upload()).document

        response = services.pipeline.delete(document.id, "owner-1")

        assert response.deleted is True
        blob_store.delete_prefix.assert_called_once_with(f"owner-1/{document.id}/")
        assert services.search_engine.search("", "owner-1").total_count == 0

    def test_delete_other_owners_document_not_found(self, services):
        document = services.pipeline.ingest(_upload()).document

        with pytest.raises(DocumentNotFoundError):
            services.pipeline.delete(document.id, "owner-2")
        with pytest.raises(DocumentNotFoundError):
            services.pipeline.delete(uuid4(), "owner-1")

    def test_delete_survives_blob_failure(self, services, blob_store):
        document = services.pipeline.ingest(_upload()).document
        blob_store.delete_prefix.side_effect = StoreUnavailableError("Blob store unavailable")

        assert services.pipeline.delete(document.id, "owner-1").deleted is True


class TestTranslationClient:
    """Tests for TranslationClient."""

    @patch("api.services.translation.requests.post")
    def test_translate(self, mock_post):
        mock_post.return_value.json.return_value = {
            "translatedText": "factura",
            "detectedSourceLanguage": "en",
            "confidence": 0.9,
        }

        result = TranslationClient("http://translate", timeout=3).translate("invoice", "es")

        assert result.translated_text == "factura"
        assert result.source_language == "en"
        assert result.confidence == 0.9
        assert mock_post.call_args.kwargs["json"]["sourceLanguage"] == "auto"
        assert mock_post.call_args.kwargs["timeout"] == 3

    @patch("api.services.translation.requests.post")
    def test_failure_degrades(self, mock_post):
        mock_post.side_effect = ConnectionError("refused")

        result = TranslationClient("http://translate").translate("invoice", "fr", source_language="en")

        assert result.translated_text == ""
        assert result.confidence == 0.0
        assert result.target_language == "fr"

    def test_unconfigured_degrades(self):
        assert TranslationClient(url="").translate("text", "de").confidence == 0.0
