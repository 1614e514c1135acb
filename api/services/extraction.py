"""Text extraction dispatch for uploaded files."""
import io
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Optional
import requests
from pypdf import PdfReader
from shared.config import config
import logging

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPES = {"application/pdf", "application/x-pdf"}


class PdfTextService:
    """In-process PDF text extraction with pypdf."""

    def extract(self, file_data: bytes, filename: str = "") -> str:
        """Extract text from PDF file.

        Args:
            file_data: PDF file data as bytes
            filename: Original filename (unused)

        Returns:
            Extracted text
        """
        reader = PdfReader(io.BytesIO(file_data))
        text = ""
        for page in reader.pages:
            text += (page.extract_text() or "") + "\n"
        return text


class HttpExtractionService:
    """Remote extraction collaborator (OCR or PDF-text) speaking multipart in, JSON out."""

    def __init__(self, url: Optional[str], timeout: float = config.EXTRACTION_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    def extract(self, file_data: bytes, filename: str = "", media_type: str = "application/octet-stream") -> str:
        if not self.url:
            raise RuntimeError("Extraction service URL is not configured")
        response = requests.post(
            self.url,
            files={"file": (filename or "upload", file_data, media_type)},
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json().get("text") or ""


class TextExtractor:
    """Routes a file to the right collaborator by media type; never raises."""

    def __init__(
        self,
        pdf_service=None,
        ocr_service=None,
        timeout: float = config.EXTRACTION_TIMEOUT_SECONDS
    ):
        if pdf_service is None:
            pdf_service = HttpExtractionService(config.PDF_SERVICE_URL) if config.PDF_SERVICE_URL else PdfTextService()
        self.pdf_service = pdf_service
        self.ocr_service = ocr_service or HttpExtractionService(config.OCR_SERVICE_URL)
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="extract")

    @staticmethod
    def decode_text(file_data: bytes) -> str:
        """Decode plain text, UTF-8 first with latin-1 fallback."""
        try:
            return file_data.decode("utf-8")
        except UnicodeDecodeError:
            return file_data.decode("latin-1", errors="ignore")

    def extract(self, file_data: bytes, media_type: str, filename: str = "") -> str:
        """Extract text from a file.

        Args:
            file_data: File contents
            media_type: Declared media type
            filename: Original filename, passed through to collaborators

        Returns:
            Extracted text without NUL characters, or "" when the type is
            unsupported or extraction failed
        """
        media_type = (media_type or "").lower()

        if media_type in PDF_MEDIA_TYPES:
            text = self._call(self.pdf_service.extract, file_data, filename, "pdf")
        elif media_type.startswith("image/"):
            text = self._call(
                lambda data, name: self.ocr_service.extract(data, name, media_type), file_data, filename, "ocr"
            )
        elif media_type.startswith("text/"):
            text = self.decode_text(file_data)
        else:
            logger.info(f"Unsupported media type for text extraction: {media_type}")
            return ""
        # Postgres text columns reject NUL
        return text.replace("\x00", "")

    def _call(self, fn, file_data: bytes, filename: str, kind: str) -> str:
        future = self._executor.submit(fn, file_data, filename)
        try:
            return future.result(timeout=self.timeout) or ""
        except FutureTimeoutError:
            future.cancel()
            logger.warning(f"{kind} extraction timed out after {self.timeout}s for {filename!r}")
        except Exception as e:
            logger.warning(f"{kind} extraction failed for {filename!r}: {e}")
        return ""

    def close(self):
        self._executor.shutdown(wait=False)
