"""Upload intake: screen, extract, classify, store."""
from datetime import datetime, timezone
from uuid import UUID, uuid4
from shared.exceptions import DocumentNotFoundError, MalformedInputError, StoreUnavailableError
from shared.models import Document, DocumentDeleteResponse, UploadOutcome, UploadRequest
from api.services.classification import ClassificationEngine
from api.services.document_store import DocumentStore
from api.services.extraction import TextExtractor
from api.services.search import SearchEngine
from api.services.security import SecurityValidator
from api.services.storage import blob_path_for
import logging

logger = logging.getLogger(__name__)


class IntakePipeline:
    """Turns an uploaded byte stream into a validated, classified, searchable record."""

    def __init__(
        self,
        validator: SecurityValidator,
        extractor: TextExtractor,
        classifier: ClassificationEngine,
        document_store: DocumentStore,
        blob_store,
        search_engine: SearchEngine
    ):
        self.validator = validator
        self.extractor = extractor
        self.classifier = classifier
        self.document_store = document_store
        self.blob_store = blob_store
        self.search_engine = search_engine

    def ingest(self, request: UploadRequest) -> UploadOutcome:
        """Run an upload through the pipeline.

        Args:
            request: Upload entrypoint input

        Returns:
            UploadOutcome; rejected files carry their violations and are not stored

        Raises:
            MalformedInputError: Missing name or size not matching content
            StoreUnavailableError: The blob store or document store failed
        """
        if not request.name.strip():
            raise MalformedInputError("Upload is missing a filename")
        if request.content and len(request.content) != request.size_bytes:
            raise MalformedInputError(
                "Declared size does not match content",
                f"declared {request.size_bytes}, received {len(request.content)}"
            )

        validation = self.validator.validate(request, request.owner_id)
        if not validation.accepted:
            logger.info(f"Rejected upload {request.name!r} for {request.owner_id}: {validation.violations}")
            return UploadOutcome(accepted=False, violations=validation.violations)

        text = self.extractor.extract(request.content, request.media_type, request.name)
        if not text:
            logger.info(f"No text extracted from {request.name!r}; classifying on name only")
        classification = self.classifier.classify(request.name, request.media_type, text)

        document_id = uuid4()
        path = blob_path_for(request.owner_id, document_id, request.name)
        now = datetime.now(timezone.utc)
        document = Document(
            id=document_id,
            name=request.name,
            media_type=request.media_type,
            size_bytes=request.size_bytes,
            owner_id=request.owner_id,
            category=classification.category,
            confidence=classification.confidence,
            keywords=classification.keywords,
            language=classification.language,
            document_type=classification.document_type,
            extracted_text=text,
            blob_path=path,
            created_at=now,
            updated_at=now
        )

        self.blob_store.upload_file(request.content, path, content_type=request.media_type)
        try:
            self.document_store.insert(document)
        except Exception:
            logger.error(f"Document row insert failed for {document_id}; removing blob {path}")
            try:
                self.blob_store.delete_file(path)
            except StoreUnavailableError as e:
                logger.error(f"Could not remove orphaned blob {path}: {e}")
            raise

        self.search_engine.invalidate(request.owner_id)
        logger.info(
            f"Stored document {document_id} ({classification.category.value}, "
            f"confidence {classification.confidence:.2f}) for {request.owner_id}"
        )
        return UploadOutcome(accepted=True, violations=[], document=document)

    def delete(self, document_id: UUID, owner_id: str) -> DocumentDeleteResponse:
        """Delete a document row and its blobs.

        Raises:
            DocumentNotFoundError: No such document for this owner
        """
        document = self.document_store.get(document_id, owner_id)
        if document is None:
            raise DocumentNotFoundError("Document not found", str(document_id))

        try:
            self.blob_store.delete_prefix(f"{owner_id}/{document_id}/")
        except StoreUnavailableError as e:
            logger.warning(f"Error deleting files for {document_id}: {e}")

        self.document_store.delete(document_id, owner_id)
        self.search_engine.invalidate(owner_id)
        return DocumentDeleteResponse(
            document_id=document_id,
            deleted=True,
            message="Document and stored file deleted successfully"
        )
