"""Document management routes."""
from typing import Dict
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, status
from shared.exceptions import DocumentNotFoundError
from shared.models import Document, DocumentDeleteResponse, TranslateRequest, TranslationResult
from api.dependencies import get_current_owner, get_services, rate_limited
from api.services.container import VaultServices
from api.services.translation import SUPPORTED_LANGUAGES
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("/stats/categories", response_model=Dict[str, int])
def category_stats(
    owner: dict = Depends(get_current_owner),
    services: VaultServices = Depends(get_services)
):
    """Document count per category for the caller."""
    return services.search_engine.category_stats(owner["owner_id"])


@router.get("/{document_id}", response_model=Document)
def get_document(
    document_id: UUID,
    owner: dict = Depends(get_current_owner),
    services: VaultServices = Depends(get_services)
):
    """Get one of the caller's documents."""
    document = services.document_store.get(document_id, owner["owner_id"])
    if document is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return document


@router.delete("/{document_id}", response_model=DocumentDeleteResponse)
def delete_document(
    document_id: UUID,
    owner: dict = Depends(rate_limited("delete")),
    services: VaultServices = Depends(get_services)
):
    """Delete a document and its stored bytes."""
    return services.pipeline.delete(document_id, owner["owner_id"])


@router.post("/{document_id}/translate", response_model=TranslationResult)
def translate_document(
    document_id: UUID,
    request: TranslateRequest,
    owner: dict = Depends(get_current_owner),
    services: VaultServices = Depends(get_services)
):
    """Translate a document's extracted text."""
    if request.target_language not in SUPPORTED_LANGUAGES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported target language: {request.target_language}"
        )

    document = services.document_store.get(document_id, owner["owner_id"])
    if document is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")

    return services.translator.translate(
        document.extracted_text,
        request.target_language,
        source_language=request.source_language or document.language
    )
