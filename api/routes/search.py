"""Search routes."""
from typing import Dict, List
from fastapi import APIRouter, Depends, Query
from shared.models import SearchFilters, SearchQuery, SearchResult
from pydantic import BaseModel, Field
from api.dependencies import get_current_owner, get_services, rate_limited
from api.services.container import VaultServices
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


class SearchRequest(BaseModel):
    """Search request model."""
    free_text: str = Field(default="", max_length=1000)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


@router.post("", response_model=SearchResult)
def search_documents(
    request: SearchRequest,
    owner: dict = Depends(rate_limited("search")),
    services: VaultServices = Depends(get_services)
):
    """Search the caller's documents, newest first."""
    return services.search_engine.search(
        request.free_text,
        owner["owner_id"],
        filters=request.filters,
        limit=request.limit,
        offset=request.offset
    )


@router.post("/advanced", response_model=SearchResult)
def advanced_search(
    query: SearchQuery,
    owner: dict = Depends(rate_limited("search")),
    services: VaultServices = Depends(get_services)
):
    """Search with explicit sort field and direction."""
    return services.search_engine.advanced_search(query, owner["owner_id"])


@router.get("/suggestions", response_model=Dict[str, List[str]])
def search_suggestions(
    q: str = Query("", max_length=200),
    limit: int = Query(5, ge=1, le=20),
    owner: dict = Depends(get_current_owner),
    services: VaultServices = Depends(get_services)
):
    """Document-name and keyword completions for a partial query."""
    return {"suggestions": services.search_engine.suggest(q, owner["owner_id"], limit=limit)}


@router.get("/popular", response_model=Dict[str, List[str]])
def popular_terms(
    limit: int = Query(10, ge=1, le=50),
    owner: dict = Depends(get_current_owner),
    services: VaultServices = Depends(get_services)
):
    """Most frequent keywords across the caller's documents."""
    return {"terms": services.search_engine.popular_terms(owner["owner_id"], limit=limit)}
