"""Upload routes with rate limiting."""
from typing import List
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from shared.models import BulkUploadResponse, UploadOutcome, UploadRequest
from api.dependencies import get_current_owner, get_services, raise_rate_limited, rate_limited
from api.services.container import VaultServices
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])

MAX_BULK_FILES = 100


async def _to_request(file: UploadFile, owner_id: str) -> UploadRequest:
    content = await file.read()
    return UploadRequest(
        name=file.filename or "",
        media_type=file.content_type or "application/octet-stream",
        size_bytes=len(content),
        content=content,
        owner_id=owner_id
    )


@router.post("/single", response_model=UploadOutcome)
async def upload_single_file(
    file: UploadFile = File(...),
    owner: dict = Depends(rate_limited("upload")),
    services: VaultServices = Depends(get_services)
):
    """Upload a single file: screen, extract, classify and store it."""
    request = await _to_request(file, owner["owner_id"])
    logger.info(f"Upload {request.name!r} ({request.size_bytes} bytes) from {request.owner_id}")

    outcome = await run_in_threadpool(services.pipeline.ingest, request)
    if not outcome.accepted:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=outcome.model_dump(mode="json")
        )
    return outcome


@router.post("/bulk", response_model=BulkUploadResponse)
async def upload_bulk_files(
    files: List[UploadFile] = File(...),
    owner: dict = Depends(get_current_owner),
    services: VaultServices = Depends(get_services)
):
    """Upload multiple files; each one counts against the upload rate limit."""
    if len(files) > MAX_BULK_FILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum {MAX_BULK_FILES} files allowed per bulk upload"
        )

    owner_id = owner["owner_id"]
    outcomes: List[UploadOutcome] = []
    for file in files:
        decision = await run_in_threadpool(services.rate_limiter.check, owner_id, "upload")
        if not decision.allowed:
            if not outcomes:
                raise_rate_limited(decision, "upload", services.rate_limiter.clock())
            outcomes.append(UploadOutcome(accepted=False, violations=["rate limit exceeded"]))
            continue
        request = await _to_request(file, owner_id)
        outcomes.append(await run_in_threadpool(services.pipeline.ingest, request))

    successful = sum(1 for outcome in outcomes if outcome.accepted)
    return BulkUploadResponse(
        total_files=len(files),
        successful=successful,
        failed=len(files) - successful,
        outcomes=outcomes
    )
