"""
routers/admin.py — Health check and storage bootstrap endpoints.
"""

import asyncio
from datetime import datetime

from fastapi import APIRouter, HTTPException, Request

from logging_config import get_logger
from services.registry import storage_service
from services.storage import StorageError
from utils.rate_limit import limiter

logger = get_logger(__name__)

router = APIRouter(tags=["admin"])

API_VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": API_VERSION,
        "storage": storage_service.kind,
    }


@router.post("/admin/setup-storage")
@limiter.limit("5/minute")
async def setup_storage(request: Request):
    """Create the documents bucket if missing and list the buckets visible to us."""
    loop = asyncio.get_running_loop()
    try:
        existed = await loop.run_in_executor(None, storage_service.ensure_bucket)
        buckets = await loop.run_in_executor(None, storage_service.list_buckets)
    except StorageError as exc:
        logger.error("storage.setup.failed", error=str(exc))
        raise HTTPException(status_code=500, detail=f"Failed to create storage bucket: {exc}")

    logger.info("storage.setup.done", backend=storage_service.kind, existed=existed)
    return {
        "success": True,
        "message": "Documents bucket already exists" if existed else "Documents bucket created successfully",
        "buckets": buckets,
    }
