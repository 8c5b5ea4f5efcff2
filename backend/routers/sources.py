"""
routers/sources.py — Adding sources to a project (file upload, URL) and
reading/deleting them with their summary hierarchy.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from starlette.datastructures import UploadFile

from dependencies import CurrentUser, DB
from logging_config import get_logger
from models_async import SOURCE_STATUSES, DataSource, Project
from routers.projects import get_owned_project
from schemas import UrlSourceCreate
from services.ingestion import IngestionError
from services.registry import ingestion_pipeline
from services.summarizer import summary_tree
from services.web_scraper import validate_url
from utils.rate_limit import limiter

logger = get_logger(__name__)
router = APIRouter(tags=["sources"])


def _ingestion_error_response(exc: IngestionError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, **exc.extra})


async def _get_owned_source(db, user_id: int, source_id: str, with_summaries: bool = False) -> DataSource:
    stmt = (
        select(DataSource)
        .join(Project, DataSource.project_id == Project.id)
        .where(DataSource.id == source_id, Project.user_id == user_id)
    )
    if with_summaries:
        stmt = stmt.options(selectinload(DataSource.summaries))
    source = await db.scalar(stmt)
    if not source:
        raise HTTPException(status_code=404, detail="Data source not found")
    return source


@router.post("/upload")
@limiter.limit("20/minute")
async def upload_file(request: Request, current_user: CurrentUser, db: DB):
    form = await request.form()
    project_id = form.get("projectId")
    uploaded_file = form.get("file")

    if not project_id or not isinstance(uploaded_file, UploadFile):
        raise HTTPException(status_code=400, detail="Project ID and file are required")

    project = await get_owned_project(db, current_user.id, project_id)

    filename = uploaded_file.filename or "file"
    content_type = uploaded_file.content_type or "application/octet-stream"
    data = await uploaded_file.read()

    try:
        source, _text = await ingestion_pipeline.ingest_file(
            db, current_user.id, project, filename, content_type, data
        )
    except IngestionError as exc:
        return _ingestion_error_response(exc)

    return {
        "success": True,
        "dataSource": {
            "id": source.id,
            "name": source.name,
            "type": source.type,
            "status": source.status,
        },
    }


@router.post("/upload/url")
@limiter.limit("20/minute")
async def upload_url(data: UrlSourceCreate, request: Request, current_user: CurrentUser, db: DB):
    if not data.projectId or not data.url:
        raise HTTPException(status_code=400, detail="Project ID and URL are required")

    url = data.url.strip()
    if not validate_url(url):
        raise HTTPException(status_code=400, detail="Invalid URL format")

    project = await get_owned_project(db, current_user.id, data.projectId)

    try:
        source, text = await ingestion_pipeline.ingest_url(db, project, url)
    except IngestionError as exc:
        return _ingestion_error_response(exc)

    return {
        "success": True,
        "dataSource": {
            "id": source.id,
            "name": source.name,
            "type": source.type,
            "status": source.status,
            "extractedLength": len(text),
        },
    }


@router.get("/projects/{project_id}/sources")
async def list_sources(
    project_id: str, current_user: CurrentUser, db: DB, status: Optional[str] = None
):
    await get_owned_project(db, current_user.id, project_id)
    if status is not None and status not in SOURCE_STATUSES:
        raise HTTPException(status_code=400, detail=f"status must be one of: {', '.join(SOURCE_STATUSES)}")

    stmt = select(DataSource).where(DataSource.project_id == project_id)
    if status:
        stmt = stmt.where(DataSource.status == status)
    result = await db.execute(stmt.order_by(DataSource.created_at.desc()))
    return {"dataSources": [s.to_dict() for s in result.scalars().all()]}


@router.get("/sources/{source_id}")
async def get_source(source_id: str, current_user: CurrentUser, db: DB):
    source = await _get_owned_source(db, current_user.id, source_id, with_summaries=True)
    d = source.to_dict()
    d["summaries"] = [s.to_dict() for s in summary_tree(source.summaries)]
    return {"dataSource": d}


@router.delete("/sources/{source_id}")
async def delete_source(source_id: str, current_user: CurrentUser, db: DB):
    source = await _get_owned_source(db, current_user.id, source_id)
    await db.delete(source)
    await db.commit()
    logger.info("source.deleted", source_id=source_id, user_id=current_user.id)
    return {"message": "Data source deleted"}
