"""
services/ingestion.py — File and URL intake for a project.

    file: store object ─► extract text ─► insert source (processing)
          ─► summary chain (if text > 50 chars) ─► processed
    url:  duplicate check ─► scrape ─► insert source (processing)
          ─► summary chain ─► processed

Runs inline in the request.  Failures before the source row exists surface as
IngestionError with an HTTP status; an unexpected failure after it exists
marks the row failed and re-raises.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from logging_config import get_logger
from models_async import (
    STATUS_FAILED, STATUS_PROCESSED, STATUS_PROCESSING, DataSource, Project,
)
from services.extraction import get_document_type
from services.storage import StorageError, build_object_key
from services.web_scraper import ScrapeError, scrape

logger = get_logger(__name__)

MIN_CONTENT_CHARS = 50


class IngestionError(Exception):
    def __init__(self, status_code: int, detail: str, extra: Optional[dict] = None):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.extra = extra or {}


class IngestionPipeline:
    def __init__(self, storage_service, text_extractor, summarizer, scraper=None):
        self._storage = storage_service
        self._extractor = text_extractor
        self._summarizer = summarizer
        self._scrape = scraper or scrape

    async def ingest_file(
        self,
        db,
        user_id: int,
        project: Project,
        filename: str,
        content_type: str,
        data: bytes,
    ) -> Tuple[DataSource, str]:
        if len(data) > Config.MAX_UPLOAD_BYTES:
            limit_mb = Config.MAX_UPLOAD_BYTES // (1024 * 1024)
            raise IngestionError(413, f"File exceeds the {limit_mb} MB upload limit")

        loop = asyncio.get_running_loop()
        key = build_object_key(user_id, project.id, filename)
        try:
            public_url = await loop.run_in_executor(
                None, self._storage.upload, key, data, content_type
            )
        except StorageError as exc:
            logger.error("ingest.storage.failed", key=key, error=str(exc))
            raise IngestionError(500, "Failed to upload file")

        metadata = {
            "originalName": filename,
            "size": len(data),
            "type": content_type,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
        }
        extraction = await self._extractor.extract(data, filename, content_type)
        metadata.update(extraction.metadata)

        source = await self._create_source(
            db,
            project_id=project.id,
            type=get_document_type(content_type),
            name=filename,
            content_url=public_url,
            metadata=metadata,
        )
        await self._finish(
            db, source, extraction.text, "document",
            summarize=len(extraction.text) > MIN_CONTENT_CHARS,
        )
        logger.info("ingest.file.done", source_id=source.id, type=source.type, chars=len(extraction.text))
        return source, extraction.text

    async def ingest_url(self, db, project: Project, url: str) -> Tuple[DataSource, str]:
        existing = await db.scalar(
            select(DataSource)
            .where(DataSource.project_id == project.id, DataSource.content_url == url)
            .limit(1)
        )
        if existing:
            raise IngestionError(
                409,
                "This URL has already been added to the project",
                {"existingSource": {"id": existing.id, "name": existing.name}},
            )

        loop = asyncio.get_running_loop()
        try:
            page = await loop.run_in_executor(None, self._scrape, url)
        except ScrapeError as exc:
            logger.warning("ingest.url.fetch_failed", url=url, error=str(exc))
            raise IngestionError(400, f"Failed to fetch URL: {exc}")

        if len(page.text) < MIN_CONTENT_CHARS:
            raise IngestionError(400, "Could not extract meaningful content from this URL")

        source = await self._create_source(
            db,
            project_id=project.id,
            type="url",
            name=page.title,
            content_url=url,
            metadata=page.metadata,
        )
        await self._finish(db, source, page.text, "web", summarize=True)
        logger.info("ingest.url.done", source_id=source.id, chars=len(page.text))
        return source, page.text

    async def _create_source(self, db, project_id, type, name, content_url, metadata) -> DataSource:
        source = DataSource(
            project_id=project_id,
            type=type,
            name=name,
            content_url=content_url,
            status=STATUS_PROCESSING,
            metadata_json=json.dumps(metadata, default=str),
        )
        db.add(source)
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("ingest.insert.failed", project_id=project_id, error=str(exc))
            raise IngestionError(500, "Failed to create data source record")
        return source

    async def _finish(self, db, source: DataSource, text: str, kind: str, summarize: bool) -> None:
        source_id = source.id
        try:
            if summarize:
                await self._summarizer.generate_summaries(db, source_id, text, kind)
            await db.execute(
                update(DataSource)
                .where(DataSource.id == source_id)
                .values(status=STATUS_PROCESSED, updated_at=datetime.utcnow())
            )
            await db.commit()
            # the summary chain may have rolled back and expired the instance
            await db.refresh(source)
        except Exception:
            logger.exception("ingest.failed", source_id=source_id)
            await db.rollback()
            await db.execute(
                update(DataSource).where(DataSource.id == source_id).values(status=STATUS_FAILED)
            )
            await db.commit()
            raise
