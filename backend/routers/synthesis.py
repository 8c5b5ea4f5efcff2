"""
routers/synthesis.py — Synthesis matrix: AI analysis, matrix reads, column
management, cell edits, and the timeline view.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy import select

from dependencies import CurrentUser, DB
from logging_config import get_logger
from models_async import Project, SynthesisParameter
from routers.projects import get_owned_project
from schemas import AnalyzeSourcesRequest, CellValueUpdate, ParameterCreate
from services.llm import LLMError
from services.registry import synthesis_service
from services.synthesis import SynthesisError, cell_dict
from utils.rate_limit import limiter

logger = get_logger(__name__)
router = APIRouter(tags=["synthesis"])


@router.post("/synthesis/analyze-sources")
@limiter.limit("5/minute")
async def analyze_sources(data: AnalyzeSourcesRequest, request: Request, current_user: CurrentUser, db: DB):
    if not data.projectId:
        raise HTTPException(status_code=400, detail="Project ID required")

    project = await get_owned_project(db, current_user.id, data.projectId)
    try:
        return await synthesis_service.analyze_sources(db, project)
    except SynthesisError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)
    except LLMError as exc:
        logger.error("synthesis.provider_unavailable", error=str(exc))
        raise HTTPException(status_code=500, detail=str(exc))


@router.get("/projects/{project_id}/synthesis")
async def get_matrix(project_id: str, current_user: CurrentUser, db: DB):
    project = await get_owned_project(db, current_user.id, project_id)
    return await synthesis_service.build_matrix(db, project)


@router.post("/projects/{project_id}/synthesis/parameters", status_code=201)
async def add_parameter(project_id: str, data: ParameterCreate, current_user: CurrentUser, db: DB):
    project = await get_owned_project(db, current_user.id, project_id)
    param = await synthesis_service.add_parameter(
        db, project, data.name, data.type, data.description
    )
    return {"parameter": param.to_dict()}


@router.delete("/synthesis/parameters/{parameter_id}")
async def delete_parameter(parameter_id: str, current_user: CurrentUser, db: DB):
    param = await db.scalar(
        select(SynthesisParameter)
        .join(Project, SynthesisParameter.project_id == Project.id)
        .where(SynthesisParameter.id == parameter_id, Project.user_id == current_user.id)
    )
    if not param:
        raise HTTPException(status_code=404, detail="Parameter not found")
    await db.delete(param)
    await db.commit()
    return {"message": "Parameter deleted"}


@router.put("/projects/{project_id}/synthesis/values")
async def set_cell_value(project_id: str, data: CellValueUpdate, current_user: CurrentUser, db: DB):
    project = await get_owned_project(db, current_user.id, project_id)
    try:
        cell = await synthesis_service.set_cell_value(
            db, project, data.data_source_id, data.parameter_id, data.value
        )
    except SynthesisError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)
    return {"value": cell_dict(cell)}


@router.get("/projects/{project_id}/synthesis/timeline")
async def get_timeline(
    project_id: str, current_user: CurrentUser, db: DB, parameter: Optional[str] = None
):
    project = await get_owned_project(db, current_user.id, project_id)
    return await synthesis_service.timeline(db, project, parameter)
