"""
routers/projects.py — CRUD for research projects.
"""

from fastapi import APIRouter, HTTPException
from sqlalchemy import select

from dependencies import CurrentUser, DB
from logging_config import get_logger
from models_async import Project
from schemas import ProjectCreate

logger = get_logger(__name__)
router = APIRouter(tags=["projects"])


async def get_owned_project(db, user_id: int, project_id: str) -> Project:
    """Load a project the user owns, else 404."""
    project = await db.scalar(
        select(Project).where(Project.id == project_id, Project.user_id == user_id)
    )
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("/projects")
async def list_projects(current_user: CurrentUser, db: DB):
    result = await db.execute(
        select(Project)
        .where(Project.user_id == current_user.id)
        .order_by(Project.created_at.desc())
    )
    return {"projects": [p.to_dict() for p in result.scalars().all()]}


@router.post("/projects", status_code=201)
async def create_project(data: ProjectCreate, current_user: CurrentUser, db: DB):
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Project name is required")

    project = Project(
        user_id=current_user.id,
        name=name,
        description=(data.description or "").strip() or None,
    )
    db.add(project)
    await db.commit()
    await db.refresh(project)
    logger.info("project.created", project_id=project.id, user_id=current_user.id)
    return {"success": True, "project": project.to_dict()}


@router.get("/projects/{project_id}")
async def get_project(project_id: str, current_user: CurrentUser, db: DB):
    project = await get_owned_project(db, current_user.id, project_id)
    return {"project": project.to_dict()}


@router.delete("/projects/{project_id}")
async def delete_project(project_id: str, current_user: CurrentUser, db: DB):
    project = await get_owned_project(db, current_user.id, project_id)
    await db.delete(project)
    await db.commit()
    logger.info("project.deleted", project_id=project_id, user_id=current_user.id)
    return {"message": "Project deleted"}
