"""Project CRUD and ownership checks."""

import pytest

pytestmark = pytest.mark.asyncio


async def test_create_and_list_projects(client, auth_headers):
    res = await client.post("/projects", json={"name": "  Coral reefs  "}, headers=auth_headers)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["project"]["name"] == "Coral reefs"
    assert body["project"]["description"] is None

    await client.post("/projects", json={"name": "Wind farms"}, headers=auth_headers)

    res = await client.get("/projects", headers=auth_headers)
    assert res.status_code == 200
    names = [p["name"] for p in res.json()["projects"]]
    assert sorted(names) == ["Coral reefs", "Wind farms"]


async def test_create_project_requires_name(client, auth_headers):
    res = await client.post("/projects", json={"name": "   "}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Project name is required"


async def test_get_project(client, auth_headers, project_id):
    res = await client.get(f"/projects/{project_id}", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["project"]["description"] == "Grid studies"


async def test_other_user_cannot_see_project(client, project_id, other_headers):
    res = await client.get(f"/projects/{project_id}", headers=other_headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "Project not found"

    res = await client.get("/projects", headers=other_headers)
    assert res.json()["projects"] == []


async def test_delete_project_removes_sources(client, auth_headers, project_id, fake_llm):
    await client.post(
        "/upload",
        data={"projectId": project_id},
        files={"file": ("notes.txt", b"Offshore wind capacity doubled between 2019 and 2023 in the North Sea.", "text/plain")},
        headers=auth_headers,
    )

    res = await client.delete(f"/projects/{project_id}", headers=auth_headers)
    assert res.status_code == 200

    res = await client.get(f"/projects/{project_id}", headers=auth_headers)
    assert res.status_code == 404
    res = await client.get(f"/projects/{project_id}/sources", headers=auth_headers)
    assert res.status_code == 404


async def test_delete_project_cascades_rows(client, auth_headers, project_id, fake_llm, db_session):
    from sqlalchemy import func, select
    from models_async import DataSource, Summary

    await client.post(
        "/upload",
        data={"projectId": project_id},
        files={"file": ("cascade.txt", b"Battery storage costs fell sharply across utility-scale deployments last year.", "text/plain")},
        headers=auth_headers,
    )
    assert await db_session.scalar(select(func.count()).select_from(Summary)) == 3

    await client.delete(f"/projects/{project_id}", headers=auth_headers)

    assert await db_session.scalar(select(func.count()).select_from(DataSource)) == 0
    assert await db_session.scalar(select(func.count()).select_from(Summary)) == 0
