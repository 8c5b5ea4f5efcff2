"""File and URL intake, source listing, and the summary chain."""

import pytest
from sqlalchemy import select

from config import Config
from models_async import STATUS_FAILED, DataSource, Project, User
from services import registry
from services.extraction import TextExtractor
from services.ingestion import IngestionPipeline
from services.web_scraper import ScrapedPage, ScrapeError

pytestmark = pytest.mark.asyncio

LONG_TEXT = (
    b"Community solar programs expanded in 2022, with participation rising among "
    b"low-income households after new state incentives were introduced."
)


async def _upload(client, headers, project_id, name="notes.txt", data=LONG_TEXT, mime="text/plain"):
    return await client.post(
        "/upload",
        data={"projectId": project_id},
        files={"file": (name, data, mime)},
        headers=headers,
    )


@pytest.fixture
def fake_scrape(monkeypatch):
    pages = {}

    def _scrape(url):
        if url not in pages:
            raise ScrapeError("HTTP 404: Not Found")
        return pages[url]

    monkeypatch.setattr(registry.ingestion_pipeline, "_scrape", _scrape)
    return pages


# ── POST /upload ──────────────────────────────────────────────────────────────

async def test_upload_text_file(client, auth_headers, project_id, fake_llm, isolated_storage):
    res = await _upload(client, auth_headers, project_id, name="field notes.txt")
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["dataSource"]["type"] == "txt"
    assert body["dataSource"]["status"] == "processed"

    res = await client.get(f"/sources/{body['dataSource']['id']}", headers=auth_headers)
    source = res.json()["dataSource"]
    assert source["name"] == "field notes.txt"
    assert "/static/uploads/documents/" in source["content_url"]
    assert source["content_url"].endswith("_field_notes.txt")
    assert source["metadata"]["originalName"] == "field notes.txt"
    assert source["metadata"]["size"] == len(LONG_TEXT)
    assert isolated_storage.list_buckets() == ["documents"]


async def test_upload_builds_summary_chain(client, auth_headers, project_id, fake_llm):
    res = await _upload(client, auth_headers, project_id)
    source_id = res.json()["dataSource"]["id"]

    res = await client.get(f"/sources/{source_id}", headers=auth_headers)
    summaries = res.json()["dataSource"]["summaries"]
    assert [s["level"] for s in summaries] == ["sentence", "paragraph", "full"]
    assert [s["content"] for s in summaries] == ["summary 1", "summary 2", "summary 3"]
    assert summaries[0]["parent_id"] is None
    assert summaries[1]["parent_id"] == summaries[0]["id"]
    assert summaries[2]["parent_id"] == summaries[1]["id"]

    # each level summarises the previous one
    assert fake_llm.calls[0]["messages"][1]["content"].endswith(LONG_TEXT.decode())
    assert fake_llm.calls[1]["messages"][1]["content"].endswith("summary 1")
    assert fake_llm.calls[0]["model"] == Config.SUMMARY_MODEL


async def test_upload_short_text_skips_summaries(client, auth_headers, project_id, fake_llm):
    res = await _upload(client, auth_headers, project_id, data=b"too short")
    assert res.json()["dataSource"]["status"] == "processed"
    assert fake_llm.calls == []


async def test_summary_failure_keeps_source_processed(client, auth_headers, project_id, fake_llm):
    fake_llm.fail_summaries_after = 1
    res = await _upload(client, auth_headers, project_id)
    assert res.status_code == 200
    assert res.json()["dataSource"]["status"] == "processed"

    res = await client.get(f"/sources/{res.json()['dataSource']['id']}", headers=auth_headers)
    assert [s["level"] for s in res.json()["dataSource"]["summaries"]] == ["sentence"]


async def test_upload_audio_is_transcribed(client, auth_headers, project_id, fake_llm):
    res = await _upload(client, auth_headers, project_id, name="interview.mp3", data=b"ID3fake", mime="audio/mpeg")
    body = res.json()["dataSource"]
    assert body["type"] == "audio"
    assert body["status"] == "processed"
    assert fake_llm.transcript in fake_llm.calls[0]["messages"][1]["content"]


async def test_upload_pptx_without_partition_key(client, auth_headers, project_id, fake_llm, monkeypatch):
    monkeypatch.setattr(Config, "UNSTRUCTURED_API_KEY", None)
    mime = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    res = await _upload(client, auth_headers, project_id, name="deck.pptx", data=b"PK\x03\x04", mime=mime)
    assert res.status_code == 200
    assert res.json()["dataSource"]["type"] == "pptx"
    # the placeholder text is long enough to be summarised
    prompt = fake_llm.calls[0]["messages"][1]["content"]
    assert "[Document uploaded but text extraction failed:" in prompt


async def test_upload_missing_fields(client, auth_headers, project_id):
    res = await client.post("/upload", data={"projectId": project_id}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Project ID and file are required"

    res = await client.post(
        "/upload", files={"file": ("a.txt", b"x", "text/plain")}, headers=auth_headers
    )
    assert res.status_code == 400


async def test_upload_unknown_project(client, auth_headers):
    res = await _upload(client, auth_headers, "no-such-project")
    assert res.status_code == 404


async def test_upload_too_large(client, auth_headers, project_id, monkeypatch):
    monkeypatch.setattr(Config, "MAX_UPLOAD_BYTES", 10)
    res = await _upload(client, auth_headers, project_id)
    assert res.status_code == 413


async def test_upload_unsupported_mime(client, auth_headers, project_id, fake_llm):
    res = await _upload(client, auth_headers, project_id, name="photo.png", data=b"\x89PNG", mime="image/png")
    assert res.status_code == 500
    assert res.json()["detail"] == "Failed to upload file"

    res = await client.get(f"/projects/{project_id}/sources", headers=auth_headers)
    assert res.json()["dataSources"] == []


# ── POST /upload/url ──────────────────────────────────────────────────────────

async def test_add_url(client, auth_headers, project_id, fake_llm, fake_scrape):
    url = "https://example.org/reports/solar"
    fake_scrape[url] = ScrapedPage(
        url=url,
        title="Solar Outlook",
        text="Solar generation grew 24 percent year over year according to the grid operator. " * 3,
        metadata={"originalUrl": url, "author": "Grid Desk"},
    )
    res = await client.post("/upload/url", json={"projectId": project_id, "url": url}, headers=auth_headers)
    assert res.status_code == 200
    body = res.json()["dataSource"]
    assert body["type"] == "url"
    assert body["name"] == "Solar Outlook"
    assert body["status"] == "processed"
    assert body["extractedLength"] == len(fake_scrape[url].text)
    assert "web content" in fake_llm.calls[0]["messages"][0]["content"]


async def test_add_url_duplicate(client, auth_headers, project_id, fake_llm, fake_scrape):
    url = "https://example.org/a"
    fake_scrape[url] = ScrapedPage(url=url, title="A", text="x" * 200, metadata={})
    first = await client.post("/upload/url", json={"projectId": project_id, "url": url}, headers=auth_headers)

    res = await client.post("/upload/url", json={"projectId": project_id, "url": url}, headers=auth_headers)
    assert res.status_code == 409
    body = res.json()
    assert body["detail"] == "This URL has already been added to the project"
    assert body["existingSource"] == {"id": first.json()["dataSource"]["id"], "name": "A"}


async def test_add_url_validation(client, auth_headers, project_id):
    res = await client.post("/upload/url", json={"projectId": project_id}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Project ID and URL are required"

    res = await client.post("/upload/url", json={"projectId": project_id, "url": "not a url"}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid URL format"


async def test_add_url_fetch_failure(client, auth_headers, project_id, fake_scrape):
    res = await client.post(
        "/upload/url", json={"projectId": project_id, "url": "https://example.org/missing"},
        headers=auth_headers,
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "Failed to fetch URL: HTTP 404: Not Found"


async def test_add_url_without_content(client, auth_headers, project_id, fake_scrape):
    url = "https://example.org/empty"
    fake_scrape[url] = ScrapedPage(url=url, title="Empty", text="Just a title", metadata={})
    res = await client.post("/upload/url", json={"projectId": project_id, "url": url}, headers=auth_headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Could not extract meaningful content from this URL"


# ── Listing / reading / deleting ──────────────────────────────────────────────

async def test_list_sources_with_status_filter(client, auth_headers, project_id, fake_llm):
    await _upload(client, auth_headers, project_id, name="one.txt")
    await _upload(client, auth_headers, project_id, name="two.txt")

    res = await client.get(f"/projects/{project_id}/sources", headers=auth_headers)
    assert len(res.json()["dataSources"]) == 2

    res = await client.get(f"/projects/{project_id}/sources?status=failed", headers=auth_headers)
    assert res.json()["dataSources"] == []

    res = await client.get(f"/projects/{project_id}/sources?status=bogus", headers=auth_headers)
    assert res.status_code == 400


async def test_source_is_private(client, auth_headers, other_headers, project_id, fake_llm):
    res = await _upload(client, auth_headers, project_id)
    source_id = res.json()["dataSource"]["id"]

    assert (await client.get(f"/sources/{source_id}", headers=other_headers)).status_code == 404
    assert (await client.delete(f"/sources/{source_id}", headers=other_headers)).status_code == 404


async def test_delete_source(client, auth_headers, project_id, fake_llm):
    res = await _upload(client, auth_headers, project_id)
    source_id = res.json()["dataSource"]["id"]

    res = await client.delete(f"/sources/{source_id}", headers=auth_headers)
    assert res.status_code == 200
    assert (await client.get(f"/sources/{source_id}", headers=auth_headers)).status_code == 404


async def test_unexpected_failure_marks_source_failed(db_session, fake_llm):
    class _ExplodingSummarizer:
        async def generate_summaries(self, db, data_source_id, content, kind="document"):
            raise RuntimeError("boom")

    user = User(name="U", email="u@example.com", password_hash="x")
    db_session.add(user)
    await db_session.commit()
    project = Project(user_id=user.id, name="P")
    db_session.add(project)
    await db_session.commit()

    project_id = project.id
    pipeline = IngestionPipeline(
        registry.storage_service, TextExtractor(registry.llm_service), _ExplodingSummarizer()
    )
    with pytest.raises(RuntimeError):
        await pipeline.ingest_file(
            db_session, user.id, project, "n.txt", "text/plain",
            b"Enough text here to trigger the summary chain for this data source.",
        )

    source = await db_session.scalar(select(DataSource).where(DataSource.project_id == project_id))
    await db_session.refresh(source)
    assert source.status == STATUS_FAILED
