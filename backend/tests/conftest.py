"""pytest configuration — sets required env vars before any app module is imported."""

import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="nilavu-tests-")

# Must be set before importing main/routers/auth (raises SystemExit if missing)
os.environ.setdefault("JWT_SECRET", "test-only-secret-do-not-use-in-prod")
# File-backed SQLite so every pooled connection sees the same schema
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["UPLOAD_FOLDER"] = os.path.join(_TMP, "uploads")
os.environ["RATELIMIT_ENABLED"] = "false"
os.environ["S3_ENABLED"] = "false"
os.environ["UNSTRUCTURED_API_KEY"] = ""
os.environ["AI_PROVIDER"] = "openai"

import pytest
from httpx import AsyncClient, ASGITransport


class FakeLLM:
    """Stands in for LLMService.complete / transcribe; records every call."""

    def __init__(self):
        self.calls = []
        self.analysis = "{}"
        self.transcript = "Transcribed interview about renewable energy adoption in rural areas."
        self.fail_summaries_after = None

    async def complete(self, messages, model=None, temperature=0.3, json_mode=False):
        self.calls.append({"messages": messages, "model": model, "json_mode": json_mode})
        if json_mode:
            return self.analysis
        summary_calls = [c for c in self.calls if not c["json_mode"]]
        if self.fail_summaries_after is not None and len(summary_calls) > self.fail_summaries_after:
            raise RuntimeError("provider unavailable")
        return f"summary {len(summary_calls)}"

    async def transcribe(self, data, filename, content_type):
        return self.transcript


@pytest.fixture
async def schema():
    from database import engine
    from models_async import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(schema):
    from database import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def client(schema):
    """Return an AsyncClient wired to the FastAPI app with a fresh schema."""
    # Import here so env vars are already set
    from main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def isolated_storage(monkeypatch, tmp_path):
    """Point the shared storage service at a per-test local folder."""
    from services import registry
    from services.storage import LocalStorage

    backend = LocalStorage(str(tmp_path / "uploads"), "documents", "http://test")
    monkeypatch.setattr(registry.storage_service, "backend", backend)
    return backend


@pytest.fixture
def fake_llm(monkeypatch):
    from services import registry

    fake = FakeLLM()
    monkeypatch.setattr(registry.llm_service, "complete", fake.complete)
    monkeypatch.setattr(registry.llm_service, "transcribe", fake.transcribe)
    return fake


async def signup(client, email="test@example.com", password="Password123!", name="Test User"):
    return await client.post("/auth/signup", json={"name": name, "email": email, "password": password})


@pytest.fixture
async def auth_headers(client):
    res = await signup(client)
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
async def other_headers(client):
    res = await signup(client, email="other@example.com", name="Other User")
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture
async def project_id(client, auth_headers):
    res = await client.post(
        "/projects", json={"name": "Energy transition", "description": "Grid studies"},
        headers=auth_headers,
    )
    return res.json()["project"]["id"]
