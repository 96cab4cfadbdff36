"""Integration test fixtures — a fake embedding service served in-process.

The fake is a small FastAPI app mounted on ``httpx.ASGITransport``, so the
real RemoteClient speaks real HTTP (multipart bodies, status codes, JSON)
without opening a socket.
"""

from __future__ import annotations

import dataclasses
import itertools
from dataclasses import dataclass, field

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response

from imgsearch_console.config import ConsoleConfig
from imgsearch_console.intake import InMemoryPreviewStore
from imgsearch_console.session import Console

FAKE_BASE_URL = "http://fake-remote"


@dataclass
class FakeJob:
    job_id: str
    total: int
    polls: int = 0
    fail_with: str | None = None


@dataclass
class FakeRemoteState:
    """Mutable backend state shared between the app and the tests."""

    images: dict[str, bytes] = field(default_factory=dict)
    jobs: dict[str, FakeJob] = field(default_factory=dict)
    upload_requests: int = 0
    fail_next_search: bool = False
    fail_training_with: str | None = None
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def status_for(self, job: FakeJob) -> dict:
        """Scripted lifecycle: one queued poll, one half-way poll, then done."""
        job.polls += 1
        if job.polls == 1:
            return {"status": "queued", "progress": 0, "processed": 0, "total": job.total}
        if job.polls == 2:
            half = job.total // 2
            pct = 100 * half / job.total if job.total else 0
            return {"status": "running", "progress": pct, "processed": half, "total": job.total}
        if job.fail_with is not None:
            return {"status": "error", "message": job.fail_with, "processed": 0, "total": job.total}
        return {
            "status": "done",
            "progress": 100,
            "processed": job.total,
            "total": job.total,
            "message": f"Indexed {job.total} images",
        }


def create_fake_remote(state: FakeRemoteState) -> FastAPI:
    app = FastAPI(title="fake-embedding-service")

    @app.post("/upload")
    async def upload(file: list[UploadFile] = File(...)) -> dict:
        state.upload_requests += 1
        for f in file:
            state.images[f"/data/images/{f.filename}"] = await f.read()
        return {"message": f"{len(file)} file(s) uploaded"}

    @app.post("/start_train")
    async def start_train() -> dict:
        job_id = f"job-{next(state._ids)}"
        state.jobs[job_id] = FakeJob(
            job_id=job_id,
            total=len(state.images),
            fail_with=state.fail_training_with,
        )
        return {"job_id": job_id}

    @app.get("/train_status/{job_id}")
    async def train_status(job_id: str) -> dict:
        job = state.jobs.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Unknown job")
        return state.status_for(job)

    @app.post("/compare_image")
    async def compare_image(file: UploadFile = File(...)) -> list[dict]:
        if state.fail_next_search:
            state.fail_next_search = False
            raise HTTPException(status_code=500, detail="Index not trained yet")
        query = await file.read()
        hits = []
        for i, (path, content) in enumerate(sorted(state.images.items())):
            score = 1.0 if content == query else 0.5 / (i + 1)
            hits.append({"path": path, "score": score})
        return hits

    @app.get("/image")
    async def image(path: str) -> Response:
        content = state.images.get(path)
        if content is None:
            raise HTTPException(status_code=404, detail="Image not found")
        return Response(content=content, media_type="application/octet-stream")

    return app


@pytest.fixture
def fake_state() -> FakeRemoteState:
    return FakeRemoteState()


@pytest.fixture
def fake_transport(fake_state: FakeRemoteState) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=create_fake_remote(fake_state))


@pytest.fixture
def fast_config() -> ConsoleConfig:
    return dataclasses.replace(
        ConsoleConfig.defaults(api_base_url=FAKE_BASE_URL),
        poll_interval_seconds=0.01,
        metrics_interval_seconds=0.01,
        notification_ttl_seconds=0.5,
    )


@pytest.fixture
def fast_env(monkeypatch):
    """Env overrides picked up by ConsoleConfig.from_env() inside the CLI."""
    monkeypatch.setenv("IMGSEARCH_API_BASE_URL", FAKE_BASE_URL)
    monkeypatch.setenv("IMGSEARCH_POLL_INTERVAL_SECONDS", "0.01")
    monkeypatch.setenv("IMGSEARCH_METRICS_INTERVAL_SECONDS", "0.01")


@pytest.fixture
def preview_store() -> InMemoryPreviewStore:
    return InMemoryPreviewStore()


@pytest_asyncio.fixture
async def console(fast_config, fake_transport, preview_store):
    async with Console(fast_config, transport=fake_transport, preview_store=preview_store) as c:
        yield c
