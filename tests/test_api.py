import time
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from api.app import create_app
from writing_assistant.sources import SourcesConfig, create_db_engine
from writing_assistant.sources.projects import ChatMessageModel, ManuscriptModel, ProjectModel

OWNER = {"X-User-Id": "user-1"}
INTRUDER = {"X-User-Id": "user-2"}


@pytest.fixture
def client(tmp_path):
    db_url = f"sqlite+pysqlite:///{tmp_path / 'api.db'}"
    config = SourcesConfig(database_url=db_url, storage_root=str(tmp_path / "data"))
    app = create_app(config)

    engine = create_db_engine(db_url)
    with Session(engine) as session:
        session.add(ProjectModel(id="proj-1", user_id="user-1", title="Novel"))
        session.add(ManuscriptModel(id="ms-1", project_id="proj-1", word_count=2_000))
        session.add(
            ChatMessageModel(
                id="msg-1",
                session_id="chat-1",
                project_id="proj-1",
                role="assistant",
                content="Keep the ghost ambiguous.",
                is_starred=True,
                created_at=datetime(2024, 1, 1),
            )
        )
        session.commit()
    engine.dispose()

    with TestClient(app) as test_client:
        yield test_client


def _wait_for_status(client, material_id, timeout=10.0):
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/sources/{material_id}", headers=OWNER).json()
        if body["status"] in ("completed", "failed") or time.monotonic() > deadline:
            return body
        time.sleep(0.05)


def _create_source(client, filename="Ghost Stories.txt", data=b"It was late.\nThe ghost wrote all night\n"):
    resp = client.post(
        "/projects/proj-1/sources/upload-slot",
        json={"filename": filename, "mime_type": "text/plain", "size_bytes": len(data)},
        headers=OWNER,
    )
    assert resp.status_code == 201
    material_id = resp.json()["material_id"]
    resp = client.put(
        f"/sources/{material_id}/content",
        files={"file": (filename, data, "text/plain")},
        headers=OWNER,
    )
    assert resp.status_code == 204
    return material_id


def test_health(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_full_source_lifecycle(client):
    material_id = _create_source(client)

    resp = client.post(f"/sources/{material_id}/process", headers=OWNER)
    assert resp.status_code == 202
    assert resp.json() == {"material_id": material_id, "status": "accepted"}

    body = _wait_for_status(client, material_id)
    assert body["status"] == "completed"
    assert body["word_count"] == 8
    assert body["title"] == "Ghost Stories"
    assert "extracted_text" not in body

    listed = client.get("/projects/proj-1/sources", headers=OWNER).json()
    assert [m["id"] for m in listed] == [material_id]

    hits = client.get("/projects/proj-1/sources/search", params={"query": "GHOST"}, headers=OWNER).json()
    assert hits[0]["material_id"] == material_id
    assert hits[0]["matches"][0]["line_number"] == 2

    budget = client.get("/projects/proj-1/context-budget", headers=OWNER).json()
    assert budget["manuscript_words"] == 2_000
    assert budget["available_for_sources"] == 595_000
    assert budget["active_source_words"] == 8

    context = client.get("/projects/proj-1/context", params={"session_id": "chat-1"}, headers=OWNER).json()
    assert [s["material_id"] for s in context["sources"]] == [material_id]
    assert context["starred_messages"][0]["content"] == "Keep the ghost ambiguous."
    assert "--- Ghost Stories (8 words) ---" in context["prompt"]

    assert client.post(f"/sources/{material_id}/toggle", headers=OWNER).json() == {"is_active": False}
    context = client.get("/projects/proj-1/context", headers=OWNER).json()
    assert context["sources"] == []

    assert client.delete(f"/sources/{material_id}", headers=OWNER).status_code == 204
    assert client.get(f"/sources/{material_id}", headers=OWNER).status_code == 404
    assert client.get("/projects/proj-1/sources", headers=OWNER).json() == []


def test_unsupported_upload_is_rejected(client):
    resp = client.post(
        "/projects/proj-1/sources/upload-slot",
        json={"filename": "cover.png", "mime_type": "image/png", "size_bytes": 10},
        headers=OWNER,
    )
    assert resp.status_code == 400
    assert "Invalid file type" in resp.json()["detail"]


def test_ownership_errors_map_to_status_codes(client):
    material_id = _create_source(client)
    assert client.get("/projects/proj-1/sources", headers=INTRUDER).status_code == 403
    assert client.get("/projects/nope/sources", headers=OWNER).status_code == 404
    assert client.post(f"/sources/{material_id}/process", headers=INTRUDER).status_code == 403
    assert client.get("/sources/unknown", headers=OWNER).status_code == 404


def test_blank_search_query_is_rejected(client):
    resp = client.get("/projects/proj-1/sources/search", params={"query": "  "}, headers=OWNER)
    assert resp.status_code == 400


def test_missing_user_header_is_rejected(client):
    assert client.get("/projects/proj-1/sources").status_code == 422
