import uuid
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from app.db import get_app_db
from app.db_handlers import JobDBHandler, UserDBHandler
from app.dependencies.auth import get_current_user
from app.dependencies.services import (
    get_capture_orchestrator,
    get_evidence_service,
    get_suggestion_service,
    get_usage_gate,
)
from app.exceptions import LimitReached, NotFoundError, UpstreamError
from app.services.capture_orchestrator import CaptureOutcome
from app.utils.auth import create_access_token
from main import create_app
from tests.conftest import make_evidence


async def _no_db():
    yield None


@pytest.fixture
def user():
    return SimpleNamespace(id=uuid.uuid4(), username="jordan", created_at=datetime(2024, 11, 1, tzinfo=UTC))


@pytest.fixture
def orchestrator():
    return MagicMock()


@pytest.fixture
def evidence_service():
    return MagicMock()


@pytest.fixture
def app(user, orchestrator, evidence_service):
    app_ = create_app()
    app_.dependency_overrides[get_app_db] = _no_db
    app_.dependency_overrides[get_current_user] = lambda: user
    app_.dependency_overrides[get_capture_orchestrator] = lambda: orchestrator
    app_.dependency_overrides[get_evidence_service] = lambda: evidence_service
    return app_


@pytest.fixture
def client(app) -> TestClient:
    # Not entered as a context manager: the lifespan would connect to the database
    return TestClient(app)


def test_capture_returns_created_events(client, orchestrator, user):
    event_id, entry_id = uuid.uuid4(), uuid.uuid4()
    orchestrator.capture_now = AsyncMock(
        return_value=CaptureOutcome(created_event_ids=[event_id], journal_entry_id=entry_id)
    )

    response = client.post(
        "/api/capture",
        json={"eventText": "They were late.", "referenceDate": "2024-11-23", "referenceTimeDescription": "at 6pm"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["createdEventIds"] == [str(event_id)]
    assert body["journalEntryId"] == str(entry_id)
    assert body["warnings"] == []
    kwargs = orchestrator.capture_now.await_args.kwargs
    assert orchestrator.capture_now.await_args.args[0] == user.id
    assert kwargs["reference_date"].isoformat() == "2024-11-23"


def test_unparseable_reference_date_is_ignored(client, orchestrator):
    orchestrator.capture_now = AsyncMock(return_value=CaptureOutcome(created_event_ids=[], journal_entry_id=None))

    response = client.post("/api/capture", json={"eventText": "text", "referenceDate": "next tuesday"})

    assert response.status_code == 200
    assert orchestrator.capture_now.await_args.kwargs["reference_date"] is None


def test_limit_reached_is_a_typed_403(client, orchestrator):
    orchestrator.capture_now = AsyncMock(
        side_effect=LimitReached(
            "Free plan limit reached (5 journal entries). Upgrade to Pro for unlimited entries.",
            tier="free",
            limit=5,
        )
    )

    response = client.post("/api/capture", json={"eventText": "text"})

    assert response.status_code == 403
    body = response.json()
    assert body["reason"] == "limit_reached"
    assert body["retryable"] is False
    assert body["tier"] == "free"


@pytest.mark.parametrize(
    "kind,status_code",
    [("auth", 401), ("rate_limit", 429), ("timeout", 504), ("invalid_output", 502), ("failure", 502)],
)
def test_upstream_errors_keep_their_kind(client, orchestrator, kind, status_code):
    orchestrator.capture_now = AsyncMock(side_effect=UpstreamError("upstream", kind=kind))

    response = client.post("/api/capture", json={"eventText": "text"})

    assert response.status_code == status_code
    assert response.json()["kind"] == kind
    assert response.json()["reason"] == "upstream_error"


def test_missing_token_is_401():
    app_ = create_app()
    app_.dependency_overrides[get_app_db] = _no_db

    response = TestClient(app_).post("/api/capture", json={"eventText": "text"})

    assert response.status_code == 401
    assert response.json()["reason"] == "unauthorized"


def test_capture_audio_multipart(client, orchestrator):
    orchestrator.capture_now = AsyncMock(return_value=CaptureOutcome(created_event_ids=[], journal_entry_id=None))
    evidence_a, evidence_b = uuid.uuid4(), uuid.uuid4()

    response = client.post(
        "/api/capture/audio",
        files={"audio": ("memo.webm", b"\x1a\x45\xdf\xa3", "audio/webm")},
        data={"referenceDate": "2024-11-23", "evidenceIds": f"{evidence_a},{evidence_b}"},
    )

    assert response.status_code == 200
    kwargs = orchestrator.capture_now.await_args.kwargs
    assert kwargs["audio"].data == b"\x1a\x45\xdf\xa3"
    assert kwargs["audio"].mime_type == "audio/webm"
    assert kwargs["evidence_ids"] == [evidence_a, evidence_b]


def test_capture_audio_rejects_bad_evidence_ids(client, orchestrator):
    orchestrator.capture_now = AsyncMock()

    response = client.post(
        "/api/capture/audio",
        files={"audio": ("memo.webm", b"\x1a", "audio/webm")},
        data={"evidenceIds": "not-a-uuid"},
    )

    assert response.status_code == 400
    assert response.json()["reason"] == "validation_error"
    orchestrator.capture_now.assert_not_awaited()


def test_journal_submit_is_accepted(client, orchestrator):
    orchestrator.submit_journal = AsyncMock(
        return_value={"journalEntryId": str(uuid.uuid4()), "jobId": str(uuid.uuid4()), "message": "Processing started"}
    )

    response = client.post("/api/journal/submit", json={"eventText": "They were late.", "evidenceIds": []})

    assert response.status_code == 202
    assert set(response.json()) == {"journalEntryId", "jobId", "message"}


def test_job_status_is_owner_scoped(client, user, monkeypatch):
    job_id = uuid.uuid4()
    job = MagicMock()
    job.to_dict.return_value = {
        "id": str(job_id),
        "type": "journal_extraction",
        "status": "completed",
        "journal_entry_id": None,
        "attempts": 1,
        "created_at": "2024-11-23T18:00:00+00:00",
        "started_at": "2024-11-23T18:00:01+00:00",
        "completed_at": "2024-11-23T18:00:09+00:00",
        "error_message": None,
        "result_summary": {"events_created": 1},
    }
    handler = MagicMock()
    handler.get_owned = AsyncMock(side_effect=lambda jid, uid, db=None: job if (jid, uid) == (job_id, user.id) else None)
    monkeypatch.setattr("app.dependencies.ownership.JobDBHandler", lambda: handler)

    mine = client.get(f"/api/jobs/{job_id}")
    other = client.get(f"/api/jobs/{uuid.uuid4()}")

    assert mine.status_code == 200
    assert mine.json()["status"] == "completed"
    assert mine.json()["resultSummary"] == {"events_created": 1}
    assert other.status_code == 404
    assert other.json()["reason"] == "not_found"


def test_voice_extraction_preview(client, orchestrator):
    preview = MagicMock()
    preview.preview.return_value = {"events": [], "action_items": [], "_usage": None, "_cost": None}
    orchestrator.preview_extraction = AsyncMock(return_value=preview)

    response = client.post("/api/voice-extraction", json={"transcript": "They were late.", "referenceDate": "2024-11-23"})

    assert response.status_code == 200
    assert "_usage" in response.json()


def test_audio_container_follows_preference_order(client):
    response = client.get(
        "/api/capture/audio-container",
        params=[("supported", "audio/mp4"), ("supported", "audio/webm;codecs=opus")],
    )

    assert response.status_code == 200
    assert response.json()["mimeType"] == "audio/webm;codecs=opus"
    assert response.json()["preference"][0] == "audio/webm;codecs=opus"


def test_audio_container_falls_back_to_recorder_default(client):
    response = client.get("/api/capture/audio-container", params={"supported": "audio/x-unknown"})

    assert response.status_code == 200
    assert response.json()["mimeType"] is None


def test_evidence_list_presents_recordings_as_documents(client, evidence_service, user):
    evidence_service.list_evidence = AsyncMock(
        return_value=[
            make_evidence(user.id, source_type="recording", mime_type="audio/webm", original_filename="memo.webm"),
            make_evidence(user.id),
        ]
    )

    response = client.get("/api/evidence")

    assert response.status_code == 200
    assert [e["sourceType"] for e in response.json()] == ["document", "photo"]


def test_foreign_evidence_detail_is_404(client, evidence_service):
    evidence_service.get_owned_evidence = AsyncMock(side_effect=NotFoundError("Evidence not found"))

    response = client.get(f"/api/evidence/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["reason"] == "not_found"


def test_suggested_evidence_route(app, client):
    service = MagicMock()
    service.suggest_for_events = AsyncMock(return_value={"suggestions": [], "metadata": {}})
    app.dependency_overrides[get_suggestion_service] = lambda: service

    response = client.post("/api/events/suggested-evidence", json={"eventIds": ["a", "b"]})

    assert response.status_code == 200
    assert service.suggest_for_events.await_args.args[1] == ["a", "b"]


def test_usage_route(app, client):
    gate = MagicMock()
    gate.get_usage = AsyncMock(
        return_value={
            "tier": "free",
            "journal_entries": 2,
            "evidence_uploads": 0,
            "limits": {"journal_entries": 5, "evidence_uploads": 10, "can_export": False},
        }
    )
    app.dependency_overrides[get_usage_gate] = lambda: gate

    response = client.get("/api/users/me/usage")

    assert response.status_code == 200
    assert response.json()["tier"] == "free"


def test_job_websocket_requires_a_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/api/ws/jobs/{uuid.uuid4()}"):
            pass


def _ws_handlers(app, user, job=None):
    users = MagicMock()
    users.get_user_by_username = AsyncMock(return_value=user)
    jobs = MagicMock()
    jobs.get_owned = AsyncMock(return_value=job)
    app.dependency_overrides[UserDBHandler] = lambda: users
    app.dependency_overrides[JobDBHandler] = lambda: jobs
    return jobs


def test_job_websocket_rejects_token_for_a_replaced_account(app, client, user):
    jobs = _ws_handlers(app, user)
    token = create_access_token(user.username, user_id=uuid.uuid4())

    with client.websocket_connect(f"/api/ws/jobs/{uuid.uuid4()}?token={token}") as ws:
        frame = ws.receive_json()

    assert frame["type"] == "error"
    assert frame["message"] == "Could not validate credentials"
    jobs.get_owned.assert_not_awaited()


def test_job_websocket_streams_status_until_terminal(app, client, user):
    job_id = uuid.uuid4()
    job = SimpleNamespace(
        status="completed",
        attempts=1,
        is_terminal=True,
        to_dict=lambda: {
            "id": str(job_id),
            "type": "journal_extraction",
            "status": "completed",
            "attempts": 1,
            "created_at": "2024-11-23T18:00:00+00:00",
            "completed_at": "2024-11-23T18:00:09+00:00",
            "result_summary": {"events_created": 1},
        },
    )
    jobs = _ws_handlers(app, user, job)
    token = create_access_token(user.username, user_id=user.id)

    with client.websocket_connect(f"/api/ws/jobs/{job_id}?token={token}") as ws:
        frame = ws.receive_json()

    assert frame["type"] == "job_status"
    assert frame["job"]["status"] == "completed"
    assert frame["job"]["resultSummary"] == {"events_created": 1}
    assert jobs.get_owned.await_args.args == (job_id, user.id)
