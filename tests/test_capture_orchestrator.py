import uuid
from datetime import UTC, date, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.exceptions import (
    InputValidationError,
    LimitReached,
    NotFoundError,
    ServiceUnavailable,
    UpstreamError,
)
from app.schemas import ExtractedEvent, SaveEventsRequest
from app.services.capture_orchestrator import CaptureOrchestratorService
from app.services.job_dispatcher import JournalExtractionRequested
from app.services.media_intake import AudioClip, ImageUpload
from tests.conftest import make_evidence, make_llm_response

INCIDENT = {
    "events": [
        {
            "type": "incident",
            "title": "Late exchange at school",
            "description": "Co-parent arrived 45 minutes late for the 6pm exchange.",
            "primary_timestamp": "2024-11-23T18:45:00",
            "timestamp_precision": "exact",
            "location": "Lincoln Elementary",
            "child_involved": True,
            "participants": {"primary": ["co-parent", "child"], "witnesses": ["teacher"], "professionals": []},
            "evidence_mentioned": [{"type": "text", "description": "Running late text", "status": "have"}],
            "custody_relevance": {
                "agreement_violation": True,
                "safety_concern": False,
                "welfare_impact": "moderate",
            },
        }
    ],
    "action_items": [{"priority": "high", "type": "document", "description": "Screenshot the text"}],
    "metadata": {"extraction_confidence": 0.85, "ambiguities": []},
}


@pytest.fixture
def orchestrator(fake_llm, persistence, open_gate):
    dispatcher = MagicMock()
    service = CaptureOrchestratorService(llm_client=fake_llm, dispatcher=dispatcher)
    service.gate = open_gate
    service.persistence = persistence

    service.context_loader.profile_handler = MagicMock()
    service.context_loader.profile_handler.get_by_user = AsyncMock(
        return_value=SimpleNamespace(speaker_name="Jordan", timezone="UTC")
    )
    service.context_loader.case_handler = MagicMock()
    service.context_loader.case_handler.get_latest_case = AsyncMock(return_value=None)

    service.journal_handler = MagicMock()
    service.journal_handler.create = AsyncMock(side_effect=lambda row: SimpleNamespace(id=uuid.uuid4(), **row))
    service.journal_handler.update_owned = AsyncMock(return_value=SimpleNamespace(id=uuid.uuid4()))
    service.journal_evidence_handler = MagicMock()
    service.journal_evidence_handler.attach_evidence = AsyncMock(return_value=[])
    service.job_handler = MagicMock()
    service.job_handler.create_job = AsyncMock(return_value={"id": str(uuid.uuid4())})
    service.job_handler.update_job_status = AsyncMock()

    service.evidence_service.gate = open_gate
    service.evidence_service.storage = MagicMock()
    service.evidence_service.storage.upload = AsyncMock(return_value={"Key": "ok"})
    service.evidence_service.evidence_handler = MagicMock()
    service.evidence_service.evidence_handler.create = AsyncMock(
        side_effect=lambda row: make_evidence(row["user_id"], **{k: v for k, v in row.items() if k != "user_id"})
    )
    return service


@pytest.mark.asyncio
async def test_end_to_end_incident_capture(orchestrator, fake_llm, persistence, user_id):
    fake_llm.generate_chat_completion.return_value = make_llm_response(INCIDENT)

    outcome = await orchestrator.capture_now(
        user_id,
        narrative_text="Pickup was supposed to be at 6pm at school. They showed up at 6:45.",
        reference_date=date(2024, 11, 23),
        reference_time_description="at 6pm",
    )

    assert len(outcome.created_event_ids) == 1
    assert outcome.journal_entry_id is not None
    assert outcome.warnings == []

    row = persistence.event_handler.batch_create.await_args.args[0][0]
    assert row["type"] == "incident"
    assert row["child_involved"] is True
    assert row["primary_timestamp"].date() == date(2024, 11, 23)
    assert (row["primary_timestamp"].hour, row["primary_timestamp"].minute) in {(18, 0), (18, 45)}
    assert row["welfare_impact"] != "none"
    assert row["user_id"] == user_id

    prompt = fake_llm.generate_chat_completion.await_args.kwargs["messages"][0]["content"]
    assert "Jordan" in prompt


@pytest.mark.asyncio
async def test_gate_runs_before_any_paid_call(orchestrator, fake_llm, user_id):
    orchestrator.gate.ensure_can_capture = AsyncMock(
        side_effect=LimitReached("Free plan limit reached", tier="free", limit=5)
    )

    with pytest.raises(LimitReached):
        await orchestrator.capture_now(
            user_id,
            narrative_text="Something happened.",
            audio=AudioClip(data=b"\x1a\x45\xdf\xa3", mime_type="audio/webm"),
        )

    fake_llm.transcribe_audio.assert_not_awaited()
    fake_llm.generate_chat_completion.assert_not_awaited()
    orchestrator.journal_handler.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_gate_also_covers_transcription_only(orchestrator, fake_llm, user_id):
    orchestrator.gate.ensure_can_capture = AsyncMock(side_effect=LimitReached("limit", tier="free", limit=5))

    with pytest.raises(LimitReached):
        await orchestrator.transcribe_only(user_id, AudioClip(data=b"abc", mime_type="audio/webm"))

    fake_llm.transcribe_audio.assert_not_awaited()


@pytest.mark.asyncio
async def test_audio_transcript_feeds_extraction(orchestrator, fake_llm, user_id):
    fake_llm.transcribe_audio.return_value = "  They were late for the exchange again.  "
    fake_llm.generate_chat_completion.return_value = make_llm_response(INCIDENT)

    await orchestrator.capture_now(
        user_id, audio=AudioClip(data=b"\x1a\x45\xdf\xa3", mime_type="audio/webm;codecs=opus")
    )

    assert fake_llm.transcribe_audio.await_args.args[1] == "audio.webm"
    messages = fake_llm.generate_chat_completion.await_args.kwargs["messages"]
    assert messages[1]["content"] == "They were late for the exchange again."


@pytest.mark.asyncio
async def test_silent_recording_is_rejected(orchestrator, fake_llm, user_id):
    fake_llm.transcribe_audio.return_value = "   "

    with pytest.raises(InputValidationError, match="No speech"):
        await orchestrator.capture_now(user_id, audio=AudioClip(data=b"\x00\x01", mime_type="audio/webm"))

    fake_llm.generate_chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_foreign_evidence_stops_capture_before_extraction(orchestrator, fake_llm, persistence, user_id):
    persistence.evidence_handler.get_owned_in_order = AsyncMock(return_value=[])

    with pytest.raises(NotFoundError):
        await orchestrator.capture_now(user_id, narrative_text="text", evidence_ids=[uuid.uuid4()])

    fake_llm.generate_chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_upstream_failure_persists_nothing(orchestrator, fake_llm, persistence, user_id):
    fake_llm.generate_chat_completion.return_value = make_llm_response("not json at all")

    with pytest.raises(UpstreamError):
        await orchestrator.capture_now(user_id, narrative_text="text")

    persistence.event_handler.batch_create.assert_not_awaited()
    orchestrator.journal_handler.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_child_failure_surfaces_as_warning(orchestrator, fake_llm, persistence, user_id):
    fake_llm.generate_chat_completion.return_value = make_llm_response(INCIDENT)
    persistence.participant_handler.batch_create = AsyncMock(side_effect=RuntimeError("participants down"))

    outcome = await orchestrator.capture_now(user_id, narrative_text="text")

    assert len(outcome.created_event_ids) == 1
    assert outcome.to_response()["warnings"][0]["step"] == "participants"


@pytest.mark.asyncio
async def test_images_are_merged_into_capture(orchestrator, fake_llm, persistence, user_id):
    image_payload = {
        "communications": [{"medium": "text", "summary": "Refused the swap"}],
        "db_suggestions": {"events": [{"title": "Swap refused"}], "evidence": []},
        "metadata": {},
    }
    fake_llm.generate_chat_completion.side_effect = [
        make_llm_response(INCIDENT),
        make_llm_response(image_payload),
    ]

    outcome = await orchestrator.capture_now(
        user_id,
        narrative_text="text",
        images=[ImageUpload(data=b"\x89PNG", mime_type="image/png")],
    )

    assert len(outcome.created_event_ids) == 2
    assert outcome.usage["total_tokens"] == 300
    persistence.communication_handler.batch_create.assert_awaited_once()


@pytest.mark.asyncio
async def test_capture_images_are_stored_and_linked_as_evidence(orchestrator, fake_llm, persistence, user_id):
    def screenshot(summary, evidence=()):
        return {
            "communications": [{"medium": "text", "summary": summary}],
            "db_suggestions": {"events": [{"title": summary}], "evidence": list(evidence)},
            "metadata": {},
        }

    fake_llm.generate_chat_completion.side_effect = [
        make_llm_response(INCIDENT),
        make_llm_response(screenshot("Refused the swap")),
        make_llm_response(screenshot("Confirmed pickup", [{"source_type": "text", "summary": "Pickup text"}])),
    ]

    outcome = await orchestrator.capture_now(
        user_id,
        narrative_text="text",
        images=[
            ImageUpload(data=b"\x89PNG", mime_type="image/png", filename="swap.png"),
            ImageUpload(data=b"\xff\xd8\xff", mime_type="image/jpeg", filename="pickup.jpg"),
        ],
    )

    uploads = orchestrator.evidence_service.storage.upload.await_args_list
    assert [c.args[0].rsplit("-", 1)[-1] for c in uploads] == ["swap.png", "pickup.jpg"]
    assert all(c.args[0].startswith(f"evidence/{user_id}/") for c in uploads)
    assert orchestrator.evidence_service.gate.ensure_can_upload_evidence.await_count == 2

    stored = orchestrator.evidence_service.evidence_handler.create.await_args_list
    stored_rows = [c.args[0] for c in stored]
    assert [r["source_type"] for r in stored_rows] == ["photo", "photo"]
    assert all(r["user_id"] == user_id for r in stored_rows)

    # 3 events x 2 stored images, the first image primary for each event
    assert len(outcome.created_event_ids) == 3
    assert outcome.linked_evidence_count == 6
    links = persistence.event_evidence_handler.create_links_skipping_existing.await_args.args[0]
    assert sum(1 for link in links if link["is_primary"]) == 3

    stored_paths = [r["storage_path"] for r in stored_rows]
    communications = persistence.communication_handler.batch_create.await_args.args[0]
    assert [c["summary"] for c in communications] == ["Refused the swap", "Confirmed pickup"]
    linked_ids = [c["evidence_id"] for c in communications]
    assert linked_ids[0] != linked_ids[1] and None not in linked_ids

    suggestion = persistence.evidence_handler.batch_create.await_args.args[0][0]
    assert suggestion["storage_path"] == stored_paths[1]
    orchestrator.journal_evidence_handler.attach_evidence.assert_awaited_once()


@pytest.mark.asyncio
async def test_evidence_limit_stops_image_capture_before_extraction(orchestrator, fake_llm, persistence, user_id):
    orchestrator.evidence_service.gate.ensure_can_upload_evidence = AsyncMock(
        side_effect=LimitReached("Free plan limit reached (10 evidence uploads)", tier="free", limit=10)
    )

    with pytest.raises(LimitReached):
        await orchestrator.capture_now(
            user_id, narrative_text="text", images=[ImageUpload(data=b"\x89PNG", mime_type="image/png")]
        )

    orchestrator.evidence_service.storage.upload.assert_not_awaited()
    fake_llm.generate_chat_completion.assert_not_awaited()
    persistence.event_handler.batch_create.assert_not_awaited()


@pytest.mark.asyncio
async def test_save_events_normalizes_and_links(orchestrator, persistence, user_id):
    evidence = make_evidence(user_id)
    persistence.evidence_handler.get_owned_in_order = AsyncMock(return_value=[evidence])
    request = SaveEventsRequest(
        events=[
            ExtractedEvent(
                type="positive",
                title="Park visit",
                primary_timestamp=datetime(2024, 11, 23, 10, 0),
                timestamp_precision="unknown",
            )
        ],
        evidence_ids=[evidence.id],
        transcript="We went to the park.",
    )

    outcome = await orchestrator.save_events(user_id, request)

    row = persistence.event_handler.batch_create.await_args.args[0][0]
    assert row["primary_timestamp"] is None
    assert outcome.linked_evidence_count == 1
    orchestrator.journal_evidence_handler.attach_evidence.assert_awaited_once()


@pytest.mark.asyncio
async def test_submit_journal_queues_a_job(orchestrator, user_id):
    result = await orchestrator.submit_journal(user_id, "They were late.", reference_date=date(2024, 11, 23))

    assert result["message"] == "Processing started"
    message = orchestrator.dispatcher.publish.call_args.args[0]
    assert isinstance(message, JournalExtractionRequested)
    assert str(message.job_id) == result["jobId"]
    assert message.user_id == user_id
    assert orchestrator.journal_handler.create.await_args.args[0]["status"] == "processing"


@pytest.mark.asyncio
async def test_submit_journal_is_gated(orchestrator, user_id):
    orchestrator.gate.ensure_can_capture = AsyncMock(side_effect=LimitReached("limit", tier="free", limit=5))

    with pytest.raises(LimitReached):
        await orchestrator.submit_journal(user_id, "text")

    orchestrator.job_handler.create_job.assert_not_awaited()
    orchestrator.dispatcher.publish.assert_not_called()


@pytest.mark.asyncio
async def test_submit_journal_closes_out_job_when_queueing_fails(orchestrator, user_id):
    orchestrator.dispatcher.publish.side_effect = RuntimeError("Job dispatcher is shutting down")
    orchestrator.job_handler.get_owned = AsyncMock(
        return_value=SimpleNamespace(status="pending", is_terminal=False)
    )

    with pytest.raises(ServiceUnavailable) as excinfo:
        await orchestrator.submit_journal(user_id, "They were late.")

    assert excinfo.value.status_code == 503
    assert excinfo.value.retryable is True
    statuses = [c.args[2] for c in orchestrator.job_handler.update_job_status.await_args_list]
    assert statuses == ["processing", "failed"]
    journal_update = orchestrator.journal_handler.update_owned.await_args.args[2]
    assert journal_update["status"] == "cancelled"


def _payload(user_id) -> JournalExtractionRequested:
    return JournalExtractionRequested(
        job_id=uuid.uuid4(),
        journal_entry_id=uuid.uuid4(),
        user_id=user_id,
        event_text="Pickup at 6pm, they came at 6:45.",
        reference_date=date(2024, 11, 23),
    )


@pytest.mark.asyncio
async def test_worker_moves_job_to_completed(orchestrator, fake_llm, user_id):
    fake_llm.generate_chat_completion.return_value = make_llm_response(INCIDENT)
    orchestrator.job_handler.get_owned = AsyncMock(
        return_value=SimpleNamespace(status="pending", is_terminal=False)
    )
    payload = _payload(user_id)

    await orchestrator.run_journal_extraction(payload)

    statuses = [c.args[2] for c in orchestrator.job_handler.update_job_status.await_args_list]
    assert statuses == ["processing", "completed"]
    summary = orchestrator.job_handler.update_job_status.await_args.kwargs["result_summary"]
    assert summary["events_created"] == 1
    assert summary["action_items_created"] == 1
    journal_update = orchestrator.journal_handler.update_owned.await_args.args[2]
    assert journal_update["status"] == "completed"


@pytest.mark.asyncio
async def test_worker_skips_terminal_jobs(orchestrator, fake_llm, user_id):
    orchestrator.job_handler.get_owned = AsyncMock(
        return_value=SimpleNamespace(status="completed", is_terminal=True)
    )

    await orchestrator.run_journal_extraction(_payload(user_id))

    fake_llm.generate_chat_completion.assert_not_awaited()
    orchestrator.job_handler.update_job_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_mark_failed_walks_pending_job_to_failed(orchestrator, user_id):
    orchestrator.job_handler.get_owned = AsyncMock(
        return_value=SimpleNamespace(status="pending", is_terminal=False)
    )
    payload = _payload(user_id)

    await orchestrator.mark_failed(payload, UpstreamError("Event extraction: upstream request timed out", kind="timeout"))

    calls = orchestrator.job_handler.update_job_status.await_args_list
    assert [c.args[2] for c in calls] == ["processing", "failed"]
    assert calls[-1].kwargs["error_message"] == "Event extraction: upstream request timed out"
    journal_update = orchestrator.journal_handler.update_owned.await_args.args[2]
    assert journal_update["status"] == "cancelled"
