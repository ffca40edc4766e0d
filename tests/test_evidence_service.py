import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.exceptions import InputValidationError, LimitReached, NotFoundError, PersistenceError
from app.services.evidence_service import EvidenceService, evidence_title, present_evidence
from app.services.extraction_context import ExtractionContext
from app.services.storage_service import build_evidence_path, sanitize_filename
from app.services.suggestion_service import SuggestionService
from tests.conftest import make_evidence, make_llm_response


@pytest.fixture
def evidence_service(fake_llm, persistence, open_gate):
    service = EvidenceService(llm_client=fake_llm)
    service.gate = open_gate
    service.persistence = persistence
    service.storage = MagicMock()
    service.storage.upload = AsyncMock(return_value={"Key": "ok"})
    service.storage.create_signed_url = AsyncMock(return_value="https://storage.test/signed/shot.png")
    service.evidence_handler = MagicMock()
    service.evidence_handler.create = AsyncMock(
        side_effect=lambda row: make_evidence(row["user_id"], **{k: v for k, v in row.items() if k != "user_id"})
    )
    service.evidence_handler.update_owned = AsyncMock(
        side_effect=lambda evidence_id, user_id, updates: make_evidence(user_id, id=evidence_id, **updates)
    )
    service.context_loader = MagicMock()
    service.context_loader.load = AsyncMock(return_value=_context())
    return service


def _context() -> ExtractionContext:
    return ExtractionContext()


@pytest.mark.parametrize("stored", ["recording", "other"])
def test_recordings_and_other_files_present_as_documents(stored):
    evidence = make_evidence(uuid.uuid4(), source_type=stored, mime_type="audio/webm")

    presented = present_evidence(evidence)

    assert presented["sourceType"] == "document"
    assert evidence.source_type == stored


def test_title_fallbacks():
    owner = uuid.uuid4()
    assert evidence_title(make_evidence(owner, original_filename="texts.png")) == "texts.png"
    assert evidence_title(make_evidence(owner, original_filename=None)).startswith("evidence/")

    long_summary = "A very long description of a screenshot that keeps going past the limit. Second sentence."
    titled = evidence_title(make_evidence(owner, original_filename=None, storage_path=None, summary=long_summary))
    assert titled.endswith("...")
    assert len(titled) == 63

    bare = make_evidence(owner, original_filename=None, storage_path=None, summary="", source_type="other")
    assert evidence_title(bare) == "Document"


def test_storage_paths_are_owner_scoped():
    owner = uuid.uuid4()

    path = build_evidence_path(owner, "../../etc/my photo.png")

    assert path.startswith(f"evidence/{owner}/")
    assert path.endswith("-my_photo.png")
    assert sanitize_filename(None) == "file"


@pytest.mark.asyncio
async def test_upload_stores_file_then_row(evidence_service, user_id):
    evidence = await evidence_service.upload_evidence(user_id, b"RIFF....", "memo.wav", "audio/wav")

    path = evidence_service.storage.upload.await_args.args[0]
    assert path.startswith(f"evidence/{user_id}/")
    row = evidence_service.evidence_handler.create.await_args.args[0]
    assert row["source_type"] == "recording"
    assert row["summary"] == "Uploaded file: memo.wav"
    assert present_evidence(evidence)["sourceType"] == "document"


@pytest.mark.asyncio
async def test_upload_limit_blocks_storage(evidence_service, user_id):
    evidence_service.gate.ensure_can_upload_evidence = AsyncMock(
        side_effect=LimitReached("limit", tier="free", limit=10)
    )

    with pytest.raises(LimitReached):
        await evidence_service.upload_evidence(user_id, b"data", "a.png", "image/png")

    evidence_service.storage.upload.assert_not_awaited()


@pytest.mark.asyncio
async def test_describe_requires_owned_evidence(evidence_service, fake_llm, user_id):
    evidence_service.evidence_handler.get_owned = AsyncMock(return_value=None)

    with pytest.raises(NotFoundError):
        await evidence_service.describe_photo(user_id, uuid.uuid4())

    fake_llm.generate_chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_describe_requires_a_stored_file(evidence_service, user_id):
    evidence_service.evidence_handler.get_owned = AsyncMock(return_value=make_evidence(user_id, storage_path=None))

    with pytest.raises(InputValidationError):
        await evidence_service.describe_photo(user_id, uuid.uuid4())


@pytest.mark.asyncio
async def test_describe_keeps_old_values_when_model_returns_nothing(evidence_service, fake_llm, user_id):
    evidence = make_evidence(user_id, summary="Kitchen counter", tags=["home"])
    evidence_service.evidence_handler.get_owned = AsyncMock(return_value=evidence)
    fake_llm.generate_chat_completion.return_value = make_llm_response(
        {"suggested_title": "", "summary": "", "tags": []}
    )

    result = await evidence_service.describe_photo(user_id, evidence.id)

    updates = evidence_service.evidence_handler.update_owned.await_args.args[2]
    assert updates == {"summary": "Kitchen counter", "tags": ["home"]}
    assert result["suggestedTitle"] is None
    image_part = fake_llm.generate_chat_completion.await_args.kwargs["messages"][1]["content"][1]
    assert image_part["image_url"]["url"] == "https://storage.test/signed/shot.png"


@pytest.mark.asyncio
async def test_communication_extract_links_events_to_source(evidence_service, fake_llm, persistence, user_id):
    source = make_evidence(user_id)
    evidence_service.evidence_handler.get_owned = AsyncMock(return_value=source)
    fake_llm.generate_chat_completion.return_value = make_llm_response(
        {
            "communications": [{"medium": "email", "summary": "School absence notice"}],
            "db_suggestions": {
                "events": [{"title": "Absence reported"}],
                "evidence": [{"source_type": "email", "summary": "Absence email"}],
            },
            "metadata": {"image_analysis_confidence": 0.7},
        }
    )

    result = await evidence_service.extract_communication(user_id, evidence_id=source.id)

    db = result["_db"]
    assert len(db["created_communication_ids"]) == 1
    assert len(db["created_event_ids"]) == 1
    assert len(db["created_evidence_ids"]) == 1
    assert db["source_evidence_id"] == str(source.id)
    links = persistence.event_evidence_handler.create_links_skipping_existing.await_args.args[0]
    assert links[0]["evidence_id"] == source.id
    comm_row = persistence.communication_handler.batch_create.await_args.args[0][0]
    assert comm_row["evidence_id"] == source.id


@pytest.mark.asyncio
async def test_communication_extract_rejects_non_images(evidence_service, fake_llm, user_id):
    evidence_service.evidence_handler.get_owned = AsyncMock(
        return_value=make_evidence(user_id, mime_type="application/pdf", source_type="document")
    )

    with pytest.raises(InputValidationError):
        await evidence_service.extract_communication(user_id, evidence_id=uuid.uuid4())

    fake_llm.generate_chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_evidence_checks_every_item_before_calling_the_model(evidence_service, fake_llm, user_id):
    mine = make_evidence(user_id)
    evidence_service.evidence_handler.get_owned = AsyncMock(side_effect=[mine, None])

    with pytest.raises(NotFoundError):
        await evidence_service.process_evidence(user_id, [(mine.id, None), (uuid.uuid4(), None)])

    fake_llm.generate_chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_process_evidence_stores_analysis(evidence_service, fake_llm, user_id):
    document = make_evidence(user_id, mime_type="application/pdf", source_type="document", original_filename="order.pdf")
    evidence_service.evidence_handler.get_owned = AsyncMock(return_value=document)
    fake_llm.generate_chat_completion.return_value = make_llm_response(
        {"summary": "Temporary custody order", "suggested_tags": ["court", "order"]}
    )

    results = await evidence_service.process_evidence(user_id, [(document.id, "  from the clerk  ")])

    updates = evidence_service.evidence_handler.update_owned.await_args.args[2]
    assert updates["user_annotation"] == "from the clerk"
    assert updates["summary"] == "Temporary custody order"
    assert updates["tags"] == ["court", "order"]
    assert updates["extraction_raw"]["extraction"]["summary"] == "Temporary custody order"
    assert results[0]["evidenceId"] == str(document.id)
    evidence_service.storage.create_signed_url.assert_not_awaited()


@pytest.fixture
def suggestion_service(fake_llm):
    service = SuggestionService(llm_client=fake_llm)
    service.event_handler = MagicMock()
    service.suggestion_handler = MagicMock()
    service.suggestion_handler.batch_create = AsyncMock(return_value=[])
    service.context_loader = MagicMock()
    service.context_loader.load = AsyncMock(return_value=_context())
    return service


def _event_row(user_id):
    event_id = uuid.uuid4()
    return SimpleNamespace(
        id=event_id,
        user_id=user_id,
        to_dict=lambda: {"id": str(event_id), "type": "incident", "title": "Late pickup"},
    )


@pytest.mark.asyncio
async def test_suggestions_require_event_ids(suggestion_service, user_id):
    with pytest.raises(InputValidationError):
        await suggestion_service.suggest_for_events(user_id, ["  ", ""])


@pytest.mark.asyncio
async def test_suggestions_for_foreign_events_are_not_found(suggestion_service, fake_llm, user_id):
    suggestion_service.event_handler.get_owned_by_ids = AsyncMock(return_value=[])

    with pytest.raises(NotFoundError):
        await suggestion_service.suggest_for_events(user_id, [str(uuid.uuid4()), "not-a-uuid"])

    fake_llm.generate_chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_one_foreign_event_among_owned_ones_is_not_found(suggestion_service, fake_llm, user_id):
    owned = _event_row(user_id)
    suggestion_service.event_handler.get_owned_by_ids = AsyncMock(return_value=[owned])

    with pytest.raises(NotFoundError):
        await suggestion_service.suggest_for_events(user_id, [str(owned.id), str(uuid.uuid4())])

    fake_llm.generate_chat_completion.assert_not_awaited()
    suggestion_service.suggestion_handler.batch_create.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_event_id_among_owned_ones_is_not_found(suggestion_service, fake_llm, user_id):
    owned = _event_row(user_id)
    suggestion_service.event_handler.get_owned_by_ids = AsyncMock(return_value=[owned])

    with pytest.raises(NotFoundError):
        await suggestion_service.suggest_for_events(user_id, [str(owned.id), "not-a-uuid"])

    suggestion_service.event_handler.get_owned_by_ids.assert_not_awaited()
    fake_llm.generate_chat_completion.assert_not_awaited()


@pytest.mark.asyncio
async def test_repeated_owned_event_id_counts_once(suggestion_service, fake_llm, user_id):
    owned = _event_row(user_id)
    suggestion_service.event_handler.get_owned_by_ids = AsyncMock(return_value=[owned])
    fake_llm.generate_chat_completion.return_value = make_llm_response({"suggestions": [], "metadata": {}})

    result = await suggestion_service.suggest_for_events(user_id, [str(owned.id), f" {owned.id}"])

    assert result["suggestions"] == []
    assert suggestion_service.event_handler.get_owned_by_ids.await_args.args[0] == [owned.id]


@pytest.mark.asyncio
async def test_only_owned_event_suggestions_are_stored(suggestion_service, fake_llm, user_id):
    owned = _event_row(user_id)
    suggestion_service.event_handler.get_owned_by_ids = AsyncMock(return_value=[owned])
    fake_llm.generate_chat_completion.return_value = make_llm_response(
        {
            "suggestions": [
                {
                    "event_id": str(owned.id),
                    "suggestions": [
                        {"evidence_type": "text", "evidence_status": "have", "description": "Running late text"}
                    ],
                },
                {
                    "event_id": str(uuid.uuid4()),
                    "suggestions": [
                        {"evidence_type": "photo", "evidence_status": "need_to_get", "description": "Not mine"}
                    ],
                },
            ]
        }
    )

    result = await suggestion_service.suggest_for_events(user_id, [f" {owned.id} "])

    rows = suggestion_service.suggestion_handler.batch_create.await_args.args[0]
    assert len(rows) == 1
    assert rows[0]["event_id"] == owned.id
    assert rows[0]["user_id"] == user_id
    assert len(result["suggestions"]) == 1


@pytest.mark.asyncio
async def test_suggestion_insert_failure_is_fatal(suggestion_service, fake_llm, user_id):
    owned = _event_row(user_id)
    suggestion_service.event_handler.get_owned_by_ids = AsyncMock(return_value=[owned])
    suggestion_service.suggestion_handler.batch_create = AsyncMock(side_effect=RuntimeError("insert failed"))
    fake_llm.generate_chat_completion.return_value = make_llm_response(
        {
            "suggestions": [
                {
                    "event_id": str(owned.id),
                    "suggestions": [
                        {"evidence_type": "document", "evidence_status": "need_to_create", "description": "Log"}
                    ],
                }
            ]
        }
    )

    with pytest.raises(PersistenceError):
        await suggestion_service.suggest_for_events(user_id, [str(owned.id)])
