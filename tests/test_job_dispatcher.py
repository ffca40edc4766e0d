import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest

from app.exceptions import InputValidationError, UpstreamError
from app.services.job_dispatcher import JobDispatcher, JournalExtractionRequested


def _message() -> JournalExtractionRequested:
    return JournalExtractionRequested(
        job_id=uuid.uuid4(),
        journal_entry_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        event_text="They were late.",
    )


@pytest.mark.asyncio
async def test_publish_returns_before_the_handler_runs():
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_handler(message):
        started.set()
        await release.wait()

    dispatcher = JobDispatcher(max_attempts=1, retry_delay_seconds=0)
    dispatcher.register(JournalExtractionRequested, slow_handler)

    dispatcher.publish(_message())
    assert dispatcher.pending == 1

    await asyncio.wait_for(started.wait(), timeout=1)
    release.set()
    await dispatcher.drain(timeout=1)
    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_failed_delivery_is_retried_until_success():
    handler = AsyncMock(side_effect=[UpstreamError("timeout", kind="timeout"), None])
    on_failure = AsyncMock()
    dispatcher = JobDispatcher(max_attempts=3, retry_delay_seconds=0)
    dispatcher.register(JournalExtractionRequested, handler, on_final_failure=on_failure)

    dispatcher.publish(_message())
    await dispatcher.drain(timeout=1)

    assert handler.await_count == 2
    on_failure.assert_not_awaited()


@pytest.mark.asyncio
async def test_exhausted_attempts_call_the_failure_handler():
    error = UpstreamError("rate limited", kind="rate_limit")
    handler = AsyncMock(side_effect=error)
    on_failure = AsyncMock()
    dispatcher = JobDispatcher(max_attempts=3, retry_delay_seconds=0)
    dispatcher.register(JournalExtractionRequested, handler, on_final_failure=on_failure)
    message = _message()

    dispatcher.publish(message)
    await dispatcher.drain(timeout=1)

    assert handler.await_count == 3
    on_failure.assert_awaited_once_with(message, error)


@pytest.mark.asyncio
async def test_non_retryable_errors_stop_early():
    handler = AsyncMock(side_effect=InputValidationError("Event text is required"))
    on_failure = AsyncMock()
    dispatcher = JobDispatcher(max_attempts=3, retry_delay_seconds=0)
    dispatcher.register(JournalExtractionRequested, handler, on_final_failure=on_failure)

    dispatcher.publish(_message())
    await dispatcher.drain(timeout=1)

    assert handler.await_count == 1
    on_failure.assert_awaited_once()


@pytest.mark.asyncio
async def test_unregistered_message_type_is_rejected():
    dispatcher = JobDispatcher(max_attempts=1, retry_delay_seconds=0)

    with pytest.raises(LookupError):
        dispatcher.publish(_message())


@pytest.mark.asyncio
async def test_publish_after_drain_is_rejected():
    dispatcher = JobDispatcher(max_attempts=1, retry_delay_seconds=0)
    dispatcher.register(JournalExtractionRequested, AsyncMock())
    await dispatcher.drain()

    with pytest.raises(RuntimeError):
        dispatcher.publish(_message())
