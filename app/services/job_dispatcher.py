"""
In-process job dispatcher.

Messages are typed payloads delivered to a registered async handler on a
background asyncio task. Delivery is at-least-once: a failed attempt is retried
after a delay up to the configured attempt count, so handlers must be
idempotent. Cancellation of a published message is not supported.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from app.config import settings
from app.exceptions import DaylightError
from app.utils.logger import setup_logger

logger = setup_logger("job_dispatcher")

MessageHandler = Callable[[Any], Awaitable[None]]
FailureHandler = Callable[[Any, Exception], Awaitable[None]]


@dataclass(frozen=True)
class JournalExtractionRequested:
    job_id: uuid.UUID
    journal_entry_id: uuid.UUID
    user_id: uuid.UUID
    event_text: str
    reference_date: date | None = None
    reference_time_description: str | None = None
    evidence_ids: tuple[uuid.UUID, ...] = field(default_factory=tuple)


@dataclass
class _Route:
    handler: MessageHandler
    on_final_failure: FailureHandler | None = None


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, DaylightError):
        return error.retryable
    return True


class JobDispatcher:
    def __init__(self, max_attempts: int | None = None, retry_delay_seconds: float | None = None):
        self.max_attempts = max(1, max_attempts or settings.job_max_attempts)
        self.retry_delay_seconds = (
            settings.job_retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )
        self._routes: dict[type, _Route] = {}
        self._tasks: set[asyncio.Task] = set()
        self._accepting = True

    def register(
        self,
        message_type: type,
        handler: MessageHandler,
        on_final_failure: FailureHandler | None = None,
    ) -> None:
        self._routes[message_type] = _Route(handler=handler, on_final_failure=on_final_failure)
        logger.info(f"Registered handler for {message_type.__name__}")

    def start(self) -> None:
        self._accepting = True

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def publish(self, message: Any) -> None:
        """Schedule delivery and return immediately."""
        if not self._accepting:
            raise RuntimeError("Job dispatcher is shutting down")
        route = self._routes.get(type(message))
        if route is None:
            raise LookupError(f"No handler registered for {type(message).__name__}")

        task = asyncio.create_task(self._deliver(message, route))
        # The event loop keeps only weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, message: Any, route: _Route) -> None:
        label = f"{type(message).__name__}[{getattr(message, 'job_id', '?')}]"
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await route.handler(message)
                logger.info(f"[Dispatch {label}] Delivered on attempt {attempt}")
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.error(
                    f"[Dispatch {label}] Attempt {attempt}/{self.max_attempts} failed: {type(e).__name__}: {e}",
                    exc_info=not isinstance(e, DaylightError),
                )
                if not _is_retryable(e):
                    logger.info(f"[Dispatch {label}] Error is not retryable, giving up")
                    break
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay_seconds * attempt)

        if route.on_final_failure is not None and last_error is not None:
            try:
                await route.on_final_failure(message, last_error)
            except Exception as e:
                logger.error(f"[Dispatch {label}] Final-failure handler raised: {e}", exc_info=True)

    async def drain(self, timeout: float | None = 30.0) -> None:
        """Stop accepting messages and wait for in-flight deliveries."""
        self._accepting = False
        if not self._tasks:
            return
        logger.info(f"Draining {len(self._tasks)} in-flight jobs")
        in_flight = list(self._tasks)
        done, not_done = await asyncio.wait(in_flight, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} jobs still running after {timeout}s; cancelling")
            for task in not_done:
                task.cancel()
            await asyncio.gather(*not_done, return_exceptions=True)


job_dispatcher = JobDispatcher()


def get_job_dispatcher() -> JobDispatcher:
    return job_dispatcher
