"""Sliding-window admission control for provider calls.

The controller keeps a 60-second window of reservations and admits a new
call only while the request count and summed input tokens stay under the
provider quota. Output tokens are tracked but never gate admission; the
provider treats that limit as soft.

One instance is created per process and passed to every caller that talks
to the provider. The window is shared mutable state: the check-then-reserve
sequence runs under an ``asyncio.Lock`` so two callers can never both see
the same spare slot.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import replace

from draftmind.config import AdmissionConfig
from draftmind.engine.completion import Completion
from draftmind.engine.completion import CompletionError
from draftmind.engine.completion import TextCompletionService

logger = logging.getLogger(__name__)


@dataclass
class WindowEntry:
    """One reservation in the sliding window."""

    request_id: str
    timestamp: float
    input_tokens: int
    output_tokens: int = 0


@dataclass(frozen=True)
class AdmissionUsage:
    """Aggregate usage over the current window."""

    requests: int
    input_tokens: int
    output_tokens: int


class AdmissionController:
    """Gate provider calls against per-minute request and token quotas.

    ``acquire`` never raises: a caller that never gets capacity waits
    indefinitely, so callers bound the wait with their own timeout
    (``asyncio.wait_for``) and treat expiry as a failure of the enclosing
    operation.
    """

    def __init__(
        self,
        config: AdmissionConfig | None = None,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._config = config or AdmissionConfig()
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._entries: list[WindowEntry] = []
        self._lock = asyncio.Lock()

    @property
    def config(self) -> AdmissionConfig:
        return self._config

    # -- public API --

    async def acquire(
        self,
        estimated_input_tokens: int,
        *,
        on_queued: Callable[[], None] | None = None,
        on_processing: Callable[[], None] | None = None,
    ) -> str:
        """Wait for capacity, reserve it, and return the reservation id."""
        estimate = max(int(estimated_input_tokens), 0)
        if estimate > self._config.input_tokens_per_minute:
            logger.warning(
                "admission estimate=%d exceeds input quota=%d; call cannot be admitted",
                estimate,
                self._config.input_tokens_per_minute,
            )

        request_id = await self._try_reserve(estimate)
        if request_id is not None:
            return request_id

        if on_queued is not None:
            on_queued()
        logger.info("admission queued estimate=%d", estimate)

        backoff = self._config.initial_backoff_seconds
        while True:
            await self._sleep(backoff)
            backoff = min(backoff * 2, self._config.max_backoff_seconds)
            request_id = await self._try_reserve(estimate)
            if request_id is not None:
                break

        if on_processing is not None:
            on_processing()
        logger.info("admission resumed request_id=%s", request_id)
        return request_id

    def report(
        self,
        actual_input_tokens: int,
        actual_output_tokens: int,
        *,
        request_id: str | None = None,
    ) -> None:
        """Back-fill a reservation with the provider's actual token counts.

        Without *request_id* the most recent reservation is updated, which
        can misattribute usage when several calls are in flight.
        """
        entry = self._find_entry(request_id)
        if entry is None:
            logger.debug("admission report for expired or unknown request_id=%s", request_id)
        else:
            entry.input_tokens = max(int(actual_input_tokens), 0)
            entry.output_tokens = max(int(actual_output_tokens), 0)

        usage = self.usage()
        soft_limit = self._config.output_tokens_per_minute
        if usage.output_tokens > soft_limit * self._config.output_warning_ratio:
            logger.warning(
                "admission output token usage at %d/%d per window",
                usage.output_tokens,
                soft_limit,
            )

    def usage(self) -> AdmissionUsage:
        """Return request and token totals for the current window."""
        self._purge()
        return AdmissionUsage(
            requests=len(self._entries),
            input_tokens=sum(e.input_tokens for e in self._entries),
            output_tokens=sum(e.output_tokens for e in self._entries),
        )

    def snapshot(self) -> tuple[WindowEntry, ...]:
        """Return copies of the live window entries, oldest first."""
        self._purge()
        return tuple(replace(e) for e in self._entries)

    # -- internal --

    def _purge(self) -> None:
        cutoff = self._clock() - self._config.window_seconds
        self._entries = [e for e in self._entries if e.timestamp > cutoff]

    def _has_capacity(self, estimate: int) -> bool:
        usage = self.usage()
        return (
            usage.requests < self._config.requests_per_minute
            and usage.input_tokens + estimate <= self._config.input_tokens_per_minute
        )

    async def _try_reserve(self, estimate: int) -> str | None:
        async with self._lock:
            if not self._has_capacity(estimate):
                return None
            entry = WindowEntry(
                request_id=uuid.uuid4().hex,
                timestamp=self._clock(),
                input_tokens=estimate,
            )
            self._entries.append(entry)
            return entry.request_id

    def _find_entry(self, request_id: str | None) -> WindowEntry | None:
        if request_id is None:
            return self._entries[-1] if self._entries else None
        for entry in reversed(self._entries):
            if entry.request_id == request_id:
                return entry
        return None


class AdmittedCompletionService(TextCompletionService):
    """Completion service that reserves quota before every call.

    The input estimate is derived from the character length of the system
    instruction and prompt. After the call the reservation is back-filled
    with the provider's reported counts; a failed call keeps its estimate
    and reports no output.
    """

    def __init__(
        self,
        service: TextCompletionService,
        controller: AdmissionController,
        *,
        chars_per_token: int = 4,
    ) -> None:
        self._service = service
        self._controller = controller
        self._chars_per_token = chars_per_token

    async def complete(
        self,
        system_instruction: str,
        prompt: str,
        max_output_tokens: int,
    ) -> Completion:
        chars = len(system_instruction) + len(prompt)
        estimate = -(-chars // self._chars_per_token)
        config = self._controller.config
        if estimate > config.input_tokens_per_minute:
            raise CompletionError(
                f"prompt estimate {estimate} exceeds input quota "
                f"{config.input_tokens_per_minute} and can never be admitted"
            )
        try:
            request_id = await asyncio.wait_for(
                self._controller.acquire(estimate),
                timeout=config.acquire_timeout_seconds,
            )
        except TimeoutError:
            raise CompletionError(
                f"admission wait exceeded {config.acquire_timeout_seconds}s"
            ) from None
        try:
            completion = await self._service.complete(
                system_instruction, prompt, max_output_tokens
            )
        except CompletionError:
            self._controller.report(estimate, 0, request_id=request_id)
            raise
        self._controller.report(
            completion.input_tokens or estimate,
            completion.output_tokens,
            request_id=request_id,
        )
        return completion
