"""Resilient access to the mailbox: retries, circuit breaker, pagination, batches."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

import structlog
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .constants import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_JITTER_SECONDS,
    BACKOFF_MAX_SECONDS,
    CIRCUIT_COOLDOWN_SECONDS,
    CIRCUIT_FAILURE_THRESHOLD,
    DETAIL_BATCH_SIZE,
    DETAIL_RETRIES,
    DETAIL_TIMEOUT_SECONDS,
    LIST_RETRIES,
    LIST_TIMEOUT_SECONDS,
    MAX_SEARCH_RESULTS,
    PAGE_SIZE,
)
from .errors import CircuitOpenError, MailboxAuthError, MailboxError
from .gmail_client import MailboxApi
from .models import MailMessage

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, MailboxError) and exc.retryable


class CircuitBreaker:
    """Fails fast for *cooldown* seconds after *threshold* consecutive failures."""

    def __init__(
        self,
        threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        cooldown: float = CIRCUIT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.cooldown = cooldown
        self._clock = clock
        self.consecutive_failures = 0
        self._open_until = 0.0

    @property
    def remaining(self) -> float:
        return max(0.0, self._open_until - self._clock())

    def is_open(self) -> bool:
        return self.remaining > 0

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.threshold:
            self._open_until = self._clock() + self.cooldown
            self.consecutive_failures = 0
            logger.warning("circuit_opened", cooldown=self.cooldown)


class FetchClient:
    """Wraps a MailboxApi with the retry, breaker and partial-failure policy.

    ``detail_requests`` and ``partial_failures`` count per run; call
    :meth:`reset_counters` before each run.
    """

    def __init__(
        self,
        api: MailboxApi,
        breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api = api
        self.breaker = breaker or CircuitBreaker()
        self._sleep = sleep
        self.detail_requests = 0
        self.partial_failures = 0

    def reset_counters(self) -> None:
        self.detail_requests = 0
        self.partial_failures = 0

    def _attempt(self, call: Callable[[float], T], timeout: float, label: str) -> T:
        if self.breaker.is_open():
            raise CircuitOpenError(self.breaker.remaining)
        try:
            result = call(timeout)
        except MailboxError as exc:
            self.breaker.record_failure()
            logger.warning("mailbox_request_failed", endpoint=label, error=str(exc), retryable=exc.retryable)
            raise
        self.breaker.record_success()
        return result

    def request(
        self,
        call: Callable[[float], T],
        *,
        retries: int = LIST_RETRIES,
        timeout: float = LIST_TIMEOUT_SECONDS,
        allow_partial_failure: bool = False,
        label: str = "request",
    ) -> T | None:
        """Run ``call(timeout)`` under the resilience policy.

        Retryable failures are retried *retries* times with exponential backoff
        and jitter.  Auth errors always raise.  With *allow_partial_failure* a
        terminal failure returns None and is counted instead of raised.
        """
        retrying = Retrying(
            retry=retry_if_exception(_is_retryable),
            wait=wait_exponential(multiplier=BACKOFF_BASE_SECONDS, max=BACKOFF_MAX_SECONDS)
            + wait_random(0, BACKOFF_JITTER_SECONDS),
            stop=stop_after_attempt(retries + 1),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(self._attempt, call, timeout, label)
        except (MailboxAuthError, CircuitOpenError):
            raise
        except MailboxError as exc:
            if not allow_partial_failure:
                raise
            self.partial_failures += 1
            logger.warning("partial_failure", endpoint=label, error=str(exc))
            return None

    def list_message_ids(
        self,
        query: str,
        max_results: int = MAX_SEARCH_RESULTS,
        on_page: Callable[[int], None] | None = None,
    ) -> list[str]:
        """Collect message ids for *query*, following pages up to *max_results*."""
        ids: list[str] = []
        page_token: str | None = None
        page_number = 0

        while True:
            page_number += 1
            if on_page:
                on_page(page_number)
            page_size = min(PAGE_SIZE, max_results - len(ids))
            token = page_token

            page = self.request(
                lambda t: self.api.list_messages(query, page_token=token, page_size=page_size, timeout=t),
                retries=LIST_RETRIES,
                timeout=LIST_TIMEOUT_SECONDS,
                label="messages.list",
            )
            for message_id in page.message_ids:
                if message_id not in ids:
                    ids.append(message_id)

            logger.debug("list_page_fetched", page=page_number, count=len(page.message_ids), total=len(ids))
            if len(ids) >= max_results:
                return ids[:max_results]
            page_token = page.next_page_token
            if not page_token:
                return ids

    def _fetch_one(self, message_id: str) -> MailMessage | None:
        return self.request(
            lambda t: self.api.get_message(message_id, timeout=t),
            retries=DETAIL_RETRIES - 1,
            timeout=DETAIL_TIMEOUT_SECONDS,
            allow_partial_failure=True,
            label="messages.get",
        )

    def fetch_message_details(
        self,
        message_ids: list[str],
        on_batch: Callable[[int, int], None] | None = None,
    ) -> list[MailMessage | None]:
        """Download full messages in batches of DETAIL_BATCH_SIZE.

        Returns one entry per id, in the given order; None marks a message
        that could not be downloaded (counted in ``partial_failures``).
        """
        results: list[MailMessage | None] = []
        total_batches = (len(message_ids) + DETAIL_BATCH_SIZE - 1) // DETAIL_BATCH_SIZE

        for batch_num in range(total_batches):
            chunk = message_ids[batch_num * DETAIL_BATCH_SIZE:(batch_num + 1) * DETAIL_BATCH_SIZE]
            if on_batch:
                on_batch(batch_num + 1, total_batches)
            self.detail_requests += len(chunk)

            try:
                batch = self._attempt(
                    lambda t: self.api.get_messages(chunk, timeout=t),
                    DETAIL_TIMEOUT_SECONDS,
                    "messages.batchGet",
                )
            except (MailboxAuthError, CircuitOpenError):
                raise
            except MailboxError as exc:
                batch = {message_id: exc for message_id in chunk}

            for message_id in chunk:
                outcome = batch.get(message_id)
                if isinstance(outcome, MailMessage):
                    results.append(outcome)
                    continue
                if isinstance(outcome, MailboxAuthError):
                    self.breaker.record_failure()
                    raise outcome
                if isinstance(outcome, MailboxError) and outcome.retryable and DETAIL_RETRIES > 0:
                    logger.debug("retrying_message", message_id=message_id, error=str(outcome))
                    self._sleep(BACKOFF_BASE_SECONDS)
                    results.append(self._fetch_one(message_id))
                    continue
                self.partial_failures += 1
                logger.warning("message_download_failed", message_id=message_id, error=str(outcome))
                results.append(None)

            logger.debug("detail_batch_done", batch=batch_num + 1, total=total_batches)

        return results
