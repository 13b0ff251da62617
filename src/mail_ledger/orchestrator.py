"""One sync pass: search -> download -> classify -> filter."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

import structlog

from .classifier import message_to_event
from .constants import MAX_DETAIL_FAILURE_RATE, MAX_SEARCH_RESULTS
from .errors import MailboxUnstableError
from .fetch import FetchClient
from .models import FinancialEvent, RunDiagnostics, ScanSettings, SyncProgress
from .rules import RuleSet, allowed_senders, enabled_values

logger = structlog.get_logger(__name__)

_CONTROL_WS_RE = re.compile(r"[\r\n\t]")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class SyncRunResult:
    events: list[FinancialEvent] = field(default_factory=list)
    diagnostics: RunDiagnostics = field(default_factory=RunDiagnostics)


def quote_query_term(value: str) -> str:
    """Quote a free-text term so it cannot inject Gmail search operators."""
    normalized = _WHITESPACE_RE.sub(" ", _CONTROL_WS_RE.sub(" ", value)).strip()
    escaped = normalized.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_search_query(settings: ScanSettings) -> str:
    """Gmail search query for the enabled senders, keywords and exclusions.

    Returns '' when no sender is configured.
    """
    senders = [s.strip() for s in allowed_senders(settings) if s.strip()]
    if not senders:
        return ""

    query = "(" + " OR ".join(f"from:{quote_query_term(s)}" for s in senders) + ")"

    keywords = enabled_values(settings.keywords)
    if keywords:
        query += " (" + " OR ".join(quote_query_term(k) for k in keywords) + ")"

    for value in enabled_values(settings.excluded_senders):
        query += f" -from:{quote_query_term(value)}"
    for value in enabled_values(settings.excluded_subjects):
        query += f" -subject:{quote_query_term(value)}"
    for value in enabled_values(settings.excluded_keywords):
        query += f" -{quote_query_term(value)}"

    return f"{query} newer_than:{settings.days_to_scan}d"


def _sort_key(event: FinancialEvent) -> str:
    return event.date


def sort_events(events: Iterable[FinancialEvent]) -> list[FinancialEvent]:
    """Newest first; events on the same day keep their relative order."""
    return sorted(events, key=_sort_key, reverse=True)


def run_sync_pass(
    fetch_client: FetchClient,
    settings: ScanSettings,
    processed_ids: Iterable[str] = (),
    on_progress: Callable[[SyncProgress], None] | None = None,
    max_results: int = MAX_SEARCH_RESULTS,
) -> SyncRunResult:
    """Run one complete search/fetch/classify pass against the mailbox.

    Raises MailboxUnstableError when more than half of the message downloads
    failed, and lets auth, circuit-breaker and listing errors propagate.
    Individual unparseable messages are skipped and counted.
    """
    def report(phase: str, step: int, total: int, message: str) -> None:
        if on_progress:
            on_progress(SyncProgress(phase, step, total, message))

    fetch_client.reset_counters()
    diagnostics = RunDiagnostics()
    warnings: list[str] = []

    query = build_search_query(settings)
    if not query:
        logger.warning("no_senders_configured")
        return SyncRunResult(diagnostics=diagnostics)
    logger.debug("search_query_built", query=query, days=settings.days_to_scan)

    report("searching", 0, 1, "Searching financial emails...")
    ids = fetch_client.list_message_ids(
        query,
        max_results=max_results,
        on_page=lambda page: report("searching", page, page + 1, f"Searching emails (page {page})..."),
    )
    logger.info("messages_listed", count=len(ids))

    processed = set(processed_ids)
    new_ids = [i for i in ids if i not in processed]
    skipped = len(ids) - len(new_ids)
    if not new_ids:
        logger.info("sync_pass_complete", listed=len(ids), skipped=skipped, events=0)
        return SyncRunResult(diagnostics=diagnostics)

    messages = fetch_client.fetch_message_details(
        new_ids,
        on_batch=lambda n, total: report("downloading", n, total, f"Downloading emails ({n}/{total})..."),
    )

    diagnostics.detail_requests = fetch_client.detail_requests
    diagnostics.partial_detail_failures = fetch_client.partial_failures
    if diagnostics.detail_requests and diagnostics.partial_detail_failures:
        warnings.append(
            f"Partial Gmail sync: {diagnostics.partial_detail_failures}/{diagnostics.detail_requests} "
            "emails could not be downloaded."
        )
        if diagnostics.partial_detail_failures / diagnostics.detail_requests > MAX_DETAIL_FAILURE_RATE:
            raise MailboxUnstableError("Gmail is unstable: too many emails could not be downloaded.")

    report("processing", 0, len(messages), "Processing emails...")
    rules = RuleSet.from_settings(settings)
    events: list[FinancialEvent] = []
    rejected = 0

    for index, message in enumerate(messages, start=1):
        if message is None:
            continue
        try:
            result = message_to_event(message, rules)
        except Exception as exc:  # noqa: BLE001
            diagnostics.parsing_failures += 1
            logger.error("message_parse_failed", message_id=message.id, error=str(exc))
            continue
        if result.event is None:
            rejected += 1
        elif result.event.category in settings.enabled_categories:
            events.append(result.event)
        if index % 10 == 0:
            report("processing", index, len(messages), f"Processing emails ({index}/{len(messages)})...")

    if diagnostics.parsing_failures:
        warnings.append(f"{diagnostics.parsing_failures} emails could not be processed.")

    diagnostics.degraded = bool(diagnostics.partial_detail_failures or diagnostics.parsing_failures)
    diagnostics.warning = " ".join(warnings) or None

    logger.info(
        "sync_pass_complete",
        listed=len(ids),
        skipped=skipped,
        rejected=rejected,
        events=len(events),
        degraded=diagnostics.degraded,
    )
    return SyncRunResult(events=sort_events(events), diagnostics=diagnostics)
