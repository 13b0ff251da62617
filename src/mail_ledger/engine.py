"""Sync state machine: session, ledger, sync metadata and user settings."""

from __future__ import annotations

import math
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

import structlog

from . import rules
from .constants import (
    MANUAL_SYNC_MIN_INTERVAL_SECONDS,
    MAX_PROCESSED_EMAIL_IDS,
    TOKEN_EXPIRY_MARGIN_SECONDS,
)
from .errors import (
    AuthError,
    CircuitOpenError,
    LoginError,
    MailboxApiError,
    MailboxAuthError,
    MailboxNetworkError,
    MailboxTimeoutError,
    MailboxUnstableError,
    MirrorError,
)
from .export import events_to_csv
from .fetch import CircuitBreaker, FetchClient
from .gmail_client import GmailApi, MailboxApi
from .models import (
    FinancialEvent,
    MonthlySummary,
    Preferences,
    ScanSettings,
    Session,
    SyncMetadata,
    SyncProgress,
    TokenInfo,
    UserInfo,
    current_month,
)
from .network import is_online as probe_connectivity
from .orchestrator import run_sync_pass, sort_events

logger = structlog.get_logger(__name__)

MSG_OFFLINE = "No connection to the internet. Check your connection and try again."
MSG_SESSION_EXPIRED = "Your session has expired. Please sign in again."
MSG_CONNECTION = "Connection error. Check your network access and try again."
MSG_RATE_LIMITED = "Gmail is rate-limiting your requests. Please wait a few minutes and try again."
MSG_GENERIC = "Sync failed. Please try again."
MSG_MIRROR_SYNC = "Local sync completed, but saving to the mirror failed."
MSG_MIRROR_DELETE = "Event deleted locally, but deleting it from the mirror failed."
MSG_PREFERENCES_SAVE = "Your preferences could not be saved to disk."

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


# --- Collaborators ---


class AuthProvider(Protocol):
    def request_token(self, force_consent: bool = False) -> TokenInfo: ...

    def refresh_token(self) -> TokenInfo: ...

    def fetch_user_info(self, access_token: str) -> UserInfo: ...

    def revoke_access(self, access_token: str) -> bool: ...


class Mirror(Protocol):
    def get_user_by_external_id(self, external_id: str) -> dict | None: ...

    def create_user(self, email: str, name: str, external_id: str) -> dict: ...

    def get_events(self, user_id: int) -> list[FinancialEvent]: ...

    def create_events(self, user_id: int, events: list[FinancialEvent]) -> int: ...

    def delete_event_by_external_id(self, user_id: int, email_id: str) -> bool: ...


class Notifier(Protocol):
    def notify(self, events: list[FinancialEvent]) -> None: ...


class PreferenceStore(Protocol):
    def load(self) -> Preferences: ...

    def save(self, preferences: Preferences) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_sync_failure(exc: BaseException) -> tuple[str, bool]:
    """Map a sync failure to (user message, whether the session must end)."""
    if isinstance(exc, MailboxAuthError):
        return MSG_SESSION_EXPIRED, True
    if isinstance(exc, CircuitOpenError):
        wait = max(1, math.ceil(exc.retry_after))
        return f"Gmail is failing repeatedly; requests are paused. Try again in {wait}s.", False
    if isinstance(exc, MailboxUnstableError):
        return str(exc), False
    if isinstance(exc, MailboxApiError) and exc.status == 429:
        return MSG_RATE_LIMITED, False
    if isinstance(exc, (MailboxNetworkError, MailboxTimeoutError)):
        return MSG_CONNECTION, False

    text = str(exc).lower()
    if any(token in text for token in ("401", "403", "unauthorized", "permission")):
        return MSG_SESSION_EXPIRED, True
    if any(token in text for token in ("network", "connection", "timed out", "timeout")):
        return MSG_CONNECTION, False
    if any(token in text for token in ("429", "quota", "rate limit")):
        return MSG_RATE_LIMITED, False
    return MSG_GENERIC, False


class SyncEngine:
    """Owns the session, the ledger and SyncMetadata.

    Every state change goes through this class.  ``sync_events`` never
    raises; inspect ``sync_status`` / ``sync_error`` / ``sync_warning``
    afterwards.  Login methods raise LoginError so callers can react.
    """

    def __init__(
        self,
        auth: AuthProvider,
        mailbox_factory: Callable[[str], MailboxApi] = GmailApi,
        *,
        mirror: Mirror | None = None,
        notifier: Notifier | None = None,
        store: PreferenceStore | None = None,
        is_online: Callable[[], bool] = probe_connectivity,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
        breaker: CircuitBreaker | None = None,
        on_progress: Callable[[SyncProgress], None] | None = None,
    ) -> None:
        self.auth = auth
        self.mailbox_factory = mailbox_factory
        self.mirror = mirror
        self.notifier = notifier
        self.store = store
        self.is_online = is_online
        self.clock = clock
        self.sleep = sleep
        self.breaker = breaker or CircuitBreaker()
        self.on_progress = on_progress

        self.preferences = store.load() if store else Preferences()
        self.session: Session | None = None
        self.auth_status = "idle"  # idle | loading | authenticated | unauthenticated
        self.sync_status = "idle"  # idle | syncing | success | error
        self.sync_error: str | None = None
        self.sync_warning: str | None = None
        self.sync_progress: SyncProgress | None = None
        self.events: list[FinancialEvent] = []
        self.metadata = SyncMetadata()

    # --- Properties ---

    @property
    def scan_settings(self) -> ScanSettings:
        return self.preferences.scan_settings

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.auth_status == "authenticated"

    # --- Internal helpers ---

    def _save_preferences(self) -> str | None:
        if not self.store:
            return None
        try:
            self.store.save(self.preferences)
        except OSError as exc:
            logger.error("preferences_save_failed", error=str(exc))
            return MSG_PREFERENCES_SAVE
        return None

    def _set_progress(self, progress: SyncProgress | None) -> None:
        self.sync_progress = progress
        if progress is not None and self.on_progress:
            self.on_progress(progress)

    def _end_session(self, message: str | None = None) -> None:
        self.session = None
        self.events = []
        self.metadata = SyncMetadata()
        self.auth_status = "unauthenticated"
        if message:
            self.sync_error = message
        logger.info("session_ended", reason=message)

    def _start_session(self, user: UserInfo, token: TokenInfo) -> None:
        self.session = Session(
            email=user.email,
            name=user.name,
            google_id=user.id,
            access_token=token.access_token,
            token_expires_at=token.expires_at,
        )
        self.auth_status = "authenticated"
        self.preferences.selected_month = current_month(self.clock().date())
        self.events = []
        self.metadata = SyncMetadata()
        logger.info("session_started", email=user.email)

    def _begin_login(self) -> None:
        self.auth_status = "loading"
        self.sync_error = None
        self.sync_warning = None
        self.sync_status = "idle"
        self.sync_progress = None

    # --- Auth ---

    def ensure_valid_token(self) -> str | None:
        """Return a usable access token, refreshing it silently if expired.

        A failed refresh ends the session and returns None.
        """
        session = self.session
        if session is None:
            return None
        if session.token_expires_at is None or self.clock() < session.token_expires_at:
            return session.access_token

        logger.info("token_expired", email=session.email)
        try:
            token = self.auth.refresh_token()
        except Exception as exc:  # noqa: BLE001
            logger.warning("token_refresh_failed", error=str(exc), error_type=type(exc).__name__)
            self._end_session(MSG_SESSION_EXPIRED)
            return None

        session.access_token = token.access_token
        session.token_expires_at = token.expires_at
        logger.info("token_refreshed", expires_at=str(token.expires_at))
        return token.access_token

    def _initial_sync(self) -> int:
        self.sync_events(force_full_sync=True, origin="auto")
        if self.sync_status == "error":
            raise LoginError(self.sync_error or MSG_GENERIC)
        return len(self.events)

    def login(self) -> int:
        """Interactive login followed by a full sync; returns the ledger size."""
        self._begin_login()
        try:
            token = self.auth.request_token(force_consent=True)
            user = self.auth.fetch_user_info(token.access_token)
        except AuthError as exc:
            self._end_session(str(exc))
            raise LoginError(str(exc)) from exc

        self._start_session(user, token)
        self._save_preferences()
        return self._initial_sync()

    def login_with_token(self, access_token: str, expires_in: int = 3600) -> int:
        """Log in with an access token obtained elsewhere."""
        self._begin_login()
        try:
            user = self.auth.fetch_user_info(access_token)
        except AuthError as exc:
            self._end_session(str(exc))
            raise LoginError(str(exc)) from exc

        lifetime = max(TOKEN_EXPIRY_MARGIN_SECONDS, int(expires_in))
        expires_at = self.clock() + timedelta(seconds=lifetime - TOKEN_EXPIRY_MARGIN_SECONDS)
        self._start_session(user, TokenInfo(access_token=access_token, expires_at=expires_at))
        self._save_preferences()
        try:
            return self._initial_sync()
        except LoginError as exc:
            self._end_session(str(exc))
            raise

    def logout(self) -> None:
        """Revoke the token, drop session, ledger and sync metadata."""
        if self.session is not None:
            try:
                self.auth.revoke_access(self.session.access_token)
            except AuthError as exc:
                logger.warning("revoke_failed", error=str(exc))

        self._end_session()
        self.sync_status = "idle"
        self.sync_error = None
        self.sync_warning = None
        self.sync_progress = None
        self.preferences.selected_month = current_month(self.clock().date())
        self._save_preferences()

    # --- Sync ---

    def _manual_wait_seconds(self, now: datetime) -> int:
        last = self.metadata.last_manual_sync_at
        if last is None:
            return 0
        elapsed = (now - last).total_seconds()
        if elapsed >= MANUAL_SYNC_MIN_INTERVAL_SECONDS:
            return 0
        return max(1, math.ceil(MANUAL_SYNC_MIN_INTERVAL_SECONDS - elapsed))

    def sync_events(self, force_full_sync: bool = False, origin: str = "manual") -> None:
        """Fetch new transactions and update the ledger.

        *origin* is "manual" for user-triggered syncs and "auto" for the sync
        that follows login; auto syncs skip rate limiting and notifications.
        """
        if self.session is None:
            return
        if self.sync_status == "syncing":
            logger.info("sync_already_running")
            return
        if not self.is_online():
            self.sync_status = "error"
            self.sync_error = MSG_OFFLINE
            logger.warning("sync_offline")
            return

        is_manual = origin == "manual"
        started_at = self.clock()
        if is_manual:
            wait = self._manual_wait_seconds(started_at)
            if wait:
                self.sync_status = "error"
                self.sync_error = f"Too many requests. Wait {wait}s before syncing again."
                logger.info("sync_rate_limited", wait_seconds=wait)
                return

        self.sync_status = "syncing"
        self.sync_error = None
        self.sync_warning = None

        try:
            self._run_sync(force_full_sync, origin, started_at)
        except Exception as exc:  # noqa: BLE001
            logger.exception("sync_crashed", error=str(exc), error_type=type(exc).__name__)
            self.sync_status = "error"
            self.sync_progress = None
            self.sync_error = MSG_GENERIC

    def _run_sync(self, force_full_sync: bool, origin: str, started_at: datetime) -> None:
        is_manual = origin == "manual"
        token = self.ensure_valid_token()
        if token is None:
            self.sync_status = "error"
            self.sync_error = MSG_SESSION_EXPIRED
            return

        previous_sync = None if force_full_sync else self.metadata.last_sync_timestamp
        processed_ids = [] if force_full_sync else list(self.metadata.processed_email_ids)
        logger.info("sync_started", mode="full" if force_full_sync else "incremental",
                    origin=origin, known_ids=len(processed_ids))

        try:
            fetch_client = FetchClient(self.mailbox_factory(token), breaker=self.breaker, sleep=self.sleep)
            result = run_sync_pass(
                fetch_client,
                self.scan_settings,
                processed_ids=processed_ids,
                on_progress=self._set_progress,
            )
        except Exception as exc:  # noqa: BLE001
            message, end_session = classify_sync_failure(exc)
            logger.error("sync_failed", error=str(exc), error_type=type(exc).__name__)
            if end_session:
                self._end_session()
            self.sync_status = "error"
            self.sync_progress = None
            self.sync_error = message
            return

        self._set_progress(SyncProgress("saving", 1, 1, "Saving results..."))

        if force_full_sync:
            new_events = list(result.events)
            ledger = new_events
        else:
            known = {e.id for e in self.events}
            new_events = [e for e in result.events if e.id not in known]
            ledger = self.events + new_events
        ledger = sort_events(ledger)

        if force_full_sync:
            ordered_ids = [e.id for e in ledger]
        else:
            ordered_ids = [e.id for e in result.events] + processed_ids
        processed = list(dict.fromkeys(ordered_ids))[:MAX_PROCESSED_EMAIL_IDS]

        warnings = [result.diagnostics.warning] if result.diagnostics.warning else []
        mirror_warning = self._mirror_new_events(new_events)
        if mirror_warning:
            warnings.append(mirror_warning)

        self.events = ledger
        self.sync_status = "success"
        self.sync_progress = None
        self.preferences.selected_month = ledger[0].month if ledger else current_month(self.clock().date())
        self.metadata = SyncMetadata(
            last_sync_timestamp=self.clock(),
            processed_email_ids=processed,
            last_sync_event_count=len(new_events),
            last_manual_sync_at=started_at if is_manual else self.metadata.last_manual_sync_at,
        )
        save_warning = self._save_preferences()
        if save_warning:
            warnings.append(save_warning)
        self.sync_warning = " ".join(warnings) or None
        logger.info("sync_completed", total=len(ledger), new=len(new_events), degraded=result.diagnostics.degraded)

        should_notify = (
            not force_full_sync
            and previous_sync is not None
            and self.preferences.notifications_enabled
            and bool(new_events)
            and is_manual
        )
        if should_notify and self.notifier:
            try:
                self.notifier.notify(new_events)
            except Exception as exc:  # noqa: BLE001
                logger.error("notification_failed", error=str(exc))

    def _mirror_new_events(self, new_events: list[FinancialEvent]) -> str | None:
        if self.mirror is None or self.session is None or not self.session.google_id:
            return None
        try:
            user = self.mirror.get_user_by_external_id(self.session.google_id)
            if user is None:
                user = self.mirror.create_user(self.session.email, self.session.name, self.session.google_id)
            if new_events:
                self.mirror.create_events(user["id"], new_events)
        except MirrorError as exc:
            logger.error("mirror_sync_failed", error=str(exc))
            return MSG_MIRROR_SYNC
        return None

    def clear_sync_cache(self) -> None:
        """Forget processed ids and the ledger so the next sync starts fresh."""
        self.metadata = SyncMetadata()
        self.events = []

    def delete_event(self, event_id: str) -> None:
        """Remove one event locally, then from the mirror (best-effort)."""
        self.events = [e for e in self.events if e.id != event_id]
        if self.mirror is None or self.session is None or not self.session.google_id:
            return
        try:
            user = self.mirror.get_user_by_external_id(self.session.google_id)
            if user is not None:
                self.mirror.delete_event_by_external_id(user["id"], event_id)
        except MirrorError as exc:
            logger.error("mirror_delete_failed", event_id=event_id, error=str(exc))
            self.sync_warning = MSG_MIRROR_DELETE

    # --- Queries ---

    def monthly_events(self, month: str) -> list[FinancialEvent]:
        return sort_events(e for e in self.events if e.date.startswith(month))

    def monthly_summary(self, month: str) -> MonthlySummary:
        events = [e for e in self.events if e.date.startswith(month)]
        income = sum(e.amount for e in events if e.direction == "income")
        expense = sum(e.amount for e in events if e.direction == "expense")
        return MonthlySummary(
            month=month,
            total_income=income,
            total_expense=expense,
            net_difference=income - expense,
            event_count=len(events),
        )

    def export_csv(self) -> str:
        return events_to_csv(self.events)

    # --- Settings mutators ---

    def _update_settings(self, settings: ScanSettings) -> None:
        self.preferences.scan_settings = settings
        self._save_preferences()

    def add_rule(self, rule_type: str, value: str) -> None:
        self._update_settings(rules.add_rule(self.scan_settings, rule_type, value))

    def remove_rule(self, rule_id: str) -> None:
        self._update_settings(rules.remove_rule(self.scan_settings, rule_id))

    def toggle_rule(self, rule_id: str) -> None:
        self._update_settings(rules.toggle_rule(self.scan_settings, rule_id))

    def set_days_to_scan(self, days: int) -> None:
        self._update_settings(rules.set_days_to_scan(self.scan_settings, days))

    def toggle_category(self, category: str) -> None:
        self._update_settings(rules.toggle_category(self.scan_settings, category))

    def set_use_default_senders(self, enabled: bool) -> None:
        self._update_settings(rules.set_use_default_senders(self.scan_settings, enabled))

    def toggle_dark_mode(self) -> None:
        self.preferences.dark_mode = not self.preferences.dark_mode
        self._save_preferences()

    def set_notifications_enabled(self, enabled: bool) -> None:
        self.preferences.notifications_enabled = bool(enabled)
        self._save_preferences()

    def set_selected_month(self, month: str) -> None:
        if not _MONTH_RE.match(month):
            raise ValueError(f"Invalid month {month!r}, expected YYYY-MM")
        self.preferences.selected_month = month
        self._save_preferences()
