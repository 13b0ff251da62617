"""Exception types for mail-ledger."""

from __future__ import annotations


class MailLedgerError(Exception):
    """Root exception for mail-ledger."""


class ConfigurationError(MailLedgerError):
    """Required configuration is missing or invalid."""


# --- Mailbox transport ---


class MailboxError(MailLedgerError):
    """A request to the mailbox provider failed."""

    retryable: bool = False


class MailboxApiError(MailboxError):
    """The provider answered with a non-success HTTP status."""

    def __init__(self, status: int, detail: str = "") -> None:
        self.status = status
        self.detail = detail
        message = f"Gmail API {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status in (408, 429) or self.status >= 500


class MailboxAuthError(MailboxApiError):
    """401/403 from the provider. Never retried, never degraded."""

    def __init__(self, status: int, detail: str = "") -> None:
        if not detail:
            detail = "Unauthorized: invalid or expired token" if status == 401 else "Forbidden: permission denied"
        super().__init__(status, detail)


class MailboxTimeoutError(MailboxError):
    """The request did not complete within its timeout."""

    retryable = True


class MailboxNetworkError(MailboxError):
    """The provider could not be reached (DNS, refused connection, reset)."""

    retryable = True


class MalformedResponseError(MailboxError):
    """The provider returned a payload that does not have the expected shape."""


class CircuitOpenError(MailboxError):
    """Requests are short-circuited after repeated consecutive failures."""

    def __init__(self, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"Gmail circuit breaker open after repeated failures; retry in {max(1, round(retry_after))}s"
        )


class MailboxUnstableError(MailboxError):
    """Too many message downloads failed for the run to be trusted."""


# --- Auth ---


class AuthError(MailLedgerError):
    """The OAuth provider rejected a request."""


class NeedsConsentError(AuthError):
    """The access token cannot be refreshed without user interaction."""

    def __init__(self, message: str = "NEEDS_CONSENT") -> None:
        super().__init__(message)


class LoginError(MailLedgerError):
    """Login (including its initial sync) did not complete."""


# --- Mirror ---


class MirrorError(MailLedgerError):
    """The secondary persistence mirror failed."""
