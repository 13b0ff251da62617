"""Gmail API transport: list, get and batched get of messages.

Every provider failure leaves this module as one of the typed MailboxError
subclasses so callers never deal with googleapiclient/httplib2 exceptions.
"""

from __future__ import annotations

from typing import Protocol

import httplib2
import structlog
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .constants import DETAIL_TIMEOUT_SECONDS, LIST_TIMEOUT_SECONDS, PAGE_SIZE
from .errors import (
    MailboxApiError,
    MailboxAuthError,
    MailboxError,
    MailboxNetworkError,
    MailboxTimeoutError,
    MalformedResponseError,
)
from .models import MailMessage, MessageListPage

logger = structlog.get_logger(__name__)

TRANSPORT_ERRORS = (HttpError, RefreshError, httplib2.HttpLib2Error, OSError)


class MailboxApi(Protocol):
    """What the fetch client needs from a mailbox provider."""

    def list_messages(
        self,
        query: str,
        page_token: str | None = None,
        page_size: int = PAGE_SIZE,
        timeout: float = LIST_TIMEOUT_SECONDS,
    ) -> MessageListPage: ...

    def get_message(self, message_id: str, timeout: float = DETAIL_TIMEOUT_SECONDS) -> MailMessage: ...

    def get_messages(
        self,
        message_ids: list[str],
        timeout: float = DETAIL_TIMEOUT_SECONDS,
    ) -> dict[str, MailMessage | MailboxError]: ...


def translate_error(exc: BaseException) -> MailboxError:
    """Map a transport exception onto the MailboxError taxonomy."""
    if isinstance(exc, MailboxError):
        return exc
    if isinstance(exc, HttpError):
        status = int(exc.resp.status)
        if status in (401, 403):
            return MailboxAuthError(status)
        return MailboxApiError(status, getattr(exc, "reason", "") or "")
    if isinstance(exc, RefreshError):
        return MailboxAuthError(401, f"Unauthorized: {exc}")
    if isinstance(exc, TimeoutError):
        return MailboxTimeoutError(f"Request timed out: {exc}")
    if isinstance(exc, (httplib2.HttpLib2Error, OSError)):
        return MailboxNetworkError(f"Network error: {exc}")
    return MailboxError(str(exc))


class GmailApi:
    """MailboxApi backed by googleapiclient, authorized with a bare access token."""

    def __init__(self, access_token: str) -> None:
        self._credentials = Credentials(token=access_token)
        self._services: dict[float, object] = {}

    def _service(self, timeout: float):
        # httplib2 timeouts are per connection, so keep one service per timeout.
        if timeout not in self._services:
            http = AuthorizedHttp(self._credentials, http=httplib2.Http(timeout=timeout))
            self._services[timeout] = build("gmail", "v1", http=http, cache_discovery=False)
        return self._services[timeout]

    def list_messages(
        self,
        query: str,
        page_token: str | None = None,
        page_size: int = PAGE_SIZE,
        timeout: float = LIST_TIMEOUT_SECONDS,
    ) -> MessageListPage:
        kwargs: dict = {
            "userId": "me",
            "maxResults": page_size,
            "fields": "messages/id,nextPageToken",
        }
        if query:
            kwargs["q"] = query
        if page_token:
            kwargs["pageToken"] = page_token

        try:
            resp = self._service(timeout).users().messages().list(**kwargs).execute()
        except TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc
        return MessageListPage.from_api(resp)

    def get_message(self, message_id: str, timeout: float = DETAIL_TIMEOUT_SECONDS) -> MailMessage:
        try:
            resp = (
                self._service(timeout)
                .users()
                .messages()
                .get(userId="me", id=message_id, format="full")
                .execute()
            )
        except TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc
        return MailMessage.from_api(resp)

    def get_messages(
        self,
        message_ids: list[str],
        timeout: float = DETAIL_TIMEOUT_SECONDS,
    ) -> dict[str, MailMessage | MailboxError]:
        """Fetch several messages in one batch request.

        Per-message failures are returned in place of the message; a failure
        of the batch request itself is raised.
        """
        service = self._service(timeout)
        results: dict[str, MailMessage | MailboxError] = {}

        def _cb(request_id, response, exception):
            if exception is not None:
                results[request_id] = translate_error(exception)
                return
            try:
                results[request_id] = MailMessage.from_api(response)
            except MalformedResponseError as exc:
                results[request_id] = exc

        batch = service.new_batch_http_request(callback=_cb)
        for message_id in message_ids:
            batch.add(
                service.users().messages().get(userId="me", id=message_id, format="full"),
                request_id=message_id,
            )

        try:
            batch.execute()
        except TRANSPORT_ERRORS as exc:
            raise translate_error(exc) from exc

        for message_id in message_ids:
            if message_id not in results:
                results[message_id] = MalformedResponseError(f"No batch response for message {message_id}")
        return results
