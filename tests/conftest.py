"""Shared fixtures for tests."""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone

import pytest

from mail_ledger.engine import SyncEngine
from mail_ledger.errors import MailboxError, NeedsConsentError
from mail_ledger.models import MailMessage, MessageListPage, MessagePart, TokenInfo, UserInfo


def b64(text: str) -> str:
    """Gmail-style URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def epoch_ms(year: int, month: int, day: int, hour: int = 12) -> int:
    """Local-time timestamp in milliseconds, as Gmail's internalDate."""
    return int(datetime(year, month, day, hour).timestamp() * 1000)


def build_message(
    message_id: str,
    subject: str,
    body: str,
    sender: str,
    internal_date: int | None = None,
    html: bool = False,
) -> MailMessage:
    headers = [("From", sender), ("Subject", subject)]
    part = MessagePart(mime_type="text/html" if html else "text/plain", body_data=b64(body))
    return MailMessage(
        id=message_id,
        snippet=body[:100],
        internal_date=internal_date if internal_date is not None else epoch_ms(2024, 10, 24),
        payload=MessagePart(mime_type="multipart/alternative", headers=headers, parts=[part]),
    )


class FakeClock:
    """Controllable replacement for the engine clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMailbox:
    """In-memory MailboxApi.

    ``failures`` maps a message id to a list of errors raised, one per detail
    fetch, before the message is returned; ``broken`` ids fail every time.
    """

    def __init__(self, messages=()) -> None:
        self.messages: dict[str, MailMessage] = {}
        self.order: list[str] = []
        for message in messages:
            self.add(message)
        self.failures: dict[str, list[MailboxError]] = {}
        self.broken: dict[str, MailboxError] = {}
        self.list_errors: list[Exception] = []
        self.batch_errors: list[Exception] = []
        self.list_calls: list[dict] = []
        self.get_calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    def add(self, message: MailMessage) -> None:
        self.messages[message.id] = message
        if message.id not in self.order:
            self.order.insert(0, message.id)

    def remove(self, message_id: str) -> None:
        self.messages.pop(message_id, None)
        self.order.remove(message_id)

    def list_messages(self, query, page_token=None, page_size=100, timeout=12.0) -> MessageListPage:
        self.list_calls.append({"query": query, "page_token": page_token, "page_size": page_size})
        if self.list_errors:
            raise self.list_errors.pop(0)
        start = int(page_token or 0)
        end = start + page_size
        next_token = str(end) if end < len(self.order) else None
        return MessageListPage(message_ids=self.order[start:end], next_page_token=next_token)

    def _detail(self, message_id: str) -> MailMessage:
        if message_id in self.broken:
            raise self.broken[message_id]
        pending = self.failures.get(message_id)
        if pending:
            raise pending.pop(0)
        return self.messages[message_id]

    def get_message(self, message_id, timeout=10.0) -> MailMessage:
        self.get_calls.append(message_id)
        return self._detail(message_id)

    def get_messages(self, message_ids, timeout=10.0):
        self.batch_calls.append(list(message_ids))
        if self.batch_errors:
            raise self.batch_errors.pop(0)
        results = {}
        for message_id in message_ids:
            try:
                results[message_id] = self._detail(message_id)
            except MailboxError as exc:
                results[message_id] = exc
        return results


class FakeAuth:
    """AuthProvider double recording every call."""

    def __init__(self, clock: FakeClock, user: UserInfo | None = None) -> None:
        self.clock = clock
        self.user = user or UserInfo(id="google-123", email="ana@example.com", name="Ana")
        self.refresh_error: Exception | None = None
        self.user_info_error: Exception | None = None
        self.request_calls = 0
        self.refresh_calls = 0
        self.revoked: list[str] = []

    def request_token(self, force_consent=False) -> TokenInfo:
        self.request_calls += 1
        return TokenInfo(access_token="token-1", expires_at=self.clock() + timedelta(seconds=3300))

    def refresh_token(self) -> TokenInfo:
        self.refresh_calls += 1
        if self.refresh_error:
            raise self.refresh_error
        return TokenInfo(access_token=f"token-{self.refresh_calls + 1}",
                         expires_at=self.clock() + timedelta(seconds=3300))

    def fetch_user_info(self, access_token: str) -> UserInfo:
        if self.user_info_error:
            raise self.user_info_error
        return self.user

    def revoke_access(self, access_token: str) -> bool:
        self.revoked.append(access_token)
        return True


class FakeNotifier:
    def __init__(self) -> None:
        self.notified: list[list] = []

    def notify(self, events) -> None:
        self.notified.append(list(events))


# --- message fixtures ---


@pytest.fixture
def transfer_message() -> MailMessage:
    return build_message(
        "msg-transfer",
        "Transferencia realizada por $19.843",
        "Se ha realizado una transferencia desde tu cuenta corriente por un monto transferido de $19.843.",
        "Banco Santander <alertas@santander.cl>",
        internal_date=epoch_ms(2024, 10, 24),
    )


@pytest.fixture
def card_message() -> MailMessage:
    return build_message(
        "msg-card",
        "Compra aprobada con tu tarjeta",
        "Compra aprobada por $45.990 en JUMBO con tarjeta de crédito terminada en 1234.",
        "BancoEstado <notificaciones@bancoestado.cl>",
        internal_date=epoch_ms(2024, 10, 20),
    )


@pytest.fixture
def income_message() -> MailMessage:
    return build_message(
        "msg-income",
        "Abono de remuneraciones",
        "Se ha realizado un depósito de sueldo por $1.200.000 en tu cuenta.",
        "Banco BICE <avisos@bice.cl>",
        internal_date=epoch_ms(2024, 10, 1),
    )


@pytest.fixture
def promo_message() -> MailMessage:
    return build_message(
        "msg-promo",
        "¡Aprovecha 30% de descuento!",
        "Solo esta semana en compras sobre $20.000.",
        "Banco Santander <ofertas@santander.cl>",
        internal_date=epoch_ms(2024, 10, 22),
    )


@pytest.fixture
def bank_messages(transfer_message, card_message, income_message, promo_message) -> list[MailMessage]:
    return [income_message, card_message, promo_message, transfer_message]


@pytest.fixture
def mailbox(bank_messages) -> FakeMailbox:
    return FakeMailbox(bank_messages)


# --- engine fixtures ---


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 10, 25, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def auth(clock) -> FakeAuth:
    return FakeAuth(clock)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def make_engine(mailbox, auth, clock, notifier):
    """Factory for SyncEngine wired to the fakes; keyword overrides allowed."""

    def _make(**overrides) -> SyncEngine:
        kwargs = dict(
            mailbox_factory=lambda token: mailbox,
            notifier=notifier,
            is_online=lambda: True,
            clock=clock,
            sleep=lambda seconds: None,
        )
        kwargs.update(overrides)
        return SyncEngine(auth, **kwargs)

    return _make


@pytest.fixture
def needs_consent() -> NeedsConsentError:
    return NeedsConsentError()
