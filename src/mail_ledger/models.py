"""Data models for mail-ledger."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime

from .constants import CATEGORIES, CATEGORY_ICONS, DEFAULT_DAYS_TO_SCAN
from .errors import MalformedResponseError


def current_month(today: date | None = None) -> str:
    """Return the month of *today* (default: now) as ``YYYY-MM``."""
    today = today or date.today()
    return f"{today.year}-{today.month:02d}"


# --- Ledger ---


@dataclass(frozen=True)
class FinancialEvent:
    """A transaction extracted from a single notification email."""

    id: str  # source message id, the dedup key
    date: str  # ISO day, e.g. "2024-10-24"
    display_date: str  # e.g. "24 oct"
    amount: float
    direction: str  # "income" | "expense"
    category: str  # one of CATEGORIES
    source: str
    description: str

    @property
    def icon(self) -> str:
        return CATEGORY_ICONS.get(self.category, CATEGORY_ICONS["card"])

    @property
    def month(self) -> str:
        return self.date[:7]

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> FinancialEvent:
        return cls(
            id=str(data["id"]),
            date=str(data["date"]),
            display_date=str(data.get("display_date", "")),
            amount=float(data["amount"]),
            direction=str(data["direction"]),
            category=str(data["category"]),
            source=str(data.get("source", "")),
            description=str(data.get("description", "")),
        )


@dataclass
class MonthlySummary:
    month: str
    total_income: float = 0.0
    total_expense: float = 0.0
    net_difference: float = 0.0
    event_count: int = 0


# --- Scan settings ---


@dataclass
class EmailRule:
    """A user-configured allow/deny rule."""

    id: str
    type: str  # sender | keyword | subject | excluded_sender | excluded_keyword | excluded_subject
    value: str  # sanitized, lowercase
    enabled: bool = True
    created_at: str = ""


@dataclass
class ScanSettings:
    custom_senders: list[EmailRule] = field(default_factory=list)
    keywords: list[EmailRule] = field(default_factory=list)
    excluded_senders: list[EmailRule] = field(default_factory=list)
    excluded_keywords: list[EmailRule] = field(default_factory=list)
    excluded_subjects: list[EmailRule] = field(default_factory=list)
    use_default_senders: bool = True
    days_to_scan: int = DEFAULT_DAYS_TO_SCAN
    enabled_categories: list[str] = field(default_factory=lambda: list(CATEGORIES))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Preferences:
    """The part of the application state that survives a restart."""

    dark_mode: bool = False
    notifications_enabled: bool = False
    selected_month: str = field(default_factory=current_month)
    scan_settings: ScanSettings = field(default_factory=ScanSettings)

    def to_dict(self) -> dict:
        return asdict(self)


# --- Session / sync ---


@dataclass
class TokenInfo:
    access_token: str
    expires_at: datetime | None = None


@dataclass
class UserInfo:
    id: str
    email: str
    name: str = ""


@dataclass
class Session:
    email: str
    name: str
    google_id: str
    access_token: str
    token_expires_at: datetime | None = None


@dataclass
class SyncMetadata:
    last_sync_timestamp: datetime | None = None
    processed_email_ids: list[str] = field(default_factory=list)  # most recent first
    last_sync_event_count: int = 0
    last_manual_sync_at: datetime | None = None


@dataclass
class SyncProgress:
    phase: str  # searching | downloading | processing | saving
    current_step: int
    total_steps: int
    message: str


@dataclass
class RunDiagnostics:
    degraded: bool = False
    warning: str | None = None
    detail_requests: int = 0
    partial_detail_failures: int = 0
    parsing_failures: int = 0


# --- Provider responses ---


@dataclass
class MessageListPage:
    """One page of ``users.messages.list``."""

    message_ids: list[str] = field(default_factory=list)
    next_page_token: str | None = None

    @classmethod
    def from_api(cls, data: object) -> MessageListPage:
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Expected a list response object, got {type(data).__name__}")
        messages = data.get("messages") or []
        if not isinstance(messages, list):
            raise MalformedResponseError("'messages' is not a list")
        ids = []
        for item in messages:
            if not isinstance(item, dict) or not isinstance(item.get("id"), str) or not item["id"]:
                raise MalformedResponseError(f"Invalid message reference: {item!r}")
            ids.append(item["id"])
        token = data.get("nextPageToken")
        return cls(message_ids=ids, next_page_token=token if isinstance(token, str) and token else None)


@dataclass
class MessagePart:
    """A node of the MIME tree of a message."""

    mime_type: str = ""
    headers: list[tuple[str, str]] = field(default_factory=list)
    body_data: str | None = None  # URL-safe base64
    parts: list[MessagePart] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: object) -> MessagePart:
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Expected a message part object, got {type(data).__name__}")

        headers = []
        for h in data.get("headers") or []:
            if isinstance(h, dict) and isinstance(h.get("name"), str):
                headers.append((h["name"], str(h.get("value") or "")))

        body = data.get("body")
        body_data = body.get("data") if isinstance(body, dict) else None

        return cls(
            mime_type=str(data.get("mimeType") or ""),
            headers=headers,
            body_data=body_data if isinstance(body_data, str) and body_data else None,
            parts=[cls.from_api(p) for p in data.get("parts") or [] if isinstance(p, dict)],
        )


@dataclass
class MailMessage:
    """A fully fetched message (``format=full``)."""

    id: str
    snippet: str = ""
    internal_date: int | None = None  # epoch milliseconds
    payload: MessagePart = field(default_factory=MessagePart)

    @classmethod
    def from_api(cls, data: object) -> MailMessage:
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Expected a message object, got {type(data).__name__}")
        message_id = data.get("id")
        if not isinstance(message_id, str) or not message_id:
            raise MalformedResponseError("Message without id")

        internal_date = None
        raw_date = data.get("internalDate")
        if isinstance(raw_date, (str, int)) and str(raw_date).isdigit():
            internal_date = int(raw_date)

        payload = data.get("payload")
        return cls(
            id=message_id,
            snippet=str(data.get("snippet") or ""),
            internal_date=internal_date,
            payload=MessagePart.from_api(payload) if isinstance(payload, dict) else MessagePart(),
        )

    def header(self, name: str) -> str:
        """Return the first header called *name* (case-insensitive), or ''."""
        wanted = name.lower()
        for key, value in self.payload.headers:
            if key.lower() == wanted:
                return value
        return ""
