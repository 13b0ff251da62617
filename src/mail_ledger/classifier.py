"""Transaction classification - decides whether an email is a financial movement."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime

import structlog

from .amounts import extract_amount
from .constants import MAX_DESCRIPTION_LENGTH, MONTH_ABBREVIATIONS
from .content import message_body, sender_source
from .models import FinancialEvent, MailMessage
from .rules import RuleSet
from .vocabulary import (
    CREDIT_OFFER_EXCLUSION_PATTERNS,
    CREDIT_OFFER_EXCLUSION_PHRASES,
    DEFINITE_EXPENSE_PHRASES,
    DEFINITE_INCOME_PHRASES,
    EMOJI_RE,
    EXPENSE_KEYWORDS,
    INCOME_KEYWORDS,
    MARKETING_EXCLUSION_PHRASES,
    MARKETING_SUBJECT_PATTERNS,
    SERVICE_KEYWORDS,
    TRANSACTION_ACTION_HINTS,
    TRANSACTION_REQUIRED_PHRASES,
)

logger = structlog.get_logger(__name__)

_PREFIX_RE = re.compile(r"re:|fwd:", re.IGNORECASE)
_TAG_RE = re.compile(r"\[.*?\]")


@dataclass
class Verdict:
    accepted: bool
    reason: str


@dataclass
class Classification:
    """Outcome of classifying one message."""

    event: FinancialEvent | None
    reason: str


def has_excessive_emojis(text: str) -> bool:
    return len(EMOJI_RE.findall(text)) >= 2


def is_transaction_email(subject: str, body: str) -> Verdict:
    """Decide whether the text reports a completed movement.

    Checks run in order and the first decisive one wins: emoji-heavy
    subject, marketing phrases, credit offers, marketing subject shapes,
    strong transaction phrases, then a keyword + action-hint fallback.
    """
    text = f"{subject} {body}".lower()
    subject_lower = subject.lower()

    if has_excessive_emojis(subject):
        return Verdict(False, "subject with multiple emojis")

    for phrase in MARKETING_EXCLUSION_PHRASES:
        if phrase in text:
            return Verdict(False, f"marketing: {phrase!r}")

    for phrase in CREDIT_OFFER_EXCLUSION_PHRASES:
        if phrase in text:
            return Verdict(False, f"credit offer: {phrase!r}")
    for pattern in CREDIT_OFFER_EXCLUSION_PATTERNS:
        if pattern.search(text):
            return Verdict(False, "credit offer pattern")

    for pattern in MARKETING_SUBJECT_PATTERNS:
        if pattern.search(subject_lower):
            return Verdict(False, "marketing subject")

    for phrase in TRANSACTION_REQUIRED_PHRASES:
        if phrase in text:
            return Verdict(True, f"transaction phrase: {phrase!r}")

    has_keyword = any(k in text for k in INCOME_KEYWORDS + EXPENSE_KEYWORDS)
    has_action = any(h in text for h in TRANSACTION_ACTION_HINTS)
    if has_keyword and has_action:
        return Verdict(True, "financial keyword with action hint")

    return Verdict(False, "no transaction indicators")


def determine_direction(subject: str, body: str) -> str:
    """Return 'income' or 'expense'; ties and unknowns are expenses."""
    text = f"{subject} {body}".lower()

    for phrase in DEFINITE_EXPENSE_PHRASES:
        if phrase in text:
            return "expense"
    for phrase in DEFINITE_INCOME_PHRASES:
        if phrase in text:
            return "income"

    income_score = sum(1 for k in INCOME_KEYWORDS if k in text)
    expense_score = sum(1 for k in EXPENSE_KEYWORDS if k in text)
    if income_score > expense_score:
        return "income"
    return "expense"


def categorize(subject: str, body: str, sender: str) -> str:
    """Pick a category from keywords in sender, subject and body."""
    text = f"{subject} {body} {sender}".lower()

    # Paying a credit card from another own product.
    if "transferencia entre productos" in text or "pago tarjeta" in text:
        return "card"
    if "compra" in text and ("tarjeta" in text or "transbank" in text):
        return "card"
    if "cuota" in text or ("crédito" in text and "consumo" in text):
        return "credit"
    if any(k in text for k in SERVICE_KEYWORDS):
        return "service"
    if "transferencia" in text or "tef" in text:
        return "transfer"
    if any(k in text for k in ("depósito", "nómina", "abono", "sueldo")):
        return "income"
    if any(k in text for k in ("tarjeta", "card", "transbank")):
        return "card"
    return "card"


def clean_description(subject: str, fallback: str) -> str:
    description = _TAG_RE.sub("", _PREFIX_RE.sub("", subject)).strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[: MAX_DESCRIPTION_LENGTH - 3] + "..."
    return description or fallback


def format_display_date(moment: datetime) -> str:
    """Short Spanish day + month, e.g. "16 feb"."""
    return f"{moment.day} {MONTH_ABBREVIATIONS[moment.month - 1]}"


def message_datetime(message: MailMessage) -> datetime:
    """When the message was received, in local time.

    Uses the provider's internal timestamp, then the Date header, then now.
    """
    if message.internal_date is not None:
        try:
            return datetime.fromtimestamp(message.internal_date / 1000)
        except (OverflowError, OSError, ValueError):
            logger.debug("invalid_internal_date", message_id=message.id, value=message.internal_date)

    header = message.header("Date")
    if header:
        try:
            parsed = parsedate_to_datetime(header)
        except (TypeError, ValueError, IndexError):
            parsed = None
        if parsed is not None:
            return parsed.astimezone() if parsed.tzinfo else parsed

    return datetime.now()


def classify(
    message_id: str,
    subject: str,
    body: str,
    sender: str,
    moment: datetime,
) -> Classification:
    """Turn already-extracted message fields into a FinancialEvent, or reject."""
    verdict = is_transaction_email(subject, body)
    if not verdict.accepted:
        return Classification(None, verdict.reason)

    amount = extract_amount(f"{subject} {body}")
    if amount is None:
        return Classification(None, "no amount found")

    source = sender_source(sender)
    event = FinancialEvent(
        id=message_id,
        date=moment.strftime("%Y-%m-%d"),
        display_date=format_display_date(moment),
        amount=amount,
        direction=determine_direction(subject, body),
        category=categorize(subject, body, sender),
        source=source,
        description=clean_description(subject, source),
    )
    return Classification(event, verdict.reason)


def message_to_event(message: MailMessage, rules: RuleSet) -> Classification:
    """Run the rule engine and the classifier over one fetched message."""
    subject = message.header("Subject")
    sender = message.header("From")

    if not sender.strip():
        return Classification(None, "missing From header")
    if not subject.strip():
        return Classification(None, "missing Subject header")

    body = message_body(message)

    decision = rules.evaluate(sender, subject, body)
    if not decision.allowed:
        logger.debug("message_rejected", message_id=message.id, reason=decision.reason)
        return Classification(None, decision.reason)

    result = classify(message.id, subject, body, sender, message_datetime(message))
    if result.event is None:
        logger.debug("message_rejected", message_id=message.id, reason=result.reason)
    else:
        logger.debug(
            "message_classified",
            message_id=message.id,
            reason=result.reason,
            amount=result.event.amount,
            category=result.event.category,
            direction=result.event.direction,
        )
    return result
