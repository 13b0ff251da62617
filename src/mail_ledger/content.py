"""Turn Gmail message payloads into plain text."""

from __future__ import annotations

import base64
import binascii
import html
import re

import structlog

from .models import MailMessage, MessagePart

logger = structlog.get_logger(__name__)

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")
_BLOCK_BREAK_RE = re.compile(r"<br\s*/?>|</p>|</div>|</tr>|</li>|</h[1-6]>", re.IGNORECASE)
_CELL_BREAK_RE = re.compile(r"</t[dh]>", re.IGNORECASE)
_INVISIBLE_RE = re.compile(r"<(style|script|head)\b.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


def decode_base64url(data: str) -> str:
    """Decode Gmail's URL-safe base64 into UTF-8 text ('' if undecodable)."""
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as exc:
        logger.debug("base64_decode_failed", error=str(exc))
        return ""
    return raw.decode("utf-8", errors="replace")


def strip_html(markup: str) -> str:
    """Basic HTML -> plain text conversion."""
    text = _INVISIBLE_RE.sub(" ", markup)
    text = _BLOCK_BREAK_RE.sub("\n", text)
    text = _CELL_BREAK_RE.sub(" ", text)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _collect(parts: list[MessagePart]) -> tuple[str, str]:
    """Walk a MIME tree and return the first (plain, html) bodies found."""
    plain = ""
    markup = ""

    for part in parts:
        if part.parts:
            nested = find_body_in_parts(part.parts)
            if nested and not plain:
                plain = nested

        if not part.body_data:
            continue

        decoded = decode_base64url(part.body_data)
        if not decoded:
            continue
        if part.mime_type == "text/plain":
            if not plain:
                plain = decoded
        elif part.mime_type == "text/html":
            if not markup:
                markup = decoded
        elif not plain and not markup:
            plain = decoded

    return plain, markup


def find_body_in_parts(parts: list[MessagePart]) -> str:
    """Prefer a text/plain body, fall back to stripped text/html."""
    plain, markup = _collect(parts)
    if plain:
        return plain
    if markup:
        return strip_html(markup)
    return ""


def message_body(message: MailMessage) -> str:
    """Return the readable body of *message*, falling back to its snippet."""
    body = ""
    payload = message.payload

    if payload.body_data:
        body = decode_base64url(payload.body_data)
        if "html" in payload.mime_type.lower():
            body = strip_html(body)
    elif payload.parts:
        body = find_body_in_parts(payload.parts)

    if not body.strip() and message.snippet:
        body = html.unescape(message.snippet)

    return body


def parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip())
    email = from_value.strip().strip("<>")
    return ("", email)


def sender_source(from_value: str) -> str:
    """Short human name for a sender: display name, else its mail domain."""
    name, email = parse_from_header(from_value)
    if name:
        return name
    if "@" in email:
        domain = email.rsplit("@", 1)[1]
        return domain.split(".")[0] or email
    return email
