"""Amount parsing for Chilean peso notifications.

Amounts are written with ``.`` as thousands separator and ``,`` as decimal
separator ("$1.234.567", "$1.234,50").  Extraction runs three tiers over the
raw text and keeps the first valid match in priority order:

1. amount-bearing phrases ("monto transferido: $X", "total: $X", "$X", ...)
   accepted from MIN_AMOUNT upwards;
2. any currency-prefixed number from MIN_AMOUNT upwards;
3. any bare grouped number (``\\d{1,3}(\\.\\d{3})+``) from MIN_BARE_AMOUNT
   upwards, so phone extensions and dates are not mistaken for amounts.
"""

from __future__ import annotations

import math
import re

import structlog

from .constants import MIN_AMOUNT, MIN_BARE_AMOUNT

logger = structlog.get_logger(__name__)

AMOUNT_PATTERNS = [
    re.compile(r"monto\s*(?:transferido)?[\s:]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"\$\s*[\d.]+(?:,\d{1,2})?"),
    re.compile(r"CLP\s*[\d.]+", re.IGNORECASE),
    re.compile(r"monto[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"total[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"cargo[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"pago[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"valor[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"cuota[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"depósito[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"transferencia[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"abono[:\s]+\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"compra\s+(?:por|de)?\s*\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"retiro\s+(?:por|de)?\s*\$?\s*[\d.]+", re.IGNORECASE),
    re.compile(r"[\d.]+\s*(?:pesos|CLP)", re.IGNORECASE),
]

CURRENCY_PATTERN = re.compile(r"\$\s*[\d.]+")
BARE_NUMBER_PATTERN = re.compile(r"\b\d{1,3}(?:\.\d{3})+\b")

_NON_NUMERIC_RE = re.compile(r"[^\d.,]")


def parse_locale_amount(text: str) -> float | None:
    """Parse a dot-grouped, comma-decimal amount.

    "$1.234.567" -> 1234567.0, "1.234,50" -> 1234.5.  Returns None when
    nothing numeric remains or the value is not a positive finite number.
    """
    clean = _NON_NUMERIC_RE.sub("", text)
    clean = clean.replace(".", "").replace(",", ".", 1)
    try:
        amount = float(clean)
    except ValueError:
        return None
    if not math.isfinite(amount) or amount <= 0:
        return None
    return amount


def _first_match(pattern: re.Pattern[str], text: str, floor: float) -> float | None:
    for match in pattern.finditer(text):
        amount = parse_locale_amount(match.group(0))
        if amount is not None and amount >= floor:
            return amount
    return None


def extract_amount(text: str) -> float | None:
    """Find the transaction amount in free text, or None."""
    for pattern in AMOUNT_PATTERNS:
        amount = _first_match(pattern, text, MIN_AMOUNT)
        if amount is not None:
            logger.debug("amount_found", tier="phrase", pattern=pattern.pattern, amount=amount)
            return amount

    amount = _first_match(CURRENCY_PATTERN, text, MIN_AMOUNT)
    if amount is not None:
        logger.debug("amount_found", tier="currency", amount=amount)
        return amount

    amount = _first_match(BARE_NUMBER_PATTERN, text, MIN_BARE_AMOUNT)
    if amount is not None:
        logger.debug("amount_found", tier="bare_number", amount=amount)
        return amount

    logger.debug("amount_not_found", text_length=len(text))
    return None
