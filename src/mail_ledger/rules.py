"""Exclusion/inclusion rules and scan-settings maintenance.

Rules are evaluated before classification.  A message must come from an
allowed sender and must not hit any enabled exclusion; exclusions always win
over the allow-list.  All matching is case-insensitive substring matching.
"""

from __future__ import annotations

import dataclasses
import re
import secrets
import time
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from .constants import (
    CATEGORIES,
    DEFAULT_DAYS_TO_SCAN,
    DEFAULT_FINANCIAL_SENDERS,
    MAX_DAYS_TO_SCAN,
    MAX_RULE_VALUE_LENGTH,
    MAX_RULES_PER_LIST,
    MIN_DAYS_TO_SCAN,
)
from .models import EmailRule, ScanSettings

logger = structlog.get_logger(__name__)

RULE_TYPES = ["sender", "keyword", "subject", "excluded_sender", "excluded_keyword", "excluded_subject"]

# Subject rules share the keyword list.
RULE_LIST_BY_TYPE = {
    "sender": "custom_senders",
    "keyword": "keywords",
    "subject": "keywords",
    "excluded_sender": "excluded_senders",
    "excluded_keyword": "excluded_keywords",
    "excluded_subject": "excluded_subjects",
}
RULE_LISTS = ["custom_senders", "keywords", "excluded_senders", "excluded_keywords", "excluded_subjects"]

_SENDER_EXTRA_CHARS = "@._+-"
_TEXT_EXTRA_CHARS = ".,:/%()-"
_WHITESPACE_RE = re.compile(r"\s+")


# --- Sanitization ---


def sanitize_rule_value(rule_type: str, value: str) -> str:
    """Normalize a user-supplied rule value; '' means "reject this value"."""
    extra = _SENDER_EXTRA_CHARS if rule_type in ("sender", "excluded_sender") else _TEXT_EXTRA_CHARS
    normalized = _WHITESPACE_RE.sub(" ", unicodedata.normalize("NFKC", value)).strip()
    cleaned = "".join(ch if ch.isalnum() or ch.isspace() or ch in extra else " " for ch in normalized)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip().lower()
    if len(cleaned) < 2:
        return ""
    return cleaned[:MAX_RULE_VALUE_LENGTH]


def create_rule_id() -> str:
    return f"rule-{int(time.time() * 1000)}-{secrets.token_hex(5)}"


def _safe_timestamp(value: object) -> str:
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
            return value
        except ValueError:
            pass
    return datetime.now(timezone.utc).isoformat()


def _sanitize_days(value: object) -> int:
    if isinstance(value, bool):
        return DEFAULT_DAYS_TO_SCAN
    try:
        days = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_DAYS_TO_SCAN
    return max(MIN_DAYS_TO_SCAN, min(MAX_DAYS_TO_SCAN, days))


def _sanitize_categories(value: object) -> list[str]:
    if not isinstance(value, list):
        return list(CATEGORIES)
    unique: list[str] = []
    for item in value:
        if item in CATEGORIES and item not in unique:
            unique.append(item)
    return unique or list(CATEGORIES)


def _sanitize_rule_list(raw: object, fallback_type: str) -> list[EmailRule]:
    if not isinstance(raw, list):
        return []

    rules: list[EmailRule] = []
    seen: set[str] = set()
    for item in raw:
        if isinstance(item, EmailRule):
            item = dataclasses.asdict(item)
        if not isinstance(item, dict):
            continue
        rule_type = item.get("type") if item.get("type") in RULE_TYPES else fallback_type
        raw_value = item.get("value") if isinstance(item.get("value"), str) else ""
        value = sanitize_rule_value(rule_type, raw_value)
        if not value or value in seen:
            continue
        seen.add(value)
        rule_id = item.get("id")
        rules.append(EmailRule(
            id=rule_id if isinstance(rule_id, str) and rule_id.strip() else create_rule_id(),
            type=rule_type,
            value=value,
            enabled=item.get("enabled") is not False,
            created_at=_safe_timestamp(item.get("created_at", item.get("createdAt"))),
        ))
        if len(rules) >= MAX_RULES_PER_LIST:
            break
    return rules


def normalize_scan_settings(raw: object) -> ScanSettings:
    """Build a valid ScanSettings from untrusted data.

    Accepts a ScanSettings or a dict (snake_case or camelCase keys).  Missing
    or invalid fields fall back to defaults; malformed rules are dropped.
    """
    if isinstance(raw, ScanSettings):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        return ScanSettings()

    def pick(snake: str, camel: str) -> object:
        return raw[snake] if snake in raw else raw.get(camel)

    use_defaults = pick("use_default_senders", "useDefaultSenders")
    return ScanSettings(
        custom_senders=_sanitize_rule_list(pick("custom_senders", "customSenders"), "sender"),
        keywords=_sanitize_rule_list(pick("keywords", "keywords"), "keyword"),
        excluded_senders=_sanitize_rule_list(pick("excluded_senders", "excludedSenders"), "excluded_sender"),
        excluded_keywords=_sanitize_rule_list(pick("excluded_keywords", "excludedKeywords"), "excluded_keyword"),
        excluded_subjects=_sanitize_rule_list(pick("excluded_subjects", "excludedSubjects"), "excluded_subject"),
        use_default_senders=use_defaults if isinstance(use_defaults, bool) else True,
        days_to_scan=_sanitize_days(pick("days_to_scan", "daysToScan")),
        enabled_categories=_sanitize_categories(pick("enabled_categories", "enabledCategories")),
    )


# --- Settings mutators (return new ScanSettings) ---


def add_rule(settings: ScanSettings, rule_type: str, value: str) -> ScanSettings:
    """Add a rule; invalid, duplicate or over-cap values leave *settings* unchanged."""
    if rule_type not in RULE_LIST_BY_TYPE:
        raise ValueError(f"Unknown rule type: {rule_type!r}")
    clean = sanitize_rule_value(rule_type, value)
    if not clean:
        logger.info("rule_rejected", rule_type=rule_type, reason="invalid value")
        return settings

    list_name = RULE_LIST_BY_TYPE[rule_type]
    current: list[EmailRule] = getattr(settings, list_name)
    if any(rule.value == clean for rule in current):
        logger.info("rule_rejected", rule_type=rule_type, reason="duplicate", value=clean)
        return settings
    if len(current) >= MAX_RULES_PER_LIST:
        logger.info("rule_rejected", rule_type=rule_type, reason="list full")
        return settings

    rule = EmailRule(
        id=create_rule_id(),
        type=rule_type,
        value=clean,
        enabled=True,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    return dataclasses.replace(settings, **{list_name: [*current, rule]})


def remove_rule(settings: ScanSettings, rule_id: str) -> ScanSettings:
    """Remove the rule with *rule_id* from every list."""
    changes = {name: [r for r in getattr(settings, name) if r.id != rule_id] for name in RULE_LISTS}
    return dataclasses.replace(settings, **changes)


def toggle_rule(settings: ScanSettings, rule_id: str) -> ScanSettings:
    """Flip ``enabled`` on the rule with *rule_id*, wherever it lives."""
    changes = {
        name: [dataclasses.replace(r, enabled=not r.enabled) if r.id == rule_id else r
               for r in getattr(settings, name)]
        for name in RULE_LISTS
    }
    return dataclasses.replace(settings, **changes)


def find_rule(settings: ScanSettings, rule_id: str) -> EmailRule | None:
    for name in RULE_LISTS:
        for rule in getattr(settings, name):
            if rule.id == rule_id:
                return rule
    return None


def toggle_category(settings: ScanSettings, category: str) -> ScanSettings:
    """Enable/disable a category; the last enabled category stays enabled."""
    if category not in CATEGORIES:
        raise ValueError(f"Unknown category: {category!r}")
    enabled = settings.enabled_categories
    if category in enabled:
        if len(enabled) == 1:
            return settings
        return dataclasses.replace(settings, enabled_categories=[c for c in enabled if c != category])
    return dataclasses.replace(settings, enabled_categories=[*enabled, category])


def set_days_to_scan(settings: ScanSettings, days: int) -> ScanSettings:
    return dataclasses.replace(settings, days_to_scan=max(MIN_DAYS_TO_SCAN, min(MAX_DAYS_TO_SCAN, int(days))))


def set_use_default_senders(settings: ScanSettings, enabled: bool) -> ScanSettings:
    return dataclasses.replace(settings, use_default_senders=bool(enabled))


# --- Evaluation ---


def enabled_values(rules: list[EmailRule]) -> list[str]:
    return [v for v in (r.value.strip().lower() for r in rules if r.enabled) if v]


def allowed_senders(settings: ScanSettings) -> list[str]:
    """Default senders (when enabled) plus enabled custom senders, de-duplicated."""
    senders = list(DEFAULT_FINANCIAL_SENDERS) if settings.use_default_senders else []
    for value in enabled_values(settings.custom_senders):
        if value not in senders:
            senders.append(value)
    return senders


@dataclass
class RuleDecision:
    allowed: bool
    reason: str


@dataclass
class RuleSet:
    """The enabled rules of a ScanSettings, ready for matching."""

    allowed_senders: list[str]
    excluded_senders: list[str]
    excluded_subjects: list[str]
    excluded_keywords: list[str]

    @classmethod
    def from_settings(cls, settings: ScanSettings) -> RuleSet:
        return cls(
            allowed_senders=allowed_senders(settings),
            excluded_senders=enabled_values(settings.excluded_senders),
            excluded_subjects=enabled_values(settings.excluded_subjects),
            excluded_keywords=enabled_values(settings.excluded_keywords),
        )

    def evaluate(self, sender: str, subject: str, body: str) -> RuleDecision:
        sender_lower = sender.lower()
        subject_lower = subject.lower()
        text = f"{subject} {body}".lower()

        if not any(allowed.lower() in sender_lower for allowed in self.allowed_senders):
            return RuleDecision(False, "sender not allowed")
        for value in self.excluded_senders:
            if value in sender_lower:
                return RuleDecision(False, f"excluded sender: {value!r}")
        for value in self.excluded_subjects:
            if value in subject_lower:
                return RuleDecision(False, f"excluded subject: {value!r}")
        for value in self.excluded_keywords:
            if value in text:
                return RuleDecision(False, f"excluded keyword: {value!r}")
        return RuleDecision(True, "allowed")
