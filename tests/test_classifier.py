"""Tests for the classifier module."""

from datetime import datetime, timezone

from conftest import build_message

from mail_ledger import rules
from mail_ledger.classifier import (
    categorize,
    classify,
    clean_description,
    determine_direction,
    format_display_date,
    is_transaction_email,
    message_datetime,
    message_to_event,
)
from mail_ledger.models import MailMessage, MessagePart, ScanSettings
from mail_ledger.rules import RuleSet

DEFAULT_RULES = RuleSet.from_settings(ScanSettings())


def test_transfer_message(transfer_message):
    """A completed transfer becomes an expense in the transfer category."""
    result = message_to_event(transfer_message, DEFAULT_RULES)
    event = result.event
    assert event is not None
    assert event.id == "msg-transfer"
    assert event.amount == 19843
    assert event.category == "transfer"
    assert event.direction == "expense"
    assert event.source == "Banco Santander"
    assert event.description == "Transferencia realizada por $19.843"
    assert event.date == "2024-10-24"
    assert event.display_date == "24 oct"


def test_card_purchase(card_message):
    event = message_to_event(card_message, DEFAULT_RULES).event
    assert event is not None
    assert event.amount == 45990
    assert event.category == "card"
    assert event.direction == "expense"


def test_salary_deposit(income_message):
    """Salary deposits are income."""
    event = message_to_event(income_message, DEFAULT_RULES).event
    assert event is not None
    assert event.amount == 1200000
    assert event.category == "income"
    assert event.direction == "income"


def test_marketing_rejected(promo_message):
    result = message_to_event(promo_message, DEFAULT_RULES)
    assert result.event is None
    assert "marketing" in result.reason


def test_credit_offer_rejected():
    """Pre-approved credit offers are not movements, even with an amount."""
    message = build_message(
        "msg-offer",
        "Tienes un crédito preaprobado por $5.000.000",
        "Solicítalo hoy desde la app.",
        "Banco Santander <ofertas@santander.cl>",
    )
    result = message_to_event(message, DEFAULT_RULES)
    assert result.event is None
    assert "credit offer" in result.reason


def test_emoji_subject_rejected():
    verdict = is_transaction_email("🎉 Gran oferta 🔥", "Compra aprobada por $10.000")
    assert not verdict.accepted
    assert "emoji" in verdict.reason


def test_marketing_subject_shape_rejected():
    """A subject wrapped in exclamation marks is a campaign."""
    verdict = is_transaction_email("¡Gracias por elegirnos!", "Tu transferencia realizada por $10.000")
    assert not verdict.accepted
    assert verdict.reason == "marketing subject"


def test_keyword_with_action_hint_accepted():
    verdict = is_transaction_email("Aviso de cargo", "Se registró un cargo en tu cuenta")
    assert verdict.accepted


def test_no_indicators_rejected():
    verdict = is_transaction_email("Hola", "Nos vemos pronto")
    assert not verdict.accepted
    assert verdict.reason == "no transaction indicators"


def test_sender_not_allowed():
    """Mail from senders outside the allow-list never becomes an event."""
    message = build_message(
        "msg-friend",
        "Transferencia realizada por $19.843",
        "Se ha realizado una transferencia desde tu cuenta corriente.",
        "Amigo <amigo@gmail.com>",
    )
    result = message_to_event(message, DEFAULT_RULES)
    assert result.event is None
    assert result.reason == "sender not allowed"


def test_missing_subject_rejected():
    message = MailMessage(
        id="m1",
        payload=MessagePart(headers=[("From", "Banco Santander <alertas@santander.cl>")]),
    )
    result = message_to_event(message, DEFAULT_RULES)
    assert result.event is None
    assert result.reason == "missing Subject header"


def test_excluded_sender_rule_is_reversible(transfer_message):
    """An exclusion rule blocks a message; disabling or removing it restores it."""
    settings = rules.add_rule(ScanSettings(), "excluded_sender", "alertas@santander.cl")
    rule_id = settings.excluded_senders[0].id

    blocked = message_to_event(transfer_message, RuleSet.from_settings(settings))
    assert blocked.event is None
    assert "excluded sender" in blocked.reason

    disabled = rules.toggle_rule(settings, rule_id)
    assert message_to_event(transfer_message, RuleSet.from_settings(disabled)).event is not None

    removed = rules.remove_rule(settings, rule_id)
    assert message_to_event(transfer_message, RuleSet.from_settings(removed)).event is not None


def test_determine_direction():
    assert determine_direction("Depósito de $10.000", "en tu cuenta") == "income"
    assert determine_direction("Pago exitoso", "Has recibido tu comprobante") == "expense"
    assert determine_direction("Movimiento", "sin detalle") == "expense"


def test_categorize():
    assert categorize("Pago de cuota crédito", "", "") == "credit"
    assert categorize("Pago cuenta Enel", "", "") == "service"
    assert categorize("Pago tarjeta", "transferencia entre productos", "") == "card"
    assert categorize("Aviso", "movimiento", "banco") == "card"


def test_clean_description():
    """Reply prefixes and bracket tags are removed."""
    assert clean_description("RE: [Aviso] Compra aprobada", "Banco") == "Compra aprobada"
    assert clean_description("[Aviso]", "Banco") == "Banco"


def test_clean_description_truncates():
    description = clean_description("Transferencia " * 6, "Banco")
    assert len(description) == 50
    assert description.endswith("...")


def test_format_display_date():
    assert format_display_date(datetime(2024, 2, 16)) == "16 feb"
    assert format_display_date(datetime(2024, 9, 3)) == "3 sept"


def test_message_datetime_from_date_header():
    """Without an internal date the Date header is used."""
    message = MailMessage(
        id="m1",
        payload=MessagePart(headers=[("Date", "Thu, 24 Oct 2024 10:00:00 -0300")]),
    )
    assert message_datetime(message) == datetime(2024, 10, 24, 13, 0, tzinfo=timezone.utc)


def test_classify_without_amount():
    result = classify("m1", "Compra aprobada", "Gracias por tu compra", "Banco <a@banco.cl>", datetime(2024, 10, 1))
    assert result.event is None
    assert result.reason == "no amount found"
