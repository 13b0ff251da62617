"""Tests for the orchestrator module."""

import pytest
from conftest import FakeMailbox, build_message

from mail_ledger import orchestrator, rules
from mail_ledger.errors import MailboxApiError, MailboxUnstableError
from mail_ledger.fetch import FetchClient
from mail_ledger.models import FinancialEvent, ScanSettings
from mail_ledger.orchestrator import build_search_query, quote_query_term, run_sync_pass, sort_events


def make_client(mailbox):
    return FetchClient(mailbox, sleep=lambda s: None)


def filler(message_id):
    return build_message(
        message_id,
        "Compra aprobada con tu tarjeta",
        "Compra aprobada por $10.000 con tarjeta terminada en 4321.",
        "BancoEstado <notificaciones@bancoestado.cl>",
    )


# --- query building ---


def test_quote_query_term_escapes():
    assert quote_query_term('a"b\\c\n  d') == '"a\\"b\\\\c d"'


def test_default_query():
    query = build_search_query(ScanSettings())
    assert query.startswith('(from:"banco de chile" OR from:"bancoestado" OR ')
    assert query.endswith(") newer_than:90d")


def test_query_with_keywords_and_exclusions():
    settings = ScanSettings(use_default_senders=False, days_to_scan=30)
    settings = rules.add_rule(settings, "sender", "santander")
    settings = rules.add_rule(settings, "keyword", "transferencia")
    settings = rules.add_rule(settings, "excluded_sender", "ofertas@santander.cl")
    settings = rules.add_rule(settings, "excluded_subject", "promo")
    settings = rules.add_rule(settings, "excluded_keyword", "cartola")

    assert build_search_query(settings) == (
        '(from:"santander") ("transferencia") -from:"ofertas@santander.cl" '
        '-subject:"promo" -"cartola" newer_than:30d'
    )


def test_disabled_rules_left_out_of_query():
    settings = rules.add_rule(ScanSettings(use_default_senders=False), "sender", "santander")
    settings = rules.add_rule(settings, "keyword", "transferencia")
    settings = rules.toggle_rule(settings, settings.keywords[0].id)
    assert build_search_query(settings) == '(from:"santander") newer_than:90d'


def test_no_senders_means_no_search():
    """Without senders nothing is searched at all."""
    mailbox = FakeMailbox()
    settings = ScanSettings(use_default_senders=False)
    assert build_search_query(settings) == ""

    result = run_sync_pass(make_client(mailbox), settings)
    assert result.events == []
    assert mailbox.list_calls == []


# --- run_sync_pass ---


def test_sync_pass_classifies_and_sorts(mailbox):
    phases = []
    result = run_sync_pass(make_client(mailbox), ScanSettings(), on_progress=lambda p: phases.append(p.phase))

    assert [e.id for e in result.events] == ["msg-transfer", "msg-card", "msg-income"]
    assert not result.diagnostics.degraded
    assert result.diagnostics.warning is None
    assert result.diagnostics.detail_requests == 4
    assert {"searching", "downloading", "processing"} <= set(phases)


def test_sync_pass_skips_processed_ids(mailbox):
    result = run_sync_pass(make_client(mailbox), ScanSettings(), processed_ids=["msg-transfer", "msg-promo"])

    assert [e.id for e in result.events] == ["msg-card", "msg-income"]
    fetched = [i for batch in mailbox.batch_calls for i in batch]
    assert "msg-transfer" not in fetched


def test_sync_pass_nothing_new(mailbox):
    result = run_sync_pass(make_client(mailbox), ScanSettings(), processed_ids=list(mailbox.order))
    assert result.events == []
    assert mailbox.batch_calls == []


def test_sync_pass_filters_categories(mailbox):
    settings = ScanSettings(enabled_categories=["income"])
    result = run_sync_pass(make_client(mailbox), settings)
    assert [e.id for e in result.events] == ["msg-income"]


def test_half_failed_downloads_degrade():
    """Up to half of the downloads may fail; the run is then degraded."""
    mailbox = FakeMailbox(filler(f"m{i}") for i in range(4))
    mailbox.broken["m0"] = MailboxApiError(404)
    mailbox.broken["m1"] = MailboxApiError(404)

    result = run_sync_pass(make_client(mailbox), ScanSettings())

    assert sorted(e.id for e in result.events) == ["m2", "m3"]
    assert result.diagnostics.degraded
    assert result.diagnostics.partial_detail_failures == 2
    assert "2/4" in result.diagnostics.warning


def test_too_many_failed_downloads_raise():
    mailbox = FakeMailbox(filler(f"m{i}") for i in range(4))
    for message_id in ("m0", "m1", "m2"):
        mailbox.broken[message_id] = MailboxApiError(404)

    with pytest.raises(MailboxUnstableError):
        run_sync_pass(make_client(mailbox), ScanSettings())


def test_unstable_ratio_counts_new_ids_only():
    """Already-processed ids are never downloaded, so they do not dilute failures."""
    mailbox = FakeMailbox(filler(f"m{i}") for i in range(6))
    for message_id in ("m0", "m1"):
        mailbox.broken[message_id] = MailboxApiError(404)

    with pytest.raises(MailboxUnstableError):
        run_sync_pass(make_client(mailbox), ScanSettings(), processed_ids=["m3", "m4", "m5"])

    fetched = {i for batch in mailbox.batch_calls for i in batch}
    assert fetched == {"m0", "m1", "m2"}


def test_unparseable_message_is_skipped(mailbox, monkeypatch):
    """A message that blows up during parsing is counted and skipped."""
    real = orchestrator.message_to_event

    def explode_on_card(message, rule_set):
        if message.id == "msg-card":
            raise KeyError("payload")
        return real(message, rule_set)

    monkeypatch.setattr(orchestrator, "message_to_event", explode_on_card)
    result = run_sync_pass(make_client(mailbox), ScanSettings())

    assert [e.id for e in result.events] == ["msg-transfer", "msg-income"]
    assert result.diagnostics.parsing_failures == 1
    assert result.diagnostics.degraded
    assert "could not be processed" in result.diagnostics.warning


def test_sort_events_is_stable():
    def event(event_id, day):
        return FinancialEvent(event_id, day, "", 1000, "expense", "card", "Banco", "x")

    events = [event("a", "2024-10-01"), event("b", "2024-10-05"), event("c", "2024-10-01")]
    assert [e.id for e in sort_events(events)] == ["b", "a", "c"]
