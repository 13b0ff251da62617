"""CLI entry point for mail-ledger."""

from __future__ import annotations

import time

import click

from . import __version__
from .auth import GoogleAuthProvider
from .config import AppConfig
from .constants import CATEGORIES, MANUAL_SYNC_MIN_INTERVAL_SECONDS
from .display import (
    console,
    create_progress,
    display_events,
    display_rules,
    display_settings,
    display_summary,
    display_sync_status,
)
from .engine import SyncEngine
from .errors import AuthError, ConfigurationError, LoginError, MirrorError
from .export import export_events
from .log import setup_logging
from .mirror import LedgerMirror
from .notifications import ConsoleNotifier
from .rules import RULE_TYPES, find_rule
from .state_store import PreferencesStore

_ON_OFF = click.Choice(["on", "off"])


def build_engine(config: AppConfig, with_mirror: bool = True) -> SyncEngine:
    """Wire a SyncEngine with the real Google, SQLite and console collaborators."""
    mirror = None
    if with_mirror and config.mirror_db:
        try:
            mirror = LedgerMirror(config.mirror_db)
        except MirrorError as e:
            console.print(f"[yellow]Mirror disabled:[/yellow] {e}")
    return SyncEngine(
        GoogleAuthProvider(config),
        mirror=mirror,
        notifier=ConsoleNotifier(console),
        store=PreferencesStore(),
    )


def _settings_engine(ctx: click.Context) -> SyncEngine:
    return build_engine(ctx.obj, with_mirror=False)


def _open_mirror(config: AppConfig) -> LedgerMirror:
    if not config.mirror_db:
        raise click.ClickException(
            "Mirror is not enabled. Set MAIL_LEDGER_MIRROR_DB or MAIL_LEDGER_MIRROR_ENABLED=true."
        )
    try:
        return LedgerMirror(config.mirror_db)
    except MirrorError as e:
        raise click.ClickException(str(e)) from e


def _show_month(engine: SyncEngine, month: str) -> None:
    display_events(engine.monthly_events(month), title=f"Movements {month}")
    display_summary(engine.monthly_summary(month))


@click.group()
@click.version_option(version=__version__, prog_name="mail-ledger")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """mail-ledger - track bank movements from your Gmail notifications."""
    config = AppConfig.from_env()
    setup_logging("DEBUG" if verbose else config.log_level, json_output=config.json_logs)
    ctx.obj = config


@cli.command()
@click.option("-m", "--month", default=None, help="Month to display (YYYY-MM). Defaults to the newest month.")
@click.option("-o", "--export", "export_path", default=None, help="Write the whole ledger to this file.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "json"]),
    default="csv",
    help="Export format.",
)
@click.option(
    "--watch",
    type=click.IntRange(min=MANUAL_SYNC_MIN_INTERVAL_SECONDS),
    default=None,
    help="Keep running and sync incrementally every N seconds.",
)
@click.pass_context
def sync(ctx: click.Context, month: str | None, export_path: str | None, fmt: str, watch: int | None) -> None:
    """Sign in with Google and build the ledger from your mailbox."""
    config: AppConfig = ctx.obj
    try:
        config.require_valid()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    engine = build_engine(config)

    with create_progress("Syncing") as progress:
        task = progress.add_task("Signing in...", total=None)

        def on_progress(p) -> None:
            progress.update(task, description=p.message, completed=p.current_step, total=p.total_steps or None)

        engine.on_progress = on_progress
        try:
            count = engine.login()
        except LoginError as e:
            raise click.ClickException(f"Login failed: {e}") from e

    console.print(f"Signed in as [bold]{engine.session.email}[/bold]: {count} movements found")
    display_sync_status(engine.sync_status, engine.sync_error, engine.sync_warning)

    if month:
        try:
            engine.set_selected_month(month)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--month") from e
    _show_month(engine, engine.preferences.selected_month)

    if export_path:
        export_events(engine.events, format=fmt, output_path=export_path)
        console.print(f"Ledger saved to {export_path}")

    if not watch:
        return

    console.print(f"[dim]Watching for new movements every {watch}s (Ctrl+C to stop)...[/dim]")
    try:
        while engine.is_authenticated:
            time.sleep(watch)
            engine.sync_events()
            display_sync_status(engine.sync_status, engine.sync_error, engine.sync_warning)
            if engine.sync_status == "success" and engine.metadata.last_sync_event_count:
                _show_month(engine, engine.preferences.selected_month)
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")
    finally:
        engine.logout()


@cli.command()
@click.pass_context
def auth(ctx: click.Context) -> None:
    """Test Google sign-in and Gmail access."""
    config: AppConfig = ctx.obj
    try:
        config.require_valid()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    provider = GoogleAuthProvider(config)
    try:
        token = provider.request_token(force_consent=True)
        user = provider.fetch_user_info(token.access_token)
    except AuthError as e:
        raise click.ClickException(f"Authentication failed: {e}") from e
    console.print(f"[green]Authenticated as {user.email}[/green]")


# --- rules ---


@cli.group(name="rules")
def rules_group() -> None:
    """Manage sender/keyword allow and exclusion rules."""


@rules_group.command(name="list")
@click.pass_context
def rules_list(ctx: click.Context) -> None:
    """Show all rules."""
    display_rules(_settings_engine(ctx).scan_settings)


@rules_group.command(name="add")
@click.argument("rule_type", type=click.Choice(RULE_TYPES))
@click.argument("value")
@click.pass_context
def rules_add(ctx: click.Context, rule_type: str, value: str) -> None:
    """Add a rule of RULE_TYPE matching VALUE."""
    engine = _settings_engine(ctx)
    before = engine.scan_settings
    engine.add_rule(rule_type, value)
    if engine.scan_settings is before:
        raise click.ClickException("Rule not added: value is invalid, duplicated, or the list is full.")
    console.print("[green]Rule added.[/green]")


@rules_group.command(name="remove")
@click.argument("rule_id")
@click.pass_context
def rules_remove(ctx: click.Context, rule_id: str) -> None:
    """Remove the rule RULE_ID."""
    engine = _settings_engine(ctx)
    if find_rule(engine.scan_settings, rule_id) is None:
        raise click.ClickException(f"No rule with id {rule_id}.")
    engine.remove_rule(rule_id)
    console.print("[green]Rule removed.[/green]")


@rules_group.command(name="toggle")
@click.argument("rule_id")
@click.pass_context
def rules_toggle(ctx: click.Context, rule_id: str) -> None:
    """Enable or disable the rule RULE_ID."""
    engine = _settings_engine(ctx)
    if find_rule(engine.scan_settings, rule_id) is None:
        raise click.ClickException(f"No rule with id {rule_id}.")
    engine.toggle_rule(rule_id)
    rule = find_rule(engine.scan_settings, rule_id)
    console.print(f"Rule {rule_id} is now {'enabled' if rule.enabled else 'disabled'}.")


# --- settings ---


@cli.group(name="settings")
def settings_group() -> None:
    """Show or change scan settings and preferences."""


@settings_group.command(name="show")
@click.pass_context
def settings_show(ctx: click.Context) -> None:
    """Show current settings."""
    display_settings(_settings_engine(ctx).preferences)


@settings_group.command(name="days")
@click.argument("days", type=int)
@click.pass_context
def settings_days(ctx: click.Context, days: int) -> None:
    """Scan the last DAYS days (1-365)."""
    engine = _settings_engine(ctx)
    engine.set_days_to_scan(days)
    console.print(f"Days to scan: {engine.scan_settings.days_to_scan}")


@settings_group.command(name="category")
@click.argument("category", type=click.Choice(CATEGORIES))
@click.pass_context
def settings_category(ctx: click.Context, category: str) -> None:
    """Enable or disable CATEGORY."""
    engine = _settings_engine(ctx)
    was_enabled = category in engine.scan_settings.enabled_categories
    engine.toggle_category(category)
    if was_enabled and category in engine.scan_settings.enabled_categories:
        raise click.ClickException("At least one category must stay enabled.")
    state = "enabled" if category in engine.scan_settings.enabled_categories else "disabled"
    console.print(f"Category {category} {state}.")


@settings_group.command(name="default-senders")
@click.argument("state", type=_ON_OFF)
@click.pass_context
def settings_default_senders(ctx: click.Context, state: str) -> None:
    """Use the built-in list of financial senders (on/off)."""
    _settings_engine(ctx).set_use_default_senders(state == "on")
    console.print(f"Default senders {state}.")


@settings_group.command(name="notifications")
@click.argument("state", type=_ON_OFF)
@click.pass_context
def settings_notifications(ctx: click.Context, state: str) -> None:
    """Notify about new movements found while watching (on/off)."""
    _settings_engine(ctx).set_notifications_enabled(state == "on")
    console.print(f"Notifications {state}.")


@settings_group.command(name="dark-mode")
@click.pass_context
def settings_dark_mode(ctx: click.Context) -> None:
    """Toggle dark mode."""
    engine = _settings_engine(ctx)
    engine.toggle_dark_mode()
    console.print(f"Dark mode {'on' if engine.preferences.dark_mode else 'off'}.")


# --- mirror ---


@cli.group(name="mirror")
def mirror_group() -> None:
    """Inspect the SQLite mirror of the ledger."""


@mirror_group.command(name="info")
@click.pass_context
def mirror_info(ctx: click.Context) -> None:
    """Show mirror statistics."""
    with _open_mirror(ctx.obj) as mirror:
        info = mirror.get_info()

    if not info["event_count"]:
        console.print("[dim]Mirror is empty.[/dim]")
        return

    console.print(f"[bold]Database size:[/bold] {info['db_file_size'] / 1024:.1f} KB")
    console.print(f"[bold]Users:[/bold] {info['user_count']}")
    console.print(f"[bold]Events:[/bold] {info['event_count']}")
    console.print(f"[bold]Last write:[/bold] {info['last_write']}")


@mirror_group.command(name="clear")
@click.pass_context
def mirror_clear(ctx: click.Context) -> None:
    """Delete everything stored in the mirror."""
    with _open_mirror(ctx.obj) as mirror:
        try:
            mirror.clear()
        except MirrorError as e:
            raise click.ClickException(str(e)) from e
    console.print("[green]Mirror cleared.[/green]")


@mirror_group.command(name="events")
@click.pass_context
def mirror_events(ctx: click.Context) -> None:
    """List mirrored events per user."""
    with _open_mirror(ctx.obj) as mirror:
        try:
            users = mirror.list_users()
            if not users:
                console.print("[dim]Mirror is empty.[/dim]")
                return
            for user in users:
                display_events(mirror.get_events(user["id"]), title=f"Mirrored movements ({user['email']})")
        except MirrorError as e:
            raise click.ClickException(str(e)) from e


@mirror_group.command(name="delete")
@click.argument("email_id")
@click.pass_context
def mirror_delete(ctx: click.Context, email_id: str) -> None:
    """Delete the mirrored event created from message EMAIL_ID."""
    with _open_mirror(ctx.obj) as mirror:
        try:
            deleted = sum(
                mirror.delete_event_by_external_id(user["id"], email_id) for user in mirror.list_users()
            )
        except MirrorError as e:
            raise click.ClickException(str(e)) from e
    if not deleted:
        raise click.ClickException(f"No mirrored event for message {email_id}.")
    console.print(f"[green]Deleted {deleted} mirrored event(s).[/green]")
