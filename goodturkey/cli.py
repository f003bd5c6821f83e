"""Command-line interface for goodturkey."""

import asyncio
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import click
from rich.console import Console
from rich.table import Table

from goodturkey.agent import RuleCache, RuleEnforcer, SyncClient, SyncConfig, run_periodic_sync
from goodturkey.config import Config, load_config, merge_cli_options
from goodturkey.errors import (
    GoodTurkeyError,
    SyncAuthError,
    UnlockNotReady,
    UnlockNotRequested,
    ValidationError,
)
from goodturkey.models import Restriction, SiteStatus, TimeWindow
from goodturkey.policies import PolicyService, RestrictionChange, UnlockLifecycle
from goodturkey.policies.schedule import DAY_NAMES, parse_day
from goodturkey.storage import SiteStore

console = Console()

STATE_STYLES = {
    "locked": "green",
    "unlock_pending": "yellow",
    "unlock_ready": "red",
    "inactive": "dim",
}


def format_remaining(remaining_ms: Optional[int]) -> str:
    """Render a countdown like "5h 59m 59s"."""
    if remaining_ms is None:
        return "-"
    total_seconds = -(-remaining_ms // 1000)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def format_window(window: TimeWindow) -> str:
    day = DAY_NAMES[window.day_of_week] if window.day_of_week is not None else "every day"
    return f"{day} {window.start.strftime('%H:%M')}-{window.end.strftime('%H:%M')}"


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _report_error(error: GoodTurkeyError) -> None:
    if isinstance(error, UnlockNotReady):
        console.print(
            f"[red]Unlock not ready:[/red] waiting period not complete, "
            f"{format_remaining(error.remaining_ms)} remaining"
        )
    elif isinstance(error, UnlockNotRequested):
        console.print(
            "[red]Unlock not requested:[/red] run 'goodturkey request-unlock' first "
            "and wait for the delay to pass"
        )
    else:
        console.print(f"[red]Error: {error}[/red]")


@contextmanager
def open_service(ctx: click.Context) -> Iterator[PolicyService]:
    """Open the site store and yield a PolicyService; report domain errors and exit 1."""
    cfg: Config = ctx.obj["config"]

    try:
        with SiteStore(cfg.db_path) as store:
            yield PolicyService(
                store,
                clock=ctx.obj["clock"],
                lifecycle=UnlockLifecycle(cfg.unlock_delay),
            )
    except GoodTurkeyError as e:
        _report_error(e)
        sys.exit(1)


def print_status(site: Restriction, status: SiteStatus) -> None:
    style = STATE_STYLES.get(status.state, "white")
    console.print(f"[bold]{site.pattern}[/bold] [{style}]{status.state}[/{style}]")
    if status.remaining_ms is not None:
        if status.ready:
            console.print("  [red]Unlock ready: site can be deactivated or deleted[/red]")
        else:
            console.print(f"  Unlock in {format_remaining(status.remaining_ms)}")


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to config file (default: searches standard locations)",
)
@click.option(
    "--db",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to the DuckDB database file",
)
@click.option("--user", type=str, default=None, help="Owner id for blocked sites (default: local)")
@click.option("--delay-hours", type=float, default=None, help="Unlock delay in hours (default from config, 6)")
@click.option("--timezone", "tz_name", type=str, default=None, help="IANA timezone for access windows (default: system local)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    db: Path | None,
    user: str | None,
    delay_hours: float | None,
    tz_name: str | None,
    verbose: bool,
) -> None:
    """goodturkey - Block distracting sites, with a cooling-off period to unblock."""
    ctx.ensure_object(dict)

    try:
        cfg = merge_cli_options(
            load_config(config), db=db, user=user, delay_hours=delay_hours, timezone=tz_name,
        )
    except GoodTurkeyError as e:
        console.print(f"[red]Config error: {e}[/red]")
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if verbose else cfg.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Ensure parent directory exists
    cfg.db_path.parent.mkdir(parents=True, exist_ok=True)

    ctx.obj["config"] = cfg
    ctx.obj["clock"] = cfg.make_clock()


# ----------------------------------------------------------------------
# Blocked sites
# ----------------------------------------------------------------------


@main.command()
@click.argument("url")
@click.option("--category", "category_id", type=str, default=None, help="Category id")
@click.pass_context
def add(ctx: click.Context, url: str, category_id: str | None) -> None:
    """Block a site (blocked at all times until windows are added)."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        site = service.add_site(cfg.user_id, url, category_id)
        console.print(f"[green]Blocking {site.pattern}[/green] [dim]({site.id})[/dim]")


@main.command(name="list")
@click.pass_context
def list_sites(ctx: click.Context) -> None:
    """Show blocked sites with their lock state."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        sites = service.list_sites(cfg.user_id)
        categories = {c.id: c.name for c in service.list_categories(cfg.user_id)}

        if not sites:
            console.print("[yellow]No blocked sites. Add one with 'goodturkey add <url>'.[/yellow]")
            return

        now = service.clock.now()
        table = Table(title="Blocked Sites")
        table.add_column("ID", style="dim")
        table.add_column("Site")
        table.add_column("State")
        table.add_column("Unlock in", justify="right")
        table.add_column("Windows")
        table.add_column("Category")
        table.add_column("Attempts", justify="right")

        for site in sites:
            status = service.status(site, now)
            style = STATE_STYLES.get(status.state, "white")
            windows = ", ".join(format_window(w) for w in site.windows) or "always blocked"
            table.add_row(
                site.id[:8],
                site.pattern,
                f"[{style}]{status.state}[/{style}]",
                format_remaining(status.remaining_ms),
                windows,
                categories.get(site.category_id or "", "-"),
                str(site.access_attempts),
            )

        console.print(table)


@main.command()
@click.argument("site_id")
@click.option("--json", "as_json", is_flag=True, help="Print the status view as JSON")
@click.pass_context
def show(ctx: click.Context, site_id: str, as_json: bool) -> None:
    """Show one blocked site."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        site = service.get_site(cfg.user_id, site_id)
        status = service.status(site)

        if as_json:
            click.echo(json.dumps({
                "id": site.id,
                "url": site.pattern,
                "active": status.active,
                "unlockRequestedAt": status.unlock_requested_at.isoformat() if status.unlock_requested_at else None,
                "ready": status.ready,
                "remainingMs": status.remaining_ms,
            }, indent=2))
            return

        print_status(site, status)
        console.print(f"  ID: {site.id}")
        console.print(f"  Created: {format_timestamp(site.created_at)}")
        console.print(f"  Unlock requested: {format_timestamp(site.unlock_requested_at)}")
        console.print(f"  Access attempts: {site.access_attempts}")
        if site.windows:
            console.print("  Allowed during:")
            for window in site.windows:
                console.print(f"    {format_window(window)} [dim]({window.id})[/dim]")
        else:
            console.print("  Allowed during: never (blocked 24/7)")


@main.command()
@click.argument("site_id")
@click.option("--url", type=str, default=None, help="New hostname pattern")
@click.option("--category", "category_id", type=str, default=None, help="New category id")
@click.option("--no-category", is_flag=True, help="Remove the category")
@click.option("--active/--inactive", default=None, help="Reactivate, or deactivate (needs a completed unlock)")
@click.pass_context
def update(
    ctx: click.Context,
    site_id: str,
    url: str | None,
    category_id: str | None,
    no_category: bool,
    active: bool | None,
) -> None:
    """Update a blocked site.

    Any update other than a deactivation cancels a pending unlock request.
    """
    cfg: Config = ctx.obj["config"]
    change = RestrictionChange(
        pattern=url,
        active=active,
        category_id=category_id,
        clear_category=no_category,
    )

    with open_service(ctx) as service:
        site = service.update_site(cfg.user_id, site_id, change)
        print_status(site, service.status(site))


@main.command(name="request-unlock")
@click.argument("site_id")
@click.pass_context
def request_unlock(ctx: click.Context, site_id: str) -> None:
    """Start the waiting period before a site can be deactivated or deleted."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        status = service.request_unlock(cfg.user_id, site_id)
        if status.state == "inactive":
            console.print("[yellow]Site is inactive; nothing to unlock[/yellow]")
        elif status.ready:
            console.print("[red]Unlock ready: site can be deactivated or deleted[/red]")
        else:
            console.print(f"[yellow]Unlock requested. Ready in {format_remaining(status.remaining_ms)}[/yellow]")


@main.command(name="cancel-unlock")
@click.argument("site_id")
@click.pass_context
def cancel_unlock(ctx: click.Context, site_id: str) -> None:
    """Cancel a pending unlock request."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        service.cancel_unlock(cfg.user_id, site_id)
        console.print("[green]Unlock cancelled; site stays locked[/green]")


@main.command()
@click.argument("site_id")
@click.pass_context
def deactivate(ctx: click.Context, site_id: str) -> None:
    """Stop blocking a site (only once its unlock is ready)."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        site = service.deactivate(cfg.user_id, site_id)
        console.print(f"[yellow]{site.pattern} deactivated[/yellow]")


@main.command()
@click.argument("site_id")
@click.pass_context
def activate(ctx: click.Context, site_id: str) -> None:
    """Start blocking a site again."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        site = service.activate(cfg.user_id, site_id)
        console.print(f"[green]{site.pattern} active[/green]")


@main.command()
@click.argument("site_id")
@click.pass_context
def delete(ctx: click.Context, site_id: str) -> None:
    """Delete a blocked site (only once its unlock is ready)."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        service.delete_site(cfg.user_id, site_id)
        console.print("[yellow]Site deleted[/yellow]")


@main.command()
@click.argument("url")
@click.pass_context
def check(ctx: click.Context, url: str) -> None:
    """Check whether navigating to URL is allowed right now.

    Exits 0 when allowed and 2 when blocked.
    """
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        decision = service.check_url(cfg.user_id, url)

    if decision.blocked and decision.restriction is not None:
        console.print(f"[red]BLOCKED[/red] {decision.hostname} (rule: {decision.restriction.pattern})")
        sys.exit(2)
    console.print(f"[green]ALLOWED[/green] {decision.hostname or url}")


# ----------------------------------------------------------------------
# Access windows
# ----------------------------------------------------------------------


@main.group()
def window() -> None:
    """Manage the windows during which a blocked site is allowed."""


@window.command(name="add")
@click.argument("site_id")
@click.argument("start")
@click.argument("end")
@click.option("--day", type=str, default=None, help="Day (sun..sat or 0-6, 0=Sunday); default every day")
@click.pass_context
def window_add(ctx: click.Context, site_id: str, start: str, end: str, day: str | None) -> None:
    """Allow SITE_ID between START and END (HH:MM)."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        day_of_week = parse_day(day)
        if day_of_week == -1:
            raise ValidationError(f"Unknown day: {day}")
        tw = service.add_window(cfg.user_id, site_id, start, end, day_of_week)
        console.print(f"[green]Allowed {format_window(tw)}[/green] [dim]({tw.id})[/dim]")


@window.command(name="remove")
@click.argument("window_id")
@click.pass_context
def window_remove(ctx: click.Context, window_id: str) -> None:
    """Remove an access window."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        service.remove_window(cfg.user_id, window_id)
        console.print("[green]Window removed[/green]")


# ----------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------


@main.group()
def category() -> None:
    """Manage categories."""


@category.command(name="add")
@click.argument("name")
@click.option("--color", type=str, default=None, help="Hex color (default: #6B7280)")
@click.pass_context
def category_add(ctx: click.Context, name: str, color: str | None) -> None:
    """Create a category."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        cat = service.add_category(cfg.user_id, name, color)
        console.print(f"[green]Category {cat.name}[/green] [dim]({cat.id})[/dim]")


@category.command(name="list")
@click.pass_context
def category_list(ctx: click.Context) -> None:
    """List categories."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        categories = service.list_categories(cfg.user_id)

    if not categories:
        console.print("[yellow]No categories[/yellow]")
        return

    table = Table(title="Categories")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Color")
    for cat in categories:
        table.add_row(cat.id, cat.name, f"[{cat.color}]{cat.color}[/]")
    console.print(table)


@category.command(name="update")
@click.argument("category_id")
@click.option("--name", type=str, default=None, help="New name")
@click.option("--color", type=str, default=None, help="New hex color")
@click.pass_context
def category_update(ctx: click.Context, category_id: str, name: str | None, color: str | None) -> None:
    """Rename or recolor a category."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        cat = service.update_category(cfg.user_id, category_id, name, color)
        console.print(f"[green]Category {cat.name}[/green] [dim]({cat.color})[/dim]")


@category.command(name="delete")
@click.argument("category_id")
@click.pass_context
def category_delete(ctx: click.Context, category_id: str) -> None:
    """Delete a category (sites keep blocking, uncategorized)."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        service.delete_category(cfg.user_id, category_id)
        console.print("[green]Category deleted[/green]")


# ----------------------------------------------------------------------
# Sync and the client agent
# ----------------------------------------------------------------------


@main.command()
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Write to file instead of stdout")
@click.pass_context
def export(ctx: click.Context, output: Path | None) -> None:
    """Export the sync projection of active sites as JSON."""
    cfg: Config = ctx.obj["config"]

    with open_service(ctx) as service:
        payload = service.sync_projection(cfg.user_id)

    text = json.dumps(payload, indent=2)
    if output:
        output.write_text(text)
        console.print(f"[green]Exported {len(payload['rules'])} rules to {output}[/green]")
    else:
        click.echo(text)


def _open_cache(cfg: Config) -> RuleCache:
    return RuleCache(cfg.cache_path, max_staleness=cfg.max_staleness).load()


@main.command()
@click.option("--from-file", type=click.Path(exists=True, path_type=Path), default=None,
              help="Load a projection exported with 'goodturkey export'")
@click.option("--api-base", type=str, default=None, help="API base URL (default from config)")
@click.option("--token", type=str, default=None, help="Bearer token (default from config)")
@click.option("--watch", is_flag=True, help="Keep syncing every sync.interval_minutes")
@click.pass_context
def sync(
    ctx: click.Context,
    from_file: Path | None,
    api_base: str | None,
    token: str | None,
    watch: bool,
) -> None:
    """Refresh the local rule cache."""
    cfg: Config = merge_cli_options(ctx.obj["config"], api_base=api_base, token=token)
    clock = ctx.obj["clock"]
    cache = _open_cache(cfg)

    if watch and not cfg.sync_enabled:
        console.print("[red]Background sync is disabled. Set sync.enabled = true in the config file[/red]")
        sys.exit(1)

    try:
        if from_file:
            payload = json.loads(from_file.read_text())
            rules = cache.replace_rules(payload, clock.now())
            console.print(f"[green]Loaded {len(rules)} rules from {from_file}[/green]")
            return

        client = SyncClient(SyncConfig(
            api_base=cfg.sync_api_base,
            token=cfg.sync_token,
            interval_minutes=cfg.sync_interval_minutes,
            timeout_seconds=cfg.sync_timeout_seconds,
        ))

        async def run() -> None:
            async with client:
                if watch:
                    console.print(f"[cyan]Syncing every {cfg.sync_interval_minutes} min. Press Ctrl+C to stop[/cyan]")
                    await run_periodic_sync(
                        client, cache, clock,
                        on_sync=lambda r: console.print(f"[dim]Synced {len(r)} rules[/dim]"),
                    )
                else:
                    rules = await client.sync_into(cache, clock)
                    console.print(f"[green]Synced {len(rules)} rules[/green]")

        try:
            asyncio.run(run())
        except KeyboardInterrupt:
            console.print("[dim]Sync stopped[/dim]")
    except SyncAuthError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    except json.JSONDecodeError as e:
        console.print(f"[red]Not a JSON file: {e}[/red]")
        sys.exit(1)
    except GoodTurkeyError as e:
        _report_error(e)
        sys.exit(1)


@main.group()
def agent() -> None:
    """Offline enforcement from the local rule cache."""


@agent.command(name="check")
@click.argument("url")
@click.pass_context
def agent_check(ctx: click.Context, url: str) -> None:
    """Check URL against cached rules. Exits 0 when allowed and 2 when blocked."""
    cfg: Config = ctx.obj["config"]
    enforcer = RuleEnforcer(_open_cache(cfg), ctx.obj["clock"])

    decision = enforcer.check(url)
    if decision.stale:
        console.print("[yellow]Warning: rule cache is stale; run 'goodturkey sync'[/yellow]")
    if decision.blocked and decision.rule is not None:
        console.print(f"[red]BLOCKED[/red] {url} (rule: {decision.rule.url})")
        sys.exit(2)
    console.print(f"[green]ALLOWED[/green] {url}")


@agent.command(name="status")
@click.pass_context
def agent_status(ctx: click.Context) -> None:
    """Show cached rules and when they were last synced."""
    cfg: Config = ctx.obj["config"]
    clock = ctx.obj["clock"]
    cache = _open_cache(cfg)
    now = clock.now()

    if cache.last_sync is None:
        console.print("[yellow]Never synced. Run 'goodturkey sync'.[/yellow]")
    else:
        age = cache.age(now)
        age_hours = int(age.total_seconds() // 3600) if age is not None else 0
        style = "yellow" if cache.is_stale(now) else "green"
        label = "stale" if cache.is_stale(now) else "fresh"
        console.print(
            f"[{style}]Last sync: {format_timestamp(cache.last_sync)} "
            f"({age_hours}h ago, {label})[/{style}]"
        )

    table = Table(title=f"Cached Rules ({len(cache.rules)})")
    table.add_column("Site")
    table.add_column("Allowed during")
    for rule in cache.rules:
        windows = ", ".join(format_window(w) for w in rule.windows) or "never"
        table.add_row(rule.url, windows)
    console.print(table)


@agent.command(name="invalidate")
@click.pass_context
def agent_invalidate(ctx: click.Context) -> None:
    """Drop the cached rules (counters are kept)."""
    cfg: Config = ctx.obj["config"]
    _open_cache(cfg).invalidate()
    console.print("[green]Rule cache cleared[/green]")


@main.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show blocking counters."""
    cfg: Config = ctx.obj["config"]
    clock = ctx.obj["clock"]

    with open_service(ctx) as service:
        site_stats = service.store.get_table_stats(cfg.user_id)

    block_stats = _open_cache(cfg).current_stats(clock.now())

    console.print("[cyan]Blocked sites[/cyan]")
    console.print(f"  Total: {site_stats['total']:,}")
    console.print(f"  Active: {site_stats['active']:,}")
    console.print(f"  Unlock requested: {site_stats['unlocking']:,}")
    console.print(f"  Access attempts: {site_stats['attempts']:,}")
    console.print("[cyan]Agent[/cyan]")
    console.print(f"  Blocked today: {block_stats.blocked_today:,}")
    console.print(f"  Total blocked: {block_stats.total_blocked:,}")
    console.print(f"  Streak: {block_stats.streak} days")


if __name__ == "__main__":
    main()
