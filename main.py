#!/usr/bin/env python3
"""OpsWatch - CLI Entry Point."""
import sys
import json
import logging
from concurrent.futures import wait
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()
logger = logging.getLogger("opswatch.cli")

_SEVERITY_STYLE = {"critical": "bold red", "warning": "yellow"}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from monitor.wiring import build_components

    config = load_config(config_path)
    log_config = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_config.get("level", "INFO"), log_config.get("file"))

    # Console channel only if running interactively
    return build_components(config, console=sys.stdout.isatty())


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="opswatch")
@click.pass_context
def cli(ctx, config_path, verbose):
    """OpsWatch - Threshold and log-pattern alerting for production services."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
        ctx.call_on_close(_close_components(ctx.obj["_components"]))
    return ctx.obj["_components"]


def _close_components(components):
    from monitor.wiring import shutdown_components

    def close():
        shutdown_components(components)
    return close


def _severity(value):
    style = _SEVERITY_STYLE.get(value, "")
    return f"[{style}]{value.upper()}[/{style}]" if style else value.upper()


# ──────────────────────────────────────────────────────
# CHECK
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check(ctx, as_json):
    """Run one evaluation cycle now."""
    c = _get_components(ctx)
    result = c["monitor"].run_cycle()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
        return

    for source, err in sorted(result.provider_failures.items()):
        console.print(f"[red]✗[/red] provider {source}: {err}")
    for rule_id, err in sorted(result.rule_failures.items()):
        console.print(f"[red]✗[/red] rule {rule_id}: {err}")

    active = c["store"].get_active()
    if not active:
        console.print("[green]All clear - no active alerts[/green]")
        return

    table = Table(title=f"{len(active)} active alert(s)", show_header=True)
    table.add_column("Severity")
    table.add_column("Type", style="dim")
    table.add_column("Title")
    table.add_column("Message")
    for a in active:
        table.add_row(_severity(a.severity.value), a.type, a.title, a.message[:80])
    console.print(table)


# ──────────────────────────────────────────────────────
# RULES
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--check", "dry_run", is_flag=True, help="Dry-run every rule against current signals")
@click.pass_context
def rules(ctx, dry_run):
    """List alert rules (optionally with a dry-run preview)."""
    c = _get_components(ctx)

    if not dry_run:
        table = Table(title="Alert Rules", show_header=True)
        table.add_column("ID", style="dim")
        table.add_column("Name")
        table.add_column("Source")
        table.add_column("Severity")
        table.add_column("Channels")
        table.add_column("Enabled")
        for r in c["rules"].get_all_rules():
            table.add_row(r.id, r.name, r.source, r.severity.value, ", ".join(sorted(r.channels)) or "-",
                          "[green]✓[/green]" if r.enabled else "[red]✗[/red]")
        console.print(table)
        return

    preview, failures = c["monitor"].preview_rules()
    for source, err in sorted(failures.items()):
        console.print(f"[yellow]provider {source} unavailable: {err}[/yellow]")

    table = Table(title="Alert Rules Test", show_header=True)
    table.add_column("Rule")
    table.add_column("Source")
    table.add_column("Would Fire")
    table.add_column("Severity")
    table.add_column("Message")
    table.add_column("Enabled")
    for r in preview:
        if r["error"]:
            fire_str = f"[red]error: {r['error']}[/red]"
        elif r["would_fire"] is None:
            fire_str = "[dim]n/a[/dim]"
        else:
            fire_str = "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]"
        table.add_row(r["name"], r["source"], fire_str, r["severity"] or "", (r["message"] or "")[:60],
                      "✓" if r["enabled"] else "✗")
    console.print(table)


# ──────────────────────────────────────────────────────
# HISTORY
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--limit", default=50, type=int, help="Number of entries")
@click.option("--type", "alert_type", default=None, help="Only this alert type")
@click.pass_context
def history(ctx, limit, alert_type):
    """Show persisted alert history."""
    c = _get_components(ctx)
    db = c["db"]
    if db is None:
        console.print("[yellow]Persistence is disabled - set database.enabled in your config[/yellow]")
        return

    recent = db.get_recent_alerts(limit=limit, alert_type=alert_type)
    if not recent:
        console.print("[dim]No alerts in history[/dim]")
        return
    table = Table(title="Alert History", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Transition")
    table.add_column("Severity")
    table.add_column("Type")
    table.add_column("Message")
    for a in recent:
        table.add_row(a["recorded_at"][:19], a["transition"], _severity(a["severity"]), a["alert_type"],
                      (a["message"] or "")[:60])
    console.print(table)


# ──────────────────────────────────────────────────────
# SCAN
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--start", default=None, help="Window start (ISO-8601)")
@click.option("--end", default=None, help="Window end (ISO-8601, default now)")
@click.option("--days", default=None, type=click.IntRange(min=1), help="Scan the last N days instead of --start")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def scan(ctx, start, end, days, as_json):
    """Dry-run the log rules over a historical window."""
    from datetime import timedelta
    from models.alerts import utcnow
    from monitor.providers import parse_timestamp

    if start is None and days is None:
        raise click.UsageError("give --start or --days")
    try:
        end_at = parse_timestamp(end) if end else utcnow()
        start_at = end_at - timedelta(days=days) if days is not None else parse_timestamp(start)
    except ValueError as e:
        raise click.BadParameter(str(e))

    c = _get_components(ctx)
    try:
        result = c["monitor"].scan_range(start_at, end_at)
    except (LookupError, OSError, ValueError) as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(result, indent=2, default=str))
        return

    console.print(f"Scanned [bold]{result['logs_analyzed']}[/bold] log records "
                  f"from {result['date_range']['start']} to {result['date_range']['end']}")
    if not result["alerts"]:
        console.print("[green]No rules would have fired[/green]")
        return
    table = Table(title="Historical Scan", show_header=True)
    table.add_column("Rule")
    table.add_column("Severity")
    table.add_column("Message")
    for a in result["alerts"]:
        table.add_row(a["rule_id"], _severity(a["severity"]), (a["message"] or "")[:80])
    console.print(table)


# ──────────────────────────────────────────────────────
# THRESHOLDS
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--set", "assignments", multiple=True, metavar="KEY=VALUE",
              help="Validate and preview a threshold change (repeatable)")
@click.pass_context
def thresholds(ctx, assignments):
    """Show effective alert thresholds."""
    from config.thresholds import InvalidThresholdError

    c = _get_components(ctx)
    changes = {}
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        try:
            changes[key.strip()] = float(raw)
        except ValueError:
            changes[key.strip()] = raw

    try:
        current = c["thresholds"].update(changes) if changes else c["thresholds"].snapshot()
    except InvalidThresholdError as e:
        raise click.ClickException(f"{e}. Valid keys: {', '.join(c['thresholds'].valid_keys)}")

    table = Table(title="Alert Thresholds", show_header=True)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    for key in sorted(current):
        marker = " [cyan](changed)[/cyan]" if key in changes else ""
        table.add_row(key, f"{current[key]:g}{marker}")
    console.print(table)


# ──────────────────────────────────────────────────────
# TEST ALERT
# ──────────────────────────────────────────────────────
@cli.command("test-alert")
@click.argument("alert_type")
@click.pass_context
def test_alert(ctx, alert_type):
    """Inject a synthetic alert and send it through the configured channels."""
    from alerts.rules import TEST_ALERTS
    from monitor.monitor import ActiveAlertConflict

    c = _get_components(ctx)
    try:
        created = c["monitor"].create_test_alert(alert_type)
    except ActiveAlertConflict as e:
        raise click.ClickException(str(e))
    if created is None:
        raise click.BadParameter(f"valid types: {', '.join(sorted(TEST_ALERTS))}", param_hint="ALERT_TYPE")

    transition, futures = created
    alert = transition.alert
    console.print(f"Created {_severity(alert.severity.value)} test alert [bold]{alert.id}[/bold]")
    done, _ = wait(futures, timeout=c["router"].send_timeout + 1)
    delivered = sum(1 for f in done if f.result())
    console.print(f"Delivered to {delivered}/{len(futures)} channel(s)")


# ──────────────────────────────────────────────────────
# RUN
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--interval", default=None, type=int, help="Seconds between cycles (overrides config)")
@click.option("--web", "serve_web", is_flag=True, help="Also serve the query API")
@click.option("--port", default=None, type=int, help="API port")
@click.option("--host", default=None, type=str, help="API host")
@click.pass_context
def run(ctx, interval, serve_web, port, host):
    """Run the monitor continuously."""
    import threading

    c = _get_components(ctx)
    scheduler = c["scheduler"]

    def report(result):
        if not result.ok:
            console.print(f"[red]Cycle failed: {result.error}[/red]")
        for t in result.notified:
            console.print(f"  {t.kind.value}: {t.alert.title}")

    scheduler.on_cycle(report)
    try:
        scheduler.start(interval)
    except ValueError as e:
        raise click.ClickException(str(e))

    console.print(f"\n[bold]OpsWatch[/bold] monitoring every {scheduler.interval}s "
                  f"({len(c['collector'].providers)} providers, {len(c['rules'].get_enabled_rules())} rules)")

    stop = threading.Event()
    try:
        if serve_web:
            from web.app import create_app
            web_config = c["config"].get("web", {})
            app = create_app(c["config"], c)
            port = port or web_config.get("port", 5000)
            host = host or web_config.get("host", "127.0.0.1")
            console.print(f"  API:  http://{host}:{port}/api/alerts/active")
            console.print("\n  Press Ctrl+C to stop.\n")
            app.run(host=host, port=port, debug=False, threaded=True)
        else:
            console.print("\n  Press Ctrl+C to stop.\n")
            while not stop.wait(1):
                pass
    except KeyboardInterrupt:
        pass
    finally:
        in_flight = scheduler.stop()
        if in_flight is not None:
            console.print("[dim]Waiting for the running cycle to finish...[/dim]")
            in_flight.result()
        console.print("Stopped.")


if __name__ == "__main__":
    cli()
