"""
clawdash CLI — Command Interface

Provides commands to serve the dashboard, drive the gateway lifecycle,
set up Telegram, switch profiles, and run diagnostics.
"""

import asyncio

import typer
import uvicorn
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

load_dotenv()

console = Console()

app = typer.Typer(
    name="clawdash",
    help="clawdash — local dashboard for your OpenClaw gateway.",
    add_completion=False,
)


def _services():
    from clawdash.config.loader import get_config, setup_logging
    from clawdash.dashboard.startup import build_services

    config = get_config()
    setup_logging(config.logging)
    return build_services(config)


def _print_steps(steps):
    icons = {"done": "[green]✓[/green]", "failed": "[red]✗[/red]", "running": "[yellow]…[/yellow]"}
    for step in steps:
        icon = icons.get(step["status"], "•")
        detail = f"  [dim]{step['detail']}[/dim]" if step.get("detail") else ""
        console.print(f"  {icon} {step['step']}{detail}")


# ─── Dashboard ─────────────────────────────────────────────────────

@app.command()
def serve(
    host: str = typer.Option(None, help="Host to bind to (default from config)"),
    port: int = typer.Option(None, help="Port to bind to (default from config)"),
):
    """Start the dashboard server."""
    from clawdash.config.loader import get_config, setup_logging
    from clawdash.dashboard.server import create_app

    config = get_config()
    setup_logging(config.logging)
    host = host or config.server.host
    port = port or config.server.port
    console.print(f"[bold green]🚀 Starting clawdash at http://{host}:{port}[/bold green]")
    uvicorn.run(create_app(config), host=host, port=port, log_level="info")


@app.command()
def status(
    url: str = typer.Option(None, help="Dashboard URL (default from config)"),
):
    """Ask a running dashboard for the gateway status."""
    import httpx

    from clawdash.config.loader import get_config

    if not url:
        server = get_config().server
        url = f"http://{server.host}:{server.port}"
    try:
        resp = httpx.get(f"{url}/api/gateway/status", timeout=20)
        data = resp.json()
    except httpx.HTTPError:
        console.print("[red]❌ Dashboard is not running. Start it with: clawdash serve[/red]")
        raise typer.Exit(1)

    running = "[green]running[/green]" if data.get("running") else "[red]stopped[/red]"
    console.print(f"📊 Gateway: {running}  (phase: {data.get('phase', 'idle')})")
    for port, up in (data.get("signals") or {}).items():
        console.print(f"  port {port}: {'listening' if up else 'closed'}")


# ─── Gateway Subcommand ────────────────────────────────────────────

gateway_app = typer.Typer(help="Inspect and control the OpenClaw gateway.")
app.add_typer(gateway_app, name="gateway")


@gateway_app.command("status")
def gateway_status():
    """Probe the gateway directly (ports + CLI status)."""
    services = _services()
    ctx = services.context()
    state = asyncio.run(services.probe.probe(ctx.env_vars))

    table = Table(title="Gateway")
    table.add_column("Signal")
    table.add_column("Value")
    for port, up in state.signals.items():
        table.add_row(f"port {port}", "✅ listening" if up else "❌ closed")
    table.add_row("CLI status", "✅ running" if state.looks_running else "❌ not running")
    table.add_row("Overall", "[green]running[/green]" if state.running else "[red]stopped[/red]")
    console.print(table)
    if state.status_text:
        console.print(f"[dim]{state.status_text}[/dim]")


@gateway_app.command("restart")
def gateway_restart():
    """Stop, hard-kill and start the gateway."""
    services = _services()
    console.print("[bold]🔄 Restarting gateway...[/bold]")
    result = asyncio.run(services.lifecycle.restart(services.context()))
    for line in result["log"]:
        console.print(f"  {line}")
    if result["ok"]:
        console.print("[green]✅ Gateway running.[/green]")
    else:
        console.print("[red]❌ Gateway did not come up. Last log lines:[/red]")
        for line in result["gatewayLog"]:
            console.print(f"  [dim]{line}[/dim]")
        raise typer.Exit(1)


# ─── Telegram Subcommand ───────────────────────────────────────────

telegram_app = typer.Typer(help="Connect and lock the Telegram channel.")
app.add_typer(telegram_app, name="telegram")


@telegram_app.command("activate")
def telegram_activate(
    token: str = typer.Option(None, "--token", "-t", help="Bot token (default: saved token)"),
    user: str = typer.Option(None, "--user", "-u", help="Lock DMs to this Telegram user ID"),
    fresh: bool = typer.Option(False, "--fresh", help="Wipe runtime state and pending updates first"),
):
    """Stop, reconfigure and restart the gateway with Telegram enabled."""
    from clawdash.channels.telegram import validate_token, validate_user_id
    from clawdash.errors import InvalidInputError

    services = _services()
    try:
        token = validate_token(token) if token else (services.settings.load().telegram_bot_token or None)
        user = validate_user_id(user) if user else None
    except InvalidInputError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)

    result = asyncio.run(
        services.lifecycle.activate(services.context(), token=token, user_id=user, fresh_install=fresh)
    )
    data = result.to_dict()
    _print_steps(data["steps"])
    if not result.ok:
        console.print(f"[red]❌ {result.error}[/red]")
        raise typer.Exit(1)
    if result.bot_info:
        console.print(f"🤖 @{result.bot_info.get('username')} connected: {result.telegram_connected}")
    if result.pairing_info:
        console.print(result.pairing_info["note"])


@telegram_app.command("lock")
def telegram_lock(user_id: str = typer.Argument(..., help="Telegram user ID (digits)")):
    """Only accept DMs from one Telegram user."""
    from clawdash.errors import InvalidInputError

    services = _services()
    try:
        result = asyncio.run(services.onboarding.lock(services.context(), user_id))
    except InvalidInputError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]🔒 {result['note']}[/green]")


@telegram_app.command("diagnose")
def telegram_diagnose():
    """Check token locations, the Bot API and recent gateway logs."""
    services = _services()
    result = asyncio.run(services.diagnostics.diagnose(services.context()))
    for name, present in result["tokenLocations"].items():
        console.print(f"  {name}: {'✅' if present else '❌'}")
    if result.get("botInfo"):
        console.print(f"\n🤖 Bot: @{result['botInfo']['username']}")
    elif result.get("botError"):
        console.print(f"\n[red]Bot API: {result['botError']}[/red]")
    if result["suggestions"]:
        console.print("\n[bold]Suggestions:[/bold]")
        for tip in result["suggestions"]:
            console.print(f"  • {tip}")


# ─── Profiles Subcommand ───────────────────────────────────────────

profiles_app = typer.Typer(help="List and switch dashboard profiles.")
app.add_typer(profiles_app, name="profiles")


@profiles_app.command("list")
def profiles_list():
    """List profiles; the active one is marked."""
    services = _services()
    for profile in services.profiles.list():
        marker = "◆" if profile.active else " "
        console.print(f"  {marker} {profile.id:<20} {profile.name}")


@profiles_app.command("use")
def profiles_use(profile_id: str = typer.Argument(..., help="Profile id")):
    """Make a profile the active one."""
    from clawdash.errors import InvalidInputError

    services = _services()
    try:
        profile = services.profiles.activate(profile_id)
    except InvalidInputError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✅ Active profile: {profile.id} ({profile.name})[/green]")


# ─── System Commands ──────────────────────────────────────────────

@app.command()
def doctor():
    """Show where the gateway config lives and what each copy says."""
    services = _services()
    ctx = services.context()
    report = asyncio.run(services.diagnostics.telegram_diagnostics(ctx))

    console.print("🩺 [bold]clawdash doctor[/bold]\n")
    console.print(f"  Profile:   {ctx.profile_id}")
    console.print(f"  Config dir: {ctx.paths.config_dir}")
    console.print(f"  Gateway reads: {report['readPath']}\n")

    table = Table(title="Config locations")
    table.add_column("Location")
    table.add_column("Exists")
    table.add_column("Telegram")
    for loc in report["configs"]:
        tg = loc["telegram"] or {}
        summary = "-"
        if tg:
            summary = f"enabled={tg['enabled']} dm={tg['dmPolicy']} token={tg['hasToken']}"
        table.add_row(loc["path"], "✅" if loc["exists"] else "❌", summary)
    console.print(table)

    gateway = report["gateway"]
    console.print(f"\n  Gateway running: {'✅' if gateway['running'] else '❌'}")


@app.command()
def version():
    """Show the clawdash version."""
    from clawdash.version import get_version

    console.print(f"clawdash v{get_version()}")


if __name__ == "__main__":
    app()
