"""Interactive CLI for signing in and inspecting the session.

Pattern: Prompt Renderer
-------------------------
The CLI is the human-facing boundary.  It handles three responsibilities:

  1. **Restore or login**: resume a stored session, otherwise collect
     credentials and delegate to ``SessionManager.login``.
  2. **Command loop**: ``status``, ``whoami``, ``can``, ``refresh``,
     ``renew``, ``logout``, ``quit``.  Every command counts as key activity
     and resets the idle window.
  3. **Announcements**: a session listener prints idle warnings and forced
     logouts as they happen.

Rich is used for display.  Input is read in a worker thread so the event
loop keeps running the session timers while the prompt waits.
"""

from __future__ import annotations

import asyncio
import getpass
import logging
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from workforce_session.auth.api_client import AuthClient, AuthClientError
from workforce_session.auth.session import SessionSnapshot, SessionState
from workforce_session.config import Settings, build_store
from workforce_session.policy.engine import PolicyEngine
from workforce_session.session.clock import AsyncioScheduler
from workforce_session.session.manager import ActivityEvent, SessionManager

logger = logging.getLogger(__name__)
console = Console()

COMMANDS = {
    "status": "Show session state and token expiry",
    "whoami": "Show the signed-in user",
    "can <permission>": "Check a permission, e.g. 'can reports:view'",
    "refresh": "Re-fetch the user profile",
    "renew": "Exchange the token for a fresh one",
    "logout": "Sign out",
    "quit": "Exit (the session stays stored)",
}


def _print_banner() -> None:
    console.print(
        Panel(
            "[bold]Workforce Session[/bold]\n"
            "Sign in to the workforce platform and manage your session",
            border_style="blue",
        )
    )


def _announce(snapshot: SessionSnapshot) -> None:
    if snapshot.state is SessionState.WARNING:
        console.print(
            f"\n[bold yellow]Session expiring soon[/bold yellow] "
            f"(token expires at {snapshot.expires_at:%H:%M:%S} UTC). "
            "Enter any command to stay signed in."
        )
    elif snapshot.state is SessionState.EXPIRING:
        console.print("\n[red]Session expired, signing out.[/red]")


async def _ask(prompt: str) -> str:
    return (await asyncio.to_thread(input, prompt)).strip()


async def _login(manager: SessionManager) -> bool:
    """Prompt for credentials and authenticate."""
    console.print("\n[bold yellow]Login[/bold yellow]\n")

    email = await _ask("  Email: ")
    password = await asyncio.to_thread(getpass.getpass, "  Password: ")

    try:
        snapshot = await manager.login(email, password)
    except AuthClientError as exc:
        console.print(f"[red]Login failed ({exc.kind}):[/red] {exc}")
        return False

    console.print(f"\n  [green]Authenticated[/green] as [bold]{snapshot.user.name or snapshot.user.email}[/bold]")
    console.print(f"  Role: [bold]{snapshot.user.role.value}[/bold]")
    if snapshot.expires_at:
        console.print(f"  Token expires: {snapshot.expires_at:%Y-%m-%d %H:%M:%S} UTC\n")
    return True


def _print_status(manager: SessionManager) -> None:
    snapshot = manager.snapshot()
    table = Table(title="Session")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="bold")
    table.add_row("State", snapshot.state.value)
    table.add_row("Authenticated", str(snapshot.is_authenticated))
    table.add_row("Expires at", f"{snapshot.expires_at:%Y-%m-%d %H:%M:%S} UTC" if snapshot.expires_at else "-")
    table.add_row("Warning raised", f"{snapshot.session_timeout:%H:%M:%S} UTC" if snapshot.session_timeout else "-")
    table.add_row("Last error", snapshot.error or "-")
    console.print(table)


def _print_user(manager: SessionManager) -> None:
    user = manager.user
    if user is None:
        console.print("[dim]Not signed in.[/dim]")
        return
    table = Table(title="User")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="bold")
    for field, value in user.to_dict().items():
        table.add_row(field, str(value) if value is not None else "-")
    console.print(table)


async def _command_loop(manager: SessionManager) -> None:
    console.print("Commands: " + ", ".join(f"[bold]{name}[/bold]" for name in COMMANDS) + "\n")

    while manager.is_authenticated:
        try:
            line = await _ask(f"[{manager.user.email or manager.user.id}] > ")
        except (EOFError, KeyboardInterrupt):
            break

        if not manager.is_authenticated:
            console.print("[red]Session ended, please sign in again.[/red]")
            break
        manager.record_activity(ActivityEvent.KEY)

        command, _, argument = line.partition(" ")
        command = command.lower()
        if not command:
            continue
        if command in ("quit", "exit"):
            break
        if command == "status":
            _print_status(manager)
        elif command == "whoami":
            _print_user(manager)
        elif command == "can":
            permission = argument.strip()
            allowed = manager.has_permission(permission)
            colour = "green" if allowed else "red"
            console.print(f"  [{colour}]{permission}: {'allowed' if allowed else 'denied'}[/{colour}]")
        elif command == "refresh":
            user = await manager.refresh_user()
            console.print("  Profile refreshed." if user else f"  [red]Refresh failed ({manager.error}).[/red]")
        elif command == "renew":
            token = await manager.refresh_token()
            console.print("  Token renewed." if token else f"  [red]Renewal failed ({manager.error}).[/red]")
        elif command == "logout":
            await manager.logout()
            console.print("  [green]Signed out.[/green]")
            break
        else:
            console.print(f"  [red]Unknown command:[/red] {command}")


async def _run(settings: Settings, policy_path: str | None) -> None:
    policy_engine = PolicyEngine(policy_path=policy_path)
    store = build_store(settings)

    async with AuthClient(settings.api_base_url, timeout=settings.api_timeout_seconds) as client:
        manager = SessionManager(
            client=client,
            store=store,
            scheduler=AsyncioScheduler(),
            policy_engine=policy_engine,
            warning_window=settings.warning_window,
        )
        unsubscribe = manager.subscribe(_announce)
        try:
            snapshot = manager.restore()
            if snapshot.is_authenticated:
                console.print(f"\n  Resumed session for [bold]{snapshot.user.email or snapshot.user.id}[/bold]\n")
            elif not await _login(manager):
                sys.exit(1)
            await _command_loop(manager)
        finally:
            unsubscribe()
            manager.dispose()


def run_cli(settings: Settings, policy_path: str | None = None) -> None:
    """Main entry point for the interactive CLI."""
    _print_banner()
    asyncio.run(_run(settings, policy_path))
    console.print("\n[dim]Goodbye.[/dim]")
