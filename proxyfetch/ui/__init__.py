"""
ProxyFetch Terminal UI
======================
Rich terminal output for status, configuration and errors. Everything goes to
stderr so the fetched body can be piped from stdout untouched.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from proxyfetch.core.errors import ProxyAuthError, ProxyFetchError

# ── Theme ────────────────────────────────────────────────────────────────────

PROXYFETCH_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "title": "bold bright_green",
    "phase": "bold magenta",
    "status.ok": "bold green",
    "status.redirect": "bold yellow",
    "status.error": "bold red",
    "dim": "dim white",
})

console = Console(theme=PROXYFETCH_THEME, stderr=True)


# ── Messages ─────────────────────────────────────────────────────────────────

def print_info(text: str) -> None:
    console.print(f"[info]ℹ {escape(text)}[/]")


def print_success(text: str) -> None:
    console.print(f"[success]✅ {escape(text)}[/]")


def print_warning(text: str) -> None:
    console.print(f"[warning]⚠️  {escape(text)}[/]")


def print_error(text: str) -> None:
    console.print(f"[error]❌ {escape(text)}[/]")


# ── Status & Info ────────────────────────────────────────────────────────────

def _status_style(status_code: int) -> str:
    if status_code < 300:
        return "status.ok"
    if status_code < 400:
        return "status.redirect"
    return "status.error"


def show_config_status(config: Dict[str, Any]) -> None:
    """Display configuration status."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Proxy", escape(config.get("proxy") or "") or "❌ Not set")
    table.add_row("Username", escape(config.get("username") or "") or "N/A")
    table.add_row("Password", "✅ Set" if config.get("password") else "❌ Not set")
    table.add_row("TLS Verify", "⚠️  Disabled" if config.get("insecure") else "🛡️ Enabled")
    timeout = config.get("timeout")
    table.add_row("Timeout", f"{timeout:g}s" if timeout else "none")
    table.add_row("User-Agent", escape(config.get("user_agent") or "N/A"))

    console.print(Panel(table, title="[title]Configuration[/]", border_style="green"))


def show_response_summary(
    status_code: int,
    reason: str,
    size: int,
    headers: Sequence[Tuple[str, str]] = (),
    include_headers: bool = False,
) -> None:
    """Display the response status line, and optionally its headers."""
    style = _status_style(status_code)
    console.print(f"[{style}]{status_code} {escape(reason)}[/] [dim]({size}B)[/]")
    if include_headers and headers:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Header", style="bold")
        table.add_column("Value")
        for name, value in headers:
            table.add_row(escape(f"{name}:"), escape(value))
        console.print(table)


def show_fetch_error(err: ProxyFetchError) -> None:
    """Display a phase-tagged fetch error."""
    console.print(f"[error]❌ Fetch failed[/] [phase]\\[{err.phase}][/] {escape(err.message)}")
    if isinstance(err, ProxyAuthError):
        console.print(f"  [dim]Proxy said:[/] {escape(err.status_line)}")
        if err.challenge:
            console.print(f"  [dim]Challenge:[/] {escape(err.challenge)}")
        if err.status_code == 407:
            console.print("  [dim]Check --user/--password for the proxy.[/]")
