"""Console rendering of server lists and cache events.

Color scheme:
- **serversadded**: green
- **serverchange**: cyan
- **wsready / wsclose**: blue / yellow
- **error**: bold red
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from crisscross_guest.constants import (
    EVENT_ERROR,
    EVENT_SERVER_CHANGE,
    EVENT_SERVERS_ADDED,
    EVENT_WS_CLOSE,
    EVENT_WS_READY,
)
from crisscross_guest.models import ServerRecord

_EVENT_STYLES: Dict[str, str] = {
    EVENT_SERVERS_ADDED: "green",
    EVENT_SERVER_CHANGE: "cyan",
    EVENT_WS_READY: "blue",
    EVENT_WS_CLOSE: "yellow",
    EVENT_ERROR: "bold red",
}


def servers_table(servers: Iterable[ServerRecord], *, title: Optional[str] = None) -> Table:
    """Build a table with one row per server; extra fields are summarised."""
    table = Table(title=title, show_lines=False)
    table.add_column("Name", style="bold")
    table.add_column("Type", style="magenta")
    table.add_column("Address", style="cyan")
    table.add_column("Extra", style="dim")
    for server in servers:
        extra = ", ".join(f"{k}={v}" for k, v in sorted(server.extra.items()))
        table.add_row(server.name, server.type or "-", server.address, extra)
    return table


def _summarise(event: str, args: tuple) -> str:
    if not args:
        return ""
    first = args[0]
    if event in (EVENT_SERVERS_ADDED, EVENT_SERVER_CHANGE):
        names = ", ".join(s.name for s in first)
        return f"{len(first)} server(s): {names}" if names else "0 server(s)"
    if event == EVENT_WS_CLOSE and isinstance(first, dict):
        return f"code={first.get('code')} reason={first.get('reason') or '-'}"
    if event == EVENT_WS_READY:
        return "push transport ready"
    return str(first)


def format_event(record: Dict[str, Any]) -> Text:
    """Render one event record from :meth:`EventBus.listen` as a line."""
    event = record.get("event", "?")
    style = _EVENT_STYLES.get(event, "white")
    line = Text()
    line.append(f"{record.get('timestamp', '')[11:19]} ", style="dim")
    line.append(f"{event:<13}", style=style)
    line.append(_summarise(event, tuple(record.get("args") or ())))
    return line


def print_servers(
    servers: Iterable[ServerRecord],
    *,
    console: Optional[Console] = None,
    title: Optional[str] = None,
) -> None:
    (console or Console()).print(servers_table(servers, title=title))
