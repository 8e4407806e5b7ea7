# display.py
# All terminal output for the wallet agent.
#
# This module owns presentation entirely. The engine, executor and guard
# never format strings. They call named functions here. Swap this file to
# change the entire UI.
#
# Colour language:
#   cyan    : session and routing events
#   blue    : model calls
#   magenta : tool calls and their results
#   yellow  : duplicate-transaction gate
#   green   : success / final reply
#   red     : blocked actions, halts, hard errors

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from totem_agent.models import ConversationTurn, Role

console = Console()

ACTION_LABELS = {
    "transfer": "Transfer Tokens",
    "transfer_eos": "Transfer EOS Tokens",
    "mint": "Mint Tokens",
    "burn": "Burn Tokens",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _args(arguments: Any) -> str:
    if isinstance(arguments, dict):
        return json.dumps(arguments, ensure_ascii=False)
    return repr(arguments)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def banner(provider: str | None, model: str | None, account: str | None, chain: str | None) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Totems Wallet Agent[/bold cyan]\n"
            "[dim]Tool-calling assistant with duplicate-transaction gate[/dim]\n\n"
            f"[dim]Provider :[/dim] [white]{escape(provider or 'not configured')}[/white]\n"
            f"[dim]Model    :[/dim] [white]{escape(model or '-')}[/white]\n"
            f"[dim]Account  :[/dim] [white]{escape(account or 'logged out')}[/white]"
            f"{f' [dim]on[/dim] [white]{escape(chain)}[/white]' if chain else ''}",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def session_event(message: str) -> None:
    console.print(_label("SESSION", "cyan"), f"[cyan] {escape(message)}[/cyan]")


# ---------------------------------------------------------------------------
# Conversation loop
# ---------------------------------------------------------------------------


def prompt_received(text: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW MESSAGE[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(text)}[/white]",
            title=_label("USER", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def calling_model(provider: str, model: str, round_no: int) -> None:
    console.print(
        _label("MODEL", "blue"),
        f"[blue] → {escape(provider)}[/blue] [dim]{escape(model)} · round {round_no}[/dim]",
    )


def tool_call(action: str, arguments: Any) -> None:
    console.print(
        f"  [magenta]Action[/magenta]   [bold white]{escape(action)}[/bold white]"
        f"  [dim]{escape(_mono(_args(arguments), 160))}[/dim]"
    )


def tool_result(payload: str) -> None:
    style = "red" if payload.startswith('{"error"') else "white"
    console.print(f"  [magenta]Result[/magenta]   [{style}]{escape(_mono(payload, 160))}[/{style}]")


def action_blocked(action: str) -> None:
    console.print(
        Panel(
            f"[bold red]Action [white]{escape(repr(action))}[/white] is not allowed.[/bold red]\n"
            "[dim]The model requested an action outside the registry. Nothing was sent to the chain.[/dim]",
            title=_label("BLOCKED ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def round_limit(max_rounds: int) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]Stopped after {max_rounds} tool-call rounds.[/bold red]\n"
            "[dim]The model kept requesting tools without producing an answer.[/dim]",
            title=_label("ROUND LIMIT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Duplicate-transaction gate
# ---------------------------------------------------------------------------


def duplicate_detected(action: str, arguments: dict[str, Any]) -> None:
    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 1))
    table.add_column("Field", style="dim")
    table.add_column("Value", style="white")
    for key, value in arguments.items():
        if value in ("", None):
            continue
        table.add_row(key, escape(str(value)))

    console.print()
    console.print(
        Panel(
            table,
            title=_label("DUPLICATE TRANSACTION", "yellow"),
            subtitle=(
                f"[yellow]{ACTION_LABELS.get(action, action)} was already executed "
                "with these parameters[/yellow]"
            ),
            border_style="yellow",
            padding=(0, 1),
        )
    )


def confirmation_declined(action: str) -> None:
    console.print(
        _label("GATE", "yellow"),
        f"[yellow] Repeat {ACTION_LABELS.get(action, action)} declined.[/yellow]",
    )


def confirmation_unavailable(action: str) -> None:
    console.print(
        _label("GATE", "yellow"),
        f"[yellow] No confirmation surface available; duplicate "
        f"{ACTION_LABELS.get(action, action)} refused.[/yellow]",
    )


def confirmation_timed_out(action: str, timeout: float | None) -> None:
    console.print(
        _label("GATE", "yellow"),
        f"[yellow] No answer within {timeout}s; duplicate "
        f"{ACTION_LABELS.get(action, action)} refused.[/yellow]",
    )


def confirmation_failed(action: str, reason: str) -> None:
    console.print(
        _label("GATE", "red"),
        f"[red] Confirmation for {ACTION_LABELS.get(action, action)} failed: {escape(reason)}[/red]",
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("ASSISTANT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("ERROR", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def transcript(turns: list[ConversationTurn]) -> None:
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("#", justify="right", width=4)
    table.add_column("Role", width=10)
    table.add_column("Content", style="white")

    for index, turn in enumerate(turns, start=1):
        if turn.role is Role.TOOL:
            content = "\n".join(
                f"{inv.action} {_mono(_args(inv.arguments), 60)} → "
                f"{_mono(json.dumps(inv.result, ensure_ascii=False, default=str), 60)}"
                for inv in turn.tool_invocations
            )
        else:
            content = _mono(turn.text, 200)
        table.add_row(str(index), turn.role.value, escape(content))

    console.print(Panel(table, title="[dim]CHAT HISTORY[/dim]", border_style="dim", padding=(0, 1)))
