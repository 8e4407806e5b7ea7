# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Starts an interactive terminal chat for one account. Provider settings
# come from the environment / config store (see config.py); duplicate
# confirmations are asked on the terminal.
#
# Commands: /history  /clear  /lock  /quit

import argparse
import asyncio

from totem_agent import display
from totem_agent.config import ConfigStore, resolve_ai_config
from totem_agent.confirm import ConsoleConfirmation, ConsoleInput
from totem_agent.errors import AgentError
from totem_agent.providers import build_adapter
from totem_agent.session import SUPPORTED_CHAINS, SessionError, WalletSession


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="totem-agent", description="Totems wallet chat agent")
    parser.add_argument("--account", required=True, help="Account name to act as")
    parser.add_argument("--chain", default="jungle4", choices=sorted(SUPPORTED_CHAINS))
    parser.add_argument(
        "--confirm-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a duplicate-transaction answer (default: wait forever)",
    )
    return parser.parse_args(argv)


async def _chat(args: argparse.Namespace, console_input: ConsoleInput | None = None) -> int:
    # One reader serves both the chat prompt and duplicate confirmations.
    console_input = console_input or ConsoleInput()
    session = WalletSession(
        channel=ConsoleConfirmation(console_input),
        confirm_timeout=args.confirm_timeout,
    )

    config = None
    try:
        config = resolve_ai_config(ConfigStore())
        session.set_adapter(build_adapter(config))
    except AgentError as exc:
        display.halt(str(exc))

    try:
        info = session.login(args.account, args.chain)
    except SessionError as exc:
        display.halt(str(exc))
        return 2

    display.banner(
        config.provider if config else None,
        config.model if config else None,
        info.account_name,
        info.chain_label,
    )

    try:
        while True:
            line = await console_input.ask("[bold cyan]you[/bold cyan]")
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            if text == "/quit":
                break
            if text == "/history":
                display.transcript(session.chat_history)
                continue
            if text == "/clear":
                session.clear_chat()
                display.session_event("Chat cleared.")
                continue
            if text == "/lock":
                session.lock()
                break

            try:
                await session.send(text)
            except AgentError:
                # Already shown by the engine; keep the prompt alive.
                continue
    finally:
        await session.aclose()
    return 0


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_chat(_parse_args(argv)))


if __name__ == "__main__":
    raise SystemExit(main())
