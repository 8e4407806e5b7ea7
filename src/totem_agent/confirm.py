# confirm.py
# UI confirmation channel: how the core asks a human a yes/no question.
#
# The core emits (action, arguments) and awaits a boolean. A channel is any
# object with an async `request` method; two bindings ship here:
#
#   PendingConfirmations  hands an asyncio future to whatever UI owns the
#                         window (desktop, web). The UI reads `.pending` and
#                         calls `resolve(answer)`.
#   ConsoleConfirmation   asks on the terminal with rich's Confirm prompt,
#                         reading through the shared ConsoleInput.

import asyncio
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from rich.prompt import Confirm, InvalidResponse, Prompt
from rich.text import Text

from totem_agent import display


class ConfirmationChannel(Protocol):
    async def request(self, action: str, arguments: dict[str, Any]) -> bool: ...


@dataclass
class PendingConfirmation:
    """A suspended write request awaiting a human yes/no answer."""

    action: str
    arguments: dict[str, Any]
    future: asyncio.Future = field(repr=False)


class PendingConfirmations:
    """
    Future-based confirmation channel for UI bindings.

    At most one request is outstanding; a second request while one is pending
    is rejected with RuntimeError.
    """

    def __init__(self, on_request: Callable[[PendingConfirmation], None] | None = None) -> None:
        self._on_request = on_request
        self._pending: PendingConfirmation | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def pending(self) -> PendingConfirmation | None:
        return self._pending

    async def request(self, action: str, arguments: dict[str, Any]) -> bool:
        if self._pending is not None:
            raise RuntimeError("A confirmation request is already outstanding.")

        self._loop = asyncio.get_running_loop()
        future = self._loop.create_future()
        self._pending = PendingConfirmation(action=action, arguments=dict(arguments), future=future)
        try:
            if self._on_request is not None:
                self._on_request(self._pending)
            return bool(await future)
        finally:
            # Timeout or cancellation of the waiting turn lands here too;
            # the UI then sees no pending request and its answer is ignored.
            if not future.done():
                future.cancel()
            self._pending = None

    def resolve(self, answer: bool) -> bool:
        """
        Deliver the human's answer. Safe to call from a UI thread.

        Returns False when nothing is pending.
        """
        pending = self._pending
        if pending is None or self._loop is None:
            return False

        def _deliver() -> None:
            if not pending.future.done():
                pending.future.set_result(bool(answer))

        self._loop.call_soon_threadsafe(_deliver)
        return True

    def decline(self) -> bool:
        return self.resolve(False)


class ConsoleInput:
    """
    The single stdin reader behind every terminal question.

    A daemon thread feeds lines into an asyncio queue, and both the chat
    prompt and duplicate confirmations read from that queue. A question that
    is abandoned (timeout, cancelled turn) therefore leaves no reader blocked
    on stdin, and the next line goes to whoever asks next.
    """

    def __init__(self, readline: Callable[[], str] | None = None) -> None:
        self._readline = readline
        self._lines: asyncio.Queue | None = None
        self._thread: threading.Thread | None = None

    def _start(self) -> asyncio.Queue:
        if self._lines is not None:
            return self._lines

        loop = asyncio.get_running_loop()
        lines: asyncio.Queue = asyncio.Queue()
        readline = self._readline or sys.stdin.readline

        def _pump() -> None:
            while True:
                line = readline()
                try:
                    # "" is end of input; None marks it on the queue.
                    loop.call_soon_threadsafe(lines.put_nowait, line or None)
                except RuntimeError:
                    return  # event loop already closed
                if not line:
                    return

        self._lines = lines
        self._thread = threading.Thread(target=_pump, name="console-input", daemon=True)
        self._thread.start()
        return lines

    async def readline(self, prompt: Text) -> str | None:
        """Show `prompt` and wait for one line. None at end of input."""
        lines = self._start()
        display.console.print(prompt, end="")
        line = await lines.get()
        if line is None:
            lines.put_nowait(None)
            return None
        return line.rstrip("\r\n")

    async def ask(self, prompt: str) -> str | None:
        return await self.readline(Prompt(prompt, console=display.console).make_prompt(...))

    async def confirm(self, prompt: str, default: bool = False) -> bool:
        question = Confirm(prompt, console=display.console)
        while True:
            line = await self.readline(question.make_prompt(default))
            if line is None or not line.strip():
                return default
            try:
                return question.process_response(line)
            except InvalidResponse as error:
                question.on_validate_error(line, error)


class ConsoleConfirmation:
    """Terminal binding: shows the duplicate warning and asks through ConsoleInput."""

    def __init__(self, console_input: ConsoleInput, prompt: str = "Proceed anyway?") -> None:
        self._input = console_input
        self._prompt = prompt

    async def request(self, action: str, arguments: dict[str, Any]) -> bool:
        display.duplicate_detected(action, arguments)
        return await self._input.confirm(self._prompt, default=False)
