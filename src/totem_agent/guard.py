# guard.py
# Duplicate-transaction gate for write actions.
#
# Guarantees: an identical write (same action kind, same argument map) is
# never executed twice in one session without a human saying yes. Only
# successful ledger calls are recorded, so retrying after a failure is never
# flagged. reset() runs on login, lock and logout.
#
# Fingerprints carry no timestamp or nonce: two intentional identical
# transfers are indistinguishable from an accidental double submit.

import asyncio
import hashlib
import json
from enum import Enum
from typing import Any

from totem_agent import display
from totem_agent.confirm import ConfirmationChannel


class DuplicateCancelled(Exception):
    """Raised when the human declines to repeat an already-executed write."""

    def __init__(self, action: str) -> None:
        super().__init__(
            f"Duplicate {action} cancelled by user: an identical transaction was "
            "already executed in this session."
        )
        self.action = action


class GuardDecision(str, Enum):
    ALLOW = "allow"
    MUST_CONFIRM = "must_confirm"


# ---------------------------------------------------------------------------
# Fingerprinting
# ---------------------------------------------------------------------------


def _sha256(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _serialize(action: str, arguments: dict[str, Any]) -> str:
    """Deterministic serialization. sort_keys makes key order irrelevant."""
    return json.dumps(
        {"action": action, "arguments": arguments},
        sort_keys=True,
        ensure_ascii=False,
        default=str,
    )


def fingerprint(action: str, arguments: dict[str, Any]) -> str:
    return _sha256(_serialize(action, arguments))


# ---------------------------------------------------------------------------
# DuplicateGuard
# ---------------------------------------------------------------------------


class DuplicateGuard:
    """
    Per-session fingerprint set plus the confirmation suspension point.

    `channel` is the UI surface used to ask the human; with none, every
    confirmation fails closed. `timeout` (seconds) bounds the wait; None
    waits for as long as the human takes.
    """

    def __init__(
        self,
        channel: ConfirmationChannel | None = None,
        timeout: float | None = None,
    ) -> None:
        self._channel = channel
        self._timeout = timeout
        self._seen: set[str] = set()
        self._confirm_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def check(self, action: str, arguments: dict[str, Any]) -> GuardDecision:
        if fingerprint(action, arguments) in self._seen:
            return GuardDecision.MUST_CONFIRM
        return GuardDecision.ALLOW

    def record(self, action: str, arguments: dict[str, Any]) -> None:
        """Call only after the ledger call succeeded."""
        self._seen.add(fingerprint(action, arguments))

    def reset(self) -> None:
        self._seen.clear()

    async def confirm(self, action: str, arguments: dict[str, Any]) -> bool:
        """
        Suspend until a human answers whether to repeat `action`.

        Only one confirmation is outstanding at a time; concurrent callers
        queue on the lock. Timeouts and channel failures resolve to False.
        Cancellation of the waiting task propagates after the channel has
        dropped its pending request.
        """
        if self._channel is None:
            display.confirmation_unavailable(action)
            return False

        async with self._confirm_lock:
            try:
                answer = await asyncio.wait_for(
                    self._channel.request(action, dict(arguments)),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                display.confirmation_timed_out(action, self._timeout)
                return False
            except Exception as exc:
                display.confirmation_failed(action, str(exc))
                return False

        if not answer:
            display.confirmation_declined(action)
        return bool(answer)

    async def gate(self, action: str, arguments: dict[str, Any]) -> None:
        """check() then confirm(); raises DuplicateCancelled if declined."""
        if self.check(action, arguments) is GuardDecision.ALLOW:
            return
        if not await self.confirm(action, arguments):
            raise DuplicateCancelled(action)
