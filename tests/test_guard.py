import asyncio

import pytest

from fakes import ScriptedChannel
from totem_agent.confirm import PendingConfirmations
from totem_agent.guard import DuplicateCancelled, DuplicateGuard, GuardDecision, fingerprint

TRANSFER = {"to": "bob", "quantity": "1.0000 TEST", "memo": ""}


async def _until_pending(channel: PendingConfirmations) -> None:
    while channel.pending is None:
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def test_fingerprint_ignores_key_order():
    a = fingerprint("transfer", {"to": "bob", "quantity": "1.0000 TEST"})
    b = fingerprint("transfer", {"quantity": "1.0000 TEST", "to": "bob"})
    assert a == b


def test_fingerprint_sensitive_to_values_and_action():
    base = fingerprint("transfer", {"to": "bob", "quantity": "1.0000 TEST"})
    assert base != fingerprint("transfer", {"to": "bob", "quantity": "1.0001 TEST"})
    assert base != fingerprint("transfer_eos", {"to": "bob", "quantity": "1.0000 TEST"})
    assert base != fingerprint("transfer", {"to": "bob", "quantity": "1.0000 TEST", "memo": "x"})


def test_fingerprint_is_deterministic():
    assert fingerprint("burn", {"quantity": "5.0000 TEST"}) == fingerprint(
        "burn", {"quantity": "5.0000 TEST"}
    )


# ---------------------------------------------------------------------------
# check / record / reset
# ---------------------------------------------------------------------------


def test_check_allows_unseen_then_requires_confirmation():
    guard = DuplicateGuard()
    assert guard.check("transfer", TRANSFER) is GuardDecision.ALLOW

    guard.record("transfer", TRANSFER)
    assert guard.check("transfer", TRANSFER) is GuardDecision.MUST_CONFIRM
    assert guard.check("transfer", {**TRANSFER, "quantity": "2.0000 TEST"}) is GuardDecision.ALLOW


def test_reset_forgets_fingerprints():
    guard = DuplicateGuard()
    guard.record("mint", {"mod": "minter", "quantity": "1.0000 TEST"})
    assert len(guard) == 1

    guard.reset()
    assert len(guard) == 0
    assert guard.check("mint", {"mod": "minter", "quantity": "1.0000 TEST"}) is GuardDecision.ALLOW


# ---------------------------------------------------------------------------
# confirm
# ---------------------------------------------------------------------------


def test_confirm_without_channel_fails_closed():
    guard = DuplicateGuard(channel=None)
    assert asyncio.run(guard.confirm("transfer", TRANSFER)) is False


@pytest.mark.parametrize("answer", [True, False])
def test_confirm_returns_human_answer(answer):
    channel = ScriptedChannel(answer)
    guard = DuplicateGuard(channel=channel)

    assert asyncio.run(guard.confirm("transfer", TRANSFER)) is answer
    assert channel.requests == [("transfer", TRANSFER)]


def test_confirm_channel_failure_is_declined():
    class BrokenChannel:
        async def request(self, action, arguments):
            raise RuntimeError("window closed")

    guard = DuplicateGuard(channel=BrokenChannel())
    assert asyncio.run(guard.confirm("burn", {"quantity": "1.0000 TEST"})) is False


def test_confirm_timeout_resolves_declined():
    channel = PendingConfirmations()
    guard = DuplicateGuard(channel=channel, timeout=0.01)

    assert asyncio.run(guard.confirm("transfer", TRANSFER)) is False
    assert channel.pending is None


def test_gate_raises_distinct_cancellation():
    guard = DuplicateGuard(channel=ScriptedChannel(False))
    guard.record("transfer", TRANSFER)

    with pytest.raises(DuplicateCancelled, match="cancelled by user") as info:
        asyncio.run(guard.gate("transfer", TRANSFER))
    assert info.value.action == "transfer"


def test_gate_passes_unseen_without_asking():
    channel = ScriptedChannel()
    guard = DuplicateGuard(channel=channel)

    asyncio.run(guard.gate("transfer", TRANSFER))
    assert channel.requests == []


# ---------------------------------------------------------------------------
# Future-based UI channel
# ---------------------------------------------------------------------------


def test_pending_confirmation_resolved_by_ui():
    seen = []

    async def scenario():
        channel = PendingConfirmations(on_request=seen.append)
        guard = DuplicateGuard(channel=channel)
        task = asyncio.create_task(guard.confirm("transfer", TRANSFER))
        await _until_pending(channel)

        assert channel.pending.action == "transfer"
        assert channel.pending.arguments == TRANSFER
        assert channel.resolve(True) is True
        answer = await task
        return answer, channel.pending

    answer, pending_after = asyncio.run(scenario())
    assert answer is True
    assert pending_after is None
    assert [p.action for p in seen] == ["transfer"]


def test_resolve_with_nothing_pending():
    assert PendingConfirmations().resolve(True) is False


def test_only_one_confirmation_outstanding():
    async def scenario():
        channel = PendingConfirmations()
        guard = DuplicateGuard(channel=channel)
        first = asyncio.create_task(guard.confirm("transfer", TRANSFER))
        second = asyncio.create_task(guard.confirm("burn", {"quantity": "1.0000 TEST"}))

        await _until_pending(channel)
        assert channel.pending.action == "transfer"
        # Give the second task a chance to run; it must still be queued.
        for _ in range(5):
            await asyncio.sleep(0)
        assert channel.pending.action == "transfer"
        assert not second.done()

        channel.decline()
        assert await first is False

        await _until_pending(channel)
        assert channel.pending.action == "burn"
        channel.resolve(True)
        return await second

    assert asyncio.run(scenario()) is True


def test_cancelling_waiting_turn_drops_pending_request():
    async def scenario():
        channel = PendingConfirmations()
        guard = DuplicateGuard(channel=channel)
        task = asyncio.create_task(guard.confirm("transfer", TRANSFER))
        await _until_pending(channel)
        future = channel.pending.future

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return channel.pending, future

    pending, future = asyncio.run(scenario())
    assert pending is None
    assert future.cancelled()
