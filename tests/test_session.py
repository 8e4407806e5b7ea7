import asyncio

import pytest

from fakes import FakeLedger, ScriptedChannel, anthropic_client, anthropic_text, anthropic_tool_use
from totem_agent.confirm import PendingConfirmations
from totem_agent.errors import SessionChanged
from totem_agent.ledger import RpcLedger
from totem_agent.providers import AnthropicAdapter
from totem_agent.session import SUPPORTED_CHAINS, SessionError, WalletSession, validate_account_name

TRANSFER = {"to": "bob", "quantity": "1.0000 TEST"}


class ClosingLedger(FakeLedger):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.closed = False

    async def aclose(self):
        self.closed = True


def _session(*responses, channel=None):
    ledgers = []

    def factory(info, chain):
        ledger = ClosingLedger()
        ledgers.append((info, chain, ledger))
        return ledger

    adapter = AnthropicAdapter(model="claude-test", client=anthropic_client(*responses))
    session = WalletSession(adapter=adapter, channel=channel, ledger_factory=factory)
    return session, ledgers


# ---------------------------------------------------------------------------
# Login validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("name", ["alice", "a", "totemstotems", "abc.12345"])
def test_valid_account_names(name):
    assert validate_account_name(name) == name


@pytest.mark.parametrize("name", ["", "Alice", "toolongaccount", "bob6", "bob!", None])
def test_invalid_account_names(name):
    with pytest.raises(SessionError, match="Invalid account name"):
        validate_account_name(name)


def test_login_rejects_unknown_chain():
    session, ledgers = _session()
    with pytest.raises(SessionError, match="Unsupported chain: wax"):
        session.login("alice", "wax")
    assert session.info is None
    assert ledgers == []


def test_login_binds_identity_and_ledger():
    session, ledgers = _session()

    info = session.login("alice", "jungle4")

    assert info.account_name == "alice"
    assert info.chain_label == "Jungle4 Testnet"
    assert session.info == info
    assert session.engine.session_info == info
    assert session.ledger is ledgers[0][2]
    assert ledgers[0][1] is SUPPORTED_CHAINS["jungle4"]


def test_default_ledger_is_rpc_ledger():
    session = WalletSession()
    session.login("alice", "eos")

    assert isinstance(session.ledger, RpcLedger)
    assert session.ledger.account == "alice"
    asyncio.run(session.aclose())


# ---------------------------------------------------------------------------
# Identity changes wipe session state
# ---------------------------------------------------------------------------


def test_relogin_wipes_history_and_fingerprints():
    session, ledgers = _session(
        anthropic_tool_use(("toolu_1", "transfer_tokens", TRANSFER)),
        anthropic_text("Sent."),
    )
    session.login("alice", "jungle4")
    asyncio.run(session.send("send 1.0000 TEST to bob"))
    assert len(session.guard) == 1
    assert session.chat_history

    session.login("carol", "jungle4")

    assert session.chat_history == []
    assert session.engine.wire_history == []
    assert len(session.guard) == 0
    assert session.ledger is ledgers[1][2]
    assert session.engine.session_info.account_name == "carol"


@pytest.mark.parametrize("method", ["lock", "logout"])
def test_lock_and_logout_clear_everything(method):
    session, _ = _session(anthropic_text("hello"))
    session.login("alice", "jungle4")
    session.guard.record("transfer", {**TRANSFER, "memo": ""})
    asyncio.run(session.send("hi"))

    getattr(session, method)()

    assert session.info is None
    assert session.ledger is None
    assert session.engine.session_info is None
    assert session.chat_history == []
    assert len(session.guard) == 0


def test_send_after_logout_reports_no_session():
    session, _ = _session(
        anthropic_tool_use(("toolu_1", "view_balances", {})),
        anthropic_text("You need to log in."),
    )
    session.login("alice", "jungle4")
    session.logout()

    asyncio.run(session.send("balances?"))

    result = session.chat_history[1].tool_invocations[0].result
    assert result == {"error": "No active session. Please log in first."}


def test_clear_chat_keeps_fingerprints():
    session, _ = _session(
        anthropic_tool_use(("toolu_1", "burn_tokens", {"quantity": "1.0000 TEST"})),
        anthropic_text("Burned."),
        anthropic_tool_use(("toolu_2", "burn_tokens", {"quantity": "1.0000 TEST"})),
        anthropic_text("Not burned."),
        channel=ScriptedChannel(False),
    )
    session.login("alice", "jungle4")

    async def scenario():
        await session.send("burn 1")
        session.clear_chat()
        assert session.chat_history == []
        assert len(session.guard) == 1
        await session.send("burn 1")

    asyncio.run(scenario())

    assert session.ledger.count("burn") == 1


def test_logout_during_pending_confirmation_declines():
    channel = PendingConfirmations()
    session, _ = _session(
        anthropic_tool_use(("toolu_1", "transfer_tokens", TRANSFER)),
        anthropic_text("Sent."),
        anthropic_tool_use(("toolu_2", "transfer_tokens", TRANSFER)),
        channel=channel,
    )
    session.login("alice", "jungle4")
    ledger = session.ledger

    async def scenario():
        await session.send("send 1.0000 TEST to bob")
        turn = asyncio.create_task(session.send("send 1.0000 TEST to bob"))
        while channel.pending is None:
            await asyncio.sleep(0)

        session.logout()

        with pytest.raises(asyncio.CancelledError):
            await turn
        return channel.pending

    assert asyncio.run(scenario()) is None
    assert ledger.count("transfer") == 1
    assert session.chat_history == []
    assert session.engine.wire_history == []
    assert len(session.guard) == 0


def test_aclose_releases_ledger():
    session, ledgers = _session()
    session.login("alice", "jungle4")

    asyncio.run(session.aclose())

    assert ledgers[0][2].closed is True
    assert session.info is None


def test_queued_message_does_not_survive_identity_change():
    responses = iter(
        [
            anthropic_tool_use(("toolu_1", "transfer_tokens", TRANSFER)),
            anthropic_text("sent"),
        ]
    )
    session, ledgers = _session()

    async def scenario():
        started = asyncio.Event()
        release = asyncio.Event()

        async def create(**request):
            if not started.is_set():
                started.set()
                await release.wait()
            return next(responses)

        session.engine.adapter._client.messages.create.side_effect = create
        session.login("alice", "jungle4")

        first = asyncio.create_task(session.send("hello"))
        await started.wait()
        queued = asyncio.create_task(session.send("send 1.0000 TEST to bob"))
        for _ in range(5):
            await asyncio.sleep(0)

        session.logout()
        session.login("carol", "jungle4")
        release.set()

        with pytest.raises(asyncio.CancelledError):
            await first
        with pytest.raises(SessionChanged):
            await queued

    asyncio.run(scenario())

    carol_ledger = ledgers[1][2]
    assert carol_ledger.calls == []
    assert session.chat_history == []
    assert len(session.guard) == 0


def test_clear_chat_discards_queued_message():
    session, _ = _session()

    async def scenario():
        release = asyncio.Event()

        async def slow(**request):
            await release.wait()
            return anthropic_text("first")

        session.login("alice", "jungle4")
        session.engine.adapter._client.messages.create.side_effect = slow
        first = asyncio.create_task(session.send("one"))
        await asyncio.sleep(0)
        queued = asyncio.create_task(session.send("two"))
        await asyncio.sleep(0)

        session.clear_chat()
        release.set()

        with pytest.raises(asyncio.CancelledError):
            await first
        with pytest.raises(SessionChanged):
            await queued

    asyncio.run(scenario())

    assert session.chat_history == []
    assert session.engine.wire_history == []
