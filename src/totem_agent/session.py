# session.py
# Wallet session: the one object that owns everything tied to an identity.
#
# Ledger, duplicate guard, transcript and wire history all hang off a
# WalletSession. Login, lock and logout go through _teardown(), which clears
# all three stores in a single synchronous step, so a changed identity can
# never see the previous identity's history or fingerprints.

import re
from dataclasses import dataclass
from typing import Callable

from totem_agent import display
from totem_agent.confirm import ConfirmationChannel
from totem_agent.engine import ConversationEngine
from totem_agent.executor import ToolExecutor
from totem_agent.guard import DuplicateGuard
from totem_agent.ledger import Ledger, RpcLedger, Transactor
from totem_agent.models import ConversationTurn, SessionInfo
from totem_agent.providers import ProviderAdapter
from totem_agent.registry import REGISTRY, ActionRegistry

ACCOUNT_NAME_RE = re.compile(r"^[a-z1-5.]{1,12}$")


@dataclass(frozen=True)
class ChainConfig:
    label: str
    rpc_url: str


SUPPORTED_CHAINS: dict[str, ChainConfig] = {
    "jungle4": ChainConfig(label="Jungle4 Testnet", rpc_url="https://jungle4.greymass.com"),
    "eos": ChainConfig(label="EOS Mainnet", rpc_url="https://eos.greymass.com"),
}

LedgerFactory = Callable[[SessionInfo, ChainConfig], Ledger]


class SessionError(ValueError):
    """Login rejected: unsupported chain or malformed account name."""


def validate_account_name(name: str) -> str:
    if not ACCOUNT_NAME_RE.match(name or ""):
        raise SessionError(
            f"Invalid account name {name!r}: use 1-12 characters from a-z, 1-5 and '.'."
        )
    return name


class WalletSession:
    """
    Session-scoped context for the wallet agent.

    Construct once per application; login() binds an identity and a ledger.
    `transactor` signs writes for the default RpcLedger; pass
    `ledger_factory` to supply a different Ledger implementation.
    """

    def __init__(
        self,
        adapter: ProviderAdapter | None = None,
        channel: ConfirmationChannel | None = None,
        confirm_timeout: float | None = None,
        transactor: Transactor | None = None,
        ledger_factory: LedgerFactory | None = None,
        registry: ActionRegistry = REGISTRY,
    ) -> None:
        self._transactor = transactor
        self._ledger_factory = ledger_factory or self._rpc_ledger
        self._info: SessionInfo | None = None
        self.guard = DuplicateGuard(channel=channel, timeout=confirm_timeout)
        self.executor = ToolExecutor(ledger=None, guard=self.guard, registry=registry)
        self.engine = ConversationEngine(adapter, self.executor, registry=registry)

    def _rpc_ledger(self, info: SessionInfo, chain: ChainConfig) -> Ledger:
        return RpcLedger(chain.rpc_url, info.account_name, transactor=self._transactor)

    # ------------------------------------------------------------------
    # Identity lifecycle
    # ------------------------------------------------------------------

    @property
    def info(self) -> SessionInfo | None:
        return self._info

    @property
    def ledger(self) -> Ledger | None:
        return self.executor.ledger

    def login(self, account_name: str, chain_id: str) -> SessionInfo:
        chain = SUPPORTED_CHAINS.get(chain_id)
        if chain is None:
            raise SessionError(f"Unsupported chain: {chain_id}")
        validate_account_name(account_name)

        self._teardown()
        info = SessionInfo(account_name=account_name, chain_id=chain_id, chain_label=chain.label)
        self.executor.ledger = self._ledger_factory(info, chain)
        self.engine.session_info = info
        self._info = info
        display.session_event(f"Logged in as {account_name} on {chain.label}.")
        return info

    def lock(self) -> None:
        self._teardown()
        display.session_event("Session locked.")

    def logout(self) -> None:
        self._teardown()
        display.session_event("Logged out.")

    def _teardown(self) -> None:
        # Cancelling first makes a pending duplicate confirmation resolve as
        # declined; the cancelled turn then unwinds against empty stores.
        self.engine.cancel()
        self.engine.clear()
        self.guard.reset()
        self.engine.session_info = None
        self.executor.ledger = None
        self._info = None

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    def set_adapter(self, adapter: ProviderAdapter | None) -> None:
        self.engine.set_adapter(adapter)

    async def send(self, text: str) -> str:
        return await self.engine.send(text)

    def clear_chat(self) -> None:
        """Drop the conversation; fingerprints stay until the identity changes."""
        self.engine.cancel()
        self.engine.clear()

    @property
    def chat_history(self) -> list[ConversationTurn]:
        return self.engine.transcript

    async def aclose(self) -> None:
        """Tear down the identity and release the ledger's HTTP client."""
        ledger = self.executor.ledger
        self._teardown()
        aclose = getattr(ledger, "aclose", None)
        if aclose is not None:
            await aclose()
