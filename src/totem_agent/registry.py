# registry.py
# Action registry: the fixed catalog of everything the model may call.
# The executor looks actions up here and never dispatches a name that is
# missing from ACTIONS. Nothing is registered or removed at runtime.

from totem_agent.models import ActionDescriptor, ActionParameter

_ACCOUNT_HINT = "Recipient account name (1-12 chars, a-z, 1-5, .)"
_PAGE_LIMIT = ActionParameter(
    name="limit", type="number", description="Number of results per page (default 20)"
)
_PAGE_CURSOR = ActionParameter(
    name="cursor", description="Pagination cursor from previous request"
)
_MEMO = ActionParameter(name="memo", description="Optional memo")


ACTIONS: tuple[ActionDescriptor, ...] = (
    # ── Write actions ────────────────────────────────────────────────
    ActionDescriptor(
        name="transfer_tokens",
        description="Transfer totem tokens to another account",
        parameters=(
            ActionParameter(name="to", required=True, description=_ACCOUNT_HINT),
            ActionParameter(
                name="quantity",
                required=True,
                description='Amount with precision and symbol, e.g. "10.0000 TEST"',
            ),
            ActionParameter(name="memo", description="Optional memo for the transfer"),
        ),
    ),
    ActionDescriptor(
        name="transfer_eos_tokens",
        description="Transfer EOS/system tokens (eosio.token) to another account",
        parameters=(
            ActionParameter(name="to", required=True, description=_ACCOUNT_HINT),
            ActionParameter(
                name="quantity",
                required=True,
                description='Amount with precision and symbol, e.g. "1.0000 EOS"',
            ),
            ActionParameter(name="memo", description="Optional memo for the transfer"),
        ),
    ),
    ActionDescriptor(
        name="mint_tokens",
        description="Mint totem tokens using a minter mod",
        parameters=(
            ActionParameter(name="mod", required=True, description="Minter mod contract account name"),
            ActionParameter(
                name="quantity", required=True, description='Amount to mint, e.g. "100.0000 TEST"'
            ),
            ActionParameter(
                name="payment", required=True, description='Payment amount, e.g. "1.0000 EOS"'
            ),
            _MEMO,
        ),
    ),
    ActionDescriptor(
        name="burn_tokens",
        description="Burn totem tokens",
        parameters=(
            ActionParameter(
                name="quantity", required=True, description='Amount to burn, e.g. "10.0000 TEST"'
            ),
            _MEMO,
        ),
    ),
    # ── Read actions ─────────────────────────────────────────────────
    ActionDescriptor(
        name="view_balances",
        description="View token balances for the logged-in account or a specified account",
        parameters=(
            ActionParameter(
                name="account", description="Account to check (defaults to logged-in account)"
            ),
        ),
    ),
    ActionDescriptor(
        name="get_eos_balances",
        description=(
            "View EOS/system token balances (eosio.token) for the logged-in account "
            "or a specified account"
        ),
        parameters=(
            ActionParameter(
                name="account", description="Account to check (defaults to logged-in account)"
            ),
        ),
    ),
    ActionDescriptor(
        name="list_totems",
        description="List available totems with pagination",
        parameters=(_PAGE_LIMIT, _PAGE_CURSOR),
    ),
    ActionDescriptor(
        name="view_totem_stats",
        description="View statistics for totems (mints, burns, transfers, holders)",
        parameters=(ActionParameter(name="ticker", description="Optional specific ticker to filter"),),
    ),
    ActionDescriptor(
        name="list_mods",
        description="List available mods from the marketplace",
        parameters=(_PAGE_LIMIT, _PAGE_CURSOR),
    ),
    ActionDescriptor(
        name="get_fee",
        description="Get the current totem fee configuration",
    ),
    ActionDescriptor(
        name="get_account_info",
        description="Get account information including RAM, CPU, and NET resource usage",
        parameters=(
            ActionParameter(name="account", required=True, description="Account name to look up"),
        ),
    ),
    ActionDescriptor(
        name="check_account_exists",
        description="Check if a blockchain account exists",
        parameters=(
            ActionParameter(name="account", required=True, description="Account name to check"),
        ),
    ),
    ActionDescriptor(
        name="get_transaction",
        description="Look up a transaction by its ID to see block number, time, status, and actions",
        parameters=(ActionParameter(name="tx_id", required=True, description="Transaction ID hash"),),
    ),
    ActionDescriptor(
        name="get_top_holders",
        description="Get the top token holders for a specific totem token sorted by balance",
        parameters=(
            ActionParameter(name="ticker", required=True, description='Token symbol, e.g. "TEST"'),
            ActionParameter(
                name="limit",
                type="number",
                description="Number of top holders to return (default 20)",
            ),
        ),
    ),
)

# Action name → ledger write kind. Anything absent here is read-only.
WRITE_ACTIONS: dict[str, str] = {
    "transfer_tokens": "transfer",
    "transfer_eos_tokens": "transfer_eos",
    "mint_tokens": "mint",
    "burn_tokens": "burn",
}


class ActionRegistry:
    """Read-only view over a fixed set of action descriptors."""

    def __init__(
        self,
        actions: tuple[ActionDescriptor, ...] = ACTIONS,
        write_actions: dict[str, str] = WRITE_ACTIONS,
    ) -> None:
        self._actions = {a.name: a for a in actions}
        if len(self._actions) != len(actions):
            raise ValueError("Action names must be unique.")
        unknown = set(write_actions) - set(self._actions)
        if unknown:
            raise ValueError(f"Write actions without a descriptor: {sorted(unknown)}")
        self._order = tuple(actions)
        self._write_actions = dict(write_actions)

    def get(self, name: str) -> ActionDescriptor | None:
        return self._actions.get(name)

    def is_write(self, name: str) -> bool:
        return name in self._write_actions

    def write_kind(self, name: str) -> str | None:
        return self._write_actions.get(name)

    def read_names(self) -> list[str]:
        return [a.name for a in self._order if a.name not in self._write_actions]

    def write_names(self) -> list[str]:
        return [a.name for a in self._order if a.name in self._write_actions]

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __len__(self) -> int:
        return len(self._order)

    # Defined last: the method name shadows the builtin for the rest of the body.
    def list(self) -> list[ActionDescriptor]:
        return [*self._order]


REGISTRY = ActionRegistry()
