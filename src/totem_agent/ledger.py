# ledger.py
# Ledger contract consumed by the tool executor, plus an Antelope RPC client.
#
# Ledger     : abstract interface; one instance per logged-in identity.
# RpcLedger  : reads over the chain's HTTP API (httpx). Writes are built as
#              contract actions and handed to an injected Transactor, which
#              owns keys and signing. Without one, writes raise.

import inspect
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

TOTEMS_CONTRACT = "totemstotems"
MARKET_CONTRACT = "modsmodsmods"
SYSTEM_TOKEN_CONTRACT = "eosio.token"

TABLE_ROW_LIMIT = 100
SCOPE_PAGE_LIMIT = 1000


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LedgerError(Exception):
    """A ledger read or write failed. The message is shown to the model."""


class NoSessionError(LedgerError):
    """Raised when no account is logged in."""

    def __init__(self) -> None:
        super().__init__("No active session. Please log in first.")


class SigningUnavailableError(LedgerError):
    """Raised when a write is attempted without a signing transactor."""


class ChainRpcError(LedgerError):
    """The chain API was unreachable or answered with an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class Ledger(ABC):
    """Blockchain capability used by ToolExecutor. Methods may be sync or async."""

    # ── writes ──
    @abstractmethod
    async def transfer(self, to: str, quantity: str, memo: str) -> dict: ...

    @abstractmethod
    async def transfer_system_token(self, to: str, quantity: str, memo: str) -> dict: ...

    @abstractmethod
    async def mint(self, mod: str, quantity: str, payment: str, memo: str) -> dict: ...

    @abstractmethod
    async def burn(self, quantity: str, memo: str) -> dict: ...

    # ── reads ──
    @abstractmethod
    async def get_balances(self, account: str | None = None) -> list[dict]: ...

    @abstractmethod
    async def get_system_balances(self, account: str | None = None) -> list[dict]: ...

    @abstractmethod
    async def list_totems(self, limit: int, cursor: str | None = None) -> dict: ...

    @abstractmethod
    async def get_totem_stats(self, ticker: str | None = None) -> list[dict]: ...

    @abstractmethod
    async def list_mods(self, limit: int, cursor: str | None = None) -> dict: ...

    @abstractmethod
    async def get_fee(self) -> dict: ...

    @abstractmethod
    async def get_account_info(self, account: str) -> dict: ...

    @abstractmethod
    async def account_exists(self, account: str) -> dict: ...

    @abstractmethod
    async def get_transaction_by_id(self, tx_id: str) -> dict: ...

    @abstractmethod
    async def get_top_holders(self, ticker: str, limit: int) -> list[dict]: ...


class Transactor(Protocol):
    """Signs and broadcasts contract actions; returns the transaction id."""

    def transact(self, actions: list[dict[str, Any]]) -> Any: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _split_asset(asset: str) -> tuple[Decimal, str]:
    """'10.0000 TEST' -> (Decimal('10.0000'), 'TEST')."""
    try:
        amount, symbol = str(asset).split(" ", 1)
        return Decimal(amount), symbol.strip()
    except (ValueError, InvalidOperation) as exc:
        raise LedgerError(f"Malformed asset from chain: {asset!r}") from exc


def _rpc_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        details = error.get("details") or []
        if details and isinstance(details[0], dict) and details[0].get("message"):
            return str(details[0]["message"])
        return str(error.get("what") or body.get("message") or response.reason_phrase)
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


# ---------------------------------------------------------------------------
# RpcLedger
# ---------------------------------------------------------------------------


class RpcLedger(Ledger):
    """
    Ledger backed by an Antelope node's HTTP API.

    `account` is the logged-in actor; None means no session and every call
    raises NoSessionError. `transport` lets tests plug in httpx.MockTransport.
    """

    def __init__(
        self,
        rpc_url: str,
        account: str | None,
        transactor: Transactor | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._account = account
        self._transactor = transactor
        self._client = httpx.AsyncClient(base_url=rpc_url, timeout=timeout, transport=transport)

    @property
    def account(self) -> str | None:
        return self._account

    async def aclose(self) -> None:
        await self._client.aclose()

    def _require_session(self) -> str:
        if not self._account:
            raise NoSessionError()
        return self._account

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise ChainRpcError(f"Chain RPC request to {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise ChainRpcError(_rpc_error_message(response), status_code=response.status_code)
        return response.json()

    async def _table_rows(
        self,
        code: str,
        scope: str,
        table: str,
        limit: int = TABLE_ROW_LIMIT,
        lower_bound: str | None = None,
    ) -> dict:
        params: dict[str, Any] = {
            "code": code,
            "scope": scope,
            "table": table,
            "limit": limit,
            "json": True,
        }
        if lower_bound:
            params["lower_bound"] = lower_bound
        return await self._post("/v1/chain/get_table_rows", params)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _action(self, contract: str, name: str, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "account": contract,
            "name": name,
            "authorization": [{"actor": self._account, "permission": "active"}],
            "data": data,
        }

    async def _transact(self, action: dict[str, Any]) -> dict:
        if self._transactor is None:
            raise SigningUnavailableError(
                "Signing is not available in this session; write actions cannot be broadcast."
            )
        tx_id = self._transactor.transact([action])
        if inspect.isawaitable(tx_id):
            tx_id = await tx_id
        return {"transactionId": str(tx_id or "")}

    async def transfer(self, to: str, quantity: str, memo: str) -> dict:
        actor = self._require_session()
        return await self._transact(
            self._action(
                TOTEMS_CONTRACT,
                "transfer",
                {"from": actor, "to": to, "quantity": quantity, "memo": memo},
            )
        )

    async def transfer_system_token(self, to: str, quantity: str, memo: str) -> dict:
        actor = self._require_session()
        return await self._transact(
            self._action(
                SYSTEM_TOKEN_CONTRACT,
                "transfer",
                {"from": actor, "to": to, "quantity": quantity, "memo": memo},
            )
        )

    async def mint(self, mod: str, quantity: str, payment: str, memo: str) -> dict:
        actor = self._require_session()
        return await self._transact(
            self._action(
                TOTEMS_CONTRACT,
                "mint",
                {"mod": mod, "minter": actor, "quantity": quantity, "payment": payment, "memo": memo},
            )
        )

    async def burn(self, quantity: str, memo: str) -> dict:
        actor = self._require_session()
        return await self._transact(
            self._action(
                TOTEMS_CONTRACT,
                "burn",
                {"owner": actor, "quantity": quantity, "memo": memo},
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balances(self, account: str | None = None) -> list[dict]:
        actor = self._require_session()
        target = account or actor
        response = await self._table_rows(TOTEMS_CONTRACT, target, "accounts")
        return [{"balance": str(row["balance"])} for row in response.get("rows", [])]

    async def get_system_balances(self, account: str | None = None) -> list[dict]:
        actor = self._require_session()
        target = account or actor
        balances = await self._post(
            "/v1/chain/get_currency_balance",
            {"code": SYSTEM_TOKEN_CONTRACT, "account": target},
        )
        return [{"balance": str(b)} for b in balances or []]

    async def list_totems(self, limit: int, cursor: str | None = None) -> dict:
        self._require_session()
        response = await self._table_rows(
            TOTEMS_CONTRACT, TOTEMS_CONTRACT, "totems", limit=limit, lower_bound=cursor
        )
        return {
            "rows": [
                {
                    "creator": str(row.get("creator", "")),
                    "supply": str(row.get("supply", "")),
                    "max_supply": str(row.get("max_supply", "")),
                    "details": row.get("details"),
                    "mods": row.get("mods"),
                    "created_at": str(row.get("created_at", "")),
                }
                for row in response.get("rows", [])
            ],
            "more": bool(response.get("more")),
            "next_key": str(response["next_key"]) if response.get("next_key") else None,
        }

    async def get_totem_stats(self, ticker: str | None = None) -> list[dict]:
        self._require_session()
        response = await self._table_rows(TOTEMS_CONTRACT, TOTEMS_CONTRACT, "totemstats")
        stats = [
            {
                "ticker": str(row.get("ticker", "")),
                "mints": int(row.get("mints", 0)),
                "burns": int(row.get("burns", 0)),
                "transfers": int(row.get("transfers", 0)),
                "holders": int(row.get("holders", 0)),
            }
            for row in response.get("rows", [])
        ]
        if ticker:
            wanted = ticker.upper()
            stats = [s for s in stats if s["ticker"].split(",")[-1].upper() == wanted]
        return stats

    async def list_mods(self, limit: int, cursor: str | None = None) -> dict:
        self._require_session()
        response = await self._table_rows(
            MARKET_CONTRACT, MARKET_CONTRACT, "mods", limit=limit, lower_bound=cursor
        )
        return {
            "rows": [
                {
                    "contract": str(row.get("contract", "")),
                    "seller": str(row.get("seller", "")),
                    "price": int(row.get("price", 0)),
                    "details": row.get("details"),
                    "hooks": [str(h) for h in row.get("hooks") or []],
                    "score": int(row.get("score", 0)),
                }
                for row in response.get("rows", [])
            ],
            "more": bool(response.get("more")),
            "next_key": str(response["next_key"]) if response.get("next_key") else None,
        }

    async def get_fee(self) -> dict:
        self._require_session()
        response = await self._table_rows(TOTEMS_CONTRACT, TOTEMS_CONTRACT, "feeconfig", limit=1)
        rows = response.get("rows", [])
        return dict(rows[0]) if rows else {}

    async def get_account_info(self, account: str) -> dict:
        self._require_session()
        data = await self._post("/v1/chain/get_account", {"account_name": account})
        return {
            "account_name": data.get("account_name", account),
            "created": data.get("created"),
            "core_liquid_balance": data.get("core_liquid_balance"),
            "ram_quota": data.get("ram_quota"),
            "ram_usage": data.get("ram_usage"),
            "cpu_limit": data.get("cpu_limit"),
            "net_limit": data.get("net_limit"),
            "cpu_weight": data.get("cpu_weight"),
            "net_weight": data.get("net_weight"),
        }

    async def account_exists(self, account: str) -> dict:
        self._require_session()
        try:
            await self._post("/v1/chain/get_account", {"account_name": account})
        except ChainRpcError as exc:
            # The node answered: the account is unknown. Network failures
            # carry no status code and propagate.
            if exc.status_code is None:
                raise
            return {"account": account, "exists": False}
        return {"account": account, "exists": True}

    async def get_transaction_by_id(self, tx_id: str) -> dict:
        self._require_session()
        data = await self._post("/v1/history/get_transaction", {"id": tx_id})
        trx = data.get("trx") or {}
        receipt = trx.get("receipt") or {}
        actions = (trx.get("trx") or {}).get("actions") or []
        return {
            "id": data.get("id", tx_id),
            "block_num": data.get("block_num"),
            "block_time": data.get("block_time"),
            "status": receipt.get("status"),
            "actions": [
                {
                    "account": a.get("account"),
                    "name": a.get("name"),
                    "data": a.get("data"),
                }
                for a in actions
            ],
        }

    async def get_top_holders(self, ticker: str, limit: int) -> list[dict]:
        self._require_session()
        wanted = ticker.upper()
        holders: list[tuple[Decimal, str, str]] = []
        for scope in await self._balance_scopes():
            response = await self._table_rows(TOTEMS_CONTRACT, scope, "accounts")
            for row in response.get("rows", []):
                amount, symbol = _split_asset(row["balance"])
                if symbol == wanted and amount > 0:
                    holders.append((amount, scope, str(row["balance"])))
        holders.sort(key=lambda h: h[0], reverse=True)
        return [{"account": acct, "balance": bal} for _, acct, bal in holders[:limit]]

    async def _balance_scopes(self) -> list[str]:
        scopes: list[str] = []
        lower_bound: str | None = None
        while True:
            params: dict[str, Any] = {
                "code": TOTEMS_CONTRACT,
                "table": "accounts",
                "limit": SCOPE_PAGE_LIMIT,
            }
            if lower_bound:
                params["lower_bound"] = lower_bound
            response = await self._post("/v1/chain/get_table_by_scope", params)
            scopes.extend(str(row["scope"]) for row in response.get("rows", []))
            lower_bound = response.get("more") or None
            if not lower_bound:
                return scopes
