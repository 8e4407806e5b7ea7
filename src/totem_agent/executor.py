# executor.py
# Tool executor: maps a model-requested action onto a Ledger call.
#
# Every path returns a JSON string. Unknown actions, bad arguments, declined
# duplicates and ledger failures all become {"error": ...} payloads; nothing
# raises past execute() except task cancellation.
#
# Side effects are exactly: ledger mutation (writes) and fingerprint
# insertion (writes, on success only).

import inspect
import json
from typing import Any

from pydantic import BaseModel

from totem_agent import display
from totem_agent.guard import DuplicateCancelled, DuplicateGuard
from totem_agent.ledger import Ledger, NoSessionError
from totem_agent.models import ActionDescriptor
from totem_agent.registry import REGISTRY, ActionRegistry

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

# Action name → Ledger method. Argument names match the Ledger signatures.
LEDGER_METHODS: dict[str, str] = {
    "transfer_tokens": "transfer",
    "transfer_eos_tokens": "transfer_system_token",
    "mint_tokens": "mint",
    "burn_tokens": "burn",
    "view_balances": "get_balances",
    "get_eos_balances": "get_system_balances",
    "list_totems": "list_totems",
    "view_totem_stats": "get_totem_stats",
    "list_mods": "list_mods",
    "get_fee": "get_fee",
    "get_account_info": "get_account_info",
    "check_account_exists": "account_exists",
    "get_transaction": "get_transaction_by_id",
    "get_top_holders": "get_top_holders",
}


class ArgumentError(ValueError):
    """Model-supplied arguments do not match the action's schema."""


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def _coerce_limit(action: str, value: Any) -> int:
    if value is None or value == "":
        return DEFAULT_PAGE_LIMIT
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ArgumentError(f"Invalid limit for {action}: {value!r}")
    try:
        limit = int(value)
    except (TypeError, ValueError) as exc:
        raise ArgumentError(f"Invalid limit for {action}: {value!r}") from exc
    if not 1 <= limit <= MAX_PAGE_LIMIT:
        raise ArgumentError(f"limit must be between 1 and {MAX_PAGE_LIMIT}, got {limit}")
    return limit


def validate_arguments(descriptor: ActionDescriptor, arguments: Any) -> dict[str, Any]:
    """
    Check required arguments and basic types, then apply per-action defaults.

    Unknown keys are dropped so they never reach the ledger or the
    fingerprint. Optional values left out come back as None, except `memo`
    (empty string) and `limit` (20).
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ArgumentError(f"Invalid arguments for {descriptor.name}: expected a JSON object")

    validated: dict[str, Any] = {}
    for param in descriptor.parameters:
        value = arguments.get(param.name)

        if param.name == "limit":
            validated["limit"] = _coerce_limit(descriptor.name, value)
            continue

        if value is None or value == "":
            if param.required:
                raise ArgumentError(f"Missing required argument for {descriptor.name}: {param.name}")
            validated[param.name] = "" if param.name == "memo" else None
            continue

        if param.type == "string" and not isinstance(value, str):
            raise ArgumentError(
                f"Argument {param.name} for {descriptor.name} must be a string, got {value!r}"
            )
        validated[param.name] = value.strip() if isinstance(value, str) else value

    return validated


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _payload(value: Any) -> str:
    return json.dumps(_jsonable(value), ensure_ascii=False, default=str)


def _error(message: str, **extra: Any) -> str:
    return _payload({"error": message, **extra})


# ---------------------------------------------------------------------------
# ToolExecutor
# ---------------------------------------------------------------------------


class ToolExecutor:
    """
    Executes registry actions against a Ledger.

    `ledger` is None while nobody is logged in; every action then reports
    the no-session error. The session swaps it on login, lock and logout.
    """

    def __init__(
        self,
        ledger: Ledger | None,
        guard: DuplicateGuard,
        registry: ActionRegistry = REGISTRY,
    ) -> None:
        self.ledger = ledger
        self._guard = guard
        self._registry = registry

    async def execute(self, action: str, arguments: Any) -> str:
        descriptor = self._registry.get(action)
        if descriptor is None:
            display.action_blocked(action)
            return _error(f"Action not allowed: {action}")

        try:
            validated = validate_arguments(descriptor, arguments)
        except ArgumentError as exc:
            return _error(str(exc))

        kind = self._registry.write_kind(action)
        try:
            if kind is not None:
                await self._guard.gate(kind, validated)
            result = await self._call_ledger(action, validated)
        except DuplicateCancelled as exc:
            return _error(str(exc), cancelled=True)
        except Exception as exc:
            return _error(str(exc) or exc.__class__.__name__)

        if kind is not None:
            self._guard.record(kind, validated)
        return _payload(result)

    async def _call_ledger(self, action: str, validated: dict[str, Any]) -> Any:
        if self.ledger is None:
            raise NoSessionError()
        method = getattr(self.ledger, LEDGER_METHODS[action])
        result = method(**validated)
        if inspect.isawaitable(result):
            result = await result
        return result
