import pytest
from pydantic import ValidationError

from totem_agent.models import ActionDescriptor, ActionParameter
from totem_agent.registry import ACTIONS, REGISTRY, WRITE_ACTIONS, ActionRegistry

# name → (required, optional, write?)
ACTION_SURFACE = {
    "transfer_tokens": ({"to", "quantity"}, {"memo"}, True),
    "transfer_eos_tokens": ({"to", "quantity"}, {"memo"}, True),
    "mint_tokens": ({"mod", "quantity", "payment"}, {"memo"}, True),
    "burn_tokens": ({"quantity"}, {"memo"}, True),
    "view_balances": (set(), {"account"}, False),
    "get_eos_balances": (set(), {"account"}, False),
    "list_totems": (set(), {"limit", "cursor"}, False),
    "view_totem_stats": (set(), {"ticker"}, False),
    "list_mods": (set(), {"limit", "cursor"}, False),
    "get_fee": (set(), set(), False),
    "get_account_info": ({"account"}, set(), False),
    "check_account_exists": ({"account"}, set(), False),
    "get_transaction": ({"tx_id"}, set(), False),
    "get_top_holders": ({"ticker"}, {"limit"}, False),
}

# ---------------------------------------------------------------------------
# Catalog contents
# ---------------------------------------------------------------------------


def test_registry_lists_exactly_the_action_surface_in_stable_order():
    names = [a.name for a in REGISTRY.list()]
    assert names == list(ACTION_SURFACE)
    assert [a.name for a in REGISTRY.list()] == names
    assert len(REGISTRY) == 14


@pytest.mark.parametrize("name", list(ACTION_SURFACE))
def test_registry_arguments_match_surface(name):
    required, optional, is_write = ACTION_SURFACE[name]
    descriptor = REGISTRY.get(name)

    assert descriptor is not None
    assert set(descriptor.required) == required
    assert {p.name for p in descriptor.parameters} - required == optional
    assert REGISTRY.is_write(name) is is_write


def test_write_whitelist_kinds():
    assert WRITE_ACTIONS == {
        "transfer_tokens": "transfer",
        "transfer_eos_tokens": "transfer_eos",
        "mint_tokens": "mint",
        "burn_tokens": "burn",
    }
    assert REGISTRY.write_kind("view_balances") is None
    assert REGISTRY.write_names() == [
        "transfer_tokens",
        "transfer_eos_tokens",
        "mint_tokens",
        "burn_tokens",
    ]


def test_unknown_action_is_absent():
    assert REGISTRY.get("open_balance") is None
    assert "open_balance" not in REGISTRY
    assert "transfer_tokens" in REGISTRY


def test_json_schema_shape():
    schema = REGISTRY.get("get_top_holders").json_schema()
    assert schema == {
        "type": "object",
        "properties": {
            "ticker": {"type": "string", "description": 'Token symbol, e.g. "TEST"'},
            "limit": {"type": "number", "description": "Number of top holders to return (default 20)"},
        },
        "required": ["ticker"],
    }
    assert REGISTRY.get("get_fee").json_schema()["properties"] == {}


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


def test_descriptors_are_immutable():
    descriptor = REGISTRY.get("burn_tokens")
    with pytest.raises(ValidationError):
        descriptor.name = "burn_everything"


def test_duplicate_names_rejected():
    action = ActionDescriptor(name="get_fee", description="fee")
    with pytest.raises(ValueError, match="unique"):
        ActionRegistry(actions=(action, action), write_actions={})


def test_write_action_without_descriptor_rejected():
    with pytest.raises(ValueError, match="without a descriptor"):
        ActionRegistry(actions=ACTIONS, write_actions={**WRITE_ACTIONS, "open_balance": "open"})


def test_custom_registry_read_names():
    registry = ActionRegistry(
        actions=(
            ActionDescriptor(
                name="pay",
                description="pay",
                parameters=(ActionParameter(name="to", required=True),),
            ),
            ActionDescriptor(name="peek", description="peek"),
        ),
        write_actions={"pay": "pay"},
    )
    assert registry.read_names() == ["peek"]
    assert registry.write_names() == ["pay"]
