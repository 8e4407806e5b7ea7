# models.py
# Data contracts for the wallet agent.
# No business logic lives here, pure schema and validation.

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Action catalog
# ---------------------------------------------------------------------------


class ActionParameter(BaseModel):
    """One named argument of a callable action."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["string", "number"] = "string"
    required: bool = False
    description: str = ""


class ActionDescriptor(BaseModel):
    """A named, schema-described operation the model may request."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Unique action name exposed to the model.")
    description: str
    parameters: tuple[ActionParameter, ...] = ()

    @property
    def required(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def json_schema(self) -> dict[str, Any]:
        """JSON Schema object for the action's arguments, shared by every provider."""
        return {
            "type": "object",
            "properties": {
                p.name: {"type": p.type, "description": p.description}
                for p in self.parameters
            },
            "required": self.required,
        }


# ---------------------------------------------------------------------------
# Canonical conversation
# ---------------------------------------------------------------------------


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolInvocation(BaseModel):
    """A single executed tool call, as shown in the chat transcript."""

    call_id: str
    action: str
    arguments: Any = Field(default_factory=dict)
    result: Any = None


class ConversationTurn(BaseModel):
    """Provider-independent transcript entry."""

    role: Role
    text: str = ""
    tool_invocations: list[ToolInvocation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Provider replies
# ---------------------------------------------------------------------------


class ToolCallRequest(BaseModel):
    """A tool call requested by the model, normalised across providers."""

    call_id: str
    action: str
    arguments: Any = Field(
        default_factory=dict,
        description="Decoded argument object, or the raw text when it was not valid JSON.",
    )


class ModelReply(BaseModel):
    """Normalised provider response: either plain text or a batch of tool calls."""

    kind: Literal["text", "tool_calls"]
    content: str = ""
    calls: list[ToolCallRequest] = Field(default_factory=list)
    raw_assistant_turn: Any = Field(
        default=None,
        description="Provider-native assistant message, appended to wire history verbatim.",
    )


class ToolResult(BaseModel):
    call_id: str
    payload: str


# ---------------------------------------------------------------------------
# Session and configuration
# ---------------------------------------------------------------------------


class SessionInfo(BaseModel):
    account_name: str
    chain_id: str
    chain_label: str


Provider = Literal["claude", "openai", "ollama", "chutes"]


class AiConfig(BaseModel):
    provider: Provider
    model: str
    api_key: str | None = None

    @property
    def has_key(self) -> bool:
        return bool(self.api_key)
