# providers.py
# Provider adapters: one behaviour contract over two wire protocols.
#
#   AnthropicAdapter  native tool-use. Tools are {name, description,
#                     input_schema}; the system prompt rides in `system=`;
#                     results go back as tool_result blocks inside a single
#                     user message. Loops while stop_reason == "tool_use".
#   OpenAIAdapter     function calling (OpenAI, Ollama, Chutes). The system
#                     prompt is the first message of every request; the
#                     assistant tool_calls message is appended verbatim,
#                     then one role="tool" message per call id. Loops while
#                     finish_reason == "tool_calls".
#
# The engine never branches on provider identity; only these classes know
# the wire shapes. Tool results only ever enter history as tool-result data,
# never as system or instruction text.

import json
from abc import ABC, abstractmethod
from typing import Any

import anthropic
import openai

from totem_agent.errors import ConfigurationError, ProviderTransportError
from totem_agent.models import ActionDescriptor, AiConfig, ModelReply, ToolCallRequest, ToolResult

MAX_TOKENS = 4096

BASE_URLS: dict[str, str | None] = {
    "openai": None,
    "ollama": "http://localhost:11434/v1",
    "chutes": "https://llm.chutes.ai/v1",
}

NOT_CONFIGURED = "AI provider not configured. Go to Settings to set it up."


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class ProviderAdapter(ABC):
    """Translates canonical actions and history to and from one wire protocol."""

    provider: str
    wire_format: str

    def __init__(self, model: str, max_tokens: int = MAX_TOKENS) -> None:
        self.model = model
        self.max_tokens = max_tokens

    @abstractmethod
    def serialize_actions(self, actions: list[ActionDescriptor]) -> list[dict[str, Any]]: ...

    @abstractmethod
    def build_request(
        self,
        system_prompt: str,
        wire_history: list[dict[str, Any]],
        tool_schema: list[dict[str, Any]],
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def complete(self, request: dict[str, Any]) -> Any: ...

    @abstractmethod
    def parse_response(self, response: Any) -> ModelReply: ...

    @abstractmethod
    def append_user(self, wire_history: list[dict[str, Any]], text: str) -> list[dict[str, Any]]: ...

    @abstractmethod
    def append_assistant_text(
        self, wire_history: list[dict[str, Any]], reply: ModelReply
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def append_tool_results(
        self,
        wire_history: list[dict[str, Any]],
        raw_assistant_turn: Any,
        results: list[ToolResult],
    ) -> list[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Variant A: native tool-use
# ---------------------------------------------------------------------------


def _anthropic_block(block: Any) -> dict[str, Any]:
    if block.type == "text":
        return {"type": "text", "text": block.text}
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return block.model_dump(exclude_none=True)


class AnthropicAdapter(ProviderAdapter):
    provider = "claude"
    wire_format = "anthropic"

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        client: Any = None,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        super().__init__(model, max_tokens)
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)

    def serialize_actions(self, actions: list[ActionDescriptor]) -> list[dict[str, Any]]:
        return [
            {"name": a.name, "description": a.description, "input_schema": a.json_schema()}
            for a in actions
        ]

    def build_request(self, system_prompt, wire_history, tool_schema) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "tools": tool_schema,
            "messages": list(wire_history),
        }

    async def complete(self, request: dict[str, Any]) -> Any:
        try:
            return await self._client.messages.create(**request)
        except anthropic.APIError as exc:
            raise ProviderTransportError(f"Claude request failed: {exc}") from exc

    def parse_response(self, response: Any) -> ModelReply:
        blocks = list(response.content or [])
        text = "\n".join(b.text for b in blocks if b.type == "text")
        raw = [_anthropic_block(b) for b in blocks]

        if response.stop_reason == "tool_use":
            calls = [
                ToolCallRequest(call_id=b.id, action=b.name, arguments=b.input)
                for b in blocks
                if b.type == "tool_use"
            ]
            if calls:
                return ModelReply(kind="tool_calls", content=text, calls=calls, raw_assistant_turn=raw)

        # A tool_use block outside stop_reason "tool_use" (e.g. max_tokens) has no
        # tool_result to pair with; keep only the text so history stays valid.
        text_blocks = [b for b in raw if b.get("type") == "text"]
        return ModelReply(kind="text", content=text, raw_assistant_turn=text_blocks or None)

    def append_user(self, wire_history, text: str):
        wire_history.append({"role": "user", "content": text})
        return wire_history

    def append_assistant_text(self, wire_history, reply: ModelReply):
        content = reply.raw_assistant_turn or reply.content
        # The API rejects empty assistant content; skip it rather than send "".
        if content:
            wire_history.append({"role": "assistant", "content": content})
        return wire_history

    def append_tool_results(self, wire_history, raw_assistant_turn, results: list[ToolResult]):
        wire_history.append({"role": "assistant", "content": raw_assistant_turn})
        wire_history.append(
            {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": r.call_id, "content": r.payload}
                    for r in results
                ],
            }
        )
        return wire_history


# ---------------------------------------------------------------------------
# Variant B: OpenAI-compatible function calling
# ---------------------------------------------------------------------------


def _decode_arguments(raw: str | None) -> Any:
    """Arguments arrive as a JSON string; keep the raw text if it is not an object."""
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return decoded if isinstance(decoded, dict) else raw


class OpenAIAdapter(ProviderAdapter):
    wire_format = "openai"

    def __init__(
        self,
        model: str,
        provider: str = "openai",
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any = None,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        super().__init__(model, max_tokens)
        self.provider = provider
        self._client = client or openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url if base_url is not None else BASE_URLS.get(provider),
        )

    def serialize_actions(self, actions: list[ActionDescriptor]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": a.name,
                    "description": a.description,
                    "parameters": a.json_schema(),
                },
            }
            for a in actions
        ]

    def build_request(self, system_prompt, wire_history, tool_schema) -> dict[str, Any]:
        # System prompt is always refreshed so identity changes are picked up.
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "system", "content": system_prompt}, *wire_history],
            "tools": tool_schema,
        }

    async def complete(self, request: dict[str, Any]) -> Any:
        try:
            return await self._client.chat.completions.create(**request)
        except openai.APIError as exc:
            raise ProviderTransportError(f"{self.provider} request failed: {exc}") from exc

    def parse_response(self, response: Any) -> ModelReply:
        if not response.choices:
            raise ProviderTransportError(f"{self.provider} returned no choices.")
        choice = response.choices[0]
        message = choice.message
        tool_calls = [tc for tc in message.tool_calls or [] if tc.type == "function"]

        if choice.finish_reason == "tool_calls" and tool_calls:
            raw = {
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.function.name,
                            "arguments": tc.function.arguments,
                        },
                    }
                    for tc in tool_calls
                ],
            }
            calls = [
                ToolCallRequest(
                    call_id=tc.id,
                    action=tc.function.name,
                    arguments=_decode_arguments(tc.function.arguments),
                )
                for tc in tool_calls
            ]
            return ModelReply(
                kind="tool_calls", content=message.content or "", calls=calls, raw_assistant_turn=raw
            )

        return ModelReply(kind="text", content=message.content or "")

    def append_user(self, wire_history, text: str):
        wire_history.append({"role": "user", "content": text})
        return wire_history

    def append_assistant_text(self, wire_history, reply: ModelReply):
        wire_history.append({"role": "assistant", "content": reply.content})
        return wire_history

    def append_tool_results(self, wire_history, raw_assistant_turn, results: list[ToolResult]):
        wire_history.append(raw_assistant_turn)
        for r in results:
            wire_history.append({"role": "tool", "tool_call_id": r.call_id, "content": r.payload})
        return wire_history


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_adapter(config: AiConfig | None) -> ProviderAdapter:
    """Instantiate the adapter for a stored provider config."""
    if config is None:
        raise ConfigurationError(NOT_CONFIGURED)

    if config.provider == "claude":
        if not config.has_key:
            raise ConfigurationError("Claude API key not configured. Go to Settings to set it up.")
        return AnthropicAdapter(model=config.model, api_key=config.api_key)

    if config.provider == "ollama":
        return OpenAIAdapter(model=config.model, provider="ollama", api_key=config.api_key or "ollama")

    if not config.has_key:
        raise ConfigurationError(f"{config.provider} API key not configured. Go to Settings to set it up.")
    return OpenAIAdapter(model=config.model, provider=config.provider, api_key=config.api_key)
