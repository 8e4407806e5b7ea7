# config.py
# AI provider configuration: which provider, which model, which key.
#
# Resolution order: environment (.env is loaded on import) → JSON store →
# built-in defaults. The store keeps a previously saved key when save() is
# called without one, so switching model never forces re-entering the key.
# Encryption at rest belongs to the desktop shell, not this module.

import json
import os
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv
from pydantic import ValidationError

from totem_agent.errors import ConfigurationError
from totem_agent.models import AiConfig

load_dotenv()

APP_DIR = Path(os.environ.get("TOTEM_AGENT_HOME", str(Path.home() / ".totem-agent")))
CONFIG_FILE = APP_DIR / "config.json"

DEFAULT_PROVIDER = "claude"
DEFAULT_MODELS = {
    "claude": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
    "ollama": "llama3.1",
    "chutes": "deepseek-ai/DeepSeek-V3",
}
PROVIDER_KEY_ENV = {
    "claude": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "chutes": "CHUTES_API_KEY",
}


class ConfigStore:
    """JSON file holding the active provider, model and API key."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path is not None else CONFIG_FILE

    def _read(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Config file {self.path} is unreadable: {exc}") from exc
        return data if isinstance(data, dict) else {}

    def load(self) -> AiConfig | None:
        data = self._read()
        if not data.get("provider") or not data.get("model"):
            return None
        try:
            return AiConfig(
                provider=data["provider"],
                model=data["model"],
                api_key=data.get("api_key") or None,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Config file {self.path} is invalid: {exc}") from exc

    def save(self, provider: str, model: str, api_key: str | None = None) -> AiConfig:
        previous = self._read()
        try:
            config = AiConfig(
                provider=provider,
                model=model,
                api_key=api_key or previous.get("api_key") or None,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid AI provider settings: {exc}") from exc

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
        self.path.chmod(0o600)
        return config


def resolve_ai_config(
    store: ConfigStore | None = None,
    environ: Mapping[str, str] | None = None,
) -> AiConfig | None:
    """
    Merge environment overrides with the stored config.

    Returns None when nothing selects a provider. A stored key is only
    reused for the provider it was saved with.
    """
    env = os.environ if environ is None else environ
    stored = store.load() if store is not None else None

    provider = env.get("TOTEM_AI_PROVIDER") or (stored.provider if stored else None)
    if provider is None and env.get(PROVIDER_KEY_ENV[DEFAULT_PROVIDER]):
        provider = DEFAULT_PROVIDER
    if provider is None:
        return None

    same_provider = stored is not None and stored.provider == provider
    model = (
        env.get("TOTEM_AI_MODEL")
        or (stored.model if same_provider else None)
        or DEFAULT_MODELS.get(provider)
    )
    api_key = (
        env.get("TOTEM_AI_API_KEY")
        or (stored.api_key if same_provider else None)
        or env.get(PROVIDER_KEY_ENV.get(provider, ""))
        or None
    )

    try:
        return AiConfig(provider=provider, model=model, api_key=api_key)
    except ValidationError as exc:
        raise ConfigurationError(f"Unknown AI provider {provider!r}.") from exc
