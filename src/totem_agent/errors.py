# errors.py
# Hard failures that abort a chat turn and surface to the caller of send().
# Tool-level failures never use these: they are serialised as {"error": ...}
# payloads by the executor and fed back to the model.


class AgentError(Exception):
    """Base class for errors that halt a conversation turn."""


class ConfigurationError(AgentError):
    """No usable provider, model, or credential is configured."""


class ProviderTransportError(AgentError):
    """The model provider could not be reached, rejected auth, or returned garbage."""


class SessionChanged(AgentError):
    """The session was cleared or torn down while this message waited its turn."""
