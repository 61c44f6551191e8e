"""Service layer helpers (settings, prompt library, host interfaces)."""

from .host import CommandRegistry, HostEnvironment, MessageLevel, UnknownCommandError
from .prompt_store import PromptStore
from .settings import SecretVault, Settings, SettingsStore

__all__ = [
    "CommandRegistry",
    "HostEnvironment",
    "MessageLevel",
    "PromptStore",
    "SecretVault",
    "Settings",
    "SettingsStore",
    "UnknownCommandError",
]
