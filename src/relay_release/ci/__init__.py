"""CI plumbing: release trigger and version resolution."""

from .trigger import (
    DEFAULT_DISPATCH_VERSION,
    ReleaseTrigger,
    TriggerKind,
    resolve_version,
    trigger_from_env,
)

__all__ = [
    "DEFAULT_DISPATCH_VERSION",
    "ReleaseTrigger",
    "TriggerKind",
    "resolve_version",
    "trigger_from_env",
]
