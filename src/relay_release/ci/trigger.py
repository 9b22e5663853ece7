"""Release trigger and version resolution.

The version is resolved once per pipeline invocation and passed explicitly to
every later phase; the image tag is derived from it verbatim.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from relay_release.errors import ConfigError, MissingVersion

DEFAULT_DISPATCH_VERSION = "1.0.0"


class TriggerKind(str, Enum):
    MANUAL_DISPATCH = "workflow_dispatch"
    RELEASE_PUBLISHED = "release"


@dataclass(frozen=True)
class ReleaseTrigger:
    kind: TriggerKind
    supplied_version: str | None = None
    release_tag: str | None = None

    @classmethod
    def manual(cls, version: str | None) -> ReleaseTrigger:
        return cls(TriggerKind.MANUAL_DISPATCH, supplied_version=version)

    @classmethod
    def release(cls, tag: str | None) -> ReleaseTrigger:
        return cls(TriggerKind.RELEASE_PUBLISHED, release_tag=tag)

    @classmethod
    def from_github_event(cls, event_name: str, payload: dict[str, Any]) -> ReleaseTrigger:
        """Build from a GitHub Actions event name and its JSON payload."""
        if event_name == TriggerKind.MANUAL_DISPATCH.value:
            inputs = payload.get("inputs") or {}
            return cls.manual(inputs.get("version"))
        if event_name == TriggerKind.RELEASE_PUBLISHED.value:
            release = payload.get("release") or {}
            return cls.release(release.get("tag_name"))
        msg = f"Unsupported trigger event: {event_name!r} (expected workflow_dispatch or release)"
        raise ConfigError(msg)


def trigger_from_env(environ: dict[str, str] | None = None) -> ReleaseTrigger:
    """Read GITHUB_EVENT_NAME and the GITHUB_EVENT_PATH payload."""
    env = os.environ if environ is None else environ
    event_name = env.get("GITHUB_EVENT_NAME", "")
    event_path = env.get("GITHUB_EVENT_PATH", "")
    if not event_name:
        msg = "GITHUB_EVENT_NAME is not set; pass --event instead"
        raise ConfigError(msg)
    payload: dict[str, Any] = {}
    if event_path:
        try:
            payload = json.loads(Path(event_path).read_text())
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Could not read event payload {event_path}: {e}"
            raise ConfigError(msg) from e
    return ReleaseTrigger.from_github_event(event_name, payload)


def resolve_version(trigger: ReleaseTrigger, strip_v_prefix: bool = False) -> str:
    """Supplied version first, then the release tag. Raises MissingVersion if neither is usable."""
    for candidate in (trigger.supplied_version, trigger.release_tag):
        if candidate is None:
            continue
        version = candidate.strip()
        if strip_v_prefix and version[:1] == "v":
            version = version[1:]
        if version:
            return version
    raise MissingVersion(trigger.kind.value)
