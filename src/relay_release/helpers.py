"""Shared helpers for relay_release (hashing, naming, YAML).

Used by config, artifacts and docker.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

import yaml

# --- Files ---


def sha256_file(path: Path, chunk_size: int = 1 << 20) -> str:
    """Hex sha256 of a file, read in chunks."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def load_yaml_file(p: Path) -> dict[str, Any]:
    """Load a YAML mapping from path. Empty file -> {}. Raises ValueError on bad YAML or a non-mapping top level."""
    with p.open() as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Invalid YAML in {p}: {e}"
            raise ValueError(msg) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a mapping at top level of {p}"
        raise ValueError(msg)
    return data


# --- Naming ---


def artifact_slot_name(prefix: str, platform_id: str) -> str:
    """Artifact name shared by producer and consumer: {prefix}-{platform} (e.g. tagoio-relay-linux-arm64)."""
    return f"{prefix}-{platform_id}"


def arch_slug(architecture: str) -> str:
    """Registry-safe suffix for an architecture tag: linux/arm64/v8 -> arm64-v8, linux/amd64 -> amd64."""
    parts = architecture.split("/")
    if len(parts) > 1 and parts[0] == "linux":
        parts = parts[1:]
    return "-".join(parts)


def split_architecture(architecture: str) -> tuple[str, str, str | None]:
    """linux/arm64/v8 -> ("linux", "arm64", "v8"); linux/amd64 -> ("linux", "amd64", None)."""
    parts = architecture.split("/")
    if len(parts) < 2 or not all(parts):
        msg = f"Invalid architecture tag: {architecture!r} (expected os/arch[/variant])"
        raise ValueError(msg)
    return parts[0], parts[1], parts[2] if len(parts) > 2 else None
