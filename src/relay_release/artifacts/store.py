"""Filesystem hand-off of built binaries from the build phase to the publish phase.

Layout under the store root (one root per pipeline invocation):

    {prefix}-{platform}/{binary_name}
    {prefix}-{platform}/{binary_name}.sha256

The slot name is derived from the platform id alone, so a build job and a
publish job agree on it without further coordination (it is also the name used
for CI upload/download-artifact steps). A slot is written into a temporary
sibling and renamed into place: it is either complete or absent.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from relay_release.errors import ArtifactMissing
from relay_release.helpers import artifact_slot_name, sha256_file

log = logging.getLogger(__name__)

HASH_SUFFIX = ".sha256"


@dataclass(frozen=True)
class BuildArtifact:
    platform_id: str
    path: Path
    produced_at: datetime
    sha256: str
    size: int


class ArtifactStore:
    def __init__(self, root: Path, binary_name: str, prefix: str = "tagoio-relay") -> None:
        self.root = Path(root)
        self.binary_name = binary_name
        self.prefix = prefix

    def slot_dir(self, platform_id: str) -> Path:
        return self.root / artifact_slot_name(self.prefix, platform_id)

    def put(self, platform_id: str, source: Path) -> BuildArtifact:
        """Copy source into the platform's slot. Last write for a key wins."""
        source = Path(source)
        self.root.mkdir(parents=True, exist_ok=True)
        final = self.slot_dir(platform_id)
        staging = Path(tempfile.mkdtemp(prefix=f".{final.name}.", dir=str(self.root)))
        try:
            dest_bin = staging / self.binary_name
            shutil.copy2(source, dest_bin)
            dest_bin.chmod(0o755)
            digest = sha256_file(dest_bin)
            (staging / f"{self.binary_name}{HASH_SUFFIX}").write_text(digest)
            self._swap_in(staging, final)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        log.debug("Stored %s for %s (%s)", self.binary_name, platform_id, digest)
        return self._describe(platform_id, final / self.binary_name, digest)

    def get(self, platform_id: str) -> BuildArtifact:
        """Artifact stored for platform_id. Raises ArtifactMissing if no build completed for it."""
        slot = self.slot_dir(platform_id)
        binary = slot / self.binary_name
        if not slot.is_dir() or not binary.exists():
            raise ArtifactMissing(platform_id)
        hash_path = slot / f"{self.binary_name}{HASH_SUFFIX}"
        digest = hash_path.read_text().strip() if hash_path.is_file() else ""
        return self._describe(platform_id, binary, digest)

    def platforms(self) -> list[str]:
        """Platform ids with a complete slot."""
        if not self.root.is_dir():
            return []
        head = f"{self.prefix}-"
        out = []
        for d in self.root.iterdir():
            if d.is_dir() and d.name.startswith(head) and (d / self.binary_name).exists():
                out.append(d.name[len(head) :])
        return sorted(out)

    def clear(self) -> None:
        """Remove every slot and leftover staging directory of this store. Other files under root are left alone."""
        if not self.root.is_dir():
            return
        head = f"{self.prefix}-"
        for d in self.root.iterdir():
            if d.is_dir() and not d.is_symlink() and d.name.lstrip(".").startswith(head):
                shutil.rmtree(d)

    def _swap_in(self, staging: Path, final: Path) -> None:
        # Old slot is moved aside, not deleted, until the new one is in place.
        if not final.exists():
            os.replace(staging, final)
            return
        aside = final.with_name(f".{final.name}.old")
        shutil.rmtree(aside, ignore_errors=True)
        os.replace(final, aside)
        try:
            os.replace(staging, final)
        except BaseException:
            os.replace(aside, final)
            raise
        shutil.rmtree(aside, ignore_errors=True)

    def _describe(self, platform_id: str, path: Path, digest: str) -> BuildArtifact:
        st = path.stat()
        return BuildArtifact(
            platform_id=platform_id,
            path=path,
            produced_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            sha256=digest,
            size=st.st_size,
        )
