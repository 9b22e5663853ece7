"""Artifact hand-off between build and publish."""

from .store import ArtifactStore, BuildArtifact

__all__ = ["ArtifactStore", "BuildArtifact"]
