"""Docker helpers: Dockerfile rendering, docker CLI backend, multi-arch publish."""

from .backend import DockerCli, DockerCommandFailed
from .dockerfile import DEFAULT_BASE_IMAGE, load_template, render_dockerfile
from .publish import PublishOrchestrator, ReleaseImage

__all__ = [
    "DEFAULT_BASE_IMAGE",
    "DockerCli",
    "DockerCommandFailed",
    "PublishOrchestrator",
    "ReleaseImage",
    "load_template",
    "render_dockerfile",
]
