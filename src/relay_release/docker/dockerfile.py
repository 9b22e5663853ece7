"""Per-architecture Dockerfile for the relay image, rendered from a template."""

from __future__ import annotations

from pathlib import Path

DEFAULT_BASE_IMAGE = "gcr.io/distroless/cc-debian12"

DEFAULT_TEMPLATE = """\
FROM {{base_image}}
LABEL org.opencontainers.image.version="{{version}}"
COPY {{binary_name}} /usr/local/bin/{{binary_name}}
ENTRYPOINT ["/usr/local/bin/{{binary_name}}"]
"""


def render_dockerfile(
    binary_name: str,
    version: str,
    architecture: str,
    base_image: str = DEFAULT_BASE_IMAGE,
    template: str | None = None,
) -> str:
    """Substitute {{binary_name}}, {{version}}, {{architecture}} and {{base_image}}."""
    content = DEFAULT_TEMPLATE if template is None else template
    content = content.replace("{{binary_name}}", binary_name)
    content = content.replace("{{version}}", version)
    content = content.replace("{{architecture}}", architecture)
    content = content.replace("{{base_image}}", base_image)
    return content


def load_template(path: Path | None) -> str | None:
    """Template text from path, or None for the built-in one. Raises FileNotFoundError if path is missing."""
    if path is None:
        return None
    if not path.is_file():
        msg = f"Template not found: {path}"
        raise FileNotFoundError(msg)
    return path.read_text()
