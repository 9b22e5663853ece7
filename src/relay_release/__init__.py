"""Release tooling for the tagoio-relay binary: matrix builds, artifact hand-off, multi-arch image publish."""

__version__ = "0.1.0"
