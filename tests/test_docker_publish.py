"""Tests for relay_release.docker (PublishOrchestrator, DockerCli, Dockerfile rendering)."""

import subprocess
from io import StringIO
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import FakeDocker
from relay_release.artifacts import ArtifactStore
from relay_release.build import PublishTarget, TargetMatrix
from relay_release.docker import DockerCli, DockerCommandFailed, PublishOrchestrator, render_dockerfile
from relay_release.errors import ArtifactInvalid, ArtifactMissing, PublishAborted

TARGETS = TargetMatrix().publish_targets


def _store_with(tmp_path: Path, platforms: list[str]) -> ArtifactStore:
    store = ArtifactStore(tmp_path / "artifacts", "tagoio-relay")
    for p in platforms:
        src = tmp_path / f"bin-{p}"
        src.write_bytes(b"\x7fELF" + p.encode())
        store.put(p, src)
    return store


def _orchestrator(store: ArtifactStore, docker: FakeDocker, push: bool = True) -> PublishOrchestrator:
    return PublishOrchestrator(store, "tagoio/relay", backend=docker, push=push)


class TestPublish:
    def test_two_architectures_pushed_under_version(self, tmp_path: Path) -> None:
        docker = FakeDocker()
        store = _store_with(tmp_path, ["linux-x64", "linux-arm64"])
        with patch("sys.stdout", new=StringIO()):
            image = _orchestrator(store, docker).publish("2.3.0", TARGETS)
        assert image.pushed
        assert image.manifest_ref == "tagoio/relay:2.3.0"
        assert image.layers == {
            "linux/amd64": "tagoio/relay:2.3.0-amd64",
            "linux/arm64/v8": "tagoio/relay:2.3.0-arm64-v8",
        }
        assert docker.registry["tagoio/relay:2.3.0"] == ["tagoio/relay:2.3.0-amd64", "tagoio/relay:2.3.0-arm64-v8"]
        assert docker.annotations["tagoio/relay:2.3.0"]["tagoio/relay:2.3.0-arm64-v8"] == ("linux", "arm64", "v8")
        assert docker.annotations["tagoio/relay:2.3.0"]["tagoio/relay:2.3.0-amd64"] == ("linux", "amd64", None)
        assert image.manifest_digest.startswith("sha256:")

    def test_images_pushed_only_after_all_layers_built(self, tmp_path: Path) -> None:
        docker = FakeDocker()
        store = _store_with(tmp_path, ["linux-x64", "linux-arm64"])
        with patch("sys.stdout", new=StringIO()):
            _orchestrator(store, docker).publish("2.3.0", TARGETS)
        names = [c[0] for c in docker.calls]
        last_build = max(i for i, n in enumerate(names) if n == "build_layer")
        first_push = names.index("push_image")
        assert last_build < first_push
        assert names[-1] == "push_manifest"

    def test_missing_artifact_aborts_without_manifest(self, tmp_path: Path) -> None:
        docker = FakeDocker()
        store = _store_with(tmp_path, ["linux-x64"])
        with patch("sys.stdout", new=StringIO()), patch("sys.stderr", new=StringIO()):
            with pytest.raises(PublishAborted) as exc_info:
                _orchestrator(store, docker).publish("2.3.0", TARGETS)
        assert exc_info.value.failed_architectures == ["linux/arm64/v8"]
        assert isinstance(exc_info.value.failures["linux/arm64/v8"], ArtifactMissing)
        assert docker.commands("push_image") == []
        assert docker.commands("create_manifest") == []
        assert docker.registry == {}

    def test_fetch_raises_artifact_missing(self, tmp_path: Path) -> None:
        store = _store_with(tmp_path, ["linux-x64"])
        with pytest.raises(ArtifactMissing) as exc_info:
            _orchestrator(store, FakeDocker()).fetch(PublishTarget("linux-arm64", "linux/arm64/v8"))
        assert exc_info.value.platform == "linux-arm64"

    def test_one_layer_failure_aborts_whole_publish(self, tmp_path: Path) -> None:
        docker = FakeDocker(fail_architectures={"linux/arm64/v8"})
        store = _store_with(tmp_path, ["linux-x64", "linux-arm64"])
        with patch("sys.stdout", new=StringIO()), patch("sys.stderr", new=StringIO()) as err:
            with pytest.raises(PublishAborted) as exc_info:
                _orchestrator(store, docker).publish("2.3.0", TARGETS)
        assert exc_info.value.failed_architectures == ["linux/arm64/v8"]
        assert "linux/arm64/v8" in err.getvalue()
        # amd64 was built but never pushed; no manifest references it alone.
        assert "tagoio/relay:2.3.0-amd64" in docker.local_images
        assert docker.pushed_images == set()
        assert docker.registry == {}

    def test_all_layers_failing_are_all_listed(self, tmp_path: Path) -> None:
        docker = FakeDocker(fail_architectures={"linux/amd64", "linux/arm64/v8"})
        store = _store_with(tmp_path, ["linux-x64", "linux-arm64"])
        with patch("sys.stdout", new=StringIO()), patch("sys.stderr", new=StringIO()):
            with pytest.raises(PublishAborted) as exc_info:
                _orchestrator(store, docker).publish("2.3.0", TARGETS)
        assert exc_info.value.failed_architectures == ["linux/amd64", "linux/arm64/v8"]

    def test_tampered_artifact_is_invalid(self, tmp_path: Path) -> None:
        store = _store_with(tmp_path, ["linux-x64", "linux-arm64"])
        store.get("linux-arm64").path.write_bytes(b"tampered")
        docker = FakeDocker()
        with patch("sys.stdout", new=StringIO()), patch("sys.stderr", new=StringIO()):
            with pytest.raises(PublishAborted) as exc_info:
                _orchestrator(store, docker).publish("2.3.0", TARGETS)
        err = exc_info.value.failures["linux/arm64/v8"]
        assert isinstance(err, ArtifactInvalid)
        assert "sha256" in err.reason
        assert [c[1] for c in docker.commands("build_layer")] == ["linux/amd64"]

    def test_empty_artifact_is_invalid(self, tmp_path: Path) -> None:
        store = _store_with(tmp_path, ["linux-x64"])
        artifact = store.get("linux-x64")
        artifact.path.write_bytes(b"")
        with pytest.raises(ArtifactInvalid) as exc_info:
            _orchestrator(store, FakeDocker()).validate(TARGETS[0], artifact)
        assert "empty" in exc_info.value.reason

    def test_republish_same_version_overwrites(self, tmp_path: Path) -> None:
        docker = FakeDocker()
        store = _store_with(tmp_path, ["linux-x64", "linux-arm64"])
        with patch("sys.stdout", new=StringIO()):
            _orchestrator(store, docker).publish("2.3.0", TARGETS)
            _orchestrator(store, docker).publish("2.3.0", TARGETS)
        assert list(docker.registry) == ["tagoio/relay:2.3.0"]
        assert len(docker.registry["tagoio/relay:2.3.0"]) == 2

    def test_no_push_builds_layers_only(self, tmp_path: Path) -> None:
        docker = FakeDocker()
        store = _store_with(tmp_path, ["linux-x64", "linux-arm64"])
        with patch("sys.stdout", new=StringIO()):
            image = _orchestrator(store, docker, push=False).publish("2.3.0", TARGETS)
        assert not image.pushed
        assert len(docker.commands("build_layer")) == 2
        assert docker.commands("push_image") == []
        assert docker.registry == {}

    def test_dockerfile_embeds_binary(self, tmp_path: Path) -> None:
        docker = FakeDocker()
        store = _store_with(tmp_path, ["linux-x64", "linux-arm64"])
        with patch("sys.stdout", new=StringIO()):
            _orchestrator(store, docker).publish("2.3.0", TARGETS)
        df = docker.dockerfiles["linux/amd64"]
        assert "COPY tagoio-relay /usr/local/bin/tagoio-relay" in df
        assert 'version="2.3.0"' in df


class TestRenderDockerfile:
    def test_custom_template_placeholders(self) -> None:
        out = render_dockerfile(
            "tagoio-relay",
            "1.0.0",
            "linux/arm64/v8",
            base_image="alpine:3.20",
            template="FROM {{base_image}}\n# {{architecture}} {{version}}\nCOPY {{binary_name}} /app/\n",
        )
        assert out == "FROM alpine:3.20\n# linux/arm64/v8 1.0.0\nCOPY tagoio-relay /app/\n"


class TestDockerCli:
    def _ok(self, stdout: str = ""):
        return lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout, "")

    def test_build_layer_loads_single_platform(self, tmp_path: Path) -> None:
        with patch("relay_release.docker.backend.subprocess.run", side_effect=self._ok()) as m:
            DockerCli().build_layer("linux/arm64/v8", "r:1-arm64-v8", tmp_path / "Dockerfile", tmp_path)
        (cmd,) = m.call_args[0]
        assert cmd[:3] == ["docker", "buildx", "build"]
        assert cmd[cmd.index("--platform") + 1] == "linux/arm64/v8"
        assert "--load" in cmd
        assert "--push" not in cmd

    def test_login_sends_token_on_stdin_only(self) -> None:
        with patch("relay_release.docker.backend.subprocess.run", side_effect=self._ok()) as m:
            DockerCli().login("tago", "dckr_pat_secret")
        (cmd,) = m.call_args[0]
        assert "dckr_pat_secret" not in cmd
        assert m.call_args.kwargs["input"] == "dckr_pat_secret"

    def test_manifest_create_amends_and_push_purges(self) -> None:
        digest = "sha256:" + "0f" * 32
        with patch("relay_release.docker.backend.subprocess.run", side_effect=self._ok(digest + "\n")) as m:
            cli = DockerCli()
            cli.create_manifest("r:1", ["r:1-amd64"])
            assert cli.push_manifest("r:1") == digest
        create, push = (c[0][0] for c in m.call_args_list)
        assert "--amend" in create
        assert push == ["docker", "manifest", "push", "--purge", "r:1"]

    def test_failure_raises_with_last_stderr_line(self) -> None:
        def _fail(cmd, **kw):
            return subprocess.CompletedProcess(cmd, 1, "", "step 1\nERROR: exec format error\n")

        with patch("relay_release.docker.backend.subprocess.run", side_effect=_fail):
            with pytest.raises(DockerCommandFailed) as exc_info:
                DockerCli().push_image("r:1-amd64")
        assert exc_info.value.detail == "ERROR: exec format error"

    def test_missing_docker_binary_raises_command_failed(self, tmp_path: Path) -> None:
        cli = DockerCli(docker=str(tmp_path / "no-such-docker"))
        with pytest.raises(DockerCommandFailed) as exc_info:
            cli.build_layer("linux/amd64", "r:1-amd64", tmp_path / "Dockerfile", tmp_path)
        assert "no-such-docker" in exc_info.value.detail

    def test_ensure_builder_creates_when_missing(self) -> None:
        def _run(cmd, **kw):
            rc = 1 if cmd[1:3] == ["buildx", "inspect"] else 0
            return subprocess.CompletedProcess(cmd, rc, "", "no builder")

        with patch("relay_release.docker.backend.subprocess.run", side_effect=_run) as m:
            DockerCli().ensure_builder(setup_qemu=True)
        cmds = [c[0][0] for c in m.call_args_list]
        assert cmds[0][:4] == ["docker", "run", "--privileged", "--rm"]
        assert cmds[-1] == ["docker", "buildx", "create", "--name", "relay-release", "--use"]
