"""
Tests for the docker adapter — docker and kind calls are mocked.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from kubeship.adapters.base import BuildRequest
from kubeship.adapters.containers.docker import DockerEngine, kind_load
from kubeship.core.errors import (
    CredentialError,
    ImageBuildFailed,
    MetadataExtractionFailed,
    SideloadFailed,
)

REF = "ghcr.io/acme/shop/backend:abc123f"


def _mock_result(returncode=0, stdout="", stderr=""):
    """Create a mock subprocess.CompletedProcess."""
    return type("Result", (), {
        "returncode": returncode, "stdout": stdout, "stderr": stderr,
    })()


def _docker_verbs(mock_run) -> list[str]:
    return [call[0][0] for call in mock_run.call_args_list]


class TestExistence:
    @patch("kubeship.adapters.containers.docker.run_docker")
    def test_local(self, mock_docker):
        mock_docker.return_value = _mock_result(stdout="sha256:1234\n")
        assert DockerEngine().image_exists_local(REF)
        assert mock_docker.call_args[0][:2] == ("image", "inspect")

    @patch("kubeship.adapters.containers.docker.run_docker")
    def test_manifest_missing(self, mock_docker):
        mock_docker.return_value = _mock_result(returncode=1, stderr="no such manifest")
        assert not DockerEngine().manifest_exists(REF)

    @patch("kubeship.adapters.containers.docker.run_docker")
    def test_manifest_unauthorized(self, mock_docker):
        mock_docker.return_value = _mock_result(returncode=1, stderr="unauthorized: authentication required")
        with pytest.raises(CredentialError):
            DockerEngine().manifest_exists(REF)


class TestStreaming:
    @patch("kubeship.adapters.containers.docker.run_docker_stream")
    def test_build_args(self, mock_stream, tmp_path: Path):
        mock_stream.return_value = iter([("stdout", '{"stream": "Step 1/2"}'), ("exit", 0)])
        request = BuildRequest(
            context=tmp_path / "context.tar",
            dockerfile="__Dockerfile",
            tags=[REF],
            build_args={"COMPONENT": "backend", "APP_YAML": "app.yaml"},
            labels={"org.opencontainers.image.revision": "abc123f"},
            no_cache=True,
        )
        lines = list(DockerEngine().build(request))

        assert lines == ['{"stream": "Step 1/2"}']
        args = mock_stream.call_args[0]
        assert args[:3] == ("build", "--file", "__Dockerfile")
        assert "--no-cache" in args
        assert args[-1] == "-"
        # build args sorted by name
        assert args.index("APP_YAML=app.yaml") < args.index("COMPONENT=backend")
        assert mock_stream.call_args[1]["stdin_path"] == tmp_path / "context.tar"

    @patch("kubeship.adapters.containers.docker.run_docker_stream")
    def test_build_nonzero_exit(self, mock_stream, tmp_path: Path):
        mock_stream.return_value = iter([("stderr", "failed to solve"), ("exit", 1)])
        request = BuildRequest(context=tmp_path / "c.tar", dockerfile="__Dockerfile", tags=[REF])
        with pytest.raises(ImageBuildFailed, match="failed to solve"):
            list(DockerEngine().build(request))

    @patch("kubeship.adapters.containers.docker.run_docker_stream")
    def test_push(self, mock_stream):
        mock_stream.return_value = iter([("stdout", "pushed"), ("exit", 0)])
        assert list(DockerEngine().push(REF)) == ["pushed"]
        assert mock_stream.call_args[0] == ("push", REF)


class TestLogin:
    @patch("kubeship.adapters.containers.docker.run_docker")
    def test_token_on_stdin(self, mock_docker):
        mock_docker.return_value = _mock_result(stdout="Login Succeeded")
        DockerEngine().login("ghcr.io", "me", "s3cret")
        assert "s3cret" not in mock_docker.call_args[0]
        assert mock_docker.call_args[1]["input"] == "s3cret"

    @patch("kubeship.adapters.containers.docker.run_docker")
    def test_rejected(self, mock_docker):
        mock_docker.return_value = _mock_result(returncode=1, stderr="denied")
        with pytest.raises(CredentialError):
            DockerEngine().login("ghcr.io", "me", "bad")


class TestRunExport:
    @patch("kubeship.adapters.containers.docker.run_docker")
    def test_success_removes_container(self, mock_docker):
        mock_docker.side_effect = [
            _mock_result(stdout="c0ffee\n"),          # create
            _mock_result(),                           # start
            _mock_result(stdout="0\n"),               # wait
            _mock_result(stdout='{"type": "KubeFox"}'),  # logs
            _mock_result(),                           # rm
        ]
        output = DockerEngine().run_export(REF, ["-export"], timeout=30)

        assert output == '{"type": "KubeFox"}'
        assert _docker_verbs(mock_docker) == ["create", "start", "wait", "logs", "rm"]
        assert mock_docker.call_args_list[0][0] == ("create", REF, "-export")
        assert mock_docker.call_args_list[-1][0] == ("rm", "--force", "c0ffee")

    @patch("kubeship.adapters.containers.docker.run_docker")
    def test_failure_still_removes_container(self, mock_docker):
        mock_docker.side_effect = [
            _mock_result(stdout="c0ffee\n"),
            _mock_result(),
            _mock_result(stdout="2\n"),
            _mock_result(stderr="flag provided but not defined: -export"),
            _mock_result(),
        ]
        with pytest.raises(MetadataExtractionFailed, match="status 2"):
            DockerEngine().run_export(REF, ["-export"], timeout=30)
        assert _docker_verbs(mock_docker)[-1] == "rm"

    @patch("kubeship.adapters.containers.docker.run_docker")
    def test_create_failure(self, mock_docker):
        mock_docker.return_value = _mock_result(returncode=1, stderr="No such image")
        with pytest.raises(MetadataExtractionFailed, match="Could not create"):
            DockerEngine().run_export(REF, ["-export"], timeout=30)
        assert _docker_verbs(mock_docker) == ["create"]


class TestKindLoad:
    @patch("kubeship.adapters.containers.docker.run_command")
    def test_command(self, mock_run):
        mock_run.return_value = _mock_result(stdout="Image loaded")
        kind_load(REF, "kind")
        assert mock_run.call_args[0][0] == ["kind", "load", "docker-image", "--name=kind", REF]

    @patch("kubeship.adapters.containers.docker.run_command")
    def test_failure(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="no nodes found for cluster")
        with pytest.raises(SideloadFailed, match="no nodes"):
            DockerEngine().sideload(REF, "missing")
