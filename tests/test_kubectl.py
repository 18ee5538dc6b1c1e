"""
Tests for the kubectl orchestrator — all kubectl calls are mocked.
"""

import json
from unittest.mock import patch

import pytest

from kubeship.adapters.cluster.kubectl import KubectlOrchestrator
from kubeship.core.errors import ApplyConflict, OrchestratorError, ResourceNotFound
from kubeship.core.models.resources import LABEL_APP_NAME, LABEL_APP_VERSION, ResourceKind, new_resource


def _mock_result(returncode=0, stdout="", stderr=""):
    """Create a mock subprocess.CompletedProcess."""
    return type("Result", (), {
        "returncode": returncode, "stdout": stdout, "stderr": stderr,
    })()


class TestGet:
    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_namespaced(self, mock_run):
        obj = new_resource(ResourceKind.VIRTUAL_ENV, "dev", "kubefox-dev")
        mock_run.return_value = _mock_result(stdout=json.dumps(obj))

        assert KubectlOrchestrator().get(ResourceKind.VIRTUAL_ENV, "dev", "kubefox-dev") == obj
        assert mock_run.call_args[0] == (
            "get", "virtualenvs.kubefox.xigxog.io", "dev", "-o", "json", "-n", "kubefox-dev",
        )

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_cluster_scoped_ignores_namespace(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps(new_resource(ResourceKind.ENVIRONMENT, "prod")))
        KubectlOrchestrator().get(ResourceKind.ENVIRONMENT, "prod", "kubefox-dev")
        assert "-n" not in mock_run.call_args[0]

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_not_found(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1,
            stderr='Error from server (NotFound): appdeployments.kubefox.xigxog.io "x" not found',
        )
        with pytest.raises(ResourceNotFound):
            KubectlOrchestrator().get(ResourceKind.APP_DEPLOYMENT, "x", "ns")

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_other_failure(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="Unable to connect to the server")
        with pytest.raises(OrchestratorError) as exc:
            KubectlOrchestrator().get(ResourceKind.PLATFORM, "dev", "ns")
        assert not isinstance(exc.value, ResourceNotFound)

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_missing_context_is_not_missing_object(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr='error: context "staging" not found')
        with pytest.raises(OrchestratorError) as exc:
            KubectlOrchestrator(context="staging").get(ResourceKind.APP_DEPLOYMENT, "shop-main", "ns")
        assert not isinstance(exc.value, ResourceNotFound)

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_invalid_json(self, mock_run):
        mock_run.return_value = _mock_result(stdout="not json")
        with pytest.raises(OrchestratorError, match="invalid JSON"):
            KubectlOrchestrator().get(ResourceKind.PLATFORM, "dev", "ns")

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_context(self, mock_run):
        mock_run.return_value = _mock_result(stdout="{}")
        KubectlOrchestrator(context="kind-kind").get(ResourceKind.PLATFORM, "dev", "ns")
        assert mock_run.call_args[0][:2] == ("--context", "kind-kind")


class TestList:
    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_all_namespaces_with_labels(self, mock_run):
        items = [new_resource(ResourceKind.APP_DEPLOYMENT, "shop-v1", "a")]
        mock_run.return_value = _mock_result(stdout=json.dumps({"items": items}))

        found = KubectlOrchestrator().list(
            ResourceKind.APP_DEPLOYMENT, None, {LABEL_APP_VERSION: "v1", LABEL_APP_NAME: "shop"}
        )
        assert found == items
        args = mock_run.call_args[0]
        assert "--all-namespaces" in args
        assert args[-2:] == ("-l", f"{LABEL_APP_NAME}=shop,{LABEL_APP_VERSION}=v1")

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_namespace(self, mock_run):
        mock_run.return_value = _mock_result(stdout=json.dumps({"items": []}))
        assert KubectlOrchestrator().list(ResourceKind.POD, "kubefox-dev") == []
        assert mock_run.call_args[0][-2:] == ("-n", "kubefox-dev")

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_failure_propagates(self, mock_run):
        mock_run.return_value = _mock_result(returncode=1, stderr="connection refused")
        with pytest.raises(OrchestratorError, match="connection refused"):
            KubectlOrchestrator().list(ResourceKind.POD, "ns")


class TestWrite:
    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_create_sends_json(self, mock_run):
        obj = new_resource(ResourceKind.APP_DEPLOYMENT, "shop-main", "ns")
        mock_run.return_value = _mock_result(stdout=json.dumps(obj))

        KubectlOrchestrator().create(obj)
        assert mock_run.call_args[0] == ("create", "-f", "-", "-o", "json")
        assert json.loads(mock_run.call_args[1]["input"]) == obj

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_dry_run(self, mock_run):
        obj = new_resource(ResourceKind.APP_DEPLOYMENT, "shop-main", "ns")
        mock_run.return_value = _mock_result(stdout=json.dumps(obj))
        KubectlOrchestrator().replace(obj, dry_run=True)
        assert "--dry-run=server" in mock_run.call_args[0]

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_stale_replace_is_conflict(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1,
            stderr='Error from server (Conflict): Operation cannot be fulfilled on virtualenvs "dev": '
                   "the object has been modified; please apply your changes to the latest version",
        )
        with pytest.raises(ApplyConflict):
            KubectlOrchestrator().replace(new_resource(ResourceKind.VIRTUAL_ENV, "dev", "ns"))

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_create_existing_is_conflict(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1, stderr='Error from server (AlreadyExists): virtualenvsnapshots "s" already exists',
        )
        with pytest.raises(ApplyConflict):
            KubectlOrchestrator().create(new_resource(ResourceKind.VIRTUAL_ENV_SNAPSHOT, "s", "ns"))

    @patch("kubeship.adapters.cluster.kubectl._run_kubectl")
    def test_replace_missing_is_not_found(self, mock_run):
        mock_run.return_value = _mock_result(
            returncode=1, stderr='Error from server (NotFound): virtualenvs "dev" not found',
        )
        with pytest.raises(ResourceNotFound):
            KubectlOrchestrator().replace(new_resource(ResourceKind.VIRTUAL_ENV, "dev", "ns"))
