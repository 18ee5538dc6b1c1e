"""
Tests for the image builder — resolution, builds, pushes and side-loads.
"""

import pytest

from kubeship.adapters.base import HeadRef
from kubeship.adapters.mock import FailingBuildEngine, MockContainerEngine
from kubeship.core.errors import ConfigError, ImageBuildFailed, ImageNotFound
from kubeship.core.models.config import RegistryConfig
from kubeship.core.models.resources import LABEL_OCI_REVISION
from kubeship.core.services.build_context import INJECTED_DOCKERFILE
from kubeship.core.services.images import BuildOptions, ImageBuilder, consume_log, parse_build_line

from conftest import BACKEND_HASH, ROOT_HASH

REMOTE = RegistryConfig(address="ghcr.io/acme", username="me", token="t0k")


def _lines(*items):
    yield from items


@pytest.fixture
def local_builder(make_settings, app, engine, vcs) -> ImageBuilder:
    return ImageBuilder(make_settings(), app, engine, vcs)


@pytest.fixture
def remote_builder(make_settings, app, engine, vcs) -> ImageBuilder:
    return ImageBuilder(make_settings(registry=REMOTE), app, engine, vcs)


# ── Build log ────────────────────────────────────────────────────────


class TestBuildLog:
    def test_json_record(self):
        assert parse_build_line('{"stream": "Step 1/3"}') == {"stream": "Step 1/3"}

    def test_plain_text(self):
        assert parse_build_line("#5 DONE 0.1s") == {"stream": "#5 DONE 0.1s"}

    def test_error_banner(self):
        assert "error" in parse_build_line("ERROR: failed to solve: go build")

    def test_error_record_aborts(self):
        lines = _lines('{"stream": "ok"}', '{"error": "compile failed"}', '{"stream": "never"}')
        with pytest.raises(ImageBuildFailed, match="compile failed"):
            consume_log(lines, ImageBuildFailed)
        # the stream is closed, remaining output is never read
        assert next(lines, None) is None

    def test_counts_records(self):
        assert consume_log(_lines("a", "b"), ImageBuildFailed) == 2


# ── References and existence ─────────────────────────────────────────


class TestResolve:
    def test_component_dirs_sorted(self, local_builder, app_dir):
        (app_dir / "components" / ".cache").mkdir()
        (app_dir / "components" / "README.md").write_text("")
        assert local_builder.component_dir_names() == ["backend", "frontend"]

    def test_component_scope(self, local_builder):
        assert local_builder.component_scope("backend") == "apps/shop/components/backend"

    def test_image_ref(self, local_builder):
        ref = local_builder.image_ref("backend", "abc123f")
        assert str(ref) == "localhost/shop/backend:abc123f"

    def test_local_registry_checks_cache_only(self, local_builder, engine):
        ref = local_builder.image_ref("backend", BACKEND_HASH)
        assert not local_builder.image_exists(ref)
        engine.local.add(str(ref))
        assert local_builder.image_exists(ref)
        assert not any(call[0] == "manifest_exists" for call in engine.call_log)

    def test_local_registry_pull_missing(self, local_builder):
        with pytest.raises(ImageNotFound):
            local_builder.image_exists(local_builder.image_ref("backend", BACKEND_HASH), pull=True)

    def test_remote_registry_pulls(self, remote_builder, engine):
        ref = remote_builder.image_ref("backend", BACKEND_HASH)
        engine.remote.add(str(ref))
        assert remote_builder.image_exists(ref, pull=True)
        assert engine.pulls == [str(ref)]
        assert engine.logins == [("ghcr.io/acme", "me")]

    def test_login_once(self, remote_builder, engine):
        for h in ("a", "b"):
            remote_builder.image_exists(remote_builder.image_ref("backend", h))
        assert len(engine.logins) == 1


# ── Ensure / build ───────────────────────────────────────────────────


class TestEnsureImage:
    def test_backend_scenario(self, make_settings, app, vcs):
        """Fresh commit abc123f on a local registry with kind side-loading."""
        engine = MockContainerEngine()
        vcs.add_commit("abc123f", "apps/shop/components/backend/handler.go")
        builder = ImageBuilder(make_settings(registry=RegistryConfig(address="kind.local")), app, engine, vcs)

        ref = builder.build_component("backend", BuildOptions(push=True, sideload_target="kind"))

        assert str(ref) == "kind.local/shop/backend:abc123f"
        assert len(engine.builds) == 1
        assert engine.pushes == []
        assert engine.sideloads == [("kind.local/shop/backend:abc123f", "kind")]

    def test_existing_image_idempotent(self, local_builder, engine):
        ref = local_builder.build_component("backend", BuildOptions())
        assert len(engine.builds) == 1

        again = local_builder.build_component("backend", BuildOptions())
        assert again == ref
        assert len(engine.builds) == 1
        assert engine.pushes == []

    def test_force_rebuilds(self, local_builder, engine):
        local_builder.build_component("backend", BuildOptions())
        local_builder.build_component("backend", BuildOptions(force=True))
        assert len(engine.builds) == 2

    def test_no_cache_rebuilds(self, local_builder, engine):
        local_builder.build_component("backend", BuildOptions())
        local_builder.build_component("backend", BuildOptions(no_cache=True))
        assert len(engine.builds) == 2
        assert engine.builds[-1].no_cache

    def test_remote_push(self, remote_builder, engine):
        ref = remote_builder.build_component("backend", BuildOptions(push=True))
        assert engine.pushes == [str(ref)]

    def test_remote_existing_skips_build(self, remote_builder, engine):
        ref = remote_builder.image_ref("backend", BACKEND_HASH)
        engine.remote.add(str(ref))
        remote_builder.build_component("backend", BuildOptions(push=True))
        assert engine.builds == []
        assert engine.pushes == []

    def test_build_request(self, local_builder, engine, vcs):
        vcs.ref = HeadRef(branch="main", tag="v1.0.0")
        vcs.remote = "https://github.com/acme/shop"
        local_builder.build_component("backend", BuildOptions())

        request = engine.builds[0]
        assert request.dockerfile == INJECTED_DOCKERFILE
        assert request.tags == [f"localhost/shop/backend:{BACKEND_HASH}"]
        args = request.build_args
        assert args["COMPONENT"] == "backend"
        assert args["COMPONENT_DIR"] == "apps/shop/components/backend"
        assert args["COMPONENT_COMMIT"] == BACKEND_HASH
        assert args["ROOT_COMMIT"] == ROOT_HASH
        assert args["HEAD_REF"] == "refs/heads/main"
        assert args["TAG_REF"] == "refs/tags/v1.0.0"
        assert args["APP_YAML"] == "apps/shop/app.yaml"
        assert request.labels[LABEL_OCI_REVISION] == BACKEND_HASH
        # the context archive is gone once the build is over
        assert not request.context.exists()

    def test_custom_dockerfile(self, local_builder, app_dir):
        recipe = app_dir / "components" / "backend" / "Dockerfile"
        recipe.write_text("FROM busybox\n")
        assert local_builder._recipe("backend") == b"FROM busybox\n"

    def test_error_record_fails(self, make_settings, app, vcs):
        engine = MockContainerEngine()
        engine.build_output = ['{"stream": "Step 1/2"}', '{"error": "go: cannot find main module"}']
        builder = ImageBuilder(make_settings(), app, engine, vcs)
        with pytest.raises(ImageBuildFailed, match="cannot find main module"):
            builder.build_component("backend", BuildOptions())

    def test_nonzero_exit_fails(self, make_settings, app, vcs):
        builder = ImageBuilder(make_settings(), app, FailingBuildEngine(), vcs)
        with pytest.raises(ImageBuildFailed):
            builder.build_component("backend", BuildOptions())

    def test_missing_component(self, local_builder):
        with pytest.raises(ConfigError, match="does not exist"):
            local_builder.build_component("worker", BuildOptions())

    def test_publish_all(self, local_builder, engine):
        refs = local_builder.publish_all(BuildOptions())
        assert [r.component_name for r in refs] == ["backend", "frontend"]
        assert len(engine.builds) == 2
