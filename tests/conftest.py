"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from kubeship.adapters.mock import (
    MockContainerEngine,
    MockOrchestrator,
    MockPrompter,
    MockRepository,
)
from kubeship.core import deadline as deadline_module
from kubeship.core.models.app import App
from kubeship.core.models.config import Flags, KindConfig, PlatformPreference, RegistryConfig, Settings
from kubeship.core.models.resources import (
    LABEL_COMPONENT,
    LABEL_COMPONENT_COMMIT,
    LABEL_PLATFORM,
    ResourceKind,
    new_resource,
)
from kubeship.core.services import reconciler as reconciler_module

ROOT_HASH = "0" * 40
BACKEND_HASH = "abc123f" + "1" * 33
FRONTEND_HASH = "def456a" + "2" * 33


# ── App tree ────────────────────────────────────────────────────


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    repo.mkdir()
    return repo


@pytest.fixture
def app_dir(repo_dir: Path) -> Path:
    """``repo/apps/shop`` with two components."""
    app = repo_dir / "apps" / "shop"
    (app / "components" / "backend").mkdir(parents=True)
    (app / "components" / "frontend").mkdir(parents=True)
    (app / "components" / "backend" / "main.go").write_text("package main\n")
    (app / "components" / "frontend" / "main.go").write_text("package main\n")
    (app / "app.yaml").write_text("name: shop\ntitle: Shop\ndescription: Demo shop\n")
    return app


@pytest.fixture
def app() -> App:
    return App(name="shop", title="Shop", description="Demo shop")


@pytest.fixture
def make_settings(repo_dir: Path, app_dir: Path):
    """Factory for ``Settings`` rooted at the test app tree."""

    def _make(
        *,
        registry: RegistryConfig | None = None,
        flags: Flags | None = None,
        kind: KindConfig | None = None,
        platform: PlatformPreference | None = None,
        user_config_path: Path | None = None,
    ) -> Settings:
        return Settings(
            repo_path=repo_dir,
            app_path=app_dir,
            registry=registry or RegistryConfig(address="localhost"),
            platform=platform or PlatformPreference(),
            kind=kind or KindConfig(),
            flags=flags or Flags(),
            user_config_path=user_config_path,
        )

    return _make


# ── Adapters ────────────────────────────────────────────────────


@pytest.fixture
def vcs(repo_dir: Path) -> MockRepository:
    repo = MockRepository(repo_dir, branch="main")
    repo.add_commit(ROOT_HASH, "README.md")
    repo.add_commit(BACKEND_HASH, "apps/shop/components/backend/main.go")
    repo.add_commit(FRONTEND_HASH, "apps/shop/components/frontend/main.go")
    return repo


@pytest.fixture
def engine() -> MockContainerEngine:
    return MockContainerEngine()


@pytest.fixture
def orchestrator() -> MockOrchestrator:
    return MockOrchestrator()


@pytest.fixture
def prompter() -> MockPrompter:
    return MockPrompter()


# ── Time ────────────────────────────────────────────────────────


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(deadline_module, "time", fake)
    monkeypatch.setattr(reconciler_module, "time", fake)
    return fake


# ── Cluster objects ─────────────────────────────────────────────


def pod(name: str, component: str, *, platform: str = "dev", namespace: str = "kubefox-dev",
        commit: str = "", ready: bool = True) -> dict[str, Any]:
    labels = {LABEL_COMPONENT: component, LABEL_PLATFORM: platform}
    if commit:
        labels[LABEL_COMPONENT_COMMIT] = commit
    obj = new_resource(ResourceKind.POD, name, namespace, labels=labels)
    obj["status"] = {"containerStatuses": [{"name": component, "ready": ready}]}
    return obj


def platform_resource(name: str = "dev", namespace: str = "kubefox-dev") -> dict[str, Any]:
    return new_resource(ResourceKind.PLATFORM, name, namespace)
