"""
Tests for identity derivation.
"""

import pytest

from kubeship.adapters.mock import MockRepository
from kubeship.core.errors import NoHistory, UncommittedChanges
from kubeship.core.services.identity import IdentityDeriver

from conftest import BACKEND_HASH, FRONTEND_HASH

BACKEND = "apps/shop/components/backend"
FRONTEND = "apps/shop/components/frontend"


class TestDerive:
    def test_latest_commit_touching_scope(self, vcs):
        deriver = IdentityDeriver(vcs)
        assert deriver.derive(BACKEND) == BACKEND_HASH
        assert deriver.derive(FRONTEND) == FRONTEND_HASH

    def test_deterministic(self, vcs):
        deriver = IdentityDeriver(vcs)
        assert deriver.derive(BACKEND) == deriver.derive(BACKEND)

    def test_unrelated_commit_keeps_identity(self, vcs):
        deriver = IdentityDeriver(vcs)
        before = deriver.derive(BACKEND)
        vcs.add_commit("f" * 40, FRONTEND + "/handler.go", "README.md")
        assert deriver.derive(BACKEND) == before

    def test_commit_in_scope_changes_identity(self, vcs):
        deriver = IdentityDeriver(vcs)
        before = deriver.derive(BACKEND)
        vcs.add_commit("e" * 40, BACKEND + "/handler.go")
        assert deriver.derive(BACKEND) == "e" * 40 != before

    def test_sibling_prefix_not_in_scope(self, vcs):
        vcs.add_commit("d" * 40, "apps/shop/components/backend-v2/main.go")
        assert IdentityDeriver(vcs).derive(BACKEND) == BACKEND_HASH

    def test_dirty_tree(self, vcs):
        vcs.clean = False
        with pytest.raises(UncommittedChanges):
            IdentityDeriver(vcs).derive(BACKEND)

    def test_no_history(self, vcs):
        with pytest.raises(NoHistory, match="apps/shop/components/worker"):
            IdentityDeriver(vcs).derive("apps/shop/components/worker")

    def test_empty_repository(self):
        with pytest.raises(NoHistory):
            IdentityDeriver(MockRepository()).derive(BACKEND)

    def test_only_latest_requested(self, vcs):
        IdentityDeriver(vcs).derive(BACKEND)
        assert ("log", BACKEND) in vcs.call_log


class TestIdentityFor:
    def test_fields(self, vcs):
        identity = IdentityDeriver(vcs).identity_for("backend", BACKEND)
        assert identity.component_name == "backend"
        assert identity.scope_path == BACKEND
        assert identity.content_hash == BACKEND_HASH
        assert identity.short_hash == "abc123f"
