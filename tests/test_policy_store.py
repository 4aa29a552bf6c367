"""Tests for PolicyStore JSON persistence."""

from __future__ import annotations

import json

import pytest

from src.authz.policy import PolicyUpdate, Status, ToolStatus
from src.authz.store import PolicyStore
from src.infra.errors import GatewayError


class TestPolicyStore:
    def test_missing_file_is_empty_policy(self, policy_store: PolicyStore) -> None:
        policy = policy_store.load()
        assert policy.categories == {}
        assert policy.sources == {}
        assert policy.overrides == {}

    def test_update_creates_file_and_merges(self, policy_store: PolicyStore) -> None:
        policy_store.update(PolicyUpdate(categories={"filesystem": "disabled"}))
        merged = policy_store.update(PolicyUpdate(overrides={"read_files": "alwaysAvailable"}))

        assert merged.categories == {"filesystem": Status.disabled}
        assert merged.overrides == {"read_files": ToolStatus.always_available}

        on_disk = json.loads(policy_store.path.read_text(encoding="utf-8"))
        assert on_disk["categories"] == {"filesystem": "disabled"}
        assert on_disk["overrides"] == {"read_files": "always_available"}
        assert not policy_store.path.with_suffix(".json.tmp").exists()

    def test_external_edits_picked_up(self, policy_store: PolicyStore) -> None:
        policy_store.path.parent.mkdir(parents=True)
        policy_store.path.write_text(
            json.dumps({"sources": {"github": "RequiresAuthorization"}}), encoding="utf-8"
        )

        assert policy_store.load().sources == {"github": Status.requires_authorization}

    def test_invalid_json_raises(self, policy_store: PolicyStore) -> None:
        policy_store.path.parent.mkdir(parents=True)
        policy_store.path.write_text("{not json", encoding="utf-8")

        with pytest.raises(GatewayError) as exc:
            policy_store.load()
        assert exc.value.code == "POLICY_INVALID"

    def test_unknown_status_raises(self, policy_store: PolicyStore) -> None:
        policy_store.path.parent.mkdir(parents=True)
        policy_store.path.write_text(json.dumps({"categories": {"utils": "maybe"}}))

        with pytest.raises(GatewayError, match="invalid"):
            policy_store.load()
