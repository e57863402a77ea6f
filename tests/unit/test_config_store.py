"""
Unit Tests for the versioned config store
"""
import pytest

from cre.reasoning.config import SEED_REASONING_CONFIG
from cre.safety.policy import DEFAULT_SAFETY_POLICY
from cre.services.config_store import ConfigKind, ConfigScope
from cre.states import ChatAction, EscalationLevel
from cre.utils.exceptions import ConfigNotFoundError, ConfigStoreError, InvalidConfigError

REASONING_CONFIG = {
    "differential_templates": [
        {"label": "Tension headache", "trigger_terms": ["kopfschmerz"], "base_likelihood": "medium"}
    ],
    "open_question_templates": [
        {
            "condition_label": "Tension headache",
            "questions": [{"text": "Wo genau sitzt der Schmerz?", "priority": 1}],
        }
    ],
}


class TestSeedFallbacks:
    def test_default_policy_when_nothing_active(self, store):
        assert store.load_safety_policy() == DEFAULT_SAFETY_POLICY

    def test_seed_reasoning_config_when_nothing_active(self, store):
        config, version = store.get_active_reasoning_config()
        assert config == SEED_REASONING_CONFIG
        assert version is None

    def test_drafts_are_not_used(self, store):
        store.create_draft(ConfigKind.REASONING, REASONING_CONFIG)
        assert store.get_active_reasoning_config()[1] is None


class TestVersioning:
    def test_versions_increment_per_scope(self, store):
        first = store.create_draft(ConfigKind.REASONING, REASONING_CONFIG, created_by="admin")
        second = store.create_draft(ConfigKind.REASONING, REASONING_CONFIG)
        other_scope = store.create_draft(
            ConfigKind.SAFETY_POLICY, {"rules": {}}, ConfigScope.ORGANIZATION, "org-1"
        )

        assert (first.version, second.version, other_scope.version) == (1, 2, 1)
        assert first.status == "draft"
        assert first.created_by == "admin"
        assert [r.version for r in store.list_versions(ConfigKind.REASONING)] == [2, 1]

    def test_activate_archives_previous(self, store):
        first = store.create_draft(ConfigKind.REASONING, REASONING_CONFIG)
        second = store.create_draft(ConfigKind.REASONING, REASONING_CONFIG)

        store.activate(first.id)
        activated = store.activate(second.id)

        statuses = {r.version: r.status for r in store.list_versions(ConfigKind.REASONING)}
        assert statuses == {1: "archived", 2: "active"}
        assert activated.activated_at is not None

        config, version = store.get_active_reasoning_config()
        assert version == 2
        assert config.differential_templates[0].label == "Tension headache"

    def test_invalid_config_is_rejected(self, store):
        with pytest.raises(InvalidConfigError) as exc_info:
            store.create_draft(
                ConfigKind.REASONING, {"risk_weighting": {"red_flag_weight": 99}}
            )

        assert exc_info.value.code == "INVALID_CONFIG"
        assert exc_info.value.issues
        assert store.list_versions(ConfigKind.REASONING) == []

    def test_global_policy_must_be_complete(self, store):
        with pytest.raises(InvalidConfigError):
            store.create_draft(
                ConfigKind.SAFETY_POLICY,
                {"defaults": {"level_to_action": {"A": "hard_stop"}}},
            )

    def test_activate_unknown_version(self, store):
        with pytest.raises(ConfigNotFoundError) as exc_info:
            store.activate("does-not-exist")
        assert exc_info.value.to_dict()["error"] == "CONFIG_NOT_FOUND"

    def test_archived_version_cannot_be_reactivated(self, store):
        first = store.create_draft(ConfigKind.REASONING, REASONING_CONFIG)
        second = store.create_draft(ConfigKind.REASONING, REASONING_CONFIG)
        store.activate(first.id)
        store.activate(second.id)

        with pytest.raises(ConfigStoreError):
            store.activate(first.id)

    def test_update_draft(self, store):
        draft = store.create_draft(ConfigKind.REASONING, REASONING_CONFIG)
        changed = dict(REASONING_CONFIG, risk_weighting={"red_flag_weight": 5})

        updated = store.update_draft(draft.id, changed)
        assert updated.config_json["risk_weighting"] == {"red_flag_weight": 5}

        store.activate(draft.id)
        with pytest.raises(ConfigStoreError):
            store.update_draft(draft.id, REASONING_CONFIG)

    def test_get_reasoning_config_by_id(self, store):
        draft = store.create_draft(ConfigKind.REASONING, REASONING_CONFIG)
        config, version = store.get_reasoning_config(draft.id)

        assert version == 1
        assert config.open_question_templates[0].questions[0].priority == 1

        policy = store.create_draft(ConfigKind.SAFETY_POLICY, {})
        with pytest.raises(ConfigNotFoundError):
            store.get_reasoning_config(policy.id)


class TestLayeredSafetyPolicy:
    def test_org_and_funnel_layers(self, store):
        org = store.create_draft(
            ConfigKind.SAFETY_POLICY,
            {"rules": {"SYNCOPE": {"level": "A"}}},
            ConfigScope.ORGANIZATION,
            "org-1",
        )
        funnel = store.create_draft(
            ConfigKind.SAFETY_POLICY,
            {"defaults": {"level_to_action": {"C": "none"}}},
            ConfigScope.FUNNEL,
            "funnel-1",
        )
        store.activate(org.id)
        store.activate(funnel.id)

        policy = store.load_safety_policy(organization_id="org-1", funnel_id="funnel-1")
        assert policy.rules["SYNCOPE"].level == EscalationLevel.A
        assert policy.defaults.level_to_action[EscalationLevel.C] == ChatAction.NONE

        assert store.load_safety_policy(organization_id="org-2") == DEFAULT_SAFETY_POLICY

    def test_active_global_policy_is_the_base(self, store):
        base = DEFAULT_SAFETY_POLICY.model_dump(mode="json")
        base["version"] = "2.2"
        store.activate(store.create_draft(ConfigKind.SAFETY_POLICY, base).id)

        assert store.load_safety_policy().version == "2.2"

    def test_invalid_patch_is_rejected(self, store):
        with pytest.raises(InvalidConfigError):
            store.create_draft(
                ConfigKind.SAFETY_POLICY,
                {"rules": {"SYNCOPE": {"level": "X"}}},
                ConfigScope.FUNNEL,
                "funnel-1",
            )
