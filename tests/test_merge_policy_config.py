import json

import pytest

from config.merge_policy import (
    DEFAULT_HOUSEHOLD_PROFILE,
    MergePolicy,
    MergePolicyConfigError,
    load_profile,
)


def test_defaults_used_without_override():
    profile = load_profile("household", {})
    assert profile is DEFAULT_HOUSEHOLD_PROFILE
    assert profile.find_rule("workbond_status").policy is MergePolicy.AUTHORITATIVE
    assert profile.find_rule("primary_contact_email").policy is MergePolicy.CUMULATIVE
    assert profile.find_rule("no_such_field") is None


def test_json_override_replaces_entity_section(tmp_path):
    path = tmp_path / "merge.json"
    path.write_text(
        json.dumps(
            {
                "household": {
                    "label": "Family",
                    "field_groups": [
                        {
                            "name": "contact",
                            "fields": [
                                {"field_name": "primary_contact_email", "policy": "fill_blank"},
                                {"field_name": "city"},
                            ],
                        }
                    ],
                }
            }
        ),
        encoding="utf-8",
    )

    profile = load_profile("household", {"IMPORTER_MERGE_PROFILE_PATH": str(path)})

    assert profile.label == "Family"
    assert profile.field_names == ("primary_contact_email", "city")
    assert profile.find_rule("primary_contact_email").policy is MergePolicy.FILL_BLANK
    assert profile.find_rule("city").policy is MergePolicy.CUMULATIVE


def test_yaml_override_and_missing_section_falls_back(tmp_path):
    path = tmp_path / "merge.yaml"
    path.write_text(
        "player:\n"
        "  field_groups:\n"
        "    - name: details\n"
        "      fields:\n"
        "        - field_name: payment_received\n"
        "          policy: Cumulative\n",
        encoding="utf-8",
    )
    env = {"IMPORTER_MERGE_PROFILE_PATH": str(path)}

    player = load_profile("player", env)
    assert player.find_rule("payment_received").policy is MergePolicy.CUMULATIVE

    assert load_profile("household", env) is DEFAULT_HOUSEHOLD_PROFILE


def test_unknown_policy_raises(tmp_path):
    path = tmp_path / "merge.json"
    path.write_text(
        json.dumps({"volunteer": {"field_groups": [{"name": "x", "fields": [{"field_name": "email", "policy": "last_wins"}]}]}}),
        encoding="utf-8",
    )
    with pytest.raises(MergePolicyConfigError, match="Unknown merge policy 'last_wins'"):
        load_profile("volunteer", {"IMPORTER_MERGE_PROFILE_PATH": str(path)})


def test_unknown_entity_raises():
    with pytest.raises(MergePolicyConfigError, match="Unknown merge profile entity"):
        load_profile("coach", {})


def test_missing_override_file_raises(tmp_path):
    with pytest.raises(MergePolicyConfigError, match="does not exist"):
        load_profile("household", {"IMPORTER_MERGE_PROFILE_PATH": str(tmp_path / "absent.json")})


def test_non_object_override_raises(tmp_path):
    path = tmp_path / "merge.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(MergePolicyConfigError, match="must be a JSON/YAML object"):
        load_profile("household", {"IMPORTER_MERGE_PROFILE_PATH": str(path)})
