"""Tests for content hashes and identifiers."""

import json
import re

import yaml

from contract_grader.core.identity import (
    API_URN_PREFIX,
    build_metadata,
    derive_api_id,
    generate_api_id,
    new_run_id,
    ruleset_hash,
    sha256_hex,
    spec_hash,
    template_hash,
    validate_api_id,
)
from contract_grader.core.loader import parse_spec_text
from contract_grader.core.registry import RuleRegistry, default_registry
from contract_grader.core.rules import NamingRule
from contract_grader.core.weights import WeightResolver


class TestSpecHash:
    def test_identical_text_identical_hash(self, compliant_spec):
        assert spec_hash(parse_spec_text(compliant_spec), compliant_spec) == spec_hash(
            parse_spec_text(compliant_spec), compliant_spec
        )

    def test_yaml_and_json_forms_hash_identically(self, compliant_spec):
        raw = parse_spec_text(compliant_spec)
        as_json = json.dumps(raw, indent=4)
        assert spec_hash(parse_spec_text(as_json)) == spec_hash(raw)

    def test_key_order_does_not_matter(self):
        a = parse_spec_text("openapi: 3.0.3\ninfo: {title: A, version: '1'}")
        b = parse_spec_text("info: {version: '1', title: A}\nopenapi: 3.0.3")
        assert spec_hash(a) == spec_hash(b)

    def test_content_change_changes_hash(self, compliant_spec):
        changed = compliant_spec.replace("Widget Service", "Gadget Service")
        assert spec_hash(parse_spec_text(changed)) != spec_hash(parse_spec_text(compliant_spec))

    def test_cyclic_document_hashes_raw_text(self):
        cyclic: dict = {}
        cyclic["self"] = cyclic
        assert spec_hash(cyclic, "a: 1\r\n") == sha256_hex("a: 1\n")

    def test_yaml_aliases_expand_before_hashing(self):
        anchored = parse_spec_text("base: &b {type: string}\nuse: *b")
        expanded = parse_spec_text("base: {type: string}\nuse: {type: string}")
        assert spec_hash(anchored) == spec_hash(expanded)


class TestRulesetHash:
    def test_stable_for_same_configuration(self):
        assert ruleset_hash(default_registry()) == ruleset_hash(default_registry())

    def test_changes_with_rules_weights_and_template(self):
        base = ruleset_hash(default_registry())
        assert ruleset_hash(RuleRegistry([NamingRule()])) != base
        assert ruleset_hash(default_registry(), WeightResolver({"general": {"SEC-*": 3.0}})) != base
        assert ruleset_hash(default_registry(), template_ruleset={"strict": True}) != base

    def test_template_hash(self):
        doc = yaml.safe_load("info: {version: 3.2.3}")
        assert template_hash(doc) == template_hash({"info": {"version": "3.2.3"}})


class TestIdentifiers:
    def test_explicit_api_id(self):
        assert derive_api_id({"x-api-id": "api_1"}) == "api_1"
        assert derive_api_id({"info": {"x-api-id": " billing "}}) == "billing"

    def test_title_derived_api_id(self):
        a = derive_api_id({"info": {"title": "Billing   API"}})
        b = derive_api_id({"info": {"title": "billing api"}})
        assert a == b
        assert a.startswith(API_URN_PREFIX)
        assert len(a) == len(API_URN_PREFIX) + 12

    def test_untitled_and_non_mapping_documents(self):
        assert derive_api_id(None) == derive_api_id({})
        assert derive_api_id(["x"]).startswith(API_URN_PREFIX)

    def test_run_ids_are_unique(self):
        ids = {new_run_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(re.fullmatch(r"run_[0-9a-f]{12}", i) for i in ids)

    def test_generated_api_ids_validate(self):
        api_id = generate_api_id("Billing")
        assert api_id.startswith("billing_")
        assert validate_api_id(api_id)
        assert not validate_api_id("billing")
        assert generate_api_id("!!!").startswith("api_")
        assert generate_api_id("9lives").startswith("api9lives_")


class TestMetadata:
    def test_fields(self):
        meta = build_metadata("s", "t", "r", "3.2.3", "finance").to_json_dict()
        assert meta["specHash"] == "s"
        assert meta["scoringEngine"] == "weighted-category-v1"
        assert meta["domain"] == "finance"
        assert set(meta["toolVersions"]) == {"grader"}
        assert meta["instanceId"]
        assert meta["gradedAt"].endswith("+00:00")
