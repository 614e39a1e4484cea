"""Tests for the built-in rule units."""

import pytest

from contract_grader.core.loader import parse_spec_text
from contract_grader.core.models import Severity
from contract_grader.core.registry import RULE_CRASH_ID, RuleRegistry, default_registry
from contract_grader.core.rules import (
    AsyncRule,
    BUILTIN_RULES,
    CachingRule,
    EnvelopeRule,
    ExtensionsRule,
    HttpRule,
    HttpSemanticsRule,
    I18nRule,
    NamingRule,
    PaginationRule,
    Rule,
    SecurityRule,
    StructureRule,
    WebhooksRule,
)
from contract_grader.core.rules.naming import NAMESPACE_REASON
from contract_grader.core.rules.pagination import PAGINATION_REASON, is_list_endpoint
from contract_grader.core.spec_node import OpenAPIDocument


def _doc(text: str) -> OpenAPIDocument:
    return OpenAPIDocument(parse_spec_text(text))


def _ids(result) -> list[str]:
    return [f.rule_id for f in result.findings]


class TestRuleContract:
    @pytest.mark.parametrize("rule_cls", BUILTIN_RULES)
    def test_absent_paths_never_raise(self, rule_cls):
        result = rule_cls().check(OpenAPIDocument(None))
        if rule_cls().scores:
            assert 0 <= result.contribution.add <= result.contribution.max
        else:
            assert result.contribution is None

    @pytest.mark.parametrize("rule_cls", BUILTIN_RULES)
    def test_mistyped_structure_never_raises(self, rule_cls):
        raw = {"openapi": 3, "paths": {"/x": "not-a-path-item", "/y": {"get": ["bad"]}}, "components": []}
        rule_cls().check(OpenAPIDocument(raw))

    def test_category_maxima_sum_to_100(self):
        assert sum(default_registry().category_maxima().values()) == 100


class TestNaming:
    def test_paths_without_namespace(self, no_namespace_spec):
        result = NamingRule().check(_doc(no_namespace_spec))
        assert result.contribution.add == 6
        assert result.contribution.max == 10
        assert _ids(result) == ["NAME-NAMESPACE", "NAME-NAMESPACE"]
        assert result.auto_fail_reasons == [NAMESPACE_REASON]

    def test_namespaced_paths(self, compliant_spec):
        result = NamingRule().check(_doc(compliant_spec))
        assert result.contribution.add == 10
        assert result.findings == []
        assert result.auto_fail_reasons == []

    def test_no_paths_baseline(self, no_paths_spec):
        assert NamingRule().check(_doc(no_paths_spec)).contribution.add == 10


class TestSecurity:
    def test_full_marks_with_headers_and_oauth(self, compliant_spec):
        result = SecurityRule().check(_doc(compliant_spec))
        assert result.contribution.add == 15
        assert result.findings == []

    def test_missing_headers(self, no_namespace_spec):
        result = SecurityRule().check(_doc(no_namespace_spec))
        ids = _ids(result)
        assert ids.count("SEC-ORG-HDR") == 2
        assert ids.count("SEC-BRANCH-HDR") == 2
        assert "SEC-OAUTH2" in ids
        assert result.contribution.add == 4
        assert result.auto_fail_reasons == ["Missing X-Organization-ID on one or more operations"]

    def test_inline_header_parameter_counts(self):
        doc = _doc("""
paths:
  /api/v2/a:
    get:
      parameters:
        - {name: x-organization-id, in: header}
        - {name: X-Branch-ID, in: header}
      responses: {'200': {description: OK}}
""")
        ids = _ids(SecurityRule().check(doc))
        assert "SEC-ORG-HDR" not in ids
        assert "SEC-BRANCH-HDR" not in ids

    def test_api_key_must_be_in_header(self):
        doc = _doc("""
components:
  securitySchemes:
    OAuth2: {type: oauth2}
    ApiKeyAuth: {type: apiKey, in: query, name: key}
""")
        result = SecurityRule().check(doc)
        assert _ids(result) == ["SEC-APIKEY"]
        assert result.findings[0].severity == Severity.WARN
        assert result.contribution.add == 13


class TestPagination:
    def test_offset_params(self, offset_spec):
        result = PaginationRule().check(_doc(offset_spec))
        offset = [f for f in result.findings if f.rule_id == "PAG-OFFSET"]
        assert len(offset) == 1
        assert offset[0].severity == Severity.ERROR
        assert offset[0].json_path == "$.paths['/api/v2/orders'].get.parameters"
        assert result.auto_fail_reasons == [PAGINATION_REASON]
        assert result.contribution.add == 0

    def test_keyset_refs(self, compliant_spec):
        result = PaginationRule().check(_doc(compliant_spec))
        assert result.findings == []
        assert result.contribution.add == 8

    def test_item_endpoints_are_not_lists(self):
        assert is_list_endpoint("/api/v2/orders")
        assert not is_list_endpoint("/api/v2/orders/{id}")


class TestHttp:
    def test_no_responses(self):
        doc = _doc("""
paths:
  /api/v2/things:
    post: {}
""")
        result = HttpRule().check(doc)
        assert "HTTP-NO-RESPONSES" in _ids(result)
        assert result.auto_fail_reasons == ["Operation with no responses"]

    def test_get_with_body(self):
        doc = _doc("""
paths:
  /api/v2/things:
    get:
      requestBody: {content: {application/json: {}}}
      responses: {'200': {description: OK}}
""")
        assert "HTTP-GET-BODY" in _ids(HttpRule().check(doc))

    def test_clean_operation_scores_full(self, compliant_spec):
        assert HttpRule().check(_doc(compliant_spec)).contribution.add == 12

    def test_no_paths_scores_zero(self, no_paths_spec):
        assert HttpRule().check(_doc(no_paths_spec)).contribution.add == 0


class TestHttpSemantics:
    def test_findings_only(self, compliant_spec):
        result = HttpSemanticsRule().check(_doc(compliant_spec))
        assert result.contribution is None
        ids = set(_ids(result))
        assert "HTTP-ETAG" not in ids
        assert "HTTP-304" not in ids
        assert "ERR-PROBLEMJSON" not in ids

    def test_problem_json_lands_in_responses_category(self):
        doc = _doc("""
paths:
  /api/v2/things:
    get:
      responses:
        '404': {description: Missing, content: {application/json: {}}}
""")
        result = HttpSemanticsRule().check(doc)
        problem = [f for f in result.findings if f.rule_id == "ERR-PROBLEMJSON"]
        assert problem and problem[0].category == "responses"
        assert "HTTP-304" in _ids(result)

    def test_202_without_location(self):
        doc = _doc("""
paths:
  /api/v2/exports:
    post:
      responses:
        '202': {description: Accepted}
""")
        assert "HTTP-202-LOCATION" in _ids(HttpSemanticsRule().check(doc))


class TestEnvelope:
    def test_direct_array_on_critical_path(self):
        doc = _doc("""
paths:
  /api/v2/critical/items:
    get:
      responses:
        '200':
          description: OK
          content:
            application/json:
              schema: {type: array, items: {type: object}}
""")
        result = EnvelopeRule().check(doc)
        assert "ENV-NO-ENVELOPE" in _ids(result)
        assert result.auto_fail_reasons == ["Missing response envelope structure on critical endpoints"]
        assert result.contribution.add <= 5

    def test_wrapped_response(self, compliant_spec):
        result = EnvelopeRule().check(_doc(compliant_spec))
        assert result.findings == []
        assert result.contribution.add == 10


class TestAsync:
    def test_no_async_surface_scores_baseline(self, compliant_spec):
        result = AsyncRule().check(_doc(compliant_spec))
        assert result.contribution.add == 7
        assert result.findings == []

    def test_202_without_location(self):
        doc = _doc("""
paths:
  /api/v2/reports:
    post:
      responses:
        '202':
          description: Accepted
          headers:
            Retry-After: {schema: {type: integer}}
""")
        result = AsyncRule().check(doc)
        assert _ids(result) == ["ASYNC-202-LOCATION", "ASYNC-LIFECYCLE"]
        assert result.auto_fail_reasons == ["Missing Location header on 202 Accepted responses"]
        assert result.contribution.add == 5


class TestScoredPlaceholders:
    def test_caching_rewards_validators(self, compliant_spec):
        result = CachingRule().check(_doc(compliant_spec))
        assert result.contribution.add == 10

    def test_caching_without_headers(self, no_namespace_spec):
        result = CachingRule().check(_doc(no_namespace_spec))
        assert "CACHE-HEADERS-MISSING" in _ids(result)
        assert result.contribution.add < 10

    def test_webhooks_absent(self, compliant_spec):
        result = WebhooksRule().check(_doc(compliant_spec))
        assert _ids(result) == ["WEBHOOK-MISSING"]
        assert result.contribution.add == 6

    def test_i18n_without_language_support(self, compliant_spec):
        result = I18nRule().check(_doc(compliant_spec))
        assert {"I18N-ACCEPT-LANG", "I18N-CONTENT-LANG"} <= set(_ids(result))
        assert result.contribution.add == 0

    def test_i18n_no_paths_baseline(self, no_paths_spec):
        assert I18nRule().check(_doc(no_paths_spec)).contribution.add == 6

    def test_extensions(self):
        assert ExtensionsRule().check(_doc("info: {title: x}")).contribution.add == 12
        house = ExtensionsRule().check(_doc("info: {title: x, x-platform-owner: team}"))
        assert house.contribution.add == 15


class TestStructure:
    def test_wrong_openapi_version(self):
        result = StructureRule().check(_doc("openapi: 3.1.0\ninfo: {title: x, version: 1.0.0}"))
        assert "OAS-VERSION" in _ids(result)
        assert result.auto_fail_reasons == ["OpenAPI version not 3.0.3"]
        assert result.contribution is None

    def test_plain_http_server(self):
        result = StructureRule().check(_doc("openapi: 3.0.3\nservers: [{url: 'http://api.example.com'}]"))
        assert "SERVER-HTTPS" in _ids(result)


class _Exploding(Rule):
    rule_id = "BOOM"
    category = "naming"
    max_points = 10.0

    def check(self, doc):
        raise RuntimeError("kaboom")


class TestRegistry:
    def test_crashing_rule_becomes_finding(self):
        registry = RuleRegistry([_Exploding()])
        run = registry.evaluate(OpenAPIDocument({}))
        assert [f.rule_id for f in run.findings] == [RULE_CRASH_ID]
        assert run.outcomes[0].contribution.add == 0

    def test_duplicate_registration_rejected(self):
        registry = RuleRegistry([NamingRule()])
        with pytest.raises(ValueError):
            registry.register(NamingRule())

    def test_unregister(self):
        registry = default_registry()
        registry.unregister("NAME-PATHS")
        assert registry.get("NAME-PATHS") is None
        assert "naming" not in registry.category_maxima()

    @pytest.mark.asyncio
    async def test_concurrent_matches_sequential(self, no_namespace_spec):
        registry = default_registry()
        doc = _doc(no_namespace_spec)
        sequential = registry.evaluate(doc)
        concurrent = await registry.evaluate_concurrently(doc)
        assert [o.rule_id for o in concurrent.outcomes] == [o.rule_id for o in sequential.outcomes]
        assert concurrent.findings == sequential.findings
