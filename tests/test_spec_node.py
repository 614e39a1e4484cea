"""Tests for the null-safe document view."""

from contract_grader.core.spec_node import OpenAPIDocument, SpecNode


class TestSpecNode:
    def test_absent_chains_stay_absent(self):
        node = SpecNode({"a": 1}).get("missing").get("deeper").get(0)
        assert not node
        assert node.value is None
        assert list(node) == []
        assert node.keys() == []
        assert len(node) == 0
        assert node.text("fallback") == "fallback"

    def test_empty_mapping_is_present(self):
        node = SpecNode({"components": {}}).get("components")
        assert node
        assert node.is_mapping

    def test_wrong_shape_lookup(self):
        node = SpecNode({"paths": ["not", "a", "mapping"]})
        assert not node.get("paths").get("/x")
        assert node.get("paths").get(1).text() == "a"
        assert not node.get("paths").get(7)

    def test_text_only_for_scalars(self):
        node = SpecNode({"n": 3, "b": True, "d": {}})
        assert node.get("n").text() == "3"
        assert node.get("b").text() == ""
        assert node.get("d").text() == ""

    def test_case_insensitive_headers(self):
        headers = SpecNode({"etag": {"schema": {}}})
        assert headers.has_ci("ETag")
        assert not headers.has_ci("Location")

    def test_resolve_local_ref(self):
        raw = {"components": {"schemas": {"A": {"type": "object"}}}, "x": {"$ref": "#/components/schemas/A"}}
        resolved = SpecNode(raw).get("x").resolve()
        assert resolved.get("type").text() == "object"

    def test_broken_and_cyclic_refs_resolve_to_absent(self):
        raw = {
            "components": {"schemas": {"A": {"$ref": "#/components/schemas/B"}, "B": {"$ref": "#/components/schemas/A"}}},
            "broken": {"$ref": "#/components/schemas/Nope"},
            "remote": {"$ref": "https://example.com/schema.json"},
        }
        root = SpecNode(raw)
        assert not root.get("components").get("schemas").get("A").resolve()
        assert not root.get("broken").resolve()
        assert not root.get("remote").resolve()

    def test_pointer_escapes(self):
        raw = {"paths": {"/a/b": {"get": {}}}}
        assert SpecNode(raw).lookup_pointer("#/paths/~1a~1b/get").is_mapping


class TestOpenAPIDocument:
    def test_operations_skip_non_methods(self):
        doc = OpenAPIDocument({
            "paths": {
                "/a": {"get": {}, "parameters": [], "summary": "x", "post": "bad"},
                "/b": None,
            },
        })
        ops = list(doc.operations())
        assert [(op.path, op.method) for op in ops] == [("/a", "get")]
        assert ops[0].json_path == "$.paths['/a'].get"

    def test_parameters_merge_path_and_operation(self):
        doc = OpenAPIDocument({
            "components": {"parameters": {"Org": {"name": "X-Organization-ID", "in": "header"}}},
            "paths": {"/a": {
                "parameters": [{"$ref": "#/components/parameters/Org"}],
                "get": {"parameters": [{"name": "q", "in": "query"}]},
            }},
        })
        op = next(doc.operations())
        assert len(op.parameters()) == 2
        assert op.has_param("x-organization-id", "header")
        assert op.query_param_names() == ["q"]

    def test_walk_handles_shared_and_cyclic_nodes(self):
        shared = {"x-flag": True}
        raw = {"a": shared, "b": shared}
        raw["self"] = raw
        keys = [key for _, key, _ in OpenAPIDocument(raw).walk()]
        assert keys.count("x-flag") == 1

    def test_non_mapping_root(self):
        doc = OpenAPIDocument(["not", "a", "document"])
        assert not doc.has_paths
        assert list(doc.operations()) == []
        assert doc.path_keys() == []
