"""Null-safe view over a parsed OpenAPI document.

Parsed YAML is a loose tree: any key may be missing, any node may be the wrong
shape, and ``$ref`` pointers may be broken. ``SpecNode`` wraps every value so
that lookups never raise; a missing or mistyped value is an absent node that
is falsy, iterates as empty and yields further absent nodes on lookup. Rules
traverse documents only through this type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

_MAX_REF_DEPTH = 32


class SpecNode:
    """An optional node in the document tree.

    ``bool(node)`` is True when the value is present (not None), even if it is
    an empty mapping; presence, not content, is what rules usually test.
    """

    __slots__ = ("_value", "_root")

    def __init__(self, value: Any = None, root: Any = None):
        self._value = value
        self._root = value if root is None else root

    def __repr__(self) -> str:
        return f"SpecNode({self._value!r:.60})"

    def __bool__(self) -> bool:
        return self._value is not None

    @property
    def value(self) -> Any:
        return self._value

    @property
    def is_mapping(self) -> bool:
        return isinstance(self._value, dict)

    @property
    def is_list(self) -> bool:
        return isinstance(self._value, list)

    def _child(self, value: Any) -> "SpecNode":
        return SpecNode(value, self._root)

    def get(self, key: Any) -> "SpecNode":
        if isinstance(self._value, dict):
            return self._child(self._value.get(key))
        if isinstance(self._value, list) and isinstance(key, int) and -len(self._value) <= key < len(self._value):
            return self._child(self._value[key])
        return self._child(None)

    __getitem__ = get

    def __contains__(self, key: Any) -> bool:
        return isinstance(self._value, dict) and key in self._value

    def __len__(self) -> int:
        if isinstance(self._value, (dict, list)):
            return len(self._value)
        return 0

    def __iter__(self) -> Iterator["SpecNode"]:
        if isinstance(self._value, list):
            for item in self._value:
                yield self._child(item)

    def keys(self) -> list[str]:
        if isinstance(self._value, dict):
            return [str(k) for k in self._value]
        return []

    def items(self) -> Iterator[tuple[str, "SpecNode"]]:
        if isinstance(self._value, dict):
            for k, v in self._value.items():
                yield str(k), self._child(v)

    def text(self, default: str = "") -> str:
        """The value as a string, for scalars only."""
        if isinstance(self._value, str):
            return self._value
        if isinstance(self._value, (int, float)) and not isinstance(self._value, bool):
            return str(self._value)
        return default

    def get_ci(self, key: str) -> "SpecNode":
        """Case-insensitive mapping lookup, for HTTP header names."""
        if not isinstance(self._value, dict):
            return self._child(None)
        if key in self._value:
            return self._child(self._value[key])
        lowered = key.lower()
        for k, v in self._value.items():
            if str(k).lower() == lowered:
                return self._child(v)
        return self._child(None)

    def has_ci(self, key: str) -> bool:
        return bool(self.get_ci(key))

    @property
    def ref(self) -> Optional[str]:
        ref = self.get("$ref").value
        return ref if isinstance(ref, str) else None

    def resolve(self) -> "SpecNode":
        """Follow local ``#/...`` references; broken or cyclic refs resolve to absent."""
        node = self
        seen: set[str] = set()
        for _ in range(_MAX_REF_DEPTH):
            ref = node.ref
            if ref is None:
                return node
            if ref in seen or not ref.startswith("#/"):
                logger.debug("Unresolvable $ref %s", ref)
                return self._child(None)
            seen.add(ref)
            node = self.lookup_pointer(ref)
        logger.debug("$ref chain too deep starting at %s", self.ref)
        return self._child(None)

    def lookup_pointer(self, ref: str) -> "SpecNode":
        target = SpecNode(self._root, self._root)
        for part in ref[2:].split("/"):
            target = target.get(part.replace("~1", "/").replace("~0", "~"))
            if not target:
                break
        return target


@dataclass(frozen=True)
class Operation:
    """One HTTP operation: ``paths[path][method]``."""

    path: str
    method: str
    node: SpecNode
    path_item: SpecNode

    @property
    def json_path(self) -> str:
        return f"$.paths['{self.path}'].{self.method}"

    @property
    def responses(self) -> SpecNode:
        return self.node.get("responses")

    def response_codes(self) -> list[str]:
        return self.responses.keys()

    def response(self, code: str) -> SpecNode:
        return self.responses.get(code).resolve()

    def parameters(self) -> list[SpecNode]:
        """Path-level then operation-level parameters, unresolved."""
        params = []
        for source in (self.path_item.get("parameters"), self.node.get("parameters")):
            params.extend(p for p in source if p.is_mapping)
        return params

    def has_param_ref(self, ref: str) -> bool:
        return any(p.ref == ref for p in self.parameters())

    def has_param(self, name: str, location: str) -> bool:
        """True if a parameter with this name and location is declared directly or via $ref."""
        lowered = name.lower() if location == "header" else name
        for param in self.parameters():
            ref = param.ref
            if ref is not None and ref.rsplit("/", 1)[-1] == name:
                return True
            resolved = param.resolve()
            if resolved.get("in").text() != location:
                continue
            pname = resolved.get("name").text()
            if (pname.lower() if location == "header" else pname) == lowered:
                return True
        return False

    def query_param_names(self) -> list[str]:
        names = []
        for param in self.parameters():
            resolved = param.resolve()
            if resolved.get("in").text() == "query" and resolved.get("name").text():
                names.append(resolved.get("name").text())
        return names


class OpenAPIDocument:
    """Top-level accessors over a parsed document."""

    def __init__(self, raw: Any):
        self.raw = raw
        self.root = SpecNode(raw)

    @property
    def paths(self) -> SpecNode:
        return self.root.get("paths")

    @property
    def components(self) -> SpecNode:
        return self.root.get("components")

    @property
    def info(self) -> SpecNode:
        return self.root.get("info")

    @property
    def has_paths(self) -> bool:
        return self.paths.is_mapping

    def path_keys(self) -> list[str]:
        return self.paths.keys()

    def operations(self) -> Iterator[Operation]:
        for path, item in self.paths.items():
            item = item.resolve()
            if not item.is_mapping:
                continue
            for method in HTTP_METHODS:
                op = item.get(method)
                if op.is_mapping:
                    yield Operation(path=path, method=method, node=op, path_item=item)

    def schema(self, node: SpecNode) -> SpecNode:
        """Resolve a schema node that may be a $ref."""
        return node.resolve()

    def walk(self) -> Iterator[tuple[str, str, SpecNode]]:
        """Depth-first (json_path, key, node) over every mapping entry, visiting shared containers once."""
        visited: set[int] = set()
        stack: list[tuple[str, Any]] = [("$", self.raw)]
        while stack:
            path, value = stack.pop()
            if not isinstance(value, (dict, list)) or id(value) in visited:
                continue
            visited.add(id(value))
            if isinstance(value, dict):
                children = []
                for k, v in value.items():
                    child_path = f"{path}.{k}"
                    yield child_path, str(k), SpecNode(v, self.raw)
                    children.append((child_path, v))
                stack.extend(reversed(children))
            else:
                stack.extend(reversed([(f"{path}[{i}]", v) for i, v in enumerate(value)]))
