"""
OpenAPI 3.x document loader.

Reads a JSON/YAML document, resolves local ``$ref`` pointers into a SchemaNode
graph and enumerates the operations to fuzz. Pointers are memoized, so a
component that references itself becomes a cycle in the graph instead of an
infinitely expanded tree.
"""

from __future__ import annotations

import base64
import json
import logging
import math
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

import yaml

from .model import ApiSpec, Operation, Parameter, ParameterLocation, SchemaNode, SCHEMA_TYPES

logger = logging.getLogger("openapi_fuzzer.oas.loader")

HTTP_METHODS = ["get", "put", "post", "delete", "options", "head", "patch", "trace"]

# Header parameters OpenAPI says must be ignored
IGNORED_HEADER_PARAMETERS = {"accept", "content-type", "authorization"}

JSON_CONTENT_HINTS = ("application/json", "+json")


class SpecError(ValueError):
    """The OpenAPI document cannot be read, parsed or resolved."""


def load_spec(path: str) -> ApiSpec:
    """Load and resolve an OpenAPI document from disk."""
    spec_path = Path(path)
    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecError(f"Unable to read {spec_path}: {e}") from e

    try:
        if spec_path.suffix.lower() == ".json":
            document = json.loads(content)
        else:
            document = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SpecError(f"Failed to parse schema {spec_path}: {e}") from e

    spec = SpecResolver(document).build()
    spec.source = str(spec_path)
    logger.info(f"Loaded {len(spec.operations)} operations from {spec_path}")
    return spec


class SpecResolver:
    """
    Turns a raw OpenAPI mapping into an ApiSpec.

    Usage:
        spec = SpecResolver(yaml.safe_load(text)).build()
    """

    def __init__(self, document: Any):
        if not isinstance(document, dict):
            raise SpecError("OpenAPI document must be a mapping")
        version = str(document.get("openapi", ""))
        if not version.startswith("3."):
            raise SpecError(f"Unsupported OpenAPI version: {version or 'missing'} (expected 3.x)")
        if not isinstance(document.get("paths"), dict):
            raise SpecError("OpenAPI document has no 'paths' object")

        self.document = document
        self._by_pointer: Dict[str, SchemaNode] = {}
        self._by_id: Dict[int, SchemaNode] = {}
        self._resolving: List[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self) -> ApiSpec:
        info = self.document.get("info") or {}
        spec = ApiSpec(
            title=str(info.get("title", "")),
            version=str(info.get("version", "")),
        )

        for path, path_item in self.document["paths"].items():
            path_item = self._deref(path_item)
            if not isinstance(path_item, dict):
                continue
            shared_params = path_item.get("parameters") or []

            for method in HTTP_METHODS:
                raw_op = path_item.get(method)
                if not isinstance(raw_op, dict):
                    continue
                spec.operations.append(self._build_operation(path, method, raw_op, shared_params))

        return spec

    def schema(self, raw: Any) -> SchemaNode:
        """Resolve one raw schema (possibly a $ref) into a SchemaNode."""
        if isinstance(raw, dict) and "$ref" in raw:
            return self._schema_from_ref(raw["$ref"])
        if not isinstance(raw, dict):
            # `true`/missing schemas accept anything
            return SchemaNode()

        existing = self._by_id.get(id(raw))
        if existing is not None:
            return existing

        node = SchemaNode()
        self._by_id[id(raw)] = node
        self._populate(node, raw)
        return node

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _build_operation(self, path: str, method: str, raw_op: Dict[str, Any],
                         shared_params: List[Any]) -> Operation:
        params: Dict[Tuple[str, str], Parameter] = {}
        for raw_param in list(shared_params) + list(raw_op.get("parameters") or []):
            param = self._build_parameter(raw_param)
            if param is not None:
                # Operation-level definitions override path-level ones
                params[(param.name, param.location.value)] = param

        operation = Operation(
            path=path,
            method=method.upper(),
            parameters=list(params.values()),
            operation_id=raw_op.get("operationId"),
            declared_status_codes=frozenset(
                str(code).upper() for code in (raw_op.get("responses") or {}).keys()
                if str(code).lower() != "default"
            ),
        )

        raw_body = self._deref(raw_op.get("requestBody"))
        if isinstance(raw_body, dict):
            content = raw_body.get("content") or {}
            content_type = self._pick_content_type(content)
            if content_type is not None:
                media = content.get(content_type) or {}
                operation.request_body = self.schema(media.get("schema", {}))
                operation.content_type = content_type
                operation.body_required = bool(raw_body.get("required", False))

        return operation

    def _build_parameter(self, raw: Any) -> Optional[Parameter]:
        raw = self._deref(raw)
        if not isinstance(raw, dict) or "name" not in raw:
            logger.debug(f"Skipping malformed parameter: {raw!r}")
            return None

        try:
            location = ParameterLocation(raw.get("in"))
        except ValueError:
            logger.debug(f"Skipping parameter {raw['name']!r} with location {raw.get('in')!r}")
            return None

        name = str(raw["name"])
        if location == ParameterLocation.HEADER and name.lower() in IGNORED_HEADER_PARAMETERS:
            return None

        if "schema" in raw:
            schema = self.schema(raw["schema"])
        else:
            # Parameters may describe their schema through `content`
            content = raw.get("content") or {}
            media = next(iter(content.values()), {}) if content else {}
            schema = self.schema((media or {}).get("schema", {}))

        return Parameter(
            name=name,
            location=location,
            schema=schema,
            # Path parameters are always required
            required=location == ParameterLocation.PATH or bool(raw.get("required", False)),
        )

    @staticmethod
    def _pick_content_type(content: Dict[str, Any]) -> Optional[str]:
        if not content:
            return None
        for content_type in content:
            if any(hint in content_type.lower() for hint in JSON_CONTENT_HINTS):
                return content_type
        return next(iter(content))

    # ------------------------------------------------------------------
    # Schemas
    # ------------------------------------------------------------------

    def _schema_from_ref(self, ref: str) -> SchemaNode:
        existing = self._by_pointer.get(ref)
        if existing is not None:
            return existing

        target = self._lookup(ref)
        if isinstance(target, dict) and "$ref" in target:
            if ref in self._resolving:
                raise SpecError(f"Circular $ref alias: {' -> '.join(self._resolving + [ref])}")
            self._resolving.append(ref)
            try:
                node = self._schema_from_ref(target["$ref"])
            finally:
                self._resolving.pop()
            self._by_pointer[ref] = node
            return node

        node = SchemaNode(ref=ref)
        # Registered before populating so self-references resolve to this node
        self._by_pointer[ref] = node
        if isinstance(target, dict):
            self._by_id[id(target)] = node
            self._populate(node, target)
        return node

    def _populate(self, node: SchemaNode, raw: Dict[str, Any]) -> None:
        raw_type = raw.get("type")
        if isinstance(raw_type, str):
            node.types = (raw_type,) if raw_type in SCHEMA_TYPES else ()
        elif isinstance(raw_type, list):
            node.types = tuple(t for t in raw_type if t in SCHEMA_TYPES)

        node.format = raw.get("format")
        node.pattern = raw.get("pattern")

        node.minimum = _number(raw.get("minimum"))
        node.maximum = _number(raw.get("maximum"))
        # OpenAPI 3.0 uses booleans, 3.1 (JSON Schema) uses the bound itself
        exclusive_min = raw.get("exclusiveMinimum")
        if isinstance(exclusive_min, bool):
            node.exclusive_minimum = exclusive_min
        elif _number(exclusive_min) is not None:
            node.minimum, node.exclusive_minimum = _number(exclusive_min), True
        exclusive_max = raw.get("exclusiveMaximum")
        if isinstance(exclusive_max, bool):
            node.exclusive_maximum = exclusive_max
        elif _number(exclusive_max) is not None:
            node.maximum, node.exclusive_maximum = _number(exclusive_max), True
        node.multiple_of = _number(raw.get("multipleOf"))

        node.min_length = _count(raw.get("minLength"))
        node.max_length = _count(raw.get("maxLength"))
        node.min_items = _count(raw.get("minItems"))
        node.max_items = _count(raw.get("maxItems"))
        node.unique_items = bool(raw.get("uniqueItems", False))

        if isinstance(raw.get("enum"), list):
            node.enum = tuple(_literal(value) for value in raw["enum"])
        if "const" in raw:
            node.const, node.has_const = _literal(raw["const"]), True

        required = raw.get("required")
        if isinstance(required, list):
            node.required = frozenset(str(name) for name in required)

        props = raw.get("properties")
        if isinstance(props, dict):
            node.properties = {str(name): self.schema(sub) for name, sub in props.items()}

        additional = raw.get("additionalProperties", True)
        if isinstance(additional, bool):
            node.additional_properties = additional
        elif isinstance(additional, dict):
            node.additional_properties = self.schema(additional)

        if "items" in raw:
            node.items = self.schema(raw["items"])

        node.all_of = tuple(self.schema(sub) for sub in raw.get("allOf") or [])
        node.one_of = tuple(self.schema(sub) for sub in raw.get("oneOf") or [])
        node.any_of = tuple(self.schema(sub) for sub in raw.get("anyOf") or [])

        node.nullable = bool(raw.get("nullable", False))
        node.read_only = bool(raw.get("readOnly", False))
        node.write_only = bool(raw.get("writeOnly", False))

    # ------------------------------------------------------------------
    # JSON pointers
    # ------------------------------------------------------------------

    def _deref(self, raw: Any) -> Any:
        """Follow $ref chains of non-schema objects (parameters, bodies, path items)."""
        seen = set()
        while isinstance(raw, dict) and "$ref" in raw:
            ref = raw["$ref"]
            if ref in seen:
                raise SpecError(f"Circular $ref: {ref}")
            seen.add(ref)
            raw = self._lookup(ref)
        return raw

    def _lookup(self, ref: str) -> Any:
        if not isinstance(ref, str) or not ref.startswith("#"):
            raise SpecError(f"Only local $ref pointers are supported: {ref!r}")

        target: Any = self.document
        pointer = ref[1:]
        if not pointer:
            return target
        for token in pointer.lstrip("/").split("/"):
            token = unquote(token).replace("~1", "/").replace("~0", "~")
            if isinstance(target, dict) and token in target:
                target = target[token]
            elif isinstance(target, list) and token.isdigit() and int(token) < len(target):
                target = target[int(token)]
            else:
                raise SpecError(f"Unresolvable $ref: {ref}")
        return target


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _count(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def _literal(value: Any) -> Any:
    """Convert YAML-only scalars (timestamps, binary, sets) inside a literal to JSON values."""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, dict):
        return {
            key if isinstance(key, (str, int, float, bool)) or key is None else str(_literal(key)): _literal(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_literal(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_literal(item) for item in value), key=repr)
    return value
