#!/usr/bin/env python3
"""
Schema Sampler
==============
Turns resolved SchemaNode graphs into concrete, edge-case-heavy values.

Every random choice is drawn from the `random.Random` instance handed to the
sampler, so a run is fully reproducible from its seed. A depth counter is
threaded through every recursive call; once it reaches `max_depth` a minimal
terminal value is built instead. Terminal values keep required keys and stop
only where a schema node repeats, which keeps self-referential schemas finite.

Sampling never raises: unsatisfiable constraint combinations fall back to
the closest obtainable value and are logged at debug level.
"""

import json
import logging
import math
import random
import string
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from oas.model import Operation, ParameterLocation, SchemaNode

from .composition import combine_variant, merge_all_of
from .formats import FormatSampler
from .patterns import PatternGenerator
from .payload import Payload

logger = logging.getLogger("openapi_fuzzer.generators.sampler")

INT64_MIN, INT64_MAX = -(2 ** 63), 2 ** 63 - 1
INT32_MIN, INT32_MAX = -(2 ** 31), 2 ** 31 - 1
FLOAT_BOUND = 1e12
FLOAT_EXTREMES = (1.7976931348623157e308, -1.7976931348623157e308, 2.2250738585072014e-308, 5e-324)

ASCII_ALPHABET = string.ascii_letters + string.digits + "-_. "
UNICODE_ALPHABET = "äöüßéñçÅΩ€ж中文日本語한국어ّ ​\U0001f600"

# Keys injected through additionalProperties
EXTRA_KEYS = ["__proto__", "constructor", "$where", "", "id", "admin", "_links"]

# Upper bound on nodes visited while building one terminal value
TERMINAL_NODE_LIMIT = 64


@dataclass
class SamplerConfig:
    """Probabilities and size limits used by the sampler."""
    max_depth: int = 5
    null_probability: float = 0.1
    optional_property_probability: float = 0.5
    optional_parameter_probability: float = 0.5
    optional_body_probability: float = 0.8
    extra_property_probability: float = 0.1
    boundary_probability: float = 0.3
    empty_probability: float = 0.1
    oversize_probability: float = 0.05
    oversize_length: int = 4096
    adversarial_probability: float = 0.05
    unicode_probability: float = 0.1
    malformed_format_probability: float = 0.3
    default_max_length: int = 16
    default_max_items: int = 4
    pattern_retries: int = 25

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


class SchemaSampler:
    """
    Samples values for schema nodes and whole operations.

    Usage:
        sampler = SchemaSampler(random.Random(42))
        value = sampler.sample(node)
        payload = sampler.sample_operation(operation)
    """

    def __init__(self, rng: random.Random, config: Optional[SamplerConfig] = None):
        self.rng = rng
        self.config = config or SamplerConfig()
        self.formats = FormatSampler(rng)
        self.patterns = PatternGenerator(rng, retries=self.config.pattern_retries)
        self._merged: Dict[SchemaNode, SchemaNode] = {}
        self._combined: Dict[Tuple[SchemaNode, int], SchemaNode] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sample_operation(self, operation: Operation) -> Payload:
        """Sample parameter values and the body of one trial."""
        payload = Payload(content_type=operation.content_type)
        targets = {
            ParameterLocation.PATH: payload.path_params,
            ParameterLocation.QUERY: payload.query_params,
            ParameterLocation.HEADER: payload.headers,
            ParameterLocation.COOKIE: payload.cookies,
        }

        for param in operation.parameters:
            if not param.required and self.rng.random() >= self.config.optional_parameter_probability:
                continue
            targets[param.location][param.name] = self.sample(param.schema)

        if operation.request_body is not None:
            if operation.body_required or self.rng.random() < self.config.optional_body_probability:
                payload.body = self.sample(operation.request_body)
                payload.body_present = True

        return payload

    def sample(self, node: SchemaNode, depth: int = 0) -> Any:
        """Produce one value for `node`."""
        node = self._resolve(node)

        if depth >= self.config.max_depth:
            return self._terminal(node)

        if node.allows_null and self.rng.random() < self.config.null_probability:
            return None
        if node.has_const:
            return node.const
        if node.enum:
            return self.rng.choice(node.enum)

        variants = node.variants
        if variants:
            index = self.rng.randrange(len(variants))
            return self.sample(self._variant(node, index), depth + 1)

        kind = self._pick_type(node)
        if kind == "object":
            return self._sample_object(node, depth)
        if kind == "array":
            return self._sample_array(node, depth)
        if kind == "string":
            return self._sample_string(node)
        if kind == "integer":
            return self._sample_integer(node)
        if kind == "number":
            return self._sample_number(node)
        if kind == "boolean":
            return self.rng.random() < 0.5
        return None

    # ------------------------------------------------------------------
    # Type selection
    # ------------------------------------------------------------------

    def _resolve(self, node: SchemaNode) -> SchemaNode:
        if not node.all_of:
            return node
        merged = self._merged.get(node)
        if merged is None:
            merged = merge_all_of(node)
            self._merged[node] = merged
        return merged

    def _variant(self, node: SchemaNode, index: int) -> SchemaNode:
        key = (node, index)
        combined = self._combined.get(key)
        if combined is None:
            combined = combine_variant(node, node.variants[index])
            self._combined[key] = combined
        return combined

    def _pick_type(self, node: SchemaNode) -> str:
        declared = [t for t in node.types if t != "null"]
        if declared:
            return self.rng.choice(declared)
        if node.types:
            return "null"
        inferred = self._infer_type(node)
        if inferred is not None:
            return inferred
        # Unconstrained schema: anything goes
        return self.rng.choice(["string", "integer", "number", "boolean", "object", "array"])

    @staticmethod
    def _infer_type(node: SchemaNode) -> Optional[str]:
        if node.properties or node.required or isinstance(node.additional_properties, SchemaNode):
            return "object"
        if node.items is not None or node.min_items is not None or node.max_items is not None:
            return "array"
        if node.pattern or node.format or node.min_length is not None or node.max_length is not None:
            return "string"
        if node.minimum is not None or node.maximum is not None or node.multiple_of is not None:
            return "number"
        return None

    # ------------------------------------------------------------------
    # Scalars
    # ------------------------------------------------------------------

    def _integer_bounds(self, node: SchemaNode) -> Tuple[int, int]:
        if node.format == "int32":
            default_lo, default_hi = INT32_MIN, INT32_MAX
        else:
            default_lo, default_hi = INT64_MIN, INT64_MAX

        lo = hi = None
        if node.minimum is not None:
            lo = math.floor(node.minimum) + 1 if node.exclusive_minimum else math.ceil(node.minimum)
        if node.maximum is not None:
            hi = math.ceil(node.maximum) - 1 if node.exclusive_maximum else math.floor(node.maximum)
        if lo is None:
            lo = min(default_lo, hi) if hi is not None else default_lo
        if hi is None:
            hi = max(default_hi, lo)
        return lo, hi

    def _sample_integer(self, node: SchemaNode) -> int:
        lo, hi = self._integer_bounds(node)
        if lo > hi:
            logger.debug(f"Unsatisfiable integer range [{lo}, {hi}]; using {lo}")
            return lo

        step = None
        if node.multiple_of is not None and node.multiple_of > 0 and float(node.multiple_of).is_integer():
            step = int(node.multiple_of)

        if self.rng.random() < self.config.boundary_probability:
            candidates = [c for c in (0, -1, 1, lo, lo + 1, hi, hi - 1) if lo <= c <= hi]
            if step:
                candidates = [c for c in candidates if c % step == 0]
            if candidates:
                return self.rng.choice(candidates)

        value = self.rng.randint(lo, hi)
        if step:
            first = -(-lo // step) * step
            if first > hi:
                logger.debug(f"No multiple of {step} in [{lo}, {hi}]; using {lo}")
                return lo
            value = max(first, value // step * step)
        return value

    def _sample_number(self, node: SchemaNode) -> float:
        lo = float(node.minimum) if node.minimum is not None else None
        hi = float(node.maximum) if node.maximum is not None else None
        if lo is not None and node.exclusive_minimum:
            lo = math.nextafter(lo, math.inf)
        if hi is not None and node.exclusive_maximum:
            hi = math.nextafter(hi, -math.inf)
        bounded_below, bounded_above = lo is not None, hi is not None
        if lo is None:
            lo = min(-FLOAT_BOUND, hi) if hi is not None else -FLOAT_BOUND
        if hi is None:
            hi = max(FLOAT_BOUND, lo)

        if lo > hi:
            logger.debug(f"Unsatisfiable number range [{lo}, {hi}]; using {lo}")
            return lo

        if self.rng.random() < self.config.boundary_probability:
            # Extremes are checked against the declared bounds only
            floor = lo if bounded_below else -math.inf
            ceiling = hi if bounded_above else math.inf
            candidates = [c for c in (0.0, -1.0, 1.0, lo, hi, lo + 1, hi - 1) if lo <= c <= hi]
            candidates.extend(c for c in FLOAT_EXTREMES if floor <= c <= ceiling)
            candidates = [c for c in candidates if self._is_multiple(c, node.multiple_of)]
            if candidates:
                return self.rng.choice(candidates)

        value = min(max(self.rng.uniform(lo, hi), lo), hi)
        if not node.multiple_of or node.multiple_of <= 0:
            return value

        step = float(node.multiple_of)
        quotient = value / step
        if math.isfinite(quotient):
            nearest = round(quotient)
            # Nearest multiple, its neighbours, then the first multiple above lo
            multiples = [nearest, nearest + 1, nearest - 1]
            if math.isfinite(lo / step):
                multiples.append(math.ceil(lo / step))
            for k in multiples:
                snapped = k * step
                if lo <= snapped <= hi:
                    return snapped
        logger.debug(f"No multiple of {step} in [{lo}, {hi}]; using {lo}")
        return lo

    @staticmethod
    def _is_multiple(value: float, multiple_of: Optional[float]) -> bool:
        if not multiple_of:
            return True
        quotient = value / multiple_of
        return math.isfinite(quotient) and quotient.is_integer()

    def _sample_string(self, node: SchemaNode) -> str:
        min_len = node.min_length or 0
        max_len = node.max_length
        if max_len is not None and min_len > max_len:
            logger.debug(f"Unsatisfiable string length [{min_len}, {max_len}]; using {min_len}")
            max_len = min_len

        if node.pattern:
            value = self.patterns.generate(node.pattern, min_len, max_len)
            if value is not None:
                return value

        if node.format and self.formats.knows(node.format):
            value = None
            if self.rng.random() < self.config.malformed_format_probability:
                value = self.formats.malformed(node.format)
            if value is None:
                value = self.formats.well_formed(node.format)
            if value is not None:
                return self._fit_length(value, min_len, max_len)

        if max_len is None:
            if self.rng.random() < self.config.oversize_probability:
                return self._random_text(max(self.config.oversize_length, min_len))
            if self.rng.random() < self.config.adversarial_probability:
                value = self.formats.adversarial()
                if len(value) >= min_len:
                    return value

        if min_len == 0 and self.rng.random() < self.config.empty_probability:
            return ""

        hi = max_len if max_len is not None else min_len + self.config.default_max_length
        if self.rng.random() < self.config.boundary_probability:
            length = self.rng.choice([min_len, hi])
        else:
            length = self.rng.randint(min_len, hi)
        return self._random_text(length)

    def _random_text(self, length: int) -> str:
        alphabet = ASCII_ALPHABET
        if self.rng.random() < self.config.unicode_probability:
            alphabet = ASCII_ALPHABET + UNICODE_ALPHABET
        return "".join(self.rng.choice(alphabet) for _ in range(length))

    @staticmethod
    def _fit_length(value: str, min_len: int, max_len: Optional[int]) -> str:
        if len(value) < min_len:
            value += "a" * (min_len - len(value))
        if max_len is not None and len(value) > max_len:
            value = value[:max_len]
        return value

    def _sample_any_scalar(self) -> Any:
        kind = self.rng.choice(["string", "integer", "number", "boolean"])
        if kind == "string":
            return self._random_text(self.rng.randint(0, self.config.default_max_length))
        if kind == "integer":
            return self._sample_integer(SchemaNode(types=("integer",)))
        if kind == "number":
            return self._sample_number(SchemaNode(types=("number",)))
        return self.rng.random() < 0.5

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def _sample_array(self, node: SchemaNode, depth: int) -> List[Any]:
        lo = node.min_items or 0
        hi = node.max_items if node.max_items is not None else lo + self.config.default_max_items
        if hi < lo:
            logger.debug(f"Unsatisfiable item count [{lo}, {hi}]; using {lo}")
            hi = lo

        if lo == 0 and self.rng.random() < self.config.empty_probability:
            return []

        count = self.rng.randint(lo, hi)
        values: List[Any] = []
        seen = set()
        for _ in range(count):
            # Bounded attempts at a value not produced yet
            for _attempt in range(3 if node.unique_items else 1):
                value = self.sample(node.items, depth + 1) if node.items is not None else self._sample_any_scalar()
                if not node.unique_items:
                    break
                key = json.dumps(value, sort_keys=True, default=str)
                if key not in seen:
                    seen.add(key)
                    break
            else:
                continue
            values.append(value)
        return values

    def _sample_object(self, node: SchemaNode, depth: int) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name, prop in node.properties.items():
            if name in node.required:
                result[name] = self.sample(prop, depth + 1)
            elif not self._resolve(prop).read_only and self.rng.random() < self.config.optional_property_probability:
                result[name] = self.sample(prop, depth + 1)

        # Required names with no declared property schema
        for name in sorted(node.required - node.properties.keys()):
            result[name] = self._sample_additional(node, depth)

        if node.additional_properties is not False and self.rng.random() < self.config.extra_property_probability:
            key = self._extra_key(node, result)
            if key is not None:
                result[key] = self._sample_additional(node, depth)
        return result

    def _sample_additional(self, node: SchemaNode, depth: int) -> Any:
        if isinstance(node.additional_properties, SchemaNode):
            return self.sample(node.additional_properties, depth + 1)
        return self._sample_any_scalar()

    def _extra_key(self, node: SchemaNode, current: Dict[str, Any]) -> Optional[str]:
        taken = set(node.properties) | set(current)
        candidates = [k for k in EXTRA_KEYS if k not in taken]
        if candidates and self.rng.random() < 0.5:
            return self.rng.choice(candidates)
        for _ in range(3):
            key = "".join(self.rng.choice(string.ascii_lowercase) for _ in range(8))
            if key not in taken:
                return key
        return None

    # ------------------------------------------------------------------
    # Recursion floor
    # ------------------------------------------------------------------

    def _terminal(self, node: SchemaNode, visited: FrozenSet[SchemaNode] = frozenset()) -> Any:
        """
        Minimal value for `node`.

        Required properties, minItems items and the first variant are still
        filled in; descent stops only where a node repeats along the current
        path (a cycle), or after TERMINAL_NODE_LIMIT nodes.
        """
        node = self._resolve(node)
        if node.allows_null:
            return None
        if node.has_const:
            return node.const
        if node.enum:
            return node.enum[0]

        cyclic = node in visited or len(visited) >= TERMINAL_NODE_LIMIT
        visited = visited | {node}
        if node.variants:
            if cyclic:
                return None
            return self._terminal(self._variant(node, 0), visited)

        kind = node.primary_type or self._infer_type(node)
        if kind == "string":
            min_len = node.min_length or 0
            if node.pattern:
                value = self.patterns.generate(node.pattern, min_len, node.max_length)
                if value is not None:
                    return value
            return "a" * min_len
        if kind == "integer":
            lo, hi = self._integer_bounds(node)
            return lo if lo > hi else min(max(0, lo), hi)
        if kind == "number":
            lo = float(node.minimum) if node.minimum is not None else -math.inf
            hi = float(node.maximum) if node.maximum is not None else math.inf
            if node.exclusive_minimum:
                lo = math.nextafter(lo, math.inf)
            if node.exclusive_maximum:
                hi = math.nextafter(hi, -math.inf)
            return min(max(0.0, lo), hi) if lo <= hi else lo
        if kind == "boolean":
            return False
        if kind == "array":
            if cyclic or not node.min_items:
                return []
            if node.items is None:
                return [None] * node.min_items
            return [self._terminal(node.items, visited)] * node.min_items
        if kind == "object":
            if cyclic:
                return {}
            result = {}
            for name, prop in node.properties.items():
                if name in node.required:
                    result[name] = self._terminal(prop, visited)
            for name in sorted(node.required - node.properties.keys()):
                if isinstance(node.additional_properties, SchemaNode):
                    result[name] = self._terminal(node.additional_properties, visited)
                else:
                    result[name] = None
            return result
        return None
