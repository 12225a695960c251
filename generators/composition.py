"""
allOf merging.

Folds a node and every (transitively nested) allOf subschema into a single
SchemaNode. On conflict the more restrictive constraint wins. Same-named
properties and item schemas are not merged eagerly: they become a new node
whose allOf lists both sides, merged again only if the sampler reaches them,
so cyclic graphs never cause unbounded merging.
"""

import logging
from dataclasses import replace
from typing import List, Optional, Set, Tuple, Union

from oas.model import SchemaNode

logger = logging.getLogger("openapi_fuzzer.generators.composition")


def merge_all_of(node: SchemaNode) -> SchemaNode:
    """Return `node` with its allOf subschemas folded in."""
    if not node.all_of:
        return node

    parts = _flatten(node, set())
    constrained = [p for p in parts if p.has_constraints() or p.variants]
    if not constrained:
        return replace(node, all_of=())

    merged = constrained[0]
    for part in constrained[1:]:
        merged = _merge_pair(merged, part)
    # `nullable` next to allOf applies to the composed value as a whole
    if node.nullable and not merged.nullable:
        merged = replace(merged, nullable=True)
    return merged


def combine_variant(base: SchemaNode, variant: SchemaNode) -> SchemaNode:
    """Merge a selected oneOf/anyOf alternative with its sibling constraints."""
    stripped = base.without_composition()
    if not stripped.has_constraints():
        return merge_all_of(variant)
    return merge_all_of(SchemaNode(all_of=(stripped, variant)))


def _flatten(node: SchemaNode, seen: Set[SchemaNode]) -> List[SchemaNode]:
    if node in seen:
        return []
    seen.add(node)
    parts = [replace(node, all_of=())]
    for sub in node.all_of:
        parts.extend(_flatten(sub, seen))
    return parts


def _merge_pair(a: SchemaNode, b: SchemaNode) -> SchemaNode:
    minimum, exclusive_minimum = _tighter(
        a.minimum, a.exclusive_minimum, b.minimum, b.exclusive_minimum, prefer_larger=True
    )
    maximum, exclusive_maximum = _tighter(
        a.maximum, a.exclusive_maximum, b.maximum, b.exclusive_maximum, prefer_larger=False
    )

    properties = dict(a.properties)
    for name, sub in b.properties.items():
        if name in properties and properties[name] is not sub:
            properties[name] = SchemaNode(all_of=(properties[name], sub))
        else:
            properties[name] = sub

    if a.one_of and b.one_of:
        logger.debug("allOf with several oneOf members; keeping the first")

    return SchemaNode(
        types=_merge_types(a.types, b.types),
        format=a.format or b.format,
        pattern=a.pattern or b.pattern,
        minimum=minimum,
        maximum=maximum,
        exclusive_minimum=exclusive_minimum,
        exclusive_maximum=exclusive_maximum,
        multiple_of=a.multiple_of if a.multiple_of is not None else b.multiple_of,
        min_length=_max(a.min_length, b.min_length),
        max_length=_min(a.max_length, b.max_length),
        min_items=_max(a.min_items, b.min_items),
        max_items=_min(a.max_items, b.max_items),
        unique_items=a.unique_items or b.unique_items,
        enum=_merge_enum(a.enum, b.enum),
        const=a.const if a.has_const else b.const,
        has_const=a.has_const or b.has_const,
        required=a.required | b.required,
        properties=properties,
        additional_properties=_merge_additional(a.additional_properties, b.additional_properties),
        items=_merge_optional(a.items, b.items),
        one_of=a.one_of or b.one_of,
        any_of=a.any_of or b.any_of,
        nullable=a.nullable and b.nullable,
        read_only=a.read_only or b.read_only,
        write_only=a.write_only or b.write_only,
        ref=a.ref or b.ref,
    )


def _merge_types(a: Tuple[str, ...], b: Tuple[str, ...]) -> Tuple[str, ...]:
    if not a:
        return b
    if not b:
        return a
    common = tuple(t for t in a if t in b)
    # integer is a subset of number
    if not common and "integer" in a + b and "number" in a + b:
        common = ("integer",)
    if not common:
        logger.debug(f"allOf type conflict {a} vs {b}; keeping {a}")
        return a
    return common


def _merge_enum(a: Optional[tuple], b: Optional[tuple]) -> Optional[tuple]:
    if a is None:
        return b
    if b is None:
        return a
    common = tuple(v for v in a if v in b)
    if not common:
        logger.debug("allOf enum intersection is empty; keeping the first enum")
        return a
    return common


def _merge_additional(a: Union[bool, SchemaNode], b: Union[bool, SchemaNode]) -> Union[bool, SchemaNode]:
    if a is False or b is False:
        return False
    if a is True:
        return b
    if b is True:
        return a
    return SchemaNode(all_of=(a, b))


def _merge_optional(a: Optional[SchemaNode], b: Optional[SchemaNode]) -> Optional[SchemaNode]:
    if a is None or a is b:
        return b
    if b is None:
        return a
    return SchemaNode(all_of=(a, b))


def _tighter(a, a_exclusive, b, b_exclusive, prefer_larger):
    if a is None:
        return b, b_exclusive if b is not None else False
    if b is None:
        return a, a_exclusive
    if a == b:
        return a, a_exclusive or b_exclusive
    if (a > b) == prefer_larger:
        return a, a_exclusive
    return b, b_exclusive


def _max(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _min(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)
