"""
Resolved OpenAPI data model shared by the loader, the sampler and the engine.

SchemaNode graphs may contain cycles (self-referential components), so nodes
compare and hash by identity and their repr never descends into children.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union


# =============================================================================
# ENUMS
# =============================================================================

class ParameterLocation(Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"


SCHEMA_TYPES = ("string", "number", "integer", "boolean", "array", "object", "null")


# =============================================================================
# SCHEMA GRAPH
# =============================================================================

@dataclass(eq=False)
class SchemaNode:
    """One resolved schema fragment."""
    types: Tuple[str, ...] = ()
    format: Optional[str] = None
    pattern: Optional[str] = None

    # Numeric
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    multiple_of: Optional[float] = None

    # String / array
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    unique_items: bool = False

    enum: Optional[Tuple[Any, ...]] = None
    const: Any = None
    has_const: bool = False

    # Object
    required: FrozenSet[str] = frozenset()
    properties: Dict[str, "SchemaNode"] = field(default_factory=dict, repr=False)
    additional_properties: Union[bool, "SchemaNode"] = field(default=True, repr=False)

    items: Optional["SchemaNode"] = field(default=None, repr=False)

    # Composition
    all_of: Tuple["SchemaNode", ...] = field(default=(), repr=False)
    one_of: Tuple["SchemaNode", ...] = field(default=(), repr=False)
    any_of: Tuple["SchemaNode", ...] = field(default=(), repr=False)

    nullable: bool = False
    read_only: bool = False
    write_only: bool = False

    # Optional source pointer, for logs only
    ref: Optional[str] = None

    @property
    def variants(self) -> Tuple["SchemaNode", ...]:
        """Indexed alternatives of a oneOf/anyOf node (oneOf takes precedence)."""
        return self.one_of or self.any_of

    @property
    def primary_type(self) -> Optional[str]:
        """First declared non-null type, if any."""
        for t in self.types:
            if t != "null":
                return t
        return None

    @property
    def allows_null(self) -> bool:
        return self.nullable or "null" in self.types

    def has_constraints(self) -> bool:
        """True when the node carries anything besides composition keywords."""
        return bool(
            self.types
            or self.format
            or self.pattern
            or self.minimum is not None
            or self.maximum is not None
            or self.multiple_of is not None
            or self.min_length is not None
            or self.max_length is not None
            or self.min_items is not None
            or self.max_items is not None
            or self.enum is not None
            or self.has_const
            or self.required
            or self.properties
            or self.items is not None
            or self.additional_properties is not True
            or self.nullable
        )

    def without_composition(self) -> "SchemaNode":
        """Shallow copy with allOf/oneOf/anyOf removed."""
        return replace(self, all_of=(), one_of=(), any_of=())


# =============================================================================
# OPERATIONS
# =============================================================================

@dataclass
class Parameter:
    """A declared operation parameter."""
    name: str
    location: ParameterLocation
    schema: SchemaNode = field(repr=False)
    required: bool = False


@dataclass
class Operation:
    """One (path template, method) pair of the API."""
    path: str
    method: str
    parameters: List[Parameter] = field(default_factory=list)
    request_body: Optional[SchemaNode] = field(default=None, repr=False)
    body_required: bool = False
    content_type: str = "application/json"
    declared_status_codes: FrozenSet[str] = frozenset()
    operation_id: Optional[str] = None

    @property
    def identity(self) -> str:
        return f"{self.method.upper()} {self.path}"

    def parameters_in(self, location: ParameterLocation) -> List[Parameter]:
        return [p for p in self.parameters if p.location == location]

    def declares_status(self, status: int) -> bool:
        """True when `status` matches a declared response code or NXX range."""
        code = str(status)
        if code in self.declared_status_codes:
            return True
        return f"{code[0]}XX" in self.declared_status_codes


@dataclass
class ApiSpec:
    """Loaded OpenAPI document: title, version and enumerated operations."""
    title: str
    version: str
    operations: List[Operation] = field(default_factory=list)
    source: Optional[str] = None
