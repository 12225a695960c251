"""
OpenAPI document model and loader.

Usage:
    from oas import load_spec

    spec = load_spec("openapi.yaml")
    for operation in spec.operations:
        print(operation.identity)
"""

from .model import (
    ApiSpec,
    Operation,
    Parameter,
    ParameterLocation,
    SchemaNode,
)
from .loader import SpecError, SpecResolver, load_spec

__all__ = [
    "ApiSpec",
    "Operation",
    "Parameter",
    "ParameterLocation",
    "SchemaNode",
    "SpecError",
    "SpecResolver",
    "load_spec",
]
