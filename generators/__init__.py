"""
Seeded value generation from resolved schemas.

Usage:
    import random
    from generators import SchemaSampler

    sampler = SchemaSampler(random.Random(42))
    payload = sampler.sample_operation(operation)
"""

from .composition import combine_variant, merge_all_of
from .formats import FormatSampler, FormatTemplates
from .patterns import PatternGenerator
from .payload import Payload
from .schema_sampler import SamplerConfig, SchemaSampler

__all__ = [
    "FormatSampler",
    "FormatTemplates",
    "PatternGenerator",
    "Payload",
    "SamplerConfig",
    "SchemaSampler",
    "combine_variant",
    "merge_all_of",
]
