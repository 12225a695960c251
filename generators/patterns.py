"""
Regex-driven string generation for the ``pattern`` keyword.

Candidates come from ``rstr``'s xeger, bound to the caller's random source so
that a run stays reproducible from its seed. Each candidate is checked with
``re.search`` (OpenAPI patterns are unanchored) and against the length
bounds. After a bounded number of attempts the last candidate is returned as
a best effort.
"""

import logging
import random
import re
from typing import Dict, Optional

import rstr

logger = logging.getLogger("openapi_fuzzer.generators.patterns")

# Lone surrogates cannot be encoded as UTF-8
SURROGATES = re.compile("[\ud800-\udfff]")


class PatternGenerator:
    """
    Generates strings matching a regular expression.

    Usage:
        gen = PatternGenerator(random.Random(7))
        value = gen.generate(r"^[A-Z]{3}-\\d{4}$", min_length=8, max_length=8)
    """

    def __init__(self, rng: random.Random, retries: int = 25):
        self.rng = rng
        self.retries = retries
        self.xeger = rstr.Rstr(rng)
        self._compiled: Dict[str, re.Pattern] = {}

    def generate(self, pattern: str, min_length: int = 0,
                 max_length: Optional[int] = None) -> Optional[str]:
        """
        Generate a string matching `pattern`.

        Returns None when the pattern cannot be compiled. Otherwise returns the
        first candidate that matches and fits the length bounds, or the last
        candidate produced once retries are exhausted.
        """
        compiled = self._compile(pattern)
        if compiled is None:
            return None

        candidate = ""
        for _ in range(self.retries):
            try:
                value = self.xeger.xeger(compiled)
            except (IndexError, KeyError, ValueError, RecursionError) as e:
                logger.debug(f"Generation failed for pattern {pattern!r}: {e}")
                continue
            if SURROGATES.search(value):
                continue
            candidate = value
            if not compiled.search(candidate):
                continue
            if len(candidate) < min_length:
                continue
            if max_length is not None and len(candidate) > max_length:
                continue
            return candidate

        logger.debug(f"No exact match for pattern {pattern!r} after {self.retries} attempts")
        return candidate

    def _compile(self, pattern: str) -> Optional[re.Pattern]:
        compiled = self._compiled.get(pattern)
        if compiled is None:
            try:
                compiled = re.compile(pattern)
            except (re.error, OverflowError, RecursionError) as e:
                logger.debug(f"Cannot compile pattern {pattern!r}: {e}")
                return None
            self._compiled[pattern] = compiled
        return compiled
