import random
import re

import pytest

from generators.patterns import PatternGenerator


@pytest.mark.parametrize("pattern", [
    r"^[A-Z]{3}-\d{4}$",
    r"^(GET|POST|DELETE)$",
    r"^[a-f0-9]{8}-[a-f0-9]{4}$",
    r"^\w+@\w+\.(com|org)$",
    r"^(ab)\1$",
    r"^[^0-9]{4}$",
    r"^\s?x+\S$",
    r"^a*?b+c{2,}$",
    r"^.{3}$",
    r"^(?:foo|bar)-(?P<n>\d)$",
    r"^[一-鿿]{2}$",
])
def test_generated_strings_match(pattern):
    gen = PatternGenerator(random.Random(1))
    compiled = re.compile(pattern)
    for _ in range(25):
        value = gen.generate(pattern)
        assert compiled.search(value), f"{value!r} does not match {pattern}"


def test_unanchored_pattern_is_searched():
    gen = PatternGenerator(random.Random(2))
    assert re.search(r"\d{3}", gen.generate(r"\d{3}"))


def test_lookarounds_are_skipped():
    gen = PatternGenerator(random.Random(3))
    assert re.search(r"(?=a)a+", gen.generate(r"(?=a)a+"))


def test_invalid_pattern_returns_none():
    assert PatternGenerator(random.Random(4)).generate(r"[unclosed") is None


def test_length_bounds_are_retried():
    gen = PatternGenerator(random.Random(5), retries=200)
    for _ in range(10):
        assert len(gen.generate(r"^[a-z]{3,7}$", min_length=5, max_length=5)) == 5


def test_surrogates_are_never_emitted():
    gen = PatternGenerator(random.Random(6), retries=200)
    for _ in range(20):
        value = gen.generate(r"^[\ud7f0-\ud80f]$")
        value.encode("utf-8")


def test_impossible_bounds_return_best_effort():
    gen = PatternGenerator(random.Random(7), retries=3)
    value = gen.generate(r"^ab$", min_length=10)
    assert value == "ab"


def test_same_seed_same_strings():
    first = PatternGenerator(random.Random(8))
    second = PatternGenerator(random.Random(8))
    assert [first.generate(r"[a-z]{1,10}") for _ in range(10)] == \
        [second.generate(r"[a-z]{1,10}") for _ in range(10)]
