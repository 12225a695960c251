#!/usr/bin/env python3
"""
String Format Library
=====================
Well-formed and deliberately malformed instances of OpenAPI string formats.

Well-formed values come from a Faker instance seeded from the sampler's
random source, so they are reproducible for a given run seed. Malformed
values are static edge cases: almost-valid inputs that commonly slip past
hand-written parsers (out-of-range dates, truncated UUIDs, stray separators).
"""

import base64
import logging
import random
from datetime import timezone
from typing import Callable, Dict, List, Optional

from faker import Faker

logger = logging.getLogger("openapi_fuzzer.generators.formats")


class FormatTemplates:
    """Static malformed values per format plus generic adversarial strings."""

    MALFORMED: Dict[str, List[str]] = {
        "date": ["2021-02-30", "2021-13-01", "0000-00-00", "99999-01-01", "2021/01/01", "01-01-2021", "today"],
        "date-time": [
            "2021-02-30T25:61:61Z", "2021-01-01T00:00:00", "2021-01-01 00:00:00+99:99",
            "1970-01-01T00:00:00.000000000000Z", "-0001-01-01T00:00:00Z", "T00:00:00Z",
        ],
        "time": ["24:00:00", "23:60:00", "12:00:00+25:00", "1:2:3", "noon"],
        "email": ["plainaddress", "@missing-local.org", "a@b@c.com", "user@", "user@.com", "\"quoted\"@[127.0.0.1]"],
        "uuid": [
            "00000000-0000-0000-0000-000000000000", "00000000-0000-0000-0000-00000000000g",
            "123e4567-e89b-12d3-a456", "123e4567e89b12d3a456426614174000", "{123e4567-e89b-12d3-a456-426614174000}",
        ],
        "uri": ["http//missing-colon", "://no-scheme", "http://", "javascript:alert(1)", "http://[::1", "file:///etc/passwd"],
        "hostname": ["-leading-dash", "a" * 64 + ".com", "host_name", "..", "localhost."],
        "ipv4": ["256.256.256.256", "1.2.3", "1.2.3.4.5", "01.02.03.04", "0x7f.0.0.1", "127.1"],
        "ipv6": ["::1::", "12345::", "fe80::1%eth0", "gggg::1", ":::"],
        "byte": ["not base64!", "YQ", "====", "YWJj\n"],
        "password": [""],
    }

    # Aliases for formats sharing a generator
    ALIASES: Dict[str, str] = {
        "url": "uri",
        "uri-reference": "uri",
        "iri": "uri",
        "iri-reference": "uri",
        "idn-email": "email",
        "idn-hostname": "hostname",
        "datetime": "date-time",
    }

    ADVERSARIAL = [
        "' OR '1'='1",
        "\"; DROP TABLE users--",
        "<script>alert(1)</script>",
        "../../../etc/passwd",
        "%00",
        "{{7*7}}",
        "${jndi:ldap://127.0.0.1/a}",
        "\u202e\u0000",
        "\U0001f4a9" * 4,
        "null",
        "-1",
        "NaN",
        " ",
    ]

    @classmethod
    def canonical(cls, fmt: Optional[str]) -> Optional[str]:
        if fmt is None:
            return None
        fmt = fmt.lower()
        return cls.ALIASES.get(fmt, fmt)

    @classmethod
    def malformed_for(cls, fmt: str) -> List[str]:
        return cls.MALFORMED.get(cls.canonical(fmt) or "", [])


class FormatSampler:
    """
    Produces format instances from an explicitly owned random source.

    Usage:
        formats = FormatSampler(random.Random(1))
        formats.well_formed("uuid")   # '7a6e...'
        formats.malformed("date")     # '2021-02-30'
    """

    def __init__(self, rng: random.Random):
        self.rng = rng
        self.faker = Faker()
        self.faker.seed_instance(rng.getrandbits(32))
        self._generators: Dict[str, Callable[[], str]] = {
            "date": lambda: self.faker.date(),
            "date-time": lambda: self.faker.date_time(tzinfo=timezone.utc).isoformat(),
            "time": lambda: self.faker.time(),
            "email": lambda: self.faker.email(),
            "uuid": lambda: str(self.faker.uuid4()),
            "uri": lambda: self.faker.uri(),
            "hostname": lambda: self.faker.hostname(),
            "ipv4": lambda: self.faker.ipv4(),
            "ipv6": lambda: self.faker.ipv6(),
            "byte": lambda: base64.b64encode(self.rng.randbytes(self.rng.randint(0, 24))).decode("ascii"),
            "password": lambda: self.faker.password(),
        }

    def knows(self, fmt: Optional[str]) -> bool:
        return FormatTemplates.canonical(fmt) in self._generators

    def well_formed(self, fmt: str) -> Optional[str]:
        generator = self._generators.get(FormatTemplates.canonical(fmt) or "")
        if generator is None:
            return None
        return generator()

    def malformed(self, fmt: str) -> Optional[str]:
        options = FormatTemplates.malformed_for(fmt)
        if not options:
            return None
        return self.rng.choice(options)

    def adversarial(self) -> str:
        return self.rng.choice(FormatTemplates.ADVERSARIAL)
