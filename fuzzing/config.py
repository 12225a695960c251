"""
Run configuration.

Values come from (lowest to highest precedence) `FUZZER_*` environment
variables, an optional JSON/YAML file and explicit overrides (the CLI).
Everything is validated once in `FuzzerConfig.__post_init__`; a bad value
raises `ConfigError` before any request is sent.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, Optional, Set, Tuple
from urllib.parse import urlparse

import yaml

from generators.schema_sampler import SamplerConfig

logger = logging.getLogger("openapi_fuzzer.fuzzing.config")

ENV_PREFIX = "FUZZER_"
ENV_HEADER_PREFIX = "FUZZER_HEADER_"


class ConfigError(ValueError):
    """Invalid configuration value."""


def parse_header(raw: str) -> Tuple[str, str]:
    """Split `name:value` at the first colon; the name is lower-cased."""
    name, sep, value = raw.partition(":")
    name = name.strip().lower()
    if not sep or not name:
        raise ConfigError(f"Invalid header {raw!r}, expected 'name:value'")
    return name, value.strip()


def parse_status_codes(values: Iterable[Any]) -> Set[int]:
    codes = set()
    for value in values:
        try:
            code = int(str(value).strip())
        except ValueError:
            raise ConfigError(f"Invalid status code {value!r}")
        if not 0 <= code <= 65535:
            raise ConfigError(f"Status code out of range: {code}")
        codes.add(code)
    return codes


def _env_bool(name: str) -> Optional[bool]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class FuzzerConfig:
    """
    Fuzzer configuration with sensible defaults.
    Can be loaded from environment variables, config file, or CLI args.
    """
    base_url: str = ""
    ignore_status_codes: Set[int] = field(default_factory=set)
    headers: Dict[str, str] = field(default_factory=dict)
    max_test_case_count: int = 256

    # Output
    results_dir: str = "results"
    stats_dir: Optional[str] = None

    # Transport
    timeout: float = 10.0
    verify_tls: bool = True

    # Classification policy
    accept_declared_status_codes: bool = False
    transport_errors_as_findings: bool = False

    seed: Optional[int] = None
    sampler: SamplerConfig = field(default_factory=SamplerConfig)

    def __post_init__(self):
        """Validate and normalize."""
        parsed = urlparse(self.base_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(f"Invalid base URL {self.base_url!r}, expected http(s)://host[/path]")
        if parsed.query or parsed.fragment:
            raise ConfigError(f"Base URL must not carry a query or fragment: {self.base_url!r}")
        if not self.base_url.endswith("/"):
            self.base_url += "/"

        self.ignore_status_codes = parse_status_codes(self.ignore_status_codes)
        self.headers = {str(k).strip().lower(): str(v) for k, v in (self.headers or {}).items()}

        if isinstance(self.sampler, dict):
            try:
                self.sampler = SamplerConfig(**self.sampler)
            except TypeError as e:
                raise ConfigError(f"Invalid sampler settings: {e}")

        try:
            self.max_test_case_count = int(self.max_test_case_count)
            self.timeout = float(self.timeout)
            if self.seed is not None:
                self.seed = int(self.seed)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric option: {e}")
        if self.max_test_case_count < 1:
            raise ConfigError("max_test_case_count must be at least 1")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")
        if self.sampler.max_depth < 1:
            raise ConfigError("sampler.max_depth must be at least 1")

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @staticmethod
    def env_values() -> Dict[str, Any]:
        """Collect the FUZZER_* variables that are set."""
        values: Dict[str, Any] = {}
        simple = {
            "FUZZER_URL": "base_url",
            "FUZZER_RESULTS_DIR": "results_dir",
            "FUZZER_STATS_DIR": "stats_dir",
            "FUZZER_MAX_TEST_CASE_COUNT": "max_test_case_count",
            "FUZZER_TIMEOUT": "timeout",
            "FUZZER_SEED": "seed",
        }
        for env_name, key in simple.items():
            if os.getenv(env_name):
                values[key] = os.getenv(env_name)

        if os.getenv("FUZZER_IGNORE_STATUS"):
            values["ignore_status_codes"] = [c for c in os.getenv("FUZZER_IGNORE_STATUS").split(",") if c.strip()]

        flags = {
            "FUZZER_VERIFY_TLS": "verify_tls",
            "FUZZER_ACCEPT_DECLARED_STATUS": "accept_declared_status_codes",
            "FUZZER_TRANSPORT_ERRORS_AS_FINDINGS": "transport_errors_as_findings",
        }
        for env_name, key in flags.items():
            flag = _env_bool(env_name)
            if flag is not None:
                values[key] = flag

        # FUZZER_HEADER_X_API_KEY=abc -> x-api-key: abc
        headers = {
            name[len(ENV_HEADER_PREFIX):].lower().replace("_", "-"): value
            for name, value in os.environ.items()
            if name.startswith(ENV_HEADER_PREFIX) and len(name) > len(ENV_HEADER_PREFIX)
        }
        if headers:
            values["headers"] = headers
        return values

    @staticmethod
    def file_values(path: str) -> Dict[str, Any]:
        """Load configuration values from a JSON or YAML file."""
        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.endswith(('.yaml', '.yml')):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        known = {f.name for f in fields(FuzzerConfig)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")
        return data

    @classmethod
    def from_env(cls) -> "FuzzerConfig":
        """Load configuration from environment variables."""
        return cls(**cls.env_values())

    @classmethod
    def from_file(cls, path: str) -> "FuzzerConfig":
        """Load configuration from JSON or YAML file."""
        return cls(**cls.file_values(path))

    @classmethod
    def load(cls, path: Optional[str] = None, **overrides: Any) -> "FuzzerConfig":
        """Environment, then file, then non-None overrides."""
        values = cls.env_values()
        if path:
            file_data = cls.file_values(path)
            if "headers" in file_data and "headers" in values:
                file_data["headers"] = {**values["headers"], **file_data["headers"]}
            values.update(file_data)
        for key, value in overrides.items():
            if value is None:
                continue
            if key == "headers" and values.get("headers"):
                value = {**values["headers"], **value}
            values[key] = value
        logger.debug(f"Configuration keys: {sorted(values)}")
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "base_url": self.base_url,
            "ignore_status_codes": sorted(self.ignore_status_codes),
            "headers": dict(self.headers),
            "max_test_case_count": self.max_test_case_count,
            "results_dir": self.results_dir,
            "stats_dir": self.stats_dir,
            "timeout": self.timeout,
            "verify_tls": self.verify_tls,
            "accept_declared_status_codes": self.accept_declared_status_codes,
            "transport_errors_as_findings": self.transport_errors_as_findings,
            "seed": self.seed,
            "sampler": self.sampler.to_dict(),
        }
