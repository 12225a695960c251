#!/usr/bin/env python3
"""
Result Store
============
Durable FuzzResult records, one JSON file per finding:

    <results_dir>/<path-slug>-<hash8>/<method>-<trial>.json

The directory name combines a readable slug of the path template with a
short sha256 prefix of the operation identity, so two operations never share
a directory even when their slugs coincide. Re-running the same trial slot
overwrites its file.
"""

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Iterator, List, Union

from fuzzing.models import FuzzResult

from .atomic import atomic_write

logger = logging.getLogger("openapi_fuzzer.storage.results")

SLUG_MAX_LENGTH = 60


def operation_slug(path: str, method: str) -> str:
    """Directory name for an operation."""
    slug = re.sub(r"[^A-Za-z0-9]+", "-", path).strip("-").lower()[:SLUG_MAX_LENGTH] or "root"
    digest = hashlib.sha256(f"{method.upper()} {path}".encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}"


class ResultStore:
    """
    Saves and loads FuzzResult files.

    Usage:
        store = ResultStore("results")
        location = store.save(result)
        same = store.load(location)
    """

    def __init__(self, root: Union[str, Path] = "results"):
        self.root = Path(root)

    def location_for(self, path: str, method: str, trial: int) -> Path:
        return self.root / operation_slug(path, method) / f"{method.lower()}-{trial}.json"

    def save(self, result: FuzzResult) -> Path:
        """Persist `result` atomically. Raises OSError on write failure."""
        location = self.location_for(result.path, result.method, result.trial)
        data = json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
        atomic_write(location, data.encode("utf-8"))
        logger.debug(f"Saved {result.identity} trial {result.trial} to {location}")
        return location

    def load(self, location: Union[str, Path]) -> FuzzResult:
        """
        Read a saved result.

        Raises:
            OSError: file cannot be read
            ValueError: content is not a FuzzResult document
        """
        text = Path(location).read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"{location} is not valid JSON: {e}")
        return FuzzResult.from_dict(data)

    def iter_locations(self) -> Iterator[Path]:
        if not self.root.is_dir():
            return iter(())
        return iter(sorted(self.root.glob("*/*.json")))

    def load_all(self) -> List[FuzzResult]:
        results = []
        for location in self.iter_locations():
            try:
                results.append(self.load(location))
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable result {location}: {e}")
        return results
