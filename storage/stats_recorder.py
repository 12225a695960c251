"""
Per-trial timing statistics.

Durations are appended in trial order under the operation identity and
written once, as `stats.json`, when the run ends.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .atomic import atomic_write

logger = logging.getLogger("openapi_fuzzer.storage.stats")

STATS_FILENAME = "stats.json"


class StatsRecorder:
    """
    Collects elapsed seconds per operation.

    With no destination directory both `record` and `flush` do nothing.
    """

    def __init__(self, destination: Optional[Union[str, Path]] = None):
        self.destination = Path(destination) if destination else None
        self.durations: Dict[str, List[float]] = {}

    @property
    def enabled(self) -> bool:
        return self.destination is not None

    def record(self, operation: Any, duration: float) -> None:
        """Append one trial duration. `operation` is an Operation or its identity."""
        if not self.enabled:
            return
        key = getattr(operation, "identity", operation)
        self.durations.setdefault(str(key), []).append(duration)

    def flush(self, destination: Optional[Union[str, Path]] = None) -> Optional[Path]:
        """
        Write all durations to `<destination>/stats.json` atomically.

        Returns the file path, or None when no destination is configured.
        Raises OSError if the write fails.
        """
        target = Path(destination) if destination else self.destination
        if target is None:
            return None
        path = atomic_write(target / STATS_FILENAME, json.dumps(self.durations, indent=2).encode("utf-8"))
        logger.info(f"Wrote timings for {len(self.durations)} operations to {path}")
        return path
