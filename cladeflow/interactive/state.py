from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cladeflow.errors import TaskError
from cladeflow.schemas.models import VirusConfig
from cladeflow.utils.logging import log_event

MAX_REPORTED_ERRORS = 100


@dataclass(frozen=True)
class ReportedError:
    message: str
    attempt: int
    error_type: str
    timestamp: str


@dataclass
class SessionState:
    """State that outlives task-set restarts in interactive mode."""

    base: VirusConfig
    config: VirusConfig
    override_paths: dict[str, Path] = field(default_factory=dict)
    override_fingerprint: tuple[tuple[str, Optional[float]], ...] = ()
    processed: dict[Path, float] = field(default_factory=dict)
    errors: deque[ReportedError] = field(default_factory=lambda: deque(maxlen=MAX_REPORTED_ERRORS))
    config_generation: int = 0

    def error_add(self, error: TaskError) -> None:
        reported = ReportedError(
            message=str(error),
            attempt=error.attempt,
            error_type=error.cause.__class__.__name__,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self.errors.append(reported)
        log_event("session.error_added", {"message": reported.message, "attempt": reported.attempt})
        print(f"[watch] error attempt={reported.attempt} {reported.error_type}: {reported.message}", flush=True)

    def set_config(self, config: VirusConfig) -> None:
        self.config = config
        self.config_generation += 1
        log_event("session.config_updated", {"virus": config.name, "generation": self.config_generation})
