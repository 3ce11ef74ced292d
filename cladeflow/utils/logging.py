from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Any

# Oldest events are dropped once the cap is reached; watch sessions never reset.
MAX_EVENTS = 5000
PIPELINE_EVENTS: deque[dict[str, Any]] = deque(maxlen=MAX_EVENTS)


def log_event(event_type: str, payload: dict[str, Any]) -> None:
    PIPELINE_EVENTS.append(
        {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "payload": payload,
        }
    )


def reset_events() -> None:
    PIPELINE_EVENTS.clear()


def events_of(event_type: str) -> list[dict[str, Any]]:
    return [e for e in PIPELINE_EVENTS if e["event_type"] == event_type]


def print_step_timing(step: str, seconds: float) -> None:
    print(f"[pipeline] step={step} duration_seconds={seconds:.2f}", flush=True)


def events_as_markdown() -> str:
    lines = ["# Pipeline Log", ""]
    for event in PIPELINE_EVENTS:
        lines.append(
            f"- [{event['timestamp']}] **{event['event_type']}**: {event['payload']}"
        )
    if len(lines) == 2:
        lines.append("- No pipeline events captured.")
    return "\n".join(lines)
