from __future__ import annotations

import re


class CladeflowError(Exception):
    """Base class for every error raised by cladeflow."""


class ValidationError(CladeflowError):
    """Malformed arguments, missing output flags or malformed override content."""


class ConfigValidationError(ValidationError):
    def __init__(self, label: str, message: str) -> None:
        super().__init__(f"{label}: {message}")
        self.label = label


class CladeflowIOError(CladeflowError):
    """Unreadable input or unwritable destination."""


class InputReadError(CladeflowIOError):
    pass


class OutputPathError(CladeflowIOError):
    pass


class OutputWriteError(CladeflowIOError):
    def __init__(self, failures: dict[str, str]) -> None:
        details = "; ".join(f"{kind}: {msg}" for kind, msg in failures.items())
        super().__init__(f"failed to write {len(failures)} output(s): {details}")
        self.failures = failures


class ExecutionError(CladeflowError):
    """Failure inside the analysis collaborator."""


class TaskError(CladeflowError):
    """Failure inside a supervised task. Never fatal to the host."""

    def __init__(self, cause: BaseException, attempt: int) -> None:
        super().__init__(str(cause) or cause.__class__.__name__)
        self.cause = cause
        self.attempt = attempt


_TRACE_LINE = re.compile(r"^\s*(Traceback \(most recent call last\):|File \".*\", line \d+.*|at .+\(.+:\d+:\d+\))\s*$")


def sanitize_error(error: BaseException) -> str:
    """Reduce an exception to a single user-facing line without stack detail."""
    text = str(error).strip() or error.__class__.__name__
    lines = [line for line in text.splitlines() if line.strip() and not _TRACE_LINE.match(line)]
    message = lines[0].strip() if lines else error.__class__.__name__
    if not message.lower().startswith("error"):
        message = f"Error: {message}"
    return message
