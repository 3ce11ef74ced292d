from __future__ import annotations

from pathlib import Path

from cladeflow.errors import InputReadError


def read_text_file(path: str | Path) -> str:
    """Read a UTF-8 text file; unreadable or undecodable files raise InputReadError."""
    path = Path(path)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InputReadError(f"unable to read {path}: {exc.strerror or exc}") from exc
    except UnicodeDecodeError as exc:
        raise InputReadError(
            f"unable to read {path}: not valid UTF-8 text (byte {exc.start}: {exc.reason})"
        ) from exc
