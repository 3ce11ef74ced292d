from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv


def load_env_file(path: str | Path | None = None) -> bool:
    """Load CLADEFLOW_* variables from a .env file without overriding the shell."""
    if path is None:
        path = Path.cwd() / ".env"
    return load_dotenv(dotenv_path=path, override=False)
