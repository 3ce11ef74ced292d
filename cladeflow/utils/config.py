import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_VIRUS = os.getenv("CLADEFLOW_VIRUS", "demo")


def _float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _data_dir() -> Path:
    raw = (os.getenv("CLADEFLOW_DATA_DIR") or "").strip()
    if raw:
        return Path(raw)
    return Path(__file__).resolve().parent.parent / "defaults" / "data"


@dataclass(frozen=True)
class Settings:
    virus: str = DEFAULT_VIRUS
    data_dir: Path = _data_dir()
    poll_seconds: float = _float("CLADEFLOW_POLL_SECONDS", 2.0)


PROJECT_NAME = "cladeflow"
PROJECT_DESCRIPTION = "Clade assignment, mutation calling and sequence quality control"
VERSION = "0.1.0"


def load_settings() -> Settings:
    """Re-read the environment. Module-level defaults are bound at import time."""
    return Settings(
        virus=os.getenv("CLADEFLOW_VIRUS", "demo"),
        data_dir=_data_dir(),
        poll_seconds=_float("CLADEFLOW_POLL_SECONDS", 2.0),
    )

