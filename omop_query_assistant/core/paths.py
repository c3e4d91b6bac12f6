from __future__ import annotations

from pathlib import Path
import os


def project_root() -> Path:
    override = os.getenv("PROJECT_ROOT", "").strip()
    if override:
        return Path(override).resolve()
    return Path.cwd().resolve()


def project_path(path: str | Path) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return project_root() / candidate
