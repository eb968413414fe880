"""
Environment + project-root helpers.

The API (uvicorn), the CLI and pytest may all start from different working
directories. Relative settings such as `data/motofinder.db` or `.cache/motofinder`
must still land in the repository, and a repo-local `.env` must still be found.

- `get_project_root()`: `MOTOFINDER_PROJECT_ROOT`, else the parent of
  `MOTOFINDER_ENV_FILE`, else the nearest directory that looks like this repo.
- `load_dotenv_if_present()`: load that `.env` once, never overriding variables
  already set in the process.
- `resolve_project_path()`: anchor relative paths at the project root.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Iterator

from dotenv import load_dotenv


def _explicit_env_file() -> Path | None:
    value = os.getenv("MOTOFINDER_ENV_FILE")
    return Path(value).expanduser().resolve() if value else None


def _is_repo_root(path: Path) -> bool:
    if (path / ".env").is_file() or (path / ".git").exists():
        return True
    return (path / "pyproject.toml").is_file() and (path / "src" / "motofinder").is_dir()


def _candidate_roots() -> Iterator[Path]:
    cwd = Path.cwd().resolve()
    yield from (cwd, *cwd.parents)
    # Imported from outside the checkout (e.g. a notebook elsewhere): walk up from the package.
    here = Path(__file__).resolve().parent
    yield from (here, *here.parents)


@lru_cache
def get_project_root() -> Path:
    """Return the project root directory (cached for the process)."""
    override = os.getenv("MOTOFINDER_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()
    env_file = _explicit_env_file()
    if env_file is not None:
        return env_file.parent
    return next((p for p in _candidate_roots() if _is_repo_root(p)), Path.cwd().resolve())


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load `.env` once if it exists; returns the path that was loaded."""
    env_path = _explicit_env_file() or get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    """Resolve a possibly-relative path against the project root."""
    p = Path(path).expanduser()
    return p if p.is_absolute() else (get_project_root() / p).resolve()
