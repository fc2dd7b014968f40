"""File-based fallbacks for harness settings.

Two layers are read, later ones winning:

- ``.env.defaults``: catalog of every setting with its default (versioned)
- ``.env``: local overrides, usually a handful of keys (not versioned)

Each layer is looked up in the repository root, then in the working
directory, then in ``HARNESS_ENV_DIR`` when set. Real environment variables
always beat both layers; see ``config.HarnessConfig.from_env``.
"""
from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, List

LAYERS = (".env.defaults", ".env")

_ASSIGNMENT = re.compile(r"^(?:export\s+)?(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?P<value>.*)$")


def search_dirs() -> List[Path]:
    """Directories holding env layers, in increasing priority."""
    repo_root = Path(__file__).resolve().parents[2]
    candidates = [repo_root]

    try:
        candidates.append(Path.cwd())
    except OSError:
        pass  # working directory removed under a running test session

    extra = os.getenv("HARNESS_ENV_DIR")
    if extra:
        candidates.append(Path(extra))

    unique: List[Path] = []
    for directory in candidates:
        resolved = directory.resolve()
        if resolved not in unique:
            unique.append(resolved)
    return unique


@lru_cache(maxsize=1)
def load_defaults() -> Dict[str, str]:
    """Merge every env layer found; empty when no file exists (typical in CI)."""
    merged: Dict[str, str] = {}
    directories = search_dirs()
    for layer in LAYERS:
        for directory in directories:
            path = directory / layer
            if path.is_file():
                merged.update(parse_env_file(path))
    return merged


def get_default(key: str, fallback: str | None = None) -> str | None:
    return load_defaults().get(key, fallback)


def _unquote(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    # Unquoted values may carry a trailing comment.
    return value.split(" #", 1)[0].rstrip()


def parse_env_file(env_path: Path) -> Dict[str, str]:
    """Parse ``KEY=value`` lines; comments, blanks and malformed lines are skipped."""
    values: Dict[str, str] = {}
    for line in env_path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _ASSIGNMENT.match(stripped)
        if match is None:
            continue
        values[match.group("key")] = _unquote(match.group("value"))
    return values
