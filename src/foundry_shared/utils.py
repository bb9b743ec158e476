"""Shared utility functions: JSON persistence and text normalisation."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any

from src.foundry_shared.constants import (
    TARGET_NAME_MAX_LENGTH,
    TARGET_NAME_MIN_LENGTH,
    TARGET_NAME_PATTERN,
)

# Words that carry no subject matter for overlap and key comparisons.
STOPWORDS = frozenset(
    {
        "a", "an", "and", "agent", "are", "as", "at", "be", "build",
        "by", "create", "for", "from", "in", "into", "is", "it", "make",
        "new", "of", "on", "or", "please", "that", "the", "this", "to",
        "using", "with",
    }
)

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_NAME_RE = re.compile(TARGET_NAME_PATTERN)

_SPECIFIC_PATTERNS = [
    re.compile(r"`[^`]+`"),  # inline code / identifiers
    re.compile(r"(?<![\w.])v?\d+(?:\.\d+)+\b"),  # versions
    re.compile(r"(?<![\w.])\d+(?:%|ms|s|m|h|gb|mb|kb)?\b", re.IGNORECASE),  # numbers, units
    re.compile(r"(?<!\w)--?[a-z][\w-]*", re.IGNORECASE),  # CLI flags
    re.compile(r"\b[A-Z]{2,}[A-Z0-9]*\b"),  # acronyms
    re.compile(r"https?://\S+"),
]


# ---------------------------------------------------------------------------
# JSON persistence
# ---------------------------------------------------------------------------


def atomic_write_json(path: Path | str, data: Any) -> None:
    """Write JSON data atomically by writing to a temp file then renaming.

    Args:
        path: Target file path.
        data: JSON-serialisable data to write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
    except BaseException:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def load_json(path: Path | str) -> Any:
    """Load JSON data from *path*, or ``None`` if missing or invalid."""
    try:
        with open(Path(path), "r", encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return None


def ensure_dir(path: Path | str) -> Path:
    """Create *path* (and parents) if needed and return it."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


# ---------------------------------------------------------------------------
# Text normalisation
# ---------------------------------------------------------------------------


def tokenize(text: str, drop_stopwords: bool = True) -> set[str]:
    """Return the lowercase alphanumeric token set of *text*."""
    tokens = set(_TOKEN_RE.findall(text.lower()))
    if drop_stopwords:
        tokens -= STOPWORDS
    return tokens


def slugify(text: str, max_length: int = TARGET_NAME_MAX_LENGTH) -> str:
    """Lowercase, hyphen-separated slug of *text*, truncated on a word boundary."""
    slug = "-".join(_TOKEN_RE.findall(text.lower()))
    if len(slug) <= max_length:
        return slug
    cut = slug[:max_length]
    if "-" in cut and slug[max_length] != "-":
        cut = cut.rsplit("-", 1)[0]
    return cut.strip("-")


def is_valid_target_name(name: str) -> bool:
    """True when *name* is lowercase, hyphenated and 3-50 characters."""
    return (
        TARGET_NAME_MIN_LENGTH <= len(name) <= TARGET_NAME_MAX_LENGTH
        and _NAME_RE.match(name) is not None
    )


def normalize_key(text: str) -> str:
    """Canonical comparison key: sorted content tokens joined by spaces."""
    return " ".join(sorted(tokenize(text)))


def count_specifics(text: str) -> int:
    """Count concrete specifics (identifiers, versions, numbers, flags, acronyms, URLs)."""
    seen: set[str] = set()
    for pattern in _SPECIFIC_PATTERNS:
        for match in pattern.finditer(text):
            seen.add(match.group(0).lower())
    return len(seen)
