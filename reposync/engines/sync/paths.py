"""Path scoping helpers — map files between source and target subdirectories."""

from __future__ import annotations


def normalize_prefix(path: str) -> str:
    """Return *path* as a directory prefix with exactly one trailing slash.

    ``"models"`` and ``"models/"`` both become ``"models/"``.  An empty path,
    ``"/"`` or ``"."`` means the repository root and yields ``""``.
    """
    cleaned = path.strip().strip("/")
    if cleaned in ("", "."):
        return ""
    if cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned + "/"


def in_scope(filename: str, prefix: str) -> bool:
    """True if *filename* lives under the directory *prefix*.

    *prefix* must already be normalized, so ``models/`` never matches
    ``modelsx/file``.
    """
    return filename.startswith(prefix)


def map_path(filename: str, source_prefix: str, target_prefix: str) -> str:
    """Swap *source_prefix* for *target_prefix*, keeping the remainder intact."""
    if not in_scope(filename, source_prefix):
        raise ValueError(f"{filename!r} is not under {source_prefix!r}")
    return target_prefix + filename[len(source_prefix) :]
