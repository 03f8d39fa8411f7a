from __future__ import annotations
from pathlib import PurePath
from typing import Iterable, List


def make_unique(names: Iterable[str], sep: str = ".") -> List[str]:
    """
    Make a sequence of names unique.

    The first occurrence of a name is kept as is; later duplicates receive
    ``<name>.1``, ``<name>.2``, ... skipping any suffixed name that is already
    taken. Applying it to an already unique sequence returns it unchanged.
    """
    names = [str(n) for n in names]
    used = set(names)
    seen = set()
    counters = {}
    result = []
    for name in names:
        if name not in seen:
            seen.add(name)
            result.append(name)
            continue
        k = counters.get(name, 0) + 1
        while f"{name}{sep}{k}" in used:
            k += 1
        counters[name] = k
        new = f"{name}{sep}{k}"
        used.add(new)
        result.append(new)
    return result


def file_key(relative_path: str) -> str:
    """Artifact key for an input file: relative path without extension, '/' -> '__'."""
    rel = PurePath(relative_path)
    parts = list(rel.parent.parts) + [rel.stem]
    return "__".join(p for p in parts if p not in ("", "."))


def safe_name(name: str) -> str:
    """Filesystem-safe rendition of an algorithm or marker name."""
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in str(name))


def unique_safe_names(names: Iterable[str]) -> List[str]:
    """
    Filesystem-safe names that stay pairwise distinct, ignoring case.

    Names that collide once sanitized (``LM/1`` and ``LM_1``) or differ only
    in case receive ``_1``, ``_2``, ... suffixes in order of appearance.
    """
    result = []
    taken = set()
    for name in names:
        base = candidate = safe_name(name)
        k = 0
        while candidate.lower() in taken:
            k += 1
            candidate = f"{base}_{k}"
        taken.add(candidate.lower())
        result.append(candidate)
    return result
