from collections.abc import Iterable

from slugify import slugify as _library_slugify

FALLBACK_SLUG = "job"


def slugify(title: str) -> str:
    """Lowercase ASCII slug with hyphen separators, transliterating non-Latin scripts."""
    return _library_slugify(title) or FALLBACK_SLUG


def next_free_slug(base: str, taken: Iterable[str]) -> str:
    """Return `base` if free, else `base-N` for the smallest unused N >= 1."""
    taken_set = set(taken)
    if base not in taken_set:
        return base
    suffix = 1
    while f"{base}-{suffix}" in taken_set:
        suffix += 1
    return f"{base}-{suffix}"


def is_slug_variant(base: str, candidate: str) -> bool:
    if candidate == base:
        return True
    prefix = f"{base}-"
    return candidate.startswith(prefix) and candidate[len(prefix) :].isdigit()
