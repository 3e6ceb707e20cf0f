"""JSONPath selection shared by the call and extract executors."""

from functools import lru_cache
from typing import Any

from jsonpath_ng.ext import parse as jsonpath_parse

_MULTI_MARKERS = ("*", "..", "[?", ":", ",")


class SelectorError(ValueError):
    """A JSONPath expression could not be parsed."""


@lru_cache(maxsize=256)
def compile_path(path: str):
    try:
        return jsonpath_parse(path)
    except Exception as e:  # jsonpath_ng raises bare Exception subclasses from its lexer/parser
        raise SelectorError(f"Invalid JSONPath '{path}': {e}") from e


def is_root(path: str | None) -> bool:
    return not path or path.strip() == "$"


def is_multi_path(path: str) -> bool:
    """Whether the path can select several values (wildcards, filters, slices)."""
    return any(marker in path for marker in _MULTI_MARKERS)


def find_values(data: Any, path: str | None) -> list[Any]:
    """Return every value matched by `path` (the whole document for `$`)."""
    if is_root(path):
        return [data]
    return [match.value for match in compile_path(path.strip()).find(data)]


def select(data: Any, path: str | None) -> tuple[bool, Any]:
    """Apply `path` to `data`.

    Returns `(found, value)`. Multi-value paths yield a list; single-value paths
    yield the matched value itself.
    """
    matches = find_values(data, path)
    if not matches:
        return False, None
    if not is_root(path) and is_multi_path(path):
        return True, matches
    return True, matches[0]
