"""Helpers available to every compiled template."""

from __future__ import annotations

import pprint
from collections.abc import Mapping, Sequence
from typing import Any

from markupsafe import escape as _markup_escape


def to_text(value: Any) -> str:
    """Stringify a value for output. None and False print as nothing."""
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    return str(value)


def escape(value: Any) -> str:
    """HTML-escape a value. Objects providing ``__html__`` pass through."""
    if value is None or isinstance(value, bool):
        return to_text(value)
    return str(_markup_escape(value))


def _is_index(key: str) -> bool:
    return key.lstrip("-").isdigit()


def lookup(value: Any, *keys: str) -> Any:
    """Follow a dot path: mapping keys, sequence indexes, then attributes.

    A numeric key missing from a mapping falls back to its int form, so
    ``{$m.0}`` reaches ``m[0]``.

    >>> lookup({"user": {"name": "Ana"}}, "user", "name")
    'Ana'
    """
    for key in keys:
        if isinstance(value, Mapping):
            if key not in value and _is_index(key):
                value = value[int(key)]
            else:
                value = value[key]
        elif (
            isinstance(value, Sequence)
            and not isinstance(value, str)
            and _is_index(key)
        ):
            value = value[int(key)]
        else:
            value = getattr(value, key)
    return value


def dump(value: Any, indent: int = 0) -> str:
    """Typed structural dump of a value."""
    pad = "  " * indent
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return f"bool({'true' if value else 'false'})"
    if isinstance(value, int):
        return f"int({value})"
    if isinstance(value, float):
        return f"float({value!r})"
    if isinstance(value, str):
        return f'string({len(value)}) "{value}"'

    if isinstance(value, Mapping):
        items = list(value.items())
        head = f"array({len(items)})"
    elif isinstance(value, (list, tuple)):
        items = list(enumerate(value))
        head = f"array({len(items)})"
    else:
        items = list(getattr(value, "__dict__", {}).items())
        head = f"object({type(value).__name__})"
        if not items:
            return f"{head} {value!r}"

    lines = [head + " {"]
    for key, item in items:
        lines.append(f"{pad}  [{key!r}]=>")
        lines.append(f"{pad}  {dump(item, indent + 1)}")
    lines.append(pad + "}")
    return "\n".join(lines)


def print_value(value: Any) -> str:
    """Human-readable representation; strings print as themselves."""
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, bool):
        return to_text(value)
    return pprint.pformat(value)


HELPERS = {
    "_escape": escape,
    "_lookup": lookup,
    "_dump": dump,
    "_print": print_value,
}
