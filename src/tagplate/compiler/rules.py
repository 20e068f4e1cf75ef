"""Tag rules - the ordered (pattern, rewrite) table driving the compiler.

Every rule is a global ``re.sub`` over the *whole* current template text, run
one after another. Order matters: dotted variable access has to be rewritten
before the bare ``{$var}`` rule gets a chance to swallow it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from tagplate.exceptions import CompileError
from tagplate.runtime.spec import CLOSE, OPEN

Rewrite = Callable[[re.Match], str]

INCLUDE_PATTERN = r"\{include\s*([\w\-.,@/]*?)\}"


@dataclass(frozen=True)
class TagRule:
    """A single rewrite rule."""

    pattern: str
    rewrite: Rewrite
    flags: int = re.IGNORECASE

    def apply(self, text: str) -> str:
        """Rewrite every match of this rule in text."""
        try:
            regex = re.compile(self.pattern, self.flags)
        except re.error as e:
            raise CompileError(f"invalid tag pattern {self.pattern!r}: {e}") from e
        return regex.sub(self.rewrite, text)


def _code(body: str) -> str:
    return f"{OPEN} {body} {CLOSE}"


def _open_block(m: re.Match) -> str:
    return _code(f"{m.group(1).lower()} ({m.group(2)}) {{")


def _open_function(m: re.Match) -> str:
    return _code(f"function {m.group(1)} {{")


def _statement(m: re.Match) -> str:
    return _code(f"{m.group(1)};")


def _dump(m: re.Match) -> str:
    return "<pre>" + _code(f"echo _escape(_dump({m.group(1)}));") + "</pre>"


def _print(m: re.Match) -> str:
    return "<pre>" + _code(f"echo _escape(_print({m.group(1)}));") + "</pre>"


def _echo(m: re.Match) -> str:
    return _code(f"echo {m.group(1)};")


def _case(m: re.Match) -> str:
    return _code(f"case {m.group(1)}:")


def _default(m: re.Match) -> str:
    return _code("default:")


def _raw_open(m: re.Match) -> str:
    return OPEN + " "


def _raw_close(m: re.Match) -> str:
    return " " + CLOSE


def _close_block(m: re.Match) -> str:
    return _code("}")


def _break(m: re.Match) -> str:
    return _code("break;")


def _elseif(m: re.Match) -> str:
    return _code(f"}} elseif ({m.group(1)}) {{")


def _else(m: re.Match) -> str:
    return _code("} else {")


def _dotted_variable(m: re.Match) -> str:
    keys = ", ".join(repr(key) for key in m.group(2)[1:].split("."))
    return _code(f"echo _escape(_lookup({m.group(1)}, {keys}));")


def _escaped_echo(m: re.Match) -> str:
    return _code(f"echo _escape({m.group(1)});")


def _collapse(m: re.Match) -> str:
    return ""


def builtin_rules(include: Rewrite) -> List[TagRule]:
    """Build the built-in rule table in its required order.

    Args:
        include: Rewrite used for ``{include ...}``; it needs the compiler
            and the current literal vault, so the caller supplies it.

    Returns:
        The ordered list of built-in rules.
    """
    return [
        TagRule(r"\{(foreach|if|for|switch|while)\s+(.*?)\}", _open_block),
        TagRule(r"\{function\s+(.*?)\}", _open_function),
        TagRule(r"\{php\s+(.*?)\s*;?\s*\}", _statement),
        TagRule(r"\{dump\s+(.*?)\s*;?\s*\}", _dump),
        TagRule(r"\{print\s+(.*?)\s*;?\s*\}", _print),
        TagRule(r"\{echo\s+(.*?)\s*;?\s*\}", _echo),
        TagRule(r"\{case\s+(.*?)\}", _case),
        TagRule(r"\{default\s*\}", _default),
        TagRule(r"\{php\}", _raw_open),
        TagRule(r"\{/php\}", _raw_close),
        TagRule(r"\{/(foreach|if|for|function|switch|while)\}", _close_block),
        TagRule(r"\{/(case|default)\}", _break),
        TagRule(r"\{elseif\s+(.*?)\}", _elseif),
        TagRule(r"\{else/?\}", _else),
        TagRule(INCLUDE_PATTERN, include),
        TagRule(r"\{(\$[^{}'\"]*?)((?:\.[^{}'\"]+?)+)\}", _dotted_variable),
        TagRule(r"\{(\$[^{}]*?)\}", _escaped_echo),
        TagRule(r"\{:([^{}]*?)\s*;?\s*\}", _escaped_echo),
        TagRule(r"\?>\s*<\?py", _collapse, re.IGNORECASE | re.DOTALL),
    ]


class RuleTable:
    """Extension registry merged over the built-in rules.

    Extensions keep registration order. Registering a pattern string that is
    already known (built-in or extension) replaces that rule's rewrite in its
    existing position.
    """

    def __init__(self) -> None:
        self._extensions: Dict[str, tuple[Rewrite, Optional[int]]] = {}

    def __len__(self) -> int:
        return len(self._extensions)

    def extend(self, pattern: str, rewrite: Rewrite, flags: Optional[int] = None) -> None:
        """Register a custom tag rule.

        Args:
            pattern: Regular expression source. Not validated here.
            rewrite: Called with each match, returns the replacement text.
            flags: ``re`` flags. When None an overridden rule's flags are
                kept, and new rules get no flags.
        """
        self._extensions[pattern] = (rewrite, flags)

    def merged(self, builtins: List[TagRule]) -> List[TagRule]:
        """Return built-ins followed by extensions, with overrides applied."""
        table: Dict[str, TagRule] = {rule.pattern: rule for rule in builtins}
        for pattern, (rewrite, flags) in self._extensions.items():
            existing = table.get(pattern)
            if flags is None:
                flags = existing.flags if existing is not None else 0
            table[pattern] = TagRule(pattern, rewrite, flags)
        return list(table.values())
