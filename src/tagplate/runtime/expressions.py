"""Expression translation - template expressions to Python code objects.

Template expressions keep the familiar ``$var`` / ``&&`` / ``->`` spelling but
are evaluated as Python. Translation is purely lexical and never touches
string literals.
"""

from __future__ import annotations

import keyword
import re
from dataclasses import dataclass
from types import CodeType
from typing import Any, Dict, Optional

from tagplate.exceptions import CompileError

_TOKEN = re.compile(
    r"""
    (?P<string>'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")
  | (?P<variable>\$(?P<name>[A-Za-z_]\w*))
  | (?P<operator>===|!==|&&|\|\||->|\.=|!(?!=))
  | (?P<constant>\b(?:true|false|null)\b)
    """,
    re.VERBOSE | re.IGNORECASE,
)

_OPERATORS = {
    "===": "==",
    "!==": "!=",
    "&&": " and ",
    "||": " or ",
    "->": ".",
    ".=": "+=",
    "!": " not ",
}

_CONSTANTS = {"true": "True", "false": "False", "null": "None"}


def variable_name(name: str) -> str:
    """Python name for a template variable. Keywords get a trailing underscore.

    >>> variable_name("class")
    'class_'
    """
    return name + "_" if keyword.iskeyword(name) else name


_STEP = re.compile(
    r"^(?:(?P<pre>\+\+|--)\s*(?P<a>[A-Za-z_][\w.]*(?:\[.*\])?)"
    r"|(?P<b>[A-Za-z_][\w.]*(?:\[.*\])?)\s*(?P<post>\+\+|--))$",
    re.DOTALL,
)


def translate(source: str) -> str:
    """Rewrite a template expression into Python source.

    >>> translate("$user->name === null")
    'user.name == None'
    """

    def replace(match: re.Match[str]) -> str:
        if match.group("string"):
            return match.group("string")
        if match.group("variable"):
            return variable_name(match.group("name"))
        if match.group("operator"):
            return _OPERATORS[match.group("operator")]
        return _CONSTANTS[match.group("constant").lower()]

    return _TOKEN.sub(replace, source).strip()


def _compile(source: str, mode: str, name: Optional[str]) -> CodeType:
    try:
        return compile(source, name or "<template>", mode)
    except SyntaxError as e:
        raise CompileError(f"invalid expression {source!r}: {e.msg}", name=name) from e


@dataclass(frozen=True)
class Expr:
    """A compiled template expression."""

    source: str
    code: CodeType

    def evaluate(self, scope: Dict[str, Any]) -> Any:
        return eval(self.code, scope)


@dataclass(frozen=True)
class Statement:
    """A compiled template statement (assignment, call, increment...)."""

    source: str
    code: CodeType

    def execute(self, scope: Dict[str, Any]) -> None:
        exec(self.code, scope)


def compile_expression(source: str, name: Optional[str] = None) -> Expr:
    """Translate and byte-compile an expression.

    Raises:
        CompileError: The translated expression is not valid Python.
    """
    python = translate(source)
    if not python:
        raise CompileError("empty expression", name=name)
    return Expr(source, _compile(python, "eval", name))


def compile_statement(source: str, name: Optional[str] = None) -> Statement:
    """Translate and byte-compile a statement.

    ``$i++`` and friends become augmented assignments.

    Raises:
        CompileError: The translated statement is not valid Python.
    """
    python = translate(source)
    step = _STEP.match(python)
    if step:
        target = step.group("a") or step.group("b")
        op = step.group("pre") or step.group("post")
        python = f"{target} {op[0]}= 1"
    return Statement(source, _compile(python, "exec", name))


def compile_binder(params: str, name: Optional[str] = None) -> CodeType:
    """Compile a function parameter list into a binding lambda.

    Evaluating the result in a scope yields a callable that maps call
    arguments to a ``{param: value}`` dict, with defaults evaluated in that
    scope.
    """
    return _compile(f"lambda {translate(params)}: locals()", "eval", name)
