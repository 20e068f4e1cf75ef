"""Loader - turns compiled code text into an executable instruction tree.

Compiled code is plain text with code regions between ``<?py`` and ``?>``.
Inside a region, statements end with ``;`` and blocks are braced::

    <?py foreach ($items as $i) { ?><li><?py echo _escape($i); } ?>
"""

from __future__ import annotations

import functools
import re
from typing import Iterator, List, Optional, Tuple

from tagplate.exceptions import CompileError
from tagplate.runtime import spec
from tagplate.runtime.expressions import (
    compile_binder,
    compile_expression,
    compile_statement,
    variable_name,
)
from tagplate.runtime.spec import CLOSE, OPEN

STMT = "stmt"
OPEN_BLOCK = "open"
CLOSE_BLOCK = "close"
LABEL = "label"

_HEADER = re.compile(
    r"^(?:(?P<keyword>if|elseif|foreach|for|switch|while)\s*\((?P<args>.*)\)"
    r"|(?P<else>else)"
    r"|function\s+(?P<function>\w+)\s*\((?P<params>.*)\))$",
    re.DOTALL | re.IGNORECASE,
)
_LABEL = re.compile(r"^(?:case\s+(?P<expr>.+)|(?P<default>default))$", re.DOTALL | re.IGNORECASE)
_FOREACH = re.compile(
    r"^(?P<iterable>.+)\s+as\s+\$?(?P<first>\w+)(?:\s*=>\s*\$?(?P<second>\w+))?$",
    re.DOTALL | re.IGNORECASE,
)
_ECHO = re.compile(r"^echo\b\s*(?P<expr>.*)$", re.DOTALL | re.IGNORECASE)
_RETURN = re.compile(r"^return\b\s*(?P<expr>.*)$", re.DOTALL | re.IGNORECASE)
_BREAK = re.compile(r"^break\b\s*\d*$", re.IGNORECASE)
_CONTINUE = re.compile(r"^continue\b\s*\d*$", re.IGNORECASE)


def split_regions(code: str) -> Iterator[Tuple[bool, str]]:
    """Yield ``(is_code, chunk)`` pairs.

    A region left open runs to the end. One newline right after ``?>`` is
    swallowed.
    """
    pos = 0
    while True:
        start = code.find(OPEN, pos)
        if start == -1:
            if pos < len(code):
                yield False, code[pos:]
            return
        if start > pos:
            yield False, code[pos:start]

        end = code.find(CLOSE, start + len(OPEN))
        if end == -1:
            yield True, code[start + len(OPEN):]
            return
        yield True, code[start + len(OPEN):end]

        pos = end + len(CLOSE)
        if code.startswith("\r\n", pos):
            pos += 2
        elif code.startswith("\n", pos):
            pos += 1


def _string_end(source: str, start: int) -> int:
    quote = source[start]
    i = start + 1
    while i < len(source):
        if source[i] == "\\":
            i += 2
            continue
        if source[i] == quote:
            return i + 1
        i += 1
    return len(source)


def split_top_level(source: str, separator: str) -> List[str]:
    """Split on separator outside strings and brackets."""
    parts: List[str] = []
    depth = 0
    current = 0
    i = 0
    while i < len(source):
        ch = source[i]
        if ch in "'\"":
            i = _string_end(source, i)
            continue
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == separator and depth == 0:
            parts.append(source[current:i])
            current = i + 1
        i += 1
    parts.append(source[current:])
    return parts


def scan(source: str) -> List[Tuple[str, Optional[str]]]:
    """Tokenize one code region into statements, block edges and labels."""
    tokens: List[Tuple[str, Optional[str]]] = []
    buf: List[str] = []
    depth = 0
    braces = 0

    def flush() -> None:
        statement = "".join(buf).strip()
        buf.clear()
        if statement:
            tokens.append((STMT, statement))

    i = 0
    while i < len(source):
        ch = source[i]
        if ch in "'\"":
            end = _string_end(source, i)
            buf.append(source[i:end])
            i = end
            continue

        if ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif depth == 0:
            if ch == "{":
                head = "".join(buf).strip()
                if braces == 0 and _HEADER.match(head):
                    buf.clear()
                    tokens.append((OPEN_BLOCK, head))
                    i += 1
                    continue
                braces += 1
            elif ch == "}":
                if braces:
                    braces -= 1
                else:
                    flush()
                    tokens.append((CLOSE_BLOCK, None))
                    i += 1
                    continue
            elif braces == 0 and ch == ";":
                flush()
                i += 1
                continue
            elif braces == 0 and ch == ":" and _LABEL.match("".join(buf).strip()):
                tokens.append((LABEL, "".join(buf).strip()))
                buf.clear()
                i += 1
                continue

        buf.append(ch)
        i += 1

    flush()
    return tokens


class _Builder:
    """Assembles scanned tokens into nested nodes."""

    def __init__(self, name: Optional[str]):
        self.name = name
        self.root: List[spec.Node] = []
        # (node, body) frames; body is None inside a switch before its first case
        self.frames: List[Tuple[object, Optional[List[spec.Node]]]] = [(None, self.root)]

    def error(self, message: str) -> CompileError:
        return CompileError(message, name=self.name)

    @property
    def body(self) -> Optional[List[spec.Node]]:
        return self.frames[-1][1]

    def text(self, value: str) -> None:
        if self.body is None:
            if value.strip():
                raise self.error(f"output before first case in switch: {value.strip()!r}")
            return
        self.body.append(spec.Text(value))

    def statement(self, source: str) -> None:
        if self.body is None:
            raise self.error(f"statement before first case in switch: {source!r}")

        returns = _RETURN.match(source)
        echoes = _ECHO.match(source)
        if _BREAK.match(source):
            node: spec.Node = spec.Break()
        elif _CONTINUE.match(source):
            node = spec.Continue()
        elif returns:
            expr = returns.group("expr").strip()
            node = spec.Return(compile_expression(expr, self.name) if expr else None)
        elif echoes:
            node = spec.Echo(compile_expression(echoes.group("expr"), self.name))
        else:
            node = spec.Exec(compile_statement(source, self.name))
        self.body.append(node)

    def open(self, header: str) -> None:
        m = _HEADER.match(header)
        if m is None:
            raise self.error(f"invalid block header {header!r}")
        keyword = (m.group("keyword") or "").lower()

        if m.group("else") or keyword == "elseif":
            self._continue_if(header, m.group("args") if keyword else None)
            return

        if self.body is None:
            raise self.error(f"block before first case in switch: {header!r}")

        if m.group("function"):
            node: object = spec.Function(
                m.group("function"), compile_binder(m.group("params"), self.name)
            )
            self._push(node, node.body)
            return

        args = m.group("args")
        if keyword == "if":
            branch = spec.Branch(compile_expression(args, self.name))
            self._push(spec.If([branch]), branch.body)
        elif keyword == "foreach":
            node = self._foreach(args)
            self._push(node, node.body)
        elif keyword == "for":
            node = self._for(args)
            self._push(node, node.body)
        elif keyword == "while":
            node = spec.While(compile_expression(args, self.name))
            self._push(node, node.body)
        else:
            node = spec.Switch(compile_expression(args, self.name))
            self._push(node, None)

    def close(self) -> None:
        if len(self.frames) == 1:
            raise self.error("unexpected '}' without open block")
        self.frames.pop()

    def label(self, source: str) -> None:
        node = self.frames[-1][0]
        if not isinstance(node, spec.Switch):
            raise self.error(f"{source!r} outside switch")
        m = _LABEL.match(source)
        if m is None:
            raise self.error(f"invalid label {source!r}")
        expr = m.group("expr")
        case = spec.Case(compile_expression(expr, self.name) if expr else None)
        node.cases.append(case)
        self.frames[-1] = (node, case.body)

    def finish(self) -> spec.Program:
        if len(self.frames) > 1:
            kind = type(self.frames[-1][0]).__name__.lower()
            raise self.error(f"unclosed '{kind}' block")
        return spec.Program(self.root)

    def _push(self, node: object, body: Optional[List[spec.Node]]) -> None:
        self.body.append(node)  # type: ignore[arg-type,union-attr]
        self.frames.append((node, body))

    def _continue_if(self, header: str, condition: Optional[str]) -> None:
        body = self.body
        last = body[-1] if body else None
        if not isinstance(last, spec.If) or last.branches[-1].condition is None:
            raise self.error(f"'{header}' without matching if")
        branch = spec.Branch(
            compile_expression(condition, self.name) if condition is not None else None
        )
        last.branches.append(branch)
        self.frames.append((last, branch.body))

    def _foreach(self, args: str) -> spec.Foreach:
        m = _FOREACH.match(args.strip())
        if m is None:
            raise self.error(f"invalid foreach {args!r}, expected 'ITERABLE as $value'")
        iterable = compile_expression(m.group("iterable"), self.name)
        if m.group("second"):
            return spec.Foreach(
                iterable,
                value=variable_name(m.group("second")),
                key=variable_name(m.group("first")),
            )
        return spec.Foreach(iterable, value=variable_name(m.group("first")))

    def _for(self, args: str) -> spec.For:
        parts = split_top_level(args, ";")
        if len(parts) != 3:
            raise self.error(f"invalid for {args!r}, expected 'INIT; COND; STEP'")
        init, condition, step = parts

        def statements(source: str) -> list:
            return [
                compile_statement(s, self.name)
                for s in split_top_level(source, ",")
                if s.strip()
            ]

        conditions = [c for c in split_top_level(condition, ",") if c.strip()]
        return spec.For(
            init=statements(init),
            condition=compile_expression(conditions[-1], self.name) if conditions else None,
            step=statements(step),
        )


@functools.lru_cache(maxsize=256)
def load_program(code: str, name: Optional[str] = None) -> spec.Program:
    """Load compiled code into a Program.

    Args:
        code: Compiled code produced by the compiler.
        name: Template name for error messages.

    Returns:
        The instruction tree.

    Raises:
        CompileError: Unbalanced blocks, misplaced labels or invalid
            expressions.
    """
    builder = _Builder(name)
    for is_code, chunk in split_regions(code):
        if not is_code:
            builder.text(chunk)
            continue
        for kind, value in scan(chunk):
            if kind == STMT:
                builder.statement(value)
            elif kind == OPEN_BLOCK:
                builder.open(value)
            elif kind == CLOSE_BLOCK:
                builder.close()
            else:
                builder.label(value)
    return builder.finish()
