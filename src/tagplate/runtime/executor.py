"""Executor - runs loaded programs against a variable binding set."""

from __future__ import annotations

import builtins
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

from tagplate.exceptions import RenderFailure
from tagplate.runtime import spec
from tagplate.runtime.expressions import variable_name
from tagplate.runtime.helpers import HELPERS, to_text
from tagplate.runtime.loader import load_program

log = logging.getLogger(__name__)

Scope = Dict[str, Any]


class _Signal(Exception):
    """Control flow carried through nested bodies."""


class _Break(_Signal):
    pass


class _Continue(_Signal):
    pass


class _Return(_Signal):
    def __init__(self, value: Any = None):
        self.value = value
        super().__init__()


def new_scope(bindings: Optional[Mapping[str, Any]] = None) -> Scope:
    """Build an execution scope: builtins, helpers, then bindings.

    Binding names that are Python keywords are stored under
    ``variable_name``, the name template expressions refer to them by.
    """
    scope: Scope = {"__builtins__": builtins}
    scope.update(HELPERS)
    if bindings:
        for name, value in bindings.items():
            scope[variable_name(name)] = value
    return scope


class TemplateFunction:
    """Callable created by ``{function name(...)}``.

    Calling it renders the body into the output buffer of the render that
    defined it, with the parameters (and the other template functions) as
    scope.
    """

    def __init__(
        self,
        executor: "Executor",
        node: spec.Function,
        scope: Scope,
        out: List[str],
    ):
        self.executor = executor
        self.node = node
        self.binder = eval(node.binder, scope)
        self.scope = scope
        self.out = out

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        local = new_scope(self.binder(*args, **kwargs))
        for name, value in self.scope.items():
            if isinstance(value, TemplateFunction) and name not in local:
                local[name] = value
        try:
            self.executor.run(self.node.body, local, self.out)
        except _Return as r:
            return r.value
        except (_Break, _Continue) as e:
            raise RuntimeError(f"'{type(e).__name__[1:].lower()}' outside loop") from None
        return None

    def __repr__(self) -> str:
        return f"<template function {self.node.name}>"


class Executor:
    """Executes compiled code. Holds no per-render state."""

    def __init__(self) -> None:
        self._handlers: Dict[type, Callable[[Any, Scope, List[str]], None]] = {
            spec.Text: self._text,
            spec.Echo: self._echo,
            spec.Exec: self._exec,
            spec.Break: self._break,
            spec.Continue: self._continue,
            spec.Return: self._return,
            spec.If: self._if,
            spec.Foreach: self._foreach,
            spec.For: self._for,
            spec.While: self._while,
            spec.Switch: self._switch,
            spec.Function: self._function,
        }

    def render(
        self,
        code: str,
        bindings: Optional[Mapping[str, Any]] = None,
        name: Optional[str] = None,
    ) -> str:
        """Execute compiled code and return everything it wrote.

        Args:
            code: Compiled code.
            bindings: Variables visible to the template.
            name: Template name for error messages.

        Returns:
            The rendered output.

        Raises:
            CompileError: The code could not be loaded.
            RenderFailure: Anything raised while executing.
        """
        program = load_program(code, name)
        out: List[str] = []
        scope = new_scope(bindings)
        try:
            self.run(program.nodes, scope, out)
        except _Return:
            pass
        except (_Break, _Continue) as e:
            kind = type(e).__name__[1:].lower()
            raise RenderFailure(f"'{kind}' not in loop or switch", name=name) from None
        except Exception as e:
            log.debug("Render of %s failed: %r", name or "<string>", e)
            raise RenderFailure(str(e), name=name) from e
        return "".join(out)

    def run(self, nodes: List[spec.Node], scope: Scope, out: List[str]) -> None:
        for node in nodes:
            self._handlers[type(node)](node, scope, out)

    def _loop_body(self, body: List[spec.Node], scope: Scope, out: List[str]) -> bool:
        """Run a loop body. Returns False when the loop should stop."""
        try:
            self.run(body, scope, out)
        except _Break:
            return False
        except _Continue:
            pass
        return True

    def _text(self, node: spec.Text, scope: Scope, out: List[str]) -> None:
        out.append(node.value)

    def _echo(self, node: spec.Echo, scope: Scope, out: List[str]) -> None:
        out.append(to_text(node.expr.evaluate(scope)))

    def _exec(self, node: spec.Exec, scope: Scope, out: List[str]) -> None:
        node.statement.execute(scope)

    def _break(self, node: spec.Break, scope: Scope, out: List[str]) -> None:
        raise _Break()

    def _continue(self, node: spec.Continue, scope: Scope, out: List[str]) -> None:
        raise _Continue()

    def _return(self, node: spec.Return, scope: Scope, out: List[str]) -> None:
        raise _Return(node.value.evaluate(scope) if node.value is not None else None)

    def _if(self, node: spec.If, scope: Scope, out: List[str]) -> None:
        for branch in node.branches:
            if branch.condition is None or branch.condition.evaluate(scope):
                self.run(branch.body, scope, out)
                return

    def _foreach(self, node: spec.Foreach, scope: Scope, out: List[str]) -> None:
        iterable = node.iterable.evaluate(scope)
        if iterable is None:
            return
        pairs = iterable.items() if isinstance(iterable, Mapping) else enumerate(iterable)
        for key, value in pairs:
            scope[node.value] = value
            if node.key is not None:
                scope[node.key] = key
            if not self._loop_body(node.body, scope, out):
                break

    def _for(self, node: spec.For, scope: Scope, out: List[str]) -> None:
        for statement in node.init:
            statement.execute(scope)
        while node.condition is None or node.condition.evaluate(scope):
            if not self._loop_body(node.body, scope, out):
                break
            for statement in node.step:
                statement.execute(scope)

    def _while(self, node: spec.While, scope: Scope, out: List[str]) -> None:
        while node.condition.evaluate(scope):
            if not self._loop_body(node.body, scope, out):
                break

    def _switch(self, node: spec.Switch, scope: Scope, out: List[str]) -> None:
        subject = node.subject.evaluate(scope)
        start = None
        for index, case in enumerate(node.cases):
            if case.label is not None and case.label.evaluate(scope) == subject:
                start = index
                break
        if start is None:
            defaults = [i for i, case in enumerate(node.cases) if case.label is None]
            if not defaults:
                return
            start = defaults[0]

        try:
            for case in node.cases[start:]:
                self.run(case.body, scope, out)
        except _Break:
            pass

    def _function(self, node: spec.Function, scope: Scope, out: List[str]) -> None:
        scope[node.name] = TemplateFunction(self, node, scope, out)
