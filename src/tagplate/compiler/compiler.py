"""Compiler - rewrites template markup into the intermediate code form."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from tagplate.compiler.literals import LiteralVault
from tagplate.compiler.rules import RuleTable, builtin_rules
from tagplate.exceptions import CompileError, TemplateError
from tagplate.finders import FinderChain
from tagplate.runtime.loader import load_program

log = logging.getLogger(__name__)


class Compiler:
    """Applies the ordered rule table to template source."""

    def __init__(self, finders: FinderChain, rules: Optional[RuleTable] = None):
        """Initialize compiler.

        Args:
            finders: Chain used to resolve ``{include ...}`` identifiers.
            rules: Extension registry merged over the built-in rules.
        """
        self.finders = finders
        self.rules = rules if rules is not None else RuleTable()

    def compile(self, source: str, name: Optional[str] = None) -> str:
        """Compile template source into intermediate code.

        Algorithm:
        1. Extract literal blocks into a fresh vault
        2. Run every rule in order (includes recurse into step 1-2 with the
           same vault)
        3. Restore literal blocks
        4. Load the result once so malformed output fails here, not at render

        Args:
            source: Raw template text.
            name: Identifier used in log and error messages.

        Returns:
            The compiled code string.

        Raises:
            TemplateNotFound: An included template could not be resolved.
            CompileError: A rule failed or the result is malformed.
        """
        log.debug("Compiling template %s", name or "<string>")
        vault = LiteralVault()
        stack = (name,) if name else ()
        code = self._parse(vault.extract(source), vault, name, stack)
        code = vault.restore(code)
        load_program(code, name)
        return code

    def _parse(
        self,
        text: str,
        vault: LiteralVault,
        name: Optional[str],
        stack: Tuple[str, ...],
    ) -> str:
        """Run the merged rule table over text."""

        def include(match: re.Match) -> str:
            return self._include(match.group(1), vault, name, stack)

        for rule in self.rules.merged(builtin_rules(include)):
            try:
                text = rule.apply(text)
            except TemplateError:
                raise
            except Exception as e:
                raise CompileError(
                    f"rule {rule.pattern!r} failed: {e}", name=name
                ) from e
        return text

    def _include(
        self,
        spec: str,
        vault: LiteralVault,
        name: Optional[str],
        stack: Tuple[str, ...],
    ) -> str:
        """Expand ``{include a,b}`` into the compiled code of a and b."""
        identifiers: List[str] = spec.split(",")
        for identifier in identifiers:
            if identifier in stack:
                chain = " -> ".join(stack + (identifier,))
                raise CompileError(f"include cycle: {chain}", name=name)

        source = "".join(self.finders.resolve(i) for i in identifiers)
        log.debug("Expanding include %s", spec)
        return self._parse(vault.extract(source), vault, name, stack + tuple(identifiers))
