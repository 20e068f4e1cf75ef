"""Tagplate compiler - turns tag markup into intermediate code."""

from tagplate.compiler.compiler import Compiler
from tagplate.compiler.literals import LiteralVault
from tagplate.compiler.rules import RuleTable, TagRule, builtin_rules

__all__ = ["Compiler", "LiteralVault", "RuleTable", "TagRule", "builtin_rules"]
