"""Tagplate runtime - loads compiled code and executes it."""

from tagplate.runtime.executor import Executor, TemplateFunction
from tagplate.runtime.loader import load_program
from tagplate.runtime.spec import Program

__all__ = ["Executor", "TemplateFunction", "Program", "load_program"]
