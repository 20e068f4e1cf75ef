"""Template engine facade."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from tagplate.cache import CacheBackend, CacheGateway
from tagplate.compiler import Compiler, RuleTable
from tagplate.compiler.rules import Rewrite
from tagplate.config import EngineConfig
from tagplate.finders import (
    LOWEST_PRIORITY,
    Finder,
    FinderChain,
    NamespacedFinder,
    find_file,
)
from tagplate.runtime import Executor

log = logging.getLogger(__name__)


class Template:
    """Compiles, caches and renders tag templates.

    Example:
        tpl = Template(cache=MemoryCache())
        tpl.add_path("admin", "templates/admin")
        tpl.assign("site", "Example")
        html = tpl.render("index@admin", {"user": {"name": "Ana"}})
    """

    def __init__(
        self,
        cache: Optional[CacheBackend] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or EngineConfig()
        self.finders = FinderChain()
        self.rules = RuleTable()
        self.compiler = Compiler(self.finders, self.rules)
        self.gateway = CacheGateway(cache, prefix=self.config.cache_prefix)
        self.executor = Executor()
        self.data: Dict[str, Any] = dict(self.config.globals)

        self._namespaces = NamespacedFinder(self.config.suffix, self.config.variants)
        self.finders.add(self._namespaces, 0)
        for group, entries in self.config.paths.items():
            for entry in entries:
                self._namespaces.add_path(group, entry.path, entry.priority)
        if self.config.file_finder:
            self.finders.add(find_file, LOWEST_PRIORITY)

    @classmethod
    def from_config(
        cls,
        config: Union[EngineConfig, str, os.PathLike],
        cache: Optional[CacheBackend] = None,
    ) -> "Template":
        """Build an engine from an EngineConfig or a path to tagplate.yaml."""
        if not isinstance(config, EngineConfig):
            config = EngineConfig.load(Path(config))
        return cls(cache=cache, config=config)

    @property
    def cache(self) -> Optional[CacheBackend]:
        return self.gateway.cache

    def add_finder(self, finder: Finder, priority: float = 0) -> "Template":
        """Register a finder; higher priority is consulted first."""
        self.finders.add(finder, priority)
        return self

    def add_path(
        self, group: str, path: Union[str, os.PathLike], priority: float = 0
    ) -> "Template":
        """Register a search root for ``name@group`` identifiers."""
        self._namespaces.add_path(group, path, priority)
        return self

    def extend(
        self, pattern: str, rewrite: Rewrite, flags: Optional[int] = None
    ) -> "Template":
        """Register a custom tag rule, applied after the built-ins."""
        self.rules.extend(pattern, rewrite, flags)
        return self

    def assign(self, name: Union[str, Mapping[str, Any]], value: Any = None) -> "Template":
        """Assign one variable, or merge a mapping of variables."""
        if isinstance(name, Mapping):
            self.data.update(name)
        else:
            self.data[name] = value
        return self

    def compile(self, identifier: str) -> str:
        """Return the compiled code for a template identifier."""
        return self.gateway.get_or_compile(
            identifier,
            lambda: self.finders.resolve(identifier),
            lambda source: self.compiler.compile(source, identifier),
        )

    def compile_string(self, source: str, filename: str = "") -> str:
        """Return the compiled code for template source."""
        name = filename or hashlib.md5(source.encode()).hexdigest()
        return self.gateway.get_or_compile(
            name,
            lambda: source,
            lambda text: self.compiler.compile(text, filename or None),
        )

    def render(self, identifier: str, data: Optional[Mapping[str, Any]] = None) -> str:
        """Render a template resolved through the finder chain.

        Args:
            identifier: Template identifier, e.g. ``"index@admin"``.
            data: Variables for this render, layered over assigned ones.

        Returns:
            Rendered output.

        Raises:
            TemplateNotFound: The template or one of its includes is missing.
            CompileError: The template could not be compiled.
            RenderFailure: The compiled template failed while executing.
        """
        code = self.compile(identifier)
        return self.executor.render(code, self._bindings(data), identifier)

    def render_string(
        self,
        source: str,
        data: Optional[Mapping[str, Any]] = None,
        filename: str = "",
    ) -> str:
        """Render template source given directly.

        Args:
            source: Template text.
            data: Variables for this render, layered over assigned ones.
            filename: Cache name; defaults to the md5 of source.

        Returns:
            Rendered output.
        """
        code = self.compile_string(source, filename)
        return self.executor.render(code, self._bindings(data), filename or None)

    def _bindings(self, data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        bindings = dict(self.data)
        if data:
            bindings.update(data)
        return bindings
