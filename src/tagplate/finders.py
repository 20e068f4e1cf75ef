"""Finders - resolve template identifiers to raw template source.

A finder is any callable ``(identifier) -> str | None``. The chain asks each
registered finder in priority order and returns the first source found.
"""

from __future__ import annotations

import itertools
import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from jinja2 import BaseLoader, Environment, FileSystemLoader
from jinja2 import TemplateNotFound as LoaderTemplateNotFound

from tagplate.exceptions import TemplateNotFound

log = logging.getLogger(__name__)

Finder = Callable[[str], Optional[str]]

LOWEST_PRIORITY = float("-inf")

_environment = Environment()


class FinderChain:
    """Priority-ordered list of finders.

    Higher priority is asked first. Equal priorities keep registration order.
    """

    def __init__(self) -> None:
        self._entries: List[Tuple[float, int, Finder]] = []
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, finder: Finder, priority: float = 0) -> None:
        """Register a finder."""
        self._entries.append((priority, next(self._counter), finder))
        self._entries.sort(key=lambda entry: (-entry[0], entry[1]))

    def finders(self) -> List[Finder]:
        """Return the finders in the order they are consulted."""
        return [finder for _, _, finder in self._entries]

    def resolve(self, identifier: str) -> str:
        """Resolve identifier to raw template source.

        Args:
            identifier: Template identifier, e.g. ``"index@admin"``.

        Returns:
            The template source.

        Raises:
            TemplateNotFound: Every finder returned None.
        """
        for finder in self.finders():
            source = finder(identifier)
            if source is not None:
                log.debug("Resolved %s via %r", identifier, finder)
                return source
        raise TemplateNotFound(identifier)


def find_file(identifier: str) -> Optional[str]:
    """Default finder: the identifier is a literal file-system path."""
    path = Path(identifier)
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


class LoaderFinder:
    """Adapts a jinja2 loader (DictLoader, PackageLoader, ...) to a finder."""

    def __init__(self, loader: BaseLoader):
        self.loader = loader

    def __call__(self, identifier: str) -> Optional[str]:
        try:
            source, _, _ = self.loader.get_source(_environment, identifier)
        except LoaderTemplateNotFound:
            return None
        return source

    def __repr__(self) -> str:
        return f"LoaderFinder({type(self.loader).__name__})"


class NamespacedFinder:
    """Resolves ``file@group`` identifiers against per-group search roots.

    For a group, roots are tried by descending priority and, inside each
    root, one subdirectory per variant in order, so
    ``index@admin`` with variants ``["mobile", "default"]`` looks for
    ``<root>/mobile/index.tpl`` before ``<root>/default/index.tpl``.
    """

    def __init__(self, suffix: str = ".tpl", variants: Sequence[str] = ("default",)):
        self.suffix = suffix
        self.variants = list(variants)
        self._paths: Dict[str, List[Tuple[float, int, str]]] = {}
        self._counter = itertools.count()

    def add_path(self, group: str, path: str | os.PathLike, priority: float = 0) -> None:
        """Register a search root for a group."""
        roots = self._paths.setdefault(group, [])
        roots.append((priority, next(self._counter), os.fspath(path)))
        roots.sort(key=lambda entry: (-entry[0], entry[1]))

    def searchpath(self, group: str) -> List[str]:
        """Directories consulted for a group, in lookup order."""
        return [
            os.path.join(root, variant)
            for _, _, root in self._paths.get(group, [])
            for variant in self.variants
        ]

    def __call__(self, identifier: str) -> Optional[str]:
        parts = identifier.split("@")
        if len(parts) < 2:
            return None
        file, group = parts[0], parts[1]
        if not file or group not in self._paths:
            return None

        loader = FileSystemLoader(self.searchpath(group))
        try:
            source, filename, _ = loader.get_source(_environment, file + self.suffix)
        except LoaderTemplateNotFound:
            return None
        log.debug("Found %s at %s", identifier, filename)
        return source

    def __repr__(self) -> str:
        return f"NamespacedFinder(groups={sorted(self._paths)})"


def device_variants(user_agent: Optional[str]) -> List[str]:
    """Variant directories to try for a request's user agent.

    Args:
        user_agent: The ``User-Agent`` header, or None outside a request.

    Returns:
        Variants from most to least specific, always ending in ``default``.
    """
    if user_agent is None:
        return ["default"]

    agent = user_agent.lower()
    if "iphone" in agent:
        return ["iphone", "mobile", "default"]
    if "android" in agent:
        return ["android", "mobile", "default"]
    if "ipad" in agent:
        return ["ipad", "default"]
    return ["pc", "default"]
