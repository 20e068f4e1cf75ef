"""Compiled-code cache gateway.

The cache is trusted blindly: an entry is returned as-is with no staleness
check against the template source. Expiry and invalidation belong to the
backend.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Protocol, runtime_checkable

log = logging.getLogger(__name__)

DEFAULT_PREFIX = "tpl_"

_UNSAFE_KEY_CHARS = str.maketrans({c: "_" for c in "{}()/\\@:"})


@runtime_checkable
class CacheBackend(Protocol):
    """Key-value store holding compiled code."""

    def has(self, key: str) -> bool: ...

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryCache:
    """In-process dict backend."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def has(self, key: str) -> bool:
        return key in self._data

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def keys(self) -> list[str]:
        return list(self._data)


def cache_key(name: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Derive a storage-safe key from a template name.

    >>> cache_key("layout@admin")
    'tpl_layout_admin'
    """
    return (prefix + name).translate(_UNSAFE_KEY_CHARS)


class CacheGateway:
    """Memoizes compiled code through an optional cache backend."""

    def __init__(self, cache: Optional[CacheBackend] = None, prefix: str = DEFAULT_PREFIX):
        self.cache = cache
        self.prefix = prefix

    def get_or_compile(
        self,
        name: str,
        source: Callable[[], str],
        compile_fn: Callable[[str], str],
    ) -> str:
        """Return cached code for name, compiling and storing it on a miss.

        Args:
            name: Template identifier, or a content hash for anonymous source.
            source: Thunk producing the raw source; only called on a miss.
            compile_fn: Turns raw source into compiled code.

        Returns:
            Compiled code.
        """
        key = cache_key(name, self.prefix)
        if self.cache is not None:
            code = self.cache.get(key)
            if code is not None:
                log.debug("Cache hit for %s", key)
                return code
            log.debug("Cache miss for %s", key)

        code = compile_fn(source())

        if self.cache is not None:
            self.cache.set(key, code)
            log.debug("Stored %s", key)
        return code
