"""Tagplate - a tag-based template compiler."""

from tagplate.cache import CacheBackend, CacheGateway, MemoryCache, cache_key
from tagplate.engine import Template
from tagplate.exceptions import (
    CompileError,
    RenderFailure,
    TemplateError,
    TemplateNotFound,
)
from tagplate.finders import (
    FinderChain,
    LoaderFinder,
    NamespacedFinder,
    device_variants,
    find_file,
)

__version__ = "0.1.0"

__all__ = [
    "Template",
    "CacheBackend",
    "CacheGateway",
    "MemoryCache",
    "cache_key",
    "FinderChain",
    "LoaderFinder",
    "NamespacedFinder",
    "device_variants",
    "find_file",
    "TemplateError",
    "TemplateNotFound",
    "CompileError",
    "RenderFailure",
]
